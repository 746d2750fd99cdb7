"""
Tagged outcome of one job body execution.

``attempt()`` runs a body and classifies what happened, so the loop can
decide between retry, failure and diagnostics without catching exceptions
itself.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable, Optional

from ..errors import (
    ConfigurationError,
    PermanentParseError,
    PublishError,
    TransientSourceError,
)

logger = logging.getLogger(__name__)


class OutcomeKind(str, Enum):
    SUCCESS = "success"
    TRANSIENT = "transient"  # retry within the cycle
    PERMANENT = "permanent"  # fail the cycle now


@dataclass(frozen=True)
class Outcome:
    kind: OutcomeKind
    reason: Optional[str] = None
    result: Any = None
    # Set for parse failures: (locator, raw payload)
    locator: Optional[str] = None
    payload: Optional[bytes] = None

    @property
    def ok(self) -> bool:
        return self.kind == OutcomeKind.SUCCESS


async def attempt(body: Callable[[], Awaitable[Any]]) -> Outcome:
    """Run ``body`` once and classify its result."""
    try:
        result = await body()
    except asyncio.CancelledError:
        raise
    except TransientSourceError as e:
        return Outcome(OutcomeKind.TRANSIENT, reason=str(e))
    except OSError as e:
        return Outcome(OutcomeKind.TRANSIENT, reason=f"IO error: {e}")
    except PermanentParseError as e:
        return Outcome(
            OutcomeKind.PERMANENT, reason=str(e), locator=e.locator, payload=e.payload or None
        )
    except (ConfigurationError, PublishError) as e:
        return Outcome(OutcomeKind.PERMANENT, reason=str(e))
    except Exception as e:
        logger.exception(f"Unexpected error in job body: {e}")
        return Outcome(OutcomeKind.PERMANENT, reason=f"Internal error: {e}")
    return Outcome(OutcomeKind.SUCCESS, result=result)


__all__ = ["Outcome", "OutcomeKind", "attempt"]
