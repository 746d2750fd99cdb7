"""
Job loop: the per-handle scheduling state machine.

One long-running task per handle. Each cycle:

1. Fresh result (age < update rate) -> SUCCESS, wait out the remainder
2. Disarmed -> SUSPENDED until Start
3. Paused -> SUSPENDED until resume
4. ENQUEUED -> limiter admission -> IN_PROGRESS -> body
5. Outcome: success resets the retry counter; transient failures retry
   immediately up to ``max_retries``; permanent failures dump the raw
   payload (if any) and fail at once
6. Idle for the update rate; Start cuts the wait short, Stop ends the loop

A pause broadcast during any idle wait parks the handle in SUSPENDED; resume
continues without a Start.
"""

from __future__ import annotations

import asyncio
import hashlib
import logging
from datetime import datetime, timedelta, timezone
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Optional, Protocol

from ..entries import JobConfiguration
from .handle import ENQUEUED, IN_PROGRESS, SUCCESS, SUSPENDED, JobHandle, JobStatus
from .limiter import ConcurrencyLimiter
from .outcome import Outcome, OutcomeKind, attempt

logger = logging.getLogger(__name__)

DEFAULT_MAX_RETRIES = 30


class JobBody(Protocol):
    """What a job does per cycle (export or import)."""

    async def execute(self, handle: JobHandle, config: JobConfiguration) -> Any: ...

    def last_run_age(self, handle: JobHandle) -> Optional[timedelta]: ...


class Wake(str, Enum):
    TIMER = "timer"
    START = "start"
    STOP = "stop"
    SUSPEND = "suspend"
    RESUME = "resume"


def diagnostic_name(locator: str) -> str:
    return f"{hashlib.sha256(locator.encode('utf-8')).hexdigest()[:16]}.xml.tmp"


class JobLoop:
    """Drives one JobHandle until its Stop signal fires."""

    def __init__(
        self,
        handle: JobHandle,
        body: JobBody,
        limiter: ConcurrencyLimiter,
        max_retries: int = DEFAULT_MAX_RETRIES,
        diagnostics_dir: Optional[str | Path] = None,
    ):
        self.handle = handle
        self.body = body
        self.limiter = limiter
        self.max_retries = max_retries
        self.diagnostics_dir = Path(diagnostics_dir) if diagnostics_dir else None

    async def run(self) -> None:
        handle = self.handle
        forced = False
        logger.info(f"Job loop started for {handle.entry_key} ({handle.owner})")

        while not handle.stop.is_set():
            config = handle.config

            if not forced:
                age = self.body.last_run_age(handle)
                if age is not None and age < config.update_rate:
                    handle.status = SUCCESS
                    wake = await self._idle((config.update_rate - age).total_seconds())
                    if wake == Wake.STOP:
                        break
                    forced = wake in (Wake.START, Wake.TIMER)
                    continue
            forced = False

            if not handle.armed:
                handle.status = SUSPENDED
                wake = await self._wait(None, start=True)
                if wake == Wake.STOP:
                    break
                forced = True
                continue

            if handle.suspend.paused:
                if await self._park() == Wake.STOP:
                    break
                continue

            outcome = await self._execute(config)
            if outcome is None:
                break

            if outcome.kind == OutcomeKind.SUCCESS:
                handle.retry_count = 0
                handle.last_success_at = datetime.now(timezone.utc)
                handle.status = SUCCESS
                logger.info(f"Job {handle.entry_key} succeeded")
            elif outcome.kind == OutcomeKind.TRANSIENT and handle.retry_count < self.max_retries:
                handle.retry_count += 1
                logger.warning(
                    f"Job {handle.entry_key} failed ({outcome.reason}), "
                    f"retry {handle.retry_count}/{self.max_retries}"
                )
                forced = True
                continue
            else:
                handle.retry_count = 0
                if outcome.payload and outcome.locator:
                    await self._dump_payload(outcome)
                handle.status = JobStatus.failure(outcome.reason or "unknown error")
                logger.error(f"Job {handle.entry_key} failed: {outcome.reason}")

            handle.progress = None
            wake = await self._idle(handle.config.update_rate.total_seconds())
            if wake == Wake.STOP:
                break
            forced = wake in (Wake.START, Wake.TIMER)

        logger.info(f"Job loop stopped for {handle.entry_key}")

    async def _execute(self, config: JobConfiguration) -> Optional[Outcome]:
        """One admitted body run. None if Stop fired while queued."""
        handle = self.handle
        handle.status = ENQUEUED
        async with self.limiter:
            if handle.stop.is_set():
                return None
            handle.status = IN_PROGRESS
            logger.info(f"Running job {handle.entry_key} ({handle.owner})")
            return await attempt(lambda: self.body.execute(handle, config))

    async def _park(self) -> Wake:
        """SUSPENDED until resume (or Stop)."""
        self.handle.status = SUSPENDED
        logger.info(f"Job {self.handle.entry_key} suspended")
        wake = await self._wait(None, resume=True)
        if wake == Wake.RESUME:
            logger.info(f"Job {self.handle.entry_key} resumed")
        return wake

    async def _idle(self, seconds: float) -> Wake:
        """Sleep up to ``seconds``; Start/Stop end it, a pause parks the handle."""
        loop = asyncio.get_running_loop()
        deadline = loop.time() + max(seconds, 0.0)
        while True:
            if self.handle.suspend.paused:
                return await self._park()
            remaining = deadline - loop.time()
            if remaining <= 0:
                return Wake.TIMER
            wake = await self._wait(remaining, start=True, suspend=True)
            if wake != Wake.SUSPEND:
                return wake

    async def _wait(
        self,
        timeout: Optional[float],
        *,
        start: bool = False,
        suspend: bool = False,
        resume: bool = False,
    ) -> Wake:
        """Block until the first of the selected signals (Stop always)."""
        handle = self.handle
        waiters: Dict[asyncio.Task, Wake] = {
            asyncio.ensure_future(handle.stop.wait()): Wake.STOP,
        }
        if start:
            waiters[asyncio.ensure_future(handle.start.wait())] = Wake.START
        if suspend:
            waiters[asyncio.ensure_future(handle.suspend.changed())] = Wake.SUSPEND
        if resume:
            waiters[asyncio.ensure_future(handle.suspend.wait_for(False))] = Wake.RESUME

        try:
            done, _ = await asyncio.wait(
                waiters, timeout=timeout, return_when=asyncio.FIRST_COMPLETED
            )
        finally:
            for task in waiters:
                if not task.done():
                    task.cancel()
            await asyncio.gather(*waiters, return_exceptions=True)

        if not done:
            return Wake.TIMER
        fired = {waiters[t] for t in done}
        for wake in (Wake.STOP, Wake.START, Wake.RESUME, Wake.SUSPEND):
            if wake in fired:
                return wake
        return Wake.TIMER

    async def _dump_payload(self, outcome: Outcome) -> None:
        if self.diagnostics_dir is None:
            return
        path = self.diagnostics_dir / diagnostic_name(outcome.locator)
        try:
            await asyncio.to_thread(_write_dump, path, outcome.payload)
        except OSError as e:
            logger.warning(f"Unable to write diagnostic payload {path}: {e}")
            return
        logger.error(f"Unparseable payload from {outcome.locator} saved to {path}")


def _write_dump(path: Path, payload: bytes) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(payload)


__all__ = ["DEFAULT_MAX_RETRIES", "JobBody", "JobLoop", "Wake", "diagnostic_name"]
