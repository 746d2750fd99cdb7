"""Source kind registry.

Every source descriptor kind (``link``, ``supplier``, ``api``) maps to one
fetcher class implementing the Product-Source capability:

    class SomeFetcher:
        def __init__(self, context: FetchContext): ...
        async def fetch(self, source) -> List[AggregatedRecord]: ...

Usage:
    @source_registry.register_source("link")
    class LinkFeedFetcher: ...

    fetcher = source_registry.get_fetcher("link", context)
"""

from __future__ import annotations

import logging
from typing import Any, Callable, Dict, Optional, Type

logger = logging.getLogger(__name__)


class SourceRegistry:
    """Registry for source fetchers, keyed by descriptor kind."""

    def __init__(self):
        self._fetchers: Dict[str, Type[Any]] = {}

    def register_source(self, kind: str) -> Callable[[Type], Type]:
        """Decorator to register a fetcher class for a source kind."""

        def decorator(cls: Type) -> Type:
            self._fetchers[kind.lower()] = cls
            logger.debug(f"Registered source fetcher: {kind} -> {cls.__name__}")
            return cls

        return decorator

    def get_fetcher(self, kind: str, context: Any) -> Optional[Any]:
        """Get a fetcher instance bound to ``context``, or None if unknown."""
        cls = self._fetchers.get(kind.lower())
        if cls is None:
            logger.debug(f"No fetcher registered for source kind {kind}")
            return None
        return cls(context)

    def list_kinds(self) -> list[str]:
        """List all registered source kinds."""
        return list(self._fetchers.keys())


# Global singleton, populated by harvester.sources
source_registry = SourceRegistry()


__all__ = ["SourceRegistry", "source_registry"]
