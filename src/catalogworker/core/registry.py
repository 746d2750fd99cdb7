"""
Job Registry.

Addressable map from a content-derived entry key to the handle and loop task
of that entry. One registry per job kind, owned by the composition root.
All mutation happens on the event loop thread, with no await between read
and write, so plain dict operations are safe.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Dict, Iterator, List, Optional

from ..errors import DuplicateEntryError, EntryNotFoundError
from .handle import JobHandle

logger = logging.getLogger(__name__)


@dataclass
class RegisteredJob:
    """A handle plus the task running its loop."""

    handle: JobHandle
    task: Optional[asyncio.Task] = None


class JobRegistry:
    """Registry of running jobs keyed by entry key."""

    def __init__(self, name: str):
        self.name = name
        self._jobs: Dict[str, RegisteredJob] = {}

    def __len__(self) -> int:
        return len(self._jobs)

    def __contains__(self, entry_key: str) -> bool:
        return entry_key in self._jobs

    def __iter__(self) -> Iterator[RegisteredJob]:
        return iter(list(self._jobs.values()))

    def register(self, entry_key: str, handle: JobHandle, task: Optional[asyncio.Task] = None) -> RegisteredJob:
        """Add a job. Raises DuplicateEntryError if the key is taken."""
        if entry_key in self._jobs:
            raise DuplicateEntryError(entry_key)
        job = RegisteredJob(handle=handle, task=task)
        self._jobs[entry_key] = job
        logger.debug(f"Registered {self.name} job {entry_key} ({handle.owner})")
        return job

    def get(self, entry_key: str) -> Optional[RegisteredJob]:
        return self._jobs.get(entry_key)

    def require(self, entry_key: str) -> RegisteredJob:
        job = self._jobs.get(entry_key)
        if job is None:
            raise EntryNotFoundError(entry_key)
        return job

    def unregister(self, entry_key: str) -> RegisteredJob:
        job = self._jobs.pop(entry_key, None)
        if job is None:
            raise EntryNotFoundError(entry_key)
        logger.debug(f"Unregistered {self.name} job {entry_key}")
        return job

    def rekey(self, old_key: str, new_key: str) -> None:
        """Move a job to a new key after its configuration changed."""
        if old_key == new_key:
            return
        if new_key in self._jobs:
            raise DuplicateEntryError(new_key)
        self._jobs[new_key] = self.unregister(old_key)

    def for_owner(self, owner: str) -> Dict[str, RegisteredJob]:
        return {key: job for key, job in self._jobs.items() if job.handle.owner == owner}

    def keys(self) -> List[str]:
        return list(self._jobs.keys())


__all__ = ["JobRegistry", "RegisteredJob"]
