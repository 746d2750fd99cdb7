"""
JobService: the external interface of one job kind.

    get_status(key)            -> HandleSnapshot | None
    list_statuses(owner)       -> {key: JobStatus}
    add(owner, config)         -> key
    update(owner, key, config) -> new key (content-derived, may change)
    remove(key)
    start(key) / start_all()   arm and wake
    disarm(key)
    suspend_all(owner, paused) pause / resume broadcast

Add and Update claim their registry key before writing and release it if the
write fails. Remove writes first, so a failed write leaves the loop running.
"""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import Dict, Optional

from ..entries import JobConfiguration, JobKind
from ..errors import ConfigurationError, EntryNotFoundError
from ..publish import Publisher
from ..storage import ConfigurationStore
from .handle import HandleSnapshot, JobHandle, JobStatus
from .limiter import ConcurrencyLimiter
from .loop import DEFAULT_MAX_RETRIES, JobBody, JobLoop
from .registry import JobRegistry

logger = logging.getLogger(__name__)


class JobService:
    """Owns the registry, limiter and loops of one job kind."""

    def __init__(
        self,
        kind: JobKind,
        body: JobBody,
        limiter: ConcurrencyLimiter,
        configs: ConfigurationStore,
        publisher: Optional[Publisher] = None,
        max_retries: int = DEFAULT_MAX_RETRIES,
        diagnostics_dir: Optional[str | Path] = None,
    ):
        self.kind = kind
        self.body = body
        self.limiter = limiter
        self.configs = configs
        self.publisher = publisher
        self.max_retries = max_retries
        self.diagnostics_dir = diagnostics_dir
        self.registry = JobRegistry(kind.value)

    def _check_kind(self, config: JobConfiguration) -> None:
        if config.kind != self.kind:
            raise ConfigurationError(
                f"{config.kind.value} entry given to the {self.kind.value} service"
            )

    def spawn(self, owner: str, config: JobConfiguration, armed: bool = True) -> str:
        """Register a handle and start its loop (no persistence)."""
        key = self._reserve(owner, config, armed)
        self._launch(key)
        return key

    def _reserve(self, owner: str, config: JobConfiguration, armed: bool = True) -> str:
        """Claim the entry key in the registry without starting a loop."""
        self._check_kind(config)
        key = config.entry_key()
        self.registry.register(key, JobHandle(owner=owner, config=config, armed=armed))
        return key

    def _launch(self, key: str) -> None:
        job = self.registry.require(key)
        loop = JobLoop(
            job.handle,
            self.body,
            self.limiter,
            max_retries=self.max_retries,
            diagnostics_dir=self.diagnostics_dir,
        )
        job.task = asyncio.create_task(loop.run(), name=f"{self.kind.value}-{key}")

    # =========================================================================
    # Queries
    # =========================================================================

    def get_status(self, entry_key: str) -> Optional[HandleSnapshot]:
        job = self.registry.get(entry_key)
        return job.handle.snapshot() if job else None

    def list_statuses(self, owner: str) -> Dict[str, JobStatus]:
        return {key: job.handle.status for key, job in self.registry.for_owner(owner).items()}

    # =========================================================================
    # Mutations
    # =========================================================================

    async def add(self, owner: str, config: JobConfiguration) -> str:
        # The key is claimed before the write so a concurrent add of the
        # same content fails fast instead of persisting twice.
        key = self._reserve(owner, config)
        try:
            await self.configs.add_entry(owner, config)
        except BaseException:
            self.registry.unregister(key)
            raise
        self._launch(key)
        logger.info(f"Added {self.kind.value} entry {key} for {owner}")
        return key

    async def update(self, owner: str, entry_key: str, config: JobConfiguration) -> str:
        self._check_kind(config)
        job = self.registry.require(entry_key)
        if job.handle.owner != owner:
            raise EntryNotFoundError(entry_key)
        new_key = config.entry_key()
        self.registry.rekey(entry_key, new_key)
        try:
            await self.configs.replace_entry(owner, entry_key, config)
        except BaseException:
            self.registry.rekey(new_key, entry_key)
            raise
        job.handle.config = config
        logger.info(f"Updated {self.kind.value} entry {entry_key} -> {new_key} for {owner}")
        await self._cleanup(owner)
        return new_key

    async def remove(self, entry_key: str) -> None:
        job = self.registry.require(entry_key)
        owner = job.handle.owner
        await self.configs.remove_entry(owner, self.kind, entry_key)
        job.handle.stop.set()
        self.registry.unregister(entry_key)
        logger.info(f"Removed {self.kind.value} entry {entry_key} for {owner}")
        await self._cleanup(owner)

    # =========================================================================
    # Control signals
    # =========================================================================

    def start(self, entry_key: str) -> None:
        handle = self.registry.require(entry_key).handle
        handle.armed = True
        handle.start.fire()

    def start_all(self) -> None:
        for job in self.registry:
            job.handle.armed = True
            job.handle.start.fire()

    def disarm(self, entry_key: str) -> None:
        self.registry.require(entry_key).handle.armed = False

    def suspend_all(self, owner: str, paused: bool) -> None:
        jobs = self.registry.for_owner(owner)
        for job in jobs.values():
            job.handle.suspend.broadcast(paused)
        logger.info(
            f"{'Paused' if paused else 'Resumed'} {len(jobs)} {self.kind.value} jobs of {owner}"
        )

    async def shutdown(self) -> None:
        """Stop every loop and wait for them to exit."""
        tasks = []
        for job in self.registry:
            job.handle.stop.set()
            if job.task is not None:
                tasks.append(job.task)
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        logger.info(f"{self.kind.value} service stopped ({len(tasks)} jobs)")

    async def _cleanup(self, owner: str) -> None:
        """Drop published files no remaining export entry of ``owner`` produces."""
        if self.publisher is None or self.kind != JobKind.EXPORT:
            return
        keep = set()
        for job in self.registry.for_owner(owner).values():
            keep.update(job.handle.config.artifact_names())
        await self.publisher.cleanup(owner, keep)


__all__ = ["JobService"]
