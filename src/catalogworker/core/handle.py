"""
Job handle: runtime state and control signals for one entry.

Only the owning JobLoop writes ``status``, ``progress`` and ``retry_count``.
External callers only touch ``armed`` and the three signals:

- ``start``  (Trigger): edge-triggered, wakes whoever waits right now
- ``stop``   (asyncio.Event): permanent, idempotent
- ``suspend`` (SuspendChannel): level-triggered pause/resume, last value wins
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Awaitable, Dict, Optional

from ..entries import JobConfiguration


class JobState(str, Enum):
    """Scheduling state of a handle."""

    ENQUEUED = "enqueued"
    IN_PROGRESS = "in_progress"
    SUSPENDED = "suspended"
    SUCCESS = "success"
    FAILURE = "failure"


@dataclass(frozen=True)
class JobStatus:
    state: JobState
    reason: Optional[str] = None  # set for FAILURE

    @classmethod
    def failure(cls, reason: str) -> "JobStatus":
        return cls(JobState.FAILURE, reason)

    def to_dict(self) -> Dict[str, Any]:
        data = {"state": self.state.value}
        if self.reason is not None:
            data["reason"] = self.reason
        return data


ENQUEUED = JobStatus(JobState.ENQUEUED)
IN_PROGRESS = JobStatus(JobState.IN_PROGRESS)
SUSPENDED = JobStatus(JobState.SUSPENDED)
SUCCESS = JobStatus(JobState.SUCCESS)


@dataclass(frozen=True)
class ProgressInfo:
    """Coarse progress milestone, e.g. ("fetching source 2/3", 1, 3)."""

    stage: str
    done: int = 0
    total: int = 0


class Trigger:
    """Edge-triggered wake-up.

    ``fire()`` wakes the tasks currently inside ``wait()``; a fire with no
    waiter is lost.
    """

    def __init__(self):
        self._event = asyncio.Event()

    def fire(self) -> None:
        event, self._event = self._event, asyncio.Event()
        event.set()

    def wait(self) -> Awaitable[bool]:
        """Awaitable bound to the current edge; later fires do not affect it."""
        return self._event.wait()


class SuspendChannel:
    """Level-triggered pause flag with change notification."""

    def __init__(self, paused: bool = False):
        self._paused = paused
        self._changed = asyncio.Event()

    @property
    def paused(self) -> bool:
        return self._paused

    def broadcast(self, paused: bool) -> None:
        self._paused = paused
        changed, self._changed = self._changed, asyncio.Event()
        changed.set()

    async def wait_for(self, paused: bool) -> None:
        """Return once the current value equals ``paused``."""
        while self._paused != paused:
            await self._changed.wait()

    def changed(self) -> Awaitable[bool]:
        """Awaitable that completes on the next broadcast after this call."""
        return self._changed.wait()


@dataclass(frozen=True)
class HandleSnapshot:
    """Consistent point-in-time view of a handle."""

    entry_key: str
    owner: str
    status: JobStatus
    progress: Optional[ProgressInfo]
    config: JobConfiguration
    armed: bool
    retry_count: int
    last_success_at: Optional[datetime]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "entry_key": self.entry_key,
            "owner": self.owner,
            "status": self.status.to_dict(),
            "progress": None
            if self.progress is None
            else {"stage": self.progress.stage, "done": self.progress.done, "total": self.progress.total},
            "config": self.config.model_dump(mode="json"),
            "armed": self.armed,
        }


@dataclass
class JobHandle:
    """Shared state of one entry's job."""

    owner: str
    config: JobConfiguration
    armed: bool = True
    status: JobStatus = ENQUEUED
    progress: Optional[ProgressInfo] = None
    retry_count: int = 0
    last_success_at: Optional[datetime] = None
    start: Trigger = field(default_factory=Trigger)
    stop: asyncio.Event = field(default_factory=asyncio.Event)
    suspend: SuspendChannel = field(default_factory=SuspendChannel)

    @property
    def entry_key(self) -> str:
        return self.config.entry_key()

    def set_progress(self, stage: str, done: int = 0, total: int = 0) -> None:
        self.progress = ProgressInfo(stage, done, total)

    def snapshot(self) -> HandleSnapshot:
        return HandleSnapshot(
            entry_key=self.entry_key,
            owner=self.owner,
            status=self.status,
            progress=self.progress,
            config=self.config,
            armed=self.armed,
            retry_count=self.retry_count,
            last_success_at=self.last_success_at,
        )


__all__ = [
    "ENQUEUED",
    "IN_PROGRESS",
    "SUCCESS",
    "SUSPENDED",
    "HandleSnapshot",
    "JobHandle",
    "JobState",
    "JobStatus",
    "ProgressInfo",
    "SuspendChannel",
    "Trigger",
]
