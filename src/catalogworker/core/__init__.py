"""
CatalogWorker core: the recurring job engine.

Provides:
- JobHandle: per-entry status, progress and control signals
- ConcurrencyLimiter: bounded admission per job kind
- JobLoop: the per-handle state machine
- JobRegistry / JobService: addressable jobs and their external interface
"""

from .handle import HandleSnapshot, JobHandle, JobState, JobStatus, ProgressInfo
from .limiter import ConcurrencyLimiter
from .loop import JobLoop
from .outcome import Outcome, OutcomeKind, attempt
from .registry import JobRegistry
from .service import JobService

__all__ = [
    "ConcurrencyLimiter",
    "HandleSnapshot",
    "JobHandle",
    "JobLoop",
    "JobRegistry",
    "JobService",
    "JobState",
    "JobStatus",
    "Outcome",
    "OutcomeKind",
    "ProgressInfo",
    "attempt",
]
