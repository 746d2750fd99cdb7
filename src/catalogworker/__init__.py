"""
CatalogWorker - recurring catalog export/import jobs.

Provides:
- JobService: add/update/remove/start/suspend entries of one job kind
- Engine: builds every collaborator from WorkerConfig and runs the loops

Usage:
    from catalogworker import Engine, get_config

    engine = Engine(get_config())
    await engine.start()
    key = await engine.exports.add("shop-1", ExportEntry(sources=[...]))
"""

__version__ = "0.1.0"

from .config import WorkerConfig, get_config
from .core import JobService, JobState, JobStatus
from .engine import Engine
from .entries import ExportEntry, ImportEntry

__all__ = [
    "__version__",
    # Engine
    "Engine",
    "JobService",
    "JobState",
    "JobStatus",
    # Entries
    "ExportEntry",
    "ImportEntry",
    # Config
    "WorkerConfig",
    "get_config",
]
