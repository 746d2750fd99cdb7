"""Exception taxonomy for CatalogWorker.

Job bodies raise these; ``core.outcome.attempt`` turns them into a tagged
outcome the job loop acts on. Service operations raise the entry errors to
their callers.
"""

from __future__ import annotations


class CatalogWorkerError(Exception):
    """Base class for all CatalogWorker errors."""


class TransientSourceError(CatalogWorkerError):
    """Network or IO failure while fetching a source. Retried."""

    def __init__(self, locator: str, message: str):
        super().__init__(f"Unable to fetch {locator}: {message}")
        self.locator = locator


class PermanentParseError(CatalogWorkerError):
    """Content was fetched but is structurally unparseable. Not retried."""

    def __init__(self, locator: str, message: str, payload: bytes = b""):
        super().__init__(f"Unable to parse {locator}: {message}")
        self.locator = locator
        self.payload = payload


class ConfigurationError(CatalogWorkerError):
    """Entry is misconfigured (missing token, no sources). Not retried."""


class PublishError(CatalogWorkerError):
    """Staging or promotion of an artifact failed."""


class EntryNotFoundError(CatalogWorkerError):
    """No job is registered under the given entry key."""

    def __init__(self, entry_key: str):
        super().__init__(f"Entry {entry_key} not found")
        self.entry_key = entry_key


class DuplicateEntryError(CatalogWorkerError):
    """A job with the same content-derived key is already registered."""

    def __init__(self, entry_key: str):
        super().__init__(f"Entry {entry_key} already exists")
        self.entry_key = entry_key
