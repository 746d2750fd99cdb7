"""
Configuration store: one JSON file per owner.

    {config_dir}/{owner}.json
    {"export_entries": [...], "import_entries": [...], "categories": [...]}

Entry keys are never stored; they are recomputed from content on load.
Writes go to a temp file and are renamed into place, serialized by one lock.
"""

from __future__ import annotations

import asyncio
import json
import logging
import os
from pathlib import Path
from typing import List

from pydantic import ValidationError

from .entries import CategoryDefinition, Entry, ExportEntry, JobKind, OwnerConfiguration
from .errors import ConfigurationError

logger = logging.getLogger(__name__)


def _entries_field(kind: JobKind) -> str:
    return "export_entries" if kind == JobKind.EXPORT else "import_entries"


class ConfigurationStore:
    """Load / save per-owner entry lists."""

    def __init__(self, config_dir: str | Path):
        self.config_dir = Path(config_dir)
        self._lock = asyncio.Lock()

    def path_for(self, owner: str) -> Path:
        if not owner or "/" in owner or "\\" in owner or owner.startswith("."):
            raise ConfigurationError(f"Invalid owner key: {owner!r}")
        return self.config_dir / f"{owner}.json"

    def owners(self) -> List[str]:
        """Owners with a configuration file."""
        if not self.config_dir.is_dir():
            return []
        return sorted(p.stem for p in self.config_dir.glob("*.json"))

    async def load(self, owner: str) -> OwnerConfiguration:
        path = self.path_for(owner)
        return await asyncio.to_thread(self._read, path)

    async def save(self, owner: str, config: OwnerConfiguration) -> None:
        async with self._lock:
            await asyncio.to_thread(self._write, self.path_for(owner), config)

    async def categories(self, owner: str) -> List[CategoryDefinition]:
        return (await self.load(owner)).categories

    # =========================================================================
    # Entry mutations (read-modify-write under the lock)
    # =========================================================================

    async def add_entry(self, owner: str, entry: Entry) -> None:
        async with self._lock:
            path = self.path_for(owner)
            config = await asyncio.to_thread(self._read, path)
            getattr(config, _entries_field(entry.kind)).append(entry)
            await asyncio.to_thread(self._write, path, config)

    async def replace_entry(self, owner: str, old_key: str, entry: Entry) -> None:
        """Replace the entry whose key is ``old_key``; append if it is gone."""
        async with self._lock:
            path = self.path_for(owner)
            config = await asyncio.to_thread(self._read, path)
            entries = getattr(config, _entries_field(entry.kind))
            for index, existing in enumerate(entries):
                if existing.entry_key() == old_key:
                    entries[index] = entry
                    break
            else:
                logger.warning(f"Entry {old_key} not found in {owner} config, appending")
                entries.append(entry)
            await asyncio.to_thread(self._write, path, config)

    async def remove_entry(self, owner: str, kind: JobKind, entry_key: str) -> bool:
        async with self._lock:
            path = self.path_for(owner)
            config = await asyncio.to_thread(self._read, path)
            entries = getattr(config, _entries_field(kind))
            kept = [e for e in entries if e.entry_key() != entry_key]
            if len(kept) == len(entries):
                return False
            setattr(config, _entries_field(kind), kept)
            await asyncio.to_thread(self._write, path, config)
            return True

    async def export_entries(self, owner: str) -> List[ExportEntry]:
        return (await self.load(owner)).export_entries

    # =========================================================================
    # File IO (runs in a worker thread)
    # =========================================================================

    @staticmethod
    def _read(path: Path) -> OwnerConfiguration:
        if not path.exists():
            return OwnerConfiguration()
        try:
            return OwnerConfiguration.model_validate_json(path.read_bytes())
        except ValidationError as e:
            raise ConfigurationError(f"Invalid configuration file {path}: {e}") from e

    @staticmethod
    def _write(path: Path, config: OwnerConfiguration) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        tmp = path.with_name(path.name + ".tmp")
        data = json.dumps(config.model_dump(mode="json"), ensure_ascii=False, indent=2)
        tmp.write_text(data, encoding="utf-8")
        os.replace(tmp, path)


__all__ = ["ConfigurationStore"]
