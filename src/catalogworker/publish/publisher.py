"""
Atomic artifact publishing.

Artifacts are written to a private staging directory first. Promotion copies
the staged file next to its public path under a ``.part`` name and renames
it over the public path, so readers only ever see a complete file. The
staging copy is removed afterwards.

Layout:
    {staging_dir}/{owner}/{name}
    {public_dir}/{owner}/{name}
"""

from __future__ import annotations

import asyncio
import logging
import os
import shutil
import time
from datetime import timedelta
from pathlib import Path
from typing import Dict, Iterable, List, Optional

from ..errors import PublishError

logger = logging.getLogger(__name__)

PART_SUFFIX = ".part"


class Publisher:
    """Stages and promotes artifacts for owners."""

    def __init__(self, staging_dir: str | Path, public_dir: str | Path):
        self.staging_dir = Path(staging_dir)
        self.public_dir = Path(public_dir)

    def staging_path(self, owner: str, name: str) -> Path:
        return self.staging_dir / owner / name

    def public_path(self, owner: str, name: str) -> Path:
        return self.public_dir / owner / name

    # =========================================================================
    # Write path
    # =========================================================================

    async def stage(self, owner: str, name: str, data: bytes) -> Path:
        path = self.staging_path(owner, name)
        try:
            await asyncio.to_thread(_write_file, path, data)
        except OSError as e:
            raise PublishError(f"Unable to stage {name}: {e}") from e
        return path

    async def promote(self, owner: str, name: str) -> Path:
        staged = self.staging_path(owner, name)
        target = self.public_path(owner, name)
        try:
            await asyncio.to_thread(_promote_file, staged, target)
        except OSError as e:
            raise PublishError(f"Unable to publish {name}: {e}") from e
        logger.info(f"Published {target}")
        return target

    async def publish(self, owner: str, artifacts: Dict[str, bytes]) -> List[Path]:
        """Stage every artifact, then promote them one by one."""
        for name, data in artifacts.items():
            await self.stage(owner, name, data)
        return [await self.promote(owner, name) for name in artifacts]

    # =========================================================================
    # Freshness / housekeeping
    # =========================================================================

    def age(self, owner: str, names: Iterable[str]) -> Optional[timedelta]:
        """Age of the oldest published artifact, None if any is missing."""
        oldest = None
        now = time.time()
        for name in names:
            try:
                mtime = self.public_path(owner, name).stat().st_mtime
            except FileNotFoundError:
                return None
            age = timedelta(seconds=max(now - mtime, 0.0))
            if oldest is None or age > oldest:
                oldest = age
        return oldest

    async def cleanup(self, owner: str, keep: Iterable[str]) -> List[str]:
        """Delete published files of ``owner`` not listed in ``keep``."""
        return await asyncio.to_thread(self._cleanup, owner, set(keep))

    def _cleanup(self, owner: str, keep: set) -> List[str]:
        directory = self.public_dir / owner
        if not directory.is_dir():
            return []
        removed = []
        for path in directory.iterdir():
            if not path.is_file() or path.name in keep:
                continue
            # An in-flight promotion of a kept artifact.
            if path.name.endswith(PART_SUFFIX) and path.name[: -len(PART_SUFFIX)] in keep:
                continue
            try:
                path.unlink()
                removed.append(path.name)
            except OSError as e:
                logger.warning(f"Unable to remove stale artifact {path}: {e}")
        if removed:
            logger.info(f"Removed stale artifacts for {owner}: {', '.join(sorted(removed))}")
        return removed


def _write_file(path: Path, data: bytes) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(data)


def _promote_file(staged: Path, target: Path) -> None:
    target.parent.mkdir(parents=True, exist_ok=True)
    part = target.with_name(target.name + PART_SUFFIX)
    shutil.copyfile(staged, part)
    os.replace(part, target)
    staged.unlink()


__all__ = ["PART_SUFFIX", "Publisher"]
