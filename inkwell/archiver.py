"""
Backup archives.

A backup is ``backups/backup_<YYYYMMDD_HHMMSS>.zip`` holding the catalog
database as ``project.db`` followed by every file under ``md/``, named by
its path relative to the project root. The archive is built under a
temporary name and renamed into place once complete, so a failed backup
never leaves a truncated artifact under a backup name. A finished archive
is never overwritten: a second backup within the same second gets a
numeric suffix.
"""

import logging
import os
import zipfile
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

from .catalog import Catalog
from .mirror import Mirror

logger = logging.getLogger(__name__)

BACKUPS_DIRNAME = "backups"
BACKUP_PREFIX = "backup_"
BACKUP_SUFFIX = ".zip"
BACKUP_TIMESTAMP_FORMAT = "%Y%m%d_%H%M%S"
CATALOG_ENTRY = "project.db"

COMPRESSION = {
    "deflated": zipfile.ZIP_DEFLATED,
    "stored": zipfile.ZIP_STORED,
}


def _backup_order(path: Path) -> tuple[str, int]:
    """Sort key: timestamp, then same-second suffix number."""
    stem = path.name[len(BACKUP_PREFIX):-len(BACKUP_SUFFIX)]
    stamp, _, suffix = stem.partition("_")
    time_part, _, counter = suffix.partition("_")
    return f"{stamp}_{time_part}", int(counter) if counter.isdigit() else 0


class Archiver:
    """Writes and lists backup archives for one project."""

    def __init__(self, project_root: Path, *, compression: str = "deflated"):
        if compression not in COMPRESSION:
            raise ValueError(
                f"Unknown backup compression {compression!r} (expected one of {', '.join(COMPRESSION)})"
            )
        self._root = Path(project_root)
        self._compression = COMPRESSION[compression]

    @property
    def backups_dir(self) -> Path:
        return self._root / BACKUPS_DIRNAME

    def backup_path(self, when: Optional[datetime] = None) -> Path:
        when = when or datetime.now(timezone.utc)
        return self.backups_dir / f"{BACKUP_PREFIX}{when.strftime(BACKUP_TIMESTAMP_FORMAT)}{BACKUP_SUFFIX}"

    def create(self, catalog: Catalog, mirror: Mirror, *, when: Optional[datetime] = None) -> Path:
        """
        Write a backup archive.

        The caller is expected to hold the project's write lock so the
        catalog image and the mirror files describe the same state.

        Returns:
            Path of the finished archive

        Raises:
            CatalogError: If the catalog cannot be read
            OSError: If the archive cannot be written
        """
        self.backups_dir.mkdir(parents=True, exist_ok=True)
        target = self._unused_path(when)
        partial = target.with_name(f".{target.name}.partial")

        db_bytes = catalog.snapshot_bytes()
        files = 0
        try:
            with zipfile.ZipFile(partial, "w", compression=self._compression) as zf:
                zf.writestr(CATALOG_ENTRY, db_bytes)
                for path in self._mirror_files(mirror):
                    zf.write(path, arcname=path.relative_to(self._root).as_posix())
                    files += 1
            os.replace(partial, target)
        except BaseException:
            try:
                os.unlink(partial)
            except OSError:
                pass
            raise

        logger.info("Backup written: %s (%d mirror files)", target.name, files)
        return target

    def _unused_path(self, when: Optional[datetime]) -> Path:
        """
        Backup path for ``when`` that does not exist yet.

        A second backup in the same second gets a ``_1``, ``_2``, ... suffix;
        finished archives are never overwritten.
        """
        target = self.backup_path(when)
        stem = target.name[:-len(BACKUP_SUFFIX)]
        n = 0
        while target.exists():
            n += 1
            target = target.with_name(f"{stem}_{n}{BACKUP_SUFFIX}")
        return target

    def _mirror_files(self, mirror: Mirror) -> list[Path]:
        """Every regular file under the markdown directory, sorted."""
        md_dir = mirror.md_dir
        if not md_dir.is_dir():
            return []
        return sorted(p for p in md_dir.rglob("*") if p.is_file() and not p.is_symlink())

    def list_backups(self) -> list[Path]:
        """Finished backup archives, newest first."""
        if not self.backups_dir.is_dir():
            return []
        return sorted(
            (p for p in self.backups_dir.glob(f"{BACKUP_PREFIX}*{BACKUP_SUFFIX}") if p.is_file()),
            key=_backup_order,
            reverse=True,
        )
