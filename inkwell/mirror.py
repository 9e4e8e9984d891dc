"""
Filesystem mirror of a project.

Every document body is projected to ``md/<document id>.md`` and every
character may own ``assets/characters/<character id>/``. Writes go through
the atomic writer; removals are best-effort and tolerate missing targets,
since the mirror can trail the catalog after an earlier failure.
"""

import logging
import shutil
from pathlib import Path
from typing import Optional

from .atomic import atomic_write
from .errors import MirrorError, ValidationError
from .types import validate_id

logger = logging.getLogger(__name__)

MD_DIRNAME = "md"
MD_SUFFIX = ".md"
ASSETS_DIRNAME = "assets"
CHARACTER_ASSETS_DIRNAME = "characters"


class Mirror:
    """Markdown files and character asset directories under a project root."""

    def __init__(self, project_root: Path, *, fsync_directory: bool = True):
        self._root = Path(project_root)
        self._fsync_directory = fsync_directory

    @property
    def md_dir(self) -> Path:
        return self._root / MD_DIRNAME

    @property
    def assets_dir(self) -> Path:
        return self._root / ASSETS_DIRNAME / CHARACTER_ASSETS_DIRNAME

    def body_path(self, document_id: str) -> Path:
        validate_id(document_id, "document id")
        return self.md_dir / f"{document_id}{MD_SUFFIX}"

    def asset_dir(self, character_id: str) -> Path:
        validate_id(character_id, "character id")
        return self.assets_dir / character_id

    # -------------------------------------------------------------------------
    # Document bodies
    # -------------------------------------------------------------------------

    def project_body(self, document_id: str, markdown: str) -> Path:
        """
        Write a document body to its mirror file.

        Raises:
            MirrorError: If the write fails. The previous file is untouched.
        """
        path = self.body_path(document_id)
        try:
            atomic_write(path, markdown.encode("utf-8"), fsync_directory=self._fsync_directory)
        except OSError as e:
            raise MirrorError(f"Failed to write {path}: {e}") from e
        logger.debug("Mirrored %s (%d chars)", document_id, len(markdown))
        return path

    def remove_body(self, document_id: str) -> bool:
        """
        Delete a mirror file. A missing file is not an error.

        Returns:
            True if a file was removed

        Raises:
            MirrorError: If the file exists but cannot be removed
        """
        path = self.body_path(document_id)
        try:
            path.unlink()
        except FileNotFoundError:
            return False
        except OSError as e:
            raise MirrorError(f"Failed to remove {path}: {e}") from e
        return True

    def read_body(self, document_id: str) -> Optional[str]:
        """Current mirror content, or None if there is no file."""
        path = self.body_path(document_id)
        try:
            return path.read_bytes().decode("utf-8")
        except FileNotFoundError:
            return None
        except (OSError, UnicodeDecodeError) as e:
            raise MirrorError(f"Failed to read {path}: {e}") from e

    def list_body_ids(self) -> list[str]:
        """Ids of all documents that have a mirror file."""
        if not self.md_dir.is_dir():
            return []
        return sorted(
            p.stem for p in self.md_dir.iterdir()
            if p.is_file() and p.suffix == MD_SUFFIX and not p.name.startswith(".")
        )

    # -------------------------------------------------------------------------
    # Character assets
    # -------------------------------------------------------------------------

    def import_asset(self, character_id: str, source: Path) -> Path:
        """
        Copy a file into a character's asset directory.

        An existing file with the same name is overwritten.

        Returns:
            Destination path
        """
        source = Path(source)
        if not source.is_file():
            raise ValidationError(f"source file does not exist: {source}")
        dest_dir = self.asset_dir(character_id)
        dest = dest_dir / source.name
        try:
            dest_dir.mkdir(parents=True, exist_ok=True)
            shutil.copyfile(source, dest)
        except OSError as e:
            raise MirrorError(f"Failed to import {source}: {e}") from e
        logger.debug("Imported %s for character %s", source.name, character_id)
        return dest

    def remove_assets(self, character_id: str) -> bool:
        """
        Remove a character's asset directory recursively. Absence is fine.

        Returns:
            True if a directory was removed
        """
        path = self.asset_dir(character_id)
        if not path.exists():
            return False
        try:
            shutil.rmtree(path)
        except FileNotFoundError:
            return False
        except OSError as e:
            raise MirrorError(f"Failed to remove {path}: {e}") from e
        return True
