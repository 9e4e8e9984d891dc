"""
Project directory bootstrap.

Layout of a project root:

    project.db
    md/<document-id>.md
    assets/characters/<character-id>/<original-filename>
    backups/backup_<YYYYMMDD_HHMMSS>.zip
"""

import logging
from pathlib import Path

from .archiver import BACKUPS_DIRNAME
from .catalog import Catalog
from .errors import MirrorError, NotFoundError, ValidationError
from .mirror import ASSETS_DIRNAME, CHARACTER_ASSETS_DIRNAME, MD_DIRNAME

logger = logging.getLogger(__name__)

CATALOG_FILENAME = "project.db"


def catalog_path(project_root: Path) -> Path:
    return Path(project_root) / CATALOG_FILENAME


def is_project(path: Path) -> bool:
    """True if ``path`` looks like a project root."""
    return catalog_path(path).is_file()


def create_project(directory: Path, name: str) -> Path:
    """
    Create ``<directory>/<name>`` with its folders and an initialized catalog.

    Creating over an existing project is harmless: the schema is only
    created where missing.

    Returns:
        The project root
    """
    if not name or not name.strip():
        raise ValidationError("project name must not be empty")
    name = name.strip()
    if Path(name).name != name or name in (".", ".."):
        raise ValidationError(f"project name must be a plain directory name: {name!r}")

    root = Path(directory).expanduser() / name
    try:
        root.mkdir(parents=True, exist_ok=True)
        (root / MD_DIRNAME).mkdir(exist_ok=True)
        (root / BACKUPS_DIRNAME).mkdir(exist_ok=True)
        (root / ASSETS_DIRNAME / CHARACTER_ASSETS_DIRNAME).mkdir(parents=True, exist_ok=True)
    except OSError as e:
        raise MirrorError(f"Failed to create project directory {root}: {e}") from e

    with Catalog(catalog_path(root)):
        pass

    logger.info("Created project %s", root)
    return root.resolve()


def open_project(directory: Path) -> Path:
    """
    Resolve an existing project root.

    Raises:
        NotFoundError: If there is no catalog in ``directory``
    """
    root = Path(directory).expanduser()
    if not is_project(root):
        raise NotFoundError(f"Not a project (no {CATALOG_FILENAME}): {root}")
    return root.resolve()
