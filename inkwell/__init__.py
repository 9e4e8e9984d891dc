"""
inkwell - a writing project store.

Folders, documents and characters live in a SQLite catalog; document
bodies are mirrored to markdown files and the whole project can be
archived into timestamped backups.

Quick start:
    from inkwell import ProjectStore, create_project

    root = create_project("~/writing", "novel")
    with ProjectStore(root) as store:
        doc = store.create_document("Opening")
        store.save_document(doc.id, "# Opening\\nIt was a dark and stormy night.")
        hits = store.search("stormy")
"""

from .errors import (
    BackupError,
    CatalogError,
    InkwellError,
    MirrorError,
    NotFoundError,
    ValidationError,
)
from .project import create_project, open_project
from .store import ProjectStore
from .tree_delete import DeletionReport
from .types import Character, Document, Folder, SearchHit, Snapshot, Tree

__version__ = "0.1.0"
__all__ = [
    "ProjectStore",
    "create_project",
    "open_project",
    "Folder",
    "Document",
    "Character",
    "Snapshot",
    "SearchHit",
    "Tree",
    "DeletionReport",
    "InkwellError",
    "CatalogError",
    "MirrorError",
    "BackupError",
    "NotFoundError",
    "ValidationError",
]
