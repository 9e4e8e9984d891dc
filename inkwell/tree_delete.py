"""
Recursive folder deletion.

Deleting a folder removes every descendant folder and every document and
character inside any of them. Two phases:

1. Closure: breadth-first walk from the target over child folders, in
   discovery order. A visited set keeps a corrupted (cyclic) parent chain
   from looping forever.
2. Removal: inside one catalog transaction, delete the documents and then
   the characters of each folder in discovery order, then the folder rows in
   reverse discovery order so a folder never disappears while a child row
   still points at it. Once the transaction commits, the mirror files and
   asset directories of the removed entities are cleaned up best-effort.

If any catalog step fails the transaction is rolled back and nothing is
removed. Mirror cleanup cannot fail the operation: a leftover file is
harmless and is reported by reconciliation.
"""

import logging
from collections import deque
from dataclasses import dataclass, field
from typing import Callable

from .catalog import Catalog
from .errors import InkwellError, NotFoundError
from .mirror import Mirror

logger = logging.getLogger(__name__)


@dataclass
class DeletionReport:
    """What a tree deletion removed."""
    folder_ids: list[str] = field(default_factory=list)
    document_ids: list[str] = field(default_factory=list)
    character_ids: list[str] = field(default_factory=list)
    cleanup_failures: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "folders": self.folder_ids,
            "documents": self.document_ids,
            "characters": self.character_ids,
            "cleanup_failures": self.cleanup_failures,
        }


def folder_closure(root_id: str, child_ids: Callable[[str], list[str]]) -> list[str]:
    """
    All folder ids reachable from ``root_id``, root first, in BFS order.

    Args:
        root_id: Folder to start from
        child_ids: Returns the direct child folder ids of a folder

    Returns:
        Folder ids in discovery order, each exactly once
    """
    order = [root_id]
    seen = {root_id}
    queue = deque([root_id])
    while queue:
        current = queue.popleft()
        for child in child_ids(current):
            if child in seen:
                logger.warning("Folder %s reached twice under %s; parent chain is cyclic", child, root_id)
                continue
            seen.add(child)
            order.append(child)
            queue.append(child)
    return order


def delete_tree(catalog: Catalog, mirror: Mirror, folder_id: str) -> DeletionReport:
    """
    Delete a folder and everything under it.

    Raises:
        NotFoundError: If the folder does not exist, or a row vanished mid-run
        CatalogError: If a catalog statement fails (nothing is removed)
    """
    report = DeletionReport()

    with catalog.transaction():
        if catalog.get_folder(folder_id) is None:
            raise NotFoundError(f"Folder not found: {folder_id}")

        closure = folder_closure(folder_id, catalog.child_folder_ids)

        for fid in closure:
            for doc_id in catalog.document_ids_in_folder(fid):
                if not catalog.delete_document(doc_id):
                    raise NotFoundError(f"Document not found: {doc_id}")
                report.document_ids.append(doc_id)
            for char_id in catalog.character_ids_in_folder(fid):
                if not catalog.delete_character(char_id):
                    raise NotFoundError(f"Character not found: {char_id}")
                report.character_ids.append(char_id)

        for fid in reversed(closure):
            if not catalog.delete_folder(fid):
                raise NotFoundError(f"Folder not found: {fid}")
            report.folder_ids.append(fid)

    _remove_mirrored(mirror, report)

    logger.info(
        "Deleted folder %s: %d folders, %d documents, %d characters",
        folder_id, len(report.folder_ids), len(report.document_ids), len(report.character_ids),
    )
    return report


def _remove_mirrored(mirror: Mirror, report: DeletionReport) -> None:
    """Best-effort removal of mirror files and asset directories."""
    for doc_id in report.document_ids:
        try:
            mirror.remove_body(doc_id)
        except InkwellError as e:
            logger.warning("Failed to remove mirror file for %s: %s", doc_id, e)
            report.cleanup_failures.append(doc_id)
    for char_id in report.character_ids:
        try:
            mirror.remove_assets(char_id)
        except InkwellError as e:
            logger.warning("Failed to remove assets for %s: %s", char_id, e)
            report.cleanup_failures.append(char_id)
