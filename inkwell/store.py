"""
Project store: the operations a front end calls.

Each mutating operation writes the catalog first and then projects the
change into the mirror. A per-project lock is held across that whole span,
so two writers in the same process can never interleave their catalog and
mirror steps. Reads do not take the lock.

Every operation returns its value or raises an InkwellError whose message
is fit to show to the user.
"""

import logging
import threading
import weakref
from pathlib import Path
from typing import Any, Mapping, Optional

from .archiver import Archiver
from .catalog import Catalog, phrase_query
from .config import ProjectConfig, load_config
from .errors import (
    BackupError,
    InkwellError,
    MirrorError,
    NotFoundError,
    ValidationError,
)
from .ids import IdFactory, id_factory_for
from .mirror import Mirror
from .project import catalog_path, open_project
from .tree_delete import DeletionReport, delete_tree
from .types import (
    NEW_DOCUMENT_MARKDOWN,
    PROFILE_FIELDS,
    Character,
    Document,
    Folder,
    SearchHit,
    Snapshot,
    Tree,
    encode_attributes,
    validate_id,
    validate_name,
)

logger = logging.getLogger(__name__)


# Entries disappear once no open store holds the lock
_project_locks: "weakref.WeakValueDictionary[Path, threading.RLock]" = weakref.WeakValueDictionary()
_project_locks_guard = threading.Lock()


def project_lock(project_root: Path) -> threading.RLock:
    """The write lock shared by every store open on ``project_root``."""
    key = Path(project_root).resolve()
    with _project_locks_guard:
        lock = _project_locks.get(key)
        if lock is None:
            lock = _project_locks[key] = threading.RLock()
        return lock


def _profile_text(field_name: str, value: Any) -> str:
    """A profile value as stored text. Missing means empty."""
    if value is None:
        return ""
    if isinstance(value, str):
        return value
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return str(value)
    raise ValidationError(f"{field_name} must be a string")


class ProjectStore:
    """
    Catalog, mirror and backups of one project, kept in agreement.

    Example:
        root = create_project(Path("~/writing"), "novel")
        with ProjectStore(root) as store:
            folder = store.create_folder("Chapter 1")
            doc = store.create_document("Scene A", folder.id)
            store.save_document(doc.id, "# Scene A\\nText")
    """

    def __init__(
        self,
        project_root: str | Path,
        *,
        config: Optional[ProjectConfig] = None,
        id_factory: Optional[IdFactory] = None,
    ) -> None:
        """
        Open an existing project.

        Args:
            project_root: Project directory (must contain project.db)
            config: Pre-loaded config (skips reading inkwell.toml)
            id_factory: Id source for new entities (overrides config)
        """
        self._root = open_project(Path(project_root))

        if config is None:
            try:
                config = load_config(self._root)
            except ValueError as e:
                raise ValidationError(str(e)) from e
        self._config = config

        if id_factory is None:
            try:
                id_factory = id_factory_for(config.ids)
            except ValueError as e:
                raise ValidationError(str(e)) from e
        self._new_id = id_factory

        try:
            self._archiver = Archiver(self._root, compression=config.backup_compression)
        except ValueError as e:
            raise ValidationError(str(e)) from e

        self._ops_log_handler = None
        if config.ops_log:
            from .logging_config import configure_ops_log
            self._ops_log_handler = configure_ops_log(self._root)

        self._catalog = Catalog(catalog_path(self._root))
        self._mirror = Mirror(self._root, fsync_directory=config.fsync_directory)
        self._write_lock = project_lock(self._root)

    @property
    def root(self) -> Path:
        return self._root

    @property
    def config(self) -> ProjectConfig:
        return self._config

    def _next_id(self) -> str:
        new_id = self._new_id()
        validate_id(new_id, "generated id")
        return new_id

    def _require_folder(self, folder_id: Optional[str]) -> None:
        if folder_id is None:
            return
        validate_id(folder_id, "folder id")
        if self._catalog.get_folder(folder_id) is None:
            raise NotFoundError(f"Folder not found: {folder_id}")

    # -------------------------------------------------------------------------
    # Tree
    # -------------------------------------------------------------------------

    def list_tree(self) -> Tree:
        """Folders (by name), documents (by creation) and characters (by name)."""
        return Tree(
            folders=self._catalog.list_folders(),
            documents=self._catalog.list_documents(),
            characters=self._catalog.list_characters(),
        )

    def create_folder(self, name: str, parent_id: Optional[str] = None) -> Folder:
        """
        Create a folder, at the root or under an existing folder.

        A folder can only be placed under a folder that already exists, so
        the hierarchy cannot gain a cycle through this call.
        """
        name = validate_name(name, "folder name")
        with self._write_lock:
            self._require_folder(parent_id)
            folder = self._catalog.insert_folder(self._next_id(), name, parent_id)
        logger.info("Created folder %s (%s)", folder.id, name)
        return folder

    def delete_folder(self, folder_id: str) -> DeletionReport:
        """Delete a folder with every folder, document and character under it."""
        validate_id(folder_id, "folder id")
        with self._write_lock:
            return delete_tree(self._catalog, self._mirror, folder_id)

    # -------------------------------------------------------------------------
    # Documents
    # -------------------------------------------------------------------------

    def create_document(self, title: str, folder_id: Optional[str] = None) -> Document:
        """
        Create a document with the default body and mirror it.

        Raises:
            MirrorError: If the mirror file cannot be written. The catalog
                row exists; ``reconcile(fix=True)`` restores the file.
        """
        title = validate_name(title, "document title")
        with self._write_lock:
            self._require_folder(folder_id)
            doc = self._catalog.insert_document(
                self._next_id(), title, folder_id, NEW_DOCUMENT_MARKDOWN,
            )
            self._mirror.project_body(doc.id, NEW_DOCUMENT_MARKDOWN)
        logger.info("Created document %s (%s)", doc.id, title)
        return doc

    def get_document(self, document_id: str) -> Document:
        validate_id(document_id, "document id")
        doc = self._catalog.get_document(document_id)
        if doc is None:
            raise NotFoundError(f"Document not found: {document_id}")
        return doc

    def load_document(self, document_id: str) -> str:
        """Current markdown body of a document."""
        validate_id(document_id, "document id")
        markdown = self._catalog.load_body(document_id)
        if markdown is None:
            raise NotFoundError(f"Document not found: {document_id}")
        return markdown

    def save_document(self, document_id: str, markdown: str) -> None:
        """
        Replace a document body, then its mirror file.

        Raises:
            NotFoundError: If the document does not exist (nothing is written)
            MirrorError: If the mirror write fails. The catalog already holds
                the new body; the old mirror file is left intact.
        """
        validate_id(document_id, "document id")
        if markdown is None:
            raise ValidationError("markdown must not be None")
        with self._write_lock:
            if not self._catalog.update_body(document_id, markdown):
                raise NotFoundError(f"Document not found: {document_id}")
            self._mirror.project_body(document_id, markdown)
        logger.debug("Saved %s (%d chars)", document_id, len(markdown))

    def delete_document(self, document_id: str) -> None:
        """Delete a document, its body and snapshots, and its mirror file."""
        validate_id(document_id, "document id")
        with self._write_lock:
            if not self._catalog.delete_document(document_id):
                raise NotFoundError(f"Document not found: {document_id}")
            try:
                self._mirror.remove_body(document_id)
            except MirrorError as e:
                logger.warning("Failed to remove mirror file for %s: %s", document_id, e)
        logger.info("Deleted document %s", document_id)

    # -------------------------------------------------------------------------
    # Snapshots
    # -------------------------------------------------------------------------

    def create_snapshot(self, document_id: str, note: str = "") -> Snapshot:
        """Save a copy of the document's current body with a note."""
        validate_id(document_id, "document id")
        with self._write_lock:
            snapshot = self._catalog.insert_snapshot(self._next_id(), document_id, note or "")
        if snapshot is None:
            raise NotFoundError(f"Document not found: {document_id}")
        logger.info("Snapshot %s of %s", snapshot.id, document_id)
        return snapshot

    def list_snapshots(self, document_id: str) -> list[Snapshot]:
        """Snapshots of a document, oldest first."""
        self.get_document(document_id)
        return self._catalog.list_snapshots(document_id)

    def load_snapshot(self, snapshot_id: str) -> Snapshot:
        validate_id(snapshot_id, "snapshot id")
        snapshot = self._catalog.get_snapshot(snapshot_id)
        if snapshot is None:
            raise NotFoundError(f"Snapshot not found: {snapshot_id}")
        return snapshot

    # -------------------------------------------------------------------------
    # Characters
    # -------------------------------------------------------------------------

    def create_character(self, name: str, folder_id: Optional[str] = None) -> Character:
        name = validate_name(name, "character name")
        with self._write_lock:
            self._require_folder(folder_id)
            character = self._catalog.insert_character(self._next_id(), name, folder_id)
        logger.info("Created character %s (%s)", character.id, name)
        return character

    def load_character(self, character_id: str) -> Character:
        validate_id(character_id, "character id")
        character = self._catalog.get_character(character_id)
        if character is None:
            raise NotFoundError(f"Character not found: {character_id}")
        return character

    def save_character(self, character_id: str, data: Mapping[str, Any]) -> Character:
        """
        Overwrite a character's profile.

        Profile fields missing from ``data`` are cleared, as is a missing
        ``image``; missing ``attributes`` become an empty list. A ``name``
        key renames the character.
        """
        validate_id(character_id, "character id")
        if data is None:
            data = {}
        fields = {f: _profile_text(f, data.get(f)) for f in PROFILE_FIELDS}
        attributes = encode_attributes(data.get("attributes"))
        image = _profile_text("image", data.get("image"))
        name = None
        if data.get("name") is not None:
            name = validate_name(_profile_text("name", data["name"]), "character name")

        with self._write_lock:
            found = self._catalog.update_character(
                character_id,
                attributes=attributes,
                image_path=image,
                name=name,
                **fields,
            )
        if not found:
            raise NotFoundError(f"Character not found: {character_id}")
        logger.debug("Saved character %s", character_id)
        return self.load_character(character_id)

    def delete_character(self, character_id: str) -> None:
        """Delete a character and its asset directory."""
        validate_id(character_id, "character id")
        with self._write_lock:
            if not self._catalog.delete_character(character_id):
                raise NotFoundError(f"Character not found: {character_id}")
            try:
                self._mirror.remove_assets(character_id)
            except MirrorError as e:
                logger.warning("Failed to remove assets for %s: %s", character_id, e)
        logger.info("Deleted character %s", character_id)

    def import_character_image(self, character_id: str, source_path: str | Path) -> Path:
        """
        Copy an image into the character's asset directory.

        Returns:
            Path of the copied file (the profile is not changed)
        """
        validate_id(character_id, "character id")
        if source_path is None or not str(source_path).strip():
            raise ValidationError("source path is empty")
        with self._write_lock:
            if self._catalog.get_character(character_id) is None:
                raise NotFoundError(f"Character not found: {character_id}")
            return self._mirror.import_asset(character_id, Path(source_path))

    # -------------------------------------------------------------------------
    # Search and backups
    # -------------------------------------------------------------------------

    def search(self, query: str) -> list[SearchHit]:
        """
        Full-text search over document bodies, best matches first.

        The query is plain text: a document matches when it contains every
        word of it. Punctuation never makes a query invalid.
        """
        if query is None or not query.strip():
            raise ValidationError("search query must not be empty")
        match = phrase_query(query)
        if not match:
            return []
        return self._catalog.search(
            match,
            limit=self._config.search_limit,
            snippet_tokens=self._config.snippet_tokens,
        )

    def backup(self) -> Path:
        """Write a backup archive of the catalog and all mirror files."""
        with self._write_lock:
            try:
                return self._archiver.create(self._catalog, self._mirror)
            except OSError as e:
                raise BackupError(f"Backup failed: {e}") from e

    def list_backups(self) -> list[Path]:
        """Backup archives, newest first."""
        return self._archiver.list_backups()

    # -------------------------------------------------------------------------
    # Consistency
    # -------------------------------------------------------------------------

    def reconcile(self, fix: bool = False) -> dict:
        """
        Check and optionally repair agreement between catalog and mirror.

        Detects:
        - Documents with no mirror file
        - Mirror files whose content differs from the catalog body or
          cannot be read
        - Mirror files with no document in the catalog

        Args:
            fix: If True, rewrite missing/stale mirror files from the
                catalog and remove orphaned ones

        Returns:
            Dict with counts and id lists
        """
        with self._write_lock:
            missing: list[str] = []
            stale: list[str] = []
            doc_ids = set()
            for doc_id, markdown in self._catalog.iter_bodies():
                doc_ids.add(doc_id)
                try:
                    current = self._mirror.read_body(doc_id)
                except MirrorError as e:
                    # Unreadable or not UTF-8: rewriting from the catalog repairs it
                    logger.warning("Unreadable mirror file for %s: %s", doc_id, e)
                    stale.append(doc_id)
                    continue
                if current is None:
                    missing.append(doc_id)
                elif current != markdown:
                    stale.append(doc_id)
            orphaned = [i for i in self._mirror.list_body_ids() if i not in doc_ids]

            fixed = 0
            removed = 0
            if fix:
                for doc_id in missing + stale:
                    try:
                        self._mirror.project_body(doc_id, self._catalog.load_body(doc_id) or "")
                        fixed += 1
                        logger.info("Reconciled: %s", doc_id)
                    except InkwellError as e:
                        logger.warning("Failed to reconcile %s: %s", doc_id, e)
                for orphan_id in orphaned:
                    try:
                        if self._mirror.remove_body(orphan_id):
                            removed += 1
                            logger.info("Removed orphan: %s", orphan_id)
                    except InkwellError as e:
                        logger.warning("Failed to remove orphan %s: %s", orphan_id, e)

        return {
            "missing_from_mirror": len(missing),
            "stale_in_mirror": len(stale),
            "orphaned_in_mirror": len(orphaned),
            "fixed": fixed,
            "removed": removed,
            "missing_ids": missing,
            "stale_ids": stale,
            "orphaned_ids": orphaned,
        }

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    def close(self) -> None:
        """Close the catalog and detach the ops log handler."""
        if getattr(self, "_catalog", None) is not None:
            self._catalog.close()
            self._catalog = None

        if getattr(self, "_ops_log_handler", None) is not None:
            logging.getLogger("inkwell").removeHandler(self._ops_log_handler)
            self._ops_log_handler.close()
            self._ops_log_handler = None

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False

    def __del__(self):
        try:
            self.close()
        except Exception:
            pass  # Suppress errors during garbage collection
