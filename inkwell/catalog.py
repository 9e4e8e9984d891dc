"""
Project catalog using SQLite.

The catalog is the source of truth for:
- Folder hierarchy
- Document identity, titles and bodies
- Snapshots (append-only body history)
- Character records
- The full-text index over bodies (FTS5, maintained by triggers)

Document bodies are mirrored to markdown files by the Mirror; the catalog
never touches the filesystem beyond its own database file.

Body and Snapshot rows cascade from Document by foreign key. Folder rows do
not cascade to their content: removing a subtree is done by the tree
deletion engine, which is the only mechanism for it.
"""

import logging
import re
import sqlite3
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, Optional

from .errors import CatalogError
from .types import (
    PROJECT_ID,
    Character,
    Document,
    Folder,
    SearchHit,
    Snapshot,
    decode_attributes,
    utc_now,
)

logger = logging.getLogger(__name__)

SCHEMA_VERSION = 1

# Highlight markers and ellipsis used in search snippets
SNIPPET_OPEN = "<b>"
SNIPPET_CLOSE = "</b>"
SNIPPET_ELLIPSIS = "…"

_SCHEMA = f"""
CREATE TABLE IF NOT EXISTS Document(
    id TEXT PRIMARY KEY,
    project_id TEXT NOT NULL DEFAULT '{PROJECT_ID}',
    folder_id TEXT,
    title TEXT NOT NULL,
    created_at TEXT DEFAULT CURRENT_TIMESTAMP,
    updated_at TEXT DEFAULT CURRENT_TIMESTAMP
);

CREATE TABLE IF NOT EXISTS Folder(
    id TEXT PRIMARY KEY,
    project_id TEXT NOT NULL DEFAULT '{PROJECT_ID}',
    parent_id TEXT,
    name TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS Body(
    document_id TEXT PRIMARY KEY REFERENCES Document(id) ON DELETE CASCADE,
    markdown TEXT NOT NULL,
    updated_at TEXT DEFAULT CURRENT_TIMESTAMP
);

CREATE VIRTUAL TABLE IF NOT EXISTS body_fts
USING fts5(markdown, content='Body', content_rowid='rowid');

CREATE TRIGGER IF NOT EXISTS body_ai AFTER INSERT ON Body BEGIN
    INSERT INTO body_fts(rowid, markdown) VALUES (new.rowid, new.markdown);
END;
CREATE TRIGGER IF NOT EXISTS body_ad AFTER DELETE ON Body BEGIN
    INSERT INTO body_fts(body_fts, rowid, markdown) VALUES('delete', old.rowid, old.markdown);
END;
CREATE TRIGGER IF NOT EXISTS body_au AFTER UPDATE ON Body BEGIN
    INSERT INTO body_fts(body_fts, rowid, markdown) VALUES('delete', old.rowid, old.markdown);
    INSERT INTO body_fts(rowid, markdown) VALUES (new.rowid, new.markdown);
END;

CREATE TABLE IF NOT EXISTS Snapshot(
    id TEXT PRIMARY KEY,
    document_id TEXT NOT NULL REFERENCES Document(id) ON DELETE CASCADE,
    created_at TEXT DEFAULT CURRENT_TIMESTAMP,
    note TEXT,
    markdown TEXT
);

CREATE TABLE IF NOT EXISTS "Character"(
    id TEXT PRIMARY KEY,
    project_id TEXT NOT NULL,
    folder_id TEXT,
    name TEXT NOT NULL,
    age TEXT,
    nationality TEXT,
    sexuality TEXT,
    height TEXT,
    attributes TEXT,
    image_path TEXT,
    created_at DATETIME DEFAULT CURRENT_TIMESTAMP,
    updated_at DATETIME DEFAULT CURRENT_TIMESTAMP
);

CREATE INDEX IF NOT EXISTS idx_folder_parent ON Folder(parent_id);
CREATE INDEX IF NOT EXISTS idx_document_folder ON Document(folder_id);
CREATE INDEX IF NOT EXISTS idx_character_folder ON "Character"(folder_id);
CREATE INDEX IF NOT EXISTS idx_snapshot_document ON Snapshot(document_id);
"""


def phrase_query(text: str) -> str:
    """
    Turn free text into an FTS5 query matching all of its words.

    Each whitespace-separated token becomes a quoted FTS5 string, so
    punctuation and operator words (AND, OR, NOT, NEAR) are plain text.
    Tokens with no word characters are dropped.

    Returns:
        The query, or "" if nothing searchable is left
    """
    terms = []
    for token in text.split():
        if not re.search(r"\w", token):
            continue
        terms.append('"' + token.replace('"', '""') + '"')
    return " ".join(terms)


@contextmanager
def _storage_errors(action: str) -> Iterator[None]:
    """Translate sqlite3 failures into CatalogError."""
    try:
        yield
    except sqlite3.Error as e:
        raise CatalogError(f"Failed to {action}: {e}") from e


def _row_to_document(row: sqlite3.Row) -> Document:
    return Document(
        id=row["id"],
        title=row["title"],
        folder_id=row["folder_id"],
        created_at=row["created_at"] or "",
        updated_at=row["updated_at"] or "",
    )


def _row_to_character(row: sqlite3.Row) -> Character:
    return Character(
        id=row["id"],
        name=row["name"],
        folder_id=row["folder_id"],
        age=row["age"] or "",
        nationality=row["nationality"] or "",
        sexuality=row["sexuality"] or "",
        height=row["height"] or "",
        attributes=decode_attributes(row["attributes"]),
        image=row["image_path"] or "",
        created_at=row["created_at"] or "",
        updated_at=row["updated_at"] or "",
    )


def _row_to_snapshot(row: sqlite3.Row) -> Snapshot:
    return Snapshot(
        id=row["id"],
        document_id=row["document_id"],
        note=row["note"] or "",
        markdown=row["markdown"] or "",
        created_at=row["created_at"] or "",
    )


class Catalog:
    """
    SQLite-backed catalog for one project.

    One connection per instance, shared across threads behind a lock.
    Single statements autocommit; multi-row changes run inside
    ``transaction()``.
    """

    def __init__(self, db_path: Path):
        """
        Args:
            db_path: Path to the SQLite database file
        """
        self._db_path = Path(db_path)
        self._conn: Optional[sqlite3.Connection] = None
        self._lock = threading.RLock()
        self._init_db()

    @property
    def path(self) -> Path:
        return self._db_path

    def _init_db(self) -> None:
        """Open the connection and make sure the schema exists."""
        with _storage_errors(f"open catalog {self._db_path}"):
            self._db_path.parent.mkdir(parents=True, exist_ok=True)
            # isolation_level=None gives us manual transaction control
            self._conn = sqlite3.connect(
                str(self._db_path), check_same_thread=False,
                isolation_level=None,
            )
            self._conn.row_factory = sqlite3.Row
            self._conn.execute("PRAGMA journal_mode=WAL")
            self._conn.execute("PRAGMA busy_timeout=5000")
            # Per-connection: Body/Snapshot cascades depend on it
            self._conn.execute("PRAGMA foreign_keys=ON")
            self.ensure_schema()

    def ensure_schema(self) -> None:
        """Create tables, FTS index and triggers if missing."""
        version = self._conn.execute("PRAGMA user_version").fetchone()[0]
        if version > SCHEMA_VERSION:
            raise CatalogError(
                f"Catalog schema version {version} is newer than supported ({SCHEMA_VERSION})"
            )
        self._conn.executescript(_SCHEMA)
        if version < SCHEMA_VERSION:
            self._conn.execute(f"PRAGMA user_version={SCHEMA_VERSION}")
            logger.debug("Initialized catalog schema v%d at %s", SCHEMA_VERSION, self._db_path)

    @contextmanager
    def transaction(self) -> Iterator[None]:
        """
        Run a block of catalog calls as one write transaction.

        BEGIN IMMEDIATE takes the write lock up front. Nested use joins the
        outer transaction. Any exception rolls everything back.
        """
        with self._lock:
            if self._conn.in_transaction:
                yield
                return
            with _storage_errors("begin transaction"):
                self._conn.execute("BEGIN IMMEDIATE")
            try:
                yield
                with _storage_errors("commit transaction"):
                    self._conn.execute("COMMIT")
            except BaseException:
                if self._conn.in_transaction:
                    self._conn.execute("ROLLBACK")
                raise

    def _execute(self, action: str, sql: str, params: tuple = ()) -> sqlite3.Cursor:
        with self._lock, _storage_errors(action):
            return self._conn.execute(sql, params)

    def _fetchall(self, action: str, sql: str, params: tuple = ()) -> list[sqlite3.Row]:
        with self._lock, _storage_errors(action):
            return self._conn.execute(sql, params).fetchall()

    def _fetchone(self, action: str, sql: str, params: tuple = ()) -> Optional[sqlite3.Row]:
        with self._lock, _storage_errors(action):
            return self._conn.execute(sql, params).fetchone()

    # -------------------------------------------------------------------------
    # Folders
    # -------------------------------------------------------------------------

    def insert_folder(self, id: str, name: str, parent_id: Optional[str] = None) -> Folder:
        """Insert a folder row. The caller checks that the parent exists."""
        self._execute("create folder", """
            INSERT INTO Folder(id, project_id, parent_id, name)
            VALUES (?, ?, ?, ?)
        """, (id, PROJECT_ID, parent_id, name))
        return Folder(id=id, name=name, parent_id=parent_id)

    def get_folder(self, id: str) -> Optional[Folder]:
        row = self._fetchone("load folder", """
            SELECT id, name, parent_id FROM Folder WHERE id = ?
        """, (id,))
        if row is None:
            return None
        return Folder(id=row["id"], name=row["name"], parent_id=row["parent_id"])

    def list_folders(self) -> list[Folder]:
        """All folders, ordered by name."""
        rows = self._fetchall("list folders", """
            SELECT id, name, parent_id FROM Folder ORDER BY name ASC, id ASC
        """)
        return [Folder(id=r["id"], name=r["name"], parent_id=r["parent_id"]) for r in rows]

    def child_folder_ids(self, id: str) -> list[str]:
        """Ids of folders whose parent is ``id``."""
        rows = self._fetchall("list child folders", """
            SELECT id FROM Folder WHERE parent_id = ? ORDER BY name ASC, id ASC
        """, (id,))
        return [r["id"] for r in rows]

    def delete_folder(self, id: str) -> bool:
        """
        Delete a single folder row. Content and children are not touched.

        Returns:
            True if the folder existed and was deleted
        """
        cursor = self._execute("delete folder", "DELETE FROM Folder WHERE id = ?", (id,))
        return cursor.rowcount > 0

    # -------------------------------------------------------------------------
    # Documents and bodies
    # -------------------------------------------------------------------------

    def insert_document(
        self,
        id: str,
        title: str,
        folder_id: Optional[str],
        markdown: str,
    ) -> Document:
        """
        Insert a document together with its body.

        Both rows are written in one transaction.
        """
        now = utc_now()
        with self.transaction():
            self._execute("create document", """
                INSERT INTO Document(id, project_id, folder_id, title, created_at, updated_at)
                VALUES (?, ?, ?, ?, ?, ?)
            """, (id, PROJECT_ID, folder_id, title, now, now))
            self._execute("create document body", """
                INSERT INTO Body(document_id, markdown, updated_at) VALUES (?, ?, ?)
            """, (id, markdown, now))
        return Document(id=id, title=title, folder_id=folder_id, created_at=now, updated_at=now)

    def get_document(self, id: str) -> Optional[Document]:
        row = self._fetchone("load document", """
            SELECT id, title, folder_id, created_at, updated_at
            FROM Document WHERE id = ?
        """, (id,))
        return _row_to_document(row) if row else None

    def list_documents(self) -> list[Document]:
        """All documents in creation order."""
        rows = self._fetchall("list documents", """
            SELECT id, title, folder_id, created_at, updated_at
            FROM Document
            ORDER BY created_at ASC, rowid ASC
        """)
        return [_row_to_document(r) for r in rows]

    def document_ids_in_folder(self, folder_id: str) -> list[str]:
        rows = self._fetchall("list folder documents", """
            SELECT id FROM Document WHERE folder_id = ? ORDER BY created_at ASC, rowid ASC
        """, (folder_id,))
        return [r["id"] for r in rows]

    def delete_document(self, id: str) -> bool:
        """
        Delete a document. Its body and snapshots go with it.

        Returns:
            True if the document existed and was deleted
        """
        cursor = self._execute("delete document", "DELETE FROM Document WHERE id = ?", (id,))
        return cursor.rowcount > 0

    def load_body(self, id: str) -> Optional[str]:
        """Current markdown of a document, or None if it has no body."""
        row = self._fetchone("load document body", """
            SELECT markdown FROM Body WHERE document_id = ?
        """, (id,))
        return row["markdown"] if row else None

    def update_body(self, id: str, markdown: str) -> bool:
        """
        Replace a document body and bump its timestamps.

        The FTS index is updated by trigger inside the same transaction.

        Returns:
            True if the document was found and updated
        """
        now = utc_now()
        with self.transaction():
            cursor = self._execute("save document body", """
                UPDATE Body SET markdown = ?, updated_at = ? WHERE document_id = ?
            """, (markdown, now, id))
            if cursor.rowcount == 0:
                return False
            self._execute("save document", """
                UPDATE Document SET updated_at = ? WHERE id = ?
            """, (now, id))
        return True

    def iter_bodies(self) -> Iterator[tuple[str, str]]:
        """Yield (document id, markdown) for every document."""
        rows = self._fetchall("read document bodies", """
            SELECT Document.id AS id, Body.markdown AS markdown
            FROM Document JOIN Body ON Body.document_id = Document.id
            ORDER BY Document.created_at ASC, Document.rowid ASC
        """)
        for row in rows:
            yield row["id"], row["markdown"]

    def count_documents(self) -> int:
        row = self._fetchone("count documents", "SELECT COUNT(*) FROM Document")
        return row[0]

    # -------------------------------------------------------------------------
    # Characters
    # -------------------------------------------------------------------------

    def insert_character(self, id: str, name: str, folder_id: Optional[str] = None) -> Character:
        """Insert a character with an empty profile."""
        now = utc_now()
        self._execute("create character", """
            INSERT INTO "Character"(id, project_id, folder_id, name, age, nationality,
                                    sexuality, height, attributes, image_path,
                                    created_at, updated_at)
            VALUES (?, ?, ?, ?, '', '', '', '', '[]', '', ?, ?)
        """, (id, PROJECT_ID, folder_id, name, now, now))
        return Character(id=id, name=name, folder_id=folder_id, created_at=now, updated_at=now)

    def get_character(self, id: str) -> Optional[Character]:
        row = self._fetchone("load character", """
            SELECT id, name, folder_id, age, nationality, sexuality, height,
                   attributes, image_path, created_at, updated_at
            FROM "Character" WHERE id = ?
        """, (id,))
        return _row_to_character(row) if row else None

    def list_characters(self) -> list[Character]:
        """All characters, ordered by name."""
        rows = self._fetchall("list characters", """
            SELECT id, name, folder_id, age, nationality, sexuality, height,
                   attributes, image_path, created_at, updated_at
            FROM "Character"
            ORDER BY name ASC, id ASC
        """)
        return [_row_to_character(r) for r in rows]

    def character_ids_in_folder(self, folder_id: str) -> list[str]:
        rows = self._fetchall("list folder characters", """
            SELECT id FROM "Character" WHERE folder_id = ? ORDER BY name ASC, id ASC
        """, (folder_id,))
        return [r["id"] for r in rows]

    def update_character(
        self,
        id: str,
        *,
        age: str,
        nationality: str,
        sexuality: str,
        height: str,
        attributes: str,
        image_path: str,
        name: Optional[str] = None,
    ) -> bool:
        """
        Overwrite a character's profile.

        Args:
            id: Character identifier
            attributes: JSON-encoded attribute list
            name: New name, or None to keep the current one

        Returns:
            True if the character was found and updated
        """
        cursor = self._execute("save character", """
            UPDATE "Character"
            SET name = COALESCE(?, name),
                age = ?, nationality = ?, sexuality = ?, height = ?,
                attributes = ?, image_path = ?, updated_at = ?
            WHERE id = ?
        """, (name, age, nationality, sexuality, height, attributes, image_path,
              utc_now(), id))
        return cursor.rowcount > 0

    def delete_character(self, id: str) -> bool:
        cursor = self._execute("delete character", 'DELETE FROM "Character" WHERE id = ?', (id,))
        return cursor.rowcount > 0

    # -------------------------------------------------------------------------
    # Snapshots
    # -------------------------------------------------------------------------

    def insert_snapshot(self, id: str, document_id: str, note: str) -> Optional[Snapshot]:
        """
        Copy a document's current body into a new snapshot.

        Returns:
            The snapshot, or None if the document has no body
        """
        now = utc_now()
        cursor = self._execute("create snapshot", """
            INSERT INTO Snapshot(id, document_id, created_at, note, markdown)
            SELECT ?, document_id, ?, ?, markdown FROM Body WHERE document_id = ?
        """, (id, now, note, document_id))
        if cursor.rowcount == 0:
            return None
        return self.get_snapshot(id)

    def get_snapshot(self, id: str) -> Optional[Snapshot]:
        row = self._fetchone("load snapshot", """
            SELECT id, document_id, note, markdown, created_at FROM Snapshot WHERE id = ?
        """, (id,))
        return _row_to_snapshot(row) if row else None

    def list_snapshots(self, document_id: str) -> list[Snapshot]:
        """Snapshots of a document, oldest first."""
        rows = self._fetchall("list snapshots", """
            SELECT id, document_id, note, markdown, created_at
            FROM Snapshot WHERE document_id = ?
            ORDER BY created_at ASC, rowid ASC
        """, (document_id,))
        return [_row_to_snapshot(r) for r in rows]

    # -------------------------------------------------------------------------
    # Search
    # -------------------------------------------------------------------------

    def search(self, query: str, limit: int = 50, snippet_tokens: int = 12) -> list[SearchHit]:
        """
        Full-text search over document bodies.

        Args:
            query: FTS5 query string
            limit: Maximum number of hits
            snippet_tokens: Approximate snippet length in tokens (1-64)

        Returns:
            Hits ordered by relevance, snippets with <b>...</b> around matches
        """
        rows = self._fetchall("search", """
            SELECT Document.id AS id,
                   snippet(body_fts, -1, ?, ?, ?, ?) AS snippet
            FROM body_fts
            JOIN Body ON body_fts.rowid = Body.rowid
            JOIN Document ON Body.document_id = Document.id
            WHERE body_fts MATCH ?
            ORDER BY rank
            LIMIT ?
        """, (SNIPPET_OPEN, SNIPPET_CLOSE, SNIPPET_ELLIPSIS, snippet_tokens, query, limit))
        return [SearchHit(document_id=r["id"], snippet=r["snippet"]) for r in rows]

    # -------------------------------------------------------------------------
    # Backup support
    # -------------------------------------------------------------------------

    def snapshot_bytes(self) -> bytes:
        """
        Serialize the whole database as it stands right now.

        The image is consistent (includes WAL content) and can be written
        out as a standalone database file.
        """
        with self._lock, _storage_errors("read catalog for backup"):
            return self._conn.serialize()

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    def close(self) -> None:
        """Close the database connection."""
        if self._conn is not None:
            self._conn.close()
            self._conn = None

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
