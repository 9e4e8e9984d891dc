"""
Data types for the project store.
"""

import json
import re
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from typing import Any, Optional

from .errors import ValidationError


# Every row in a single-project catalog carries this project id
PROJECT_ID = "p1"

# Body given to every new document
NEW_DOCUMENT_MARKDOWN = "# New Document"

# Character profile fields stored as plain strings
PROFILE_FIELDS = ("age", "nationality", "sexuality", "height")


def utc_now() -> str:
    """Current UTC timestamp in canonical format: YYYY-MM-DDTHH:MM:SS.

    All timestamps in the catalog are UTC, stored without timezone suffix.
    """
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%S")


MAX_ID_LENGTH = 128

# Ids become file and directory names under md/ and assets/characters/.
# Blocked: control chars, path separators, and characters that are
# unsafe in filenames on common platforms.
_ID_BLOCKED_RE = re.compile(r'[\x00-\x1f\x7f/\\:*?"<>|]')


def validate_id(id: str, kind: str = "id") -> None:
    """Validate an entity id: bounded length and safe to use as a filename."""
    if not id or len(id) > MAX_ID_LENGTH:
        raise ValidationError(f"{kind} must be 1-{MAX_ID_LENGTH} characters")
    if _ID_BLOCKED_RE.search(id) or id in (".", "..") or id.strip() != id:
        raise ValidationError(f"{kind} contains invalid characters: {id!r}")


def validate_name(value: str, kind: str) -> str:
    """Strip a display name and reject empty ones."""
    if value is None or not value.strip():
        raise ValidationError(f"{kind} must not be empty")
    return value.strip()


@dataclass
class Folder:
    """A node in the folder forest."""
    id: str
    name: str
    parent_id: Optional[str] = None


@dataclass
class Document:
    """Document metadata. The body is loaded separately."""
    id: str
    title: str
    folder_id: Optional[str] = None
    created_at: str = ""
    updated_at: str = ""


@dataclass
class Snapshot:
    """Point-in-time copy of a document body."""
    id: str
    document_id: str
    note: str
    markdown: str
    created_at: str


@dataclass
class Character:
    """
    A character record with its free-form profile.

    Text fields never come back as None: columns left NULL load as "".
    """
    id: str
    name: str
    folder_id: Optional[str] = None
    age: str = ""
    nationality: str = ""
    sexuality: str = ""
    height: str = ""
    attributes: list = field(default_factory=list)
    image: str = ""
    created_at: str = ""
    updated_at: str = ""

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass
class SearchHit:
    """One full-text match: the document and a highlighted snippet."""
    document_id: str
    snippet: str


@dataclass
class Tree:
    """Everything needed to draw the project hierarchy."""
    folders: list[Folder] = field(default_factory=list)
    documents: list[Document] = field(default_factory=list)
    characters: list[Character] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "folders": [asdict(f) for f in self.folders],
            "docs": [asdict(d) for d in self.documents],
            "characters": [c.to_dict() for c in self.characters],
        }


def encode_attributes(value: Any) -> str:
    """
    Normalize a character attribute list to its stored JSON text.

    None becomes "[]"; lists are JSON-encoded; strings must already hold a
    JSON list.
    """
    if value is None:
        return "[]"
    if isinstance(value, str):
        if not value.strip():
            return "[]"
        try:
            decoded = json.loads(value)
        except json.JSONDecodeError as e:
            raise ValidationError(f"attributes is not valid JSON: {e}") from e
        if not isinstance(decoded, list):
            raise ValidationError("attributes must be a JSON list")
        return value
    if not isinstance(value, (list, tuple)):
        raise ValidationError("attributes must be a list")
    return json.dumps(list(value), ensure_ascii=False)


def decode_attributes(text: Optional[str]) -> list:
    """Stored attribute JSON back to a list; empty or unreadable text is []."""
    if not text:
        return []
    try:
        decoded = json.loads(text)
    except json.JSONDecodeError:
        return []
    return decoded if isinstance(decoded, list) else []
