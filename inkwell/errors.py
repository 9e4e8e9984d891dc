"""
Error types and error logging for inkwell.

Every store operation either returns its value or raises an InkwellError
subclass whose message is meant to be shown to the user as-is. Full stack
traces go to an error log file for debugging.
"""

import os
import traceback
from datetime import datetime, timezone
from pathlib import Path


class InkwellError(Exception):
    """Base class for all errors surfaced by the project store."""


class CatalogError(InkwellError):
    """The catalog database could not be opened, queried or written."""


class MirrorError(InkwellError):
    """A mirror file or asset could not be written."""


class BackupError(InkwellError):
    """A backup archive could not be written."""


class NotFoundError(InkwellError):
    """The requested folder, document, character or snapshot does not exist."""


class ValidationError(InkwellError, ValueError):
    """Input was empty or malformed."""


def _error_log_path() -> Path:
    """Resolve error log path, respecting INKWELL_HOME."""
    home = os.environ.get("INKWELL_HOME")
    if home:
        return Path(home) / "inkwell-errors.log"
    return Path.home() / ".inkwell" / "inkwell-errors.log"


def log_exception(exc: Exception, context: str = "") -> Path:
    """
    Log exception with full traceback to file.

    Args:
        exc: The exception that occurred
        context: Optional context string (e.g., command name)

    Returns:
        Path to the error log file
    """
    log_path = _error_log_path()
    timestamp = datetime.now(timezone.utc).isoformat()
    try:
        log_path.parent.mkdir(parents=True, exist_ok=True)
        fd = os.open(log_path, os.O_WRONLY | os.O_CREAT | os.O_APPEND, 0o600)
        with os.fdopen(fd, "a") as f:
            f.write(f"\n{'='*60}\n")
            f.write(f"[{timestamp}]")
            if context:
                f.write(f" {context}")
            f.write("\n")
            f.write("".join(traceback.format_exception(type(exc), exc, exc.__traceback__)))
    except OSError:
        pass  # Can't write error log; don't crash over it
    return log_path
