"""
Durable single-file replacement.

The target either ends up holding exactly the new bytes, or keeps whatever
it held before (including not existing at all). The temporary file lives in
the target's directory so the final rename is a single filesystem operation.
"""

import logging
import os
import tempfile
from pathlib import Path

logger = logging.getLogger(__name__)


def _fsync_directory(directory: Path) -> None:
    """Flush a directory entry so a completed rename survives a crash."""
    if os.name != "posix":
        return
    fd = os.open(directory, os.O_RDONLY)
    try:
        os.fsync(fd)
    finally:
        os.close(fd)


def atomic_write(path: Path, data: bytes, *, fsync_directory: bool = True) -> None:
    """
    Replace ``path`` with ``data`` atomically.

    Args:
        path: Target file path
        data: Complete new file content
        fsync_directory: Also flush the parent directory after the rename

    Raises:
        OSError: If any step fails. The target is left untouched and the
            temporary file is removed.
    """
    path = Path(path)
    parent = path.parent
    parent.mkdir(parents=True, exist_ok=True)

    fd, tmp_name = tempfile.mkstemp(dir=parent, prefix=f".{path.name}.", suffix=".tmp")
    try:
        with os.fdopen(fd, "wb") as f:
            f.write(data)
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp_name, path)
    except BaseException:
        try:
            os.unlink(tmp_name)
        except OSError:
            pass
        raise

    if fsync_directory:
        try:
            _fsync_directory(parent)
        except OSError as e:
            # The rename already happened; only crash durability is affected
            logger.debug("Directory fsync failed for %s: %s", parent, e)


def atomic_write_text(path: Path, text: str, **kwargs) -> None:
    """Write UTF-8 text atomically."""
    atomic_write(path, text.encode("utf-8"), **kwargs)
