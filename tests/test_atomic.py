"""Tests for the atomic file writer."""

import os

import pytest

from inkwell.atomic import atomic_write, atomic_write_text


def _leftovers(directory):
    """Temporary files left behind in a directory."""
    return [p.name for p in directory.iterdir() if p.name.endswith(".tmp")]


class TestAtomicWrite:

    def test_creates_file_and_parents(self, tmp_path):
        target = tmp_path / "a" / "b" / "doc.md"
        atomic_write(target, b"# Title\n")
        assert target.read_bytes() == b"# Title\n"
        assert _leftovers(target.parent) == []

    def test_replaces_existing_content(self, tmp_path):
        target = tmp_path / "doc.md"
        target.write_bytes(b"old")
        atomic_write(target, b"new content")
        assert target.read_bytes() == b"new content"

    def test_empty_payload(self, tmp_path):
        target = tmp_path / "doc.md"
        target.write_bytes(b"something")
        atomic_write(target, b"")
        assert target.read_bytes() == b""

    def test_text_is_utf8(self, tmp_path):
        target = tmp_path / "doc.md"
        atomic_write_text(target, "Café — naïve")
        assert target.read_bytes() == "Café — naïve".encode("utf-8")

    def test_without_directory_fsync(self, tmp_path):
        target = tmp_path / "doc.md"
        atomic_write(target, b"x", fsync_directory=False)
        assert target.read_bytes() == b"x"


class TestAtomicWriteFailure:
    """A failure at any step leaves the target exactly as it was."""

    def test_rename_failure_keeps_prior_content(self, tmp_path, monkeypatch):
        target = tmp_path / "doc.md"
        target.write_bytes(b"prior")

        def failing_replace(src, dst):
            raise OSError("simulated rename failure")

        monkeypatch.setattr("inkwell.atomic.os.replace", failing_replace)
        with pytest.raises(OSError, match="simulated"):
            atomic_write(target, b"new bytes that must not appear")

        assert target.read_bytes() == b"prior"
        assert _leftovers(tmp_path) == []

    def test_rename_failure_keeps_target_absent(self, tmp_path, monkeypatch):
        target = tmp_path / "doc.md"

        def failing_replace(src, dst):
            raise OSError("simulated rename failure")

        monkeypatch.setattr("inkwell.atomic.os.replace", failing_replace)
        with pytest.raises(OSError):
            atomic_write(target, b"data")

        assert not target.exists()
        assert _leftovers(tmp_path) == []

    def test_fsync_failure_keeps_prior_content(self, tmp_path, monkeypatch):
        target = tmp_path / "doc.md"
        target.write_bytes(b"prior")

        def failing_fsync(fd):
            raise OSError("disk full")

        monkeypatch.setattr("inkwell.atomic.os.fsync", failing_fsync)
        with pytest.raises(OSError, match="disk full"):
            atomic_write(target, b"new")

        assert target.read_bytes() == b"prior"
        assert _leftovers(tmp_path) == []

    def test_target_is_directory(self, tmp_path):
        target = tmp_path / "doc.md"
        target.mkdir()
        (target / "inside.txt").write_text("keep me")

        with pytest.raises(OSError):
            atomic_write(target, b"data")

        assert target.is_dir()
        assert (target / "inside.txt").read_text() == "keep me"
        assert _leftovers(tmp_path) == []

    def test_directory_fsync_failure_is_not_fatal(self, tmp_path, monkeypatch):
        target = tmp_path / "doc.md"

        def failing_dir_fsync(directory):
            raise OSError("no dir fsync")

        monkeypatch.setattr("inkwell.atomic._fsync_directory", failing_dir_fsync)
        atomic_write(target, b"data")
        assert target.read_bytes() == b"data"

    def test_temp_file_lives_beside_target(self, tmp_path, monkeypatch):
        """The rename source is in the target's own directory."""
        target = tmp_path / "sub" / "doc.md"
        seen = []
        real_replace = os.replace

        def recording_replace(src, dst):
            seen.append((os.path.dirname(src), os.path.dirname(dst)))
            return real_replace(src, dst)

        monkeypatch.setattr("inkwell.atomic.os.replace", recording_replace)
        atomic_write(target, b"data")
        assert seen == [(str(target.parent), str(target.parent))]
