"""
Shared pytest fixtures for inkwell tests.

Provides a freshly bootstrapped project per test and a deterministic id
source so tests can refer to entities by known ids.
"""

from collections import deque
from pathlib import Path

import pytest

from inkwell.project import create_project
from inkwell.store import ProjectStore


class SequentialIds:
    """
    Deterministic id factory.

    Hands out the given ids in order, then falls back to id1, id2, ...
    """

    def __init__(self, *ids: str):
        self._queue = deque(ids)
        self._counter = 0

    def push(self, *ids: str) -> None:
        self._queue.extend(ids)

    def __call__(self) -> str:
        if self._queue:
            return self._queue.popleft()
        self._counter += 1
        return f"id{self._counter}"


@pytest.fixture
def project_root(tmp_path) -> Path:
    """A new, empty project directory."""
    return create_project(tmp_path, "novel")


@pytest.fixture
def ids() -> SequentialIds:
    return SequentialIds()


@pytest.fixture
def store(project_root, ids):
    """ProjectStore on a fresh project with deterministic ids."""
    s = ProjectStore(project_root, id_factory=ids)
    yield s
    s.close()


def count_rows(store: ProjectStore, table: str) -> int:
    """Row count of a catalog table, bypassing the store API."""
    return store._catalog._conn.execute(f'SELECT COUNT(*) FROM "{table}"').fetchone()[0]
