"""Tests for recursive folder deletion."""

import pytest

from inkwell.catalog import Catalog
from inkwell.errors import CatalogError, MirrorError, NotFoundError
from inkwell.mirror import Mirror
from inkwell.tree_delete import delete_tree, folder_closure


class TestFolderClosure:

    def test_bfs_order(self):
        children = {"r": ["a", "b"], "a": ["a1", "a2"], "b": ["b1"], "a1": ["deep"]}
        order = folder_closure("r", lambda f: children.get(f, []))
        assert order == ["r", "a", "b", "a1", "a2", "b1", "deep"]

    def test_leaf(self):
        assert folder_closure("x", lambda f: []) == ["x"]

    def test_cycle_terminates(self):
        """Each folder is visited once even if the parent chain loops."""
        children = {"a": ["b"], "b": ["c"], "c": ["a"]}
        assert folder_closure("a", lambda f: children[f]) == ["a", "b", "c"]


@pytest.fixture
def catalog(tmp_path):
    cat = Catalog(tmp_path / "project.db")
    yield cat
    cat.close()


@pytest.fixture
def mirror(tmp_path):
    return Mirror(tmp_path)


def _add_document(catalog, mirror, id, folder_id, markdown="text"):
    catalog.insert_document(id, id.upper(), folder_id, markdown)
    mirror.project_body(id, markdown)


def _add_character(catalog, mirror, id, folder_id, tmp_path):
    catalog.insert_character(id, id.upper(), folder_id)
    source = tmp_path / f"{id}.png"
    source.write_bytes(b"img")
    mirror.import_asset(id, source)


def _build_tree(catalog, mirror, tmp_path):
    """
    root
    ├── a      (docs da1, da2; character ca)
    │   └── a1 (doc da11)
    └── b      (doc db)
    other      (doc do)
    """
    catalog.insert_folder("root", "Root")
    catalog.insert_folder("a", "A", parent_id="root")
    catalog.insert_folder("b", "B", parent_id="root")
    catalog.insert_folder("a1", "A1", parent_id="a")
    catalog.insert_folder("other", "Other")
    _add_document(catalog, mirror, "dr", "root")
    _add_document(catalog, mirror, "da1", "a")
    _add_document(catalog, mirror, "da2", "a")
    _add_document(catalog, mirror, "da11", "a1")
    _add_document(catalog, mirror, "db", "b")
    _add_document(catalog, mirror, "do", "other")
    _add_character(catalog, mirror, "ca", "a", tmp_path)
    _add_character(catalog, mirror, "co", "other", tmp_path)


class TestDeleteTree:

    def test_removes_whole_subtree(self, catalog, mirror, tmp_path):
        _build_tree(catalog, mirror, tmp_path)
        catalog.insert_snapshot("s1", "da11", "keep?")

        report = delete_tree(catalog, mirror, "root")

        assert report.folder_ids == ["a1", "b", "a", "root"]
        assert report.document_ids == ["dr", "da1", "da2", "db", "da11"]
        assert report.character_ids == ["ca"]
        assert report.cleanup_failures == []

        for fid in ("root", "a", "b", "a1"):
            assert catalog.get_folder(fid) is None
        for did in ("dr", "da1", "da2", "da11", "db"):
            assert catalog.get_document(did) is None
            assert not mirror.body_path(did).exists()
        assert catalog.get_character("ca") is None
        assert not mirror.asset_dir("ca").exists()
        assert catalog.get_snapshot("s1") is None

    def test_siblings_survive(self, catalog, mirror, tmp_path):
        _build_tree(catalog, mirror, tmp_path)

        delete_tree(catalog, mirror, "a")

        assert catalog.get_folder("root") is not None
        assert catalog.get_folder("b") is not None
        assert catalog.get_folder("other") is not None
        assert {d.id for d in catalog.list_documents()} == {"dr", "db", "do"}
        assert mirror.read_body("db") == "text"
        assert mirror.read_body("do") == "text"
        assert catalog.get_character("co") is not None
        assert mirror.asset_dir("co").exists()

    def test_deep_chain(self, catalog, mirror):
        parent = None
        for i in range(30):
            catalog.insert_folder(f"f{i}", f"Level {i}", parent_id=parent)
            _add_document(catalog, mirror, f"d{i}", f"f{i}")
            parent = f"f{i}"

        report = delete_tree(catalog, mirror, "f0")

        assert len(report.folder_ids) == 30
        assert catalog.list_folders() == []
        assert catalog.list_documents() == []
        assert mirror.list_body_ids() == []

    def test_unknown_folder(self, catalog, mirror):
        with pytest.raises(NotFoundError):
            delete_tree(catalog, mirror, "nope")

    def test_children_deleted_before_parents(self, catalog, mirror, tmp_path):
        """No folder row is removed while a child row still points at it."""
        _build_tree(catalog, mirror, tmp_path)
        catalog._conn.execute("""
            CREATE TRIGGER folder_has_children BEFORE DELETE ON Folder
            WHEN EXISTS (SELECT 1 FROM Folder WHERE parent_id = old.id)
            BEGIN SELECT RAISE(ABORT, 'folder still has children'); END
        """)

        delete_tree(catalog, mirror, "root")

        assert catalog.get_folder("root") is None
        assert catalog.get_folder("a1") is None

    def test_parent_first_order_would_trip_guard(self, catalog):
        """The guard trigger used above does fire on a parent-first delete."""
        catalog.insert_folder("p", "Parent")
        catalog.insert_folder("c", "Child", parent_id="p")
        catalog._conn.execute("""
            CREATE TRIGGER folder_has_children BEFORE DELETE ON Folder
            WHEN EXISTS (SELECT 1 FROM Folder WHERE parent_id = old.id)
            BEGIN SELECT RAISE(ABORT, 'folder still has children'); END
        """)
        with pytest.raises(CatalogError, match="still has children"):
            catalog.delete_folder("p")

    def test_catalog_failure_rolls_back(self, catalog, mirror, tmp_path, monkeypatch):
        _build_tree(catalog, mirror, tmp_path)

        def failing_delete(id):
            raise CatalogError("simulated failure")

        monkeypatch.setattr(catalog, "delete_character", failing_delete)
        with pytest.raises(CatalogError, match="simulated"):
            delete_tree(catalog, mirror, "root")

        # Documents deleted before the failure are back, mirror untouched
        assert catalog.get_folder("root") is not None
        assert catalog.get_document("dr") is not None
        assert catalog.get_document("da1") is not None
        assert catalog.load_body("da1") == "text"
        assert mirror.read_body("da1") == "text"
        assert mirror.asset_dir("ca").exists()

    def test_mirror_cleanup_failure_is_reported(self, catalog, mirror, tmp_path, monkeypatch):
        _build_tree(catalog, mirror, tmp_path)
        real_remove = mirror.remove_body

        def flaky_remove(document_id):
            if document_id == "da1":
                raise MirrorError("permission denied")
            return real_remove(document_id)

        monkeypatch.setattr(mirror, "remove_body", flaky_remove)
        report = delete_tree(catalog, mirror, "a")

        assert report.cleanup_failures == ["da1"]
        assert catalog.get_document("da1") is None
        assert mirror.body_path("da1").exists()
        assert not mirror.body_path("da2").exists()

    def test_missing_mirror_files_are_fine(self, catalog, mirror):
        catalog.insert_folder("f", "Folder")
        catalog.insert_document("d1", "Never mirrored", "f", "")
        report = delete_tree(catalog, mirror, "f")
        assert report.document_ids == ["d1"]
        assert report.cleanup_failures == []

    def test_corrupted_cycle_terminates(self, catalog, mirror):
        """A parent loop written directly into the catalog still deletes."""
        catalog.insert_folder("x", "X")
        catalog.insert_folder("y", "Y", parent_id="x")
        catalog._conn.execute("UPDATE Folder SET parent_id = 'y' WHERE id = 'x'")
        _add_document(catalog, mirror, "dx", "x")

        report = delete_tree(catalog, mirror, "x")

        assert sorted(report.folder_ids) == ["x", "y"]
        assert catalog.list_folders() == []
        assert catalog.get_document("dx") is None
