"""Tests for project configuration."""

import pytest

from inkwell.config import (
    CONFIG_FILENAME,
    DEFAULT_SEARCH_LIMIT,
    ProjectConfig,
    load_config,
    save_config,
)
from inkwell.errors import ValidationError
from inkwell.store import ProjectStore


class TestLoadConfig:

    def test_defaults_without_file(self, tmp_path):
        config = load_config(tmp_path)
        assert not config.exists()
        assert config.ids == "uuid"
        assert config.search_limit == DEFAULT_SEARCH_LIMIT
        assert config.snippet_tokens == 12
        assert config.backup_compression == "deflated"
        assert config.fsync_directory is True
        assert config.ops_log is False

    def test_save_and_load(self, tmp_path):
        save_config(ProjectConfig(
            path=tmp_path,
            ids="clock",
            search_limit=10,
            snippet_tokens=20,
            backup_compression="stored",
            fsync_directory=False,
            ops_log=True,
        ))
        config = load_config(tmp_path)
        assert config.exists()
        assert config.ids == "clock"
        assert config.search_limit == 10
        assert config.snippet_tokens == 20
        assert config.backup_compression == "stored"
        assert config.fsync_directory is False
        assert config.ops_log is True

    def test_partial_file(self, tmp_path):
        (tmp_path / CONFIG_FILENAME).write_text('[search]\nlimit = 5\n')
        config = load_config(tmp_path)
        assert config.search_limit == 5
        assert config.snippet_tokens == 12
        assert config.ids == "uuid"

    def test_newer_version(self, tmp_path):
        (tmp_path / CONFIG_FILENAME).write_text('[project]\nversion = 99\n')
        with pytest.raises(ValueError, match="newer than supported"):
            load_config(tmp_path)

    def test_bad_toml(self, tmp_path):
        (tmp_path / CONFIG_FILENAME).write_text('[search\nlimit = ')
        with pytest.raises(ValueError, match="Invalid config"):
            load_config(tmp_path)

    @pytest.mark.parametrize("body", [
        "[search]\nlimit = 0\n",
        "[search]\nlimit = 5000\n",
        "[search]\nsnippet_tokens = 65\n",
    ])
    def test_out_of_range(self, tmp_path, body):
        (tmp_path / CONFIG_FILENAME).write_text(body)
        with pytest.raises(ValueError):
            load_config(tmp_path)

    @pytest.mark.parametrize("body", [
        "[mirror]\nfsync_directory = \"false\"\n",
        "[logging]\nops_log = 1\n",
        "[project]\nversion = \"1\"\n",
        "[search]\nlimit = \"50\"\n",
        "[search]\nlimit = true\n",
        "[ids]\ngenerator = 3\n",
        "search = 5\n",
    ])
    def test_wrong_types(self, tmp_path, body):
        (tmp_path / CONFIG_FILENAME).write_text(body)
        with pytest.raises(ValueError, match="must be"):
            load_config(tmp_path)

    def test_save_rejects_invalid(self, tmp_path):
        with pytest.raises(ValueError):
            save_config(ProjectConfig(path=tmp_path, search_limit=0))
        assert not (tmp_path / CONFIG_FILENAME).exists()


class TestStoreConfig:

    def test_invalid_file_is_validation_error(self, project_root):
        (project_root / CONFIG_FILENAME).write_text("[search]\nlimit = -1\n")
        with pytest.raises(ValidationError):
            ProjectStore(project_root)

    def test_unknown_generator(self, project_root):
        (project_root / CONFIG_FILENAME).write_text('[ids]\ngenerator = "sequential"\n')
        with pytest.raises(ValidationError, match="Unknown id generator"):
            ProjectStore(project_root)

    def test_unknown_compression(self, project_root):
        (project_root / CONFIG_FILENAME).write_text('[backup]\ncompression = "bzip9"\n')
        with pytest.raises(ValidationError, match="Unknown backup compression"):
            ProjectStore(project_root)

    def test_explicit_config_skips_file(self, project_root):
        (project_root / CONFIG_FILENAME).write_text("not toml at all [")
        config = ProjectConfig(path=project_root, search_limit=3)
        with ProjectStore(project_root, config=config) as store:
            assert store.config.search_limit == 3
