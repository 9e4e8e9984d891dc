"""
Configuration management for inkwell projects.

The configuration is an optional TOML file in the project root. A project
without one uses the defaults below; ``save_config`` writes it out.
"""

import tomllib
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

# tomli_w for writing TOML (tomllib is read-only)
import tomli_w


CONFIG_FILENAME = "inkwell.toml"
CONFIG_VERSION = 1

DEFAULT_ID_GENERATOR = "uuid"
DEFAULT_SEARCH_LIMIT = 50
DEFAULT_SNIPPET_TOKENS = 12
DEFAULT_BACKUP_COMPRESSION = "deflated"


@dataclass
class ProjectConfig:
    """Complete project configuration."""
    path: Path
    version: int = CONFIG_VERSION
    created: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())

    # Id generator: "uuid" (random) or "clock" (d<nanoseconds>)
    ids: str = DEFAULT_ID_GENERATOR

    # Full-text search
    search_limit: int = DEFAULT_SEARCH_LIMIT
    snippet_tokens: int = DEFAULT_SNIPPET_TOKENS

    # Backups: "deflated" or "stored"
    backup_compression: str = DEFAULT_BACKUP_COMPRESSION

    # Mirror durability: fsync the md/ directory after each rename
    fsync_directory: bool = True

    # Write a rotating operations log into the project root
    ops_log: bool = False

    @property
    def config_path(self) -> Path:
        """Path to the TOML config file."""
        return self.path / CONFIG_FILENAME

    def exists(self) -> bool:
        """Check if config file exists."""
        return self.config_path.exists()


def _validate(config: ProjectConfig) -> None:
    if not 1 <= config.search_limit <= 1000:
        raise ValueError(f"search.limit must be between 1 and 1000, got {config.search_limit}")
    # FTS5 snippet() accepts at most 64 tokens
    if not 1 <= config.snippet_tokens <= 64:
        raise ValueError(f"search.snippet_tokens must be between 1 and 64, got {config.snippet_tokens}")


def _section(data: dict[str, Any], name: str) -> dict[str, Any]:
    section = data.get(name, {})
    if not isinstance(section, dict):
        raise ValueError(f"[{name}] must be a table")
    return section


def _value(section: dict[str, Any], name: str, key: str, default: Any, kind: type) -> Any:
    """A config value of the expected TOML type, or the default when absent."""
    value = section.get(key, default)
    # bool is an int subclass; TOML keeps them apart, so do we
    if not isinstance(value, kind) or (kind is int and isinstance(value, bool)):
        raise ValueError(f"{name}.{key} must be {kind.__name__}, got {value!r}")
    return value


def load_config(project_root: Path) -> ProjectConfig:
    """
    Load configuration from a project directory.

    A missing file yields the defaults.

    Raises:
        ValueError: If config is invalid or from a newer version
    """
    project_root = Path(project_root)
    config_path = project_root / CONFIG_FILENAME

    if not config_path.exists():
        return ProjectConfig(path=project_root)

    with open(config_path, "rb") as f:
        try:
            data = tomllib.load(f)
        except tomllib.TOMLDecodeError as e:
            raise ValueError(f"Invalid config {config_path}: {e}") from e

    # Validate version
    project = _section(data, "project")
    version = _value(project, "project", "version", CONFIG_VERSION, int)
    if version > CONFIG_VERSION:
        raise ValueError(f"Config version {version} is newer than supported ({CONFIG_VERSION})")

    ids = _section(data, "ids")
    search = _section(data, "search")
    backup = _section(data, "backup")
    mirror = _section(data, "mirror")
    logging_section = _section(data, "logging")

    config = ProjectConfig(
        path=project_root,
        version=version,
        created=str(project.get("created", "")),
        ids=_value(ids, "ids", "generator", DEFAULT_ID_GENERATOR, str),
        search_limit=_value(search, "search", "limit", DEFAULT_SEARCH_LIMIT, int),
        snippet_tokens=_value(search, "search", "snippet_tokens", DEFAULT_SNIPPET_TOKENS, int),
        backup_compression=_value(backup, "backup", "compression", DEFAULT_BACKUP_COMPRESSION, str),
        fsync_directory=_value(mirror, "mirror", "fsync_directory", True, bool),
        ops_log=_value(logging_section, "logging", "ops_log", False, bool),
    )
    _validate(config)
    return config


def save_config(config: ProjectConfig) -> None:
    """
    Save configuration to the project directory.

    Creates the directory if it doesn't exist.
    """
    _validate(config)
    config.path.mkdir(parents=True, exist_ok=True)

    data: dict[str, Any] = {
        "project": {
            "version": config.version,
            "created": config.created,
        },
        "ids": {"generator": config.ids},
        "search": {
            "limit": config.search_limit,
            "snippet_tokens": config.snippet_tokens,
        },
        "backup": {"compression": config.backup_compression},
        "mirror": {"fsync_directory": config.fsync_directory},
        "logging": {"ops_log": config.ops_log},
    }

    with open(config.config_path, "wb") as f:
        tomli_w.dump(data, f)
