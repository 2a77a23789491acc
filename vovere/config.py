"""
Configuration management for vovere repositories.

The configuration is stored as a TOML file in the repository's hidden
.meta directory. It records the repository format version and a few
knobs for the tag index and logging.
"""

import os
import tomllib
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path

import tomli_w


META_DIRNAME = ".meta"
CONFIG_FILENAME = "vovere.toml"
CONFIG_VERSION = 1

DEFAULT_TAG_INDENT = 2


@dataclass
class RepositoryConfig:
    """Complete repository configuration."""
    path: Path
    version: int = CONFIG_VERSION
    created: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())

    # JSON indentation used when writing tag files
    tag_indent: int = DEFAULT_TAG_INDENT

    # Write the rotating operations log under .meta
    ops_log: bool = True

    @property
    def meta_path(self) -> Path:
        """Hidden metadata directory of the repository."""
        return self.path / META_DIRNAME

    @property
    def config_path(self) -> Path:
        """Path to the TOML config file."""
        return self.meta_path / CONFIG_FILENAME

    def exists(self) -> bool:
        """Check if config file exists."""
        return self.config_path.exists()


def get_default_store_path() -> Path:
    """
    Resolve the default repository root.

    Uses VOVERE_STORE_PATH when set, otherwise ~/.vovere.
    """
    env_path = os.environ.get("VOVERE_STORE_PATH")
    if env_path:
        return Path(env_path).expanduser().resolve()
    return Path.home() / ".vovere"


def load_config(store_path: Path) -> RepositoryConfig:
    """
    Load configuration from a repository root.

    Raises:
        FileNotFoundError: If config doesn't exist
        ValueError: If config is invalid
    """
    config_path = store_path / META_DIRNAME / CONFIG_FILENAME

    if not config_path.exists():
        raise FileNotFoundError(f"Config not found: {config_path}")

    with open(config_path, "rb") as f:
        try:
            data = tomllib.load(f)
        except tomllib.TOMLDecodeError as e:
            raise ValueError(f"Invalid config {config_path}: {e}") from e

    repo = data.get("repository", {})
    version = repo.get("version", 1)
    if version > CONFIG_VERSION:
        raise ValueError(f"Config version {version} is newer than supported ({CONFIG_VERSION})")

    indent = data.get("tags", {}).get("indent", DEFAULT_TAG_INDENT)
    if not isinstance(indent, int) or indent < 0:
        raise ValueError(f"tags.indent must be a non-negative integer, got {indent!r}")

    return RepositoryConfig(
        path=store_path,
        version=version,
        created=repo.get("created", ""),
        tag_indent=indent,
        ops_log=bool(data.get("logging", {}).get("ops_log", True)),
    )


def save_config(config: RepositoryConfig) -> None:
    """
    Save configuration to the repository's .meta directory.

    Creates the directory if it doesn't exist.
    """
    config.meta_path.mkdir(parents=True, exist_ok=True)

    data = {
        "repository": {
            "version": config.version,
            "created": config.created,
        },
        "tags": {
            "indent": config.tag_indent,
        },
        "logging": {
            "ops_log": config.ops_log,
        },
    }

    with open(config.config_path, "wb") as f:
        tomli_w.dump(data, f)


def load_or_create_config(store_path: Path) -> RepositoryConfig:
    """
    Load existing config or create a new one with defaults.

    This is the main entry point for config management.
    """
    store_path = Path(store_path)
    if (store_path / META_DIRNAME / CONFIG_FILENAME).exists():
        return load_config(store_path)
    config = RepositoryConfig(path=store_path)
    save_config(config)
    return config
