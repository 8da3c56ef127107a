"""Run configuration: where the game installation lives.

The configuration file is ``migrator-config.json`` in the working directory::

    {
      "GameRoot": "E:\\\\Steam\\\\steamapps\\\\common\\\\BeamNG.drive"
    }

A missing file is created with defaults. A YAML file may be passed
explicitly instead.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from pathlib import Path
from typing import Any, List, Optional

import yaml

from .errors import config_error
from .logging import get_logger

logger = get_logger("config")

CONFIG_FILE_NAME = "migrator-config.json"
DEFAULT_GAME_ROOT = r"E:\Steam\steamapps\common\BeamNG.drive"
GAME_EXECUTABLE = "BeamNG.drive.exe"
CENTRAL_ASSETS_DIR = Path("content", "assets", "materials")
LEVELS_DIR = Path("content", "levels")

_GAME_ROOT_KEYS = ("GameRoot", "game_root", "gameRoot")

__all__ = [
    "CONFIG_FILE_NAME",
    "DEFAULT_GAME_ROOT",
    "GAME_EXECUTABLE",
    "MigratorConfig",
    "load_config",
    "write_default_config",
    "validate_game_root",
]


@dataclass
class MigratorConfig:
    game_root: Path
    source: Optional[Path] = None

    @property
    def central_assets_dir(self) -> Path:
        return self.game_root / CENTRAL_ASSETS_DIR

    @property
    def levels_dir(self) -> Path:
        return self.game_root / LEVELS_DIR

    def central_bundles(self) -> List[Path]:
        """Central asset zips, sorted by name; empty when the dir is absent."""
        root = self.central_assets_dir
        logger.debug("Looking for central asset zips in: %s", root)
        if not root.is_dir():
            return []
        bundles = sorted(
            (p for p in root.iterdir() if p.suffix.lower() == ".zip"),
            key=lambda p: p.name.lower(),
        )
        logger.debug("Found %d central asset zip files", len(bundles))
        return bundles

    def to_dict(self) -> dict:
        return {"GameRoot": str(self.game_root)}


def _parse(data: Any) -> Optional[MigratorConfig]:
    if not isinstance(data, dict):
        return None
    for key in _GAME_ROOT_KEYS:
        value = data.get(key)
        if isinstance(value, str) and value.strip():
            return MigratorConfig(game_root=Path(value))
    return MigratorConfig(game_root=Path(DEFAULT_GAME_ROOT))


def _read(path: Path) -> Any:
    text = path.read_text(encoding="utf-8-sig")
    if path.suffix.lower() in {".yaml", ".yml"}:
        return yaml.safe_load(text)
    return json.loads(text)


def write_default_config(path: Path) -> MigratorConfig:
    config = MigratorConfig(game_root=Path(DEFAULT_GAME_ROOT))
    try:
        path.write_text(json.dumps(config.to_dict(), indent=2), encoding="utf-8")
        logger.info("Created default config file: %s", path)
        config.source = path
    except OSError as e:
        logger.warning("Failed to create default config file: %s", e)
    return config


def load_config(
    path: str | Path | None = None,
    *,
    cwd: str | Path | None = None,
    create_default: bool = True,
) -> MigratorConfig:
    """Load the run configuration.

    Without ``path`` the file is looked up in ``cwd`` (default: the process
    working directory) and created with defaults if absent. An explicit
    ``path`` must exist. A file that cannot be parsed is reported and the
    defaults are used.
    """
    if path is not None:
        config_path = Path(path)
        if not config_path.is_file():
            raise config_error(
                f"Config file not found: {config_path}",
                {"path": str(config_path)},
            )
    else:
        config_path = Path(cwd) if cwd is not None else Path.cwd()
        config_path = config_path / CONFIG_FILE_NAME
        if not config_path.is_file():
            logger.debug("Config file not found, using default configuration")
            if create_default:
                return write_default_config(config_path)
            return MigratorConfig(game_root=Path(DEFAULT_GAME_ROOT))

    logger.debug("Loading config from: %s", config_path)
    try:
        data = _read(config_path)
    except (OSError, ValueError, yaml.YAMLError) as e:
        logger.warning("Failed to load config file, using defaults: %s", e)
        return MigratorConfig(game_root=Path(DEFAULT_GAME_ROOT))
    config = _parse(data)
    if config is None:
        logger.warning(
            "Failed to load config file, using defaults: root is not an object"
        )
        return MigratorConfig(game_root=Path(DEFAULT_GAME_ROOT))
    config.source = config_path
    logger.info("Configuration loaded from %s", config_path.name)
    return config


def validate_game_root(config: MigratorConfig) -> None:
    """Require an existing game directory containing the game executable."""
    root = config.game_root
    hint = (
        f"Please ensure the GameRoot path in {CONFIG_FILE_NAME} points to a "
        "valid BeamNG.drive installation"
    )
    if not root.is_dir():
        raise config_error(
            f"GameRoot directory does not exist: {root}. {hint}",
            {"game_root": str(root)},
        )
    if not (root / GAME_EXECUTABLE).is_file():
        raise config_error(
            f"{GAME_EXECUTABLE} not found in GameRoot: {root}. {hint}",
            {"game_root": str(root)},
        )
    logger.debug("GameRoot validated: %s", root)
