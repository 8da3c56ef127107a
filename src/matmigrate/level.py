"""Level input handling: locate the level tree, find documents, repackage.

The target level is either an unpacked directory or a mod zip. A zip is
extracted to a temporary directory and, after processing, packed again into
an output zip.
"""

from __future__ import annotations

import os
import shutil
import tempfile
import zipfile
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional, Sequence

import pathspec

from .errors import level_error
from .logging import get_logger
from .resolver import LOCAL_ART_PATH

logger = get_logger("level")

MATERIALS_SUFFIX = ".materials.json"
OUTPUT_ZIP_NAME = "output.zip"
TEMP_PREFIX = "BeamMigrator_"

__all__ = [
    "LevelInput",
    "open_level",
    "discover_documents",
    "repackage",
    "MATERIALS_SUFFIX",
    "OUTPUT_ZIP_NAME",
]


@dataclass
class LevelInput:
    map_name: str
    level_root: Path
    # Root of the extracted tree when the input was a zip.
    temp_dir: Optional[Path] = None

    @property
    def is_zip(self) -> bool:
        return self.temp_dir is not None

    @property
    def art_dir(self) -> Path:
        return self.level_root / "art"

    @property
    def destination_dir(self) -> Path:
        return self.level_root.joinpath(*LOCAL_ART_PATH.split("/"))

    def cleanup(self) -> None:
        if self.temp_dir is None:
            return
        logger.debug("Cleaning up temp folder: %s", self.temp_dir)
        try:
            shutil.rmtree(self.temp_dir)
        except OSError as e:
            logger.warning("Failed to delete temp folder: %s", e)
        self.temp_dir = None

    def __enter__(self) -> "LevelInput":
        return self

    def __exit__(self, *exc) -> None:
        self.cleanup()


def _find_child_case_insensitive(root: Path, name: str) -> Optional[Path]:
    if not root.is_dir():
        return None
    exact = root / name
    if exact.is_dir():
        return exact
    wanted = name.lower()
    for entry in root.iterdir():
        if entry.is_dir() and entry.name.lower() == wanted:
            return entry
    return None


def _nested_level_dir(root: Path, map_name: str) -> Optional[Path]:
    levels = _find_child_case_insensitive(root, "levels")
    if levels is None:
        return None
    return _find_child_case_insensitive(levels, map_name)


def _extract_level_zip(archive: Path, map_name: str) -> LevelInput:
    logger.info("Target level is a zip file, extracting to temp folder")
    temp_dir = Path(tempfile.mkdtemp(prefix=TEMP_PREFIX))
    logger.debug("Extracting %s to %s", archive, temp_dir)
    try:
        with zipfile.ZipFile(archive, "r") as zf:
            zf.extractall(temp_dir)
    except (zipfile.BadZipFile, OSError) as e:
        shutil.rmtree(temp_dir, ignore_errors=True)
        raise level_error(
            f"Failed to extract {archive}: {e}", {"path": str(archive)}
        ) from e
    level_root = _nested_level_dir(temp_dir, map_name)
    if level_root is None:
        shutil.rmtree(temp_dir, ignore_errors=True)
        raise level_error(
            f"Could not find level directory '/levels/{map_name}' in "
            "extracted zip",
            {"path": str(archive)},
        )
    return LevelInput(map_name, level_root, temp_dir=temp_dir)


def open_level(target: str | Path, map_name: str) -> LevelInput:
    """Resolve ``target`` (directory or ``.zip``) to the level's root dir."""
    target_path = Path(target)
    if target_path.is_file() and target_path.suffix.lower() == ".zip":
        level = _extract_level_zip(target_path, map_name)
    elif target_path.is_dir():
        level = LevelInput(map_name, target_path)
        tail = str(target_path).rstrip("/\\").lower()
        if not tail.endswith(map_name.lower()):
            nested = _nested_level_dir(target_path, map_name)
            if nested is None:
                raise level_error(
                    f"Target level path does not contain "
                    f"'/levels/{map_name}' folder structure",
                    {"path": str(target_path)},
                )
            level.level_root = nested
    else:
        raise level_error(
            f"Target level path not found: {target_path}",
            {"path": str(target_path)},
        )
    logger.debug("Level Root on Disk: %s", level.level_root)
    if not level.art_dir.is_dir():
        level.cleanup()
        raise level_error(
            f"Art folder not found: {level.art_dir}",
            {"path": str(level.art_dir)},
        )
    return level


def discover_documents(
    art_dir: Path,
    includes: Sequence[str] = (),
    excludes: Sequence[str] = (),
) -> List[Path]:
    """Find ``*.materials.json`` files below ``art_dir``.

    ``includes``/``excludes`` are gitwildmatch patterns relative to
    ``art_dir``; when includes are given a file must match one of them.
    """
    logger.debug("Scanning for *%s files in art folder", MATERIALS_SUFFIX)
    found = sorted(
        p
        for p in art_dir.rglob("*")
        if p.name.lower().endswith(MATERIALS_SUFFIX) and p.is_file()
    )
    if not includes and not excludes:
        logger.debug("Found %d materials.json files", len(found))
        return found

    exclude_spec = (
        pathspec.PathSpec.from_lines("gitwildmatch", excludes)
        if excludes
        else None
    )
    include_spec = (
        pathspec.PathSpec.from_lines("gitwildmatch", includes)
        if includes
        else None
    )
    filtered = []
    for p in found:
        rel = p.relative_to(art_dir).as_posix()
        if exclude_spec and exclude_spec.match_file(rel):
            continue
        if include_spec and not include_spec.match_file(rel):
            continue
        filtered.append(p)
    logger.debug(
        "Found %d materials.json files (filtered from %d)",
        len(filtered),
        len(found),
    )
    return filtered


def repackage(level: LevelInput, output_zip: Path) -> Path:
    """Pack the extracted tree of a zip input into ``output_zip``."""
    if level.temp_dir is None:
        raise level_error("Only zip inputs can be repackaged")
    root = level.temp_dir
    logger.info("Creating output zip: %s", output_zip)
    if output_zip.exists():
        output_zip.unlink()
    with zipfile.ZipFile(
        output_zip, "w", compression=zipfile.ZIP_DEFLATED, compresslevel=9
    ) as zf:
        for dirpath, dirnames, filenames in os.walk(root):
            dirnames.sort()
            current = Path(dirpath)
            if not dirnames and not filenames and current != root:
                zf.write(current, current.relative_to(root).as_posix())
            for name in sorted(filenames):
                path = current / name
                zf.write(path, path.relative_to(root).as_posix())
    logger.info("Output saved to: %s", output_zip)
    return output_zip
