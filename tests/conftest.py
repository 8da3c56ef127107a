from __future__ import annotations

import json
import logging
import zipfile
from pathlib import Path
from typing import Dict

import pytest

from matmigrate.reporting import SilentReporter, set_reporter, set_verbosity


def make_bundle(
    path: Path,
    members: Dict[str, bytes],
    compression: int = zipfile.ZIP_STORED,
) -> Path:
    """Write a zip at ``path`` holding ``members`` (name -> bytes)."""
    path.parent.mkdir(parents=True, exist_ok=True)
    with zipfile.ZipFile(path, "w", compression) as zf:
        for name, data in members.items():
            zf.writestr(name, data)
    return path


def damage_member(path: Path, name: str) -> Path:
    """Overwrite the first compressed byte of ``name`` in the zip at ``path``.

    0xFF sets the reserved deflate block type, so reading the member fails
    inside zlib rather than at the CRC check.
    """
    with zipfile.ZipFile(path) as zf:
        info = zf.getinfo(name)
    raw = bytearray(path.read_bytes())
    off = info.header_offset
    name_len = int.from_bytes(raw[off + 26 : off + 28], "little")
    extra_len = int.from_bytes(raw[off + 28 : off + 30], "little")
    raw[off + 30 + name_len + extra_len] = 0xFF
    path.write_bytes(bytes(raw))
    return path


class GameTree:
    """A fake game installation plus a target level below ``tmp_path``."""

    def __init__(self, root: Path):
        self.root = root / "game"
        self.levels_dir = self.root / "content" / "levels"
        self.central_dir = self.root / "content" / "assets" / "materials"
        self.levels_dir.mkdir(parents=True)
        self.central_dir.mkdir(parents=True)
        (self.root / "BeamNG.drive.exe").write_bytes(b"")
        self.work = root / "work"
        self.work.mkdir()

    def level_bundle(self, name: str, members: Dict[str, bytes]) -> Path:
        return make_bundle(self.levels_dir / f"{name}.zip", members)

    def central_bundle(self, name: str, members: Dict[str, bytes]) -> Path:
        return make_bundle(self.central_dir / name, members)

    def level_dir(self, map_name: str, documents: Dict[str, dict]) -> Path:
        level = self.work / "levels" / map_name
        for rel, doc in documents.items():
            p = level / "art" / rel
            p.parent.mkdir(parents=True, exist_ok=True)
            p.write_text(json.dumps(doc, indent=2), encoding="utf-8")
        (level / "art").mkdir(parents=True, exist_ok=True)
        return level


@pytest.fixture(autouse=True)
def _quiet_reporter():
    set_reporter(SilentReporter())
    set_verbosity(0)
    yield
    set_reporter(SilentReporter())
    set_verbosity(0)
    logger = logging.getLogger("matmigrate")
    for h in list(logger.handlers):
        logger.removeHandler(h)
    logger.setLevel(logging.NOTSET)


@pytest.fixture
def game(tmp_path: Path) -> GameTree:
    return GameTree(tmp_path)


@pytest.fixture
def make_zip():
    return make_bundle


@pytest.fixture
def dest_dir(tmp_path: Path) -> Path:
    d = tmp_path / "remote_assets"
    d.mkdir()
    return d


@pytest.fixture
def damaged_zip():
    """Build a deflated zip whose ``broken`` member cannot be decompressed."""

    def _make(path: Path, broken: str, members: Dict[str, bytes]) -> Path:
        make_bundle(path, members, zipfile.ZIP_DEFLATED)
        return damage_member(path, broken)

    return _make
