"""Read-only access to zip asset bundles.

A bundle is a zip archive holding game assets, either scoped to one level
(``content/levels/<name>.zip``) or shared (``content/assets/materials/*.zip``).
Lookups match on the member's base filename only, case-insensitively; the
member's directory is kept so a resolved virtual path can be rebuilt from it.

Every archive open is scoped to a single call. Nothing here keeps a
``ZipFile`` handle alive, so callers on different threads never share one.
"""

from __future__ import annotations

import os
import shutil
import tempfile
import threading
import zipfile
import zlib
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Iterator, Optional

from ..errors import (
    BundleReadError,
    ExtractionError,
    bundle_error,
    extraction_error,
)
from ..logging import get_logger

logger = get_logger("archive")

# Corrupt member data surfaces as zlib.error or EOFError, and an unsupported
# compression method as NotImplementedError.
_READ_ERRORS = (
    zipfile.BadZipFile,
    zlib.error,
    EOFError,
    NotImplementedError,
    OSError,
    ValueError,
)

__all__ = [
    "ArchiveEntry",
    "find_by_name",
    "extract",
    "BundleIndex",
    "BundleAccessor",
]


@dataclass(frozen=True, slots=True)
class ArchiveEntry:
    bundle: Path
    # Member name exactly as stored in the archive (may use '\\').
    internal_path: str

    @property
    def normalized_path(self) -> str:
        return self.internal_path.replace("\\", "/")

    @property
    def filename(self) -> str:
        return self.normalized_path.rsplit("/", 1)[-1]

    @property
    def virtual_path(self) -> str:
        return "/" + self.normalized_path.lstrip("/")


def _iter_entries(bundle_path: Path) -> Iterator[ArchiveEntry]:
    try:
        with zipfile.ZipFile(bundle_path, "r") as zf:
            names = zf.namelist()
    except _READ_ERRORS as e:
        raise bundle_error(bundle_path.name, str(e)) from e
    for name in names:
        entry = ArchiveEntry(bundle_path, name)
        # Directory members have no base name and never match.
        if entry.filename:
            yield entry


def find_by_name(
    bundle_path: str | Path, filename: str
) -> Optional[ArchiveEntry]:
    """Return the first member whose base name equals ``filename``.

    A bundle that does not exist is an expected condition and yields
    ``None``. A bundle that exists but cannot be read raises
    :class:`BundleReadError`.
    """
    bundle = Path(bundle_path)
    if not bundle.is_file():
        logger.debug("      Zip file not found: %s", bundle)
        return None
    wanted = filename.lower()
    for entry in _iter_entries(bundle):
        if entry.filename.lower() == wanted:
            return entry
    return None


def extract(
    bundle_path: str | Path, entry: ArchiveEntry, destination: str | Path
) -> None:
    """Write ``entry`` to ``destination``, replacing any existing file.

    Data is written to a temporary sibling and renamed into place, so a
    failed write never leaves a truncated file under the final name.
    """
    bundle = Path(bundle_path)
    dest = Path(destination)
    tmp_name: Optional[str] = None
    try:
        with zipfile.ZipFile(bundle, "r") as zf:
            with zf.open(entry.internal_path, "r") as src:
                fd, tmp_name = tempfile.mkstemp(
                    prefix=f".{dest.name}.", suffix=".part", dir=dest.parent
                )
                with os.fdopen(fd, "wb") as out:
                    shutil.copyfileobj(src, out)
        os.replace(tmp_name, dest)
        tmp_name = None
    except (KeyError, *_READ_ERRORS) as e:
        raise extraction_error(
            bundle.name, entry.internal_path, str(dest), str(e)
        ) from e
    finally:
        if tmp_name is not None:
            try:
                os.unlink(tmp_name)
            except OSError:
                pass


class BundleIndex:
    """Per-bundle filename index shared by all lookups of a run.

    Each bundle is scanned once; later lookups hit a dict keyed by the
    lower-cased base name. Only the first member with a given name is kept,
    which mirrors the archive-order rule of :func:`find_by_name`. Failed
    scans are not cached.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._tables: Dict[Path, Optional[Dict[str, ArchiveEntry]]] = {}

    def _table(self, bundle: Path) -> Optional[Dict[str, ArchiveEntry]]:
        with self._lock:
            if bundle in self._tables:
                return self._tables[bundle]
        if not bundle.is_file():
            logger.debug("      Zip file not found: %s", bundle)
            table = None
        else:
            table = {}
            for entry in _iter_entries(bundle):
                table.setdefault(entry.filename.lower(), entry)
            logger.debug(
                "      Indexed %s (%d files)", bundle.name, len(table)
            )
        with self._lock:
            # Another thread may have raced us; both tables are identical.
            return self._tables.setdefault(bundle, table)

    def find_by_name(
        self, bundle_path: str | Path, filename: str
    ) -> Optional[ArchiveEntry]:
        table = self._table(Path(bundle_path))
        if table is None:
            return None
        return table.get(filename.lower())

    def __len__(self) -> int:
        with self._lock:
            return len(self._tables)


class BundleAccessor:
    """Lookup and extraction helpers that never raise.

    Read and extraction failures are logged and reported as a failed
    lookup, so one bad bundle cannot stop the run.
    """

    def __init__(self, index: Optional[BundleIndex] = None) -> None:
        self.index = index

    def lookup(
        self, bundle_path: str | Path, filename: str
    ) -> Optional[ArchiveEntry]:
        bundle = Path(bundle_path)
        logger.debug("      Opening zip: %s", bundle.name)
        try:
            if self.index is not None:
                entry = self.index.find_by_name(bundle, filename)
            else:
                entry = find_by_name(bundle, filename)
        except BundleReadError as e:
            logger.error("%s", e.message)
            return None
        if entry is None:
            logger.debug("      Entry not found in this zip")
        else:
            logger.debug("      Found entry at: %s", entry.virtual_path)
        return entry

    def materialize(self, entry: ArchiveEntry, destination: str | Path) -> bool:
        logger.debug("      Extracting %s to: %s", entry.filename, destination)
        try:
            extract(entry.bundle, entry, destination)
        except ExtractionError as e:
            logger.error("%s", e.message)
            return False
        logger.debug("      Successfully extracted")
        return True
