"""Reference resolution: locate a broken texture reference in asset bundles.

A reference is an absolute virtual path such as
``/levels/west_coast_usa/art/shapes/t.png``. Resolution tries, in order:

1. already-local check against the target map root (no search),
2. strategy A: the bundle of the level the reference points into,
3. strategy B: the central bundles, exact base filename,
4. strategy C: the central bundles again as a separate filename pass,
5. strategy C with the extension replaced by ``.dds``.

The first success wins. Strategy A always copies the asset into the target
map; B and C copy only in local-copy mode and otherwise point at the
member's path inside the central bundle.
"""

from __future__ import annotations

import posixpath
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from enum import Enum, auto
from pathlib import Path
from typing import Iterable, List, Optional, Sequence

from .archive import ArchiveEntry, BundleAccessor
from .logging import get_logger

logger = get_logger("resolver")

LOCAL_ART_PATH = "art/remote_assets"
NATIVE_TEXTURE_EXT = ".dds"
LEVELS_PREFIX = "/levels/"

__all__ = [
    "LOCAL_ART_PATH",
    "NATIVE_TEXTURE_EXT",
    "Outcome",
    "SkipReason",
    "Strategy",
    "ResolutionResult",
    "ResolutionContext",
    "ReferenceResolver",
    "map_root_for",
]


class Outcome(Enum):
    FIXED = auto()
    SKIPPED = auto()
    NOT_FOUND = auto()


class SkipReason(Enum):
    ALREADY_LOCAL = auto()


class Strategy(Enum):
    LEVEL_BUNDLE = "A"
    CENTRAL_EXACT = "B"
    CENTRAL_FILENAME = "C"
    CENTRAL_NATIVE_EXT = "C-ext"


@dataclass(frozen=True, slots=True)
class ResolutionResult:
    outcome: Outcome
    new_reference: Optional[str] = None
    reason: Optional[SkipReason] = None
    strategy: Optional[Strategy] = None
    # Name of the file that was found; differs from the reference's own
    # base name after an extension substitution.
    filename: Optional[str] = None

    @classmethod
    def fixed(
        cls, new_reference: str, strategy: Strategy, filename: str
    ) -> "ResolutionResult":
        return cls(
            Outcome.FIXED,
            new_reference=new_reference,
            strategy=strategy,
            filename=filename,
        )

    @classmethod
    def already_local(cls) -> "ResolutionResult":
        return cls(Outcome.SKIPPED, reason=SkipReason.ALREADY_LOCAL)

    @classmethod
    def not_found(cls) -> "ResolutionResult":
        return cls(Outcome.NOT_FOUND)

    @property
    def is_fixed(self) -> bool:
        return self.outcome is Outcome.FIXED


def map_root_for(map_name: str) -> str:
    return f"/levels/{map_name}"


@dataclass(frozen=True, slots=True)
class ResolutionContext:
    """Read-only inputs shared by every resolution of one run."""

    map_root: str
    destination_dir: Path
    central_bundles: tuple[Path, ...] = ()
    level_bundle_dir: Optional[Path] = None
    copy_local: bool = False
    _map_root_lower: str = field(init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        object.__setattr__(self, "destination_dir", Path(self.destination_dir))
        object.__setattr__(
            self, "central_bundles", tuple(Path(p) for p in self.central_bundles)
        )
        if self.level_bundle_dir is not None:
            object.__setattr__(
                self, "level_bundle_dir", Path(self.level_bundle_dir)
            )
        object.__setattr__(self, "_map_root_lower", self.map_root.lower())

    @classmethod
    def for_map(
        cls,
        map_name: str,
        destination_dir: Path,
        central_bundles: Iterable[Path] = (),
        level_bundle_dir: Optional[Path] = None,
        copy_local: bool = False,
    ) -> "ResolutionContext":
        return cls(
            map_root=map_root_for(map_name),
            destination_dir=destination_dir,
            central_bundles=tuple(central_bundles),
            level_bundle_dir=level_bundle_dir,
            copy_local=copy_local,
        )

    def is_local(self, reference: str) -> bool:
        return reference.lower().startswith(self._map_root_lower)

    def local_reference(self, filename: str) -> str:
        return f"{self.map_root}/{LOCAL_ART_PATH}/{filename}"

    def local_disk_path(self, filename: str) -> Path:
        return self.destination_dir / filename

    def level_bundle(self, level_name: str) -> Optional[Path]:
        if self.level_bundle_dir is None:
            return None
        return self.level_bundle_dir / f"{level_name}.zip"


def _source_level(reference: str) -> Optional[str]:
    # "/levels/<name>/..." -> "<name>"
    if not reference.lower().startswith(LEVELS_PREFIX):
        return None
    parts = [p for p in reference.split("/") if p]
    if len(parts) < 3:
        return None
    return parts[1]


def _with_native_ext(filename: str) -> str:
    stem, _ = posixpath.splitext(filename)
    return stem + NATIVE_TEXTURE_EXT


class ReferenceResolver:
    """Apply the ordered search strategies to one reference at a time.

    ``max_workers > 1`` scans the central bundles of a pass concurrently.
    Matches are still taken in bundle order, so the result is the same as a
    sequential scan. The resolver holds no per-reference state and may be
    shared between threads.
    """

    def __init__(
        self,
        context: ResolutionContext,
        accessor: Optional[BundleAccessor] = None,
        *,
        max_workers: int = 1,
    ) -> None:
        self.context = context
        self.accessor = accessor or BundleAccessor()
        self.max_workers = max(1, max_workers)
        self._executor: Optional[ThreadPoolExecutor] = None
        if self.max_workers > 1 and len(context.central_bundles) > 1:
            self._executor = ThreadPoolExecutor(
                max_workers=self.max_workers,
                thread_name_prefix="matmigrate-scan",
            )

    def close(self) -> None:
        if self._executor is not None:
            self._executor.shutdown(wait=True)
            self._executor = None

    def __enter__(self) -> "ReferenceResolver":
        return self

    def __exit__(self, *exc) -> None:
        self.close()

    def resolve(self, reference: str) -> ResolutionResult:
        ctx = self.context
        if ctx.is_local(reference):
            logger.debug("    Skipping - already points to target map")
            return ResolutionResult.already_local()

        filename = reference.rsplit("/", 1)[-1]
        result = self._from_level_bundle(reference, filename)
        if result is not None:
            return result

        central = ctx.central_bundles
        logger.debug("    Searching in %d central asset zips", len(central))
        result = self._from_central(filename, Strategy.CENTRAL_EXACT)
        if result is not None:
            return result

        logger.debug(
            "    Strategy C: Searching for filename '%s' in all subfolders "
            "of %d central asset zips",
            filename,
            len(central),
        )
        result = self._from_central(filename, Strategy.CENTRAL_FILENAME)
        if result is not None:
            return result

        if filename and not filename.lower().endswith(NATIVE_TEXTURE_EXT):
            native = _with_native_ext(filename)
            logger.debug(
                "    Strategy C fallback: Searching for '%s' with %s extension",
                native,
                NATIVE_TEXTURE_EXT,
            )
            result = self._from_central(native, Strategy.CENTRAL_NATIVE_EXT)
            if result is not None:
                return result

        logger.debug("    File not found in any zip: %s", filename)
        return ResolutionResult.not_found()

    # Strategies ------------------------------------------------------------
    def _from_level_bundle(
        self, reference: str, filename: str
    ) -> Optional[ResolutionResult]:
        level = _source_level(reference)
        if level is None:
            return None
        bundle = self.context.level_bundle(level)
        if bundle is None:
            return None
        logger.debug("    Trying level zip: %s", bundle)
        entry = self.accessor.lookup(bundle, filename)
        if entry is None:
            return None
        # Level bundles are never a valid runtime source; always copy.
        return self._materialize(entry, filename, Strategy.LEVEL_BUNDLE)

    def _from_central(
        self, filename: str, strategy: Strategy
    ) -> Optional[ResolutionResult]:
        for entry in self._central_matches(filename):
            if self.context.copy_local:
                result = self._materialize(entry, filename, strategy)
                if result is not None:
                    return result
                # Extraction failed; the next bundle may still serve it.
                continue
            return ResolutionResult.fixed(entry.virtual_path, strategy, filename)
        return None

    def _materialize(
        self, entry: ArchiveEntry, filename: str, strategy: Strategy
    ) -> Optional[ResolutionResult]:
        dest = self.context.local_disk_path(filename)
        if not self.accessor.materialize(entry, dest):
            return None
        return ResolutionResult.fixed(
            self.context.local_reference(filename), strategy, filename
        )

    def _central_matches(self, filename: str) -> Iterable[ArchiveEntry]:
        """Yield matches in central-bundle order, lowest index first."""
        bundles: Sequence[Path] = self.context.central_bundles
        if self._executor is None:
            for bundle in bundles:
                entry = self.accessor.lookup(bundle, filename)
                if entry is not None:
                    yield entry
            return
        # map() returns results in submission order regardless of which
        # lookup finishes first.
        found: List[Optional[ArchiveEntry]] = list(
            self._executor.map(
                lambda b: self.accessor.lookup(b, filename), bundles
            )
        )
        for entry in found:
            if entry is not None:
                yield entry
