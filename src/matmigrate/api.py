"""High-level API: migrate the material documents of one level."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional

from .archive import BundleAccessor, BundleIndex
from .batch import BatchReport, run_batch
from .config import MigratorConfig, load_config, validate_game_root
from .level import (
    OUTPUT_ZIP_NAME,
    LevelInput,
    discover_documents,
    open_level,
    repackage,
)
from .logging import get_logger, section, step
from .reporting import get_reporter
from .resolver import ReferenceResolver, ResolutionContext

__all__ = [
    "MigrateOptions",
    "MigrateResult",
    "build_context",
    "migrate_level",
]


@dataclass(slots=True)
class MigrateOptions:
    target_level: Path
    map_name: str
    # Copy every resolved asset into the map instead of pointing at the
    # central bundle path.
    copy_local: bool = False
    config_path: Optional[Path] = None
    # Overrides GameRoot from the config file
    game_root: Optional[Path] = None
    # Zip inputs only; defaults to ./output.zip
    output_path: Optional[Path] = None
    jobs: int = 1
    includes: List[str] = field(default_factory=list)
    excludes: List[str] = field(default_factory=list)
    cache_bundles: bool = True
    cwd: Optional[Path] = None


@dataclass(slots=True)
class MigrateResult:
    report: BatchReport
    level_root: Path
    output_zip: Optional[Path] = None

    @property
    def fixed(self) -> int:
        return self.report.fixed

    @property
    def skipped(self) -> int:
        return self.report.skipped


def build_context(
    config: MigratorConfig, level: LevelInput, copy_local: bool
) -> ResolutionContext:
    return ResolutionContext.for_map(
        level.map_name,
        destination_dir=level.destination_dir,
        central_bundles=config.central_bundles(),
        level_bundle_dir=config.levels_dir,
        copy_local=copy_local,
    )


def migrate_level(options: MigrateOptions) -> MigrateResult:
    """Rewrite stale texture references of every document in the level.

    Raises :class:`~matmigrate.errors.ConfigError` or
    :class:`~matmigrate.errors.LevelInputError` when the run cannot start.
    Failures inside individual bundles, documents or materials are reported
    and do not stop the run.
    """
    logger = get_logger()
    rep = get_reporter()
    cwd = options.cwd or Path.cwd()

    config = load_config(options.config_path, cwd=cwd)
    if options.game_root is not None:
        config.game_root = options.game_root
    validate_game_root(config)
    rep.status(
        f"Config summary: game_root={config.game_root} "
        + f"source={config.source or '-'}"
    )

    with open_level(options.target_level, options.map_name) as level:
        documents = discover_documents(
            level.art_dir, options.includes, options.excludes
        )
        result = MigrateResult(report=BatchReport(), level_root=level.level_root)
        rep.status(
            f"Level summary: map={level.map_name} root={level.level_root} "
            + f"zip={str(level.is_zip).lower()} documents={len(documents)}"
        )
        if not documents:
            logger.warning("No *.materials.json files found in art folder")
            return result
        logger.info("Found %d materials.json file(s) to process", len(documents))

        if not level.destination_dir.is_dir():
            step(f"Creating destination directory: {level.destination_dir}")
            level.destination_dir.mkdir(parents=True, exist_ok=True)

        context = build_context(config, level, options.copy_local)
        logger.debug("Target map root: %s", context.map_root)
        rep.status(
            "Bundles summary: central="
            + f"{len(context.central_bundles)} levels_dir={config.levels_dir} "
            + f"copy_local={str(context.copy_local).lower()}"
        )
        accessor = BundleAccessor(BundleIndex() if options.cache_bundles else None)
        with section(f"Migrate {level.map_name}"), ReferenceResolver(
            context, accessor, max_workers=options.jobs
        ) as resolver:
            result.report = run_batch(
                documents,
                resolver,
                max_workers=options.jobs,
                base_dir=level.art_dir,
            )

        report = result.report
        rep.status(
            "Migration summary: files="
            + f"{report.files} fixed={report.fixed} skipped={report.skipped} "
            + f"not_found={report.not_found} failed={report.failed_documents}"
        )

        if level.is_zip:
            output = options.output_path or (cwd / OUTPUT_ZIP_NAME)
            step(f"Repackaging level into {output}")
            result.output_zip = repackage(level, output)
            rep.status(f"Output summary: zip={output}")
    return result
