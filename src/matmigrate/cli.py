"""Command line interface for matmigrate."""

from __future__ import annotations

import argparse
import sys
from pathlib import Path

from .api import MigrateOptions, migrate_level
from .errors import ConfigError, LevelInputError
from .logging import configure_logging, get_logger
from .reporting import (
    set_reporter,
    PlainReporter,
    JsonLinesReporter,
    SilentReporter,
    RichReporter,
    set_verbosity,
    get_reporter,
)

USAGE_HINT = (
    "Usage: matmigrate --targetlevel <path_to_level_zip_or_folder> "
    "--targetmapname <map_name>"
)


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="matmigrate",
        description=(
            "Relink stale texture references in a level's "
            "*.materials.json files to the current asset layout"
        ),
    )
    p.add_argument(
        "--targetlevel",
        dest="target_level",
        type=Path,
        help="Level folder or level zip to convert",
    )
    p.add_argument(
        "--targetmapname",
        dest="map_name",
        help="Name of the level (the <name> in /levels/<name>)",
    )
    p.add_argument(
        "--copylocal",
        dest="copy_local",
        action="store_true",
        help="Copy found assets into art/remote_assets instead of "
        "referencing them inside the central asset zips",
    )
    p.add_argument(
        "--config",
        type=Path,
        help="Config file (JSON or YAML); default ./migrator-config.json",
    )
    p.add_argument(
        "--game-root",
        dest="game_root",
        type=Path,
        help="Game installation directory (overrides GameRoot)",
    )
    p.add_argument(
        "-o",
        "--output",
        type=Path,
        help="Output zip for zip inputs (default ./output.zip)",
    )
    p.add_argument(
        "-j",
        "--jobs",
        type=int,
        default=1,
        help="Process documents and scan bundles with N threads",
    )
    p.add_argument(
        "--include",
        action="append",
        default=[],
        help="Only process documents matching this glob, relative to art/ "
        "(repeatable)",
    )
    p.add_argument(
        "--exclude",
        action="append",
        default=[],
        help="Skip documents matching this glob (repeatable)",
    )
    p.add_argument(
        "--no-cache",
        dest="cache_bundles",
        action="store_false",
        help="Re-open bundles on every lookup instead of indexing them once",
    )
    p.add_argument(
        "--debug",
        action="store_true",
        help="Enable debug output (same as -v)",
    )
    p.add_argument(
        "-v",
        "--verbose",
        action="count",
        default=0,
        help="Increase verbosity (repeatable)",
    )
    p.add_argument(
        "-r",
        "--reporter",
        choices=["plain", "rich", "json", "silent"],
        default="plain",
        help="Select reporter backend: plain (default), rich, json (JSONL events), silent",
    )
    return p


def _select_reporter(name: str) -> None:
    if name == "json":
        set_reporter(JsonLinesReporter())
    elif name == "silent":
        set_reporter(SilentReporter())
    elif name == "rich" and sys.stderr.isatty():
        try:
            set_reporter(RichReporter())
        except Exception:  # pragma: no cover
            set_reporter(PlainReporter())
    else:
        set_reporter(PlainReporter())


def main(argv: list[str] | None = None) -> int:
    argv = argv if argv is not None else sys.argv[1:]
    parser = build_parser()
    args = parser.parse_args(argv)

    _select_reporter(args.reporter)
    verbosity = max(args.verbose, 1 if args.debug else 0)
    set_verbosity(verbosity)
    configure_logging(verbosity)
    logger = get_logger()
    if args.debug:
        logger.debug("Debug mode enabled")

    if not args.target_level:
        logger.error("--targetlevel parameter is required")
        logger.info(USAGE_HINT)
        return 1
    if not args.map_name:
        logger.error("--targetmapname parameter is required")
        logger.info(USAGE_HINT)
        return 1
    if args.jobs < 1:
        logger.error("--jobs must be at least 1")
        return 1

    options = MigrateOptions(
        target_level=args.target_level,
        map_name=args.map_name,
        copy_local=args.copy_local,
        config_path=args.config,
        game_root=args.game_root,
        output_path=args.output,
        jobs=args.jobs,
        includes=args.include,
        excludes=args.exclude,
        cache_bundles=args.cache_bundles,
    )
    try:
        migrate_level(options)
    except (ConfigError, LevelInputError) as e:
        logger.error("%s", e.message)
        return 1
    except Exception:
        logger.exception("Fatal error running matmigrate")
        return 2
    finally:
        get_reporter().flush()
    return 0


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
