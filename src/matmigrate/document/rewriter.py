"""Rewrite texture references inside a material document.

Document shape::

    {
      "<material name>": {
        "Stages": [ {"colorMap": "/levels/...", "normalMap": "...", ...}, ... ],
        ...
      },
      ...
    }

Any stage key ending in ``Map`` is treated as a texture reference. The set is
open-ended on purpose: new map kinds need no code change.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

from ..errors import MaterialFormatError, material_error
from ..logging import get_logger
from ..resolver import Outcome, ReferenceResolver
from . import sjson

logger = get_logger("document")

TEXTURE_KEY_SUFFIX = "Map"
STAGES_KEY = "Stages"

__all__ = [
    "DocumentReport",
    "DocumentRewriter",
    "is_texture_key",
]


def is_texture_key(key: str) -> bool:
    return key.endswith(TEXTURE_KEY_SUFFIX)


@dataclass(slots=True)
class DocumentReport:
    path: Optional[Path] = None
    fixed: int = 0
    skipped: int = 0
    not_found: int = 0
    skipped_materials: List[str] = field(default_factory=list)
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None


class DocumentRewriter:
    def __init__(self, resolver: ReferenceResolver) -> None:
        self.resolver = resolver

    def rewrite(
        self, document: Dict[str, Any], report: Optional[DocumentReport] = None
    ) -> DocumentReport:
        """Resolve every texture reference of ``document`` in place."""
        report = report if report is not None else DocumentReport()
        logger.debug("Starting material processing")
        for name, material in list(document.items()):
            try:
                self._check_material(name, material)
            except MaterialFormatError as e:
                logger.warning("%s", e.message)
                if e.context:
                    logger.debug("Material format details: %s", e.context)
                report.skipped_materials.append(name)
                continue
            logger.debug("Processing material: %s", name)
            self._rewrite_material(material, report)
        return report

    def rewrite_file(
        self, path: str | Path, *, write: bool = True
    ) -> DocumentReport:
        """Load, rewrite and save one document.

        Raises :class:`~matmigrate.errors.DocumentParseError` when the file
        cannot be parsed; nothing is written in that case. A failed save
        raises :class:`~matmigrate.errors.DocumentWriteError` and leaves the
        file unchanged.
        """
        p = Path(path)
        logger.debug("Loading and parsing JSON file")
        document = sjson.load(p)
        report = self.rewrite(document, DocumentReport(path=p))
        if write:
            logger.debug("Saving modified JSON to: %s", p)
            sjson.dump(document, p)
        logger.info(
            "Localized: %d | Skipped: %d", report.fixed, report.skipped
        )
        return report

    @staticmethod
    def _check_material(name: str, material: Any) -> None:
        if not isinstance(material, dict):
            raise material_error(
                name,
                "is not an object and was skipped",
                {"type": type(material).__name__},
            )
        if sjson.has_duplicate_keys(material):
            raise material_error(
                name,
                "has duplicate keys and was skipped. Please fix manually",
            )

    def _rewrite_material(
        self, material: Dict[str, Any], report: DocumentReport
    ) -> None:
        stages = material.get(STAGES_KEY)
        if not isinstance(stages, list):
            return
        for stage in stages:
            if isinstance(stage, dict):
                self._rewrite_stage(stage, report)

    def _rewrite_stage(
        self, stage: Dict[str, Any], report: DocumentReport
    ) -> None:
        for key in [k for k in stage if is_texture_key(k)]:
            reference = stage[key]
            if not isinstance(reference, str) or not reference.startswith("/"):
                continue
            logger.debug("  Processing texture %s: %s", key, reference)
            result = self.resolver.resolve(reference)
            if result.outcome is Outcome.FIXED:
                stage[key] = result.new_reference
                logger.info(
                    "[FIXED] %s -> %s", result.filename, result.new_reference
                )
                report.fixed += 1
            elif result.outcome is Outcome.SKIPPED:
                report.skipped += 1
            else:
                logger.debug(
                    "    Not found, left unchanged: %s = %s", key, reference
                )
                report.not_found += 1
