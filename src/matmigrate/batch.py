"""Run the document rewriter over every discovered material document."""

from __future__ import annotations

import os
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable, List, Optional

from .document import DocumentReport, DocumentRewriter
from .errors import DocumentParseError, DocumentWriteError
from .logging import get_logger
from .reporting import get_reporter, task
from .resolver import ReferenceResolver

logger = get_logger("batch")

__all__ = ["BatchReport", "process_document", "run_batch"]


@dataclass(slots=True)
class BatchReport:
    documents: List[DocumentReport] = field(default_factory=list)

    @property
    def files(self) -> int:
        return len(self.documents)

    @property
    def fixed(self) -> int:
        return sum(d.fixed for d in self.documents)

    @property
    def skipped(self) -> int:
        return sum(d.skipped for d in self.documents)

    @property
    def not_found(self) -> int:
        return sum(d.not_found for d in self.documents)

    @property
    def failed_documents(self) -> int:
        return sum(1 for d in self.documents if not d.ok)


def process_document(
    rewriter: DocumentRewriter, path: Path, *, write: bool = True
) -> DocumentReport:
    """Rewrite one document; load and save failures stay with that file."""
    logger.debug("Processing file: %s", path)
    try:
        return rewriter.rewrite_file(path, write=write)
    except DocumentParseError as e:
        logger.error("%s", e.message)
        logger.error("Please manually fix the JSON file and try again")
        return DocumentReport(path=path, error=e.message)
    except DocumentWriteError as e:
        logger.error("%s", e.message)
        return DocumentReport(path=path, error=e.message)


def _display_name(path: Path, base_dir: Optional[Path]) -> str:
    if base_dir is None:
        return str(path)
    try:
        return os.path.relpath(path, base_dir)
    except ValueError:
        return str(path)


def run_batch(
    paths: Iterable[str | Path],
    resolver: ReferenceResolver,
    *,
    max_workers: int = 1,
    write: bool = True,
    base_dir: Optional[Path] = None,
) -> BatchReport:
    """Process ``paths`` and aggregate their counts.

    With ``max_workers > 1`` documents are rewritten concurrently. Reports
    are still collected in input order.
    """
    docs = [Path(p) for p in paths]
    rewriter = DocumentRewriter(resolver)
    rep = get_reporter()
    batch = BatchReport()

    def _record(report: DocumentReport) -> None:
        name = _display_name(report.path or Path("?"), base_dir)
        batch.documents.append(report)
        rep.document(
            name, report.fixed, report.skipped, report.not_found, report.error
        )
        rep.advance("documents", current_item=name)

    with task("documents", "Process materials", total=len(docs)) as final:
        if max_workers <= 1 or len(docs) <= 1:
            for path in docs:
                logger.info("Processing: %s", _display_name(path, base_dir))
                _record(process_document(rewriter, path, write=write))
        else:
            with ThreadPoolExecutor(
                max_workers=max_workers, thread_name_prefix="matmigrate-doc"
            ) as pool:
                futures = [
                    pool.submit(process_document, rewriter, p, write=write)
                    for p in docs
                ]
                for fut in futures:
                    _record(fut.result())
        final.update(
            fixed=batch.fixed,
            skipped=batch.skipped,
            not_found=batch.not_found,
            failed=batch.failed_documents,
        )
    return batch
