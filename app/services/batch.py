"""
Batch ingestion of receipt PDFs.

- One outcome per file: success, skipped (duplicate, unknown employer, not
  saveable) or failed (unreadable PDF, unexpected error). One bad file never
  stops the batch.
- `progress(done, total, outcome)` is called after every file.
- `cancel` (a threading.Event) is checked before each file starts; files
  already done stay done, and re-running the batch is safe because duplicates
  are skipped by content hash.
- workers > 1 parses files in a thread pool; merges into one legajo||periodo
  key are still serialized by the consolidated store's per-key lock.
"""

from __future__ import annotations

import threading
from concurrent.futures import ThreadPoolExecutor
from typing import Callable, Iterable, List, Optional, Tuple

from app.models.schemas import BatchReport, FileOutcome
from app.services.consolidate import ConsolidationService, content_hash
from app.services.extract import parse_receipt
from app.util.logger import get_logger

ProgressCallback = Callable[[int, int, FileOutcome], None]


def process_file(filename: str, content: bytes, service: ConsolidationService,
                 empresa: Optional[str] = None) -> FileOutcome:
    logger = get_logger()
    digest = content_hash(content)
    try:
        if service.receipts.has_hash(digest):
            logger.info(f"Duplicate file {filename} ({digest[:16]}), skipped before parsing")
            return FileOutcome(filename=filename, status="skipped", reason="Duplicate file",
                               content_hash=digest)
        result = parse_receipt(content, filename, empresa)
        if result.document is None:
            return FileOutcome(filename=filename, status="failed",
                               reason=result.data.get("ERROR", "Unreadable PDF"), content_hash=digest)
        return service.ingest(result, digest, filename)
    except Exception as e:
        logger.exception(f"Unexpected error processing {filename}")
        return FileOutcome(filename=filename, status="failed", reason=str(e), content_hash=digest)


def process_batch(files: Iterable[Tuple[str, bytes]], service: ConsolidationService,
                  progress: Optional[ProgressCallback] = None, cancel: Optional[threading.Event] = None,
                  empresa: Optional[str] = None, workers: int = 1) -> BatchReport:
    logger = get_logger()
    files = list(files)
    total = len(files)
    report = BatchReport()
    lock = threading.Lock()

    def run(item: Tuple[str, bytes]) -> Optional[FileOutcome]:
        if cancel is not None and cancel.is_set():
            return None
        filename, content = item
        outcome = process_file(filename, content, service, empresa)
        with lock:
            report.outcomes.append(outcome)
            done = len(report.outcomes)
        if progress:
            progress(done, total, outcome)
        return outcome

    logger.info(f"Processing batch of {total} file(s)")
    if workers > 1:
        with ThreadPoolExecutor(max_workers=workers) as pool:
            list(pool.map(run, files))
    else:
        for item in files:
            if run(item) is None:
                break

    report.cancelled = len(report.outcomes) < total and cancel is not None and cancel.is_set()
    logger.info(f"Batch finished: {report.counts}{' (cancelled)' if report.cancelled else ''}")
    return report


def summarize(outcomes: List[FileOutcome]) -> str:
    counts = BatchReport(outcomes=outcomes).counts
    return f"{counts['success']} ok, {counts['skipped']} skipped, {counts['failed']} failed"
