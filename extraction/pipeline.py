"""
Table extraction pipeline.

bytes -> pages -> fragments -> regions -> grids -> annotated tables.

Pages are independent: each page's glyph/fragment/region/grid work runs in
``_process_page``, either inline or in a ProcessPoolExecutor when
``config.max_workers > 1``. Results are sorted by page and detection order
before table indices are assigned, so the output never depends on worker
completion order. Cancellation (event or timeout) keeps the pages finished
before it and drops the rest.
"""

import os
import threading
import time
from concurrent.futures import FIRST_COMPLETED, ProcessPoolExecutor, wait
from typing import Dict, List, Optional, Tuple

import fitz  # PyMuPDF

from extraction.annotator import annotate
from extraction.config import DetectionConfig
from extraction.grid_reconstructor import reconstruct_grid
from extraction.region_detector import detect_regions
from extraction.text_extractor import extract_fragments
from models.data_models import (
    ExtractedTable,
    ExtractionReport,
    PageFailure,
    TableData,
    TableRegion,
)
from models.errors import ParseError
from utils.logging_config import get_logger
from utils.pdf_processing import open_pdf_document, read_page_content

logger = get_logger(__name__)

# Absolute path to the project root, passed to subprocess workers so they
# can import project modules.
_PROJECT_ROOT = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))

# How often the collector re-checks the cancel event while waiting
_POLL_INTERVAL = 0.1

PageResult = List[Tuple[TableRegion, TableData]]

# Document opened once per worker process by _init_worker
_worker_doc: Optional[fitz.Document] = None


def _process_page(doc: fitz.Document, page_index: int, config: DetectionConfig) -> PageResult:
    """Recover every table of one page, in detection order.

    Raises:
        ParseError: If the page's text cannot be extracted.
    """
    page_content = read_page_content(doc, page_index)
    fragments = extract_fragments(page_content, config)
    regions = detect_regions(fragments, page_index, config)
    return [(region, reconstruct_grid(region)) for region in regions]


# ---------------------------------------------------------------------------
# Multiprocessing helpers: must be top-level so they can be pickled/imported
# by subprocess workers spawned by ProcessPoolExecutor.
# ---------------------------------------------------------------------------

def _init_subprocess(project_root: str) -> None:
    """Initializer for ProcessPoolExecutor workers.

    Adds the project root to sys.path so that all project imports (models,
    extraction, utils) work inside spawned worker processes.
    """
    import sys
    if project_root not in sys.path:
        sys.path.insert(0, project_root)


def _init_worker(project_root: str, data: bytes) -> None:
    """Initializer for page workers: project imports plus the open document."""
    global _worker_doc
    _init_subprocess(project_root)
    _worker_doc = open_pdf_document(data)


def _process_page_task(args: Tuple[int, DetectionConfig]) -> Tuple[int, PageResult]:
    """Picklable worker that recovers every table of one page.

    Args:
        args: (page_index, config)

    Returns:
        (page_index, [(region, table_data), ...]) in detection order.

    Raises:
        ParseError: If the page's text cannot be extracted.
    """
    page_index, config = args
    return page_index, _process_page(_worker_doc, page_index, config)


def _run_inline(
    doc: fitz.Document,
    config: DetectionConfig,
    cancel_event: Optional[threading.Event],
    deadline: Optional[float],
) -> Tuple[Dict[int, PageResult], List[PageFailure], bool]:
    results: Dict[int, PageResult] = {}
    failures: List[PageFailure] = []
    for page_index in range(len(doc)):
        if _should_stop(cancel_event, deadline):
            return results, failures, True
        try:
            results[page_index] = _process_page(doc, page_index, config)
        except ParseError as exc:
            failures.append(_record_failure(exc, page_index))
    return results, failures, False


def _run_pool(
    data: bytes,
    page_count: int,
    config: DetectionConfig,
    cancel_event: Optional[threading.Event],
    deadline: Optional[float],
) -> Tuple[Dict[int, PageResult], List[PageFailure], bool]:
    results: Dict[int, PageResult] = {}
    failures: List[PageFailure] = []
    cancelled = False
    max_workers = min(config.max_workers, page_count, max(1, os.cpu_count() or 2))

    executor = ProcessPoolExecutor(
        max_workers=max_workers,
        initializer=_init_worker,
        initargs=(_PROJECT_ROOT, data),
    )
    try:
        futures = {
            executor.submit(_process_page_task, (page_index, config)): page_index
            for page_index in range(page_count)
        }
        pending = set(futures)
        while pending:
            if _should_stop(cancel_event, deadline):
                cancelled = True
                break
            timeout = _POLL_INTERVAL
            if deadline is not None:
                timeout = max(0.0, min(timeout, deadline - time.monotonic()))
            done, pending = wait(pending, timeout=timeout, return_when=FIRST_COMPLETED)
            for future in done:
                page = futures[future]
                try:
                    page_index, page_result = future.result()
                except ParseError as exc:
                    failures.append(_record_failure(exc, page))
                    continue
                results[page_index] = page_result
    finally:
        # Queued pages are dropped; pages mid-flight finish but are ignored.
        executor.shutdown(wait=not cancelled, cancel_futures=True)
    return results, failures, cancelled


def _should_stop(cancel_event: Optional[threading.Event], deadline: Optional[float]) -> bool:
    if cancel_event is not None and cancel_event.is_set():
        return True
    return deadline is not None and time.monotonic() >= deadline


def _record_failure(exc: ParseError, page: int) -> PageFailure:
    page_number = (exc.page if exc.page is not None else page) + 1
    logger.warning("Skipping page %d: %s", page_number, exc.reason)
    return PageFailure(page_number=page_number, reason=exc.reason)


def extract_document(
    data: bytes,
    config: Optional[DetectionConfig] = None,
    cancel_event: Optional[threading.Event] = None,
    timeout: Optional[float] = None,
) -> ExtractionReport:
    """
    Recover every table of a PDF and report skipped pages.

    Args:
        data: Complete PDF file content.
        config: Detection thresholds and worker count.
        cancel_event: Set it to stop processing further pages.
        timeout: Seconds after which processing stops.

    Returns:
        ExtractionReport whose tables are ordered by page, then top-to-bottom,
        then left-to-right, with document-wide zero-based table indices.

    Raises:
        UnsupportedDocumentError: If the document cannot be read at all.
    """
    config = config or DetectionConfig()
    deadline = time.monotonic() + timeout if timeout is not None else None

    doc = open_pdf_document(data)
    page_count = len(doc)
    if config.max_workers > 1 and page_count > 1:
        # Workers open their own copy
        doc.close()
        results, failures, cancelled = _run_pool(
            data, page_count, config, cancel_event, deadline
        )
    else:
        try:
            results, failures, cancelled = _run_inline(doc, config, cancel_event, deadline)
        finally:
            doc.close()
    failures.sort(key=lambda failure: failure.page_number)

    failed_pages = {failure.page_number for failure in failures}
    cancelled_pages = [
        page_index + 1
        for page_index in range(page_count)
        if page_index not in results and page_index + 1 not in failed_pages
    ]

    tables: List[ExtractedTable] = []
    for page_index in sorted(results):
        for region, table_data in results[page_index]:
            info = annotate(region, table_data, table_index=len(tables))
            tables.append(ExtractedTable(data=table_data, info=info))

    if cancelled:
        logger.warning(
            "Extraction cancelled; %d page(s) not processed", len(cancelled_pages)
        )
    logger.info(
        "Extracted %d table(s) from %d page(s); %d page(s) skipped",
        len(tables), page_count, len(failures),
    )
    return ExtractionReport(
        tables=tables,
        failures=failures,
        page_count=page_count,
        cancelled=cancelled,
        cancelled_pages=cancelled_pages if cancelled else [],
    )


def extract_tables(data: bytes, config: Optional[DetectionConfig] = None) -> List[ExtractedTable]:
    """
    Recover every table of a PDF.

    Args:
        data: Complete PDF file content.
        config: Detection thresholds and worker count.

    Returns:
        Tables ordered by page and detection order; empty when no region
        qualifies anywhere in the document.

    Raises:
        UnsupportedDocumentError: If the document cannot be read at all.
    """
    return extract_document(data, config).tables
