"""
PDF Table Extraction Tool - Main Entry Point

Recovers tables from the text layout of PDF files and writes them to Excel
workbooks: one consolidated workbook per document (one sheet per table) and,
optionally, one workbook per table. Results can also be recorded in a JSON
table store.

Usage:
    python main.py report.pdf
    python main.py report.pdf -o tables.xlsx --per-table out/ --store tables.json
    python main.py pdf_folder/ --workers 4 --loglevel DEBUG

Exit codes:
    0  success, including documents without tables
    1  a document could not be read or a workbook could not be written
    2  invalid arguments

Requirements:
    - Python 3.9+
    - PyMuPDF, openpyxl
"""

import argparse
import json
import os
import sys
from typing import List, Optional

# Add the project root to the Python path
project_root = os.path.dirname(os.path.abspath(__file__))
if project_root not in sys.path:
    sys.path.insert(0, project_root)

from extraction.config import DetectionConfig
from extraction.pipeline import extract_document
from models.errors import EncodeError, StorageError, UnsupportedDocumentError
from storage.table_store import JsonFileTableStore, TableStore
from utils.excel_export import export_consolidated_to_excel, export_table_to_excel
from utils.logging_config import get_logger, setup_logging
from utils.pdf_processing import MAX_UPLOAD_BYTES, find_pdf_files, validate_pdf_bytes

logger = get_logger(__name__)

EXIT_OK = 0
EXIT_FAILURE = 1
EXIT_USAGE = 2


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="pdf-tables",
        description="Extract tables from PDF files into Excel workbooks.",
    )
    parser.add_argument("input", help="PDF file, or a folder searched recursively for PDFs")
    parser.add_argument(
        "-o", "--output",
        help="Consolidated workbook path (folder when INPUT is a folder); "
             "defaults to <name>-tables.xlsx next to each PDF",
    )
    parser.add_argument("--per-table", metavar="DIR", help="Also write table-<index>.xlsx files here")
    parser.add_argument("--store", metavar="FILE", help="Record documents and tables in this JSON store")
    parser.add_argument("--config", metavar="FILE", help="JSON file with detection thresholds")
    parser.add_argument("--workers", type=int, help="Worker processes for page processing")
    parser.add_argument("--timeout", type=float, help="Seconds after which remaining pages are skipped")
    parser.add_argument(
        "--loglevel", default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        help="Logging level (default: INFO)",
    )
    return parser


def load_config(args: argparse.Namespace) -> DetectionConfig:
    """
    Build the detection config from --config and --workers.

    Raises:
        ValueError: If the config file or worker count is invalid.
    """
    config = DetectionConfig()
    if args.config:
        try:
            config = DetectionConfig.load_from_json(args.config)
        except (OSError, json.JSONDecodeError) as e:
            raise ValueError(f"Cannot read config {args.config}: {e}") from e
    if args.workers is not None:
        data = config.to_dict()
        data["max_workers"] = args.workers
        config = DetectionConfig.from_dict(data)
    return config


def default_output_path(pdf_path: str, output_dir: Optional[str] = None) -> str:
    """Return ``<stem>-tables.xlsx`` next to the PDF or inside ``output_dir``."""
    stem = os.path.splitext(os.path.basename(pdf_path))[0]
    directory = output_dir if output_dir is not None else os.path.dirname(os.path.abspath(pdf_path))
    return os.path.join(directory, f"{stem}-tables.xlsx")


def process_file(
    pdf_path: str,
    output_path: str,
    config: DetectionConfig,
    per_table_dir: Optional[str] = None,
    store: Optional[TableStore] = None,
    timeout: Optional[float] = None,
) -> int:
    """
    Extract and export the tables of one PDF.

    Returns:
        Number of tables written.

    Raises:
        UnsupportedDocumentError: If the file is not a readable PDF.
        EncodeError: If a workbook cannot be written.
        StorageError: If the store cannot record the results.
    """
    try:
        with open(pdf_path, "rb") as f:
            data = f.read(MAX_UPLOAD_BYTES + 1)
    except OSError as e:
        raise UnsupportedDocumentError(f"cannot read {pdf_path}: {e}") from e
    try:
        validate_pdf_bytes(data)
    except ValueError as e:
        raise UnsupportedDocumentError(str(e)) from e

    report = extract_document(data, config, timeout=timeout)
    tables = report.tables
    for failure in report.failures:
        logger.info("%s: page %d skipped (%s)", pdf_path, failure.page_number, failure.reason)

    if store is not None:
        record = store.create_document(os.path.basename(pdf_path), len(data))
        result = store.append_tables(record.id, tables)
        logger.info(
            "Stored %d table(s) as document %d", len(result.succeeded), record.id
        )

    if not tables:
        logger.info("%s: no tables found", pdf_path)
        return 0

    stem = os.path.splitext(os.path.basename(pdf_path))[0]
    sheet_failures = export_consolidated_to_excel(tables, output_path, document_name=stem)
    logger.info("Wrote %d table(s) to %s", len(tables) - len(sheet_failures), output_path)

    if per_table_dir:
        os.makedirs(per_table_dir, exist_ok=True)
        for table in tables:
            path = os.path.join(per_table_dir, f"table-{table.table_index}.xlsx")
            export_table_to_excel(table, path)
        logger.info("Wrote %d per-table workbook(s) to %s", len(tables), per_table_dir)
    return len(tables)


def main(argv: Optional[List[str]] = None) -> int:
    """Run the command line tool and return its exit code."""
    parser = build_parser()
    args = parser.parse_args(argv)
    setup_logging(args.loglevel)

    try:
        config = load_config(args)
    except ValueError as e:
        logger.error("%s", e)
        return EXIT_USAGE
    if args.timeout is not None and args.timeout <= 0:
        logger.error("--timeout must be positive")
        return EXIT_USAGE

    if os.path.isdir(args.input):
        pdf_files = find_pdf_files(args.input)
        output_dir = args.output
        if output_dir:
            os.makedirs(output_dir, exist_ok=True)
        jobs = []
        for pdf_path in pdf_files:
            per_table = None
            if args.per_table:
                per_table = os.path.join(
                    args.per_table, os.path.splitext(os.path.basename(pdf_path))[0]
                )
            jobs.append((pdf_path, default_output_path(pdf_path, output_dir), per_table))
        if not jobs:
            logger.warning("No PDF files found in %s", args.input)
    elif os.path.isfile(args.input):
        output = args.output or default_output_path(args.input)
        jobs = [(args.input, output, args.per_table)]
    else:
        logger.error("Input not found: %s", args.input)
        return EXIT_USAGE

    store = JsonFileTableStore(args.store) if args.store else None
    exit_code = EXIT_OK
    try:
        if store is not None:
            store.open()
        for pdf_path, output_path, per_table in jobs:
            try:
                process_file(pdf_path, output_path, config, per_table, store, args.timeout)
            except UnsupportedDocumentError as e:
                logger.error("%s: %s", pdf_path, e)
                exit_code = EXIT_FAILURE
            except EncodeError as e:
                logger.error("%s: %s", pdf_path, e)
                exit_code = EXIT_FAILURE
    except StorageError as e:
        logger.error("%s", e)
        exit_code = EXIT_FAILURE
    finally:
        if store is not None:
            store.close()
    return exit_code


if __name__ == "__main__":
    sys.exit(main())
