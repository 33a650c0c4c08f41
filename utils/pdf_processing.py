"""
PDF processing module for table extraction.

This module handles all PyMuPDF-facing operations:
- Validating and opening PDF byte buffers
- Checking encryption and text extraction permissions
- Reading each page's glyphs into picklable PageContent records
- Walking directories to find PDF files

Everything downstream of this module works on plain bytes and dataclasses,
never on open fitz objects.
"""

import os
from typing import List

import fitz  # PyMuPDF

from extraction.text_extractor import PageContent, runs_from_rawdict
from models.errors import ParseError, UnsupportedDocumentError

PDF_SIGNATURE = b"%PDF"
MAX_UPLOAD_BYTES = 10 * 1024 * 1024  # 10MB

# Keep real whitespace glyphs, never invent spaces across gaps
TEXT_FLAGS = fitz.TEXTFLAGS_RAWDICT | fitz.TEXT_INHIBIT_SPACES


def find_pdf_files(directory: str) -> List[str]:
    """
    Walk through a directory and all subdirectories to find PDF files.

    Args:
        directory: The root directory to search in.

    Returns:
        A sorted list of absolute paths to PDF files found.

    Example:
        >>> files = find_pdf_files("C:/Documents/PDFs")
        >>> for f in files:
        ...     print(f)
    """
    pdf_files = []
    for root, dirs, files in os.walk(directory):
        for file_name in files:
            if file_name.lower().endswith(".pdf"):
                full_path = os.path.join(root, file_name)
                pdf_files.append(os.path.normpath(full_path))
    return sorted(pdf_files)


def validate_pdf_bytes(data: bytes, max_size: int = MAX_UPLOAD_BYTES) -> None:
    """
    Reject buffers that should never reach the extractor.

    Args:
        data: Complete file content.
        max_size: Largest accepted buffer in bytes.

    Raises:
        ValueError: If the buffer is empty, too large or lacks the PDF header.
    """
    if not data:
        raise ValueError("Uploaded file is empty")
    if len(data) > max_size:
        raise ValueError(f"File too large (maximum {max_size // (1024 * 1024)}MB)")
    if not data.startswith(PDF_SIGNATURE):
        raise ValueError("File must be a PDF document")


def open_pdf_document(data: bytes) -> fitz.Document:
    """
    Open a PDF from memory.

    Args:
        data: Complete PDF file content.

    Returns:
        An open fitz.Document; the caller closes it.

    Raises:
        UnsupportedDocumentError: If the buffer is empty, not a readable PDF,
            password protected, or has no pages.
    """
    if not data:
        raise UnsupportedDocumentError("empty document")
    try:
        doc = fitz.open(stream=data, filetype="pdf")
    except Exception as e:
        raise UnsupportedDocumentError(f"cannot open PDF: {e}") from e

    if doc.needs_pass:
        doc.close()
        raise UnsupportedDocumentError("document is encrypted and requires a password")
    if not doc.is_pdf:
        doc.close()
        raise UnsupportedDocumentError("not a PDF document")
    if len(doc) == 0:
        doc.close()
        raise UnsupportedDocumentError("document has no pages")
    return doc


def get_pdf_info(file_path: str) -> dict:
    """
    Get basic information about a PDF file.

    Args:
        file_path: Path to the PDF file.

    Returns:
        Dictionary with keys: file_name, file_path, num_pages, file_size.

    Raises:
        FileNotFoundError: If the file does not exist.
        UnsupportedDocumentError: If the file cannot be opened as a PDF.
    """
    if not os.path.exists(file_path):
        raise FileNotFoundError(f"PDF file not found: {file_path}")

    with open(file_path, "rb") as f:
        data = f.read()

    doc = open_pdf_document(data)
    num_pages = len(doc)
    doc.close()

    return {
        "file_name": os.path.basename(file_path),
        "file_path": os.path.normpath(file_path),
        "num_pages": num_pages,
        "file_size": len(data),
    }


def is_text_extractable(doc: fitz.Document) -> bool:
    """Return True if the document's permissions allow copying text."""
    return bool(doc.permissions & fitz.PDF_PERM_COPY)


def read_page_content(doc: fitz.Document, page_index: int) -> PageContent:
    """
    Collect one page's glyphs with PyMuPDF.

    MuPDF keeps going on damaged content and reports the damage as warnings;
    any warning raised while this page is interpreted fails the page.

    Args:
        doc: Open document.
        page_index: Zero-based page index.

    Returns:
        A PageContent ready to be shipped to a worker.

    Raises:
        ParseError: If the document forbids text extraction, or the page
            content cannot be interpreted cleanly.
    """
    if not is_text_extractable(doc):
        raise ParseError(page_index, "encrypted content without extract permission")

    # Drop warnings left over from opening the document or earlier pages
    fitz.TOOLS.mupdf_warnings()
    try:
        page = doc[page_index]
        raw = page.get_text("rawdict", flags=TEXT_FLAGS)
        page_height = page.rect.height
    except Exception as e:
        raise ParseError(page_index, f"cannot extract text: {e}") from e

    warnings = fitz.TOOLS.mupdf_warnings()
    if warnings:
        raise ParseError(page_index, f"malformed page content: {warnings.splitlines()[0]}")
    return PageContent(page=page_index, runs=runs_from_rawdict(raw, page_height))
