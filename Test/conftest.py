"""
Pytest configuration and shared fixtures for the PDF table extraction tests.
"""

import sys
import os
import tempfile
import pytest
import fitz  # PyMuPDF

# Add project root to path
project_root = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
if project_root not in sys.path:
    sys.path.insert(0, project_root)


# Column x positions and row pitch used by the table fixtures (PDF points)
TABLE_COLUMNS = (72, 200, 328)
ROW_PITCH = 20
FONT_SIZE = 12

PROSE = [
    "Quarterly results were in line with the expectations set in the spring",
    "outlook, and the board approved the proposed dividend without changes.",
    "Operating costs fell slightly while revenue from services kept growing,",
    "which the management attributes to the new pricing model introduced",
    "early in the year. No further guidance was given for the coming period.",
]


def _insert_table(page, rows, top=100, columns=TABLE_COLUMNS):
    for row_idx, row in enumerate(rows):
        y = top + row_idx * ROW_PITCH
        for x, text in zip(columns, row):
            if text:
                page.insert_text(fitz.Point(x, y), text, fontsize=FONT_SIZE)


def _insert_prose(page, lines, top=100):
    for line_idx, line in enumerate(lines):
        page.insert_text(fitz.Point(72, top + line_idx * 16), line, fontsize=FONT_SIZE)


@pytest.fixture
def temp_dir():
    """Provide a temporary directory that is cleaned up after the test."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield tmpdir


@pytest.fixture
def build_pdf():
    """
    Provide a function that builds PDF bytes from page descriptions.

    Each page is a dict with optional keys:
        table: list of rows (lists of cell strings) drawn at TABLE_COLUMNS
        table_top: y of the first table row (top-left origin)
        prose: list of text lines drawn at the left margin
        prose_top: y of the first prose line
    """
    def _build(pages):
        doc = fitz.open()
        for layout in pages:
            page = doc.new_page(width=612, height=792)
            if "prose" in layout:
                _insert_prose(page, layout["prose"], layout.get("prose_top", 100))
            if "table" in layout:
                _insert_table(page, layout["table"], layout.get("table_top", 100))
        data = doc.tobytes()
        doc.close()
        return data
    return _build


@pytest.fixture
def scenario_a_rows():
    """The 3x3 Name/Age/City grid."""
    return [
        ["Name", "Age", "City"],
        ["Alice", "30", "NYC"],
        ["Bob", "25", "LA"],
    ]


@pytest.fixture
def table_pdf_bytes(build_pdf, scenario_a_rows):
    """A one-page PDF holding the 3x3 Name/Age/City table."""
    return build_pdf([{"table": scenario_a_rows}])


@pytest.fixture
def prose_pdf_bytes(build_pdf):
    """A one-page PDF holding only a paragraph of prose."""
    return build_pdf([{"prose": PROSE}])


@pytest.fixture
def multi_page_pdf_bytes(build_pdf):
    """A four-page PDF with one table per page, each with distinct content."""
    pages = []
    for page_no in range(4):
        pages.append({
            "table": [
                ["Item", "Qty", "Price"],
                [f"Widget{page_no}", str(page_no + 1), "9.99"],
                [f"Gadget{page_no}", str(page_no + 10), "19.50"],
                [f"Doohickey{page_no}", str(page_no + 100), "4.25"],
            ]
        })
    return build_pdf(pages)


@pytest.fixture
def malformed_page_pdf_bytes(scenario_a_rows):
    """
    A two-page PDF whose first page content stream claims Flate compression
    but holds plain bytes, and whose second page holds the 3x3 table.
    """
    doc = fitz.open()
    broken = doc.new_page(width=612, height=792)
    broken.insert_text(fitz.Point(72, 100), "placeholder", fontsize=FONT_SIZE)
    content_xrefs = broken.get_contents()

    valid = doc.new_page(width=612, height=792)
    _insert_table(valid, scenario_a_rows)

    doc.update_stream(content_xrefs[0], b"this is not a compressed stream", compress=False)
    doc.xref_set_key(content_xrefs[0], "Filter", "/FlateDecode")
    for xref in content_xrefs[1:]:
        doc.update_stream(xref, b"", compress=False)

    data = doc.tobytes()
    doc.close()
    return data


@pytest.fixture
def pdf_file(temp_dir, table_pdf_bytes):
    """Write the 3x3 table PDF to disk and return its path."""
    path = os.path.join(temp_dir, "people.pdf")
    with open(path, "wb") as f:
        f.write(table_pdf_bytes)
    return path
