"""
Excel export utilities for recovered tables.

Two encoders produce .xlsx workbooks with openpyxl:
- encode_single: one table on a single sheet named "Table"
- encode_consolidated: one sheet per table, in input order, with sanitized
  unique sheet names and a placeholder sheet for any table that fails

Cells that look numeric are written as numbers; everything else is text.
The first row is styled as a header only when it reads like one.
"""

import io
import math
import re
from dataclasses import dataclass
from typing import Iterable, List, Optional, Sequence, Tuple, Union

from openpyxl import Workbook
from openpyxl.cell.cell import ILLEGAL_CHARACTERS_RE
from openpyxl.styles import Alignment, Border, Font, PatternFill, Side
from openpyxl.utils import get_column_letter
from openpyxl.worksheet.worksheet import Worksheet

from models.data_models import ExtractedTable, TableData
from models.errors import EncodeError
from utils.logging_config import get_logger

logger = get_logger(__name__)

MAX_COLUMN_WIDTH = 60
MAX_SHEET_NAME_LENGTH = 31
SINGLE_SHEET_TITLE = "Table"

NUMERIC_RE = re.compile(r"^[+-]?(\d+(\.\d*)?|\.\d+)([eE][+-]?\d+)?$")
_FORBIDDEN_SHEET_CHARS_RE = re.compile(r"[\\/?*\[\]:]")
# Integers with more digits lose precision once Excel stores them as doubles
_MAX_INT_DIGITS = 15

TableLike = Union[TableData, ExtractedTable]

# -- Style definitions --
HEADER_FONT = Font(name="Calibri", size=11, bold=True, color="FFFFFF")
HEADER_FILL = PatternFill(start_color="4472C4", end_color="4472C4", fill_type="solid")
HEADER_ALIGNMENT = Alignment(horizontal="center", vertical="center", wrap_text=True)
CELL_ALIGNMENT = Alignment(vertical="top", wrap_text=True)
THIN_BORDER = Border(
    left=Side(style="thin"),
    right=Side(style="thin"),
    top=Side(style="thin"),
    bottom=Side(style="thin"),
)


@dataclass
class SheetFailure:
    """A table replaced by a placeholder sheet in a consolidated workbook."""
    position: int
    sheet_name: str
    reason: str


def is_numeric(text: str) -> bool:
    """Return True if ``text`` matches the numeric cell pattern."""
    return bool(NUMERIC_RE.match(text.strip()))


def convert_cell_value(text: str) -> Union[int, float, str, None]:
    """
    Convert one cell string into the value written to the sheet.

    Args:
        text: Cell text from a TableData.

    Returns:
        None for empty cells, an int or float for numeric text, otherwise the
        text with characters illegal in XML removed.

    Example:
        >>> convert_cell_value("30")
        30
        >>> convert_cell_value("1.5e3")
        1500.0
        >>> convert_cell_value("N/A")
        'N/A'
    """
    if text == "":
        return None
    stripped = text.strip()
    if NUMERIC_RE.match(stripped):
        mantissa = stripped.lstrip("+-")
        if "." not in mantissa and "e" not in mantissa.lower():
            if len(mantissa) <= _MAX_INT_DIGITS:
                return int(stripped)
        else:
            try:
                number = float(stripped)
            except (OverflowError, ValueError):
                number = math.nan
            if math.isfinite(number):
                return number
    return ILLEGAL_CHARACTERS_RE.sub("", text)


def _rows_of(table: TableLike) -> List[List[str]]:
    if isinstance(table, ExtractedTable):
        table = table.data
    if not isinstance(table, TableData):
        raise EncodeError(f"expected TableData, got {type(table).__name__}")
    return table.rows


def has_header_row(rows: Sequence[Sequence[str]]) -> bool:
    """
    Decide whether the first row should be styled as a header.

    True when there are at least two rows, no cell of the first row is
    numeric, and at least half of the columns are majority-numeric below it.
    """
    if len(rows) < 2:
        return False
    if any(is_numeric(cell) for cell in rows[0]):
        return False
    body = rows[1:]
    numeric_columns = 0
    for col_idx in range(len(rows[0])):
        numeric = sum(1 for row in body if is_numeric(row[col_idx]))
        if numeric * 2 > len(body):
            numeric_columns += 1
    return numeric_columns * 2 >= len(rows[0])


def _write_table(ws: Worksheet, rows: Sequence[Sequence[str]]) -> None:
    header = has_header_row(rows)
    widths = [0] * len(rows[0])

    for row_idx, row in enumerate(rows, 1):
        for col_idx, text in enumerate(row, 1):
            value = convert_cell_value(text)
            cell = ws.cell(row=row_idx, column=col_idx, value=value)
            if isinstance(value, str):
                # Keep text such as "=1+1" from turning into a formula
                cell.data_type = "s"
            if header and row_idx == 1:
                cell.font = HEADER_FONT
                cell.fill = HEADER_FILL
                cell.alignment = HEADER_ALIGNMENT
            else:
                cell.alignment = CELL_ALIGNMENT
            cell.border = THIN_BORDER
            if value is not None:
                widths[col_idx - 1] = max(widths[col_idx - 1], len(str(value)))

    # Auto-fit column widths
    for col_idx, max_length in enumerate(widths, 1):
        ws.column_dimensions[get_column_letter(col_idx)].width = min(
            max_length + 4, MAX_COLUMN_WIDTH
        )

    if header:
        ws.freeze_panes = "A2"


def _save(wb: Workbook) -> bytes:
    buffer = io.BytesIO()
    try:
        wb.save(buffer)
    except Exception as e:
        raise EncodeError(f"cannot save workbook: {e}") from e
    return buffer.getvalue()


def _write_file(path: str, content: bytes) -> None:
    try:
        with open(path, "wb") as f:
            f.write(content)
    except OSError as e:
        raise EncodeError(f"cannot write {path}: {e}") from e


def encode_single(table: TableLike) -> bytes:
    """
    Encode one table as a single-sheet workbook.

    Args:
        table: The TableData (or ExtractedTable) to encode.

    Returns:
        The .xlsx file content.

    Raises:
        EncodeError: If the input is not a table or the workbook cannot be
            saved.
    """
    rows = _rows_of(table)
    wb = Workbook()
    ws = wb.active
    ws.title = SINGLE_SHEET_TITLE
    try:
        _write_table(ws, rows)
    except EncodeError:
        raise
    except Exception as e:
        raise EncodeError(f"cannot write table: {e}") from e
    return _save(wb)


def export_table_to_excel(table: TableLike, output_path: str) -> None:
    """
    Write one table to an .xlsx file.

    Raises:
        EncodeError: If the workbook cannot be produced or written.
    """
    _write_file(output_path, encode_single(table))


def sanitize_sheet_name(name: str) -> str:
    """
    Make ``name`` acceptable as a worksheet title.

    Forbidden characters become underscores, surrounding apostrophes are
    removed, an empty result becomes "Sheet" and the name is cut to 31
    characters.
    """
    cleaned = ILLEGAL_CHARACTERS_RE.sub("", _FORBIDDEN_SHEET_CHARS_RE.sub("_", name))
    cleaned = cleaned.strip("'")
    if not cleaned:
        cleaned = "Sheet"
    return cleaned[:MAX_SHEET_NAME_LENGTH]


def unique_sheet_names(names: Iterable[str]) -> List[str]:
    """
    Sanitize names and resolve collisions.

    Comparison ignores case, as Excel does. A colliding name gets ``_2``,
    ``_3``, ... with the base shortened so the result still fits.

    Example:
        >>> unique_sheet_names(["Doc#0", "Doc#0", "doc#0"])
        ['Doc#0', 'Doc#0_2', 'doc#0_3']
    """
    used = set()
    result = []
    for name in names:
        base = sanitize_sheet_name(name)
        candidate = base
        counter = 2
        while candidate.lower() in used:
            suffix = f"_{counter}"
            candidate = base[:MAX_SHEET_NAME_LENGTH - len(suffix)] + suffix
            counter += 1
        used.add(candidate.lower())
        result.append(candidate)
    return result


def _default_names(
    count: int, names: Optional[Sequence[Optional[str]]], document_name: str
) -> List[str]:
    resolved = []
    for position in range(count):
        name = names[position] if names is not None and position < len(names) else None
        resolved.append(name if name else f"{document_name}#{position}")
    return resolved


def _write_placeholder(ws: Worksheet, position: int, reason: str) -> None:
    ws.cell(row=1, column=1, value=f"Table {position} could not be exported").font = Font(bold=True)
    ws.cell(row=2, column=1, value=ILLEGAL_CHARACTERS_RE.sub("", reason)).data_type = "s"
    ws.column_dimensions["A"].width = MAX_COLUMN_WIDTH


def encode_consolidated_with_report(
    tables: Sequence[TableLike],
    names: Optional[Sequence[Optional[str]]] = None,
    document_name: str = "Document",
) -> Tuple[bytes, List[SheetFailure]]:
    """
    Encode several tables into one workbook, one sheet each.

    Args:
        tables: Tables in the order their sheets should appear.
        names: Optional sheet names by position; missing or empty names
            default to ``"<document_name>#<position>"``.
        document_name: Prefix for default sheet names.

    Returns:
        (workbook bytes, failures). Each failed table is represented by a
        placeholder sheet under its intended name.

    Raises:
        EncodeError: If there are no tables or the workbook cannot be saved.
    """
    if not tables:
        raise EncodeError("no tables to export")

    sheet_names = unique_sheet_names(_default_names(len(tables), names, document_name))
    wb = Workbook()
    wb.remove(wb.active)
    failures: List[SheetFailure] = []

    for position, (table, sheet_name) in enumerate(zip(tables, sheet_names)):
        ws = wb.create_sheet(title=sheet_name)
        try:
            _write_table(ws, _rows_of(table))
        except Exception as e:
            reason = e.reason if isinstance(e, EncodeError) else str(e)
            logger.warning("Sheet %r replaced by a placeholder: %s", sheet_name, reason)
            failures.append(SheetFailure(position=position, sheet_name=sheet_name, reason=reason))
            wb.remove(ws)
            ws = wb.create_sheet(title=sheet_name, index=position)
            _write_placeholder(ws, position, reason)

    logger.info(
        "Encoded %d sheet(s), %d placeholder(s)", len(sheet_names), len(failures)
    )
    return _save(wb), failures


def encode_consolidated(
    tables: Sequence[TableLike],
    names: Optional[Sequence[Optional[str]]] = None,
    document_name: str = "Document",
) -> bytes:
    """
    Encode several tables into one workbook, one sheet each.

    See encode_consolidated_with_report for the naming rules.

    Raises:
        EncodeError: If there are no tables or the workbook cannot be saved.
    """
    content, _failures = encode_consolidated_with_report(tables, names, document_name)
    return content


def export_consolidated_to_excel(
    tables: Sequence[TableLike],
    output_path: str,
    names: Optional[Sequence[Optional[str]]] = None,
    document_name: str = "Document",
) -> List[SheetFailure]:
    """
    Write several tables to one .xlsx file.

    Returns:
        The tables replaced by placeholder sheets.

    Raises:
        EncodeError: If the workbook cannot be produced or written.
    """
    content, failures = encode_consolidated_with_report(tables, names, document_name)
    _write_file(output_path, content)
    return failures
