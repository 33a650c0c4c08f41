"""
Data models for the PDF table extraction pipeline.

This module defines dataclass-based models for:
- TextFragment: A run of decoded glyphs with an absolute page position.
- TableRegion: A page rectangle hypothesised to contain a table.
- TableData: A validated rectangular grid of cell strings.
- TableInfo: Metadata describing one recovered table.
- ExtractedTable: A TableData paired with its TableInfo.
- PageFailure / ExtractionReport: The outcome of one extraction call.
- DocumentRecord / StoredTable / BatchFailure / BatchResult: Storage records.

Coordinates use the PDF convention: origin at the bottom-left of the page,
y growing upwards, units in points.
"""

from datetime import datetime, timezone
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence, Tuple

from models.errors import TableShapeError

BBox = Tuple[float, float, float, float]


def _bbox_from(value: Any) -> BBox:
    x0, y0, x1, y1 = (float(v) for v in value)
    return (x0, y0, x1, y1)


@dataclass
class TextFragment:
    """
    A contiguous run of glyphs sharing a baseline.

    Attributes:
        page: Zero-based page index.
        x: Left edge of the run in points.
        y: Baseline of the run in points (bottom-left origin).
        width: Horizontal advance of the run in points.
        height: Rendered font height in points.
        text: Decoded text of the run.
        font_size: Effective font size after all transformations.
    """
    page: int
    x: float
    y: float
    width: float
    height: float
    text: str
    font_size: float = 0.0

    @property
    def x1(self) -> float:
        return self.x + self.width

    @property
    def center_x(self) -> float:
        return self.x + self.width / 2.0

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "page": self.page,
            "x": self.x,
            "y": self.y,
            "width": self.width,
            "height": self.height,
            "text": self.text,
            "font_size": self.font_size,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "TextFragment":
        """Create a TextFragment from a dictionary."""
        return cls(
            page=data.get("page", 0),
            x=data.get("x", 0.0),
            y=data.get("y", 0.0),
            width=data.get("width", 0.0),
            height=data.get("height", 0.0),
            text=data.get("text", ""),
            font_size=data.get("font_size", 0.0),
        )


@dataclass
class TableRegion:
    """
    A detected table candidate on one page.

    Attributes:
        page: Zero-based page index.
        bbox: Bounding rectangle (x0, y0, x1, y1) around all fragments.
        rows: Row bands from top to bottom; each band is sorted left to right.
        gutters: Sorted x-midpoints of the column gutters inside the region.
        column_count: Modal number of occupied columns per row.
        confidence: Fraction of rows whose column count equals the modal count.
    """
    page: int
    bbox: BBox
    rows: List[List[TextFragment]] = field(default_factory=list)
    gutters: List[float] = field(default_factory=list)
    column_count: int = 0
    confidence: float = 0.0

    @property
    def fragments(self) -> List[TextFragment]:
        return [fragment for band in self.rows for fragment in band]

    @property
    def top(self) -> float:
        return self.bbox[3]

    @property
    def left(self) -> float:
        return self.bbox[0]

    @property
    def area(self) -> float:
        x0, y0, x1, y1 = self.bbox
        return max(0.0, x1 - x0) * max(0.0, y1 - y0)


@dataclass
class TableData:
    """
    A rectangular grid of cell strings.

    The grid is validated on construction: there must be at least one row,
    at least one column, every row must have the same length and every cell
    must be a string. Rows are copied so later changes to the caller's lists
    cannot break the invariant.

    Raises:
        TableShapeError: If the rows do not form a non-empty rectangle.
    """
    rows: List[List[str]]

    def __post_init__(self):
        if isinstance(self.rows, (str, bytes)) or not isinstance(self.rows, Sequence):
            raise TableShapeError("Table rows must be a sequence of rows")
        if any(isinstance(row, (str, bytes)) for row in self.rows):
            raise TableShapeError("Each table row must be a sequence of cells")
        rows = [list(row) for row in self.rows]
        if not rows:
            raise TableShapeError("A table needs at least one row")
        width = len(rows[0])
        if width == 0:
            raise TableShapeError("A table needs at least one column")
        for index, row in enumerate(rows):
            if len(row) != width:
                raise TableShapeError(
                    f"Row {index} has {len(row)} cells, expected {width}"
                )
            for cell in row:
                if not isinstance(cell, str):
                    raise TableShapeError(
                        f"Row {index} holds a non-string cell: {cell!r}"
                    )
        self.rows = rows

    @property
    def row_count(self) -> int:
        return len(self.rows)

    @property
    def column_count(self) -> int:
        return len(self.rows[0])

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {"rows": [list(row) for row in self.rows]}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "TableData":
        """Create a TableData from a dictionary, validating its shape."""
        return cls(rows=data.get("rows", []))


@dataclass
class TableInfo:
    """
    Metadata for one recovered table.

    Attributes:
        page_number: One-based page number the table was found on.
        table_index: Zero-based position of the table within the document.
        row_count: Number of rows in the grid.
        column_count: Number of columns in the grid.
        bbox: Region rectangle (x0, y0, x1, y1) in page points.
        confidence: Share of rows matching the modal column count, in [0, 1].
    """
    page_number: int
    table_index: int
    row_count: int
    column_count: int
    bbox: BBox = (0.0, 0.0, 0.0, 0.0)
    confidence: float = 0.0

    def __post_init__(self):
        if not 0.0 <= self.confidence <= 1.0:
            raise ValueError(f"Confidence must be within [0, 1], got {self.confidence}")
        self.bbox = _bbox_from(self.bbox)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "page_number": self.page_number,
            "table_index": self.table_index,
            "row_count": self.row_count,
            "column_count": self.column_count,
            "bbox": list(self.bbox),
            "confidence": self.confidence,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "TableInfo":
        """Create a TableInfo from a dictionary."""
        return cls(
            page_number=data.get("page_number", 1),
            table_index=data.get("table_index", 0),
            row_count=data.get("row_count", 0),
            column_count=data.get("column_count", 0),
            bbox=data.get("bbox", (0.0, 0.0, 0.0, 0.0)),
            confidence=data.get("confidence", 0.0),
        )


@dataclass
class ExtractedTable:
    """A recovered table and its metadata; the unit returned to callers."""
    data: TableData
    info: TableInfo

    @property
    def table_index(self) -> int:
        return self.info.table_index

    @property
    def page_number(self) -> int:
        return self.info.page_number

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "table_index": self.info.table_index,
            "data": self.data.to_dict(),
            "info": self.info.to_dict(),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ExtractedTable":
        """Create an ExtractedTable from a dictionary."""
        return cls(
            data=TableData.from_dict(data.get("data", {})),
            info=TableInfo.from_dict(data.get("info", {})),
        )


@dataclass
class PageFailure:
    """A page that was skipped because it could not be parsed."""
    page_number: int
    reason: str

    def to_dict(self) -> Dict[str, Any]:
        return {"page_number": self.page_number, "reason": self.reason}


@dataclass
class ExtractionReport:
    """
    The full outcome of one extraction call.

    Attributes:
        tables: Recovered tables ordered by page, then detection order.
        failures: Pages skipped because of parse errors.
        page_count: Number of pages in the document.
        cancelled: True when the call stopped early.
        cancelled_pages: One-based pages that produced nothing due to cancellation.
    """
    tables: List[ExtractedTable] = field(default_factory=list)
    failures: List[PageFailure] = field(default_factory=list)
    page_count: int = 0
    cancelled: bool = False
    cancelled_pages: List[int] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "tables": [table.to_dict() for table in self.tables],
            "failures": [failure.to_dict() for failure in self.failures],
            "page_count": self.page_count,
            "cancelled": self.cancelled,
            "cancelled_pages": list(self.cancelled_pages),
        }


def utc_timestamp() -> str:
    """Return the current time as UTC ISO-8601 with a ``Z`` suffix."""
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


@dataclass
class DocumentRecord:
    """
    A stored source document.

    Attributes:
        id: Store-assigned identifier.
        filename: Original file name.
        filesize: Size of the uploaded buffer in bytes.
        upload_date: UTC ISO-8601 timestamp of the upload.
    """
    id: int
    filename: str
    filesize: int
    upload_date: str = field(default_factory=utc_timestamp)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "id": self.id,
            "filename": self.filename,
            "filesize": self.filesize,
            "upload_date": self.upload_date,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "DocumentRecord":
        """Create a DocumentRecord from a dictionary."""
        return cls(
            id=data.get("id", 0),
            filename=data.get("filename", ""),
            filesize=data.get("filesize", 0),
            upload_date=data.get("upload_date", ""),
        )


@dataclass
class StoredTable:
    """An ExtractedTable as persisted, with its store identifiers."""
    id: int
    document_id: int
    table_index: int
    page_number: int
    data: TableData
    info: TableInfo

    def to_extracted(self) -> ExtractedTable:
        return ExtractedTable(data=self.data, info=self.info)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "id": self.id,
            "document_id": self.document_id,
            "table_index": self.table_index,
            "page_number": self.page_number,
            "table_data": self.data.to_dict(),
            "table_info": self.info.to_dict(),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "StoredTable":
        """Create a StoredTable from a dictionary."""
        return cls(
            id=data.get("id", 0),
            document_id=data.get("document_id", 0),
            table_index=data.get("table_index", 0),
            page_number=data.get("page_number", 1),
            data=TableData.from_dict(data.get("table_data", {})),
            info=TableInfo.from_dict(data.get("table_info", {})),
        )


@dataclass
class BatchFailure:
    """One table of a batch that the store refused."""
    table_index: Optional[int]
    reason: str


@dataclass
class BatchResult:
    """
    Result of appending a batch of tables to a store.

    Attributes:
        succeeded: Records that were stored.
        failures: Items that were rejected, with the reason.
    """
    succeeded: List[StoredTable] = field(default_factory=list)
    failures: List[BatchFailure] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.failures
