"""
Data models for the PDF table extraction pipeline.

This package contains the dataclasses passed between pipeline stages and
returned to callers, plus the error hierarchy.
"""

from models.data_models import (
    BatchFailure,
    BatchResult,
    DocumentRecord,
    ExtractedTable,
    ExtractionReport,
    PageFailure,
    StoredTable,
    TableData,
    TableInfo,
    TableRegion,
    TextFragment,
)
from models.errors import (
    EncodeError,
    ParseError,
    StorageError,
    TableExtractionError,
    TableShapeError,
    UnsupportedDocumentError,
)

__all__ = [
    "BatchFailure",
    "BatchResult",
    "DocumentRecord",
    "ExtractedTable",
    "ExtractionReport",
    "PageFailure",
    "StoredTable",
    "TableData",
    "TableInfo",
    "TableRegion",
    "TextFragment",
    "EncodeError",
    "ParseError",
    "StorageError",
    "TableExtractionError",
    "TableShapeError",
    "UnsupportedDocumentError",
]
