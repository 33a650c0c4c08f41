"""
Error types for the table extraction pipeline.

The hierarchy mirrors how far a failure reaches:
- ParseError: one page could not be decoded; the page is skipped.
- UnsupportedDocumentError: the whole document is unreadable.
- EncodeError: one workbook request failed.
- TableShapeError: a table grid broke the rectangular invariant.
- StorageError: the table store could not be read or written.
"""

from typing import Optional


class TableExtractionError(Exception):
    """Base class for all errors raised by this package."""


class ParseError(TableExtractionError):
    """
    A single page could not be parsed.

    Attributes:
        page: Zero-based page index, or None when not yet known.
        reason: Human readable description of the failure.
    """

    def __init__(self, page: Optional[int], reason: str):
        self.page = page
        self.reason = reason
        where = f"page {page + 1}" if page is not None else "page"
        super().__init__(f"Cannot parse {where}: {reason}")

    def __reduce__(self):
        # Rebuilt from (page, reason) when sent back from a worker process
        return (type(self), (self.page, self.reason))

    def with_page(self, page: int) -> "ParseError":
        """Return a copy of this error bound to ``page``."""
        return ParseError(page, self.reason)


class UnsupportedDocumentError(TableExtractionError):
    """The document cannot be read at the container level."""

    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(f"Unsupported document: {reason}")

    def __reduce__(self):
        return (type(self), (self.reason,))


class EncodeError(TableExtractionError):
    """A workbook could not be produced."""

    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(f"Cannot encode workbook: {reason}")

    def __reduce__(self):
        return (type(self), (self.reason,))


class TableShapeError(TableExtractionError, ValueError):
    """Table rows do not form a non-empty rectangle."""


class StorageError(TableExtractionError):
    """The table store failed to load, save or look up records."""
