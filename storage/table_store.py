"""
Persistence for documents and their extracted tables.

TableStore is the contract the CLI (or any other front end) uses after an
extraction call returns: register the document, append its tables as one
batch, and read them back for export. Two implementations ship:
- InMemoryTableStore: dictionaries, lost when the process exits
- JsonFileTableStore: the same records saved to one JSON file with an
  atomic write after every change
"""

import json
import os
import tempfile
from abc import ABC, abstractmethod
from typing import Any, Callable, Dict, List, Optional, Sequence

from models.data_models import (
    BatchFailure,
    BatchResult,
    DocumentRecord,
    ExtractedTable,
    StoredTable,
    utc_timestamp,
)
from models.errors import StorageError, TableShapeError
from utils.logging_config import get_logger

logger = get_logger(__name__)

# Bump when the saved format changes in a breaking way
_STORE_VERSION = 1


class TableStore(ABC):
    """
    Abstract store of documents and their tables.

    Stores must be opened before use, either with ``open()`` / ``close()``
    or as a context manager. Lookups of unknown ids return None.
    """

    def __init__(self):
        self._is_open = False

    @property
    def is_open(self) -> bool:
        return self._is_open

    def open(self) -> "TableStore":
        self._is_open = True
        return self

    def close(self) -> None:
        self._is_open = False

    def __enter__(self) -> "TableStore":
        return self.open()

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def _require_open(self) -> None:
        if not self._is_open:
            raise StorageError(f"{type(self).__name__} is not open")

    @abstractmethod
    def create_document(self, filename: str, filesize: int) -> DocumentRecord:
        """Register a document and return its record with a new id."""

    @abstractmethod
    def get_document(self, document_id: int) -> Optional[DocumentRecord]:
        """Return the document with ``document_id``, or None."""

    @abstractmethod
    def list_documents(self) -> List[DocumentRecord]:
        """Return all documents, most recently uploaded first."""

    @abstractmethod
    def append_tables(self, document_id: int, tables: Sequence[ExtractedTable]) -> BatchResult:
        """
        Store a batch of tables for a document.

        Every item is checked on its own; accepted items are stored even when
        others in the batch are rejected.
        """

    @abstractmethod
    def get_table(self, table_id: int) -> Optional[StoredTable]:
        """Return the stored table with ``table_id``, or None."""

    @abstractmethod
    def get_tables_by_document(self, document_id: int) -> List[StoredTable]:
        """Return a document's tables ordered by table index."""


class InMemoryTableStore(TableStore):
    """TableStore keeping all records in dictionaries."""

    def __init__(self):
        super().__init__()
        self._documents: Dict[int, DocumentRecord] = {}
        self._tables: Dict[int, StoredTable] = {}
        self._next_document_id = 1
        self._next_table_id = 1

    def _changed(self) -> None:
        """Hook called after every successful mutation."""

    def _commit(self, rollback: Callable[[], None]) -> None:
        """Run the change hook; undo the in-memory change if it fails."""
        try:
            self._changed()
        except Exception:
            rollback()
            raise

    def create_document(self, filename: str, filesize: int) -> DocumentRecord:
        self._require_open()
        if filesize < 0:
            raise ValueError("filesize must not be negative")
        record = DocumentRecord(
            id=self._next_document_id,
            filename=filename,
            filesize=filesize,
            upload_date=utc_timestamp(),
        )
        self._documents[record.id] = record
        self._next_document_id += 1

        def rollback():
            del self._documents[record.id]
            self._next_document_id = record.id

        self._commit(rollback)
        logger.debug("Created document %d (%s)", record.id, filename)
        return record

    def get_document(self, document_id: int) -> Optional[DocumentRecord]:
        self._require_open()
        return self._documents.get(document_id)

    def list_documents(self) -> List[DocumentRecord]:
        self._require_open()
        return sorted(
            self._documents.values(),
            key=lambda doc: (doc.upload_date, doc.id),
            reverse=True,
        )

    def _check_item(self, item: Any, taken: set) -> Optional[str]:
        if not isinstance(item, ExtractedTable):
            return f"invalid payload: expected ExtractedTable, got {type(item).__name__}"
        if item.table_index < 0:
            return f"invalid payload: negative table index {item.table_index}"
        if item.data.row_count != item.info.row_count or item.data.column_count != item.info.column_count:
            return "invalid payload: table info does not match table data"
        if item.table_index in taken:
            return f"duplicate table index {item.table_index}"
        return None

    def append_tables(self, document_id: int, tables: Sequence[ExtractedTable]) -> BatchResult:
        self._require_open()
        result = BatchResult()
        if document_id not in self._documents:
            for item in tables:
                index = getattr(item, "table_index", None)
                result.failures.append(BatchFailure(index, f"unknown document {document_id}"))
            return result

        first_table_id = self._next_table_id
        taken = {t.table_index for t in self._tables.values() if t.document_id == document_id}
        for item in tables:
            reason = self._check_item(item, taken)
            if reason is not None:
                index = item.table_index if isinstance(item, ExtractedTable) else None
                result.failures.append(BatchFailure(index, reason))
                continue
            stored = StoredTable(
                id=self._next_table_id,
                document_id=document_id,
                table_index=item.table_index,
                page_number=item.page_number,
                data=item.data,
                info=item.info,
            )
            self._tables[stored.id] = stored
            self._next_table_id += 1
            taken.add(item.table_index)
            result.succeeded.append(stored)

        if result.succeeded:
            def rollback():
                for stored_table in result.succeeded:
                    del self._tables[stored_table.id]
                self._next_table_id = first_table_id

            self._commit(rollback)
        if result.failures:
            logger.warning(
                "Rejected %d of %d table(s) for document %d",
                len(result.failures), len(tables), document_id,
            )
        return result

    def get_table(self, table_id: int) -> Optional[StoredTable]:
        self._require_open()
        return self._tables.get(table_id)

    def get_tables_by_document(self, document_id: int) -> List[StoredTable]:
        self._require_open()
        tables = [t for t in self._tables.values() if t.document_id == document_id]
        return sorted(tables, key=lambda t: t.table_index)


class JsonFileTableStore(InMemoryTableStore):
    """
    TableStore persisted to a single JSON file.

    The file is read on ``open()`` (a missing file means an empty store) and
    rewritten atomically after every change: the new content goes to a
    sibling temp file which then replaces the original with ``os.replace``,
    so a crash mid-write never leaves a corrupted store.
    """

    def __init__(self, file_path: str):
        super().__init__()
        self.file_path = file_path

    def open(self) -> "JsonFileTableStore":
        if os.path.exists(self.file_path):
            self._load()
        super().open()
        logger.debug(
            "Opened store %s with %d document(s)", self.file_path, len(self._documents)
        )
        return self

    def to_dict(self) -> Dict[str, Any]:
        """Convert the store content to a dictionary for JSON serialization."""
        return {
            "version": _STORE_VERSION,
            "next_document_id": self._next_document_id,
            "next_table_id": self._next_table_id,
            "documents": [doc.to_dict() for doc in self._documents.values()],
            "tables": [table.to_dict() for table in self._tables.values()],
        }

    def _load(self) -> None:
        try:
            with open(self.file_path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            raise StorageError(f"Cannot read store {self.file_path}: {e}") from e
        if not isinstance(data, dict):
            raise StorageError(f"Store {self.file_path} does not contain a JSON object")

        saved_version = data.get("version", 1)
        if isinstance(saved_version, bool) or not isinstance(saved_version, int):
            raise StorageError(
                f"Store {self.file_path} has an invalid version: {saved_version!r}"
            )
        if saved_version > _STORE_VERSION:
            raise StorageError(
                f"Store file was saved with a newer version of this application "
                f"(file version {saved_version}, current version {_STORE_VERSION})"
            )
        try:
            documents = [DocumentRecord.from_dict(d) for d in data.get("documents", [])]
            tables = [StoredTable.from_dict(t) for t in data.get("tables", [])]
            next_document_id = int(data.get("next_document_id", 1))
            next_table_id = int(data.get("next_table_id", 1))
            for record in [*documents, *tables]:
                if isinstance(record.id, bool) or not isinstance(record.id, int):
                    raise ValueError(f"invalid id {record.id!r}")
        except (AttributeError, TypeError, ValueError, TableShapeError) as e:
            raise StorageError(f"Store {self.file_path} holds an invalid record: {e}") from e

        self._documents = {doc.id: doc for doc in documents}
        self._tables = {table.id: table for table in tables}
        self._next_document_id = max(next_document_id, max(self._documents, default=0) + 1)
        self._next_table_id = max(next_table_id, max(self._tables, default=0) + 1)

    def _changed(self) -> None:
        self.save()

    def save(self) -> None:
        """
        Write the store to its file atomically.

        Raises:
            StorageError: If the file cannot be written.
        """
        target_dir = os.path.dirname(os.path.abspath(self.file_path))
        try:
            fd, tmp_path = tempfile.mkstemp(dir=target_dir, suffix=".tmp")
        except OSError as e:
            raise StorageError(f"Cannot write store {self.file_path}: {e}") from e
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(self.to_dict(), f, indent=2, ensure_ascii=False)
            os.replace(tmp_path, self.file_path)
        except Exception as e:
            # Clean up the temp file if anything went wrong
            try:
                os.unlink(tmp_path)
            except OSError:
                pass
            raise StorageError(f"Cannot write store {self.file_path}: {e}") from e
