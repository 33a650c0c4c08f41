"""
Test cases for table storage (storage/table_store.py).

Tests:
- Document creation, lookup and newest-first listing
- Batch appends with per-item failures
- Table lookup and ordering by table index
- Open/close lifecycle and context manager
- JSON persistence: reload, atomic write, version check, corrupt files
- Failed saves leave memory unchanged
"""

import json
import os
import shutil
import pytest

from models.data_models import ExtractedTable, TableData, TableInfo
from models.errors import StorageError
from storage.table_store import InMemoryTableStore, JsonFileTableStore


def make_table(index, page=1, rows=None):
    rows = rows or [["a", "b"], [str(index), "x"]]
    data = TableData(rows=rows)
    info = TableInfo(
        page_number=page,
        table_index=index,
        row_count=data.row_count,
        column_count=data.column_count,
        bbox=(0.0, 0.0, 100.0, 50.0),
        confidence=1.0,
    )
    return ExtractedTable(data=data, info=info)


@pytest.fixture(params=["memory", "json"])
def store(request, temp_dir):
    """Provide an open store of each implementation."""
    if request.param == "memory":
        instance = InMemoryTableStore()
    else:
        instance = JsonFileTableStore(os.path.join(temp_dir, "store.json"))
    instance.open()
    yield instance
    instance.close()


class TestDocuments:
    """Tests for document records."""

    def test_create_and_get(self, store):
        """Test a created document can be looked up."""
        record = store.create_document("report.pdf", 1234)
        assert record.id == 1
        assert record.upload_date.endswith("Z")
        assert store.get_document(record.id) == record

    def test_unknown_document(self, store):
        """Test unknown ids return None."""
        assert store.get_document(99) is None

    def test_list_newest_first(self, store):
        """Test documents are listed most recent first."""
        first = store.create_document("a.pdf", 1)
        second = store.create_document("b.pdf", 2)
        first.upload_date = "2024-01-01T00:00:00Z"
        second.upload_date = "2025-01-01T00:00:00Z"
        assert [d.filename for d in store.list_documents()] == ["b.pdf", "a.pdf"]

    def test_list_same_timestamp_uses_id(self, store):
        """Test documents created in the same second keep creation order reversed."""
        store.create_document("a.pdf", 1)
        store.create_document("b.pdf", 2)
        for doc in store.list_documents():
            doc.upload_date = "2025-01-01T00:00:00Z"
        assert [d.filename for d in store.list_documents()] == ["b.pdf", "a.pdf"]

    def test_negative_size_rejected(self, store):
        """Test a negative file size is invalid."""
        with pytest.raises(ValueError):
            store.create_document("a.pdf", -1)


class TestTables:
    """Tests for appending and reading tables."""

    def test_append_and_read(self, store):
        """Test a batch is stored and read back in index order."""
        doc = store.create_document("a.pdf", 10)
        result = store.append_tables(doc.id, [make_table(1, page=2), make_table(0)])
        assert result.ok
        assert len(result.succeeded) == 2
        tables = store.get_tables_by_document(doc.id)
        assert [t.table_index for t in tables] == [0, 1]
        assert tables[1].page_number == 2
        assert store.get_table(tables[0].id).data.rows == [["a", "b"], ["0", "x"]]

    def test_unknown_document_fails_every_item(self, store):
        """Test appending to a missing document rejects the whole batch."""
        result = store.append_tables(42, [make_table(0), make_table(1)])
        assert not result.ok
        assert result.succeeded == []
        assert [f.table_index for f in result.failures] == [0, 1]
        assert "unknown document" in result.failures[0].reason

    def test_duplicate_index(self, store):
        """Test duplicates within a batch and across batches are rejected."""
        doc = store.create_document("a.pdf", 10)
        first = store.append_tables(doc.id, [make_table(0), make_table(0)])
        assert len(first.succeeded) == 1
        assert first.failures[0].reason == "duplicate table index 0"
        second = store.append_tables(doc.id, [make_table(0), make_table(1)])
        assert [t.table_index for t in second.succeeded] == [1]
        assert len(second.failures) == 1

    def test_invalid_payload(self, store):
        """Test items that are not tables are reported, others stored."""
        doc = store.create_document("a.pdf", 10)
        result = store.append_tables(doc.id, [{"rows": []}, make_table(0)])
        assert len(result.succeeded) == 1
        assert result.failures[0].table_index is None
        assert "invalid payload" in result.failures[0].reason

    def test_mismatched_info(self, store):
        """Test info that disagrees with the data is an invalid payload."""
        doc = store.create_document("a.pdf", 10)
        table = make_table(0)
        table.info.row_count = 9
        result = store.append_tables(doc.id, [table])
        assert not result.ok

    def test_tables_are_per_document(self, store):
        """Test the same index can be used by different documents."""
        a = store.create_document("a.pdf", 1)
        b = store.create_document("b.pdf", 1)
        assert store.append_tables(a.id, [make_table(0)]).ok
        assert store.append_tables(b.id, [make_table(0)]).ok
        assert len(store.get_tables_by_document(a.id)) == 1
        assert store.get_tables_by_document(99) == []

    def test_unknown_table(self, store):
        """Test unknown table ids return None."""
        assert store.get_table(5) is None


class TestLifecycle:
    """Tests for open/close."""

    def test_closed_store_raises(self):
        """Test use before open raises StorageError."""
        store = InMemoryTableStore()
        with pytest.raises(StorageError):
            store.create_document("a.pdf", 1)

    def test_context_manager(self):
        """Test the context manager opens and closes the store."""
        with InMemoryTableStore() as store:
            assert store.is_open
            store.create_document("a.pdf", 1)
        assert not store.is_open
        with pytest.raises(StorageError):
            store.list_documents()


class TestJsonFileTableStore:
    """Tests for JSON persistence."""

    def test_reload(self, temp_dir):
        """Test records survive closing and reopening."""
        path = os.path.join(temp_dir, "store.json")
        with JsonFileTableStore(path) as store:
            doc = store.create_document("a.pdf", 10)
            store.append_tables(doc.id, [make_table(0), make_table(1, page=3)])

        with JsonFileTableStore(path) as store:
            assert store.get_document(doc.id).filename == "a.pdf"
            tables = store.get_tables_by_document(doc.id)
            assert [t.page_number for t in tables] == [1, 3]
            # Ids keep counting after reload
            assert store.create_document("b.pdf", 5).id == doc.id + 1

    def test_file_format(self, temp_dir):
        """Test the saved file carries a version and table payloads."""
        path = os.path.join(temp_dir, "store.json")
        with JsonFileTableStore(path) as store:
            doc = store.create_document("a.pdf", 10)
            store.append_tables(doc.id, [make_table(0)])
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)
        assert data["version"] == 1
        assert data["tables"][0]["table_data"]["rows"] == [["a", "b"], ["0", "x"]]
        assert not [name for name in os.listdir(temp_dir) if name.endswith(".tmp")]

    def test_missing_file_is_empty(self, temp_dir):
        """Test opening a store whose file does not exist yet."""
        with JsonFileTableStore(os.path.join(temp_dir, "new.json")) as store:
            assert store.list_documents() == []

    def test_newer_version_rejected(self, temp_dir):
        """Test a file from a newer version raises StorageError."""
        path = os.path.join(temp_dir, "store.json")
        with open(path, "w", encoding="utf-8") as f:
            json.dump({"version": 99, "documents": [], "tables": []}, f)
        with pytest.raises(StorageError, match="newer version"):
            JsonFileTableStore(path).open()

    def test_corrupt_file(self, temp_dir):
        """Test invalid JSON raises StorageError."""
        path = os.path.join(temp_dir, "store.json")
        with open(path, "w", encoding="utf-8") as f:
            f.write("{not json")
        with pytest.raises(StorageError):
            JsonFileTableStore(path).open()

    def test_invalid_record(self, temp_dir):
        """Test a stored table breaking the grid invariant raises StorageError."""
        path = os.path.join(temp_dir, "store.json")
        with open(path, "w", encoding="utf-8") as f:
            json.dump({
                "version": 1,
                "documents": [],
                "tables": [{"id": 1, "document_id": 1, "table_data": {"rows": [["a"], []]}}],
            }, f)
        with pytest.raises(StorageError, match="invalid record"):
            JsonFileTableStore(path).open()

    def test_invalid_version_type(self, temp_dir):
        """Test a non-integer version raises StorageError."""
        path = os.path.join(temp_dir, "store.json")
        with open(path, "w", encoding="utf-8") as f:
            json.dump({"version": "two", "documents": [], "tables": []}, f)
        with pytest.raises(StorageError, match="invalid version"):
            JsonFileTableStore(path).open()

    @pytest.mark.parametrize("documents", [["report.pdf"], [{"id": "one"}], {"id": 1}])
    def test_malformed_document_records(self, temp_dir, documents):
        """Test records of the wrong shape raise StorageError."""
        path = os.path.join(temp_dir, "store.json")
        with open(path, "w", encoding="utf-8") as f:
            json.dump({"version": 1, "documents": documents, "tables": []}, f)
        with pytest.raises(StorageError, match="invalid record"):
            JsonFileTableStore(path).open()


class TestFailedSave:
    """Tests for writes that cannot reach the disk."""

    @pytest.fixture
    def store_dir(self, temp_dir):
        path = os.path.join(temp_dir, "data")
        os.makedirs(path)
        return path

    def test_failed_create_leaves_no_document(self, store_dir):
        """Test a document whose save failed cannot be read back and its id is reused."""
        with JsonFileTableStore(os.path.join(store_dir, "store.json")) as store:
            shutil.rmtree(store_dir)
            with pytest.raises(StorageError):
                store.create_document("a.pdf", 10)
            assert store.get_document(1) is None
            assert store.list_documents() == []

            os.makedirs(store_dir)
            assert store.create_document("a.pdf", 10).id == 1

    def test_failed_append_leaves_no_tables(self, store_dir):
        """Test a batch whose save failed is not kept in memory."""
        with JsonFileTableStore(os.path.join(store_dir, "store.json")) as store:
            doc = store.create_document("a.pdf", 10)
            shutil.rmtree(store_dir)
            with pytest.raises(StorageError):
                store.append_tables(doc.id, [make_table(0), make_table(1)])
            assert store.get_tables_by_document(doc.id) == []
            assert store.get_table(1) is None

            os.makedirs(store_dir)
            result = store.append_tables(doc.id, [make_table(0)])
            assert result.ok
            assert result.succeeded[0].id == 1
