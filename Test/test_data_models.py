"""
Test cases for data models (models/data_models.py) and errors (models/errors.py).

Tests:
- TextFragment geometry helpers and serialization
- TableData rectangular invariant and copying
- TableInfo confidence validation and serialization
- ExtractedTable / StoredTable conversion
- Error hierarchy and messages
"""

import pickle

import pytest

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
    utc_timestamp,
)
from models.errors import (
    EncodeError,
    ParseError,
    TableExtractionError,
    TableShapeError,
    UnsupportedDocumentError,
)


class TestTextFragment:
    """Tests for the TextFragment data model."""

    def test_geometry(self):
        """Test the right edge and center helpers."""
        fragment = TextFragment(page=0, x=10.0, y=700.0, width=20.0, height=12.0, text="Hi")
        assert fragment.x1 == 30.0
        assert fragment.center_x == 20.0

    def test_serialization_roundtrip(self):
        """Test to_dict / from_dict preserve every field."""
        fragment = TextFragment(page=2, x=1.5, y=2.5, width=3.0, height=4.0, text="A", font_size=9.0)
        assert TextFragment.from_dict(fragment.to_dict()) == fragment

    def test_from_dict_missing_keys(self):
        """Test from_dict uses defaults for missing keys."""
        fragment = TextFragment.from_dict({"text": "x"})
        assert fragment.page == 0
        assert fragment.width == 0.0
        assert fragment.text == "x"


class TestTableRegion:
    """Tests for the TableRegion data model."""

    def test_properties(self):
        """Test fragments, top, left and area."""
        a = TextFragment(page=0, x=0, y=10, width=5, height=5, text="a")
        b = TextFragment(page=0, x=20, y=10, width=5, height=5, text="b")
        region = TableRegion(page=0, bbox=(0.0, 10.0, 25.0, 15.0), rows=[[a, b]])
        assert region.fragments == [a, b]
        assert region.top == 15.0
        assert region.left == 0.0
        assert region.area == 125.0

    def test_degenerate_area(self):
        """Test an inverted bbox has zero area."""
        region = TableRegion(page=0, bbox=(10.0, 10.0, 5.0, 20.0))
        assert region.area == 0.0


class TestTableData:
    """Tests for the TableData rectangular invariant."""

    def test_valid_grid(self):
        """Test a rectangular grid is accepted."""
        data = TableData(rows=[["a", "b"], ["c", ""]])
        assert data.row_count == 2
        assert data.column_count == 2

    def test_rows_are_copied(self):
        """Test later changes to the caller's lists do not reach the table."""
        rows = [["a", "b"], ["c", "d"]]
        data = TableData(rows=rows)
        rows[0].append("e")
        rows.append(["x", "y"])
        assert data.rows == [["a", "b"], ["c", "d"]]

    def test_empty_rows_rejected(self):
        """Test a table needs at least one row."""
        with pytest.raises(TableShapeError):
            TableData(rows=[])

    def test_empty_columns_rejected(self):
        """Test a table needs at least one column."""
        with pytest.raises(TableShapeError):
            TableData(rows=[[]])

    def test_ragged_rows_rejected(self):
        """Test rows of different length are rejected."""
        with pytest.raises(TableShapeError, match="Row 1"):
            TableData(rows=[["a", "b"], ["c"]])

    def test_non_string_cell_rejected(self):
        """Test every cell must be a string."""
        with pytest.raises(TableShapeError):
            TableData(rows=[["a", 1]])

    def test_string_rows_rejected(self):
        """Test a bare string is not mistaken for a row of characters."""
        with pytest.raises(TableShapeError):
            TableData(rows=["abc", "def"])

    def test_shape_error_is_value_error(self):
        """Test TableShapeError can be caught as ValueError."""
        with pytest.raises(ValueError):
            TableData(rows=[])

    def test_serialization_roundtrip(self):
        """Test to_dict / from_dict keep the grid."""
        data = TableData(rows=[["Name", "Age"], ["Alice", "30"]])
        assert TableData.from_dict(data.to_dict()) == data


class TestTableInfo:
    """Tests for the TableInfo data model."""

    def test_confidence_out_of_range(self):
        """Test confidence outside [0, 1] is rejected."""
        with pytest.raises(ValueError):
            TableInfo(page_number=1, table_index=0, row_count=1, column_count=1, confidence=1.5)
        with pytest.raises(ValueError):
            TableInfo(page_number=1, table_index=0, row_count=1, column_count=1, confidence=-0.1)

    def test_bbox_normalised_to_floats(self):
        """Test a list bbox becomes a tuple of floats."""
        info = TableInfo(page_number=1, table_index=0, row_count=1, column_count=1, bbox=[1, 2, 3, 4])
        assert info.bbox == (1.0, 2.0, 3.0, 4.0)

    def test_serialization_roundtrip(self):
        """Test to_dict / from_dict preserve every field."""
        info = TableInfo(
            page_number=3, table_index=5, row_count=4, column_count=2,
            bbox=(72.0, 600.0, 300.0, 700.0), confidence=0.75,
        )
        assert TableInfo.from_dict(info.to_dict()) == info


class TestExtractedTable:
    """Tests for ExtractedTable and the storage records."""

    def _table(self):
        data = TableData(rows=[["a", "b"], ["1", "2"]])
        info = TableInfo(page_number=2, table_index=7, row_count=2, column_count=2, confidence=1.0)
        return ExtractedTable(data=data, info=info)

    def test_index_and_page(self):
        """Test the shortcut properties."""
        table = self._table()
        assert table.table_index == 7
        assert table.page_number == 2

    def test_serialization_roundtrip(self):
        """Test to_dict / from_dict preserve data and info."""
        table = self._table()
        assert ExtractedTable.from_dict(table.to_dict()) == table

    def test_stored_table_roundtrip(self):
        """Test StoredTable keys and conversion back to ExtractedTable."""
        table = self._table()
        stored = StoredTable(
            id=1, document_id=4, table_index=7, page_number=2,
            data=table.data, info=table.info,
        )
        data = stored.to_dict()
        assert "table_data" in data
        assert "table_info" in data
        assert StoredTable.from_dict(data) == stored
        assert stored.to_extracted() == table

    def test_document_record_timestamp(self):
        """Test new documents carry a UTC timestamp with a Z suffix."""
        record = DocumentRecord(id=1, filename="a.pdf", filesize=10)
        assert record.upload_date.endswith("Z")
        assert DocumentRecord.from_dict(record.to_dict()) == record
        assert utc_timestamp().endswith("Z")

    def test_batch_result_ok(self):
        """Test BatchResult.ok reflects the failure list."""
        result = BatchResult()
        assert result.ok
        result.failures.append(BatchFailure(0, "duplicate table index 0"))
        assert not result.ok

    def test_report_to_dict(self):
        """Test ExtractionReport serializes tables and failures."""
        report = ExtractionReport(
            tables=[self._table()],
            failures=[PageFailure(page_number=1, reason="bad")],
            page_count=2,
        )
        data = report.to_dict()
        assert data["page_count"] == 2
        assert data["failures"] == [{"page_number": 1, "reason": "bad"}]
        assert len(data["tables"]) == 1
        assert data["cancelled"] is False


class TestErrors:
    """Tests for the error hierarchy."""

    def test_parse_error_message(self):
        """Test ParseError reports a one-based page number."""
        error = ParseError(2, "unterminated string")
        assert error.page == 2
        assert error.reason == "unterminated string"
        assert "page 3" in str(error)

    def test_parse_error_with_page(self):
        """Test binding a page to an unbound ParseError."""
        error = ParseError(None, "bad operand").with_page(0)
        assert error.page == 0
        assert "page 1" in str(error)

    def test_errors_survive_pickling(self):
        """Test errors keep their fields when sent between processes."""
        error = pickle.loads(pickle.dumps(ParseError(3, "bad stream")))
        assert error.page == 3
        assert error.reason == "bad stream"
        encode_error = pickle.loads(pickle.dumps(EncodeError("disk full")))
        assert encode_error.reason == "disk full"

    def test_hierarchy(self):
        """Test every error derives from TableExtractionError."""
        for error in (
            ParseError(0, "x"),
            UnsupportedDocumentError("x"),
            EncodeError("x"),
            TableShapeError("x"),
        ):
            assert isinstance(error, TableExtractionError)
