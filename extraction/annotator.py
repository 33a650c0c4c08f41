"""Per-table metadata for recovered grids."""

from models.data_models import TableData, TableInfo, TableRegion


def annotate(region: TableRegion, data: TableData, table_index: int) -> TableInfo:
    """
    Describe a reconstructed table.

    Args:
        region: The region the grid was built from.
        data: The reconstructed grid.
        table_index: Zero-based position of the table in the document.

    Returns:
        TableInfo with a one-based page number, the grid dimensions and the
        region's bounding box and confidence.
    """
    return TableInfo(
        page_number=region.page + 1,
        table_index=table_index,
        row_count=data.row_count,
        column_count=data.column_count,
        bbox=region.bbox,
        confidence=region.confidence,
    )
