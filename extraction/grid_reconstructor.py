"""
Grid reconstruction: a TableRegion's fragments mapped onto rows and columns.

Column boundaries are the region's left edge, its gutter midpoints and its
right edge, giving N columns for N + 1 boundaries. Each fragment goes to the
column whose center is nearest its own center (exact ties go left). Rows
follow the region's bands from top to bottom; fragments sharing a cell are
joined left to right with single spaces and untouched cells stay empty.
"""

from typing import List, Sequence

from models.data_models import TableData, TableRegion
from models.errors import TableShapeError


def column_boundaries(x0: float, x1: float, gutters: Sequence[float]) -> List[float]:
    """Return ``[x0] + sorted(gutters) + [x1]``."""
    return [x0] + sorted(gutters) + [x1]


def column_centers(boundaries: Sequence[float]) -> List[float]:
    return [(left + right) / 2.0 for left, right in zip(boundaries, boundaries[1:])]


def assign_column(x: float, centers: Sequence[float]) -> int:
    """
    Index of the center nearest to ``x``.

    Centers are scanned left to right and only a strictly smaller distance
    replaces the current best, so exact ties favour the left column.
    """
    best = 0
    best_distance = abs(x - centers[0])
    for index in range(1, len(centers)):
        distance = abs(x - centers[index])
        if distance < best_distance:
            best = index
            best_distance = distance
    return best


def reconstruct_grid(region: TableRegion) -> TableData:
    """
    Build the cell grid for a region.

    Args:
        region: A qualified region with bands and gutters.

    Returns:
        TableData with one row per band and one column per boundary pair.

    Raises:
        TableShapeError: If the region has no rows or the grid is not
            rectangular.
    """
    if not region.rows:
        raise TableShapeError(f"Region on page {region.page + 1} has no rows")

    boundaries = column_boundaries(region.bbox[0], region.bbox[2], region.gutters)
    centers = column_centers(boundaries)
    column_count = len(centers)

    grid: List[List[str]] = []
    for band in region.rows:
        cells: List[List[str]] = [[] for _ in range(column_count)]
        for fragment in sorted(band, key=lambda f: f.x):
            cells[assign_column(fragment.center_x, centers)].append(fragment.text)
        grid.append([" ".join(parts) for parts in cells])

    if len(grid) != len(region.rows) or any(len(row) != column_count for row in grid):
        raise TableShapeError(
            f"Grid for page {region.page + 1} is not {len(region.rows)}x{column_count}"
        )
    return TableData(rows=grid)
