"""
Table region detection from positioned text fragments.

Steps for one page:
1. Row clustering: fragments sorted by descending y are grouped into row
   bands using a tolerance derived from the median font size. Bands far
   apart vertically start a new block.
2. Gutter detection: for each window of ``min_rows_for_table`` consecutive
   bands, the horizontal extents of all fragments are unioned; every
   internal empty interval wider than ``min_gutter_width`` is a gutter.
3. Qualification: consecutive windows with gutters form a candidate
   region, accepted when it has enough rows, at least two columns and a
   strict majority of rows matching the modal column count.
4. Confidence: share of rows matching the modal column count.
5. Merging: regions overlapping by more than ``overlap_threshold`` of the
   smaller area are merged.
"""

import statistics
from collections import Counter
from typing import List, Optional, Sequence, Tuple

from extraction.config import DetectionConfig
from extraction.grid_reconstructor import assign_column, column_boundaries, column_centers
from models.data_models import BBox, TableRegion, TextFragment
from utils.logging_config import get_logger

logger = get_logger(__name__)

Band = List[TextFragment]


def _median_font_size(fragments: Sequence[TextFragment]) -> float:
    sizes = [f.font_size or f.height for f in fragments if (f.font_size or f.height) > 0]
    if not sizes:
        return 10.0
    return float(statistics.median(sizes))


def cluster_rows(
    fragments: Sequence[TextFragment], config: DetectionConfig
) -> List[List[Band]]:
    """
    Group fragments into row bands, split into vertically separated blocks.

    Args:
        fragments: Fragments of one page.
        config: Detection thresholds.

    Returns:
        List of blocks; each block is a top-to-bottom list of bands and each
        band is sorted left to right.
    """
    if not fragments:
        return []

    font_size = _median_font_size(fragments)
    tolerance = font_size * config.line_tolerance_factor
    max_gap = font_size * config.max_row_gap_factor

    ordered = sorted(fragments, key=lambda f: (-f.y, f.x))
    bands: List[Band] = []
    band_y = None
    for fragment in ordered:
        if band_y is not None and band_y - fragment.y < tolerance:
            bands[-1].append(fragment)
        else:
            bands.append([fragment])
            band_y = fragment.y

    blocks: List[List[Band]] = []
    previous_y = None
    for band in bands:
        band.sort(key=lambda f: f.x)
        top_y = max(f.y for f in band)
        if previous_y is None or previous_y - top_y > max_gap:
            blocks.append([])
        blocks[-1].append(band)
        previous_y = min(f.y for f in band)
    return blocks


def find_gutters(bands: Sequence[Band], min_width: float) -> List[Tuple[float, float]]:
    """
    Find empty vertical intervals across a set of bands.

    Args:
        bands: Row bands to union.
        min_width: Narrowest interval reported.

    Returns:
        Sorted (start, end) intervals lying strictly between the leftmost and
        rightmost covered x, wider than ``min_width``.
    """
    extents = sorted((f.x, f.x1) for band in bands for f in band)
    if not extents:
        return []
    gutters = []
    covered_to = extents[0][1]
    for start, end in extents[1:]:
        if start - covered_to > min_width:
            gutters.append((covered_to, start))
        covered_to = max(covered_to, end)
    return gutters


def _cluster_midpoints(midpoints: List[float], min_width: float) -> List[float]:
    """Average midpoints closer than ``min_width`` to each other."""
    clusters: List[List[float]] = []
    for value in sorted(midpoints):
        if clusters and value - clusters[-1][-1] < min_width:
            clusters[-1].append(value)
        else:
            clusters.append([value])
    return [sum(cluster) / len(cluster) for cluster in clusters]


def _bbox(bands: Sequence[Band]) -> BBox:
    fragments = [f for band in bands for f in band]
    return (
        min(f.x for f in fragments),
        min(f.y for f in fragments),
        max(f.x1 for f in fragments),
        max(f.y + f.height for f in fragments),
    )


def occupied_columns(band: Band, centers: Sequence[float]) -> int:
    """Count the distinct columns a band's fragments are assigned to."""
    return len({assign_column(fragment.center_x, centers) for fragment in band})


def prune_empty_columns(bands: Sequence[Band], bbox: BBox, gutters: List[float]) -> List[float]:
    """
    Drop gutters that delimit a column no fragment is assigned to.

    Two gutters around an empty inner column collapse into their mean; an
    empty edge column loses its single inner gutter.
    """
    gutters = sorted(gutters)
    fragments = [f for band in bands for f in band]
    while gutters:
        centers = column_centers(column_boundaries(bbox[0], bbox[2], gutters))
        used = {assign_column(f.center_x, centers) for f in fragments}
        empty = [index for index in range(len(centers)) if index not in used]
        if not empty:
            break
        index = empty[0]
        if index == 0:
            gutters = gutters[1:]
        elif index == len(centers) - 1:
            gutters = gutters[:-1]
        else:
            mean = (gutters[index - 1] + gutters[index]) / 2.0
            gutters = gutters[:index - 1] + [mean] + gutters[index + 1:]
    return gutters


def qualify_region(
    page: int,
    bands: List[Band],
    gutters: List[float],
    config: DetectionConfig,
) -> Optional[TableRegion]:
    """
    Build a TableRegion when the bands look like a table.

    A region qualifies with at least ``min_rows_for_table`` rows, at least
    one gutter, a modal column count of two or more, and a strict majority
    of rows matching that modal count.

    Returns:
        The qualified region, or None.
    """
    if len(bands) < config.min_rows_for_table or not gutters:
        return None

    bbox = _bbox(bands)
    gutters = prune_empty_columns(bands, bbox, [g for g in gutters if bbox[0] < g < bbox[2]])
    if not gutters:
        return None
    centers = column_centers(column_boundaries(bbox[0], bbox[2], gutters))

    counts = [occupied_columns(band, centers) for band in bands]
    tally = Counter(counts)
    # Most frequent count; ties go to the larger count
    modal = max(tally, key=lambda count: (tally[count], count))
    if modal < 2:
        return None
    matching = tally[modal]
    if matching * 2 <= len(bands):
        return None

    return TableRegion(
        page=page,
        bbox=bbox,
        rows=[list(band) for band in bands],
        gutters=gutters,
        column_count=modal,
        confidence=matching / len(bands),
    )


def _candidate_runs(block: List[Band], config: DetectionConfig) -> List[Tuple[int, int, List[float]]]:
    """
    Slide the gutter window over a block.

    Returns:
        (first band, last band exclusive, gutter midpoints) for each run of
        consecutive windows that have at least one gutter.
    """
    window = config.min_rows_for_table
    runs: List[Tuple[int, int, List[float]]] = []
    current: Optional[Tuple[int, int, List[float]]] = None
    for start in range(0, len(block) - window + 1):
        gutters = find_gutters(block[start:start + window], config.min_gutter_width)
        if not gutters:
            continue
        midpoints = [(a + b) / 2.0 for a, b in gutters]
        if current is not None and start < current[1]:
            current = (current[0], start + window, current[2] + midpoints)
        else:
            if current is not None:
                runs.append(current)
            current = (start, start + window, midpoints)
    if current is not None:
        runs.append(current)
    return runs


def _overlap_area(a: BBox, b: BBox) -> float:
    width = min(a[2], b[2]) - max(a[0], b[0])
    height = min(a[3], b[3]) - max(a[1], b[1])
    if width <= 0 or height <= 0:
        return 0.0
    return width * height


def _detection_order(region: TableRegion) -> Tuple[float, float]:
    return (-region.top, region.left)


def merge_regions(regions: List[TableRegion], config: DetectionConfig) -> List[TableRegion]:
    """
    Merge regions whose overlap exceeds ``overlap_threshold`` of the smaller.

    Regions are visited topmost first, then leftmost. A merged region is the
    union of both regions' bands, re-qualified; if the union no longer
    qualifies the larger original is kept.
    """
    pending = sorted(regions, key=_detection_order)
    merged: List[TableRegion] = []
    for region in pending:
        target_index = None
        for index, existing in enumerate(merged):
            smaller = min(existing.area, region.area)
            if smaller <= 0:
                continue
            if _overlap_area(existing.bbox, region.bbox) > config.overlap_threshold * smaller:
                target_index = index
                break
        if target_index is None:
            merged.append(region)
            continue
        existing = merged[target_index]
        combined = _union_region(existing, region, config)
        logger.debug(
            "Merged overlapping regions on page %d: %s + %s", region.page + 1,
            existing.bbox, region.bbox,
        )
        merged[target_index] = combined
    return sorted(merged, key=_detection_order)


def _union_region(a: TableRegion, b: TableRegion, config: DetectionConfig) -> TableRegion:
    fragments = {id(f): f for f in a.fragments + b.fragments}
    bands: List[Band] = []
    for block in cluster_rows(list(fragments.values()), config):
        bands.extend(block)
    gutters = _cluster_midpoints(a.gutters + b.gutters, config.min_gutter_width)
    combined = qualify_region(a.page, bands, gutters, config)
    if combined is None:
        return a if a.area >= b.area else b
    return combined


def detect_regions(
    fragments: Sequence[TextFragment],
    page: int,
    config: Optional[DetectionConfig] = None,
) -> List[TableRegion]:
    """
    Detect table regions on one page.

    Args:
        fragments: Fragments of the page, in any order.
        page: Zero-based page index.
        config: Detection thresholds; defaults to DetectionConfig().

    Returns:
        Qualifying regions ordered top-to-bottom, then left-to-right.
    """
    config = config or DetectionConfig()
    regions: List[TableRegion] = []
    for block in cluster_rows(fragments, config):
        for start, end, midpoints in _candidate_runs(block, config):
            bands = block[start:end]
            gutters = _cluster_midpoints(midpoints, config.min_gutter_width)
            region = qualify_region(page, bands, gutters, config)
            if region is None:
                logger.debug(
                    "Rejected candidate on page %d spanning %d rows", page + 1, len(bands)
                )
                continue
            regions.append(region)
    return merge_regions(regions, config)
