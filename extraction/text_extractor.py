"""
Positioned text fragments from one page.

PyMuPDF interprets the page content (fonts, encodings, ToUnicode maps,
form XObjects) and reports every glyph with its origin and box. Each glyph
becomes a GlyphRun; runs sharing a baseline whose horizontal gap is below
``average glyph width * merge_factor`` are merged into TextFragments.

Coordinates are page coordinates with the origin at the bottom-left.
"""

import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from extraction.config import DetectionConfig
from models.data_models import TextFragment

_WHITESPACE_RE = re.compile(r"\s+")


@dataclass
class GlyphRun:
    """
    Glyphs shown as one unit on a baseline.

    Attributes:
        x: Left edge of the run.
        y: Baseline, bottom-left origin.
        width: Horizontal extent of the run.
        height: Font size the run was shown with.
        text: Decoded text.
        glyphs: Number of glyphs in the run.
    """
    x: float
    y: float
    width: float
    height: float
    text: str
    glyphs: int = 1


@dataclass
class PageContent:
    """
    One page's glyph runs in emission order, free of any reference to the
    open document so it can cross process boundaries.
    """
    page: int
    runs: List[GlyphRun] = field(default_factory=list)


def runs_from_rawdict(raw: Dict[str, Any], page_height: float) -> List[GlyphRun]:
    """
    Turn the output of ``page.get_text("rawdict")`` into one run per glyph.

    Image blocks and synthetic characters are skipped. The y axis is flipped
    so baselines are measured from the bottom of the page.
    """
    runs = []
    for block in raw.get("blocks", []):
        if block.get("type") != 0:
            continue
        for line in block.get("lines", []):
            for span in line.get("spans", []):
                size = float(span.get("size", 0.0))
                for char in span.get("chars", []):
                    if char.get("synthetic"):
                        continue
                    x0, _, x1, _ = char["bbox"]
                    _, baseline = char["origin"]
                    runs.append(
                        GlyphRun(
                            x=float(x0),
                            y=page_height - float(baseline),
                            width=max(float(x1) - float(x0), 0.0),
                            height=size,
                            text=char["c"],
                        )
                    )
    return runs


def merge_runs(runs: List[GlyphRun], page: int, config: DetectionConfig) -> List[TextFragment]:
    """
    Merge adjacent glyph runs into fragments and normalise their text.

    Runs merge when they share a baseline (within ``baseline_tolerance``)
    and the gap from the end of the current fragment to the start of the
    next run is below ``average glyph width * merge_factor``.
    """
    merged: List[GlyphRun] = []
    for run in runs:
        if merged:
            current = merged[-1]
            avg_glyph = (
                current.width / max(current.glyphs, 1) + run.width / max(run.glyphs, 1)
            ) / 2.0
            gap = run.x - (current.x + current.width)
            same_line = abs(run.y - current.y) <= config.baseline_tolerance
            if same_line and -avg_glyph <= gap < avg_glyph * config.merge_factor:
                right = max(current.x + current.width, run.x + run.width)
                current.width = right - current.x
                current.text += run.text
                current.glyphs += run.glyphs
                current.height = max(current.height, run.height)
                continue
        merged.append(
            GlyphRun(run.x, run.y, run.width, run.height, run.text, run.glyphs)
        )

    fragments = []
    for run in merged:
        text = "".join(ch for ch in run.text if ch.isprintable() or ch.isspace())
        text = _WHITESPACE_RE.sub(" ", text).strip()
        if not text:
            continue
        fragments.append(
            TextFragment(
                page=page,
                x=run.x,
                y=run.y,
                width=run.width,
                height=run.height,
                text=text,
                font_size=run.height,
            )
        )
    return fragments


def extract_fragments(
    page_content: PageContent, config: Optional[DetectionConfig] = None
) -> List[TextFragment]:
    """
    Merge one page's glyph runs into text fragments.

    Args:
        page_content: The page's glyph runs.
        config: Merge thresholds; defaults to DetectionConfig().

    Returns:
        Fragments in emission order.
    """
    config = config or DetectionConfig()
    return merge_runs(page_content.runs, page_content.page, config)
