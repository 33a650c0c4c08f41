"""
Tunable thresholds for text merging and table detection.

All distances are in PDF points. The defaults come from common layout
heuristics; tune them per corpus with ``DetectionConfig.load_from_json``.
"""

import json
from dataclasses import asdict, dataclass, fields
from typing import Any, Dict

# Bump when the saved format changes in a breaking way
_CONFIG_VERSION = 1


@dataclass
class DetectionConfig:
    """
    Thresholds used by the text extractor and region detector.

    Attributes:
        merge_factor: Glyph runs on one baseline merge when the gap between
            them is below ``average glyph width * merge_factor``.
        baseline_tolerance: Maximum y difference for runs to share a baseline.
        line_tolerance_factor: Row band tolerance as a multiple of the median
            font size on the page.
        max_row_gap_factor: Vertical gap, as a multiple of the median font
            size, that splits row bands into separate blocks.
        min_rows_for_table: Rows in the gutter window and minimum table height.
        min_gutter_width: Narrowest empty vertical band counted as a gutter.
        overlap_threshold: Regions overlapping by more than this share of the
            smaller region are merged.
        max_workers: Worker processes for page processing; 1 runs inline.
    """
    merge_factor: float = 0.3
    baseline_tolerance: float = 1.0
    line_tolerance_factor: float = 0.5
    max_row_gap_factor: float = 3.0
    min_rows_for_table: int = 3
    min_gutter_width: float = 10.0
    overlap_threshold: float = 0.3
    max_workers: int = 1

    def __post_init__(self):
        if self.merge_factor < 0:
            raise ValueError("merge_factor must not be negative")
        if self.baseline_tolerance < 0:
            raise ValueError("baseline_tolerance must not be negative")
        if self.line_tolerance_factor <= 0:
            raise ValueError("line_tolerance_factor must be positive")
        if self.max_row_gap_factor <= 0:
            raise ValueError("max_row_gap_factor must be positive")
        if self.min_rows_for_table < 1:
            raise ValueError("min_rows_for_table must be at least 1")
        if self.min_gutter_width <= 0:
            raise ValueError("min_gutter_width must be positive")
        if not 0.0 <= self.overlap_threshold <= 1.0:
            raise ValueError("overlap_threshold must be within [0, 1]")
        if self.max_workers < 1:
            raise ValueError("max_workers must be at least 1")

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        data = asdict(self)
        data["version"] = _CONFIG_VERSION
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "DetectionConfig":
        """
        Create a DetectionConfig from a dictionary.

        Missing keys keep their defaults.

        Raises:
            ValueError: On unknown keys, a newer format version, or
                out-of-range values.
        """
        data = dict(data)
        version = data.pop("version", 1)
        if version > _CONFIG_VERSION:
            raise ValueError(
                f"Config was written by a newer version (file version {version}, "
                f"current version {_CONFIG_VERSION})"
            )
        known = {f.name for f in fields(cls)}
        unknown = sorted(set(data) - known)
        if unknown:
            raise ValueError(f"Unknown config keys: {', '.join(unknown)}")
        return cls(**data)

    @classmethod
    def load_from_json(cls, file_path: str) -> "DetectionConfig":
        """
        Load a config from a JSON file.

        Raises:
            FileNotFoundError: If the file does not exist.
            json.JSONDecodeError: If the file is not valid JSON.
            ValueError: If the content is not a valid config.
        """
        with open(file_path, "r", encoding="utf-8") as f:
            data = json.load(f)
        if not isinstance(data, dict):
            raise ValueError("Config file must contain a JSON object")
        return cls.from_dict(data)
