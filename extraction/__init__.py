"""
Table extraction package.

Turns a PDF byte buffer into rectangular tables:
- text_extractor: positioned text fragments from PyMuPDF glyphs
- region_detector: table regions from row bands and column gutters
- grid_reconstructor: cell grids from regions
- annotator: per-table metadata
- config: detection thresholds
- pipeline: extract_tables / extract_document, the document-level entry points
"""
