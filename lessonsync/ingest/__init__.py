"""Tabular ingestion: normalization and activity de-duplication."""

from .dedupe import extract_unique_activities, merge_catalogue
from .normalizer import NormalizedImport, normalize_rows
from .tables import parse_csv_text, read_csv_table

__all__ = [
    "NormalizedImport",
    "extract_unique_activities",
    "merge_catalogue",
    "normalize_rows",
    "parse_csv_text",
    "read_csv_table",
]
