"""Log normalization package."""

from __future__ import annotations

from .base import NormalizedLine
from .delimited import flatten_csv_line, parse_csv_header, parse_csv_values
from .jsonl import flatten_json_line, flatten_object
from .normalizer import normalize_line
from .sniff import SAMPLE_LINES, detect_format

__all__ = [
    "NormalizedLine",
    "SAMPLE_LINES",
    "detect_format",
    "flatten_csv_line",
    "flatten_json_line",
    "flatten_object",
    "normalize_line",
    "parse_csv_header",
    "parse_csv_values",
]
