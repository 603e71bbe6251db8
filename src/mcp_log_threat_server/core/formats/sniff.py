"""Format detection from a small leading sample."""

from __future__ import annotations

import json
import re
from collections.abc import Iterable

from ..models import LogFormat

SAMPLE_LINES = 10

_CSV_HEADER_RE = re.compile(
    r"^(timestamp|ts|date|time|src_ip|event|host|method|url|status|user)", re.IGNORECASE
)


def detect_format(sample: Iterable[str]) -> LogFormat:
    """Classify the sample by its first non-blank line only."""
    for line in sample:
        s = line.strip()
        if not s:
            continue

        if s.startswith("{"):
            try:
                obj = json.loads(s)
            except (ValueError, RecursionError):
                obj = None
            if isinstance(obj, dict):
                return LogFormat.JSONL

        if "," in s and _CSV_HEADER_RE.match(s):
            return LogFormat.CSV

        break

    return LogFormat.PLAIN
