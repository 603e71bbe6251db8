"""Per-line normalization dispatch."""

from __future__ import annotations

import logging
from collections.abc import Sequence

from ..models import LogFormat
from .base import NormalizedLine
from .delimited import flatten_csv_line
from .jsonl import flatten_json_line

logger = logging.getLogger(__name__)


def normalize_line(
    raw: str,
    fmt: LogFormat,
    csv_headers: Sequence[str] | None = None,
) -> NormalizedLine:
    """Turn one raw line into pattern-matchable text. Never raises."""
    try:
        if fmt is LogFormat.JSONL:
            if raw.lstrip().startswith("{"):
                return flatten_json_line(raw.strip())
            return NormalizedLine.passthrough(raw)

        if fmt is LogFormat.CSV and csv_headers is not None:
            return flatten_csv_line(raw, csv_headers)
    except Exception:
        logger.debug("Normalization failed; passing raw line through", exc_info=True)
        return NormalizedLine.failed(raw)

    return NormalizedLine.passthrough(raw)
