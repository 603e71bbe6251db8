"""Tolerant parsing of analyzer output into slow-pass findings."""

from __future__ import annotations

import json
import logging
import re
from collections.abc import Mapping, Sequence
from typing import Any

from ..line_utils import compute_fingerprint, truncate_line
from ..models import FindingSource, RawFinding, Severity, ThreatCategory
from .models import AnalyzerResponse

logger = logging.getLogger(__name__)

_CODE_BLOCK_RE = re.compile(r"```(?:json)?\s*([\s\S]*?)```")

# Key names models use interchangeably for the same field.
_FINDINGS_KEYS = ("findings", "additional_threats_discovered", "threats")
_SUMMARY_KEYS = ("summary", "analysis_summary", "executive_summary")
_FALSE_POSITIVE_KEYS = ("false_positive_line_numbers", "false_positives")

DEFAULT_CONFIDENCE = 0.7
MAX_TITLE = 500
MAX_DESCRIPTION = 2000
MAX_RECOMMENDATION = 1000
FINGERPRINT_TITLE_CHARS = 200


def _extract_json(raw: str) -> str:
    m = _CODE_BLOCK_RE.search(raw)
    if m:
        return m.group(1).strip()
    return raw.strip()


def _first(data: Mapping[str, Any], keys: Sequence[str]) -> Any:
    for key in keys:
        if data.get(key) is not None:
            return data[key]
    return None


def _line_numbers(value: Any) -> list[int]:
    if not isinstance(value, list):
        return []
    out: list[int] = []
    for item in value:
        if isinstance(item, Mapping):
            item = item.get("line_number", item.get("lineNumber"))
        if isinstance(item, bool):
            continue
        if isinstance(item, int):
            out.append(item)
        elif isinstance(item, str) and item.strip().isdigit():
            out.append(int(item.strip()))
    return out


def parse_analyzer_response(raw: str | Mapping[str, Any] | list[Any]) -> AnalyzerResponse:
    """Validate analyzer output, accepting the common alternate key names.

    A bare JSON array is read as the findings list. Entries that are not
    objects are dropped. Raises ValueError when the payload is not JSON.
    """
    data: Any = raw
    if isinstance(raw, str):
        data = json.loads(_extract_json(raw))

    if isinstance(data, list):
        data = {"findings": data}
    if not isinstance(data, Mapping):
        raise ValueError(f"Analyzer response must be a JSON object, got {type(data).__name__}")

    findings = _first(data, _FINDINGS_KEYS)
    summary = _first(data, _SUMMARY_KEYS)
    return AnalyzerResponse.model_validate(
        {
            "findings": [f for f in findings if isinstance(f, Mapping)]
            if isinstance(findings, list)
            else [],
            "summary": summary if isinstance(summary, str) and summary.strip() else None,
            "false_positive_line_numbers": _line_numbers(_first(data, _FALSE_POSITIVE_KEYS)),
        }
    )


def _severity(value: str) -> Severity:
    try:
        return Severity(value.strip().upper())
    except ValueError:
        return Severity.MEDIUM


def _category(value: str) -> ThreatCategory:
    try:
        return ThreatCategory(value.strip().upper())
    except ValueError:
        return ThreatCategory.OTHER


def normalize_findings(
    response: AnalyzerResponse, *, lines: Sequence[str] | None = None
) -> list[RawFinding]:
    """Convert analyzer findings to `RawFinding` objects.

    Findings without a title, description, severity or category are dropped.
    Unknown severities become MEDIUM and unknown categories OTHER. When
    ``lines`` is given, ``line_content`` is filled from the source line.
    """
    out: list[RawFinding] = []
    dropped = 0
    for item in response.findings:
        if not (item.title and item.description and item.severity and item.category):
            dropped += 1
            continue

        category = _category(item.category)
        line_number = item.line_number if item.line_number and item.line_number > 0 else None
        confidence = (
            DEFAULT_CONFIDENCE
            if item.confidence is None
            else max(0.0, min(1.0, item.confidence))
        )

        line_content = None
        if lines is not None and line_number is not None and line_number <= len(lines):
            line_content = truncate_line(lines[line_number - 1])

        out.append(
            RawFinding(
                severity=_severity(item.severity),
                category=category,
                title=item.title[:MAX_TITLE],
                description=item.description[:MAX_DESCRIPTION],
                line_number=line_number,
                line_content=line_content,
                matched_pattern=None,
                source=FindingSource.SLOW,
                fingerprint=compute_fingerprint(
                    category, line_number, item.title.strip()[:FINGERPRINT_TITLE_CHARS]
                ),
                recommendation=item.recommendation[:MAX_RECOMMENDATION]
                if item.recommendation
                else None,
                confidence=confidence,
                mitre_tactic=item.mitre_tactic or None,
                mitre_technique=item.mitre_technique or None,
            )
        )

    if dropped:
        logger.debug("Dropped %d incomplete analyzer findings", dropped)
    return out
