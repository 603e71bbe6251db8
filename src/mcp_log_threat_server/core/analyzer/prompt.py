"""Prompt construction for the contextual analyzer."""

from __future__ import annotations

from collections import Counter
from collections.abc import Sequence

from ..models import RawFinding, Severity, ThreatCategory
from .chunker import Chunk
from .models import AnalyzerRequest

MAX_LISTED_FINDINGS = 200


def _summarize(findings: Sequence[RawFinding]) -> str:
    if not findings:
        return "No pattern-scan findings in this section."
    by_sev = Counter(f.severity.value for f in findings)
    by_cat = Counter(f.category.value for f in findings)
    sev = ", ".join(f"{s.value}: {by_sev[s.value]}" for s in Severity if by_sev[s.value])
    cat = ", ".join(f"{name}: {n}" for name, n in by_cat.most_common())
    return f"By severity: {sev}\nBy category: {cat}"


def _finding_row(f: RawFinding) -> str:
    parts = [
        f"  - Line {f.line_number if f.line_number is not None else 'N/A'}",
        f.category.value,
        f.severity.value,
        f'"{f.title}"',
    ]
    if f.matched_pattern:
        parts.append(f"pattern: {f.matched_pattern}")
    return " | ".join(parts)


def findings_for_chunk(findings: Sequence[RawFinding], chunk: Chunk) -> list[RawFinding]:
    """Fast findings that fall inside the chunk, plus the line-less ones."""
    return [
        f
        for f in findings
        if f.line_number is None or chunk.start_line <= f.line_number <= chunk.end_line
    ]


def build_analysis_prompt(
    chunk_text: str,
    *,
    request: AnalyzerRequest,
    chunk: Chunk,
    total_chunks: int,
) -> str:
    """Build the Gemini prompt for one chunk of the log."""
    relevant = findings_for_chunk(request.fast_findings, chunk)
    listed = "\n".join(_finding_row(f) for f in relevant[:MAX_LISTED_FINDINGS])
    if len(relevant) > MAX_LISTED_FINDINGS:
        listed += f"\n  ... {len(relevant) - MAX_LISTED_FINDINGS} more omitted"
    categories = ", ".join(c.value for c in ThreatCategory)
    severities = ", ".join(s.value for s in Severity)

    return (
        "You are a security analyst reviewing server and application logs.\n"
        f"FILE METADATA:\n"
        f"- Total lines: {request.total_lines}\n"
        f"- Detected format: {request.detected_format.value}\n"
        f"- Section {chunk.id + 1} of {total_chunks}: lines {chunk.start_line}-{chunk.end_line}\n\n"
        f"PATTERN-SCAN RESULTS FOR THIS SECTION ({len(relevant)} findings):\n"
        f"{_summarize(relevant)}\n"
        + (f"{listed}\n" if listed else "")
        + "\nYOUR TASK:\n"
        "1. Validate each pattern-scan finding above using the surrounding lines.\n"
        "2. List false positives in false_positive_line_numbers.\n"
        "3. Report attack patterns the pattern scan missed.\n"
        "4. Correlate events into multi-stage attacks where the evidence supports it.\n"
        "Return ONLY valid JSON that matches the provided schema.\n"
        "Rules:\n"
        "- Only use evidence from the given lines.\n"
        "- Reference line_number values only from the numbered lines below.\n"
        f"- severity must be one of: {severities}.\n"
        f"- category must be one of: {categories}.\n"
        "- Do not repeat a pattern-scan finding unless you add context to it.\n"
        "- If nothing looks malicious, return an empty findings array.\n\n"
        f"LOG LINES:\n{chunk_text}\n"
    )
