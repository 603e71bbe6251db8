"""Reconcile fast-pass and slow-pass findings.

A slow finding supersedes a fast one when they share a fingerprint or a
correlation key (``category:line_number``). Findings without a line number are
only ever matched by fingerprint.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass, replace

from .models import RawFinding

DEFAULT_FAST_CONFIDENCE = 0.8
DEFAULT_SLOW_CONFIDENCE = 0.7


def correlation_key(finding: RawFinding) -> str | None:
    if finding.line_number is None:
        return None
    return f"{finding.category.value}:{finding.line_number}"


def sort_findings(findings: Iterable[RawFinding]) -> list[RawFinding]:
    """Most severe first, then by line number (findings without one last)."""
    return sorted(
        findings,
        key=lambda f: (
            f.severity.rank,
            f.line_number is None,
            f.line_number if f.line_number is not None else 0,
        ),
    )


def enrich(slow: RawFinding, fast: RawFinding) -> RawFinding:
    """Return `slow` with evidence inherited from the fast finding it replaces."""
    confidence = max(
        fast.confidence if fast.confidence is not None else DEFAULT_FAST_CONFIDENCE,
        slow.confidence if slow.confidence is not None else DEFAULT_SLOW_CONFIDENCE,
    )
    return replace(
        slow,
        line_content=slow.line_content or fast.line_content,
        matched_pattern=slow.matched_pattern or fast.matched_pattern,
        confidence=confidence,
    )


class _FastIndex:
    """Lookup of still-live fast findings by fingerprint and correlation key."""

    def __init__(self, fast: Sequence[RawFinding]) -> None:
        self.by_fingerprint: dict[str, RawFinding] = {}
        self._by_key: dict[str, list[str]] = {}
        for f in fast:
            if f.fingerprint in self.by_fingerprint:
                continue
            self.by_fingerprint[f.fingerprint] = f
            key = correlation_key(f)
            if key is not None:
                self._by_key.setdefault(key, []).append(f.fingerprint)

    def take(self, slow: RawFinding) -> list[RawFinding]:
        """Remove and return every live fast finding `slow` supersedes.

        An exact fingerprint match comes first so it is the one evidence is
        inherited from.
        """
        hits: list[RawFinding] = []
        exact = self.by_fingerprint.pop(slow.fingerprint, None)
        if exact is not None:
            hits.append(exact)
        key = correlation_key(slow)
        if key is not None:
            for fp in self._by_key.get(key, ()):
                hit = self.by_fingerprint.pop(fp, None)
                if hit is not None:
                    hits.append(hit)
        return hits


def merge_findings(
    fast: Sequence[RawFinding], slow: Sequence[RawFinding]
) -> list[RawFinding]:
    """Flat merge of both passes into one sorted list."""
    index = _FastIndex(fast)
    merged_slow: dict[str, RawFinding] = {}

    for s in slow:
        hits = index.take(s)
        if hits:
            s = enrich(s, hits[0])
        merged_slow[s.fingerprint] = s

    remaining = [f for f in index.by_fingerprint.values() if f.fingerprint not in merged_slow]
    return sort_findings([*remaining, *merged_slow.values()])


@dataclass(frozen=True, slots=True)
class ProgressiveMerge:
    enriched_slow: list[RawFinding]
    superseded_fast_fingerprints: list[str]


def merge_findings_progressive(
    fast: Sequence[RawFinding], slow: Sequence[RawFinding]
) -> ProgressiveMerge:
    """Same matching as `merge_findings`, expressed as store operations.

    Callers that already persisted `fast` insert `enriched_slow` and delete the
    superseded fingerprints instead of rewriting the whole set.
    """
    index = _FastIndex(fast)
    enriched: list[RawFinding] = []
    superseded: list[str] = []

    for s in slow:
        hits = index.take(s)
        if hits:
            superseded.extend(h.fingerprint for h in hits)
            s = enrich(s, hits[0])
        enriched.append(s)

    return ProgressiveMerge(enriched_slow=enriched, superseded_fast_fingerprints=superseded)
