from __future__ import annotations

from mcp_log_threat_server.core.merge import (
    correlation_key,
    enrich,
    merge_findings,
    merge_findings_progressive,
    sort_findings,
)
from mcp_log_threat_server.core.models import FindingSource, Severity, ThreatCategory

SLOW = FindingSource.SLOW


def test_slow_inherits_evidence_and_max_confidence(make_finding) -> None:
    fast = make_finding(
        line_number=3, line_content="GET /?id=1 OR 1=1", matched_pattern="OR 1=1", confidence=0.9
    )
    slow = make_finding(line_number=3, source=SLOW, title="Auth bypass via SQLi")

    merged = merge_findings([fast], [slow])

    assert len(merged) == 1
    m = merged[0]
    assert m.source is SLOW
    assert m.title == "Auth bypass via SQLi"
    assert m.line_content == "GET /?id=1 OR 1=1"
    assert m.matched_pattern == "OR 1=1"
    assert m.confidence == 0.9


def test_enrich_uses_defaults_for_missing_confidence(make_finding) -> None:
    fast = make_finding(line_number=3)
    low = make_finding(line_number=3, source=SLOW, confidence=0.75)
    high = make_finding(line_number=3, source=SLOW, confidence=0.95)
    assert enrich(low, fast).confidence == 0.8
    assert enrich(high, fast).confidence == 0.95
    assert enrich(make_finding(line_number=3, source=SLOW), fast).confidence == 0.8
    own = make_finding(line_number=3, source=SLOW, line_content="own", matched_pattern="own")
    kept = enrich(own, make_finding(line_number=3, line_content="x", matched_pattern="x"))
    assert (kept.line_content, kept.matched_pattern) == ("own", "own")


def test_unrelated_findings_are_all_kept(make_finding) -> None:
    fast = make_finding(line_number=3)
    slow = make_finding(line_number=4, source=SLOW, title="other")
    other_cat = make_finding(category=ThreatCategory.XSS, line_number=3, source=SLOW)

    merged = merge_findings([fast], [slow, other_cat])
    assert {f.fingerprint for f in merged} == {
        fast.fingerprint,
        slow.fingerprint,
        other_cat.fingerprint,
    }


def test_findings_without_line_are_matched_by_fingerprint_only(make_finding) -> None:
    cat = ThreatCategory.RATE_ANOMALY
    fast = make_finding(category=cat, line_number=None, title="volume")
    slow_other = make_finding(category=cat, line_number=None, source=SLOW, title="burst")
    slow_same = make_finding(category=cat, line_number=None, source=SLOW, title="volume")

    assert correlation_key(fast) is None
    assert len(merge_findings([fast], [slow_other])) == 2
    merged = merge_findings([fast], [slow_same])
    assert [f.source for f in merged] == [SLOW]


def test_one_slow_finding_supersedes_every_fast_match(make_finding) -> None:
    a = make_finding(line_number=5, title="a", matched_pattern="A")
    b = make_finding(line_number=5, title="b", matched_pattern="B")
    slow = make_finding(line_number=5, source=SLOW, title="combined")

    merged = merge_findings([a, b], [slow])
    assert len(merged) == 1
    assert merged[0].matched_pattern == "A"

    progressive = merge_findings_progressive([a, b], [slow])
    assert progressive.superseded_fast_fingerprints == [a.fingerprint, b.fingerprint]
    assert progressive.enriched_slow[0].matched_pattern == "A"


def test_exact_fingerprint_match_is_preferred_for_evidence(make_finding) -> None:
    a = make_finding(line_number=5, title="a", matched_pattern="A")
    b = make_finding(line_number=5, title="b", matched_pattern="B")
    slow = make_finding(line_number=5, source=SLOW, title="b")

    progressive = merge_findings_progressive([a, b], [slow])
    assert progressive.superseded_fast_fingerprints == [b.fingerprint, a.fingerprint]
    assert progressive.enriched_slow[0].matched_pattern == "B"


def test_fast_finding_is_superseded_only_once(make_finding) -> None:
    fast = make_finding(line_number=5, matched_pattern="m")
    first = make_finding(line_number=5, source=SLOW, title="first")
    second = make_finding(line_number=5, source=SLOW, title="second")

    progressive = merge_findings_progressive([fast], [first, second])
    assert progressive.superseded_fast_fingerprints == [fast.fingerprint]
    assert progressive.enriched_slow[0].matched_pattern == "m"
    assert progressive.enriched_slow[1].confidence is None


def test_progressive_and_flat_merge_agree(make_finding) -> None:
    fast = [make_finding(line_number=n, title=f"f{n}") for n in (1, 2, 3)]
    slow = [make_finding(line_number=2, source=SLOW, title="s2")]

    progressive = merge_findings_progressive(fast, slow)
    gone = set(progressive.superseded_fast_fingerprints)
    rebuilt = [f for f in fast if f.fingerprint not in gone] + progressive.enriched_slow
    assert sort_findings(rebuilt) == merge_findings(fast, slow)


def test_sort_by_severity_then_line(make_finding) -> None:
    findings = [
        make_finding(severity=Severity.LOW, line_number=1, title="low"),
        make_finding(severity=Severity.CRITICAL, line_number=None, title="crit-none"),
        make_finding(severity=Severity.CRITICAL, line_number=9, title="crit-9"),
        make_finding(severity=Severity.CRITICAL, line_number=2, title="crit-2"),
        make_finding(severity=Severity.HIGH, line_number=1, title="high"),
    ]
    assert [f.title for f in sort_findings(findings)] == [
        "crit-2",
        "crit-9",
        "crit-none",
        "high",
        "low",
    ]
