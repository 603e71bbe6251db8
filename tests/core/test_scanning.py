from __future__ import annotations

import gzip
from dataclasses import replace
from pathlib import Path

import pytest

from mcp_log_threat_server.core.context import DetectionContext
from mcp_log_threat_server.core.detectors import LineDetector, PostPassDetector
from mcp_log_threat_server.core.line_utils import compute_fingerprint
from mcp_log_threat_server.core.models import (
    FindingSource,
    LogFormat,
    RawFinding,
    Severity,
    ThreatCategory,
)
from mcp_log_threat_server.core.scanning import (
    StreamingScan,
    dedupe_by_fingerprint,
    scan_file,
    scan_lines,
)

BRUTE_FORCE_LINES = [
    f"Dec 30 08:12:{i:02d} web01 sshd[311]: Failed password for root from 10.0.0.5 port 22 ssh2"
    for i in range(10)
]


class _Exploding(LineDetector):
    @property
    def name(self) -> str:
        return "exploding"

    @property
    def category(self) -> ThreatCategory:
        return ThreatCategory.OTHER

    def check_line(
        self, line: str, line_number: int, context: DetectionContext
    ) -> list[RawFinding]:
        raise RuntimeError("detector bug")


class _EveryLine(LineDetector):
    @property
    def name(self) -> str:
        return "every_line"

    @property
    def category(self) -> ThreatCategory:
        return ThreatCategory.OTHER

    def check_line(
        self, line: str, line_number: int, context: DetectionContext
    ) -> list[RawFinding]:
        return [
            RawFinding(
                severity=Severity.INFO,
                category=ThreatCategory.OTHER,
                title="seen",
                description="seen",
                line_number=line_number,
                line_content=line,
                matched_pattern=None,
                source=FindingSource.FAST,
                fingerprint=compute_fingerprint(ThreatCategory.OTHER, line_number, "seen"),
            )
        ]


class _ExplodingPost(PostPassDetector):
    @property
    def name(self) -> str:
        return "exploding_post"

    def analyze(self, context: DetectionContext) -> list[RawFinding]:
        raise RuntimeError("post-pass bug")


def test_brute_force_scenario_yields_one_high_finding() -> None:
    result = scan_lines(BRUTE_FORCE_LINES)

    assert result.total_lines == 10
    assert result.detected_format is LogFormat.PLAIN
    assert len(result.findings) == 1
    f = result.findings[0]
    assert f.category is ThreatCategory.BRUTE_FORCE
    assert f.severity is Severity.HIGH
    assert f.line_number == 10
    assert f.source is FindingSource.FAST


def test_sql_injection_scenario() -> None:
    result = scan_lines(["GET /page?id=1 UNION SELECT user,pass FROM users"])

    (f,) = result.findings
    assert f.category is ThreatCategory.SQL_INJECTION
    assert f.severity is Severity.CRITICAL
    assert "UNION SELECT" in f.matched_pattern
    assert f.line_number == 1


def test_failing_detectors_do_not_stop_the_scan() -> None:
    result = scan_lines(
        ["first", "second", "third"],
        detectors=[_Exploding(), _EveryLine()],
        post_pass=[_ExplodingPost()],
    )
    assert [f.line_number for f in result.findings] == [1, 2, 3]


def test_blank_and_malformed_lines_are_counted() -> None:
    lines = ['{"msg": "ok"}', "", '{"msg": ', "   ", '{"msg": "fine"}']
    result = scan_lines(lines, detectors=[_EveryLine()], post_pass=[])

    assert result.detected_format is LogFormat.JSONL
    assert result.total_lines == 5
    assert result.parse_errors == 1
    assert result.skipped_lines == 3
    # Malformed lines are still scanned as raw text.
    assert [f.line_number for f in result.findings] == [1, 3, 5]


def test_jsonl_findings_carry_the_raw_line() -> None:
    raw = '{"ip": "1.2.3.4", "path": "/a?q=<script>alert(1)</script>"}'
    result = scan_lines([raw])

    xss = [f for f in result.findings if f.category is ThreatCategory.XSS]
    assert xss
    assert all(f.line_content == raw for f in xss)


def test_csv_header_row_is_not_scanned() -> None:
    lines = [
        "timestamp,src_ip,request",
        "2025-01-01T00:00:00Z,1.2.3.4,GET /?q=<script>alert(1)</script>",
    ]
    result = scan_lines(lines)

    assert result.detected_format is LogFormat.CSV
    assert result.total_lines == 2
    xss = [f for f in result.findings if f.category is ThreatCategory.XSS]
    assert xss
    assert {f.line_number for f in xss} == {2}
    assert xss[0].line_content == lines[1]
    assert xss[0].event_timestamp == 1735689600000


def test_format_is_detected_for_short_inputs() -> None:
    scan = StreamingScan(detectors=[], post_pass=[])
    scan.feed('{"a": 1}\n')
    assert scan.detected_format is None
    result = scan.finish()
    assert result.detected_format is LogFormat.JSONL
    assert result.total_lines == 1


def test_empty_input() -> None:
    result = scan_lines([])
    assert result.findings == []
    assert result.total_lines == 0
    assert result.detected_format is LogFormat.PLAIN


def test_sample_lines_must_be_positive() -> None:
    with pytest.raises(ValueError):
        StreamingScan(sample_lines=0)


def test_dedupe_keeps_first_and_is_idempotent() -> None:
    a = scan_lines(BRUTE_FORCE_LINES).findings[0]
    twin = replace(a, title="other")
    once = dedupe_by_fingerprint([a, twin])
    assert once == [a]
    assert dedupe_by_fingerprint(once) == once


@pytest.mark.asyncio
async def test_scan_file_reads_gzip(tmp_path: Path) -> None:
    p = tmp_path / "auth.log.gz"
    with gzip.open(p, "wt", encoding="utf-8") as f:
        f.write("\n".join(BRUTE_FORCE_LINES) + "\n")

    result = await scan_file(p)
    assert result.total_lines == 10
    assert [f.line_number for f in result.findings] == [10]


@pytest.mark.asyncio
async def test_scan_file_matches_scan_lines(tmp_path: Path, write_lines) -> None:
    p = write_lines(tmp_path / "auth.log", BRUTE_FORCE_LINES)
    from_file = await scan_file(p)
    assert from_file.findings == scan_lines(BRUTE_FORCE_LINES).findings


@pytest.mark.asyncio
async def test_scan_file_missing(tmp_path: Path) -> None:
    with pytest.raises(FileNotFoundError):
        await scan_file(tmp_path / "missing.log")
