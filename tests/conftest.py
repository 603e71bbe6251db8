from __future__ import annotations

import asyncio
from collections.abc import Callable, Sequence
from pathlib import Path

import pytest

from mcp_log_threat_server.core.analyzer import AnalyzerRequest, AnalyzerResult
from mcp_log_threat_server.core.line_utils import compute_fingerprint
from mcp_log_threat_server.core.models import FindingSource, RawFinding, Severity, ThreatCategory


@pytest.fixture
def write_lines() -> Callable[[Path, Sequence[str]], Path]:
    def _write(path: Path, lines: Sequence[str]) -> Path:
        path.write_text("\n".join(lines) + "\n", encoding="utf-8")
        return path

    return _write


@pytest.fixture
def make_finding() -> Callable[..., RawFinding]:
    def _make(
        *,
        category: ThreatCategory = ThreatCategory.SQL_INJECTION,
        line_number: int | None = 1,
        source: FindingSource = FindingSource.FAST,
        severity: Severity = Severity.HIGH,
        title: str = "finding",
        content: str | None = None,
        line_content: str | None = None,
        matched_pattern: str | None = None,
        confidence: float | None = None,
    ) -> RawFinding:
        return RawFinding(
            severity=severity,
            category=category,
            title=title,
            description=f"{title} description",
            line_number=line_number,
            line_content=line_content,
            matched_pattern=matched_pattern,
            source=source,
            fingerprint=compute_fingerprint(category, line_number, content or title),
            confidence=confidence,
        )

    return _make


class ScriptedAnalyzer:
    """Analyzer double that replays fixed batches and a fixed result."""

    name = "scripted"

    def __init__(
        self,
        batches: Sequence[Sequence[RawFinding]] = (),
        result: AnalyzerResult | None = None,
        *,
        error: Exception | None = None,
        submit: bool = True,
        hang: bool = False,
        delay: float = 0.0,
    ) -> None:
        self.batches = [list(b) for b in batches]
        self.result = result
        self.error = error
        self.submit = submit
        self.hang = hang
        self.delay = delay
        self.requests: list[AnalyzerRequest] = []
        self.cancelled = False
        self.active = 0
        self.max_active = 0

    async def analyze(self, request: AnalyzerRequest, progress) -> AnalyzerResult:
        self.requests.append(request)
        self.active += 1
        self.max_active = max(self.max_active, self.active)
        try:
            if self.delay:
                await asyncio.sleep(self.delay)
            for batch in self.batches:
                await progress.on_batch(batch)
            if self.error is not None:
                raise self.error
            result = self.result or AnalyzerResult(
                findings=[f for b in self.batches for f in b]
            )
            if self.submit:
                progress.submit(result)
            if self.hang:
                await asyncio.Event().wait()
            return result
        except asyncio.CancelledError:
            self.cancelled = True
            raise
        finally:
            self.active -= 1


@pytest.fixture
def scripted_analyzer() -> type[ScriptedAnalyzer]:
    return ScriptedAnalyzer
