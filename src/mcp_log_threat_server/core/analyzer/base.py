"""Call contract between the orchestrator and a contextual analyzer."""

from __future__ import annotations

from collections.abc import Sequence
from typing import Protocol

from ..models import RawFinding
from .models import AnalyzerRequest, AnalyzerResult


class AnalyzerProgress(Protocol):
    """Hooks the orchestrator hands to an analyzer for one invocation."""

    async def on_batch(self, findings: Sequence[RawFinding]) -> None:
        """Persist an incremental batch of slow-pass findings."""
        ...

    def submit(self, result: AnalyzerResult) -> None:
        """Hand over the final result.

        Once called the orchestrator stops waiting on ``analyze`` and cancels
        it, so an analyzer that keeps retrying after it has an answer does not
        hold the analyzer slot.
        """
        ...


class Analyzer(Protocol):
    name: str

    async def analyze(
        self, request: AnalyzerRequest, progress: AnalyzerProgress
    ) -> AnalyzerResult:
        """Run the slow pass.

        Raises `AnalyzerUnavailableError` when the analyzer cannot run at all.
        Any other exception is treated as a failed (but available) slow pass.
        """
        ...
