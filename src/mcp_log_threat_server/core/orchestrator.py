"""Per-job analysis state machine.

``PENDING -> ANALYZING -> COMPLETED | FAILED``. The fast pass always runs and
is persisted before the analyzer is called. The analyzer is optional, runs
behind a single process-wide slot, and its failure only degrades the job to
fast-pass results. Every run ends in a terminal state.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Iterator, Sequence
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from pathlib import Path
from typing import Any
from weakref import WeakKeyDictionary

from .analyzer import Analyzer, AnalyzerRequest, AnalyzerResult, AnalyzerUnavailableError
from .config import OrchestratorConfig, resolve_orchestrator_config
from .events import NullProgressSink, ProgressSink
from .merge import merge_findings_progressive, sort_findings
from .models import (
    AnalysisJob,
    AnalysisStatus,
    FindingSource,
    JobStatus,
    LogFormat,
    RawFinding,
    Severity,
)
from .scanning import scan_file
from .store import JobNotFoundError, JobStore

logger = logging.getLogger(__name__)

_SLOTS: WeakKeyDictionary[asyncio.AbstractEventLoop, asyncio.Semaphore] = WeakKeyDictionary()


def analyzer_slot() -> asyncio.Semaphore:
    """The shared single analyzer slot for the running event loop."""
    loop = asyncio.get_running_loop()
    slot = _SLOTS.get(loop)
    if slot is None:
        slot = _SLOTS[loop] = asyncio.Semaphore(1)
    return slot


def _now() -> datetime:
    return datetime.now(UTC)


def _count_fields(counts: dict[Severity, int]) -> dict[str, Any]:
    return {
        "severity_counts": {s.value: counts.get(s, 0) for s in Severity},
        "total_findings": sum(counts.values()),
    }


@dataclass(frozen=True, slots=True)
class SlowPassOutcome:
    available: bool
    completed: bool
    summary: str | None = None
    false_positive_line_numbers: list[int] = field(default_factory=list)


class _JobProgress:
    """`AnalyzerProgress` bound to one job."""

    def __init__(self, orchestrator: AnalysisOrchestrator, job_id: str) -> None:
        self._orchestrator = orchestrator
        self._job_id = job_id
        self.captured: asyncio.Future[AnalyzerResult] = (
            asyncio.get_running_loop().create_future()
        )
        self.store_error: Exception | None = None

    async def on_batch(self, findings: Sequence[RawFinding]) -> None:
        try:
            await self._orchestrator.apply_slow_findings(self._job_id, findings)
        except Exception as exc:
            self.store_error = exc
            raise

    def submit(self, result: AnalyzerResult) -> None:
        if not self.captured.done():
            self.captured.set_result(result)


async def _reap(task: asyncio.Task[Any]) -> None:
    if not task.done():
        task.cancel()
    try:
        await task
    except asyncio.CancelledError:
        pass
    except Exception as exc:
        logger.debug("Analyzer call ended with %r after its result was captured", exc)


class AnalysisOrchestrator:
    def __init__(
        self,
        store: JobStore,
        *,
        analyzer: Analyzer | None = None,
        sink: ProgressSink | None = None,
        cfg: OrchestratorConfig | None = None,
        slot: asyncio.Semaphore | None = None,
    ) -> None:
        self.store = store
        self.analyzer = analyzer
        self.sink = sink or NullProgressSink()
        self.cfg = resolve_orchestrator_config(cfg)
        self._slot = slot
        self._active: set[str] = set()
        self._tasks: dict[str, asyncio.Task[AnalysisJob]] = {}

    # -- public entry points -------------------------------------------------

    async def create_job(self, source_path: str | Path) -> AnalysisJob:
        job = await self.store.create_job(str(source_path))
        self._publish(job)
        return job

    def start(self, job_id: str, *, resume: bool = False) -> asyncio.Task[AnalysisJob]:
        """Run (or resume) a job in the background.

        The task is referenced until it finishes.
        """
        coro = self.resume(job_id) if resume else self.run(job_id)
        task = asyncio.create_task(coro, name=f"analysis-{job_id}")
        self._tasks[job_id] = task
        task.add_done_callback(lambda t: self._forget(job_id, t))
        return task

    def is_active(self, job_id: str) -> bool:
        """True while the job is running here or scheduled to run."""
        return job_id in self._active or job_id in self._tasks

    async def run(self, job_id: str) -> AnalysisJob:
        """Run a job from the start. Raises `JobNotFoundError` for unknown ids."""
        job = await self._require(job_id)
        with self._tracking(job_id):
            try:
                return await self._run(job)
            except Exception as exc:
                logger.exception("Analysis failed for job %s", job_id)
                return await self._fail(job_id, exc)

    async def resume(self, job_id: str) -> AnalysisJob:
        """Continue an interrupted job from the analyzer step.

        Terminal jobs are returned unchanged. Jobs interrupted before the fast
        pass completed are run again from the start.
        """
        job = await self._require(job_id)
        if job.status.is_terminal:
            logger.info("Job %s is already %s; nothing to resume", job_id, job.status.value)
            return job
        if job.status is not JobStatus.ANALYZING or not job.fast_pass_completed:
            logger.info("Job %s has no completed fast pass; running from the start", job_id)
            return await self.run(job_id)

        logger.info("Resuming job %s at the analyzer step", job_id)
        with self._tracking(job_id):
            try:
                fast = await self.store.list_findings(job_id, source=FindingSource.FAST)
                job = await self._update(job_id, analysis_status=AnalysisStatus.IN_PROGRESS)
                return await self._finish(job, fast)
            except Exception as exc:
                logger.exception("Resumed analysis failed for job %s", job_id)
                return await self._fail(job_id, exc)

    async def recover_interrupted_jobs(self) -> list[asyncio.Task[AnalysisJob]]:
        """Start a background resume for every job left in ANALYZING.

        Returns the started tasks without waiting for them.
        """
        stuck = [
            j
            for j in await self.store.list_jobs(status=JobStatus.ANALYZING)
            if not self.is_active(j.id)
        ]
        if not stuck:
            return []
        logger.info("Found %d interrupted job(s), resuming", len(stuck))
        return [self.start(j.id, resume=True) for j in stuck]

    async def list_findings(self, job_id: str) -> list[RawFinding]:
        await self._require(job_id)
        return sort_findings(await self.store.list_findings(job_id))

    async def apply_slow_findings(self, job_id: str, findings: Sequence[RawFinding]) -> int:
        """Persist slow findings against the live fast set.

        Safe to call repeatedly and out of order: slow findings are written
        before the fast findings they supersede are deleted by fingerprint, and
        slow findings already stored are kept as first written. An interrupted
        call leaves at worst a fast finding next to its replacement.
        """
        if not findings:
            return 0
        fast = await self.store.list_findings(job_id, source=FindingSource.FAST)
        merged = merge_findings_progressive(fast, findings)

        slow = await self.store.list_findings(job_id, source=FindingSource.SLOW)
        stored = {f.fingerprint for f in slow}
        fresh = [f for f in merged.enriched_slow if f.fingerprint not in stored]
        if fresh:
            await self.store.create_findings(job_id, fresh)

        if merged.superseded_fast_fingerprints:
            await self.store.delete_findings_by_fingerprint(
                job_id, merged.superseded_fast_fingerprints, source=FindingSource.FAST
            )
        logger.debug(
            "Job %s: %d slow findings stored, %d fast superseded",
            job_id,
            len(fresh),
            len(merged.superseded_fast_fingerprints),
        )
        return len(fresh)

    # -- state machine -------------------------------------------------------

    async def _run(self, job: AnalysisJob) -> AnalysisJob:
        path = Path(job.source_path)
        if not path.is_file():
            raise FileNotFoundError(f"Log file not found: {path}")

        stale = await self.store.list_findings(job.id)
        if stale:
            await self.store.delete_findings_by_fingerprint(job.id, [f.fingerprint for f in stale])

        job = await self._update(
            job.id,
            status=JobStatus.ANALYZING,
            analysis_status=AnalysisStatus.IN_PROGRESS,
            fast_pass_completed=False,
            slow_pass_completed=False,
            slow_pass_available=False,
            overall_summary=None,
            error_message=None,
            started_at=_now(),
            completed_at=None,
        )

        result = await scan_file(path, thresholds=self.cfg.thresholds)
        if result.findings:
            await self.store.create_findings(job.id, result.findings)

        counts = await self.store.count_by_severity(job.id)
        job = await self._update(
            job.id,
            fast_pass_completed=True,
            total_lines=result.total_lines,
            skipped_lines=result.skipped_lines,
            detected_format=result.detected_format,
            **_count_fields(counts),
        )
        logger.info(
            "Job %s fast pass: %d findings in %d lines",
            job.id,
            len(result.findings),
            result.total_lines,
        )
        return await self._finish(job, result.findings)

    async def _finish(self, job: AnalysisJob, fast: Sequence[RawFinding]) -> AnalysisJob:
        outcome = await self._slow_pass(job, fast)

        if outcome.false_positive_line_numbers:
            removed = await self.store.delete_findings_by_lines(
                job.id, FindingSource.FAST, outcome.false_positive_line_numbers
            )
            logger.info("Job %s: removed %d fast findings marked false positive", job.id, removed)

        counts = await self.store.count_by_severity(job.id)
        job = await self._update(
            job.id,
            status=JobStatus.COMPLETED,
            analysis_status=AnalysisStatus.COMPLETED,
            slow_pass_available=outcome.available,
            slow_pass_completed=outcome.completed,
            overall_summary=outcome.summary,
            completed_at=_now(),
            **_count_fields(counts),
        )
        logger.info(
            "Job %s completed: %d findings (slow pass available=%s, completed=%s)",
            job.id,
            job.total_findings,
            outcome.available,
            outcome.completed,
        )
        return job

    async def _slow_pass(self, job: AnalysisJob, fast: Sequence[RawFinding]) -> SlowPassOutcome:
        if self.analyzer is None:
            logger.info("No analyzer configured; job %s uses fast-pass results only", job.id)
            return SlowPassOutcome(available=False, completed=False)

        request = AnalyzerRequest(
            source_path=job.source_path,
            total_lines=job.total_lines,
            detected_format=job.detected_format or LogFormat.PLAIN,
            fast_findings=list(fast),
        )
        progress = _JobProgress(self, job.id)
        slot = self._slot or analyzer_slot()

        async with slot:
            logger.debug("Job %s acquired the analyzer slot", job.id)
            try:
                result = await self._call_analyzer(request, progress)
            except AnalyzerUnavailableError as exc:
                logger.info("Analyzer unavailable for job %s: %s", job.id, exc)
                return SlowPassOutcome(available=False, completed=False)
            except TimeoutError as exc:
                logger.warning("Analyzer timed out for job %s: %s", job.id, exc)
                return SlowPassOutcome(available=True, completed=False)
            except Exception:
                if progress.store_error is not None:
                    raise progress.store_error
                logger.exception("Analyzer failed for job %s", job.id)
                return SlowPassOutcome(available=True, completed=False)

        if progress.store_error is not None:
            raise progress.store_error
        await self.apply_slow_findings(job.id, result.findings)
        return SlowPassOutcome(
            available=True,
            completed=True,
            summary=result.summary,
            false_positive_line_numbers=list(result.false_positive_line_numbers),
        )

    async def _call_analyzer(
        self, request: AnalyzerRequest, progress: _JobProgress
    ) -> AnalyzerResult:
        assert self.analyzer is not None
        timeout = self.cfg.analyzer_timeout_s
        task = asyncio.create_task(self.analyzer.analyze(request, progress))
        try:
            await asyncio.wait(
                {task, progress.captured},
                timeout=timeout,
                return_when=asyncio.FIRST_COMPLETED,
            )
        except asyncio.CancelledError:
            task.cancel()
            raise

        if progress.captured.done():
            if not task.done():
                logger.debug("Analyzer result captured; cancelling the underlying call")
            await _reap(task)
            return progress.captured.result()
        if task.done():
            return task.result()

        await _reap(task)
        raise TimeoutError(f"analyzer exceeded {timeout:g}s")

    # -- helpers -------------------------------------------------------------

    async def _require(self, job_id: str) -> AnalysisJob:
        job = await self.store.get_job(job_id)
        if job is None:
            raise JobNotFoundError(f"Unknown job: {job_id}")
        return job

    async def _update(self, job_id: str, **changes: Any) -> AnalysisJob:
        job = await self.store.update_job(job_id, **changes)
        self._publish(job)
        return job

    async def _fail(self, job_id: str, exc: BaseException) -> AnalysisJob:
        current = await self.store.get_job(job_id)
        changes: dict[str, Any] = {
            "status": JobStatus.FAILED,
            "error_message": str(exc) or type(exc).__name__,
            "completed_at": _now(),
        }
        if current is not None and current.analysis_status is not None:
            changes["analysis_status"] = AnalysisStatus.FAILED
        return await self._update(job_id, **changes)

    def _publish(self, job: AnalysisJob) -> None:
        try:
            self.sink.publish(job)
        except Exception:
            logger.exception("Progress sink rejected update for job %s", job.id)

    def _forget(self, job_id: str, task: asyncio.Task[AnalysisJob]) -> None:
        if self._tasks.get(job_id) is task:
            del self._tasks[job_id]

    @contextmanager
    def _tracking(self, job_id: str) -> Iterator[None]:
        self._active.add(job_id)
        try:
            yield
        finally:
            self._active.discard(job_id)


class StallDetector:
    """Resumes jobs that sit in ANALYZING without progress for too long.

    Jobs this process is actively running are left alone.
    """

    def __init__(
        self,
        orchestrator: AnalysisOrchestrator,
        *,
        interval_s: float | None = None,
        threshold_s: float | None = None,
    ) -> None:
        self.orchestrator = orchestrator
        self.interval_s = interval_s or orchestrator.cfg.stall_check_interval_s
        self.threshold_s = threshold_s or orchestrator.cfg.stall_threshold_s
        self._task: asyncio.Task[None] | None = None

    async def check_once(self, *, now: datetime | None = None) -> list[str]:
        """Start a resume for each stalled job and return their ids."""
        cutoff = (now or _now()) - timedelta(seconds=self.threshold_s)
        jobs = await self.orchestrator.store.list_jobs(status=JobStatus.ANALYZING)
        stalled = [
            j.id
            for j in jobs
            if j.updated_at is not None
            and j.updated_at < cutoff
            and not self.orchestrator.is_active(j.id)
        ]
        for job_id in stalled:
            logger.warning("Job %s stalled since before %s; resuming", job_id, cutoff.isoformat())
            self.orchestrator.start(job_id, resume=True)
        return stalled

    async def _loop(self) -> None:
        while True:
            await asyncio.sleep(self.interval_s)
            try:
                await self.check_once()
            except Exception:
                logger.exception("Stall check failed")

    def start(self) -> asyncio.Task[None]:
        if self._task is None or self._task.done():
            self._task = asyncio.create_task(self._loop(), name="stall-detector")
        return self._task

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
