from __future__ import annotations

import asyncio
from datetime import UTC, datetime, timedelta
from pathlib import Path

import pytest

from mcp_log_threat_server.core import orchestrator as orchestrator_module
from mcp_log_threat_server.core.analyzer import AnalyzerResponse, AnalyzerResult, GeminiAnalyzer
from mcp_log_threat_server.core.analyzer import service as analyzer_service
from mcp_log_threat_server.core.config import OrchestratorConfig
from mcp_log_threat_server.core.events import JobEventBus
from mcp_log_threat_server.core.models import (
    AnalysisStatus,
    FindingSource,
    JobStatus,
    LogFormat,
    Severity,
    ThreatCategory,
)
from mcp_log_threat_server.core.orchestrator import AnalysisOrchestrator, StallDetector
from mcp_log_threat_server.core.store import InMemoryJobStore, JobNotFoundError

BRUTE_FORCE_LINES = [
    f"Dec 30 08:12:{i:02d} web01 sshd[311]: Failed password for root from 10.0.0.5 port 22 ssh2"
    for i in range(10)
]


@pytest.fixture(autouse=True)
def _no_env_overrides(monkeypatch) -> None:
    monkeypatch.delenv("LOG_THREAT_ANALYZER_TIMEOUT", raising=False)
    monkeypatch.delenv("LOG_THREAT_STALL_THRESHOLD", raising=False)


@pytest.fixture
def brute_force_log(tmp_path: Path, write_lines) -> Path:
    return write_lines(tmp_path / "auth.log", BRUTE_FORCE_LINES)


def _slow_brute_force(make_finding, **kw):
    kw.setdefault("title", "Credential stuffing campaign")
    kw.setdefault("severity", Severity.CRITICAL)
    return make_finding(
        category=ThreatCategory.BRUTE_FORCE,
        line_number=10,
        source=FindingSource.SLOW,
        **kw,
    )


async def _run_new(orch: AnalysisOrchestrator, path: Path):
    job = await orch.create_job(path)
    return await orch.run(job.id)


async def _interrupted_job(store: InMemoryJobStore, path: Path, make_finding):
    """A job that crashed after persisting its fast pass."""
    job = await store.create_job(str(path))
    fast = make_finding(
        category=ThreatCategory.BRUTE_FORCE,
        line_number=10,
        title="Brute Force Attack",
        matched_pattern="Failed password",
    )
    await store.create_findings(job.id, [fast])
    job = await store.update_job(
        job.id,
        status=JobStatus.ANALYZING,
        analysis_status=AnalysisStatus.IN_PROGRESS,
        fast_pass_completed=True,
        total_lines=10,
        detected_format=LogFormat.PLAIN,
    )
    return job, fast


@pytest.mark.asyncio
async def test_missing_source_fails_without_findings(tmp_path: Path) -> None:
    orch = AnalysisOrchestrator(InMemoryJobStore())
    job = await _run_new(orch, tmp_path / "gone.log")

    assert job.status is JobStatus.FAILED
    assert "not found" in job.error_message
    assert job.analysis_status is None
    assert job.completed_at is not None
    assert await orch.list_findings(job.id) == []


@pytest.mark.asyncio
async def test_fast_only_without_analyzer(brute_force_log: Path) -> None:
    orch = AnalysisOrchestrator(InMemoryJobStore())
    job = await _run_new(orch, brute_force_log)

    assert job.status is JobStatus.COMPLETED
    assert job.analysis_status is AnalysisStatus.COMPLETED
    assert job.fast_pass_completed is True
    assert job.slow_pass_available is False
    assert job.slow_pass_completed is False
    assert job.total_lines == 10
    assert job.detected_format is LogFormat.PLAIN
    assert job.total_findings == 1
    assert job.severity_counts["HIGH"] == 1
    assert job.severity_counts["CRITICAL"] == 0


@pytest.mark.asyncio
async def test_gemini_without_credentials_is_unavailable(
    brute_force_log: Path, monkeypatch
) -> None:
    monkeypatch.delenv("GEMINI_API_KEY", raising=False)
    monkeypatch.delenv("GOOGLE_API_KEY", raising=False)
    orch = AnalysisOrchestrator(InMemoryJobStore(), analyzer=GeminiAnalyzer())
    job = await _run_new(orch, brute_force_log)

    assert job.status is JobStatus.COMPLETED
    assert job.slow_pass_available is False
    assert job.total_findings == 1


@pytest.mark.asyncio
async def test_slow_batch_supersedes_fast_finding(
    brute_force_log: Path, make_finding, scripted_analyzer
) -> None:
    slow = _slow_brute_force(make_finding)
    analyzer = scripted_analyzer(
        batches=[[slow]],
        result=AnalyzerResult(findings=[slow], summary="One attacker, one target."),
    )
    orch = AnalysisOrchestrator(InMemoryJobStore(), analyzer=analyzer)
    job = await _run_new(orch, brute_force_log)

    assert job.status is JobStatus.COMPLETED
    assert job.slow_pass_available is True
    assert job.slow_pass_completed is True
    assert job.overall_summary == "One attacker, one target."
    assert job.total_findings == 1
    assert job.severity_counts["CRITICAL"] == 1

    (finding,) = await orch.list_findings(job.id)
    assert finding.source is FindingSource.SLOW
    assert finding.matched_pattern == "Failed password"
    assert finding.line_content == BRUTE_FORCE_LINES[-1]

    request = analyzer.requests[0]
    assert request.total_lines == 10
    assert [f.category for f in request.fast_findings] == [ThreatCategory.BRUTE_FORCE]


@pytest.mark.asyncio
async def test_false_positives_remove_fast_findings(
    brute_force_log: Path, scripted_analyzer
) -> None:
    analyzer = scripted_analyzer(result=AnalyzerResult(false_positive_line_numbers=[10]))
    orch = AnalysisOrchestrator(InMemoryJobStore(), analyzer=analyzer)
    job = await _run_new(orch, brute_force_log)

    assert job.slow_pass_completed is True
    assert job.total_findings == 0
    assert await orch.list_findings(job.id) == []


@pytest.mark.asyncio
async def test_analyzer_timeout_keeps_fast_results(
    brute_force_log: Path, scripted_analyzer, caplog
) -> None:
    analyzer = scripted_analyzer(hang=True, submit=False)
    orch = AnalysisOrchestrator(
        InMemoryJobStore(),
        analyzer=analyzer,
        cfg=OrchestratorConfig(analyzer_timeout_s=0.05),
    )
    job = await _run_new(orch, brute_force_log)

    assert job.status is JobStatus.COMPLETED
    assert job.slow_pass_available is True
    assert job.slow_pass_completed is False
    assert job.total_findings == 1
    assert analyzer.cancelled is True
    assert "analyzer exceeded 0.05s" in caplog.text


@pytest.mark.asyncio
async def test_timeout_keeps_batches_already_persisted(
    brute_force_log: Path, make_finding, scripted_analyzer
) -> None:
    slow = _slow_brute_force(make_finding)
    analyzer = scripted_analyzer(batches=[[slow]], hang=True, submit=False)
    orch = AnalysisOrchestrator(
        InMemoryJobStore(),
        analyzer=analyzer,
        cfg=OrchestratorConfig(analyzer_timeout_s=0.05),
    )
    job = await _run_new(orch, brute_force_log)

    assert job.slow_pass_completed is False
    assert [f.source for f in await orch.list_findings(job.id)] == [FindingSource.SLOW]


@pytest.mark.asyncio
async def test_timeout_during_slow_write_keeps_fast_finding(
    brute_force_log: Path, make_finding, scripted_analyzer
) -> None:
    class SlowWriteStore(InMemoryJobStore):
        async def create_findings(self, job_id, findings):
            findings = list(findings)
            if any(f.source is FindingSource.SLOW for f in findings):
                await asyncio.sleep(0.5)
            return await super().create_findings(job_id, findings)

    analyzer = scripted_analyzer(
        batches=[[_slow_brute_force(make_finding)]], hang=True, submit=False
    )
    orch = AnalysisOrchestrator(
        SlowWriteStore(),
        analyzer=analyzer,
        cfg=OrchestratorConfig(analyzer_timeout_s=0.1),
    )
    job = await _run_new(orch, brute_force_log)

    assert job.status is JobStatus.COMPLETED
    assert job.slow_pass_completed is False
    assert job.total_findings == 1
    findings = await orch.list_findings(job.id)
    assert [(f.line_number, f.source) for f in findings] == [(10, FindingSource.FAST)]


@pytest.mark.asyncio
async def test_timed_out_gemini_call_stops_before_next_job(
    tmp_path: Path, write_lines, monkeypatch
) -> None:
    monkeypatch.setenv("GEMINI_API_KEY", "test-key")
    calls = {"active": 0, "peak": 0, "started": 0}

    async def slow_call(prompt: str, *, cfg) -> AnalyzerResponse:
        calls["started"] += 1
        calls["active"] += 1
        calls["peak"] = max(calls["peak"], calls["active"])
        try:
            await asyncio.sleep(0.5)
        finally:
            calls["active"] -= 1
        return AnalyzerResponse()

    monkeypatch.setattr(analyzer_service, "_call_gemini_json", slow_call)
    slot = asyncio.Semaphore(1)
    cfg = OrchestratorConfig(analyzer_timeout_s=0.1)
    orchestrators = [
        AnalysisOrchestrator(InMemoryJobStore(), analyzer=GeminiAnalyzer(), cfg=cfg, slot=slot)
        for _ in range(2)
    ]
    logs = [write_lines(tmp_path / f"app{n}.log", BRUTE_FORCE_LINES) for n in range(2)]

    jobs = await asyncio.gather(*(_run_new(o, log) for o, log in zip(orchestrators, logs)))

    assert calls["started"] == 2
    assert calls["peak"] == 1
    assert calls["active"] == 0
    assert all(j.slow_pass_available and not j.slow_pass_completed for j in jobs)


@pytest.mark.asyncio
async def test_submitted_result_cancels_the_analyzer(
    brute_force_log: Path, make_finding, scripted_analyzer
) -> None:
    slow = _slow_brute_force(make_finding)
    analyzer = scripted_analyzer(batches=[[slow]], hang=True)
    orch = AnalysisOrchestrator(InMemoryJobStore(), analyzer=analyzer)
    job = await asyncio.wait_for(_run_new(orch, brute_force_log), timeout=5)

    assert analyzer.cancelled is True
    assert job.slow_pass_completed is True
    assert job.total_findings == 1


@pytest.mark.asyncio
async def test_analyzer_error_degrades_to_fast_results(
    brute_force_log: Path, scripted_analyzer
) -> None:
    analyzer = scripted_analyzer(error=RuntimeError("model overloaded"))
    orch = AnalysisOrchestrator(InMemoryJobStore(), analyzer=analyzer)
    job = await _run_new(orch, brute_force_log)

    assert job.status is JobStatus.COMPLETED
    assert job.slow_pass_available is True
    assert job.slow_pass_completed is False
    assert job.error_message is None
    assert job.total_findings == 1


@pytest.mark.asyncio
async def test_store_failure_during_slow_pass_fails_the_job(
    brute_force_log: Path, make_finding, scripted_analyzer
) -> None:
    class FlakyStore(InMemoryJobStore):
        async def create_findings(self, job_id, findings):
            findings = list(findings)
            if any(f.source is FindingSource.SLOW for f in findings):
                raise OSError("disk full")
            return await super().create_findings(job_id, findings)

    analyzer = scripted_analyzer(batches=[[_slow_brute_force(make_finding)]])
    orch = AnalysisOrchestrator(FlakyStore(), analyzer=analyzer)
    job = await _run_new(orch, brute_force_log)

    assert job.status is JobStatus.FAILED
    assert job.analysis_status is AnalysisStatus.FAILED
    assert job.error_message == "disk full"


@pytest.mark.asyncio
async def test_analyzer_calls_are_serialized(
    tmp_path: Path, write_lines, scripted_analyzer
) -> None:
    analyzer = scripted_analyzer(delay=0.02)
    first = AnalysisOrchestrator(InMemoryJobStore(), analyzer=analyzer)
    second = AnalysisOrchestrator(InMemoryJobStore(), analyzer=analyzer)
    logs = [write_lines(tmp_path / f"app{n}.log", BRUTE_FORCE_LINES) for n in range(4)]

    jobs = await asyncio.gather(
        _run_new(first, logs[0]),
        _run_new(first, logs[1]),
        _run_new(second, logs[2]),
        _run_new(second, logs[3]),
    )

    assert all(j.status is JobStatus.COMPLETED for j in jobs)
    assert len(analyzer.requests) == 4
    assert analyzer.max_active == 1


@pytest.mark.asyncio
async def test_rerun_replaces_previous_findings(brute_force_log: Path) -> None:
    orch = AnalysisOrchestrator(InMemoryJobStore())
    job = await _run_new(orch, brute_force_log)
    job = await orch.run(job.id)

    assert job.status is JobStatus.COMPLETED
    assert job.total_findings == 1


@pytest.mark.asyncio
async def test_resume_skips_the_fast_pass(
    brute_force_log: Path, make_finding, scripted_analyzer, monkeypatch
) -> None:
    async def no_scan(*args, **kwargs):
        raise AssertionError("fast pass must not run again")

    monkeypatch.setattr(orchestrator_module, "scan_file", no_scan)
    store = InMemoryJobStore()
    job, fast = await _interrupted_job(store, brute_force_log, make_finding)
    slow = _slow_brute_force(make_finding)
    analyzer = scripted_analyzer(batches=[[slow]])
    orch = AnalysisOrchestrator(store, analyzer=analyzer)

    job = await orch.resume(job.id)

    assert job.status is JobStatus.COMPLETED
    assert job.slow_pass_completed is True
    assert analyzer.requests[0].fast_findings == [fast]
    (finding,) = await orch.list_findings(job.id)
    assert finding.source is FindingSource.SLOW
    assert finding.matched_pattern == "Failed password"


@pytest.mark.asyncio
async def test_resume_terminal_job_is_a_no_op(brute_force_log: Path) -> None:
    orch = AnalysisOrchestrator(InMemoryJobStore())
    done = await _run_new(orch, brute_force_log)
    assert await orch.resume(done.id) == done


@pytest.mark.asyncio
async def test_resume_pending_job_runs_from_start(brute_force_log: Path) -> None:
    orch = AnalysisOrchestrator(InMemoryJobStore())
    job = await orch.create_job(brute_force_log)
    job = await orch.resume(job.id)

    assert job.status is JobStatus.COMPLETED
    assert job.total_findings == 1


@pytest.mark.asyncio
async def test_unknown_job_raises() -> None:
    orch = AnalysisOrchestrator(InMemoryJobStore())
    with pytest.raises(JobNotFoundError):
        await orch.run("missing")
    with pytest.raises(JobNotFoundError):
        await orch.resume("missing")


@pytest.mark.asyncio
async def test_recover_interrupted_jobs(
    tmp_path: Path, write_lines, make_finding, scripted_analyzer
) -> None:
    store = InMemoryJobStore()
    ids = set()
    for n in range(2):
        log = write_lines(tmp_path / f"auth{n}.log", BRUTE_FORCE_LINES)
        job, _ = await _interrupted_job(store, log, make_finding)
        ids.add(job.id)
    orch = AnalysisOrchestrator(store, analyzer=scripted_analyzer(delay=0.05))

    tasks = await orch.recover_interrupted_jobs()

    assert len(tasks) == 2
    assert not any(t.done() for t in tasks)
    assert all(orch.is_active(job_id) for job_id in ids)
    assert await orch.recover_interrupted_jobs() == []

    recovered = await asyncio.wait_for(asyncio.gather(*tasks), timeout=5)
    assert {j.id for j in recovered} == ids
    assert all(j.status is JobStatus.COMPLETED for j in recovered)
    assert await orch.recover_interrupted_jobs() == []


@pytest.mark.asyncio
async def test_stall_detector_resumes_old_jobs(
    brute_force_log: Path, make_finding, scripted_analyzer
) -> None:
    store = InMemoryJobStore()
    job, _ = await _interrupted_job(store, brute_force_log, make_finding)
    orch = AnalysisOrchestrator(store, analyzer=scripted_analyzer())
    detector = StallDetector(orch)

    assert detector.threshold_s == 15 * 60
    assert await detector.check_once() == []

    later = datetime.now(UTC) + timedelta(minutes=16)
    assert await detector.check_once(now=later) == [job.id]

    for _ in range(200):
        current = await store.get_job(job.id)
        if current.status.is_terminal:
            break
        await asyncio.sleep(0.01)
    assert current.status is JobStatus.COMPLETED


@pytest.mark.asyncio
async def test_stall_detector_start_stop() -> None:
    orch = AnalysisOrchestrator(InMemoryJobStore())
    detector = StallDetector(orch, interval_s=60)
    task = detector.start()
    assert detector.start() is task
    await detector.stop()
    assert task.cancelled()


@pytest.mark.asyncio
async def test_progress_snapshots_are_published(brute_force_log: Path) -> None:
    bus = JobEventBus()
    orch = AnalysisOrchestrator(InMemoryJobStore(), sink=bus)
    job = await orch.create_job(brute_force_log)
    queue = bus.subscribe(job.id)

    await orch.run(job.id)

    snapshots = []
    while not queue.empty():
        snapshots.append(queue.get_nowait())
    assert snapshots[0].status is JobStatus.ANALYZING
    assert any(s.fast_pass_completed and s.status is JobStatus.ANALYZING for s in snapshots)
    assert snapshots[-1].status is JobStatus.COMPLETED


@pytest.mark.asyncio
async def test_start_runs_in_background(brute_force_log: Path) -> None:
    orch = AnalysisOrchestrator(InMemoryJobStore())
    job = await orch.create_job(brute_force_log)

    task = orch.start(job.id)
    done = await task

    assert done.status is JobStatus.COMPLETED
    assert not orch.is_active(job.id)
