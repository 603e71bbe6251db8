"""MCP tool implementations.

This module contains the *implementation* behind the exposed MCP tools.
Keep this layer thin: validate inputs, translate them into orchestrator calls,
and return JSON-serializable data structures.
"""

from __future__ import annotations

from typing import Any

from mcp_log_threat_server.core.inputs import validate_log_path
from mcp_log_threat_server.core.models import AnalysisJob, JobStatus, RawFinding, Severity
from mcp_log_threat_server.core.orchestrator import AnalysisOrchestrator

DEFAULT_LIMIT = 200
HARD_LIMIT = 5000
ALL_SEVERITIES = [s.value for s in Severity]


def _parse_severity(value: str | None) -> Severity | None:
    """Parse a user-supplied severity name (case-insensitive)."""
    if value is None or not value.strip():
        return None
    try:
        return Severity(value.strip().upper())
    except ValueError as e:
        valid = ", ".join(ALL_SEVERITIES)
        raise ValueError(
            f"Unknown severity '{value}'. Valid values: {valid}. "
            "Tip: severity is case-insensitive (e.g., 'high', 'CRITICAL')."
        ) from e


def _parse_status(value: str | None) -> JobStatus | None:
    if value is None or not value.strip():
        return None
    try:
        return JobStatus(value.strip().upper())
    except ValueError as e:
        valid = ", ".join(s.value for s in JobStatus)
        raise ValueError(f"Unknown job status '{value}'. Valid values: {valid}.") from e


def _effective_limit(limit: int | None) -> int:
    if limit is None:
        return DEFAULT_LIMIT
    if limit <= 0:
        raise ValueError("limit must be > 0")
    return min(limit, HARD_LIMIT)


def _finding_to_dict(finding: RawFinding, *, include_content: bool) -> dict[str, Any]:
    d = finding.to_dict()
    if not include_content:
        d.pop("line_content", None)
    return d


async def _job_payload(
    orchestrator: AnalysisOrchestrator,
    job: AnalysisJob,
    *,
    include_findings: bool,
    min_severity: Severity | None = None,
    limit: int = DEFAULT_LIMIT,
    include_content: bool = True,
) -> dict[str, Any]:
    out: dict[str, Any] = {"job": job.to_dict()}
    if not include_findings:
        return out

    findings = await orchestrator.list_findings(job.id)
    if min_severity is not None:
        findings = [f for f in findings if f.severity.rank <= min_severity.rank]
    out["count"] = len(findings)
    out["truncated"] = len(findings) > limit
    out["findings"] = [
        _finding_to_dict(f, include_content=include_content) for f in findings[:limit]
    ]
    return out


async def analyze_log_impl(
    orchestrator: AnalysisOrchestrator,
    *,
    log_path: str,
    wait: bool = True,
    limit: int | None = None,
) -> dict[str, Any]:
    """Implementation for the `analyze_log` MCP tool.

    Notes
    -----
    - The file must exist, have an allowed extension and fit the size limit.
    - With wait=False the job runs in the background; poll `get_analysis`.
    """
    path = validate_log_path(log_path)
    lim = _effective_limit(limit)

    job = await orchestrator.create_job(path)
    if not wait:
        orchestrator.start(job.id)
        return {"job": job.to_dict()}

    job = await orchestrator.run(job.id)
    return await _job_payload(orchestrator, job, include_findings=True, limit=lim)


async def get_analysis_impl(
    orchestrator: AnalysisOrchestrator,
    *,
    job_id: str,
    include_findings: bool = True,
    min_severity: str | None = None,
    limit: int | None = None,
    include_content: bool = True,
) -> dict[str, Any]:
    """Implementation for the `get_analysis` MCP tool."""
    sev = _parse_severity(min_severity)
    lim = _effective_limit(limit)
    job = await orchestrator.store.get_job(job_id)
    if job is None:
        raise ValueError(f"Unknown analysis job: {job_id}")
    return await _job_payload(
        orchestrator,
        job,
        include_findings=include_findings,
        min_severity=sev,
        limit=lim,
        include_content=include_content,
    )


async def resume_analysis_impl(
    orchestrator: AnalysisOrchestrator,
    *,
    job_id: str,
    wait: bool = True,
) -> dict[str, Any]:
    """Implementation for the `resume_analysis` MCP tool."""
    job = await orchestrator.store.get_job(job_id)
    if job is None:
        raise ValueError(f"Unknown analysis job: {job_id}")
    if not wait:
        orchestrator.start(job_id, resume=True)
        return {"job": job.to_dict()}
    job = await orchestrator.resume(job_id)
    return {"job": job.to_dict()}


async def list_analyses_impl(
    orchestrator: AnalysisOrchestrator,
    *,
    status: str | None = None,
) -> dict[str, Any]:
    """Implementation for the `list_analyses` MCP tool."""
    jobs = await orchestrator.store.list_jobs(status=_parse_status(status))
    jobs.sort(key=lambda j: j.created_at.isoformat() if j.created_at else "", reverse=True)
    return {"count": len(jobs), "jobs": [j.to_dict() for j in jobs]}
