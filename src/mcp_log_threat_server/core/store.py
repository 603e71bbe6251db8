"""Persistence contract for jobs and findings, plus an in-memory store."""

from __future__ import annotations

import uuid
from collections.abc import Collection, Iterable
from dataclasses import replace
from datetime import UTC, datetime
from typing import Any, Protocol

from .models import AnalysisJob, FindingSource, JobStatus, RawFinding, Severity


class JobNotFoundError(LookupError):
    """Raised when a job id is unknown to the store."""


class JobStore(Protocol):
    """Abstract CRUD used by the orchestrator.

    Finding writes are keyed by fingerprint so replaying them is harmless.
    """

    async def create_job(self, source_path: str) -> AnalysisJob: ...

    async def get_job(self, job_id: str) -> AnalysisJob | None: ...

    async def update_job(self, job_id: str, **changes: Any) -> AnalysisJob: ...

    async def list_jobs(self, *, status: JobStatus | None = None) -> list[AnalysisJob]: ...

    async def create_findings(self, job_id: str, findings: Iterable[RawFinding]) -> int: ...

    async def delete_findings_by_fingerprint(
        self,
        job_id: str,
        fingerprints: Collection[str],
        *,
        source: FindingSource | None = None,
    ) -> int: ...

    async def delete_findings_by_lines(
        self, job_id: str, source: FindingSource, line_numbers: Collection[int]
    ) -> int: ...

    async def list_findings(
        self, job_id: str, *, source: FindingSource | None = None
    ) -> list[RawFinding]: ...

    async def count_by_severity(self, job_id: str) -> dict[Severity, int]: ...


def _now() -> datetime:
    return datetime.now(UTC)


class InMemoryJobStore:
    """Process-local `JobStore`. Suitable for the CLI, the MCP server and tests."""

    def __init__(self) -> None:
        self._jobs: dict[str, AnalysisJob] = {}
        self._findings: dict[str, dict[str, RawFinding]] = {}

    async def create_job(self, source_path: str) -> AnalysisJob:
        now = _now()
        job = AnalysisJob(
            id=uuid.uuid4().hex,
            source_path=str(source_path),
            created_at=now,
            updated_at=now,
        )
        self._jobs[job.id] = job
        self._findings[job.id] = {}
        return job

    async def get_job(self, job_id: str) -> AnalysisJob | None:
        return self._jobs.get(job_id)

    async def update_job(self, job_id: str, **changes: Any) -> AnalysisJob:
        job = self._require(job_id)
        job = replace(job, updated_at=_now(), **changes)
        self._jobs[job_id] = job
        return job

    async def list_jobs(self, *, status: JobStatus | None = None) -> list[AnalysisJob]:
        jobs = list(self._jobs.values())
        if status is not None:
            jobs = [j for j in jobs if j.status is status]
        return jobs

    async def create_findings(self, job_id: str, findings: Iterable[RawFinding]) -> int:
        bucket = self._bucket(job_id)
        n = 0
        for f in findings:
            bucket[f.fingerprint] = f
            n += 1
        return n

    async def delete_findings_by_fingerprint(
        self,
        job_id: str,
        fingerprints: Collection[str],
        *,
        source: FindingSource | None = None,
    ) -> int:
        bucket = self._bucket(job_id)
        doomed = [
            fp
            for fp in fingerprints
            if fp in bucket and (source is None or bucket[fp].source is source)
        ]
        for fp in doomed:
            del bucket[fp]
        return len(doomed)

    async def delete_findings_by_lines(
        self, job_id: str, source: FindingSource, line_numbers: Collection[int]
    ) -> int:
        bucket = self._bucket(job_id)
        lines = set(line_numbers)
        doomed = [
            fp
            for fp, f in bucket.items()
            if f.source is source and f.line_number is not None and f.line_number in lines
        ]
        for fp in doomed:
            del bucket[fp]
        return len(doomed)

    async def list_findings(
        self, job_id: str, *, source: FindingSource | None = None
    ) -> list[RawFinding]:
        findings = list(self._bucket(job_id).values())
        if source is not None:
            findings = [f for f in findings if f.source is source]
        return findings

    async def count_by_severity(self, job_id: str) -> dict[Severity, int]:
        counts = {s: 0 for s in Severity}
        for f in self._bucket(job_id).values():
            counts[f.severity] += 1
        return counts

    def _require(self, job_id: str) -> AnalysisJob:
        job = self._jobs.get(job_id)
        if job is None:
            raise JobNotFoundError(f"Unknown job: {job_id}")
        return job

    def _bucket(self, job_id: str) -> dict[str, RawFinding]:
        self._require(job_id)
        return self._findings.setdefault(job_id, {})
