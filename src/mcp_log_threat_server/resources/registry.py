"""MCP resource registry.

Resources are addressable by URI and can be fetched by the MCP client on demand.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import asdict
from typing import Any

from mcp.server.fastmcp import FastMCP

from mcp_log_threat_server.core.analyzer import AnalyzerResponse
from mcp_log_threat_server.core.config import ALLOWED_EXTENSIONS, MAX_FILE_SIZE
from mcp_log_threat_server.core.context import DEFAULT_THRESHOLDS
from mcp_log_threat_server.core.detectors import (
    PatternDetector,
    default_detectors,
    default_post_pass,
)
from mcp_log_threat_server.core.inputs import BASE_DIR_ENV, base_dir, validate_log_path
from mcp_log_threat_server.core.models import Severity, ThreatCategory
from mcp_log_threat_server.core.orchestrator import AnalysisOrchestrator
from mcp_log_threat_server.core.scanning import open_text

SAMPLE_LOG = (
    '192.168.1.20 - - [30/Dec/2025:08:12:01 +0000] "GET /index.html HTTP/1.1" 200 512 "-" "Mozilla/5.0"\n'
    '203.0.113.7 - - [30/Dec/2025:08:12:03 +0000] "GET /item?id=1 UNION SELECT user,pass FROM users HTTP/1.1" 500 0 "-" "sqlmap/1.7"\n'
    '203.0.113.7 - - [30/Dec/2025:08:12:04 +0000] "GET /../../etc/passwd HTTP/1.1" 404 0 "-" "curl/8.0"\n'
    "Dec 30 08:12:05 web sshd[4242]: Failed password for root from 10.0.0.5 port 22 ssh2\n"
    "Dec 30 08:12:06 web sudo: www-data : command not allowed ; COMMAND=/bin/bash\n"
)


def _detector_catalogue() -> list[dict[str, Any]]:
    out: list[dict[str, Any]] = []
    for d in default_detectors():
        entry: dict[str, Any] = {"name": d.name, "category": d.category.value, "kind": "line"}
        if isinstance(d, PatternDetector):
            entry["rules"] = [
                {"label": r.label, "severity": r.severity.value, "confidence": r.confidence}
                for r in d.rules
            ]
        out.append(entry)
    for p in default_post_pass():
        out.append(
            {"name": p.name, "category": ThreatCategory.RATE_ANOMALY.value, "kind": "post-pass"}
        )
    return out


async def _read_text(path_str: str) -> str:
    path = validate_log_path(path_str, restrict_to_base=True)
    async with open_text(path) as f:
        return await f.read()


def register_resources(
    mcp: FastMCP, get_orchestrator: Callable[[], AnalysisOrchestrator]
) -> None:
    """Register resource handlers on the MCP server."""

    @mcp.resource("app://log-threat/help")
    def help_resource() -> str:
        """Return a short list of available resource URIs."""
        allowed = ", ".join(sorted(ALLOWED_EXTENSIONS))
        return (
            "Resources:\n"
            "- app://log-threat/help\n"
            "- app://log-threat/config/detectors\n"
            "- app://log-threat/config/thresholds\n"
            "- app://log-threat/config/taxonomy\n"
            "- app://log-threat/schemas/analyzer-response\n"
            "- app://log-threat/examples/sample-log\n"
            "- analysis://{job_id} (job snapshot)\n"
            f"- log://{{path}} (restricted to {BASE_DIR_ENV}; allowed: {allowed}, .gz; "
            f"max {MAX_FILE_SIZE} bytes)\n"
            f"\nBase directory: {base_dir()}\n"
        )

    @mcp.resource("app://log-threat/examples/sample-log")
    def sample_log() -> str:
        """Return a tiny access/auth log with a few attacks in it."""
        return SAMPLE_LOG

    @mcp.resource("app://log-threat/config/detectors")
    def detectors() -> list[dict[str, Any]]:
        """Return the detectors in execution order with their pattern tables."""
        return _detector_catalogue()

    @mcp.resource("app://log-threat/config/thresholds")
    def thresholds() -> dict[str, Any]:
        """Return the stateful detector thresholds."""
        return asdict(DEFAULT_THRESHOLDS)

    @mcp.resource("app://log-threat/config/taxonomy")
    def taxonomy() -> dict[str, list[str]]:
        """Return the severity scale and threat categories."""
        return {
            "severities": [s.value for s in Severity],
            "categories": [c.value for c in ThreatCategory],
        }

    @mcp.resource("app://log-threat/schemas/analyzer-response")
    def analyzer_schema() -> dict[str, Any]:
        """Return the JSON schema the contextual analyzer must answer with."""
        return AnalyzerResponse.model_json_schema()

    @mcp.resource("analysis://{job_id}")
    async def analysis_snapshot(job_id: str) -> dict[str, Any]:
        """Return the current state of an analysis job."""
        job = await get_orchestrator().store.get_job(job_id)
        if job is None:
            raise ValueError(f"Unknown analysis job: {job_id}")
        return job.to_dict()

    @mcp.resource("log://{path}")
    async def read_log(path: str) -> str:
        """Return the full contents of a log file within LOG_THREAT_BASE_DIR."""
        return await _read_text(path)
