"""MCP server entrypoint (stdio transport).

This module wires together:
- Tools: start an analysis, poll it, resume it, list jobs
- Resources: detector catalogue, thresholds, schemas, sample log, log files
- Prompts: reusable conversation templates that clients can invoke

Run locally (stdio):
    python -m mcp_log_threat_server.server.log_server
"""

from __future__ import annotations

import logging
import os
import sys
from collections.abc import AsyncIterator, Sequence
from contextlib import asynccontextmanager
from typing import Any

from mcp.server.fastmcp import FastMCP

from mcp_log_threat_server.core.analyzer import GeminiAnalyzer
from mcp_log_threat_server.core.events import JobEventBus
from mcp_log_threat_server.core.orchestrator import AnalysisOrchestrator, StallDetector
from mcp_log_threat_server.core.store import InMemoryJobStore
from mcp_log_threat_server.prompts.registry import register_prompts
from mcp_log_threat_server.resources.registry import register_resources
from mcp_log_threat_server.tools.analysis import (
    analyze_log_impl,
    get_analysis_impl,
    list_analyses_impl,
    resume_analysis_impl,
)

LOGGER = logging.getLogger(__name__)

_ORCHESTRATOR: AnalysisOrchestrator | None = None
EVENTS = JobEventBus()


def _configure_logging() -> None:
    """Configure a reasonable default logging setup.

    The MCP client typically captures stderr; keeping logs concise makes them easier to consume.
    """
    level_name = os.getenv("LOG_THREAT_LOG_LEVEL", "INFO").upper()
    level = getattr(logging, level_name, logging.INFO)
    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def get_orchestrator() -> AnalysisOrchestrator:
    """Return the process-wide orchestrator, creating it on first use."""
    global _ORCHESTRATOR
    if _ORCHESTRATOR is None:
        _ORCHESTRATOR = AnalysisOrchestrator(
            InMemoryJobStore(),
            analyzer=GeminiAnalyzer(),
            sink=EVENTS,
        )
    return _ORCHESTRATOR


@asynccontextmanager
async def _lifespan(server: FastMCP) -> AsyncIterator[None]:
    orchestrator = get_orchestrator()
    await orchestrator.recover_interrupted_jobs()
    detector = StallDetector(orchestrator)
    detector.start()
    try:
        yield
    finally:
        await detector.stop()


mcp = FastMCP("log-threat", json_response=True, lifespan=_lifespan)

register_resources(mcp, get_orchestrator)
register_prompts(mcp)


@mcp.tool()
async def analyze_log(
    log_path: str,
    wait: bool = True,
    limit: int | None = None,
) -> dict[str, Any]:
    """Scan a log file for security threats.

    Parameters
    ----------
    log_path:
        Path to a local log file (.log, .txt, .csv, .jsonl; optionally .gz).
        JSON-lines, CSV and plain text are detected automatically.
    wait:
        When true (default), return after the analysis finishes. When false,
        return the queued job immediately; poll it with get_analysis.
    limit:
        Maximum number of findings returned (hard-capped in the implementation).

    Returns
    -------
    dict:
        {"job": dict, "count": int, "truncated": bool, "findings": list[dict]}
        (only {"job": dict} when wait is false)
    """
    return await analyze_log_impl(get_orchestrator(), log_path=log_path, wait=wait, limit=limit)


@mcp.tool()
async def get_analysis(
    job_id: str,
    include_findings: bool = True,
    min_severity: str | None = None,
    limit: int | None = None,
    include_content: bool = True,
) -> dict[str, Any]:
    """Return the state of an analysis job and its findings.

    Parameters
    ----------
    job_id:
        Id returned by analyze_log.
    include_findings:
        When false, return only the job snapshot.
    min_severity:
        Lowest severity to include (CRITICAL, HIGH, MEDIUM, LOW, INFO). Case-insensitive.
    limit:
        Maximum number of findings returned, most severe first.
    include_content:
        Whether to include the offending log line in each finding.
    """
    return await get_analysis_impl(
        get_orchestrator(),
        job_id=job_id,
        include_findings=include_findings,
        min_severity=min_severity,
        limit=limit,
        include_content=include_content,
    )


@mcp.tool()
async def resume_analysis(job_id: str, wait: bool = True) -> dict[str, Any]:
    """Resume an interrupted analysis from its last completed phase."""
    return await resume_analysis_impl(get_orchestrator(), job_id=job_id, wait=wait)


@mcp.tool()
async def list_analyses(status: str | None = None) -> dict[str, Any]:
    """List analysis jobs, newest first, optionally filtered by status."""
    return await list_analyses_impl(get_orchestrator(), status=status)


def main(argv: Sequence[str] | None = None) -> None:
    """Start the MCP server over stdio."""
    _configure_logging()
    LOGGER.debug("Starting MCP server (transport=stdio)")
    _ = argv or sys.argv[1:]
    mcp.run(transport="stdio")


if __name__ == "__main__":
    main()
