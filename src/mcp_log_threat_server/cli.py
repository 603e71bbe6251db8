from __future__ import annotations

import argparse
import asyncio
import json
import logging
import os
import sys
from collections.abc import Sequence
from dataclasses import replace

from mcp_log_threat_server.core.analyzer import GeminiAnalyzer
from mcp_log_threat_server.core.config import resolve_orchestrator_config
from mcp_log_threat_server.core.inputs import validate_log_path
from mcp_log_threat_server.core.models import AnalysisJob, JobStatus, RawFinding, Severity
from mcp_log_threat_server.core.orchestrator import AnalysisOrchestrator
from mcp_log_threat_server.core.store import InMemoryJobStore


def _parse_severity(s: str) -> Severity:
    try:
        return Severity(s.strip().upper())
    except ValueError as e:
        raise argparse.ArgumentTypeError(
            "Invalid severity. Allowed: CRITICAL, HIGH, MEDIUM, LOW, INFO"
        ) from e


def _positive_float(s: str) -> float:
    try:
        value = float(s)
    except ValueError as e:
        raise argparse.ArgumentTypeError("must be a number") from e
    if value <= 0:
        raise argparse.ArgumentTypeError("must be > 0")
    return value


async def _analyze(args: argparse.Namespace) -> tuple[AnalysisJob, list[RawFinding]]:
    cfg = resolve_orchestrator_config(None)
    if args.timeout is not None:
        cfg = replace(cfg, analyzer_timeout_s=args.timeout)

    orchestrator = AnalysisOrchestrator(
        InMemoryJobStore(),
        analyzer=None if args.fast_only else GeminiAnalyzer(),
        cfg=cfg,
    )
    job = await orchestrator.create_job(args.log_path)
    job = await orchestrator.run(job.id)
    return job, await orchestrator.list_findings(job.id)


def _print_text(job: AnalysisJob, findings: Sequence[RawFinding]) -> None:
    for f in findings:
        line = f.line_number if f.line_number is not None else "-"
        print(f"{line} [{f.severity.value}] {f.category.value} {f.title}")
        if f.line_content:
            print(f"    {f.line_content}")

    counts = ", ".join(f"{k}: {v}" for k, v in job.severity_counts.items() if v)
    coverage = "fast + slow" if job.slow_pass_completed else "fast only"
    print(f"\nFound {len(findings)} findings ({counts or 'none'}); passes: {coverage}.")
    if job.overall_summary:
        print(f"\n{job.overall_summary}")


def main(argv: Sequence[str] | None = None) -> None:
    p = argparse.ArgumentParser(description="Scan a log file for security threats.")
    p.add_argument("log_path")
    p.add_argument(
        "--min-severity",
        type=_parse_severity,
        default=Severity.INFO,
        help="Lowest severity to print (default: INFO)",
    )
    p.add_argument(
        "--max", dest="max_results", type=int, default=None, help="Max findings to print"
    )
    p.add_argument("--fast-only", action="store_true", help="Skip the contextual analyzer")
    p.add_argument("--timeout", type=_positive_float, default=None, help="Analyzer timeout (s)")
    p.add_argument("--json", dest="as_json", action="store_true", help="Print JSON")
    p.add_argument("-v", "--verbose", action="store_true", help="Log progress to stderr")

    args = p.parse_args(argv)
    level_name = "INFO" if args.verbose else os.getenv("LOG_THREAT_LOG_LEVEL", "WARNING").upper()
    logging.basicConfig(
        level=getattr(logging, level_name, logging.WARNING),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    try:
        args.log_path = str(validate_log_path(args.log_path))
        job, findings = asyncio.run(_analyze(args))
    except FileNotFoundError as e:
        print(str(e), file=sys.stderr)
        raise SystemExit(2)
    except ValueError as e:
        print(f"Error: {e}", file=sys.stderr)
        raise SystemExit(2)

    if job.status is JobStatus.FAILED:
        print(f"Analysis failed: {job.error_message}", file=sys.stderr)
        raise SystemExit(1)

    findings = [f for f in findings if f.severity.rank <= args.min_severity.rank]
    if args.max_results is not None:
        findings = findings[: args.max_results]

    if args.as_json:
        payload = {"job": job.to_dict(), "findings": [f.to_dict() for f in findings]}
        print(json.dumps(payload, indent=2))
        return
    _print_text(job, findings)


if __name__ == "__main__":
    main()
