"""MCP prompt registry.

Prompts are predefined conversation/workflow templates that the client can invoke explicitly.
"""

from __future__ import annotations

from typing import Any

from mcp.server.fastmcp import FastMCP

from mcp_log_threat_server.core.models import Severity


def _severity_display(min_severity: str) -> str:
    name = min_severity.strip().upper()
    valid = [s.value for s in Severity]
    if name not in valid:
        return "HIGH"
    return name


def register_prompts(mcp: FastMCP) -> None:
    """Register prompt templates on the MCP server."""

    @mcp.prompt()
    def investigate_log(log_path: str, min_severity: str = "HIGH") -> list[dict[str, Any]]:
        """Build a prompt for a threat investigation of one log file."""
        severity = _severity_display(min_severity)
        return [
            {
                "role": "system",
                "content": (
                    "You are a security analyst. Report only what the findings and log "
                    "lines support. Do not invent attackers, lines or indicators; if the "
                    "evidence is insufficient, say so."
                ),
            },
            {
                "role": "user",
                "content": (
                    "Investigate the log file for security threats. Follow this workflow:\n"
                    "- Call analyze_log first with the parameters below.\n"
                    "- Check job.slow_pass_available and job.slow_pass_completed. If either "
                    "is false, say the findings come from pattern matching only.\n"
                    f"- Focus on findings of severity {severity} or higher; call get_analysis "
                    f"with min_severity=\"{severity}\" if the list is long.\n"
                    "- Group findings by source address where possible and describe any "
                    "multi-stage attack (reconnaissance, then exploitation, then access).\n"
                    "- If no findings are returned, state that clearly.\n\n"
                    "Call analyze_log with:\n"
                    f"- log_path: {log_path}\n"
                    "- wait: true\n\n"
                    "Return this structure:\n"
                    "1) Verdict (one sentence: clean, suspicious, or compromised)\n"
                    "2) Top threats (up to 5 bullets; severity, category, line, source)\n"
                    "3) Evidence (2-5 quoted lines with their line numbers)\n"
                    "4) MITRE ATT&CK mapping (tactic / technique per threat, when present)\n"
                    "5) Containment and next actions (2-4 bullets)\n"
                ),
            },
            {
                "role": "user",
                "content": [
                    {
                        "type": "text",
                        "text": "Optional: if you need raw context, you can read the log via:",
                    },
                    {"type": "resource", "uri": f"log://{log_path}"},
                ],
            },
        ]

    @mcp.prompt()
    def incident_report(job_id: str, audience: str = "engineering") -> list[dict[str, Any]]:
        """Build a prompt that turns a finished analysis into a Markdown incident report."""
        return [
            {
                "role": "system",
                "content": (
                    "Write a security incident report in Markdown. Redact credentials, "
                    "tokens and personal data if present in quoted evidence."
                ),
            },
            {
                "role": "user",
                "content": (
                    f"Audience: {audience}\n\n"
                    f"Call get_analysis with job_id={job_id} and include_findings=true, then "
                    "write a report with sections:\n"
                    "- Summary\n"
                    "- Timeline (use event timestamps when present)\n"
                    "- Affected assets and sources\n"
                    "- Findings by severity\n"
                    "- Analysis coverage (which passes ran)\n"
                    "- Recommendations\n"
                ),
            },
            {
                "role": "user",
                "content": [
                    {"type": "text", "text": "The job snapshot is also available as:"},
                    {"type": "resource", "uri": f"analysis://{job_id}"},
                ],
            },
        ]
