"""Gemini-backed contextual analyzer.

Splits the log into numbered chunks, asks the model to validate the fast-pass
findings and report what the patterns missed, and streams each chunk's
findings back through the progress hooks.
"""

from __future__ import annotations

import asyncio
import hashlib
import logging
import os
from pathlib import Path

from ..models import RawFinding
from ..scanning import open_text
from .base import AnalyzerProgress
from .chunker import chunk_lines
from .models import (
    AnalyzerConfig,
    AnalyzerRequest,
    AnalyzerResponse,
    AnalyzerResult,
    AnalyzerUnavailableError,
    resolve_analyzer_config,
)
from .parser import normalize_findings, parse_analyzer_response
from .prompt import build_analysis_prompt
from .redaction import redact_text

logger = logging.getLogger(__name__)
_ANALYZER_SCHEMA = AnalyzerResponse.model_json_schema()


def _api_key() -> str | None:
    return os.getenv("GEMINI_API_KEY") or os.getenv("GOOGLE_API_KEY")


def _client(api_key: str):
    try:
        from google import genai
    except ImportError as e:  # pragma: no cover
        raise AnalyzerUnavailableError(
            "google-genai is required for the contextual analyzer. "
            "Install with: pip install '.[ai]'"
        ) from e
    return genai.Client(api_key=api_key)


async def _call_gemini_json(prompt: str, *, cfg: AnalyzerConfig) -> AnalyzerResponse:
    """Call Gemini and validate the response against the schema.

    Uses the async client, so cancelling the caller also abandons the request
    in flight and any pending retry.
    """
    api_key = _api_key()
    if not api_key:
        raise AnalyzerUnavailableError("Missing GEMINI_API_KEY (or GOOGLE_API_KEY).")

    client = _client(api_key)

    last_err: Exception | None = None
    for attempt in range(1, cfg.max_retries + 1):
        try:
            resp = await client.aio.models.generate_content(
                model=cfg.model,
                contents=prompt,
                config={
                    "response_mime_type": "application/json",
                    "response_json_schema": _ANALYZER_SCHEMA,
                    "temperature": cfg.temperature,
                },
            )
            return parse_analyzer_response(resp.text or "")
        except Exception as e:
            last_err = e
            if attempt >= cfg.max_retries:
                break
            sleep_s = min(8, 2 ** (attempt - 1))
            logger.warning("Gemini call failed (attempt %s/%s): %s", attempt, cfg.max_retries, e)
            await asyncio.sleep(sleep_s)

    raise RuntimeError(
        f"Gemini call failed after {cfg.max_retries} attempts: {last_err}"
    ) from last_err


async def _read_lines(path: Path) -> list[str]:
    lines: list[str] = []
    async with open_text(path) as f:
        async for line in f:
            lines.append(line.rstrip("\r\n"))
    return lines


class GeminiAnalyzer:
    """`Analyzer` implementation that reviews the log chunk by chunk."""

    name = "gemini"

    def __init__(self, cfg: AnalyzerConfig | None = None) -> None:
        self.cfg = resolve_analyzer_config(cfg)

    @staticmethod
    def available() -> bool:
        return _api_key() is not None

    async def analyze(
        self, request: AnalyzerRequest, progress: AnalyzerProgress
    ) -> AnalyzerResult:
        if not self.available():
            raise AnalyzerUnavailableError("Missing GEMINI_API_KEY (or GOOGLE_API_KEY).")

        path = Path(request.source_path)
        if not path.is_file():
            raise FileNotFoundError(f"Log file not found: {path}")

        lines = await _read_lines(path)
        chunks = chunk_lines(
            lines,
            max_chars=self.cfg.chunk_max_chars,
            overlap_lines=self.cfg.chunk_overlap_lines,
        )
        logger.info("Analyzing %s with %s: %d chunks", path.name, self.cfg.model, len(chunks))

        findings: dict[str, RawFinding] = {}
        summaries: list[str] = []
        false_positives: set[int] = set()
        seen_hashes: set[str] = set()

        for chunk in chunks:
            text = redact_text(chunk.content) if self.cfg.redact else chunk.content

            h = hashlib.sha256(text.encode("utf-8", errors="ignore")).hexdigest()
            if h in seen_hashes:
                continue
            seen_hashes.add(h)

            prompt = build_analysis_prompt(
                text, request=request, chunk=chunk, total_chunks=len(chunks)
            )
            resp = await _call_gemini_json(prompt, cfg=self.cfg)

            batch = [
                f for f in normalize_findings(resp, lines=lines) if f.fingerprint not in findings
            ]
            for f in batch:
                findings[f.fingerprint] = f
            if batch:
                await progress.on_batch(batch)

            if resp.summary:
                summaries.append(resp.summary.strip())
            false_positives.update(
                n
                for n in resp.false_positive_line_numbers
                if chunk.start_line <= n <= chunk.end_line
            )

        result = AnalyzerResult(
            findings=list(findings.values()),
            summary="\n\n".join(summaries) or None,
            false_positive_line_numbers=sorted(false_positives),
        )
        logger.info("Analyzer finished %s: %d findings", path.name, len(result.findings))
        progress.submit(result)
        return result
