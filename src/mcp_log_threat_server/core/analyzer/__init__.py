"""Contextual (slow-pass) analyzer package."""

from __future__ import annotations

from .base import Analyzer, AnalyzerProgress
from .chunker import Chunk, chunk_lines
from .models import (
    AnalyzerConfig,
    AnalyzerFinding,
    AnalyzerRequest,
    AnalyzerResponse,
    AnalyzerResult,
    AnalyzerUnavailableError,
    resolve_analyzer_config,
)
from .parser import normalize_findings, parse_analyzer_response
from .redaction import redact_text
from .service import GeminiAnalyzer

__all__ = [
    "Analyzer",
    "AnalyzerConfig",
    "AnalyzerFinding",
    "AnalyzerProgress",
    "AnalyzerRequest",
    "AnalyzerResponse",
    "AnalyzerResult",
    "AnalyzerUnavailableError",
    "Chunk",
    "GeminiAnalyzer",
    "chunk_lines",
    "normalize_findings",
    "parse_analyzer_response",
    "redact_text",
    "resolve_analyzer_config",
]
