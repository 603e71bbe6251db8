"""Single-pass streaming scan engine.

Reads a log once, normalizes each line for the detected format, runs every
per-line detector against it, then runs the post-pass detectors against the
accumulated per-source statistics.
"""

from __future__ import annotations

import gzip
import logging
from collections.abc import AsyncIterable, Iterable, Sequence
from contextlib import asynccontextmanager
from dataclasses import replace
from pathlib import Path

import aiofiles
from aiofiles.threadpool import wrap

from .context import DEFAULT_THRESHOLDS, DetectionContext, DetectionThresholds
from .detectors import ERROR_STATUS_RE, LineDetector, PostPassDetector
from .detectors import default_detectors, default_post_pass
from .formats import SAMPLE_LINES, detect_format, normalize_line, parse_csv_header
from .line_utils import extract_ip, extract_timestamp, truncate_line
from .models import LogFormat, RawFinding, ScanResult

logger = logging.getLogger(__name__)


@asynccontextmanager
async def open_text(path: Path, *, encoding: str = "utf-8", decode_errors: str = "replace"):
    """Open a log file for async text reading (plain or gzip)."""
    if path.suffix.lower() == ".gz":
        f = gzip.open(path, mode="rt", encoding=encoding, errors=decode_errors)
        af = wrap(f)
        try:
            yield af
        finally:
            await af.close()
    else:
        async with aiofiles.open(path, encoding=encoding, errors=decode_errors) as f:
            yield f


def dedupe_by_fingerprint(findings: Iterable[RawFinding]) -> list[RawFinding]:
    """Keep the first finding for each fingerprint, preserving order."""
    seen: set[str] = set()
    out: list[RawFinding] = []
    for f in findings:
        if f.fingerprint in seen:
            continue
        seen.add(f.fingerprint)
        out.append(f)
    return out


class StreamingScan:
    """State for one scan run. Feed raw lines in order, then call `finish()`."""

    def __init__(
        self,
        *,
        detectors: Sequence[LineDetector] | None = None,
        post_pass: Sequence[PostPassDetector] | None = None,
        thresholds: DetectionThresholds = DEFAULT_THRESHOLDS,
        sample_lines: int = SAMPLE_LINES,
    ) -> None:
        if sample_lines < 1:
            raise ValueError("sample_lines must be >= 1")
        self._detectors = list(detectors) if detectors is not None else default_detectors()
        self._post_pass = list(post_pass) if post_pass is not None else default_post_pass()
        self._sample_size = sample_lines
        self._pending: list[str] | None = []
        self._format: LogFormat | None = None
        self._csv_headers: list[str] | None = None
        self._index = 0
        self._skipped = 0
        self._parse_errors = 0
        self._findings: list[RawFinding] = []
        self.context = DetectionContext(thresholds=thresholds)

    @property
    def detected_format(self) -> LogFormat | None:
        return self._format

    def feed(self, raw: str) -> None:
        """Accept the next raw line (trailing newline is stripped)."""
        raw = raw.rstrip("\r\n")
        if self._pending is None:
            self._process(raw)
            return

        self._pending.append(raw)
        if len(self._pending) >= self._sample_size:
            self._flush_sample()

    def finish(self) -> ScanResult:
        """Run the post-pass detectors and return the deduplicated result."""
        if self._pending is not None:
            self._flush_sample()

        self.context.total_lines = self._index
        for detector in self._post_pass:
            try:
                self._findings.extend(detector.analyze(self.context))
            except Exception:
                logger.exception("Post-pass detector %s failed", detector.name)

        return ScanResult(
            findings=dedupe_by_fingerprint(self._findings),
            total_lines=self._index,
            skipped_lines=self._skipped,
            parse_errors=self._parse_errors,
            detected_format=self._format or LogFormat.PLAIN,
        )

    def _flush_sample(self) -> None:
        sample = self._pending or []
        self._pending = None
        self._format = detect_format(sample)
        logger.debug("Detected log format: %s", self._format.value)
        for raw in sample:
            self._process(raw)

    def _process(self, raw: str) -> None:
        index = self._index
        self._index += 1

        # The first non-blank CSV line is the header row; it is never scanned.
        if self._format is LogFormat.CSV and self._csv_headers is None and raw.strip():
            self._csv_headers = parse_csv_header(raw)
            return

        normalized = normalize_line(raw, self._format or LogFormat.PLAIN, self._csv_headers)
        if normalized.error:
            self._skipped += 1
            self._parse_errors += 1

        text = normalized.text
        if not text.strip():
            if not normalized.error:
                self._skipped += 1
            return

        line_number = index + 1
        self.context.current_index = index
        timestamp = extract_timestamp(text)
        self._record_source(text, raw, timestamp)

        altered = text != raw
        for detector in self._detectors:
            try:
                found = detector.check_line(text, line_number, self.context)
            except Exception:
                logger.exception("Detector %s failed on line %d", detector.name, line_number)
                continue
            for f in found:
                if altered:
                    f = replace(f, line_content=truncate_line(raw), event_timestamp=timestamp)
                else:
                    f = replace(f, event_timestamp=timestamp)
                self._findings.append(f)

    def _record_source(self, text: str, raw: str, timestamp: int | None) -> None:
        ip = extract_ip(text)
        if ip is None:
            return
        limits = self.context.thresholds
        stats = self.context.stats_for(ip)
        stats.total += 1
        if ERROR_STATUS_RE.search(text):
            stats.errors += 1
        if timestamp is not None:
            stats.timestamps.append(timestamp)
        if len(stats.samples) < limits.max_samples_per_source:
            stats.samples.append(truncate_line(raw, limits.sample_length))


def scan_lines(lines: Iterable[str], **kwargs) -> ScanResult:
    """Scan an in-memory or otherwise synchronous line source."""
    scan = StreamingScan(**kwargs)
    for line in lines:
        scan.feed(line)
    return scan.finish()


async def scan_stream(lines: AsyncIterable[str], **kwargs) -> ScanResult:
    """Scan an async line source (one line in flight at a time)."""
    scan = StreamingScan(**kwargs)
    async for line in lines:
        scan.feed(line)
    return scan.finish()


async def scan_file(
    log_path: str | Path,
    *,
    encoding: str = "utf-8",
    decode_errors: str = "replace",
    **kwargs,
) -> ScanResult:
    """Scan a log file (plain or .gz) without loading it into memory."""
    path = Path(log_path)
    if not path.is_file():
        raise FileNotFoundError(f"Log file not found: {path}")

    async with open_text(path, encoding=encoding, decode_errors=decode_errors) as f:
        result = await scan_stream(f, **kwargs)

    logger.info(
        "Scanned %s: %d lines, %d skipped, %d findings (format=%s)",
        path.name,
        result.total_lines,
        result.skipped_lines,
        len(result.findings),
        result.detected_format.value,
    )
    return result
