"""Split a log into numbered, overlapping prompt chunks."""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass


@dataclass(frozen=True, slots=True)
class Chunk:
    id: int
    start_line: int  # 1-based, inclusive
    end_line: int  # 1-based, inclusive
    content: str


def chunk_lines(
    lines: Sequence[str],
    *,
    max_chars: int = 12000,
    overlap_lines: int = 5,
) -> list[Chunk]:
    """Group lines into chunks of at most ``max_chars`` characters.

    Every line is prefixed with its 1-based number. A single line longer than
    the limit still gets a chunk of its own. Consecutive chunks share up to
    ``overlap_lines`` lines so events spanning a boundary stay visible.
    """
    if max_chars < 1:
        raise ValueError("max_chars must be >= 1")
    if overlap_lines < 0:
        raise ValueError("overlap_lines must be >= 0")

    chunks: list[Chunk] = []
    start = 0
    while start < len(lines):
        size = 0
        end = start
        while end < len(lines):
            cost = len(lines[end]) + 1
            if size + cost > max_chars and end > start:
                break
            size += cost
            end += 1

        numbered = (f"{n}: {line}" for n, line in enumerate(lines[start:end], start=start + 1))
        chunks.append(
            Chunk(id=len(chunks), start_line=start + 1, end_line=end, content="\n".join(numbered))
        )
        if end >= len(lines):
            break
        start = max(start + 1, end - overlap_lines)

    return chunks
