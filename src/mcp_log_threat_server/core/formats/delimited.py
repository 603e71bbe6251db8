"""CSV header and row handling."""

from __future__ import annotations

from collections.abc import Sequence

from .base import NormalizedLine


def parse_csv_header(header_line: str) -> list[str]:
    """Split a header row into column names."""
    out: list[str] = []
    for col in header_line.split(","):
        col = col.strip()
        if col.startswith('"'):
            col = col[1:]
        if col.endswith('"'):
            col = col[:-1]
        out.append(col)
    return out


def parse_csv_values(line: str) -> list[str]:
    """Quote-aware split of one data row (doubled quotes are escapes)."""
    values: list[str] = []
    current: list[str] = []
    in_quotes = False
    i = 0
    n = len(line)

    while i < n:
        ch = line[i]
        if ch == '"':
            if in_quotes and i + 1 < n and line[i + 1] == '"':
                current.append('"')
                i += 1
            else:
                in_quotes = not in_quotes
        elif ch == "," and not in_quotes:
            values.append("".join(current))
            current = []
        else:
            current.append(ch)
        i += 1

    values.append("".join(current))
    return values


def flatten_csv_line(line: str, headers: Sequence[str]) -> NormalizedLine:
    """Zip a data row with the header into ``column=value`` pairs."""
    if not line.strip():
        return NormalizedLine.passthrough(line)

    values = parse_csv_values(line)
    parts = [
        f"{name}={value.strip()}"
        for name, value in zip(headers, values)
        if value.strip()
    ]
    return NormalizedLine(text=" ".join(parts))
