"""Normalizer result types."""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True, slots=True)
class NormalizedLine:
    """Pattern-matchable text for one raw line.

    `error` is set when the line could not be parsed in the detected format;
    `text` then falls back to the raw line.
    """

    text: str
    error: bool = False

    @classmethod
    def passthrough(cls, raw: str) -> NormalizedLine:
        return cls(text=raw, error=False)

    @classmethod
    def failed(cls, raw: str) -> NormalizedLine:
        return cls(text=raw, error=True)
