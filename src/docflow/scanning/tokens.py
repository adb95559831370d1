"""Approximate token counts for source text."""

from __future__ import annotations

import math

DEFAULT_TOKENS_PER_BYTE = 0.3


def estimate_tokens(text: str | bytes, tokens_per_byte: float = DEFAULT_TOKENS_PER_BYTE) -> int:
    """Rough token count: UTF-8 byte length times tokens_per_byte, rounded up."""
    if isinstance(text, str):
        text = text.encode("utf-8")
    return math.ceil(len(text) * tokens_per_byte)


def estimate_tokens_for_size(size_bytes: int, tokens_per_byte: float = DEFAULT_TOKENS_PER_BYTE) -> int:
    """Same estimate from a file size, without reading the file."""
    return math.ceil(max(size_bytes, 0) * tokens_per_byte)
