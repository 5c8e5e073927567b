"""Boundary-aware text chunking shared by every ingestion path."""

from __future__ import annotations

import re

DEFAULT_MAX_CHARS = 1500

_PARAGRAPH = "\n\n"
_SENTENCE_END_RE = re.compile(r"[.!?](?=\s)")
_WHITESPACE_RE = re.compile(r"\s")


def _find_cut(text: str, max_len: int) -> int:
    """Return the index to cut *text* at so that ``text[:cut]`` fits *max_len*.

    Preference order: last paragraph break, last sentence end, last
    whitespace, then a hard cut.  The returned index is always >= 1.
    """
    window = text[: max_len + 1]

    paragraph = window.rfind(_PARAGRAPH)
    if paragraph > 0:
        return paragraph

    sentence_ends = [m.end() for m in _SENTENCE_END_RE.finditer(window) if m.end() <= max_len]
    if sentence_ends:
        return sentence_ends[-1]

    spaces = [m.start() for m in _WHITESPACE_RE.finditer(window) if m.start() > 0]
    if spaces:
        return spaces[-1]

    return max_len


def chunk_text(text: str, max_len: int = DEFAULT_MAX_CHARS) -> list[str]:
    """Split *text* into trimmed, non-empty segments of at most *max_len* chars.

    The function is pure: the same input always yields the same chunks, so it
    is safe to re-run after a crash and to reuse at query time.

    Args:
        text: Arbitrary input text (transcript, document, catalog entry).
        max_len: Maximum number of characters per segment.

    Returns:
        Ordered list of segments.  Empty or whitespace-only input yields ``[]``.

    Raises:
        ValueError: If *max_len* is smaller than 1.
    """
    if max_len < 1:
        msg = f"max_len must be >= 1, got {max_len}"
        raise ValueError(msg)

    chunks: list[str] = []
    remaining = text.strip()

    while remaining:
        if len(remaining) <= max_len:
            chunks.append(remaining)
            break

        cut = _find_cut(remaining, max_len)
        piece = remaining[:cut].rstrip()
        if piece:
            chunks.append(piece)
        remaining = remaining[cut:].lstrip()

    return chunks
