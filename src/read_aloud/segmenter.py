"""Sentence-respecting text segmentation with exact source offsets."""

from __future__ import annotations

import re
from typing import Iterator, Sequence

from .errors import ConfigurationError
from .models import Segment

DEFAULT_MAX_CHUNK_CHARS = 200

# A run of terminators only ends a sentence when followed by whitespace or the end of text.
_TERMINATOR_RE = re.compile(r"[.!?]+(?=\s|\Z)")


def _trim(text: str, start: int, end: int) -> tuple[int, int]:
    while start < end and text[start].isspace():
        start += 1
    while end > start and text[end - 1].isspace():
        end -= 1
    return start, end


def split_sentences(text: str) -> list[tuple[int, int]]:
    """Return ``(start, end)`` offsets of whitespace-trimmed sentences in ``text``.

    Text without terminators is a single sentence. Whitespace-only pieces are skipped.
    """
    spans: list[tuple[int, int]] = []
    cursor = 0
    for match in _TERMINATOR_RE.finditer(text):
        start, end = _trim(text, cursor, match.end())
        if start < end:
            spans.append((start, end))
        cursor = match.end()

    start, end = _trim(text, cursor, len(text))
    if start < end:
        spans.append((start, end))
    return spans


def _hard_split(text: str, start: int, end: int, limit: int) -> Iterator[tuple[int, int]]:
    pos = start
    while pos < end:
        stop = min(pos + limit, end)
        chunk_end = stop
        while chunk_end > pos and text[chunk_end - 1].isspace():
            chunk_end -= 1
        yield pos, chunk_end

        pos = stop
        while pos < end and text[pos].isspace():
            pos += 1


def segment_text(text: str, max_chunk_chars: int = DEFAULT_MAX_CHUNK_CHARS) -> list[Segment]:
    """Split ``text`` into ordered segments of at most ``max_chunk_chars`` characters.

    Whole sentences are packed into a segment until the next one would not fit.
    A sentence longer than the limit is cut at the character limit; nothing is
    ever dropped, and only whitespace is left between segments.
    """
    if max_chunk_chars < 1:
        raise ConfigurationError(f"max_chunk_chars must be at least 1, got {max_chunk_chars}")

    spans: list[tuple[int, int]] = []
    current: tuple[int, int] | None = None
    for start, end in split_sentences(text):
        if end - start > max_chunk_chars:
            if current is not None:
                spans.append(current)
                current = None
            spans.extend(_hard_split(text, start, end, max_chunk_chars))
            continue

        if current is None:
            current = (start, end)
        elif end - current[0] <= max_chunk_chars:
            current = (current[0], end)
        else:
            spans.append(current)
            current = (start, end)

    if current is not None:
        spans.append(current)

    return [
        Segment(ordinal=ordinal, text=text[start:end], start_offset=start, end_offset=end)
        for ordinal, (start, end) in enumerate(spans)
    ]


def reassemble(source: str, segments: Sequence[Segment]) -> str:
    """Rebuild ``source`` from its segments and the whitespace between them.

    Raises ``ValueError`` when segments overlap, are out of order, or leave
    non-whitespace text uncovered.
    """
    parts: list[str] = []
    cursor = 0
    for segment in segments:
        if segment.start_offset < cursor:
            raise ValueError(f"Segment {segment.ordinal} overlaps its predecessor")
        gap = source[cursor : segment.start_offset]
        if gap.strip():
            raise ValueError(f"Text before segment {segment.ordinal} is not covered: {gap!r}")
        parts.append(gap)
        parts.append(segment.text)
        cursor = segment.end_offset

    tail = source[cursor:]
    if tail.strip():
        raise ValueError(f"Trailing text is not covered: {tail!r}")
    parts.append(tail)
    return "".join(parts)
