"""Translate backend boundary events into highlighted spans of the source text."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Callable, Mapping, Sequence

from .models import BoundaryEvent, BoundaryKind, HighlightSpan, Segment

_WORD_CHAR_RE = re.compile(r"\w")
_TERMINATORS = ".!?"
# Outer kinds open first and close last when rendering nested marks.
_RENDER_ORDER = (BoundaryKind.SENTENCE, BoundaryKind.WORD)

DEFAULT_MARKERS: Mapping[BoundaryKind, tuple[str, str]] = {
    BoundaryKind.SENTENCE: ("{", "}"),
    BoundaryKind.WORD: ("[", "]"),
}


def is_word_char(char: str) -> bool:
    return bool(_WORD_CHAR_RE.match(char))


def _word_at(text: str, offset: int) -> tuple[int, int] | None:
    if not is_word_char(text[offset]):
        return None

    start = offset
    while start > 0 and is_word_char(text[start - 1]):
        start -= 1
    end = offset + 1
    while end < len(text) and is_word_char(text[end]):
        end += 1
    return start, end


def _sentence_at(text: str, offset: int) -> tuple[int, int] | None:
    if text[offset].isspace():
        return None

    start = offset
    while start > 0:
        if not text[start - 1].isspace():
            start -= 1
            continue
        gap = start - 1
        while gap > 0 and text[gap - 1].isspace():
            gap -= 1
        if gap == 0 or text[gap - 1] in _TERMINATORS:
            break
        start = gap

    end = offset
    while end < len(text):
        if text[end] not in _TERMINATORS:
            end += 1
            continue
        run_end = end
        while run_end < len(text) and text[run_end] in _TERMINATORS:
            run_end += 1
        end = run_end
        if run_end == len(text) or text[run_end].isspace():
            break

    while end > start and text[end - 1].isspace():
        end -= 1
    return start, end


def token_at(
    offset: int,
    text: str,
    granularity: BoundaryKind | str = BoundaryKind.WORD,
) -> tuple[int, int] | None:
    """Return the ``[start, end)`` bounds of the word or sentence covering ``offset``.

    ``None`` means the offset is out of range or sits on a separator: a
    non-word character for words, whitespace for sentences.
    """
    if offset < 0 or offset >= len(text):
        return None
    if BoundaryKind(granularity) is BoundaryKind.WORD:
        return _word_at(text, offset)
    return _sentence_at(text, offset)


@dataclass(frozen=True, slots=True)
class TextFragment:
    text: str
    kinds: frozenset[BoundaryKind] = frozenset()


class MarkedText:
    """Source text held as fragments so slices can be marked without altering it.

    Marking splits fragments at the span edges; unmarking merges equal
    neighbours back, so ``text`` is always the original string.
    """

    def __init__(self, text: str) -> None:
        self._fragments: list[TextFragment] = [TextFragment(text)] if text else []

    @property
    def text(self) -> str:
        return "".join(fragment.text for fragment in self._fragments)

    @property
    def fragments(self) -> tuple[TextFragment, ...]:
        return tuple(self._fragments)

    def mark(self, span: HighlightSpan) -> None:
        self._split_at(span.start)
        self._split_at(span.end)

        pos = 0
        for index, fragment in enumerate(self._fragments):
            end = pos + len(fragment.text)
            if span.start <= pos and end <= span.end:
                self._fragments[index] = TextFragment(fragment.text, fragment.kinds | {span.kind})
            pos = end

    def unmark(self, kind: BoundaryKind) -> None:
        self._fragments = [TextFragment(fragment.text, fragment.kinds - {kind}) for fragment in self._fragments]
        self._normalize()

    def render(self, markers: Mapping[BoundaryKind, tuple[str, str]] = DEFAULT_MARKERS) -> str:
        """Return the text with open/close markers around each marked slice."""
        parts: list[str] = []
        active: frozenset[BoundaryKind] = frozenset()
        for fragment in self._fragments:
            for kind in reversed(_RENDER_ORDER):
                if kind in active and kind not in fragment.kinds:
                    parts.append(markers[kind][1])
            for kind in _RENDER_ORDER:
                if kind in fragment.kinds and kind not in active:
                    parts.append(markers[kind][0])
            parts.append(fragment.text)
            active = fragment.kinds
        for kind in reversed(_RENDER_ORDER):
            if kind in active:
                parts.append(markers[kind][1])
        return "".join(parts)

    def _split_at(self, offset: int) -> None:
        pos = 0
        for index, fragment in enumerate(self._fragments):
            end = pos + len(fragment.text)
            if pos < offset < end:
                cut = offset - pos
                self._fragments[index : index + 1] = [
                    TextFragment(fragment.text[:cut], fragment.kinds),
                    TextFragment(fragment.text[cut:], fragment.kinds),
                ]
                return
            pos = end

    def _normalize(self) -> None:
        merged: list[TextFragment] = []
        for fragment in self._fragments:
            if merged and merged[-1].kinds == fragment.kinds:
                merged[-1] = TextFragment(merged[-1].text + fragment.text, fragment.kinds)
            else:
                merged.append(fragment)
        self._fragments = merged


class HighlightRenderer:
    """Keeps at most one active word span and one active sentence span on a surface."""

    def __init__(self, surface: MarkedText) -> None:
        self._surface = surface
        self._active: dict[BoundaryKind, HighlightSpan] = {}

    @property
    def surface(self) -> MarkedText:
        return self._surface

    @property
    def is_active(self) -> bool:
        return bool(self._active)

    @property
    def word_span(self) -> HighlightSpan | None:
        return self._active.get(BoundaryKind.WORD)

    @property
    def sentence_span(self) -> HighlightSpan | None:
        return self._active.get(BoundaryKind.SENTENCE)

    def apply(self, span: HighlightSpan) -> bool:
        """Replace the active span of the same kind. Returns whether anything changed."""
        if not 0 <= span.start < span.end <= len(self._surface.text):
            return False
        if self._active.get(span.kind) == span:
            return False

        self.clear(span.kind)
        self._surface.mark(span)
        self._active[span.kind] = span
        return True

    def clear(self, kind: BoundaryKind) -> None:
        if self._active.pop(kind, None) is not None:
            self._surface.unmark(kind)

    def cleanup(self) -> None:
        """Remove every mark and restore the original text. Safe to call repeatedly."""
        for kind in list(self._active):
            self.clear(kind)


SpanCallback = Callable[[int, int], None]


class HighlightSynchronizer:
    """Maps segment-relative boundary events onto the source text of one session."""

    def __init__(
        self,
        source_text: str,
        segments: Sequence[Segment],
        renderer: HighlightRenderer,
        *,
        on_word_highlight: SpanCallback | None = None,
        on_sentence_highlight: SpanCallback | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        self._text = source_text
        self._segments = segments
        self._renderer = renderer
        self._on_word_highlight = on_word_highlight
        self._on_sentence_highlight = on_sentence_highlight
        self._logger = logger or logging.getLogger("read_aloud.highlight")

    @property
    def renderer(self) -> HighlightRenderer:
        return self._renderer

    def global_offset(self, event: BoundaryEvent) -> int | None:
        if not 0 <= event.segment_index < len(self._segments):
            return None
        segment = self._segments[event.segment_index]
        offset = segment.start_offset + event.char_index
        if not segment.start_offset <= offset < segment.end_offset:
            return None
        return offset

    def handle(self, event: BoundaryEvent) -> None:
        offset = self.global_offset(event)
        if offset is None:
            self._logger.debug(
                "boundary_out_of_range",
                extra={"segment_index": event.segment_index, "char_index": event.char_index},
            )
            return

        if event.kind is BoundaryKind.WORD:
            bounds = token_at(offset, self._text, BoundaryKind.WORD)
            if bounds is None:
                return
            span = HighlightSpan(bounds[0], bounds[1], BoundaryKind.WORD)
            if self._renderer.apply(span) and self._on_word_highlight:
                self._on_word_highlight(span.start, span.end)

        # Word events also move the sentence mark; not every backend reports sentences.
        bounds = token_at(offset, self._text, BoundaryKind.SENTENCE)
        if bounds is None:
            return
        span = HighlightSpan(bounds[0], bounds[1], BoundaryKind.SENTENCE)
        if self._renderer.apply(span) and self._on_sentence_highlight:
            self._on_sentence_highlight(span.start, span.end)
