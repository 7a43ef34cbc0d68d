"""Uniform enqueue/cancel/pause/resume over a platform speech backend.

Platform speaking/paused flags are unreliable, so the adapter keeps its own
shadow state and reports every backend callback as a typed ``SpeechEvent``
tagged with the session, generation, segment and attempt it belongs to.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Callable

from read_aloud.models import Segment, Voice

from .interfaces import SpeechBackend, SpeechUtterance


class SpeechEventKind(str, Enum):
    STARTED = "started"
    WORD_BOUNDARY = "word_boundary"
    SENTENCE_BOUNDARY = "sentence_boundary"
    ENDED = "ended"
    ERROR = "error"


class FailureKind(str, Enum):
    """Classification of backend error reports."""

    INTERRUPTED = "interrupted"
    CANCELED = "canceled"
    SYNTHESIS_FAILED = "synthesis-failed"


_BOUNDARY_KINDS = {
    "word": SpeechEventKind.WORD_BOUNDARY,
    "sentence": SpeechEventKind.SENTENCE_BOUNDARY,
}


def classify_failure(reason: str | None) -> FailureKind:
    """Map a raw backend error reason onto the failure taxonomy."""
    normalized = (reason or "").strip().lower().replace("_", "-")
    if normalized == FailureKind.INTERRUPTED.value:
        return FailureKind.INTERRUPTED
    if normalized in {"canceled", "cancelled"}:
        return FailureKind.CANCELED
    return FailureKind.SYNTHESIS_FAILED


@dataclass(frozen=True, slots=True)
class EventTag:
    """Identity of the request an event belongs to."""

    session_id: str
    generation: int
    segment_index: int
    attempt: int = 0


@dataclass(frozen=True, slots=True)
class SpeechEvent:
    tag: EventTag
    kind: SpeechEventKind
    char_index: int = 0
    length: int = 0
    failure: FailureKind | None = None
    reason: str = ""


EventSink = Callable[[SpeechEvent], None]


@dataclass(slots=True, eq=False)
class _TrackedUtterance:
    utterance: SpeechUtterance
    tag: EventTag
    canceled: bool = False


class SpeechBackendAdapter:
    """Shadow-state wrapper translating backend callbacks into tagged events."""

    def __init__(
        self,
        backend: SpeechBackend,
        sink: EventSink | None = None,
        *,
        logger: logging.Logger | None = None,
    ) -> None:
        self._backend = backend
        self._sink = sink
        self._logger = logger or logging.getLogger("read_aloud.speech.adapter")
        self._active: _TrackedUtterance | None = None
        # Tracks the backend, not the utterance: it stays paused after the
        # active utterance ends or fails until resumed or cancelled.
        self._paused = False

    @property
    def backend(self) -> SpeechBackend:
        return self._backend

    @property
    def has_active(self) -> bool:
        return self._active is not None

    @property
    def is_paused(self) -> bool:
        return self._paused

    def bind(self, sink: EventSink) -> None:
        """Direct translated events to ``sink``."""
        self._sink = sink

    def is_supported(self) -> bool:
        return self._backend.is_supported()

    def enqueue_segment(
        self,
        segment: Segment,
        voice: Voice | None,
        rate: float,
        pitch: float,
        volume: float,
        *,
        tag: EventTag,
    ) -> SpeechUtterance:
        utterance = self._backend.enqueue(segment.text, voice, rate, pitch, volume)
        tracked = _TrackedUtterance(utterance=utterance, tag=tag)
        utterance.on_start = lambda: self._handle_start(tracked)
        utterance.on_boundary = lambda kind, char_index, length: self._handle_boundary(
            tracked, kind, char_index, length
        )
        utterance.on_end = lambda: self._handle_end(tracked)
        utterance.on_error = lambda reason: self._handle_error(tracked, reason)

        self._active = tracked
        self._logger.debug(
            "segment_enqueued",
            extra={
                "utterance_id": utterance.id,
                "segment_index": tag.segment_index,
                "attempt": tag.attempt,
                "voice_id": voice.id if voice else None,
            },
        )
        return utterance

    def cancel_all(self) -> bool:
        """Cancel the active utterance and clear a pause. Returns whether the backend was called."""
        if self._active is None and not self._paused:
            return False
        if self._active is not None:
            self._active.canceled = True
        self._active = None
        self._paused = False
        self._backend.cancel()
        return True

    def pause_current(self) -> bool:
        if self._active is None or self._paused:
            return False
        self._backend.pause()
        self._paused = True
        return True

    def resume_current(self) -> bool:
        if not self._paused:
            return False
        self._backend.resume()
        self._paused = False
        return True

    def _is_current(self, tracked: _TrackedUtterance) -> bool:
        if tracked.canceled or tracked is not self._active:
            self._logger.debug(
                "backend_event_dropped",
                extra={"utterance_id": tracked.utterance.id, "canceled": tracked.canceled},
            )
            return False
        return True

    def _handle_start(self, tracked: _TrackedUtterance) -> None:
        if self._is_current(tracked):
            self._emit(SpeechEvent(tag=tracked.tag, kind=SpeechEventKind.STARTED))

    def _handle_boundary(self, tracked: _TrackedUtterance, kind: str, char_index: int, length: int) -> None:
        if not self._is_current(tracked):
            return
        event_kind = _BOUNDARY_KINDS.get(str(kind).lower())
        if event_kind is None:
            return
        self._emit(
            SpeechEvent(
                tag=tracked.tag,
                kind=event_kind,
                char_index=int(char_index),
                length=int(length or 0),
            )
        )

    def _handle_end(self, tracked: _TrackedUtterance) -> None:
        if not self._is_current(tracked):
            return
        self._active = None
        self._emit(SpeechEvent(tag=tracked.tag, kind=SpeechEventKind.ENDED))

    def _handle_error(self, tracked: _TrackedUtterance, reason: str) -> None:
        if not self._is_current(tracked):
            return
        failure = classify_failure(reason)
        if failure is FailureKind.CANCELED:
            # Cancelled by someone other than this adapter: the utterance was pre-empted.
            failure = FailureKind.INTERRUPTED

        self._active = None
        self._logger.warning(
            "utterance_failed",
            extra={"utterance_id": tracked.utterance.id, "failure": failure.value, "reason": reason},
        )
        self._emit(SpeechEvent(tag=tracked.tag, kind=SpeechEventKind.ERROR, failure=failure, reason=reason))

    def _emit(self, event: SpeechEvent) -> None:
        if self._sink is not None:
            self._sink(event)
