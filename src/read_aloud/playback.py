"""Playback state machine sequencing segments through a speech backend."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Mapping
from typing import Any
from uuid import uuid4

from read_aloud.errors import (
    BackendUnavailable,
    ConfigurationError,
    Interrupted,
    ReadAloudError,
    SynthesisFailure,
    UserCancelled,
)
from read_aloud.highlight import HighlightRenderer, HighlightSynchronizer, MarkedText
from read_aloud.models import (
    LIVE_STATES,
    BoundaryEvent,
    BoundaryKind,
    PlaybackSession,
    PlaybackSettings,
    PlaybackState,
    SessionEndReason,
    Voice,
)
from read_aloud.segmenter import DEFAULT_MAX_CHUNK_CHARS, segment_text
from read_aloud.speech.adapter import EventTag, FailureKind, SpeechBackendAdapter, SpeechEvent, SpeechEventKind
from read_aloud.speech.catalog import VoiceCatalog
from read_aloud.speech.interfaces import SpeechBackend


class PlaybackListener:
    """Receives engine notifications. Override the hooks you need."""

    def on_session_start(self) -> None:
        """A new session started speaking its first segment."""

    def on_segment_advance(self, index: int, total: int) -> None:
        """Segment ``index`` of ``total`` was handed to the backend."""

    def on_word_highlight(self, start: int, end: int) -> None:
        """The word at ``[start, end)`` of the source text is being spoken."""

    def on_sentence_highlight(self, start: int, end: int) -> None:
        """The sentence at ``[start, end)`` of the source text is being spoken."""

    def on_session_end(self, reason: SessionEndReason) -> None:
        """The session reached a terminal state."""

    def on_error(self, kind: str, message: str) -> None:
        """An unrecoverable playback error occurred."""


_BOUNDARY_EVENT_KINDS = {
    SpeechEventKind.WORD_BOUNDARY: BoundaryKind.WORD,
    SpeechEventKind.SENTENCE_BOUNDARY: BoundaryKind.SENTENCE,
}


class PlaybackEngine:
    """Single-session read-aloud engine driven by backend events.

    ``play``/``pause``/``resume``/``stop`` are synchronous and must be called
    on the event loop. Backend events are consumed by one worker task; every
    event is tagged with its session generation, so events from a stopped or
    replaced session are discarded.
    """

    def __init__(
        self,
        backend: SpeechBackend,
        *,
        catalog: VoiceCatalog | None = None,
        listener: PlaybackListener | None = None,
        defaults: PlaybackSettings | None = None,
        max_chunk_chars: int = DEFAULT_MAX_CHUNK_CHARS,
        max_retries: int = 1,
        logger: logging.Logger | None = None,
    ) -> None:
        if max_chunk_chars < 1:
            raise ConfigurationError(f"max_chunk_chars must be at least 1, got {max_chunk_chars}")

        self._adapter = SpeechBackendAdapter(backend, self._receive)
        self._catalog = catalog or VoiceCatalog(backend)
        self._listener = listener or PlaybackListener()
        self._defaults = defaults or PlaybackSettings()
        self._max_chunk_chars = max_chunk_chars
        self._max_retries = max_retries
        self._logger = logger or logging.getLogger("read_aloud.playback")

        self._session: PlaybackSession | None = None
        self._synchronizer: HighlightSynchronizer | None = None
        self._generation = 0
        self._events: asyncio.Queue[SpeechEvent] = asyncio.Queue()
        self._worker_task: asyncio.Task[None] | None = None

    @property
    def adapter(self) -> SpeechBackendAdapter:
        return self._adapter

    @property
    def catalog(self) -> VoiceCatalog:
        return self._catalog

    @property
    def session(self) -> PlaybackSession | None:
        return self._session

    @property
    def state(self) -> PlaybackState:
        if self._session is None:
            return PlaybackState.IDLE
        return self._session.state

    @property
    def is_speaking(self) -> bool:
        return self.state is PlaybackState.SPEAKING

    @property
    def is_paused(self) -> bool:
        return self.state is PlaybackState.PAUSED

    @property
    def renderer(self) -> HighlightRenderer | None:
        return self._synchronizer.renderer if self._synchronizer else None

    def is_supported(self) -> bool:
        return self._adapter.is_supported()

    async def start(self) -> None:
        """Start the event worker and load the voice catalog once for this engine."""
        self._ensure_worker()
        if not self._catalog.loaded:
            await self._catalog.load()

    async def join(self) -> None:
        """Wait until every backend event received so far has been handled."""
        await self._events.join()

    async def close(self) -> None:
        """Stop any live session and shut the event worker down."""
        self.stop()
        if not self._worker_task:
            return

        self._worker_task.cancel()
        try:
            await self._worker_task
        except asyncio.CancelledError:
            pass
        finally:
            self._worker_task = None

        dropped = 0
        while not self._events.empty():
            self._events.get_nowait()
            self._events.task_done()
            dropped += 1
        self._logger.info("playback_engine_closed", extra={"dropped_events": dropped})

    def play(
        self,
        source_text: str,
        settings: PlaybackSettings | Mapping[str, Any] | None = None,
    ) -> PlaybackSession:
        """Start reading ``source_text`` aloud, replacing any live session."""
        if not isinstance(source_text, str) or not source_text.strip():
            raise ConfigurationError("Text to read must be a non-empty string")
        if not self._adapter.is_supported():
            raise BackendUnavailable("The speech backend is not available on this platform")
        snapshot = PlaybackSettings.coerce(settings, defaults=self._defaults)

        self._ensure_worker()
        self.stop()

        segments = tuple(segment_text(source_text, self._max_chunk_chars))
        voice = self._resolve_voice(snapshot)
        self._generation += 1
        session = PlaybackSession(
            session_id=uuid4().hex,
            source_text=source_text,
            segments=segments,
            settings=snapshot,
            voice=voice,
            generation=self._generation,
            active_voice=voice,
            completion=asyncio.get_running_loop().create_future(),
        )
        self._session = session
        self._synchronizer = HighlightSynchronizer(
            source_text,
            segments,
            HighlightRenderer(MarkedText(source_text)),
            on_word_highlight=lambda start, end: self._notify("on_word_highlight", start, end),
            on_sentence_highlight=lambda start, end: self._notify("on_sentence_highlight", start, end),
            logger=self._logger,
        )
        self._logger.info(
            "session_started",
            extra={
                "session_id": session.session_id,
                "segment_count": len(segments),
                "voice_id": voice.id if voice else None,
                "rate": snapshot.rate,
            },
        )
        self._notify("on_session_start")
        self._enqueue_current(session)
        return session

    def pause(self) -> None:
        session = self._session
        if session is None or session.state is not PlaybackState.SPEAKING:
            return
        self._adapter.pause_current()
        session.state = PlaybackState.PAUSED
        self._logger.info("session_paused", extra={"session_id": session.session_id})

    def resume(self) -> None:
        session = self._session
        if session is None or session.state is not PlaybackState.PAUSED:
            return
        session.state = PlaybackState.SPEAKING
        self._logger.info("session_resumed", extra={"session_id": session.session_id})
        # The backend stays paused after a deferred segment finished, so resume it before enqueueing.
        self._adapter.resume_current()
        if session.pending_retry:
            session.pending_retry = False
            self._enqueue_current(session)
        elif session.pending_advance:
            session.pending_advance = False
            self._advance(session)

    def stop(self) -> None:
        session = self._session
        if session is None or session.state not in LIVE_STATES:
            return
        self._generation += 1
        self._adapter.cancel_all()
        self._finish(session, PlaybackState.STOPPED, SessionEndReason.STOPPED, UserCancelled("Stopped by caller"))
        self._session = None
        self._synchronizer = None

    def _ensure_worker(self) -> None:
        if self._worker_task and not self._worker_task.done():
            return
        self._worker_task = asyncio.get_running_loop().create_task(self._worker_loop(), name="playback-event-worker")
        self._logger.debug("playback_worker_started")

    def _resolve_voice(self, settings: PlaybackSettings) -> Voice | None:
        if settings.voice_id:
            voice = self._catalog.find(settings.voice_id)
            if voice is not None:
                return voice
            self._logger.warning("voice_not_found", extra={"voice_id": settings.voice_id})
        return self._catalog.select_default(settings.language_tag)

    def _receive(self, event: SpeechEvent) -> None:
        if self._worker_task is None:
            self._logger.debug("event_after_close_dropped", extra={"event_kind": event.kind.value})
            return
        self._events.put_nowait(event)

    async def _worker_loop(self) -> None:
        while True:
            event = await self._events.get()
            try:
                self._dispatch(event)
            except Exception:  # noqa: BLE001 - one bad event must not kill the worker.
                self._logger.exception("event_dispatch_failed", extra={"event_kind": event.kind.value})
            finally:
                self._events.task_done()

    def _is_current(self, session: PlaybackSession | None, tag: EventTag) -> bool:
        return (
            session is not None
            and session.state in LIVE_STATES
            and tag.session_id == session.session_id
            and tag.generation == session.generation
            and tag.generation == self._generation
            and tag.segment_index == session.current_segment_index
            and tag.attempt == session.attempt
        )

    def _dispatch(self, event: SpeechEvent) -> None:
        session = self._session
        if not self._is_current(session, event.tag):
            self._logger.debug(
                "stale_event_discarded",
                extra={"event_kind": event.kind.value, "generation": event.tag.generation},
            )
            return
        assert session is not None

        if event.kind is SpeechEventKind.STARTED:
            self._logger.debug(
                "segment_started",
                extra={"session_id": session.session_id, "segment_index": event.tag.segment_index},
            )
        elif event.kind in _BOUNDARY_EVENT_KINDS:
            if self._synchronizer is not None:
                self._synchronizer.handle(
                    BoundaryEvent(
                        segment_index=event.tag.segment_index,
                        char_index=event.char_index,
                        kind=_BOUNDARY_EVENT_KINDS[event.kind],
                        length=event.length,
                    )
                )
        elif event.kind is SpeechEventKind.ENDED:
            if session.state is PlaybackState.PAUSED:
                session.pending_advance = True
            else:
                self._advance(session)
        elif event.kind is SpeechEventKind.ERROR:
            self._handle_failure(session, event)

    def _advance(self, session: PlaybackSession) -> None:
        next_index = session.current_segment_index + 1
        if next_index >= session.total_segments:
            self._finish(session, PlaybackState.COMPLETED, SessionEndReason.COMPLETED)
            return
        session.current_segment_index = next_index
        session.attempt = 0
        session.active_voice = session.voice
        self._enqueue_current(session)

    def _enqueue_current(self, session: PlaybackSession) -> None:
        segment = session.current_segment
        settings = session.settings
        self._adapter.enqueue_segment(
            segment,
            session.active_voice,
            settings.rate,
            settings.pitch,
            settings.volume,
            tag=EventTag(
                session_id=session.session_id,
                generation=session.generation,
                segment_index=segment.ordinal,
                attempt=session.attempt,
            ),
        )
        if session.attempt == 0:
            self._notify("on_segment_advance", segment.ordinal, session.total_segments)

    def _handle_failure(self, session: PlaybackSession, event: SpeechEvent) -> None:
        if event.failure is FailureKind.INTERRUPTED:
            self._generation += 1
            self._adapter.cancel_all()
            self._finish(
                session,
                PlaybackState.STOPPED,
                SessionEndReason.STOPPED,
                Interrupted(f"Segment {session.current_segment_index} was interrupted"),
            )
            self._session = None
            self._synchronizer = None
            return

        if session.attempt < self._max_retries:
            session.attempt += 1
            session.active_voice = self._catalog.fallback_for(session.settings.language_tag, session.active_voice)
            self._logger.warning(
                "segment_retry",
                extra={
                    "session_id": session.session_id,
                    "segment_index": session.current_segment_index,
                    "attempt": session.attempt,
                    "fallback_voice_id": session.active_voice.id if session.active_voice else None,
                    "reason": event.reason,
                },
            )
            if session.state is PlaybackState.PAUSED:
                session.pending_retry = True
            else:
                self._enqueue_current(session)
            return

        message = (
            f"Speech synthesis failed for segment {session.current_segment_index + 1}"
            f"/{session.total_segments} after {session.attempt + 1} attempts: {event.reason or 'unknown error'}"
        )
        self._generation += 1
        self._adapter.cancel_all()
        failure = SynthesisFailure(message)
        self._logger.error(
            "session_failed",
            extra={"session_id": session.session_id, "segment_index": session.current_segment_index},
        )
        self._notify("on_error", type(failure).__name__, message)
        self._finish(session, PlaybackState.ERROR, SessionEndReason.ERROR, failure)

    def _finish(
        self,
        session: PlaybackSession,
        state: PlaybackState,
        reason: SessionEndReason,
        cause: ReadAloudError | None = None,
    ) -> None:
        session.state = state
        session.end_reason = reason
        session.end_cause = cause
        session.pending_advance = False
        session.pending_retry = False
        if self._synchronizer is not None:
            self._synchronizer.renderer.cleanup()
        self._logger.info(
            "session_ended",
            extra={"session_id": session.session_id, "reason": reason.value, "state": state.value},
        )
        self._notify("on_session_end", reason)
        if session.completion is not None and not session.completion.done():
            session.completion.set_result(reason)

    def _notify(self, hook: str, *args: Any) -> None:
        try:
            getattr(self._listener, hook)(*args)
        except Exception:  # noqa: BLE001 - listener faults must not break the state machine.
            self._logger.exception("listener_failed", extra={"hook": hook})
