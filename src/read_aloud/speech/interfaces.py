"""Contracts for platform speech backends."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Callable, Protocol
from uuid import uuid4

from read_aloud.models import Voice


def _noop(*args: object) -> None:
    return None


@dataclass(slots=True, eq=False)
class SpeechUtterance:
    """Handle for one enqueued backend request.

    The backend invokes the callback slots; whoever enqueued the utterance
    replaces them. Callbacks must run on the event loop and never
    synchronously from inside ``enqueue``.
    """

    text: str
    voice: Voice | None = None
    rate: float = 1.0
    pitch: float = 1.0
    volume: float = 1.0
    id: str = field(default_factory=lambda: uuid4().hex)
    on_start: Callable[[], None] = _noop
    on_boundary: Callable[[str, int, int], None] = _noop
    on_end: Callable[[], None] = _noop
    on_error: Callable[[str], None] = _noop


class SpeechBackend(Protocol):
    """Platform text-to-speech primitive."""

    def is_supported(self) -> bool:
        """Return whether the platform primitive is available."""

    def enqueue(
        self,
        text: str,
        voice: Voice | None,
        rate: float,
        pitch: float,
        volume: float,
    ) -> SpeechUtterance:
        """Queue ``text`` for speech and return its utterance handle."""

    def get_voices(self) -> list[Voice]:
        """Return the voices currently known to the platform (possibly empty)."""

    def cancel(self) -> None:
        """Drop the current and every queued utterance."""

    def pause(self) -> None:
        """Pause the current utterance."""

    def resume(self) -> None:
        """Resume a paused utterance."""

    def on_voices_changed(self, callback: Callable[[], None]) -> None:
        """Register ``callback`` for the platform "voices changed" notification."""
