from __future__ import annotations

from typing import Callable

import pytest

from read_aloud.models import SessionEndReason, Voice
from read_aloud.playback import PlaybackListener
from read_aloud.speech.interfaces import SpeechUtterance

TEST_VOICES = [
    Voice(id="us-default", display_name="US Default", language_tag="en-US", is_local=True, is_default=True),
    Voice(id="us-remote", display_name="US Remote", language_tag="en-US", is_local=False),
    Voice(id="gb-local", display_name="UK Local", language_tag="en-GB", is_local=True),
    Voice(id="de-local", display_name="German", language_tag="de-DE", is_local=True),
]


class ManualBackend:
    """Backend whose utterance callbacks are fired by the test itself."""

    def __init__(self, voices: list[Voice] | None = None, supported: bool = True) -> None:
        self.voices = list(voices or [])
        self.supported = supported
        self.enqueued: list[SpeechUtterance] = []
        self.calls: list[str] = []
        self._voice_listeners: list[Callable[[], None]] = []

    def is_supported(self) -> bool:
        return self.supported

    def enqueue(self, text, voice, rate, pitch, volume) -> SpeechUtterance:
        utterance = SpeechUtterance(text=text, voice=voice, rate=rate, pitch=pitch, volume=volume)
        self.enqueued.append(utterance)
        self.calls.append("enqueue")
        return utterance

    def get_voices(self) -> list[Voice]:
        return list(self.voices)

    def cancel(self) -> None:
        self.calls.append("cancel")

    def pause(self) -> None:
        self.calls.append("pause")

    def resume(self) -> None:
        self.calls.append("resume")

    def on_voices_changed(self, callback: Callable[[], None]) -> None:
        self._voice_listeners.append(callback)

    def announce_voices(self, voices: list[Voice]) -> None:
        self.voices = list(voices)
        for callback in self._voice_listeners:
            callback()


class RecordingListener(PlaybackListener):
    def __init__(self) -> None:
        self.events: list[tuple] = []

    def on_session_start(self) -> None:
        self.events.append(("start",))

    def on_segment_advance(self, index: int, total: int) -> None:
        self.events.append(("advance", index, total))

    def on_word_highlight(self, start: int, end: int) -> None:
        self.events.append(("word", start, end))

    def on_sentence_highlight(self, start: int, end: int) -> None:
        self.events.append(("sentence", start, end))

    def on_session_end(self, reason: SessionEndReason) -> None:
        self.events.append(("end", reason))

    def on_error(self, kind: str, message: str) -> None:
        self.events.append(("error", kind, message))

    def of(self, name: str) -> list[tuple]:
        return [event[1:] for event in self.events if event[0] == name]


@pytest.fixture
def backend() -> ManualBackend:
    return ManualBackend(TEST_VOICES)


@pytest.fixture
def listener() -> RecordingListener:
    return RecordingListener()
