from __future__ import annotations

import asyncio
import re
import sys
import types

import pytest

from read_aloud.errors import BackendUnavailable
from read_aloud.models import Voice
from read_aloud.speech.tts_pyttsx3 import Pyttsx3SpeechBackend


class _FakeEngine:
    def __init__(self) -> None:
        self.callbacks: dict[str, list] = {}
        self.properties: dict[str, object] = {
            "voice": "v-en",
            "voices": [
                types.SimpleNamespace(id="v-en", name="English", languages=[b"\x05en-us"]),
                types.SimpleNamespace(id="v-de", name="German", languages=["de_DE"]),
            ],
        }
        self.set_calls: list[tuple[str, object]] = []
        self.said: list[tuple[str, str]] = []
        self.stops = 0

    def connect(self, topic: str, callback) -> None:
        self.callbacks.setdefault(topic, []).append(callback)

    def getProperty(self, name: str):
        return self.properties[name]

    def setProperty(self, name: str, value) -> None:
        self.set_calls.append((name, value))

    def say(self, text: str, name: str) -> None:
        self.said.append((text, name))

    def runAndWait(self) -> None:
        text, name = self.said[-1]
        self._fire("started-utterance", name=name)
        for match in re.finditer(r"\S+", text):
            self._fire("started-word", name=name, location=match.start(), length=len(match.group()))
        self._fire("finished-utterance", name=name, completed=True)

    def stop(self) -> None:
        self.stops += 1

    def _fire(self, topic: str, **kwargs) -> None:
        for callback in self.callbacks.get(topic, []):
            callback(**kwargs)


@pytest.fixture
def fake_engine(monkeypatch) -> _FakeEngine:
    engine = _FakeEngine()
    module = types.SimpleNamespace(init=lambda driver_name=None: engine)
    monkeypatch.setitem(sys.modules, "pyttsx3", module)
    return engine


def _record(utterance) -> tuple[list[tuple], asyncio.Event]:
    events: list[tuple] = []
    done = asyncio.Event()
    utterance.on_start = lambda: events.append(("start",))
    utterance.on_boundary = lambda kind, index, length: events.append((kind, index, length))

    def _end() -> None:
        events.append(("end",))
        done.set()

    def _error(reason: str) -> None:
        events.append(("error", reason))
        done.set()

    utterance.on_end = _end
    utterance.on_error = _error
    return events, done


def test_voices_are_mapped_from_engine(fake_engine) -> None:
    backend = Pyttsx3SpeechBackend()

    voices = backend.get_voices()

    assert voices == [
        Voice(id="v-en", display_name="English", language_tag="en-US", is_local=True, is_default=True),
        Voice(id="v-de", display_name="German", language_tag="de-DE", is_local=True, is_default=False),
    ]


def test_utterance_reports_words_and_end(fake_engine) -> None:
    voice = Voice(id="v-de", display_name="German", language_tag="de-DE")

    async def _run():
        backend = Pyttsx3SpeechBackend(words_per_minute=200)
        utterance = backend.enqueue("Guten Tag", voice, 1.5, 1.0, 0.5)
        events, done = _record(utterance)
        await asyncio.wait_for(done.wait(), timeout=2)
        return events

    events = asyncio.run(_run())
    assert events == [("start",), ("word", 0, 5), ("word", 6, 3), ("end",)]
    assert ("rate", 300) in fake_engine.set_calls
    assert ("volume", 0.5) in fake_engine.set_calls
    assert ("voice", "v-de") in fake_engine.set_calls


def test_pause_before_speaking_defers_until_resume(fake_engine) -> None:
    async def _run():
        backend = Pyttsx3SpeechBackend()
        utterance = backend.enqueue("Hello there", None, 1.0, 1.0, 1.0)
        events, done = _record(utterance)
        backend.pause()
        await asyncio.sleep(0.05)
        said_while_paused = list(fake_engine.said)
        backend.resume()
        await asyncio.wait_for(done.wait(), timeout=2)
        return events, said_while_paused

    events, said_while_paused = asyncio.run(_run())
    assert said_while_paused == []
    assert [text for text, _ in fake_engine.said] == ["Hello there"]
    assert events[-1] == ("end",)


def test_cancel_while_paused_reports_canceled(fake_engine) -> None:
    async def _run():
        backend = Pyttsx3SpeechBackend()
        utterance = backend.enqueue("Hello there", None, 1.0, 1.0, 1.0)
        events, done = _record(utterance)
        backend.pause()
        backend.cancel()
        await asyncio.wait_for(done.wait(), timeout=2)
        await asyncio.sleep(0.01)
        return events

    events = asyncio.run(_run())
    assert events == [("error", "canceled")]
    assert fake_engine.said == []


def test_missing_pyttsx3_raises_backend_unavailable(monkeypatch) -> None:
    monkeypatch.setitem(sys.modules, "pyttsx3", None)

    with pytest.raises(BackendUnavailable, match=r"read-aloud\[voice\]"):
        Pyttsx3SpeechBackend()


def test_engine_init_failure_raises_backend_unavailable(monkeypatch) -> None:
    def _broken_init(driver_name=None):
        raise RuntimeError("no audio device")

    monkeypatch.setitem(sys.modules, "pyttsx3", types.SimpleNamespace(init=_broken_init))

    with pytest.raises(BackendUnavailable, match="no audio device"):
        Pyttsx3SpeechBackend()
