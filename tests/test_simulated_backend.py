from __future__ import annotations

import asyncio

from conftest import RecordingListener
from read_aloud.cli import CliReadAloudHandler
from read_aloud.models import PlaybackState, SessionEndReason
from read_aloud.playback import PlaybackEngine
from read_aloud.speech.simulated import DEFAULT_SIMULATED_VOICES, SimulatedSpeechBackend

TEXT = "Hello world. This is a test. A third sentence follows."


def test_simulated_session_highlights_every_word() -> None:
    listener = RecordingListener()

    async def _run() -> SessionEndReason:
        engine = PlaybackEngine(SimulatedSpeechBackend(words_per_minute=600000), listener=listener, max_chunk_chars=30)
        return await asyncio.wait_for(CliReadAloudHandler(engine).read(TEXT), timeout=5)

    reason = asyncio.run(_run())
    assert reason is SessionEndReason.COMPLETED
    assert listener.of("advance") == [(0, 2), (1, 2)]
    assert [TEXT[start:end] for start, end in listener.of("word")] == [
        "Hello",
        "world",
        "This",
        "is",
        "a",
        "test",
        "A",
        "third",
        "sentence",
        "follows",
    ]


def test_simulated_failures_exhaust_retry() -> None:
    listener = RecordingListener()
    backend = SimulatedSpeechBackend(words_per_minute=600000, failing_voice_ids={"sim-en-us", "sim-en-gb"})

    async def _run() -> SessionEndReason:
        engine = PlaybackEngine(backend, listener=listener)
        return await asyncio.wait_for(CliReadAloudHandler(engine).read(TEXT, {"languageTag": "en-US"}), timeout=5)

    assert asyncio.run(_run()) is SessionEndReason.ERROR
    assert [kind for kind, _ in listener.of("error")] == ["SynthesisFailure"]


def test_simulated_failure_while_paused_completes_after_resume() -> None:
    backend = SimulatedSpeechBackend(words_per_minute=600000, failing_voice_ids={"sim-en-us"})

    async def _run():
        engine = PlaybackEngine(backend)
        await engine.start()
        session = engine.play(TEXT, {"languageTag": "en-US"})
        engine.pause()
        await asyncio.sleep(0.05)
        paused_state = engine.state
        engine.resume()
        reason = await asyncio.wait_for(session.wait(), timeout=5)
        await engine.close()
        return paused_state, reason

    paused_state, reason = asyncio.run(_run())
    assert paused_state is PlaybackState.PAUSED
    assert reason is SessionEndReason.COMPLETED


def test_simulated_pause_holds_progress() -> None:
    async def _run() -> tuple[list[tuple], list[tuple]]:
        listener = RecordingListener()
        engine = PlaybackEngine(SimulatedSpeechBackend(words_per_minute=6000), listener=listener)
        await engine.start()
        session = engine.play(TEXT)
        await asyncio.sleep(0.025)
        engine.pause()
        await asyncio.sleep(0.05)
        paused_words = list(listener.of("word"))
        await asyncio.sleep(0.05)
        still_paused = list(listener.of("word"))
        engine.resume()
        await asyncio.wait_for(session.wait(), timeout=5)
        await engine.close()
        return paused_words, still_paused

    paused_words, still_paused = asyncio.run(_run())
    assert paused_words == still_paused


def test_voices_changed_notifies_catalog() -> None:
    backend = SimulatedSpeechBackend()
    engine = PlaybackEngine(backend)
    engine.catalog.refresh()

    backend.set_voices(DEFAULT_SIMULATED_VOICES[2:])

    assert [voice.id for voice in engine.catalog.voices] == ["sim-de-de", "sim-fr-fr"]
