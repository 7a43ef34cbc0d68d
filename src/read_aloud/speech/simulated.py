"""Timer-driven speech backend for local demos and tests.

It produces no audio: each utterance reports ``started``, one word boundary
per whitespace-separated token at a fixed pace, then ``ended``.
"""

from __future__ import annotations

import asyncio
import logging
import re
from typing import Callable, Iterable

from read_aloud.models import Voice

from .interfaces import SpeechUtterance

_TOKEN_RE = re.compile(r"\S+")

DEFAULT_SIMULATED_VOICES: tuple[Voice, ...] = (
    Voice(id="sim-en-us", display_name="Simulated English (US)", language_tag="en-US", is_default=True),
    Voice(id="sim-en-gb", display_name="Simulated English (UK)", language_tag="en-GB"),
    Voice(id="sim-de-de", display_name="Simulated German", language_tag="de-DE"),
    Voice(id="sim-fr-fr", display_name="Simulated French", language_tag="fr-FR"),
)


class SimulatedSpeechBackend:
    """Speech backend that paces boundary events with ``asyncio.sleep``."""

    def __init__(
        self,
        voices: Iterable[Voice] = DEFAULT_SIMULATED_VOICES,
        *,
        words_per_minute: float = 180.0,
        failing_voice_ids: Iterable[str] = (),
        logger: logging.Logger | None = None,
    ) -> None:
        self._voices = list(voices)
        self._words_per_minute = max(1.0, words_per_minute)
        self._failing_voice_ids = set(failing_voice_ids)
        self._logger = logger or logging.getLogger("read_aloud.speech.simulated")
        self._voice_listeners: list[Callable[[], None]] = []
        self._tasks: list[asyncio.Task[None]] = []
        self._resumed = asyncio.Event()
        self._resumed.set()

    def is_supported(self) -> bool:
        return True

    def get_voices(self) -> list[Voice]:
        return list(self._voices)

    def set_voices(self, voices: Iterable[Voice]) -> None:
        """Replace the installed voices and fire the voices-changed notification."""
        self._voices = list(voices)
        for callback in list(self._voice_listeners):
            callback()

    def on_voices_changed(self, callback: Callable[[], None]) -> None:
        self._voice_listeners.append(callback)

    def enqueue(
        self,
        text: str,
        voice: Voice | None,
        rate: float,
        pitch: float,
        volume: float,
    ) -> SpeechUtterance:
        utterance = SpeechUtterance(text=text, voice=voice, rate=rate, pitch=pitch, volume=volume)
        previous = self._tasks[-1] if self._tasks else None
        task = asyncio.get_running_loop().create_task(
            self._speak(utterance, previous),
            name=f"simulated-utterance-{utterance.id}",
        )
        self._tasks.append(task)
        task.add_done_callback(self._forget)
        return utterance

    def cancel(self) -> None:
        for task in list(self._tasks):
            task.cancel()
        self._resumed.set()

    def pause(self) -> None:
        self._resumed.clear()

    def resume(self) -> None:
        self._resumed.set()

    def _forget(self, task: asyncio.Task[None]) -> None:
        if task in self._tasks:
            self._tasks.remove(task)

    async def _speak(self, utterance: SpeechUtterance, previous: asyncio.Task[None] | None) -> None:
        try:
            if previous is not None and not previous.done():
                await asyncio.wait({previous})

            utterance.on_start()
            if utterance.voice is not None and utterance.voice.id in self._failing_voice_ids:
                utterance.on_error("synthesis-failed")
                return

            interval = 60.0 / (self._words_per_minute * max(utterance.rate, 0.1))
            for match in _TOKEN_RE.finditer(utterance.text):
                await self._resumed.wait()
                utterance.on_boundary("word", match.start(), len(match.group()))
                await asyncio.sleep(interval)
            await self._resumed.wait()
            utterance.on_end()
        except asyncio.CancelledError:
            utterance.on_error("canceled")
            raise
