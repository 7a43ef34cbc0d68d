"""Text-to-speech backend powered by ``pyttsx3``."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Callable

from read_aloud.errors import BackendUnavailable
from read_aloud.models import Voice, normalize_language_tag

from .interfaces import SpeechUtterance

DEFAULT_WORDS_PER_MINUTE = 200


def _language_of(voice: Any) -> str:
    languages = getattr(voice, "languages", None) or []
    if not languages:
        return ""
    raw = languages[0]
    if isinstance(raw, bytes):
        # espeak prefixes the tag with a priority byte, e.g. b"\x05en-us".
        raw = raw.decode("utf-8", errors="ignore")
    tag = normalize_language_tag("".join(char for char in str(raw) if char.isprintable()))
    parts = tag.split("-")
    if len(parts) > 1 and len(parts[1]) == 2:
        parts[1] = parts[1].upper()
    return "-".join([parts[0].lower(), *parts[1:]])


@dataclass(slots=True, eq=False)
class _Job:
    utterance: SpeechUtterance
    offset: int = 0
    last_location: int = 0
    started: bool = False
    paused: bool = False
    canceled: bool = False


class Pyttsx3SpeechBackend:
    """Local speech through a pyttsx3 engine.

    ``runAndWait`` blocks, so each utterance runs in a worker thread and every
    engine callback is handed back to the event loop. pyttsx3 cannot pause, so
    pausing stops the engine and resuming speaks again from the last reported word.
    """

    def __init__(
        self,
        *,
        words_per_minute: int = DEFAULT_WORDS_PER_MINUTE,
        driver_name: str | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        try:
            import pyttsx3
        except ImportError as exc:  # pragma: no cover - import guard
            raise BackendUnavailable(
                "Voice TTS backend unavailable. Install extras with: pip install 'read-aloud[voice]'"
            ) from exc

        try:
            self._engine = pyttsx3.init(driver_name)
        except Exception as exc:  # noqa: BLE001 - drivers fail with platform-specific errors.
            raise BackendUnavailable(f"Unable to start the pyttsx3 engine: {exc}") from exc

        self._words_per_minute = words_per_minute
        self._logger = logger or logging.getLogger("read_aloud.speech.pyttsx3")
        self._loop: asyncio.AbstractEventLoop | None = None
        self._lock: asyncio.Lock | None = None
        self._jobs: dict[str, _Job] = {}
        self._current: _Job | None = None

        self._engine.connect("started-utterance", self._on_started_utterance)
        self._engine.connect("started-word", self._on_started_word)
        self._engine.connect("finished-utterance", self._on_finished_utterance)
        self._engine.connect("error", self._on_engine_error)

    def is_supported(self) -> bool:
        return True

    def get_voices(self) -> list[Voice]:
        default_id = self._engine.getProperty("voice")
        voices = self._engine.getProperty("voices") or []
        return [
            Voice(
                id=str(voice.id),
                display_name=str(getattr(voice, "name", None) or voice.id),
                language_tag=_language_of(voice),
                is_local=True,
                is_default=voice.id == default_id,
            )
            for voice in voices
        ]

    def on_voices_changed(self, callback: Callable[[], None]) -> None:
        """pyttsx3 reports voices synchronously and never announces changes."""

    def enqueue(
        self,
        text: str,
        voice: Voice | None,
        rate: float,
        pitch: float,
        volume: float,
    ) -> SpeechUtterance:
        utterance = SpeechUtterance(text=text, voice=voice, rate=rate, pitch=pitch, volume=volume)
        job = _Job(utterance=utterance)
        self._jobs[utterance.id] = job
        self._schedule(job)
        return utterance

    def cancel(self) -> None:
        for job in list(self._jobs.values()):
            job.canceled = True
            if job.paused:
                # Not running in the engine, so no finished-utterance callback will come.
                self._jobs.pop(job.utterance.id, None)
                self._post(job.utterance.on_error, "canceled")
        self._engine.stop()

    def pause(self) -> None:
        job = self._current
        if job is None or job.paused:
            return
        job.paused = True
        self._engine.stop()

    def resume(self) -> None:
        job = self._current
        if job is None or not job.paused:
            return
        job.paused = False
        job.offset = job.last_location
        self._schedule(job)

    def _schedule(self, job: _Job) -> None:
        self._loop = asyncio.get_running_loop()
        if self._lock is None:
            self._lock = asyncio.Lock()
        self._current = job
        self._loop.create_task(self._run(job), name=f"pyttsx3-utterance-{job.utterance.id}")

    async def _run(self, job: _Job) -> None:
        assert self._lock is not None
        async with self._lock:
            if job.canceled:
                self._jobs.pop(job.utterance.id, None)
                return
            if job.paused:
                return
            await asyncio.to_thread(self._say_and_wait, job)

    def _say_and_wait(self, job: _Job) -> None:
        utterance = job.utterance
        self._engine.setProperty("rate", int(self._words_per_minute * utterance.rate))
        self._engine.setProperty("volume", utterance.volume)
        if utterance.voice is not None:
            self._engine.setProperty("voice", utterance.voice.id)
        # pyttsx3 has no portable pitch property; utterance.pitch is ignored here.

        self._engine.say(utterance.text[job.offset :], utterance.id)
        try:
            self._engine.runAndWait()
        except RuntimeError:
            self._logger.exception("pyttsx3_run_failed", extra={"utterance_id": utterance.id})
            self._jobs.pop(utterance.id, None)
            self._post(utterance.on_error, "synthesis-failed")

    def _post(self, callback: Callable[..., None], *args: Any) -> None:
        if self._loop is None or self._loop.is_closed():
            return
        self._loop.call_soon_threadsafe(callback, *args)

    def _on_started_utterance(self, name: str) -> None:
        job = self._jobs.get(name)
        if job is None or job.started:
            return
        job.started = True
        self._post(job.utterance.on_start)

    def _on_started_word(self, name: str, location: int, length: int) -> None:
        job = self._jobs.get(name)
        if job is None or job.canceled:
            return
        job.last_location = job.offset + location
        self._post(job.utterance.on_boundary, "word", job.last_location, length)

    def _on_finished_utterance(self, name: str, completed: bool) -> None:
        job = self._jobs.get(name)
        if job is None or job.paused:
            return
        self._jobs.pop(name, None)
        if job.canceled:
            self._post(job.utterance.on_error, "canceled")
        elif completed:
            self._post(job.utterance.on_end)
        else:
            self._post(job.utterance.on_error, "interrupted")

    def _on_engine_error(self, name: str, exception: BaseException) -> None:
        job = self._jobs.pop(name, None)
        self._logger.error("pyttsx3_engine_error", extra={"utterance_id": name, "error": str(exception)})
        if job is not None and not job.canceled:
            self._post(job.utterance.on_error, "synthesis-failed")
