"""Voice loading and language-aware voice selection."""

from __future__ import annotations

import asyncio
import logging
from collections import defaultdict
from typing import Iterable

from read_aloud.models import Voice, normalize_language_tag, primary_subtag

from .interfaces import SpeechBackend

DEFAULT_READY_TIMEOUT_SECONDS = 3.0


def _same_tag(left: str, right: str) -> bool:
    return normalize_language_tag(left).lower() == normalize_language_tag(right).lower()


def _preferred(voices: Iterable[Voice], language_tag: str) -> Voice | None:
    candidates = list(voices)
    exact = [voice for voice in candidates if _same_tag(voice.language_tag, language_tag)]
    for voice in exact:
        if voice.is_local and voice.is_default:
            return voice
    for voice in exact:
        if voice.is_local:
            return voice
    if exact:
        return exact[0]

    primary = primary_subtag(language_tag)
    if primary:
        same_language = [voice for voice in candidates if voice.primary_language == primary]
        if same_language:
            return next((voice for voice in same_language if voice.is_default), same_language[0])

    return next((voice for voice in candidates if voice.is_default), None)


class VoiceCatalog:
    """Read-mostly index of backend voices.

    The backend "voices changed" notification replaces the voice list
    wholesale; voices already handed out stay valid.
    """

    def __init__(
        self,
        backend: SpeechBackend,
        *,
        ready_timeout_seconds: float = DEFAULT_READY_TIMEOUT_SECONDS,
        logger: logging.Logger | None = None,
    ) -> None:
        self._backend = backend
        self._ready_timeout_seconds = ready_timeout_seconds
        self._logger = logger or logging.getLogger("read_aloud.speech.catalog")
        self._voices: tuple[Voice, ...] = ()
        self._ready: asyncio.Event | None = None
        self._loaded = False
        backend.on_voices_changed(self._handle_voices_changed)

    @property
    def voices(self) -> tuple[Voice, ...]:
        return self._voices

    @property
    def loaded(self) -> bool:
        return self._loaded

    async def load(self) -> tuple[Voice, ...]:
        """Load voices, waiting up to the ready timeout if the platform has none yet."""
        self._ready = asyncio.Event()
        try:
            voices = self._backend.get_voices()
            if not voices:
                try:
                    await asyncio.wait_for(self._ready.wait(), timeout=self._ready_timeout_seconds)
                except asyncio.TimeoutError:
                    self._logger.warning(
                        "voices_ready_timeout",
                        extra={"timeout_seconds": self._ready_timeout_seconds},
                    )
                voices = self._backend.get_voices()
        finally:
            self._ready = None

        self._replace(voices)
        return self._voices

    def refresh(self) -> tuple[Voice, ...]:
        """Re-read the backend voice list synchronously."""
        self._replace(self._backend.get_voices())
        return self._voices

    def find(self, voice_id: str | None) -> Voice | None:
        """Look up a voice by id, falling back to its display name."""
        if not voice_id:
            return None
        for voice in self._voices:
            if voice.id == voice_id:
                return voice
        return next((voice for voice in self._voices if voice.display_name == voice_id), None)

    def select_default(self, language_tag: str | None) -> Voice | None:
        """Pick the best voice for ``language_tag``; ``None`` lets the backend choose."""
        return _preferred(self._voices, language_tag or "")

    def fallback_for(self, language_tag: str | None, exclude: Voice | None) -> Voice | None:
        """Deterministic alternative to ``exclude`` used when synthesis fails."""
        others = [voice for voice in self._voices if exclude is None or voice.id != exclude.id]
        return _preferred(others, language_tag or "")

    def get_voices_for_language(self, language_tag: str) -> list[Voice]:
        primary = primary_subtag(language_tag)
        return [voice for voice in self._voices if voice.primary_language == primary]

    def list_supported_languages(self) -> dict[str, list[str]]:
        """Group the distinct voice language tags by primary subtag."""
        grouped: dict[str, set[str]] = defaultdict(set)
        for voice in self._voices:
            primary = voice.primary_language
            if primary:
                grouped[primary].add(normalize_language_tag(voice.language_tag))
        return {primary: sorted(tags) for primary, tags in sorted(grouped.items())}

    def _replace(self, voices: Iterable[Voice]) -> None:
        self._voices = tuple(voices)
        self._loaded = True
        self._logger.info("voices_loaded", extra={"voice_count": len(self._voices)})

    def _handle_voices_changed(self) -> None:
        if self._ready is not None:
            self._ready.set()
            return
        self.refresh()
