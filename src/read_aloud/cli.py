"""CLI-side handler wrappers and the console highlight listener."""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from rich.console import Group
from rich.live import Live
from rich.text import Text

from read_aloud.models import PlaybackSettings, SessionEndReason, Voice
from read_aloud.playback import PlaybackEngine, PlaybackListener


class ConsoleReadAloudListener(PlaybackListener):
    """Mirrors playback progress onto a rich live display."""

    def __init__(self, text: str, *, word_style: str, sentence_style: str) -> None:
        self._text = text
        self._word_style = word_style
        self._sentence_style = sentence_style
        self._live: Live | None = None
        self.word: tuple[int, int] | None = None
        self.sentence: tuple[int, int] | None = None
        self.segment: tuple[int, int] = (0, 0)
        self.end_reason: SessionEndReason | None = None
        self.errors: list[str] = []

    def attach(self, live: Live) -> None:
        self._live = live
        self._refresh()

    def render(self) -> Group:
        body = Text(self._text)
        if self.sentence:
            body.stylize(self._sentence_style, *self.sentence)
        if self.word:
            body.stylize(self._word_style, *self.word)

        index, total = self.segment
        status = self.end_reason.value if self.end_reason else "speaking"
        footer = Text(f"segment {index + 1}/{total} - {status}" if total else status, style="dim")
        return Group(body, footer)

    def on_segment_advance(self, index: int, total: int) -> None:
        self.segment = (index, total)
        self._refresh()

    def on_word_highlight(self, start: int, end: int) -> None:
        self.word = (start, end)
        self._refresh()

    def on_sentence_highlight(self, start: int, end: int) -> None:
        self.sentence = (start, end)
        self._refresh()

    def on_session_end(self, reason: SessionEndReason) -> None:
        self.end_reason = reason
        self.word = None
        self.sentence = None
        self._refresh()

    def on_error(self, kind: str, message: str) -> None:
        self.errors.append(f"{kind}: {message}")

    def _refresh(self) -> None:
        if self._live is not None:
            self._live.update(self.render())


class CliReadAloudHandler:
    """Simple sync-friendly facade over the async playback engine."""

    def __init__(self, engine: PlaybackEngine) -> None:
        self._engine = engine

    async def load_voices(self) -> tuple[Voice, ...]:
        return await self._engine.catalog.load()

    async def read(
        self,
        text: str,
        settings: PlaybackSettings | Mapping[str, Any] | None = None,
    ) -> SessionEndReason:
        """Read ``text`` to the end and report why the session ended."""
        await self._engine.start()
        try:
            session = self._engine.play(text, settings)
            return await session.wait()
        finally:
            await self._engine.close()
