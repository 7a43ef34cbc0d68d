"""CLI startup entrypoint for read-aloud."""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path

import typer
from rich import print
from rich.console import Console
from rich.live import Live
from rich.logging import RichHandler
from rich.table import Table

from read_aloud.cli import CliReadAloudHandler, ConsoleReadAloudListener
from read_aloud.config import settings
from read_aloud.errors import BackendUnavailable, ReadAloudError
from read_aloud.models import SessionEndReason
from read_aloud.playback import PlaybackEngine
from read_aloud.segmenter import segment_text
from read_aloud.speech.catalog import VoiceCatalog
from read_aloud.speech.interfaces import SpeechBackend
from read_aloud.speech.simulated import SimulatedSpeechBackend

app = typer.Typer(help="Read text aloud with synchronized word and sentence highlighting")


@app.callback()
def main(log_level: str = typer.Option(None, help="Logging level, e.g. DEBUG or INFO")) -> None:
    logging.basicConfig(
        level=(log_level or settings.log_level).upper(),
        format="%(message)s",
        handlers=[RichHandler(rich_tracebacks=True)],
        force=True,
    )


def _build_backend(name: str | None, words_per_minute: int | None = None) -> SpeechBackend:
    backend = (name or settings.backend).lower()
    wpm = words_per_minute or settings.words_per_minute
    if backend == "simulated":
        return SimulatedSpeechBackend(words_per_minute=wpm)
    if backend == "pyttsx3":
        from read_aloud.speech.tts_pyttsx3 import Pyttsx3SpeechBackend

        return Pyttsx3SpeechBackend(words_per_minute=wpm)
    raise typer.BadParameter(f"Unknown backend {backend!r}; expected pyttsx3 or simulated")


def _backend_or_exit(name: str | None, words_per_minute: int | None = None) -> SpeechBackend:
    try:
        return _build_backend(name, words_per_minute)
    except BackendUnavailable as exc:
        print({"error": str(exc)})
        raise typer.Exit(code=1)


def _build_engine(backend: SpeechBackend, *, listener=None, max_chunk_chars: int | None = None) -> PlaybackEngine:
    catalog = VoiceCatalog(backend, ready_timeout_seconds=settings.voices_ready_timeout_seconds)
    return PlaybackEngine(
        backend,
        catalog=catalog,
        listener=listener,
        defaults=settings.playback_defaults(),
        max_chunk_chars=max_chunk_chars or settings.max_chunk_chars,
    )


def _load_text(text: str | None, file: Path | None) -> str:
    if file is not None:
        return file.read_text(encoding="utf-8")
    if text:
        return text
    raise typer.BadParameter("Provide TEXT or --file")


@app.command("config")
def show_config() -> None:
    """Show runtime configuration."""
    print(settings.model_dump())


@app.command()
def voices(
    language: str = typer.Option(None, help="Only list voices for this language, e.g. en or en-GB"),
    backend: str = typer.Option(None, help="pyttsx3 or simulated"),
) -> None:
    """List installed voices."""
    engine = _build_engine(_backend_or_exit(backend))
    asyncio.run(CliReadAloudHandler(engine).load_voices())

    catalog = engine.catalog
    listed = catalog.get_voices_for_language(language) if language else list(catalog.voices)
    preferred = catalog.select_default(language or settings.language_tag)

    table = Table(title="Voices")
    for column in ("id", "name", "language", "local", "default", "preferred"):
        table.add_column(column)
    for voice in listed:
        table.add_row(
            voice.id,
            voice.display_name,
            voice.language_tag,
            "yes" if voice.is_local else "no",
            "yes" if voice.is_default else "",
            "*" if preferred is not None and voice.id == preferred.id else "",
        )
    Console().print(table)


@app.command()
def languages(backend: str = typer.Option(None, help="pyttsx3 or simulated")) -> None:
    """List supported languages grouped by primary subtag."""
    engine = _build_engine(_backend_or_exit(backend))
    asyncio.run(CliReadAloudHandler(engine).load_voices())
    print(engine.catalog.list_supported_languages())


@app.command()
def segments(
    text: str = typer.Argument(None, help="Text to segment"),
    file: Path = typer.Option(None, exists=True, dir_okay=False, help="Read the text from a UTF-8 file"),
    max_chunk_chars: int = typer.Option(None, min=1, help="Characters per backend request"),
) -> None:
    """Show how text is split into backend requests."""
    source = _load_text(text, file)
    table = Table(title="Segments")
    for column in ("#", "start", "end", "chars", "text"):
        table.add_column(column)
    for segment in segment_text(source, max_chunk_chars or settings.max_chunk_chars):
        table.add_row(
            str(segment.ordinal),
            str(segment.start_offset),
            str(segment.end_offset),
            str(segment.length),
            segment.text,
        )
    Console().print(table)


@app.command()
def read(
    text: str = typer.Argument(None, help="Text to read aloud"),
    file: Path = typer.Option(None, exists=True, dir_okay=False, help="Read the text from a UTF-8 file"),
    voice: str = typer.Option(None, help="Voice id or name"),
    language: str = typer.Option(None, help="Language tag used to pick a voice, e.g. en-US"),
    rate: float = typer.Option(None, help="Speech rate multiplier (0.1-10)"),
    pitch: float = typer.Option(None, help="Pitch (0-2)"),
    volume: float = typer.Option(None, help="Volume (0-1)"),
    backend: str = typer.Option(None, help="pyttsx3 or simulated"),
    max_chunk_chars: int = typer.Option(None, min=1, help="Characters per backend request"),
    wpm: int = typer.Option(None, min=1, help="Words per minute at rate 1.0"),
) -> None:
    """Read text aloud while highlighting the current word and sentence."""
    source = _load_text(text, file)
    listener = ConsoleReadAloudListener(
        source,
        word_style=settings.word_style,
        sentence_style=settings.sentence_style,
    )
    engine = _build_engine(_backend_or_exit(backend, wpm), listener=listener, max_chunk_chars=max_chunk_chars)
    overrides = {
        key: value
        for key, value in {
            "voice_id": voice,
            "language_tag": language,
            "rate": rate,
            "pitch": pitch,
            "volume": volume,
        }.items()
        if value is not None
    }

    console = Console()
    try:
        with Live(listener.render(), console=console, refresh_per_second=12) as live:
            listener.attach(live)
            reason = asyncio.run(CliReadAloudHandler(engine).read(source, overrides))
    except ReadAloudError as exc:
        print({"error": f"{type(exc).__name__}: {exc}"})
        raise typer.Exit(code=1)
    except KeyboardInterrupt:
        # The handler closes the engine on cancellation, which stops the session.
        reason = SessionEndReason.STOPPED

    print({"session_end": reason.value, "errors": listener.errors})
    if reason is SessionEndReason.ERROR:
        raise typer.Exit(code=1)


if __name__ == "__main__":
    app()
