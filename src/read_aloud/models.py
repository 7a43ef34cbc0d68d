from __future__ import annotations

import asyncio
import math
from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from .errors import ConfigurationError, ReadAloudError

RATE_RANGE = (0.1, 10.0)
PITCH_RANGE = (0.0, 2.0)
VOLUME_RANGE = (0.0, 1.0)
DEFAULT_LANGUAGE_TAG = "en-US"


def normalize_language_tag(tag: str | None) -> str:
    if not tag:
        return ""
    return tag.strip().replace("_", "-")


def primary_subtag(tag: str | None) -> str:
    """Return the lowercase primary language subtag, e.g. ``en`` for ``en-GB``."""
    return normalize_language_tag(tag).split("-", 1)[0].lower()


class PlaybackState(str, Enum):
    """Lifecycle states of the playback state machine."""

    IDLE = "idle"
    SPEAKING = "speaking"
    PAUSED = "paused"
    COMPLETED = "completed"
    STOPPED = "stopped"
    ERROR = "error"


LIVE_STATES = frozenset({PlaybackState.SPEAKING, PlaybackState.PAUSED})


class SessionEndReason(str, Enum):
    COMPLETED = "completed"
    STOPPED = "stopped"
    ERROR = "error"


class BoundaryKind(str, Enum):
    WORD = "word"
    SENTENCE = "sentence"


@dataclass(frozen=True, slots=True)
class Voice:
    """Descriptor of an installed speech voice."""

    id: str
    display_name: str
    language_tag: str
    is_local: bool = True
    is_default: bool = False

    @property
    def primary_language(self) -> str:
        return primary_subtag(self.language_tag)


@dataclass(frozen=True, slots=True)
class Segment:
    """Bounded slice of the source text submitted as one backend request."""

    ordinal: int
    text: str
    start_offset: int
    end_offset: int

    @property
    def length(self) -> int:
        return self.end_offset - self.start_offset


@dataclass(frozen=True, slots=True)
class BoundaryEvent:
    """Backend-reported playback position within a segment."""

    segment_index: int
    char_index: int
    kind: BoundaryKind
    length: int = 0


@dataclass(frozen=True, slots=True)
class HighlightSpan:
    """A ``[start, end)`` range of the source text marked as spoken."""

    start: int
    end: int
    kind: BoundaryKind


def _clamp(value: Any, bounds: tuple[float, float], default: float) -> float:
    try:
        number = float(value)
    except (TypeError, ValueError):
        return default
    if math.isnan(number):
        return default
    low, high = bounds
    return max(low, min(high, number))


class PlaybackSettings(BaseModel):
    """Range-validated settings snapshot for one playback session.

    Numeric values outside their range are clamped instead of rejected, and
    unparseable values fall back to the default. Both ``voice_id`` and
    ``voiceId`` spellings are accepted.
    """

    model_config = ConfigDict(frozen=True, alias_generator=to_camel, populate_by_name=True, extra="ignore")

    voice_id: str | None = None
    language_tag: str = DEFAULT_LANGUAGE_TAG
    rate: float = Field(default=1.0, description="Speech rate multiplier, clamped to [0.1, 10].")
    pitch: float = Field(default=1.0, description="Voice pitch, clamped to [0, 2].")
    volume: float = Field(default=1.0, description="Output volume, clamped to [0, 1].")

    @field_validator("voice_id", mode="before")
    @classmethod
    def _blank_voice_is_none(cls, value: Any) -> Any:
        if isinstance(value, str) and not value.strip():
            return None
        return value

    @field_validator("language_tag", mode="before")
    @classmethod
    def _normalize_language(cls, value: Any) -> Any:
        if value is None:
            return DEFAULT_LANGUAGE_TAG
        if isinstance(value, str):
            return normalize_language_tag(value) or DEFAULT_LANGUAGE_TAG
        return value

    @field_validator("rate", mode="before")
    @classmethod
    def _clamp_rate(cls, value: Any) -> float:
        return _clamp(value, RATE_RANGE, 1.0)

    @field_validator("pitch", mode="before")
    @classmethod
    def _clamp_pitch(cls, value: Any) -> float:
        return _clamp(value, PITCH_RANGE, 1.0)

    @field_validator("volume", mode="before")
    @classmethod
    def _clamp_volume(cls, value: Any) -> float:
        return _clamp(value, VOLUME_RANGE, 1.0)

    @classmethod
    def coerce(
        cls,
        value: PlaybackSettings | Mapping[str, Any] | None,
        *,
        defaults: PlaybackSettings | None = None,
    ) -> PlaybackSettings:
        """Build a settings snapshot from an instance, a mapping, or nothing.

        Keys missing from a mapping are taken from ``defaults``.
        """
        if isinstance(value, cls):
            return value
        base = defaults or cls()
        if value is None:
            return base
        if not isinstance(value, Mapping):
            raise ConfigurationError(f"Unsupported playback settings type: {type(value).__name__}")

        names = {info.alias: name for name, info in cls.model_fields.items() if info.alias}
        merged = base.model_dump()
        for key, item in value.items():
            merged[names.get(key, key)] = item
        return cls.model_validate(merged)


@dataclass(slots=True)
class PlaybackSession:
    """One logical read-aloud request spanning one or more segments.

    Returned from ``PlaybackEngine.play`` as the caller's session handle.
    """

    session_id: str
    source_text: str
    segments: tuple[Segment, ...]
    settings: PlaybackSettings
    voice: Voice | None
    generation: int
    state: PlaybackState = PlaybackState.SPEAKING
    current_segment_index: int = 0
    attempt: int = 0
    active_voice: Voice | None = None
    pending_advance: bool = False
    pending_retry: bool = False
    end_reason: SessionEndReason | None = None
    end_cause: ReadAloudError | None = None
    completion: asyncio.Future[SessionEndReason] | None = field(default=None, repr=False)

    @property
    def total_segments(self) -> int:
        return len(self.segments)

    @property
    def current_segment(self) -> Segment:
        return self.segments[self.current_segment_index]

    @property
    def is_live(self) -> bool:
        return self.state in LIVE_STATES

    async def wait(self) -> SessionEndReason:
        """Wait until the session reaches a terminal state and return why it ended."""
        if self.end_reason is not None:
            return self.end_reason
        if self.completion is None:
            raise RuntimeError("Session was not started on an event loop")
        return await asyncio.shield(self.completion)
