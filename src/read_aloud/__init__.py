"""Read long text aloud with synchronized word and sentence highlighting."""

from .errors import (
    BackendUnavailable,
    ConfigurationError,
    Interrupted,
    ReadAloudError,
    SynthesisFailure,
    UserCancelled,
)
from .highlight import HighlightRenderer, HighlightSynchronizer, MarkedText, token_at
from .models import (
    BoundaryEvent,
    BoundaryKind,
    HighlightSpan,
    PlaybackSession,
    PlaybackSettings,
    PlaybackState,
    Segment,
    SessionEndReason,
    Voice,
)
from .playback import PlaybackEngine, PlaybackListener
from .segmenter import reassemble, segment_text

__all__ = [
    "BackendUnavailable",
    "BoundaryEvent",
    "BoundaryKind",
    "ConfigurationError",
    "HighlightRenderer",
    "HighlightSpan",
    "HighlightSynchronizer",
    "Interrupted",
    "MarkedText",
    "PlaybackEngine",
    "PlaybackListener",
    "PlaybackSession",
    "PlaybackSettings",
    "PlaybackState",
    "ReadAloudError",
    "Segment",
    "SessionEndReason",
    "SynthesisFailure",
    "UserCancelled",
    "Voice",
    "reassemble",
    "segment_text",
    "token_at",
]
