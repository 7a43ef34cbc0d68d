"""Speech backend boundary: contracts, adapter, voice catalog and backends."""

from .adapter import EventTag, FailureKind, SpeechBackendAdapter, SpeechEvent, SpeechEventKind, classify_failure
from .catalog import VoiceCatalog
from .interfaces import SpeechBackend, SpeechUtterance
from .simulated import SimulatedSpeechBackend

__all__ = [
    "EventTag",
    "FailureKind",
    "SimulatedSpeechBackend",
    "SpeechBackend",
    "SpeechBackendAdapter",
    "SpeechEvent",
    "SpeechEventKind",
    "SpeechUtterance",
    "VoiceCatalog",
    "classify_failure",
]
