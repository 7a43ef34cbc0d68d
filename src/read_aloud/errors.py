"""Error taxonomy for read-aloud playback."""


class ReadAloudError(Exception):
    """Base class for every error raised or reported by the playback engine."""


class ConfigurationError(ReadAloudError, ValueError):
    """Raised synchronously for invalid or empty input. No state is changed."""


class BackendUnavailable(ReadAloudError, RuntimeError):
    """Raised when the platform speech primitive is missing or failed to start."""


class SynthesisFailure(ReadAloudError):
    """The backend failed mid-utterance and the single retry also failed."""


class Interrupted(ReadAloudError):
    """The utterance was pre-empted by another speech request."""


class UserCancelled(ReadAloudError):
    """The caller stopped the session explicitly."""
