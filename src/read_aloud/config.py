"""Runtime configuration for read-aloud."""

from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from read_aloud.models import PlaybackSettings


class Settings(BaseSettings):
    """Environment-driven runtime settings."""

    model_config = SettingsConfigDict(env_prefix="READ_ALOUD_", env_file=".env", extra="ignore")

    app_name: str = "read-aloud"
    log_level: str = "WARNING"
    backend: Literal["pyttsx3", "simulated"] = Field(
        default="pyttsx3",
        description="Speech backend used by the CLI.",
    )
    max_chunk_chars: int = Field(default=200, ge=1, description="Upper bound on characters per backend request.")
    voices_ready_timeout_seconds: float = Field(default=3.0, ge=0.0)
    language_tag: str = "en-US"
    voice_id: str | None = None
    rate: float = 1.0
    pitch: float = 1.0
    volume: float = 1.0
    words_per_minute: int = Field(default=200, ge=1, description="pyttsx3 speaking rate at rate=1.0.")
    word_style: str = "bold black on yellow"
    sentence_style: str = "on grey23"

    def playback_defaults(self) -> PlaybackSettings:
        """Default settings snapshot for sessions that do not override them."""
        return PlaybackSettings(
            voice_id=self.voice_id,
            language_tag=self.language_tag,
            rate=self.rate,
            pitch=self.pitch,
            volume=self.volume,
        )


settings = Settings()
