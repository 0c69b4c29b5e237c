"""Configuration management for Dreamweaver."""

from enum import Enum
from functools import lru_cache
from pathlib import Path
from typing import Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Server settings
    host: str = "0.0.0.0"
    port: int = 8000
    debug: bool = False
    cors_allow_origins: list[str] = ["http://localhost:3000"]

    # Google API Key (required by the Gemini gateway only)
    google_api_key: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("google_api_key", "gemini_api_key", "dreamweaver_apikey"),
    )

    # Which GenerationGateway implementation to use
    generation_provider: str = "gemini"

    # Gemini models
    gemini_text_model: str = "gemini-2.5-flash"
    gemini_tts_model: str = "gemini-2.5-flash-preview-tts"
    gemini_image_model: str = "gemini-2.5-flash-image"
    request_timeout_seconds: float = 60.0
    max_prompt_chars: int = 10000

    # Retry policy for generation calls
    retry_attempts: int = 3
    retry_base_delay_seconds: float = 1.0
    retry_max_delay_seconds: float = 8.0

    # Playback
    clock_tick_seconds: float = 1.0
    max_consecutive_narration_failures: int = 3
    max_consecutive_chapter_failures: int = 2
    # Waiting on the client's finished signal: clip duration * factor + grace
    playback_ack_timeout_factor: float = 1.5
    playback_ack_grace_seconds: float = 5.0

    # Listener playlists are kept in memory only when unset
    playlists_file: Optional[Path] = None

    # Narration WAV files live here while cached; a temp dir when unset
    media_dir: Optional[Path] = None


class Voice(str, Enum):
    """Narrator voices (Gemini prebuilt voice names)."""

    KORE = "Kore"
    PUCK = "Puck"
    CHARON = "Charon"
    FENRIR = "Fenrir"
    AOEDE = "Aoede"


class Accent(str, Enum):
    NEUTRAL = "neutral"
    AMERICAN = "american"
    BRITISH = "british"
    AUSTRALIAN = "australian"
    IRISH = "irish"
    SCOTTISH = "scottish"
    INDIAN = "indian"


class Genre(str, Enum):
    FANTASY = "fantasy"
    SCIENCE_FICTION = "science_fiction"
    MYSTERY = "mystery"
    HORROR = "horror"
    ROMANCE = "romance"
    ADVENTURE = "adventure"
    FAIRY_TALE = "fairy_tale"


class SessionOptions(BaseModel):
    """Per-session options chosen by the listener.

    Accepts both snake_case and camelCase keys so browser clients can send
    their settings object unchanged.
    """

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    voice: Voice = Voice.KORE
    accent: Accent = Accent.NEUTRAL
    genre: Genre = Genre.FANTASY
    session_duration_seconds: int = Field(default=900, gt=0)
    # Advisory only; scoring uses music_min_score
    music_sensitivity: int = Field(default=3, ge=1, le=5)
    image_display_interval_sentences: int = Field(default=4, ge=1)
    image_queue_delay_ms: int = Field(default=1000, ge=0)
    estimated_seconds_per_sentence: int = Field(default=8, gt=0)
    average_sentences_per_chapter: int = Field(default=12, gt=0)
    min_time_buffer_ratio: float = Field(default=0.5, ge=0)
    audio_lookahead: int = Field(default=2, ge=0)
    music_min_score: int = Field(default=2, ge=1)
    stop_mid_sentence: bool = False

    @property
    def estimated_chapter_duration_seconds(self) -> int:
        return self.average_sentences_per_chapter * self.estimated_seconds_per_sentence


@lru_cache
def get_settings() -> Settings:
    """Get cached application settings."""
    return Settings()
