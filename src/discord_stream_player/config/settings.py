"""Application Settings and Configuration

Pydantic-based settings management using environment variables.
Settings are loaded from environment variables with support for .env files,
type validation, and sensible defaults. All settings are frozen and immutable
after initialization.
"""

from __future__ import annotations

from functools import lru_cache
from typing import Literal

from pydantic import AliasChoices, BaseModel, Field, SecretStr, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from ..domain.shared.messages import ErrorMessages
from ..domain.shared.validators import validate_discord_snowflake


class DiscordSettings(BaseModel):
    """Discord bot configuration."""

    model_config = SettingsConfigDict(frozen=True, populate_by_name=True)

    token: SecretStr = Field(
        default=SecretStr(""), validation_alias=AliasChoices("token", "bot_token", "discord_token")
    )
    command_prefix: str = Field(
        default="!",
        min_length=1,
        max_length=5,
        validation_alias=AliasChoices("command_prefix", "prefix"),
    )
    owner_ids: tuple[int, ...] = Field(
        default_factory=tuple, validation_alias=AliasChoices("owner_ids", "owners")
    )
    guild_ids: tuple[int, ...] = Field(
        default_factory=tuple, validation_alias=AliasChoices("guild_ids", "guilds")
    )

    @field_validator("owner_ids", "guild_ids", mode="before")
    @classmethod
    def validate_snowflake_ids(cls, v: tuple[int, ...] | list[int]) -> tuple[int, ...]:
        """Validate Discord snowflake IDs and convert lists to tuples."""
        # Convert list to tuple if needed (from JSON array in env vars)
        if isinstance(v, list):
            v = tuple(v)
        for snowflake in v:
            validate_discord_snowflake(snowflake)
        return v


class DecoderSettings(BaseModel):
    """ffmpeg decoder process configuration."""

    model_config = SettingsConfigDict(frozen=True, populate_by_name=True)

    ffmpeg_path: str = Field(
        default="ffmpeg",
        min_length=1,
        validation_alias=AliasChoices("ffmpeg_path", "ffmpeg"),
    )
    reconnect: bool = True
    reconnect_streamed: bool = True
    reconnect_delay_max: int = Field(default=5, ge=0, le=60)
    extra_before_options: tuple[str, ...] = Field(default_factory=tuple)
    log_decoder_output: bool = False

    @field_validator("extra_before_options", mode="before")
    @classmethod
    def split_options(cls, v: str | list[str] | tuple[str, ...]) -> tuple[str, ...]:
        """Accept a whitespace separated string or a JSON array."""
        if isinstance(v, str):
            return tuple(v.split())
        if isinstance(v, list):
            return tuple(v)
        return v


class EncoderSettings(BaseModel):
    """Opus encoder configuration.

    The voice gateway only accepts 48 kHz stereo, so ``sample_rate`` and
    ``channels`` are fixed.
    """

    model_config = SettingsConfigDict(frozen=True)

    sample_rate: Literal[48000] = 48000
    channels: Literal[2] = 2
    frame_duration_ms: Literal[20] = 20
    bitrate_kbps: int = Field(default=128, ge=16, le=512)

    @property
    def samples_per_frame(self) -> int:
        return self.sample_rate * self.frame_duration_ms // 1000

    @property
    def frame_size_bytes(self) -> int:
        """PCM bytes per frame: samples x channels x 2 bytes (s16le)."""
        return self.samples_per_frame * self.channels * 2


class StreamSettings(BaseModel):
    """Stream supervisor timing and restart policy."""

    model_config = SettingsConfigDict(frozen=True)

    read_timeout_s: float = Field(default=5.0, gt=0)
    ready_timeout_s: float = Field(default=10.0, gt=0)
    send_timeout_s: float = Field(default=0.1, gt=0)
    health_interval_s: float = Field(default=5.0, gt=0)
    stale_after_s: float = Field(default=10.0, gt=0)
    max_restarts: int = Field(default=3, ge=0, le=20)
    restart_backoff_s: float = Field(default=2.0, ge=0)
    send_queue_size: int = Field(default=8, ge=1, le=256)
    progress_log_every: int = Field(default=100, ge=1)


class QueueSettings(BaseModel):
    """Queue policy configuration."""

    model_config = SettingsConfigDict(frozen=True)

    max_queue_size: int = Field(default=100, ge=1, le=10_000)


class VoiceSettings(BaseModel):
    """Voice connection configuration."""

    model_config = SettingsConfigDict(frozen=True)

    connect_timeout_s: float = Field(default=10.0, gt=0)
    connect_retries: int = Field(default=3, ge=1, le=10)
    retry_backoff_s: float = Field(default=1.0, ge=0)


class IdleSettings(BaseModel):
    """Idle session reaper configuration."""

    model_config = SettingsConfigDict(frozen=True)

    enabled: bool = True
    idle_timeout_s: float = Field(default=300.0, gt=0)
    check_interval_s: float = Field(default=30.0, gt=0)


class Settings(BaseSettings):
    """Application settings container.

    Automatically loads configuration from environment variables.

    Environment variable naming:
    - ENVIRONMENT, DEBUG, LOG_LEVEL (top-level)
    - DISCORD__TOKEN, DISCORD__COMMAND_PREFIX, DISCORD__GUILD_IDS (JSON array)
    - DECODER__FFMPEG_PATH, ENCODER__BITRATE_KBPS, STREAM__MAX_RESTARTS, ...
    - IDLE__IDLE_TIMEOUT_S, IDLE__CHECK_INTERVAL_S, IDLE__ENABLED
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_nested_delimiter="__",
        case_sensitive=False,
        extra="ignore",
    )

    environment: Literal["development", "production", "test"] = "development"
    debug: bool = False
    log_level: str = "INFO"

    discord: DiscordSettings = Field(default_factory=DiscordSettings)
    decoder: DecoderSettings = Field(default_factory=DecoderSettings)
    encoder: EncoderSettings = Field(default_factory=EncoderSettings)
    stream: StreamSettings = Field(default_factory=StreamSettings)
    queue: QueueSettings = Field(default_factory=QueueSettings)
    voice: VoiceSettings = Field(default_factory=VoiceSettings)
    idle: IdleSettings = Field(default_factory=IdleSettings)

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate log level."""
        valid_levels = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        v_upper = v.upper()
        if v_upper not in valid_levels:
            raise ValueError(
                ErrorMessages.INVALID_LOG_LEVEL.format(level=v, valid_levels=valid_levels)
            )
        return v_upper


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Get cached application settings.

    Settings are automatically loaded from:
    1. .env file (if present)
    2. Environment variables
    3. Default values
    """
    return Settings()


def clear_settings_cache() -> None:
    """Clear the settings cache (useful for testing)."""
    get_settings.cache_clear()
