"""Settings and configuration management using Pydantic."""

import os
import re
from functools import lru_cache
from pathlib import Path
from typing import Any, Dict, Literal, Tuple, Type

import yaml
from pydantic import Field, field_validator
from pydantic_settings import (
    BaseSettings,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
)

CONFIG_FILE = Path("config.yaml")

SUPPORTED_CODECS = ("H264", "H265", "VP8", "VP9", "AV1")


class YamlConfigSettingsSource(PydanticBaseSettingsSource):
    """
    Settings source that loads values from ``config.yaml`` in the
    current working directory.
    """

    def _load(self) -> Dict[str, Any]:
        if not CONFIG_FILE.exists():
            return {}

        encoding = self.config.get("env_file_encoding")
        try:
            content = yaml.safe_load(CONFIG_FILE.read_text(encoding))
        except (OSError, yaml.YAMLError) as e:
            print(f"Warning: Failed to load {CONFIG_FILE}: {e}")
            return {}

        return content if isinstance(content, dict) else {}

    def get_field_value(self, field: Any, field_name: str) -> Tuple[Any, str, bool]:
        return self._load().get(field_name), field_name, False

    def __call__(self) -> Dict[str, Any]:
        return self._load()


class Settings(BaseSettings):
    """Queuecast configuration settings."""

    model_config = SettingsConfigDict(
        env_prefix="QUEUECAST_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: Type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> Tuple[PydanticBaseSettingsSource, ...]:
        # First source wins: explicit values, then env, then config.yaml
        return (
            init_settings,
            env_settings,
            dotenv_settings,
            YamlConfigSettingsSource(settings_cls),
            file_secret_settings,
        )

    # Media
    videos_dir: Path = Field(
        default=Path("~/queuecast/videos"),
        description="Directory holding local videos",
    )
    download_dir: Path = Field(
        default=Path("~/.cache/queuecast/downloads"),
        description="Directory for pre-fetched remote items",
    )

    # Output
    output_url: str = Field(
        default="",
        description="Destination of the output session (e.g. rtmp://host/live/key)",
    )
    transmitter: Literal["ffmpeg", "null"] = Field(
        default="ffmpeg",
        description="Transmission backend",
    )
    ffmpeg_path: str = Field(
        default="ffmpeg",
        description="ffmpeg executable",
    )

    # Stream options
    width: int = Field(default=1280, ge=16, description="Output width")
    height: int = Field(default=720, ge=16, description="Output height")
    fps: int = Field(default=30, ge=1, le=120, description="Output frame rate")
    bitrate_kbps: int = Field(default=2000, ge=100, description="Target video bitrate")
    max_bitrate_kbps: int = Field(default=2500, ge=100, description="Maximum video bitrate")
    video_codec: str = Field(default="H264", description="Output video codec")
    h26x_preset: str = Field(default="ultrafast", description="x264/x265 encoder preset")
    hardware_accelerated_decoding: bool = Field(
        default=False,
        description="Let ffmpeg pick a hardware decoder",
    )

    # Queue behaviour
    remote_pattern: str = Field(
        default=r"^https?://",
        description="Regex matching remote references",
    )
    prefetch_remote: bool = Field(
        default=True,
        description="Download remote items to download_dir before playback",
    )
    cooldown_seconds: float = Field(
        default=1.0,
        ge=0,
        description="Delay between queue items",
    )
    loop: bool = Field(default=False, description="Start with loop mode enabled")

    # Downloads
    download_max_attempts: int = Field(default=3, ge=1, description="Download attempts")
    download_base_delay: float = Field(
        default=1.5,
        ge=0,
        description="Base delay for download retry backoff",
    )

    # Logging
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO",
        description="Logging level",
    )
    log_file: Path = Field(
        default=Path("~/.local/state/queuecast/queuecast.log"),
        description="Log file path",
    )

    # Development
    debug: bool = Field(default=False, description="Enable debug mode")

    @field_validator("videos_dir", "download_dir", "log_file", mode="before")
    @classmethod
    def expand_path(cls, v: str | Path) -> Path:
        """Expand environment variables and user paths."""
        return Path(os.path.expandvars(os.path.expanduser(str(v))))

    @field_validator("remote_pattern")
    @classmethod
    def validate_pattern(cls, v: str) -> str:
        """Make sure the remote pattern compiles."""
        try:
            re.compile(v)
        except re.error as e:
            raise ValueError(f"Invalid remote_pattern: {e}") from e
        return v

    @field_validator("video_codec")
    @classmethod
    def normalize_codec(cls, v: str) -> str:
        codec = v.upper()
        if codec not in SUPPORTED_CODECS:
            raise ValueError(f"Unsupported codec {v!r}, expected one of {SUPPORTED_CODECS}")
        return codec

    def ensure_directories(self) -> None:
        """Ensure required directories exist."""
        self.videos_dir.mkdir(parents=True, exist_ok=True)
        self.download_dir.mkdir(parents=True, exist_ok=True)
        self.log_file.parent.mkdir(parents=True, exist_ok=True)


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
