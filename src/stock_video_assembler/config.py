"""
Configuration management for the stock video assembler.
"""

from pathlib import Path
from typing import List, Optional

from dotenv import load_dotenv
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

# Load environment variables from .env file
load_dotenv()


class Settings(BaseSettings):
    """Application settings with environment variable support."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Working directories
    temp_dir: Path = Field(default_factory=lambda: Path("temp"))
    output_dir: Path = Field(default_factory=lambda: Path("output"))
    logs_dir: Path = Field(default_factory=lambda: Path("logs"))

    # Stock video provider (Pexels)
    pexels_api_key: Optional[str] = Field(default=None, description="Pexels API key (PEXELS_API_KEY)")
    pexels_base_url: str = Field(default="https://api.pexels.com/videos")
    provider_timeout: int = Field(default=30, ge=1, description="Search request timeout in seconds")
    download_timeout: int = Field(default=300, ge=1, description="Clip download timeout in seconds")
    provider_user_agent: str = Field(default="Stock-Video-Assembler/1.0")

    # Scene search
    fallback_query: str = Field(default="nature landscape", description="Generic query used when a scene has no match")
    search_per_page: int = Field(default=10, ge=1, le=80)
    fallback_per_page: int = Field(default=5, ge=1, le=80)
    max_candidates: int = Field(default=3, ge=1, description="Candidates retained per scene")

    # Concurrency
    max_concurrent_jobs: int = Field(default=4, ge=1, le=32)
    search_concurrency: int = Field(default=4, ge=1, le=16)
    fetch_concurrency: int = Field(default=3, ge=1, le=16)
    normalize_concurrency: int = Field(default=2, ge=1, le=16)

    # Transcoding
    ffmpeg_binary: str = Field(default="ffmpeg")
    ffprobe_binary: str = Field(default="ffprobe")
    ffmpeg_timeout: int = Field(default=600, ge=1, description="Per-invocation ffmpeg timeout in seconds")
    probe_timeout: int = Field(default=30, ge=1)
    video_codec: str = Field(default="libx264", description="Video codec (libx264 for CPU, h264_nvenc for NVIDIA GPU)")
    audio_codec: str = Field(default="aac")
    encoder_preset: str = Field(default="fast")
    crf: int = Field(default=23, ge=0, le=51)
    audio_sample_rate: int = Field(default=48000)
    transition_duration: float = Field(default=0.5, gt=0, description="Transition length in seconds")

    # Assembly defaults applied to submissions without explicit settings
    default_duration: float = Field(default=5.0, gt=0)
    default_resolution: str = Field(default="1920x1080")
    default_fps: int = Field(default=30, ge=1, le=120)
    default_transition: str = Field(default="fade")
    default_background_color: str = Field(default="black")

    # Disk and job cleanup
    cleanup_interval_minutes: int = Field(default=30, ge=1)
    temp_retention_minutes: int = Field(default=30, ge=0)
    output_retention_hours: int = Field(default=24, ge=0)
    job_retention_hours: int = Field(default=24, ge=0)
    disk_limit_mb: int = Field(default=10240, ge=0, description="Emergency cleanup threshold, 0 disables")

    # HTTP server
    host: str = Field(default="127.0.0.1")
    port: int = Field(default=3000)
    cors_allow_origins: List[str] = Field(default=["*"])
    output_route_prefix: str = Field(default="/output")

    # Logging settings
    log_level: str = Field(default="INFO", description="Logging level")
    log_format: str = Field(default="json", description="Log format: json or text")


# Global settings instance
settings = Settings()


def get_settings() -> Settings:
    """Get the global settings instance."""
    return settings


def create_directories(config: Optional[Settings] = None) -> None:
    """Create the working directories if they don't exist."""
    config = config or settings
    for directory in (config.temp_dir, config.output_dir, config.logs_dir):
        Path(directory).mkdir(parents=True, exist_ok=True)
