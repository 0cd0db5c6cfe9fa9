import json
from functools import lru_cache
from typing import Literal

from pydantic import computed_field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    # Application
    app_name: str = "Podclip API"
    app_version: str = "0.1.0"
    environment: Literal["development", "staging", "production"] = "development"
    debug: bool = True

    # Feature flags
    video_enabled: bool = True
    captions_enabled: bool = True
    smart_features_enabled: bool = False

    # Scheduler limits
    max_concurrent: int = 3
    max_queue_size: int = 25
    max_retries: int = 2
    daily_spend_cap: float = 5.00

    # Clip bounds
    min_clip_seconds: int = 5
    max_clip_seconds: int = 240

    # Render
    fps: int = 12
    default_aspect_ratio: Literal["9:16", "1:1", "16:9"] = "9:16"
    artwork_timeout_s: float = 10.0

    # Caption timing
    caption_min_duration_ms: int = 1500
    caption_max_duration_ms: int = 7000
    caption_max_chunk_chars: int = 50
    caption_line_budget: int = 32
    caption_short_phrase_chars: int = 20
    caption_match_tolerance_ms: int = 5000
    caption_reanchor_threshold_ms: int = 500
    caption_lookahead_ms: int = 200
    caption_lookback_ms: int = 150

    # FFmpeg
    ffmpeg_path: str = "ffmpeg"
    ffprobe_path: str = "ffprobe"
    encoder_timeout_s: float = 120.0
    min_output_bytes: int = 10_000

    # Audio download
    download_timeout_s: float = 60.0
    max_download_bytes: int = 200 * 1024 * 1024
    large_download_warning_bytes: int = 50 * 1024 * 1024

    # Artifact storage
    storage_path: str = "/tmp/podclip-storage"
    public_base_url: str = "http://localhost:8000"
    artifact_url_signing: bool = False
    artifact_token_secret: str = "dev-artifact-token-secret"
    artifact_token_max_age_s: int = 7 * 24 * 3600

    # Retention
    retention_hours: int = 2160
    retention_grace_hours: int = 24
    sweep_interval_s: int = 3600

    # Persistence (empty = in-memory job store)
    database_url: str = ""
    database_echo: bool = False

    # Transcription (AssemblyAI)
    assemblyai_api_key: str = ""
    assemblyai_base_url: str = "https://api.assemblyai.com/v2"
    transcription_poll_interval_s: float = 3.0
    transcription_timeout_s: float = 300.0

    # Notifications
    notify_webhook_url: str = ""

    # Cost table (USD)
    cost_download_per_minute: float = 0.002
    cost_transcription_per_minute: float = 0.00025
    cost_smart_features_per_minute: float = 0.00015
    cost_per_frame: float = 0.0001
    cost_encoding_per_minute: float = 0.003
    cost_storage_per_byte: float = 0.00000001
    cost_storage_minimum: float = 0.0005
    cost_processing_per_ms: float = 0.000001
    cost_processing_minimum: float = 0.001
    projected_bytes_per_second: int = 100_000

    # CORS - stored as string, parsed via computed property
    cors_origins_raw: str = "http://localhost:3000,http://localhost:8081"

    @computed_field
    @property
    def cors_origins(self) -> list[str]:
        """Parse CORS origins from pipe/comma-separated string or JSON array."""
        v = self.cors_origins_raw
        if v.startswith("["):
            try:
                return json.loads(v)
            except json.JSONDecodeError:
                pass
        if "|" in v:
            return [origin.strip() for origin in v.split("|") if origin.strip()]
        return [origin.strip() for origin in v.split(",") if origin.strip()]


@lru_cache
def get_settings() -> Settings:
    return Settings()
