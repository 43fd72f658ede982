from functools import lru_cache
from typing import Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", case_sensitive=False, extra="ignore")

    # Vitals backends, first configured wins: video api > per-frame api > bridge > simulation
    presage_video_api_url: Optional[str] = None
    presage_video_api_key: Optional[str] = None  # falls back to presage_api_key
    presage_api_url: Optional[str] = None
    presage_api_key: Optional[str] = None
    presage_bridge_path: Optional[str] = None  # "mock" selects the bundled mock bridge

    bridge_timeout_seconds: float = 20.0
    bridge_shutdown_grace_seconds: float = 2.0
    vitals_http_timeout_seconds: float = 30.0
    video_http_timeout_seconds: float = 120.0

    video_fps: int = 5  # matches the client's capture cadence
    ffmpeg_binary: str = "ffmpeg"
    ffmpeg_timeout_seconds: float = 120.0

    # Substituted for fields missing from a backend reading
    default_bpm: float = 72
    default_hrv: float = 45
    default_confidence: float = 0.8

    simulation_seed: Optional[int] = None

    ollama_base_url: str = "http://localhost:11434"
    ollama_model: str = "llama3.2"
    ollama_timeout_seconds: float = 120.0

    cors_origins: list[str] = ["http://localhost:5173", "http://127.0.0.1:5173", "http://localhost:3000"]
    log_level: str = "INFO"


@lru_cache()
def get_settings() -> Settings:
    return Settings()
