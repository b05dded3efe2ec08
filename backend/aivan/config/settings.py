"""
Configuration Settings.
"""

from pydantic_settings import BaseSettings
from typing import Optional


class Settings(BaseSettings):
    """Application settings."""

    # App info
    app_name: str = "Aivan"
    app_version: str = "1.0.0"
    debug: bool = True

    # Storage
    local_storage_path: str = "./data"
    local_session_path: str = "./data/device/local_storage.json"

    # LLM Provider settings
    llm_provider: str = "gemini"
    gemini_api_key: Optional[str] = None
    gemini_base_url: Optional[str] = None  # uses provider default if not set
    chat_model: str = "gemini-3-pro-preview"
    maps_model: str = "gemini-2.5-flash"  # lighter model used with the maps tool
    image_model: str = "gemini-2.5-flash-image"
    llm_timeout: float = 120.0
    send_timeout_seconds: float = 120.0

    # Chat lifecycle
    trash_retention_days: int = 30
    session_max_age_days: int = 30
    batch_chunk_size: int = 450  # the store caps a batch at 500 operations
    title_max_length: int = 30

    # Enrichment
    max_place_cards: int = 3
    enrichment_locales: list[str] = ["he", "en"]

    # CORS
    cors_origins: list[str] = [
        "http://localhost:3000",
        "http://localhost:5173",
        "http://127.0.0.1:3000",
    ]

    # Logging configuration
    log_level: str = "INFO"  # DEBUG, INFO, WARNING, ERROR, CRITICAL
    log_file_path: str = "./logs/aivan.log"
    log_file_enabled: bool = True
    log_console_enabled: bool = True
    log_json_format: bool = True  # JSON format for files, human-readable for console
    log_api_requests: bool = True

    class Config:
        env_file = ".env"
        case_sensitive = False


settings = Settings()
