"""
Lumina Configuration
Pydantic Settings for all configurable options.
"""

from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables or .env file."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # --- Storage Paths ---
    storage_path: Path = Field(default=Path.home() / ".lumina")

    # --- Vision Model ---
    gemini_api_key: str = Field(default="", validation_alias="GEMINI_API_KEY")
    vision_model: str = "gemini-2.5-flash-image"
    vision_base_url: str = "https://generativelanguage.googleapis.com"
    vision_timeout: float = 120.0  # Image generation is slow

    # --- Quota Handling ---
    ai_max_retries: int = 2  # Retries after the first attempt
    ai_retry_base_delay: float = 2.0  # Seconds, doubled on every retry
    quota_cooldown_seconds: float = 60.0

    # --- Privacy Detection ---
    detection_debounce_seconds: float = 1.0
    detection_spacing_seconds: float = 4.0  # Pause between detection requests

    # --- Compositing ---
    preview_max_size: int = 1280  # Longest edge for preview renders
    watermark_font: str = "DejaVuSans-Bold.ttf"

    # --- Export ---
    export_prefix: str = "edited_"
    export_archive_name: str = "lumina_edited_photos.zip"
    export_format: str = "JPEG"
    export_quality: int = 90

    @property
    def presets_file(self) -> Path:
        return self.storage_path / "presets.json"

    def ensure_directories(self) -> None:
        """Create storage directories if they don't exist."""
        self.storage_path.mkdir(parents=True, exist_ok=True)


# Global settings instance
settings = Settings()
