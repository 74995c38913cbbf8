from pathlib import Path
from typing import List

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class AppSettings(BaseSettings):
    """Application configuration loaded from environment variables or .env.

    Env prefix: APP_
    Example: APP_LAYOUT_MIN_CELL_SIZE=20
    """

    # App
    app_name: str = Field(default="Photo Frame Collage API")
    app_version: str = Field(default="1.0.0")

    # Server
    host: str = Field(default="0.0.0.0")
    port: int = Field(default=8000)

    # Page (A4 at screen resolution by default: 794x1123 px)
    page_width_mm: float = Field(default=210.0)
    page_height_mm: float = Field(default=297.0)
    display_dpi: int = Field(default=96)
    gap_px: int = Field(default=5)
    default_export_dpi: int = Field(default=300)

    # Grid layout defaults
    layout_fill_ratio_target: float = Field(default=0.90)
    layout_min_cell_size: int = Field(default=30)
    layout_min_main_size: int = Field(default=60)
    layout_main_fraction_min: float = Field(default=0.30)
    layout_main_fraction_max: float = Field(default=0.60)

    # Limits
    max_photos: int = Field(default=200)
    max_image_size: int = Field(default=10 * 1024 * 1024)  # 10 MB
    max_total_size: int = Field(default=500 * 1024 * 1024)  # 500 MB
    max_canvas_pixels: int = Field(default=250_000_000)

    # Rate limiting
    rate_limit_requests: int = Field(default=60)
    rate_limit_window_seconds: int = Field(default=60)

    # Logging
    log_level: str = Field(default="INFO")
    log_to_file: bool = Field(default=False)
    log_file_path: Path = Field(default=Path("collage.log"))
    log_max_bytes: int = Field(default=5 * 1024 * 1024)
    log_backup_count: int = Field(default=3)

    # CORS
    cors_allow_origins: List[str] = Field(default_factory=lambda: ["*"])
    cors_allow_credentials: bool = Field(default=True)
    cors_allow_methods: List[str] = Field(default_factory=lambda: ["*"])
    cors_allow_headers: List[str] = Field(default_factory=lambda: ["*"])

    model_config = SettingsConfigDict(
        env_prefix="APP_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )
