"""
PDF Service Configuration

All settings can be overridden via environment variables and are validated
at startup.
"""

from functools import lru_cache

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings


class PdfSettings(BaseSettings):
    """PDF renderer configuration."""

    max_concurrent_pdfs: int = Field(
        default=5,
        ge=1,
        le=20,
        description="Maximum concurrent renders (1-20)"
    )
    playwright_timeout: int = Field(
        default=30000,
        ge=1000,
        description="Page operation timeout in milliseconds"
    )
    playwright_headless: bool = Field(
        default=True,
        description="Run Chromium headless"
    )
    font_dir: str = Field(
        default="./fonts",
        description="Directory holding the Korean TTF fonts"
    )

    @field_validator("font_dir")
    @classmethod
    def strip_font_dir(cls, v: str) -> str:
        return v.strip() or "./fonts"


@lru_cache()
def get_settings() -> PdfSettings:
    """Cached settings instance (call get_settings.cache_clear() in tests)."""
    return PdfSettings()
