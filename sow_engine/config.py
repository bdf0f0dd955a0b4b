"""
Configuration settings for the SOW template engine.
Loads environment variables and provides engine-wide defaults.
"""
from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import List


class Settings(BaseSettings):
    """Engine settings loaded from environment variables."""

    # Logging
    LOG_LEVEL: str = "INFO"

    # Parsing Configuration
    # When True only literal [..] / <..> placeholders surface as fields;
    # no section-level fields are synthesized.
    STRICT_TEMPLATE_FIELDS: bool = False

    # Merge Configuration
    KEEP_UNFILLED_TOKENS: bool = True
    BLANK_FILL_MARKER: str = " __________ "
    EMPTY_FIELD_MARKER: str = "__________"

    # Value Formatting
    CURRENCY_SYMBOL: str = "$"
    DATE_OUTPUT_FORMAT: str = "%d %b %Y"  # 05 Mar 2025

    # Image slot defaults (pixels)
    LOGO_WIDTH_PX: int = 180
    LOGO_HEIGHT_PX: int = 56
    SIGNATURE_WIDTH_PX: int = 240
    SIGNATURE_HEIGHT_PX: int = 80

    # PDF layout (points)
    PDF_FONT_SIZE: int = 10
    PDF_LEADING: int = 12
    PDF_MARGIN_LEFT: int = 36
    PDF_MARGIN_TOP: int = 36

    # Template intake
    MAX_TEMPLATE_SIZE: int = 20 * 1024 * 1024  # 20 MB
    SUPPORTED_TEMPLATE_TYPES: List[str] = [".docx", ".pdf", ".txt"]

    DEFAULT_DOCUMENT_TITLE: str = "Statement of Work"

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore"
    )

    def image_size(self, slot: str) -> tuple:
        """Return the default (width, height) in pixels for an image slot."""
        if slot == "signature":
            return (self.SIGNATURE_WIDTH_PX, self.SIGNATURE_HEIGHT_PX)
        return (self.LOGO_WIDTH_PX, self.LOGO_HEIGHT_PX)


# Global settings instance
settings = Settings()
