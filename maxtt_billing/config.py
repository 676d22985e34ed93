"""Application configuration with environment variable validation."""

from functools import lru_cache
from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

_PROJECT_ROOT = Path(__file__).resolve().parent.parent
_ENV_FILE = _PROJECT_ROOT / ".env"


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=str(_ENV_FILE),
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Billing API (persistence collaborator)
    billing_api_base_url: str = Field(
        default="https://maxtt-billing-api.onrender.com",
        validation_alias="BILLING_API_BASE_URL",
    )
    billing_api_key: str = Field(default="", validation_alias="BILLING_API_KEY")
    billing_api_timeout: float = Field(default=15.0, validation_alias="BILLING_API_TIMEOUT")

    # Pricing & tax (fixed per franchise agreement)
    price_per_ml: float = Field(default=4.5, validation_alias="PRICE_PER_ML")
    gst_percent: float = Field(default=18.0, validation_alias="GST_PERCENT")
    discount_max_pct: float = Field(default=30.0, validation_alias="DISCOUNT_MAX_PCT")
    hsn_code: str = Field(default="3403.19.00", validation_alias="HSN_CODE")

    # Printable document
    watermark_text: str = Field(default="Treadstone Solutions", validation_alias="WATERMARK_TEXT")
    watermark_path: str = Field(default="", validation_alias="WATERMARK_PATH")

    log_level: str = Field(default="INFO", validation_alias="LOG_LEVEL")

    # CORS
    allowed_origins: str = Field(default="*", validation_alias="ALLOWED_ORIGINS")

    @property
    def cors_origins(self) -> list[str]:
        """Parse ALLOWED_ORIGINS from a comma-separated string."""
        return [o.strip() for o in self.allowed_origins.split(",") if o.strip()]


@lru_cache
def get_settings() -> Settings:
    return Settings()


def validate_settings(settings: Settings) -> None:
    """Reject settings that would make every invoice wrong."""
    errors = []

    if settings.price_per_ml <= 0:
        errors.append("PRICE_PER_ML must be positive")
    if not 0 <= settings.gst_percent <= 100:
        errors.append("GST_PERCENT must be between 0 and 100")
    if not 0 <= settings.discount_max_pct <= 100:
        errors.append("DISCOUNT_MAX_PCT must be between 0 and 100")
    if not settings.billing_api_base_url:
        errors.append("BILLING_API_BASE_URL is required")

    if errors:
        raise ValueError(f"Configuration errors: {'; '.join(errors)}")
