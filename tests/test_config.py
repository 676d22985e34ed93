"""Tests for settings loading and validation."""

import pytest

from maxtt_billing.config import Settings, validate_settings
from maxtt_billing.services.context import SessionContext, load_watermark


class TestSettings:
    def test_defaults(self, settings):
        assert settings.price_per_ml == 4.5
        assert settings.gst_percent == 18.0
        assert settings.discount_max_pct == 30.0
        assert settings.billing_api_key == "test-key"

    def test_env_override(self, monkeypatch):
        monkeypatch.setenv("PRICE_PER_ML", "5.25")
        monkeypatch.setenv("HSN_CODE", "3403.99.00")
        settings = Settings(_env_file=None)
        assert settings.price_per_ml == 5.25
        assert settings.hsn_code == "3403.99.00"

    def test_cors_origins(self):
        settings = Settings(_env_file=None, ALLOWED_ORIGINS="https://a.example, https://b.example,")
        assert settings.cors_origins == ["https://a.example", "https://b.example"]


class TestValidateSettings:
    def test_valid(self, settings):
        validate_settings(settings)

    def test_collects_every_error(self):
        settings = Settings(_env_file=None, PRICE_PER_ML=0, GST_PERCENT=120, BILLING_API_BASE_URL="")
        with pytest.raises(ValueError) as exc_info:
            validate_settings(settings)
        message = str(exc_info.value)
        assert "PRICE_PER_ML" in message
        assert "GST_PERCENT" in message
        assert "BILLING_API_BASE_URL" in message


class TestSessionContext:
    def test_watermark_loaded_once(self, tmp_path):
        image = tmp_path / "watermark.png"
        image.write_bytes(b"\x89PNG")
        settings = Settings(_env_file=None, WATERMARK_PATH=str(image))
        context = SessionContext.create(settings=settings, token="t")
        assert context.watermark_image == b"\x89PNG"
        assert context.token == "t"
        assert context.profile.franchisee_id == ""

    def test_missing_watermark(self, tmp_path):
        settings = Settings(_env_file=None, WATERMARK_PATH=str(tmp_path / "absent.png"))
        assert SessionContext.create(settings=settings).watermark_image is None
        assert load_watermark("") is None
