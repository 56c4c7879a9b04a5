"""Tests for oilportrait.core.config — configuration management.

Tests cover:
- Default values for listing, imaging and server settings.
- Environment variable overrides via the OILPORTRAIT_ prefix.
- Directory creation through ``ensure_directories``.
- Pydantic validation constraints (port range, literals, page sizes).
"""

from __future__ import annotations

from pathlib import Path

import pytest

from oilportrait.core.config import DEFAULT_STYLES_FILE, OilPortraitConfig


class TestConfigDefaults:
    """Verify that OilPortraitConfig provides sensible defaults."""

    def test_default_page_sizes(self, test_config: OilPortraitConfig):
        """Gallery pages hold 10 records and admin pages 20."""
        assert test_config.gallery_page_size == 10
        assert test_config.admin_page_size == 20

    def test_default_generation_backend(self, monkeypatch):
        """The local style-filter service is used unless configured."""
        monkeypatch.delenv("OILPORTRAIT_GENERATION_BACKEND", raising=False)
        cfg = OilPortraitConfig(_env_file=None)
        assert cfg.generation_backend == "style-filter"
        assert cfg.generation_endpoint is None

    def test_default_storage_is_local(self, monkeypatch):
        monkeypatch.delenv("OILPORTRAIT_STORAGE_BACKEND", raising=False)
        cfg = OilPortraitConfig(_env_file=None)
        assert cfg.storage_backend == "local"
        assert cfg.media_url_prefix == "/media"

    def test_default_server_port(self, monkeypatch):
        """Default server port should be 8000."""
        monkeypatch.delenv("OILPORTRAIT_SERVER_PORT", raising=False)
        cfg = OilPortraitConfig(_env_file=None)
        assert cfg.server_port == 8000

    def test_default_styles_file_is_packaged(self, test_config: OilPortraitConfig):
        """The bundled style catalogue should ship with the package."""
        assert test_config.styles_file == DEFAULT_STYLES_FILE
        assert DEFAULT_STYLES_FILE.exists()

    def test_default_watermark(self, test_config: OilPortraitConfig):
        assert test_config.watermark_text == "PREVIEW"
        assert 0 < test_config.watermark_opacity <= 255


class TestConfigEnvironment:
    """Verify OILPORTRAIT_* environment overrides."""

    def test_env_overrides_secret(self, monkeypatch):
        monkeypatch.setenv("OILPORTRAIT_SHOPIFY_API_SECRET", "from-env")
        cfg = OilPortraitConfig(_env_file=None)
        assert cfg.shopify_api_secret == "from-env"

    def test_env_overrides_page_size(self, monkeypatch):
        monkeypatch.setenv("OILPORTRAIT_GALLERY_PAGE_SIZE", "12")
        cfg = OilPortraitConfig(_env_file=None)
        assert cfg.gallery_page_size == 12

    def test_env_is_case_insensitive(self, monkeypatch):
        monkeypatch.setenv("oilportrait_log_level", "debug")
        cfg = OilPortraitConfig(_env_file=None)
        assert cfg.log_level == "debug"


class TestConfigDirectoryCreation:
    """Verify that ensure_directories creates what the app writes to."""

    def test_creates_database_parent(self, test_config: OilPortraitConfig):
        test_config.ensure_directories()
        assert test_config.database_path.parent.is_dir()

    def test_creates_media_dir_for_local_storage(self, test_config: OilPortraitConfig):
        test_config.ensure_directories()
        assert test_config.media_dir.is_dir()

    def test_skips_media_dir_for_s3(self, temp_dir: Path):
        cfg = OilPortraitConfig(
            storage_backend="s3",
            s3_bucket="portraits",
            database_path=temp_dir / "db" / "artworks.db",
            media_dir=temp_dir / "media",
            _env_file=None,
        )
        cfg.ensure_directories()
        assert cfg.database_path.parent.is_dir()
        assert not cfg.media_dir.exists()

    def test_is_idempotent(self, test_config: OilPortraitConfig):
        test_config.ensure_directories()
        test_config.ensure_directories()
        assert test_config.media_dir.is_dir()


class TestConfigValidation:
    """Verify Pydantic validation constraints on config fields."""

    def test_invalid_port_too_low(self):
        """Server port below 1024 should raise a validation error."""
        with pytest.raises(Exception):
            OilPortraitConfig(server_port=80, _env_file=None)

    def test_invalid_port_too_high(self):
        with pytest.raises(Exception):
            OilPortraitConfig(server_port=70000, _env_file=None)

    def test_invalid_storage_backend(self):
        with pytest.raises(Exception):
            OilPortraitConfig(storage_backend="ftp", _env_file=None)

    def test_invalid_log_level(self):
        with pytest.raises(Exception):
            OilPortraitConfig(log_level="verbose", _env_file=None)

    def test_page_size_must_be_positive(self):
        with pytest.raises(Exception):
            OilPortraitConfig(gallery_page_size=0, _env_file=None)

    def test_watermark_opacity_bounds(self):
        with pytest.raises(Exception):
            OilPortraitConfig(watermark_opacity=300, _env_file=None)
