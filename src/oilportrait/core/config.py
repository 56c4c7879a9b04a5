"""Configuration management for Oil Portrait Studio.

This module provides centralized configuration management using Pydantic Settings.
All configuration is loaded from environment variables with the OILPORTRAIT_ prefix,
allowing deployment-specific values (shop credentials, storage buckets, the AI
endpoint) without code changes.

Environment Variable Loading
-----------------------------
Configuration values are loaded in the following priority order:
1. Environment variables (OILPORTRAIT_* prefix)
2. .env file in the project root
3. Default values defined in OilPortraitConfig

Example .env file:
    OILPORTRAIT_SHOPIFY_API_KEY=0123456789abcdef
    OILPORTRAIT_SHOPIFY_API_SECRET=shpss_...
    OILPORTRAIT_STOREFRONT_ACCESS_TOKEN=...
    OILPORTRAIT_STORAGE_BACKEND=s3
    OILPORTRAIT_S3_BUCKET=oil-portraits
    OILPORTRAIT_GENERATION_BACKEND=http
    OILPORTRAIT_GENERATION_ENDPOINT=https://ai.example.com/v1/paint

Global Configuration Instance
------------------------------
A global `config` instance is created automatically at module import time and
is used by the ``oilportrait`` console entry point.  Tests and embedding
applications build their own instance and pass it to
:func:`oilportrait.api.main.create_app`.

Usage Example
-------------
    from oilportrait.core.config import config

    print(config.database_path)
    print(config.generation_backend)

Directory Management
--------------------
Unlike a plain settings object, the directories this application writes to are
created by :meth:`OilPortraitConfig.ensure_directories`, which the application
factory calls once at startup:
- media_dir: local object storage root (previews, thumbnails, originals, paintings)
- database_path.parent: SQLite database location
"""

from pathlib import Path
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

# Packaged style catalogue, used unless OILPORTRAIT_STYLES_FILE points elsewhere.
DEFAULT_STYLES_FILE = Path(__file__).resolve().parent.parent / "data" / "styles.json"


class OilPortraitConfig(BaseSettings):
    """Main configuration for Oil Portrait Studio.

    Attributes
    ----------
    Shopify Settings:
        shopify_api_key : str
            App client id; the expected ``aud`` claim of session tokens
        shopify_api_secret : str
            App client secret; signs session tokens and webhook bodies
        storefront_access_token : str
            Storefront API token used to create checkout carts
        storefront_api_version : str
            Storefront API version segment (e.g. ``2024-10``)

    Persistence:
        database_path : Path
            SQLite database file holding artwork records
        styles_file : Path
            JSON catalogue of painting style presets

    Object Storage:
        storage_backend : Literal["local", "s3"]
            Where uploaded and generated assets are written
        media_dir : Path
            Root directory of the local storage backend
        media_url_prefix : str
            URL prefix the local public assets are served under
        s3_bucket, s3_region, s3_endpoint_url, s3_public_base_url
            S3 backend settings (credentials come from the boto3 chain)

    Generation:
        generation_backend : str
            Registered generation service name (``style-filter`` or ``http``)
        generation_endpoint : str | None
            Remote AI endpoint for the ``http`` backend
        generation_api_key : str | None
            Bearer token for the remote AI endpoint
        generation_timeout_seconds : float
            Timeout applied to each remote AI call (no retries)

    Imaging:
        watermark_text, watermark_opacity, preview_max_size, thumbnail_size,
        max_upload_bytes

    Listing:
        gallery_page_size : int
            Fixed page size of the customer gallery
        admin_page_size : int
            Fixed page size of the shop-wide admin listing

    Server:
        server_host, server_port, log_level

    Examples
    --------
    Create a custom configuration:

        >>> custom_config = OilPortraitConfig(
        ...     database_path="/tmp/artworks.db",
        ...     generation_backend="style-filter",
        ... )
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_prefix="OILPORTRAIT_",
        case_sensitive=False,
    )

    # Shopify app credentials
    shopify_api_key: str = Field(
        default="",
        description="Shopify app client id (session token audience)",
    )
    shopify_api_secret: str = Field(
        default="",
        description="Shopify app client secret (session tokens and webhook HMAC)",
    )
    storefront_access_token: str = Field(
        default="",
        description="Storefront API access token used for checkout",
    )
    storefront_api_version: str = Field(
        default="2024-10",
        description="Storefront API version",
    )

    # Persistence
    database_path: Path = Field(
        default=Path("data/oilportrait.db"),
        description="SQLite database file for artwork records",
    )
    styles_file: Path = Field(
        default=DEFAULT_STYLES_FILE,
        description="JSON file with the painting style presets",
    )

    # Object storage
    storage_backend: Literal["local", "s3"] = Field(
        default="local",
        description="Object storage backend for uploaded and generated images",
    )
    media_dir: Path = Field(
        default=Path("media"),
        description="Root directory of the local storage backend",
    )
    media_url_prefix: str = Field(
        default="/media",
        description="URL prefix for public assets of the local storage backend",
    )
    s3_bucket: str = Field(default="", description="S3 bucket name")
    s3_region: str | None = Field(default=None, description="S3 region")
    s3_endpoint_url: str | None = Field(
        default=None,
        description="Custom S3 endpoint (S3-compatible providers)",
    )
    s3_public_base_url: str | None = Field(
        default=None,
        description="Public base URL for bucket objects (CDN or bucket website)",
    )

    # Generation
    generation_backend: str = Field(
        default="style-filter",
        description="Generation service name (style-filter or http)",
    )
    generation_endpoint: str | None = Field(
        default=None,
        description="Remote AI generation endpoint (http backend)",
    )
    generation_api_key: str | None = Field(
        default=None,
        description="Bearer token for the remote AI generation endpoint",
    )
    generation_timeout_seconds: float = Field(
        default=120.0,
        description="Timeout for a single remote generation call",
        gt=0,
    )

    # Imaging
    watermark_text: str = Field(default="PREVIEW", description="Watermark overlay text")
    watermark_opacity: int = Field(
        default=96,
        description="Watermark text alpha (0-255)",
        ge=0,
        le=255,
    )
    preview_max_size: int = Field(default=1024, ge=64, le=4096)
    thumbnail_size: int = Field(default=256, ge=32, le=1024)
    max_upload_bytes: int = Field(
        default=10 * 1024 * 1024,
        description="Largest accepted portrait upload in bytes",
        ge=1,
    )

    # Listing
    gallery_page_size: int = Field(default=10, ge=1, le=100)
    admin_page_size: int = Field(default=20, ge=1, le=200)

    # Server settings
    server_host: str = Field(
        default="0.0.0.0",
        description="Server bind address",
    )
    server_port: int = Field(
        default=8000,
        description="Server port",
        ge=1024,
        le=65535,
    )
    log_level: Literal["debug", "info", "warning", "error"] = Field(
        default="info",
        description="Log level for the application and uvicorn",
    )

    def ensure_directories(self) -> None:
        """Create the directories the application writes to.

        Safe to call multiple times (``exist_ok=True``).
        """
        self.database_path.parent.mkdir(parents=True, exist_ok=True)
        if self.storage_backend == "local":
            self.media_dir.mkdir(parents=True, exist_ok=True)


# Global configuration instance, loaded from OILPORTRAIT_* variables and .env.
config = OilPortraitConfig()
