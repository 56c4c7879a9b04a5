"""Shared pytest fixtures for Oil Portrait Studio tests."""

from __future__ import annotations

import io
import shutil
import tempfile
import time
import uuid
from collections.abc import Callable, Generator
from pathlib import Path

import pytest
from fastapi.testclient import TestClient
from jose import jwt
from PIL import Image

from oilportrait.api.auth import compute_webhook_hmac
from oilportrait.api.main import create_app
from oilportrait.core.artwork_store import ArtworkStore
from oilportrait.core.config import OilPortraitConfig
from oilportrait.core.records import ArtworkRecord
from oilportrait.core.storage import LocalObjectStorage
from oilportrait.core.styles import load_style_presets
from oilportrait.core.workflow import ArtworkWorkflow

from fakes import FakeCheckoutClient, FakeGenerationService

TEST_API_KEY = "test-api-key"
TEST_API_SECRET = "test-api-secret"
TEST_SHOP = "test-shop.myshopify.com"
OTHER_SHOP = "other-shop.myshopify.com"


# ---------------------------------------------------------------------------
# Configuration and filesystem.
# ---------------------------------------------------------------------------


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Create a temporary directory for test files.

    Yields:
        Path to temporary directory

    Cleanup:
        Directory is removed after test completes
    """
    temp_path = Path(tempfile.mkdtemp())
    try:
        yield temp_path
    finally:
        shutil.rmtree(temp_path, ignore_errors=True)


@pytest.fixture
def test_config(temp_dir: Path) -> OilPortraitConfig:
    """Create a test configuration with temporary directories.

    Args:
        temp_dir: Temporary directory from fixture

    Returns:
        OilPortraitConfig instance for testing
    """
    return OilPortraitConfig(
        shopify_api_key=TEST_API_KEY,
        shopify_api_secret=TEST_API_SECRET,
        storefront_access_token="test-storefront-token",
        database_path=temp_dir / "data" / "artworks.db",
        media_dir=temp_dir / "media",
        storage_backend="local",
        generation_backend="style-filter",
        _env_file=None,
    )


@pytest.fixture
def sample_jpeg() -> bytes:
    """A small JPEG portrait upload.

    Returns:
        Encoded JPEG bytes (120x90)
    """
    buffer = io.BytesIO()
    Image.new("RGB", (120, 90), (200, 150, 100)).save(buffer, format="JPEG")
    return buffer.getvalue()


@pytest.fixture
def sample_png() -> bytes:
    """A small PNG portrait upload with transparency."""
    buffer = io.BytesIO()
    Image.new("RGBA", (80, 100), (10, 200, 30, 128)).save(buffer, format="PNG")
    return buffer.getvalue()


@pytest.fixture(scope="session")
def oversized_png() -> bytes:
    """A few-kilobyte PNG whose pixel count exceeds Pillow's bomb limit."""
    buffer = io.BytesIO()
    Image.new("1", (15000, 15000)).save(buffer, format="PNG")
    return buffer.getvalue()


# ---------------------------------------------------------------------------
# Core collaborators.
# ---------------------------------------------------------------------------


@pytest.fixture
def store(test_config: OilPortraitConfig) -> ArtworkStore:
    return ArtworkStore(test_config.database_path)


@pytest.fixture
def storage(test_config: OilPortraitConfig) -> LocalObjectStorage:
    return LocalObjectStorage(test_config.media_dir, test_config.media_url_prefix)


@pytest.fixture
def fake_generation(test_config: OilPortraitConfig) -> FakeGenerationService:
    return FakeGenerationService(test_config)


@pytest.fixture
def fake_checkout() -> FakeCheckoutClient:
    return FakeCheckoutClient()


@pytest.fixture
def workflow(
    test_config: OilPortraitConfig,
    store: ArtworkStore,
    storage: LocalObjectStorage,
    fake_generation: FakeGenerationService,
    fake_checkout: FakeCheckoutClient,
) -> ArtworkWorkflow:
    """Workflow wired to a temporary store and local storage."""
    return ArtworkWorkflow(
        test_config,
        store,
        storage,
        fake_generation,
        fake_checkout,
        load_style_presets(test_config.styles_file),
    )


@pytest.fixture
def make_record() -> Callable[..., ArtworkRecord]:
    """Factory for unpurchased records with sensible defaults.

    Returns:
        Function accepting any :class:`ArtworkRecord` field as keyword
    """

    def _make(**overrides) -> ArtworkRecord:
        record_id = overrides.pop("id", uuid.uuid4().hex)
        fields = {
            "id": record_id,
            "user_id": "42",
            "shop_id": TEST_SHOP,
            "product_id": "8001000000001",
            "style": "renaissance",
            "original_key": f"originals/{record_id}.jpg",
            "original_url": f"/media/originals/{record_id}.jpg",
            "original_filename": "me.jpg",
            "original_mime_type": "image/jpeg",
            "original_width": 120,
            "original_height": 90,
            "original_size": 2048,
            "generated_key": f"paintings/{record_id}.png",
            "generated_width": 64,
            "generated_height": 48,
            "watermarked_url": f"/media/previews/{record_id}.jpg",
            "thumbnail_url": f"/media/thumbnails/{record_id}.jpg",
        }
        fields.update(overrides)
        return ArtworkRecord(**fields)

    return _make


# ---------------------------------------------------------------------------
# API helpers.
# ---------------------------------------------------------------------------


@pytest.fixture
def session_token() -> Callable[..., str]:
    """Factory for signed session tokens.

    Returns:
        Function ``(shop=TEST_SHOP, user="42", secret=TEST_API_SECRET, **claims)``
        returning an encoded JWT
    """

    def _token(
        shop: str = TEST_SHOP,
        user: str = "42",
        secret: str = TEST_API_SECRET,
        **claims,
    ) -> str:
        now = int(time.time())
        payload = {
            "iss": f"https://{shop}/admin",
            "dest": f"https://{shop}",
            "aud": TEST_API_KEY,
            "sub": user,
            "exp": now + 60,
            "nbf": now - 5,
            "iat": now,
            "jti": uuid.uuid4().hex,
            "sid": uuid.uuid4().hex,
        }
        payload.update(claims)
        return jwt.encode(payload, secret, algorithm="HS256")

    return _token


@pytest.fixture
def auth_headers(session_token) -> Callable[..., dict]:
    """Factory for ``Authorization`` headers of a shop user."""

    def _headers(shop: str = TEST_SHOP, user: str = "42") -> dict:
        return {"Authorization": f"Bearer {session_token(shop=shop, user=user)}"}

    return _headers


@pytest.fixture
def sign_webhook() -> Callable[[bytes], str]:
    """Compute the webhook signature header for a raw body."""

    def _sign(body: bytes) -> str:
        return compute_webhook_hmac(body, TEST_API_SECRET)

    return _sign


@pytest.fixture
def app(test_config, fake_generation, fake_checkout):
    """Application wired to the fake AI service and checkout client."""
    return create_app(
        test_config,
        generation_service=fake_generation,
        checkout_client=fake_checkout,
    )


@pytest.fixture
def test_client(app) -> Generator[TestClient, None, None]:
    """TestClient with the lifespan running."""
    with TestClient(app) as client:
        yield client
