"""Generation services and their registry.

A generation service turns a portrait and a style into a painting.  The
workflow only sees :class:`GenerationServiceBase`, so the backend can be
swapped per deployment (or per test) without touching the workflow logic.

Available services
------------------
style-filter
    Deterministic local rendition built from Pillow filters.  Needs no
    network access; used for development, demos and tests.
http
    Calls a remote AI image endpoint with ``httpx``.  The endpoint receives
    the compiled prompt, the style id, the customer details and the source
    image (by URL when it is publicly reachable, inline otherwise), and
    answers ``{"success": true, "image_url": "..."}``.

Usage Example
-------------
    >>> from oilportrait.core.generation import generation_registry
    >>> service = generation_registry.instantiate("style-filter", config)
    >>> painting = await service.generate(request)

Notes
-----
- Services signal failure by raising :class:`GenerationServiceError`.
- There is no retry; a failed call fails the request.
"""

from __future__ import annotations

import asyncio
import base64
import io
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass

import httpx
from PIL import Image, ImageEnhance, ImageFilter, ImageOps, UnidentifiedImageError

from .config import OilPortraitConfig
from .imaging import SourceImage, encode_image
from .styles import StylePreset

logger = logging.getLogger(__name__)


class GenerationServiceError(Exception):
    """Raised by a generation service when no painting could be produced."""


@dataclass
class GenerationRequest:
    """Everything a service needs to paint one portrait."""

    style: StylePreset
    prompt: str
    source: SourceImage
    source_url: str
    details: str | None = None


class GenerationServiceBase(ABC):
    """Abstract base class for generation services.

    Attributes
    ----------
    name : str
        Registry name of the service (e.g. ``"http"``)
    description : str
        Brief description of the backend
    config : OilPortraitConfig
        Configuration object
    """

    name: str = "Base Generation Service"
    description: str = "Base class for generation services"

    def __init__(self, config: OilPortraitConfig) -> None:
        self.config = config
        logger.info(f"Initialized {self.name} generation service")

    @abstractmethod
    async def generate(self, request: GenerationRequest) -> Image.Image:
        """Paint the portrait.

        Returns
        -------
        Image.Image
            The full-resolution painting.  ``image.format`` names the format
            the painting should be stored in; PNG is used when unset.

        Raises
        ------
        GenerationServiceError
            If the service fails or returns no usable image
        """

    async def aclose(self) -> None:
        """Release network resources held by the service."""


class GenerationServiceRegistry:
    """Registry for discovering and instantiating generation services."""

    def __init__(self) -> None:
        self._services: dict[str, type[GenerationServiceBase]] = {}

    def register(self, service_class: type[GenerationServiceBase]) -> None:
        """Register a generation service class under its ``name``."""
        service_name = service_class.name
        if service_name in self._services:
            logger.warning(f"Generation service '{service_name}' is already registered, overwriting")
        self._services[service_name] = service_class
        logger.debug(f"Registered generation service: {service_name}")

    def instantiate(self, name: str, config: OilPortraitConfig) -> GenerationServiceBase:
        """Create a service instance by registry name.

        Raises
        ------
        ValueError
            If no service is registered under ``name``
        """
        if name not in self._services:
            available = ", ".join(self.list_available())
            raise ValueError(f"Unknown generation service '{name}'. Available: {available}")
        return self._services[name](config)

    def list_available(self) -> list[str]:
        return sorted(self._services)


generation_registry = GenerationServiceRegistry()


# ---------------------------------------------------------------------------
# Local Pillow rendition.
# ---------------------------------------------------------------------------


def _renaissance(image: Image.Image) -> Image.Image:
    painted = image.filter(ImageFilter.ModeFilter(5))
    warm = ImageOps.colorize(ImageOps.grayscale(painted), black="#2b1a0e", white="#f3dfb0")
    return Image.blend(painted, warm, 0.45)


def _impressionist(image: Image.Image) -> Image.Image:
    painted = image.filter(ImageFilter.ModeFilter(7)).filter(ImageFilter.SMOOTH_MORE)
    return ImageEnhance.Color(painted).enhance(1.4)


def _royal(image: Image.Image) -> Image.Image:
    painted = image.filter(ImageFilter.ModeFilter(5))
    painted = ImageEnhance.Contrast(painted).enhance(1.25)
    painted = ImageEnhance.Color(painted).enhance(1.15)
    border = max(4, min(painted.size) // 40)
    return ImageOps.expand(painted, border=border, fill=(184, 134, 11))


def _anime(image: Image.Image) -> Image.Image:
    flat = ImageOps.posterize(image, 3).filter(ImageFilter.EDGE_ENHANCE_MORE)
    return ImageEnhance.Color(flat).enhance(1.5)


_STYLE_FILTERS = {
    "renaissance": _renaissance,
    "impressionist": _impressionist,
    "royal": _royal,
    "anime": _anime,
}


class StyleFilterGenerationService(GenerationServiceBase):
    """Deterministic painting approximation with Pillow filters.

    The same portrait and style always give the same painting, which keeps
    development runs and tests reproducible.  The painting keeps the format
    of the uploaded portrait.
    """

    name = "style-filter"
    description = "Local Pillow filters approximating each painting style"

    def _paint(self, request: GenerationRequest) -> Image.Image:
        source = request.source.image.convert("RGB")
        paint = _STYLE_FILTERS.get(request.style.id)
        if paint is None:
            painted = source.filter(ImageFilter.ModeFilter(5))
        else:
            painted = paint(source)
        painted.format = request.source.format
        return painted

    async def generate(self, request: GenerationRequest) -> Image.Image:
        try:
            return await asyncio.to_thread(self._paint, request)
        except (OSError, ValueError) as e:
            raise GenerationServiceError(f"Local rendition failed: {e}") from e


# ---------------------------------------------------------------------------
# Remote AI endpoint.
# ---------------------------------------------------------------------------


class HttpGenerationService(GenerationServiceBase):
    """Client for a remote AI painting endpoint."""

    name = "http"
    description = "Remote AI image generation endpoint over HTTP"

    def __init__(self, config: OilPortraitConfig, client: httpx.AsyncClient | None = None) -> None:
        super().__init__(config)
        if not config.generation_endpoint:
            raise ValueError("The http generation service requires OILPORTRAIT_GENERATION_ENDPOINT")

        headers = {}
        if config.generation_api_key:
            headers["Authorization"] = f"Bearer {config.generation_api_key}"

        self.endpoint = config.generation_endpoint
        self.client = client or httpx.AsyncClient(
            timeout=config.generation_timeout_seconds,
            headers=headers,
        )

    def _payload(self, request: GenerationRequest) -> dict:
        payload = {
            "style": request.style.id,
            "prompt": request.prompt,
            "details": request.details,
        }
        if request.source_url.startswith(("http://", "https://")):
            payload["source_image_url"] = request.source_url
        else:
            # Local storage URLs are relative to this app; send the pixels.
            data = encode_image(request.source.image, request.source.format)
            payload["source_image_base64"] = base64.b64encode(data).decode("ascii")
            payload["source_mime_type"] = request.source.mime_type
        return payload

    async def generate(self, request: GenerationRequest) -> Image.Image:
        logger.info("Requesting %s painting from %s", request.style.id, self.endpoint)
        try:
            response = await self.client.post(self.endpoint, json=self._payload(request))
            response.raise_for_status()
            body = response.json()
        except (httpx.HTTPError, ValueError) as e:
            raise GenerationServiceError(f"Generation request failed: {e}") from e

        if not isinstance(body, dict) or not body.get("success", False):
            raise GenerationServiceError(f"Generation service reported failure: {body!r}")

        image_url = body.get("image_url") or body.get("imageUrl")
        if not image_url:
            raise GenerationServiceError("Generation response has no image URL")

        try:
            image_response = await self.client.get(image_url)
            image_response.raise_for_status()
            painting = Image.open(io.BytesIO(image_response.content))
            painting.load()
        except (httpx.HTTPError, UnidentifiedImageError, Image.DecompressionBombError, OSError) as e:
            raise GenerationServiceError(f"Could not fetch generated image: {e}") from e

        return painting

    async def aclose(self) -> None:
        await self.client.aclose()


generation_registry.register(StyleFilterGenerationService)
generation_registry.register(HttpGenerationService)
