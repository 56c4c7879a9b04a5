"""In-memory test doubles for the external collaborators."""

from __future__ import annotations

from PIL import Image

from oilportrait.core.checkout import CheckoutClientBase, CheckoutClientError
from oilportrait.core.config import OilPortraitConfig
from oilportrait.core.generation import (
    GenerationRequest,
    GenerationServiceBase,
    GenerationServiceError,
)


class FakeGenerationService(GenerationServiceBase):
    """Returns a flat PNG painting and records every request."""

    name = "fake"
    description = "In-memory generation service for tests"

    def __init__(self, config: OilPortraitConfig, size: tuple[int, int] = (64, 48)) -> None:
        super().__init__(config)
        self.size = size
        self.requests: list[GenerationRequest] = []

    async def generate(self, request: GenerationRequest) -> Image.Image:
        self.requests.append(request)
        painting = Image.new("RGB", self.size, (120, 80, 40))
        painting.format = "PNG"
        return painting


class FailingGenerationService(GenerationServiceBase):
    """Always fails, like an unreachable AI endpoint."""

    name = "failing"

    async def generate(self, request: GenerationRequest) -> Image.Image:
        raise GenerationServiceError("AI endpoint unavailable")


class FakeCheckoutClient(CheckoutClientBase):
    """Returns a predictable checkout URL and records every call."""

    def __init__(self, fail: bool = False) -> None:
        self.fail = fail
        self.calls: list[tuple[str, str, str]] = []

    async def create_checkout(self, shop_domain: str, variant_id: str, artwork_id: str) -> str:
        self.calls.append((shop_domain, variant_id, artwork_id))
        if self.fail:
            raise CheckoutClientError("storefront unavailable")
        return f"https://{shop_domain}/cart/c/{artwork_id}"
