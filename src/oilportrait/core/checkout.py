"""Checkout session creation.

Checkout creates a cart on the shop's storefront with one line: the product
variant the artwork's style is sold as.  The line carries a hidden
``_artwork_id`` attribute; Shopify copies line attributes into the order's
line item ``properties``, which lets the ``orders/paid`` webhook match the
exact artwork instead of guessing by product.

Creating a checkout never changes local state.  The purchase is recorded
only when the paid-order webhook arrives.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod

import httpx

from .config import OilPortraitConfig

logger = logging.getLogger(__name__)

# Line attribute carrying the artwork id through checkout into the order.
ARTWORK_LINE_ATTRIBUTE = "_artwork_id"

_CART_CREATE_MUTATION = """
mutation cartCreate($input: CartInput!) {
  cartCreate(input: $input) {
    cart { id checkoutUrl }
    userErrors { field message }
  }
}
"""


class CheckoutClientError(Exception):
    """Raised when the commerce platform does not return a checkout URL."""


class CheckoutClientBase(ABC):
    """Interface for the commerce checkout collaborator."""

    @abstractmethod
    async def create_checkout(self, shop_domain: str, variant_id: str, artwork_id: str) -> str:
        """Create a checkout session for one artwork.

        Args:
            shop_domain: ``<shop>.myshopify.com`` domain of the tenant
            variant_id: Numeric product variant id to sell
            artwork_id: Record id attached as a line attribute

        Returns:
            The checkout URL to redirect the customer to

        Raises:
            CheckoutClientError: If the session could not be created
        """

    async def aclose(self) -> None:
        """Release network resources held by the client."""


class ShopifyCheckoutClient(CheckoutClientBase):
    """Storefront API ``cartCreate`` client."""

    def __init__(self, config: OilPortraitConfig, client: httpx.AsyncClient | None = None) -> None:
        self.access_token = config.storefront_access_token
        self.api_version = config.storefront_api_version
        self.client = client or httpx.AsyncClient(timeout=30.0)

    def _endpoint(self, shop_domain: str) -> str:
        return f"https://{shop_domain}/api/{self.api_version}/graphql.json"

    async def create_checkout(self, shop_domain: str, variant_id: str, artwork_id: str) -> str:
        variables = {
            "input": {
                "lines": [
                    {
                        "merchandiseId": f"gid://shopify/ProductVariant/{variant_id}",
                        "quantity": 1,
                        "attributes": [{"key": ARTWORK_LINE_ATTRIBUTE, "value": artwork_id}],
                    }
                ]
            }
        }

        try:
            response = await self.client.post(
                self._endpoint(shop_domain),
                json={"query": _CART_CREATE_MUTATION, "variables": variables},
                headers={"X-Shopify-Storefront-Access-Token": self.access_token},
            )
            response.raise_for_status()
            body = response.json()
        except (httpx.HTTPError, ValueError) as e:
            raise CheckoutClientError(f"cartCreate request failed: {e}") from e

        if body.get("errors"):
            raise CheckoutClientError(f"cartCreate returned errors: {body['errors']!r}")

        payload = (body.get("data") or {}).get("cartCreate") or {}
        if payload.get("userErrors"):
            raise CheckoutClientError(f"cartCreate user errors: {payload['userErrors']!r}")

        checkout_url = (payload.get("cart") or {}).get("checkoutUrl")
        if not checkout_url:
            raise CheckoutClientError("cartCreate response has no checkoutUrl")

        logger.info("Created checkout for artwork %s on %s", artwork_id, shop_domain)
        return checkout_url

    async def aclose(self) -> None:
        await self.client.aclose()
