"""Tests for oilportrait.core.checkout — Storefront cartCreate client."""

from __future__ import annotations

import asyncio
import json

import httpx
import pytest

from oilportrait.core.checkout import (
    ARTWORK_LINE_ATTRIBUTE,
    CheckoutClientError,
    ShopifyCheckoutClient,
)

SHOP = "test-shop.myshopify.com"
CHECKOUT_URL = "https://test-shop.myshopify.com/cart/c/abc?key=1"


def _client(config, handler) -> ShopifyCheckoutClient:
    return ShopifyCheckoutClient(
        config, client=httpx.AsyncClient(transport=httpx.MockTransport(handler))
    )


def _cart_response(**cart_create) -> httpx.Response:
    payload = {"cart": {"id": "gid://shopify/Cart/1", "checkoutUrl": CHECKOUT_URL}, "userErrors": []}
    payload.update(cart_create)
    return httpx.Response(200, json={"data": {"cartCreate": payload}})


class TestShopifyCheckoutClient:
    def test_creates_cart_with_artwork_attribute(self, test_config):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["url"] = str(request.url)
            seen["token"] = request.headers.get("X-Shopify-Storefront-Access-Token")
            seen["body"] = json.loads(request.content)
            return _cart_response()

        client = _client(test_config, handler)
        url = asyncio.run(client.create_checkout(SHOP, "45001000000001", "art-1"))

        assert url == CHECKOUT_URL
        assert seen["url"] == f"https://{SHOP}/api/2024-10/graphql.json"
        assert seen["token"] == "test-storefront-token"
        line = seen["body"]["variables"]["input"]["lines"][0]
        assert line["merchandiseId"] == "gid://shopify/ProductVariant/45001000000001"
        assert line["quantity"] == 1
        assert line["attributes"] == [{"key": ARTWORK_LINE_ATTRIBUTE, "value": "art-1"}]
        assert "cartCreate" in seen["body"]["query"]

    def test_http_error(self, test_config):
        client = _client(test_config, lambda request: httpx.Response(500))
        with pytest.raises(CheckoutClientError):
            asyncio.run(client.create_checkout(SHOP, "1", "art-1"))

    def test_graphql_errors(self, test_config):
        client = _client(
            test_config,
            lambda request: httpx.Response(200, json={"errors": [{"message": "throttled"}]}),
        )
        with pytest.raises(CheckoutClientError, match="errors"):
            asyncio.run(client.create_checkout(SHOP, "1", "art-1"))

    def test_user_errors(self, test_config):
        client = _client(
            test_config,
            lambda request: _cart_response(
                cart=None, userErrors=[{"field": ["lines"], "message": "Variant unavailable"}]
            ),
        )
        with pytest.raises(CheckoutClientError, match="user errors"):
            asyncio.run(client.create_checkout(SHOP, "1", "art-1"))

    def test_missing_checkout_url(self, test_config):
        client = _client(test_config, lambda request: _cart_response(cart={"id": "x"}))
        with pytest.raises(CheckoutClientError, match="checkoutUrl"):
            asyncio.run(client.create_checkout(SHOP, "1", "art-1"))

    def test_non_json_body(self, test_config):
        client = _client(test_config, lambda request: httpx.Response(200, content=b"<html>"))
        with pytest.raises(CheckoutClientError):
            asyncio.run(client.create_checkout(SHOP, "1", "art-1"))
