"""Tests for oilportrait.api.auth — session tokens and webhook signatures."""

from __future__ import annotations

import base64
import hashlib
import hmac
import time

import pytest

from oilportrait.api.auth import (
    Principal,
    compute_webhook_hmac,
    decode_session_token,
    verify_webhook_hmac,
)
from oilportrait.core.errors import Unauthorized
from oilportrait.core.records import Tenant

SHOP = "test-shop.myshopify.com"


class TestDecodeSessionToken:
    def test_valid_token(self, test_config, session_token):
        principal = decode_session_token(session_token(user="42", sid="session-1"), test_config)
        assert principal == Principal(shop_id=SHOP, user_id="42", session_id="session-1")

    def test_wrong_secret(self, test_config, session_token):
        with pytest.raises(Unauthorized):
            decode_session_token(session_token(secret="not-the-secret"), test_config)

    def test_expired(self, test_config, session_token):
        now = int(time.time())
        with pytest.raises(Unauthorized):
            decode_session_token(session_token(exp=now - 120, iat=now - 180), test_config)

    def test_wrong_audience(self, test_config, session_token):
        with pytest.raises(Unauthorized):
            decode_session_token(session_token(aud="another-app"), test_config)

    def test_audience_not_checked_without_api_key(self, test_config, session_token):
        test_config.shopify_api_key = ""
        principal = decode_session_token(session_token(aud="another-app"), test_config)
        assert principal.shop_id == SHOP

    def test_missing_user(self, test_config, session_token):
        with pytest.raises(Unauthorized):
            decode_session_token(session_token(sub=None), test_config)

    def test_missing_shop(self, test_config, session_token):
        with pytest.raises(Unauthorized):
            decode_session_token(session_token(dest=None), test_config)

    def test_issuer_must_match_shop(self, test_config, session_token):
        token = session_token(iss="https://other-shop.myshopify.com/admin")
        with pytest.raises(Unauthorized):
            decode_session_token(token, test_config)

    def test_garbage_token(self, test_config):
        with pytest.raises(Unauthorized):
            decode_session_token("not.a.jwt", test_config)

    def test_rejected_without_secret(self, test_config, session_token):
        token = session_token()
        test_config.shopify_api_secret = ""
        with pytest.raises(Unauthorized):
            decode_session_token(token, test_config)


class TestPrincipal:
    def test_tenants(self):
        principal = Principal(shop_id=SHOP, user_id="42")
        assert principal.tenant == Tenant(SHOP, "42")
        assert principal.shop_tenant == Tenant(SHOP)


class TestWebhookHmac:
    def test_round_trip(self):
        body = b'{"id": 1}'
        signature = compute_webhook_hmac(body, "secret")
        assert verify_webhook_hmac(body, signature, "secret") is True

    def test_matches_hmac_sha256(self):
        expected = base64.b64encode(hmac.new(b"key", b"hello", hashlib.sha256).digest()).decode()
        assert compute_webhook_hmac(b"hello", "key") == expected

    def test_tampered_body(self):
        signature = compute_webhook_hmac(b'{"id": 1}', "secret")
        assert verify_webhook_hmac(b'{"id": 2}', signature, "secret") is False

    @pytest.mark.parametrize("provided", [None, "", "bogus", "AAAA"])
    def test_missing_or_wrong_signature(self, provided):
        assert verify_webhook_hmac(b"hello", provided, "key") is False

    def test_empty_secret_never_verifies(self):
        assert verify_webhook_hmac(b"hello", compute_webhook_hmac(b"hello", ""), "") is False
