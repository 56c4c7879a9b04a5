"""Request authentication for the Oil Portrait API.

Two mechanisms guard the API:

Session tokens
    Every ``/api/*`` route requires ``Authorization: Bearer <token>``, where
    the token is a Shopify session token: a JWT signed (HS256) with the app
    secret whose ``dest`` claim names the shop and ``sub`` the user.  The
    decoded token becomes a :class:`Principal`.
Webhook signatures
    ``POST /webhooks`` carries no session; instead the raw body must match
    the base64 HMAC-SHA256 in ``X-Shopify-Hmac-Sha256``.
"""

from __future__ import annotations

import base64
import hashlib
import hmac
import logging
from dataclasses import dataclass
from urllib.parse import urlparse

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt

from oilportrait.core.config import OilPortraitConfig
from oilportrait.core.errors import Unauthorized
from oilportrait.core.records import Tenant
from oilportrait.core.workflow import ArtworkWorkflow

logger = logging.getLogger(__name__)

SESSION_TOKEN_ALGORITHM = "HS256"

_bearer_scheme = HTTPBearer(auto_error=False)


@dataclass(frozen=True)
class Principal:
    """The authenticated caller: a user session within one shop."""

    shop_id: str
    user_id: str
    session_id: str | None = None

    @property
    def tenant(self) -> Tenant:
        """Scope of the caller's own records."""
        return Tenant(shop_id=self.shop_id, user_id=self.user_id)

    @property
    def shop_tenant(self) -> Tenant:
        """Scope of every record of the caller's shop (admin views)."""
        return Tenant(shop_id=self.shop_id)


def _hostname(url: str | None) -> str | None:
    if not url:
        return None
    parsed = urlparse(url if "://" in url else f"https://{url}")
    return parsed.hostname


def decode_session_token(token: str, config: OilPortraitConfig) -> Principal:
    """Validate a session token and build the principal it names.

    Args:
        token: Encoded JWT from the ``Authorization`` header.
        config: Configuration holding the app key and secret.

    Returns:
        The principal for the token's shop and user.

    Raises:
        Unauthorized: If the app secret is unset, the signature, expiry or
            audience is invalid, or the shop/user claims are missing.
    """
    if not config.shopify_api_secret:
        logger.error("OILPORTRAIT_SHOPIFY_API_SECRET is not set; rejecting session tokens")
        raise Unauthorized()

    try:
        payload = jwt.decode(
            token,
            config.shopify_api_secret,
            algorithms=[SESSION_TOKEN_ALGORITHM],
            audience=config.shopify_api_key or None,
            options={"verify_aud": bool(config.shopify_api_key)},
        )
    except JWTError as e:
        logger.debug("Rejected session token: %s", e)
        raise Unauthorized() from e

    shop = _hostname(payload.get("dest"))
    issuer = _hostname(payload.get("iss"))
    user_id = payload.get("sub")

    if not shop or not user_id:
        raise Unauthorized()
    if issuer is not None and issuer != shop:
        logger.warning("Session token issuer %s does not match shop %s", issuer, shop)
        raise Unauthorized()

    return Principal(shop_id=shop, user_id=str(user_id), session_id=payload.get("sid"))


# ---------------------------------------------------------------------------
# FastAPI dependencies.
# ---------------------------------------------------------------------------


def get_config(request: Request) -> OilPortraitConfig:
    return request.app.state.config


def get_workflow(request: Request) -> ArtworkWorkflow:
    """Acquire the workflow (and its persistence handle) for this request."""
    return request.app.state.workflow


async def require_principal(
    credentials: HTTPAuthorizationCredentials | None = Depends(_bearer_scheme),
    config: OilPortraitConfig = Depends(get_config),
) -> Principal:
    """Resolve the caller from the bearer session token or reject with 401."""
    if credentials is None or not credentials.credentials:
        raise Unauthorized()
    return decode_session_token(credentials.credentials, config)


# ---------------------------------------------------------------------------
# Webhook signatures.
# ---------------------------------------------------------------------------


def compute_webhook_hmac(body: bytes, secret: str) -> str:
    """Base64 HMAC-SHA256 of a webhook body, as sent by the platform."""
    digest = hmac.new(secret.encode("utf-8"), body, hashlib.sha256).digest()
    return base64.b64encode(digest).decode("ascii")


def verify_webhook_hmac(body: bytes, provided: str | None, secret: str) -> bool:
    """Check a webhook signature in constant time."""
    if not provided or not secret:
        return False
    expected = compute_webhook_hmac(body, secret)
    return hmac.compare_digest(expected.encode("ascii"), provided.strip().encode("ascii", "ignore"))


async def read_verified_webhook(request: Request, config: OilPortraitConfig) -> bytes:
    """Return the raw webhook body after verifying its signature.

    Raises:
        Unauthorized: If the signature header is missing or does not match.
    """
    body = await request.body()
    if not verify_webhook_hmac(
        body,
        request.headers.get("X-Shopify-Hmac-Sha256"),
        config.shopify_api_secret,
    ):
        logger.warning(
            "Rejected webhook with invalid signature (topic=%s, shop=%s)",
            request.headers.get("X-Shopify-Topic"),
            request.headers.get("X-Shopify-Shop-Domain"),
        )
        raise Unauthorized()
    return body
