from __future__ import annotations

import base64
import binascii
import hashlib
import hmac

from fastapi import HTTPException, Request

from app.core.config import settings
from app.core.errors import ConfigurationError


def shopify_hmac(body: bytes, secret: str) -> str:
    digest = hmac.new(secret.encode("utf-8"), body, hashlib.sha256).digest()
    return base64.b64encode(digest).decode("ascii")


def verify_shopify_hmac(body: bytes, signature: str | None, secret: str) -> bool:
    provided = str(signature or "").strip()
    if not provided:
        return False
    try:
        raw = base64.b64decode(provided, validate=True)
    except (binascii.Error, ValueError):
        return False
    expected = hmac.new(secret.encode("utf-8"), body, hashlib.sha256).digest()
    return hmac.compare_digest(raw, expected)


async def require_shopify_webhook(request: Request) -> bytes:
    """Returns the raw body once its X-Shopify-Hmac-Sha256 signature checks out."""
    secret = str(settings.shopify_webhook_secret or "").strip()
    if not secret:
        raise ConfigurationError("SHOPIFY_WEBHOOK_SECRET is not set")

    body = await request.body()
    if not verify_shopify_hmac(body, request.headers.get("x-shopify-hmac-sha256"), secret):
        raise HTTPException(status_code=401, detail="invalid webhook signature")
    return body
