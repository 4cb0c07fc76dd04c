from __future__ import annotations

from dataclasses import dataclass

from fastapi import Depends, HTTPException, Request

from app.core.config import settings
from app.core.redis_client import get_redis


@dataclass(frozen=True)
class RateLimit:
    key: str
    limit: int
    window_seconds: int


def _client_ip(request: Request) -> str:
    if bool(getattr(settings, "trust_proxy_headers", False)):
        xri = str(request.headers.get("x-real-ip") or "").strip()
        if xri:
            return xri
        xff = request.headers.get("x-forwarded-for")
        if xff:
            ip = xff.split(",")[0].strip()
            if ip:
                return ip
    if request.client and request.client.host:
        return request.client.host
    return "unknown"


def rate_limit(*, key_prefix: str, limit: int | None = None, window_seconds: int | None = None):
    async def _dep(request: Request) -> RateLimit:
        eff_limit = int(limit if limit is not None else settings.upload_rate_limit)
        eff_window = int(window_seconds if window_seconds is not None else settings.upload_rate_window_seconds)
        ip = _client_ip(request)
        key = f"rl:{key_prefix}:{request.method}:{request.url.path}:{ip}"
        if eff_limit <= 0:
            return RateLimit(key=key, limit=eff_limit, window_seconds=eff_window)

        try:
            r = get_redis()
            current = r.incr(key)
            if current == 1:
                r.expire(key, eff_window)
        except Exception:
            # Redis outage must not block uploads.
            return RateLimit(key=key, limit=eff_limit, window_seconds=eff_window)

        if int(current) > eff_limit:
            ttl = r.ttl(key)
            retry_after = int(ttl) if ttl and ttl > 0 else eff_window
            raise HTTPException(
                status_code=429,
                detail="rate limit exceeded",
                headers={"Retry-After": str(retry_after)},
            )

        return RateLimit(key=key, limit=eff_limit, window_seconds=eff_window)

    return Depends(_dep)
