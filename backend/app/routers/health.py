from fastapi import APIRouter, HTTPException
from fastapi.responses import PlainTextResponse

from app.core.config import settings
from app.core.redis_client import get_redis

router = APIRouter(tags=["health"])


@router.get("/", response_class=PlainTextResponse)
def root():
    return "Shopify file upload: OK"


@router.get("/health")
def health():
    return {"status": "ok"}


@router.get("/health/live")
def live():
    return {"status": "live"}


@router.get("/health/ready")
def ready():
    if not (settings.shopify_store_domain or "").strip() or not (settings.shopify_admin_api_token or "").strip():
        raise HTTPException(status_code=503, detail="shopify credentials not configured")

    if bool(settings.order_finalization_enabled) and settings.pending_store_backend == "redis":
        try:
            r = get_redis()
            r.ping()
        except Exception as e:
            raise HTTPException(status_code=503, detail="redis not ready") from e

    return {"status": "ready"}
