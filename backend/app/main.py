import uuid
import time
import json
import logging
from datetime import datetime, timezone
from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from app.core.config import settings
from app.core.errors import RelayError
from app.routers import health, uploads, webhooks

def create_app() -> FastAPI:
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s %(message)s")
    app = FastAPI(title="Shopify File Relay", version="1.0.0")

    logger = logging.getLogger("relay")

    try:
        logging.getLogger("httpx").setLevel(logging.WARNING)
    except Exception:
        pass

    allow_origins = [o.strip() for o in str(settings.cors_allow_origins or "").split(",") if o.strip()]
    any_origin = "*" in allow_origins

    @app.middleware("http")
    async def request_id_middleware(request: Request, call_next):
        t0 = time.perf_counter()
        rid = request.headers.get("X-Request-ID") or str(uuid.uuid4())
        request.state.request_id = rid
        status_code: int | None = None
        try:
            if request.method in {"POST", "PUT", "PATCH", "DELETE"} and not any_origin:
                origin = (request.headers.get("origin") or "").strip()
                if origin and origin not in allow_origins:
                    return JSONResponse(
                        status_code=403,
                        content={"success": False, "error": "invalid origin", "error_code": "forbidden", "request_id": rid},
                    )
            response = await call_next(request)
            status_code = int(getattr(response, "status_code", 0) or 0)
        except Exception:
            status_code = 500
            raise
        finally:
            try:
                dur_ms = int((time.perf_counter() - t0) * 1000)
                path = getattr(getattr(request, "url", None), "path", "")
                if not path.startswith("/health"):
                    logger.info(
                        json.dumps(
                            {
                                "ts": datetime.now(timezone.utc).isoformat(),
                                "rid": rid,
                                "method": request.method,
                                "path": path,
                                "status": status_code,
                                "duration_ms": dur_ms,
                            },
                            ensure_ascii=False,
                        )
                    )
            except Exception:
                pass
        response.headers["X-Request-ID"] = rid

        response.headers.setdefault("X-Content-Type-Options", "nosniff")
        response.headers.setdefault("Referrer-Policy", "no-referrer")
        if (settings.app_env or "").strip().lower() in {"prod", "production"}:
            response.headers.setdefault("Strict-Transport-Security", "max-age=31536000; includeSubDomains")
        return response

    def _request_id(request: Request) -> str | None:
        rid = getattr(getattr(request, "state", None), "request_id", None)
        rid = str(rid or "").strip()
        return rid or None

    @app.exception_handler(RelayError)
    async def relay_error_handler(request: Request, exc: RelayError):
        rid = _request_id(request)
        if exc.status_code >= 500:
            logger.error("%s: %s", exc.error_code, exc.message, extra={"rid": rid})
        payload = {"success": False, **exc.to_payload(), "request_id": rid}
        return JSONResponse(status_code=int(exc.status_code), content=payload)

    @app.exception_handler(HTTPException)
    async def http_exception_handler(request: Request, exc: HTTPException):
        rid = _request_id(request)
        status = int(exc.status_code)
        error_code = {
            401: "unauthorized",
            403: "forbidden",
            404: "not_found",
            413: "payload_too_large",
            429: "rate_limited",
        }.get(status, "http_error")
        payload = {
            "success": False,
            "error": str(exc.detail or "request failed"),
            "error_code": error_code,
            "request_id": rid,
        }
        return JSONResponse(status_code=status, content=payload, headers=getattr(exc, "headers", None))

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError):
        return JSONResponse(
            status_code=422,
            content={
                "success": False,
                "error": "invalid request",
                "error_code": "invalid_request",
                "details": json.loads(json.dumps(exc.errors(), default=str)),
                "request_id": _request_id(request),
            },
        )

    @app.exception_handler(Exception)
    async def unhandled_exception_handler(request: Request, exc: Exception):
        rid = _request_id(request)
        logger.exception("unhandled exception", extra={"rid": rid})
        return JSONResponse(
            status_code=500,
            content={
                "success": False,
                "error": "upload to shopify failed",
                "error_code": "internal_error",
                "request_id": rid,
            },
        )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=allow_origins,
        allow_credentials=False,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["*"],
    )

    app.include_router(health.router)
    app.include_router(uploads.router)
    app.include_router(webhooks.router)

    return app

app = create_app()
