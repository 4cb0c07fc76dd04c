from __future__ import annotations

import json
import logging

from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import JSONResponse

from app.core.config import settings
from app.core.errors import UploadValidationError
from app.core.queue import get_queue
from app.core.security import require_shopify_webhook
from app.schemas.upload import FailureResponse, OrderFinalizationResponse
from app.services.order_finalization import (
    OrderFinalizer,
    extract_correlation_tokens,
    extract_order_number,
    finalize_order_uploads_job,
)
from app.services.pending_store import PendingUploadStore, get_pending_store
from app.services.uploads import UploadPipeline, get_upload_pipeline


log = logging.getLogger(__name__)


def _require_order_finalization() -> None:
    if not bool(settings.order_finalization_enabled):
        raise HTTPException(status_code=404, detail="not found")


router = APIRouter(
    prefix="/webhooks",
    tags=["webhooks"],
    dependencies=[Depends(_require_order_finalization)],
)


@router.post(
    "/orders",
    response_model=OrderFinalizationResponse,
    responses={
        202: {"model": OrderFinalizationResponse},
        401: {"model": FailureResponse},
        502: {"model": OrderFinalizationResponse},
    },
)
async def order_completed(
    body: bytes = Depends(require_shopify_webhook),
    pipeline: UploadPipeline = Depends(get_upload_pipeline),
    store: PendingUploadStore = Depends(get_pending_store),
):
    try:
        order = json.loads(body or b"{}")
    except ValueError as e:
        raise UploadValidationError("order payload is not valid json") from e
    if not isinstance(order, dict):
        raise UploadValidationError("order payload must be an object")

    order_number = extract_order_number(order)
    if not order_number:
        raise UploadValidationError("order number missing from payload")

    tokens = extract_correlation_tokens(order, settings.correlation_attribute)
    if not tokens:
        return {"success": True, "order_number": order_number, "files": [], "failed": []}

    if (settings.order_webhook_mode or "").strip().lower() == "queue":
        q = get_queue()
        job = q.enqueue(
            finalize_order_uploads_job,
            order_number=order_number,
            tokens=tokens,
            job_timeout=60 * 10,
            result_ttl=60 * 60 * 24,
            failure_ttl=60 * 60 * 24,
        )
        log.info("order=%s finalization queued job=%s", order_number, job.id)
        return JSONResponse(
            status_code=202,
            content={"success": True, "order_number": order_number, "queued": True, "job_id": str(job.id)},
        )

    result = await OrderFinalizer(pipeline=pipeline, store=store).finalize(order_number=order_number, tokens=tokens)
    return JSONResponse(status_code=200 if result.ok else 502, content=result.to_payload())
