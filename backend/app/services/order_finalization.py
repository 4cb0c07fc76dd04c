from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any

from app.core.errors import RelayError, ResolutionTimeout
from app.services.pending_store import PendingUploadStore, get_pending_store
from app.services.uploads import UploadPipeline, build_upload_pipeline


log = logging.getLogger(__name__)


def extract_order_number(order: dict[str, Any]) -> str | None:
    num = order.get("order_number")
    if num is not None and str(num).strip():
        return str(num).strip()
    name = str(order.get("name") or "").strip().lstrip("#").strip()
    return name or None


def extract_correlation_tokens(order: dict[str, Any], attribute: str) -> list[str]:
    """Tokens from order note attributes and line item properties, first-seen order."""
    pairs: list[dict[str, Any]] = list(order.get("note_attributes") or [])
    for item in order.get("line_items") or []:
        if isinstance(item, dict):
            pairs.extend(item.get("properties") or [])

    tokens: list[str] = []
    for p in pairs:
        if not isinstance(p, dict) or str(p.get("name") or "") != attribute:
            continue
        value = str(p.get("value") or "").strip()
        if value and value not in tokens:
            tokens.append(value)
    return tokens


@dataclass
class FinalizationResult:
    order_number: str
    files: list[dict[str, Any]] = field(default_factory=list)
    failed: list[dict[str, Any]] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.failed

    def to_payload(self) -> dict[str, Any]:
        return {
            "success": self.ok,
            "order_number": self.order_number,
            "files": self.files,
            "failed": self.failed,
        }


class OrderFinalizer:
    def __init__(self, *, pipeline: UploadPipeline, store: PendingUploadStore):
        self.pipeline = pipeline
        self.store = store

    async def finalize(self, *, order_number: str, tokens: list[str]) -> FinalizationResult:
        result = FinalizationResult(order_number=order_number)
        for token in tokens:
            pending = self.store.take(token)
            log.info("finalizing order=%s token=%s files=%s", order_number, token, len(pending))
            try:
                while pending:
                    entry = pending[0]
                    filename = entry.asset_name().for_order(order_number).render()
                    try:
                        if entry.order_asset_id:
                            resolved = await self.pipeline.resolve_registered(
                                asset_id=entry.order_asset_id,
                                filename=filename,
                            )
                        else:
                            resolved = await self.pipeline.register_and_resolve(
                                resource_url=entry.resource_url,
                                content_type=entry.content_type,
                                filename=filename,
                            )
                    except ResolutionTimeout as e:
                        log.warning("renamed file not ready order=%s file=%s asset_id=%s", order_number, filename, e.asset_id)
                        self.store.append(token, entry.model_copy(update={"order_asset_id": e.asset_id}))
                        result.failed.append({"filename": filename, "token": token, **e.to_payload()})
                    except RelayError as e:
                        log.error("re-registration failed order=%s file=%s: %s", order_number, filename, e.message)
                        self.store.append(token, entry)
                        result.failed.append({"filename": filename, "token": token, **e.to_payload()})
                    else:
                        result.files.append({"filename": filename, "url": resolved.url, "asset_id": resolved.asset_id})
                    pending.pop(0)
            except Exception:
                # Unprocessed entries go back so a redelivered webhook can retry them.
                for entry in pending:
                    self.store.append(token, entry)
                raise
        return result


def finalize_order_uploads_job(*, order_number: str, tokens: list[str]) -> dict:
    """rq entrypoint: runs the finalization for one order outside the webhook request."""
    finalizer = OrderFinalizer(pipeline=build_upload_pipeline(), store=get_pending_store())
    result = asyncio.run(finalizer.finalize(order_number=order_number, tokens=list(tokens or [])))
    log.info(
        "finalize_order_uploads_job: order=%s files=%s failed=%s",
        order_number,
        len(result.files),
        len(result.failed),
    )
    return result.to_payload()
