from __future__ import annotations

import logging
from typing import BinaryIO

import httpx

from app.core.errors import TransferFailed
from app.services.shopify import StagedTarget


log = logging.getLogger(__name__)


def _form_parts(target: StagedTarget, fileobj: BinaryIO, filename: str, mime_type: str) -> list[tuple]:
    # A None filename renders a plain form field; list order is wire order.
    parts: list[tuple] = [(p.name, (None, p.value)) for p in target.parameters]
    parts.append(("file", (filename, fileobj, mime_type)))
    return parts


class ObjectTransferClient:
    def __init__(
        self,
        *,
        timeout_seconds: float = 300.0,
        connect_timeout_seconds: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self._timeout = httpx.Timeout(float(timeout_seconds), connect=float(connect_timeout_seconds))
        self._transport = transport

    async def send(self, target: StagedTarget, fileobj: BinaryIO, *, filename: str, mime_type: str) -> int:
        """POST the staged form to the storage endpoint, file part last.

        httpx streams file objects in chunks, so the body is never held in memory.
        """
        async with httpx.AsyncClient(timeout=self._timeout, transport=self._transport) as client:
            r = await client.post(
                target.url,
                files=_form_parts(target, fileobj, filename, mime_type),
            )

        log.info("storage upload status=%s url=%s", r.status_code, target.url)
        if r.status_code < 200 or r.status_code >= 300:
            raise TransferFailed(r.status_code)
        return int(r.status_code)
