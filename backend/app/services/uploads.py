from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Awaitable, BinaryIO, Callable

import httpx

from app.core.config import settings
from app.core.errors import ConfigurationError
from app.services.backoff import BackoffPolicy
from app.services.naming import AssetName, build_asset_name
from app.services.pending_store import PendingUpload, PendingUploadStore, get_pending_store
from app.services.resolver import ResolvedAsset, UrlResolver
from app.services.shopify import GenericFile, ShopifyAdminClient
from app.services.transfer import ObjectTransferClient


log = logging.getLogger(__name__)


class UploadState(str, Enum):
    received = "received"
    slot_requested = "slot_requested"
    object_transferred = "object_transferred"
    asset_registered = "asset_registered"
    url_resolved = "url_resolved"
    failed = "failed"


@dataclass
class UploadRequest:
    path: Path
    filename: str
    mime_type: str
    size: int
    field: str | None = None
    index: str | None = None
    sequence: str | None = None
    token: str | None = None

    @property
    def is_image(self) -> bool:
        return str(self.mime_type or "").lower().startswith("image/")

    @property
    def resource_kind(self) -> str:
        return "IMAGE" if self.is_image else "FILE"

    def open(self) -> BinaryIO:
        return open(self.path, "rb")

    def release(self) -> None:
        try:
            self.path.unlink(missing_ok=True)
        except OSError:
            log.exception("failed to remove temp upload %s", self.path)


class UploadPipeline:
    """Staged upload -> storage POST -> fileCreate -> url resolution, one file per run."""

    def __init__(
        self,
        *,
        shopify: ShopifyAdminClient | None,
        transfer: ObjectTransferClient,
        policy: BackoffPolicy,
        alt_text: str | None = None,
        filename_prefix: str = "upload",
        rename_on_upload: bool = False,
        pending_store: PendingUploadStore | None = None,
        sleep: Callable[[float], Awaitable[object]] = asyncio.sleep,
        retry_on: tuple[type[BaseException], ...] = (),
    ):
        self.shopify = shopify
        self.transfer = transfer
        self.policy = policy
        self.alt_text = alt_text
        self.filename_prefix = filename_prefix
        self.rename_on_upload = rename_on_upload
        self.pending_store = pending_store
        self._sleep = sleep
        self._retry_on = retry_on

    def _require_shopify(self) -> ShopifyAdminClient:
        if self.shopify is None:
            raise ConfigurationError("SHOPIFY_STORE_DOMAIN / SHOPIFY_ADMIN_API_TOKEN are not set")
        return self.shopify

    def _resolver(self, client: ShopifyAdminClient) -> UrlResolver:
        return UrlResolver(client=client, policy=self.policy, sleep=self._sleep, retry_on=self._retry_on)

    def asset_name_for(self, upload: UploadRequest) -> AssetName:
        return build_asset_name(
            prefix=self.filename_prefix,
            field=upload.field,
            index=upload.index,
            sequence=upload.sequence,
            filename=upload.filename,
            mime_type=upload.mime_type,
        )

    async def register_and_resolve(
        self,
        *,
        resource_url: str,
        content_type: str,
        filename: str | None = None,
    ) -> ResolvedAsset:
        client = self._require_shopify()
        asset = await client.file_create(
            original_source=resource_url,
            content_type=content_type,
            alt=self.alt_text,
            filename=filename,
        )
        return await self._resolver(client).resolve(asset, filename=filename)

    async def resolve_registered(self, *, asset_id: str, filename: str | None = None) -> ResolvedAsset:
        """Poll an asset that an earlier fileCreate already produced."""
        client = self._require_shopify()
        return await self._resolver(client).resolve(GenericFile(id=asset_id), filename=filename)

    async def run(self, upload: UploadRequest) -> ResolvedAsset:
        state = UploadState.received
        log.info("upload received name=%s mime=%s size=%s", upload.filename, upload.mime_type, upload.size)
        try:
            client = self._require_shopify()
            name = self.asset_name_for(upload) if self.rename_on_upload else None

            target = await client.staged_uploads_create(
                filename=upload.filename,
                mime_type=upload.mime_type,
                resource=upload.resource_kind,
                file_size=upload.size,
            )
            state = UploadState.slot_requested

            with upload.open() as fh:
                await self.transfer.send(target, fh, filename=upload.filename, mime_type=upload.mime_type)
            state = UploadState.object_transferred

            asset = await client.file_create(
                original_source=target.resource_url,
                content_type=upload.resource_kind,
                alt=self.alt_text,
                filename=name.render() if name is not None else None,
            )
            state = UploadState.asset_registered

            resolved = await self._resolver(client).resolve(
                asset,
                filename=name.render() if name is not None else upload.filename,
            )
            state = UploadState.url_resolved
            log.info("upload done url=%s asset_id=%s", resolved.url, resolved.asset_id)

            self._remember(upload, resource_url=target.resource_url, name=name, asset_id=resolved.asset_id)
            return resolved
        except Exception:
            log.warning("upload %s -> %s name=%s", state.value, UploadState.failed.value, upload.filename)
            raise
        finally:
            upload.release()

    def _remember(
        self,
        upload: UploadRequest,
        *,
        resource_url: str,
        name: AssetName | None,
        asset_id: str | None,
    ) -> None:
        token = str(upload.token or "").strip()
        if not token or self.pending_store is None:
            return
        name = name or self.asset_name_for(upload)
        self.pending_store.append(
            token,
            PendingUpload(
                token=token,
                resource_url=resource_url,
                content_type=upload.resource_kind,
                mime_type=upload.mime_type,
                prefix=name.prefix,
                field=name.field,
                index=name.index,
                sequence=name.sequence,
                extension=name.extension,
                original_filename=upload.filename,
                asset_id=asset_id,
            ),
        )


def build_upload_pipeline(
    *,
    transport: httpx.AsyncBaseTransport | None = None,
    sleep: Callable[[float], Awaitable[object]] = asyncio.sleep,
) -> UploadPipeline:
    domain = (settings.shopify_store_domain or "").strip()
    token = (settings.shopify_admin_api_token or "").strip()
    shopify = None
    if domain and token:
        shopify = ShopifyAdminClient(
            store_domain=domain,
            access_token=token,
            api_version=settings.shopify_api_version,
            timeout_seconds=float(settings.shopify_timeout_seconds),
            transport=transport,
        )

    return UploadPipeline(
        shopify=shopify,
        transfer=ObjectTransferClient(
            timeout_seconds=float(settings.transfer_timeout_seconds),
            connect_timeout_seconds=float(settings.transfer_timeout_connect),
            transport=transport,
        ),
        policy=BackoffPolicy(
            max_attempts=int(settings.poll_max_attempts),
            initial_delay_ms=float(settings.poll_initial_delay_ms),
            factor=float(settings.poll_backoff_factor),
            max_delay_ms=float(settings.poll_max_delay_ms),
        ),
        alt_text=settings.asset_alt_text,
        filename_prefix=settings.asset_filename_prefix,
        rename_on_upload=bool(settings.rename_on_upload),
        pending_store=get_pending_store() if bool(settings.order_finalization_enabled) else None,
        sleep=sleep,
        retry_on=(httpx.TransportError,) if bool(settings.poll_retry_transport_errors) else (),
    )


def get_upload_pipeline() -> UploadPipeline:
    return build_upload_pipeline()
