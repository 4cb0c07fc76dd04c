from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable

from app.core.errors import ResolutionTimeout, UpstreamEmpty
from app.services.backoff import BackoffPolicy, PollTimeout, poll_until
from app.services.shopify import RegisteredAsset, ShopifyAdminClient


log = logging.getLogger(__name__)


@dataclass(frozen=True)
class ResolvedAsset:
    url: str
    asset_id: str | None = None
    filename: str | None = None


class UrlResolver:
    def __init__(
        self,
        *,
        client: ShopifyAdminClient,
        policy: BackoffPolicy,
        sleep: Callable[[float], Awaitable[object]] = asyncio.sleep,
        retry_on: tuple[type[BaseException], ...] = (),
    ):
        self._client = client
        self._policy = policy
        self._sleep = sleep
        self._retry_on = retry_on

    async def resolve(self, asset: RegisteredAsset, *, filename: str | None = None) -> ResolvedAsset:
        url = asset.extract_url()
        if url:
            return ResolvedAsset(url=url, asset_id=asset.id, filename=filename)

        if not asset.id:
            raise UpstreamEmpty("registered file has neither url nor id")

        asset_id = asset.id
        log.info("file url not ready, polling node id=%s", asset_id)

        async def _probe() -> str | None:
            node = await self._client.get_file(asset_id)
            return node.extract_url() if node is not None else None

        try:
            url = await poll_until(_probe, self._policy, sleep=self._sleep, retry_on=self._retry_on)
        except PollTimeout as e:
            log.warning("file url still empty after polling id=%s attempts=%s", asset_id, e.attempts)
            raise ResolutionTimeout(asset_id=asset_id, attempts=e.attempts) from e
        return ResolvedAsset(url=url, asset_id=asset_id, filename=filename)
