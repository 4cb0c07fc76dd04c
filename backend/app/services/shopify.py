from __future__ import annotations

import logging
from typing import Any, Literal

import httpx
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from app.core.errors import UpstreamEmpty, UpstreamRejected


log = logging.getLogger(__name__)


STAGED_UPLOADS_CREATE = """
mutation stagedUploadsCreate($input: [StagedUploadInput!]!) {
  stagedUploadsCreate(input: $input) {
    stagedTargets {
      url
      resourceUrl
      parameters { name value }
    }
    userErrors { field message }
  }
}
"""

FILE_CREATE = """
mutation fileCreate($files: [FileCreateInput!]!) {
  fileCreate(files: $files) {
    files {
      __typename
      id
      alt
      ... on MediaImage { image { url } preview { image { url } } }
      ... on GenericFile { url preview { image { url } } }
    }
    userErrors { field message }
  }
}
"""

FILE_NODE = """
query fileNode($id: ID!) {
  node(id: $id) {
    __typename
    id
    ... on MediaImage { image { url } preview { image { url } } }
    ... on GenericFile { url preview { image { url } } }
  }
}
"""


class StagedParameter(BaseModel):
    name: str
    value: str


class StagedTarget(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    url: str
    resource_url: str = Field(validation_alias="resourceUrl")
    parameters: list[StagedParameter] = Field(default_factory=list)


class _ImageRef(BaseModel):
    url: str | None = None


class _Preview(BaseModel):
    image: _ImageRef | None = None


class _Asset(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: str | None = None
    alt: str | None = None
    preview: _Preview | None = None

    def _preview_url(self) -> str | None:
        if self.preview is not None and self.preview.image is not None:
            return self.preview.image.url or None
        return None


class MediaImage(_Asset):
    typename: Literal["MediaImage"] = Field(default="MediaImage", alias="__typename")
    image: _ImageRef | None = None

    @property
    def kind(self) -> str:
        return "image"

    def extract_url(self) -> str | None:
        if self.image is not None and self.image.url:
            return self.image.url
        return self._preview_url()


class GenericFile(_Asset):
    typename: str = Field(default="GenericFile", alias="__typename")
    url: str | None = None

    @property
    def kind(self) -> str:
        return "file"

    def extract_url(self) -> str | None:
        return self.url or self._preview_url()


RegisteredAsset = MediaImage | GenericFile


def parse_asset(node: dict[str, Any] | None) -> RegisteredAsset | None:
    if not isinstance(node, dict):
        return None
    if node.get("__typename") == "MediaImage":
        return MediaImage.model_validate(node)
    # Video, Model3d and friends expose a preview image the same way GenericFile does.
    return GenericFile.model_validate(node)


def _user_errors(block: dict[str, Any] | None) -> list[dict[str, Any]]:
    if not isinstance(block, dict):
        return []
    return [e for e in (block.get("userErrors") or []) if e]


class ShopifyAdminClient:
    def __init__(
        self,
        *,
        store_domain: str,
        access_token: str,
        api_version: str = "2025-01",
        timeout_seconds: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.store_domain = store_domain.strip()
        self._access_token = access_token.strip()
        self.api_version = api_version
        self._timeout = httpx.Timeout(float(timeout_seconds))
        self._transport = transport

    @property
    def endpoint(self) -> str:
        return f"https://{self.store_domain}/admin/api/{self.api_version}/graphql.json"

    async def _graphql(self, query: str, variables: dict[str, Any]) -> dict[str, Any]:
        async with httpx.AsyncClient(timeout=self._timeout, transport=self._transport) as client:
            r = await client.post(
                self.endpoint,
                json={"query": query, "variables": variables},
                headers={"X-Shopify-Access-Token": self._access_token},
            )
            r.raise_for_status()
            payload = r.json()

        errors = payload.get("errors") if isinstance(payload, dict) else None
        if errors:
            log.error("shopify graphql errors: %s", errors)
            raise UpstreamRejected("shopify graphql request failed", details=errors)
        return (payload or {}).get("data") or {}

    async def staged_uploads_create(
        self,
        *,
        filename: str,
        mime_type: str,
        resource: str,
        file_size: int | None = None,
    ) -> StagedTarget:
        item: dict[str, Any] = {
            "filename": filename,
            "mimeType": mime_type,
            "resource": resource,
            "httpMethod": "POST",
        }
        if file_size is not None:
            item["fileSize"] = str(int(file_size))

        data = await self._graphql(STAGED_UPLOADS_CREATE, {"input": [item]})
        block = data.get("stagedUploadsCreate") or {}
        errors = _user_errors(block)
        if errors:
            log.error("stagedUploadsCreate userErrors: %s", errors)
            raise UpstreamRejected("stagedUploadsCreate failed", details=errors)

        targets = block.get("stagedTargets") or []
        if not targets or not targets[0]:
            raise UpstreamEmpty("stagedUploadsCreate returned no staged target")
        try:
            return StagedTarget.model_validate(targets[0])
        except ValidationError as e:
            log.error("stagedUploadsCreate returned an unusable target: %s", targets[0])
            raise UpstreamEmpty("stagedUploadsCreate returned an unusable staged target") from e

    async def file_create(
        self,
        *,
        original_source: str,
        content_type: str,
        alt: str | None = None,
        filename: str | None = None,
    ) -> RegisteredAsset:
        item: dict[str, Any] = {"contentType": content_type, "originalSource": original_source}
        if alt:
            item["alt"] = alt
        if filename:
            item["filename"] = filename

        data = await self._graphql(FILE_CREATE, {"files": [item]})
        block = data.get("fileCreate") or {}
        errors = _user_errors(block)
        if errors:
            log.error("fileCreate userErrors: %s", errors)
            raise UpstreamRejected("fileCreate failed", details=errors)

        files = block.get("files") or []
        asset = parse_asset(files[0] if files else None)
        if asset is None:
            raise UpstreamEmpty("fileCreate returned no file object")
        return asset

    async def get_file(self, asset_id: str) -> RegisteredAsset | None:
        data = await self._graphql(FILE_NODE, {"id": asset_id})
        return parse_asset(data.get("node"))
