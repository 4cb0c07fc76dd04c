import json
import sys
import time
from pathlib import Path

import httpx
import pytest
from fastapi.testclient import TestClient

backend_dir = Path(__file__).resolve().parents[1]
if str(backend_dir) not in sys.path:
    sys.path.insert(0, str(backend_dir))

from app.core.config import settings
from app.main import create_app
from app.services.uploads import build_upload_pipeline, get_upload_pipeline


class _MemoryPipeline:
    def __init__(self, r: "_MemoryRedis"):
        self._r = r
        self._ops: list[tuple[str, tuple]] = []

    def lrange(self, *args):
        self._ops.append(("lrange", args))
        return self

    def delete(self, *args):
        self._ops.append(("delete", args))
        return self

    def rpush(self, *args):
        self._ops.append(("rpush", args))
        return self

    def expire(self, *args):
        self._ops.append(("expire", args))
        return self

    def execute(self):
        out = [getattr(self._r, name)(*args) for name, args in self._ops]
        self._ops = []
        return out


class _MemoryRedis:
    def __init__(self):
        self._data: dict[str, tuple[str, float | None]] = {}
        self._lists: dict[str, list[str]] = {}

    def reset(self):
        self._data.clear()
        self._lists.clear()

    def ping(self):
        return True

    def _now(self) -> float:
        return time.time()

    def _get_entry(self, key: str):
        v = self._data.get(key)
        if not v:
            return None
        value, exp = v
        if exp is not None and exp <= self._now():
            self._data.pop(key, None)
            return None
        return value, exp

    def get(self, key: str):
        entry = self._get_entry(key)
        return entry[0] if entry else None

    def set(self, key: str, value: str, ex: int | None = None):
        exp = (self._now() + int(ex)) if ex else None
        self._data[key] = (value, exp)
        return True

    def delete(self, key: str):
        existed = key in self._data or key in self._lists
        self._data.pop(key, None)
        self._lists.pop(key, None)
        return 1 if existed else 0

    def incr(self, key: str):
        cur = self.get(key)
        n = int(cur or 0) + 1
        _, exp = self._data.get(key, ("", None))
        self._data[key] = (str(n), exp)
        return n

    def expire(self, key: str, seconds: int):
        if key in self._lists:
            return True
        entry = self._get_entry(key)
        if not entry:
            return False
        value, _ = entry
        self._data[key] = (value, self._now() + int(seconds))
        return True

    def ttl(self, key: str):
        entry = self._get_entry(key)
        if not entry:
            return -2
        _, exp = entry
        if exp is None:
            return -1
        return max(0, int(exp - self._now()))

    def rpush(self, key: str, *values: str):
        lst = self._lists.setdefault(key, [])
        lst.extend(values)
        return len(lst)

    def lrange(self, key: str, start: int, end: int):
        lst = self._lists.get(key, [])
        return list(lst[start:] if end == -1 else lst[start : end + 1])

    def pipeline(self, transaction: bool = True):
        return _MemoryPipeline(self)


# Stub Redis at import time (rate limiting + pending uploads).
_mem_redis = _MemoryRedis()
import app.core.redis_client as redis_client_module

redis_client_module.get_redis = lambda: _mem_redis

import app.core.rate_limit as rate_limit_module
rate_limit_module.get_redis = lambda: _mem_redis

import app.services.pending_store as pending_store_module
pending_store_module.get_redis = lambda: _mem_redis

import app.routers.health as health_router_module
health_router_module.get_redis = lambda: _mem_redis


STORE_DOMAIN = "test-shop.myshopify.com"
STORAGE_URL = "https://storage.example.com/shopify-staged-uploads"
RESOURCE_URL = "https://storage.example.com/shopify-staged-uploads/tmp/123/photo.jpg"
IMAGE_URL = "https://cdn.shopify.com/s/files/1/0001/files/photo.jpg"
FILE_URL = "https://cdn.shopify.com/s/files/1/0001/files/manual.pdf"
MEDIA_ID = "gid://shopify/MediaImage/1001"


class FakeShopify:
    """Answers the Admin GraphQL endpoint and the staged storage endpoint."""

    def __init__(self):
        self.calls = {"staged": 0, "transfer": 0, "file_create": 0, "node": 0}
        self.staged_user_errors: list[dict] = []
        self.staged_targets: list[dict] = [
            {
                "url": STORAGE_URL,
                "resourceUrl": RESOURCE_URL,
                "parameters": [
                    {"name": "key", "value": "tmp/123/photo.jpg"},
                    {"name": "policy", "value": "cG9saWN5"},
                ],
            }
        ]
        self.graphql_errors: list[dict] = []
        self.transfer_status = 201
        self.file_create_user_errors: list[dict] = []
        self.files: list[dict] = [{"__typename": "MediaImage", "id": MEDIA_ID, "image": {"url": IMAGE_URL}}]
        self.node_urls: list[str | None] = []
        self.staged_inputs: list[dict] = []
        self.file_create_inputs: list[dict] = []
        self.transfer_bodies: list[bytes] = []
        self.graphql_headers: list[httpx.Headers] = []

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)

    def handler(self, request: httpx.Request) -> httpx.Response:
        if request.url.host == "storage.example.com":
            self.calls["transfer"] += 1
            self.transfer_bodies.append(request.content)
            return httpx.Response(self.transfer_status)

        assert request.url.host == STORE_DOMAIN
        self.graphql_headers.append(request.headers)
        body = json.loads(request.content)
        query = body["query"]
        variables = body.get("variables") or {}
        if self.graphql_errors:
            return httpx.Response(200, json={"errors": self.graphql_errors})

        if "stagedUploadsCreate" in query:
            self.calls["staged"] += 1
            self.staged_inputs.extend(variables.get("input") or [])
            return httpx.Response(
                200,
                json={
                    "data": {
                        "stagedUploadsCreate": {
                            "stagedTargets": [] if self.staged_user_errors else self.staged_targets,
                            "userErrors": self.staged_user_errors,
                        }
                    }
                },
            )

        if "fileCreate" in query:
            self.calls["file_create"] += 1
            self.file_create_inputs.extend(variables.get("files") or [])
            return httpx.Response(
                200,
                json={
                    "data": {
                        "fileCreate": {
                            "files": [] if self.file_create_user_errors else self.files,
                            "userErrors": self.file_create_user_errors,
                        }
                    }
                },
            )

        if "node(" in query:
            self.calls["node"] += 1
            idx = self.calls["node"] - 1
            url = self.node_urls[idx] if idx < len(self.node_urls) else None
            node = {"__typename": "MediaImage", "id": variables.get("id"), "image": {"url": url} if url else None}
            return httpx.Response(200, json={"data": {"node": node}})

        raise AssertionError(f"unexpected graphql query: {query}")


@pytest.fixture(autouse=True)
def _isolated_settings(tmp_path, monkeypatch):
    _mem_redis.reset()
    monkeypatch.setattr(settings, "upload_dir", str(tmp_path / "uploads"))
    monkeypatch.setattr(settings, "upload_rate_limit", 0)
    monkeypatch.setattr(settings, "shopify_store_domain", STORE_DOMAIN)
    monkeypatch.setattr(settings, "shopify_admin_api_token", "shpat_test")
    monkeypatch.setattr(settings, "shopify_webhook_secret", "whsec_test")
    monkeypatch.setattr(settings, "rename_on_upload", False)
    monkeypatch.setattr(settings, "order_finalization_enabled", False)
    monkeypatch.setattr(settings, "order_webhook_mode", "inline")
    monkeypatch.setattr(settings, "pending_store_backend", "redis")
    monkeypatch.setattr(settings, "poll_max_attempts", 12)
    monkeypatch.setattr(settings, "poll_initial_delay_ms", 1000.0)
    monkeypatch.setattr(settings, "poll_backoff_factor", 1.0)
    monkeypatch.setattr(settings, "poll_retry_transport_errors", False)


@pytest.fixture()
def mem_redis():
    return _mem_redis


@pytest.fixture()
def upload_dir(tmp_path) -> Path:
    return tmp_path / "uploads"


@pytest.fixture()
def shopify():
    return FakeShopify()


@pytest.fixture()
def sleeps():
    return []


@pytest.fixture()
def app(shopify, sleeps):
    async def _sleep(seconds: float):
        sleeps.append(seconds)

    application = create_app()
    application.dependency_overrides[get_upload_pipeline] = lambda: build_upload_pipeline(
        transport=shopify.transport,
        sleep=_sleep,
    )
    return application


@pytest.fixture()
def client(app):
    return TestClient(app)


@pytest.fixture()
def jpeg_bytes() -> bytes:
    return b"\xff\xd8\xff\xe0" + b"\x00" * (10 * 1024 - 4)
