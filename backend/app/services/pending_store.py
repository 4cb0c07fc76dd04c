"""Correlation token -> staged files waiting for the order-completion webhook.

Two backends:

* `RedisPendingUploadStore` keeps one Redis list per token. `append` is a single
  RPUSH+EXPIRE inside one MULTI and `take` reads and deletes inside one MULTI, so any number of
  relay processes may write concurrently.
* `FilePendingUploadStore` keeps one JSON document on disk. Each update reads the
  whole file, mutates it and replaces it atomically under a process-wide lock.
  It is only correct with a single writer process.
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
import threading
from datetime import datetime, timezone
from pathlib import Path
from typing import Protocol

from pydantic import BaseModel, Field

from app.core.config import settings
from app.core.redis_client import get_redis
from app.services.naming import AssetName


log = logging.getLogger(__name__)


class PendingUpload(BaseModel):
    token: str
    resource_url: str
    content_type: str
    mime_type: str | None = None
    prefix: str = "upload"
    field: str = "file"
    index: str = "0"
    sequence: str = "1"
    extension: str = ""
    original_filename: str | None = None
    asset_id: str | None = None
    # Asset created by a re-registration whose url never showed up; retries poll it.
    order_asset_id: str | None = None
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    def asset_name(self) -> AssetName:
        return AssetName(
            prefix=self.prefix,
            field=self.field,
            index=self.index,
            sequence=self.sequence,
            extension=self.extension,
        )


class PendingUploadStore(Protocol):
    def append(self, token: str, entry: PendingUpload) -> None: ...

    def take(self, token: str) -> list[PendingUpload]: ...

    def peek(self, token: str) -> list[PendingUpload]: ...


def _decode(raw: object) -> PendingUpload | None:
    try:
        if isinstance(raw, (bytes, bytearray)):
            raw = raw.decode("utf-8")
        if isinstance(raw, str):
            return PendingUpload.model_validate_json(raw)
        return PendingUpload.model_validate(raw)
    except Exception:
        log.warning("dropping unreadable pending upload entry: %r", raw)
        return None


class RedisPendingUploadStore:
    def __init__(self, *, ttl_hours: int = 72, key_prefix: str = "uploads:pending"):
        self.ttl_seconds = max(60, int(ttl_hours) * 3600)
        self.key_prefix = key_prefix

    def _key(self, token: str) -> str:
        return f"{self.key_prefix}:{token}"

    def append(self, token: str, entry: PendingUpload) -> None:
        key = self._key(token)
        pipe = get_redis().pipeline(transaction=True)
        pipe.rpush(key, entry.model_dump_json())
        pipe.expire(key, self.ttl_seconds)
        pipe.execute()

    def take(self, token: str) -> list[PendingUpload]:
        r = get_redis()
        key = self._key(token)
        pipe = r.pipeline(transaction=True)
        pipe.lrange(key, 0, -1)
        pipe.delete(key)
        raw_items, _ = pipe.execute()
        return [e for e in (_decode(x) for x in raw_items or []) if e is not None]

    def peek(self, token: str) -> list[PendingUpload]:
        r = get_redis()
        raw_items = r.lrange(self._key(token), 0, -1)
        return [e for e in (_decode(x) for x in raw_items or []) if e is not None]


class FilePendingUploadStore:
    _lock = threading.Lock()

    def __init__(self, path: str | Path):
        self.path = Path(path)

    def _read(self) -> dict[str, list[dict]]:
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except FileNotFoundError:
            return {}
        except json.JSONDecodeError:
            log.error("pending store %s is corrupt, starting empty", self.path)
            return {}
        return data if isinstance(data, dict) else {}

    def _write(self, data: dict[str, list[dict]]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp = tempfile.mkstemp(dir=str(self.path.parent), prefix=".pending-", suffix=".json")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                json.dump(data, fh, ensure_ascii=False)
            os.replace(tmp, self.path)
        except BaseException:
            Path(tmp).unlink(missing_ok=True)
            raise

    def append(self, token: str, entry: PendingUpload) -> None:
        with self._lock:
            data = self._read()
            data.setdefault(token, []).append(entry.model_dump(mode="json"))
            self._write(data)

    def take(self, token: str) -> list[PendingUpload]:
        with self._lock:
            data = self._read()
            items = data.pop(token, [])
            if items:
                self._write(data)
        return [e for e in (_decode(x) for x in items) if e is not None]

    def peek(self, token: str) -> list[PendingUpload]:
        with self._lock:
            items = self._read().get(token, [])
        return [e for e in (_decode(x) for x in items) if e is not None]


def get_pending_store() -> PendingUploadStore:
    backend = (settings.pending_store_backend or "redis").strip().lower()
    if backend == "file":
        return FilePendingUploadStore(settings.pending_store_path)
    return RedisPendingUploadStore(ttl_hours=int(settings.pending_upload_ttl_hours))
