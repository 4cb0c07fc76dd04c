from __future__ import annotations

from typing import Any

from pydantic import BaseModel


class UploadResponse(BaseModel):
    success: bool = True
    url: str
    asset_id: str | None = None
    filename: str | None = None


class FailureResponse(BaseModel):
    success: bool = False
    error: str
    error_code: str
    request_id: str | None = None
    details: Any = None


class FinalizedFile(BaseModel):
    filename: str
    url: str
    asset_id: str | None = None


class OrderFinalizationResponse(BaseModel):
    success: bool
    order_number: str | None = None
    files: list[FinalizedFile] = []
    failed: list[dict[str, Any]] = []
    queued: bool = False
    job_id: str | None = None
