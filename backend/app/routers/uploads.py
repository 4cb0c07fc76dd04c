from __future__ import annotations

import logging
from pathlib import Path

from fastapi import APIRouter, Depends, File, Form, HTTPException, UploadFile

from app.core.config import settings
from app.core.errors import UploadValidationError
from app.core.rate_limit import rate_limit
from app.schemas.upload import FailureResponse, UploadResponse
from app.services.naming import safe_local_name
from app.services.uploads import UploadPipeline, UploadRequest, get_upload_pipeline

router = APIRouter(tags=["uploads"])

log = logging.getLogger(__name__)

_CHUNK = 1024 * 1024


async def _stage_to_disk(file: UploadFile) -> tuple[Path, int]:
    upload_dir = Path(settings.upload_dir)
    upload_dir.mkdir(parents=True, exist_ok=True)
    path = upload_dir / safe_local_name(file.filename or "upload")
    limit = int(settings.upload_max_bytes)

    size = 0
    try:
        with open(path, "wb") as out:
            while True:
                chunk = await file.read(_CHUNK)
                if not chunk:
                    break
                size += len(chunk)
                if limit > 0 and size > limit:
                    raise HTTPException(status_code=413, detail=f"file exceeds {limit} bytes")
                out.write(chunk)
    except BaseException:
        path.unlink(missing_ok=True)
        raise
    finally:
        await file.close()
    return path, size


@router.post(
    "/upload",
    response_model=UploadResponse,
    responses={400: {"model": FailureResponse}, 500: {"model": FailureResponse}, 502: {"model": FailureResponse}},
)
async def upload_file(
    file: UploadFile | None = File(None),
    field: str | None = Form(None),
    index: str | None = Form(None),
    qty: str | None = Form(None),
    token: str | None = Form(None),
    pipeline: UploadPipeline = Depends(get_upload_pipeline),
    _: object = rate_limit(key_prefix="upload"),
):
    if file is None or not file.filename:
        raise UploadValidationError("no file uploaded (form field must be 'file')")

    path, size = await _stage_to_disk(file)
    upload = UploadRequest(
        path=path,
        filename=file.filename,
        mime_type=file.content_type or "application/octet-stream",
        size=size,
        field=field,
        index=index,
        sequence=qty,
        token=token,
    )
    resolved = await pipeline.run(upload)
    return UploadResponse(url=resolved.url, asset_id=resolved.asset_id, filename=resolved.filename)
