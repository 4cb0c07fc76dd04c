from __future__ import annotations

import mimetypes
import re
import secrets
import time
from dataclasses import dataclass, replace
from pathlib import PurePath


_UNSAFE_LOCAL_CHARS = re.compile(r'[/\\?%*:|"<>]')
_FIELD_CHARS = re.compile(r"[^a-z0-9]+")
_TOKEN_CHARS = re.compile(r"[^A-Za-z0-9]+")


def safe_local_name(filename: str) -> str:
    """Name used for the temporary copy on disk: `{epoch_ms}_{random}_{filename}`."""
    base = PurePath(str(filename or "").replace("\\", "/")).name or "upload"
    return f"{int(time.time() * 1000)}_{secrets.token_hex(4)}_{_UNSAFE_LOCAL_CHARS.sub('_', base)}"


def sanitize_field_name(value: str | None) -> str:
    s = _FIELD_CHARS.sub("-", str(value or "").strip().lower()).strip("-")
    return s or "file"


def _clean_part(value: object, default: str) -> str:
    s = _TOKEN_CHARS.sub("-", str(value if value is not None else "").strip()).strip("-")
    return s or default


def extension_for(filename: str | None, mime_type: str | None) -> str:
    suffix = PurePath(str(filename or "")).suffix.lower()
    if suffix and re.fullmatch(r"\.[a-z0-9]{1,10}", suffix):
        return suffix
    guessed = mimetypes.guess_extension(str(mime_type or "").split(";")[0].strip()) if mime_type else None
    return guessed or ""


@dataclass(frozen=True)
class AssetName:
    prefix: str
    field: str
    index: str
    sequence: str
    extension: str

    def render(self) -> str:
        return f"{self.prefix}_{self.field}_{self.index}_{self.sequence}{self.extension}"

    def for_order(self, order_number: str) -> AssetName:
        return replace(self, index=_clean_part(order_number, self.index))

    def __str__(self) -> str:
        return self.render()


def build_asset_name(
    *,
    prefix: str,
    field: str | None,
    index: str | int | None,
    sequence: str | int | None,
    filename: str | None,
    mime_type: str | None,
) -> AssetName:
    return AssetName(
        prefix=_clean_part(prefix, "upload"),
        field=sanitize_field_name(field),
        index=_clean_part(index, "0"),
        sequence=_clean_part(sequence, "1"),
        extension=extension_for(filename, mime_type),
    )
