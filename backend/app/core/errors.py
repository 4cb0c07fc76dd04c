from __future__ import annotations

from typing import Any


class RelayError(Exception):
    """Base class for failures that end an upload with a known status code."""

    status_code = 500
    error_code = "relay_error"

    def __init__(self, message: str, *, details: Any = None, extra: dict[str, Any] | None = None):
        super().__init__(message)
        self.message = message
        self.details = details
        self.extra = dict(extra or {})

    def to_payload(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"error": self.message, "error_code": self.error_code}
        if self.details is not None:
            payload["details"] = self.details
        payload.update(self.extra)
        return payload


class UploadValidationError(RelayError):
    status_code = 400
    error_code = "validation_error"


class UpstreamRejected(UploadValidationError):
    """Shopify answered with userErrors or top-level GraphQL errors."""

    status_code = 502
    error_code = "upstream_rejected"


class ConfigurationError(RelayError):
    status_code = 500
    error_code = "configuration_error"


class UpstreamEmpty(RelayError):
    status_code = 502
    error_code = "upstream_empty"


class TransferFailed(RelayError):
    status_code = 502
    error_code = "transfer_failed"

    def __init__(self, status: int):
        super().__init__("upload to storage failed", extra={"status": int(status)})
        self.status = int(status)


class ResolutionTimeout(RelayError):
    status_code = 502
    error_code = "resolution_timeout"

    def __init__(self, *, asset_id: str, attempts: int):
        # The asset already exists in Shopify; hand its id back for recovery.
        super().__init__(
            "file url not available yet",
            extra={"asset_id": asset_id, "attempts": int(attempts)},
        )
        self.asset_id = asset_id
        self.attempts = int(attempts)
