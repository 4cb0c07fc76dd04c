from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    app_env: str = Field(default="development", validation_alias="APP_ENV")

    cors_allow_origins: str = Field(default="http://localhost:3000", validation_alias="CORS_ALLOW_ORIGINS")
    trust_proxy_headers: bool = Field(default=False, validation_alias="TRUST_PROXY_HEADERS")

    redis_url: str = Field(
        default="redis://localhost:6379/0",
        validation_alias="REDIS_URL",
    )
    redis_socket_timeout_seconds: float = Field(default=3.0, validation_alias="REDIS_SOCKET_TIMEOUT_SECONDS")
    rq_queue_default: str = Field(default="relay", validation_alias="RQ_QUEUE_DEFAULT")

    shopify_store_domain: str | None = Field(default=None, validation_alias="SHOPIFY_STORE_DOMAIN")
    shopify_admin_api_token: str | None = Field(default=None, validation_alias="SHOPIFY_ADMIN_API_TOKEN")
    shopify_api_version: str = Field(default="2025-01", validation_alias="SHOPIFY_API_VERSION")
    shopify_webhook_secret: str | None = Field(default=None, validation_alias="SHOPIFY_WEBHOOK_SECRET")
    shopify_timeout_seconds: float = Field(default=30.0, validation_alias="SHOPIFY_TIMEOUT_SECONDS")

    transfer_timeout_connect: float = Field(default=10.0, validation_alias="TRANSFER_TIMEOUT_CONNECT")
    transfer_timeout_seconds: float = Field(default=300.0, validation_alias="TRANSFER_TIMEOUT_SECONDS")

    upload_dir: str = Field(default="uploads", validation_alias="UPLOAD_DIR")
    upload_max_bytes: int = Field(default=50 * 1024 * 1024, validation_alias="UPLOAD_MAX_BYTES")
    upload_rate_limit: int = Field(default=30, validation_alias="UPLOAD_RATE_LIMIT")
    upload_rate_window_seconds: int = Field(default=60, validation_alias="UPLOAD_RATE_WINDOW_SECONDS")
    asset_alt_text: str = Field(default="Uploaded via file relay", validation_alias="ASSET_ALT_TEXT")

    poll_max_attempts: int = Field(default=12, validation_alias="POLL_MAX_ATTEMPTS")
    poll_initial_delay_ms: float = Field(default=1000.0, validation_alias="POLL_INITIAL_DELAY_MS")
    poll_backoff_factor: float = Field(default=1.0, validation_alias="POLL_BACKOFF_FACTOR")
    poll_max_delay_ms: float = Field(default=10000.0, validation_alias="POLL_MAX_DELAY_MS")
    poll_retry_transport_errors: bool = Field(default=False, validation_alias="POLL_RETRY_TRANSPORT_ERRORS")

    rename_on_upload: bool = Field(default=False, validation_alias="RENAME_ON_UPLOAD")
    asset_filename_prefix: str = Field(default="upload", validation_alias="ASSET_FILENAME_PREFIX")

    order_finalization_enabled: bool = Field(default=False, validation_alias="ORDER_FINALIZATION_ENABLED")
    order_webhook_mode: str = Field(default="inline", validation_alias="ORDER_WEBHOOK_MODE")
    correlation_attribute: str = Field(default="_upload_token", validation_alias="CORRELATION_ATTRIBUTE")

    pending_store_backend: str = Field(default="redis", validation_alias="PENDING_STORE_BACKEND")
    pending_store_path: str = Field(default="uploads/pending.json", validation_alias="PENDING_STORE_PATH")
    pending_upload_ttl_hours: int = Field(default=72, validation_alias="PENDING_UPLOAD_TTL_HOURS")


settings = Settings()


def _is_prod() -> bool:
    return (settings.app_env or "").strip().lower() in {"prod", "production"}


if _is_prod():
    if settings.redis_url.strip() == "redis://localhost:6379/0" and settings.pending_store_backend == "redis":
        raise RuntimeError("REDIS_URL must be set in production")

    if bool(settings.order_finalization_enabled) and not (settings.shopify_webhook_secret or "").strip():
        raise RuntimeError("SHOPIFY_WEBHOOK_SECRET must be set when ORDER_FINALIZATION_ENABLED is true")

    # A file-backed store is only safe with a single writer process.
    if settings.pending_store_backend == "file" and bool(settings.order_finalization_enabled):
        raise RuntimeError("PENDING_STORE_BACKEND=file is not supported in production")

if (settings.order_webhook_mode or "").strip().lower() not in {"inline", "queue"}:
    raise RuntimeError("ORDER_WEBHOOK_MODE must be 'inline' or 'queue'")
if (settings.pending_store_backend or "").strip().lower() not in {"redis", "file"}:
    raise RuntimeError("PENDING_STORE_BACKEND must be 'redis' or 'file'")
