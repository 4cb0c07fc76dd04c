from app.routers import health, uploads, webhooks

__all__ = [
    "health",
    "uploads",
    "webhooks",
]
