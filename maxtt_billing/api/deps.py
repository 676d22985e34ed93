"""FastAPI dependency injection."""

from functools import lru_cache

from fastapi import Header

from maxtt_billing.config import get_settings
from maxtt_billing.services.context import SessionContext, load_watermark


@lru_cache
def get_watermark() -> bytes | None:
    """Watermark image, read once per process."""
    return load_watermark(get_settings().watermark_path)


async def get_context(authorization: str | None = Header(default=None)) -> SessionContext:
    """Session context for one request; the bearer token is passed through untouched."""
    token = ""
    if authorization and authorization.lower().startswith("bearer "):
        token = authorization[7:].strip()
    return SessionContext(
        settings=get_settings(),
        token=token,
        watermark_image=get_watermark(),
    )
