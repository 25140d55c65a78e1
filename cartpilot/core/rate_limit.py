"""Rate limiting configuration using slowapi."""

from slowapi import Limiter
from starlette.requests import Request


def _get_real_client_ip(request: Request) -> str:
    """Extract the real client IP behind Cloudflare / a reverse proxy."""
    return (
        request.headers.get("CF-Connecting-IP")
        or request.headers.get("X-Forwarded-For", "").split(",")[0].strip()
        or (request.client.host if request.client else "127.0.0.1")
    )


def _tenant_client_key(request: Request) -> str:
    """Throttle per shopper IP within each tenant's widget."""
    tenant_id = request.headers.get("X-Tenant-ID", "").strip() or "anonymous"
    return f"{tenant_id}:{_get_real_client_ip(request)}"


limiter = Limiter(key_func=_tenant_client_key)
