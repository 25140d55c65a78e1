"""Tenant configuration lookup with an in-memory TTL cache."""

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from cartpilot.core.config import settings
from cartpilot.core.encryption import decrypt_optional
from cartpilot.core.exceptions import TenantLookupError
from cartpilot.models.tenant import Tenant
from cartpilot.schemas.tenant import ShopifyCredentials, TenantConfig

logger = logging.getLogger(__name__)


@dataclass
class _CacheEntry:
    tenant: TenantConfig | None
    expires_at: float


def to_tenant_config(row: Tenant) -> TenantConfig:
    """Map a tenant row to its config, decrypting stored Shopify tokens."""
    credentials = None
    if row.shopify_store_url:
        credentials = ShopifyCredentials(
            store_url=row.shopify_store_url,
            storefront_token=decrypt_optional(row.shopify_storefront_token),
            admin_token=decrypt_optional(row.shopify_admin_token),
        )

    return TenantConfig(
        id=row.id,
        name=row.name,
        system_prompt=row.system_prompt,
        shopify_credentials=credentials,
        widget_config=dict(row.widget_config or {}),
    )


class TenantService:
    """Resolves tenant configuration, caching hits and misses for a fixed TTL.

    Unknown ids are cached as ``None`` so repeated requests for a bad id hit
    the database once per TTL. Database failures are never cached; they
    raise ``TenantLookupError`` so callers can tell "no such tenant" from
    "cannot look it up".
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        cache_ttl_seconds: float | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.session_factory = session_factory
        self.cache_ttl = (
            settings.tenant_cache_ttl_seconds if cache_ttl_seconds is None else cache_ttl_seconds
        )
        self._clock = clock
        self._cache: dict[str, _CacheEntry] = {}

    async def get_tenant(self, tenant_id: str) -> TenantConfig | None:
        """Get tenant configuration by id.

        Args:
            tenant_id: Stable tenant key sent by the widget

        Returns:
            The tenant config, or None if no such tenant exists

        Raises:
            TenantLookupError: The store could not be queried
        """
        if not tenant_id or not tenant_id.strip():
            return None

        cached = self._cache.get(tenant_id)
        if cached is not None and cached.expires_at > self._clock():
            return cached.tenant

        logger.debug("Tenant cache miss for %s", tenant_id)
        try:
            async with self.session_factory() as session:
                result = await session.execute(select(Tenant).where(Tenant.id == tenant_id))
                row = result.scalar_one_or_none()
                tenant = to_tenant_config(row) if row is not None else None
        except SQLAlchemyError as e:
            raise TenantLookupError(f"Failed to fetch tenant {tenant_id}") from e

        self._cache[tenant_id] = _CacheEntry(
            tenant=tenant,
            expires_at=self._clock() + self.cache_ttl,
        )
        return tenant

    async def validate_tenant(self, tenant_id: str) -> bool:
        return await self.get_tenant(tenant_id) is not None

    async def get_system_prompt(self, tenant_id: str, default_prompt: str) -> str:
        """Get the tenant's custom instructions, falling back to ``default_prompt``."""
        tenant = await self.get_tenant(tenant_id)
        if tenant is None or not tenant.system_prompt:
            return default_prompt
        return tenant.system_prompt

    async def get_widget_config(self, tenant_id: str) -> dict[str, Any]:
        tenant = await self.get_tenant(tenant_id)
        return tenant.widget_config if tenant is not None else {}

    def clear_cache(self, tenant_id: str | None = None) -> None:
        """Invalidate one tenant, or the whole cache when no id is given."""
        if tenant_id is not None:
            self._cache.pop(tenant_id, None)
        else:
            self._cache.clear()

    def cached_tenant_ids(self) -> list[str]:
        """Ids of unexpired, existing tenants currently cached."""
        now = self._clock()
        return [
            tenant_id
            for tenant_id, entry in self._cache.items()
            if entry.expires_at > now and entry.tenant is not None
        ]
