"""Pydantic schemas for tenant configuration."""

from typing import Any

from pydantic import Field

from cartpilot.schemas.common import BaseSchema


class ShopifyCredentials(BaseSchema):
    """Decrypted Shopify credentials for one tenant."""

    store_url: str
    storefront_token: str | None = None  # public Storefront API token
    admin_token: str | None = None  # privileged Admin API token, backend only


class TenantConfig(BaseSchema):
    """Resolved tenant configuration as seen by the chat agent."""

    id: str
    name: str
    system_prompt: str | None = None
    shopify_credentials: ShopifyCredentials | None = None
    widget_config: dict[str, Any] = Field(default_factory=dict)
