"""Per-tenant construction of Shopify clients."""

from cartpilot.integrations.shopify.client import ShopifyAdminClient
from cartpilot.integrations.shopify.storefront import ShopifyStorefrontClient
from cartpilot.schemas.tenant import TenantConfig


def has_storefront_access(tenant: TenantConfig) -> bool:
    credentials = tenant.shopify_credentials
    return bool(credentials and credentials.store_url and credentials.storefront_token)


def has_admin_access(tenant: TenantConfig) -> bool:
    credentials = tenant.shopify_credentials
    return bool(credentials and credentials.store_url and credentials.admin_token)


def create_storefront_client(tenant: TenantConfig) -> ShopifyStorefrontClient | None:
    """Create a Storefront client, or None if the tenant has no storefront credentials."""
    if not has_storefront_access(tenant):
        return None
    credentials = tenant.shopify_credentials
    assert credentials is not None
    return ShopifyStorefrontClient(
        store_url=credentials.store_url or "",
        storefront_token=credentials.storefront_token or "",
    )


def create_admin_client(tenant: TenantConfig) -> ShopifyAdminClient | None:
    """Create an Admin client, or None if the tenant has no admin credentials."""
    if not has_admin_access(tenant):
        return None
    credentials = tenant.shopify_credentials
    assert credentials is not None
    return ShopifyAdminClient(
        store_url=credentials.store_url or "",
        admin_token=credentials.admin_token or "",
    )
