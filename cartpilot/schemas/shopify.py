"""Pydantic schemas for Shopify Storefront and Admin API payloads."""

from cartpilot.schemas.common import BaseSchema


class ProductVariant(BaseSchema):
    """A purchasable product variant."""

    id: str
    title: str = "Default"
    price: float = 0.0
    available: bool = True


class ProductImage(BaseSchema):
    """A product image."""

    url: str
    alt_text: str = ""


class PriceRange(BaseSchema):
    """Minimum and maximum variant price."""

    min_price: float
    max_price: float


class ShopifyProduct(BaseSchema):
    """A product as returned by the Storefront API."""

    id: str
    title: str
    handle: str
    description: str = ""
    price_range: PriceRange
    images: list[ProductImage] = []
    variants: list[ProductVariant] = []


class CartLine(BaseSchema):
    """A cart line: merchandise (variant) id and quantity."""

    merchandise_id: str
    quantity: int


class Cart(BaseSchema):
    """A Storefront cart."""

    cart_id: str
    checkout_url: str
    lines: list[CartLine] = []


class DraftOrderLine(BaseSchema):
    """A draft order line item."""

    variant_id: str
    quantity: int


class DraftOrder(BaseSchema):
    """A draft order created through the Admin API."""

    id: str
    invoice_url: str | None = None
    total_price: str
    status: str


class OrderStatus(BaseSchema):
    """Order fulfillment/payment status from the Admin API."""

    id: str
    name: str
    display_fulfillment_status: str
    financial_status: str | None = None
    tracking_url: str | None = None
