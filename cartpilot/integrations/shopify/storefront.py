"""Shopify Storefront API client (GraphQL): product search and carts."""

import logging
from typing import Any

import httpx

from cartpilot.core.config import settings
from cartpilot.core.exceptions import CartNotFoundError
from cartpilot.integrations.shopify.client import (
    ShopifyGraphQLClient,
    normalize_store_url,
    raise_for_user_errors,
)
from cartpilot.schemas.shopify import (
    Cart,
    CartLine,
    PriceRange,
    ProductImage,
    ProductVariant,
    ShopifyProduct,
)

logger = logging.getLogger(__name__)

DEFAULT_PRODUCTS_LIMIT = 10

PRODUCT_FRAGMENT = """
  fragment ProductFields on Product {
    id
    title
    handle
    description
    priceRange {
      minVariantPrice { amount }
      maxVariantPrice { amount }
    }
    images(first: 5) {
      edges { node { url altText } }
    }
    variants(first: 10) {
      edges {
        node {
          id
          title
          price { amount }
          availableForSale
        }
      }
    }
  }
"""

CART_FIELDS = """
    id
    checkoutUrl
    lines(first: 50) {
      edges {
        node {
          id
          quantity
          merchandise {
            ... on ProductVariant { id }
          }
        }
      }
    }
"""

SEARCH_PRODUCTS_QUERY = (
    PRODUCT_FRAGMENT
    + """
  query SearchProducts($query: String!, $first: Int!) {
    products(first: $first, query: $query) {
      edges { node { ...ProductFields } }
    }
  }
"""
)

GET_PRODUCT_QUERY = (
    PRODUCT_FRAGMENT
    + """
  query GetProduct($handle: String!) {
    product(handle: $handle) { ...ProductFields }
  }
"""
)

CREATE_CART_MUTATION = f"""
  mutation CartCreate($lines: [CartLineInput!]!) {{
    cartCreate(input: {{ lines: $lines }}) {{
      cart {{ {CART_FIELDS} }}
      userErrors {{ field message }}
    }}
  }}
"""

ADD_TO_CART_MUTATION = f"""
  mutation CartLinesAdd($cartId: ID!, $lines: [CartLineInput!]!) {{
    cartLinesAdd(cartId: $cartId, lines: $lines) {{
      cart {{ {CART_FIELDS} }}
      userErrors {{ field message }}
    }}
  }}
"""

GET_CART_QUERY = f"""
  query GetCart($cartId: ID!) {{
    cart(id: $cartId) {{ {CART_FIELDS} }}
  }}
"""


def _edges(connection: dict[str, Any] | None) -> list[dict[str, Any]]:
    return [edge["node"] for edge in (connection or {}).get("edges", [])]


def map_product(node: dict[str, Any]) -> ShopifyProduct:
    """Convert a GraphQL product node into a ShopifyProduct."""
    price_range = node.get("priceRange") or {}
    return ShopifyProduct(
        id=node["id"],
        title=node["title"],
        handle=node["handle"],
        description=node.get("description") or "",
        price_range=PriceRange(
            min_price=float(price_range.get("minVariantPrice", {}).get("amount", 0)),
            max_price=float(price_range.get("maxVariantPrice", {}).get("amount", 0)),
        ),
        images=[
            ProductImage(url=image["url"], alt_text=image.get("altText") or "")
            for image in _edges(node.get("images"))
        ],
        variants=[
            ProductVariant(
                id=variant["id"],
                title=variant["title"],
                price=float(variant["price"]["amount"]),
                available=bool(variant.get("availableForSale")),
            )
            for variant in _edges(node.get("variants"))
        ],
    )


def map_cart(node: dict[str, Any]) -> Cart:
    """Convert a GraphQL cart node into a Cart."""
    return Cart(
        cart_id=node["id"],
        checkout_url=node["checkoutUrl"],
        lines=[
            CartLine(merchandise_id=line["merchandise"]["id"], quantity=line["quantity"])
            for line in _edges(node.get("lines"))
        ],
    )


def _line_inputs(lines: list[CartLine]) -> list[dict[str, Any]]:
    return [{"merchandiseId": line.merchandise_id, "quantity": line.quantity} for line in lines]


class ShopifyStorefrontClient(ShopifyGraphQLClient):
    """Client for the public Shopify Storefront GraphQL API."""

    service_name = "Shopify Storefront"

    def __init__(
        self,
        store_url: str,
        storefront_token: str,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        domain = normalize_store_url(store_url)
        super().__init__(
            endpoint=f"https://{domain}/api/{settings.shopify_api_version}/graphql.json",
            headers={"X-Shopify-Storefront-Access-Token": storefront_token},
            transport=transport,
        )

    async def search_products(
        self, query: str, first: int = DEFAULT_PRODUCTS_LIMIT
    ) -> list[ShopifyProduct]:
        """Search the live catalog by query string."""
        data = await self.query(SEARCH_PRODUCTS_QUERY, {"query": query, "first": first})
        return [map_product(node) for node in _edges(data.get("products"))]

    async def get_product(self, handle: str) -> ShopifyProduct | None:
        """Get a single product by handle (URL slug); None when it does not exist."""
        data = await self.query(GET_PRODUCT_QUERY, {"handle": handle})
        product = data.get("product")
        return map_product(product) if product else None

    async def create_cart(self, lines: list[CartLine]) -> Cart:
        """Create a new cart with initial lines."""
        data = await self.query(CREATE_CART_MUTATION, {"lines": _line_inputs(lines)})
        payload = data["cartCreate"]
        raise_for_user_errors("Cart creation", payload)
        cart = map_cart(payload["cart"])
        logger.info("Created cart %s", cart.cart_id)
        return cart

    async def add_to_cart(self, cart_id: str, lines: list[CartLine]) -> Cart:
        """Add lines to an existing cart."""
        data = await self.query(
            ADD_TO_CART_MUTATION, {"cartId": cart_id, "lines": _line_inputs(lines)}
        )
        payload = data["cartLinesAdd"]
        if any("cartId" in (error.get("field") or []) for error in payload.get("userErrors") or []):
            raise CartNotFoundError(f"Cart not found: {cart_id}")
        raise_for_user_errors("Add to cart", payload)
        return map_cart(payload["cart"])

    async def get_cart(self, cart_id: str) -> Cart:
        """Get cart details; raises CartNotFoundError when the cart is gone."""
        data = await self.query(GET_CART_QUERY, {"cartId": cart_id})
        cart = data.get("cart")
        if not cart:
            raise CartNotFoundError(f"Cart not found: {cart_id}")
        return map_cart(cart)
