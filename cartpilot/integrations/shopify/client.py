"""Shopify GraphQL clients using httpx.

``ShopifyGraphQLClient`` holds the transport and error handling shared by the
Storefront (public) and Admin (privileged) APIs. The Admin client lives here;
the Storefront client is in ``storefront.py``.
"""

import logging
import re
from typing import Any

import httpx

from cartpilot.core.config import settings
from cartpilot.core.exceptions import ShopifyError, UpstreamError
from cartpilot.schemas.shopify import DraftOrder, DraftOrderLine, OrderStatus

logger = logging.getLogger(__name__)

REQUEST_TIMEOUT_SECONDS = 30.0


def normalize_store_url(store_url: str) -> str:
    """Strip scheme and trailing slashes: ``https://x.myshopify.com/`` -> ``x.myshopify.com``."""
    return re.sub(r"^https?://", "", store_url.strip()).rstrip("/")


def raise_for_user_errors(operation: str, payload: dict[str, Any]) -> None:
    """Raise ShopifyError when a mutation payload reports userErrors."""
    user_errors = payload.get("userErrors") or []
    if user_errors:
        messages = ", ".join(str(e.get("message")) for e in user_errors)
        raise ShopifyError(f"{operation} failed: {messages}")


class ShopifyGraphQLClient:
    """Minimal async GraphQL client for one Shopify endpoint."""

    service_name = "Shopify"

    def __init__(
        self,
        endpoint: str,
        headers: dict[str, str],
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.endpoint = endpoint
        self.headers = {"Content-Type": "application/json", **headers}
        self._transport = transport

    async def query(self, query: str, variables: dict[str, Any] | None = None) -> dict[str, Any]:
        """Execute a GraphQL operation and return its ``data`` object."""
        async with httpx.AsyncClient(
            headers=self.headers,
            timeout=REQUEST_TIMEOUT_SECONDS,
            transport=self._transport,
        ) as client:
            response = await client.post(
                self.endpoint,
                json={"query": query, "variables": variables or {}},
            )

        if not response.is_success:
            raise UpstreamError(self.service_name, response.status_code, response.reason_phrase)

        result = response.json()
        errors = result.get("errors")
        if errors:
            messages = ", ".join(str(e.get("message")) for e in errors)
            raise ShopifyError(f"GraphQL errors: {messages}")

        data: dict[str, Any] | None = result.get("data")
        if not data:
            raise ShopifyError(f"No data returned from {self.service_name}")
        return data


# --- Admin API ---

CREATE_DRAFT_ORDER_MUTATION = """
  mutation DraftOrderCreate($input: DraftOrderInput!) {
    draftOrderCreate(input: $input) {
      draftOrder {
        id
        invoiceUrl
        totalPrice
        status
      }
      userErrors {
        field
        message
      }
    }
  }
"""

GET_ORDER_QUERY = """
  query GetOrder($id: ID!) {
    order(id: $id) {
      id
      name
      displayFulfillmentStatus
      displayFinancialStatus
      fulfillments(first: 1) {
        trackingInfo {
          url
        }
      }
    }
  }
"""

GET_DRAFT_ORDER_QUERY = """
  query GetDraftOrder($id: ID!) {
    draftOrder(id: $id) {
      id
      invoiceUrl
      totalPrice
      status
    }
  }
"""


def _map_draft_order(node: dict[str, Any]) -> DraftOrder:
    return DraftOrder(
        id=node["id"],
        invoice_url=node.get("invoiceUrl"),
        total_price=str(node.get("totalPrice", "")),
        status=node.get("status", ""),
    )


class ShopifyAdminClient(ShopifyGraphQLClient):
    """Client for the privileged Shopify Admin GraphQL API (draft orders, order status)."""

    service_name = "Shopify Admin"

    def __init__(
        self,
        store_url: str,
        admin_token: str,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        domain = normalize_store_url(store_url)
        super().__init__(
            endpoint=f"https://{domain}/admin/api/{settings.shopify_api_version}/graphql.json",
            headers={"X-Shopify-Access-Token": admin_token},
            transport=transport,
        )

    async def create_draft_order(
        self,
        lines: list[DraftOrderLine],
        email: str | None = None,
        note: str | None = None,
    ) -> DraftOrder:
        """Create a draft order the customer can pay through the invoice link."""
        order_input: dict[str, Any] = {
            "lineItems": [{"variantId": line.variant_id, "quantity": line.quantity} for line in lines]
        }
        if email:
            order_input["email"] = email
        if note:
            order_input["note"] = note

        data = await self.query(CREATE_DRAFT_ORDER_MUTATION, {"input": order_input})
        payload = data["draftOrderCreate"]
        raise_for_user_errors("Draft order creation", payload)

        draft_order = payload.get("draftOrder")
        if not draft_order:
            raise ShopifyError("Draft order creation returned no draft order")

        logger.info("Created draft order %s (%d lines)", draft_order["id"], len(lines))
        return _map_draft_order(draft_order)

    async def get_order(self, order_id: str) -> OrderStatus:
        """Get order status and the first tracking URL, if any."""
        data = await self.query(GET_ORDER_QUERY, {"id": order_id})
        order = data.get("order")
        if not order:
            raise ShopifyError(f"Order not found: {order_id}")

        tracking_url = None
        fulfillments = order.get("fulfillments") or []
        if fulfillments:
            tracking = fulfillments[0].get("trackingInfo") or []
            if tracking:
                tracking_url = tracking[0].get("url")

        return OrderStatus(
            id=order["id"],
            name=order["name"],
            display_fulfillment_status=order["displayFulfillmentStatus"],
            financial_status=order.get("displayFinancialStatus"),
            tracking_url=tracking_url,
        )

    async def get_draft_order(self, draft_order_id: str) -> DraftOrder:
        """Get draft order details."""
        data = await self.query(GET_DRAFT_ORDER_QUERY, {"id": draft_order_id})
        draft_order = data.get("draftOrder")
        if not draft_order:
            raise ShopifyError(f"Draft order not found: {draft_order_id}")
        return _map_draft_order(draft_order)
