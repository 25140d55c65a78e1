"""Executes agent tools against the retriever, tenant store and Shopify.

``ToolExecutor.execute`` is an error boundary: whatever happens inside a
tool comes back as a ``ToolResult``; nothing is raised to the caller.
"""

import logging
from collections.abc import Awaitable, Callable
from typing import Any

from pydantic import BaseModel, ValidationError

from cartpilot.core.exceptions import CartNotFoundError
from cartpilot.integrations.shopify.client import ShopifyAdminClient
from cartpilot.integrations.shopify.factory import create_admin_client, create_storefront_client
from cartpilot.integrations.shopify.storefront import ShopifyStorefrontClient
from cartpilot.schemas.chat import AgentContext, ToolResult
from cartpilot.schemas.shopify import Cart, CartLine, DraftOrderLine, ShopifyProduct
from cartpilot.schemas.tenant import TenantConfig
from cartpilot.services.retrieval_service import RetrievalService
from cartpilot.services.tenant_service import TenantService
from cartpilot.services.tools.registry import (
    TOOL_SPECS,
    AddToCartInput,
    CreateOrderInput,
    ProductDetailsInput,
    SearchFaqsInput,
    SearchProductsInput,
    format_validation_error,
)

logger = logging.getLogger(__name__)

DESCRIPTION_PREVIEW_CHARS = 200

StorefrontFactory = Callable[[TenantConfig], ShopifyStorefrontClient | None]
AdminFactory = Callable[[TenantConfig], ShopifyAdminClient | None]
ToolHandler = Callable[[Any, AgentContext], Awaitable[ToolResult]]


def format_product(product: ShopifyProduct) -> dict[str, Any]:
    """Compact product summary for the model."""
    available = [v for v in product.variants if v.available]
    low, high = product.price_range.min_price, product.price_range.max_price
    return {
        "title": product.title,
        "handle": product.handle,
        "description": product.description[:DESCRIPTION_PREVIEW_CHARS] or "No description",
        "price": f"${low:.2f}",
        "price_range": f"${low:.2f} - ${high:.2f}" if low != high else None,
        "image": product.images[0].url if product.images else None,
        "variants": [
            {"id": v.id, "title": v.title, "price": f"${v.price:.2f}"} for v in available
        ],
        "in_stock": bool(available),
    }


def format_cart(cart: Cart) -> dict[str, Any]:
    return {
        "cart_id": cart.cart_id,
        "checkout_url": cart.checkout_url,
        "item_count": len(cart.lines),
        "items": [
            {"variant_id": line.merchandise_id, "quantity": line.quantity} for line in cart.lines
        ],
    }


class ToolExecutor:
    """Dispatches tool invocations by name.

    Also remembers the cart created for each ``tenant_id:session_id`` so later
    turns of the same conversation keep adding to it.
    """

    def __init__(
        self,
        retrieval_service: RetrievalService,
        tenant_service: TenantService,
        storefront_factory: StorefrontFactory = create_storefront_client,
        admin_factory: AdminFactory = create_admin_client,
    ) -> None:
        self.retrieval_service = retrieval_service
        self.tenant_service = tenant_service
        self.storefront_factory = storefront_factory
        self.admin_factory = admin_factory
        # One entry per tenant session for the process lifetime; only expired carts are dropped
        self._carts: dict[str, str] = {}
        self._handlers: dict[str, ToolHandler] = {
            "search_products": self._search_products,
            "get_product_details": self._get_product_details,
            "add_to_cart": self._add_to_cart,
            "get_cart": self._get_cart,
            "search_faqs": self._search_faqs,
            "create_order": self._create_order,
        }

    # --- Session carts ---

    @staticmethod
    def _cart_key(context: AgentContext) -> str:
        return f"{context.tenant_id}:{context.session_id}"

    def get_cart_id(self, context: AgentContext) -> str | None:
        """Cart remembered for this session, else the one the caller supplied."""
        return self._carts.get(self._cart_key(context)) or context.cart_id

    def remember_cart(self, context: AgentContext, cart_id: str) -> None:
        self._carts[self._cart_key(context)] = cart_id
        context.cart_id = cart_id

    def forget_cart(self, context: AgentContext) -> None:
        self._carts.pop(self._cart_key(context), None)
        context.cart_id = None

    # --- Dispatch ---

    async def execute(
        self,
        name: str,
        tool_input: dict[str, Any] | None,
        context: AgentContext,
    ) -> ToolResult:
        """Run one tool.

        Args:
            name: Tool name requested by the model
            tool_input: Raw input object from the model (unvalidated)
            context: Tenant/session the call belongs to

        Returns:
            ToolResult; failures are reported in ``error``, never raised
        """
        spec = TOOL_SPECS.get(name)
        handler = self._handlers.get(name)
        if spec is None or handler is None:
            return ToolResult.fail(f"Unknown tool: {name}")

        try:
            params: BaseModel = spec.input_model.model_validate(tool_input or {})
        except ValidationError as e:
            return ToolResult.fail(format_validation_error(e))

        logger.info("Executing tool %s for session %s", name, context.session_id)
        try:
            return await handler(params, context)
        except Exception as e:
            logger.exception("Tool %s failed", name)
            return ToolResult.fail(str(e) or "Tool execution failed")

    async def _storefront_for(
        self, context: AgentContext
    ) -> tuple[TenantConfig | None, ShopifyStorefrontClient | None]:
        tenant = await self.tenant_service.get_tenant(context.tenant_id)
        if tenant is None:
            return None, None
        return tenant, self.storefront_factory(tenant)

    # --- Handlers ---

    async def _search_products(
        self, params: SearchProductsInput, context: AgentContext
    ) -> ToolResult:
        hits = await self.retrieval_service.search_products(
            context.tenant_id, params.query, params.limit
        )
        if hits:
            return ToolResult.ok(
                {
                    "source": "database",
                    "products": [
                        {
                            "id": str(hit.id),
                            "title": hit.title,
                            "description": (hit.description or "")[:DESCRIPTION_PREVIEW_CHARS]
                            or "No description",
                            "price": f"${hit.price:.2f} {hit.currency}"
                            if hit.price
                            else "Price not available",
                            "image": hit.image_url,
                            "category": hit.category,
                        }
                        for hit in hits
                    ],
                }
            )

        # Nothing indexed matched; ask the live storefront
        tenant, storefront = await self._storefront_for(context)
        if tenant is None:
            return ToolResult.fail("Tenant not found")
        if storefront is None:
            return ToolResult.ok({"products": [], "message": "No products found"})

        products = await storefront.search_products(params.query, params.limit)
        return ToolResult.ok(
            {
                "source": "shopify",
                "products": [format_product(product) for product in products],
            }
        )

    async def _get_product_details(
        self, params: ProductDetailsInput, context: AgentContext
    ) -> ToolResult:
        tenant, storefront = await self._storefront_for(context)
        if tenant is None:
            return ToolResult.fail("Tenant not found")
        if storefront is None:
            return ToolResult.fail("Shopify not configured for this store")

        product = await storefront.get_product(params.product_handle)
        if product is None:
            return ToolResult.fail(f"Product not found: {params.product_handle}")
        return ToolResult.ok(format_product(product))

    async def _add_to_cart(self, params: AddToCartInput, context: AgentContext) -> ToolResult:
        tenant, storefront = await self._storefront_for(context)
        if tenant is None:
            return ToolResult.fail("Tenant not found")
        if storefront is None:
            return ToolResult.fail("Shopify not configured for this store")

        lines = [CartLine(merchandise_id=params.variant_id, quantity=params.quantity)]
        cart: Cart | None = None
        existing_cart_id = self.get_cart_id(context)
        if existing_cart_id:
            try:
                cart = await storefront.add_to_cart(existing_cart_id, lines)
            except CartNotFoundError:
                logger.info("Cart %s no longer exists, starting a new cart", existing_cart_id)
                self.forget_cart(context)
        if cart is None:
            cart = await storefront.create_cart(lines)
        self.remember_cart(context, cart.cart_id)

        return ToolResult.ok(
            {**format_cart(cart), "message": f"Added {params.quantity} item(s) to cart"}
        )

    async def _get_cart(self, params: BaseModel, context: AgentContext) -> ToolResult:
        cart_id = self.get_cart_id(context)
        if not cart_id:
            return ToolResult.ok({"items": [], "message": "Cart is empty"})

        tenant, storefront = await self._storefront_for(context)
        if tenant is None:
            return ToolResult.fail("Tenant not found")
        if storefront is None:
            return ToolResult.fail("Shopify not configured")

        try:
            cart = await storefront.get_cart(cart_id)
        except Exception:
            # Storefront carts expire; a stale id just means nothing is in it
            logger.info("Cart %s could not be fetched, treating as expired", cart_id)
            self.forget_cart(context)
            return ToolResult.ok({"items": [], "message": "Cart is empty or expired"})
        return ToolResult.ok(format_cart(cart))

    async def _search_faqs(self, params: SearchFaqsInput, context: AgentContext) -> ToolResult:
        faqs = await self.retrieval_service.search_faqs(context.tenant_id, params.query)
        if not faqs:
            return ToolResult.ok({"faqs": [], "message": "No relevant FAQs found"})

        return ToolResult.ok(
            {
                "faqs": [
                    {"question": faq.question, "answer": faq.answer, "category": faq.category}
                    for faq in faqs
                ]
            }
        )

    async def _create_order(self, params: CreateOrderInput, context: AgentContext) -> ToolResult:
        cart_id = self.get_cart_id(context)
        if not cart_id:
            return ToolResult.fail("Cart is empty. Add items before creating order.")

        tenant, storefront = await self._storefront_for(context)
        if tenant is None:
            return ToolResult.fail("Tenant not found")
        if storefront is None:
            return ToolResult.fail("Shopify not configured")

        cart = await storefront.get_cart(cart_id)
        if not cart.lines:
            return ToolResult.fail("Cart is empty")

        admin = self.admin_factory(tenant)
        if admin is None:
            return ToolResult.ok(
                {
                    "checkout_url": cart.checkout_url,
                    "message": "Please complete your order using the checkout link",
                }
            )

        draft_order = await admin.create_draft_order(
            [
                DraftOrderLine(variant_id=line.merchandise_id, quantity=line.quantity)
                for line in cart.lines
            ],
            email=params.email,
            note=params.note,
        )
        return ToolResult.ok(
            {
                "order_id": draft_order.id,
                "invoice_url": draft_order.invoice_url,
                "total_price": draft_order.total_price,
                "status": draft_order.status,
                "message": "Draft order created. Check your email for the invoice.",
            }
        )
