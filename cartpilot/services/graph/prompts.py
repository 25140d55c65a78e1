"""System prompts for the sales agent."""

from cartpilot.services.tools.registry import TOOLS

DEFAULT_SYSTEM_PROMPT = """You are a helpful sales assistant for an online store.
Your job is to help customers:
- Find products they're looking for
- Answer questions about products and policies
- Help them add items to cart and checkout

Be friendly, concise, and helpful. Use the available tools to search products and manage the cart.
When recommending products, always include prices and key features.
If asked about shipping, returns, or policies, search the FAQs.

IMPORTANT:
- Always search for products before recommending
- Confirm with customer before adding to cart
- Provide checkout link when customer is ready to buy
- If you don't find relevant products, let the customer know and suggest alternatives
- Never make up product information - only use what the tools return"""

CONTEXT_SECTION_TEMPLATE = """

---
CONTEXT FROM STORE DATABASE:
{context}
---

Use the above context to answer customer questions when relevant.
If the context doesn't contain needed information, use the search tools."""

# When to reach for each tool; every registered tool needs an entry
TOOL_GUIDANCE = {
    "search_products": (
        "Use when customer asks about products, looking for items, or needs recommendations"
    ),
    "get_product_details": "Use when customer wants more info about a specific product",
    "add_to_cart": "Use ONLY after customer confirms they want to add an item",
    "get_cart": "Use to show customer their current cart or before checkout",
    "search_faqs": "Use for questions about shipping, returns, policies, store info",
    "create_order": "Use when customer provides email and wants to place order",
}


def build_system_prompt(tenant_prompt: str | None, rag_context: str) -> str:
    """Combine the tenant's instructions (or the default) with retrieved context."""
    base_prompt = tenant_prompt or DEFAULT_SYSTEM_PROMPT
    if not rag_context or not rag_context.strip():
        return base_prompt
    return base_prompt + CONTEXT_SECTION_TEMPLATE.format(context=rag_context)


def build_tool_guidance() -> str:
    lines = [f"- {spec.name}: {TOOL_GUIDANCE[spec.name]}" for spec in TOOLS]
    return "\nTOOL USAGE GUIDELINES:\n" + "\n".join(lines)
