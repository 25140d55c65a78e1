"""Tool declarations exposed to the model.

Each tool pairs a name and description with a Pydantic input model. The
model's JSON schema is what the LLM sees as ``input_schema``, and the same
model validates the (untrusted) input the LLM sends back.
"""

from dataclasses import dataclass
from typing import Any

from pydantic import AliasChoices, BaseModel, Field, ValidationError, field_validator

# --- Input schemas ---

MAX_SEARCH_LIMIT = 20


class SearchProductsInput(BaseModel):
    """Input for catalog search."""

    query: str = Field(description="Search query for finding products")
    limit: int = Field(5, description="Maximum number of results (default 5, at most 20)")

    @field_validator("query")
    @classmethod
    def _query_not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("Search query is required")
        return value

    @field_validator("limit")
    @classmethod
    def _clamp_limit(cls, value: int) -> int:
        return max(1, min(value, MAX_SEARCH_LIMIT))


class ProductDetailsInput(BaseModel):
    """Input for product detail lookup."""

    product_handle: str = Field(
        description="Product handle (URL slug)",
        min_length=1,
        validation_alias=AliasChoices("product_handle", "productHandle"),
    )


class AddToCartInput(BaseModel):
    """Input for adding a variant to the cart."""

    variant_id: str = Field(
        description="Product variant ID to add",
        min_length=1,
        validation_alias=AliasChoices("variant_id", "variantId"),
    )
    quantity: int = Field(1, description="Quantity to add (default 1)", ge=1)


class GetCartInput(BaseModel):
    """The cart tool takes no arguments; the session identifies the cart."""


class SearchFaqsInput(BaseModel):
    """Input for help article search."""

    query: str = Field(description="Question or topic to search")

    @field_validator("query")
    @classmethod
    def _query_not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("Search query is required")
        return value


class CreateOrderInput(BaseModel):
    """Input for creating a draft order from the session cart."""

    email: str = Field(description="Customer email address")
    note: str | None = Field(None, description="Optional note for the order")

    @field_validator("email")
    @classmethod
    def _plausible_email(cls, value: str) -> str:
        value = value.strip()
        if "@" not in value:
            raise ValueError("Valid email address is required")
        return value


# --- Registry ---


@dataclass(frozen=True)
class ToolSpec:
    """Static declaration of one tool."""

    name: str
    description: str
    input_model: type[BaseModel]

    def definition(self) -> dict[str, Any]:
        """Provider-facing tool declaration."""
        return {
            "name": self.name,
            "description": self.description,
            "input_schema": self.input_model.model_json_schema(),
        }


TOOLS: tuple[ToolSpec, ...] = (
    ToolSpec(
        name="search_products",
        description="Search for products in the store by keywords or description",
        input_model=SearchProductsInput,
    ),
    ToolSpec(
        name="get_product_details",
        description="Get detailed information about a specific product by its handle/slug",
        input_model=ProductDetailsInput,
    ),
    ToolSpec(
        name="add_to_cart",
        description="Add a product variant to the shopping cart",
        input_model=AddToCartInput,
    ),
    ToolSpec(
        name="get_cart",
        description="Get current shopping cart contents and checkout URL",
        input_model=GetCartInput,
    ),
    ToolSpec(
        name="search_faqs",
        description=(
            "Search FAQ/help articles for customer questions about shipping, returns, policies"
        ),
        input_model=SearchFaqsInput,
    ),
    ToolSpec(
        name="create_order",
        description="Create a draft order for the customer (requires customer email)",
        input_model=CreateOrderInput,
    ),
)

TOOL_SPECS: dict[str, ToolSpec] = {spec.name: spec for spec in TOOLS}

TOOL_DEFINITIONS: list[dict[str, Any]] = [spec.definition() for spec in TOOLS]

# Messages for missing required fields, matching what the validators say
# when the field is present but unusable.
_MISSING_FIELD_MESSAGES = {
    "query": "Search query is required",
    "product_handle": "Product handle is required",
    "variant_id": "Variant ID is required",
    "email": "Valid email address is required",
}

# Fields the model may send in camelCase
_FIELD_ALIASES = {"variantId": "variant_id", "productHandle": "product_handle"}


def format_validation_error(error: ValidationError) -> str:
    """Turn the first validation problem into a short message for the model."""
    first = error.errors()[0]
    field = ".".join(str(part) for part in first["loc"]) or "input"
    field = _FIELD_ALIASES.get(field, field)

    if first["type"] == "missing":
        return _MISSING_FIELD_MESSAGES.get(field, f"{field} is required")
    if first["type"] == "value_error":
        return str(first.get("ctx", {}).get("error", first["msg"]))
    if first["type"] == "string_too_short" and field in _MISSING_FIELD_MESSAGES:
        return _MISSING_FIELD_MESSAGES[field]
    return f"{field}: {first['msg']}"
