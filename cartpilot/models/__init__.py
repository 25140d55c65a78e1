"""SQLAlchemy models."""

from cartpilot.models.base import Base
from cartpilot.models.faq import Faq
from cartpilot.models.product import Product
from cartpilot.models.tenant import Tenant

__all__ = [
    # Base
    "Base",
    # Tenants
    "Tenant",
    # Indexed content
    "Product",
    "Faq",
]
