"""Product model for the tenant's indexed catalog."""

from datetime import datetime
from decimal import Decimal
from typing import TYPE_CHECKING, Any

from pgvector.sqlalchemy import Vector
from sqlalchemy import DateTime, ForeignKey, Index, Numeric, String, Text
from sqlalchemy.dialects.postgresql import ARRAY, JSONB
from sqlalchemy.orm import Mapped, mapped_column, relationship

from cartpilot.core.config import settings
from cartpilot.models.base import Base, UUIDPrimaryKeyMixin

if TYPE_CHECKING:
    from cartpilot.models.tenant import Tenant


class Product(UUIDPrimaryKeyMixin, Base):
    """Catalog item indexed for semantic search.

    Rows are scoped to a tenant. ``shopify_product_id`` links back to the
    storefront when the catalog was imported from Shopify.
    """

    __tablename__ = "products"

    tenant_id: Mapped[str] = mapped_column(
        String(64),
        ForeignKey("tenants.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    shopify_product_id: Mapped[str | None] = mapped_column(String(255), nullable=True)

    title: Mapped[str] = mapped_column(String(500), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    price: Mapped[Decimal | None] = mapped_column(Numeric(10, 2), nullable=True)
    currency: Mapped[str] = mapped_column(String(3), default="USD", nullable=False)
    image_url: Mapped[str | None] = mapped_column(Text, nullable=True)
    category: Mapped[str | None] = mapped_column(String(255), nullable=True)

    tags: Mapped[list[str]] = mapped_column(
        ARRAY(String),
        default=list,
        nullable=False,
    )
    extra_data: Mapped[dict[str, Any]] = mapped_column(
        "metadata",
        JSONB,
        default=dict,
        nullable=False,
    )

    # Voyage embeddings (document mode)
    embedding: Mapped[list[float] | None] = mapped_column(
        Vector(settings.embedding_dimensions),
        nullable=True,
    )

    synced_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    tenant: Mapped["Tenant"] = relationship(
        "Tenant",
        back_populates="products",
    )

    __table_args__ = (
        Index(
            "ix_products_tenant_shopify_id",
            "tenant_id",
            "shopify_product_id",
            unique=True,
        ),
    )

    def __repr__(self) -> str:
        return f"<Product {self.title} ({self.tenant_id})>"
