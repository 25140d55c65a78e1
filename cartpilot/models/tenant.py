"""Tenant model for per-storefront configuration."""

from datetime import datetime
from typing import TYPE_CHECKING, Any

from sqlalchemy import CheckConstraint, DateTime, String, Text, func
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column, relationship

from cartpilot.models.base import Base

if TYPE_CHECKING:
    from cartpilot.models.faq import Faq
    from cartpilot.models.product import Product


class Tenant(Base):
    """One storefront using the chat widget.

    The id is a stable, human-chosen slug (e.g. ``demo-shop``) that the widget
    sends with every request. Shopify tokens are stored Fernet-encrypted.
    """

    __tablename__ = "tenants"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)

    # Custom persona / instructions for the assistant (None = default prompt)
    system_prompt: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Shopify credentials
    shopify_store_url: Mapped[str | None] = mapped_column(String(255), nullable=True)
    shopify_storefront_token: Mapped[str | None] = mapped_column(Text, nullable=True)
    shopify_admin_token: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Widget look & feel, passed through to the embed script
    widget_config: Mapped[dict[str, Any]] = mapped_column(
        JSONB,
        default=dict,
        nullable=False,
    )

    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )

    products: Mapped[list["Product"]] = relationship(
        "Product",
        back_populates="tenant",
        cascade="all, delete-orphan",
    )
    faqs: Mapped[list["Faq"]] = relationship(
        "Faq",
        back_populates="tenant",
        cascade="all, delete-orphan",
    )

    __table_args__ = (CheckConstraint("id ~ '^[a-z0-9-]+$'", name="id_format"),)

    def __repr__(self) -> str:
        return f"<Tenant {self.id} ({self.name})>"
