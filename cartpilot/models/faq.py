"""FAQ model for tenant help articles."""

from typing import TYPE_CHECKING

from pgvector.sqlalchemy import Vector
from sqlalchemy import ForeignKey, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from cartpilot.core.config import settings
from cartpilot.models.base import Base, UUIDPrimaryKeyMixin

if TYPE_CHECKING:
    from cartpilot.models.tenant import Tenant


class Faq(UUIDPrimaryKeyMixin, Base):
    """Question/answer pair (shipping, returns, policies, ...)."""

    __tablename__ = "faqs"

    tenant_id: Mapped[str] = mapped_column(
        String(64),
        ForeignKey("tenants.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    question: Mapped[str] = mapped_column(Text, nullable=False)
    answer: Mapped[str] = mapped_column(Text, nullable=False)
    category: Mapped[str | None] = mapped_column(String(255), nullable=True)

    embedding: Mapped[list[float] | None] = mapped_column(
        Vector(settings.embedding_dimensions),
        nullable=True,
    )

    tenant: Mapped["Tenant"] = relationship(
        "Tenant",
        back_populates="faqs",
    )

    def __repr__(self) -> str:
        return f"<Faq {self.question[:40]} ({self.tenant_id})>"
