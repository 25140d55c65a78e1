"""RAG retrieval service using pgvector for semantic search."""

import asyncio
import logging
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from cartpilot.core.config import settings
from cartpilot.models.faq import Faq
from cartpilot.models.product import Product
from cartpilot.services.embedding_service import EmbeddingService, get_embedding_service

logger = logging.getLogger(__name__)


@dataclass
class RetrievedProduct:
    """A catalog item retrieved from vector search."""

    id: UUID
    title: str
    description: str | None
    price: Decimal | None
    currency: str
    image_url: str | None
    category: str | None
    similarity: float


@dataclass
class RetrievedFaq:
    """A help article retrieved from vector search."""

    id: UUID
    question: str
    answer: str
    category: str | None
    similarity: float


@dataclass
class RetrievalResult:
    """Combined catalog and help hits for one query."""

    products: list[RetrievedProduct] = field(default_factory=list)
    faqs: list[RetrievedFaq] = field(default_factory=list)


class RetrievalService:
    """Service for RAG retrieval using vector similarity search.

    Each store query runs in its own session so the catalog and help lookups
    in ``search`` can run concurrently.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        embedding_service: EmbeddingService | None = None,
        product_limit: int | None = None,
        faq_limit: int | None = None,
        similarity_threshold: float | None = None,
    ) -> None:
        self.session_factory = session_factory
        self.embedding_service = embedding_service or get_embedding_service()
        self.product_limit = product_limit or settings.rag_product_limit
        self.faq_limit = faq_limit or settings.rag_faq_limit
        self.similarity_threshold = (
            settings.rag_similarity_threshold
            if similarity_threshold is None
            else similarity_threshold
        )

    async def _fetch_rows(self, stmt: Any) -> list[Any]:
        async with self.session_factory() as session:
            result = await session.execute(stmt)
            return list(result.fetchall())

    async def _products_for_vector(
        self, tenant_id: str, query_embedding: list[float], limit: int
    ) -> list[RetrievedProduct]:
        # pgvector cosine distance is 1 - cosine_similarity
        distance = Product.embedding.cosine_distance(query_embedding)
        stmt = (
            select(
                Product.id,
                Product.title,
                Product.description,
                Product.price,
                Product.currency,
                Product.image_url,
                Product.category,
                (1 - distance).label("similarity"),
            )
            .where(
                Product.tenant_id == tenant_id,
                Product.embedding.isnot(None),
            )
            .order_by(distance)
            .limit(limit)
        )
        rows = await self._fetch_rows(stmt)

        return [
            RetrievedProduct(
                id=row.id,
                title=row.title,
                description=row.description,
                price=row.price,
                currency=row.currency,
                image_url=row.image_url,
                category=row.category,
                similarity=float(row.similarity),
            )
            for row in rows
            if float(row.similarity) >= self.similarity_threshold
        ]

    async def _faqs_for_vector(
        self, tenant_id: str, query_embedding: list[float], limit: int
    ) -> list[RetrievedFaq]:
        distance = Faq.embedding.cosine_distance(query_embedding)
        stmt = (
            select(
                Faq.id,
                Faq.question,
                Faq.answer,
                Faq.category,
                (1 - distance).label("similarity"),
            )
            .where(
                Faq.tenant_id == tenant_id,
                Faq.embedding.isnot(None),
            )
            .order_by(distance)
            .limit(limit)
        )
        rows = await self._fetch_rows(stmt)

        return [
            RetrievedFaq(
                id=row.id,
                question=row.question,
                answer=row.answer,
                category=row.category,
                similarity=float(row.similarity),
            )
            for row in rows
            if float(row.similarity) >= self.similarity_threshold
        ]

    async def search_products(
        self,
        tenant_id: str,
        query: str,
        limit: int | None = None,
    ) -> list[RetrievedProduct]:
        """Search the tenant's indexed catalog.

        Args:
            tenant_id: Filter to this tenant only (multi-tenant isolation)
            query: The shopper's search text
            limit: Maximum number of hits before the similarity floor is applied

        Returns:
            Hits at or above the similarity floor, most similar first
        """
        if not query or not query.strip():
            return []

        query_embedding = await self.embedding_service.embed_query(query)
        return await self._products_for_vector(
            tenant_id, query_embedding, limit or self.product_limit
        )

    async def search_faqs(
        self,
        tenant_id: str,
        query: str,
        limit: int | None = None,
    ) -> list[RetrievedFaq]:
        """Search the tenant's help articles. Same contract as ``search_products``."""
        if not query or not query.strip():
            return []

        query_embedding = await self.embedding_service.embed_query(query)
        return await self._faqs_for_vector(tenant_id, query_embedding, limit or self.faq_limit)

    async def search(self, tenant_id: str, query: str) -> RetrievalResult:
        """Embed the query once and search both corpora concurrently."""
        if not query or not query.strip():
            return RetrievalResult()

        query_embedding = await self.embedding_service.embed_query(query)
        products, faqs = await asyncio.gather(
            self._products_for_vector(tenant_id, query_embedding, self.product_limit),
            self._faqs_for_vector(tenant_id, query_embedding, self.faq_limit),
        )
        logger.debug(
            "Retrieved %d products and %d FAQs for tenant %s",
            len(products),
            len(faqs),
            tenant_id,
        )
        return RetrievalResult(products=products, faqs=faqs)

    def build_context(self, results: RetrievalResult) -> str:
        """Format retrieved hits as context for the LLM.

        Sections with no hits are omitted; an empty string means no context.
        """
        sections = []

        if results.products:
            lines = []
            for product in results.products:
                price = (
                    f"${product.price} {product.currency}"
                    if product.price
                    else "Price not available"
                )
                description = product.description or "No description"
                lines.append(f"- {product.title}: {description} ({price})")
            sections.append("**Relevant Products:**\n" + "\n".join(lines))

        if results.faqs:
            faq_list = "\n\n".join(f"Q: {faq.question}\nA: {faq.answer}" for faq in results.faqs)
            sections.append(f"**Relevant FAQs:**\n{faq_list}")

        return "\n\n".join(sections)
