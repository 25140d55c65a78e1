"""Backfills document-mode embeddings for catalog items and FAQs."""

import logging
from dataclasses import dataclass

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from cartpilot.models.faq import Faq
from cartpilot.models.product import Product
from cartpilot.services.embedding_service import EmbeddingService, get_embedding_service

logger = logging.getLogger(__name__)


@dataclass
class IndexingResult:
    """Number of rows embedded per corpus."""

    products: int = 0
    faqs: int = 0


def product_document(product: Product) -> str:
    """Text embedded for a product: ``title. description`` (description optional)."""
    description = (product.description or "").strip()
    return f"{product.title}. {description}" if description else product.title


def faq_document(faq: Faq) -> str:
    return f"Q: {faq.question}\nA: {faq.answer}"


class IndexingService:
    """Embeds rows whose ``embedding`` is still NULL.

    Only this job writes vectors; search results fetched live from the
    storefront are never stored here.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        embedding_service: EmbeddingService | None = None,
    ) -> None:
        self.session_factory = session_factory
        self.embedding_service = embedding_service or get_embedding_service()

    async def embed_missing(self, tenant_id: str | None = None) -> IndexingResult:
        """Embed every product and FAQ without a vector.

        Args:
            tenant_id: Limit the backfill to one tenant (all tenants if None)

        Returns:
            IndexingResult with per-corpus counts
        """
        result = IndexingResult()

        async with self.session_factory() as session:
            product_stmt = select(Product).where(Product.embedding.is_(None))
            faq_stmt = select(Faq).where(Faq.embedding.is_(None))
            if tenant_id is not None:
                product_stmt = product_stmt.where(Product.tenant_id == tenant_id)
                faq_stmt = faq_stmt.where(Faq.tenant_id == tenant_id)

            products = list((await session.execute(product_stmt)).scalars().all())
            logger.info("Found %d products without embeddings", len(products))
            if products:
                vectors = await self.embedding_service.embed_batch(
                    [product_document(product) for product in products]
                )
                for product, vector in zip(products, vectors, strict=True):
                    product.embedding = vector
                result.products = len(products)

            faqs = list((await session.execute(faq_stmt)).scalars().all())
            logger.info("Found %d FAQs without embeddings", len(faqs))
            if faqs:
                vectors = await self.embedding_service.embed_batch(
                    [faq_document(faq) for faq in faqs]
                )
                for faq, vector in zip(faqs, vectors, strict=True):
                    faq.embedding = vector
                result.faqs = len(faqs)

            await session.commit()

        return result
