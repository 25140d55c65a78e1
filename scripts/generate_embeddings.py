"""Generate Voyage embeddings for products and FAQs that have none yet.

Usage:
    uv run python -m scripts.generate_embeddings
    uv run python -m scripts.generate_embeddings --tenant demo-shop
"""

import argparse
import asyncio

from cartpilot.core.database import async_session_maker, engine
from cartpilot.core.logging_config import setup_logging
from cartpilot.services.indexing_service import IndexingService


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Embed catalog items and FAQs missing vectors")
    parser.add_argument("--tenant", help="Only embed rows for this tenant id")
    return parser


async def main(tenant_id: str | None = None) -> None:
    service = IndexingService(async_session_maker)
    try:
        result = await service.embed_missing(tenant_id)
    finally:
        await engine.dispose()

    scope = tenant_id or "all tenants"
    print(f"Embedded {result.products} products and {result.faqs} FAQs ({scope})")


if __name__ == "__main__":
    setup_logging(debug=False)
    args = build_parser().parse_args()
    asyncio.run(main(args.tenant))
