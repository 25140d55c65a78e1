"""Pytest configuration and fixtures for the CartPilot test suite.

Provides:
- Disabled rate limiting
- A fake ``async_sessionmaker`` that hands out one mocked AsyncSession
- Tenant fixtures (with and without Shopify credentials)
- Scripted LLM responses for driving the agent loop
- An ASGI test client with the app's services replaced by mocks

Nothing here needs a live database or network access: outbound HTTP is
served by ``httpx.MockTransport`` in the tests that need it.
"""

from collections.abc import AsyncGenerator, AsyncIterator
from contextlib import asynccontextmanager
from typing import Any
from unittest.mock import AsyncMock, MagicMock

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from cartpilot.core.deps import get_chat_agent, get_db, get_llm_client, get_tenant_service
from cartpilot.core.rate_limit import limiter
from cartpilot.integrations.llm.client import ModelResponse
from cartpilot.main import app
from cartpilot.schemas.chat import AgentContext
from cartpilot.schemas.shopify import Cart, CartLine
from cartpilot.schemas.tenant import ShopifyCredentials, TenantConfig

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------
TEST_TENANT_ID = "demo-shop"
TEST_SESSION_ID = "session-123"
TEST_STORE_URL = "https://demo-shop.myshopify.com/"
TEST_CART_ID = "gid://shopify/Cart/abc"
TEST_CHECKOUT_URL = "https://demo-shop.myshopify.com/cart/c/abc"

# ---------------------------------------------------------------------------
# Disable rate limiting globally for tests
# ---------------------------------------------------------------------------
limiter.enabled = False


# ---------------------------------------------------------------------------
# Database session fakes
# ---------------------------------------------------------------------------


class FakeSessionFactory:
    """Stands in for ``async_sessionmaker``; every call yields the same mock session."""

    def __init__(self, session: AsyncMock | None = None) -> None:
        self.session = session or AsyncMock()
        self.calls = 0

    @asynccontextmanager
    async def __call__(self) -> AsyncIterator[AsyncMock]:
        self.calls += 1
        yield self.session


def scalar_result(value: Any) -> MagicMock:
    """Result object whose ``scalar_one_or_none()`` returns ``value``."""
    result = MagicMock()
    result.scalar_one_or_none.return_value = value
    return result


def rows_result(rows: list[Any]) -> MagicMock:
    """Result object whose ``fetchall()`` returns ``rows``."""
    result = MagicMock()
    result.fetchall.return_value = rows
    return result


def scalars_result(items: list[Any]) -> MagicMock:
    """Result object whose ``scalars().all()`` returns ``items``."""
    result = MagicMock()
    result.scalars.return_value.all.return_value = items
    return result


@pytest.fixture
def session_factory() -> FakeSessionFactory:
    return FakeSessionFactory()


# ---------------------------------------------------------------------------
# Tenants & context
# ---------------------------------------------------------------------------


@pytest.fixture
def tenant() -> TenantConfig:
    """Tenant with Storefront credentials but no Admin token."""
    return TenantConfig(
        id=TEST_TENANT_ID,
        name="Demo Shop",
        system_prompt=None,
        shopify_credentials=ShopifyCredentials(
            store_url=TEST_STORE_URL,
            storefront_token="storefront-token",
        ),
    )


@pytest.fixture
def admin_tenant(tenant: TenantConfig) -> TenantConfig:
    """Tenant with both Storefront and Admin credentials."""
    assert tenant.shopify_credentials is not None
    return tenant.model_copy(
        update={
            "shopify_credentials": tenant.shopify_credentials.model_copy(
                update={"admin_token": "shpat_admin"}
            )
        }
    )


@pytest.fixture
def bare_tenant() -> TenantConfig:
    """Tenant without any Shopify credentials."""
    return TenantConfig(id=TEST_TENANT_ID, name="Demo Shop")


@pytest.fixture
def agent_context() -> AgentContext:
    return AgentContext(tenant_id=TEST_TENANT_ID, session_id=TEST_SESSION_ID)


def make_cart(*lines: tuple[str, int], cart_id: str = TEST_CART_ID) -> Cart:
    return Cart(
        cart_id=cart_id,
        checkout_url=TEST_CHECKOUT_URL,
        lines=[CartLine(merchandise_id=variant, quantity=qty) for variant, qty in lines],
    )


# ---------------------------------------------------------------------------
# Scripted model responses
# ---------------------------------------------------------------------------


def text_response(text: str) -> ModelResponse:
    """A final answer with no tool calls."""
    return ModelResponse(content=[{"type": "text", "text": text}], stop_reason="end_turn")


def tool_response(
    name: str,
    tool_input: dict[str, Any] | None = None,
    tool_id: str = "toolu_1",
    text: str = "",
) -> ModelResponse:
    """A response requesting one tool call, optionally with some text."""
    content: list[dict[str, Any]] = []
    if text:
        content.append({"type": "text", "text": text})
    content.append(
        {"type": "tool_use", "id": tool_id, "name": name, "input": tool_input or {}}
    )
    return ModelResponse(content=content, stop_reason="tool_use")


# ---------------------------------------------------------------------------
# ASGI client with mocked services
# ---------------------------------------------------------------------------


@pytest.fixture
def mock_tenant_service(tenant: TenantConfig) -> MagicMock:
    service = MagicMock()
    service.get_tenant = AsyncMock(return_value=tenant)
    return service


@pytest.fixture
def mock_chat_agent() -> MagicMock:
    agent = MagicMock()
    agent.process_message = AsyncMock()
    return agent


@pytest.fixture
def mock_llm_client() -> MagicMock:
    client = MagicMock()
    client.complete = AsyncMock(return_value="Hello!")
    return client


@pytest_asyncio.fixture
async def client(
    mock_tenant_service: MagicMock,
    mock_chat_agent: MagicMock,
    mock_llm_client: MagicMock,
) -> AsyncGenerator[AsyncClient, None]:
    """Async test client with the app's long-lived services overridden."""

    async def _override_db() -> AsyncGenerator[AsyncMock, None]:
        yield AsyncMock()

    app.dependency_overrides[get_db] = _override_db
    app.dependency_overrides[get_tenant_service] = lambda: mock_tenant_service
    app.dependency_overrides[get_chat_agent] = lambda: mock_chat_agent
    app.dependency_overrides[get_llm_client] = lambda: mock_llm_client

    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as ac:
        yield ac

    app.dependency_overrides.clear()


@pytest_asyncio.fixture
async def plain_client() -> AsyncGenerator[AsyncClient, None]:
    """Minimal async test client with NO dependency overrides."""
    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as ac:
        yield ac
