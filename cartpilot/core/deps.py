"""Dependency injection for FastAPI routes."""

import logging
from collections.abc import AsyncGenerator
from typing import Annotated

from fastapi import Depends, Header, HTTPException, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from cartpilot.core.database import get_async_session
from cartpilot.core.exceptions import TenantLookupError
from cartpilot.core.logging_config import tenant_id_var
from cartpilot.integrations.llm.client import LLMClient
from cartpilot.schemas.tenant import TenantConfig
from cartpilot.services.chat_agent import ChatAgent
from cartpilot.services.tenant_service import TenantService

logger = logging.getLogger(__name__)


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """Yield a database session."""
    async for session in get_async_session():
        yield session


# Database session dependency
DBSession = Annotated[AsyncSession, Depends(get_db)]


# Long-lived services are built once in the app lifespan and kept on app.state


def get_llm_client(request: Request) -> LLMClient:
    llm_client: LLMClient = request.app.state.llm_client
    return llm_client


def get_tenant_service(request: Request) -> TenantService:
    tenant_service: TenantService = request.app.state.tenant_service
    return tenant_service


def get_chat_agent(request: Request) -> ChatAgent:
    chat_agent: ChatAgent = request.app.state.chat_agent
    return chat_agent


async def get_tenant(
    tenant_service: Annotated[TenantService, Depends(get_tenant_service)],
    x_tenant_id: str = Header(..., alias="X-Tenant-ID", description="Tenant (store) id"),
) -> TenantConfig:
    """Resolve the tenant named by the ``X-Tenant-ID`` header.

    Used by every widget-facing endpoint. Also tags subsequent log records
    with the tenant id.
    """
    try:
        tenant = await tenant_service.get_tenant(x_tenant_id.strip())
    except TenantLookupError:
        logger.exception("Tenant lookup failed for %s", x_tenant_id)
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Service temporarily unavailable",
        ) from None

    if tenant is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Tenant not found",
        )

    tenant_id_var.set(tenant.id)
    return tenant


CurrentTenant = Annotated[TenantConfig, Depends(get_tenant)]
ChatAgentDep = Annotated[ChatAgent, Depends(get_chat_agent)]
LLMClientDep = Annotated[LLMClient, Depends(get_llm_client)]


__all__ = [
    "ChatAgentDep",
    "CurrentTenant",
    "DBSession",
    "LLMClientDep",
    "get_chat_agent",
    "get_db",
    "get_llm_client",
    "get_tenant",
    "get_tenant_service",
]
