"""Tests for tenant resolution and its TTL cache."""

from types import SimpleNamespace

import pytest
from sqlalchemy.exc import OperationalError

from cartpilot.core.encryption import encrypt_token
from cartpilot.core.exceptions import TenantLookupError
from cartpilot.services.tenant_service import TenantService, to_tenant_config
from tests.conftest import TEST_STORE_URL, TEST_TENANT_ID, FakeSessionFactory, scalar_result


class FakeClock:
    def __init__(self) -> None:
        self.now = 1000.0

    def __call__(self) -> float:
        return self.now


def _tenant_row(**overrides: object) -> SimpleNamespace:
    values: dict[str, object] = {
        "id": TEST_TENANT_ID,
        "name": "Demo Shop",
        "system_prompt": None,
        "shopify_store_url": TEST_STORE_URL,
        "shopify_storefront_token": encrypt_token("storefront-token"),
        "shopify_admin_token": None,
        "widget_config": {"primary_color": "#000"},
    }
    values.update(overrides)
    return SimpleNamespace(**values)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def service(session_factory: FakeSessionFactory, clock: FakeClock) -> TenantService:
    return TenantService(session_factory, cache_ttl_seconds=300, clock=clock)


class TestToTenantConfig:
    def test_decrypts_tokens(self) -> None:
        config = to_tenant_config(_tenant_row(shopify_admin_token=encrypt_token("shpat_admin")))

        assert config.shopify_credentials is not None
        assert config.shopify_credentials.storefront_token == "storefront-token"
        assert config.shopify_credentials.admin_token == "shpat_admin"
        assert config.widget_config == {"primary_color": "#000"}

    def test_no_store_url_means_no_credentials(self) -> None:
        config = to_tenant_config(_tenant_row(shopify_store_url=None))
        assert config.shopify_credentials is None


class TestGetTenant:
    async def test_found_and_cached(
        self, service: TenantService, session_factory: FakeSessionFactory
    ) -> None:
        session_factory.session.execute.return_value = scalar_result(_tenant_row())

        first = await service.get_tenant(TEST_TENANT_ID)
        second = await service.get_tenant(TEST_TENANT_ID)

        assert first is not None and first.name == "Demo Shop"
        assert second == first
        assert session_factory.session.execute.await_count == 1

    async def test_unknown_tenant_is_negatively_cached(
        self, service: TenantService, session_factory: FakeSessionFactory
    ) -> None:
        session_factory.session.execute.return_value = scalar_result(None)

        assert await service.get_tenant("no-such-shop") is None
        assert await service.get_tenant("no-such-shop") is None
        assert session_factory.session.execute.await_count == 1

    async def test_entry_expires_after_ttl(
        self,
        service: TenantService,
        session_factory: FakeSessionFactory,
        clock: FakeClock,
    ) -> None:
        session_factory.session.execute.return_value = scalar_result(_tenant_row())

        await service.get_tenant(TEST_TENANT_ID)
        clock.now += 299
        await service.get_tenant(TEST_TENANT_ID)
        assert session_factory.session.execute.await_count == 1

        clock.now += 2
        await service.get_tenant(TEST_TENANT_ID)
        assert session_factory.session.execute.await_count == 2

    @pytest.mark.parametrize("tenant_id", ["", "   "])
    async def test_blank_id(
        self, service: TenantService, session_factory: FakeSessionFactory, tenant_id: str
    ) -> None:
        assert await service.get_tenant(tenant_id) is None
        assert session_factory.calls == 0

    async def test_database_failure_raises_and_is_not_cached(
        self, service: TenantService, session_factory: FakeSessionFactory
    ) -> None:
        session_factory.session.execute.side_effect = OperationalError("SELECT", {}, Exception("down"))

        with pytest.raises(TenantLookupError):
            await service.get_tenant(TEST_TENANT_ID)
        assert service.cached_tenant_ids() == []

        session_factory.session.execute.side_effect = None
        session_factory.session.execute.return_value = scalar_result(_tenant_row())
        assert await service.get_tenant(TEST_TENANT_ID) is not None


class TestHelpers:
    async def test_system_prompt_falls_back_to_default(
        self, service: TenantService, session_factory: FakeSessionFactory
    ) -> None:
        session_factory.session.execute.return_value = scalar_result(_tenant_row())
        assert await service.get_system_prompt(TEST_TENANT_ID, "default") == "default"

    async def test_custom_system_prompt(
        self, service: TenantService, session_factory: FakeSessionFactory
    ) -> None:
        session_factory.session.execute.return_value = scalar_result(
            _tenant_row(system_prompt="Talk like a pirate.")
        )
        assert await service.get_system_prompt(TEST_TENANT_ID, "default") == "Talk like a pirate."

    async def test_validate_and_widget_config(
        self, service: TenantService, session_factory: FakeSessionFactory
    ) -> None:
        session_factory.session.execute.return_value = scalar_result(None)
        assert await service.validate_tenant("ghost") is False
        assert await service.get_widget_config("ghost") == {}

    async def test_clear_cache(
        self, service: TenantService, session_factory: FakeSessionFactory
    ) -> None:
        session_factory.session.execute.return_value = scalar_result(_tenant_row())
        await service.get_tenant(TEST_TENANT_ID)
        assert service.cached_tenant_ids() == [TEST_TENANT_ID]

        service.clear_cache(TEST_TENANT_ID)
        assert service.cached_tenant_ids() == []

        await service.get_tenant(TEST_TENANT_ID)
        service.clear_cache()
        assert service.cached_tenant_ids() == []
        assert session_factory.session.execute.await_count == 2
