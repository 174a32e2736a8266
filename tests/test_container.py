"""Tests for DI container and application lifecycle."""

from __future__ import annotations

import pytest
from conftest import CAR_CONFIG, FakeGateway
from dependency_injector import providers

from entity_search.application.events import LoggingEventSink
from entity_search.application.search import Searcher
from entity_search.application.search.tenant import DosageTextStrategy, TenantStrategy
from entity_search.container import DEFAULT_ES_URL, ApplicationContainer
from entity_search.infrastructure.elasticsearch import ElasticsearchGateway
from entity_search.shared.exceptions import ConfigurationError

# ============================================================================
# DI Container Tests
# ============================================================================


class TestApplicationContainer:
    """Test the DI container manages services correctly."""

    def test_registry_from_inline_config(self) -> None:
        container = ApplicationContainer()
        container.config.from_dict({"search_config": CAR_CONFIG})
        registry = container.registry()
        assert registry.instance_name == "carDekho"
        assert container.registry() is registry

    def test_registry_from_file(self, tmp_path) -> None:
        path = tmp_path / "search.yaml"
        path.write_text("instance_name: shop\ntypes:\n  product:\n    query_fields: [name]\n", encoding="utf-8")
        container = ApplicationContainer()
        container.config.from_dict({"config_path": str(path)})
        assert container.registry().instance_name == "shop"

    def test_missing_configuration(self) -> None:
        container = ApplicationContainer()
        with pytest.raises(ConfigurationError) as exc:
            container.registry()
        assert exc.value.code == "MISSING_SEARCH_CONFIG"

    def test_gateway_defaults(self) -> None:
        container = ApplicationContainer()
        gateway = container.gateway()
        assert isinstance(gateway, ElasticsearchGateway)
        assert gateway.base_url == DEFAULT_ES_URL

    def test_gateway_from_config(self) -> None:
        container = ApplicationContainer()
        container.config.from_dict({"es_url": "http://es:9200/", "timeout": "5", "max_retries": "1"})
        assert container.gateway().base_url == "http://es:9200"

    def test_searcher_singleton(self) -> None:
        """Searcher provider returns the same instance (Singleton)."""
        container = ApplicationContainer()
        container.config.from_dict({"search_config": CAR_CONFIG})
        container.gateway.override(providers.Object(FakeGateway()))

        s1 = container.searcher()
        s2 = container.searcher()
        assert isinstance(s1, Searcher)
        assert s1 is s2
        assert isinstance(container.event_sink(), LoggingEventSink)

    def test_tenant_strategy_from_registry(self) -> None:
        container = ApplicationContainer()
        container.config.from_dict({"search_config": CAR_CONFIG})
        assert type(container.tenant()) is TenantStrategy

        container = ApplicationContainer()
        container.config.from_dict({"search_config": {**CAR_CONFIG, "tenant": {"strategy": "dosage_units"}}})
        assert isinstance(container.tenant(), DosageTextStrategy)

    async def test_override_gateway(self) -> None:
        fake = FakeGateway()
        container = ApplicationContainer()
        container.config.from_dict({"search_config": CAR_CONFIG})
        container.gateway.override(providers.Object(fake))

        await container.searcher().search({}, {"type": "used_car"})

        fake.execute.assert_awaited_once()
