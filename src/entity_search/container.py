"""
Application DI Container (dependency-injector).

Centralizes service creation and lifecycle management. The registry is
built once; every collaborator downstream of it is a process-wide singleton.

Usage::

    from entity_search.container import ApplicationContainer

    container = ApplicationContainer()
    container.config.from_dict({
        "config_path": "config/search.yaml",
        "es_url": "http://localhost:9200",
        "timeout": 30.0,
        "max_retries": 2,
    })

    searcher = container.searcher()

    # In tests, override any provider:
    container.gateway.override(providers.Object(fake_gateway))
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any

from dependency_injector import containers, providers

from entity_search.application.events import LoggingEventSink
from entity_search.application.search import (
    IntentCascadeOrchestrator,
    MultiTypeOrchestrator,
    QueryBuilder,
    QueryCompiler,
    ResponseProcessor,
    Searcher,
)
from entity_search.shared.exceptions import ConfigurationError

logger = logging.getLogger(__name__)

DEFAULT_ES_URL = "http://localhost:9200"


def _create_registry(config_path: str | None, raw: Mapping[str, Any] | None) -> object:
    """Registry from an inline mapping, else from the YAML file at ``config_path``."""
    from entity_search.application.registry import build_registry, load_registry

    if raw:
        return build_registry(raw)
    if not config_path:
        raise ConfigurationError(
            "No search configuration given (set ENTITY_SEARCH_CONFIG)",
            code="MISSING_SEARCH_CONFIG",
        )
    return load_registry(config_path)


def _create_gateway(es_url: str | None, timeout: float | None, max_retries: int | None) -> object:
    """Lazy factory for ElasticsearchGateway (avoids top-level import)."""
    from entity_search.infrastructure.elasticsearch import ElasticsearchGateway

    gateway = ElasticsearchGateway(
        es_url or DEFAULT_ES_URL,
        timeout=float(timeout) if timeout is not None else ElasticsearchGateway.DEFAULT_TIMEOUT,
        max_retries=int(max_retries) if max_retries is not None else ElasticsearchGateway.DEFAULT_MAX_RETRIES,
    )
    logger.info(f"Search backend: {gateway.base_url}")
    return gateway


def _create_tenant_strategy(registry: Any) -> object:
    """Lazy factory for the tenant strategy named in the registry."""
    from entity_search.application.search.tenant import resolve_tenant_strategy

    return resolve_tenant_strategy(registry.tenant)


class ApplicationContainer(containers.DeclarativeContainer):
    """Central DI container for the Entity Search application.

    Manages creation and lifecycle of all core services:
    - ``registry``: Immutable type registry built from configuration
    - ``gateway``: Search backend client
    - ``orchestrator`` / ``cascade``: Multi-type and intent-cascade orchestration
    - ``searcher``: Caller-facing facade
    """

    config = providers.Configuration()

    registry = providers.Singleton(
        _create_registry,
        config_path=config.config_path,
        raw=config.search_config,
    )

    gateway = providers.Singleton(
        _create_gateway,
        es_url=config.es_url,
        timeout=config.timeout,
        max_retries=config.max_retries,
    )

    compiler = providers.Singleton(QueryCompiler, registry=registry)
    builder = providers.Singleton(QueryBuilder, compiler=compiler)
    processor = providers.Singleton(ResponseProcessor, registry=registry)

    orchestrator = providers.Singleton(
        MultiTypeOrchestrator,
        builder=builder,
        processor=processor,
        gateway=gateway,
    )

    cascade = providers.Singleton(
        IntentCascadeOrchestrator,
        registry=registry,
        gateway=gateway,
        processor=processor,
        orchestrator=orchestrator,
    )

    tenant = providers.Singleton(_create_tenant_strategy, registry=registry)

    event_sink = providers.Singleton(LoggingEventSink)

    searcher = providers.Singleton(
        Searcher,
        registry=registry,
        orchestrator=orchestrator,
        cascade=cascade,
        tenant=tenant,
        gateway=gateway,
        event_sink=event_sink,
    )


__all__ = ["ApplicationContainer"]
