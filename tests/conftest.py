"""
Pytest configuration and shared fixtures.
"""

from __future__ import annotations

import copy
from typing import Any
from unittest.mock import AsyncMock

import pytest

from entity_search.application.registry import build_registry
from entity_search.application.search import (
    IntentCascadeOrchestrator,
    MultiTypeOrchestrator,
    QueryBuilder,
    QueryCompiler,
    ResponseProcessor,
)
from entity_search.domain.entities import SearchRegistry

# ============================================================
# Configuration Fixtures
# ============================================================

CAR_CONFIG: dict[str, Any] = {
    "instance_name": "carDekho",
    "indices": {"used_car": {"store": "cardekho:used_car_store"}},
    "types": {
        "new_car_brand": {
            "index": "new_car",
            "name": "Brands",
            "query_fields": [{"field": "name", "weight": 2}],
            "intent_entities": ["car_name"],
        },
        "new_car_model": {
            "index": "new_car",
            "name": "New Car Models",
            "query_fields": [{"field": "name", "weight": 2}, {"field": "brand", "weight": 1.5}],
            "filters": {
                "brand": {"field": "brand", "kind": "term"},
                "price": {"field": "price", "kind": "range"},
                "fuel": {"field": "fuel", "kind": "term", "include_missing": True},
                "status": {"field": "status", "kind": "term", "default_value": "active"},
                "inStock": {"field": "stock", "post": True, "predicate": "truthy"},
            },
            "facets": [
                {"key": "brand", "type": "field", "field": "brand", "size": 20},
                {"key": "price", "type": "stats", "field": "price"},
                {
                    "key": "priceRange",
                    "type": "ranges",
                    "field": "price",
                    "include_missing": True,
                    "ranges": [{"key": "budget", "to": 500000}, {"key": "premium", "from": 500000}],
                },
                {
                    "key": "body",
                    "type": "filters",
                    "filters": [
                        {"key": "suv", "filter": {"term": {"body": "suv"}}},
                        {"key": "hatch", "filter": {"term": {"body": "hatchback"}}},
                    ],
                },
            ],
            "sort": ["price", {"field": "popularity", "default": True}],
            "summaries": {"stock": {"type": "sum", "field": "stock"}},
            "intent_entities": ["car_name"],
        },
        "new_car_variant": {
            "index": "new_car",
            "name": "New Car Variants",
            "query_fields": [{"field": "name"}],
            "intent_entities": ["car_name"],
        },
        "used_car": {"name": "Used Cars", "query_fields": ["name"]},
        "car_news": {"name": "News", "query_fields": [{"field": "title", "weight": 3}, {"field": "body"}]},
        "new_car_dealer": {"index": "dealer", "name": "New Car Dealers", "query_fields": ["name"]},
    },
    "search": {
        "types": {
            "new_car_brand": {},
            "new_car_model": {},
            "new_car_variant": {},
            "used_car": {},
            "car_news": {},
            "new_car_dealer": {},
        }
    },
    "autocomplete": {"types": {"new_car_model": {"query_fields": [{"field": "name", "weight": 2}]}}},
    "views": {"types": {"new_car_model": {}}},
    "lookup_intent_entities": {"car_name": {"index": "car_name_store"}},
    "redacted_fields": ["internalCost"],
}


@pytest.fixture
def car_config() -> dict[str, Any]:
    """A fresh copy of the car catalogue configuration."""
    return copy.deepcopy(CAR_CONFIG)


@pytest.fixture
def registry(car_config) -> SearchRegistry:
    return build_registry(car_config)


# ============================================================
# Backend Fixtures
# ============================================================


class FakeGateway:
    """SearchGateway double; every method is an AsyncMock."""

    def __init__(self) -> None:
        self.execute = AsyncMock(return_value=es_response([]))
        self.execute_batch = AsyncMock(return_value=[])
        self.fetch_by_id = AsyncMock(return_value=None)
        self.explain = AsyncMock(return_value=None)
        self.term_vectors = AsyncMock(return_value=None)
        self.scroll_all = AsyncMock(return_value=None)
        self.intent = AsyncMock(return_value={"results": []})
        self.close = AsyncMock(return_value=None)


def hit(doc_id: str, score: float | None, doc_type: str, **source: Any) -> dict[str, Any]:
    """One backend hit envelope."""
    return {"_id": doc_id, "_score": score, "_type": doc_type, "_source": source}


def es_response(
    hits: list[dict[str, Any]],
    total: int | None = None,
    aggregations: dict[str, Any] | None = None,
    took: int = 5,
) -> dict[str, Any]:
    """A backend search response."""
    response: dict[str, Any] = {
        "took": took,
        "hits": {"total": len(hits) if total is None else total, "hits": hits},
    }
    if aggregations is not None:
        response["aggregations"] = aggregations
    return response


@pytest.fixture
def gateway() -> FakeGateway:
    return FakeGateway()


@pytest.fixture
def compiler(registry) -> QueryCompiler:
    return QueryCompiler(registry)


@pytest.fixture
def builder(compiler) -> QueryBuilder:
    return QueryBuilder(compiler)


@pytest.fixture
def processor(registry) -> ResponseProcessor:
    return ResponseProcessor(registry)


@pytest.fixture
def orchestrator(builder, processor, gateway) -> MultiTypeOrchestrator:
    return MultiTypeOrchestrator(builder, processor, gateway)


@pytest.fixture
def cascade(registry, gateway, processor, orchestrator) -> IntentCascadeOrchestrator:
    return IntentCascadeOrchestrator(registry, gateway, processor, orchestrator)
