"""
Search Pipeline

Compiles requests against the type registry, runs them through the backend
gateway and shapes the responses.

Key Components:
- QueryCompiler: Per-type clauses (text, filters, facets, sort, aggregations)
- QueryBuilder: Backend envelopes for one type, many types, or flat mode
- ResponseProcessor: Hits, facets, summaries, pagination, multi-type merge
- MultiTypeOrchestrator: One batched round trip per request
- IntentCascadeOrchestrator: Entity recognition → probe → classify → compose
- Searcher: Caller-facing facade with validation, events and error boundary

Architecture:
    SearchRequest
        │
        ▼
    ┌──────────────────┐
    │  QueryCompiler   │  ← Registry-driven clauses per type
    └────────┬─────────┘
             │
             ▼
    ┌──────────────────┐
    │   QueryBuilder   │  ← One envelope per type (or one flat query)
    └────────┬─────────┘
             │
             ▼
    ┌──────────────────┐
    │  SearchGateway   │  ← Single batched round trip
    └────────┬─────────┘
             │
             ▼
    ┌──────────────────┐
    │ResponseProcessor │  ← Cliff filter, facets, merge, pagination
    └────────┬─────────┘
             │
             ▼
    NormalizedResult | MultiResult | SectionList
"""

from __future__ import annotations

from .intent_cascade import CAR_CASCADE, CascadeConfig, IntentCascadeOrchestrator, classify
from .orchestrator import MultiTypeOrchestrator, resolve_types
from .query_builder import QueryBuilder
from .query_compiler import QueryCompiler
from .ranking_algorithms import deflection_rank, relevancy_cliff_filter
from .response_processor import ResponseProcessor
from .service import Searcher
from .tenant import TenantStrategy, resolve_tenant_strategy

__all__ = [
    "QueryCompiler",
    "QueryBuilder",
    "ResponseProcessor",
    "MultiTypeOrchestrator",
    "resolve_types",
    "IntentCascadeOrchestrator",
    "CascadeConfig",
    "CAR_CASCADE",
    "classify",
    "relevancy_cliff_filter",
    "deflection_rank",
    "TenantStrategy",
    "resolve_tenant_strategy",
    "Searcher",
]
