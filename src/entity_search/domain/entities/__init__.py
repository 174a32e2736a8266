"""
Domain Entities

Core value objects for configuration-driven entity search.
"""

from __future__ import annotations

from .config import (
    AggregationConfig,
    AggregationKind,
    FacetConfig,
    FacetRange,
    FieldFacet,
    FilterConfig,
    FilterKind,
    FiltersFacet,
    NamedFilter,
    QueryField,
    RangesFacet,
    RelevancySettings,
    ScoringSettings,
    SearchApiConfig,
    SearchRegistry,
    SortConfig,
    SortOrder,
    StatsFacet,
    TypeConfig,
)
from .query import CompiledQuery
from .request import (
    ALL_SENTINEL,
    ANY_TYPE,
    EXISTS_SENTINEL,
    FACET_SELECTION,
    FLAT_FORMAT,
    FilterSelection,
    SearchRequest,
    SortRequest,
)
from .result import (
    MultiResult,
    NormalizedResult,
    PageLink,
    Section,
    SectionList,
    ViewResult,
)

__all__ = [
    # Registry
    "SearchRegistry",
    "SearchApiConfig",
    "TypeConfig",
    "QueryField",
    "FilterConfig",
    "FilterKind",
    "FacetConfig",
    "FieldFacet",
    "StatsFacet",
    "RangesFacet",
    "FiltersFacet",
    "FacetRange",
    "NamedFilter",
    "SortConfig",
    "SortOrder",
    "AggregationConfig",
    "AggregationKind",
    "RelevancySettings",
    "ScoringSettings",
    # Requests
    "CompiledQuery",
    "SearchRequest",
    "SortRequest",
    "FilterSelection",
    "ALL_SENTINEL",
    "ANY_TYPE",
    "EXISTS_SENTINEL",
    "FACET_SELECTION",
    "FLAT_FORMAT",
    # Results
    "NormalizedResult",
    "MultiResult",
    "PageLink",
    "Section",
    "SectionList",
    "ViewResult",
]
