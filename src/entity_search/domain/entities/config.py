"""
Type Registry - Immutable description of every searchable entity type.

Built once at startup by ``application.registry.builder`` and read-only
afterwards. Every object here is a frozen dataclass; mappings are exposed
through ``MappingProxyType`` so nothing downstream can mutate the registry.

Facets are a tagged variant: one class per kind (``FieldFacet``,
``StatsFacet``, ``RangesFacet``, ``FiltersFacet``) so the compiler and the
response processor dispatch on the class and fail loudly on anything else.
Filters share one shape and carry a ``FilterKind`` tag.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Any, Mapping


def _empty() -> Mapping[str, Any]:
    return MappingProxyType({})


class FilterKind(Enum):
    """How a filter value is matched against its document field."""

    TEXT = "text"
    TERM = "term"
    RANGE = "range"


class AggregationKind(Enum):
    """Scalar aggregations usable as summaries."""

    SUM = "sum"
    AVG = "avg"
    MIN = "min"
    MAX = "max"
    VALUE_COUNT = "value_count"
    CARDINALITY = "cardinality"


class SortOrder(Enum):
    ASC = "asc"
    DESC = "desc"


@dataclass(frozen=True)
class QueryField:
    """A document field searched by the full-text clause."""

    field: str
    weight: float = 1.0
    vernacular_only: bool = False
    no_fuzzy: bool = False
    nested_path: str | None = None


@dataclass(frozen=True)
class FilterConfig:
    """
    A named request filter.

    ``transform`` names an entry of the value transform table; ``predicate``
    names a post-filter predicate and is only meaningful when ``post`` is set,
    in which case the filter never reaches the backend and is evaluated on
    fetched documents instead.
    """

    name: str
    field: str
    kind: FilterKind = FilterKind.TEXT
    default_value: Any = None
    transform: str | None = None
    include_missing: bool = False
    nested_path: str | None = None
    post: bool = False
    predicate: str | None = None


@dataclass(frozen=True)
class AggregationConfig:
    """A scalar summary aggregation."""

    name: str
    kind: AggregationKind
    field: str


@dataclass(frozen=True)
class FacetRange:
    key: str
    start: float | None = None
    end: float | None = None


@dataclass(frozen=True)
class NamedFilter:
    key: str
    clause: Mapping[str, Any]


@dataclass(frozen=True)
class FieldFacet:
    """Terms buckets over a field."""

    key: str
    field: str
    size: int = 100
    include_missing: bool = False
    nested_path: str | None = None


@dataclass(frozen=True)
class StatsFacet:
    """Min/max statistics over a numeric field."""

    key: str
    field: str
    include_missing: bool = False
    nested_path: str | None = None


@dataclass(frozen=True)
class RangesFacet:
    """Discrete, keyed ranges over a numeric field."""

    key: str
    field: str
    ranges: tuple[FacetRange, ...]
    include_missing: bool = False
    nested_path: str | None = None

    def range_for(self, key: str) -> FacetRange | None:
        return next((r for r in self.ranges if r.key == key), None)


@dataclass(frozen=True)
class FiltersFacet:
    """Named, predefined filter clauses."""

    key: str
    filters: tuple[NamedFilter, ...]

    def filter_for(self, key: str) -> NamedFilter | None:
        return next((f for f in self.filters if f.key == key), None)


FacetConfig = FieldFacet | StatsFacet | RangesFacet | FiltersFacet


@dataclass(frozen=True)
class SortConfig:
    """
    A sortable field.

    ``strategy`` names an entry of the sort strategy table (``field`` when
    unset); ``order`` is the configured default direction.
    """

    field: str
    default: bool = False
    strategy: str | None = None
    order: SortOrder | None = None


@dataclass(frozen=True)
class TypeConfig:
    """One searchable entity type, as seen by a single API."""

    type: str
    index: str
    doc_type: str
    name: str
    query_fields: tuple[QueryField, ...] = ()
    filters: Mapping[str, FilterConfig] = field(default_factory=_empty)
    facets: tuple[FacetConfig, ...] = ()
    sort: tuple[SortConfig, ...] = ()
    summaries: Mapping[str, AggregationConfig] = field(default_factory=_empty)
    intent_entities: tuple[str, ...] = ()

    def sort_for(self, field_name: str) -> SortConfig | None:
        return next((s for s in self.sort if s.field == field_name), None)

    def facet_for(self, key: str) -> FacetConfig | None:
        return next((f for f in self.facets if f.key == key), None)


@dataclass(frozen=True)
class SearchApiConfig:
    """Types exposed through one API (search, autocomplete or views)."""

    name: str
    types: Mapping[str, TypeConfig] = field(default_factory=_empty)
    default_type: str = "*"

    def intent_fields(self, type_ids: tuple[str, ...] | None = None) -> tuple[str, ...]:
        """Distinct intent entities of the given types, in declaration order."""
        configs = self.types.values() if type_ids is None else (self.types[t] for t in type_ids)
        seen: dict[str, None] = {}
        for config in configs:
            for entity in config.intent_entities:
                seen.setdefault(entity, None)
        return tuple(seen)


@dataclass(frozen=True)
class RelevancySettings:
    cliff_ratio: float | None = 0.40
    deflection_ratio: float = 0.50


@dataclass(frozen=True)
class ScoringSettings:
    weight_field: str = "_weight"
    weight_factor: float = 2.0
    type_field: str = "_type"


@dataclass(frozen=True)
class SearchRegistry:
    """The complete, immutable search configuration of one instance."""

    instance_name: str
    types: Mapping[str, TypeConfig]
    search: SearchApiConfig
    autocomplete: SearchApiConfig
    views: SearchApiConfig
    shared_index: str
    intent_index: str
    default_sort_order: SortOrder = SortOrder.DESC
    lookup_intent_entities: Mapping[str, Mapping[str, Any]] = field(default_factory=_empty)
    redacted_fields: frozenset[str] = frozenset()
    relevancy: RelevancySettings = field(default_factory=RelevancySettings)
    scoring: ScoringSettings = field(default_factory=ScoringSettings)
    tenant: Mapping[str, Any] = field(default_factory=_empty)

    def api(self, name: str) -> SearchApiConfig:
        apis = {"search": self.search, "autocomplete": self.autocomplete, "views": self.views}
        return apis[name]

    def display_name(self, type_id: str) -> str:
        config = self.types.get(type_id)
        return config.name if config else type_id
