"""
QueryCompiler - TypeConfig + SearchRequest → backend clauses.

Produces, for one entity type, everything the query builder needs:

1. Full-text clause: a single ``humane_query`` when one query field is
   active, a ``multi_humane_query`` carrying the field/weight list otherwise.
2. Filter clause: every non-post filter with a usable value, plus language
   filters, AND-ed.
3. Post-filter clause: facet selections (``type: "facet"`` wrappers) only, so
   facet bucket counts reflect the set before the selection.
4. Sort clause: the requested field when configured, else the default
   entries.
5. Aggregations: summaries under ``__summary_<name>__`` and one bucket
   aggregation per facet with the summaries attached as sub-aggregations.

Architecture Decision:
    The compiler is stateless apart from the read-only registry and does no
    I/O, so every per-type compilation of a fan-out can run before the single
    batched round trip. Facets and filters are dispatched on their variant
    class; an unknown variant is an error, never a silent no-op.

Example:
    >>> compiler = QueryCompiler(registry)
    >>> clauses = compiler.compile(registry.search.types["new_car_model"], request)
    >>> clauses.text
    {'humane_query': {'name': {'query': 'swift', ...}}}
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from typing import Any

from entity_search.application.registry.strategies import get_post_filter, get_sort_strategy, get_transform
from entity_search.domain.entities import (
    EXISTS_SENTINEL,
    FacetConfig,
    FieldFacet,
    FilterConfig,
    FilterKind,
    FilterSelection,
    FiltersFacet,
    QueryField,
    RangesFacet,
    SearchRegistry,
    SearchRequest,
    SortConfig,
    StatsFacet,
    TypeConfig,
)
from entity_search.shared.exceptions import ConfigurationError, ValidationError

logger = logging.getLogger(__name__)

DocumentPredicate = Callable[[Mapping[str, Any]], bool]

LANG_FILTER = "lang"
SUMMARY_KEY_FORMAT = "__summary_{}__"
NESTED_AGG_KEY = "nested"


@dataclass(frozen=True)
class CompiledClauses:
    """Compiler output for one type."""

    text: dict[str, Any] | None = None
    filter: dict[str, Any] | None = None
    post_filter: dict[str, Any] | None = None
    sort: list[dict[str, Any]] | None = None
    aggregations: dict[str, Any] | None = None


# =============================================================================
# Clause primitives
# =============================================================================


def thaw(value: Any) -> Any:
    """Deep copy of a registry fragment into plain, JSON-serializable containers."""
    if isinstance(value, Mapping):
        return {k: thaw(v) for k, v in value.items()}
    if isinstance(value, list | tuple):
        return [thaw(v) for v in value]
    return value


def missing_query(field: str) -> dict[str, Any]:
    return {"bool": {"must_not": {"exists": {"field": field}}}}


def exists_query(field: str) -> dict[str, Any]:
    return {"exists": {"field": field}}


def term_query(field: str, value: Any) -> dict[str, Any]:
    if isinstance(value, list | tuple):
        return {"terms": {field: list(value)}}
    return {"term": {field: value}}


def range_query(field: str, start: Any = None, end: Any = None) -> dict[str, Any]:
    bounds = {}
    if start is not None:
        bounds["gte"] = start
    if end is not None:
        bounds["lt"] = end
    return {"range": {field: bounds}}


def bool_should(clauses: list[dict[str, Any]]) -> dict[str, Any] | None:
    """OR: ``None`` for no clause, the clause itself for one."""
    if not clauses:
        return None
    if len(clauses) == 1:
        return clauses[0]
    return {"bool": {"should": clauses, "minimum_should_match": 1}}


def bool_filter(clauses: list[dict[str, Any]]) -> dict[str, Any] | None:
    """AND: ``None`` for no clause, the clause itself for one."""
    if not clauses:
        return None
    if len(clauses) == 1:
        return clauses[0]
    return {"bool": {"filter": clauses}}


def is_ranking_aware(clause: Mapping[str, Any]) -> bool:
    return "humane_query" in clause or "multi_humane_query" in clause


def wrap_query(
    clause: dict[str, Any],
    *,
    nested_path: str | None = None,
    weight: float = 1.0,
    is_filter: bool = False,
) -> dict[str, Any]:
    """Nested envelope first, then the constant-score boost envelope."""
    if nested_path:
        clause = {"nested": {"path": nested_path, "query": clause}}
    if is_filter or is_ranking_aware(clause) or weight == 1.0:
        return clause
    return {"constant_score": {"query": clause, "boost": weight}}


# =============================================================================
# Compiler
# =============================================================================


class QueryCompiler:
    """Compiles per-type clauses against a read-only registry."""

    def __init__(self, registry: SearchRegistry) -> None:
        self._registry = registry

    @property
    def registry(self) -> SearchRegistry:
        return self._registry

    def compile(
        self,
        type_config: TypeConfig,
        request: SearchRequest,
        intent_fields: tuple[str, ...] = (),
    ) -> CompiledClauses:
        """Compile every clause for one type."""
        clauses = CompiledClauses(
            text=self.text_query(type_config, request.text, request.fuzzy_search, intent_fields),
            filter=self.filter_queries(type_config, request, intent_fields),
            post_filter=self.facet_queries(type_config, request),
            sort=self.sort_part(type_config, request),
            aggregations=self.aggregations(type_config),
        )
        logger.debug(f"Compiled clauses for type '{type_config.type}': {clauses}")
        return clauses

    # -------------------------------------------------------------------------
    # Full text
    # -------------------------------------------------------------------------

    def _humane_params(self, text: Any, intent_fields: tuple[str, ...]) -> dict[str, Any]:
        return {
            "query": text,
            "intentIndex": self._registry.intent_index,
            "intentFields": list(intent_fields),
        }

    def text_query(
        self,
        type_config: TypeConfig,
        text: str | None,
        fuzzy_search: bool = True,
        intent_fields: tuple[str, ...] = (),
    ) -> dict[str, Any] | None:
        """
        Build the full-text clause.

        Args:
            type_config: Type being searched
            text: Query text; no text means match-everything (``None``)
            fuzzy_search: Request-level fuzzy switch; a field's ``no_fuzzy`` wins
            intent_fields: Entity-recognition fields forwarded to the backend

        Returns:
            ``humane_query`` for one active field, ``multi_humane_query`` for more

        Raises:
            ValidationError: NO_QUERY_FIELDS_DEFINED when every field is vernacular-only
        """
        if not text:
            return None

        fields = [f for f in type_config.query_fields if not f.vernacular_only]
        if not fields:
            raise ValidationError(
                f"No query fields defined for type '{type_config.type}'",
                code="NO_QUERY_FIELDS_DEFINED",
                details={"type": type_config.type},
            )

        if len(fields) == 1:
            return self._single_field_query(fields[0], text, fuzzy_search, intent_fields)

        params = self._humane_params(text, intent_fields)
        params["fields"] = [self._multi_field_entry(f, fuzzy_search) for f in fields]
        return {"multi_humane_query": params}

    def _single_field_query(
        self,
        field: QueryField,
        text: str,
        fuzzy_search: bool,
        intent_fields: tuple[str, ...],
    ) -> dict[str, Any]:
        params = self._humane_params(text, intent_fields)
        params.update(
            {
                "boost": field.weight,
                "vernacularOnly": field.vernacular_only,
                "noFuzzy": not fuzzy_search or field.no_fuzzy,
            }
        )
        return wrap_query(
            {"humane_query": {field.field: params}},
            nested_path=field.nested_path,
            weight=field.weight,
        )

    @staticmethod
    def _multi_field_entry(field: QueryField, fuzzy_search: bool) -> dict[str, Any]:
        entry: dict[str, Any] = {
            "field": field.field,
            "boost": field.weight,
            "vernacularOnly": field.vernacular_only,
            "noFuzzy": not fuzzy_search or field.no_fuzzy,
        }
        if field.nested_path:
            entry["path"] = field.nested_path
        return entry

    # -------------------------------------------------------------------------
    # Filters
    # -------------------------------------------------------------------------

    @staticmethod
    def _effective_selection(config: FilterConfig, request: SearchRequest) -> FilterSelection | None:
        raw = request.filter.get(config.name)
        if raw is None:
            raw = config.default_value
        return FilterSelection.from_raw(raw)

    @staticmethod
    def _transform(config: FilterConfig, value: Any) -> Any:
        if not config.transform:
            return value
        return get_transform(config.transform)(value)

    def _value_clause(self, config: FilterConfig, value: Any, intent_fields: tuple[str, ...]) -> dict[str, Any]:
        if value == EXISTS_SENTINEL:
            return exists_query(config.field)
        if config.kind is FilterKind.TERM:
            return term_query(config.field, value)
        if config.kind is FilterKind.RANGE:
            pairs = value if isinstance(value, list | tuple) else [value]
            ranges = [range_query(config.field, p.get("from"), p.get("to")) for p in pairs if isinstance(p, Mapping)]
            if not ranges:
                raise ValidationError(
                    f"Filter '{config.name}' expects from/to ranges",
                    code="INVALID_RANGE_FILTER",
                    field=f"filter.{config.name}",
                )
            return bool_should(ranges)
        return {"humane_query": {config.field: self._humane_params(value, intent_fields)}}

    def field_filter(
        self,
        config: FilterConfig,
        value: Any,
        intent_fields: tuple[str, ...] = (),
    ) -> dict[str, Any]:
        """Filter clause for one value, including the missing-field alternative."""
        clause = wrap_query(self._value_clause(config, value, intent_fields), nested_path=config.nested_path, is_filter=True)
        if config.include_missing and value != EXISTS_SENTINEL:
            missing = wrap_query(missing_query(config.field), nested_path=config.nested_path, is_filter=True)
            clause = bool_should([clause, missing])
        return clause

    def filter_queries(
        self,
        type_config: TypeConfig,
        request: SearchRequest,
        intent_fields: tuple[str, ...] = (),
    ) -> dict[str, Any] | None:
        """Main-query filter clause; facet selections and post filters are excluded."""
        clauses = []
        for config in type_config.filters.values():
            if config.post:
                continue
            selection = self._effective_selection(config, request)
            if selection is None or selection.is_facet:
                continue
            value = self._transform(config, selection.value)
            clauses.append(self.field_filter(config, value, intent_fields))

        lang_config = type_config.filters.get(LANG_FILTER)
        if lang_config is not None:
            if request.lang:
                clauses.append(self.field_filter(lang_config, self._transform(lang_config, dict(request.lang))))
            if request.term_languages:
                clauses.append(self.field_filter(lang_config, list(request.term_languages)))

        return bool_filter(clauses)

    def post_filters(self, type_config: TypeConfig, request: SearchRequest) -> list[DocumentPredicate]:
        """Client-side predicates for filters flagged ``post``."""
        predicates: list[DocumentPredicate] = []
        for config in type_config.filters.values():
            if not config.post:
                continue
            selection = self._effective_selection(config, request)
            if selection is None:
                continue
            predicates.append(
                _bind_predicate(get_post_filter(config.predicate), config.field, self._transform(config, selection.value))
            )
        return predicates

    # -------------------------------------------------------------------------
    # Facet selections (post filter)
    # -------------------------------------------------------------------------

    def facet_queries(self, type_config: TypeConfig, request: SearchRequest) -> dict[str, Any] | None:
        """Post-filter clause from facet selections, AND-ed across facets."""
        clauses = []
        for facet in type_config.facets:
            selection = FilterSelection.from_raw(request.filter.get(facet.key))
            if selection is None or not selection.is_facet:
                continue
            clause = self._facet_selection_clause(facet, selection.value)
            if clause is not None:
                clauses.append(clause)
        return bool_filter(clauses)

    def _facet_selection_clause(self, facet: FacetConfig, value: Any) -> dict[str, Any] | None:
        values = list(value) if isinstance(value, list | tuple) else [value]

        if isinstance(facet, FieldFacet):
            config = FilterConfig(
                name=facet.key,
                field=facet.field,
                kind=FilterKind.TERM,
                include_missing=facet.include_missing,
                nested_path=facet.nested_path,
            )
            return self.field_filter(config, value)

        if isinstance(facet, StatsFacet):
            config = FilterConfig(
                name=facet.key,
                field=facet.field,
                kind=FilterKind.RANGE,
                include_missing=facet.include_missing,
                nested_path=facet.nested_path,
            )
            return self.field_filter(config, value)

        if isinstance(facet, FiltersFacet):
            selected = [facet.filter_for(key) for key in values]
            return bool_should([thaw(f.clause) for f in selected if f is not None])

        if isinstance(facet, RangesFacet):
            clauses = []
            for key in values:
                selected = facet.range_for(key)
                if selected is not None:
                    clause = range_query(facet.field, selected.start, selected.end)
                    clauses.append(wrap_query(clause, nested_path=facet.nested_path, is_filter=True))
            if clauses and facet.include_missing:
                clauses.append(wrap_query(missing_query(facet.field), nested_path=facet.nested_path, is_filter=True))
            return bool_should(clauses)

        raise ConfigurationError(f"Unsupported facet variant: {type(facet).__name__}", code="UNKNOWN_FACET_TYPE")

    # -------------------------------------------------------------------------
    # Sort
    # -------------------------------------------------------------------------

    def _sort_clause(self, config: SortConfig, order: str | None) -> dict[str, Any]:
        if order:
            direction = order.lower()
        elif config.order is not None:
            direction = config.order.value
        else:
            direction = self._registry.default_sort_order.value
        return get_sort_strategy(config.strategy or "field")(config.field, direction)

    def sort_part(self, type_config: TypeConfig, request: SearchRequest) -> list[dict[str, Any]] | None:
        """
        Requested sort when the field is configured, none when it is not, and
        the default-flagged entries when the request names no sort field.
        """
        if request.sort and request.sort.field:
            config = type_config.sort_for(request.sort.field)
            if config is None:
                logger.debug(f"Sort field '{request.sort.field}' not configured for '{type_config.type}'")
                return None
            return [self._sort_clause(config, request.sort.order)]

        defaults = [self._sort_clause(config, None) for config in type_config.sort if config.default]
        return defaults or None

    # -------------------------------------------------------------------------
    # Aggregations
    # -------------------------------------------------------------------------

    @staticmethod
    def _summary_aggregations(type_config: TypeConfig) -> dict[str, Any]:
        return {name: {agg.kind.value: {"field": agg.field}} for name, agg in type_config.summaries.items()}

    def aggregations(self, type_config: TypeConfig) -> dict[str, Any] | None:
        """Summary and facet aggregations; ``None`` when the type has neither."""
        summaries = self._summary_aggregations(type_config)

        aggs: dict[str, Any] = {SUMMARY_KEY_FORMAT.format(name): value for name, value in summaries.items()}
        for facet in type_config.facets:
            aggs[facet.key] = self.facet_aggregation(facet, summaries)

        return aggs or None

    def facet_aggregation(self, facet: FacetConfig, summaries: dict[str, Any]) -> dict[str, Any]:
        if isinstance(facet, FieldFacet):
            value: dict[str, Any] = {"terms": {"field": facet.field, "size": facet.size}}
        elif isinstance(facet, StatsFacet):
            value = {"stats": {"field": facet.field}}
        elif isinstance(facet, RangesFacet):
            value = {"range": {"field": facet.field, "ranges": [_range_bucket(r.key, r.start, r.end) for r in facet.ranges]}}
        elif isinstance(facet, FiltersFacet):
            value = {"filters": {"filters": {f.key: thaw(f.clause) for f in facet.filters}}}
        else:
            raise ConfigurationError(f"Unsupported facet variant: {type(facet).__name__}", code="UNKNOWN_FACET_TYPE")

        # Metric aggregations take no sub-aggregations
        if summaries and not isinstance(facet, StatsFacet):
            value["aggs"] = thaw(summaries)

        nested_path = getattr(facet, "nested_path", None)
        if nested_path:
            value = {"nested": {"path": nested_path}, "aggs": {NESTED_AGG_KEY: value}}
        return value


def _range_bucket(key: str, start: Any, end: Any) -> dict[str, Any]:
    bucket: dict[str, Any] = {"key": key}
    if start is not None:
        bucket["from"] = start
    if end is not None:
        bucket["to"] = end
    return bucket


def _bind_predicate(predicate: Callable[..., bool], field: str, value: Any) -> DocumentPredicate:
    def matches(doc: Mapping[str, Any]) -> bool:
        return predicate(doc, field, value)

    return matches
