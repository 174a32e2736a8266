"""
Registry Builder - Raw configuration → immutable SearchRegistry.

Pure pass over the parsed YAML document:

1. Merge the built-in defaults (``searchQuery`` type, autocomplete and views
   entries) underneath the caller's configuration, never mutating it.
2. Normalize every base type: index name, trailing relevance sort entry and
   the language filter.
3. Resolve each API type (search / autocomplete / views) against its base
   type through ``index_type``.
4. Validate facets, filters, summaries and strategy names, raising
   ``ConfigurationError`` on the first problem found.

Raw layout (snake_case keys)::

    instance_name: carDekho
    indices: {used_car: {store: cars_store}}
    types:
      new_car_model:
        index: new_car
        name: New Car Models
        query_fields: [{field: name, weight: 2}]
        filters: {brand: {field: brand, kind: term}}
        facets: [{key: brand, type: field, field: brand}]
        sort: [price, {field: popularity, default: true}]
        summaries: {total: {type: sum, field: stock}}
    search:
      types: {new_car_model: {}}
"""

from __future__ import annotations

import copy
import logging
import re
from collections.abc import Mapping
from pathlib import Path
from types import MappingProxyType
from typing import Any

import yaml

from entity_search.application.registry.strategies import (
    get_post_filter,
    get_sort_strategy,
    get_transform,
)
from entity_search.domain.entities import (
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
from entity_search.shared.exceptions import ConfigurationError

logger = logging.getLogger(__name__)

SCORE_SORT_FIELD = "score"
LANG_FILTER = "lang"

_LANG_FILTER_RAW: dict[str, Any] = {
    "field": "_lang",
    "kind": "term",
    "transform": "language_codes",
}

_DEFAULT_TYPES: dict[str, Any] = {
    "searchQuery": {
        "type": "searchQuery",
        "index": "search_query",
        "filters": {
            "lang": _LANG_FILTER_RAW,
            "hasResults": {"field": "hasResults", "kind": "term", "default_value": True},
        },
    }
}

_DEFAULT_AUTOCOMPLETE: dict[str, Any] = {
    "default_type": "*",
    "types": {
        "searchQuery": {
            "query_fields": [
                {"field": "unicodeQuery", "vernacular_only": True, "weight": 10},
                {"field": "query", "weight": 9.5},
            ]
        }
    },
}

_DEFAULT_SEARCH: dict[str, Any] = {"default_type": "*"}

_DEFAULT_VIEWS: dict[str, Any] = {
    "types": {
        "searchQuery": {
            "sort": [{"field": "count", "default": True}],
            "filters": {"hasResults": {"field": "hasResults", "kind": "term"}},
        }
    }
}

# Keys an API type entry may override on its base type
_TYPE_OVERRIDE_KEYS = ("query_fields", "filters", "facets", "sort", "summaries", "intent_entities", "name")


# =============================================================================
# Helpers
# =============================================================================


def snake_case(value: str) -> str:
    """``"newCar"`` / ``"New Car"`` → ``"new_car"``."""
    value = re.sub(r"([a-z0-9])([A-Z])", r"\1_\2", value)
    value = re.sub(r"[^A-Za-z0-9]+", "_", value)
    return value.strip("_").lower()


def merge_defaults(overrides: Mapping[str, Any] | None, defaults: Mapping[str, Any]) -> dict[str, Any]:
    """Deep merge where ``overrides`` wins; neither input is modified."""
    merged = copy.deepcopy(dict(defaults))
    for key, value in (overrides or {}).items():
        current = merged.get(key)
        if isinstance(value, Mapping) and isinstance(current, Mapping):
            merged[key] = merge_defaults(value, current)
        else:
            merged[key] = copy.deepcopy(value)
    return merged


def _freeze(mapping: Mapping[str, Any]) -> Mapping[str, Any]:
    return MappingProxyType(dict(mapping))


def _fail(message: str, code: str, **details: Any) -> ConfigurationError:
    return ConfigurationError(message, code=code, details=details)


# =============================================================================
# Component parsers
# =============================================================================


def _parse_query_fields(type_id: str, raw: Any) -> tuple[QueryField, ...]:
    fields = []
    for entry in raw or []:
        if isinstance(entry, str):
            entry = {"field": entry}
        if not entry.get("field"):
            raise _fail("Query field has no field name", "NO_QUERY_FIELD_NAME_DEFINED", type=type_id)
        fields.append(
            QueryField(
                field=entry["field"],
                weight=float(entry.get("weight", 1.0)),
                vernacular_only=bool(entry.get("vernacular_only", False)),
                no_fuzzy=bool(entry.get("no_fuzzy", False)),
                nested_path=entry.get("nested_path"),
            )
        )
    return tuple(fields)


def _parse_filter(type_id: str, name: str, raw: Mapping[str, Any]) -> FilterConfig:
    if not raw.get("field"):
        raise _fail(f"Filter '{name}' has no field", "NO_FILTER_FIELD_DEFINED", type=type_id, filter=name)

    try:
        kind = FilterKind(raw.get("kind", FilterKind.TEXT.value))
    except ValueError:
        raise _fail(
            f"Unknown kind '{raw.get('kind')}' for filter '{name}'",
            "UNKNOWN_FILTER_KIND",
            type=type_id,
            filter=name,
        ) from None

    transform = raw.get("transform")
    if transform:
        get_transform(transform)

    post = bool(raw.get("post", False))
    predicate = raw.get("predicate")
    if post:
        if not predicate:
            raise _fail(f"Post filter '{name}' has no predicate", "NO_PREDICATE_DEFINED", type=type_id, filter=name)
        get_post_filter(predicate)

    return FilterConfig(
        name=name,
        field=raw["field"],
        kind=kind,
        default_value=raw.get("default_value"),
        transform=transform,
        include_missing=bool(raw.get("include_missing", False)),
        nested_path=raw.get("nested_path"),
        post=post,
        predicate=predicate,
    )


def _parse_filters(type_id: str, raw: Any) -> dict[str, FilterConfig]:
    return {name: _parse_filter(type_id, name, entry or {}) for name, entry in (raw or {}).items()}


def _parse_ranges(type_id: str, key: str, raw: Any) -> tuple[FacetRange, ...]:
    if not raw:
        raise _fail(f"No ranges defined for facet '{key}'", "NO_RANGES_DEFINED", type=type_id, facet=key)
    ranges = []
    for entry in raw:
        if not entry.get("key"):
            raise _fail(f"Range of facet '{key}' has no key", "NO_RANGE_FACET_KEY_DEFINED", type=type_id, facet=key)
        start, end = entry.get("from"), entry.get("to")
        if start is None and end is None:
            raise _fail(
                f"Range '{entry['key']}' of facet '{key}' has neither from nor to",
                "NO_RANGE_ENDS_DEFINED",
                type=type_id,
                facet=key,
            )
        ranges.append(FacetRange(key=entry["key"], start=start, end=end))
    return tuple(ranges)


def _parse_named_filters(type_id: str, key: str, raw: Any) -> tuple[NamedFilter, ...]:
    if not raw:
        raise _fail(f"No filters defined for facet '{key}'", "NO_FILTERS_DEFINED", type=type_id, facet=key)
    filters = []
    for entry in raw:
        if not entry.get("key") or not isinstance(entry.get("filter"), Mapping):
            raise _fail(
                f"Filter entries of facet '{key}' need a key and a filter clause",
                "INVALID_FACET_FILTER",
                type=type_id,
                facet=key,
            )
        filters.append(NamedFilter(key=entry["key"], clause=_freeze(entry["filter"])))
    return tuple(filters)


def _parse_facet(type_id: str, raw: Mapping[str, Any]) -> FacetConfig:
    key = raw.get("key")
    if not key:
        raise _fail("Facet has no key", "NO_FACET_NAME_DEFINED", type=type_id)

    facet_type = raw.get("type")
    if not facet_type:
        raise _fail(f"Facet '{key}' has no type", "NO_FACET_TYPE_DEFINED", type=type_id, facet=key)

    field = raw.get("field")
    if facet_type in ("field", "stats", "ranges") and not field:
        raise _fail(
            f"Facet '{key}' of type '{facet_type}' has no field",
            "NO_FACET_FIELD_DEFINED",
            type=type_id,
            facet=key,
        )

    include_missing = bool(raw.get("include_missing", False))
    nested_path = raw.get("nested_path")

    if facet_type == "field":
        return FieldFacet(
            key=key,
            field=field,
            size=int(raw.get("size", 100)),
            include_missing=include_missing,
            nested_path=nested_path,
        )
    if facet_type == "stats":
        return StatsFacet(key=key, field=field, include_missing=include_missing, nested_path=nested_path)
    if facet_type == "ranges":
        return RangesFacet(
            key=key,
            field=field,
            ranges=_parse_ranges(type_id, key, raw.get("ranges")),
            include_missing=include_missing,
            nested_path=nested_path,
        )
    if facet_type == "filters":
        return FiltersFacet(key=key, filters=_parse_named_filters(type_id, key, raw.get("filters")))

    raise _fail(f"Unknown facet type '{facet_type}'", "UNKNOWN_FACET_TYPE", type=type_id, facet=key)


def _parse_facets(type_id: str, raw: Any) -> tuple[FacetConfig, ...]:
    if isinstance(raw, Mapping):
        raw = [raw]
    facets = tuple(_parse_facet(type_id, entry) for entry in raw or [])
    keys = [facet.key for facet in facets]
    duplicates = sorted({k for k in keys if keys.count(k) > 1})
    if duplicates:
        raise _fail(f"Duplicate facet keys: {duplicates}", "DUPLICATE_FACET_KEY", type=type_id, facets=duplicates)
    return facets


def _parse_sort_order(value: Any, where: str) -> SortOrder:
    try:
        return SortOrder(str(value).lower())
    except ValueError:
        raise _fail(f"Invalid sort order '{value}' in {where}", "INVALID_SORT_ORDER", where=where) from None


def _parse_sort_entry(type_id: str, entry: Any) -> list[SortConfig]:
    if isinstance(entry, str):
        return [SortConfig(field=entry)]
    if "field" not in entry:
        # ``{count: true}`` shorthand: field → default flag
        return [SortConfig(field=name, default=bool(flag)) for name, flag in entry.items()]

    strategy = entry.get("strategy")
    if strategy:
        get_sort_strategy(strategy)
    order = entry.get("order")
    return [
        SortConfig(
            field=entry["field"],
            default=bool(entry.get("default", False)),
            strategy=strategy,
            order=_parse_sort_order(order, f"sort '{entry['field']}' of type '{type_id}'") if order else None,
        )
    ]


def _parse_sort(type_id: str, raw: Any) -> tuple[SortConfig, ...]:
    if isinstance(raw, Mapping):
        raw = [raw]
    entries: list[SortConfig] = []
    for entry in raw or []:
        entries.extend(_parse_sort_entry(type_id, entry))
    if not any(entry.field == SCORE_SORT_FIELD for entry in entries):
        entries.append(SortConfig(field=SCORE_SORT_FIELD, strategy="relevance"))
    return tuple(entries)


def _parse_summaries(type_id: str, raw: Any) -> dict[str, AggregationConfig]:
    summaries = {}
    for name, entry in (raw or {}).items():
        try:
            kind = AggregationKind(entry.get("type"))
        except ValueError:
            raise _fail(
                f"Unknown aggregation type '{entry.get('type')}' for summary '{name}'",
                "UNKNOWN_AGGREGATION_TYPE",
                type=type_id,
                summary=name,
            ) from None
        if not entry.get("field"):
            raise _fail(f"Summary '{name}' has no field", "NO_SUMMARY_FIELD_DEFINED", type=type_id, summary=name)
        summaries[name] = AggregationConfig(name=name, kind=kind, field=entry["field"])
    return summaries


# =============================================================================
# Types
# =============================================================================


def _index_store(instance: str, indices: Mapping[str, Any], type_id: str, index: str | None) -> str:
    explicit = indices.get(type_id)
    if explicit and explicit.get("store"):
        return explicit["store"]
    if index:
        return f"{instance}:{snake_case(index)}_store"
    return f"{instance}_store"


def _build_type(raw: Mapping[str, Any], type_id: str, index_store: str) -> TypeConfig:
    filters = _parse_filters(type_id, raw.get("filters"))
    filters.setdefault(LANG_FILTER, _parse_filter(type_id, LANG_FILTER, _LANG_FILTER_RAW))

    return TypeConfig(
        type=type_id,
        index=index_store,
        doc_type=raw.get("doc_type") or type_id,
        name=raw.get("name") or type_id,
        query_fields=_parse_query_fields(type_id, raw.get("query_fields")),
        filters=_freeze(filters),
        facets=_parse_facets(type_id, raw.get("facets")),
        sort=_parse_sort(type_id, raw.get("sort")),
        summaries=_freeze(_parse_summaries(type_id, raw.get("summaries"))),
        intent_entities=tuple(raw.get("intent_entities") or ()),
    )


def _resolve_api_type(
    api_name: str,
    key: str,
    entry: Mapping[str, Any],
    base_types: Mapping[str, Mapping[str, Any]],
) -> Mapping[str, Any]:
    """Merge an API type entry with the base type it points at through ``index_type``."""
    reference = entry.get("index_type")
    if reference is None:
        base = base_types.get(key)
    elif isinstance(reference, str):
        base = base_types.get(reference)
    else:
        base = merge_defaults(reference, base_types.get(key, {}))

    if not base:
        raise _fail(
            f"{api_name} type '{key}' does not resolve to a configured type",
            "UNKNOWN_INDEX_TYPE",
            api=api_name,
            type=key,
        )

    resolved = dict(base)
    resolved.update({k: entry[k] for k in _TYPE_OVERRIDE_KEYS if k in entry})
    return resolved


def _build_api(
    api_name: str,
    raw: Mapping[str, Any],
    base_types: Mapping[str, Mapping[str, Any]],
    stores: Mapping[str, str],
) -> SearchApiConfig:
    types: dict[str, TypeConfig] = {}
    for key, entry in (raw.get("types") or {}).items():
        resolved = _resolve_api_type(api_name, key, entry or {}, base_types)
        type_id = resolved["type"]
        types[key] = _build_type(resolved, type_id, stores.get(type_id, resolved["index"]))
    return SearchApiConfig(name=api_name, types=_freeze(types), default_type=raw.get("default_type", "*"))


# =============================================================================
# Entry points
# =============================================================================


def build_registry(raw: Mapping[str, Any]) -> SearchRegistry:
    """
    Build the immutable registry from a parsed configuration document.

    Args:
        raw: Parsed YAML/JSON mapping. Never modified.

    Returns:
        SearchRegistry ready to be shared across requests.

    Raises:
        ConfigurationError: On the first invalid or contradictory definition.
    """
    if not isinstance(raw, Mapping):
        raise _fail("Search configuration must be a mapping", "INVALID_CONFIGURATION")

    instance_name = raw.get("instance_name")
    if not instance_name:
        raise _fail("instance_name is required", "MISSING_INSTANCE_NAME")
    instance = str(instance_name).lower()

    config = merge_defaults(
        raw,
        {
            "types": _DEFAULT_TYPES,
            "autocomplete": _DEFAULT_AUTOCOMPLETE,
            "search": _DEFAULT_SEARCH,
            "views": _DEFAULT_VIEWS,
        },
    )
    indices = config.get("indices") or {}

    base_types: dict[str, dict[str, Any]] = {}
    stores: dict[str, str] = {}
    for key, entry in config["types"].items():
        entry = dict(entry or {})
        entry.setdefault("type", key)
        type_id = entry["type"]
        stores[type_id] = _index_store(instance, indices, type_id, entry.get("index"))
        entry["index"] = stores[type_id]
        base_types[key] = entry

    types = {entry["type"]: _build_type(entry, entry["type"], stores[entry["type"]]) for entry in base_types.values()}

    relevancy_raw = config.get("relevancy") or {}
    scoring_raw = config.get("scoring") or {}

    registry = SearchRegistry(
        instance_name=instance_name,
        types=_freeze(types),
        search=_build_api("search", config.get("search") or {}, base_types, stores),
        autocomplete=_build_api("autocomplete", config.get("autocomplete") or {}, base_types, stores),
        views=_build_api("views", config.get("views") or {}, base_types, stores),
        shared_index=f"{instance}_store",
        intent_index=f"{instance}:intent_store",
        default_sort_order=_parse_sort_order(config.get("default_sort_order", "DESC"), "default_sort_order"),
        lookup_intent_entities=_freeze(config.get("lookup_intent_entities") or {}),
        redacted_fields=frozenset(config.get("redacted_fields") or ()),
        relevancy=RelevancySettings(
            cliff_ratio=relevancy_raw.get("cliff_ratio", 0.40),
            deflection_ratio=float(relevancy_raw.get("deflection_ratio", 0.50)),
        ),
        scoring=ScoringSettings(
            weight_field=scoring_raw.get("weight_field", "_weight"),
            weight_factor=float(scoring_raw.get("weight_factor", 2.0)),
            type_field=scoring_raw.get("type_field", "_type"),
        ),
        tenant=_freeze(config.get("tenant") or {}),
    )

    logger.info(
        f"Registry built for '{instance_name}': {len(types)} types, "
        f"search={len(registry.search.types)}, autocomplete={len(registry.autocomplete.types)}, "
        f"views={len(registry.views.types)}"
    )
    return registry


def load_registry(path: str | Path) -> SearchRegistry:
    """Read a YAML configuration file and build the registry."""
    path = Path(path)
    try:
        with path.open(encoding="utf-8") as f:
            raw = yaml.safe_load(f)
    except OSError as e:
        raise _fail(f"Cannot read search configuration {path}: {e}", "CONFIG_NOT_READABLE", path=str(path)) from e
    except yaml.YAMLError as e:
        raise _fail(f"Invalid YAML in {path}: {e}", "INVALID_YAML", path=str(path)) from e

    logger.debug(f"Loaded search configuration from {path}")
    return build_registry(raw or {})
