"""
Named strategy tables.

Configuration stays plain YAML data: anything that used to be a function
embedded in config (value transforms, custom sort orderings, client-side
post-filters, per-tenant behaviour) is referenced by name and resolved
through one of these tables when the registry is built.

Extension::

    @register_transform("upper")
    def _upper(value):
        return value.upper() if isinstance(value, str) else value
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Mapping
from typing import Any

from entity_search.shared.exceptions import ConfigurationError

logger = logging.getLogger(__name__)

Transform = Callable[[Any], Any]
SortStrategy = Callable[[str, str], dict[str, Any]]
PostFilterPredicate = Callable[[Mapping[str, Any], str, Any], bool]

TRANSFORMS: dict[str, Transform] = {}
SORT_STRATEGIES: dict[str, SortStrategy] = {}
POST_FILTER_PREDICATES: dict[str, PostFilterPredicate] = {}


def register_transform(name: str) -> Callable[[Transform], Transform]:
    def decorator(func: Transform) -> Transform:
        TRANSFORMS[name] = func
        return func

    return decorator


def register_sort_strategy(name: str) -> Callable[[SortStrategy], SortStrategy]:
    def decorator(func: SortStrategy) -> SortStrategy:
        SORT_STRATEGIES[name] = func
        return func

    return decorator


def register_post_filter(name: str) -> Callable[[PostFilterPredicate], PostFilterPredicate]:
    def decorator(func: PostFilterPredicate) -> PostFilterPredicate:
        POST_FILTER_PREDICATES[name] = func
        return func

    return decorator


def _resolve(table: Mapping[str, Any], kind: str, name: str) -> Any:
    try:
        return table[name]
    except KeyError:
        msg = f"Unknown {kind} '{name}'. Known: {sorted(table)}"
        raise ConfigurationError(msg, code="UNKNOWN_STRATEGY", details={"kind": kind, "name": name}) from None


def get_transform(name: str) -> Transform:
    return _resolve(TRANSFORMS, "transform", name)


def get_sort_strategy(name: str) -> SortStrategy:
    return _resolve(SORT_STRATEGIES, "sort strategy", name)


def get_post_filter(name: str) -> PostFilterPredicate:
    return _resolve(POST_FILTER_PREDICATES, "post filter", name)


# =============================================================================
# Value transforms
# =============================================================================


@register_transform("identity")
def _identity(value: Any) -> Any:
    return value


@register_transform("language_codes")
def language_codes(value: Any) -> Any:
    """``{primary, secondary}`` language selection → list of language codes."""
    if not isinstance(value, Mapping):
        return value
    primary = value.get("primary")
    secondary = value.get("secondary")
    if not secondary:
        return primary
    if isinstance(secondary, str):
        secondary = [secondary]
    codes = [primary] if primary else []
    codes.extend(code for code in secondary if code not in codes)
    return codes


@register_transform("lowercase")
def _lowercase(value: Any) -> Any:
    if isinstance(value, str):
        return value.lower()
    if isinstance(value, list | tuple):
        return [v.lower() if isinstance(v, str) else v for v in value]
    return value


@register_transform("boolean")
def _boolean(value: Any) -> Any:
    if isinstance(value, str):
        return value.strip().lower() in ("1", "true", "yes", "on")
    return bool(value)


# =============================================================================
# Sort strategies
# =============================================================================


@register_sort_strategy("field")
def _field_sort(field: str, order: str) -> dict[str, Any]:
    return {field: order}


@register_sort_strategy("relevance")
def _relevance_sort(field: str, order: str) -> dict[str, Any]:
    return {"_score": order}


@register_sort_strategy("missing_last")
def _missing_last_sort(field: str, order: str) -> dict[str, Any]:
    return {field: {"order": order, "missing": "_last"}}


# =============================================================================
# Post-filter predicates (evaluated on fetched source documents)
# =============================================================================


@register_post_filter("equals")
def _equals(doc: Mapping[str, Any], field: str, value: Any) -> bool:
    return doc.get(field) == value


@register_post_filter("truthy")
def _truthy(doc: Mapping[str, Any], field: str, value: Any) -> bool:
    return bool(doc.get(field)) == bool(value)


@register_post_filter("contains")
def _contains(doc: Mapping[str, Any], field: str, value: Any) -> bool:
    current = doc.get(field)
    if isinstance(current, list | tuple | set):
        return value in current
    if isinstance(current, str) and isinstance(value, str):
        return value.lower() in current.lower()
    return False
