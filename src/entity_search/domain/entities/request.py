"""
Validated request values consumed by the query compiler.

``SearchRequest`` is produced by ``application.search.input_schema`` and is
never built from raw caller input directly.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from types import MappingProxyType
from typing import Any, Mapping

# Filter value meaning "no constraint"
ALL_SENTINEL = "__all__"

# Filter value meaning "the field must be present and non-empty"
EXISTS_SENTINEL = "__exists__"

# Wrapper ``type`` marking a facet selection (post-filter only)
FACET_SELECTION = "facet"

# Request ``type`` meaning every configured type
ANY_TYPE = "*"

# Request ``format`` selecting the flat cross-type query
FLAT_FORMAT = "flat"

_WRAPPER_VALUE_KEYS = ("values", "value", "ranges", "range")


@dataclass(frozen=True)
class SortRequest:
    field: str
    order: str | None = None


@dataclass(frozen=True)
class FilterSelection:
    """A filter value after the ``{value|values|range|ranges, type}`` wrapper is peeled."""

    value: Any
    selection_type: str | None = None

    @property
    def is_facet(self) -> bool:
        return self.selection_type == FACET_SELECTION

    @classmethod
    def from_raw(cls, raw: Any) -> FilterSelection | None:
        """Unwrap a raw filter value; ``None`` when it carries no constraint."""
        if raw is None or raw == ALL_SENTINEL:
            return None
        if isinstance(raw, Mapping) and "type" in raw:
            for key in _WRAPPER_VALUE_KEYS:
                if key in raw:
                    inner = raw[key]
                    if inner is None or inner == ALL_SENTINEL:
                        return None
                    return cls(value=inner, selection_type=raw["type"])
            return None
        return cls(value=raw)


@dataclass(frozen=True)
class SearchRequest:
    """A validated query request."""

    text: str | None = None
    filter: Mapping[str, Any] = field(default_factory=lambda: MappingProxyType({}))
    sort: SortRequest | None = None
    page: int = 0
    count: int = 10
    type: str | tuple[str, ...] | None = None
    lang: Mapping[str, Any] | None = None
    fuzzy_search: bool = True
    format: str | None = None
    id: str | None = None
    term_languages: tuple[str, ...] = ()

    @property
    def is_any_type(self) -> bool:
        """No type or the wildcard; an explicit list of types does not count."""
        return self.type is None or self.type == ANY_TYPE

    @property
    def is_multi_type(self) -> bool:
        return self.type is None or self.type == ANY_TYPE or isinstance(self.type, tuple)

    @property
    def is_flat(self) -> bool:
        return self.format == FLAT_FORMAT

    def selection(self, name: str) -> FilterSelection | None:
        return FilterSelection.from_raw(self.filter.get(name))

    def with_text(self, text: str | None) -> SearchRequest:
        return replace(self, text=text)

    def to_dict(self) -> dict[str, Any]:
        """Echo of the request, used in responses and events."""
        return {
            "text": self.text,
            "filter": dict(self.filter) if self.filter else None,
            "sort": {"field": self.sort.field, "order": self.sort.order} if self.sort else None,
            "page": self.page,
            "count": self.count,
            "type": list(self.type) if isinstance(self.type, tuple) else self.type,
        }
