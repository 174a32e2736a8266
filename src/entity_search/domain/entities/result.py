"""
Caller-facing result shapes.

Hit records stay plain dicts: documents are schemaless, and the identity
fields (``_id``, ``_score``, ``_type``, ``_weight``, ``_version``, ``_name``)
are overlaid on the cleaned source. Everything around the hits is a
dataclass with a ``to_dict()`` producing the JSON response shape.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any


@dataclass(frozen=True)
class PageLink:
    page: int
    url: str

    def to_dict(self) -> dict[str, Any]:
        return {"page": self.page, "url": self.url}


@dataclass
class NormalizedResult:
    """Results of one entity type (or of a flattened cross-type query)."""

    type: str | None
    name: str | None
    results: list[dict[str, Any]] = field(default_factory=list)
    facets: dict[str, Any] | None = None
    summaries: dict[str, Any] | None = None
    total_results: int = 0
    query_time_taken: int = 0
    search_text: str | None = None
    filter: dict[str, Any] | None = None
    sort: dict[str, Any] | None = None
    page: int = 0
    prev_page: PageLink | None = None
    next_page: PageLink | None = None

    @property
    def result_type(self) -> str | None:
        return self.type

    @property
    def count(self) -> int:
        return len(self.results)

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "type": self.type,
            "name": self.name,
            "resultType": self.result_type,
            "results": self.results,
            "totalResults": self.total_results,
            "queryTimeTaken": self.query_time_taken,
            "searchText": self.search_text,
            "filter": self.filter,
            "sort": self.sort,
            "page": self.page,
            "count": self.count,
        }
        if self.facets is not None:
            data["facets"] = self.facets
        if self.summaries is not None:
            data["summaries"] = self.summaries
        if self.prev_page:
            data["prev"] = self.prev_page.to_dict()
        if self.next_page:
            data["next"] = self.next_page.to_dict()
        return data


@dataclass
class MultiResult:
    """Per-type results of a fan-out search, keyed by type display name."""

    results: dict[str, NormalizedResult] = field(default_factory=dict)
    total_results: int = 0
    count: int = 0
    query_time_taken: int = 0
    search_text: str | None = None
    filter: dict[str, Any] | None = None
    sort: dict[str, Any] | None = None
    page: int = 0
    prev_page: PageLink | None = None
    next_page: PageLink | None = None

    def group(self, type_id: str) -> NormalizedResult | None:
        """Find a group by its type id rather than display name."""
        return next((r for r in self.results.values() if r.type == type_id), None)

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "multi": True,
            "results": {name: result.to_dict() for name, result in self.results.items()},
            "totalResults": self.total_results,
            "count": self.count,
            "queryTimeTaken": self.query_time_taken,
            "searchText": self.search_text,
            "filter": self.filter,
            "sort": self.sort,
            "page": self.page,
        }
        if self.prev_page:
            data["prev"] = self.prev_page.to_dict()
        if self.next_page:
            data["next"] = self.next_page.to_dict()
        return data


@dataclass
class Section:
    """A named, titled bundle of results used by composed responses."""

    name: str
    title: str
    result_type: str
    result: NormalizedResult

    @property
    def total_results(self) -> int:
        return self.result.total_results

    @property
    def mode(self) -> str | None:
        return "single" if self.result.count == 1 else None

    def to_dict(self) -> dict[str, Any]:
        data = self.result.to_dict()
        data.update(
            {
                "type": "section",
                "name": self.name,
                "title": self.title,
                "resultType": self.result_type,
            }
        )
        if self.mode:
            data["mode"] = self.mode
        return data


@dataclass
class SectionList:
    sections: list[Section] = field(default_factory=list)
    search_text: str | None = None
    state: str | None = None

    @property
    def total_results(self) -> int:
        return sum(section.total_results for section in self.sections)

    def to_dict(self) -> dict[str, Any]:
        return {
            "searchText": self.search_text,
            "state": self.state,
            "results": [section.to_dict() for section in self.sections],
            "totalResults": self.total_results,
        }


@dataclass
class ViewResult:
    """Documents exported by a view scroll, after post-filters."""

    results: list[dict[str, Any]] = field(default_factory=list)

    @property
    def total_results(self) -> int:
        return len(self.results)

    def to_dict(self) -> dict[str, Any]:
        return {"totalResults": self.total_results, "results": self.results}
