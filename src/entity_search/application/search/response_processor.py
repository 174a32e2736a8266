"""
ResponseProcessor - Raw backend payloads → NormalizedResult / MultiResult.

This module turns backend search responses into caller-facing results:
1. Hit normalization (bookkeeping and redacted fields stripped recursively,
   identity fields overlaid on the cleaned source)
2. Relevancy cliff filtering of the ordered hit list
3. Facet and summary extraction from aggregations
4. Pagination links
5. Multi-type merge with cross-type totals

Architecture Decision:
    The processor is pure: no I/O, no state beyond the read-only registry.
    Batch responses are correlated to the submitted types by position; the
    processor refuses a batch whose length differs from the submitted list.

Example:
    >>> processor = ResponseProcessor(registry)
    >>> result = processor.process_single(response, registry.search, "new_car_model", request)
    >>> result.to_dict()["totalResults"]
    42
"""

from __future__ import annotations

import json
import logging
from collections.abc import Callable, Mapping
from typing import Any
from urllib.parse import urlencode

from entity_search.application.search.query_compiler import NESTED_AGG_KEY, SUMMARY_KEY_FORMAT
from entity_search.application.search.ranking_algorithms import relevancy_cliff_filter
from entity_search.domain.entities import (
    FacetConfig,
    FiltersFacet,
    MultiResult,
    NormalizedResult,
    PageLink,
    SearchApiConfig,
    SearchRegistry,
    SearchRequest,
    StatsFacet,
    TypeConfig,
)
from entity_search.shared.exceptions import GatewayError

logger = logging.getLogger(__name__)

# Hit-level fields overlaid on the cleaned source
IDENTITY_FIELDS = ("_id", "_score", "_type", "_weight", "_version")
NAME_FIELD = "_name"

STATS_FIELDS = ("count", "min", "max", "avg", "sum")


def is_bookkeeping_key(key: Any) -> bool:
    """Names wrapped in double underscores (``__x__``) never leave the service."""
    return isinstance(key, str) and len(key) > 4 and key.startswith("__") and key.endswith("__")


def total_hits(response: Mapping[str, Any]) -> int:
    """``hits.total`` as an int or ``{value}`` object."""
    total = (response.get("hits") or {}).get("total", 0)
    if isinstance(total, Mapping):
        total = total.get("value", 0)
    return int(total or 0)


def api_type_config(api: SearchApiConfig, type_id: str | None) -> TypeConfig | None:
    """Look a type up by API key first, then by its base type id."""
    if type_id is None:
        return None
    config = api.types.get(type_id)
    if config is not None:
        return config
    return next((c for c in api.types.values() if c.type == type_id), None)


class ResponseProcessor:
    """Normalizes backend responses against the registry."""

    def __init__(self, registry: SearchRegistry) -> None:
        self._registry = registry

    # -------------------------------------------------------------------------
    # Hits
    # -------------------------------------------------------------------------

    def deep_omit(self, value: Any) -> Any:
        """Recursively drop bookkeeping and redacted keys, keeping structure."""
        if isinstance(value, list):
            return [self.deep_omit(v) for v in value]
        if isinstance(value, Mapping):
            redacted = self._registry.redacted_fields
            return {
                k: self.deep_omit(v) for k, v in value.items() if not is_bookkeeping_key(k) and k not in redacted
            }
        return value

    def process_source(self, hit: Mapping[str, Any], name: str | None) -> dict[str, Any]:
        """Cleaned ``_source`` with identity fields and the type display name on top."""
        record = {field: hit[field] for field in IDENTITY_FIELDS if field in hit}
        record[NAME_FIELD] = name
        for key, value in self.deep_omit(hit.get("_source") or {}).items():
            record.setdefault(key, value)
        return record

    def normalize_hits(
        self,
        response: Mapping[str, Any],
        name_for: Callable[[Mapping[str, Any]], str | None],
    ) -> list[dict[str, Any]]:
        hits = (response.get("hits") or {}).get("hits") or []
        records = [self.process_source(hit, name_for(hit)) for hit in hits]
        return relevancy_cliff_filter(records, self._registry.relevancy.cliff_ratio)

    # -------------------------------------------------------------------------
    # Facets and summaries
    # -------------------------------------------------------------------------

    @staticmethod
    def _bucket_summaries(bucket: Mapping[str, Any], summary_names: list[str]) -> dict[str, Any]:
        return {name: (bucket.get(name) or {}).get("value") for name in summary_names}

    def _facet_output(self, facet: FacetConfig, aggregation: Mapping[str, Any], summary_names: list[str]) -> Any:
        if getattr(facet, "nested_path", None):
            aggregation = aggregation.get(NESTED_AGG_KEY) or {}

        if isinstance(facet, StatsFacet):
            return {field: aggregation.get(field) for field in STATS_FIELDS}

        buckets = aggregation.get("buckets") or {}
        output = []

        if isinstance(facet, FiltersFacet):
            for key, bucket in buckets.items():
                entry: dict[str, Any] = {"key": key, "count": bucket.get("doc_count", 0)}
                if summary_names:
                    entry["summaries"] = self._bucket_summaries(bucket, summary_names)
                output.append(entry)
            return output

        for bucket in buckets:
            entry = {"key": bucket.get("key"), "count": bucket.get("doc_count", 0)}
            for bound in ("from", "to"):
                if bucket.get(bound) is not None:
                    entry[bound] = bucket[bound]
            if summary_names:
                entry["summaries"] = self._bucket_summaries(bucket, summary_names)
            output.append(entry)
        return output

    def extract_facets(self, type_config: TypeConfig, aggregations: Mapping[str, Any]) -> dict[str, Any] | None:
        if not type_config.facets:
            return None
        summary_names = list(type_config.summaries)
        facets = {}
        for facet in type_config.facets:
            aggregation = aggregations.get(facet.key)
            if aggregation is None:
                continue
            facets[facet.key] = self._facet_output(facet, aggregation, summary_names)
        return facets

    @staticmethod
    def extract_summaries(type_config: TypeConfig, aggregations: Mapping[str, Any]) -> dict[str, Any] | None:
        if not type_config.summaries:
            return None
        summaries = {}
        for name in type_config.summaries:
            aggregation = aggregations.get(SUMMARY_KEY_FORMAT.format(name))
            if aggregation is not None and "value" in aggregation:
                summaries[name] = aggregation["value"]
        return summaries

    # -------------------------------------------------------------------------
    # Pagination
    # -------------------------------------------------------------------------

    @staticmethod
    def page_url(request: SearchRequest, page: int) -> str:
        echo = request.to_dict()
        params: dict[str, Any] = {}
        if echo["text"]:
            params["text"] = echo["text"]
        if echo["filter"]:
            params["filter"] = json.dumps(echo["filter"], separators=(",", ":"))
        if echo["sort"]:
            params["sort"] = json.dumps(echo["sort"], separators=(",", ":"))
        if echo["type"]:
            params["type"] = echo["type"] if isinstance(echo["type"], str) else ",".join(echo["type"])
        params["page"] = page
        return "?" + urlencode(params)

    def pagination(
        self,
        request: SearchRequest,
        result_count: int,
        total_results: int,
    ) -> tuple[PageLink | None, PageLink | None]:
        """Previous link iff ``page > 0``; next iff ``page*count + resultCount < total``."""
        prev_page = PageLink(request.page - 1, self.page_url(request, request.page - 1)) if request.page > 0 else None
        next_page = None
        if request.page * request.count + result_count < total_results:
            next_page = PageLink(request.page + 1, self.page_url(request, request.page + 1))
        return prev_page, next_page

    # -------------------------------------------------------------------------
    # Responses
    # -------------------------------------------------------------------------

    def process_response(
        self,
        response: Mapping[str, Any],
        api: SearchApiConfig,
        type_id: str | None,
    ) -> NormalizedResult:
        """One backend response → one type's result (no request echo, no links)."""
        hits = (response.get("hits") or {}).get("hits") or []
        if type_id is None and hits:
            type_id = hits[0].get("_type")

        type_config = api_type_config(api, type_id)
        base_type = type_config.type if type_config else type_id
        name = type_config.name if type_config else (self._registry.display_name(base_type) if base_type else None)

        results = self.normalize_hits(response, lambda hit: name)

        aggregations = response.get("aggregations") or {}
        facets = summaries = None
        if type_config is not None and aggregations:
            facets = self.extract_facets(type_config, aggregations)
            summaries = self.extract_summaries(type_config, aggregations)

        return NormalizedResult(
            type=base_type,
            name=name,
            results=results,
            facets=facets,
            summaries=summaries,
            total_results=total_hits(response),
            query_time_taken=int(response.get("took") or 0),
        )

    def _echo(self, result: NormalizedResult | MultiResult, request: SearchRequest) -> None:
        echo = request.to_dict()
        result.search_text = request.text
        result.filter = echo["filter"]
        result.sort = echo["sort"]
        result.page = request.page
        result.prev_page, result.next_page = self.pagination(request, result.count, result.total_results)

    def process_single(
        self,
        response: Mapping[str, Any],
        api: SearchApiConfig,
        type_id: str | None,
        request: SearchRequest,
    ) -> NormalizedResult:
        result = self.process_response(response, api, type_id)
        self._echo(result, request)
        return result

    def process_flat(self, response: Mapping[str, Any], request: SearchRequest) -> NormalizedResult:
        """Cross-type result of a flat query; each hit is named after its own type."""
        results = self.normalize_hits(response, lambda hit: self._registry.display_name(hit.get("_type")))
        result = NormalizedResult(
            type=None,
            name=None,
            results=results,
            total_results=total_hits(response),
            query_time_taken=int(response.get("took") or 0),
        )
        self._echo(result, request)
        return result

    def process_multi(
        self,
        responses: list[Mapping[str, Any]],
        api: SearchApiConfig,
        type_ids: list[str],
        request: SearchRequest,
    ) -> MultiResult:
        """
        Merge positionally correlated per-type responses.

        Types without results are dropped. Totals and counts add up, query
        time is the slowest branch, and links use the merged totals.

        Raises:
            GatewayError: BATCH_SIZE_MISMATCH when responses and types differ in length
        """
        if len(responses) != len(type_ids):
            raise GatewayError(
                f"Batch returned {len(responses)} responses for {len(type_ids)} queries",
                code="BATCH_SIZE_MISMATCH",
            )

        merged = MultiResult()
        for type_id, response in zip(type_ids, responses, strict=True):
            result = self.process_response(response, api, type_id)
            if not result.type or not result.name or not result.results:
                continue
            merged.results[result.name] = result
            merged.total_results += result.total_results
            merged.count += result.count
            merged.query_time_taken = max(merged.query_time_taken, result.query_time_taken)

        self._echo(merged, request)
        logger.debug(f"Merged {len(merged.results)}/{len(type_ids)} types, total={merged.total_results}")
        return merged
