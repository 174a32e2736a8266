"""
Query envelopes: compiled clauses → backend queries.

Every envelope scores ``bool{must: text | match_all, filter}`` through a
``function_score`` whose ``field_value_factor`` multiplies textual relevance
by the document's weight field (neutral factor when the field is absent).
"""

from __future__ import annotations

import logging
from typing import Any

from entity_search.application.search.query_compiler import CompiledClauses, QueryCompiler, bool_should, term_query
from entity_search.domain.entities import CompiledQuery, SearchRequest, TypeConfig

logger = logging.getLogger(__name__)

MATCH_ALL: dict[str, Any] = {"match_all": {}}


class QueryBuilder:
    """Wraps compiler output into single, per-type or flat query envelopes."""

    def __init__(self, compiler: QueryCompiler) -> None:
        self._compiler = compiler

    @property
    def compiler(self) -> QueryCompiler:
        return self._compiler

    def _scored(self, main_clause: dict[str, Any]) -> dict[str, Any]:
        scoring = self._compiler.registry.scoring
        return {
            "function_score": {
                "query": main_clause,
                "field_value_factor": {
                    "field": scoring.weight_field,
                    "factor": scoring.weight_factor,
                    "missing": 1,
                },
            }
        }

    @staticmethod
    def _main_clause(clauses: CompiledClauses, extra_filters: list[dict[str, Any]] | None = None) -> dict[str, Any]:
        bool_query: dict[str, Any] = {"must": clauses.text or dict(MATCH_ALL)}
        filters = list(extra_filters or [])
        if clauses.filter:
            filters.append(clauses.filter)
        if len(filters) == 1 and not extra_filters:
            bool_query["filter"] = filters[0]
        elif filters:
            bool_query["filter"] = filters
        return {"bool": bool_query}

    @staticmethod
    def _paging(request: SearchRequest) -> dict[str, int]:
        return {"from": request.page * request.count, "size": request.count}

    def build(
        self,
        type_config: TypeConfig,
        request: SearchRequest,
        intent_fields: tuple[str, ...] = (),
    ) -> CompiledQuery:
        """One envelope for one type."""
        clauses = self._compiler.compile(type_config, request, intent_fields)

        body: dict[str, Any] = self._paging(request)
        if clauses.sort:
            body["sort"] = clauses.sort
        body["query"] = self._scored(self._main_clause(clauses))
        if clauses.post_filter:
            body["post_filter"] = clauses.post_filter
        if clauses.aggregations:
            body["aggs"] = clauses.aggregations

        return CompiledQuery(index=type_config.index, doc_type=type_config.doc_type, body=body, type_id=type_config.type)

    def build_many(
        self,
        type_configs: list[TypeConfig],
        request: SearchRequest,
        intent_fields: tuple[str, ...] = (),
    ) -> list[CompiledQuery]:
        """One envelope per type, in the given order."""
        return [self.build(type_config, request, intent_fields) for type_config in type_configs]

    def build_flat(
        self,
        type_configs: list[TypeConfig],
        request: SearchRequest,
        intent_fields: tuple[str, ...] = (),
    ) -> CompiledQuery:
        """
        A single query over the shared index OR-ing every type's clause.

        Each branch carries a type discriminator, so one page is taken across
        the union rather than per type. Facets and post filters do not apply.
        """
        type_field = self._compiler.registry.scoring.type_field
        branches = []
        for type_config in type_configs:
            clauses = self._compiler.compile(type_config, request, intent_fields)
            branches.append(self._main_clause(clauses, [term_query(type_field, type_config.type)]))

        body: dict[str, Any] = self._paging(request)
        body["query"] = self._scored(bool_should(branches) or dict(MATCH_ALL))

        logger.debug(f"Flat query over {len(type_configs)} types")
        return CompiledQuery(index=self._compiler.registry.shared_index, doc_type=None, body=body)
