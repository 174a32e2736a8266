"""
Application Service: Searcher

The caller-facing facade. Every operation takes ``(headers, raw_input)``,
validates the input, lets the tenant strategy adjust the query text, and
delegates to the orchestrators.

Architecture:
    API layer → Searcher (here) → Orchestrators → Builder/Compiler → Gateway
    Results flow back through the Response Processor.

Error boundary:
    ValidationError, ConfigurationError and InternalServiceError leave
    unchanged. Anything else is logged and rewrapped as InternalServiceError
    with the original kept as ``cause``.

Usage:
    >>> searcher = container.searcher()
    >>> result = await searcher.search({}, {"text": "swift dzire", "type": "*"})
    >>> result.to_dict()["totalResults"]
"""

from __future__ import annotations

import functools
import logging
from collections.abc import Awaitable, Callable, Mapping
from dataclasses import replace
from typing import Any, TypeVar

from entity_search.application.events import EventName, EventSink, SearchEvent, dispatch
from entity_search.application.search.input_schema import (
    AutocompleteInput,
    BrowseAllInput,
    ExplainInput,
    FormSearchInput,
    GetInput,
    SearchInput,
    TermVectorsInput,
    ViewInput,
    validate_input,
)
from entity_search.application.search.intent_cascade import IntentCascadeOrchestrator
from entity_search.application.search.orchestrator import MultiTypeOrchestrator, resolve_single_type
from entity_search.application.search.query_builder import MATCH_ALL
from entity_search.application.search.query_compiler import thaw
from entity_search.application.search.ranking_algorithms import deflection_rank
from entity_search.application.search.response_processor import api_type_config
from entity_search.application.search.tenant import TenantStrategy
from entity_search.domain.entities import (
    ANY_TYPE,
    MultiResult,
    NormalizedResult,
    SearchApiConfig,
    SearchRegistry,
    SearchRequest,
    SectionList,
    TypeConfig,
    ViewResult,
)
from entity_search.domain.gateway import SearchGateway
from entity_search.shared.exceptions import InternalServiceError, ValidationError, is_caller_facing

logger = logging.getLogger(__name__)

VIEW_PAGE_SIZE = 100

Headers = Mapping[str, Any] | None
ResultT = TypeVar("ResultT")


def service_boundary(func: Callable[..., Awaitable[ResultT]]) -> Callable[..., Awaitable[ResultT]]:
    """Rewrap unexpected failures of a service operation as InternalServiceError."""

    @functools.wraps(func)
    async def wrapper(*args: Any, **kwargs: Any) -> ResultT:
        try:
            return await func(*args, **kwargs)
        except Exception as e:
            if is_caller_facing(e):
                raise
            logger.exception(f"{func.__name__} failed: {e}")
            raise InternalServiceError(cause=e) from e

    return wrapper


def query_languages(request: SearchRequest) -> tuple[str, ...]:
    """Languages a request asked for, primary first, without duplicates."""
    languages: list[str] = []
    lang = request.lang or {}
    for value in (lang.get("primary"), lang.get("secondary")):
        for code in value if isinstance(value, list | tuple) else [value]:
            if code and code not in languages:
                languages.append(code)
    for code in request.term_languages:
        if code not in languages:
            languages.append(code)
    return tuple(languages)


class Searcher:
    """
    Search service facade.

    One instance per process; holds no per-request state.
    """

    def __init__(
        self,
        registry: SearchRegistry,
        orchestrator: MultiTypeOrchestrator,
        cascade: IntentCascadeOrchestrator,
        tenant: TenantStrategy,
        gateway: SearchGateway,
        event_sink: EventSink | None = None,
    ) -> None:
        self._registry = registry
        self._orchestrator = orchestrator
        self._cascade = cascade
        self._tenant = tenant
        self._gateway = gateway
        self._event_sink = event_sink

    @property
    def registry(self) -> SearchRegistry:
        return self._registry

    # =====================================================================
    # Helpers
    # =====================================================================

    def _prepare(self, request: SearchRequest) -> SearchRequest:
        adjusted = self._tenant.adjust_query_text(request.text)
        return request if adjusted == request.text else request.with_text(adjusted)

    def _emit(self, name: EventName, headers: Headers, request: SearchRequest, result: Any) -> None:
        dispatch(
            self._event_sink,
            SearchEvent(
                name=name,
                headers=dict(headers or {}),
                query_data=request.to_dict(),
                query_languages=query_languages(request),
                query_result=result,
            ),
        )

    def _type_config(self, api: SearchApiConfig, type_id: str) -> TypeConfig:
        config = api_type_config(api, type_id) or self._registry.types.get(type_id)
        if config is None:
            raise ValidationError(
                f"Index type not found: {type_id}",
                code="INDEX_TYPE_NOT_FOUND",
                field="type",
                details={"type": type_id},
            )
        return config

    # =====================================================================
    # Search operations
    # =====================================================================

    @service_boundary
    async def search(self, headers: Headers, raw_input: Any) -> NormalizedResult | MultiResult | SectionList:
        """
        Free-text search over one, several or all types.

        Multi-type requests may be answered by the tenant's section
        composition instead of the generic merged result.
        """
        request = self._prepare(validate_input(SearchInput, raw_input).to_request())

        result: NormalizedResult | MultiResult | SectionList | None = None
        if request.is_multi_type:
            result = await self._tenant.compose_sections(request, self._cascade)
        if result is None:
            result = await self._orchestrator.search(self._registry.search, request)

        self._emit(EventName.SEARCH, headers, request, result)
        return result

    @service_boundary
    async def autocomplete(self, headers: Headers, raw_input: Any) -> NormalizedResult | MultiResult:
        request = self._prepare(validate_input(AutocompleteInput, raw_input).to_request())
        result = await self._orchestrator.search(self._registry.autocomplete, request)
        self._emit(EventName.AUTOCOMPLETE, headers, request, result)
        return result

    @service_boundary
    async def form_search(self, headers: Headers, raw_input: Any) -> NormalizedResult | MultiResult:
        """Structured search driven by filters; no section composition."""
        request = self._prepare(validate_input(FormSearchInput, raw_input).to_request())
        result = await self._orchestrator.search(self._registry.search, request)
        self._emit(EventName.FORM_SEARCH, headers, request, result)
        return result

    @service_boundary
    async def browse_all(self, headers: Headers, raw_input: Any) -> NormalizedResult | MultiResult:
        """Filter/sort browsing; any query text is ignored."""
        request = validate_input(BrowseAllInput, raw_input).to_request().with_text(None)
        result = await self._orchestrator.search(self._registry.search, request)
        self._emit(EventName.BROWSE_ALL, headers, request, result)
        return result

    @service_boundary
    async def suggested_queries(self, headers: Headers, raw_input: Any) -> NormalizedResult:
        """
        Autocomplete over every type, flattened by the deflection ranker.

        Returns:
            A single result whose hits come from all types, cut at the first
            sharp drop in weight-normalized relevancy.
        """
        request = self._prepare(validate_input(AutocompleteInput, raw_input).to_request())
        if request.type is None:
            request = replace(request, type=ANY_TYPE)

        found = await self._orchestrator.search(self._registry.autocomplete, request)
        if isinstance(found, NormalizedResult):
            result = found
        else:
            ranked = deflection_rank(
                (group.results for group in found.results.values()),
                ratio=self._registry.relevancy.deflection_ratio,
                weight_key=self._registry.scoring.weight_field,
            )
            result = NormalizedResult(
                type=None,
                name=None,
                results=ranked,
                total_results=found.total_results,
                query_time_taken=found.query_time_taken,
                search_text=found.search_text,
                filter=found.filter,
                sort=found.sort,
                page=found.page,
            )

        self._emit(EventName.SUGGESTED_QUERIES, headers, request, result)
        return result

    @service_boundary
    async def intent(self, headers: Headers, raw_input: Any) -> dict[str, Any]:
        """Raw entity-recognition lookup for the query text."""
        request = self._prepare(validate_input(SearchInput, raw_input).to_request())
        return await self._cascade.lookup(self._registry.search, request)

    # =====================================================================
    # Diagnostics
    # =====================================================================

    @service_boundary
    async def explain(self, api_name: str, headers: Headers, raw_input: Any) -> Any:
        """
        Backend explanation of why document ``id`` matches the compiled query.

        Args:
            api_name: ``search`` or ``autocomplete``
            headers: Caller headers
            raw_input: Search input plus the required ``id`` and ``type``

        Returns:
            The backend's explanation tree, or ``None`` when the document is unknown
        """
        if api_name not in ("search", "autocomplete"):
            raise ValidationError(f"Explain is not available for '{api_name}'", code="UNKNOWN_API", field="api")

        api = self._registry.api(api_name)
        request = self._prepare(validate_input(ExplainInput, raw_input).to_request())
        key, config = resolve_single_type(api, request)
        query = self._orchestrator.builder.build(config, request, api.intent_fields((key,))).without_paging()

        response = await self._gateway.explain(query, request.id)
        return response.get("explanation") if response else None

    async def explain_search(self, headers: Headers, raw_input: Any) -> Any:
        return await self.explain("search", headers, raw_input)

    async def explain_autocomplete(self, headers: Headers, raw_input: Any) -> Any:
        return await self.explain("autocomplete", headers, raw_input)

    @service_boundary
    async def term_vectors(self, headers: Headers, raw_input: Any) -> Any:
        params = validate_input(TermVectorsInput, raw_input)
        config = self._type_config(self._registry.search, params.type)
        response = await self._gateway.term_vectors(config.index, config.doc_type, params.id)
        return response.get("term_vectors") if response else None

    # =====================================================================
    # Documents
    # =====================================================================

    @service_boundary
    async def get(self, headers: Headers, raw_input: Any) -> dict[str, Any] | None:
        """
        Fetch one document by type and id.

        Raises:
            ValidationError: UNDEFINED_ID, UNDEFINED_TYPE or INDEX_TYPE_NOT_FOUND
        """
        params = validate_input(GetInput, raw_input)
        if not params.id:
            raise ValidationError("Undefined id", code="UNDEFINED_ID", field="id")
        if not params.type:
            raise ValidationError("Undefined type", code="UNDEFINED_TYPE", field="type")

        config = self._type_config(self._registry.search, params.type)
        doc = await self._gateway.fetch_by_id(config.index, config.doc_type, params.id)
        if doc is None:
            logger.debug(f"Document {params.type}/{params.id} not found")
            return None
        return self._orchestrator.processor.process_source(doc, config.name)

    @service_boundary
    async def view(self, headers: Headers, raw_input: Any) -> ViewResult:
        """
        Export every document of a view type matching the filters.

        The backend is scrolled in pages; ``post`` filters run on each page
        before documents are kept.
        """
        request = validate_input(ViewInput, raw_input).to_request()
        api = self._registry.views
        _, config = resolve_single_type(api, request)

        compiler = self._orchestrator.builder.compiler
        body: dict[str, Any] = {"query": compiler.filter_queries(config, request) or thaw(MATCH_ALL)}
        sort = compiler.sort_part(config, request)
        if sort:
            body["sort"] = sort
        predicates = compiler.post_filters(config, request)
        processor = self._orchestrator.processor

        result = ViewResult()

        def on_page(page: dict[str, Any]) -> None:
            for hit in (page.get("hits") or {}).get("hits") or []:
                doc = processor.process_source(hit, config.name)
                if all(predicate(doc) for predicate in predicates):
                    result.results.append(doc)

        await self._gateway.scroll_all(config.index, config.doc_type, body, VIEW_PAGE_SIZE, on_page)
        logger.info(f"View '{config.type}' exported {result.total_results} documents")
        return result
