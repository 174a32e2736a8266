"""
MultiTypeOrchestrator - Fan a request out across entity types.

Executes a search by:
1. Resolving the requested types (one id, ``*``, or a list) against the API
2. Compiling every per-type query before any I/O
3. Submitting one batched round trip (or one query for a single type / flat mode)
4. Merging the positionally correlated responses
"""

from __future__ import annotations

import logging

from entity_search.application.search.query_builder import QueryBuilder
from entity_search.application.search.response_processor import ResponseProcessor
from entity_search.domain.entities import (
    ANY_TYPE,
    MultiResult,
    NormalizedResult,
    SearchApiConfig,
    SearchRequest,
    TypeConfig,
)
from entity_search.domain.gateway import SearchGateway
from entity_search.shared.exceptions import ValidationError

logger = logging.getLogger(__name__)


def requested_type(api: SearchApiConfig, request: SearchRequest) -> str | tuple[str, ...]:
    return request.type if request.type is not None else api.default_type


def is_single_type(api: SearchApiConfig, request: SearchRequest) -> bool:
    requested = requested_type(api, request)
    return isinstance(requested, str) and requested != ANY_TYPE


def resolve_types(api: SearchApiConfig, request: SearchRequest) -> list[tuple[str, TypeConfig]]:
    """
    ``(api key, config)`` pairs selected by ``request.type``.

    No type falls back to the API's default type; ``*`` selects every type.

    Raises:
        ValidationError: SEARCH_CONFIG_NOT_FOUND for an unknown type id
    """
    requested = requested_type(api, request)
    if requested == ANY_TYPE:
        return list(api.types.items())

    keys = requested if isinstance(requested, tuple) else (requested,)
    selected = []
    for key in keys:
        config = api.types.get(key)
        if config is None:
            raise ValidationError(
                f"No type config found for: {key}",
                code="SEARCH_CONFIG_NOT_FOUND",
                field="type",
                details={"type": key},
            )
        selected.append((key, config))
    return selected


def resolve_single_type(api: SearchApiConfig, request: SearchRequest) -> tuple[str, TypeConfig]:
    """
    The one ``(api key, config)`` pair a document-level operation acts on.

    Raises:
        ValidationError: SINGLE_TYPE_REQUIRED unless the request names exactly one type
    """
    if not is_single_type(api, request):
        raise ValidationError(
            "Exactly one type is required",
            code="SINGLE_TYPE_REQUIRED",
            field="type",
            details={"type": requested_type(api, request)},
        )
    return resolve_types(api, request)[0]


class MultiTypeOrchestrator:
    """Coordinates builder, gateway and processor for one API call."""

    def __init__(self, builder: QueryBuilder, processor: ResponseProcessor, gateway: SearchGateway) -> None:
        self._builder = builder
        self._processor = processor
        self._gateway = gateway

    @property
    def builder(self) -> QueryBuilder:
        return self._builder

    @property
    def processor(self) -> ResponseProcessor:
        return self._processor

    # =====================================================================
    # Public API
    # =====================================================================

    async def search(self, api: SearchApiConfig, request: SearchRequest) -> NormalizedResult | MultiResult:
        """Run a search and return a single-type, flat, or merged multi-type result."""
        selected = resolve_types(api, request)
        type_ids = tuple(key for key, _ in selected)
        configs = [config for _, config in selected]
        intent_fields = api.intent_fields(type_ids)

        if request.is_flat:
            return await self._search_flat(configs, request, intent_fields)

        if is_single_type(api, request):
            key, config = selected[0]
            query = self._builder.build(config, request, intent_fields)
            response = await self._gateway.execute(query)
            return self._processor.process_single(response, api, key, request)

        return await self._search_multi(api, selected, request, intent_fields)

    # =====================================================================
    # Internals
    # =====================================================================

    async def _search_multi(
        self,
        api: SearchApiConfig,
        selected: list[tuple[str, TypeConfig]],
        request: SearchRequest,
        intent_fields: tuple[str, ...],
    ) -> MultiResult:
        # Compile everything first, then exactly one round trip
        queries = self._builder.build_many([config for _, config in selected], request, intent_fields)
        logger.debug(f"Submitting batch of {len(queries)} queries")
        responses = await self._gateway.execute_batch(queries)
        return self._processor.process_multi(responses, api, [key for key, _ in selected], request)

    async def _search_flat(
        self,
        configs: list[TypeConfig],
        request: SearchRequest,
        intent_fields: tuple[str, ...],
    ) -> NormalizedResult:
        query = self._builder.build_flat(configs, request, intent_fields)
        response = await self._gateway.execute(query)
        return self._processor.process_flat(response, request)
