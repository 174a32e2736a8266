"""
Intent Cascade - Entity-recognition driven result composition.

Instead of one generic multi-type search, a recognized entity name in the
query (e.g. a car brand, model or variant) selects which sections to show:

1. **Lookup**: the entity-recognition index returns suggestion lists, each
   ``{score, intent_tokens: [{token, score, match_token_type}]}``.
2. **Probe**: one batched round trip queries every probe level (brand, model,
   variant) with the suggestions.
3. **Classify**: levels are inspected in configured order; the first level
   with hits gives ``<level>-single`` (exactly one hit) or ``<level>-multi``.
   No hits anywhere gives ``fallback``.
4. **Compose**: the state's section table is materialized. Sections reuse a
   probe result or query their type by suggestions on one field; the field
   queries share one more batched round trip. Empty sections are dropped.

Fallback runs the generic multi-type search and formats its groups as
sections.

Token-overlap query::

    token      → bool.should[term(field.humane, token, 10·w·s), term(field.humane, "e#"+token, 2·w·s)]
    tokens     → bool.should[token…], minimum_should_match 1 (≤2) / 2 (3-4) / 3 (≥5)
    suggestions → dis_max(tie_breaker 0.7, boost 1.2)
"""

from __future__ import annotations

import logging
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any

from entity_search.application.search.orchestrator import resolve_types
from entity_search.domain.entities import (
    CompiledQuery,
    MultiResult,
    NormalizedResult,
    SearchApiConfig,
    SearchRegistry,
    SearchRequest,
    Section,
    SectionList,
)
from entity_search.shared.exceptions import ConfigurationError

if TYPE_CHECKING:
    from entity_search.application.search.orchestrator import MultiTypeOrchestrator
    from entity_search.application.search.response_processor import ResponseProcessor
    from entity_search.domain.gateway import SearchGateway

logger = logging.getLogger(__name__)

EXACT_TOKEN_BOOST = 10.0
ENCODED_TOKEN_BOOST = 2.0
ENCODED_TOKEN_PREFIX = "e#"
BIGRAM_TOKEN_TYPE = "Bi"
DIS_MAX_TIE_BREAKER = 0.7
DIS_MAX_BOOST = 1.2


# =============================================================================
# Cascade tables
# =============================================================================


@dataclass(frozen=True)
class ProbeLevel:
    """One specificity level: which type to probe and on which field."""

    name: str
    doc_type: str
    field: str


@dataclass(frozen=True)
class SectionSpec:
    """
    One composed section.

    ``probe`` reuses that level's probe result; otherwise ``field`` queries
    ``result_type`` with the intent suggestions.
    """

    name: str
    result_type: str
    title: str
    probe: str | None = None
    field: str | None = None


@dataclass(frozen=True)
class CascadeConfig:
    intent_class: str
    levels: tuple[ProbeLevel, ...]
    compositions: Mapping[str, tuple[SectionSpec, ...]]
    fallback: tuple[SectionSpec, ...]

    def composition(self, state: CascadeState) -> tuple[SectionSpec, ...]:
        return self.compositions.get(state.name, ())


def _related(level_field: str) -> tuple[SectionSpec, ...]:
    return (
        SectionSpec("used-cars", "used_car", "Used Cars", field=level_field),
        SectionSpec("news", "car_news", "News", field=level_field),
        SectionSpec("new-car-dealers", "new_car_dealer", "New Car Dealers", field="brand"),
    )


CAR_CASCADE = CascadeConfig(
    intent_class="car_name",
    levels=(
        ProbeLevel("brand", "new_car_brand", "brand"),
        ProbeLevel("model", "new_car_model", "model"),
        ProbeLevel("variant", "new_car_variant", "variant"),
    ),
    compositions={
        "brand-single": (SectionSpec("models", "new_car_model", "New Cars", probe="model"), *_related("brand")),
        "brand-multi": (
            SectionSpec("matching-brands", "new_car_brand", "Matching Brands", probe="brand"),
            *_related("brand"),
        ),
        "model-single": (
            SectionSpec("model", "new_car_model", "Matching Model", probe="model"),
            SectionSpec("variants", "new_car_variant", "New Cars", probe="variant"),
            *_related("model"),
        ),
        "model-multi": (
            SectionSpec("matching-models", "new_car_model", "Matching Models", probe="model"),
            *_related("model"),
        ),
        "variant-single": (
            SectionSpec("variant", "new_car_variant", "Matching Variant", probe="variant"),
            *_related("model"),
        ),
        "variant-multi": (
            SectionSpec("matching-variants", "new_car_variant", "Matching Variants", probe="variant"),
            *_related("model"),
        ),
    },
    fallback=(
        SectionSpec("models", "new_car_model", "New Car Models"),
        SectionSpec("variants", "new_car_variant", "New Car Variants"),
        SectionSpec("used-cars", "used_car", "Used Cars"),
        SectionSpec("news", "car_news", "News"),
        SectionSpec("new-car-dealers", "new_car_dealer", "New Car Dealers"),
    ),
)


def _parse_section(raw: Mapping[str, Any]) -> SectionSpec:
    try:
        return SectionSpec(
            name=raw["name"],
            result_type=raw["type"],
            title=raw["title"],
            probe=raw.get("probe"),
            field=raw.get("field"),
        )
    except KeyError as e:
        raise ConfigurationError(
            f"Cascade section needs name, type and title: missing {e}",
            code="INVALID_CASCADE_SECTION",
            details={"section": dict(raw)},
        ) from None


def parse_cascade_config(options: Mapping[str, Any]) -> CascadeConfig:
    """Tenant options → CascadeConfig; anything not given keeps the car tables."""
    levels = CAR_CASCADE.levels
    if options.get("levels"):
        levels = tuple(ProbeLevel(level["name"], level["type"], level["field"]) for level in options["levels"])

    compositions = dict(CAR_CASCADE.compositions)
    for state, sections in (options.get("compositions") or {}).items():
        compositions[state] = tuple(_parse_section(s) for s in sections)

    fallback = CAR_CASCADE.fallback
    if options.get("fallback"):
        fallback = tuple(_parse_section(s) for s in options["fallback"])

    level_names = {level.name for level in levels}
    for state, sections in compositions.items():
        for section in sections:
            if section.probe and section.probe not in level_names:
                raise ConfigurationError(
                    f"Section '{section.name}' of '{state}' reuses unknown probe '{section.probe}'",
                    code="UNKNOWN_CASCADE_PROBE",
                )
            if not section.probe and not section.field:
                raise ConfigurationError(
                    f"Section '{section.name}' of '{state}' needs a probe or a field",
                    code="INVALID_CASCADE_SECTION",
                )

    return CascadeConfig(
        intent_class=options.get("intent_class", CAR_CASCADE.intent_class),
        levels=levels,
        compositions=compositions,
        fallback=fallback,
    )


# =============================================================================
# Classification
# =============================================================================


class Specificity(Enum):
    SINGLE = "single"
    MULTI = "multi"


@dataclass(frozen=True)
class CascadeState:
    """``level`` is ``None`` for the fallback state."""

    level: str | None = None
    specificity: Specificity | None = None

    @property
    def is_fallback(self) -> bool:
        return self.level is None

    @property
    def name(self) -> str:
        if self.level is None:
            return "fallback"
        return f"{self.level}-{self.specificity.value}"


FALLBACK = CascadeState()


def classify(hit_counts: Mapping[str, int], levels: Sequence[str]) -> CascadeState:
    """
    Total over every combination of counts: first level with hits decides.

    Example:
        >>> classify({"brand": 0, "model": 1, "variant": 4}, ["brand", "model", "variant"]).name
        'model-single'
    """
    for level in levels:
        hits = hit_counts.get(level, 0)
        if hits == 1:
            return CascadeState(level, Specificity.SINGLE)
        if hits > 1:
            return CascadeState(level, Specificity.MULTI)
    return FALLBACK


# =============================================================================
# Token-overlap queries
# =============================================================================


def minimum_should_match(token_count: int) -> int:
    if token_count <= 2:
        return 1
    if token_count <= 4:
        return 2
    return 3


def intent_token_query(token: Mapping[str, Any], weight: float, field: str) -> dict[str, Any]:
    suffix = "shingle" if token.get("match_token_type") == BIGRAM_TOKEN_TYPE else "humane"
    target = f"{field}.{suffix}"
    token_score = token.get("score", 1.0)
    return {
        "bool": {
            "should": [
                {"term": {target: {"value": token["token"], "boost": EXACT_TOKEN_BOOST * weight * token_score}}},
                {
                    "term": {
                        target: {
                            "value": f"{ENCODED_TOKEN_PREFIX}{token['token']}",
                            "boost": ENCODED_TOKEN_BOOST * weight * token_score,
                        }
                    }
                },
            ],
            "minimum_should_match": 1,
        }
    }


def intent_token_list_query(tokens: Sequence[Mapping[str, Any]], weight: float, field: str) -> dict[str, Any]:
    if len(tokens) == 1:
        return intent_token_query(tokens[0], weight, field)
    return {
        "bool": {
            "should": [intent_token_query(token, weight, field) for token in tokens],
            "minimum_should_match": minimum_should_match(len(tokens)),
        }
    }


def intent_suggestion_query(suggestion: Mapping[str, Any], field: str) -> dict[str, Any]:
    return intent_token_list_query(suggestion["intent_tokens"], suggestion.get("score", 1.0), field)


def intent_suggestion_list_query(suggestions: Sequence[Mapping[str, Any]], field: str) -> dict[str, Any]:
    """Best-of-N over suggestions, tie-broken toward the runner-ups."""
    if len(suggestions) == 1:
        return intent_suggestion_query(suggestions[0], field)
    return {
        "dis_max": {
            "tie_breaker": DIS_MAX_TIE_BREAKER,
            "boost": DIS_MAX_BOOST,
            "queries": [intent_suggestion_query(s, field) for s in suggestions],
        }
    }


# =============================================================================
# Entity recognition
# =============================================================================


def build_intent_query(registry: SearchRegistry, api: SearchApiConfig, request: SearchRequest) -> dict[str, Any]:
    """``{query, lookupEntities}`` for the entity-recognition endpoint."""
    type_ids = tuple(key for key, _ in resolve_types(api, request))
    lookup_entities = []
    for name in api.intent_fields(type_ids):
        entity = registry.lookup_intent_entities.get(name)
        if entity:
            lookup_entities.append({**entity, "name": name})
    return {"query": request.text, "lookupEntities": lookup_entities}


def extract_suggestions(intent_response: Mapping[str, Any] | None, intent_class: str) -> list[dict[str, Any]]:
    """Suggestions of the first recognition result for ``intent_class``; unusable ones are dropped."""
    results = (intent_response or {}).get("results") or []
    if not results:
        return []
    suggestions = (results[0].get("intent_classes") or {}).get(intent_class) or []
    return [s for s in suggestions if s.get("intent_tokens")]


# =============================================================================
# Orchestrator
# =============================================================================


@dataclass
class _Probes:
    results: dict[str, NormalizedResult] = field(default_factory=dict)

    def hit_counts(self) -> dict[str, int]:
        return {level: result.total_results for level, result in self.results.items()}


class IntentCascadeOrchestrator:
    """Runs lookup → probe → classify → compose for one request."""

    def __init__(
        self,
        registry: SearchRegistry,
        gateway: SearchGateway,
        processor: ResponseProcessor,
        orchestrator: MultiTypeOrchestrator,
    ) -> None:
        self._registry = registry
        self._gateway = gateway
        self._processor = processor
        self._orchestrator = orchestrator

    async def lookup(self, api: SearchApiConfig, request: SearchRequest) -> dict[str, Any]:
        """Raw entity-recognition response for the request text."""
        return await self._gateway.intent(self._registry.intent_index, build_intent_query(self._registry, api, request))

    async def run(self, config: CascadeConfig, request: SearchRequest) -> SectionList:
        api = self._registry.search
        suggestions = extract_suggestions(await self.lookup(api, request), config.intent_class)
        if not suggestions:
            logger.debug("No intent suggestions, composing fallback sections")
            return await self.fallback(config, request)

        probes = await self.probe(config, suggestions)
        state = classify(probes.hit_counts(), [level.name for level in config.levels])
        logger.info(f"Intent cascade state for '{request.text}': {state.name}")

        if state.is_fallback:
            return await self.fallback(config, request)
        return await self.compose(config, state, suggestions, probes, request)

    # =====================================================================
    # Steps
    # =====================================================================

    def suggestion_query(self, result_type: str, suggestions: Sequence[Mapping[str, Any]], field: str) -> CompiledQuery:
        type_config = self._registry.types.get(result_type)
        return CompiledQuery(
            index=type_config.index if type_config else self._registry.shared_index,
            doc_type=type_config.doc_type if type_config else result_type,
            body={"query": intent_suggestion_list_query(suggestions, field)},
            type_id=result_type,
        )

    def _process(self, response: Mapping[str, Any], result_type: str) -> NormalizedResult:
        return self._processor.process_response(response, self._registry.search, result_type)

    async def probe(self, config: CascadeConfig, suggestions: Sequence[Mapping[str, Any]]) -> _Probes:
        queries = [self.suggestion_query(level.doc_type, suggestions, level.field) for level in config.levels]
        responses = await self._gateway.execute_batch(queries)
        probes = _Probes()
        for level, response in zip(config.levels, responses, strict=True):
            probes.results[level.name] = self._process(response, level.doc_type)
        return probes

    async def compose(
        self,
        config: CascadeConfig,
        state: CascadeState,
        suggestions: Sequence[Mapping[str, Any]],
        probes: _Probes,
        request: SearchRequest,
    ) -> SectionList:
        specs = config.composition(state)
        queried = [spec for spec in specs if not spec.probe]
        responses = []
        if queried:
            queries = [self.suggestion_query(spec.result_type, suggestions, spec.field) for spec in queried]
            responses = await self._gateway.execute_batch(queries)
        fetched = {spec.name: self._process(r, spec.result_type) for spec, r in zip(queried, responses, strict=True)}

        sections = []
        for spec in specs:
            result = probes.results.get(spec.probe) if spec.probe else fetched.get(spec.name)
            if result is not None and result.total_results > 0:
                sections.append(Section(name=spec.name, title=spec.title, result_type=spec.result_type, result=result))
        return SectionList(sections=sections, search_text=request.text, state=state.name)

    async def fallback(self, config: CascadeConfig, request: SearchRequest) -> SectionList:
        """Generic multi-type search formatted as sections."""
        result = await self._orchestrator.search(self._registry.search, request)
        return format_sections(result, config.fallback, request, FALLBACK)


def format_sections(
    result: NormalizedResult | MultiResult,
    specs: Sequence[SectionSpec],
    request: SearchRequest,
    state: CascadeState = FALLBACK,
) -> SectionList:
    """Pick the groups named by ``specs`` out of a search result, in spec order."""
    sections = []
    for spec in specs:
        if isinstance(result, MultiResult):
            group = result.group(spec.result_type)
        else:
            group = result if result.type == spec.result_type else None
        if group is not None and group.total_results > 0:
            sections.append(Section(name=spec.name, title=spec.title, result_type=spec.result_type, result=group))
    return SectionList(sections=sections, search_text=request.text, state=state.name)
