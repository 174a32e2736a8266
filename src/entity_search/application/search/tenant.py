"""
Per-tenant behaviour, selected once at startup.

Strategies implement two capabilities:

- ``adjust_query_text``: rewrite the query text before compilation
- ``compose_sections``: optionally replace a multi-type search with a
  composed section list (``None`` keeps the generic result)

Configured through the ``tenant`` block::

    tenant:
      strategy: dosage_units        # default | dosage_units | intent_cascade
"""

from __future__ import annotations

import logging
import re
from collections.abc import Callable, Mapping
from typing import TYPE_CHECKING, Any

from entity_search.application.search.intent_cascade import CascadeConfig, parse_cascade_config
from entity_search.domain.entities import SearchRequest, SectionList
from entity_search.shared.exceptions import ConfigurationError

if TYPE_CHECKING:
    from entity_search.application.search.intent_cascade import IntentCascadeOrchestrator

logger = logging.getLogger(__name__)


class TenantStrategy:
    """No-op behaviour shared by every tenant."""

    name = "default"

    def adjust_query_text(self, text: str | None) -> str | None:
        return text

    async def compose_sections(
        self,
        request: SearchRequest,
        cascade: IntentCascadeOrchestrator,
    ) -> SectionList | None:
        return None


class DosageTextStrategy(TenantStrategy):
    """
    Normalizes dosage notation in pharmacy catalogues.

    ``"crocin 500 mg"`` → ``"crocin 500mg"``, ``"drops .5 ml"`` → ``"drops 0.5ml"``,
    ``"10'S"`` → ``"10S"``.
    """

    name = "dosage_units"

    _SPACED_UNIT = re.compile(r"(^|\s|[^0-9]|[^a-z])([0-9]+)\s+(mg|mcg|ml|%)", re.IGNORECASE)
    _BARE_DECIMAL = re.compile(r"(^|\s|[^0-9]|[^a-z])\.([0-9]+)\s*(mg|mcg|ml|%)", re.IGNORECASE)
    _PACK_SUFFIX = re.compile(r"([0-9]+)'S$", re.IGNORECASE)

    def adjust_query_text(self, text: str | None) -> str | None:
        if not text:
            return text
        text = self._SPACED_UNIT.sub(r"\1\2\3", text)
        text = self._BARE_DECIMAL.sub(r"\g<1>0.\2\3", text)
        text = self._PACK_SUFFIX.sub(r"\1S", text)
        return text.strip()


class IntentCascadeStrategy(TenantStrategy):
    """Composes sections for wildcard searches through the intent cascade."""

    name = "intent_cascade"

    def __init__(self, config: CascadeConfig) -> None:
        self.config = config

    async def compose_sections(
        self,
        request: SearchRequest,
        cascade: IntentCascadeOrchestrator,
    ) -> SectionList | None:
        if not request.is_any_type or request.is_flat or not request.text:
            return None
        return await cascade.run(self.config, request)


_STRATEGIES: dict[str, Callable[[Mapping[str, Any]], TenantStrategy]] = {
    "default": lambda options: TenantStrategy(),
    "dosage_units": lambda options: DosageTextStrategy(),
    "intent_cascade": lambda options: IntentCascadeStrategy(parse_cascade_config(options)),
}


def resolve_tenant_strategy(settings: Mapping[str, Any] | None) -> TenantStrategy:
    """
    Build the tenant strategy named in ``settings['strategy']``.

    Raises:
        ConfigurationError: UNKNOWN_TENANT_STRATEGY for an unregistered name
    """
    settings = settings or {}
    name = settings.get("strategy", "default")
    factory = _STRATEGIES.get(name)
    if factory is None:
        raise ConfigurationError(
            f"Unknown tenant strategy '{name}'. Known: {sorted(_STRATEGIES)}",
            code="UNKNOWN_TENANT_STRATEGY",
            details={"strategy": name},
        )
    strategy = factory(settings)
    logger.info(f"Tenant strategy: {strategy.name}")
    return strategy
