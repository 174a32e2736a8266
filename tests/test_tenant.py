"""Tests for tenant strategies."""

from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock

import pytest

from entity_search.application.search.intent_cascade import CAR_CASCADE
from entity_search.application.search.tenant import (
    DosageTextStrategy,
    IntentCascadeStrategy,
    TenantStrategy,
    resolve_tenant_strategy,
)
from entity_search.domain.entities import SearchRequest, SectionList
from entity_search.shared.exceptions import ConfigurationError


class TestDosageText:
    @pytest.mark.parametrize(
        ("text", "expected"),
        [
            ("crocin 500 mg", "crocin 500mg"),
            ("drops .5 ml", "drops 0.5ml"),
            ("strip 10'S", "strip 10S"),
            ("paracetamol", "paracetamol"),
        ],
    )
    def test_rewrites(self, text, expected):
        assert DosageTextStrategy().adjust_query_text(text) == expected

    def test_no_text(self):
        assert DosageTextStrategy().adjust_query_text(None) is None


class TestIntentCascadeStrategy:
    async def test_runs_for_wildcard_text_searches(self):
        sections = SectionList(state="brand-multi")
        cascade = MagicMock()
        cascade.run = AsyncMock(return_value=sections)

        strategy = IntentCascadeStrategy(CAR_CASCADE)
        result = await strategy.compose_sections(SearchRequest(text="maruti", type="*"), cascade)

        assert result is sections
        cascade.run.assert_awaited_once()

    @pytest.mark.parametrize(
        "request_",
        [
            SearchRequest(text="maruti", type="used_car"),
            SearchRequest(text="maruti", type=("new_car_brand", "new_car_dealer")),
            SearchRequest(text="maruti", type="*", format="flat"),
            SearchRequest(type="*"),
        ],
    )
    async def test_skipped_otherwise(self, request_):
        cascade = MagicMock()
        cascade.run = AsyncMock()
        assert await IntentCascadeStrategy(CAR_CASCADE).compose_sections(request_, cascade) is None
        cascade.run.assert_not_called()


class TestResolve:
    def test_default(self):
        strategy = resolve_tenant_strategy(None)
        assert type(strategy) is TenantStrategy
        assert strategy.adjust_query_text("Swift  ") == "Swift  "

    def test_named(self):
        assert isinstance(resolve_tenant_strategy({"strategy": "dosage_units"}), DosageTextStrategy)
        strategy = resolve_tenant_strategy({"strategy": "intent_cascade", "intent_class": "bike_name"})
        assert isinstance(strategy, IntentCascadeStrategy)
        assert strategy.config.intent_class == "bike_name"

    def test_unknown(self):
        with pytest.raises(ConfigurationError) as exc:
            resolve_tenant_strategy({"strategy": "magic"})
        assert exc.value.code == "UNKNOWN_TENANT_STRATEGY"

    async def test_default_never_composes(self):
        assert await TenantStrategy().compose_sections(SearchRequest(text="x"), MagicMock()) is None
