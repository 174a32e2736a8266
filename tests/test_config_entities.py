"""Tests for the registry value objects."""

from __future__ import annotations

from types import MappingProxyType

import pytest

from entity_search.domain.entities.config import SearchApiConfig, TypeConfig


class TestMappingDefaults:
    def test_type_config_defaults_are_empty_and_read_only(self):
        config = TypeConfig(type="used_car", index="cardekho_store", doc_type="used_car", name="Used Cars")

        assert isinstance(config.filters, MappingProxyType)
        assert dict(config.filters) == {}
        assert dict(config.summaries) == {}
        with pytest.raises(TypeError):
            config.filters["brand"] = None

    def test_defaults_are_not_shared(self):
        first = SearchApiConfig(name="search")
        second = SearchApiConfig(name="views")

        assert dict(first.types) == {}
        assert first.types is not second.types
