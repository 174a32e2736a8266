"""Tests for MultiTypeOrchestrator fan-out."""

from __future__ import annotations

import pytest
from conftest import es_response, hit

from entity_search.application.search.orchestrator import is_single_type, resolve_single_type, resolve_types
from entity_search.domain.entities import MultiResult, NormalizedResult, SearchRequest
from entity_search.shared.exceptions import ValidationError


class TestResolveTypes:
    def test_any_type_selects_all_in_declaration_order(self, registry):
        keys = [key for key, _ in resolve_types(registry.search, SearchRequest(type="*"))]
        assert keys == ["new_car_brand", "new_car_model", "new_car_variant", "used_car", "car_news", "new_car_dealer"]

    def test_missing_type_uses_api_default(self, registry):
        request = SearchRequest()
        assert len(resolve_types(registry.search, request)) == 6
        assert not is_single_type(registry.search, request)

    def test_list_of_types(self, registry):
        request = SearchRequest(type=("used_car", "car_news"))
        assert [key for key, _ in resolve_types(registry.search, request)] == ["used_car", "car_news"]
        assert not is_single_type(registry.search, request)

    def test_unknown_type(self, registry):
        with pytest.raises(ValidationError) as exc:
            resolve_types(registry.search, SearchRequest(type="bikes"))
        assert exc.value.code == "SEARCH_CONFIG_NOT_FOUND"
        assert exc.value.details["field"] == "type"

    def test_single_type_required(self, registry):
        key, config = resolve_single_type(registry.search, SearchRequest(type="used_car"))
        assert (key, config.type) == ("used_car", "used_car")

        for request in (SearchRequest(type="*"), SearchRequest(), SearchRequest(type=("used_car",))):
            with pytest.raises(ValidationError) as exc:
                resolve_single_type(registry.search, request)
            assert exc.value.code == "SINGLE_TYPE_REQUIRED"
            assert exc.value.details["field"] == "type"


class TestSearch:
    async def test_single_type_one_query(self, orchestrator, gateway, registry):
        gateway.execute.return_value = es_response([hit("1", 4, "used_car", name="Swift VXI")], total=1)

        result = await orchestrator.search(registry.search, SearchRequest(text="swift", type="used_car"))

        assert isinstance(result, NormalizedResult)
        assert result.type == "used_car"
        assert result.results[0]["name"] == "Swift VXI"
        gateway.execute.assert_awaited_once()
        gateway.execute_batch.assert_not_called()
        query = gateway.execute.await_args.args[0]
        assert query.index == "cardekho:used_car_store"

    async def test_multi_type_single_round_trip(self, orchestrator, gateway, registry):
        responses = [es_response([]) for _ in range(6)]
        responses[1] = es_response([hit("m1", 9, "new_car_model")], total=3)
        responses[3] = es_response([hit("u1", 8, "used_car")], total=2)
        gateway.execute_batch.return_value = responses

        result = await orchestrator.search(registry.search, SearchRequest(text="swift", type="*"))

        assert isinstance(result, MultiResult)
        gateway.execute_batch.assert_awaited_once()
        gateway.execute.assert_not_called()
        queries = gateway.execute_batch.await_args.args[0]
        assert [q.type_id for q in queries][:2] == ["new_car_brand", "new_car_model"]
        assert set(result.results) == {"New Car Models", "Used Cars"}
        assert result.total_results == 5

    async def test_intent_fields_shared_by_batch(self, orchestrator, gateway, registry):
        gateway.execute_batch.return_value = [es_response([]), es_response([])]
        await orchestrator.search(registry.search, SearchRequest(text="swift", type=("new_car_brand", "used_car")))

        queries = gateway.execute_batch.await_args.args[0]
        must = queries[1].body["query"]["function_score"]["query"]["bool"]["must"]
        assert must["humane_query"]["name"]["intentFields"] == ["car_name"]

    async def test_flat_mode_one_query(self, orchestrator, gateway, registry):
        gateway.execute.return_value = es_response([hit("1", 3, "car_news")])

        result = await orchestrator.search(registry.search, SearchRequest(text="swift", type="*", format="flat"))

        assert isinstance(result, NormalizedResult)
        assert result.results[0]["_name"] == "News"
        query = gateway.execute.await_args.args[0]
        assert query.index == "cardekho_store"
        gateway.execute_batch.assert_not_called()

    async def test_backend_failure_propagates(self, orchestrator, gateway, registry):
        gateway.execute.side_effect = RuntimeError("boom")
        with pytest.raises(RuntimeError):
            await orchestrator.search(registry.search, SearchRequest(type="used_car"))
