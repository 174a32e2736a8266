"""Tests for the Searcher facade: operations, events and the error boundary."""

from __future__ import annotations

from unittest.mock import MagicMock

import pytest
from conftest import es_response, hit

from entity_search.application.events import EventName
from entity_search.application.search import Searcher
from entity_search.application.search.intent_cascade import CAR_CASCADE
from entity_search.application.search.service import query_languages
from entity_search.application.search.tenant import DosageTextStrategy, IntentCascadeStrategy, TenantStrategy
from entity_search.domain.entities import MultiResult, NormalizedResult, SearchRequest, SectionList
from entity_search.shared.exceptions import GatewayError, InternalServiceError, ValidationError


@pytest.fixture
def sink():
    return MagicMock(return_value=None)


@pytest.fixture
def searcher(registry, orchestrator, cascade, gateway, sink):
    return Searcher(registry, orchestrator, cascade, TenantStrategy(), gateway, event_sink=sink)


def test_query_languages():
    request = SearchRequest(lang={"primary": "en", "secondary": ["hi", "en"]}, term_languages=("ta", "hi"))
    assert query_languages(request) == ("en", "hi", "ta")
    assert query_languages(SearchRequest()) == ()


# ============================================================================
# Search operations
# ============================================================================


class TestSearch:
    async def test_single_type(self, searcher, gateway, sink):
        gateway.execute.return_value = es_response([hit("1", 3, "used_car", name="Swift")], total=1)

        result = await searcher.search({"x-user": "u1"}, {"text": "swift", "type": "used_car", "lang": {"primary": "en"}})

        assert isinstance(result, NormalizedResult)
        assert result.results[0]["name"] == "Swift"
        event = sink.call_args.args[0]
        assert event.name is EventName.SEARCH
        assert event.headers == {"x-user": "u1"}
        assert event.query_data["text"] == "swift"
        assert event.query_languages == ("en",)
        assert event.query_result is result

    async def test_multi_type(self, searcher, gateway):
        gateway.execute_batch.return_value = [es_response([]) for _ in range(6)]
        result = await searcher.search(None, {"text": "swift", "type": "*"})
        assert isinstance(result, MultiResult)
        gateway.execute_batch.assert_awaited_once()

    async def test_tenant_composes_sections(self, registry, orchestrator, cascade, gateway):
        gateway.intent.return_value = {"results": []}
        gateway.execute_batch.return_value = [es_response([]) for _ in range(6)]
        searcher = Searcher(registry, orchestrator, cascade, IntentCascadeStrategy(CAR_CASCADE), gateway)

        result = await searcher.search({}, {"text": "swift"})

        assert isinstance(result, SectionList)
        assert result.state == "fallback"

    async def test_tenant_leaves_type_lists_alone(self, registry, orchestrator, cascade, gateway):
        gateway.execute_batch.return_value = [
            es_response([hit("b1", 5, "new_car_brand", name="Maruti")]),
            es_response([hit("d1", 2, "new_car_dealer", name="Maruti Arena")]),
        ]
        searcher = Searcher(registry, orchestrator, cascade, IntentCascadeStrategy(CAR_CASCADE), gateway)

        result = await searcher.search({}, {"text": "maruti", "type": ["new_car_brand", "new_car_dealer"]})

        assert isinstance(result, MultiResult)
        assert result.group("new_car_brand").results[0]["_id"] == "b1"
        assert result.group("new_car_dealer").results[0]["_id"] == "d1"
        gateway.intent.assert_not_called()

    async def test_tenant_adjusts_text(self, registry, orchestrator, cascade, gateway):
        searcher = Searcher(registry, orchestrator, cascade, DosageTextStrategy(), gateway)
        result = await searcher.search({}, {"text": "crocin 500 mg", "type": "used_car"})
        assert result.search_text == "crocin 500mg"

    async def test_autocomplete(self, searcher, gateway, sink):
        gateway.execute.return_value = es_response([hit("1", 3, "new_car_model")])
        result = await searcher.autocomplete({}, {"text": "sw", "type": "new_car_model"})
        assert result.count == 1
        assert gateway.execute.await_args.args[0].body["size"] == 5
        assert sink.call_args.args[0].name is EventName.AUTOCOMPLETE

    async def test_form_search_emits_event(self, searcher, gateway, sink):
        await searcher.form_search({}, {"type": "new_car_model", "filter": {"brand": "maruti"}})
        assert sink.call_args.args[0].name is EventName.FORM_SEARCH

    async def test_browse_all_ignores_text(self, searcher, gateway, sink):
        result = await searcher.browse_all({}, {"text": "ignored", "type": "new_car_model"})
        body = gateway.execute.await_args.args[0].body
        assert body["query"]["function_score"]["query"]["bool"]["must"] == {"match_all": {}}
        assert result.search_text is None
        assert sink.call_args.args[0].name is EventName.BROWSE_ALL

    async def test_suggested_queries_flattened(self, searcher, gateway, sink):
        gateway.execute_batch.return_value = [
            es_response([hit("q1", 10, "searchQuery", query="swift"), hit("q2", 9, "searchQuery", query="swift vxi")]),
            es_response([hit("m1", 3, "new_car_model", name="Swift")]),
        ]

        result = await searcher.suggested_queries({}, {"text": "swift"})

        assert isinstance(result, NormalizedResult)
        assert result.type is None
        assert [r["_id"] for r in result.results] == ["q1", "q2"]
        assert result.total_results == 3
        assert sink.call_args.args[0].name is EventName.SUGGESTED_QUERIES

    async def test_intent_lookup(self, searcher, gateway):
        gateway.intent.return_value = {"results": [{"intent_classes": {}}]}
        response = await searcher.intent({}, {"text": "swift", "type": "*"})
        assert response == {"results": [{"intent_classes": {}}]}
        index, query = gateway.intent.await_args.args
        assert index == "cardekho:intent_store"
        assert query["query"] == "swift"


# ============================================================================
# Error boundary
# ============================================================================


class TestErrorBoundary:
    async def test_validation_errors_pass_through(self, searcher):
        with pytest.raises(ValidationError) as exc:
            await searcher.search({}, None)
        assert exc.value.code == "NO_INPUT"

    async def test_unknown_type_is_validation_error(self, searcher):
        with pytest.raises(ValidationError) as exc:
            await searcher.search({}, {"type": "bikes"})
        assert exc.value.code == "SEARCH_CONFIG_NOT_FOUND"

    async def test_backend_errors_rewrapped(self, searcher, gateway, sink):
        error = GatewayError("backend down")
        gateway.execute.side_effect = error

        with pytest.raises(InternalServiceError) as exc:
            await searcher.search({}, {"type": "used_car"})

        assert exc.value.cause is error
        assert exc.value.__cause__ is error
        assert exc.value.to_dict()["code"] == "INTERNAL_SERVICE_ERROR"
        sink.assert_not_called()

    async def test_unexpected_errors_rewrapped(self, searcher, gateway):
        gateway.execute.side_effect = KeyError("hits")
        with pytest.raises(InternalServiceError):
            await searcher.autocomplete({}, {"type": "new_car_model"})

    async def test_sink_failure_does_not_fail_search(self, searcher, sink):
        sink.side_effect = RuntimeError("sink down")
        result = await searcher.search({}, {"type": "used_car"})
        assert result.total_results == 0


# ============================================================================
# Diagnostics and documents
# ============================================================================


class TestExplain:
    async def test_explain_search(self, searcher, gateway):
        gateway.explain.return_value = {"matched": True, "explanation": {"value": 2.5}}

        explanation = await searcher.explain_search({}, {"text": "swift", "type": "new_car_model", "id": "m1"})

        assert explanation == {"value": 2.5}
        query, doc_id = gateway.explain.await_args.args
        assert doc_id == "m1"
        assert query.index == "cardekho:new_car_store"
        assert "from" not in query.body
        assert "sort" not in query.body

    async def test_explain_autocomplete_uses_autocomplete_fields(self, searcher, gateway):
        await searcher.explain_autocomplete({}, {"text": "swift", "type": "new_car_model", "id": "m1"})
        query = gateway.explain.await_args.args[0]
        assert "humane_query" in str(query.body)
        assert "multi_humane_query" not in str(query.body)

    async def test_unknown_document(self, searcher, gateway):
        gateway.explain.return_value = None
        assert await searcher.explain_search({}, {"text": "x", "type": "used_car", "id": "nope"}) is None

    async def test_requires_a_single_type(self, searcher, gateway):
        with pytest.raises(ValidationError) as exc:
            await searcher.explain_search({}, {"text": "swift", "type": "*", "id": "m1"})
        assert exc.value.code == "SINGLE_TYPE_REQUIRED"
        gateway.explain.assert_not_called()

    async def test_unknown_api(self, searcher):
        with pytest.raises(ValidationError) as exc:
            await searcher.explain("views", {}, {"type": "new_car_model", "id": "1"})
        assert exc.value.code == "UNKNOWN_API"

    async def test_term_vectors(self, searcher, gateway):
        gateway.term_vectors.return_value = {"term_vectors": {"name": {"terms": {}}}}
        assert await searcher.term_vectors({}, {"type": "used_car", "id": "7"}) == {"name": {"terms": {}}}
        assert gateway.term_vectors.await_args.args == ("cardekho:used_car_store", "used_car", "7")


class TestGet:
    async def test_found(self, searcher, gateway):
        gateway.fetch_by_id.return_value = {"_id": "7", "_type": "used_car", "_source": {"name": "Swift", "internalCost": 1}}
        doc = await searcher.get({}, {"type": "used_car", "id": "7"})
        assert doc == {"_id": "7", "_type": "used_car", "_name": "Used Cars", "name": "Swift"}

    async def test_missing_document(self, searcher, gateway):
        assert await searcher.get({}, {"type": "used_car", "id": "7"}) is None

    @pytest.mark.parametrize(
        ("raw", "code"),
        [
            ({"type": "used_car"}, "UNDEFINED_ID"),
            ({"id": "7"}, "UNDEFINED_TYPE"),
            ({"type": "bikes", "id": "7"}, "INDEX_TYPE_NOT_FOUND"),
        ],
    )
    async def test_invalid(self, searcher, raw, code):
        with pytest.raises(ValidationError) as exc:
            await searcher.get({}, raw)
        assert exc.value.code == code


class TestView:
    async def test_scrolls_and_post_filters(self, searcher, gateway):
        pages = [
            es_response([hit("1", None, "new_car_model", stock=2), hit("2", None, "new_car_model", stock=0)]),
            es_response([hit("3", None, "new_car_model", stock=5, internalCost=9)]),
        ]

        async def scroll_all(index, doc_type, body, page_size, on_page):
            for page in pages:
                on_page(page)

        gateway.scroll_all.side_effect = scroll_all

        result = await searcher.view({}, {"type": "new_car_model", "filter": {"inStock": True, "brand": "maruti"}})

        assert [doc["_id"] for doc in result.results] == ["1", "3"]
        assert "internalCost" not in result.results[1]
        assert result.to_dict()["totalResults"] == 2

        index, doc_type, body, page_size, _ = gateway.scroll_all.await_args.args
        assert (index, doc_type, page_size) == ("cardekho:new_car_store", "new_car_model", 100)
        assert body["query"] == {"bool": {"filter": [{"term": {"brand": "maruti"}}, {"term": {"status": "active"}}]}}
        assert body["sort"] == [{"popularity": "desc"}]

    async def test_unknown_view_type(self, searcher):
        with pytest.raises(ValidationError):
            await searcher.view({}, {"type": "used_car"})

    async def test_requires_a_single_type(self, searcher, gateway):
        with pytest.raises(ValidationError) as exc:
            await searcher.view({}, {"type": "*"})
        assert exc.value.details["field"] == "type"
        gateway.scroll_all.assert_not_called()
