"""Tests for the HTTP API server."""

from __future__ import annotations

import pytest
from conftest import CAR_CONFIG, FakeGateway, es_response, hit
from dependency_injector import providers
from fastapi.testclient import TestClient

from entity_search import __version__
from entity_search.api.server import create_api_server, decode_query_params
from entity_search.container import ApplicationContainer
from entity_search.shared.exceptions import GatewayError, ValidationError


@pytest.fixture
def fake_gateway() -> FakeGateway:
    return FakeGateway()


@pytest.fixture
def client(fake_gateway):
    container = ApplicationContainer()
    container.config.from_dict({"search_config": CAR_CONFIG})
    container.gateway.override(providers.Object(fake_gateway))
    with TestClient(create_api_server(container)) as test_client:
        yield test_client
    container.gateway.reset_override()


class TestDecodeQueryParams:
    def test_json_params_decoded(self):
        raw = decode_query_params({"text": "swift", "filter": '{"brand":"maruti"}', "sort": '{"field":"price"}'})
        assert raw == {"text": "swift", "filter": {"brand": "maruti"}, "sort": {"field": "price"}}

    def test_comma_separated_types(self):
        assert decode_query_params({"type": "used_car,car_news"})["type"] == ["used_car", "car_news"]
        assert decode_query_params({"type": "used_car"})["type"] == "used_car"

    def test_bad_json(self):
        with pytest.raises(ValidationError) as exc:
            decode_query_params({"lang": "{en"})
        assert exc.value.code == "NON_CONFORMING_FORMAT"
        assert exc.value.field == "lang"


class TestHealth:
    def test_health(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json() == {"status": "healthy", "instance": "carDekho", "types": 7, "version": __version__}


class TestSearchRoutes:
    def test_get_search(self, client, fake_gateway):
        fake_gateway.execute.return_value = es_response([hit("1", 2, "used_car", name="Swift")], total=1)

        response = client.get("/search", params={"text": "swift", "type": "used_car"})

        assert response.status_code == 200
        data = response.json()
        assert data["totalResults"] == 1
        assert data["results"][0]["_name"] == "Used Cars"

    def test_type_from_path(self, client, fake_gateway):
        response = client.get("/used_car/search", params={"text": "swift"})
        assert response.status_code == 200
        assert fake_gateway.execute.await_args.args[0].index == "cardekho:used_car_store"

    def test_post_search(self, client, fake_gateway):
        fake_gateway.execute_batch.return_value = [es_response([]), es_response([])]
        response = client.post("/search", json={"text": "swift", "type": ["used_car", "car_news"]})
        assert response.status_code == 200
        assert response.json()["multi"] is True

    def test_comma_separated_types_in_query(self, client, fake_gateway):
        fake_gateway.execute_batch.return_value = [es_response([]), es_response([])]
        response = client.get("/search", params={"type": "used_car,car_news"})
        assert response.status_code == 200
        assert len(fake_gateway.execute_batch.await_args.args[0]) == 2

    def test_autocomplete_and_suggested_queries(self, client, fake_gateway):
        fake_gateway.execute_batch.return_value = [es_response([]), es_response([])]
        assert client.get("/new_car_model/autocomplete", params={"text": "sw"}).status_code == 200
        assert client.get("/suggestedQueries", params={"text": "sw"}).status_code == 200

    def test_view(self, client, fake_gateway):
        response = client.post("/new_car_model/view", json={})
        assert response.status_code == 200
        assert response.json() == {"totalResults": 0, "results": []}
        fake_gateway.scroll_all.assert_awaited_once()


class TestErrors:
    def test_bad_json_param(self, client):
        response = client.get("/search", params={"filter": "{not json"})
        assert response.status_code == 400
        assert response.json()["code"] == "NON_CONFORMING_FORMAT"
        assert response.json()["details"]["field"] == "filter"

    def test_empty_post_body(self, client):
        response = client.post("/search")
        assert response.status_code == 400
        assert response.json()["code"] == "NO_INPUT"

    def test_unknown_type(self, client):
        response = client.get("/search", params={"type": "bikes"})
        assert response.status_code == 400
        assert response.json()["code"] == "SEARCH_CONFIG_NOT_FOUND"

    def test_backend_failure_is_internal_error(self, client, fake_gateway):
        fake_gateway.execute.side_effect = GatewayError("backend down")
        response = client.get("/search", params={"type": "used_car"})
        assert response.status_code == 500
        assert response.json() == {
            "error": "Internal Service Error",
            "code": "INTERNAL_SERVICE_ERROR",
            "category": "internal",
        }


class TestDocumentRoutes:
    def test_get_document(self, client, fake_gateway):
        fake_gateway.fetch_by_id.return_value = {"_id": "7", "_source": {"name": "Swift"}}
        response = client.get("/used_car/7")
        assert response.status_code == 200
        assert response.json() == {"_id": "7", "_name": "Used Cars", "name": "Swift"}

    def test_missing_document(self, client):
        response = client.get("/used_car/7")
        assert response.status_code == 404
        assert response.json()["code"] == "NOT_FOUND"

    def test_term_vectors(self, client, fake_gateway):
        fake_gateway.term_vectors.return_value = {"term_vectors": {"name": {}}}
        response = client.get("/used_car/7/termVectors")
        assert response.status_code == 200
        assert response.json() == {"name": {}}

    def test_explain(self, client, fake_gateway):
        fake_gateway.explain.return_value = {"explanation": {"value": 1.5}}
        response = client.post("/explain/search", json={"text": "swift", "type": "used_car", "id": "7"})
        assert response.status_code == 200
        assert response.json() == {"value": 1.5}

    def test_intent(self, client, fake_gateway):
        response = client.get("/intent", params={"text": "swift", "type": "*"})
        assert response.status_code == 200
        assert response.json() == {"results": []}
