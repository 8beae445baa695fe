"""
검색 API 테스트

인메모리 엔진/리포지토리로 구성한 서비스 묶음을 앱에 주입합니다.
"""

import pytest
from fastapi.testclient import TestClient

from api.dependencies import build_services
from api.main import create_app
from api.models import SearchOptionsModel, SyncRequest, error_status_code
from api.routers.es_search import parse_sort
from clinic_search.errors import (
    DocumentNotFoundError,
    EngineUnavailableError,
    ServiceDisabledError,
    UnknownIndexError,
)
from clinic_search.es_client import DisabledEngineClient
from fakes import FailingRepository

ADMIN_KEY = "test-admin-key"
ADMIN_HEADERS = {"X-Admin-Key": ADMIN_KEY}


@pytest.fixture
def services(engine, repositories):
    return build_services(engine, repositories, admin_api_key=ADMIN_KEY)


@pytest.fixture
def client(services):
    with TestClient(create_app(services=services)) as test_client:
        yield test_client


@pytest.fixture
def disabled_client(repositories):
    services = build_services(DisabledEngineClient(), repositories)
    with TestClient(create_app(services=services)) as test_client:
        yield test_client


class TestRootEndpoints:

    def test_root(self, client):
        response = client.get("/")
        assert response.status_code == 200
        assert response.json()["service"] == "Clinic Search API"

    def test_health(self, client):
        assert client.get("/health").json() == {"status": "healthy"}


class TestHealthApi:
    """/elasticsearch/health"""

    def test_healthy(self, client):
        response = client.get("/elasticsearch/health")

        body = response.json()
        assert response.status_code == 200
        assert body["status"] == "healthy"
        assert body["service"]["connected"] is True
        assert "timestamp" in body

    def test_unreachable(self, client, engine):
        engine.reachable = False

        response = client.get("/elasticsearch/health")

        assert response.status_code == 503
        assert response.json()["status"] == "unhealthy"

    def test_disabled(self, disabled_client):
        response = disabled_client.get("/elasticsearch/health")

        assert response.status_code == 200
        assert response.json()["status"] == "disabled"

    def test_cluster_disabled(self, disabled_client):
        response = disabled_client.get("/elasticsearch/health/cluster")

        assert response.status_code == 503
        assert response.json()["status"] == "disabled"

    def test_cluster(self, client):
        response = client.get("/elasticsearch/health/cluster")

        assert response.status_code == 200
        assert response.json()["cluster_health"]["status"] == "green"

    def test_indices(self, client):
        client.post("/elasticsearch/management/indices/create", headers=ADMIN_HEADERS)

        response = client.get("/elasticsearch/health/indices")

        indices = response.json()["indices"]
        assert indices["pets"] == {"exists": True, "docs_count": 0}
        assert indices["faqs"]["exists"] is False


class TestManagementApi:
    """/elasticsearch/management"""

    def test_admin_key_required(self, client):
        assert client.post("/elasticsearch/management/indices/create").status_code == 401
        assert client.post(
            "/elasticsearch/management/indices/create", headers={"X-Admin-Key": "wrong"}
        ).status_code == 401

    def test_open_without_configured_key(self, disabled_client):
        response = disabled_client.get("/elasticsearch/management/indices/list")

        assert response.status_code == 200
        assert response.json()["data"] == []

    def test_create_and_list_indices(self, client):
        created = client.post("/elasticsearch/management/indices/create", headers=ADMIN_HEADERS)
        again = client.post("/elasticsearch/management/indices/create", headers=ADMIN_HEADERS)
        listed = client.get("/elasticsearch/management/indices/list", headers=ADMIN_HEADERS)

        assert created.json()["data"]["pets"] == "created"
        assert again.json()["data"]["pets"] == "exists"
        assert len(listed.json()["data"]) == 5

    def test_delete_all_routes_before_single_index(self, client, engine):
        client.post("/elasticsearch/management/indices/create", headers=ADMIN_HEADERS)

        response = client.delete("/elasticsearch/management/indices/all", headers=ADMIN_HEADERS)

        assert response.status_code == 200
        assert len(response.json()["data"]) == 5
        assert engine.indices == {}

    def test_delete_unknown_index(self, client):
        response = client.delete("/elasticsearch/management/indices/kibana", headers=ADMIN_HEADERS)

        assert response.status_code == 400
        assert response.json()["status"] == "error"

    def test_sync_all(self, client):
        response = client.post("/elasticsearch/management/sync/all", headers=ADMIN_HEADERS, json={"batchSize": 50})

        body = response.json()
        assert response.status_code == 200
        assert body["status"] == "success"
        assert body["data"]["total_synced"] == 255

    def test_sync_partial_returns_206(self, client, engine):
        engine.fail_bulk_calls = {2}

        response = client.post("/elasticsearch/management/sync/pets", headers=ADMIN_HEADERS, json={"batchSize": 100})

        assert response.status_code == 206
        assert response.json()["status"] == "partial_success"
        assert response.json()["data"]["total_synced"] == 150

    def test_sync_invalid_index(self, client):
        response = client.post("/elasticsearch/management/sync/faqs", headers=ADMIN_HEADERS)

        assert response.status_code == 400

    def test_sync_disabled(self, disabled_client):
        response = disabled_client.post("/elasticsearch/management/sync/all")

        assert response.status_code == 503
        assert response.json()["error"] == "Elasticsearch is disabled"

    def test_sync_status(self, client):
        client.post("/elasticsearch/management/sync/clinics", headers=ADMIN_HEADERS)

        response = client.get("/elasticsearch/management/sync/status/clinics", headers=ADMIN_HEADERS)

        assert response.json()["data"]["status"] == "synced"

    def test_document_lifecycle(self, client, engine):
        client.post("/elasticsearch/management/indices/create", headers=ADMIN_HEADERS)
        base = "/elasticsearch/management/sync/document/pets/p1"

        synced = client.post(base, headers=ADMIN_HEADERS, json={"name": "Buddy", "species": "dog"})
        updated = client.post(f"{base}/update", headers=ADMIN_HEADERS, json={"status": "active"})
        stored = dict(engine.indices["pets"]["p1"])
        deleted = client.delete(base, headers=ADMIN_HEADERS)

        assert synced.status_code == 200
        assert updated.status_code == 200
        assert stored == {"id": "p1", "name": "Buddy", "species": "dog", "status": "active"}
        assert deleted.status_code == 200
        assert "p1" not in engine.indices["pets"]

    def test_document_sync_failure(self, client):
        response = client.post(
            "/elasticsearch/management/sync/document/pets/p1",
            headers=ADMIN_HEADERS,
            json={"nickname": "B"},
        )

        assert response.status_code == 500

    def test_reindex_faqs(self, client, engine):
        response = client.post("/elasticsearch/management/faqs/reindex", headers=ADMIN_HEADERS)

        assert response.status_code == 200
        assert len(engine.indices["faqs"]) == 2


class TestSearchApi:
    """/elasticsearch/search"""

    @pytest.fixture
    def seeded_client(self, client):
        client.post("/elasticsearch/management/indices/create", headers=ADMIN_HEADERS)
        for doc in (
            {"id": "p1", "name": "Buddy", "species": "dog", "status": "active"},
            {"id": "p2", "name": "Luna", "species": "cat", "status": "active"},
            {"id": "p3", "name": "Max", "species": "dog", "status": "inactive"},
        ):
            client.post(f"/elasticsearch/management/sync/document/pets/{doc['id']}", headers=ADMIN_HEADERS, json=doc)
        return client

    def test_search_pets(self, seeded_client):
        response = seeded_client.get("/elasticsearch/search/pets", params={"query": "dog", "status": ["active"]})

        data = response.json()["data"]
        assert response.status_code == 200
        assert [hit["_id"] for hit in data["hits"]] == ["p1"]
        assert data["total"] == 1

    def test_query_required(self, client):
        response = client.get("/elasticsearch/search/pets")

        assert response.status_code == 400
        assert response.json()["message"] == "Query parameter is required"

    def test_unsupported_filter(self, seeded_client):
        response = seeded_client.get("/elasticsearch/search/clinics", params={"query": "vet", "petId": "p1"})

        assert response.status_code == 400

    def test_invalid_sort(self, seeded_client):
        response = seeded_client.get("/elasticsearch/search/pets", params={"query": "dog", "sort": "name:up"})

        assert response.status_code == 400

    def test_search_disabled(self, disabled_client):
        response = disabled_client.get("/elasticsearch/search/pets", params={"query": "dog"})

        assert response.status_code == 503

    def test_global_search(self, seeded_client):
        response = seeded_client.post(
            "/elasticsearch/search/global",
            json={"query": "dog", "options": {"size": 100}},
        )

        data = response.json()["data"]
        assert response.status_code == 200
        assert set(data) == {"pets", "appointments", "users", "clinics", "healthRecords"}
        assert len(data["pets"]["hits"]) == 2

    def test_suggestions_require_params(self, client):
        response = client.get("/elasticsearch/search/suggestions", params={"query": "gol"})

        assert response.status_code == 400
        assert response.json()["message"] == "Query and index parameters are required"

    def test_suggestions_fallback(self, disabled_client):
        response = disabled_client.get("/elasticsearch/search/suggestions", params={"query": "Pet 1", "index": "pets"})

        data = response.json()["data"]
        assert response.status_code == 200
        assert data["source"] == "database"
        assert data["suggestions"][0]["text"] == "Pet 1"

    def test_suggestions_unknown_index(self, client):
        response = client.get("/elasticsearch/search/suggestions", params={"query": "x", "index": "invoices"})

        assert response.status_code == 400

    def test_faq_search(self, disabled_client):
        response = disabled_client.get("/elasticsearch/search/faqs", params={"query": "cat"})

        data = response.json()["data"]
        assert response.status_code == 200
        assert data["source"] == "database"
        assert [r["id"] for r in data["results"]] == ["2"]

    def test_faq_search_database_failure_uses_envelope(self, repositories):
        # Given: 엔진 비활성 + 원본 저장소 장애
        services = build_services(DisabledEngineClient(), {**repositories, "faqs": FailingRepository()})

        # When
        with TestClient(create_app(services=services)) as test_client:
            response = test_client.get("/elasticsearch/search/faqs", params={"query": "cat"})

        # Then
        body = response.json()
        assert response.status_code == 500
        assert body["status"] == "error"
        assert body["message"] == "Failed to search FAQs"
        assert "timestamp" in body

    def test_faq_reindex_database_failure_uses_envelope(self, engine, repositories):
        services = build_services(engine, {**repositories, "faqs": FailingRepository()})

        with TestClient(create_app(services=services)) as test_client:
            response = test_client.post("/elasticsearch/management/faqs/reindex")

        assert response.status_code == 500
        assert response.json()["message"] == "Failed to reindex FAQs"


class TestParseSort:

    def test_parse(self):
        assert parse_sort("rating:desc,name.keyword") == [{"rating": "desc"}, {"name.keyword": "asc"}]
        assert parse_sort(None) is None

    def test_invalid_direction(self):
        with pytest.raises(ValueError):
            parse_sort("rating:sideways")


class TestModels:

    def test_sync_request_accepts_alias_and_field_name(self):
        assert SyncRequest(batchSize=50).batch_size == 50
        assert SyncRequest(batch_size=25).batch_size == 25
        assert SyncRequest().refresh is True

    def test_search_options_from_alias(self):
        options = SearchOptionsModel.model_validate({"from": 20, "size": 5})

        assert options.from_ == 20
        assert options.size == 5

    def test_error_status_codes(self):
        assert error_status_code(ServiceDisabledError()) == 503
        assert error_status_code(EngineUnavailableError("down")) == 503
        assert error_status_code(UnknownIndexError("invoices")) == 400
        assert error_status_code(DocumentNotFoundError("pets", "p1")) == 500
        assert error_status_code(ConnectionError("db down")) == 500
