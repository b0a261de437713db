"""
Unit tests for Ingest main service.
"""

import pytest
from fastapi.testclient import TestClient

from service_ingest.app.jwks.client import JWKSClient
from service_ingest.app.main import IngestService
from shared.config import ServiceConfig
from shared.errors import StoreError
from shared.test_helpers import FakeIdentityProvider, InMemoryPostStore, auth_header


JWKS_URL = "https://project.supabase.co/auth/v1/.well-known/jwks.json"


@pytest.fixture(scope="module")
def provider():
    return FakeIdentityProvider()


class TestIngestService:
    """Test cases for IngestService."""

    @pytest.fixture
    def store(self):
        return InMemoryPostStore()

    @pytest.fixture
    def ingest_service(self, provider, store):
        """Create IngestService with an in-memory store and the fake provider's keys."""
        config = ServiceConfig("ingest", 8020, env="test")
        resolver = JWKSClient(JWKS_URL, transport=provider.transport())
        return IngestService(config, store=store, key_resolver=resolver)

    @pytest.fixture
    def client(self, ingest_service):
        """Create test client."""
        with TestClient(ingest_service.app) as client:
            yield client

    @pytest.fixture
    def token(self, provider):
        return provider.issue_token()

    @pytest.fixture
    def body(self):
        return {
            "source_id": "fb_123",
            "original_url": "https://fb.com/p/123",
            "raw_text": "hello",
        }

    def test_root_endpoint(self, client):
        """Test root endpoint."""
        response = client.get("/")

        assert response.status_code == 200
        assert response.json()["service"] == "ingest"

    def test_health_check(self, client):
        """Test that the health check needs no credentials."""
        response = client.get("/health-check")

        assert response.status_code == 200
        assert response.json()["status"] == "ok"
        assert "timestamp" in response.json()

    def test_metrics_endpoint(self, client):
        response = client.get("/metrics")

        assert response.status_code == 200
        assert "ingest_requests_total" in response.text

    def test_lifespan_starts_and_stops_store(self, ingest_service, store):
        with TestClient(ingest_service.app):
            assert store.started is True

        assert store.started is False
        assert ingest_service.key_resolver.is_closed

    def test_ingest_created(self, client, store, token, body):
        """Test that a new submission is accepted and stored."""
        response = client.post("/api/v1/ingest", json=body, headers=auth_header(token))

        assert response.status_code == 202
        data = response.json()
        assert data["message"] == "Ingestion accepted"
        assert data["postId"] in store.rows
        assert store.rows[data["postId"]]["user_id"] == "user-uuid-123"
        assert "X-Request-ID" in response.headers

    def test_ingest_already_exists(self, client, store, token, body):
        """Test that a repeated submission returns the first record."""
        first = client.post("/api/v1/ingest", json=body, headers=auth_header(token))
        second = client.post("/api/v1/ingest", json=body, headers=auth_header(token))

        assert second.status_code == 202
        assert second.json() == {"message": "Already exists", "postId": first.json()["postId"]}
        assert len(store.records_for("fb_123")) == 1

    def test_ingest_with_images(self, client, store, token, body):
        body["raw_images"] = ["https://cdn.example.com/1.jpg"]

        response = client.post("/api/v1/ingest", json=body, headers=auth_header(token))

        assert response.status_code == 202
        meta = store.rows[response.json()["postId"]]["meta"]
        assert meta == {"original_url": "https://fb.com/p/123", "raw_images": ["https://cdn.example.com/1.jpg"]}

    def test_ingest_without_authorization(self, client, store, body):
        """Test that unauthenticated requests never reach the store."""
        response = client.post("/api/v1/ingest", json=body)

        assert response.status_code == 401
        assert store.lookup_calls == 0

    def test_ingest_with_garbage_token(self, client, store, body):
        response = client.post("/api/v1/ingest", json=body, headers={"Authorization": "Bearer garbage"})

        assert response.status_code == 401
        assert store.lookup_calls == 0

    def test_ingest_with_expired_token(self, client, store, provider, body):
        token = provider.issue_token(expires_in=-60)

        response = client.post("/api/v1/ingest", json=body, headers=auth_header(token))

        assert response.status_code == 401
        assert store.lookup_calls == 0

    def test_unauthenticated_invalid_body_is_401(self, client, store):
        """Test that authentication is checked before the body."""
        response = client.post("/api/v1/ingest", json={"unexpected": True})

        assert response.status_code == 401

    def test_ingest_missing_field(self, client, store, token, body):
        """Test that a body without source_id is rejected."""
        del body["source_id"]

        response = client.post("/api/v1/ingest", json=body, headers=auth_header(token))

        assert response.status_code == 400
        data = response.json()
        assert data["code"] == "VALIDATION_ERROR"
        assert [error["field"] for error in data["details"]["errors"]] == ["source_id"]
        assert store.lookup_calls == 0

    def test_ingest_unknown_field(self, client, store, token, body):
        """Test that fields outside the contract are rejected."""
        body["user_id"] = "someone-else"

        response = client.post("/api/v1/ingest", json=body, headers=auth_header(token))

        assert response.status_code == 400
        assert response.json()["details"]["errors"][0]["field"] == "user_id"
        assert store.lookup_calls == 0

    @pytest.mark.parametrize("field,value", [
        ("original_url", "not a url"),
        ("raw_text", "   "),
        ("source_id", ""),
        ("raw_images", ["ftp//broken"]),
    ])
    def test_ingest_invalid_values(self, client, token, body, field, value):
        body[field] = value

        response = client.post("/api/v1/ingest", json=body, headers=auth_header(token))

        assert response.status_code == 400

    def test_ingest_persistence_failure(self, client, store, token, body):
        """Test that store failures surface as 500."""
        store.insert_error = StoreError("Store returned 503")

        response = client.post("/api/v1/ingest", json=body, headers=auth_header(token))

        assert response.status_code == 500
        assert response.json()["code"] == "PERSISTENCE_FAILURE"
        assert response.json()["message"] == "Failed to save post"
