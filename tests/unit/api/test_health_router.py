"""Unit tests for the health endpoints."""

from unittest.mock import AsyncMock

from fastapi import status
from fastapi.testclient import TestClient

from src.identity_sync.api.http.app import create_app
from src.identity_sync.runtime.config.config_data import ProviderConfig


def test_liveness(api_client):
    response = api_client.get("/health")

    assert response.status_code == status.HTTP_200_OK
    assert response.json() == {"status": "healthy", "service": "identity-sync"}


def test_request_id_is_echoed(api_client):
    response = api_client.get("/health", headers={"X-Request-ID": "req-123"})

    assert response.headers["X-Request-ID"] == "req-123"


def test_readiness_with_healthy_dependencies(api_client):
    response = api_client.get("/health/ready")

    assert response.status_code == status.HTTP_200_OK
    body = response.json()
    assert body["status"] == "ready"
    assert body["checks"]["database"]["status"] == "healthy"
    assert body["checks"]["database"]["type"] == "sqlite"
    assert body["checks"]["provider"] == {"status": "healthy", "type": "memory"}
    assert body["checks"]["reconciliation"] == {"status": "stopped"}


def test_readiness_fails_when_provider_is_down(api_client):
    provider = api_client.app.state.app_dependencies.provider
    provider.inner.health_check = AsyncMock(return_value=False)

    response = api_client.get("/health/ready")

    assert response.status_code == status.HTTP_503_SERVICE_UNAVAILABLE
    assert response.json()["checks"]["provider"]["status"] == "unhealthy"


def test_unconfigured_provider_is_ready_outside_production(test_config):
    config = test_config.model_copy(update={"provider": ProviderConfig(enabled=False)})

    with TestClient(create_app(config)) as client:
        response = client.get("/health/ready")

    assert response.status_code == status.HTTP_200_OK
    assert response.json()["checks"]["provider"]["status"] == "unconfigured"


def test_unconfigured_provider_fails_readiness_in_production(test_config):
    config = test_config.model_copy(
        update={
            "provider": ProviderConfig(enabled=False),
            "app": test_config.app.model_copy(
                update={
                    "environment": "production",
                    "cors": test_config.app.cors.model_copy(
                        update={"origins": ["https://app.example.com"]}
                    ),
                }
            ),
        }
    )

    with TestClient(create_app(config)) as client:
        response = client.get("/health/ready")

    assert response.status_code == status.HTTP_503_SERVICE_UNAVAILABLE
    assert response.json()["status"] == "not_ready"
