from fastapi.testclient import TestClient


class TestHealthAPI:
    def test_health(self, test_client: TestClient):
        response = test_client.get("/health")

        assert response.status_code == 200
        assert response.json() == {"status": "healthy"}

    def test_readiness_reports_breakers_and_cache(self, test_client: TestClient):
        response = test_client.get("/health/ready")

        assert response.status_code == 200
        data = response.json()
        assert data["circuit_breakers"] == {"recommendations": "closed", "search": "closed"}
        assert data["cache_backend"] in {"memory", "redis", "none"}
        assert "kill_switch_active" in data["feature_flags"]
