"""
Integration tests for the search endpoints.
"""
import asyncio

from fastapi.testclient import TestClient

from tests.factories import NOW


class TestSearchAPI:
    def test_text_search(self, test_client: TestClient):
        response = test_client.get("/v1/search", params={"q": "midnight"})

        assert response.status_code == 200
        data = response.json()
        assert [beat["id"] for beat in data["beats"]] == ["b1"]
        assert data["total_count"] == 1
        assert "genres" in data["facets"]

    def test_filters_and_tags(self, test_client: TestClient):
        response = test_client.get(
            "/v1/search",
            params={"genre": "trap", "bpm_min": 145, "tags": "synth,retro"},
        )

        assert [beat["id"] for beat in response.json()["beats"]] == ["b7"]

    def test_sort_and_pagination(self, test_client: TestClient):
        response = test_client.get(
            "/v1/search",
            params={"sort_by": "price_high", "limit": 2, "offset": 1},
        )

        data = response.json()
        assert data["total_count"] == 8
        assert [beat["id"] for beat in data["beats"]] == ["b5", "b7"]

    def test_inverted_range_is_rejected(self, test_client: TestClient):
        response = test_client.get("/v1/search", params={"bpm_min": 150, "bpm_max": 100})

        assert response.status_code == 422

    def test_unknown_sort_is_rejected(self, test_client: TestClient):
        response = test_client.get("/v1/search", params={"sort_by": "random"})

        assert response.status_code == 422

    def test_limit_above_maximum_is_capped(self, test_client: TestClient):
        response = test_client.get("/v1/search", params={"limit": 500})

        assert response.status_code == 200
        data = response.json()
        assert len(data["beats"]) <= 100
        assert len(data["beats"]) == data["total_count"]

    def test_negative_limit_is_rejected(self, test_client: TestClient):
        response = test_client.get("/v1/search", params={"limit": -1})

        assert response.status_code == 422


class TestSuggestionAPI:
    def test_suggestions_for_prefix(self, test_client: TestClient, suggestion_repo):
        for query in ("drill", "drill", "drums", "trap"):
            asyncio.run(suggestion_repo.upsert(query, "beat", 1, NOW))

        response = test_client.get("/v1/search/suggestions", params={"q": "dr"})

        assert response.status_code == 200
        assert response.json() == {"suggestions": ["drill", "drums"]}

    def test_autocomplete(self, test_client: TestClient):
        response = test_client.get(
            "/v1/search/autocomplete",
            params={"q": "lo", "categories": "beat,producer,genre"},
        )

        data = response.json()
        assert data["beats"] == ["Lo-Fi Study"]
        assert data["genres"] == ["lo-fi"]
        assert data["producers"] == ["lofilarry"]

    def test_trending_searches(self, test_client: TestClient):
        response = test_client.get("/v1/search/trending", params={"limit": 5})

        assert response.status_code == 200
        assert isinstance(response.json()["suggestions"], list)
