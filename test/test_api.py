"""
API tests for BenchRank.

Exercises every endpoint with FastAPI TestClient against an in-memory store.
"""

import pytest
from fastapi.testclient import TestClient

from conftest import make_match


@pytest.fixture
def api_store(populated_store):
    """Install the populated store as the API's store."""
    from benchrank.api.dependencies import set_store
    set_store(populated_store)
    yield populated_store
    set_store(None)


@pytest.fixture
def client(api_store):
    """Create test client."""
    from benchrank.api.main import app
    return TestClient(app)


# =============================================================================
# Root and Health (API-001 to API-003)
# =============================================================================

class TestRootEndpoints:
    """Test root and health endpoints."""

    def test_root(self, client):
        """API-001: Root returns API info."""
        response = client.get("/")
        assert response.status_code == 200
        data = response.json()
        assert data["name"] == "BenchRank API"
        assert data["health"] == "/health"

    def test_health(self, client):
        """API-002: Health reports store and lock state."""
        response = client.get("/health")
        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "healthy"
        assert data["database_connected"] is True
        assert data["run_lock_held"] is False

    def test_health_shows_held_lock(self, client, api_store):
        """API-003: A held run lock shows up in health."""
        from benchrank.utils.timestamps import utc_now

        api_store.acquire_run_lock("worker", utc_now())
        assert client.get("/health").json()["run_lock_held"] is True


# =============================================================================
# Computations (API-010 to API-016)
# =============================================================================

class TestComputationEndpoints:
    """Test computation trigger and history endpoints."""

    def test_compute_success(self, client):
        """API-010: Triggering a computation publishes an epoch."""
        response = client.post("/rankings/compute")
        assert response.status_code == 200
        data = response.json()
        assert data["success"] is True
        assert data["computation_id"] == 1
        assert data["published"] is True
        assert data["matches_processed"] == 3
        assert data["new_models_added"] == 3

    def test_compute_busy(self, client, api_store):
        """API-011: A fresh lock held elsewhere gives 409."""
        from benchrank.utils.timestamps import utc_now

        api_store.acquire_run_lock("other-worker", utc_now())
        response = client.post("/rankings/compute")

        assert response.status_code == 409
        assert response.json()["busy"] is True
        assert api_store.list_epochs() == []

    def test_compute_clears_stale_lock(self, client, api_store):
        """API-012: A stale lock is cleared before the run."""
        from datetime import timedelta
        from benchrank.utils.timestamps import utc_now

        api_store.acquire_run_lock("crashed", utc_now() - timedelta(days=1))
        response = client.post("/rankings/compute")
        assert response.status_code == 200

    def test_compute_failure(self, client, api_store):
        """API-013: A failed run gives 500 with the epoch reported."""
        api_store.add_match(make_match("bad", "X", "Y", outcome="BOGUS", minutes=9))
        response = client.post("/rankings/compute")

        assert response.status_code == 500
        data = response.json()
        assert data["success"] is False
        assert data["published"] is False
        assert data["status"] == "FAILED"
        assert data["error"]

    def test_list_computations(self, client):
        """API-014: Computations are listed newest first."""
        client.post("/rankings/compute")
        client.post("/rankings/compute")

        response = client.get("/rankings/computations")
        assert response.status_code == 200
        data = response.json()
        assert data["total"] == 2
        assert [e["epoch_id"] for e in data["epochs"]] == [2, 1]

    def test_get_computation(self, client):
        """API-015: One computation by id."""
        client.post("/rankings/compute")

        response = client.get("/rankings/computations/1")
        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "SUCCEEDED"
        assert len(data["published_kinds"]) == 6

    def test_get_computation_not_found(self, client):
        """API-016: Unknown computation gives 404."""
        assert client.get("/rankings/computations/42").status_code == 404


# =============================================================================
# Rankings (API-020 to API-026)
# =============================================================================

class TestRankingEndpoints:
    """Test ranking read endpoints."""

    def test_current_views_empty(self, client):
        """API-020: No pointers before the first run."""
        response = client.get("/rankings/current")
        assert response.status_code == 200
        assert set(response.json()["views"].values()) == {None}

    def test_current_views(self, client):
        """API-021: Every kind points at the published epoch."""
        client.post("/rankings/compute")
        views = client.get("/rankings/current").json()["views"]
        assert views["model_elo"] == 1
        assert views["reviewer_trust"] == 1

    def test_model_elo_ranking(self, client):
        """API-022: ELO ranking page."""
        client.post("/rankings/compute")

        response = client.get("/rankings/model_elo")
        assert response.status_code == 200
        data = response.json()
        assert data["kind"] == "model_elo"
        assert data["epoch_id"] == 1
        assert data["total"] == 3
        assert data["entries"][0]["rank"] == 1

    def test_min_matches_alias(self, client):
        """API-023: min_matches filters like min_sample."""
        client.post("/rankings/compute")

        assert client.get("/rankings/model_elo?min_matches=3").json()["total"] == 0
        assert client.get("/rankings/model_elo?min_sample=2").json()["total"] == 3

    def test_prompt_quality_details(self, client):
        """API-024: Extra row details are returned on entries."""
        client.post("/rankings/compute")

        entries = client.get("/rankings/prompt_quality").json()["entries"]
        p1 = next(e for e in entries if e["subject_id"] == "p1")
        assert p1["author_id"] == "alice"

    def test_unknown_kind(self, client):
        """API-025: Unknown ranking kind gives 404."""
        assert client.get("/rankings/not_a_kind").status_code == 404

    def test_invalid_limit(self, client):
        """API-026: Out-of-range limit is rejected."""
        assert client.get("/rankings/model_elo?limit=0").status_code == 422
        assert client.get("/rankings/model_elo?limit=501").status_code == 422

    def test_process_time_header(self, client):
        """API-027: Responses carry the processing time."""
        assert "X-Process-Time-Ms" in client.get("/").headers
