"""Integration tests for API endpoints."""

from typing import Iterator

import pytest
from fastapi.testclient import TestClient

from app.api.routes import set_orchestrator
from app.main import app
from investigation.analysis import DimensionRegistry
from investigation.cache import CacheStore, MemoryKeyValueStore
from investigation.config import Settings
from investigation.executor import InMemoryExecutor
from investigation.orchestrator import InvestigationOrchestrator

TIME = "toStartOfMinute(timestamp) BETWEEN '2025-01-01 09:30:00' AND '2025-01-01 10:30:00'"
BASE = "/api/v1/investigations"

HOST_ROWS = [
    {"dim": "a.com", "anomaly_cat_cnt": 50, "baseline_cat_cnt": 10, "anomaly_total_cnt": 60, "baseline_total_cnt": 1000},
    {"dim": "b.com", "anomaly_cat_cnt": 30, "baseline_cat_cnt": 5, "anomaly_total_cnt": 40, "baseline_total_cnt": 1000},
    {"dim": "c.com", "anomaly_cat_cnt": 20, "baseline_cat_cnt": 5, "anomaly_total_cnt": 30, "baseline_total_cnt": 1000},
    {"dim": "d.com", "anomaly_cat_cnt": 5, "baseline_cat_cnt": 500, "anomaly_total_cnt": 1000, "baseline_total_cnt": 20000},
]
# Only seen during the anomaly
PATH_ROWS = [
    {"dim": "/api", "anomaly_cat_cnt": 12, "baseline_cat_cnt": 0, "anomaly_total_cnt": 12, "baseline_total_cnt": 0},
]
SELECTION_ROWS = [
    {"dim": "x.com", "selection_cnt": 600, "baseline_cnt": 500, "selection_err_cnt": 300, "baseline_err_cnt": 10},
    {"dim": "y.com", "selection_cnt": 400, "baseline_cnt": 4500, "selection_err_cnt": 0, "baseline_err_cnt": 40},
]


def respond(sql: str) -> list[dict]:
    if "selection_cnt" in sql:
        return SELECTION_ROWS if "`request.host` as dim" in sql else []
    if "`request.host` as dim" in sql:
        return HOST_ROWS
    if "`request.url` as dim" in sql:
        return PATH_ROWS
    return []


def investigate_payload(**overrides) -> dict:
    payload = {
        "context": {"time_filter": TIME, "host_filter": "", "filters": []},
        "anomalies": [
            {
                "rank": 1,
                "category": "red",
                "type": "spike",
                "start_time": "2025-01-01T10:00:00Z",
                "end_time": "2025-01-01T10:05:00Z",
                "magnitude": 4.0,
            }
        ],
        "chart_data": ["2025-01-01T09:30:00Z", "2025-01-01T10:00:00Z", "2025-01-01T10:30:00Z"],
    }
    payload.update(overrides)
    return payload


@pytest.fixture
def executor() -> InMemoryExecutor:
    return InMemoryExecutor(responder=respond)


@pytest.fixture
def client(executor: InMemoryExecutor) -> Iterator[TestClient]:
    """Create a test client with a fresh orchestrator."""
    settings = Settings()
    set_orchestrator(
        InvestigationOrchestrator(
            cache=CacheStore(MemoryKeyValueStore(), settings),
            executor=executor,
            settings=settings,
            registry=DimensionRegistry(),
        )
    )
    yield TestClient(app)
    set_orchestrator(None)


@pytest.fixture
def investigated(client: TestClient) -> dict:
    """Run one investigation and return its response body."""
    response = client.post(BASE, json=investigate_payload())
    assert response.status_code == 200
    return response.json()


class TestHealthEndpoints:
    """Tests for health check endpoints."""

    def test_health_check(self, client: TestClient) -> None:
        """Test health endpoint returns healthy."""
        response = client.get("/health")
        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "healthy"
        assert data["service"] == "traffic-investigation-service"

    def test_readiness_check(self, client: TestClient) -> None:
        response = client.get("/ready")
        assert response.status_code == 200
        assert response.json()["status"] == "ready"

    def test_liveness_check(self, client: TestClient) -> None:
        response = client.get("/live")
        assert response.status_code == 200
        assert response.json()["status"] == "alive"


class TestRootEndpoint:
    """Tests for root endpoint."""

    def test_root_returns_service_info(self, client: TestClient) -> None:
        response = client.get("/")
        assert response.status_code == 200
        data = response.json()
        assert data["service"] == "traffic-investigation-service"
        assert data["cache_version"] == 3


class TestInvestigateEndpoint:
    """Tests for the investigation endpoint."""

    def test_investigate(self, investigated: dict) -> None:
        assert investigated["count"] == 1
        result = investigated["results"][0]
        assert result["label"] == "#1 red spike"
        assert set(result["facets"]) == {"breakdown-hosts", "breakdown-paths"}
        assert [c["dim"] for c in result["facets"]["breakdown-hosts"]] == ["a.com", "b.com", "c.com"]

        top = result["facets"]["breakdown-hosts"][0]
        assert top["share_change"] == 45.7
        assert top["anomaly_id"] == result["anomaly_id"]
        assert top["rank"] == 1

    def test_highlights(self, investigated: dict) -> None:
        assert [h["dim"] for h in investigated["highlights"]] == ["/api", "a.com", "b.com"]
        assert all(h["category"] == "red" for h in investigated["highlights"])

    def test_new_value_has_no_rate_change(self, investigated: dict) -> None:
        """Values absent from the baseline report is_new instead of an infinite change."""
        path = investigated["results"][0]["facets"]["breakdown-paths"][0]
        assert path["rate_change"] is None
        assert path["is_new"] is True

        host = investigated["results"][0]["facets"]["breakdown-hosts"][0]
        assert host["is_new"] is False
        assert host["rate_change"] > 0

    def test_repeat_uses_cache(self, client: TestClient, executor: InMemoryExecutor) -> None:
        client.post(BASE, json=investigate_payload())
        calls = len(executor.calls)

        response = client.post(BASE, json=investigate_payload())

        assert response.status_code == 200
        assert len(executor.calls) == calls
        assert response.json()["count"] == 1

    def test_structured_filters(self, client: TestClient, executor: InMemoryExecutor) -> None:
        context = {
            "time_filter": TIME,
            "filters": [{"column": "`request.host`", "value": "a.com"}],
        }
        response = client.post(BASE, json=investigate_payload(context=context))

        assert response.status_code == 200
        assert all("AND `request.host` = 'a.com'" in sql for sql in executor.calls)

    def test_filter_clause_fallback(self, client: TestClient, executor: InMemoryExecutor) -> None:
        context = {
            "time_filter": TIME,
            "filter_clause": "AND `request.headers.user_agent` != 'bot'",
        }
        response = client.post(BASE, json=investigate_payload(context=context))

        assert response.status_code == 200
        assert all("`request.headers.user_agent` != 'bot'" in sql for sql in executor.calls)

    def test_no_anomalies(self, client: TestClient, executor: InMemoryExecutor) -> None:
        response = client.post(BASE, json=investigate_payload(anomalies=[]))
        assert response.status_code == 200
        assert response.json() == {"results": [], "highlights": [], "count": 0}
        assert executor.calls == []

    def test_renderable_restricts_highlights(self, client: TestClient) -> None:
        response = client.post(
            BASE, json=investigate_payload(renderable={"breakdown-hosts": ["C.COM"]})
        )
        assert [h["dim"] for h in response.json()["highlights"]] == ["C.COM"]

    def test_anomaly_ends_before_start(self, client: TestClient) -> None:
        anomaly = {
            "rank": 1,
            "category": "red",
            "type": "spike",
            "start_time": "2025-01-01T10:05:00Z",
            "end_time": "2025-01-01T10:00:00Z",
        }
        response = client.post(BASE, json=investigate_payload(anomalies=[anomaly]))
        assert response.status_code == 400

    def test_mixed_offset_anomaly_ends_before_start(self, client: TestClient) -> None:
        """A naive start is read as UTC when compared with an aware end."""
        anomaly = {
            "rank": 1,
            "category": "red",
            "type": "spike",
            "start_time": "2025-01-01T10:05:00",
            "end_time": "2025-01-01T10:00:00Z",
        }
        response = client.post(BASE, json=investigate_payload(anomalies=[anomaly]))
        assert response.status_code == 400

    def test_invalid_rank(self, client: TestClient) -> None:
        anomaly = {
            "rank": 0,
            "category": "red",
            "type": "spike",
            "start_time": "2025-01-01T10:00:00Z",
            "end_time": "2025-01-01T10:05:00Z",
        }
        response = client.post(BASE, json=investigate_payload(anomalies=[anomaly]))

    def test_anomaly_type_is_spike_or_dip(self, client: TestClient) -> None:
        """Selections go through their own endpoint, not as an anomaly type."""
        anomaly = {
            "rank": 1,
            "category": "red",
            "type": "selection",
            "start_time": "2025-01-01T10:00:00Z",
            "end_time": "2025-01-01T10:05:00Z",
        }
        response = client.post(BASE, json=investigate_payload(anomalies=[anomaly]))
        assert response.status_code == 422
        assert response.status_code == 422


class TestLookupEndpoints:
    """Tests for result, rank and highlighted dimension lookups."""

    def test_get_investigation(self, client: TestClient, investigated: dict) -> None:
        anomaly_id = investigated["results"][0]["anomaly_id"]

        response = client.get(f"{BASE}/{anomaly_id}")

        assert response.status_code == 200
        assert response.json()["anomaly_id"] == anomaly_id
        assert response.json()["anomaly"]["category"] == "red"

    def test_get_investigation_not_found(self, client: TestClient) -> None:
        response = client.get(f"{BASE}/quiet-slate-corolla")
        assert response.status_code == 404

    def test_rank_lookup(self, client: TestClient, investigated: dict) -> None:
        response = client.get(f"{BASE}/rank/1")
        assert response.status_code == 200
        assert response.json() == {"rank": 1, "anomaly_id": investigated["results"][0]["anomaly_id"]}

    def test_rank_not_found(self, client: TestClient, investigated: dict) -> None:
        assert client.get(f"{BASE}/rank/4").status_code == 404

    def test_highlighted_dimensions(self, client: TestClient, investigated: dict) -> None:
        response = client.get(f"{BASE}/highlights/breakdown-hosts")
        assert response.status_code == 200
        assert response.json() == {
            "facet_id": "breakdown-hosts",
            "dims": ["a.com", "b.com", "c.com"],
            "focused_anomaly_id": None,
        }

    def test_set_renderable(self, client: TestClient, investigated: dict) -> None:
        response = client.put(
            f"{BASE}/renderable",
            json={"renderable": {"breakdown-hosts": ["b.com", "c.com"]}},
        )
        assert response.status_code == 200
        assert [h["dim"] for h in response.json()["highlights"]] == ["b.com", "c.com"]

        response = client.put(f"{BASE}/renderable", json={"renderable": None})
        assert len(response.json()["highlights"]) == 3


class TestSelectionEndpoint:
    """Tests for selection comparison."""

    def test_selection(self, client: TestClient) -> None:
        response = client.post(
            f"{BASE}/selection",
            json={
                "selection_start": "2025-01-01T10:00:00Z",
                "selection_end": "2025-01-01T10:10:00Z",
                "full_start": "2025-01-01T09:30:00Z",
                "full_end": "2025-01-01T10:30:00Z",
                "context": {"time_filter": TIME},
            },
        )

        assert response.status_code == 200
        data = response.json()
        assert data["count"] == 2
        x, y = data["contributors"]
        assert (x["dim"], x["direction"], x["share_change"]) == ("x.com", "over", 80.0)
        assert (y["dim"], y["direction"], y["share_change"]) == ("y.com", "under", -80.0)
        assert [h["category"] for h in data["highlights"]] == ["blue", "blue"]

    def test_selection_ends_before_start(self, client: TestClient) -> None:
        response = client.post(
            f"{BASE}/selection",
            json={
                "selection_start": "2025-01-01T10:10:00Z",
                "selection_end": "2025-01-01T10:00:00Z",
                "full_start": "2025-01-01T09:30:00Z",
                "full_end": "2025-01-01T10:30:00Z",
            },
        )
        assert response.status_code == 400

    @pytest.mark.parametrize(
        "overrides",
        [
            {"selection_start": "2025-01-01T10:10:00", "selection_end": "2025-01-01T10:00:00Z"},
            {"full_start": "2025-01-01T10:30:00Z", "full_end": "2025-01-01T09:30:00"},
        ],
    )
    def test_mixed_offset_range_ends_before_start(
        self, client: TestClient, overrides: dict
    ) -> None:
        payload = {
            "selection_start": "2025-01-01T10:00:00Z",
            "selection_end": "2025-01-01T10:10:00Z",
            "full_start": "2025-01-01T09:30:00Z",
            "full_end": "2025-01-01T10:30:00Z",
        }
        payload.update(overrides)
        response = client.post(f"{BASE}/selection", json=payload)
        assert response.status_code == 400


class TestCacheEndpoints:
    """Tests for cache status and invalidation."""

    def test_cache_status(self, client: TestClient) -> None:
        response = client.get(f"{BASE}/cache", params={"time_filter": TIME})
        assert response.status_code == 200
        assert response.json()["cached"] is False

        client.post(BASE, json=investigate_payload())

        data = client.get(f"{BASE}/cache", params={"time_filter": TIME}).json()
        assert data["cached"] is True
        assert data["cache_key"]
        assert data["statistics"]["durable_entries"] == 1

    def test_cache_status_without_context(self, client: TestClient) -> None:
        data = client.get(f"{BASE}/cache").json()
        assert data["cached"] is False
        assert data["cache_key"] is None

    def test_invalidate(self, client: TestClient, investigated: dict) -> None:
        response = client.post(f"{BASE}/invalidate")

        assert response.status_code == 200
        assert response.json()["status"] == "invalidated"
        assert client.get(f"{BASE}/rank/1").status_code == 404
        assert client.get(f"{BASE}/highlights/breakdown-hosts").json()["dims"] == []
