import pytest
from fastapi.testclient import TestClient

from allyhub.api.routes import app


def test_http_requests_are_recorded_by_route(api_db):
    with TestClient(app) as client:
        client.get("/")
        client.get("/players/12345", headers={"X-API-Key": api_db["member_key"]})
        snapshot = client.get("/metrics").json()

    http = snapshot["http"]
    assert http["total_count"] >= 2
    assert http["by_route"]["GET:/"]["status_counts"] == {"200": 1}
    # Route templates, not concrete paths
    assert "GET:/players/{player_id}" in http["by_route"]
    assert http["by_route"]["GET:/players/{player_id}"]["status_counts"] == {"404": 1}


def test_ingest_counters_show_up_in_the_snapshot(api_db):
    scan = {"galaxy": 1, "system": 1, "planets": [{"position": 3, "player_id": 77, "player_name": "X"}]}
    with TestClient(app) as client:
        client.post("/planets/new", json=scan, headers={"X-API-Key": api_db["member_key"]})
        client.get("/export", headers={"X-API-Key": api_db["member_key"]})
        snapshot = client.get("/metrics").json()

    assert snapshot["events"]["ingest.galaxy.created"] == 1
    assert snapshot["timers"]["export.duration_s"]["count"] == 1


def test_timing_summary_tracks_extremes_and_tail():
    from allyhub.core.metrics import MetricsCollector

    collector = MetricsCollector()
    for ms in range(1, 101):
        collector.record_timer("hub.overview", ms / 1000.0)
    collector.increment_event("ingest.galaxy.skipped", 0)

    snapshot = collector.snapshot()
    timer = snapshot["timers"]["hub.overview"]
    assert timer["count"] == 100
    assert timer["min_ms"] == pytest.approx(1.0)
    assert timer["max_ms"] == pytest.approx(100.0)
    assert timer["last_ms"] == pytest.approx(100.0)
    assert timer["p95_ms"] == pytest.approx(95.0)
    assert snapshot["events"] == {"ingest.galaxy.skipped": 0}
