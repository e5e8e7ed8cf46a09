import random
import time
from dataclasses import replace

import pytest

import monitor_app
from mock_pollution import MockPollutionClassifier, seeded_detections
from pollution_types import HazardLevel, PollutionKind
from run_patrol import build_scheduler


@pytest.fixture
def runner(slow_timer_config):
    cfg = replace(slow_timer_config, analysis_period=1000)
    scheduler = build_scheduler(cfg, MockPollutionClassifier(random.Random(0), detection_probability=1.0))
    runner = monitor_app.init_app(scheduler)
    yield runner
    runner.shutdown()
    monitor_app.STATE["runner"] = None


@pytest.fixture
def client(runner):
    monitor_app.app.config["TESTING"] = True
    with monitor_app.app.test_client() as c:
        yield c


def test_status_before_and_after_start(client, runner):
    body = client.get("/status").get_json()
    assert body["state"] == "Stopped"
    assert body["scan_count"] == 0
    assert body["detection_count"] == 24

    resp = client.post("/scan/start")
    assert resp.status_code == 200
    assert resp.get_json()["state"] == "Idle"

    runner.call(runner.scheduler.tick)
    body = client.get("/status").get_json()
    assert body["scan_count"] == 1
    assert body["direction"] in ("forward", "backward")
    assert set(body["footprint"]) == {"min_lng", "min_lat", "max_lng", "max_lat"}
    assert body["image_url"].startswith("https://server.arcgisonline.com/")

    assert client.post("/scan/stop").get_json()["state"] == "Stopped"


def test_filters_toggle_and_detections(client):
    seeds = seeded_detections(observed_at=0.0)
    oil = [d for d in seeds if d.kind is PollutionKind.OIL]
    oil_high = [d for d in oil if d.hazard_level is HazardLevel.HIGH]

    body = client.get("/detections").get_json()
    assert body["type"] == "FeatureCollection"
    assert len(body["features"]) == body["total"] == 24

    resp = client.post("/filters/toggle", json={"facet": "kind", "value": "Oil"})
    assert resp.status_code == 200
    assert resp.get_json()["selected"] is True
    assert len(client.get("/detections").get_json()["features"]) == len(oil)

    client.post("/filters/toggle", json={"facet": "hazard_level", "value": "High"})
    features = client.get("/detections").get_json()["features"]
    assert len(features) == len(oil_high)
    assert all(f["properties"]["kind"] == "Oil" and f["properties"]["hazard_level"] == "High" for f in features)

    assert client.get("/filters").get_json()["kind"] == ["Oil"]

    reset = client.post("/filters/reset").get_json()
    assert reset["filters"] == {"kind": [], "hazard_level": [], "impact_area": [], "confidence": []}
    assert len(client.get("/detections").get_json()["features"]) == 24


def test_toggle_rejects_bad_requests(client):
    assert client.post("/filters/toggle", json={"facet": "kind"}).status_code == 400
    resp = client.post("/filters/toggle", json={"facet": "colour", "value": "red"})
    assert resp.status_code == 400
    assert "Unknown facet" in resp.get_json()["error"]
    assert client.post("/filters/toggle", json={"facet": "kind", "value": "Soot"}).status_code == 400


def test_logs_newest_first_with_limit(client, runner):
    client.post("/scan/start")
    client.post("/scan/stop")
    entries = client.get("/logs").get_json()
    assert [e["message"] for e in entries] == ["Patrol stopped", "Patrol started"]
    assert all(e["severity"] == "info" for e in entries)
    assert len(client.get("/logs?limit=1").get_json()) == 1
    assert client.get("/logs?limit=-1").status_code == 400


def test_analysis_results_reach_detections(slow_timer_config):
    scheduler = build_scheduler(slow_timer_config, MockPollutionClassifier(random.Random(0), detection_probability=1.0))
    runner = monitor_app.init_app(scheduler)
    try:
        client = monitor_app.app.test_client()
        client.post("/scan/start")
        runner.call(scheduler.tick)

        deadline = time.time() + 5.0
        total = 24
        while time.time() < deadline:
            total = client.get("/detections").get_json()["total"]
            if total > 24:
                break
            time.sleep(0.05)
        assert total > 24
        messages = [e["message"] for e in client.get("/logs").get_json()]
        assert any(m.startswith("Detected ") for m in messages)
    finally:
        runner.shutdown()
        monitor_app.STATE["runner"] = None


def test_pollution_types_registry(client):
    kinds = client.get("/pollution_types").get_json()
    assert {k["id"] for k in kinds} == {"Chemical", "Oil", "Physical"}
    assert all(k["color"].startswith("#") for k in kinds)
