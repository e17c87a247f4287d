from __future__ import annotations

import time

import pytest
from fastapi.testclient import TestClient

from synapselink.processing.alertness import OVERRIDE_MARKER
from synapselink.server import app


@pytest.fixture
def client():
    with TestClient(app) as c:
        yield c


def test_health(client) -> None:
    body = client.get("/health").json()
    assert body["status"] == "ok"
    assert body["scheduler_state"] == "running"
    assert body["demo_active"] is False


def test_alertness_starts_neutral(client) -> None:
    assert client.get("/alertness").json() == {"alertness": 0.5, "marker": "Neutral State"}


def test_override(client) -> None:
    body = client.post("/override").json()
    assert body == {"alertness": 1.0, "marker": OVERRIDE_MARKER}
    assert client.get("/alertness").json()["alertness"] == 1.0


def test_invalid_samples_are_rejected(client) -> None:
    missing_ts = client.post("/samples/visual", json={"faces": []})
    assert missing_ts.status_code == 400
    assert "error" in missing_ts.json()

    bad_eye = client.post(
        "/samples/visual",
        json={"timestamp_ms": 0, "faces": [{"left_eye_open": 1.5}]},
    )
    assert bad_eye.status_code == 400

    negative_rms = client.post("/samples/audio", json={"timestamp_ms": 0, "rms": -1})
    assert negative_rms.status_code == 400

    non_object_face = client.post("/samples/visual", json={"timestamp_ms": 1.0, "faces": [1]})
    assert non_object_face.status_code == 400
    assert "error" in non_object_face.json()


@pytest.mark.parametrize("path", ["/samples/visual", "/samples/audio"])
def test_non_finite_timestamp_is_rejected_before_queueing(client, path) -> None:
    # Python's json accepts the NaN literal, so send the body raw
    response = client.post(
        path,
        content='{"timestamp_ms": NaN}',
        headers={"content-type": "application/json"},
    )
    assert response.status_code == 400
    assert client.get("/health").json()["pending"] == {"visual": 0, "audio": 0}


def test_submitted_pair_is_processed(client) -> None:
    visual = {
        "timestamp_ms": 1000,
        "width": 640,
        "height": 480,
        "faces": [{"pitch": 0, "yaw": 0, "roll": 0, "left_eye_open": 0.9, "right_eye_open": 0.9}],
    }
    audio = {"timestamp_ms": 1050, "rms": 0.08, "zero_crossing_rate": 0.1}

    assert client.post("/samples/visual", json=visual).json()["accepted"] is True
    assert client.post("/samples/audio", json=audio).json()["accepted"] is True

    deadline = time.monotonic() + 3.0
    while True:
        telemetry = client.get("/health").json()["telemetry"]
        if telemetry["states_emitted"] >= 1 or time.monotonic() > deadline:
            break
        time.sleep(0.02)

    assert telemetry["matches"] == 1
    assert telemetry["states_emitted"] == 1
    assert client.get("/alertness").json()["marker"] == "High Arousal Detected, Deep Focus"


def test_websocket_override_and_ping(client) -> None:
    with client.websocket_connect("/ws/states") as ws:
        ws.send_json({"type": "override"})
        message = ws.receive_json()
        assert message["type"] == "alertness"
        assert message["data"]["alertness"] == 1.0

        ws.send_json({"type": "ping"})
        assert ws.receive_json() == {"type": "pong"}


def test_demo_start_and_stop(client) -> None:
    started = client.post("/demo/start").json()
    assert started["active"] is True
    stopped = client.post("/demo/stop").json()
    assert stopped["active"] is False
