from __future__ import annotations

import math
from typing import Dict, List, Optional

import pytest
from fastapi.testclient import TestClient

from api import main
from api.main import app


client = TestClient(app)

L_SHOULDER, R_SHOULDER = 11, 12
L_HIP, R_HIP = 23, 24
L_KNEE, R_KNEE = 25, 26
L_ANKLE, R_ANKLE = 27, 28


def _pt(x: float, y: float) -> Dict[str, float]:
    return {"x": x, "y": y, "z": 0.0, "visibility": 0.95}


def _legs(left_knee: float, right_knee: float) -> List[Optional[Dict[str, float]]]:
    f: List[Optional[Dict[str, float]]] = [None] * 33
    f[L_SHOULDER] = _pt(0.45, 0.3)
    f[R_SHOULDER] = _pt(0.55, 0.3)
    for hip, knee, ankle, x, theta in (
        (L_HIP, L_KNEE, L_ANKLE, 0.45, left_knee),
        (R_HIP, R_KNEE, R_ANKLE, 0.55, right_knee),
    ):
        t = math.radians(theta)
        f[hip] = _pt(x, 0.5)
        f[knee] = _pt(x, 0.7)
        f[ankle] = _pt(x + 0.2 * math.sin(t), 0.7 - 0.2 * math.cos(t))
    return f


def _create(preset: Optional[str] = None) -> str:
    body = {"preset": preset} if preset else {}
    resp = client.post("/sessions", json=body)
    assert resp.status_code == 201, resp.text
    return resp.json()["session_id"]


def test_health():
    resp = client.get("/health")
    assert resp.status_code == 200
    assert resp.text == "ok"


def test_presets_and_joints():
    presets = client.get("/presets").json()
    assert {"lunge", "squat", "pushup", "lateral_raise", "reference_reps", "movement", "yoga", "balance"} <= set(presets)
    joints = client.get("/joints").json()
    assert joints["left_knee"] == [23, 25, 27]
    assert "right_arm_raise" in joints


def test_session_lifecycle_counts_reps():
    sid = _create("lunge")
    ts = 0.0
    last = None
    for left in (178, 80, 178):
        for _ in range(12):
            resp = client.post(f"/sessions/{sid}/frames", json={"landmarks": _legs(left, 178), "timestamp_ms": ts})
            assert resp.status_code == 200, resp.text
            last = resp.json()
            ts += 33.0
    assert last["reps"] == 1
    assert last["limb_phases"] == {"left_knee": "up", "right_knee": "up"}
    assert last["advice"] == "Go Lower"

    state = client.get(f"/sessions/{sid}").json()
    assert state["exercise"] == "lunge"
    assert state["reps"] == 1

    state = client.post(f"/sessions/{sid}/reset").json()
    assert state["reps"] == 0

    assert client.delete(f"/sessions/{sid}").status_code == 204
    assert client.get(f"/sessions/{sid}").status_code == 404


def test_frame_without_detection():
    sid = _create()
    resp = client.post(f"/sessions/{sid}/frames", json={"landmarks": None, "timestamp_ms": 0})
    assert resp.status_code == 200
    body = resp.json()
    assert body["detected"] is False
    assert body["angles"] == {}


def test_reference_flow_scores_frames():
    sid = _create("yoga")
    # nothing processed yet: nothing to save
    assert client.post(f"/sessions/{sid}/reference").status_code == 409

    resp = client.post(f"/sessions/{sid}/reference", json={"landmarks": _legs(178, 178)})
    assert resp.status_code == 200
    assert "left_knee" in resp.json()["angles"]

    body = client.post(f"/sessions/{sid}/frames", json={"landmarks": _legs(178, 178), "timestamp_ms": 0}).json()
    assert body["match"]["score"] == pytest.approx(100.0)
    assert body["aligned_reference"][L_KNEE]["y"] == pytest.approx(0.7)

    body = client.post(f"/sessions/{sid}/frames", json={"landmarks": _legs(120, 178), "timestamp_ms": 33}).json()
    assert body["feedback"] == ["Increase angle for left knee"]

    state = client.delete(f"/sessions/{sid}/reference").json()
    assert state["has_reference"] is False


def test_movement_endpoint():
    sid = _create("movement")
    resp = client.post(f"/sessions/{sid}/movement", json={"start": _legs(178, 178), "end": _legs(90, 90)})
    assert resp.status_code == 200
    body = resp.json()
    assert body["lower"]["left_knee"] == pytest.approx(90.0)
    assert body["upper"]["left_knee"] == pytest.approx(178.0)

    resp = client.post(f"/sessions/{sid}/movement", json={"start": [None] * 33, "end": _legs(90, 90)})
    assert resp.status_code == 409


def test_unknown_session_and_preset():
    assert client.get("/sessions/nope").status_code == 404
    assert client.post("/sessions/nope/frames", json={"landmarks": None}).status_code == 404
    assert client.post("/sessions", json={"preset": "handstand"}).status_code == 404


def test_state_reports_missing_reference():
    sid = _create("reference_reps")
    state = client.get(f"/sessions/{sid}").json()
    assert state["awaiting_reference"] is True
    client.post(f"/sessions/{sid}/reference", json={"landmarks": _legs(178, 178)})
    assert client.get(f"/sessions/{sid}").json()["awaiting_reference"] is False


def test_invalid_config_rejected():
    resp = client.post("/sessions", json={"config": {"angle_alpha": 0}})
    assert resp.status_code == 422


def test_session_capacity(monkeypatch):
    monkeypatch.setattr(main.settings, "max_sessions", 0)
    resp = client.post("/sessions", json={})
    assert resp.status_code == 429


def test_analyze_endpoint():
    frames = []
    for left, right in ((178, 178), (80, 178), (178, 178), (178, 80), (178, 178)):
        frames.extend(_legs(left, right) for _ in range(12))
    frames.append(None)
    resp = client.post("/analyze", json={"preset": "lunge", "frames": frames, "fps": 30})
    assert resp.status_code == 200, resp.text
    payload = resp.json()
    assert payload["exercise"] == "lunge"
    assert payload["summary"]["total_reps"] == 2
    assert payload["summary"]["frames"] == 61
    assert payload["summary"]["frames_detected"] == 60
    assert [r["limb"] for r in payload["rep_data"]] == ["left_knee", "right_knee"]


def test_analyze_rejects_mismatched_timestamps():
    resp = client.post("/analyze", json={"frames": [None, None], "timestamps_ms": [0.0]})
    assert resp.status_code == 422


def test_analyze_rejects_too_many_frames(monkeypatch):
    monkeypatch.setattr(main.settings, "max_frames_per_request", 2)
    resp = client.post("/analyze", json={"frames": [None, None, None]})
    assert resp.status_code == 413


def test_analyze_rejects_empty_reference():
    resp = client.post("/analyze", json={"preset": "yoga", "frames": [None], "reference": [None] * 33})
    assert resp.status_code == 409
