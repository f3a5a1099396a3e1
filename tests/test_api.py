"""
Tests for the exam room HTTP API
"""

import base64
from unittest.mock import Mock

import cv2
import numpy as np
import pytest
from fastapi.testclient import TestClient

from conftest import FakeCamera, ScriptedDetector
from examroom.main import app
from examroom.proctor import api
from examroom.proctor.capture import CameraBroker
from examroom.proctor.clients import RecordingGradingClient

IPHONE_UA = "Mozilla/5.0 (iPhone; CPU iPhone OS 17_0 like Mac OS X) AppleWebKit/605.1.15 Mobile/15E148"


def jpeg_base64() -> str:
    ok, buffer = cv2.imencode(".jpg", np.zeros((48, 64, 3), dtype=np.uint8))
    assert ok
    return base64.b64encode(buffer.tobytes()).decode("ascii")


@pytest.fixture
def detector():
    return ScriptedDetector([(0.0, 0.0)])


@pytest.fixture
def verifier():
    mock = Mock()
    mock.verify.return_value = True
    return mock


@pytest.fixture
def local_camera():
    return FakeCamera()


@pytest.fixture
def client(scheduler, detector, verifier, local_camera):
    """Test client with virtual time and in-memory collaborators"""
    grading = RecordingGradingClient()
    broker = CameraBroker()

    app.dependency_overrides[api.get_scheduler] = lambda: scheduler
    app.dependency_overrides[api.get_grading_client] = lambda: grading
    app.dependency_overrides[api.get_detector] = lambda: detector
    app.dependency_overrides[api.get_camera_broker] = lambda: broker
    app.dependency_overrides[api.get_identity_verifier] = lambda: verifier
    app.dependency_overrides[api.get_local_camera] = lambda: local_camera

    test_client = TestClient(app)
    test_client.grading = grading
    yield test_client

    app.dependency_overrides.clear()
    api._sessions.clear()
    api._captures.clear()


@pytest.fixture
def session_id(client, exam):
    response = client.post("/api/exam-room/sessions", json={
        "exam": exam.model_dump(),
        "device_class": "desktop"
    })
    assert response.status_code == 200
    return response.json()["session_id"]


@pytest.fixture
def active_session(client, session_id):
    response = client.post(f"/api/exam-room/sessions/{session_id}/start", json={"consent": True})
    assert response.status_code == 200
    return session_id


class TestHealth:
    def test_service_health(self, client):
        response = client.get("/health")

        assert response.status_code == 200
        assert response.json()["status"] == "healthy"

    def test_router_health(self, client):
        response = client.get("/api/exam-room/health")

        assert response.status_code == 200
        data = response.json()
        assert data["active_sessions"] == 0
        assert data["detector_loaded"] is False


class TestSessionEndpoints:
    """Tests for the session lifecycle endpoints"""

    def test_create_session(self, client, exam):
        response = client.post("/api/exam-room/sessions", json={"exam": exam.model_dump()})

        assert response.status_code == 200
        data = response.json()
        assert data["phase"] == "consent"
        assert data["device_class"] == "desktop"
        assert data["question_count"] == 6
        assert data["duration_minutes"] == 1

    def test_device_class_from_user_agent(self, client, exam):
        response = client.post(
            "/api/exam-room/sessions",
            json={"exam": exam.model_dump()},
            headers={"User-Agent": IPHONE_UA}
        )

        assert response.json()["device_class"] == "mobile"

    def test_create_from_registered_exam(self, client, exam):
        registered = client.post("/api/exam-room/exams", json=exam.model_dump())
        assert registered.status_code == 200

        response = client.post("/api/exam-room/sessions", json={"exam_id": "EXAM-1"})
        assert response.status_code == 200
        assert response.json()["exam_id"] == "EXAM-1"

    def test_unknown_exam(self, client):
        response = client.post("/api/exam-room/sessions", json={"exam_id": "missing"})
        assert response.status_code == 404

    def test_exam_required(self, client):
        response = client.post("/api/exam-room/sessions", json={})
        assert response.status_code == 400

    def test_unknown_session(self, client):
        assert client.get("/api/exam-room/sessions/EXM_NOPE").status_code == 404
        assert client.post("/api/exam-room/sessions/EXM_NOPE/submit").status_code == 404

    def test_consent_required(self, client, session_id):
        response = client.post(f"/api/exam-room/sessions/{session_id}/start", json={"consent": False})

        assert response.status_code == 409
        assert client.get(f"/api/exam-room/sessions/{session_id}").json()["phase"] == "consent"

    def test_actions_before_start_conflict(self, client, session_id):
        response = client.post(f"/api/exam-room/sessions/{session_id}/answer", json={"option_index": 0})
        assert response.status_code == 409

        response = client.post(f"/api/exam-room/sessions/{session_id}/submit")
        assert response.status_code == 409

    def test_answer_and_navigate(self, client, active_session):
        base = f"/api/exam-room/sessions/{active_session}"

        data = client.post(f"{base}/answer", json={"option_index": 1}).json()
        assert data["answers"] == {"0-0": 1}

        data = client.post(f"{base}/navigate", json={"action": "next"}).json()
        assert data["current"] == {"subject_index": 0, "question_index": 1}

        data = client.post(f"{base}/review", json={"subject_index": 0, "question_index": 0}).json()
        assert data["palette"][0] == ["review", "current", "not-visited"]

        data = client.post(f"{base}/navigate", json={"action": "goto", "subject_index": 1, "question_index": 2}).json()
        assert data["current"] == {"subject_index": 1, "question_index": 2}

        data = client.post(f"{base}/navigate", json={"action": "next"}).json()
        assert data["current"] == {"subject_index": 1, "question_index": 2}

    def test_bad_input(self, client, active_session):
        base = f"/api/exam-room/sessions/{active_session}"

        assert client.post(f"{base}/answer", json={"option_index": 9}).status_code == 400
        assert client.post(
            f"{base}/navigate", json={"action": "goto", "subject_index": 5, "question_index": 0}
        ).status_code == 400
        assert client.post(f"{base}/navigate", json={"action": "goto"}).status_code == 400
        assert client.post(f"{base}/signal", json={"kind": "key_down"}).status_code == 400

    def test_manual_submit(self, client, active_session, scheduler):
        base = f"/api/exam-room/sessions/{active_session}"
        client.post(f"{base}/answer", json={"option_index": 2})
        scheduler.advance(20)

        data = client.post(f"{base}/submit").json()

        assert data["submitted"] is True
        assert data["phase"] == "completed"
        assert data["delivered"] is True
        assert data["payload"]["answeredCount"] == 1
        assert data["payload"]["timeSpent"] == 20
        assert data["payload"]["reason"] == "manual"

        again = client.post(f"{base}/submit").json()
        assert again["submitted"] is False
        assert again["payload"] == data["payload"]
        assert len(client.grading.payloads) == 1

    def test_expelled_after_fullscreen_exit(self, client, active_session, scheduler):
        base = f"/api/exam-room/sessions/{active_session}"

        data = client.post(f"{base}/signal", json={"kind": "fullscreen_exited"}).json()
        assert data["violation"] == "fullscreen_exit"
        assert data["monitor_state"] == "pending_termination"
        assert data["seconds_until_termination"] == pytest.approx(3.0)

        scheduler.advance(3)

        status = client.get(base).json()
        assert status["phase"] == "terminated"
        assert status["violations"]["fullscreen_exit"] == 1
        assert status["violation_log"] == [
            {"type": "fullscreen_exit", "device_class": "desktop", "timestamp": 0.0}
        ]
        assert client.grading.payloads[0].reason.value == "expelled"

        response = client.post(f"{base}/signal", json={"kind": "page_hidden"})
        assert response.status_code == 409

    def test_blocked_shortcut_is_not_a_violation(self, client, active_session):
        base = f"/api/exam-room/sessions/{active_session}"

        data = client.post(f"{base}/signal", json={"kind": "key_down", "key": "w", "ctrl": True}).json()

        assert data["violation"] is None
        assert data["key_action"] == "block"
        assert data["monitor_state"] == "armed"

    def test_time_up(self, client, active_session, scheduler):
        scheduler.advance(60)

        status = client.get(f"/api/exam-room/sessions/{active_session}").json()
        assert status["phase"] == "completed"
        assert status["time_left"] == 0
        assert client.grading.payloads[0].reason.value == "time_up"


class TestCaptureEndpoints:
    """Tests for guided capture over HTTP"""

    def test_full_capture_and_submit(self, client, scheduler, verifier):
        data = client.post("/api/exam-room/capture", json={"client_id": "student-1", "angles": ["front"]}).json()
        capture_id = data["capture_id"]
        assert data["state"] == "running"

        frame = jpeg_base64()
        for step in (0, 0.12, 0.12, 0.12):
            response = client.post(f"/api/exam-room/capture/{capture_id}/frame", json={"frame_base64": frame})
            assert response.status_code == 200
            scheduler.advance(step)

        assert client.get(f"/api/exam-room/capture/{capture_id}").json()["state"] == "settling"

        scheduler.advance(1.0)
        status = client.get(f"/api/exam-room/capture/{capture_id}").json()
        assert status["state"] == "completed"
        assert status["captured"] == ["front"]

        response = client.post(f"/api/exam-room/capture/{capture_id}/submit")
        assert response.json() == {"submitted": True, "images": 1}
        verifier.verify.assert_called_once()

    def test_submit_incomplete_capture(self, client):
        capture_id = client.post("/api/exam-room/capture", json={"client_id": "student-1"}).json()["capture_id"]

        response = client.post(f"/api/exam-room/capture/{capture_id}/submit")
        assert response.status_code == 409

    def test_invalid_frames(self, client):
        capture_id = client.post("/api/exam-room/capture", json={"client_id": "student-1"}).json()["capture_id"]
        url = f"/api/exam-room/capture/{capture_id}/frame"

        assert client.post(url, json={"frame_base64": "not base64!!"}).status_code == 400
        not_an_image = base64.b64encode(b"hello world").decode("ascii")
        assert client.post(url, json={"frame_base64": not_an_image}).status_code == 400

    def test_cancel_frees_camera(self, client):
        first = client.post("/api/exam-room/capture", json={"client_id": "student-1"}).json()["capture_id"]

        busy = client.post("/api/exam-room/capture", json={"client_id": "student-1"})
        assert busy.status_code == 503

        data = client.post(f"/api/exam-room/capture/{first}/cancel").json()
        assert data["state"] == "cancelled"

        response = client.post(f"/api/exam-room/capture/{first}/frame", json={"frame_base64": jpeg_base64()})
        assert response.status_code == 409

        again = client.post("/api/exam-room/capture", json={"client_id": "student-1"})
        assert again.status_code == 200

    def test_abandoned_capture_frees_camera(self, client, scheduler):
        first = client.post("/api/exam-room/capture", json={"client_id": "student-1"}).json()["capture_id"]

        scheduler.advance(11)

        status = client.get(f"/api/exam-room/capture/{first}").json()
        assert status["state"] == "failed"
        assert "No frames received" in status["error"]

        again = client.post("/api/exam-room/capture", json={"client_id": "student-1"})
        assert again.status_code == 200
        assert client.get(f"/api/exam-room/capture/{first}").status_code == 404

    def test_local_camera_capture(self, client, scheduler, local_camera):
        data = client.post(
            "/api/exam-room/capture",
            json={"client_id": "kiosk-1", "angles": ["front"], "source": "local"}
        ).json()
        capture_id = data["capture_id"]
        assert local_camera.open_count == 1

        response = client.post(f"/api/exam-room/capture/{capture_id}/frame", json={"frame_base64": jpeg_base64()})
        assert response.status_code == 409

        scheduler.advance(2.0)

        status = client.get(f"/api/exam-room/capture/{capture_id}").json()
        assert status["state"] == "completed"
        assert local_camera.release_count == 1

    def test_detector_unavailable(self, client, detector):
        detector.fail_load = True

        response = client.post("/api/exam-room/capture", json={"client_id": "student-1"})

        assert response.status_code == 503

    def test_unknown_capture(self, client):
        assert client.get("/api/exam-room/capture/CAP_NOPE").status_code == 404
