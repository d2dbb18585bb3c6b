"""Session lifecycle on top of a fake API client."""

from __future__ import annotations

from unittest.mock import MagicMock

import pytest
import requests

from tracker.scoring import LiveAttentionData
from tracker.services.api_client import ApiError, FocusApiClient
from tracker.services.metric_batcher import MetricBatcher
from tracker.services.session_manager import (
    GRAPH_WINDOW,
    SessionManager,
    SessionState,
    build_session_update,
)

NOW = "2024-01-15T10:00:00+00:00"


class FakeApiClient:
    def __init__(self):
        self.created = []
        self.updates = []
        self.saved = []
        self.fail_create = False
        self.fail_save = False
        self.fail_update = False

    def create_session(self, data):
        if self.fail_create:
            raise ApiError("POST /api/sessions failed")
        self.created.append(data)
        return {"id": f"session-{len(self.created)}", **data}

    def update_session(self, session_id, data):
        if self.fail_update:
            raise ApiError("PATCH failed", status_code=500)
        self.updates.append((session_id, data))
        return {"id": session_id, **data}

    def save_metrics(self, metrics):
        if self.fail_save:
            raise ApiError("POST /api/metrics failed", status_code=503)
        self.saved.extend(metrics)
        return metrics


class FakeClock:
    def __init__(self):
        self.now = 100.0

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def frame(score: float = 80.0, eye: float = 0.3, face: bool = True) -> LiveAttentionData:
    return LiveAttentionData(
        attention_score=score,
        eye_openness=eye,
        blink_rate=12,
        gaze_direction="center",
        head_yaw=2.0,
        head_pitch=-1.0,
        face_detected=face,
    )


@pytest.fixture
def api() -> FakeApiClient:
    return FakeApiClient()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def manager(api: FakeApiClient, clock: FakeClock):
    batcher = MetricBatcher(api.save_metrics, interval=60, poll_interval=0.01, max_wait_iterations=5)
    mgr = SessionManager(api, batcher=batcher, clock=clock, now=lambda: NOW)
    yield mgr
    batcher.reset()


# ---------------------------------------------------------------------------
# Summary computation
# ---------------------------------------------------------------------------


class TestBuildSessionUpdate:
    def test_summary(self) -> None:
        update = build_session_update([100, 70, 85], 0.6, 3, 1, 42, NOW)
        assert update == {
            "endTime": NOW,
            "duration": 42,
            "averageAttention": 85,
            "peakAttention": 100,
            "lowestAttention": 70,
            "totalBlinks": 1,
            "averageEyeOpenness": pytest.approx(0.2),
        }

    def test_nothing_to_save(self) -> None:
        assert build_session_update([], 0, 0, 0, 30, NOW) is None
        assert build_session_update([90], 0.3, 1, 0, 0, NOW) is None


# ---------------------------------------------------------------------------
# Lifecycle
# ---------------------------------------------------------------------------


class TestLifecycle:
    def test_start_creates_open_session(self, manager: SessionManager, api: FakeApiClient) -> None:
        assert manager.start_session() is True
        assert manager.state == SessionState.ACTIVE
        assert manager.session_id == "session-1"
        assert api.created[0]["startTime"] == NOW
        assert api.created[0]["endTime"] is None
        assert api.created[0]["averageAttention"] is None
        assert manager.batcher.is_running

    def test_start_twice(self, manager: SessionManager, api: FakeApiClient) -> None:
        manager.start_session()
        assert manager.start_session() is False
        assert len(api.created) == 1

    def test_start_failure_stays_inactive(self, manager: SessionManager, api: FakeApiClient) -> None:
        api.fail_create = True
        assert manager.start_session() is False
        assert manager.state == SessionState.INACTIVE

    def test_stop_without_session(self, manager: SessionManager) -> None:
        assert manager.stop_session() is False

    def test_full_session(self, manager: SessionManager, api: FakeApiClient, clock: FakeClock) -> None:
        manager.start_session()
        manager.record(frame(100, 0.3))
        clock.advance(5)
        manager.record(frame(60, 0.1))
        clock.advance(5.5)

        assert manager.stop_session() is True
        assert manager.state == SessionState.INACTIVE
        assert manager.session_id is None
        assert len(api.saved) == 2

        session_id, update = api.updates[0]
        assert session_id == "session-1"
        assert update["duration"] == 10
        assert update["averageAttention"] == 80
        assert update["peakAttention"] == 100
        assert update["lowestAttention"] == 60
        assert update["totalBlinks"] == 1
        assert update["averageEyeOpenness"] == pytest.approx(0.2)
        assert update["endTime"] == NOW

    def test_short_session_skips_summary(self, manager: SessionManager, api: FakeApiClient,
                                         clock: FakeClock) -> None:
        manager.start_session()
        manager.record(frame())
        clock.advance(0.5)
        assert manager.stop_session() is True
        assert len(api.saved) == 1
        assert api.updates == []

    def test_summary_failure_still_ends_session(self, manager: SessionManager, api: FakeApiClient,
                                                clock: FakeClock) -> None:
        api.fail_update = True
        manager.start_session()
        manager.record(frame())
        clock.advance(3)
        assert manager.stop_session() is True
        assert manager.state == SessionState.INACTIVE

    def test_failed_final_save_keeps_session_active(self, manager: SessionManager, api: FakeApiClient,
                                                    clock: FakeClock) -> None:
        manager.start_session()
        manager.record(frame())
        clock.advance(4)
        api.fail_save = True

        assert manager.stop_session() is False
        assert manager.state == SessionState.ACTIVE
        assert manager.session_id == "session-1"
        assert manager.batcher.pending_count == 1
        assert api.updates == []

        api.fail_save = False
        clock.advance(2)
        assert manager.stop_session() is True
        assert len(api.saved) == 1
        assert api.updates[0][1]["duration"] == 6


# ---------------------------------------------------------------------------
# Pause and data collection
# ---------------------------------------------------------------------------


class TestRecording:
    def test_metric_payload(self, manager: SessionManager) -> None:
        manager.start_session()
        assert manager.record(frame(72.5, 0.12)) is True
        assert manager.batcher.pending_count == 1

        manager.batcher.flush_once()
        metric = manager.api_client.saved[0]
        assert metric == {
            "sessionId": "session-1",
            "timestamp": NOW,
            "attentionScore": 72.5,
            "eyeOpenness": 0.12,
            "blinkDetected": 1,
            "gazeDirection": "center",
            "headYaw": 2.0,
            "headPitch": -1.0,
        }

    def test_ignored_when_inactive(self, manager: SessionManager) -> None:
        assert manager.record(frame()) is False

    def test_ignored_without_face(self, manager: SessionManager) -> None:
        manager.start_session()
        assert manager.record(LiveAttentionData.no_face()) is False
        assert manager.record(frame(face=False)) is False
        assert manager.batcher.pending_count == 0

    def test_pause_excludes_time_and_samples(self, manager: SessionManager, clock: FakeClock) -> None:
        manager.start_session()
        clock.advance(3)
        assert manager.pause_session() is True
        assert manager.state == SessionState.PAUSED
        assert manager.record(frame()) is False

        clock.advance(100)
        assert manager.duration_seconds == 3
        assert manager.resume_session() is True
        clock.advance(2)
        assert manager.duration_seconds == 5

    def test_pause_and_resume_guards(self, manager: SessionManager) -> None:
        assert manager.pause_session() is False
        manager.start_session()
        assert manager.resume_session() is False

    def test_stop_while_paused(self, manager: SessionManager, api: FakeApiClient, clock: FakeClock) -> None:
        manager.start_session()
        manager.record(frame())
        clock.advance(2)
        manager.pause_session()
        clock.advance(50)
        assert manager.stop_session() is True
        assert api.updates[0][1]["duration"] == 2

    def test_graph_keeps_recent_points(self, manager: SessionManager, clock: FakeClock) -> None:
        manager.start_session()
        for n in range(GRAPH_WINDOW + 5):
            manager.record(frame(score=n % 100))
            clock.advance(1)
        graph = manager.graph_data
        assert len(graph) == GRAPH_WINDOW
        assert graph[0] == (5, 5)
        assert graph[-1] == (GRAPH_WINDOW + 4, GRAPH_WINDOW + 4)

    def test_session_summary(self, manager: SessionManager, clock: FakeClock) -> None:
        manager.start_session()
        manager.record(frame(90))
        manager.record(frame(70, 0.1))
        clock.advance(7)
        summary = manager.get_session_summary()
        assert summary["state"] == "active"
        assert summary["duration"] == 7
        assert summary["average_attention"] == 80
        assert summary["current_attention"] == 70
        assert summary["total_blinks"] == 1
        assert summary["pending_metrics"] == 2


class TestCallbacks:
    def test_state_changes_are_reported(self, manager: SessionManager, clock: FakeClock) -> None:
        states = []
        manager.register_state_change_callback(states.append)
        manager.start_session()
        manager.pause_session()
        manager.resume_session()
        clock.advance(1)
        manager.stop_session()
        assert states == [
            SessionState.ACTIVE,
            SessionState.PAUSED,
            SessionState.ACTIVE,
            SessionState.STOPPING,
            SessionState.INACTIVE,
        ]

    def test_failing_callback_does_not_break_recording(self, manager: SessionManager) -> None:
        def broken():
            raise RuntimeError("ui gone")

        manager.register_session_update_callback(broken)
        manager.start_session()
        assert manager.record(frame()) is True

    def test_cleanup_stops_running_session(self, manager: SessionManager, api: FakeApiClient,
                                           clock: FakeClock) -> None:
        manager.start_session()
        manager.record(frame())
        clock.advance(2)
        manager.cleanup()
        assert manager.state == SessionState.INACTIVE
        assert len(api.saved) == 1


class TestUnreadableResponses:
    """A real FocusApiClient over a connection that returns HTML instead of JSON."""

    def _http(self) -> MagicMock:
        http = MagicMock(spec=requests.Session)
        self.portal = False

        def request(method, url, **kwargs):
            response = MagicMock()
            response.status_code = 200
            response.ok = True
            if url.endswith("/api/metrics") and self.portal:
                response.text = "<html>captive portal</html>"
                response.json.side_effect = requests.JSONDecodeError("Expecting value", response.text, 0)
            elif url.endswith("/api/sessions"):
                response.json.return_value = {"id": "session-1", **kwargs["json"]}
            else:
                response.json.return_value = kwargs.get("json")
            return response

        http.request.side_effect = request
        return http

    def test_stop_recovers_from_non_json_reply(self, clock: FakeClock) -> None:
        api = FocusApiClient(base_url="http://api.test", session=self._http())
        batcher = MetricBatcher(api.save_metrics, interval=60, poll_interval=0.01, max_wait_iterations=5)
        manager = SessionManager(api, batcher=batcher, clock=clock, now=lambda: NOW)
        try:
            manager.start_session()
            manager.record(frame())
            clock.advance(3)

            self.portal = True
            assert manager.stop_session() is False
            assert manager.state == SessionState.ACTIVE
            assert batcher.pending_count == 1

            self.portal = False
            assert manager.stop_session() is True
            assert manager.state == SessionState.INACTIVE
        finally:
            batcher.reset()
