"""
Session Manager - Tracking Session Lifecycle
Creates the backend session, collects per-frame attention data, batches the
metrics to the API and writes the session summary when tracking stops.
"""

import logging
import threading
import time
from collections import deque
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Deque, Dict, List, Optional, Tuple

from ..scoring import LiveAttentionData
from .api_client import ApiError, FocusApiClient
from .metric_batcher import MetricBatcher, MetricFlushError

logger = logging.getLogger(__name__)

# A sample whose eye openness falls below this counts as a blink for the session total
SESSION_BLINK_THRESHOLD = 0.15
# Points kept for the live attention graph
GRAPH_WINDOW = 60


class SessionState(Enum):
    """Session states for clear user feedback"""
    INACTIVE = "inactive"
    ACTIVE = "active"
    PAUSED = "paused"
    STOPPING = "stopping"


def _iso_now() -> str:
    return datetime.now(timezone.utc).isoformat()


def build_session_update(scores: List[float], eye_openness_sum: float, data_points: int,
                         total_blinks: int, duration: int, end_time: str) -> Optional[Dict[str, Any]]:
    """
    Final statistics sent to the backend when a session stops.

    Returns None when there is nothing worth saving: a zero-length session or
    one without a single scored frame.
    """
    if duration <= 0 or not scores:
        return None

    return {
        "endTime": end_time,
        "duration": duration,
        "averageAttention": sum(scores) / len(scores),
        "peakAttention": max(scores),
        "lowestAttention": min(scores),
        "totalBlinks": total_blinks,
        "averageEyeOpenness": eye_openness_sum / data_points if data_points > 0 else 0,
    }


class SessionManager:
    """
    Drives one tracking session at a time.

    Frames are accepted only while the session is active, not paused and a
    face is visible. Stopping drains the metric queue first; if that final
    save fails the session stays active so stopping can be retried.
    """

    def __init__(self, api_client: FocusApiClient, batcher: Optional[MetricBatcher] = None,
                 clock: Callable[[], float] = time.monotonic, now: Callable[[], str] = _iso_now):
        """
        Initialize session manager

        Args:
            api_client: Client for the FocusBand backend
            batcher: Metric batcher; one sending through api_client is created if omitted
            clock: Monotonic clock used for the session duration
            now: Returns the current time as an ISO-8601 string
        """
        self.api_client = api_client
        self.batcher = batcher or MetricBatcher(api_client.save_metrics)
        self._clock = clock
        self._now = now

        self._lock = threading.RLock()
        self._state = SessionState.INACTIVE
        self._session_id: Optional[str] = None

        # Callbacks for UI updates
        self._state_change_callbacks: List[Callable] = []
        self._session_update_callbacks: List[Callable] = []

        self._reset_accumulators()
        logger.info("Session manager initialized")

    def _reset_accumulators(self):
        self._active_seconds = 0.0
        self._resumed_at: Optional[float] = None
        self._scores: List[float] = []
        self._graph: Deque[Tuple[int, float]] = deque(maxlen=GRAPH_WINDOW)
        self._eye_openness_sum = 0.0
        self._data_points = 0
        self._blink_count = 0

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    @property
    def state(self) -> SessionState:
        with self._lock:
            return self._state

    @property
    def session_id(self) -> Optional[str]:
        with self._lock:
            return self._session_id

    @property
    def duration_seconds(self) -> int:
        """Whole seconds the session has been active, excluding pauses."""
        with self._lock:
            elapsed = self._active_seconds
            if self._resumed_at is not None:
                elapsed += self._clock() - self._resumed_at
            return int(elapsed)

    @property
    def graph_data(self) -> List[Tuple[int, float]]:
        with self._lock:
            return list(self._graph)

    def _freeze_clock(self):
        if self._resumed_at is not None:
            self._active_seconds += self._clock() - self._resumed_at
            self._resumed_at = None

    def _set_state(self, state: SessionState):
        self._state = state
        logger.debug(f"Session state -> {state.value}")

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start_session(self) -> bool:
        """
        Create a backend session and start collecting metrics.

        Returns:
            bool: True if the session started
        """
        with self._lock:
            if self._state != SessionState.INACTIVE:
                logger.info("Session already running")
                return False

        try:
            session = self.api_client.create_session({
                "startTime": self._now(),
                "endTime": None,
                "duration": None,
                "averageAttention": None,
                "peakAttention": None,
                "lowestAttention": None,
                "totalBlinks": None,
                "averageEyeOpenness": None,
            })
        except ApiError as e:
            logger.error(f"Error starting session: {e}")
            return False

        with self._lock:
            self._session_id = session["id"]
            self._reset_accumulators()
            self._resumed_at = self._clock()
            self._set_state(SessionState.ACTIVE)

        self.batcher.reset()
        self.batcher.start()

        logger.info(f"Session started: {self._session_id}")
        self._notify_state_change()
        return True

    def pause_session(self) -> bool:
        with self._lock:
            if self._state != SessionState.ACTIVE:
                return False
            self._freeze_clock()
            self._set_state(SessionState.PAUSED)

        self.batcher.stop()
        logger.info("Session paused")
        self._notify_state_change()
        return True

    def resume_session(self) -> bool:
        with self._lock:
            if self._state != SessionState.PAUSED:
                return False
            self._resumed_at = self._clock()
            self._set_state(SessionState.ACTIVE)

        self.batcher.start()
        logger.info("Session resumed")
        self._notify_state_change()
        return True

    def stop_session(self) -> bool:
        """
        Stop the session: save the remaining metrics, then the session summary.

        Returns:
            bool: True if the session ended. False if there was no session or
            the final metric save failed, in which case the session is active
            again and stop_session can be retried.
        """
        with self._lock:
            if self._state not in (SessionState.ACTIVE, SessionState.PAUSED) or not self._session_id:
                return False
            self._freeze_clock()
            self._set_state(SessionState.STOPPING)
            session_id = self._session_id
        self._notify_state_change()

        try:
            self.batcher.drain()
        except Exception as e:
            logger.error(
                f"Error saving final metrics: {e}. Stop the session again to retry.",
                exc_info=not isinstance(e, MetricFlushError)
            )
            with self._lock:
                self._resumed_at = self._clock()
                self._set_state(SessionState.ACTIVE)
            self.batcher.start()
            self._notify_state_change()
            return False

        with self._lock:
            update = build_session_update(
                scores=self._scores,
                eye_openness_sum=self._eye_openness_sum,
                data_points=self._data_points,
                total_blinks=self._blink_count,
                duration=int(self._active_seconds),
                end_time=self._now(),
            )

        if update:
            try:
                self.api_client.update_session(session_id, update)
                logger.info(f"Session complete: {session_id}")
            except ApiError as e:
                logger.error(f"Error updating session {session_id}: {e}")

        with self._lock:
            self._session_id = None
            self._reset_accumulators()
            self._set_state(SessionState.INACTIVE)
        self.batcher.reset()

        self._notify_state_change()
        return True

    # ------------------------------------------------------------------
    # Data collection
    # ------------------------------------------------------------------

    def record(self, data: LiveAttentionData) -> bool:
        """
        Accept one frame's attention data (called from the eye tracker).

        Returns:
            bool: True if the sample was recorded
        """
        with self._lock:
            if self._state != SessionState.ACTIVE or not data.face_detected or not self._session_id:
                return False

            elapsed = self.duration_seconds
            self._graph.append((elapsed, data.attention_score))
            self._scores.append(data.attention_score)
            self._eye_openness_sum += data.eye_openness
            self._data_points += 1

            blink_detected = data.eye_openness < SESSION_BLINK_THRESHOLD
            if blink_detected:
                self._blink_count += 1

            metric = {
                "sessionId": self._session_id,
                "timestamp": self._now(),
                "attentionScore": data.attention_score,
                "eyeOpenness": data.eye_openness,
                "blinkDetected": 1 if blink_detected else 0,
                "gazeDirection": data.gaze_direction,
                "headYaw": data.head_yaw,
                "headPitch": data.head_pitch,
            }

        self.batcher.enqueue(metric)
        self._notify_session_update()
        return True

    def get_session_summary(self) -> Dict[str, Any]:
        """
        Get session summary for display

        Returns:
            Dict containing session summary information
        """
        with self._lock:
            scores = self._scores
            return {
                "session_id": self._session_id,
                "state": self._state.value,
                "duration": self.duration_seconds,
                "data_points": len(self._graph),
                "total_samples": self._data_points,
                "average_attention": sum(scores) / len(scores) if scores else 0.0,
                "current_attention": scores[-1] if scores else 0.0,
                "total_blinks": self._blink_count,
                "pending_metrics": self.batcher.pending_count,
            }

    # ------------------------------------------------------------------
    # Callbacks
    # ------------------------------------------------------------------

    def register_state_change_callback(self, callback: Callable):
        """Register callback for session state changes"""
        self._state_change_callbacks.append(callback)

    def register_session_update_callback(self, callback: Callable):
        """Register callback for session data updates"""
        self._session_update_callbacks.append(callback)

    def _notify_state_change(self):
        for callback in self._state_change_callbacks:
            try:
                callback(self.state)
            except Exception as e:
                logger.error(f"Error in state change callback: {e}")

    def _notify_session_update(self):
        for callback in self._session_update_callbacks:
            try:
                callback()
            except Exception as e:
                logger.error(f"Error in session update callback: {e}")

    def cleanup(self):
        """Stop any running session and release resources"""
        if self.state in (SessionState.ACTIVE, SessionState.PAUSED):
            if not self.stop_session():
                logger.warning("Session could not be stopped cleanly during cleanup")

        self.batcher.reset()
        self._state_change_callbacks.clear()
        self._session_update_callbacks.clear()
        logger.info("Session manager cleaned up")
