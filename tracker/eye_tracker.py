"""
Eye Tracker - Camera Loop
Reads webcam frames, runs the MediaPipe face mesh on them and scores each
frame's attention in a background thread.
"""

import logging
import threading
import time
from typing import Callable, List, Optional, Tuple

import cv2
import mediapipe as mp
import numpy as np

from .scoring import AttentionScorer, LiveAttentionData

FRAME_WIDTH = 640
FRAME_HEIGHT = 480
FRAME_DELAY = 0.025
PAUSED_DELAY = 0.05


class EyeTracker:
    """
    Threaded eye tracking component.

    Every processed frame produces a LiveAttentionData that is handed to the
    registered attention callbacks; status and error messages go to their
    own callbacks. Each start_tracking runs the loop on a fresh worker
    thread, so a stopped tracker can be started again.
    """

    def __init__(self, camera_index: int = 0, scorer: Optional[AttentionScorer] = None):
        self.camera_index = camera_index
        self.scorer = scorer or AttentionScorer()
        self.running = False
        self.paused = False

        self.mp_face_mesh = mp.solutions.face_mesh

        # Threading control
        self.lock = threading.Lock()
        self.worker: Optional[threading.Thread] = None
        self.cap: Optional[cv2.VideoCapture] = None
        self.face_mesh = None

        self.latest: LiveAttentionData = LiveAttentionData.no_face()
        self.frame_count = 0

        self._attention_callbacks: List[Callable[[LiveAttentionData], None]] = []
        self._status_callbacks: List[Callable[[str], None]] = []
        self._error_callbacks: List[Callable[[str], None]] = []

        self.logger = logging.getLogger(__name__)

    # Callback registration

    def on_attention(self, callback: Callable[[LiveAttentionData], None]):
        self._attention_callbacks.append(callback)

    def on_status(self, callback: Callable[[str], None]):
        self._status_callbacks.append(callback)

    def on_error(self, callback: Callable[[str], None]):
        self._error_callbacks.append(callback)

    def _emit(self, callbacks: list, value):
        for callback in callbacks:
            try:
                callback(value)
            except Exception as e:
                self.logger.error(f"Error in eye tracker callback: {e}")

    # Control

    def start_tracking(self):
        """Start the camera loop"""
        with self.lock:
            if self.running:
                return
            if self.is_alive():
                self.logger.warning("Previous camera loop is still shutting down")
                return
            self.running = True
            self.paused = False
            self.scorer.reset()
            self.frame_count = 0
            self.worker = threading.Thread(target=self.run, name="eye-tracker", daemon=True)
        self._emit(self._status_callbacks, "Starting camera...")
        self.worker.start()
        self.logger.info("Eye tracking started")

    def stop_tracking(self, timeout: float = 2.0):
        """Stop the camera loop and wait for the camera to be released"""
        with self.lock:
            self.running = False
            self.paused = False
        worker = self.worker
        if worker is not None and worker.is_alive() and worker is not threading.current_thread():
            worker.join(timeout=timeout)
        self.logger.info("Eye tracking stopped")

    def is_alive(self) -> bool:
        """True while the camera loop thread is running"""
        return self.worker is not None and self.worker.is_alive()

    def pause_tracking(self):
        with self.lock:
            self.paused = True
        self._emit(self._status_callbacks, "Paused")
        self.logger.info("Eye tracking paused")

    def resume_tracking(self):
        with self.lock:
            self.paused = False
        self._emit(self._status_callbacks, "Live Tracking")
        self.logger.info("Eye tracking resumed")

    # Camera

    def _initialize_camera(self) -> bool:
        """Initialize camera and MediaPipe face mesh"""
        self.cap = cv2.VideoCapture(self.camera_index)
        if not self.cap.isOpened():
            self._emit(self._error_callbacks, "Camera not available")
            self.logger.error(f"Camera {self.camera_index} not available")
            self.cap.release()
            self.cap = None
            return False

        self.cap.set(cv2.CAP_PROP_FRAME_WIDTH, FRAME_WIDTH)
        self.cap.set(cv2.CAP_PROP_FRAME_HEIGHT, FRAME_HEIGHT)
        self.cap.set(cv2.CAP_PROP_BUFFERSIZE, 1)

        self.face_mesh = self.mp_face_mesh.FaceMesh(
            max_num_faces=1,
            refine_landmarks=True,
            min_detection_confidence=0.5,
            min_tracking_confidence=0.5
        )

        self._emit(self._status_callbacks, "Camera initialized")
        return True

    def _cleanup_camera(self):
        """Clean up camera and MediaPipe resources"""
        if self.face_mesh:
            self.face_mesh.close()
            self.face_mesh = None

        if self.cap:
            self.cap.release()
            self.cap = None

    def _landmarks_to_points(self, face_landmarks, width: int, height: int) -> List[Tuple[float, float]]:
        """Convert normalised landmarks to pixel coordinates"""
        return [(lm.x * width, lm.y * height) for lm in face_landmarks.landmark]

    def process_frame(self, frame: np.ndarray) -> LiveAttentionData:
        """Run the face mesh on one BGR frame and score it"""
        rgb = cv2.cvtColor(frame, cv2.COLOR_BGR2RGB)
        results = self.face_mesh.process(rgb)

        if not results.multi_face_landmarks:
            return LiveAttentionData.no_face()

        h, w = frame.shape[:2]
        keypoints = self._landmarks_to_points(results.multi_face_landmarks[0], w, h)
        return self.scorer.score(keypoints, now=time.monotonic())

    def run(self):
        """Main tracking loop - runs in separate thread"""
        if not self._initialize_camera():
            with self.lock:
                self.running = False
            return

        self._emit(self._status_callbacks, "Live Tracking")

        try:
            while self.running:
                if self.paused:
                    time.sleep(PAUSED_DELAY)
                    continue

                ret, frame = self.cap.read()
                if not ret:
                    self._emit(self._error_callbacks, "Failed to capture frame")
                    self.logger.error("Failed to capture frame")
                    break

                data = self.process_frame(frame)
                self.latest = data
                self.frame_count += 1
                self._emit(self._attention_callbacks, data)

                time.sleep(FRAME_DELAY)

        except Exception as e:
            self._emit(self._error_callbacks, f"Tracking error: {str(e)}")
            self.logger.error(f"Tracking error: {e}", exc_info=True)

        finally:
            self._cleanup_camera()
            with self.lock:
                self.running = False
            self._emit(self._status_callbacks, "Stopped")
