"""
Attention Scoring
Turns one frame's face-mesh landmarks into an attention score.

The score starts at 100 and loses a fixed penalty for each sign of
inattention: half-closed eyes, gaze away from the screen, a strongly
turned head and a high blink rate. Landmark indices follow the
MediaPipe face mesh topology.
"""

import math
import time
from dataclasses import asdict, dataclass
from typing import Optional, Sequence, Tuple

import numpy as np

Point = Tuple[float, float]

# Eye landmark indices (p0..p5 as used by the eye aspect ratio)
LEFT_EYE = [33, 160, 158, 133, 153, 144]
RIGHT_EYE = [362, 385, 387, 263, 373, 380]

# Face reference landmarks
NOSE_TIP = 1
FACE_LEFT_EDGE = 234
FACE_RIGHT_EDGE = 454
FOREHEAD = 10
CHIN = 152
MIN_KEYPOINTS = max(LEFT_EYE + RIGHT_EYE + [NOSE_TIP, FACE_LEFT_EDGE, FACE_RIGHT_EDGE, FOREHEAD, CHIN]) + 1

# Blink detection
EAR_BLINK_THRESHOLD = 0.2
BLINK_DEBOUNCE_SECONDS = 0.3
BLINK_WINDOW_SECONDS = 10.0

# Gaze and head pose
GAZE_OFFSET_THRESHOLD = 15.0  # pixels
HEAD_POSE_SCALE = 0.5  # degrees per pixel of nose offset

# Score penalties
EYES_NARROW_THRESHOLD = 0.25
EYES_NARROW_PENALTY = 20
GAZE_AWAY_PENALTY = 30
HEAD_TURN_THRESHOLD = 20.0  # degrees
HEAD_TURN_PENALTY = 25
BLINK_RATE_THRESHOLD = 30.0  # blinks per minute
BLINK_RATE_PENALTY = 10

MAX_SCORE = 100.0
MIN_SCORE = 0.0


@dataclass
class LiveAttentionData:
    """Attention estimate for a single frame."""
    attention_score: float
    eye_openness: float
    blink_rate: int
    gaze_direction: str
    head_yaw: float
    head_pitch: float
    face_detected: bool

    @classmethod
    def no_face(cls) -> "LiveAttentionData":
        return cls(
            attention_score=0.0,
            eye_openness=0.0,
            blink_rate=0,
            gaze_direction="unknown",
            head_yaw=0.0,
            head_pitch=0.0,
            face_detected=False,
        )

    def to_dict(self) -> dict:
        return asdict(self)


def _distance(pt1: Point, pt2: Point) -> float:
    return float(np.linalg.norm(np.asarray(pt1, dtype=float) - np.asarray(pt2, dtype=float)))


def eye_aspect_ratio(eye: Sequence[Point]) -> float:
    """Compute the eye aspect ratio (EAR) of six eye landmarks."""
    vertical_1 = _distance(eye[1], eye[5])
    vertical_2 = _distance(eye[2], eye[4])
    horizontal = _distance(eye[0], eye[3])
    if horizontal == 0:
        return 0.0
    return (vertical_1 + vertical_2) / (2.0 * horizontal)


def estimate_gaze(keypoints: Sequence[Point]) -> Tuple[str, float, float]:
    """
    Estimate gaze direction from the nose tip's offset to the face centre.

    Returns the direction and the x/y offsets in pixels. Horizontal offsets
    take precedence over vertical ones.
    """
    nose_x, nose_y = keypoints[NOSE_TIP][0], keypoints[NOSE_TIP][1]
    center_x = (keypoints[FACE_LEFT_EDGE][0] + keypoints[FACE_RIGHT_EDGE][0]) / 2
    center_y = (keypoints[FOREHEAD][1] + keypoints[CHIN][1]) / 2

    offset_x = float(nose_x - center_x)
    offset_y = float(nose_y - center_y)

    direction = "center"
    if abs(offset_x) > GAZE_OFFSET_THRESHOLD:
        direction = "right" if offset_x > 0 else "left"
    elif abs(offset_y) > GAZE_OFFSET_THRESHOLD:
        direction = "down" if offset_y > 0 else "up"

    return direction, offset_x, offset_y


def estimate_head_pose(offset_x: float, offset_y: float) -> Tuple[float, float]:
    """Approximate head yaw and pitch (degrees) from the nose offset."""
    return offset_x * HEAD_POSE_SCALE, offset_y * HEAD_POSE_SCALE


def compose_attention_score(eye_openness: float, gaze_direction: str, head_yaw: float,
                            head_pitch: float, blink_rate: float) -> float:
    score = MAX_SCORE

    if eye_openness < EYES_NARROW_THRESHOLD:
        score -= EYES_NARROW_PENALTY

    if gaze_direction != "center":
        score -= GAZE_AWAY_PENALTY

    if abs(head_yaw) > HEAD_TURN_THRESHOLD or abs(head_pitch) > HEAD_TURN_THRESHOLD:
        score -= HEAD_TURN_PENALTY

    if blink_rate > BLINK_RATE_THRESHOLD:
        score -= BLINK_RATE_PENALTY

    return max(MIN_SCORE, min(MAX_SCORE, score))


def attention_label(score: Optional[float]) -> str:
    """Qualitative label for a session's average attention."""
    if score is None:
        return "N/A"
    if score >= 80:
        return "Excellent"
    if score >= 60:
        return "Good"
    if score >= 40:
        return "Fair"
    return "Low"


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


class AttentionScorer:
    """
    Stateful per-frame scorer.

    Keeps the blink counter between frames: a frame with EAR below the
    threshold counts as a blink unless one was counted within the debounce
    interval, and the count restarts every blink window.
    """

    def __init__(self, clock=time.monotonic):
        self._clock = clock
        self.reset()

    def reset(self, now: Optional[float] = None):
        now = self._clock() if now is None else now
        self.blink_count = 0
        self.last_blink_time = now
        self.blink_window_start = now

    def _update_blink_rate(self, eye_openness: float, now: float) -> float:
        if eye_openness < EAR_BLINK_THRESHOLD and now - self.last_blink_time > BLINK_DEBOUNCE_SECONDS:
            self.blink_count += 1
            self.last_blink_time = now

        if now - self.blink_window_start > BLINK_WINDOW_SECONDS:
            self.blink_window_start = now
            self.blink_count = 0

        elapsed = now - self.blink_window_start
        if elapsed <= 0:
            return 0.0
        return self.blink_count / elapsed * 60

    def score(self, keypoints: Optional[Sequence[Point]], now: Optional[float] = None) -> LiveAttentionData:
        """Score one frame. `keypoints` are pixel (x, y) pairs, or None when no face was found."""
        if keypoints is None or len(keypoints) == 0:
            return LiveAttentionData.no_face()
        if len(keypoints) < MIN_KEYPOINTS:
            raise ValueError(f"Expected at least {MIN_KEYPOINTS} landmarks, got {len(keypoints)}")

        now = self._clock() if now is None else now

        left_ear = eye_aspect_ratio([keypoints[i] for i in LEFT_EYE])
        right_ear = eye_aspect_ratio([keypoints[i] for i in RIGHT_EYE])
        eye_openness = (left_ear + right_ear) / 2

        blink_rate = self._update_blink_rate(eye_openness, now)
        gaze_direction, offset_x, offset_y = estimate_gaze(keypoints)
        head_yaw, head_pitch = estimate_head_pose(offset_x, offset_y)

        return LiveAttentionData(
            attention_score=compose_attention_score(eye_openness, gaze_direction, head_yaw, head_pitch, blink_rate),
            eye_openness=eye_openness,
            blink_rate=round_half_up(blink_rate),
            gaze_direction=gaze_direction,
            head_yaw=head_yaw,
            head_pitch=head_pitch,
            face_detected=True,
        )
