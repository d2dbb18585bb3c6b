"""Tests for the per-frame attention heuristic."""

from __future__ import annotations

import numpy as np
import pytest

from tracker.scoring import (
    LEFT_EYE,
    MIN_KEYPOINTS,
    RIGHT_EYE,
    AttentionScorer,
    LiveAttentionData,
    attention_label,
    compose_attention_score,
    estimate_gaze,
    estimate_head_pose,
    eye_aspect_ratio,
    round_half_up,
)

# ---------------------------------------------------------------------------
# Synthetic face
# ---------------------------------------------------------------------------


def _eye(x0: float, y: float, half_height: float) -> list:
    """Six eye points 40px wide whose EAR is half_height / 20."""
    return [
        (x0, y),
        (x0 + 10, y - half_height),
        (x0 + 30, y - half_height),
        (x0 + 40, y),
        (x0 + 30, y + half_height),
        (x0 + 10, y + half_height),
    ]


def make_face(ear: float = 0.3, nose_dx: float = 0.0, nose_dy: float = 0.0) -> list:
    """478 landmarks with the face centred on (200, 200)."""
    points = [(0.0, 0.0)] * 478
    points[234] = (100.0, 200.0)
    points[454] = (300.0, 200.0)
    points[10] = (200.0, 100.0)
    points[152] = (200.0, 300.0)
    points[1] = (200.0 + nose_dx, 200.0 + nose_dy)
    for index, point in zip(LEFT_EYE, _eye(140, 180, ear * 20)):
        points[index] = point
    for index, point in zip(RIGHT_EYE, _eye(220, 180, ear * 20)):
        points[index] = point
    return points


@pytest.fixture
def scorer() -> AttentionScorer:
    s = AttentionScorer(clock=lambda: 0.0)
    s.reset(now=0.0)
    return s


# ---------------------------------------------------------------------------
# Geometry helpers
# ---------------------------------------------------------------------------


class TestEyeAspectRatio:
    def test_open_eye(self) -> None:
        assert eye_aspect_ratio(_eye(0, 0, 6)) == pytest.approx(0.3)

    def test_degenerate_eye_is_zero(self) -> None:
        assert eye_aspect_ratio([(5, 5)] * 6) == 0.0


class TestGaze:
    def test_centred_nose(self) -> None:
        assert estimate_gaze(make_face()) == ("center", 0.0, 0.0)

    def test_offset_at_threshold_is_still_center(self) -> None:
        direction, offset_x, _ = estimate_gaze(make_face(nose_dx=15))
        assert direction == "center"
        assert offset_x == 15.0

    @pytest.mark.parametrize(
        "dx,dy,expected",
        [(20, 0, "right"), (-20, 0, "left"), (0, 20, "down"), (0, -20, "up")],
    )
    def test_directions(self, dx: float, dy: float, expected: str) -> None:
        assert estimate_gaze(make_face(nose_dx=dx, nose_dy=dy))[0] == expected

    def test_horizontal_wins_over_vertical(self) -> None:
        assert estimate_gaze(make_face(nose_dx=-30, nose_dy=40))[0] == "left"

    def test_head_pose_is_half_the_offset(self) -> None:
        assert estimate_head_pose(30.0, -12.0) == (15.0, -6.0)


# ---------------------------------------------------------------------------
# Score composition
# ---------------------------------------------------------------------------


class TestComposeScore:
    def test_attentive_frame_scores_full(self) -> None:
        assert compose_attention_score(0.3, "center", 0, 0, 0) == 100

    def test_each_penalty(self) -> None:
        assert compose_attention_score(0.24, "center", 0, 0, 0) == 80
        assert compose_attention_score(0.3, "up", 0, 0, 0) == 70
        assert compose_attention_score(0.3, "center", 21, 0, 0) == 75
        assert compose_attention_score(0.3, "center", 0, -21, 0) == 75
        assert compose_attention_score(0.3, "center", 0, 0, 31) == 90

    def test_thresholds_are_exclusive(self) -> None:
        assert compose_attention_score(0.25, "center", 20, 20, 30) == 100

    def test_all_penalties(self) -> None:
        assert compose_attention_score(0.1, "left", 25, 0, 60) == 15


class TestLabelsAndRounding:
    @pytest.mark.parametrize(
        "score,label",
        [(None, "N/A"), (95, "Excellent"), (80, "Excellent"), (60, "Good"), (40, "Fair"), (39.9, "Low")],
    )
    def test_attention_label(self, score, label: str) -> None:
        assert attention_label(score) == label

    def test_round_half_up(self) -> None:
        assert round_half_up(2.5) == 3
        assert round_half_up(0.49) == 0


# ---------------------------------------------------------------------------
# Stateful scorer
# ---------------------------------------------------------------------------


class TestAttentionScorer:
    def test_no_face(self, scorer: AttentionScorer) -> None:
        assert scorer.score(None) == LiveAttentionData.no_face()
        assert scorer.score([]).face_detected is False

    def test_no_face_defaults(self) -> None:
        data = LiveAttentionData.no_face().to_dict()
        assert data == {
            "attention_score": 0.0,
            "eye_openness": 0.0,
            "blink_rate": 0,
            "gaze_direction": "unknown",
            "head_yaw": 0.0,
            "head_pitch": 0.0,
            "face_detected": False,
        }

    def test_too_few_landmarks(self, scorer: AttentionScorer) -> None:
        with pytest.raises(ValueError):
            scorer.score([(0.0, 0.0)] * (MIN_KEYPOINTS - 1), now=1.0)

    def test_attentive_frame(self, scorer: AttentionScorer) -> None:
        data = scorer.score(make_face(), now=0.0)
        assert data.face_detected is True
        assert data.attention_score == 100
        assert data.eye_openness == pytest.approx(0.3)
        assert data.blink_rate == 0
        assert data.gaze_direction == "center"
        assert (data.head_yaw, data.head_pitch) == (0.0, 0.0)

    def test_looking_away_with_turned_head(self, scorer: AttentionScorer) -> None:
        data = scorer.score(make_face(nose_dx=-50), now=0.0)
        assert data.gaze_direction == "left"
        assert data.head_yaw == -25.0
        assert data.attention_score == 45

    def test_narrow_eyes_without_blink(self, scorer: AttentionScorer) -> None:
        data = scorer.score(make_face(ear=0.22), now=1.0)
        assert data.attention_score == 80
        assert scorer.blink_count == 0

    def test_blink_counting_and_rate(self, scorer: AttentionScorer) -> None:
        data = scorer.score(make_face(ear=0.1), now=1.0)
        assert scorer.blink_count == 1
        assert data.blink_rate == 60
        # narrow eyes and a high blink rate
        assert data.attention_score == 70

    def test_blink_debounce(self, scorer: AttentionScorer) -> None:
        scorer.score(make_face(ear=0.1), now=1.0)
        data = scorer.score(make_face(ear=0.1), now=1.2)
        assert scorer.blink_count == 1
        assert data.blink_rate == 50

        scorer.score(make_face(ear=0.1), now=1.5)
        assert scorer.blink_count == 2

    def test_blink_window_restarts(self, scorer: AttentionScorer) -> None:
        scorer.score(make_face(ear=0.1), now=1.0)
        data = scorer.score(make_face(), now=10.5)
        assert scorer.blink_count == 0
        assert scorer.blink_window_start == 10.5
        assert data.blink_rate == 0

    def test_numpy_landmarks(self, scorer: AttentionScorer) -> None:
        data = scorer.score(np.array(make_face(nose_dx=20)), now=0.0)
        assert data.face_detected is True
        assert data.gaze_direction == "right"
        assert data.attention_score == 70

    def test_empty_numpy_array_is_no_face(self, scorer: AttentionScorer) -> None:
        assert scorer.score(np.empty((0, 2))).face_detected is False
