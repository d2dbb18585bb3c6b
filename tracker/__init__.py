"""
Tracker Module
Attention scoring and the client side of a tracking session.

The camera loop lives in tracker.eye_tracker and needs the camera extra
(opencv-python, mediapipe); it is not imported here.
"""

__version__ = "1.0.0"
__author__ = "FocusBand Team"

from .scoring import AttentionScorer, LiveAttentionData
