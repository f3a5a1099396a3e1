"""
Head Pose Estimator - Estimates head orientation from facial landmarks

This is a 2-D proxy for head rotation: the nose tip's offset from the
midpoint of the outer eye corners, normalised by the inter-ocular distance
and scaled to approximate degrees. It is a calibration heuristic, not a
validated 3-D pose solve or a biometric measurement; the scale constants
must be tuned per camera setup.
"""

import logging
import math
from dataclasses import dataclass
from typing import Optional, Sequence

import numpy as np

from ...config import settings

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PoseSample:
    """Approximate head rotation in degrees (never persisted)"""
    yaw: float
    pitch: float


class HeadPoseEstimator:
    """
    Estimates yaw and pitch from 68-point facial landmarks.

    Uses 3 key facial points:
    - Nose tip (30)
    - Left eye outer corner (36)
    - Right eye outer corner (45)
    """

    NOSE_TIP = 30
    LEFT_EYE_OUTER = 36
    RIGHT_EYE_OUTER = 45

    # Inter-ocular distances below this are treated as degenerate
    MIN_EYE_DISTANCE = 1e-6

    # A frontal face has the nose tip about half an eye-distance below the eye line
    NEUTRAL_PITCH_OFFSET = 0.5

    def __init__(self, yaw_scale: Optional[float] = None, pitch_scale: Optional[float] = None):
        """
        Initialize head pose estimator.

        Args:
            yaw_scale: Degrees per unit of horizontal nose offset
            pitch_scale: Degrees per unit of vertical nose offset
        """
        self.yaw_scale = yaw_scale if yaw_scale is not None else settings.YAW_SCALE
        self.pitch_scale = pitch_scale if pitch_scale is not None else settings.PITCH_SCALE

    def estimate(self, landmarks: Optional[Sequence]) -> Optional[PoseSample]:
        """
        Estimate head pose from facial landmarks.

        Args:
            landmarks: Landmark points as an array-like of shape (N, 2),
                       indexed by the 68-point scheme

        Returns:
            PoseSample, or None when a required point is missing or the
            eye distance is degenerate
        """
        if landmarks is None:
            return None

        points = np.asarray(landmarks, dtype=np.float64)
        if points.ndim != 2 or points.shape[1] < 2 or points.shape[0] <= self.RIGHT_EYE_OUTER:
            return None

        nose = points[self.NOSE_TIP, :2]
        left_eye = points[self.LEFT_EYE_OUTER, :2]
        right_eye = points[self.RIGHT_EYE_OUTER, :2]

        if not (np.all(np.isfinite(nose)) and np.all(np.isfinite(left_eye)) and np.all(np.isfinite(right_eye))):
            return None

        eye_center = (left_eye + right_eye) / 2.0
        eye_dist = math.hypot(*(right_eye - left_eye))

        if eye_dist < self.MIN_EYE_DISTANCE:
            return None

        nx = (nose[0] - eye_center[0]) / eye_dist
        ny = (nose[1] - eye_center[1]) / eye_dist

        return PoseSample(
            yaw=float(nx * self.yaw_scale),
            pitch=float((ny - self.NEUTRAL_PITCH_OFFSET) * self.pitch_scale)
        )
