"""Detector modules for guided capture"""

from .face_detector import LandmarkDetector, DlibLandmarkDetector
from .head_pose import HeadPoseEstimator, PoseSample

__all__ = [
    "LandmarkDetector",
    "DlibLandmarkDetector",
    "HeadPoseEstimator",
    "PoseSample"
]
