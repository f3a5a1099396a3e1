"""
Angle acceptance windows for guided capture

The window bounds were chosen empirically for the 2-D head pose heuristic
and have no documented calibration procedure. Treat them as configuration.
"""

from dataclasses import dataclass
from typing import Dict, Optional

from ..detectors.head_pose import PoseSample
from ..models import CaptureAngle


@dataclass(frozen=True)
class AngleWindow:
    """Inclusive yaw/pitch bounds in degrees; None means unbounded"""
    yaw_min: Optional[float] = None
    yaw_max: Optional[float] = None
    pitch_min: Optional[float] = None
    pitch_max: Optional[float] = None
    max_abs_yaw: Optional[float] = None  # strict |yaw| < bound

    def contains(self, pose: Optional[PoseSample]) -> bool:
        if pose is None:
            return False
        if self.yaw_min is not None and pose.yaw < self.yaw_min:
            return False
        if self.yaw_max is not None and pose.yaw > self.yaw_max:
            return False
        if self.pitch_min is not None and pose.pitch < self.pitch_min:
            return False
        if self.pitch_max is not None and pose.pitch > self.pitch_max:
            return False
        if self.max_abs_yaw is not None and abs(pose.yaw) >= self.max_abs_yaw:
            return False
        return True


DEFAULT_WINDOWS: Dict[CaptureAngle, AngleWindow] = {
    CaptureAngle.FRONT: AngleWindow(yaw_min=-6, yaw_max=6, pitch_min=-6, pitch_max=6),
    CaptureAngle.LEFT: AngleWindow(yaw_min=-35, yaw_max=-8, pitch_min=-10, pitch_max=35),
    CaptureAngle.RIGHT: AngleWindow(yaw_min=8, yaw_max=35, pitch_min=-10, pitch_max=35),
    CaptureAngle.UP: AngleWindow(max_abs_yaw=18, pitch_max=-8),
}


INSTRUCTIONS: Dict[CaptureAngle, str] = {
    CaptureAngle.FRONT: "Face forward and look straight",
    CaptureAngle.LEFT: "Turn your head to the LEFT",
    CaptureAngle.RIGHT: "Turn your head to the RIGHT",
    CaptureAngle.UP: "Tilt your head UP",
}


def guidance(angle: CaptureAngle, pose: Optional[PoseSample], window: AngleWindow) -> str:
    """Short hint telling the candidate how to reach the window"""
    if pose is None:
        return "Face not detected - look at the camera"
    if window.contains(pose):
        return "Hold still"

    if window.yaw_min is not None and pose.yaw < window.yaw_min:
        return "Turn your head a bit to the RIGHT"
    if window.yaw_max is not None and pose.yaw > window.yaw_max:
        return "Turn your head a bit to the LEFT"
    if window.max_abs_yaw is not None and abs(pose.yaw) >= window.max_abs_yaw:
        return "Keep your head straight"
    if window.pitch_max is not None and pose.pitch > window.pitch_max:
        return "Tilt your head UP"
    if window.pitch_min is not None and pose.pitch < window.pitch_min:
        return "Tilt your head DOWN slightly"
    return INSTRUCTIONS[angle]
