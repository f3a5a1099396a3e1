"""
Pytest Configuration for Exam Room Tests
"""
from typing import List, Optional

import numpy as np
import pytest

from examroom.proctor.capture import CameraBroker
from examroom.proctor.clients import RecordingGradingClient
from examroom.proctor.detectors.face_detector import LandmarkDetector
from examroom.proctor.errors import CameraError, DetectorLoadError
from examroom.proctor.integrity import SyntheticEnvironment
from examroom.proctor.models import ExamDefinition, Question, Subject
from examroom.proctor.scheduling import VirtualScheduler


def make_landmarks(yaw: float, pitch: float, yaw_scale: float = 40.0, pitch_scale: float = 60.0) -> np.ndarray:
    """
    68-point landmarks whose head pose estimate is (yaw, pitch).

    Eyes sit at (100, 100) and (200, 100), so the eye distance is 100.
    """
    points = np.zeros((68, 2), dtype=np.float64)
    points[36] = (100.0, 100.0)
    points[45] = (200.0, 100.0)
    nx = yaw / yaw_scale
    ny = pitch / pitch_scale + 0.5
    points[30] = (150.0 + nx * 100.0, 100.0 + ny * 100.0)
    return points


class FakeCamera:
    """Camera that returns a blank frame per read (or None when starved)"""

    def __init__(self, fail_open: bool = False):
        self.fail_open = fail_open
        self.open_count = 0
        self.release_count = 0
        self.reads = 0
        self.starved = False
        self.fail_reads = False
        self._open = False

    @property
    def is_open(self) -> bool:
        return self._open

    def open(self):
        if self.fail_open:
            raise CameraError("permission denied")
        self._open = True
        self.open_count += 1

    def read(self) -> Optional[np.ndarray]:
        if self.fail_reads:
            raise CameraError("stream ended")
        if self.starved:
            return None
        self.reads += 1
        return np.zeros((48, 64, 3), dtype=np.uint8)

    def release(self):
        self._open = False
        self.release_count += 1


class ScriptedDetector(LandmarkDetector):
    """
    Detector returning scripted poses in order.

    Each entry is a (yaw, pitch) tuple or None for "no face". Once the script
    runs out the last entry repeats.
    """

    def __init__(self, poses: Optional[List] = None, fail_load: bool = False):
        self.poses = list(poses or [(0.0, 0.0)])
        self.fail_load = fail_load
        self.loaded = False
        self.calls = 0

    @property
    def is_loaded(self) -> bool:
        return self.loaded

    def load(self):
        if self.fail_load:
            raise DetectorLoadError("predictor missing")
        self.loaded = True

    def detect(self, frame):
        index = min(self.calls, len(self.poses) - 1)
        self.calls += 1
        pose = self.poses[index]
        if pose is None:
            return None
        return make_landmarks(*pose)


@pytest.fixture
def scheduler():
    return VirtualScheduler()


@pytest.fixture
def exam():
    """Two subjects with three questions each, one minute long"""
    return ExamDefinition(
        id="EXAM-1",
        title="Sample Exam",
        code="SMP-101",
        duration=1,
        subjects=[
            Subject(
                name=name,
                questions=[
                    Question(text=f"{name} question {i + 1}", options=["A", "B", "C", "D"])
                    for i in range(3)
                ]
            )
            for name in ("Physics", "Chemistry")
        ]
    )


@pytest.fixture
def grading_client():
    return RecordingGradingClient()


@pytest.fixture
def environment():
    return SyntheticEnvironment()


@pytest.fixture
def broker():
    return CameraBroker()


@pytest.fixture
def camera():
    return FakeCamera()
