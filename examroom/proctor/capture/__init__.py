"""Guided multi-angle identity capture"""

from .camera import Camera, OpenCVCamera, PushCamera, CameraBroker, encode_jpeg, decode_jpeg
from .sequencer import CaptureSequencer, CaptureState
from .windows import AngleWindow, DEFAULT_WINDOWS

__all__ = [
    "Camera",
    "OpenCVCamera",
    "PushCamera",
    "CameraBroker",
    "encode_jpeg",
    "decode_jpeg",
    "CaptureSequencer",
    "CaptureState",
    "AngleWindow",
    "DEFAULT_WINDOWS"
]
