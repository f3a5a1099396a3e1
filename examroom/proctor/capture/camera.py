"""
Camera sources for guided capture

A Camera is an exclusively-owned resource: ``open()`` acquires the device,
``read()`` returns the latest BGR frame (or None when no frame is ready),
``release()`` stops the device. CameraBroker enforces that one client never
has two holders of its camera at the same time.
"""

import logging
import threading
from typing import Dict, Optional

import cv2
import numpy as np

from ...config import settings
from ..errors import CameraError

logger = logging.getLogger(__name__)


class Camera:
    """Interface for a frame source"""

    @property
    def is_open(self) -> bool:
        raise NotImplementedError

    def open(self):
        raise NotImplementedError

    def read(self) -> Optional[np.ndarray]:
        raise NotImplementedError

    def release(self):
        raise NotImplementedError


class OpenCVCamera(Camera):
    """Local webcam through cv2.VideoCapture"""

    def __init__(self, index: Optional[int] = None, width: int = 1280, height: int = 720):
        self.index = settings.CAMERA_INDEX if index is None else index
        self.width = width
        self.height = height
        self._capture: Optional[cv2.VideoCapture] = None

    @property
    def is_open(self) -> bool:
        return self._capture is not None and self._capture.isOpened()

    def open(self):
        if self.is_open:
            return

        capture = cv2.VideoCapture(self.index)
        if not capture.isOpened():
            capture.release()
            raise CameraError(f"Camera {self.index} is unavailable or permission was denied")

        capture.set(cv2.CAP_PROP_FRAME_WIDTH, self.width)
        capture.set(cv2.CAP_PROP_FRAME_HEIGHT, self.height)
        self._capture = capture
        logger.info(f"Camera {self.index} opened")

    def read(self) -> Optional[np.ndarray]:
        if not self.is_open:
            raise CameraError("Camera is not open")

        ok, frame = self._capture.read()
        if not ok:
            raise CameraError(f"Camera {self.index} stopped delivering frames")
        return frame

    def release(self):
        if self._capture is not None:
            self._capture.release()
            self._capture = None
            logger.info(f"Camera {self.index} released")


class PushCamera(Camera):
    """
    Camera fed by a remote client.

    The browser keeps its own stream and pushes JPEG frames over HTTP;
    the sequencer reads whichever frame arrived last.
    """

    def __init__(self):
        self._open = False
        self._frame: Optional[np.ndarray] = None
        self._lock = threading.Lock()

    @property
    def is_open(self) -> bool:
        return self._open

    def open(self):
        self._open = True

    def push(self, frame: np.ndarray):
        if not self._open:
            raise CameraError("Camera is not open")
        with self._lock:
            self._frame = frame

    def push_jpeg(self, data: bytes):
        frame = decode_jpeg(data)
        if frame is None:
            raise ValueError("Invalid frame data")
        self.push(frame)

    def read(self) -> Optional[np.ndarray]:
        if not self._open:
            raise CameraError("Camera is not open")
        with self._lock:
            frame, self._frame = self._frame, None
        return frame

    def release(self):
        self._open = False
        with self._lock:
            self._frame = None


class CameraBroker:
    """Tracks which owner currently holds each client's camera"""

    def __init__(self):
        self._holders: Dict[str, str] = {}
        self._lock = threading.Lock()

    def acquire(self, client_id: str, owner: str):
        with self._lock:
            holder = self._holders.get(client_id)
            if holder is not None and holder != owner:
                raise CameraError(f"Camera for client {client_id} is already held by {holder}")
            self._holders[client_id] = owner

    def release(self, client_id: str, owner: str):
        with self._lock:
            if self._holders.get(client_id) == owner:
                del self._holders[client_id]

    def holder(self, client_id: str) -> Optional[str]:
        with self._lock:
            return self._holders.get(client_id)


def encode_jpeg(frame: np.ndarray, quality: Optional[int] = None) -> bytes:
    """Encode a BGR frame as JPEG bytes"""
    quality = quality or settings.CAPTURE_JPEG_QUALITY
    ok, buffer = cv2.imencode(".jpg", frame, [int(cv2.IMWRITE_JPEG_QUALITY), quality])
    if not ok:
        raise CameraError("Could not encode frame")
    return buffer.tobytes()


def decode_jpeg(data: bytes) -> Optional[np.ndarray]:
    """Decode JPEG/PNG bytes into a BGR frame (None if undecodable)"""
    frame_array = np.frombuffer(data, dtype=np.uint8)
    if frame_array.size == 0:
        return None
    return cv2.imdecode(frame_array, cv2.IMREAD_COLOR)
