"""
Capture Sequencer - pose-gated multi-angle identity capture

For each required angle in order, the sequencer samples the camera at a
fixed interval, estimates head pose from the detected landmarks and counts
consecutive samples inside the angle's acceptance window. Once the debounce
count is reached the frame is stored, the sequencer pauses briefly so the
candidate can reposition, then moves on to the next angle.

The camera is acquired in ``start()`` and released on every exit path:
completion, cancellation and failure. A camera that stops delivering frames
for ``idle_timeout`` seconds fails the capture.
"""

import logging
import uuid
from enum import Enum
from typing import Callable, Dict, List, Optional

import numpy as np

from ...config import settings
from ..detectors.face_detector import LandmarkDetector
from ..detectors.head_pose import HeadPoseEstimator, PoseSample
from ..errors import CameraError, DetectorLoadError, SessionStateError
from ..models import DEFAULT_ANGLES, CaptureAngle, CaptureSession, ImageArtifact
from ..scheduling import Scheduler, ScheduledCall
from ..utils.logging import log_capture_event
from .camera import Camera, CameraBroker, encode_jpeg
from .windows import DEFAULT_WINDOWS, AngleWindow, INSTRUCTIONS, guidance

logger = logging.getLogger(__name__)


class CaptureState(str, Enum):
    IDLE = "idle"
    RUNNING = "running"
    SETTLING = "settling"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    FAILED = "failed"


class CaptureSequencer:
    """
    Drives the guided capture of every required face angle.

    Usage:
        sequencer = CaptureSequencer(scheduler, camera, detector, client_id="user-1")
        sequencer.start()
        ...                      # scheduler runs the sampling loop
        if sequencer.is_complete:
            sequencer.submit(verifier)
    """

    def __init__(
        self,
        scheduler: Scheduler,
        camera: Camera,
        detector: LandmarkDetector,
        estimator: Optional[HeadPoseEstimator] = None,
        client_id: str = "local",
        broker: Optional[CameraBroker] = None,
        required_angles: Optional[List[CaptureAngle]] = None,
        windows: Optional[Dict[CaptureAngle, AngleWindow]] = None,
        poll_interval: Optional[float] = None,
        required_samples: Optional[int] = None,
        settle_seconds: Optional[float] = None,
        idle_timeout: Optional[float] = None,
        encoder: Callable[[np.ndarray], bytes] = encode_jpeg,
        on_complete: Optional[Callable[[Dict[CaptureAngle, ImageArtifact]], None]] = None,
        on_capture: Optional[Callable[[ImageArtifact], None]] = None,
        capture_id: Optional[str] = None
    ):
        self.id = capture_id or f"CAP_{uuid.uuid4().hex[:6].upper()}"
        self.scheduler = scheduler
        self.camera = camera
        self.detector = detector
        self.estimator = estimator or HeadPoseEstimator()
        self.client_id = client_id
        self.broker = broker or CameraBroker()

        self.windows = dict(DEFAULT_WINDOWS)
        if windows:
            self.windows.update(windows)

        self.poll_interval = poll_interval or settings.CAPTURE_POLL_INTERVAL
        self.required_samples = required_samples or settings.CAPTURE_REQUIRED_SAMPLES
        self.settle_seconds = settle_seconds if settle_seconds is not None else settings.CAPTURE_SETTLE_SECONDS
        self.idle_timeout = idle_timeout or settings.CAPTURE_IDLE_TIMEOUT
        self._encode = encoder
        self._on_complete = on_complete
        self._on_capture = on_capture

        self.session = CaptureSession(required_angles=list(required_angles or DEFAULT_ANGLES))
        missing = [a for a in self.session.required_angles if a not in self.windows]
        if missing:
            raise ValueError(f"No acceptance window for angles: {missing}")

        self.state = CaptureState.IDLE
        self.good_samples = 0
        self.samples_taken = 0
        self.last_pose: Optional[PoseSample] = None
        self.face_detected = False
        self.error: Optional[str] = None
        self._handle: Optional[ScheduledCall] = None
        self._holds_camera = False
        self._last_frame_at = 0.0

    # ============== Properties ==============

    @property
    def current_angle(self) -> Optional[CaptureAngle]:
        return self.session.current_angle

    @property
    def captured(self) -> Dict[CaptureAngle, ImageArtifact]:
        return dict(self.session.captured)

    @property
    def is_complete(self) -> bool:
        return self.state == CaptureState.COMPLETED

    @property
    def is_active(self) -> bool:
        return self.state in (CaptureState.RUNNING, CaptureState.SETTLING)

    @property
    def holds_camera(self) -> bool:
        return self._holds_camera

    # ============== Lifecycle ==============

    def start(self):
        """
        Load the detector, acquire the camera and begin sampling.

        Raises:
            DetectorLoadError: detector could not be loaded (retryable)
            CameraError: camera unavailable or held elsewhere (retryable)
            SessionStateError: sequencer already started or finished
        """
        if self.state != CaptureState.IDLE:
            raise SessionStateError(f"Capture {self.id} cannot start from state {self.state.value}")

        if not self.detector.is_loaded:
            try:
                self.detector.load()
            except DetectorLoadError:
                logger.error(f"Landmark detector failed to load for capture {self.id}")
                raise

        self._acquire_camera()

        self.state = CaptureState.RUNNING
        self.good_samples = 0
        self._last_frame_at = self.scheduler.now()
        log_capture_event(self.id, "start", {
            "client_id": self.client_id,
            "angles": ",".join(a.value for a in self.session.required_angles)
        })
        self._schedule_poll(0.0)

    def cancel(self):
        """Stop sampling and release the camera; captured images are kept"""
        if self.state in (CaptureState.COMPLETED, CaptureState.CANCELLED, CaptureState.FAILED):
            return

        self.session.cancelled = True
        self.state = CaptureState.CANCELLED
        self._cancel_pending()
        self._release_camera()
        log_capture_event(self.id, "cancelled", {"captured": len(self.session.captured)})

    def __enter__(self) -> "CaptureSequencer":
        self.start()
        return self

    def __exit__(self, exc_type, exc, tb):
        if not self.is_complete:
            self.cancel()
        return False

    # ============== Sampling Loop ==============

    def _schedule_poll(self, delay: float):
        self._handle = self.scheduler.call_later(delay, self._poll)

    def _poll(self):
        self._handle = None
        if self.state != CaptureState.RUNNING:
            return

        try:
            self._sample()
        except CameraError as e:
            self._fail(str(e))
        except Exception as e:
            self._fail(f"Unexpected capture error: {e}")
            raise

    def _sample(self):
        frame = self.camera.read()
        if frame is None:
            # No new frame yet; not a sample
            if self.scheduler.now() - self._last_frame_at >= self.idle_timeout:
                raise CameraError(f"No frames received for {self.idle_timeout:g}s")
            self._schedule_poll(self.poll_interval)
            return

        self._last_frame_at = self.scheduler.now()
        self.samples_taken += 1
        pose = self._estimate(frame)
        angle = self.current_angle

        if self.windows[angle].contains(pose):
            self.good_samples += 1
        else:
            self.good_samples = 0

        if self.good_samples >= self.required_samples:
            self._capture(frame, angle)
            return

        self._schedule_poll(self.poll_interval)

    def _estimate(self, frame: np.ndarray) -> Optional[PoseSample]:
        try:
            landmarks = self.detector.detect(frame)
        except Exception as e:
            logger.warning(f"Landmark detection error: {e}")
            landmarks = None

        self.face_detected = landmarks is not None
        self.last_pose = self.estimator.estimate(landmarks) if landmarks is not None else None
        return self.last_pose

    def _capture(self, frame: np.ndarray, angle: CaptureAngle):
        data = self._encode(frame)
        artifact = ImageArtifact(data=data, angle=angle, captured_at=self.scheduler.time())
        self.session.captured[angle] = artifact
        self.good_samples = 0
        log_capture_event(self.id, "angle_captured", {"angle": angle.value, "bytes": len(data)})

        if self._on_capture is not None:
            self._on_capture(artifact)

        self.state = CaptureState.SETTLING
        self._handle = self.scheduler.call_later(self.settle_seconds, self._advance)

    def _advance(self):
        self._handle = None
        if self.state != CaptureState.SETTLING:
            return

        self.session.current_index += 1
        if self.session.current_index >= len(self.session.required_angles):
            self._complete()
            return

        self.state = CaptureState.RUNNING
        self.last_pose = None
        self._last_frame_at = self.scheduler.now()
        self._schedule_poll(0.0)

    def _complete(self):
        self.state = CaptureState.COMPLETED
        self._release_camera()
        log_capture_event(self.id, "completed", {"captured": len(self.session.captured)})
        if self._on_complete is not None:
            self._on_complete(self.captured)

    def _fail(self, message: str):
        self.error = message
        self.state = CaptureState.FAILED
        self._cancel_pending()
        self._release_camera()
        logger.error(f"Capture {self.id} failed: {message}")

    # ============== Resources ==============

    def _acquire_camera(self):
        self.broker.acquire(self.client_id, self.id)
        try:
            self.camera.open()
        except CameraError:
            self.broker.release(self.client_id, self.id)
            raise
        self._holds_camera = True

    def _release_camera(self):
        if not self._holds_camera:
            return
        try:
            self.camera.release()
        finally:
            self._holds_camera = False
            self.broker.release(self.client_id, self.id)

    def _cancel_pending(self):
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None

    # ============== Reporting / Hand-off ==============

    def guidance(self) -> str:
        angle = self.current_angle
        if angle is None:
            return "All angles captured"
        if self.state == CaptureState.SETTLING:
            return "Captured - get ready for the next angle"
        if self.samples_taken == 0:
            return INSTRUCTIONS[angle]
        return guidance(angle, self.last_pose, self.windows[angle])

    def status(self) -> Dict[str, object]:
        angle = self.current_angle
        return {
            "capture_id": self.id,
            "state": self.state.value,
            "current_angle": angle.value if angle else None,
            "captured": [a.value for a in self.session.required_angles if a in self.session.captured],
            "missing": [a.value for a in self.session.missing_angles],
            "good_samples": self.good_samples,
            "required_samples": self.required_samples,
            "face_detected": self.face_detected,
            "pose": (
                {"yaw": round(self.last_pose.yaw, 1), "pitch": round(self.last_pose.pitch, 1)}
                if self.last_pose else None
            ),
            "guidance": self.guidance(),
            "error": self.error
        }

    def submit(self, verifier) -> bool:
        """Hand every captured artifact to the identity-verification collaborator"""
        if not self.is_complete:
            raise SessionStateError(
                f"Capture {self.id} is incomplete; missing {[a.value for a in self.session.missing_angles]}"
            )
        artifacts = [self.session.captured[a] for a in self.session.required_angles]
        log_capture_event(self.id, "submitted", {"images": len(artifacts)})
        return verifier.verify(artifacts)
