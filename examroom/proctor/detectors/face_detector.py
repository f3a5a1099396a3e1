"""
Landmark Detector - pluggable facial landmark detection

The capture pipeline depends only on the LandmarkDetector interface:
``load()`` once before capture, then ``detect(frame)`` per sample.
DlibLandmarkDetector is the bundled implementation (dlib HOG face detector
plus the 68-point shape predictor).
"""

import logging
import os
from typing import Optional

import cv2
import numpy as np

from ...config import settings
from ..errors import DetectorLoadError

logger = logging.getLogger(__name__)

# Default model paths (relative to the package)
MODELS_DIR = os.path.join(os.path.dirname(os.path.dirname(__file__)), "weights")
PREDICTOR_FILENAME = "shape_predictor_68_face_landmarks.dat"


class LandmarkDetector:
    """Interface: frame -> (68, 2) landmark array, or None when no face is found"""

    @property
    def is_loaded(self) -> bool:
        return True

    def load(self):
        """Load models; raise DetectorLoadError on failure"""

    def detect(self, frame: np.ndarray) -> Optional[np.ndarray]:
        raise NotImplementedError


class DlibLandmarkDetector(LandmarkDetector):
    """
    Detects the first face in a frame and returns its 68-point landmarks.

    dlib is imported lazily so that the rest of the exam room works without
    it installed (pip install "examroom[vision]").
    """

    def __init__(self, predictor_path: Optional[str] = None):
        """
        Args:
            predictor_path: Path to shape_predictor_68_face_landmarks.dat.
                            If None, uses DLIB_PREDICTOR_PATH or the models dir.
        """
        self.predictor_path = predictor_path or settings.DLIB_PREDICTOR_PATH
        self.detector = None
        self.predictor = None

    @property
    def is_loaded(self) -> bool:
        return self.detector is not None and self.predictor is not None

    def _resolve_predictor_path(self) -> str:
        possible_paths = [
            self.predictor_path,
            os.path.join(MODELS_DIR, PREDICTOR_FILENAME),
            PREDICTOR_FILENAME  # Current directory
        ]
        for path in possible_paths:
            if path and os.path.exists(path):
                return path

        raise DetectorLoadError(
            f"{PREDICTOR_FILENAME} not found. "
            f"Download from http://dlib.net/files/{PREDICTOR_FILENAME}.bz2 "
            f"and place in {MODELS_DIR} or set DLIB_PREDICTOR_PATH"
        )

    def load(self):
        if self.is_loaded:
            return

        try:
            import dlib
        except ImportError as e:
            raise DetectorLoadError("dlib not installed. Run: pip install dlib") from e

        path = self._resolve_predictor_path()
        try:
            logger.info(f"Loading dlib predictor from: {path}")
            self.detector = dlib.get_frontal_face_detector()
            self.predictor = dlib.shape_predictor(path)
        except RuntimeError as e:
            self.detector = None
            self.predictor = None
            raise DetectorLoadError(f"Could not load dlib predictor: {e}") from e

    def detect(self, frame: np.ndarray) -> Optional[np.ndarray]:
        """
        Detect landmarks of the first face in a frame.

        Args:
            frame: BGR image from OpenCV

        Returns:
            (68, 2) array of (x, y) points, or None if no face was found
        """
        if not self.is_loaded:
            raise DetectorLoadError("Landmark detector used before load()")

        if frame is None or frame.size == 0:
            return None

        gray = cv2.cvtColor(frame, cv2.COLOR_BGR2GRAY)
        faces = self.detector(gray, 0)
        if len(faces) == 0:
            return None

        marks = self.predictor(gray, faces[0])
        return np.array([(marks.part(i).x, marks.part(i).y) for i in range(68)], dtype=np.float64)
