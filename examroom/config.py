"""
Exam Room Configuration Settings

Timing, escalation and capture calibration values live here so they can be
tuned per deployment through the environment or a .env file.
"""
from pydantic_settings import BaseSettings
from typing import Optional


class Settings(BaseSettings):
    """Configuration for the exam room service."""

    # API Settings
    APP_NAME: str = "Exam Room Service"
    DEBUG: bool = True

    # Logging
    LOG_LEVEL: str = "INFO"
    LOG_TO_FILE: bool = False
    LOG_DIR: str = "logs"

    # Session clock
    TIMER_WARNING_SECONDS: int = 600  # highlight the last 10 minutes

    # Escalation policy (seconds until expulsion)
    DESKTOP_TERMINATION_DELAY: float = 3.0
    MOBILE_GRACE_PERIOD: float = 5.0

    # Head pose heuristic calibration
    YAW_SCALE: float = 40.0
    PITCH_SCALE: float = 60.0

    # Guided capture
    CAPTURE_POLL_INTERVAL: float = 0.12
    CAPTURE_REQUIRED_SAMPLES: int = 4
    CAPTURE_SETTLE_SECONDS: float = 0.8
    CAPTURE_IDLE_TIMEOUT: float = 10.0  # no frames for this long fails the capture
    CAPTURE_JPEG_QUALITY: int = 90
    CAMERA_INDEX: int = 0
    DLIB_PREDICTOR_PATH: Optional[str] = None

    # External collaborators
    GRADING_API_URL: Optional[str] = None  # payloads are kept in memory when unset
    VERIFICATION_API_URL: str = "http://localhost:8000/verification/images"
    HTTP_TIMEOUT_SECONDS: float = 15.0
    HTTP_MAX_RETRIES: int = 3

    class Config:
        env_file = ".env"
        case_sensitive = True
        extra = "ignore"


settings = Settings()
