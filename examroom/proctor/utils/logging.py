"""
Exam room event logging

Every line has the form ``[PROCTOR] session=<id> event=<type> key=value ...``
so session timelines can be grepped out of the service log.
"""

import logging
from typing import Any, Dict, Optional

logger = logging.getLogger(__name__)

_LEVELS = {
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warning": logging.WARNING,
    "error": logging.ERROR,
}


def log_proctor_event(
    session_id: str,
    event_type: str,
    details: Optional[Dict[str, Any]] = None,
    level: str = "info"
):
    """
    Log one exam room event.

    Args:
        session_id: Exam session or capture ID
        event_type: Short event name (session_start, violation, capture_start, ...)
        details: Extra key/value pairs appended in insertion order
        level: debug, info, warning or error
    """
    parts = [f"[PROCTOR] session={session_id}", f"event={event_type}"]
    parts.extend(f"{key}={value}" for key, value in (details or {}).items())
    logger.log(_LEVELS.get(level, logging.INFO), " ".join(parts))


def log_session_start(session_id: str, exam_id: str, device_class: str, duration_minutes: int):
    log_proctor_event(session_id, "session_start", {
        "exam_id": exam_id,
        "device_class": device_class,
        "duration_minutes": duration_minutes
    })


def log_session_end(session_id: str, reason: str, answered: int, time_spent: int):
    log_proctor_event(session_id, "session_end", {
        "reason": reason,
        "answered": answered,
        "time_spent": time_spent
    })


def log_violation(session_id: str, violation_type: str, device_class: str, escalating: bool):
    """Recorded violations are always warnings, escalating or not"""
    log_proctor_event(
        session_id,
        "violation",
        {"type": violation_type, "device_class": device_class, "escalating": escalating},
        level="warning"
    )


def log_escalation(session_id: str, outcome: str, details: Optional[Dict[str, Any]] = None):
    """outcome is one of started, recovered, expelled"""
    level = "info" if outcome == "recovered" else "warning"
    log_proctor_event(session_id, f"escalation_{outcome}", details, level=level)


def log_capture_event(capture_id: str, event: str, details: Optional[Dict[str, Any]] = None):
    log_proctor_event(capture_id, f"capture_{event}", details)
