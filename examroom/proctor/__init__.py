"""
Exam Room Proctoring Module

Runs a timed, proctored multiple-choice exam session:
- Consent gate, countdown clock and auto-submit on expiry
- Answer state, mark-for-review and question palette
- Environment integrity monitoring with device-specific escalation
- Guided multi-angle identity capture gated by head pose

Every session produces exactly one submission payload.
"""

from .api import router
from .session import ExamSession

__all__ = ["router", "ExamSession"]
