"""
Exam Session - Manages a single proctored exam attempt
"""

import logging
import uuid
from typing import Any, Dict, List, Optional

from .answers import AnswerState
from .clients import GradingClient
from .errors import SessionStateError
from .integrity import (
    EnvironmentSignal,
    EscalationPolicy,
    IntegrityMonitor,
    SyntheticEnvironment
)
from .models import (
    DeviceClass,
    ExamDefinition,
    QuestionKey,
    QuestionStatus,
    SessionPhase,
    SubmissionPayload,
    SubmitReason,
    ViolationEvent
)
from .navigation import NavigationController
from .scheduling import Scheduler
from .submission import SubmissionController
from .timer import SessionClock
from .utils.logging import log_proctor_event, log_session_start

logger = logging.getLogger(__name__)


class ExamSession:
    """
    Manages a single exam attempt.

    Starts in the consent phase. ``start(consent=True)`` arms the clock and
    the integrity monitor and opens the question paper. The session ends
    through exactly one finalize: manual submit, clock expiry or expulsion.
    Completed and terminated are final phases.
    """

    def __init__(
        self,
        exam: ExamDefinition,
        device_class: DeviceClass,
        grading_client: GradingClient,
        scheduler: Scheduler,
        environment: Optional[SyntheticEnvironment] = None,
        policy: Optional[EscalationPolicy] = None,
        session_id: Optional[str] = None
    ):
        """
        Initialize a new exam session.

        Args:
            exam: Immutable exam definition
            device_class: Selects the escalation policy
            grading_client: Receives the submission payload
            scheduler: Drives the clock and escalation timers
            environment: Source of fullscreen/visibility/key signals
            policy: Optional escalation policy override
            session_id: Optional custom session ID (auto-generated if not provided)
        """
        self.id = session_id or f"EXM_{uuid.uuid4().hex[:6].upper()}"
        self.exam = exam
        self.device_class = DeviceClass(device_class)
        self.scheduler = scheduler
        self.environment = environment or SyntheticEnvironment()
        self.phase = SessionPhase.CONSENT

        self.answers = AnswerState(exam)
        self.navigation = NavigationController(exam, self.answers)
        self.clock = SessionClock(scheduler, exam.duration, on_expire=self._on_time_up)
        self.monitor = IntegrityMonitor(
            scheduler,
            self.device_class,
            on_terminate=self._on_expelled,
            policy=policy,
            session_id=self.id
        )
        self.submission = SubmissionController(self, grading_client)
        self.started_at: Optional[float] = None

    # ============== Lifecycle ==============

    @property
    def is_active(self) -> bool:
        return self.phase == SessionPhase.ACTIVE

    @property
    def is_closed(self) -> bool:
        return self.phase in (SessionPhase.COMPLETED, SessionPhase.TERMINATED)

    @property
    def payload(self) -> Optional[SubmissionPayload]:
        return self.submission.payload

    def start(self, consent: bool):
        """Move from consent to active"""
        if self.phase != SessionPhase.CONSENT:
            raise SessionStateError(f"Session {self.id} cannot start from phase {self.phase.value}")
        if not consent:
            raise SessionStateError("The exam rules must be accepted before starting")

        self.phase = SessionPhase.ACTIVE
        self.started_at = self.scheduler.time()

        self.answers.activate()
        self.environment.enter_fullscreen()
        self.monitor.attach(self.environment)
        self.monitor.arm()
        self.clock.start()
        self.navigation.start()

        log_session_start(self.id, self.exam.id, self.device_class.value, self.exam.duration)

    def submit(self) -> Optional[SubmissionPayload]:
        """Manual submission by the candidate"""
        return self.submission.finalize(SubmitReason.MANUAL)

    def close(self):
        """Release timers and the environment without producing a payload"""
        if self.is_active:
            logger.warning(f"Closing active session {self.id} without submission")
        self.clock.stop()
        self.monitor.disarm()
        self._release_resources()

    def __enter__(self) -> "ExamSession":
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()
        return False

    def _on_time_up(self):
        self.submission.finalize(SubmitReason.TIME_UP)

    def _on_expelled(self, trigger: ViolationEvent):
        log_proctor_event(self.id, "expelled", {"trigger": trigger.type.value}, level="warning")
        self.submission.finalize(SubmitReason.EXPELLED)

    def _release_resources(self):
        self.monitor.detach()
        self.environment.exit_fullscreen()

    def _set_phase(self, phase: SessionPhase):
        self.phase = phase

    # ============== Candidate Actions ==============

    def select_answer(self, option_index: int, key: Optional[QuestionKey] = None):
        """Answer the current question (or an explicit one)"""
        self._require_active()
        self.answers.set_answer(key or self.navigation.current, option_index)

    def toggle_review(self, key: Optional[QuestionKey] = None) -> bool:
        self._require_active()
        return self.answers.toggle_review(key or self.navigation.current)

    def next_question(self) -> bool:
        self._require_active()
        return self.navigation.next()

    def previous_question(self) -> bool:
        self._require_active()
        return self.navigation.prev()

    def go_to(self, subject_index: int, question_index: int) -> bool:
        self._require_active()
        return self.navigation.go_to(subject_index, question_index)

    def handle_signal(self, signal: EnvironmentSignal) -> Optional[ViolationEvent]:
        """Feed an environment signal through the monitor"""
        if not self.is_active:
            return None
        return self.monitor.handle(signal)

    def _require_active(self):
        if not self.is_active:
            raise SessionStateError(f"Session {self.id} is {self.phase.value}")

    # ============== Queries ==============

    @property
    def current(self) -> QuestionKey:
        return self.navigation.current

    def status_of(self, key: QuestionKey) -> QuestionStatus:
        return self.answers.status_of(key, self.navigation.current)

    def palette(self) -> List[List[QuestionStatus]]:
        return self.answers.palette(self.navigation.current)

    def snapshot(self) -> Dict[str, Any]:
        """Serializable view of the session for status endpoints"""
        current = self.navigation.current
        return {
            "session_id": self.id,
            "exam_id": self.exam.id,
            "phase": self.phase.value,
            "device_class": self.device_class.value,
            "time_left": self.clock.time_left,
            "time_display": self.clock.format_remaining(),
            "time_warning": self.clock.is_warning,
            "current": {"subject_index": current.subject_index, "question_index": current.question_index},
            "answers": {str(k): v for k, v in sorted(self.answers.answers().items())},
            "palette": [[status.value for status in row] for row in self.palette()],
            "summary": self.answers.summary(current),
            "monitor_state": self.monitor.state.value,
            "seconds_until_termination": self.monitor.seconds_until_termination(),
            "violations": self.monitor.violation_counts(),
            "violation_log": [event.to_dict() for event in self.monitor.events],
            "submitted": self.submission.is_finalized,
            "delivered": self.submission.delivered
        }
