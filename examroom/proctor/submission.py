"""
Submission Controller - the single, idempotent finalize path of a session

Whichever trigger arrives first (manual submit, clock expiry, expulsion)
produces the only payload of the session; every later call is a no-op.
"""

import asyncio
import logging
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Optional

from .clients import GradingClient
from .errors import SubmissionError
from .models import (
    QuestionStats,
    SessionPhase,
    SubmissionPayload,
    SubmitReason,
    ViolationSummary
)
from .utils.logging import log_session_end

if TYPE_CHECKING:
    from .session import ExamSession

logger = logging.getLogger(__name__)


class SubmissionController:
    """
    Builds and hands off the submission payload exactly once.

    Order of finalize:
        claim -> freeze answers -> stop clock / disarm monitor ->
        assemble payload -> start hand-off -> release resources -> set phase

    The hand-off runs as a scheduler task so a slow grading service never
    holds up other sessions. ``delivered`` stays None until it finishes.
    """

    def __init__(self, session: "ExamSession", grading_client: GradingClient):
        self.session = session
        self.grading_client = grading_client
        self.payload: Optional[SubmissionPayload] = None
        self.delivered: Optional[bool] = None
        self.delivery_error: Optional[str] = None
        self._delivery: Optional[asyncio.Future] = None
        self._claimed = False

    @property
    def is_finalized(self) -> bool:
        return self._claimed

    def finalize(self, reason: SubmitReason) -> Optional[SubmissionPayload]:
        """
        Close the session and produce its submission payload.

        Returns:
            The payload on the first call while the session is active,
            None on every other call
        """
        reason = SubmitReason(reason)
        session = self.session

        if self._claimed or session.phase != SessionPhase.ACTIVE:
            logger.info(
                f"Ignoring finalize({reason.value}) for {session.id}: "
                f"phase={session.phase.value} finalized={self._claimed}"
            )
            return None
        self._claimed = True

        session.answers.freeze()
        session.clock.stop()
        session.monitor.disarm()

        payload = self._build_payload(reason)
        self.payload = payload

        try:
            self._hand_off(payload)
        finally:
            session._release_resources()
            session._set_phase(
                SessionPhase.TERMINATED if reason == SubmitReason.EXPELLED
                else SessionPhase.COMPLETED
            )
            log_session_end(session.id, reason.value, payload.answered_count, payload.time_spent)

        return payload

    def _build_payload(self, reason: SubmitReason) -> SubmissionPayload:
        session = self.session
        exam = session.exam
        answers = session.answers.answers()
        total = exam.question_count
        time_left = session.clock.time_left

        return SubmissionPayload(
            exam_id=exam.id,
            session_id=session.id,
            answers={str(key): option for key, option in sorted(answers.items())},
            answered_count=len(answers),
            time_spent=exam.duration_seconds - time_left,
            time_allocated=exam.duration_seconds,
            time_remaining=time_left,
            reason=reason,
            device_class=session.device_class,
            timestamp=datetime.fromtimestamp(session.scheduler.time(), tz=timezone.utc),
            question_stats=QuestionStats(
                total_questions=total,
                attempted=len(answers),
                skipped=total - len(answers),
                marked_for_review=session.answers.review_count
            ),
            violations=ViolationSummary(**session.monitor.violation_counts())
        )

    def _hand_off(self, payload: SubmissionPayload):
        self._delivery = self.session.scheduler.spawn(
            self.grading_client.submit(payload),
            self._on_delivered
        )

    def _on_delivered(self, accepted: Optional[bool], error: Optional[BaseException]):
        if error is None:
            self.delivered = bool(accepted)
            return

        self.delivered = False
        self.delivery_error = str(error) or type(error).__name__
        if isinstance(error, SubmissionError):
            logger.error(f"Submission hand-off failed for {self.session.id}: {error}")
        else:
            logger.error(f"Unexpected hand-off error for {self.session.id}: {type(error).__name__}: {error}")

    async def wait_for_delivery(self) -> Optional[bool]:
        """Wait for a pending hand-off without raising; returns ``delivered``"""
        if self._delivery is not None and not self._delivery.done():
            await asyncio.wait({self._delivery})
        return self.delivered
