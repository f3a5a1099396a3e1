"""
Answer State - per-question answers, review marks and visited tracking
"""

import logging
from typing import Dict, List, Optional, Set

from .errors import NavigationError, SessionStateError
from .models import ExamDefinition, QuestionKey, QuestionStatus

logger = logging.getLogger(__name__)


class AnswerState:
    """
    Stores what the candidate has done with each question.

    Answers and review marks only change while the state is active; once
    frozen at submission nothing can be modified. Visited marks follow the
    navigation pointer and are likewise locked after freezing.
    """

    def __init__(self, exam: ExamDefinition):
        self.exam = exam
        self._answers: Dict[QuestionKey, int] = {}
        self._review_marked: Set[QuestionKey] = set()
        self._visited: Set[QuestionKey] = set()
        self._active = False
        self._frozen = False

    @property
    def is_active(self) -> bool:
        return self._active

    @property
    def is_frozen(self) -> bool:
        return self._frozen

    def activate(self):
        if self._frozen:
            raise SessionStateError("Answer state is frozen")
        self._active = True

    def freeze(self):
        self._active = False
        self._frozen = True

    # ============== Mutations ==============

    def set_answer(self, key: QuestionKey, option_index: int):
        """Record (or overwrite) the selected option for a question"""
        self._require_active()
        key = self._validate(key)

        options = self.exam.question(key).options
        if not 0 <= option_index < len(options):
            raise ValueError(
                f"Option {option_index} out of range for question {key} ({len(options)} options)"
            )

        self._answers[key] = option_index

    def toggle_review(self, key: QuestionKey) -> bool:
        """Flip the review mark; returns True if the question is now marked"""
        self._require_active()
        key = self._validate(key)

        if key in self._review_marked:
            self._review_marked.discard(key)
            return False
        self._review_marked.add(key)
        return True

    def mark_visited(self, key: QuestionKey):
        if self._frozen:
            return
        self._visited.add(self._validate(key))

    # ============== Queries ==============

    def answer_for(self, key: QuestionKey) -> Optional[int]:
        return self._answers.get(QuestionKey(*key))

    def is_review_marked(self, key: QuestionKey) -> bool:
        return QuestionKey(*key) in self._review_marked

    def is_visited(self, key: QuestionKey) -> bool:
        return QuestionKey(*key) in self._visited

    @property
    def answered_count(self) -> int:
        return len(self._answers)

    @property
    def review_count(self) -> int:
        return len(self._review_marked)

    def answers(self) -> Dict[QuestionKey, int]:
        return dict(self._answers)

    def status_of(self, key: QuestionKey, current: Optional[QuestionKey] = None) -> QuestionStatus:
        """
        Palette status of a question.

        Precedence (first match wins): current > review > answered >
        visited > not-visited.
        """
        key = self._validate(key)

        if current is not None and key == QuestionKey(*current):
            return QuestionStatus.CURRENT
        if key in self._review_marked:
            return QuestionStatus.REVIEW
        if key in self._answers:
            return QuestionStatus.ANSWERED
        if key in self._visited:
            return QuestionStatus.VISITED
        return QuestionStatus.NOT_VISITED

    def palette(self, current: Optional[QuestionKey] = None) -> List[List[QuestionStatus]]:
        """Statuses laid out per subject, in question order"""
        return [
            [self.status_of(QuestionKey(s, q), current) for q in range(len(subject.questions))]
            for s, subject in enumerate(self.exam.subjects)
        ]

    def summary(self, current: Optional[QuestionKey] = None) -> Dict[str, int]:
        """Count of questions in each status (palette legend)"""
        counts = {status.value: 0 for status in QuestionStatus}
        for key in self.exam.keys():
            counts[self.status_of(key, current).value] += 1
        return counts

    # ============== Helpers ==============

    def _require_active(self):
        if not self._active:
            raise SessionStateError("Answers can only change while the session is active")

    def _validate(self, key) -> QuestionKey:
        key = QuestionKey(*key)
        if not self.exam.contains(key):
            raise NavigationError(f"Question {key} is outside the exam")
        return key
