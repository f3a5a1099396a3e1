"""
Navigation Controller - moves the question pointer across subjects
"""

import logging

from .answers import AnswerState
from .errors import NavigationError
from .models import ExamDefinition, QuestionKey

logger = logging.getLogger(__name__)


class NavigationController:
    """
    Maintains (subject, question) pointers over the ragged exam structure.

    Every successful move marks the destination question visited.
    """

    def __init__(self, exam: ExamDefinition, answers: AnswerState):
        self.exam = exam
        self.answers = answers
        self.subject_index = 0
        self.question_index = 0

    @property
    def current(self) -> QuestionKey:
        return QuestionKey(self.subject_index, self.question_index)

    def start(self):
        """Position on the first question and mark it visited"""
        self._move_to(0, 0)

    def is_first(self) -> bool:
        return self.subject_index == 0 and self.question_index == 0

    def is_last(self) -> bool:
        last_subject = len(self.exam.subjects) - 1
        return (
            self.subject_index == last_subject
            and self.question_index == len(self.exam.subjects[last_subject].questions) - 1
        )

    def next(self) -> bool:
        subject = self.exam.subjects[self.subject_index]
        if self.question_index < len(subject.questions) - 1:
            self._move_to(self.subject_index, self.question_index + 1)
            return True
        if self.subject_index < len(self.exam.subjects) - 1:
            self._move_to(self.subject_index + 1, 0)
            return True
        return False

    def prev(self) -> bool:
        if self.question_index > 0:
            self._move_to(self.subject_index, self.question_index - 1)
            return True
        if self.subject_index > 0:
            previous = self.exam.subjects[self.subject_index - 1]
            self._move_to(self.subject_index - 1, len(previous.questions) - 1)
            return True
        return False

    def go_to(self, subject_index: int, question_index: int) -> bool:
        key = QuestionKey(subject_index, question_index)
        if not self.exam.contains(key):
            raise NavigationError(f"Question {key} is outside the exam")
        self._move_to(subject_index, question_index)
        return True

    def _move_to(self, subject_index: int, question_index: int):
        self.subject_index = subject_index
        self.question_index = question_index
        self.answers.mark_visited(self.current)
