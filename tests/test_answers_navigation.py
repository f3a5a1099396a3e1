"""
Tests for answer state, question status precedence and navigation
"""

import pytest

from examroom.proctor.answers import AnswerState
from examroom.proctor.errors import NavigationError, SessionStateError
from examroom.proctor.models import QuestionKey, QuestionStatus
from examroom.proctor.navigation import NavigationController


@pytest.fixture
def answers(exam):
    state = AnswerState(exam)
    state.activate()
    return state


@pytest.fixture
def navigation(exam, answers):
    controller = NavigationController(exam, answers)
    controller.start()
    return controller


class TestAnswerState:
    """Tests for AnswerState"""

    def test_set_and_overwrite(self, answers):
        key = QuestionKey(0, 1)
        answers.set_answer(key, 2)
        answers.set_answer(key, 3)

        assert answers.answer_for(key) == 3
        assert answers.answered_count == 1

    def test_option_out_of_range(self, answers):
        with pytest.raises(ValueError):
            answers.set_answer(QuestionKey(0, 0), 4)
        with pytest.raises(ValueError):
            answers.set_answer(QuestionKey(0, 0), -1)

    def test_key_out_of_range(self, answers):
        with pytest.raises(NavigationError):
            answers.set_answer(QuestionKey(2, 0), 0)
        with pytest.raises(NavigationError):
            answers.toggle_review(QuestionKey(0, 3))

    def test_toggle_review(self, answers):
        key = QuestionKey(1, 2)

        assert answers.toggle_review(key) is True
        assert answers.is_review_marked(key)
        assert answers.toggle_review(key) is False
        assert answers.review_count == 0

    def test_inactive_state_rejects_changes(self, exam):
        state = AnswerState(exam)

        with pytest.raises(SessionStateError):
            state.set_answer(QuestionKey(0, 0), 1)

    def test_frozen_state_rejects_changes(self, answers):
        answers.set_answer(QuestionKey(0, 0), 1)
        answers.freeze()

        with pytest.raises(SessionStateError):
            answers.set_answer(QuestionKey(0, 0), 2)
        with pytest.raises(SessionStateError):
            answers.toggle_review(QuestionKey(0, 0))
        with pytest.raises(SessionStateError):
            answers.activate()
        assert answers.answer_for(QuestionKey(0, 0)) == 1


class TestQuestionStatus:
    """Tests for palette status precedence"""

    def test_precedence(self, answers):
        key = QuestionKey(0, 0)
        assert answers.status_of(key) == QuestionStatus.NOT_VISITED

        answers.mark_visited(key)
        assert answers.status_of(key) == QuestionStatus.VISITED

        answers.set_answer(key, 0)
        assert answers.status_of(key) == QuestionStatus.ANSWERED

        answers.toggle_review(key)
        assert answers.status_of(key) == QuestionStatus.REVIEW

        assert answers.status_of(key, current=key) == QuestionStatus.CURRENT

    def test_current_beats_review(self, answers):
        key = QuestionKey(1, 1)
        answers.toggle_review(key)

        assert answers.status_of(key, current=QuestionKey(1, 1)) == QuestionStatus.CURRENT
        assert answers.status_of(key, current=QuestionKey(0, 0)) == QuestionStatus.REVIEW

    def test_palette_and_summary(self, answers):
        answers.mark_visited(QuestionKey(0, 1))
        answers.set_answer(QuestionKey(1, 0), 1)

        palette = answers.palette(current=QuestionKey(0, 0))

        assert palette[0] == [QuestionStatus.CURRENT, QuestionStatus.VISITED, QuestionStatus.NOT_VISITED]
        assert palette[1][0] == QuestionStatus.ANSWERED

        summary = answers.summary(current=QuestionKey(0, 0))
        assert summary["current"] == 1
        assert summary["answered"] == 1
        assert summary["not-visited"] == 3
        assert sum(summary.values()) == 6


class TestNavigation:
    """Tests for NavigationController"""

    def test_starts_on_first_question(self, navigation, answers):
        assert navigation.current == QuestionKey(0, 0)
        assert navigation.is_first()
        assert answers.is_visited(QuestionKey(0, 0))

    def test_next_crosses_subjects(self, navigation):
        for _ in range(3):
            assert navigation.next() is True

        assert navigation.current == QuestionKey(1, 0)

    def test_prev_crosses_back_to_last_question(self, navigation):
        navigation.go_to(1, 0)

        assert navigation.prev() is True
        assert navigation.current == QuestionKey(0, 2)

    def test_boundaries_are_no_ops(self, navigation):
        assert navigation.prev() is False
        assert navigation.current == QuestionKey(0, 0)

        navigation.go_to(1, 2)
        assert navigation.is_last()
        assert navigation.next() is False
        assert navigation.current == QuestionKey(1, 2)

    def test_go_to_out_of_range(self, navigation):
        with pytest.raises(NavigationError):
            navigation.go_to(0, 3)
        with pytest.raises(NavigationError):
            navigation.go_to(-1, 0)

        assert navigation.current == QuestionKey(0, 0)

    def test_moves_mark_visited(self, navigation, answers):
        navigation.next()
        navigation.go_to(1, 2)

        assert answers.is_visited(QuestionKey(0, 1))
        assert answers.is_visited(QuestionKey(1, 2))
        assert not answers.is_visited(QuestionKey(1, 0))


class TestQuestionKey:
    def test_string_form(self):
        assert str(QuestionKey(1, 2)) == "1-2"
        assert QuestionKey.parse("1-2") == QuestionKey(1, 2)

    def test_parse_rejects_garbage(self):
        with pytest.raises(ValueError):
            QuestionKey.parse("one-two")
