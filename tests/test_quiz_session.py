"""
Unit tests for the QuizSession state machine.
"""
import unittest

from trivia.models import FinishReason, RewardTier, SessionStatus
from trivia.quiz_session import (
    InvalidInputError,
    InvalidStateError,
    OutOfRangeError,
    QuizSession,
    QuizSessionError,
    reward_tier,
)
from tests.test_fixtures import TestFixtures, make_question


class TestSessionCreation(unittest.TestCase):
    """Test cases for starting a session."""

    def setUp(self):
        self.questions = TestFixtures.create_sample_questions()

    def test_start_reports_running_initial_state(self):
        session = QuizSession.start(self.questions, 100)
        status = session.status()

        self.assertEqual(status.status, SessionStatus.RUNNING)
        self.assertTrue(status.is_running)
        self.assertEqual(status.current_index, 0)
        self.assertEqual(status.score, 0)
        self.assertFalse(status.answered)
        self.assertEqual(status.remaining_seconds, 100)
        self.assertEqual(status.total_questions, 5)
        self.assertIsNone(status.finish_reason)
        self.assertIsNone(session.result)

    def test_start_every_question_count(self):
        for count in range(1, len(self.questions) + 1):
            with self.subTest(count=count):
                status = QuizSession(self.questions[:count], 10).status()
                self.assertEqual(status.status, SessionStatus.RUNNING)
                self.assertEqual(status.current_index, 0)
                self.assertEqual(status.score, 0)

    def test_default_duration(self):
        session = QuizSession(self.questions)
        self.assertEqual(session.duration, 100)

    def test_empty_questions_rejected(self):
        with self.assertRaises(InvalidInputError):
            QuizSession([], 100)

    def test_non_positive_duration_rejected(self):
        for duration in (0, -1, -100):
            with self.subTest(duration=duration):
                with self.assertRaises(InvalidInputError):
                    QuizSession(self.questions, duration)

    def test_non_integer_duration_rejected(self):
        for duration in (1.5, "100", True, None):
            with self.subTest(duration=duration):
                with self.assertRaises(InvalidInputError):
                    QuizSession(self.questions, duration)

    def test_non_question_items_rejected(self):
        with self.assertRaises(InvalidInputError):
            QuizSession(["What is 2+2?"], 100)

    def test_invalid_input_is_value_error(self):
        with self.assertRaises(ValueError):
            QuizSession([], 100)

    def test_questions_are_fixed_for_session(self):
        questions = list(self.questions)
        session = QuizSession(questions, 100)
        questions.clear()

        self.assertEqual(len(session.questions), 5)
        self.assertIs(session.current_question(), self.questions[0])


class TestSubmitAnswer(unittest.TestCase):
    """Test cases for the scoring phase of a question."""

    def setUp(self):
        self.questions = TestFixtures.create_sample_questions()
        self.session = QuizSession(self.questions, 100)

    def test_correct_answer_increments_score(self):
        outcome = self.session.submit_answer(1)

        self.assertTrue(outcome.accepted)
        self.assertTrue(outcome.correct)
        self.assertEqual(outcome.correct_index, 1)
        self.assertEqual(outcome.snapshot.score, 1)
        self.assertTrue(outcome.snapshot.answered)

    def test_incorrect_answer_leaves_score(self):
        outcome = self.session.submit_answer(0)

        self.assertTrue(outcome.accepted)
        self.assertFalse(outcome.correct)
        self.assertEqual(outcome.correct_index, 1)
        self.assertEqual(outcome.snapshot.score, 0)
        self.assertTrue(outcome.snapshot.answered)

    def test_double_submit_scores_once(self):
        first = self.session.submit_answer(1)
        second = self.session.submit_answer(1)

        self.assertTrue(first.accepted)
        self.assertFalse(second.accepted)
        self.assertFalse(second.correct)
        self.assertEqual(self.session.status().score, 1)

    def test_submit_while_locked_ignores_out_of_range_index(self):
        self.session.submit_answer(0)
        outcome = self.session.submit_answer(99)

        self.assertFalse(outcome.accepted)
        self.assertEqual(self.session.status().score, 0)

    def test_out_of_range_leaves_state_unchanged(self):
        before = self.session.status()
        for index in (99, 4, -1):
            with self.subTest(index=index):
                with self.assertRaises(OutOfRangeError):
                    self.session.submit_answer(index)
        self.assertEqual(self.session.status(), before)

    def test_non_integer_index_is_out_of_range(self):
        for index in ("1", 1.0, None, True):
            with self.subTest(index=index):
                with self.assertRaises(OutOfRangeError):
                    self.session.submit_answer(index)
        self.assertFalse(self.session.status().answered)

    def test_out_of_range_is_index_error(self):
        with self.assertRaises(IndexError):
            self.session.submit_answer(99)

    def test_answer_range_follows_current_question(self):
        # Third question only has two answers
        self.session.submit_answer(1)
        self.session.advance()
        self.session.submit_answer(1)
        self.session.advance()

        with self.assertRaises(OutOfRangeError):
            self.session.submit_answer(2)
        outcome = self.session.submit_answer(1)
        self.assertTrue(outcome.correct)

    def test_submit_after_finish_ignored(self):
        self.session.finish()
        outcome = self.session.submit_answer(1)

        self.assertFalse(outcome.accepted)
        self.assertEqual(outcome.snapshot.score, 0)
        self.assertEqual(outcome.snapshot.status, SessionStatus.FINISHED)


class TestAdvance(unittest.TestCase):
    """Test cases for the navigation phase of a question."""

    def setUp(self):
        self.questions = TestFixtures.create_sample_questions()[:3]
        self.session = QuizSession(self.questions, 100)

    def test_advance_moves_to_next_question(self):
        self.session.submit_answer(1)
        status = self.session.advance()

        self.assertEqual(status.current_index, 1)
        self.assertFalse(status.answered)
        self.assertEqual(status.status, SessionStatus.RUNNING)
        self.assertIs(self.session.current_question(), self.questions[1])

    def test_advance_before_answer_fails_without_change(self):
        before = self.session.status()
        with self.assertRaises(InvalidStateError):
            self.session.advance()
        self.assertEqual(self.session.status(), before)

    def test_advance_twice_fails(self):
        self.session.submit_answer(1)
        self.session.advance()
        with self.assertRaises(InvalidStateError):
            self.session.advance()

    def test_advance_after_last_question_finishes(self):
        for _ in range(len(self.questions)):
            self.session.submit_answer(1)
            status = self.session.advance()

        self.assertEqual(status.status, SessionStatus.FINISHED)
        self.assertEqual(status.finish_reason, FinishReason.COMPLETED)
        self.assertFalse(status.answered)
        self.assertEqual(status.current_index, 2)
        self.assertEqual(status.question_number, 3)
        self.assertTrue(self.session.is_finished)

    def test_advance_on_finished_session_is_noop(self):
        self.session.submit_answer(1)
        self.session.finish()
        status = self.session.advance()

        self.assertEqual(status.status, SessionStatus.FINISHED)
        self.assertEqual(status.finish_reason, FinishReason.CANCELLED)

    def test_errors_share_base_class(self):
        with self.assertRaises(QuizSessionError):
            self.session.advance()


class TestTick(unittest.TestCase):
    """Test cases for the session-wide countdown."""

    def setUp(self):
        self.questions = TestFixtures.create_sample_questions()[:3]

    def test_tick_decrements_remaining(self):
        session = QuizSession(self.questions, 10)
        status = session.tick()

        self.assertEqual(status.remaining_seconds, 9)
        self.assertEqual(status.status, SessionStatus.RUNNING)

    def test_duration_ticks_finish_session(self):
        session = QuizSession(self.questions, 5)
        for i in range(4):
            self.assertEqual(session.tick().status, SessionStatus.RUNNING)
        status = session.tick()

        self.assertEqual(status.status, SessionStatus.FINISHED)
        self.assertEqual(status.remaining_seconds, 0)
        self.assertEqual(status.score, 0)
        self.assertEqual(status.finish_reason, FinishReason.TIMED_OUT)

        result = session.finish()
        self.assertEqual(result.score, 0)
        self.assertEqual(result.total_questions, 3)
        self.assertEqual(result.reward_tier, RewardTier.BEGINNER)
        self.assertEqual(result.finish_reason, FinishReason.TIMED_OUT)

    def test_tick_after_finish_is_noop(self):
        session = QuizSession(self.questions, 2)
        session.tick()
        session.tick()
        status = session.tick()

        self.assertEqual(status.remaining_seconds, 0)
        self.assertEqual(status.status, SessionStatus.FINISHED)

    def test_remaining_never_leaves_range(self):
        session = QuizSession(self.questions, 3)
        for _ in range(10):
            status = session.tick()
            self.assertGreaterEqual(status.remaining_seconds, 0)
            self.assertLessEqual(status.remaining_seconds, 3)

    def test_timeout_during_feedback_wins(self):
        session = QuizSession(self.questions, 2)
        session.submit_answer(1)
        session.tick()
        status = session.tick()

        self.assertEqual(status.status, SessionStatus.FINISHED)
        self.assertEqual(status.finish_reason, FinishReason.TIMED_OUT)
        self.assertFalse(status.answered)
        self.assertEqual(status.score, 1)

        # The advance scheduled for the feedback is harmless
        after = session.advance()
        self.assertEqual(after.current_index, 0)
        self.assertEqual(after.finish_reason, FinishReason.TIMED_OUT)

    def test_timeout_on_last_question(self):
        session = QuizSession(self.questions, 3)
        for _ in range(2):
            session.submit_answer(1)
            session.advance()
        status = session.tick()
        self.assertEqual(status.current_index, 2)
        session.tick()
        status = session.tick()

        self.assertEqual(status.status, SessionStatus.FINISHED)
        self.assertEqual(status.finish_reason, FinishReason.TIMED_OUT)
        self.assertEqual(session.result.score, 2)
        self.assertEqual(session.result.reward_tier, RewardTier.GOOD)

    def test_timeout_after_last_answer_before_advance(self):
        session = QuizSession(self.questions[:1], 1)
        session.submit_answer(1)
        session.tick()

        self.assertEqual(session.result.finish_reason, FinishReason.TIMED_OUT)
        self.assertEqual(session.result.reward_tier, RewardTier.MASTER)


class TestFinish(unittest.TestCase):
    """Test cases for results and forced termination."""

    def setUp(self):
        self.questions = TestFixtures.create_sample_questions()

    def test_single_question_run(self):
        question = self.questions[0]
        session = QuizSession.start([question], 100)

        outcome = session.submit_answer(question.correct_index)
        self.assertTrue(outcome.correct)
        self.assertEqual(outcome.snapshot.score, 1)

        status = session.advance()
        self.assertEqual(status.status, SessionStatus.FINISHED)

        result = session.finish()
        self.assertEqual(result.score, 1)
        self.assertEqual(result.total_questions, 1)
        self.assertEqual(result.reward_tier, RewardTier.MASTER)
        self.assertEqual(result.finish_reason, FinishReason.COMPLETED)
        self.assertTrue(result.is_perfect)

    def test_finish_cancels_running_session(self):
        session = QuizSession(self.questions, 100)
        session.submit_answer(1)
        result = session.finish()

        self.assertEqual(result.finish_reason, FinishReason.CANCELLED)
        self.assertEqual(result.score, 1)
        self.assertEqual(result.total_questions, 5)
        self.assertEqual(result.reward_tier, RewardTier.BEGINNER)
        self.assertEqual(session.status().status, SessionStatus.FINISHED)

    def test_finish_is_idempotent(self):
        session = QuizSession(self.questions, 100)
        first = session.finish()
        second = session.finish()

        self.assertIs(first, second)

    def test_no_mutation_after_finish(self):
        session = QuizSession(self.questions, 100)
        session.submit_answer(1)
        session.advance()
        session.finish()
        before = session.status()

        session.tick()
        session.submit_answer(1)
        session.advance()
        session.finish()

        self.assertEqual(session.status(), before)

    def test_result_records_answers(self):
        session = QuizSession(self.questions[:2], 100)
        session.submit_answer(0)
        session.advance()
        session.submit_answer(1)
        session.advance()

        answers = session.result.answers
        self.assertEqual(len(answers), 2)
        self.assertEqual((answers[0].question_index, answers[0].answer_index, answers[0].correct), (0, 0, False))
        self.assertEqual((answers[1].question_index, answers[1].answer_index, answers[1].correct), (1, 1, True))

    def test_score_never_exceeds_question_count(self):
        session = QuizSession(self.questions, 100)
        while not session.is_finished:
            session.submit_answer(session.current_question().correct_index)
            session.submit_answer(session.current_question().correct_index)
            session.advance()
        self.assertEqual(session.result.score, len(self.questions))


class TestRewardTier(unittest.TestCase):
    """Test cases for the reward tier thresholds."""

    def test_perfect_score_is_master(self):
        self.assertEqual(reward_tier(5, 5), RewardTier.MASTER)
        self.assertEqual(reward_tier(1, 1), RewardTier.MASTER)

    def test_exactly_half_is_good(self):
        self.assertEqual(reward_tier(2, 4), RewardTier.GOOD)
        self.assertEqual(reward_tier(5, 10), RewardTier.GOOD)

    def test_above_half_is_good(self):
        self.assertEqual(reward_tier(2, 3), RewardTier.GOOD)
        self.assertEqual(reward_tier(9, 10), RewardTier.GOOD)

    def test_below_half_is_beginner(self):
        self.assertEqual(reward_tier(1, 3), RewardTier.BEGINNER)
        self.assertEqual(reward_tier(2, 5), RewardTier.BEGINNER)

    def test_zero_is_beginner(self):
        self.assertEqual(reward_tier(0, 1), RewardTier.BEGINNER)
        self.assertEqual(reward_tier(0, 10), RewardTier.BEGINNER)

    def test_invalid_totals_rejected(self):
        with self.assertRaises(ValueError):
            reward_tier(0, 0)
        with self.assertRaises(ValueError):
            reward_tier(4, 3)
        with self.assertRaises(ValueError):
            reward_tier(-1, 3)


class TestCustomQuestionShapes(unittest.TestCase):
    """Sessions over questions with non-standard answer counts."""

    def test_two_answer_question(self):
        question = make_question("True or false: the sun is a star?", ["True", "False"], 0)
        session = QuizSession([question], 10)
        self.assertTrue(session.submit_answer(0).correct)

    def test_correct_answer_last(self):
        question = make_question("Pick D", ["A", "B", "C", "D"], 3)
        session = QuizSession([question], 10)
        self.assertFalse(session.submit_answer(0).correct)
        self.assertEqual(session.status().score, 0)


if __name__ == '__main__':
    unittest.main()
