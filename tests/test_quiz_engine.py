"""
Unit tests for the QuizEngine class.
"""
import unittest
import asyncio
import random
from unittest.mock import AsyncMock

from trivia.quiz_engine import QuizEngine, QuizTimer
from trivia.models import QuizSettings
from tests.test_fixtures import TestFixtures, AsyncTestHelpers, async_test


class TestQuizEngine(unittest.TestCase):
    """Test cases for QuizEngine question selection and ordering."""

    def setUp(self):
        """Set up test fixtures."""
        self.engine = QuizEngine(rng=random.Random(42))
        self.sample_questions = TestFixtures.create_sample_questions()

    def test_select_questions_default_settings(self):
        """Default settings keep file order and allow up to ten questions."""
        result = self.engine.select_questions(self.sample_questions, QuizSettings())

        self.assertEqual(result, self.sample_questions)

    def test_select_questions_with_count_limit(self):
        settings = QuizSettings(question_count=3)
        result = self.engine.select_questions(self.sample_questions, settings)

        self.assertEqual(result, self.sample_questions[:3])

    def test_select_questions_with_random_order(self):
        settings = QuizSettings(random_order=True)
        result = self.engine.select_questions(self.sample_questions, settings)

        self.assertEqual(len(result), 5)
        self.assertEqual(set(q.text for q in result), set(q.text for q in self.sample_questions))

    def test_select_questions_random_with_count(self):
        settings = QuizSettings(random_order=True, question_count=2)
        result = self.engine.select_questions(self.sample_questions, settings)

        self.assertEqual(len(result), 2)
        for question in result:
            self.assertIn(question, self.sample_questions)

    def test_select_questions_does_not_modify_input(self):
        original = list(self.sample_questions)
        self.engine.select_questions(self.sample_questions, QuizSettings(random_order=True))

        self.assertEqual(self.sample_questions, original)

    def test_select_questions_empty_list(self):
        with self.assertRaises(ValueError):
            self.engine.select_questions([], QuizSettings())

    def test_select_questions_no_count_limit(self):
        settings = QuizSettings(question_count=None)
        result = self.engine.select_questions(self.sample_questions, settings)

        self.assertEqual(len(result), 5)

    def test_shuffle_is_reproducible_with_seed(self):
        first = QuizEngine(rng=random.Random(7)).shuffle_questions(self.sample_questions)
        second = QuizEngine(rng=random.Random(7)).shuffle_questions(self.sample_questions)

        self.assertEqual(first, second)

    def test_limit_question_count(self):
        self.assertEqual(len(self.engine.limit_question_count(self.sample_questions, 10)), 5)
        self.assertEqual(self.engine.limit_question_count(self.sample_questions, 0), [])
        self.assertEqual(self.engine.limit_question_count(self.sample_questions, 2), self.sample_questions[:2])

    def test_shuffle_answers_keeps_correct_answer(self):
        question = self.sample_questions[0]
        for _ in range(10):
            shuffled = self.engine.shuffle_answers(question)
            self.assertEqual(shuffled.correct_answer.text, question.correct_answer.text)
            self.assertEqual(sorted(a.text for a in shuffled.answers), sorted(a.text for a in question.answers))
            self.assertEqual(shuffled.text, question.text)


class TestSessionTimer(unittest.TestCase):
    """Test cases for the per-channel session clock."""

    def setUp(self):
        self.engine = QuizEngine()
        self.channel_id = "12345"

    @async_test
    async def test_start_session_timer_returns_running_timer(self):
        tick = AsyncMock()
        complete = AsyncMock()
        timer = self.engine.start_session_timer(self.channel_id, 100, tick, complete)

        self.assertIsInstance(timer, QuizTimer)
        self.assertTrue(timer.is_running)
        self.assertEqual(self.engine.get_timer_status(self.channel_id), {
            'remaining_time': 0,
            'is_cancelled': False
        })

        await AsyncTestHelpers.drain()
        self.assertEqual(timer.remaining_time, 100)
        self.assertTrue(self.engine.cancel_timer(self.channel_id))
        with self.assertRaises(asyncio.CancelledError):
            await timer._task
        complete.assert_not_called()

    @async_test
    async def test_timer_runs_to_completion(self):
        ticks = []

        async def on_tick(remaining):
            ticks.append(remaining)

        complete = AsyncMock()
        timer = self.engine.start_session_timer(self.channel_id, 1, on_tick, complete)
        await AsyncTestHelpers.run_with_timeout(timer._task, timeout=3)

        self.assertEqual(ticks, [0])
        complete.assert_awaited_once()
        await AsyncTestHelpers.drain()
        self.assertIsNone(self.engine.get_timer_status(self.channel_id))

    @async_test
    async def test_starting_new_timer_cancels_existing(self):
        first = self.engine.start_session_timer(self.channel_id, 100, AsyncMock(), AsyncMock())
        await AsyncTestHelpers.drain()
        second = self.engine.start_session_timer(self.channel_id, 100, AsyncMock(), AsyncMock())

        self.assertTrue(first.is_cancelled)
        self.assertFalse(second.is_cancelled)
        self.engine.cancel_timer(self.channel_id)
        await asyncio.gather(first._task, second._task, return_exceptions=True)

    @async_test
    async def test_timers_are_isolated_per_channel(self):
        a = self.engine.start_session_timer("a", 100, AsyncMock(), AsyncMock())
        b = self.engine.start_session_timer("b", 100, AsyncMock(), AsyncMock())
        await AsyncTestHelpers.drain()

        self.engine.cancel_timer("a")
        self.assertTrue(a.is_cancelled)
        self.assertTrue(b.is_running)

        self.engine.cancel_timer("b")
        await asyncio.gather(a._task, b._task, return_exceptions=True)

    def test_cancel_timer_without_timer(self):
        self.assertFalse(self.engine.cancel_timer(self.channel_id))
        self.assertIsNone(self.engine.get_timer_status(self.channel_id))


class TestScheduledAdvance(unittest.TestCase):
    """Test cases for the post-answer feedback delay."""

    def setUp(self):
        self.engine = QuizEngine()
        self.channel_id = "12345"

    @async_test
    async def test_advance_runs_after_delay(self):
        callback = AsyncMock()
        task = self.engine.schedule_advance(self.channel_id, 0.01, callback)

        self.assertTrue(self.engine.has_scheduled_advance(self.channel_id))
        await AsyncTestHelpers.run_with_timeout(task)

        callback.assert_awaited_once()
        await AsyncTestHelpers.drain()
        self.assertFalse(self.engine.has_scheduled_advance(self.channel_id))

    @async_test
    async def test_cancel_scheduled_advance(self):
        callback = AsyncMock()
        task = self.engine.schedule_advance(self.channel_id, 10, callback)

        self.assertTrue(self.engine.cancel_scheduled_advance(self.channel_id))
        with self.assertRaises(asyncio.CancelledError):
            await task
        callback.assert_not_called()
        self.assertFalse(self.engine.cancel_scheduled_advance(self.channel_id))

    @async_test
    async def test_new_advance_replaces_pending_one(self):
        first_callback = AsyncMock()
        second_callback = AsyncMock()
        first = self.engine.schedule_advance(self.channel_id, 10, first_callback)
        second = self.engine.schedule_advance(self.channel_id, 0.01, second_callback)

        await AsyncTestHelpers.run_with_timeout(second)
        self.assertTrue(first.cancelled())
        first_callback.assert_not_called()
        second_callback.assert_awaited_once()

    @async_test
    async def test_advance_can_cancel_itself(self):
        """A callback that cancels its own advance keeps running to the end."""
        reached_end = []

        async def callback():
            self.engine.cancel_scheduled_advance(self.channel_id)
            await asyncio.sleep(0)
            reached_end.append(True)

        task = self.engine.schedule_advance(self.channel_id, 0, callback)
        await AsyncTestHelpers.run_with_timeout(task)

        self.assertEqual(reached_end, [True])
        self.assertFalse(task.cancelled())


if __name__ == '__main__':
    unittest.main()
