"""
Quiz engine for the Trivia Quiz Bot.
Handles question selection, ordering, the session clock and the post-answer
feedback delay.
"""
import random
import asyncio
import logging
import time
from dataclasses import replace
from typing import Any, Awaitable, Callable, Dict, List, Optional

from .models import Question, QuizSettings

logger = logging.getLogger(__name__)


class SessionClockLog:
    """Structured log records for session clocks, keyed by channel."""

    @staticmethod
    def _emit(level: int, event_type: str, channel_id: str, message: str, **fields) -> None:
        fields.update(event_type=event_type, channel_id=channel_id, timestamp=time.time())
        logger.log(level, f"Session clock [{channel_id}] {message}", extra=fields)

    @staticmethod
    def started(channel_id: str, duration: int) -> None:
        SessionClockLog._emit(
            logging.INFO, 'clock_started', channel_id,
            f"started with {duration}s on the clock",
            duration=duration
        )

    @staticmethod
    def second_elapsed(channel_id: str, remaining: int, duration: int) -> None:
        """Debug record every ten seconds and for the final five."""
        if remaining % 10 and remaining > 5:
            return
        SessionClockLog._emit(
            logging.DEBUG, 'clock_tick', channel_id,
            f"{remaining}s of {duration}s left",
            remaining=remaining, duration=duration
        )

    @staticmethod
    def stopped(channel_id: str, how: str, duration: int) -> None:
        SessionClockLog._emit(
            logging.INFO, 'clock_stopped', channel_id,
            f"stopped ({how})",
            stop_reason=how, duration=duration
        )

    @staticmethod
    def cancel_requested(channel_id: str, task_cancelled: bool) -> None:
        SessionClockLog._emit(
            logging.DEBUG, 'clock_cancel_requested', channel_id,
            "cancel requested" + ("" if task_cancelled else " from inside its own task"),
            task_cancelled=task_cancelled
        )

    @staticmethod
    def failed(channel_id: str, where: str, error: BaseException) -> None:
        SessionClockLog._emit(
            logging.ERROR, 'clock_error', channel_id,
            f"failed in {where}: {error}",
            where=where, error=str(error)
        )

    @staticmethod
    def replaced(channel_id: str) -> None:
        SessionClockLog._emit(
            logging.WARNING, 'clock_replaced', channel_id,
            "was still running when a new one started; stopping the old clock"
        )


def _cancel_task(task: Optional[asyncio.Task]) -> bool:
    """
    Cancel a task unless it is the one currently running.

    A task cancelling itself would abort its own remaining awaits, so the
    caller relies on its cancelled flag instead.
    """
    if task is None or task.done():
        return False
    try:
        current = asyncio.current_task()
    except RuntimeError:
        current = None
    if task is current:
        return False
    task.cancel()
    return True


class QuizTimer:
    """Session-wide countdown that reports every elapsed second."""

    def __init__(self, channel_id: str = None):
        self.channel_id = channel_id
        self._task: Optional[asyncio.Task] = None
        self._seconds_left = 0
        self._duration = 0
        self._stopped = False

    async def start_countdown(
        self,
        duration: int,
        tick_callback: Callable[[int], Awaitable[Any]],
        completion_callback: Callable[[], Awaitable[Any]]
    ) -> None:
        """
        Count down one second at a time.

        Args:
            duration: Seconds on the clock
            tick_callback: Awaited with the seconds left after each second
            completion_callback: Awaited once the clock runs out without being cancelled
        """
        self._duration = duration
        self._seconds_left = duration
        self._stopped = False

        try:
            while self._seconds_left > 0:
                await asyncio.sleep(1)
                if self._stopped:
                    break
                self._seconds_left -= 1
                SessionClockLog.second_elapsed(self.channel_id, self._seconds_left, duration)
                await tick_callback(self._seconds_left)
                if self._stopped:
                    break
        except asyncio.CancelledError:
            self._stopped = True
            SessionClockLog.stopped(self.channel_id, "task cancelled", duration)
            raise
        except Exception as e:
            SessionClockLog.failed(self.channel_id, "countdown", e)
            raise

        if self._stopped:
            SessionClockLog.stopped(self.channel_id, "cancelled", duration)
            return

        SessionClockLog.stopped(self.channel_id, "expired", duration)
        await completion_callback()

    def cancel(self) -> None:
        """Stop the countdown; a cancelled clock never reports expiry."""
        self._stopped = True
        SessionClockLog.cancel_requested(self.channel_id, _cancel_task(self._task))

    @property
    def is_cancelled(self) -> bool:
        return self._stopped

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done() and not self._stopped

    @property
    def remaining_time(self) -> int:
        return self._seconds_left


class QuizEngine:
    """Question preparation plus the per-channel clock and feedback scheduler."""

    def __init__(self, rng: Optional[random.Random] = None):
        """
        Args:
            rng: Random source for shuffling; pass a seeded one for reproducible order
        """
        self._rng = rng or random.Random()
        self._timers: Dict[str, QuizTimer] = {}
        self._pending_advances: Dict[str, asyncio.Task] = {}

    # Question preparation

    def select_questions(self, questions: List[Question], settings: QuizSettings) -> List[Question]:
        """
        Build the ordered question list for one session.

        The input is never modified. Random order shuffles before the count
        limit is applied, so a limited random quiz draws from the whole pool.

        Raises:
            ValueError: If there are no questions to choose from
        """
        if not questions:
            raise ValueError("No questions to build a quiz from")

        chosen = list(questions)
        if settings.random_order:
            chosen = self.shuffle_questions(chosen)
        if settings.question_count is not None:
            chosen = self.limit_question_count(chosen, settings.question_count)
        return chosen

    def shuffle_questions(self, questions: List[Question]) -> List[Question]:
        shuffled = list(questions)
        self._rng.shuffle(shuffled)
        return shuffled

    def limit_question_count(self, questions: List[Question], count: int) -> List[Question]:
        """First ``count`` questions; all of them when there are fewer, none for ``count < 1``."""
        return questions[:count] if count >= 1 else []

    def shuffle_answers(self, question: Question) -> Question:
        """Return a copy of the question with its answers in random order."""
        answers = list(question.answers)
        self._rng.shuffle(answers)
        return replace(question, answers=tuple(answers))

    # Session clock

    def start_session_timer(
        self,
        channel_id: str,
        duration: int,
        tick_callback: Callable[[int], Awaitable[Any]],
        completion_callback: Callable[[], Awaitable[Any]]
    ) -> QuizTimer:
        """
        Start the session countdown for a channel as a background task.

        A clock still running for the channel is cancelled first.

        Returns:
            The running QuizTimer
        """
        previous = self._timers.get(channel_id)
        if previous is not None and previous.is_running:
            SessionClockLog.replaced(channel_id)
            self.cancel_timer(channel_id)

        timer = QuizTimer(channel_id)
        self._timers[channel_id] = timer
        timer._task = asyncio.create_task(
            timer.start_countdown(duration, tick_callback, completion_callback)
        )
        timer._task.add_done_callback(lambda task: self._forget_timer(channel_id, timer, task))
        SessionClockLog.started(channel_id, duration)
        return timer

    def _forget_timer(self, channel_id: str, timer: QuizTimer, task: asyncio.Task) -> None:
        if self._timers.get(channel_id) is timer:
            del self._timers[channel_id]
        if not task.cancelled() and task.exception() is not None:
            SessionClockLog.failed(channel_id, "timer task", task.exception())

    def cancel_timer(self, channel_id: str) -> bool:
        """
        Stop a channel's session clock.

        Returns:
            True if a clock was running, False otherwise
        """
        timer = self._timers.pop(channel_id, None)
        if timer is None:
            logger.debug(f"No session clock to cancel for channel {channel_id}")
            return False
        timer.cancel()
        return True

    def get_timer_status(self, channel_id: str) -> Optional[dict]:
        """Seconds left and cancelled flag of a channel's clock, or None."""
        timer = self._timers.get(channel_id)
        if timer is None:
            return None
        return {
            'remaining_time': timer.remaining_time,
            'is_cancelled': timer.is_cancelled
        }

    # Feedback delay

    def schedule_advance(
        self,
        channel_id: str,
        delay: float,
        callback: Callable[[], Awaitable[Any]]
    ) -> asyncio.Task:
        """
        Run ``callback`` once after the feedback delay.

        A previously scheduled advance for the channel is replaced.
        """
        self.cancel_scheduled_advance(channel_id)

        async def _delayed():
            await asyncio.sleep(delay)
            await callback()

        task = asyncio.create_task(_delayed())
        self._pending_advances[channel_id] = task

        def _cleanup(done: asyncio.Task) -> None:
            if self._pending_advances.get(channel_id) is done:
                del self._pending_advances[channel_id]
            if not done.cancelled() and done.exception() is not None:
                logger.error(
                    f"Scheduled advance failed for channel {channel_id}: {done.exception()}",
                    extra={
                        'event_type': 'advance_error',
                        'channel_id': channel_id,
                        'timestamp': time.time()
                    }
                )

        task.add_done_callback(_cleanup)
        logger.debug(
            f"Scheduled advance for channel {channel_id} in {delay:.1f}s",
            extra={
                'event_type': 'advance_scheduled',
                'channel_id': channel_id,
                'delay': delay,
                'timestamp': time.time()
            }
        )
        return task

    def cancel_scheduled_advance(self, channel_id: str) -> bool:
        """Cancel a pending advance. Returns True if one was pending."""
        task = self._pending_advances.pop(channel_id, None)
        if task is None:
            return False
        _cancel_task(task)
        return True

    def has_scheduled_advance(self, channel_id: str) -> bool:
        task = self._pending_advances.get(channel_id)
        return task is not None and not task.done()
