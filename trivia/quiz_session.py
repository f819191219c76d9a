"""
Timed quiz session state machine.

A session walks an ordered list of questions under a single session-wide
countdown. Each question is answered in two phases: ``submit_answer`` locks
the question and scores it, ``advance`` (called by the host after its
feedback delay) moves on. Time expiry finishes the session wherever it
stands. Every operation is a synchronous in-memory mutation and returns an
immutable snapshot for the host to render.
"""
import logging
import time
from typing import List, Optional, Sequence

from .models import (
    AnswerOutcome,
    AnswerRecord,
    FinishReason,
    Question,
    QuizResult,
    RewardTier,
    SessionSnapshot,
    SessionStatus,
)

logger = logging.getLogger(__name__)

DEFAULT_SESSION_DURATION = 100


class QuizSessionError(Exception):
    """Base exception for quiz session errors."""
    pass


class InvalidInputError(QuizSessionError, ValueError):
    """Raised when a session is created with no questions or a bad duration."""
    pass


class OutOfRangeError(QuizSessionError, IndexError):
    """Raised when an answer index does not exist on the current question."""
    pass


class InvalidStateError(QuizSessionError):
    """Raised when an operation is not allowed in the current session state."""
    pass


def reward_tier(score: int, total: int) -> RewardTier:
    """
    Compute the reward tier for a final score.

    Args:
        score: Number of correct answers
        total: Number of questions in the session

    Returns:
        MASTER for a perfect score, GOOD for at least half, BEGINNER otherwise

    Raises:
        ValueError: If total is not positive or score is outside [0, total]
    """
    if total <= 0:
        raise ValueError("Total question count must be positive")
    if not 0 <= score <= total:
        raise ValueError(f"Score {score} is outside 0..{total}")

    if score == total:
        return RewardTier.MASTER
    if score >= total / 2:
        return RewardTier.GOOD
    return RewardTier.BEGINNER


class QuizSession:
    """One run through an ordered question set."""

    def __init__(self, questions: Sequence[Question], duration: int = DEFAULT_SESSION_DURATION):
        """
        Start a session in the RUNNING state.

        Args:
            questions: Ordered, non-empty question list; fixed for the session
            duration: Session-wide countdown in seconds

        Raises:
            InvalidInputError: If questions is empty or duration is not a positive integer
        """
        if not questions:
            raise InvalidInputError("Cannot start a session without questions")
        if not all(isinstance(q, Question) for q in questions):
            raise InvalidInputError("Session questions must be Question instances")
        if isinstance(duration, bool) or not isinstance(duration, int):
            raise InvalidInputError(
                f"Session duration must be an integer, got {type(duration).__name__}"
            )
        if duration <= 0:
            raise InvalidInputError(f"Session duration must be positive, got {duration}")

        self._questions: tuple = tuple(questions)
        self._duration = duration
        self._current_index = 0
        self._score = 0
        self._answered = False
        self._remaining_seconds = duration
        self._status = SessionStatus.RUNNING
        self._finish_reason: Optional[FinishReason] = None
        self._answers: List[AnswerRecord] = []
        self._result: Optional[QuizResult] = None

        logger.debug(
            f"Quiz session started with {len(self._questions)} questions, duration {duration}s",
            extra={
                'event_type': 'session_started',
                'total_questions': len(self._questions),
                'duration': duration,
                'timestamp': time.time()
            }
        )

    @classmethod
    def start(cls, questions: Sequence[Question], duration: int = DEFAULT_SESSION_DURATION) -> "QuizSession":
        """Create a running session. See ``QuizSession.__init__``."""
        return cls(questions, duration)

    # Queries

    @property
    def questions(self) -> tuple:
        return self._questions

    @property
    def duration(self) -> int:
        return self._duration

    @property
    def is_finished(self) -> bool:
        return self._status is SessionStatus.FINISHED

    @property
    def result(self) -> Optional[QuizResult]:
        """The final result, or None while the session is running."""
        return self._result

    def current_question(self) -> Question:
        """Return the question at the current position."""
        return self._questions[self._current_index]

    def status(self) -> SessionSnapshot:
        """Return an immutable snapshot of the session state."""
        return SessionSnapshot(
            status=self._status,
            remaining_seconds=self._remaining_seconds,
            duration=self._duration,
            score=self._score,
            current_index=self._current_index,
            total_questions=len(self._questions),
            answered=self._answered,
            finish_reason=self._finish_reason,
        )

    # Transitions

    def tick(self) -> SessionSnapshot:
        """
        Consume one second of the session clock.

        Reaching zero finishes the session immediately, even while an
        answered question is still showing feedback.
        """
        if self.is_finished:
            return self.status()

        self._remaining_seconds = max(0, self._remaining_seconds - 1)
        if self._remaining_seconds == 0:
            self._finish(FinishReason.TIMED_OUT)
        return self.status()

    def submit_answer(self, answer_index: int) -> AnswerOutcome:
        """
        Lock in an answer for the current question.

        Args:
            answer_index: Index into the current question's answers

        Returns:
            AnswerOutcome telling whether the answer was correct. Submissions
            on a locked question or a finished session are ignored and come
            back with ``accepted=False``.

        Raises:
            OutOfRangeError: If answer_index is not a valid answer index
        """
        if self.is_finished or self._answered:
            logger.debug(
                "Ignored answer submission on locked question",
                extra={
                    'event_type': 'answer_ignored',
                    'current_index': self._current_index,
                    'status': self._status.value,
                    'timestamp': time.time()
                }
            )
            return AnswerOutcome(correct=False, accepted=False, snapshot=self.status())

        question = self.current_question()
        if (isinstance(answer_index, bool) or not isinstance(answer_index, int)
                or not 0 <= answer_index < len(question.answers)):
            raise OutOfRangeError(
                f"Answer index {answer_index!r} is out of range for a question "
                f"with {len(question.answers)} answers"
            )

        correct = question.answers[answer_index].is_correct
        self._answered = True
        if correct:
            self._score += 1
        self._answers.append(AnswerRecord(self._current_index, answer_index, correct))

        logger.debug(
            f"Answer {answer_index} for question {self._current_index + 1} "
            f"{'correct' if correct else 'incorrect'}, score {self._score}",
            extra={
                'event_type': 'answer_submitted',
                'current_index': self._current_index,
                'answer_index': answer_index,
                'correct': correct,
                'score': self._score,
                'timestamp': time.time()
            }
        )
        return AnswerOutcome(
            correct=correct,
            accepted=True,
            snapshot=self.status(),
            correct_index=question.correct_index,
        )

    def advance(self) -> SessionSnapshot:
        """
        Move past the answered question.

        A finished session is left alone, so an advance scheduled before a
        timeout is harmless.

        Raises:
            InvalidStateError: If the current question has not been answered
        """
        if self.is_finished:
            return self.status()
        if not self._answered:
            raise InvalidStateError("Cannot advance before the current question is answered")

        if self._current_index + 1 < len(self._questions):
            self._current_index += 1
            self._answered = False
        else:
            self._finish(FinishReason.COMPLETED)
        return self.status()

    def finish(self) -> QuizResult:
        """
        Terminate the session and return its result.

        Idempotent: an already finished session returns its existing result.
        """
        if not self.is_finished:
            self._finish(FinishReason.CANCELLED)
        return self._result

    def _finish(self, reason: FinishReason) -> None:
        self._status = SessionStatus.FINISHED
        self._answered = False
        self._finish_reason = reason
        total = len(self._questions)
        self._result = QuizResult(
            score=self._score,
            total_questions=total,
            reward_tier=reward_tier(self._score, total),
            finish_reason=reason,
            answers=tuple(self._answers),
        )
        logger.info(
            f"Quiz session finished ({reason.value}): {self._score}/{total}",
            extra={
                'event_type': 'session_finished',
                'finish_reason': reason.value,
                'score': self._score,
                'total_questions': total,
                'remaining_seconds': self._remaining_seconds,
                'timestamp': time.time()
            }
        )
