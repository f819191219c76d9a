"""
Core data models for the Trivia Quiz Bot.
"""
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional, Tuple


class Difficulty(Enum):
    """Question difficulty. CUSTOM marks user-authored questions."""
    EASY = "easy"
    MEDIUM = "medium"
    HARD = "hard"
    CUSTOM = "custom"

    @classmethod
    def parse(cls, value: str) -> "Difficulty":
        """Parse a difficulty name case-insensitively."""
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            raise ValueError(f"Unknown difficulty: {value}") from None


class SessionStatus(Enum):
    RUNNING = "running"
    FINISHED = "finished"


class FinishReason(Enum):
    """Why a session reached FINISHED."""
    COMPLETED = "completed"
    TIMED_OUT = "timed_out"
    CANCELLED = "cancelled"


class RewardTier(Enum):
    BEGINNER = "beginner"
    GOOD = "good"
    MASTER = "master"


@dataclass(frozen=True)
class Answer:
    """A single answer option."""
    text: str
    is_correct: bool = False


@dataclass(frozen=True)
class Question:
    """Represents a single multiple-choice quiz question."""
    text: str
    answers: Tuple[Answer, ...]
    category: str
    difficulty: Difficulty
    explanation: Optional[str] = None

    def __post_init__(self):
        # Accept any sequence of answers but store a tuple
        object.__setattr__(self, "answers", tuple(self.answers))
        if not isinstance(self.difficulty, Difficulty):
            object.__setattr__(self, "difficulty", Difficulty.parse(self.difficulty))

        if not self.text or not self.text.strip():
            raise ValueError("Question text cannot be empty")
        if len(self.answers) < 2:
            raise ValueError("A question needs at least two answers")
        correct_count = sum(1 for answer in self.answers if answer.is_correct)
        if correct_count != 1:
            raise ValueError(
                f"A question must have exactly one correct answer, found {correct_count}"
            )

    @property
    def correct_index(self) -> int:
        """Index of the correct answer in display order."""
        return next(i for i, answer in enumerate(self.answers) if answer.is_correct)

    @property
    def correct_answer(self) -> Answer:
        return self.answers[self.correct_index]


@dataclass
class QuizSettings:
    """Configuration settings for a quiz session."""
    question_count: Optional[int] = 10
    random_order: bool = False
    session_duration: int = 100
    feedback_delay: float = 2.0


@dataclass(frozen=True)
class AnswerRecord:
    """One locked-in answer of a session."""
    question_index: int
    answer_index: int
    correct: bool


@dataclass(frozen=True)
class SessionSnapshot:
    """Immutable view of a quiz session after an operation."""
    status: SessionStatus
    remaining_seconds: int
    duration: int
    score: int
    current_index: int
    total_questions: int
    answered: bool
    finish_reason: Optional[FinishReason] = None

    @property
    def is_running(self) -> bool:
        return self.status is SessionStatus.RUNNING

    @property
    def question_number(self) -> int:
        """1-based position of the current question, clamped to the total."""
        return min(self.current_index + 1, self.total_questions)


@dataclass(frozen=True)
class AnswerOutcome:
    """
    Result of submitting an answer.

    ``accepted`` is False when the submission was ignored because the
    question was already locked or the session had finished; ``correct`` is
    then always False.
    """
    correct: bool
    accepted: bool
    snapshot: SessionSnapshot
    correct_index: Optional[int] = None


@dataclass(frozen=True)
class QuizResult:
    """Final outcome of a finished session."""
    score: int
    total_questions: int
    reward_tier: RewardTier
    finish_reason: FinishReason
    answers: Tuple[AnswerRecord, ...] = ()

    @property
    def is_perfect(self) -> bool:
        return self.score == self.total_questions


@dataclass(frozen=True)
class LeaderboardEntry:
    user_id: str
    name: str
    score: int


@dataclass(frozen=True)
class Achievement:
    """An unlockable achievement with a progress target."""
    id: str
    title: str
    description: str
    target_value: int


ACHIEVEMENTS: List[Achievement] = [
    Achievement(
        id="quiz_whiz",
        title="Quiz Whiz",
        description="Complete 5 quizzes",
        target_value=5,
    ),
    Achievement(
        id="perfectionist",
        title="Perfectionist",
        description="Get a perfect score",
        target_value=1,
    ),
]


@dataclass
class UserProfile:
    """Stored profile of a player."""
    user_id: str
    name: str
    is_teacher: bool = False
    last_score: int = 0
    highest_score: int = 0
    quizzes_completed: int = 0
    achievement_progress: dict = field(default_factory=dict)
