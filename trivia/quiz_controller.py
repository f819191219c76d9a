"""
Quiz session controller for the Trivia Quiz Bot.
Manages active quiz sessions, their clocks and result recording per Discord channel.
"""
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, List, Optional

from .config_manager import ConfigManager
from .data_manager import DataManager
from .models import FinishReason, Question, QuizResult, QuizSettings, SessionSnapshot
from .profile_store import ProfileManager, ProfileUpdate
from .quiz_engine import QuizEngine
from .quiz_session import OutOfRangeError, QuizSession, QuizSessionError

TickCallback = Callable[[SessionSnapshot], Awaitable[Any]]
QuestionCallback = Callable[[SessionSnapshot, Question], Awaitable[Any]]
FinishedCallback = Callable[[QuizResult, Optional[ProfileUpdate]], Awaitable[Any]]


class QuizControllerError(Exception):
    """Base exception for quiz controller errors."""
    pass


class SessionConflictError(QuizControllerError):
    """Raised when attempting to create a session that conflicts with existing session."""
    pass


class SessionNotFoundError(QuizControllerError):
    """Raised when attempting to operate on a non-existent session."""
    pass


class NotSessionOwnerError(QuizControllerError):
    """Raised when a player acts on a session somebody else started."""
    pass


@dataclass
class ChannelSession:
    """A running quiz session bound to a channel and the player who started it."""
    channel_id: str
    player_id: str
    player_name: str
    session: QuizSession
    settings: QuizSettings
    label: str = "Trivia"
    on_tick: Optional[TickCallback] = None
    on_question: Optional[QuestionCallback] = None
    on_finished: Optional[FinishedCallback] = None
    started_at: float = field(default_factory=time.time)


class QuizController:
    """
    Orchestrates quiz sessions across Discord channels.

    Each channel can have at most one running session. The controller owns
    the host side of a session: it starts the session clock, feeds ticks
    into the session, schedules the advance after answer feedback and, once
    the session finishes, records the result and tears everything down.
    """

    def __init__(
        self,
        data_manager: DataManager,
        config_manager: ConfigManager,
        profile_manager: ProfileManager,
        quiz_engine: Optional[QuizEngine] = None
    ):
        """
        Initialize the quiz controller.

        Args:
            data_manager: Instance for loading quiz data
            config_manager: Instance for managing configuration
            profile_manager: Instance for recording results
            quiz_engine: Question selection and timing, created when omitted
        """
        self.logger = logging.getLogger(__name__)
        self.data_manager = data_manager
        self.config_manager = config_manager
        self.profile_manager = profile_manager
        self.quiz_engine = quiz_engine or QuizEngine()

        # Active sessions mapped by channel ID
        self._active_sessions: Dict[str, ChannelSession] = {}

        self.logger.info("QuizController initialized")

    def has_active_session(self, channel_id) -> bool:
        """
        Check if a channel has a running quiz session.

        Args:
            channel_id: Discord channel identifier
        """
        active = self._active_sessions.get(str(channel_id))
        return active is not None and not active.session.is_finished

    def get_session(self, channel_id) -> Optional[ChannelSession]:
        return self._active_sessions.get(str(channel_id))

    def _require_session(self, channel_id: str) -> ChannelSession:
        active = self._active_sessions.get(channel_id)
        if active is None:
            raise SessionNotFoundError(f"No active quiz in channel {channel_id}")
        return active

    def start_quiz(
        self,
        channel_id,
        player_id,
        player_name: str,
        questions: List[Question],
        settings: Optional[QuizSettings] = None,
        on_tick: Optional[TickCallback] = None,
        on_question: Optional[QuestionCallback] = None,
        on_finished: Optional[FinishedCallback] = None,
        label: str = "Trivia"
    ) -> Dict[str, Any]:
        """
        Start a new quiz session and its session clock.

        Must be called from a running event loop.

        Args:
            channel_id: Discord channel identifier
            player_id: The player who owns the session
            player_name: Display name recorded with the result
            questions: Candidate questions; selection and ordering follow the settings
            settings: Optional quiz settings, uses global config if None
            on_tick: Awaited with a snapshot after every second
            on_question: Awaited with a snapshot and the new question after each advance
            on_finished: Awaited with the result and profile update when the session ends
            label: Title shown for the quiz

        Returns:
            Dictionary with operation result, the first question and a snapshot
        """
        channel_id = str(channel_id)
        try:
            if self.has_active_session(channel_id):
                raise SessionConflictError(f"Quiz already running in channel {channel_id}")

            if settings is None:
                settings = self.config_manager.get_quiz_settings()

            selected = self.quiz_engine.select_questions(questions, settings)
            if not selected:
                raise ValueError("No questions available after applying settings")

            session = QuizSession.start(selected, settings.session_duration)
        except (QuizControllerError, ValueError) as e:
            return self._handle_error(channel_id, e, "start_quiz")

        active = ChannelSession(
            channel_id=channel_id,
            player_id=str(player_id),
            player_name=player_name,
            session=session,
            settings=settings,
            label=label,
            on_tick=on_tick,
            on_question=on_question,
            on_finished=on_finished,
        )
        self._active_sessions[channel_id] = active

        self.quiz_engine.start_session_timer(
            channel_id,
            settings.session_duration,
            lambda remaining: self.handle_tick(channel_id),
            lambda: self._handle_timer_expired(channel_id)
        )

        self.logger.info(
            f"Started quiz '{label}' for channel {channel_id}: "
            f"player={player_id}, questions={len(selected)}, duration={settings.session_duration}s",
            extra={
                'event_type': 'quiz_started',
                'channel_id': channel_id,
                'player_id': str(player_id),
                'total_questions': len(selected),
                'timestamp': time.time()
            }
        )
        return {
            'success': True,
            'message': f"Started quiz '{label}' with {len(selected)} questions.",
            'question': session.current_question(),
            'snapshot': session.status(),
            'session_info': self.get_session_progress(channel_id)
        }

    def submit_answer(self, channel_id, player_id, answer_index: int) -> Dict[str, Any]:
        """
        Submit the owner's answer for the current question.

        An accepted answer schedules the advance after the feedback delay.

        Returns:
            Dictionary with ``correct``, ``accepted``, ``snapshot`` and the
            answered question on success
        """
        channel_id = str(channel_id)
        try:
            active = self._require_session(channel_id)
            if str(player_id) != active.player_id:
                raise NotSessionOwnerError(
                    f"Player {player_id} does not own the quiz in channel {channel_id}"
                )
            question = active.session.current_question()
            outcome = active.session.submit_answer(answer_index)
        except (QuizControllerError, OutOfRangeError) as e:
            return self._handle_error(channel_id, e, "submit_answer")

        if outcome.accepted:
            self.quiz_engine.schedule_advance(
                channel_id,
                active.settings.feedback_delay,
                lambda: self.handle_advance(channel_id)
            )

        return {
            'success': True,
            'accepted': outcome.accepted,
            'correct': outcome.correct,
            'correct_index': outcome.correct_index,
            'snapshot': outcome.snapshot,
            'question': question
        }

    async def handle_tick(self, channel_id) -> Optional[SessionSnapshot]:
        """Feed one elapsed second into the channel's session."""
        active = self._active_sessions.get(str(channel_id))
        if active is None:
            return None

        snapshot = active.session.tick()
        if active.session.is_finished:
            await self._finalize(active)
        elif active.on_tick is not None:
            await self._notify_host(active, "on_tick", active.on_tick, snapshot)
        return snapshot

    async def _handle_timer_expired(self, channel_id: str) -> None:
        # The final tick normally finishes the session first
        active = self._active_sessions.get(channel_id)
        if active is not None:
            self.logger.warning(f"Timer expired with session still registered for channel {channel_id}")
            active.session.finish()
            await self._finalize(active)

    async def handle_advance(self, channel_id) -> Optional[SessionSnapshot]:
        """Move the channel's session past the answered question."""
        active = self._active_sessions.get(str(channel_id))
        if active is None:
            return None

        try:
            snapshot = active.session.advance()
        except QuizSessionError as e:
            self.logger.error(f"Advance rejected for channel {channel_id}: {e}")
            return active.session.status()

        if active.session.is_finished:
            await self._finalize(active)
        elif active.on_question is not None:
            await self._notify_host(
                active, "on_question", active.on_question, snapshot, active.session.current_question()
            )
        return snapshot

    async def stop_quiz(self, channel_id, player_id=None) -> Dict[str, Any]:
        """
        Cancel a running quiz.

        Args:
            channel_id: Discord channel identifier
            player_id: When given, only the session owner may stop it

        Returns:
            Dictionary with operation result and the final QuizResult
        """
        channel_id = str(channel_id)
        try:
            active = self._require_session(channel_id)
            if player_id is not None and str(player_id) != active.player_id:
                raise NotSessionOwnerError(
                    f"Player {player_id} does not own the quiz in channel {channel_id}"
                )
        except QuizControllerError as e:
            return self._handle_error(channel_id, e, "stop_quiz")

        session_info = self.get_session_progress(channel_id)
        result = active.session.finish()
        await self._finalize(active)
        return {
            'success': True,
            'message': "Quiz stopped successfully",
            'result': result,
            'session_info': session_info
        }

    async def _finalize(self, active: ChannelSession) -> None:
        """Tear down a finished session, record its result and notify the host."""
        channel_id = active.channel_id
        if self._active_sessions.get(channel_id) is not active:
            return
        del self._active_sessions[channel_id]

        timer_cancelled = self.quiz_engine.cancel_timer(channel_id)
        advance_cancelled = self.quiz_engine.cancel_scheduled_advance(channel_id)

        result = active.session.result
        profile_update = None
        # Abandoned sessions are not scored
        if result.finish_reason is not FinishReason.CANCELLED:
            try:
                profile_update = self.profile_manager.record_result(
                    active.player_id, active.player_name, result
                )
            except OSError as e:
                self.logger.error(f"Failed to record result for player {active.player_id}: {e}")

        self.logger.info(
            f"Quiz finished for channel {channel_id} ({result.finish_reason.value}): "
            f"{result.score}/{result.total_questions}",
            extra={
                'event_type': 'quiz_finished',
                'channel_id': channel_id,
                'finish_reason': result.finish_reason.value,
                'score': result.score,
                'timer_cancelled': timer_cancelled,
                'advance_cancelled': advance_cancelled,
                'timestamp': time.time()
            }
        )

        if active.on_finished is not None:
            await self._notify_host(active, "on_finished", active.on_finished, result, profile_update)

    async def _notify_host(self, active: ChannelSession, name: str, callback, *args) -> None:
        # A failing display callback must not stop the session clock
        try:
            await callback(*args)
        except Exception as e:
            self.logger.error(
                f"{name} callback failed for channel {active.channel_id}: {e}",
                exc_info=e,
                extra={
                    "event_type": "host_callback_failed",
                    "channel_id": active.channel_id,
                    "callback": name,
                    "timestamp": time.time()
                }
            )

    def get_session_progress(self, channel_id) -> Optional[Dict[str, Any]]:
        """
        Get progress information for an active session.

        Returns:
            Dictionary with progress info, None if no active session
        """
        active = self._active_sessions.get(str(channel_id))
        if active is None:
            return None

        snapshot = active.session.status()
        return {
            'label': active.label,
            'player_id': active.player_id,
            'player_name': active.player_name,
            'current_question': snapshot.question_number,
            'total_questions': snapshot.total_questions,
            'score': snapshot.score,
            'remaining_seconds': snapshot.remaining_seconds,
            'answered': snapshot.answered,
            'status': snapshot.status.value,
            'started_at': active.started_at,
            'settings': {
                'question_count': active.settings.question_count,
                'random_order': active.settings.random_order,
                'session_duration': active.settings.session_duration,
                'feedback_delay': active.settings.feedback_delay
            }
        }

    def _handle_error(self, channel_id: str, error: Exception, operation: str) -> Dict[str, Any]:
        """
        Log a failed operation and build the error result for the caller.

        Returns:
            Dictionary with error details and a user-facing message
        """
        self.logger.warning(f"Error in {operation} for channel {channel_id}: {error}")
        return {
            'success': False,
            'error': str(error),
            'operation': operation,
            'user_message': self._get_user_friendly_error_message(error, operation)
        }

    def _get_user_friendly_error_message(self, error: Exception, operation: str) -> str:
        if isinstance(error, SessionConflictError):
            return "❌ A quiz is already running in this channel. Please stop it first with `/stop`."

        elif isinstance(error, SessionNotFoundError):
            return "❌ No active quiz found in this channel. Start a quiz with `/trivia`."

        elif isinstance(error, NotSessionOwnerError):
            return "❌ This quiz belongs to another player."

        elif isinstance(error, OutOfRangeError):
            return "❌ That answer number does not exist for this question."

        elif "question" in str(error).lower():
            return "❌ Error loading quiz questions. Please try a different category."

        else:
            return f"❌ An unexpected error occurred during {operation}. Please try again."
