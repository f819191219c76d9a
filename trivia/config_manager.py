"""
Runtime quiz settings for the Trivia Quiz Bot.

Values start from the class defaults, can be overridden by the ``quiz`` and
``ollama`` sections of config.json, and are changed at runtime through the
slash commands. Every setter validates its input and answers with the usual
result dictionary instead of raising.
"""
import logging
from typing import Optional, Dict, Any, List
from pathlib import Path
import os

from .models import QuizSettings
from .question_generator import DEFAULT_MODEL

# Paths a quiz catalog must never be read from
_PROTECTED_PREFIXES = ('/bin', '/usr', '/etc', '/sys', '/proc', 'C:\\Windows', 'C:\\Program Files')


class ConfigManager:
    """Holds the global quiz settings shared by every channel."""

    DEFAULT_QUESTION_COUNT = 10
    DEFAULT_RANDOM_ORDER = False
    DEFAULT_SESSION_DURATION = 100
    DEFAULT_FEEDBACK_DELAY = 2.0
    DEFAULT_QUIZ_DIRECTORY = "./quizzes/"
    DEFAULT_DATA_FILE = "./data/profiles.json"
    DEFAULT_USER_QUIZ_FILE = "./data/user_quizzes.json"

    MIN_SESSION_DURATION = 10
    MAX_SESSION_DURATION = 600
    MIN_QUESTION_COUNT = 1
    MAX_QUESTION_COUNT = 50
    MIN_FEEDBACK_DELAY = 0.5
    MAX_FEEDBACK_DELAY = 10.0

    def __init__(self):
        self.logger = logging.getLogger(__name__)
        self._global_settings = self._default_settings()
        self._quiz_directory = self.DEFAULT_QUIZ_DIRECTORY
        self._data_file = self.DEFAULT_DATA_FILE
        self._user_quiz_file = self.DEFAULT_USER_QUIZ_FILE
        self._ollama_model = DEFAULT_MODEL
        self._ollama_host: Optional[str] = None

    def _default_settings(self) -> QuizSettings:
        return QuizSettings(
            question_count=self.DEFAULT_QUESTION_COUNT,
            random_order=self.DEFAULT_RANDOM_ORDER,
            session_duration=self.DEFAULT_SESSION_DURATION,
            feedback_delay=self.DEFAULT_FEEDBACK_DELAY
        )

    # Result helpers

    def _rejected(self, error: str, user_message: str) -> Dict[str, Any]:
        self.logger.error(error)
        return {'success': False, 'error': error, 'user_message': user_message}

    def _accepted(self, message: str, user_message: str) -> Dict[str, Any]:
        self.logger.info(message)
        return {'success': True, 'message': message, 'user_message': user_message}

    def _check_whole_number(self, label: str, value, low: int, high: int,
                            too_low: str, too_high: str) -> Optional[Dict[str, Any]]:
        """Rejection result for a non-int or out-of-range value, None when it is fine."""
        # bool is an int subclass but never a valid count
        if isinstance(value, bool) or not isinstance(value, int):
            kind = type(value).__name__
            return self._rejected(
                f"{label} must be an integer, got {kind}",
                f"❌ Invalid input: Expected a number, got {kind}"
            )
        if value < low:
            return self._rejected(f"{label} below minimum {low}: {value}", too_low)
        if value > high:
            return self._rejected(f"{label} above maximum {high}: {value}", too_high)
        return None

    # Quiz settings

    def get_quiz_settings(self) -> QuizSettings:
        """Copy of the current settings; changing it does not affect the manager."""
        current = self._global_settings
        return QuizSettings(
            question_count=current.question_count,
            random_order=current.random_order,
            session_duration=current.session_duration,
            feedback_delay=current.feedback_delay
        )

    def set_question_count(self, count: int) -> Dict[str, Any]:
        """Number of questions drawn for each new quiz (1-50)."""
        rejection = self._check_whole_number(
            "Question count", count, self.MIN_QUESTION_COUNT, self.MAX_QUESTION_COUNT,
            f"❌ A quiz needs at least {self.MIN_QUESTION_COUNT} question",
            f"❌ A quiz can have at most {self.MAX_QUESTION_COUNT} questions"
        )
        if rejection:
            return rejection

        self._global_settings.question_count = count
        return self._accepted(
            f"Question count changed to {count}",
            f"✅ New quizzes will ask {count} questions"
        )

    def get_question_count(self) -> Optional[int]:
        return self._global_settings.question_count

    def set_random_order(self, random_order: bool) -> Dict[str, Any]:
        if not isinstance(random_order, bool):
            kind = type(random_order).__name__
            return self._rejected(
                f"Random order flag must be a bool, got {kind}",
                f"❌ Invalid input: Expected true/false, got {kind}"
            )

        self._global_settings.random_order = random_order
        order = "shuffled" if random_order else "file"
        return self._accepted(
            f"Question order changed to {order} order",
            f"✅ Questions will be asked in {order} order"
        )

    def get_random_order(self) -> bool:
        return self._global_settings.random_order

    def toggle_random_order(self) -> Dict[str, Any]:
        """Flip the random order flag; the result carries ``new_value``."""
        flipped = not self._global_settings.random_order
        result = self.set_random_order(flipped)
        result['new_value'] = flipped
        return result

    def set_session_duration(self, duration: int) -> Dict[str, Any]:
        """
        Set the single countdown that covers a whole quiz.

        Args:
            duration: Whole seconds, between 10 and 600
        """
        rejection = self._check_whole_number(
            "Session duration", duration, self.MIN_SESSION_DURATION, self.MAX_SESSION_DURATION,
            f"❌ The timer must run for at least {self.MIN_SESSION_DURATION} seconds",
            f"❌ The timer can run for at most {self.MAX_SESSION_DURATION} seconds "
            f"({self.MAX_SESSION_DURATION // 60} minutes)"
        )
        if rejection:
            return rejection

        self._global_settings.session_duration = duration
        return self._accepted(
            f"Session duration changed to {duration}s",
            f"✅ Each quiz now has {duration} seconds on the clock"
        )

    def get_session_duration(self) -> int:
        return self._global_settings.session_duration

    def set_feedback_delay(self, delay: float) -> Dict[str, Any]:
        """Pause between answering and the next question, in seconds."""
        if isinstance(delay, bool) or not isinstance(delay, (int, float)):
            kind = type(delay).__name__
            return self._rejected(
                f"Feedback delay must be a number, got {kind}",
                f"❌ Invalid input: Expected a number, got {kind}"
            )
        if not self.MIN_FEEDBACK_DELAY <= delay <= self.MAX_FEEDBACK_DELAY:
            bounds = f"{self.MIN_FEEDBACK_DELAY}-{self.MAX_FEEDBACK_DELAY} seconds"
            return self._rejected(
                f"Feedback delay {delay} outside {bounds}",
                f"❌ Feedback delay must be within {bounds}"
            )

        self._global_settings.feedback_delay = float(delay)
        return self._accepted(
            f"Feedback delay changed to {delay}s",
            f"✅ Answer feedback now stays up for {delay} seconds"
        )

    def get_feedback_delay(self) -> float:
        return self._global_settings.feedback_delay

    # Paths and generator settings

    def set_quiz_directory(self, directory: str) -> Dict[str, Any]:
        """Point the bundled catalog at another directory; system paths are refused."""
        if not isinstance(directory, str):
            kind = type(directory).__name__
            return self._rejected(
                f"Quiz directory must be a str, got {kind}",
                f"❌ Invalid input: Expected a path string, got {kind}"
            )
        if not directory.strip():
            return self._rejected("Empty quiz directory", "❌ Directory path cannot be empty")

        try:
            resolved = str(Path(directory).resolve())
        except (OSError, ValueError) as e:
            return self._rejected(
                f"Unusable quiz directory {directory!r}: {e}",
                f"❌ Invalid path format: {directory}"
            )

        if resolved.startswith(_PROTECTED_PREFIXES):
            return self._rejected(
                f"Refusing system directory as quiz directory: {resolved}",
                f"❌ Cannot use system directory: {directory}"
            )

        self._quiz_directory = resolved
        return self._accepted(
            f"Quiz directory changed to {resolved}",
            f"✅ Quizzes will be loaded from {resolved}"
        )

    def get_quiz_directory(self) -> str:
        return self._quiz_directory

    def get_data_file(self) -> str:
        return self._data_file

    def get_user_quiz_file(self) -> str:
        return self._user_quiz_file

    def get_ollama_model(self) -> str:
        return self._ollama_model

    def get_ollama_host(self) -> Optional[str]:
        return self._ollama_host

    def apply_config(self, config: Dict[str, Any]) -> List[str]:
        """
        Apply the ``quiz`` and ``ollama`` sections of a loaded config file.

        Each value goes through its setter, so anything invalid is skipped and
        the default stays in place.

        Returns:
            One ``"key: error"`` entry per rejected value
        """
        quiz_section = config.get('quiz') or {}
        setters = {
            'quiz_directory': self.set_quiz_directory,
            'default_question_count': self.set_question_count,
            'default_random_order': self.set_random_order,
            'session_duration': self.set_session_duration,
            'feedback_delay': self.set_feedback_delay,
        }

        errors: List[str] = []
        for key, setter in setters.items():
            if key not in quiz_section:
                continue
            outcome = setter(quiz_section[key])
            if not outcome['success']:
                errors.append(f"{key}: {outcome['error']}")

        if quiz_section.get('data_file'):
            self._data_file = str(quiz_section['data_file'])
        if quiz_section.get('user_quiz_file'):
            self._user_quiz_file = str(quiz_section['user_quiz_file'])

        ollama_section = config.get('ollama') or {}
        if ollama_section.get('model'):
            self._ollama_model = str(ollama_section['model'])
        if ollama_section.get('host'):
            self._ollama_host = str(ollama_section['host'])

        if errors:
            self.logger.warning(f"Ignored {len(errors)} invalid config value(s): {'; '.join(errors)}")
        else:
            self.logger.info("Config file applied")
        return errors

    # Reporting

    def validate_settings(self) -> Dict[str, Any]:
        """
        Re-check the stored values against the limits.

        Returns:
            ``{'valid': bool, 'issues': [str, ...]}``
        """
        current = self._global_settings
        issues = []

        def whole_in(value, low, high):
            return isinstance(value, int) and not isinstance(value, bool) and low <= value <= high

        if not whole_in(current.question_count, self.MIN_QUESTION_COUNT, self.MAX_QUESTION_COUNT):
            issues.append(f"Invalid question count: {current.question_count}")
        if not isinstance(current.random_order, bool):
            issues.append(f"Invalid random order setting: {current.random_order}")
        if not whole_in(current.session_duration, self.MIN_SESSION_DURATION, self.MAX_SESSION_DURATION):
            issues.append(f"Invalid session duration: {current.session_duration}")
        if not self.MIN_FEEDBACK_DELAY <= current.feedback_delay <= self.MAX_FEEDBACK_DELAY:
            issues.append(f"Invalid feedback delay: {current.feedback_delay}")
        if not isinstance(self._quiz_directory, str) or not self._quiz_directory.strip():
            issues.append(f"Invalid quiz directory: {self._quiz_directory}")

        return {'valid': not issues, 'issues': issues}

    def get_settings_summary(self) -> str:
        """Multi-line summary shown by /help."""
        current = self._global_settings
        lines = [
            "Quiz Settings:",
            f"• Questions: {current.question_count}",
            f"• Order: {'random' if current.random_order else 'sequential'}",
            f"• Timer: {current.session_duration} seconds per quiz",
            f"• Feedback: {current.feedback_delay} seconds",
            f"• Quiz Directory: {self._quiz_directory}",
        ]
        return "\n".join(lines)

    def get_configuration_health_check(self) -> Dict[str, Any]:
        """
        Settings validation plus checks against the filesystem and timer budget.

        Returns:
            Dictionary with ``healthy`` and lists of ``warnings``, ``errors``
            and ``recommendations``
        """
        report = {'healthy': True, 'warnings': [], 'errors': [], 'recommendations': []}

        validation = self.validate_settings()
        if not validation['valid']:
            report['healthy'] = False
            report['errors'].extend(f"❌ {issue}" for issue in validation['issues'])

        quiz_dir = Path(self._quiz_directory)
        if not quiz_dir.exists():
            report['warnings'].append(f"⚠️ Quiz directory does not exist: {self._quiz_directory}")
            report['recommendations'].append(
                "Create the directory and add quiz JSON files, or the sample quiz will be used."
            )
        elif not os.access(quiz_dir, os.R_OK):
            report['healthy'] = False
            report['errors'].append(f"❌ Cannot read quiz directory: {self._quiz_directory}")

        count = self._global_settings.question_count or 0
        duration = self._global_settings.session_duration
        if count and duration / count < 5:
            report['warnings'].append(
                f"⚠️ {duration}s for {count} questions leaves less than 5 seconds per question"
            )
            report['recommendations'].append("Lengthen the timer with /set_duration or ask fewer questions.")

        return report
