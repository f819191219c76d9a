"""
Question catalog storage for the Trivia Quiz Bot.

The bundled catalog is every ``*.json`` file in the quiz directory, each one
holding ``{"quiz": [...]}``. Questions written through /create_question or
/generate_question live in a separate JSON file of the same shape.
"""
import json
import os
import logging
from typing import Dict, List, Optional
from pathlib import Path

from .models import Answer, Difficulty, Question

# Catalog files larger than this are skipped
MAX_CATALOG_BYTES = 10 * 1024 * 1024


class CatalogFileError(Exception):
    """A catalog file that cannot be read, parsed or validated."""


class DataManager:
    """Loads the bundled catalog and keeps the user-authored questions."""

    def __init__(self, quiz_directory: str = "./quizzes/", user_quiz_file: str = "./data/user_quizzes.json"):
        self.quiz_directory = Path(quiz_directory)
        self.user_quiz_file = Path(user_quiz_file)
        self.loaded_quizzes: Dict[str, List[Question]] = {}
        self.user_questions: List[Question] = []
        self.logger = logging.getLogger(__name__)
        self.load_errors: List[str] = []
        self.fallback_quiz_created = False

    def load_quiz_files(self) -> Dict[str, List[Question]]:
        """
        (Re)load every catalog file in the quiz directory.

        Problems never raise. Each one is recorded in ``load_errors`` and the
        loader degrades instead: a directory without files gets the sample
        quiz written into it, and an unusable directory or a directory where
        no file loads gets a one-question fallback quiz held in memory.

        Returns:
            Mapping of catalog name (file stem) to its questions
        """
        self.loaded_quizzes.clear()
        self.load_errors.clear()
        self.fallback_quiz_created = False

        try:
            catalog_files = self._list_catalog_files()
        except OSError as e:
            self.load_errors.append(f"Cannot use quiz directory {self.quiz_directory}: {e}")
            return self._create_fallback_quiz()

        if not catalog_files:
            self.logger.warning(f"Quiz directory {self.quiz_directory} has no JSON files")
            self.load_errors.append(f"No quiz files found in {self.quiz_directory}")
            return self._create_sample_quiz()

        for path in catalog_files:
            try:
                questions = self._parse_questions(self._read_catalog(path))
            except CatalogFileError as e:
                self.load_errors.append(f"{path.name}: {e}")
                continue
            self.loaded_quizzes[path.stem] = questions
            self.logger.info(f"Catalog '{path.stem}': {len(questions)} questions")

        if not self.loaded_quizzes:
            self.logger.error(f"None of the {len(catalog_files)} quiz files in {self.quiz_directory} loaded")
            self.load_errors.append("All quiz files failed to load")
            return self._create_fallback_quiz()

        if self.load_errors:
            self.logger.warning(
                f"Loaded {len(self.loaded_quizzes)} of {len(catalog_files)} quiz files, "
                f"{len(self.load_errors)} failed"
            )
        else:
            self.logger.info(f"Loaded {len(self.loaded_quizzes)} quiz files")
        return self.loaded_quizzes

    def _list_catalog_files(self) -> List[Path]:
        """Create the quiz directory when missing and list its JSON files in name order."""
        if not self.quiz_directory.exists():
            self.quiz_directory.mkdir(parents=True, exist_ok=True)
            self.logger.info(f"Created quiz directory {self.quiz_directory}")
        if not os.access(self.quiz_directory, os.R_OK):
            raise PermissionError(f"no read permission on {self.quiz_directory}")
        return sorted(self.quiz_directory.glob("*.json"))

    def _read_catalog(self, path: Path) -> dict:
        """
        Read and validate one catalog file.

        Raises:
            CatalogFileError: If the file is unreadable, too large, not JSON or malformed
        """
        try:
            size = path.stat().st_size
            if size > MAX_CATALOG_BYTES:
                raise CatalogFileError(
                    f"File too large ({size / 1024 / 1024:.1f}MB, limit "
                    f"{MAX_CATALOG_BYTES // 1024 // 1024}MB)"
                )
            with open(path, 'r', encoding='utf-8') as f:
                data = json.load(f)
        except json.JSONDecodeError as e:
            self.logger.error(f"{path} is not valid JSON: {e}")
            raise CatalogFileError(f"Invalid JSON: {e}") from e
        except OSError as e:
            self.logger.error(f"Could not read {path}: {e}")
            raise CatalogFileError(f"Could not read file: {e}") from e

        problem = self._structure_problem(data)
        if problem:
            self.logger.error(f"Rejected {path}: {problem}")
            raise CatalogFileError(problem)
        return data

    def _structure_problem(self, data) -> Optional[str]:
        """
        First thing wrong with a catalog document, or None.

        Each entry of ``data["quiz"]`` needs ``question``, ``category`` and
        ``difficulty`` strings, two or more ``answers`` objects with ``text``
        and ``isCorrect`` of which exactly one is correct, and optionally an
        ``explanation`` string or null.
        """
        if not isinstance(data, dict):
            return "top level must be a JSON object"
        entries = data.get("quiz")
        if not isinstance(entries, list):
            return "'quiz' must be present and hold an array"
        if not entries:
            return "'quiz' array is empty"

        known_difficulties = {d.value for d in Difficulty}
        for number, entry in enumerate(entries, start=1):
            where = f"question {number}"
            if not isinstance(entry, dict):
                return f"{where} is not an object"
            for key in ("question", "category", "difficulty"):
                if not isinstance(entry.get(key), str):
                    return f"{where}: '{key}' must be a string"
            if entry["difficulty"].lower() not in known_difficulties:
                return f"{where}: unknown difficulty '{entry['difficulty']}'"

            answers = entry.get("answers")
            if not isinstance(answers, list) or len(answers) < 2:
                return f"{where}: needs an 'answers' array with two or more entries"
            if not all(isinstance(a, dict) and isinstance(a.get("text"), str)
                       and isinstance(a.get("isCorrect"), bool) for a in answers):
                return f"{where}: every answer needs 'text' and a boolean 'isCorrect'"
            correct = [a for a in answers if a["isCorrect"]]
            if len(correct) != 1:
                return f"{where}: {len(correct)} answers marked correct, expected 1"

            explanation = entry.get("explanation")
            if explanation is not None and not isinstance(explanation, str):
                return f"{where}: 'explanation' must be a string"
        return None

    def _parse_questions(self, data: dict) -> List[Question]:
        try:
            return [question_from_dict(entry) for entry in data["quiz"]]
        except ValueError as e:
            raise CatalogFileError(f"Invalid question: {e}") from e

    # Catalog queries

    def get_available_quizzes(self) -> List[str]:
        return list(self.loaded_quizzes)

    def get_all_questions(self) -> List[Question]:
        return [question for questions in self.loaded_quizzes.values() for question in questions]

    def get_questions(self, category: Optional[str] = None, difficulty: Optional[str] = None) -> List[Question]:
        """
        Catalog questions matching a category (case-insensitive) and a
        difficulty. A filter left as None matches everything.
        """
        wanted_category = category.strip().lower() if category else None
        wanted_difficulty = Difficulty.parse(difficulty) if difficulty else None

        def matches(question: Question) -> bool:
            if wanted_category is not None and question.category.lower() != wanted_category:
                return False
            return wanted_difficulty is None or question.difficulty is wanted_difficulty

        return [question for question in self.get_all_questions() if matches(question)]

    def get_categories(self) -> List[str]:
        """Catalog categories in first-seen order."""
        return _categories_of(self.get_all_questions())

    # User-authored quizzes

    def load_user_quizzes(self) -> List[Question]:
        """Read the user quiz file; a missing or broken file yields no questions."""
        self.user_questions = []
        if not self.user_quiz_file.exists():
            return self.user_questions

        try:
            self.user_questions = self._parse_questions(self._read_catalog(self.user_quiz_file))
        except CatalogFileError as e:
            self.load_errors.append(f"{self.user_quiz_file.name}: {e}")
            return self.user_questions

        self.logger.info(f"Loaded {len(self.user_questions)} user-created questions")
        return self.user_questions

    def add_user_question(
        self,
        category: str,
        question_text: str,
        answers: List[str],
        correct_index: int,
        explanation: Optional[str] = None
    ) -> Dict[str, any]:
        """
        Check a quiz-creation form and append the question to the user file.

        The new question is only kept in memory once the file write succeeded.

        Returns:
            Result dictionary; on success it also carries the stored ``question``
        """
        category = (category or "").strip()
        question_text = (question_text or "").strip()
        answers = [(answer or "").strip() for answer in answers]

        problem = None
        if not category:
            problem = "Please enter a category name."
        elif not question_text:
            problem = "Please enter a question."
        elif len(answers) < 2:
            problem = "Please provide at least two answers."
        elif not all(answers):
            problem = "Please enter an answer."
        elif (isinstance(correct_index, bool) or not isinstance(correct_index, int)
              or not 0 <= correct_index < len(answers)):
            problem = "Please mark exactly one correct answer."
        if problem:
            self.logger.debug(f"Quiz creation form rejected: {problem}")
            return {'success': False, 'error': problem, 'user_message': f"❌ {problem}"}

        question = Question(
            text=question_text,
            answers=tuple(Answer(text=text, is_correct=(i == correct_index)) for i, text in enumerate(answers)),
            category=category,
            difficulty=Difficulty.CUSTOM,
            explanation=(explanation or "").strip() or None,
        )

        try:
            self._write_user_quizzes(self.user_questions + [question])
        except OSError as e:
            self.logger.error(f"Could not write {self.user_quiz_file}: {e}")
            return {
                'success': False,
                'error': f"Failed to save user quizzes: {e}",
                'user_message': "❌ Could not save your question. Please try again."
            }

        self.user_questions.append(question)
        self.logger.info(f"User question saved under '{category}'")
        return {
            'success': True,
            'question': question,
            'message': f"Question added to '{category}'",
            'user_message': f"✅ Your question has been added to **{category}** and is ready to play."
        }

    def get_user_categories(self) -> List[str]:
        return _categories_of(self.user_questions)

    def get_user_questions(self, category: str) -> List[Question]:
        """User questions in a category, matched case-insensitively like the catalog."""
        wanted = (category or "").strip().lower()
        return [q for q in self.user_questions if q.category.lower() == wanted]

    def _write_user_quizzes(self, questions: List[Question]) -> None:
        # Temp file renamed into place
        self.user_quiz_file.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self.user_quiz_file.with_suffix(".tmp")
        with open(tmp_path, 'w', encoding='utf-8') as f:
            json.dump({"quiz": [question_to_dict(q) for q in questions]}, f, indent=2, ensure_ascii=False)
        os.replace(tmp_path, self.user_quiz_file)

    # Degraded catalogs

    def _create_sample_quiz(self) -> Dict[str, List[Question]]:
        """Write the sample catalog into an empty quiz directory and load it."""
        sample_path = self.quiz_directory / "sample_quiz.json"
        if not sample_path.exists():
            try:
                with open(sample_path, 'w', encoding='utf-8') as f:
                    json.dump({"quiz": [question_to_dict(q) for q in SAMPLE_QUESTIONS]},
                              f, indent=2, ensure_ascii=False)
                self.logger.info(f"Wrote sample quiz to {sample_path}")
            except OSError as e:
                self.logger.error(f"Could not write sample quiz to {sample_path}: {e}")
                self.load_errors.append(f"Failed to create sample quiz: {e}")

        self.loaded_quizzes["sample_quiz"] = list(SAMPLE_QUESTIONS)
        return self.loaded_quizzes

    def _create_fallback_quiz(self) -> Dict[str, List[Question]]:
        self.loaded_quizzes["fallback_quiz"] = [FALLBACK_QUESTION]
        self.fallback_quiz_created = True
        self.logger.warning("Quiz files unavailable, serving the fallback quiz")
        return self.loaded_quizzes

    # Load status

    def get_load_errors(self) -> List[str]:
        return list(self.load_errors)

    def has_load_errors(self) -> bool:
        return bool(self.load_errors)

    def is_fallback_quiz_active(self) -> bool:
        return self.fallback_quiz_created

    def get_loading_summary(self) -> Dict[str, any]:
        """Counts, errors and categories from the last load, for status output."""
        return {
            'total_quizzes': len(self.loaded_quizzes),
            'total_questions': len(self.get_all_questions()),
            'has_errors': self.has_load_errors(),
            'error_count': len(self.load_errors),
            'errors': self.get_load_errors(),
            'fallback_active': self.fallback_quiz_created,
            'quiz_directory': str(self.quiz_directory),
            'available_quizzes': self.get_available_quizzes(),
            'categories': self.get_categories(),
            'user_categories': self.get_user_categories()
        }


def _categories_of(questions: List[Question]) -> List[str]:
    return list(dict.fromkeys(question.category for question in questions))


def question_from_dict(data: dict) -> Question:
    """Build a Question from its catalog JSON form."""
    return Question(
        text=data["question"],
        answers=tuple(Answer(text=a["text"], is_correct=a["isCorrect"]) for a in data["answers"]),
        category=data["category"],
        difficulty=Difficulty.parse(data["difficulty"]),
        explanation=data.get("explanation"),
    )


def question_to_dict(question: Question) -> dict:
    """Serialize a Question to its catalog JSON form."""
    data = {
        "question": question.text,
        "answers": [{"text": a.text, "isCorrect": a.is_correct} for a in question.answers],
        "category": question.category,
        "difficulty": question.difficulty.value,
    }
    if question.explanation:
        data["explanation"] = question.explanation
    return data


def _sample(text, answers, correct, category, difficulty, explanation=None) -> Question:
    return Question(
        text=text,
        answers=tuple(Answer(a, i == correct) for i, a in enumerate(answers)),
        category=category,
        difficulty=difficulty,
        explanation=explanation,
    )


SAMPLE_QUESTIONS: List[Question] = [
    _sample("What is the capital of France?", ["Berlin", "Paris", "Madrid", "Rome"], 1,
            "General Knowledge", Difficulty.EASY, "Paris has been the capital of France since 987."),
    _sample("What is 2 + 2?", ["3", "4", "5", "22"], 1,
            "General Knowledge", Difficulty.EASY),
    _sample("Which planet is the largest in our solar system?", ["Earth", "Saturn", "Jupiter", "Mars"], 2,
            "Science & Nature", Difficulty.EASY, "Jupiter is more than twice as massive as all other planets combined."),
]

FALLBACK_QUESTION = _sample(
    "This is a fallback question. What should you do when quiz files can't be loaded?",
    ["Check the quiz directory and file permissions", "Restart the computer"], 0,
    "General Knowledge", Difficulty.EASY,
)
