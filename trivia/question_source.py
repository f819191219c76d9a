"""
Open Trivia Database question supplier.
"""
import html
import logging
import random
from typing import Dict, List, Optional

import httpx

from .models import Answer, Difficulty, Question

logger = logging.getLogger(__name__)

OPEN_TRIVIA_URL = "https://opentdb.com/api.php"

CATEGORIES: Dict[str, int] = {
    'General Knowledge': 9,
    'Entertainment: Books': 10,
    'Science & Nature': 17,
    'Mythology': 20,
    'History': 23,
    'Politics': 24,
    'Art': 25,
    'Animals': 27,
    'Vehicles': 28,
}

DIFFICULTIES: List[str] = ['easy', 'medium', 'hard']

# Open Trivia DB response codes
RESPONSE_SUCCESS = 0
RESPONSE_NO_RESULTS = 1


class QuestionSourceError(Exception):
    """Base exception for question supplier failures."""
    pass


class NetworkError(QuestionSourceError):
    """Raised when the trivia API cannot be reached or answers with an error."""
    pass


class NoResultsError(QuestionSourceError):
    """Raised when the trivia API has no questions for the selection."""
    pass


class InvalidSelectionError(QuestionSourceError, ValueError):
    """Raised for an unknown category or difficulty."""
    pass


def parse_api_question(payload: dict, rng: Optional[random.Random] = None) -> Question:
    """
    Build a Question from one Open Trivia DB result.

    Text is HTML-unescaped; the correct answer is added first, then the
    incorrect ones, and the answer order is shuffled.
    """
    rng = rng or random
    answers = [Answer(text=html.unescape(payload['correct_answer']), is_correct=True)]
    for incorrect in payload['incorrect_answers']:
        answers.append(Answer(text=html.unescape(str(incorrect)), is_correct=False))
    rng.shuffle(answers)

    return Question(
        text=html.unescape(payload['question']),
        answers=tuple(answers),
        category=html.unescape(payload['category']),
        difficulty=Difficulty.parse(payload['difficulty']),
        explanation=None,  # Open Trivia DB does not provide explanations
    )


class OpenTriviaClient:
    """Fetches multiple-choice questions from the Open Trivia Database."""

    def __init__(
        self,
        client: Optional[httpx.AsyncClient] = None,
        base_url: str = OPEN_TRIVIA_URL,
        timeout: float = 10.0,
        rng: Optional[random.Random] = None
    ):
        """
        Args:
            client: Shared httpx client; one is created per request when omitted
            base_url: API endpoint
            timeout: Request timeout in seconds
            rng: Random source for answer shuffling
        """
        self._client = client
        self.base_url = base_url
        self.timeout = timeout
        self._rng = rng or random.Random()

    @staticmethod
    def available_categories() -> List[str]:
        return list(CATEGORIES.keys())

    @staticmethod
    def available_difficulties() -> List[str]:
        return list(DIFFICULTIES)

    async def fetch_questions(self, category: str, difficulty: str, amount: int = 10) -> List[Question]:
        """
        Fetch questions for a category and difficulty.

        Raises:
            InvalidSelectionError: Unknown category or difficulty
            NetworkError: Transport failure, non-200 status or API error code
            NoResultsError: The API has no questions for this selection
        """
        category_id = CATEGORIES.get(category)
        difficulty_param = str(difficulty).lower()
        if category_id is None or difficulty_param not in DIFFICULTIES:
            raise InvalidSelectionError(
                f"Invalid category or difficulty selected: {category!r}, {difficulty!r}"
            )

        params = {
            'amount': amount,
            'category': category_id,
            'difficulty': difficulty_param,
            'type': 'multiple',
        }

        try:
            if self._client is not None:
                response = await self._client.get(self.base_url, params=params, timeout=self.timeout)
            else:
                async with httpx.AsyncClient(timeout=self.timeout) as client:
                    response = await client.get(self.base_url, params=params)
        except httpx.HTTPError as e:
            logger.error(f"Failed to reach trivia API: {e}")
            raise NetworkError(f"Failed to load questions: {e}") from e

        if response.status_code != 200:
            logger.error(f"Trivia API returned status {response.status_code}")
            raise NetworkError(
                f"Failed to load questions from API. Status Code: {response.status_code}"
            )

        try:
            data = response.json()
        except ValueError as e:
            raise NetworkError(f"Trivia API returned invalid JSON: {e}") from e
        if not isinstance(data, dict):
            raise NetworkError(f"Trivia API returned {type(data).__name__} instead of an object")

        response_code = data.get('response_code')
        if response_code == RESPONSE_NO_RESULTS:
            raise NoResultsError(
                f"No questions found for {category} ({difficulty_param})"
            )
        if response_code != RESPONSE_SUCCESS:
            raise NetworkError(
                f"Failed to load questions: API responded with code {response_code}"
            )

        results = data.get('results') or []
        if not results:
            raise NoResultsError(
                f"No questions found for {category} ({difficulty_param})"
            )

        try:
            questions = [parse_api_question(item, self._rng) for item in results]
        except (KeyError, TypeError, ValueError) as e:
            raise NetworkError(f"Trivia API returned a malformed question: {e}") from e

        logger.info(f"Fetched {len(questions)} questions for {category} ({difficulty_param})")
        return questions
