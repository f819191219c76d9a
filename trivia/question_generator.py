"""
AI question generation through a local Ollama model.
"""
import json
import logging
from typing import Optional

import httpx
from ollama import AsyncClient, ResponseError

from .models import Answer, Difficulty, Question

logger = logging.getLogger(__name__)

DEFAULT_MODEL = "llama3.1"

PROMPT_TEMPLATE = """Generate a single new multiple-choice quiz question with the following properties:
- Category: "{category}"
- Difficulty: "{difficulty}"
- Must have exactly one correct answer.
- Must have exactly 4 possible answers.
- Must include a brief explanation.

Provide the response as a JSON object with the following schema:
{{
  "questionText": "string",
  "answers": [
    {{"text": "string", "isCorrect": boolean}},
    {{"text": "string", "isCorrect": boolean}},
    {{"text": "string", "isCorrect": boolean}},
    {{"text": "string", "isCorrect": boolean}}
  ],
  "explanation": "string"
}}"""


class QuestionGenerationError(Exception):
    """Raised when a question cannot be generated or the reply is unusable."""
    pass


def build_prompt(category: str, difficulty: str) -> str:
    return PROMPT_TEMPLATE.format(category=category, difficulty=difficulty)


def parse_generated_question(text: str, category: str, difficulty: Difficulty) -> Question:
    """
    Parse the model's JSON reply into a Question.

    Raises:
        QuestionGenerationError: If the reply is not valid JSON or breaks the question rules
    """
    try:
        data = json.loads(text)
    except (TypeError, json.JSONDecodeError) as e:
        raise QuestionGenerationError(f"Model reply is not valid JSON: {e}") from e

    if not isinstance(data, dict):
        raise QuestionGenerationError("Model reply must be a JSON object")

    answers = data.get("answers")
    if not isinstance(answers, list) or len(answers) != 4:
        raise QuestionGenerationError("Model reply must contain exactly 4 answers")

    try:
        question = Question(
            text=str(data["questionText"]).strip(),
            answers=tuple(
                Answer(text=str(a["text"]).strip(), is_correct=a["isCorrect"] is True)
                for a in answers
            ),
            category=category,
            difficulty=difficulty,
            explanation=(str(data.get("explanation") or "").strip() or None),
        )
    except (KeyError, TypeError) as e:
        raise QuestionGenerationError(f"Model reply is missing a field: {e}") from e
    except ValueError as e:
        raise QuestionGenerationError(f"Model produced an invalid question: {e}") from e

    if any(not answer.text for answer in question.answers):
        raise QuestionGenerationError("Model produced an empty answer")
    return question


class QuestionGenerator:
    """Generates quiz questions with an Ollama chat model."""

    def __init__(self, model: str = DEFAULT_MODEL, client: Optional[AsyncClient] = None, host: Optional[str] = None):
        self.model = model
        self._client = client or AsyncClient(host=host)

    async def generate(self, category: str, difficulty: str) -> Question:
        """
        Generate one question for the category and difficulty.

        Raises:
            QuestionGenerationError: On empty input, transport errors or an unusable reply
        """
        category = (category or "").strip()
        if not category or not difficulty:
            raise QuestionGenerationError("Please enter a category and select a difficulty.")
        try:
            parsed_difficulty = Difficulty.parse(difficulty)
        except ValueError as e:
            raise QuestionGenerationError(str(e)) from e

        logger.info(f"Generating question for '{category}' ({parsed_difficulty.value}) with {self.model}")
        try:
            response = await self._client.chat(
                model=self.model,
                messages=[{"role": "user", "content": build_prompt(category, parsed_difficulty.value)}],
                format="json",
            )
        except (ResponseError, httpx.HTTPError, ConnectionError) as e:
            logger.error(f"Question generation failed: {e}")
            raise QuestionGenerationError(f"Error generating question: {e}") from e

        content = response["message"]["content"]
        return parse_generated_question(content, category, parsed_difficulty)
