"""
Unit tests for the Open Trivia Database client.
"""
import random
import unittest

import httpx

from trivia.models import Difficulty
from trivia.question_source import (
    CATEGORIES,
    InvalidSelectionError,
    NetworkError,
    NoResultsError,
    OpenTriviaClient,
    parse_api_question,
)
from tests.test_fixtures import TestFixtures, async_test


class TestParseApiQuestion(unittest.TestCase):

    def test_unescapes_and_keeps_correct_answer(self):
        payload = TestFixtures.create_open_trivia_payload(1)["results"][0]
        question = parse_api_question(payload, random.Random(1))

        self.assertEqual(question.text, 'Which is "question 0"?')
        self.assertEqual(question.category, "Science & Nature")
        self.assertIs(question.difficulty, Difficulty.EASY)
        self.assertEqual(question.correct_answer.text, "Right 0")
        self.assertEqual(len(question.answers), 4)
        self.assertIsNone(question.explanation)

    def test_answers_are_shuffled(self):
        payload = TestFixtures.create_open_trivia_payload(1)["results"][0]
        positions = {parse_api_question(payload, random.Random(seed)).correct_index for seed in range(30)}

        self.assertGreater(len(positions), 1)

    def test_boolean_style_answers(self):
        payload = {
            "category": "History",
            "difficulty": "hard",
            "question": "Rome fell in 476?",
            "correct_answer": "True",
            "incorrect_answers": ["False"],
        }
        question = parse_api_question(payload)

        self.assertEqual(sorted(a.text for a in question.answers), ["False", "True"])


class TestOpenTriviaClient(unittest.TestCase):

    def setUp(self):
        self.requests = []

    def _client(self, handler):
        def recording_handler(request):
            self.requests.append(request)
            return handler(request)

        http_client = httpx.AsyncClient(transport=httpx.MockTransport(recording_handler))
        return OpenTriviaClient(client=http_client, rng=random.Random(3))

    @async_test
    async def test_fetch_questions(self):
        payload = TestFixtures.create_open_trivia_payload(3)
        client = self._client(lambda request: httpx.Response(200, json=payload))

        questions = await client.fetch_questions("Science & Nature", "Easy", amount=3)

        self.assertEqual(len(questions), 3)
        self.assertEqual(questions[2].correct_answer.text, "Right 2")
        params = self.requests[0].url.params
        self.assertEqual(params["category"], str(CATEGORIES["Science & Nature"]))
        self.assertEqual(params["difficulty"], "easy")
        self.assertEqual(params["type"], "multiple")
        self.assertEqual(params["amount"], "3")

    @async_test
    async def test_invalid_selection(self):
        client = self._client(lambda request: httpx.Response(200, json={}))

        with self.assertRaises(InvalidSelectionError):
            await client.fetch_questions("Cooking", "easy")
        with self.assertRaises(InvalidSelectionError):
            await client.fetch_questions("History", "extreme")
        self.assertEqual(self.requests, [])

    @async_test
    async def test_non_200_status(self):
        client = self._client(lambda request: httpx.Response(500))

        with self.assertRaises(NetworkError) as ctx:
            await client.fetch_questions("History", "medium")
        self.assertIn("500", str(ctx.exception))

    @async_test
    async def test_no_results_code(self):
        client = self._client(lambda request: httpx.Response(200, json={"response_code": 1, "results": []}))

        with self.assertRaises(NoResultsError):
            await client.fetch_questions("History", "hard")

    @async_test
    async def test_empty_results(self):
        client = self._client(lambda request: httpx.Response(200, json={"response_code": 0, "results": []}))

        with self.assertRaises(NoResultsError):
            await client.fetch_questions("History", "hard")

    @async_test
    async def test_other_response_code(self):
        client = self._client(lambda request: httpx.Response(200, json={"response_code": 5}))

        with self.assertRaises(NetworkError):
            await client.fetch_questions("History", "hard")

    @async_test
    async def test_transport_error(self):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        client = self._client(handler)

        with self.assertRaises(NetworkError):
            await client.fetch_questions("Art", "easy")

    @async_test
    async def test_invalid_json(self):
        client = self._client(lambda request: httpx.Response(200, content=b"<html>"))

        with self.assertRaises(NetworkError):
            await client.fetch_questions("Art", "easy")

    @async_test
    async def test_json_that_is_not_an_object(self):
        client = self._client(lambda request: httpx.Response(200, json=[{"response_code": 0}]))

        with self.assertRaises(NetworkError):
            await client.fetch_questions("Art", "easy")

    @async_test
    async def test_malformed_question(self):
        payload = {"response_code": 0, "results": [{"question": "Missing fields"}]}
        client = self._client(lambda request: httpx.Response(200, json=payload))

        with self.assertRaises(NetworkError):
            await client.fetch_questions("Art", "easy")

    def test_available_lists(self):
        self.assertIn("General Knowledge", OpenTriviaClient.available_categories())
        self.assertEqual(OpenTriviaClient.available_difficulties(), ["easy", "medium", "hard"])


if __name__ == '__main__':
    unittest.main()
