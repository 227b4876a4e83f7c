# triviatitans/domain/questions/generator.py
from __future__ import annotations

import asyncio
import json
import urllib.request
from typing import List, Optional, Protocol

from pydantic import BaseModel, Field, ValidationError, model_validator

from triviatitans.domain.common.errors import GenerationFailed
from triviatitans.logging_utils import get_logger
from triviatitans.store.models import Question

logger = get_logger(__name__)

MIN_COUNT = 1
MAX_COUNT = 20


class GeneratedQuestion(BaseModel):
    question: str = Field(min_length=1)
    options: List[str] = Field(min_length=2, max_length=4)
    answer: str = Field(min_length=1)
    difficulty: Optional[str] = None
    topic: Optional[str] = None

    @model_validator(mode="after")
    def _answer_is_an_option(self) -> "GeneratedQuestion":
        if self.answer not in self.options:
            raise ValueError("answer must be one of the options")
        return self


class GenerationResponse(BaseModel):
    questions: List[GeneratedQuestion] = Field(default_factory=list)


class QuestionGenerator(Protocol):
    async def generate(self, topic: str, count: int) -> List[Question]:
        ...


def clamp_count(count: int) -> int:
    return max(MIN_COUNT, min(MAX_COUNT, int(count)))


def to_questions(resp: GenerationResponse, topic: str) -> List[Question]:
    return [
        Question(
            question=q.question,
            options=list(q.options),
            answer=q.answer,
            difficulty=q.difficulty,
            topic=q.topic or topic,
        )
        for q in resp.questions
    ]


class HttpQuestionGenerator:
    """
    Request/response client for the external text-generation service:
    POST {"topic", "count"} -> {"questions": [...]}.
    """

    def __init__(self, url: str, timeout_sec: float = 30.0):
        self.url = url
        self.timeout_sec = timeout_sec

    def _post(self, payload: dict) -> bytes:
        req = urllib.request.Request(
            self.url,
            data=json.dumps(payload).encode("utf-8"),
            headers={"Content-Type": "application/json", "User-Agent": "TriviaTitans/1.0"},
            method="POST",
        )
        with urllib.request.urlopen(req, timeout=self.timeout_sec) as resp:
            return resp.read()

    async def generate(self, topic: str, count: int) -> List[Question]:
        count = clamp_count(count)
        try:
            body = await asyncio.to_thread(self._post, {"topic": topic, "count": count})
            resp = GenerationResponse.model_validate_json(body)
        except OSError as e:  # URLError, HTTPError, timeouts
            logger.error("Question service unreachable", extra={"error": str(e)})
            raise GenerationFailed("Could not reach the question service") from e
        except ValidationError as e:
            logger.error("Question service returned an invalid payload", extra={"error": str(e)})
            raise GenerationFailed("Question service returned an invalid payload") from e

        questions = to_questions(resp, topic)
        if not questions:
            raise GenerationFailed(f"No questions generated for topic {topic!r}")
        return questions
