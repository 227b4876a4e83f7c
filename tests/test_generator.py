import json
import urllib.error

import pytest

from triviatitans.domain.common.errors import GenerationFailed
from triviatitans.domain.questions.generator import HttpQuestionGenerator, clamp_count


def _generator(monkeypatch, body=None, error=None):
    gen = HttpQuestionGenerator("http://questions.invalid/generate", timeout_sec=1)
    sent = []

    def fake_post(payload):
        sent.append(payload)
        if error is not None:
            raise error
        return json.dumps(body).encode("utf-8")

    monkeypatch.setattr(gen, "_post", fake_post)
    return gen, sent


def test_clamp_count():
    assert clamp_count(0) == 1
    assert clamp_count(7) == 7
    assert clamp_count(50) == 20


@pytest.mark.asyncio
async def test_generate_parses_questions(monkeypatch):
    body = {
        "questions": [
            {"question": "2+2?", "options": ["3", "4"], "answer": "4"},
            {"question": "Red planet?", "options": ["Mars", "Venus", "Earth"], "answer": "Mars", "difficulty": "easy"},
        ]
    }
    gen, sent = _generator(monkeypatch, body=body)
    questions = await gen.generate("Science", 50)
    assert sent == [{"topic": "Science", "count": 20}]
    assert [q.answer for q in questions] == ["4", "Mars"]
    assert questions[0].topic == "Science"
    assert questions[1].difficulty == "easy"


@pytest.mark.asyncio
async def test_zero_questions_is_a_failure(monkeypatch):
    gen, _ = _generator(monkeypatch, body={"questions": []})
    with pytest.raises(GenerationFailed):
        await gen.generate("Science", 5)


@pytest.mark.asyncio
async def test_answer_must_be_an_option(monkeypatch):
    body = {"questions": [{"question": "2+2?", "options": ["3", "5"], "answer": "4"}]}
    gen, _ = _generator(monkeypatch, body=body)
    with pytest.raises(GenerationFailed):
        await gen.generate("Science", 1)


@pytest.mark.asyncio
async def test_too_many_options_rejected(monkeypatch):
    body = {"questions": [{"question": "Pick", "options": ["a", "b", "c", "d", "e"], "answer": "a"}]}
    gen, _ = _generator(monkeypatch, body=body)
    with pytest.raises(GenerationFailed):
        await gen.generate("Letters", 1)


@pytest.mark.asyncio
async def test_transport_error_is_a_failure(monkeypatch):
    gen, _ = _generator(monkeypatch, error=urllib.error.URLError("connection refused"))
    with pytest.raises(GenerationFailed) as exc:
        await gen.generate("Science", 3)
    assert exc.value.retryable is True
