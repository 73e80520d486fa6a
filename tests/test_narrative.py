import asyncio

import httpx
import pytest

from services.llm.base import NarrativeRequest
from services.llm.llm_gemini import (
    NARRATIVE_FAILED_MESSAGE,
    GeminiNarrativeClient,
    build_payload,
    build_prompt,
    extract_text,
)
from utils.errors import NarrativeError

REQUEST = NarrativeRequest(
    student_name="Chen",
    scores={"chinese": 90, "math": 80, "english": 70, "science": 60, "social": 50, "essay": 100},
    weighted_average=1310 / 18,
)


def ok_body(text="Solid Chinese, keep practicing social studies."):
    return {"candidates": [{"content": {"parts": [{"text": text}]}}]}


class Recorder:
    """MockTransport 핸들러: 준비된 응답을 순서대로 돌려주고 요청을 기록"""

    def __init__(self, *responses):
        self.responses = list(responses)
        self.requests = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        item = self.responses.pop(0)
        if isinstance(item, Exception):
            raise item
        return item


def make_client(handler, delays):
    async def fake_sleep(seconds):
        delays.append(seconds)

    return GeminiNarrativeClient(
        api_key="test-key",
        model="gemini-test",
        base_url="https://gemini.test/v1beta",
        max_retries=5,
        transport=httpx.MockTransport(handler),
        sleep=fake_sleep,
        jitter=lambda: 0.5,
    )


def test_prompt_contains_scores_and_average():
    prompt = build_prompt(REQUEST)
    assert "Chen" in prompt
    assert "Chinese: 90" in prompt
    assert "72.78" in prompt

    payload = build_payload(REQUEST, temperature=0.7, max_tokens=256)
    assert payload["generationConfig"]["maxOutputTokens"] == 256
    assert payload["contents"][0]["parts"][0]["text"] == prompt


def test_extract_text_handles_missing_candidates():
    assert extract_text(ok_body("hi")) == "hi"
    assert extract_text({}) is None
    assert extract_text({"candidates": []}) is None


def test_success_first_try():
    handler = Recorder(httpx.Response(200, json=ok_body("Nice work.")))
    delays = []
    text = asyncio.run(make_client(handler, delays).generate(REQUEST))

    assert text == "Nice work."
    assert delays == []
    sent = handler.requests[0]
    assert sent.url.path == "/v1beta/models/gemini-test:generateContent"
    assert sent.url.params["key"] == "test-key"


def test_retries_rate_limit_and_server_errors_with_backoff():
    handler = Recorder(
        httpx.Response(429),
        httpx.Response(503),
        httpx.ConnectError("boom"),
        httpx.Response(200, json=ok_body("Recovered.")),
    )
    delays = []
    text = asyncio.run(make_client(handler, delays).generate(REQUEST))

    assert text == "Recovered."
    assert len(handler.requests) == 4
    assert delays == [1.5, 2.5, 4.5]


def test_empty_response_is_retried():
    handler = Recorder(
        httpx.Response(200, json={"candidates": []}),
        httpx.Response(200, json=ok_body("")),
        httpx.Response(200, json=ok_body("Finally.")),
    )
    delays = []
    assert asyncio.run(make_client(handler, delays).generate(REQUEST)) == "Finally."
    assert len(delays) == 2


def test_client_error_fails_without_retry():
    handler = Recorder(httpx.Response(400, json={"error": "bad request"}))
    delays = []
    with pytest.raises(NarrativeError) as exc:
        asyncio.run(make_client(handler, delays).generate(REQUEST))
    assert exc.value.message == NARRATIVE_FAILED_MESSAGE
    assert len(handler.requests) == 1
    assert delays == []


def test_gives_up_after_max_attempts():
    handler = Recorder(*[httpx.Response(500) for _ in range(5)])
    delays = []
    with pytest.raises(NarrativeError) as exc:
        asyncio.run(make_client(handler, delays).generate(REQUEST))
    # 원본 오류 대신 고정 메시지
    assert exc.value.message == NARRATIVE_FAILED_MESSAGE
    assert len(handler.requests) == 5
    assert delays == [1.5, 2.5, 4.5, 8.5]


def test_cancellation_propagates():
    async def slow_sleep(seconds):
        await asyncio.sleep(30)

    client = GeminiNarrativeClient(
        api_key="test-key",
        base_url="https://gemini.test/v1beta",
        transport=httpx.MockTransport(lambda request: httpx.Response(429)),
        sleep=slow_sleep,
    )

    async def scenario():
        task = asyncio.create_task(client.generate(REQUEST))
        await asyncio.sleep(0.05)
        task.cancel()
        await task

    with pytest.raises(asyncio.CancelledError):
        asyncio.run(scenario())
