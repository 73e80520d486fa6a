"""
services/llm/llm_gemini.py

Gemini 성적 코멘트 생성 클라이언트
- 학생 이름 + 과목별 점수 + 가중 평균 → 짧은 격려 코멘트
- 429 / 5xx / 네트워크 오류 / 빈 응답은 지수 백오프로 재시도 (2^attempt 초 + 지터)
- 그 외 HTTP 오류는 즉시 실패
- 최종 실패 시 원본 에러 대신 고정 메시지(NARRATIVE_FAILED_MESSAGE)를 올림
- 호출자가 task.cancel() 하면 CancelledError 그대로 전파 (세션 상태는 건드리지 않음)
"""

import asyncio
import json
import logging
import random
from typing import Awaitable, Callable, Optional

import httpx

from config.settings import settings
from services.grading import SUBJECT_LABELS
from services.llm.base import NarrativeClient, NarrativeRequest
from utils.errors import NarrativeError

logger = logging.getLogger(__name__)

NARRATIVE_FAILED_MESSAGE = "성적 코멘트를 생성하지 못했습니다. 잠시 후 다시 시도하세요."

SYSTEM_PROMPT = (
    "You are an experienced, empathetic homeroom tutor. "
    "Given a student's name, subject scores and weighted average, write a short, encouraging summary. "
    "Use at most three sentences: name one strength, one area to improve, and end with encouragement."
)


class _RetryableFailure(Exception):
    pass


def build_prompt(request: NarrativeRequest) -> str:
    subject_grades = ", ".join(
        f"{SUBJECT_LABELS.get(subject, subject)}: {score}" for subject, score in request.scores.items()
    )
    return (
        f"Write grade commentary for student {request.student_name}. "
        f"Scores: {subject_grades}, weighted average: {request.weighted_average:.2f}."
    )


def build_payload(request: NarrativeRequest, temperature: float, max_tokens: int) -> dict:
    return {
        "generationConfig": {"temperature": temperature, "maxOutputTokens": max_tokens},
        "systemInstruction": {"parts": [{"text": SYSTEM_PROMPT}]},
        "contents": [{"role": "user", "parts": [{"text": build_prompt(request)}]}],
    }


def extract_text(data: dict) -> Optional[str]:
    try:
        return data["candidates"][0]["content"]["parts"][0]["text"]
    except (KeyError, IndexError, TypeError):
        return None


class GeminiNarrativeClient(NarrativeClient):
    def __init__(
        self,
        api_key: Optional[str] = None,
        model: Optional[str] = None,
        base_url: Optional[str] = None,
        max_retries: Optional[int] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        jitter: Callable[[], float] = random.random,
    ):
        self.api_key = settings.GEMINI_API_KEY if api_key is None else api_key
        self.model = model or settings.GEMINI_MODEL
        self.base_url = (base_url or settings.GEMINI_API_BASE_URL).rstrip("/")
        self.max_retries = max_retries or settings.LLM_MAX_RETRIES
        self.timeout = timeout or settings.LLM_TIMEOUT
        self._transport = transport
        self._sleep = sleep
        self._jitter = jitter

    @property
    def url(self) -> str:
        return f"{self.base_url}/models/{self.model}:generateContent"

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            timeout=httpx.Timeout(self.timeout, connect=10.0),
            transport=self._transport,
        )

    async def _call_once(self, client: httpx.AsyncClient, payload: dict) -> str:
        try:
            r = await client.post(self.url, params={"key": self.api_key}, json=payload)
        except httpx.TransportError as e:
            raise _RetryableFailure(f"transport error: {e}") from e

        if r.status_code == 429 or r.status_code >= 500:
            raise _RetryableFailure(f"server error: {r.status_code}")
        if r.is_error:
            logger.error("Gemini request rejected: HTTP %s", r.status_code)
            raise NarrativeError(NARRATIVE_FAILED_MESSAGE)

        try:
            data = r.json()
        except json.JSONDecodeError as e:
            raise _RetryableFailure("invalid JSON response") from e

        logger.debug("Gemini raw response: %s", json.dumps(data, ensure_ascii=False))
        text = extract_text(data)
        if not text:
            raise _RetryableFailure("Gemini response is empty or invalid")
        return text

    async def generate(self, request: NarrativeRequest) -> str:
        payload = build_payload(request, settings.LLM_TEMPERATURE, settings.LLM_MAX_TOKENS)
        async with self._client() as client:
            for attempt in range(self.max_retries):
                try:
                    return await self._call_once(client, payload)
                except _RetryableFailure as e:
                    if attempt == self.max_retries - 1:
                        logger.error(f"Gemini call failed after {self.max_retries} attempts: {e}")
                        break
                    delay = 2 ** attempt + self._jitter()
                    logger.warning(f"Gemini call failed ({e}), retrying in {delay:.1f}s...")
                    await self._sleep(delay)
        raise NarrativeError(NARRATIVE_FAILED_MESSAGE)
