"""Gemini generateContent REST 기반 SynthesisBackend 구현."""

from __future__ import annotations

import base64
import binascii
import logging
import re
from typing import Any, Sequence

import httpx

from common.llm.utils import normalize_model_name

from ..config import SynthesisConfig
from ..exceptions import (
    UpstreamOtherError,
    UpstreamRateLimited,
    UpstreamSafetyBlocked,
    UpstreamTimeout,
)
from ..models.generation import GeneratedImage, ModelRole, ReferenceImage


logger = logging.getLogger(__name__)


GEMINI_CONNECT_TIMEOUT_SECONDS = 10.0
# 호출별 데드라인은 오케스트레이터가 asyncio.wait_for 로 건다. 여기 값은 상한일 뿐이다.
GEMINI_READ_TIMEOUT_SECONDS = 300.0

_RATE_LIMIT_STATUS = "RESOURCE_EXHAUSTED"
_RATE_LIMIT_REGEX = re.compile(
    r"\bRESOURCE_EXHAUSTED\b|\brate[ _-]?limit|\bquota\b|\btoo many requests\b", re.IGNORECASE
)

# 의류/모델 컷에서 과차단을 줄이기 위해 모든 카테고리를 BLOCK_NONE 으로 둔다.
SAFETY_SETTINGS: list[dict[str, str]] = [
    {"category": category, "threshold": "BLOCK_NONE"}
    for category in (
        "HARM_CATEGORY_HARASSMENT",
        "HARM_CATEGORY_HATE_SPEECH",
        "HARM_CATEGORY_SEXUALLY_EXPLICIT",
        "HARM_CATEGORY_DANGEROUS_CONTENT",
    )
]


def is_rate_limited_error(resp: httpx.Response) -> bool:
    """429 가 아닌 응답이 쿼터 소진을 뜻하는지 구조화된 error 객체로 판정한다."""
    try:
        error = resp.json().get("error") or {}
    except (ValueError, AttributeError):
        error = None
    if isinstance(error, dict) and (error.get("status") or error.get("code")):
        return error.get("status") == _RATE_LIMIT_STATUS or error.get("code") == 429
    # JSON 이 아닌 본문은 프록시 오류 페이지 정도라 단어 경계로만 본다.
    return bool(_RATE_LIMIT_REGEX.search(resp.text[:500]))


def build_request_body(prompt: str, images: Sequence[ReferenceImage]) -> dict[str, Any]:
    parts: list[dict[str, Any]] = [
        {
            "inlineData": {
                "mimeType": image.mime_type,
                "data": base64.b64encode(image.data).decode("ascii"),
            }
        }
        for image in images
    ]
    parts.append({"text": prompt})
    return {
        "contents": [{"role": "user", "parts": parts}],
        "generationConfig": {"responseModalities": ["IMAGE"]},
        "safetySettings": SAFETY_SETTINGS,
    }


def extract_image(payload: dict[str, Any], model_name: str) -> GeneratedImage:
    """응답에서 첫 번째 이미지 파트를 꺼낸다. 실패 사유에 맞는 예외를 던진다."""

    feedback = payload.get("promptFeedback") or {}
    block_reason = feedback.get("blockReason")
    if block_reason:
        raise UpstreamSafetyBlocked(f"prompt blocked: {block_reason}")

    candidates = payload.get("candidates") or []
    if not candidates:
        raise UpstreamOtherError("response has no candidates")

    candidate = candidates[0]
    if candidate.get("finishReason") in {"SAFETY", "IMAGE_SAFETY", "PROHIBITED_CONTENT"}:
        raise UpstreamSafetyBlocked(
            f"output blocked: finishReason={candidate.get('finishReason')}"
        )

    for part in (candidate.get("content") or {}).get("parts") or []:
        inline = part.get("inlineData") or part.get("inline_data")
        if not inline or not inline.get("data"):
            continue
        try:
            data = base64.b64decode(inline["data"], validate=True)
        except (binascii.Error, ValueError) as exc:
            raise UpstreamOtherError(f"invalid image data in response: {exc}") from exc
        return GeneratedImage(
            data=data,
            mime_type=inline.get("mimeType") or inline.get("mime_type") or "image/png",
            model_name=model_name,
        )

    raise UpstreamOtherError(
        f"response has no image part (finishReason={candidate.get('finishReason')})"
    )


class GeminiSynthesisBackend:
    """httpx.AsyncClient 로 Gemini generateContent 를 호출한다.

    클라이언트는 앱 시작 시 한 번 만들어 모든 요청이 공유하며, aclose() 로 정리한다.
    """

    def __init__(
        self,
        config: SynthesisConfig,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._config = config
        self._client = client or httpx.AsyncClient(
            base_url=config.base_url,
            timeout=httpx.Timeout(
                GEMINI_READ_TIMEOUT_SECONDS, connect=GEMINI_CONNECT_TIMEOUT_SECONDS
            ),
        )

    def model_name(self, model: ModelRole) -> str:
        if model is ModelRole.PRIMARY:
            return normalize_model_name(self._config.primary_model)
        return normalize_model_name(self._config.fallback_model)

    async def aclose(self) -> None:
        await self._client.aclose()

    async def generate(
        self,
        model: ModelRole,
        prompt: str,
        images: Sequence[ReferenceImage],
    ) -> GeneratedImage:
        model_name = self.model_name(model)
        try:
            resp = await self._client.post(
                f"/models/{model_name}:generateContent",
                headers={"x-goog-api-key": self._config.api_key},
                json=build_request_body(prompt, images),
            )
        except httpx.TimeoutException as exc:
            raise UpstreamTimeout(f"{model_name} timed out: {exc}") from exc
        except httpx.RequestError as exc:
            raise UpstreamOtherError(f"{model_name} request failed: {exc}") from exc

        if resp.status_code == 429:
            raise UpstreamRateLimited(f"{model_name} rate limited: {resp.text[:200]}")
        if resp.status_code != 200:
            body_sample = resp.text[:500]
            message = f"{model_name} returned status {resp.status_code}: {body_sample}"
            if is_rate_limited_error(resp):
                raise UpstreamRateLimited(message)
            raise UpstreamOtherError(message)

        try:
            payload = resp.json()
        except ValueError as exc:
            raise UpstreamOtherError(f"{model_name} returned invalid JSON") from exc

        return extract_image(payload, model_name)
