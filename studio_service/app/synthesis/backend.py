from __future__ import annotations

from typing import Protocol, Sequence

from ..models.generation import GeneratedImage, ModelRole, ReferenceImage


class SynthesisBackend(Protocol):
    """이미지 생성 백엔드 계약.

    실패는 반드시 UpstreamError 하위 예외(RateLimited/SafetyBlocked/Timeout/OtherError)로
    보고해야 한다. 그 밖의 예외는 오케스트레이터가 otherError 로 분류한다.
    """

    async def generate(
        self,
        model: ModelRole,
        prompt: str,
        images: Sequence[ReferenceImage],
    ) -> GeneratedImage:  # pragma: no cover - Protocol
        ...

    def model_name(self, model: ModelRole) -> str:  # pragma: no cover - Protocol
        ...
