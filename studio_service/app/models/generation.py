"""이미지 생성 요청 도메인 모델.

요청 하나는 requested_image_count 개의 슬롯으로 나뉘고, 슬롯마다 모델 호출 시도
(SynthesisAttempt)가 순서대로 쌓인다. 요청은 정확히 하나의 GenerationRecord 로 끝난다.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class ShotType(StrEnum):
    PRODUCT = "product"
    MODEL = "model"
    LIFESTYLE = "lifestyle"


class ModelRole(StrEnum):
    PRIMARY = "primary"
    FALLBACK = "fallback"


class AttemptOutcome(StrEnum):
    SUCCESS = "success"
    RATE_LIMITED = "rateLimited"
    SAFETY_BLOCKED = "safetyBlocked"
    TIMEOUT = "timeout"
    OTHER_ERROR = "otherError"


class SlotStatus(StrEnum):
    SUCCESS = "success"
    FAILED = "failed"


# 합성은 성공했지만 ArtifactStore 저장이 실패해 슬롯이 실패로 강등된 경우의 사유.
PERSISTENCE_ERROR = "persistenceError"


class GenerationStatus(StrEnum):
    COMPLETED = "completed"
    FAILED = "failed"


class FailureReason(StrEnum):
    MODELS_EXHAUSTED = "models_exhausted"
    PERSISTENCE_UNAVAILABLE = "persistence_unavailable"


@dataclass(slots=True)
class ReferenceImage:
    data: bytes
    mime_type: str = "image/jpeg"


@dataclass(slots=True)
class GeneratedImage:
    data: bytes
    mime_type: str
    model_name: str


@dataclass(slots=True)
class GenerationInputs:
    images: list[ReferenceImage]
    shot_type: ShotType = ShotType.PRODUCT
    prompt: str | None = None
    model_style: str | None = None
    model_gender: str | None = None

    def summary(self) -> dict[str, Any]:
        """기록에 남길 입력 요약. 이미지 바이트는 저장하지 않는다."""
        return {
            "image_count": len(self.images),
            "shot_type": self.shot_type.value,
            "custom_prompt": bool(self.prompt),
            "model_style": self.model_style,
            "model_gender": self.model_gender,
        }


@dataclass(slots=True)
class GenerationRequest:
    request_id: str
    account_id: str
    requested_image_count: int
    inputs: GenerationInputs
    created_at: datetime
    reserve_credits: bool = False


@dataclass(slots=True)
class SynthesisAttempt:
    request_id: str
    image_slot: int
    model: ModelRole
    attempt_number: int
    outcome: AttemptOutcome
    latency_ms: int
    error_message: str | None = None


@dataclass(slots=True)
class SlotOutcome:
    image_slot: int
    status: SlotStatus
    image: GeneratedImage | None = None
    model: ModelRole | None = None
    attempts: list[SynthesisAttempt] = field(default_factory=list)
    failure_reason: str | None = None

    @property
    def succeeded(self) -> bool:
        return self.status is SlotStatus.SUCCESS

    def downgrade(self, reason: str) -> None:
        """합성 이후 단계(저장 등)의 실패로 슬롯을 실패 처리한다."""
        self.status = SlotStatus.FAILED
        self.image = None
        self.failure_reason = reason


class SlotSummary(BaseModel):
    """기록에 남는 슬롯별 결과 요약."""

    model_config = ConfigDict(protected_namespaces=())

    image_slot: int
    status: SlotStatus
    model: ModelRole | None = None
    model_name: str | None = None
    attempts: int = 0
    outcomes: list[AttemptOutcome] = Field(default_factory=list)
    url: str | None = None
    failure_reason: str | None = None


class GenerationRecord(BaseModel):
    """요청당 하나만 기록되는 불변 감사 레코드."""

    model_config = ConfigDict(frozen=True)

    id: str | None = None
    request_id: str
    account_id: str
    status: GenerationStatus
    requested_count: int
    succeeded_image_urls: list[str]
    failed_slot_count: int
    total_duration_ms: int
    credits_charged: int
    credits_refunded: int = 0
    needs_reconciliation: bool = False
    failure_reason: FailureReason | None = None
    fallback_count: int = 0
    slots: list[SlotSummary] = Field(default_factory=list)
    inputs: dict[str, Any] = Field(default_factory=dict)
    created_at: datetime

    @property
    def succeeded_count(self) -> int:
        return len(self.succeeded_image_urls)
