from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from ...models.generation import GenerationRecord, SlotSummary


class GenerateRequest(BaseModel):
    """이미지 생성 요청.

    images 는 data URL, base64 문자열, http(s) URL 을 섞어서 보낼 수 있다.
    """

    model_config = ConfigDict(extra="forbid", protected_namespaces=())

    images: list[str] = Field(default_factory=list)
    requested_count: int = 1
    shot_type: str = "product"
    prompt: str | None = Field(default=None, max_length=4000)
    model_style: str | None = None
    model_gender: str | None = None
    reserve_credits: bool = False


class GenerationStats(BaseModel):
    requested: int
    succeeded: int
    failed: int
    fallback_count: int
    duration_ms: int
    credits_charged: int


class GenerateResponse(BaseModel):
    model_config = ConfigDict(protected_namespaces=())

    success: bool
    request_id: str
    images: list[str]
    model_types: list[str]
    error: str | None = None
    stats: GenerationStats

    @classmethod
    def from_record(cls, record: GenerationRecord) -> "GenerateResponse":
        succeeded_slots = [s for s in record.slots if s.url]
        return cls(
            success=record.succeeded_count > 0,
            request_id=record.request_id,
            images=list(record.succeeded_image_urls),
            model_types=[s.model.value if s.model else "" for s in succeeded_slots],
            error=None if record.succeeded_count > 0 else "RESOURCE_BUSY",
            stats=GenerationStats(
                requested=record.requested_count,
                succeeded=record.succeeded_count,
                failed=record.failed_slot_count,
                fallback_count=record.fallback_count,
                duration_ms=record.total_duration_ms,
                credits_charged=record.credits_charged,
            ),
        )


class GenerationRecordResponse(BaseModel):
    request_id: str
    status: str
    requested_count: int
    succeeded_image_urls: list[str]
    failed_slot_count: int
    total_duration_ms: int
    credits_charged: int
    credits_refunded: int
    needs_reconciliation: bool
    failure_reason: str | None
    fallback_count: int
    slots: list[SlotSummary]
    inputs: dict[str, Any]
    created_at: datetime

    @classmethod
    def from_domain(cls, record: GenerationRecord) -> "GenerationRecordResponse":
        return cls(
            request_id=record.request_id,
            status=record.status.value,
            requested_count=record.requested_count,
            succeeded_image_urls=list(record.succeeded_image_urls),
            failed_slot_count=record.failed_slot_count,
            total_duration_ms=record.total_duration_ms,
            credits_charged=record.credits_charged,
            credits_refunded=record.credits_refunded,
            needs_reconciliation=record.needs_reconciliation,
            failure_reason=record.failure_reason.value if record.failure_reason else None,
            fallback_count=record.fallback_count,
            slots=list(record.slots),
            inputs=dict(record.inputs),
            created_at=record.created_at,
        )
