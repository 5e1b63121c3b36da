"""생성 기록 MongoDB 도큐먼트."""

from __future__ import annotations

from typing import Any

from common.mongo.types import BaseDocument, from_object_id

from ...models.generation import (
    FailureReason,
    GenerationRecord,
    GenerationStatus,
    SlotSummary,
)


class GenerationRecordDocument(BaseDocument):
    """MongoDB generation_records 컬렉션 도큐먼트 모델."""

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
    slots: list[SlotSummary] = []
    inputs: dict[str, Any] = {}

    @classmethod
    def from_domain(cls, record: GenerationRecord) -> "GenerationRecordDocument":
        return cls(
            request_id=record.request_id,
            account_id=record.account_id,
            status=record.status,
            requested_count=record.requested_count,
            succeeded_image_urls=list(record.succeeded_image_urls),
            failed_slot_count=record.failed_slot_count,
            total_duration_ms=record.total_duration_ms,
            credits_charged=record.credits_charged,
            credits_refunded=record.credits_refunded,
            needs_reconciliation=record.needs_reconciliation,
            failure_reason=record.failure_reason,
            fallback_count=record.fallback_count,
            slots=list(record.slots),
            inputs=dict(record.inputs),
            created_at=record.created_at,
            # 기록은 불변이므로 updated_at 은 생성 시각과 같다.
            updated_at=record.created_at,
        )

    def to_domain(self) -> GenerationRecord:
        return GenerationRecord(
            id=from_object_id(self.id),
            request_id=self.request_id,
            account_id=self.account_id,
            status=self.status,
            requested_count=self.requested_count,
            succeeded_image_urls=self.succeeded_image_urls,
            failed_slot_count=self.failed_slot_count,
            total_duration_ms=self.total_duration_ms,
            credits_charged=self.credits_charged,
            credits_refunded=self.credits_refunded,
            needs_reconciliation=self.needs_reconciliation,
            failure_reason=self.failure_reason,
            fallback_count=self.fallback_count,
            slots=self.slots,
            inputs=self.inputs,
            created_at=self.created_at,
        )

    def to_mongo_record(self) -> dict[str, Any]:
        # enum 값을 문자열로 저장하기 위해 json 모드로 덤프하고 datetime 만 되돌린다.
        record = self.model_dump(
            by_alias=True, exclude_none=True, exclude={"id"}, mode="json"
        )
        if self.id is not None:
            record["_id"] = self.id
        record["created_at"] = self.created_at
        record["updated_at"] = self.updated_at
        return record
