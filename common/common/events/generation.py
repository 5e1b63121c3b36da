"""이미지 생성 요청 관련 이벤트 정의."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Mapping, Self


class GenerationEventType:
    """생성 이벤트 타입 상수."""

    GENERATION_COMPLETED = "generation.completed"
    GENERATION_FAILED = "generation.failed"


@dataclass(slots=True)
class GenerationCompletedEvent:
    """생성 완료 이벤트.

    1장 이상 생성되어 기록이 완료 상태로 남으면 발행된다 (부분 성공 포함).
    """

    id: str
    type: str
    timestamp: str
    source: str
    version: str
    account_id: str
    request_id: str
    requested: int
    succeeded: int
    credits_charged: int
    fallback_count: int
    duration_ms: int
    image_urls: list[str] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> Self:
        return cls(
            id=str(data["id"]),
            type=str(data["type"]),
            timestamp=str(data["timestamp"]),
            source=str(data["source"]),
            version=str(data.get("version", "1.0")),
            account_id=str(data["account_id"]),
            request_id=str(data["request_id"]),
            requested=int(data["requested"]),
            succeeded=int(data["succeeded"]),
            credits_charged=int(data["credits_charged"]),
            fallback_count=int(data.get("fallback_count", 0)),
            duration_ms=int(data["duration_ms"]),
            image_urls=[str(url) for url in data.get("image_urls") or []],
        )


@dataclass(slots=True)
class GenerationFailedEvent:
    """생성 실패 이벤트. 성공한 슬롯이 하나도 없을 때 발행된다."""

    id: str
    type: str
    timestamp: str
    source: str
    version: str
    account_id: str
    request_id: str
    requested: int
    failure_reason: str
    credits_refunded: int
    duration_ms: int

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> Self:
        return cls(
            id=str(data["id"]),
            type=str(data["type"]),
            timestamp=str(data["timestamp"]),
            source=str(data["source"]),
            version=str(data.get("version", "1.0")),
            account_id=str(data["account_id"]),
            request_id=str(data["request_id"]),
            requested=int(data["requested"]),
            failure_reason=str(data["failure_reason"]),
            credits_refunded=int(data.get("credits_refunded", 0)),
            duration_ms=int(data["duration_ms"]),
        )
