"""크레딧 관련 이벤트 정의."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Mapping, Self


class CreditEventType:
    """크레딧 이벤트 타입 상수."""

    RECONCILIATION_REQUIRED = "generation.reconciliation_required"


@dataclass(slots=True)
class ReconciliationRequiredEvent:
    """수동 정산 필요 이벤트.

    이미지는 사용자에게 전달됐지만 크레딧 차감(또는 예약분 환불)이 실패했을 때 발행된다.
    uncharged_amount 는 장부와 실제 전달 장수의 차이다. 양수면 받지 못한 크레딧,
    음수면 돌려주지 못한 예약분이다.
    """

    id: str
    type: str
    timestamp: str
    source: str
    version: str
    account_id: str
    request_id: str
    uncharged_amount: int
    reason: str

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
            uncharged_amount=int(data["uncharged_amount"]),
            reason=str(data["reason"]),
        )
