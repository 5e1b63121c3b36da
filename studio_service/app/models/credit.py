"""크레딧 도메인 모델 (계정당 1행, 5개 풀).

계정의 잔액은 만료/우선순위 규칙이 다른 다섯 개의 풀로 나뉜다.
소비 시 daily → subscription → signup → admin_grant → purchased 순으로 차감한다.
"""

from __future__ import annotations

from datetime import date, datetime
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class CreditPool(StrEnum):
    """크레딧 풀 이름. 정의 순서가 곧 소비 우선순위다."""

    DAILY = "daily"
    SUBSCRIPTION = "subscription"
    SIGNUP = "signup"
    ADMIN_GRANT = "admin_grant"
    PURCHASED = "purchased"


CONSUME_PRIORITY: tuple[CreditPool, ...] = tuple(CreditPool)


class CreditBalance(BaseModel):
    """계정 크레딧 잔액 도메인 모델.

    - 모든 풀은 0 이상이어야 하며, 위반 시 pydantic 검증 에러가 발생한다.
    - daily 는 daily_date 가 오늘(UTC)일 때만 유효하다. 지난 날짜의 값은 0 으로 취급하되
      다음 일일 지급 전까지 물리적으로 지우지 않는다.
    - version 은 저장소의 compare-and-swap 에 사용하는 낙관적 잠금 카운터다.
    """

    model_config = ConfigDict(frozen=True)

    account_id: str
    daily: int = Field(default=0, ge=0)
    daily_date: date | None = None
    subscription: int = Field(default=0, ge=0)
    signup: int = Field(default=0, ge=0)
    admin_grant: int = Field(default=0, ge=0)
    purchased: int = Field(default=0, ge=0)
    version: int = Field(default=0, ge=0)
    created_at: datetime | None = None
    updated_at: datetime | None = None

    def pool(self, name: CreditPool) -> int:
        return int(getattr(self, name.value))

    def with_changes(self, **changes: Any) -> "CreditBalance":
        """변경 사항을 반영한 새 잔액을 검증과 함께 생성한다.

        model_copy 는 검증을 건너뛰므로 풀 음수 방지를 위해 다시 validate 한다.
        """
        data = self.model_dump()
        data.update(changes)
        return CreditBalance.model_validate(data)


class CreditsInfo(BaseModel):
    """조회용 잔액 요약. daily 는 이미 만료 여부가 반영된 값이다."""

    available: int
    daily: int
    subscription: int
    signup: int
    admin_grant: int
    purchased: int
    daily_expired: bool


class CreditTransactionType(StrEnum):
    CONSUME = "consume"
    REFUND = "refund"
    DAILY_GRANT = "daily_grant"
    RESERVE = "reserve"


class CreditTransaction(BaseModel):
    """크레딧 트랜잭션 로그 도메인 모델."""

    id: str | None = None
    account_id: str
    type: CreditTransactionType
    amount: int
    reason: str
    request_id: str | None = None
    metadata: dict | None = None
    created_at: datetime
    updated_at: datetime


class DailyRewardStatus(BaseModel):
    """일일 보상 수령 가능 여부 (지급하지 않고 조회만 한다)."""

    can_claim: bool
    reward_amount: int
    claimed_date: date | None = None


class CreditReconciliation(BaseModel):
    """수동 정산 대기 항목."""

    id: str | None = None
    request_id: str
    account_id: str
    uncharged_amount: int
    reason: str
    event_id: str
    resolved: bool = False
    created_at: datetime
    updated_at: datetime
