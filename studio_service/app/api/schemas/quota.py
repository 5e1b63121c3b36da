from __future__ import annotations

from datetime import date, datetime

from pydantic import BaseModel

from ...models.credit import CreditsInfo, CreditTransaction


class QuotaResponse(BaseModel):
    """풀별 잔액. daily 는 만료 여부가 반영된 값이다."""

    account_id: str
    available: int
    daily: int
    subscription: int
    signup: int
    admin_grant: int
    purchased: int
    daily_expired: bool

    @classmethod
    def from_info(cls, account_id: str, info: CreditsInfo) -> "QuotaResponse":
        return cls(account_id=account_id, **info.model_dump())


class DailyRewardClaimResponse(BaseModel):
    credited: bool
    credits_added: int
    quota: QuotaResponse


class DailyRewardStatusResponse(BaseModel):
    can_claim: bool
    reward_amount: int
    claimed_date: date | None = None


class CreditTransactionResponse(BaseModel):
    """크레딧 트랜잭션 응답."""

    id: str | None
    type: str
    amount: int
    reason: str
    request_id: str | None
    created_at: datetime

    @classmethod
    def from_domain(cls, tx: CreditTransaction) -> "CreditTransactionResponse":
        return cls(
            id=tx.id,
            type=tx.type.value,
            amount=tx.amount,
            reason=tx.reason,
            request_id=tx.request_id,
            created_at=tx.created_at,
        )
