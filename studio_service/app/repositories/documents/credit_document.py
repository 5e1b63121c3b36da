"""크레딧 MongoDB 도큐먼트.

잔액은 계정당 1행이며 daily_date 는 'YYYY-MM-DD' 문자열로 저장한다.
"""

from __future__ import annotations

from typing import Any

from common.mongo.types import (
    BaseDocument,
    MongoDate,
    from_object_id,
    to_iso_date,
)
from common.types.datetime import utc_now

from ...models.credit import (
    CreditBalance,
    CreditReconciliation,
    CreditTransaction,
    CreditTransactionType,
)


class CreditBalanceDocument(BaseDocument):
    """MongoDB credit_balances 컬렉션 도큐먼트 모델."""

    account_id: str
    daily: int = 0
    daily_date: MongoDate = None
    subscription: int = 0
    signup: int = 0
    admin_grant: int = 0
    purchased: int = 0
    version: int = 0

    @classmethod
    def from_domain(cls, balance: CreditBalance) -> "CreditBalanceDocument":
        now = utc_now()
        return cls(
            account_id=balance.account_id,
            daily=balance.daily,
            daily_date=balance.daily_date,
            subscription=balance.subscription,
            signup=balance.signup,
            admin_grant=balance.admin_grant,
            purchased=balance.purchased,
            version=balance.version,
            created_at=balance.created_at or now,
            updated_at=balance.updated_at or now,
        )

    def to_domain(self) -> CreditBalance:
        return CreditBalance(
            account_id=self.account_id,
            daily=self.daily,
            daily_date=self.daily_date,
            subscription=self.subscription,
            signup=self.signup,
            admin_grant=self.admin_grant,
            purchased=self.purchased,
            version=self.version,
            created_at=self.created_at,
            updated_at=self.updated_at,
        )

    def pool_fields(self) -> dict[str, Any]:
        """CAS $set 에 쓰는 풀 필드만 반환한다."""
        return {
            "daily": self.daily,
            "daily_date": to_iso_date(self.daily_date),
            "subscription": self.subscription,
            "signup": self.signup,
            "admin_grant": self.admin_grant,
            "purchased": self.purchased,
        }

    def to_mongo_record(self) -> dict[str, Any]:
        record = super().to_mongo_record()
        record["daily_date"] = to_iso_date(self.daily_date)
        return record


class CreditTransactionDocument(BaseDocument):
    """MongoDB credit_transactions 컬렉션 도큐먼트 모델."""

    account_id: str
    type: CreditTransactionType
    amount: int
    reason: str
    request_id: str | None = None
    metadata: dict | None = None

    @classmethod
    def from_domain(cls, tx: CreditTransaction) -> "CreditTransactionDocument":
        return cls(
            account_id=tx.account_id,
            type=tx.type,
            amount=tx.amount,
            reason=tx.reason,
            request_id=tx.request_id,
            metadata=tx.metadata,
            created_at=tx.created_at,
            updated_at=tx.updated_at,
        )

    def to_domain(self) -> CreditTransaction:
        return CreditTransaction(
            id=from_object_id(self.id),
            account_id=self.account_id,
            type=self.type,
            amount=self.amount,
            reason=self.reason,
            request_id=self.request_id,
            metadata=self.metadata,
            created_at=self.created_at,
            updated_at=self.updated_at,
        )

    def to_mongo_record(self) -> dict[str, Any]:
        record = super().to_mongo_record()
        record["type"] = self.type.value
        return record


class CreditReconciliationDocument(BaseDocument):
    """MongoDB credit_reconciliations 컬렉션 도큐먼트 모델."""

    request_id: str
    account_id: str
    uncharged_amount: int
    reason: str
    event_id: str
    resolved: bool = False

    @classmethod
    def from_domain(
        cls, item: CreditReconciliation
    ) -> "CreditReconciliationDocument":
        return cls(
            request_id=item.request_id,
            account_id=item.account_id,
            uncharged_amount=item.uncharged_amount,
            reason=item.reason,
            event_id=item.event_id,
            resolved=item.resolved,
            created_at=item.created_at,
            updated_at=item.updated_at,
        )
