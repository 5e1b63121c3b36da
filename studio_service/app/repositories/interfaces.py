from __future__ import annotations

from typing import Protocol

from ..models.credit import CreditBalance, CreditReconciliation, CreditTransaction
from ..models.generation import GenerationRecord


class CreditBalanceRepositoryInterface(Protocol):
    """CreditBalanceRepository가 따라야 할 최소한의 계약.

    - 계정당 잔액 행은 하나이며, 갱신은 version 을 조건으로 하는 compare-and-swap 이다.
    - Service 레이어는 이 인터페이스에만 의존하고, 구체 구현(Mongo 등)은 몰라도 된다.
    """

    def find_by_account_id(
        self, account_id: str
    ) -> CreditBalance | None:  # pragma: no cover - Protocol
        ...

    def insert_if_absent(
        self, balance: CreditBalance
    ) -> CreditBalance:  # pragma: no cover - Protocol
        """행이 없으면 balance 로 생성하고, 이미 있으면 기존 행을 반환한다."""
        ...

    def compare_and_swap(
        self, expected_version: int, balance: CreditBalance
    ) -> CreditBalance | None:  # pragma: no cover - Protocol
        """저장된 version 이 expected_version 일 때만 balance 로 교체한다.

        성공 시 version 이 1 증가한 새 잔액, 경합으로 실패하면 None 을 반환한다.
        """
        ...


class CreditTransactionRepositoryInterface(Protocol):
    def create(
        self, tx: CreditTransaction
    ) -> CreditTransaction:  # pragma: no cover - Protocol
        ...

    def list_by_account(
        self, account_id: str, page: int, page_size: int
    ) -> tuple[list[CreditTransaction], int]:  # pragma: no cover - Protocol
        ...


class GenerationRecordRepositoryInterface(Protocol):
    """생성 기록은 request_id 당 한 번만 쓰이고 수정되지 않는다."""

    def insert(
        self, record: GenerationRecord
    ) -> GenerationRecord:  # pragma: no cover - Protocol
        ...

    def find_by_request_id(
        self, account_id: str, request_id: str
    ) -> GenerationRecord | None:  # pragma: no cover - Protocol
        ...

    def list_by_account(
        self, account_id: str, page: int, page_size: int
    ) -> tuple[list[GenerationRecord], int]:  # pragma: no cover - Protocol
        ...


class ReconciliationRepositoryInterface(Protocol):
    def record(
        self, item: CreditReconciliation
    ) -> bool:  # pragma: no cover - Protocol
        """정산 항목을 저장한다. 같은 request_id 가 이미 있으면 False."""
        ...
