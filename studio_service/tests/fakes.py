"""테스트용 인메모리 레포지토리/백엔드/저장소 구현."""

from __future__ import annotations

import asyncio
import threading
from collections import deque
from dataclasses import dataclass, field
from datetime import date
from io import BytesIO
from typing import Sequence

from PIL import Image

from common.eventbus.core import Event

from studio_service.app.exceptions import PersistenceError
from studio_service.app.models.credit import (
    CreditBalance,
    CreditReconciliation,
    CreditTransaction,
)
from studio_service.app.models.generation import (
    GeneratedImage,
    GenerationRecord,
    ModelRole,
    ReferenceImage,
)
from studio_service.app.services.credit_service import CreditService


TODAY = date(2026, 3, 10)
YESTERDAY = date(2026, 3, 9)


def image_bytes(image_format: str = "PNG") -> bytes:
    buffer = BytesIO()
    Image.new("RGB", (4, 4), color=(200, 30, 30)).save(buffer, format=image_format)
    return buffer.getvalue()


PNG_BYTES = image_bytes("PNG")


class InMemoryCreditBalanceRepository:
    """version 기반 CAS 를 흉내 내는 잔액 저장소.

    conflicts_before_success 만큼 CAS 를 일부러 실패시켜 경합을 재현한다.
    """

    def __init__(self) -> None:
        self.rows: dict[str, CreditBalance] = {}
        self.conflicts_before_success = 0
        self.cas_calls = 0
        self.raise_error: Exception | None = None
        self._lock = threading.Lock()

    def put(self, balance: CreditBalance) -> None:
        self.rows[balance.account_id] = balance

    def find_by_account_id(self, account_id: str) -> CreditBalance | None:
        if self.raise_error is not None:
            raise self.raise_error
        return self.rows.get(account_id)

    def insert_if_absent(self, balance: CreditBalance) -> CreditBalance:
        with self._lock:
            return self.rows.setdefault(balance.account_id, balance)

    def compare_and_swap(
        self, expected_version: int, balance: CreditBalance
    ) -> CreditBalance | None:
        with self._lock:
            self.cas_calls += 1
            if self.raise_error is not None:
                raise self.raise_error
            current = self.rows.get(balance.account_id)
            if self.conflicts_before_success > 0:
                self.conflicts_before_success -= 1
                return None
            if current is None or current.version != expected_version:
                return None
            updated = balance.with_changes(version=expected_version + 1)
            self.rows[balance.account_id] = updated
            return updated


class InMemoryCreditTransactionRepository:
    def __init__(self) -> None:
        self.created: list[CreditTransaction] = []
        self._lock = threading.Lock()
        self.raise_error: Exception | None = None

    def create(self, tx: CreditTransaction) -> CreditTransaction:
        with self._lock:
            self.created.append(tx)
        return tx

    def list_by_account(
        self, account_id: str, page: int, page_size: int
    ) -> tuple[list[CreditTransaction], int]:
        if self.raise_error is not None:
            raise self.raise_error
        items = [tx for tx in reversed(self.created) if tx.account_id == account_id]
        start = (page - 1) * page_size
        return items[start : start + page_size], len(items)


class InMemoryGenerationRecordRepository:
    def __init__(self) -> None:
        self.records: list[GenerationRecord] = []
        self.raise_error: Exception | None = None

    def insert(self, record: GenerationRecord) -> GenerationRecord:
        if self.raise_error is not None:
            raise self.raise_error
        if any(r.request_id == record.request_id for r in self.records):
            raise ValueError(f"duplicate request_id {record.request_id}")
        self.records.append(record)
        return record

    def find_by_request_id(
        self, account_id: str, request_id: str
    ) -> GenerationRecord | None:
        for record in self.records:
            if record.account_id == account_id and record.request_id == request_id:
                return record
        return None

    def list_by_account(
        self, account_id: str, page: int, page_size: int
    ) -> tuple[list[GenerationRecord], int]:
        items = [r for r in reversed(self.records) if r.account_id == account_id]
        start = (page - 1) * page_size
        return items[start : start + page_size], len(items)


class InMemoryReconciliationRepository:
    def __init__(self) -> None:
        self.items: dict[str, CreditReconciliation] = {}

    def record(self, item: CreditReconciliation) -> bool:
        if item.request_id in self.items:
            return False
        self.items[item.request_id] = item
        return True


class FakeArtifactStore:
    def __init__(self, fail_slots: set[int] | None = None) -> None:
        self.fail_slots = fail_slots or set()
        self.puts: list[tuple[str, str, int, str]] = []

    async def put(
        self,
        account_id: str,
        request_id: str,
        slot_index: int,
        data: bytes,
        mime_type: str,
    ) -> str:
        await asyncio.sleep(0)
        if slot_index in self.fail_slots:
            raise PersistenceError(f"store down for slot {slot_index}")
        self.puts.append((account_id, request_id, slot_index, mime_type))
        return f"https://cdn.example.com/{request_id}/{slot_index}.png"


class FakePublisher:
    def __init__(self) -> None:
        self.published: list[tuple[str, Event]] = []

    def publish(self, topic: str, event: Event) -> None:
        self.published.append((topic, event))

    def types(self, topic: str | None = None) -> list[str]:
        return [
            str(evt.payload["type"])
            for t, evt in self.published
            if topic is None or t == topic
        ]


Step = Exception | float | None


@dataclass
class ScriptedBackend:
    """모델별로 호출 순서대로 결과를 돌려주는 가짜 백엔드.

    스크립트 항목:
    - None: 성공
    - 예외 인스턴스: 해당 예외를 던진다
    - float: 그 시간(초)만큼 잠든 뒤 성공 (타임아웃 재현용)
    스크립트가 비면 성공한다.
    """

    primary: list[Step] = field(default_factory=list)
    fallback: list[Step] = field(default_factory=list)
    calls: list[tuple[ModelRole, str]] = field(default_factory=list)

    def __post_init__(self) -> None:
        self._queues = {
            ModelRole.PRIMARY: deque(self.primary),
            ModelRole.FALLBACK: deque(self.fallback),
        }

    def model_name(self, model: ModelRole) -> str:
        return f"{model.value}-model"

    async def generate(
        self,
        model: ModelRole,
        prompt: str,
        images: Sequence[ReferenceImage],
    ) -> GeneratedImage:
        self.calls.append((model, prompt))
        queue = self._queues[model]
        step = queue.popleft() if queue else None
        if isinstance(step, BaseException):
            raise step
        if isinstance(step, float):
            await asyncio.sleep(step)
        else:
            await asyncio.sleep(0)
        return GeneratedImage(
            data=PNG_BYTES, mime_type="image/png", model_name=self.model_name(model)
        )

    def count(self, model: ModelRole) -> int:
        return sum(1 for m, _ in self.calls if m is model)


class RecordingSleep:
    """asyncio.sleep 대신 주입해 대기 시간만 기록한다."""

    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)
        await asyncio.sleep(0)


@dataclass
class CreditFixture:
    service: CreditService
    balance_repo: InMemoryCreditBalanceRepository
    transaction_repo: InMemoryCreditTransactionRepository


def build_credit_fixture(
    balance: CreditBalance | None = None,
    *,
    today: date = TODAY,
    daily_reward_credits: int = 5,
    max_cas_attempts: int = 5,
) -> CreditFixture:
    balance_repo = InMemoryCreditBalanceRepository()
    transaction_repo = InMemoryCreditTransactionRepository()
    if balance is not None:
        balance_repo.put(balance)
    service = CreditService(
        balance_repo,
        transaction_repo,
        daily_reward_credits=daily_reward_credits,
        max_cas_attempts=max_cas_attempts,
        today=lambda: today,
    )
    return CreditFixture(
        service=service,
        balance_repo=balance_repo,
        transaction_repo=transaction_repo,
    )
