from __future__ import annotations

from dataclasses import asdict

import pytest

from common.eventbus.core import Event
from common.eventbus.helpers import new_event_envelope, new_json_event
from common.eventbus.topics import TOPIC_CREDIT
from common.events.credit import CreditEventType, ReconciliationRequiredEvent
from studio_service.app.event_handlers import reconciliation_handler

from .fakes import InMemoryReconciliationRepository


class FakeKafkaEventBus:
    instances: list["FakeKafkaEventBus"] = []
    next_event: Event | None = None

    def __init__(self, brokers: str) -> None:
        self.brokers = brokers
        self.subscribe_calls: list[dict] = []
        self.closed = False
        self.__class__.instances.append(self)

    def subscribe(self, *, group_id, topic, handler, stop_flag) -> None:
        self.subscribe_calls.append(
            {
                "group_id": group_id,
                "topic": topic,
                "handler": handler,
                "stop_flag": stop_flag,
            }
        )
        if self.__class__.next_event is not None:
            handler(self.__class__.next_event)

    def close(self) -> None:
        self.closed = True


@pytest.fixture(autouse=True)
def reset_fake_kafka_event_bus_state() -> None:
    FakeKafkaEventBus.instances = []
    FakeKafkaEventBus.next_event = None


def _reconciliation_event(amount: int = 2, reason: str = "insufficient_credits") -> Event:
    event = ReconciliationRequiredEvent(
        **new_event_envelope(CreditEventType.RECONCILIATION_REQUIRED, "studio-service"),
        account_id="acct-1",
        request_id="req-1",
        uncharged_amount=amount,
        reason=reason,
    )
    payload = asdict(event)
    return new_json_event(payload=payload, event_id=payload["id"])


def test_handle_credit_event_records_reconciliation():
    repo = InMemoryReconciliationRepository()
    evt = _reconciliation_event()

    reconciliation_handler.handle_credit_event(evt, reconciliation_repo=repo)

    item = repo.items["req-1"]
    assert item.account_id == "acct-1"
    assert item.uncharged_amount == 2
    assert item.reason == "insufficient_credits"
    assert item.event_id == evt.id
    assert item.resolved is False


def test_handle_credit_event_is_idempotent_per_request():
    repo = InMemoryReconciliationRepository()

    reconciliation_handler.handle_credit_event(
        _reconciliation_event(), reconciliation_repo=repo
    )
    reconciliation_handler.handle_credit_event(
        _reconciliation_event(amount=-1, reason="refund_failed"),
        reconciliation_repo=repo,
    )

    assert len(repo.items) == 1
    assert repo.items["req-1"].uncharged_amount == 2


def test_handle_credit_event_ignores_other_types():
    repo = InMemoryReconciliationRepository()
    evt = new_json_event(payload={"id": "evt-1", "type": "credit.unknown"})

    reconciliation_handler.handle_credit_event(evt, reconciliation_repo=repo)

    assert repo.items == {}


def test_handle_credit_event_raises_on_broken_payload():
    repo = InMemoryReconciliationRepository()
    evt = new_json_event(
        payload={"id": "evt-1", "type": CreditEventType.RECONCILIATION_REQUIRED}
    )

    with pytest.raises(KeyError):
        reconciliation_handler.handle_credit_event(evt, reconciliation_repo=repo)


def test_run_reconciliation_consumer_subscribes_and_closes(monkeypatch):
    repo = InMemoryReconciliationRepository()
    FakeKafkaEventBus.next_event = _reconciliation_event()
    monkeypatch.setattr(reconciliation_handler, "get_brokers", lambda: "kafka:9092")
    monkeypatch.setattr(
        reconciliation_handler, "get_group_id", lambda name: f"studio-{name}"
    )
    monkeypatch.setattr(reconciliation_handler, "KafkaEventBus", FakeKafkaEventBus)
    monkeypatch.setattr(
        reconciliation_handler, "ReconciliationRepository", lambda database: repo
    )

    stop_flag = [False]
    reconciliation_handler.run_reconciliation_consumer(stop_flag, database=object())

    [bus] = FakeKafkaEventBus.instances
    assert bus.brokers == "kafka:9092"
    [call] = bus.subscribe_calls
    assert call["group_id"] == "studio-reconciliation"
    assert call["topic"] == TOPIC_CREDIT
    assert call["stop_flag"] is stop_flag
    assert bus.closed is True
    assert "req-1" in repo.items
