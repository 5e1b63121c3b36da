"""정산 이벤트 핸들러.

studio.credit 토픽의 generation.reconciliation_required 이벤트를 소비해
credit_reconciliations 컬렉션에 수동 정산 대기 항목을 남긴다.
"""

from __future__ import annotations

import logging

from pymongo.database import Database

from common.eventbus.config import get_brokers, get_group_id
from common.eventbus.core import Event
from common.eventbus.kafka import KafkaEventBus
from common.eventbus.topics import TOPIC_CREDIT
from common.events.credit import CreditEventType, ReconciliationRequiredEvent
from common.types.datetime import utc_now

from ..models.credit import CreditReconciliation
from ..repositories.interfaces import ReconciliationRepositoryInterface
from ..repositories.reconciliation_repository import ReconciliationRepository


logger = logging.getLogger(__name__)


def handle_credit_event(
    evt: Event, *, reconciliation_repo: ReconciliationRepositoryInterface
) -> None:
    """크레딧 이벤트를 처리한다. 정산 요청 외의 타입은 무시한다."""
    payload = evt.payload
    if not isinstance(payload, dict):
        logger.error("unexpected payload type for event %s: %r", evt.id, type(payload))
        return

    event_type = str(payload.get("type", ""))
    if event_type != CreditEventType.RECONCILIATION_REQUIRED:
        logger.debug("ignoring unknown credit event type=%s id=%s", event_type, evt.id)
        return

    try:
        event = ReconciliationRequiredEvent.from_dict(payload)
    except Exception:
        logger.exception(
            "failed to decode ReconciliationRequiredEvent payload=%r", payload
        )
        raise

    logger.info(
        "handling %s event id=%s amount=%d reason=%s",
        event.type,
        event.id,
        event.uncharged_amount,
        event.reason,
        extra={
            "account_id": event.account_id,
            "generation_request_id": event.request_id,
        },
    )

    now = utc_now()
    created = reconciliation_repo.record(
        CreditReconciliation(
            request_id=event.request_id,
            account_id=event.account_id,
            uncharged_amount=event.uncharged_amount,
            reason=event.reason,
            event_id=event.id,
            created_at=now,
            updated_at=now,
        )
    )
    if not created:
        logger.info(
            "reconciliation for request %s already recorded", event.request_id
        )


def run_reconciliation_consumer(stop_flag: list[bool], database: Database) -> None:
    """정산 이벤트를 소비하는 구독 루프를 실행한다."""
    logger.info("reconciliation-consumer starting up")

    brokers = get_brokers()
    group_id = get_group_id("reconciliation")

    bus = KafkaEventBus(brokers)
    repo = ReconciliationRepository(database)

    try:
        logger.info("subscribing to topic=%s group_id=%s", TOPIC_CREDIT.base, group_id)
        bus.subscribe(
            group_id=group_id,
            topic=TOPIC_CREDIT,
            handler=lambda evt: handle_credit_event(evt, reconciliation_repo=repo),
            stop_flag=stop_flag,
        )
    finally:
        bus.close()
        logger.info("reconciliation-consumer stopped")
