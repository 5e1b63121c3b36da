"""슬롯 결과 집계.

성공 이미지를 ArtifactStore 에 저장하고, 요청 상태를 분류하고, 크레딧을 정산한 뒤
불변 GenerationRecord 를 만든다. 기록 저장과 이벤트 발행은 BackgroundTaskRunner 로 넘긴다.

정산 규칙:
- 기본(후불): completed 면 저장된 장수만큼 consume. 차감이 실패해도 이미지는 돌려주고
  정산 필요 플래그와 generation.reconciliation_required 이벤트를 남긴다.
- 예약(reserve_credits): 입장 시 requested 만큼 이미 차감됐다. 실패면 requested 를,
  부분 성공이면 requested - succeeded 를 한 번만 환불한다.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import asdict
from typing import Any

from common.eventbus.core import EventPublisher
from common.eventbus.helpers import new_event_envelope, new_json_event
from common.eventbus.topics import TOPIC_CREDIT, TOPIC_GENERATION
from common.events.credit import CreditEventType, ReconciliationRequiredEvent
from common.events.generation import (
    GenerationCompletedEvent,
    GenerationEventType,
    GenerationFailedEvent,
)
from common.types.datetime import utc_now

from ..exceptions import InsufficientCreditsError, PersistenceError
from ..models.generation import (
    PERSISTENCE_ERROR,
    FailureReason,
    GenerationRecord,
    GenerationRequest,
    GenerationStatus,
    ModelRole,
    SlotOutcome,
    SlotSummary,
)
from ..repositories.interfaces import GenerationRecordRepositoryInterface
from ..storage.artifact_store import ArtifactStore
from .background import BackgroundTaskRunner
from .credit_service import CreditService


logger = logging.getLogger(__name__)


EVENT_SOURCE = "studio-service"


class ResultAggregator:
    def __init__(
        self,
        artifact_store: ArtifactStore,
        credit_service: CreditService,
        record_repo: GenerationRecordRepositoryInterface,
        publisher: EventPublisher,
        runner: BackgroundTaskRunner,
    ) -> None:
        self._artifact_store = artifact_store
        self._credit_service = credit_service
        self._record_repo = record_repo
        self._publisher = publisher
        self._runner = runner

    async def aggregate(
        self,
        request: GenerationRequest,
        slot_outcomes: list[SlotOutcome],
        started_at: float,
    ) -> GenerationRecord:
        """started_at 은 time.monotonic() 기준 요청 시작 시각이다."""
        log_extra = {
            "account_id": request.account_id,
            "generation_request_id": request.request_id,
        }

        synthesized = [o for o in slot_outcomes if o.succeeded]
        model_names = {o.image_slot: o.image.model_name for o in synthesized if o.image}

        urls_by_slot: dict[int, str] = {}
        stored = await asyncio.gather(*(self._persist(request, o) for o in synthesized))
        for outcome, url in zip(synthesized, stored):
            if url is not None:
                urls_by_slot[outcome.image_slot] = url

        urls = [urls_by_slot[slot] for slot in sorted(urls_by_slot)]
        status = GenerationStatus.COMPLETED if urls else GenerationStatus.FAILED

        failure_reason: FailureReason | None = None
        if status is GenerationStatus.FAILED:
            failure_reason = (
                FailureReason.PERSISTENCE_UNAVAILABLE
                if synthesized
                else FailureReason.MODELS_EXHAUSTED
            )

        if request.reserve_credits:
            charged, refunded, reconcile = await self._settle_reservation(
                request, len(urls)
            )
        else:
            charged, refunded, reconcile = await self._settle_post_charge(
                request, len(urls)
            )

        if reconcile is not None:
            self._publish_reconciliation(request, *reconcile)

        record = GenerationRecord(
            request_id=request.request_id,
            account_id=request.account_id,
            status=status,
            requested_count=request.requested_image_count,
            succeeded_image_urls=urls,
            failed_slot_count=len(slot_outcomes) - len(urls),
            total_duration_ms=int((time.monotonic() - started_at) * 1000),
            credits_charged=charged,
            credits_refunded=refunded,
            needs_reconciliation=reconcile is not None,
            failure_reason=failure_reason,
            fallback_count=sum(
                1
                for o in slot_outcomes
                if any(a.model is ModelRole.FALLBACK for a in o.attempts)
            ),
            slots=[
                SlotSummary(
                    image_slot=o.image_slot,
                    status=o.status,
                    model=o.model,
                    model_name=model_names.get(o.image_slot),
                    attempts=len(o.attempts),
                    outcomes=[a.outcome for a in o.attempts],
                    url=urls_by_slot.get(o.image_slot),
                    failure_reason=o.failure_reason,
                )
                for o in slot_outcomes
            ],
            inputs=request.inputs.summary(),
            created_at=utc_now(),
        )

        logger.info(
            "generation %s: %d/%d images, charged=%d refunded=%d fallback=%d",
            status.value,
            len(urls),
            request.requested_image_count,
            charged,
            refunded,
            record.fallback_count,
            extra=log_extra,
        )

        self._runner.submit(
            f"record:{request.request_id}", self._record_repo.insert, record
        )
        self._publish_result(record)
        return record

    async def _persist(self, request: GenerationRequest, outcome: SlotOutcome) -> str | None:
        image = outcome.image
        if image is None:
            return None
        try:
            return await self._artifact_store.put(
                request.account_id,
                request.request_id,
                outcome.image_slot,
                image.data,
                image.mime_type,
            )
        except Exception:  # noqa: BLE001
            logger.exception(
                "failed to store artifact, downgrading slot",
                extra={
                    "account_id": request.account_id,
                    "generation_request_id": request.request_id,
                    "slot": outcome.image_slot,
                },
            )
            outcome.downgrade(PERSISTENCE_ERROR)
            return None

    async def _settle_post_charge(
        self, request: GenerationRequest, succeeded: int
    ) -> tuple[int, int, tuple[int, str] | None]:
        if succeeded == 0:
            return 0, 0, None
        try:
            await asyncio.to_thread(
                self._credit_service.consume,
                request.account_id,
                succeeded,
                "generation",
                request.request_id,
            )
        except (InsufficientCreditsError, PersistenceError) as exc:
            logger.error(
                "failed to charge %d credits after generation: %s",
                succeeded,
                exc,
                extra={
                    "account_id": request.account_id,
                    "generation_request_id": request.request_id,
                },
            )
            reason = (
                "insufficient_credits"
                if isinstance(exc, InsufficientCreditsError)
                else "ledger_unavailable"
            )
            return 0, 0, (succeeded, reason)
        return succeeded, 0, None

    async def _settle_reservation(
        self, request: GenerationRequest, succeeded: int
    ) -> tuple[int, int, tuple[int, str] | None]:
        refund_amount = request.requested_image_count - succeeded
        if refund_amount <= 0:
            return succeeded, 0, None
        try:
            await asyncio.to_thread(
                self._credit_service.refund,
                request.account_id,
                refund_amount,
                "generation_refund",
                request.request_id,
            )
        except PersistenceError as exc:
            logger.error(
                "failed to refund %d reserved credits: %s",
                refund_amount,
                exc,
                extra={
                    "account_id": request.account_id,
                    "generation_request_id": request.request_id,
                },
            )
            return succeeded, 0, (-refund_amount, "refund_failed")
        return succeeded, refund_amount, None

    # 이벤트 발행 ---------------------------------------------------------------
    def _publish(self, name: str, topic: str, event: Any) -> None:
        payload = asdict(event)
        wrapped = new_json_event(payload=payload, event_id=payload["id"])
        self._runner.submit(name, self._publisher.publish, topic, wrapped)

    def _publish_result(self, record: GenerationRecord) -> None:
        if record.status is GenerationStatus.COMPLETED:
            event: Any = GenerationCompletedEvent(
                **new_event_envelope(GenerationEventType.GENERATION_COMPLETED, EVENT_SOURCE),
                account_id=record.account_id,
                request_id=record.request_id,
                requested=record.requested_count,
                succeeded=record.succeeded_count,
                credits_charged=record.credits_charged,
                fallback_count=record.fallback_count,
                duration_ms=record.total_duration_ms,
                image_urls=list(record.succeeded_image_urls),
            )
        else:
            event = GenerationFailedEvent(
                **new_event_envelope(GenerationEventType.GENERATION_FAILED, EVENT_SOURCE),
                account_id=record.account_id,
                request_id=record.request_id,
                requested=record.requested_count,
                failure_reason=(record.failure_reason or FailureReason.MODELS_EXHAUSTED).value,
                credits_refunded=record.credits_refunded,
                duration_ms=record.total_duration_ms,
            )
        self._publish(f"event:{event.type}:{record.request_id}", TOPIC_GENERATION.base, event)

    def _publish_reconciliation(
        self, request: GenerationRequest, uncharged_amount: int, reason: str
    ) -> None:
        event = ReconciliationRequiredEvent(
            **new_event_envelope(CreditEventType.RECONCILIATION_REQUIRED, EVENT_SOURCE),
            account_id=request.account_id,
            request_id=request.request_id,
            uncharged_amount=uncharged_amount,
            reason=reason,
        )
        self._publish(
            f"event:{event.type}:{request.request_id}", TOPIC_CREDIT.base, event
        )
