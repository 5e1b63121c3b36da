"""이미지 생성 요청 파이프라인.

검증 -> 입력 이미지 로드 -> 입장 판단 -> (예약 차감) -> 오케스트레이션 -> 집계.
"""

from __future__ import annotations

import asyncio
import logging
import time
import uuid
from dataclasses import dataclass
from typing import Sequence

import httpx

from common.types.datetime import utc_now

from ..exceptions import InsufficientCreditsError, ValidationError
from ..models.credit import CreditTransactionType
from ..models.generation import (
    GenerationInputs,
    GenerationRecord,
    GenerationRequest,
    ShotType,
)
from . import quota_gate
from .aggregator import ResultAggregator
from .credit_service import CreditService
from .input_images import load_reference_images
from .orchestrator import SynthesisOrchestrator


logger = logging.getLogger(__name__)


@dataclass(slots=True)
class GenerateCommand:
    account_id: str
    images: Sequence[str]
    requested_count: int
    shot_type: str = ShotType.PRODUCT.value
    prompt: str | None = None
    model_style: str | None = None
    model_gender: str | None = None
    reserve_credits: bool = False
    request_id: str | None = None


class GenerationService:
    def __init__(
        self,
        credit_service: CreditService,
        orchestrator: SynthesisOrchestrator,
        aggregator: ResultAggregator,
        *,
        max_requested_images: int = 4,
        image_client: httpx.AsyncClient | None = None,
    ) -> None:
        self._credit_service = credit_service
        self._orchestrator = orchestrator
        self._aggregator = aggregator
        self._max_requested_images = max_requested_images
        self._image_client = image_client

    def _validate(self, command: GenerateCommand) -> ShotType:
        if not command.account_id.strip():
            raise ValidationError("account_id is required")
        if not 1 <= command.requested_count <= self._max_requested_images:
            raise ValidationError(
                f"requested_count must be between 1 and {self._max_requested_images}"
            )
        try:
            return ShotType(command.shot_type)
        except ValueError as exc:
            raise ValidationError(f"unsupported shot_type: {command.shot_type}") from exc

    async def generate(self, command: GenerateCommand) -> GenerationRecord:
        started_at = time.monotonic()
        shot_type = self._validate(command)
        images = await load_reference_images(command.images, self._image_client)

        request = GenerationRequest(
            request_id=command.request_id or uuid.uuid4().hex,
            account_id=command.account_id,
            requested_image_count=command.requested_count,
            inputs=GenerationInputs(
                images=images,
                shot_type=shot_type,
                prompt=(command.prompt or "").strip() or None,
                model_style=command.model_style,
                model_gender=command.model_gender,
            ),
            created_at=utc_now(),
            reserve_credits=command.reserve_credits,
        )
        log_extra = {
            "account_id": request.account_id,
            "generation_request_id": request.request_id,
        }

        balance = await asyncio.to_thread(
            self._credit_service.get_balance, request.account_id
        )
        decision = quota_gate.check(
            balance, request.requested_image_count, self._credit_service.today()
        )
        if not decision.admitted:
            logger.info(
                "generation rejected: available=%d requested=%d",
                decision.available,
                decision.requested,
                extra=log_extra,
            )
            raise InsufficientCreditsError(decision.available, decision.requested)

        if request.reserve_credits:
            # 입장 판단과 예약 사이에 잔액이 바뀌었으면 여기서 402 가 된다.
            await asyncio.to_thread(
                self._credit_service.consume,
                request.account_id,
                request.requested_image_count,
                "generation_reserve",
                request.request_id,
                CreditTransactionType.RESERVE,
            )

        logger.info(
            "generation admitted: shot_type=%s requested=%d reserve=%s",
            shot_type.value,
            request.requested_image_count,
            request.reserve_credits,
            extra=log_extra,
        )

        outcomes = await self._orchestrator.run(request)
        return await self._aggregator.aggregate(request, outcomes, started_at)
