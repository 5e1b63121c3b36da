"""슬롯 단위 이미지 합성 오케스트레이터.

슬롯마다 TRY_PRIMARY -> (RETRY_PRIMARY)* -> TRY_FALLBACK -> DONE 상태 머신을 돌린다.

- rateLimited 이고 재시도 예산이 남아 있으면 delay * attempt 만큼 쉬고 primary 를 다시 부른다.
- 그 밖의 primary 실패(타임아웃 포함)는 곧바로 fallback 을 정확히 한 번 부른다.
- 슬롯은 batch_size 개씩 병렬로 돌리고, 배치 사이에는 batch_delay 만큼 쉰다.
- 요청 전체 데드라인이 지나면 끝난 슬롯은 유지하고, 진행 중/미시작 슬롯은 timeout 실패로 보고한다.

run() 은 예외를 던지지 않고 슬롯 순서대로 SlotOutcome 을 반환한다.
"""

from __future__ import annotations

import asyncio
import logging
import time
from enum import Enum
from typing import Awaitable, Callable, Sequence

from ..config import OrchestratorConfig
from ..exceptions import UpstreamError
from ..models.generation import (
    AttemptOutcome,
    GeneratedImage,
    GenerationRequest,
    ModelRole,
    ReferenceImage,
    ShotType,
    SlotOutcome,
    SlotStatus,
    SynthesisAttempt,
)
from ..prompts import build_prompt
from ..synthesis.backend import SynthesisBackend
from .shot_instructions import ShotInstructionWriter


logger = logging.getLogger(__name__)


class SlotState(Enum):
    TRY_PRIMARY = "try_primary"
    RETRY_PRIMARY = "retry_primary"
    TRY_FALLBACK = "try_fallback"
    DONE = "done"


def classify(exc: BaseException) -> AttemptOutcome:
    if isinstance(exc, UpstreamError):
        return exc.outcome
    if isinstance(exc, (asyncio.TimeoutError, TimeoutError)):
        return AttemptOutcome.TIMEOUT
    return AttemptOutcome.OTHER_ERROR


class SynthesisOrchestrator:
    def __init__(
        self,
        backend: SynthesisBackend,
        config: OrchestratorConfig,
        *,
        instruction_writer: ShotInstructionWriter | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._backend = backend
        self._config = config
        self._instruction_writer = instruction_writer
        self._sleep = sleep

    @property
    def config(self) -> OrchestratorConfig:
        return self._config

    async def run(self, request: GenerationRequest) -> list[SlotOutcome]:
        count = request.requested_image_count
        outcomes: dict[int, SlotOutcome] = {}
        attempts: dict[int, list[SynthesisAttempt]] = {slot: [] for slot in range(count)}
        unfinished_reason = AttemptOutcome.TIMEOUT

        try:
            await asyncio.wait_for(
                self._run_batches(request, outcomes, attempts),
                timeout=self._config.request_timeout_seconds,
            )
        except asyncio.TimeoutError:
            logger.warning(
                "generation request deadline exceeded, %d/%d slots finished",
                len(outcomes),
                count,
                extra={"generation_request_id": request.request_id},
            )
        except Exception:  # noqa: BLE001
            # 슬롯 내부 예외는 모두 분류되므로 여기까지 오는 것은 프레임워크 오류뿐이다.
            unfinished_reason = AttemptOutcome.OTHER_ERROR
            logger.exception(
                "unexpected orchestrator failure",
                extra={"generation_request_id": request.request_id},
            )

        results: list[SlotOutcome] = []
        for slot in range(count):
            outcome = outcomes.get(slot)
            if outcome is None:
                outcome = SlotOutcome(
                    image_slot=slot,
                    status=SlotStatus.FAILED,
                    attempts=attempts[slot],
                    failure_reason=unfinished_reason.value,
                )
            results.append(outcome)
        return results

    async def _run_batches(
        self,
        request: GenerationRequest,
        outcomes: dict[int, SlotOutcome],
        attempts: dict[int, list[SynthesisAttempt]],
    ) -> None:
        slots = list(range(request.requested_image_count))
        batch_size = max(1, self._config.batch_size)
        batches = [slots[i : i + batch_size] for i in range(0, len(slots), batch_size)]

        for index, batch in enumerate(batches):
            if index > 0 and self._config.batch_delay_seconds > 0:
                await self._sleep(self._config.batch_delay_seconds)

            logger.debug(
                "starting batch %d/%d slots=%s",
                index + 1,
                len(batches),
                batch,
                extra={"generation_request_id": request.request_id},
            )
            # 한 슬롯이 예기치 않게 실패하면 같은 배치의 나머지 슬롯도 취소된다.
            async with asyncio.TaskGroup() as group:
                for slot in batch:
                    group.create_task(
                        self._run_slot(request, slot, outcomes, attempts[slot])
                    )

    async def _run_slot(
        self,
        request: GenerationRequest,
        slot: int,
        outcomes: dict[int, SlotOutcome],
        attempts: list[SynthesisAttempt],
    ) -> None:
        prompt = await self._build_slot_prompt(request)
        outcome = await self.generate_slot(
            request.request_id,
            slot,
            prompt,
            request.inputs.images,
            attempts=attempts,
        )
        # 완료 즉시 기록해야 데드라인이 배치 중간에 끊어도 결과가 남는다.
        outcomes[slot] = outcome

    async def _build_slot_prompt(self, request: GenerationRequest) -> str:
        inputs = request.inputs
        instruction: str | None = None
        if (
            self._instruction_writer is not None
            and inputs.shot_type is ShotType.MODEL
            and not inputs.prompt
        ):
            try:
                instruction = await asyncio.wait_for(
                    self._instruction_writer.write(inputs),
                    timeout=self._config.call_timeout_seconds,
                )
            except asyncio.TimeoutError:
                logger.warning(
                    "shot instruction timed out, continuing without it",
                    extra={"generation_request_id": request.request_id},
                )
        return build_prompt(inputs, instruction)

    async def generate_slot(
        self,
        request_id: str,
        slot: int,
        prompt: str,
        images: Sequence[ReferenceImage],
        *,
        attempts: list[SynthesisAttempt] | None = None,
    ) -> SlotOutcome:
        """한 슬롯의 상태 머신을 끝까지 돌린다. 호출 실패는 모두 분류해서 흡수한다."""
        attempts = attempts if attempts is not None else []
        state = SlotState.TRY_PRIMARY
        primary_attempts = 0
        last_outcome = AttemptOutcome.OTHER_ERROR
        image: GeneratedImage | None = None
        produced_by: ModelRole | None = None

        while state is not SlotState.DONE:
            if state is SlotState.TRY_FALLBACK:
                model = ModelRole.FALLBACK
                attempt_number = 1
            else:
                model = ModelRole.PRIMARY
                primary_attempts += 1
                attempt_number = primary_attempts

            image, last_outcome = await self._call(
                request_id, slot, model, attempt_number, prompt, images, attempts
            )

            if last_outcome is AttemptOutcome.SUCCESS:
                produced_by = model
                state = SlotState.DONE
            elif model is ModelRole.FALLBACK:
                state = SlotState.DONE
            elif (
                last_outcome is AttemptOutcome.RATE_LIMITED
                and primary_attempts <= self._config.primary_retry_budget
            ):
                state = SlotState.RETRY_PRIMARY
                await self._sleep(
                    self._config.primary_retry_delay_seconds * primary_attempts
                )
            else:
                state = SlotState.TRY_FALLBACK

        if image is not None and produced_by is not None:
            return SlotOutcome(
                image_slot=slot,
                status=SlotStatus.SUCCESS,
                image=image,
                model=produced_by,
                attempts=attempts,
            )
        return SlotOutcome(
            image_slot=slot,
            status=SlotStatus.FAILED,
            attempts=attempts,
            failure_reason=last_outcome.value,
        )

    async def _call(
        self,
        request_id: str,
        slot: int,
        model: ModelRole,
        attempt_number: int,
        prompt: str,
        images: Sequence[ReferenceImage],
        attempts: list[SynthesisAttempt],
    ) -> tuple[GeneratedImage | None, AttemptOutcome]:
        started = time.monotonic()
        image: GeneratedImage | None = None
        error_message: str | None = None

        try:
            image = await asyncio.wait_for(
                self._backend.generate(model, prompt, images),
                timeout=self._config.call_timeout_seconds,
            )
            outcome = AttemptOutcome.SUCCESS
        except asyncio.CancelledError:
            # 요청 데드라인으로 취소된 호출도 시도 기록에 남긴다.
            attempts.append(
                SynthesisAttempt(
                    request_id=request_id,
                    image_slot=slot,
                    model=model,
                    attempt_number=attempt_number,
                    outcome=AttemptOutcome.TIMEOUT,
                    latency_ms=_elapsed_ms(started),
                    error_message="request deadline exceeded",
                )
            )
            raise
        except Exception as exc:  # noqa: BLE001
            outcome = classify(exc)
            error_message = str(exc) or exc.__class__.__name__

        attempt = SynthesisAttempt(
            request_id=request_id,
            image_slot=slot,
            model=model,
            attempt_number=attempt_number,
            outcome=outcome,
            latency_ms=_elapsed_ms(started),
            error_message=error_message,
        )
        attempts.append(attempt)

        log = logger.info if outcome is AttemptOutcome.SUCCESS else logger.warning
        log(
            "synthesis attempt finished in %dms%s",
            attempt.latency_ms,
            f": {error_message}" if error_message else "",
            extra={
                "generation_request_id": request_id,
                "slot": slot,
                "model": model.value,
                "attempt": attempt_number,
                "outcome": outcome.value,
            },
        )
        return image, outcome


def _elapsed_ms(started: float) -> int:
    return int((time.monotonic() - started) * 1000)
