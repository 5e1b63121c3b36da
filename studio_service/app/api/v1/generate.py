"""이미지 생성 API 라우터.

Gateway 가 인증을 마친 뒤 account_id 를 경로로 넘겨 호출하는 내부 API.
"""

from __future__ import annotations

import logging
from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, status

from ...exceptions import InsufficientCreditsError, PersistenceError, ValidationError
from ...models.generation import FailureReason
from ...services.generation_service import GenerateCommand, GenerationService
from ..dependencies import get_generation_service
from ..schemas.generation import GenerateRequest, GenerateResponse


logger = logging.getLogger(__name__)

router = APIRouter(prefix="/generate", tags=["generate"])


@router.post("/{account_id}", response_model=GenerateResponse, summary="상품 이미지 생성")
async def generate(
    account_id: str,
    body: GenerateRequest,
    service: Annotated[GenerationService, Depends(get_generation_service)],
) -> GenerateResponse:
    """요청한 장수만큼 이미지를 생성한다.

    - 일부만 성공해도 200 과 함께 성공한 이미지만 돌려준다.
    - 모든 모델이 실패하면 200, success=false, error=RESOURCE_BUSY.
    - 모델은 성공했지만 저장소가 전부 실패하면 503.
    """
    command = GenerateCommand(
        account_id=account_id,
        images=body.images,
        requested_count=body.requested_count,
        shot_type=body.shot_type,
        prompt=body.prompt,
        model_style=body.model_style,
        model_gender=body.model_gender,
        reserve_credits=body.reserve_credits,
    )

    try:
        record = await service.generate(command)
    except ValidationError as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={"code": "invalid_request", "message": str(exc)},
        ) from exc
    except InsufficientCreditsError as exc:
        raise HTTPException(
            status_code=status.HTTP_402_PAYMENT_REQUIRED,
            detail={
                "code": "insufficient_credits",
                "message": "크레딧이 부족합니다.",
                "available": exc.available,
                "requested": exc.requested,
            },
        ) from exc
    except PersistenceError as exc:
        logger.exception("credit store unavailable during admission")
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail={"code": "credit_store_unavailable", "message": str(exc)},
        ) from exc

    if record.failure_reason is FailureReason.PERSISTENCE_UNAVAILABLE:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail={
                "code": "artifact_store_unavailable",
                "message": "생성된 이미지를 저장하지 못했습니다. 잠시 후 다시 시도해주세요.",
                "request_id": record.request_id,
            },
        )

    return GenerateResponse.from_record(record)
