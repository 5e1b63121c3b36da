"""크레딧(쿼터) 관련 내부 API 라우터.

잔액 변경은 consume/refund/claim_daily 로만 일어나며, 여기서는 일일 보상 수령만 노출한다.
"""

from __future__ import annotations

import logging
from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, status

from ...exceptions import PersistenceError
from ...services.credit_service import CreditService
from ..dependencies import get_credit_service
from ..schemas.common import PaginatedResponse
from ..schemas.quota import (
    CreditTransactionResponse,
    DailyRewardClaimResponse,
    DailyRewardStatusResponse,
    QuotaResponse,
)


logger = logging.getLogger(__name__)

router = APIRouter(prefix="/quota", tags=["quota"])


def _unavailable(exc: PersistenceError) -> HTTPException:
    logger.error("credit store unavailable: %s", exc)
    return HTTPException(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        detail={"code": "credit_store_unavailable", "message": str(exc)},
    )


@router.get("/{account_id}", summary="크레딧 잔액 조회")
def get_quota(
    account_id: str,
    credit_service: Annotated[CreditService, Depends(get_credit_service)],
) -> QuotaResponse:
    """풀별 잔액과 사용 가능 합계 조회."""
    try:
        info = credit_service.get_info(account_id)
    except PersistenceError as exc:
        raise _unavailable(exc) from exc
    return QuotaResponse.from_info(account_id, info)


@router.post("/{account_id}/daily-reward", summary="일일 보상 수령")
def claim_daily_reward(
    account_id: str,
    credit_service: Annotated[CreditService, Depends(get_credit_service)],
) -> DailyRewardClaimResponse:
    """UTC 하루 한 번 daily 풀을 보상 수량으로 덮어쓴다. 같은 날 재호출은 credited=false."""
    try:
        info, credited = credit_service.claim_daily(account_id)
    except PersistenceError as exc:
        raise _unavailable(exc) from exc
    return DailyRewardClaimResponse(
        credited=credited,
        credits_added=credit_service.daily_reward_credits if credited else 0,
        quota=QuotaResponse.from_info(account_id, info),
    )


@router.get("/{account_id}/daily-reward", summary="일일 보상 수령 가능 여부")
def get_daily_reward_status(
    account_id: str,
    credit_service: Annotated[CreditService, Depends(get_credit_service)],
) -> DailyRewardStatusResponse:
    try:
        reward = credit_service.daily_reward_status(account_id)
    except PersistenceError as exc:
        raise _unavailable(exc) from exc
    return DailyRewardStatusResponse(**reward.model_dump())


@router.get("/{account_id}/history", summary="크레딧 사용 이력")
def get_credit_history(
    account_id: str,
    credit_service: Annotated[CreditService, Depends(get_credit_service)],
    page: int = 1,
    page_size: int = 20,
) -> PaginatedResponse[CreditTransactionResponse]:
    """크레딧 사용 이력 조회."""
    try:
        items, total = credit_service.get_history(account_id, page, page_size)
    except PersistenceError as exc:
        raise _unavailable(exc) from exc
    return PaginatedResponse(
        items=[CreditTransactionResponse.from_domain(tx) for tx in items],
        total=total,
        page=page,
        page_size=page_size,
    )
