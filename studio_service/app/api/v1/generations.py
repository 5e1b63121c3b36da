"""생성 기록(갤러리) 조회 라우터."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException

from ...repositories.interfaces import GenerationRecordRepositoryInterface
from ..dependencies import get_generation_record_repository
from ..schemas.common import PaginatedResponse
from ..schemas.generation import GenerationRecordResponse

router = APIRouter()


@router.get(
    "/{account_id}",
    response_model=PaginatedResponse[GenerationRecordResponse],
    summary="생성 기록 목록",
)
def list_generations(
    account_id: str,
    page: int = 1,
    page_size: int = 20,
    repo: GenerationRecordRepositoryInterface = Depends(
        get_generation_record_repository
    ),
) -> PaginatedResponse[GenerationRecordResponse]:
    records, total = repo.list_by_account(account_id, page, page_size)
    return PaginatedResponse(
        items=[GenerationRecordResponse.from_domain(r) for r in records],
        total=total,
        page=page,
        page_size=page_size,
    )


@router.get(
    "/{account_id}/{request_id}",
    response_model=GenerationRecordResponse,
    summary="생성 기록 단건 조회",
)
def get_generation(
    account_id: str,
    request_id: str,
    repo: GenerationRecordRepositoryInterface = Depends(
        get_generation_record_repository
    ),
) -> GenerationRecordResponse:
    record = repo.find_by_request_id(account_id, request_id)
    if record is None:
        raise HTTPException(status_code=404, detail="generation not found")
    return GenerationRecordResponse.from_domain(record)
