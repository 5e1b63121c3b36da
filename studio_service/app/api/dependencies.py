"""FastAPI DI 팩토리.

레포지토리/CreditService 는 요청마다 만들고, 백엔드 클라이언트를 가진 GenerationService 와
ArtifactStore 는 앱 시작 시 한 번 만들어 set_* 로 등록한다.
"""

from __future__ import annotations

from fastapi import Depends, HTTPException, status
from pymongo.database import Database

from common.mongo.client import get_database

from ..config import load_credit_config
from ..repositories.credit_repository import (
    CreditBalanceRepository,
    CreditTransactionRepository,
)
from ..repositories.generation_repository import GenerationRecordRepository
from ..repositories.interfaces import (
    CreditBalanceRepositoryInterface,
    CreditTransactionRepositoryInterface,
    GenerationRecordRepositoryInterface,
)
from ..services.credit_service import CreditService
from ..services.generation_service import GenerationService
from ..storage.artifact_store import GridFSArtifactStore


_generation_service: GenerationService | None = None
_artifact_store: GridFSArtifactStore | None = None


def get_credit_balance_repository(
    db: Database = Depends(get_database),
) -> CreditBalanceRepositoryInterface:
    return CreditBalanceRepository(db)


def get_credit_transaction_repository(
    db: Database = Depends(get_database),
) -> CreditTransactionRepositoryInterface:
    return CreditTransactionRepository(db)


def get_generation_record_repository(
    db: Database = Depends(get_database),
) -> GenerationRecordRepositoryInterface:
    return GenerationRecordRepository(db)


def get_credit_service(
    balance_repo: CreditBalanceRepositoryInterface = Depends(
        get_credit_balance_repository
    ),
    transaction_repo: CreditTransactionRepositoryInterface = Depends(
        get_credit_transaction_repository
    ),
) -> CreditService:
    """FastAPI DI용 CreditService 팩토리."""
    cfg = load_credit_config()
    return CreditService(
        balance_repo,
        transaction_repo,
        signup_credits=cfg.signup_credits,
        daily_reward_credits=cfg.daily_reward_credits,
        max_cas_attempts=cfg.max_cas_attempts,
    )


def get_generation_service() -> GenerationService:
    """생성 서비스 의존성."""
    if _generation_service is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="generation service not initialized",
        )
    return _generation_service


def set_generation_service(service: GenerationService | None) -> None:
    """생성 서비스 설정 (앱 시작 시 호출)."""
    global _generation_service
    _generation_service = service


def get_artifact_store() -> GridFSArtifactStore:
    if _artifact_store is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="artifact store not initialized",
        )
    return _artifact_store


def set_artifact_store(store: GridFSArtifactStore | None) -> None:
    global _artifact_store
    _artifact_store = store
