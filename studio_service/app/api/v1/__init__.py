from fastapi import APIRouter

from .artifacts import router as artifacts_router
from .generate import router as generate_router
from .generations import router as generations_router
from .quota import router as quota_router

api_router = APIRouter()
api_router.include_router(
    generate_router
)  # prefix는 router 파일 내부에서 정의되어 있음 (/generate)
api_router.include_router(quota_router)  # (/quota)
api_router.include_router(
    generations_router, prefix="/generations", tags=["generations"]
)
api_router.include_router(artifacts_router, prefix="/artifacts", tags=["artifacts"])
