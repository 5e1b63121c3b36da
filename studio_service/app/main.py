from __future__ import annotations

import logging
import os
import threading
from contextlib import asynccontextmanager
from typing import AsyncGenerator

import httpx
from fastapi import FastAPI

from common.eventbus.kafka import get_kafka_event_bus
from common.llm.factory import create_chat_model
from common.logger import setup_logger
from common.middleware.request_trace import RequestTraceMiddleware
from common.mongo.client import get_database
from common.mongo.config import get_artifact_bucket_name

from .api.dependencies import set_artifact_store, set_generation_service
from .api.health import router as health_router
from .api.v1 import api_router
from .config import load_config
from .event_handlers.reconciliation_handler import run_reconciliation_consumer
from .repositories.credit_repository import (
    CreditBalanceRepository,
    CreditTransactionRepository,
)
from .repositories.generation_repository import GenerationRecordRepository
from .services.aggregator import ResultAggregator
from .services.background import BackgroundTaskRunner
from .services.credit_service import CreditService
from .services.generation_service import GenerationService
from .services.input_images import IMAGE_FETCH_TIMEOUT_SECONDS
from .services.orchestrator import SynthesisOrchestrator
from .services.shot_instructions import ShotInstructionWriter
from .storage.artifact_store import GridFSArtifactStore
from .synthesis.gemini_backend import GeminiSynthesisBackend


logger = logging.getLogger(__name__)


STUDIO_RECONCILIATION_CONSUMER = "STUDIO_RECONCILIATION_CONSUMER"


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:  # pragma: no cover - framework hook
    """앱 생명주기 관리.

    - 시작 시: 합성 백엔드, 저장소, 생성 서비스 초기화, 정산 컨슈머 스레드 시작
    - 종료 시: 백그라운드 작업 정리, 클라이언트/컨슈머 종료
    """
    logger.info("studio-service (python) starting up")

    config = load_config()
    database = get_database()

    backend = GeminiSynthesisBackend(config.synthesis)
    image_client = httpx.AsyncClient(timeout=IMAGE_FETCH_TIMEOUT_SECONDS)

    instruction_writer: ShotInstructionWriter | None = None
    if config.instruction_llm is not None:
        instruction_writer = ShotInstructionWriter(
            create_chat_model(config.instruction_llm)
        )
        logger.info("shot instruction writer enabled")

    credit_service = CreditService(
        CreditBalanceRepository(database),
        CreditTransactionRepository(database),
        signup_credits=config.credit.signup_credits,
        daily_reward_credits=config.credit.daily_reward_credits,
        max_cas_attempts=config.credit.max_cas_attempts,
    )
    artifact_store = GridFSArtifactStore(
        database, get_artifact_bucket_name(), config.artifact_base_url
    )
    runner = BackgroundTaskRunner()
    aggregator = ResultAggregator(
        artifact_store,
        credit_service,
        GenerationRecordRepository(database),
        get_kafka_event_bus(),
        runner,
    )
    orchestrator = SynthesisOrchestrator(
        backend, config.orchestrator, instruction_writer=instruction_writer
    )
    set_artifact_store(artifact_store)
    set_generation_service(
        GenerationService(
            credit_service,
            orchestrator,
            aggregator,
            max_requested_images=config.orchestrator.max_requested_images,
            image_client=image_client,
        )
    )
    logger.info("generation service initialized")

    stop_flag = [False]
    consumer_thread: threading.Thread | None = None
    if os.getenv(STUDIO_RECONCILIATION_CONSUMER, "true").lower() != "false":
        consumer_thread = threading.Thread(
            target=run_reconciliation_consumer,
            args=(stop_flag, database),
            daemon=True,
            name="reconciliation-consumer",
        )
        consumer_thread.start()
        logger.info("reconciliation consumer thread started")

    yield

    logger.info("studio-service shutting down")
    set_generation_service(None)
    await runner.drain(timeout=10.0)
    stop_flag[0] = True
    if consumer_thread is not None:
        consumer_thread.join(timeout=5.0)
    await backend.aclose()
    await image_client.aclose()
    get_kafka_event_bus().close()
    logger.info("studio-service stopped")


def create_app() -> FastAPI:
    setup_logger()
    app = FastAPI(
        title="Product Photo Studio Service",
        version="0.1.0",
        lifespan=lifespan,
    )

    # 공통 Request/Span ID 로그 미들웨어
    app.add_middleware(RequestTraceMiddleware)

    app.include_router(health_router, tags=["health"])
    app.include_router(api_router, prefix="/api/v1")

    return app


app = create_app()


def main() -> None:
    import uvicorn

    port = int(os.getenv("STUDIO_SERVICE_PORT", "8010"))
    uvicorn.run(
        "studio_service.app.main:app",
        host="0.0.0.0",
        port=port,
        reload=False,
        access_log=False,
    )


if __name__ == "__main__":  # pragma: no cover - CLI entrypoint
    main()
