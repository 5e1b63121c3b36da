import base64
from dataclasses import dataclass

import pytest

from studio_service.app.config import OrchestratorConfig
from studio_service.app.exceptions import (
    InsufficientCreditsError,
    UpstreamOtherError,
    UpstreamRateLimited,
    ValidationError,
)
from studio_service.app.models.credit import CreditBalance, CreditTransactionType
from studio_service.app.models.generation import GenerationStatus, ModelRole
from studio_service.app.services.aggregator import ResultAggregator
from studio_service.app.services.background import BackgroundTaskRunner
from studio_service.app.services.generation_service import (
    GenerateCommand,
    GenerationService,
)
from studio_service.app.services.orchestrator import SynthesisOrchestrator

from .fakes import (
    PNG_BYTES,
    CreditFixture,
    FakeArtifactStore,
    FakePublisher,
    InMemoryGenerationRecordRepository,
    RecordingSleep,
    ScriptedBackend,
    build_credit_fixture,
)


IMAGE_B64 = base64.b64encode(PNG_BYTES).decode("ascii")


@dataclass
class GenerationFixture:
    service: GenerationService
    credits: CreditFixture
    backend: ScriptedBackend
    record_repo: InMemoryGenerationRecordRepository
    runner: BackgroundTaskRunner


def _build_fixture(
    balance: CreditBalance,
    backend: ScriptedBackend | None = None,
) -> GenerationFixture:
    credits = build_credit_fixture(balance)
    backend = backend or ScriptedBackend()
    record_repo = InMemoryGenerationRecordRepository()
    runner = BackgroundTaskRunner()
    orchestrator = SynthesisOrchestrator(
        backend, OrchestratorConfig(batch_delay_seconds=0), sleep=RecordingSleep()
    )
    aggregator = ResultAggregator(
        FakeArtifactStore(), credits.service, record_repo, FakePublisher(), runner
    )
    service = GenerationService(credits.service, orchestrator, aggregator)
    return GenerationFixture(
        service=service,
        credits=credits,
        backend=backend,
        record_repo=record_repo,
        runner=runner,
    )


def _command(count: int = 2, **overrides) -> GenerateCommand:
    values = {
        "account_id": "acct-1",
        "images": [IMAGE_B64],
        "requested_count": count,
    }
    values.update(overrides)
    return GenerateCommand(**values)


async def test_generate_charges_for_delivered_images():
    fixture = _build_fixture(CreditBalance(account_id="acct-1", signup=5))

    record = await fixture.service.generate(_command(2))
    await fixture.runner.drain()

    assert record.status is GenerationStatus.COMPLETED
    assert record.succeeded_count == 2
    assert fixture.credits.balance_repo.rows["acct-1"].signup == 3
    assert fixture.record_repo.records[0].request_id == record.request_id


@pytest.mark.parametrize(
    "overrides",
    [
        {"requested_count": 0},
        {"requested_count": 5},
        {"shot_type": "panorama"},
        {"images": []},
        {"images": ["not base64!"]},
        {"account_id": " "},
    ],
)
async def test_invalid_command_is_rejected_before_backend(overrides):
    fixture = _build_fixture(CreditBalance(account_id="acct-1", signup=5))

    with pytest.raises(ValidationError):
        await fixture.service.generate(_command(**overrides))

    assert fixture.backend.calls == []


async def test_insufficient_balance_is_rejected_before_backend():
    fixture = _build_fixture(CreditBalance(account_id="acct-1", signup=1))

    with pytest.raises(InsufficientCreditsError) as exc_info:
        await fixture.service.generate(_command(2))

    assert exc_info.value.available == 1
    assert exc_info.value.requested == 2
    assert fixture.backend.calls == []
    assert fixture.credits.transaction_repo.created == []


async def test_reservation_consumes_up_front_and_refunds_failures():
    backend = ScriptedBackend(
        primary=[None, RuntimeError("boom")], fallback=[RuntimeError("boom")]
    )
    fixture = _build_fixture(CreditBalance(account_id="acct-1", signup=2), backend)

    record = await fixture.service.generate(_command(2, reserve_credits=True))

    assert record.credits_charged == 1
    assert record.credits_refunded == 1
    assert [tx.type for tx in fixture.credits.transaction_repo.created] == [
        CreditTransactionType.RESERVE,
        CreditTransactionType.REFUND,
    ]
    balance = fixture.credits.balance_repo.rows["acct-1"]
    assert balance.signup == 0
    assert balance.admin_grant == 1
    assert backend.count(ModelRole.FALLBACK) == 1


async def test_four_slots_with_fallbacks_and_one_exhausted_slot():
    backend = ScriptedBackend(
        primary=[
            UpstreamRateLimited("429"),
            None,
            UpstreamRateLimited("429"),
            UpstreamOtherError("boom"),
        ],
        fallback=[None, None, UpstreamOtherError("boom")],
    )
    fixture = _build_fixture(CreditBalance(account_id="acct-1", signup=4), backend)

    record = await fixture.service.generate(_command(4))

    assert record.status is GenerationStatus.COMPLETED
    assert len(record.succeeded_image_urls) == 3
    assert record.failed_slot_count == 1
    assert all(not url.endswith("/3.png") for url in record.succeeded_image_urls)
    assert [s.model for s in record.slots] == [
        ModelRole.FALLBACK,
        ModelRole.PRIMARY,
        ModelRole.FALLBACK,
        None,
    ]
    assert record.credits_charged == 3
    assert fixture.credits.balance_repo.rows["acct-1"].signup == 1
    # 실패 슬롯마다 fallback 은 정확히 한 번.
    assert backend.count(ModelRole.FALLBACK) == 3
