from datetime import datetime, timezone

from studio_service.app.models.credit import CreditBalance
from studio_service.app.models.generation import (
    AttemptOutcome,
    FailureReason,
    GenerationRecord,
    GenerationStatus,
    SlotStatus,
    SlotSummary,
)
from studio_service.app.repositories.documents.credit_document import (
    CreditBalanceDocument,
)
from studio_service.app.repositories.documents.generation_document import (
    GenerationRecordDocument,
)

from .fakes import TODAY


NOW = datetime(2026, 3, 10, 9, 30, tzinfo=timezone.utc)


def test_credit_balance_document_stores_daily_date_as_string():
    balance = CreditBalance(
        account_id="acct-1", daily=5, daily_date=TODAY, signup=2, version=3
    )

    record = CreditBalanceDocument.from_domain(balance).to_mongo_record()
    restored = CreditBalanceDocument.model_validate(record).to_domain()

    assert record["daily_date"] == "2026-03-10"
    assert "_id" not in record
    assert restored.daily_date == TODAY
    assert restored.version == 3
    assert restored.signup == 2


def test_credit_balance_pool_fields_exclude_version():
    balance = CreditBalance(account_id="acct-1", purchased=7)

    fields = CreditBalanceDocument.from_domain(balance).pool_fields()

    assert fields["purchased"] == 7
    assert fields["daily_date"] is None
    assert "version" not in fields
    assert "account_id" not in fields


def test_generation_record_document_keeps_slot_details():
    record = GenerationRecord(
        request_id="req-1",
        account_id="acct-1",
        status=GenerationStatus.FAILED,
        requested_count=1,
        succeeded_image_urls=[],
        failed_slot_count=1,
        total_duration_ms=900,
        credits_charged=0,
        failure_reason=FailureReason.MODELS_EXHAUSTED,
        slots=[
            SlotSummary(
                image_slot=0,
                status=SlotStatus.FAILED,
                attempts=2,
                outcomes=[AttemptOutcome.RATE_LIMITED, AttemptOutcome.TIMEOUT],
                failure_reason="timeout",
            )
        ],
        inputs={"image_count": 1, "shot_type": "product"},
        created_at=NOW,
    )

    mongo_record = GenerationRecordDocument.from_domain(record).to_mongo_record()
    restored = GenerationRecordDocument.model_validate(mongo_record).to_domain()

    assert mongo_record["status"] == "failed"
    assert mongo_record["slots"][0]["outcomes"] == ["rateLimited", "timeout"]
    assert isinstance(mongo_record["created_at"], datetime)
    assert restored.failure_reason is FailureReason.MODELS_EXHAUSTED
    assert restored.slots[0].outcomes == [
        AttemptOutcome.RATE_LIMITED,
        AttemptOutcome.TIMEOUT,
    ]
    assert restored.created_at == NOW
