from concurrent.futures import ThreadPoolExecutor

import pytest
from pymongo.errors import ServerSelectionTimeoutError

from studio_service.app.exceptions import (
    ConcurrentUpdateError,
    InsufficientCreditsError,
    PersistenceError,
)
from studio_service.app.models.credit import CreditBalance, CreditTransactionType

from .fakes import TODAY, YESTERDAY, build_credit_fixture


def test_get_balance_creates_default_row():
    fixture = build_credit_fixture()

    balance = fixture.service.get_balance("new-user")

    assert balance.signup == 10
    assert fixture.balance_repo.rows["new-user"] is balance


def test_get_balance_wraps_storage_errors():
    fixture = build_credit_fixture()
    fixture.balance_repo.raise_error = ServerSelectionTimeoutError("mongo down")

    with pytest.raises(PersistenceError):
        fixture.service.get_balance("acct-1")


def test_get_history_wraps_storage_errors():
    fixture = build_credit_fixture()
    fixture.transaction_repo.raise_error = ServerSelectionTimeoutError("mongo down")

    with pytest.raises(PersistenceError):
        fixture.service.get_history("acct-1")


def test_consume_logs_transaction_and_returns_remaining():
    fixture = build_credit_fixture(CreditBalance(account_id="acct-1", signup=5))

    info = fixture.service.consume("acct-1", 2, request_id="req-1")

    assert info.available == 3
    assert fixture.balance_repo.rows["acct-1"].version == 1
    [tx] = fixture.transaction_repo.created
    assert tx.type == CreditTransactionType.CONSUME
    assert tx.amount == 2
    assert tx.request_id == "req-1"


def test_consume_insufficient_leaves_balance_and_log_untouched():
    fixture = build_credit_fixture(CreditBalance(account_id="acct-1", signup=1))

    with pytest.raises(InsufficientCreditsError):
        fixture.service.consume("acct-1", 2)

    assert fixture.balance_repo.rows["acct-1"].signup == 1
    assert fixture.transaction_repo.created == []


def test_consume_retries_after_cas_conflict():
    fixture = build_credit_fixture(CreditBalance(account_id="acct-1", signup=5))
    fixture.balance_repo.conflicts_before_success = 2

    info = fixture.service.consume("acct-1", 1)

    assert info.available == 4
    assert fixture.balance_repo.cas_calls == 3


def test_consume_gives_up_after_max_cas_attempts():
    fixture = build_credit_fixture(
        CreditBalance(account_id="acct-1", signup=5), max_cas_attempts=3
    )
    fixture.balance_repo.conflicts_before_success = 10

    with pytest.raises(ConcurrentUpdateError):
        fixture.service.consume("acct-1", 1)

    assert fixture.balance_repo.cas_calls == 3
    assert fixture.balance_repo.rows["acct-1"].signup == 5


def test_refund_credits_admin_grant():
    fixture = build_credit_fixture(CreditBalance(account_id="acct-1"))

    info = fixture.service.refund("acct-1", 3, "generation_refund", "req-1")

    assert info.admin_grant == 3
    assert fixture.transaction_repo.created[0].type == CreditTransactionType.REFUND


def test_claim_daily_only_once_per_day():
    fixture = build_credit_fixture(
        CreditBalance(account_id="acct-1", daily=2, daily_date=YESTERDAY)
    )

    info, credited = fixture.service.claim_daily("acct-1")
    again, credited_again = fixture.service.claim_daily("acct-1")

    assert credited is True
    assert info.daily == 5
    assert credited_again is False
    assert again.daily == 5
    grants = [
        tx
        for tx in fixture.transaction_repo.created
        if tx.type == CreditTransactionType.DAILY_GRANT
    ]
    assert len(grants) == 1


def test_daily_reward_status_reflects_claim():
    fixture = build_credit_fixture(CreditBalance(account_id="acct-1"))

    before = fixture.service.daily_reward_status("acct-1")
    fixture.service.claim_daily("acct-1")
    after = fixture.service.daily_reward_status("acct-1")

    assert before.can_claim is True
    assert before.reward_amount == 5
    assert after.can_claim is False
    assert after.claimed_date == TODAY


def test_concurrent_daily_claims_credit_exactly_once():
    fixture = build_credit_fixture(CreditBalance(account_id="acct-1"))

    with ThreadPoolExecutor(max_workers=8) as pool:
        results = list(pool.map(lambda _: fixture.service.claim_daily("acct-1"), range(8)))

    assert sum(1 for _, credited in results if credited) == 1
    assert fixture.balance_repo.rows["acct-1"].daily == 5


def test_concurrent_consumers_never_overdraw():
    fixture = build_credit_fixture(
        CreditBalance(account_id="acct-1", signup=5), max_cas_attempts=20
    )

    def _consume(_):
        try:
            fixture.service.consume("acct-1", 1)
            return True
        except InsufficientCreditsError:
            return False

    with ThreadPoolExecutor(max_workers=10) as pool:
        results = list(pool.map(_consume, range(10)))

    assert results.count(True) == 5
    assert fixture.balance_repo.rows["acct-1"].signup == 0
    assert len(fixture.transaction_repo.created) == 5
