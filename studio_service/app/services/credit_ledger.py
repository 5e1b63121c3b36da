"""크레딧 풀 연산 (순수 함수).

저장소를 모르는 계산 레이어다. CreditService 가 CAS 루프 안에서
load -> 여기 함수 -> compare-and-swap 순으로 사용한다.
"""

from __future__ import annotations

from datetime import date

from common.types.datetime import utc_today

from ..config import SIGNUP_DEFAULT
from ..exceptions import InsufficientCreditsError, ValidationError
from ..models.credit import CONSUME_PRIORITY, CreditBalance, CreditPool, CreditsInfo


def today_utc() -> date:
    return utc_today()


def effective_daily(balance: CreditBalance, today: date) -> int:
    """daily_date 가 오늘이 아니면 daily 는 0 으로 본다."""
    if balance.daily_date == today:
        return balance.daily
    return 0


def available(balance: CreditBalance, today: date) -> CreditsInfo:
    daily = effective_daily(balance, today)
    total = (
        daily
        + balance.subscription
        + balance.signup
        + balance.admin_grant
        + balance.purchased
    )
    return CreditsInfo(
        available=total,
        daily=daily,
        subscription=balance.subscription,
        signup=balance.signup,
        admin_grant=balance.admin_grant,
        purchased=balance.purchased,
        daily_expired=balance.daily > 0 and balance.daily_date != today,
    )


def consume(balance: CreditBalance, amount: int, today: date) -> CreditBalance:
    """우선순위대로 amount 만큼 차감한 새 잔액을 반환한다.

    잔액이 모자라면 아무것도 차감하지 않고 InsufficientCreditsError 를 던진다.
    만료된 daily 풀은 건너뛰고 값도 그대로 둔다.
    """
    if amount <= 0:
        raise ValidationError(f"consume amount must be positive, got {amount}")

    total = available(balance, today).available
    if total < amount:
        raise InsufficientCreditsError(available=total, requested=amount)

    remaining = amount
    changes: dict[str, int] = {}
    for pool in CONSUME_PRIORITY:
        if remaining == 0:
            break
        if pool is CreditPool.DAILY:
            current = effective_daily(balance, today)
        else:
            current = balance.pool(pool)
        if current <= 0:
            continue
        deduct = min(current, remaining)
        changes[pool.value] = current - deduct
        remaining -= deduct

    return balance.with_changes(**changes)


def refund(balance: CreditBalance, amount: int) -> CreditBalance:
    """환불은 항상 admin_grant 로 적립한다 (원래 풀로 되돌리지 않는다)."""
    if amount <= 0:
        raise ValidationError(f"refund amount must be positive, got {amount}")
    return balance.with_changes(admin_grant=balance.admin_grant + amount)


def claim_daily(
    balance: CreditBalance, today: date, reward_amount: int
) -> tuple[CreditBalance, bool]:
    """오늘 이미 받았으면 그대로, 아니면 daily 를 reward_amount 로 덮어쓴다."""
    if balance.daily_date == today:
        return balance, False
    return balance.with_changes(daily=reward_amount, daily_date=today), True


def create_default(account_id: str, signup_credits: int = SIGNUP_DEFAULT) -> CreditBalance:
    return CreditBalance(account_id=account_id, signup=signup_credits)
