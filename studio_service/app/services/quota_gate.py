"""생성 요청 입장 정책.

잔액을 읽기만 하고 예약하지 않는다. 실제 차감 시점의 CreditService.consume 이
최종 판단이므로, 여기서 통과한 요청도 나중에 잔액 부족이 될 수 있다.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date

from ..models.credit import CreditBalance
from . import credit_ledger


@dataclass(slots=True, frozen=True)
class AdmissionDecision:
    admitted: bool
    available: int
    requested: int


def check(
    balance: CreditBalance, requested_image_count: int, today: date
) -> AdmissionDecision:
    total = credit_ledger.available(balance, today).available
    return AdmissionDecision(
        admitted=total >= requested_image_count,
        available=total,
        requested=requested_image_count,
    )


def admit(balance: CreditBalance, requested_image_count: int, today: date) -> bool:
    return check(balance, requested_image_count, today).admitted
