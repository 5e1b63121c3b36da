"""크레딧 서비스 (계정당 1행, 5개 풀).

잔액 조회, 우선순위 소비, 환불, 일일 지급, 트랜잭션 로깅을 처리한다.
모든 변경은 load -> credit_ledger 계산 -> version CAS 로 원자적으로 반영한다.
"""

from __future__ import annotations

import logging
from datetime import date
from typing import Callable

from pymongo.errors import PyMongoError

from common.types.datetime import utc_now

from ..config import DAILY_REWARD_DEFAULT, DEFAULT_MAX_CAS_ATTEMPTS, SIGNUP_DEFAULT
from ..exceptions import ConcurrentUpdateError, PersistenceError
from ..models.credit import (
    CreditBalance,
    CreditsInfo,
    CreditTransaction,
    CreditTransactionType,
    DailyRewardStatus,
)
from ..repositories.interfaces import (
    CreditBalanceRepositoryInterface,
    CreditTransactionRepositoryInterface,
)
from . import credit_ledger


logger = logging.getLogger(__name__)


class CreditService:
    """크레딧 관련 비즈니스 로직."""

    def __init__(
        self,
        balance_repo: CreditBalanceRepositoryInterface,
        transaction_repo: CreditTransactionRepositoryInterface,
        *,
        signup_credits: int = SIGNUP_DEFAULT,
        daily_reward_credits: int = DAILY_REWARD_DEFAULT,
        max_cas_attempts: int = DEFAULT_MAX_CAS_ATTEMPTS,
        today: Callable[[], date] = credit_ledger.today_utc,
    ) -> None:
        self._balance_repo = balance_repo
        self._transaction_repo = transaction_repo
        self._signup_credits = signup_credits
        self._daily_reward_credits = daily_reward_credits
        self._max_cas_attempts = max(1, max_cas_attempts)
        self._today = today

    @property
    def daily_reward_credits(self) -> int:
        return self._daily_reward_credits

    def today(self) -> date:
        return self._today()

    # 조회 -----------------------------------------------------------------
    def get_balance(self, account_id: str) -> CreditBalance:
        """잔액 행을 조회한다. 없으면 가입 기본값으로 생성한다."""
        try:
            balance = self._balance_repo.find_by_account_id(account_id)
            if balance is not None:
                return balance

            created = self._balance_repo.insert_if_absent(
                credit_ledger.create_default(account_id, self._signup_credits)
            )
        except PyMongoError as exc:
            raise PersistenceError(f"failed to load credit balance: {exc}") from exc

        logger.info(
            "created default credit balance",
            extra={"account_id": account_id},
        )
        return created

    def get_info(self, account_id: str) -> CreditsInfo:
        return credit_ledger.available(self.get_balance(account_id), self._today())

    def daily_reward_status(self, account_id: str) -> DailyRewardStatus:
        """오늘 일일 보상을 받을 수 있는지 확인한다 (지급하지 않음)."""
        balance = self.get_balance(account_id)
        today = self._today()
        return DailyRewardStatus(
            can_claim=balance.daily_date != today,
            reward_amount=self._daily_reward_credits,
            claimed_date=balance.daily_date,
        )

    def get_history(
        self, account_id: str, page: int = 1, page_size: int = 20
    ) -> tuple[list[CreditTransaction], int]:
        """크레딧 사용 이력 조회."""
        try:
            return self._transaction_repo.list_by_account(account_id, page, page_size)
        except PyMongoError as exc:
            raise PersistenceError(f"failed to load credit history: {exc}") from exc

    # 변경 -----------------------------------------------------------------
    def consume(
        self,
        account_id: str,
        amount: int,
        reason: str = "generation",
        request_id: str | None = None,
        tx_type: CreditTransactionType = CreditTransactionType.CONSUME,
    ) -> CreditsInfo:
        """우선순위대로 크레딧을 차감하고 차감 후 잔액을 반환한다.

        잔액 부족 시 InsufficientCreditsError, 경합이 계속되면 ConcurrentUpdateError.
        """
        today = self._today()
        updated = self._mutate(
            account_id,
            lambda balance: credit_ledger.consume(balance, amount, today),
        )

        self._log_transaction(
            account_id,
            tx_type,
            amount,
            reason,
            request_id,
        )
        return credit_ledger.available(updated, today)

    def refund(
        self,
        account_id: str,
        amount: int,
        reason: str = "refund",
        request_id: str | None = None,
    ) -> CreditsInfo:
        """admin_grant 풀로 환불한다."""
        updated = self._mutate(
            account_id,
            lambda balance: credit_ledger.refund(balance, amount),
        )

        self._log_transaction(
            account_id,
            CreditTransactionType.REFUND,
            amount,
            reason,
            request_id,
        )
        return credit_ledger.available(updated, self._today())

    def claim_daily(self, account_id: str) -> tuple[CreditsInfo, bool]:
        """일일 보상 지급. 같은 UTC 날짜에 두 번째 호출은 credited=False."""
        today = self._today()
        credited = False

        def _claim(balance: CreditBalance) -> CreditBalance | None:
            nonlocal credited
            updated, credited = credit_ledger.claim_daily(
                balance, today, self._daily_reward_credits
            )
            # 이미 받은 경우 CAS 없이 현재 잔액을 그대로 쓴다.
            return updated if credited else None

        updated = self._mutate(account_id, _claim)

        if credited:
            self._log_transaction(
                account_id,
                CreditTransactionType.DAILY_GRANT,
                self._daily_reward_credits,
                "일일 보상 지급",
                None,
            )
        return credit_ledger.available(updated, today), credited

    # 내부 util -------------------------------------------------------------
    def _mutate(
        self,
        account_id: str,
        compute: Callable[[CreditBalance], CreditBalance | None],
    ) -> CreditBalance:
        """compare-and-swap 루프.

        compute 가 None 을 반환하면 변경할 것이 없다는 뜻이므로 현재 잔액을 반환한다.
        compute 가 던진 예외(잔액 부족 등)는 그대로 전파된다.
        """
        for attempt in range(1, self._max_cas_attempts + 1):
            current = self.get_balance(account_id)
            updated = compute(current)
            if updated is None:
                return current

            try:
                swapped = self._balance_repo.compare_and_swap(current.version, updated)
            except PyMongoError as exc:
                raise PersistenceError(f"failed to update credit balance: {exc}") from exc
            if swapped is not None:
                return swapped

            logger.warning(
                "credit balance changed concurrently, retrying (%d/%d)",
                attempt,
                self._max_cas_attempts,
                extra={"account_id": account_id},
            )

        raise ConcurrentUpdateError(
            f"credit balance for {account_id} kept changing after "
            f"{self._max_cas_attempts} attempts"
        )

    def _log_transaction(
        self,
        account_id: str,
        tx_type: CreditTransactionType,
        amount: int,
        reason: str,
        request_id: str | None,
    ) -> None:
        # 잔액은 이미 반영됐으므로 로그 실패는 기록만 하고 호출자에게 올리지 않는다.
        now = utc_now()
        try:
            self._transaction_repo.create(
                CreditTransaction(
                    account_id=account_id,
                    type=tx_type,
                    amount=amount,
                    reason=reason,
                    request_id=request_id,
                    created_at=now,
                    updated_at=now,
                )
            )
        except PyMongoError:
            logger.exception(
                "failed to write credit transaction type=%s amount=%d",
                tx_type.value,
                amount,
                extra={"account_id": account_id, "generation_request_id": request_id},
            )
