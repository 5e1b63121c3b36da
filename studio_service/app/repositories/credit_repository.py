"""크레딧 레포지토리 구현체.

잔액 행은 version 필드를 조건으로 하는 find_one_and_update 로만 갱신한다.
"""

from __future__ import annotations

from pymongo import ASCENDING, DESCENDING, IndexModel, ReturnDocument
from pymongo.database import Database
from pymongo.errors import DuplicateKeyError

from common.types.datetime import utc_now

from .documents.credit_document import (
    CreditBalanceDocument,
    CreditTransactionDocument,
)
from .interfaces import (
    CreditBalanceRepositoryInterface,
    CreditTransactionRepositoryInterface,
)
from ..models.credit import CreditBalance, CreditTransaction


class CreditBalanceRepository(CreditBalanceRepositoryInterface):
    """credit_balances 컬렉션에 대한 MongoDB 접근 레이어 (계정당 1행)."""

    def __init__(self, database: Database) -> None:
        self._db = database
        self._col = database["credit_balances"]
        self._col.create_indexes(
            [
                IndexModel(
                    [("account_id", ASCENDING)],
                    name="uniq_account_id",
                    unique=True,
                ),
            ]
        )

    def find_by_account_id(self, account_id: str) -> CreditBalance | None:
        doc = self._col.find_one({"account_id": account_id})
        if not doc:
            return None
        return CreditBalanceDocument.model_validate(doc).to_domain()

    def insert_if_absent(self, balance: CreditBalance) -> CreditBalance:
        """$setOnInsert 업서트로 기본 잔액 행을 만든다.

        동시에 두 요청이 같은 계정을 만들면 한쪽은 DuplicateKeyError 를 받으므로
        다시 읽어서 이미 만들어진 행을 반환한다.
        """
        record = CreditBalanceDocument.from_domain(balance).to_mongo_record()
        record.pop("account_id", None)
        try:
            doc = self._col.find_one_and_update(
                {"account_id": balance.account_id},
                {"$setOnInsert": record},
                upsert=True,
                return_document=ReturnDocument.AFTER,
            )
        except DuplicateKeyError:
            doc = self._col.find_one({"account_id": balance.account_id})
        return CreditBalanceDocument.model_validate(doc).to_domain()

    def compare_and_swap(
        self, expected_version: int, balance: CreditBalance
    ) -> CreditBalance | None:
        fields = CreditBalanceDocument.from_domain(balance).pool_fields()
        fields["updated_at"] = utc_now()
        doc = self._col.find_one_and_update(
            {"account_id": balance.account_id, "version": expected_version},
            {"$set": fields, "$inc": {"version": 1}},
            return_document=ReturnDocument.AFTER,
        )
        if not doc:
            return None
        return CreditBalanceDocument.model_validate(doc).to_domain()


class CreditTransactionRepository(CreditTransactionRepositoryInterface):
    """credit_transactions 컬렉션에 대한 MongoDB 접근 레이어."""

    def __init__(self, database: Database) -> None:
        self._db = database
        self._col = database["credit_transactions"]
        self._col.create_indexes(
            [
                IndexModel(
                    [("account_id", ASCENDING), ("created_at", DESCENDING)],
                    name="idx_account_created_at_desc",
                ),
            ]
        )

    def create(self, tx: CreditTransaction) -> CreditTransaction:
        """트랜잭션 로그 생성."""
        doc = CreditTransactionDocument.from_domain(tx)
        result = self._col.insert_one(doc.to_mongo_record())
        return tx.model_copy(update={"id": str(result.inserted_id)})

    def list_by_account(
        self, account_id: str, page: int, page_size: int
    ) -> tuple[list[CreditTransaction], int]:
        """계정의 크레딧 트랜잭션 이력 조회 (최신순)."""
        if page <= 0:
            page = 1
        if page_size <= 0 or page_size > 100:
            page_size = 20

        skip = (page - 1) * page_size

        total = self._col.count_documents({"account_id": account_id})
        cursor = self._col.find(
            {"account_id": account_id},
            sort=[("created_at", -1), ("_id", -1)],
            skip=skip,
            limit=page_size,
        )

        items: list[CreditTransaction] = []
        for raw in cursor:
            items.append(CreditTransactionDocument.model_validate(raw).to_domain())

        return items, total
