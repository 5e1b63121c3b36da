"""수동 정산 대기 항목 레포지토리 구현체."""

from __future__ import annotations

from pymongo import ASCENDING, IndexModel
from pymongo.database import Database
from pymongo.errors import DuplicateKeyError

from .documents.credit_document import CreditReconciliationDocument
from .interfaces import ReconciliationRepositoryInterface
from ..models.credit import CreditReconciliation


class ReconciliationRepository(ReconciliationRepositoryInterface):
    """credit_reconciliations 컬렉션에 대한 MongoDB 접근 레이어."""

    def __init__(self, database: Database) -> None:
        self._db = database
        self._col = database["credit_reconciliations"]
        self._col.create_indexes(
            [
                IndexModel(
                    [("request_id", ASCENDING)],
                    name="uniq_request_id",
                    unique=True,
                ),
            ]
        )

    def record(self, item: CreditReconciliation) -> bool:
        doc = CreditReconciliationDocument.from_domain(item)
        try:
            self._col.insert_one(doc.to_mongo_record())
        except DuplicateKeyError:
            # 재시도 토픽으로 같은 이벤트가 다시 들어오는 경우
            return False
        return True
