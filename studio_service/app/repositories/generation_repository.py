"""생성 기록 레포지토리 구현체."""

from __future__ import annotations

from pymongo import ASCENDING, DESCENDING, IndexModel
from pymongo.database import Database

from .documents.generation_document import GenerationRecordDocument
from .interfaces import GenerationRecordRepositoryInterface
from ..models.generation import GenerationRecord


class GenerationRecordRepository(GenerationRecordRepositoryInterface):
    """generation_records 컬렉션에 대한 MongoDB 접근 레이어.

    - request_id 유니크 인덱스로 요청당 기록이 하나임을 보장한다.
    - 수정/삭제 메서드는 두지 않는다.
    """

    def __init__(self, database: Database) -> None:
        self._db = database
        self._col = database["generation_records"]
        self._col.create_indexes(
            [
                IndexModel(
                    [("request_id", ASCENDING)],
                    name="uniq_request_id",
                    unique=True,
                ),
                IndexModel(
                    [("account_id", ASCENDING), ("created_at", DESCENDING)],
                    name="idx_account_created_at_desc",
                ),
            ]
        )

    def insert(self, record: GenerationRecord) -> GenerationRecord:
        doc = GenerationRecordDocument.from_domain(record)
        result = self._col.insert_one(doc.to_mongo_record())
        return record.model_copy(update={"id": str(result.inserted_id)})

    def find_by_request_id(
        self, account_id: str, request_id: str
    ) -> GenerationRecord | None:
        raw = self._col.find_one({"account_id": account_id, "request_id": request_id})
        if not raw:
            return None
        return GenerationRecordDocument.model_validate(raw).to_domain()

    def list_by_account(
        self, account_id: str, page: int, page_size: int
    ) -> tuple[list[GenerationRecord], int]:
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

        items: list[GenerationRecord] = []
        for raw in cursor:
            items.append(GenerationRecordDocument.model_validate(raw).to_domain())
        return items, total
