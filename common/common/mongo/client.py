from __future__ import annotations

import logging
import threading
from typing import Optional, cast

from pymongo import ASCENDING, DESCENDING, MongoClient
from pymongo.database import Database

from .config import get_mongo_db_name, get_mongo_uri


logger = logging.getLogger(__name__)


_client: Optional[MongoClient] = None
_db: Optional[Database] = None
_lock = threading.Lock()


def get_client() -> MongoClient:
    """전역 MongoClient 싱글톤을 반환한다.

    - MONGO_URI 에서 URI 를 읽어온다.
    - ping 으로 연결을 검증한다.
    - MONGO_DB_NAME 이 없으면 URI 의 기본 데이터베이스를 사용한다.
    - 크레딧/생성 기록 컬렉션에 필요한 인덱스를 한 번만 생성한다.
    """

    global _client, _db

    if _client is not None:
        return _client

    with _lock:
        if _client is not None:
            return _client

        uri = get_mongo_uri()
        client = MongoClient(uri, tz_aware=True)

        try:
            client.admin.command("ping")
        except Exception as exc:  # noqa: BLE001
            client.close()
            raise RuntimeError(f"failed to connect to MongoDB: {exc}") from exc

        db_name = get_mongo_db_name()
        try:
            if db_name:
                db = client[db_name]
            else:
                db = client.get_default_database()
        except Exception as exc:  # noqa: BLE001
            client.close()
            raise RuntimeError(
                "MongoDB database name must be specified via MONGO_DB_NAME or in MONGO_URI (mongodb://.../db_name)",
            ) from exc

        _client = client
        _db = db

        try:
            _ensure_indexes(_db)
        except Exception as exc:  # noqa: BLE001
            # 인덱스 생성 실패는 치명적 오류로 간주한다.
            logger.error("failed to ensure MongoDB indexes: %s", exc)
            raise

        safe_db = cast(Database, _db)
        logger.info("MongoDB connected and indexes ensured (db=%s)", safe_db.name)
        return _client


def get_database() -> Database:
    """전역 기본 Database 객체를 반환한다."""

    global _db

    if _db is None:
        get_client()
    assert (
        _db is not None
    )  # get_client 에서 _db 를 초기화하지 못했다면 예외가 이미 발생했어야 한다.
    return _db


def _ensure_indexes(db: Database) -> None:
    """필수 인덱스를 생성한다.

    중복 생성해도 MongoDB 가 처리하므로 idempotent 하다. 잔액 행과 생성 기록의
    유일성은 동시성 제어(CAS)와 기록 불변성의 전제이므로 여기서 보장한다.
    """

    balances = db["credit_balances"]
    balances.create_index(
        [("account_id", ASCENDING)],
        name="uniq_account_id",
        unique=True,
    )

    records = db["generation_records"]
    records.create_index(
        [("request_id", ASCENDING)],
        name="uniq_request_id",
        unique=True,
    )
    records.create_index(
        [("account_id", ASCENDING), ("created_at", DESCENDING)],
        name="idx_account_created_at_desc",
    )

    transactions = db["credit_transactions"]
    transactions.create_index(
        [("account_id", ASCENDING), ("created_at", DESCENDING)],
        name="idx_account_created_at_desc",
    )

    reconciliations = db["credit_reconciliations"]
    reconciliations.create_index(
        [("request_id", ASCENDING)],
        name="uniq_request_id",
        unique=True,
    )
