"""생성 이미지 저장소."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Protocol

from bson.errors import InvalidId
from gridfs import GridFSBucket
from gridfs.errors import NoFile
from pymongo.database import Database
from pymongo.errors import PyMongoError

from common.mongo.types import to_object_id

from ..exceptions import PersistenceError


logger = logging.getLogger(__name__)


ARTIFACT_ROUTE_PREFIX = "/api/v1/artifacts"


@dataclass(slots=True)
class StoredArtifact:
    data: bytes
    mime_type: str


class ArtifactStore(Protocol):
    async def put(
        self,
        account_id: str,
        request_id: str,
        slot_index: int,
        data: bytes,
        mime_type: str,
    ) -> str:  # pragma: no cover - Protocol
        """이미지를 저장하고 공개 URL 을 반환한다. 실패 시 PersistenceError."""
        ...


class GridFSArtifactStore(ArtifactStore):
    """MongoDB GridFS 버킷에 이미지를 저장한다.

    URL 은 {base_url}/api/v1/artifacts/{file_id} 형태이며 이 서비스가 직접 서빙한다.
    """

    def __init__(self, database: Database, bucket_name: str, base_url: str) -> None:
        self._bucket = GridFSBucket(database, bucket_name=bucket_name)
        self._base_url = base_url.rstrip("/")

    def url_for(self, artifact_id: str) -> str:
        return f"{self._base_url}{ARTIFACT_ROUTE_PREFIX}/{artifact_id}"

    async def put(
        self,
        account_id: str,
        request_id: str,
        slot_index: int,
        data: bytes,
        mime_type: str,
    ) -> str:
        filename = f"{account_id}/{request_id}/{slot_index}"
        metadata = {
            "account_id": account_id,
            "request_id": request_id,
            "slot_index": slot_index,
            "content_type": mime_type,
        }
        try:
            file_id = await asyncio.to_thread(
                self._bucket.upload_from_stream,
                filename,
                data,
                metadata=metadata,
            )
        except PyMongoError as exc:
            raise PersistenceError(f"failed to store artifact {filename}: {exc}") from exc
        return self.url_for(str(file_id))

    def get(self, artifact_id: str) -> StoredArtifact | None:
        """저장된 이미지를 읽는다. 없거나 잘못된 id 면 None."""
        try:
            stream = self._bucket.open_download_stream(to_object_id(artifact_id))
        except (InvalidId, NoFile):
            return None
        except PyMongoError as exc:
            raise PersistenceError(f"failed to read artifact {artifact_id}: {exc}") from exc

        with stream:
            metadata = stream.metadata or {}
            return StoredArtifact(
                data=stream.read(),
                mime_type=str(metadata.get("content_type") or "image/png"),
            )
