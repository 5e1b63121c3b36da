from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Response

from ...exceptions import PersistenceError
from ...storage.artifact_store import GridFSArtifactStore
from ..dependencies import get_artifact_store

router = APIRouter()


@router.get("/{artifact_id}", summary="생성 이미지 다운로드")
def get_artifact(
    artifact_id: str,
    store: GridFSArtifactStore = Depends(get_artifact_store),
) -> Response:
    try:
        artifact = store.get(artifact_id)
    except PersistenceError as exc:
        raise HTTPException(status_code=503, detail="artifact store unavailable") from exc
    if artifact is None:
        raise HTTPException(status_code=404, detail="artifact not found")
    return Response(
        content=artifact.data,
        media_type=artifact.mime_type,
        headers={"Cache-Control": "public, max-age=31536000, immutable"},
    )
