"""API route for raw audio uploads."""

from typing import AsyncIterator, Optional

from fastapi import APIRouter, Depends, File, UploadFile
from pydantic import BaseModel

from ...config import Settings
from ...exceptions import ValidationError
from ...storage.artifact_store import FileArtifactStore
from ..dependencies import get_artifact_store, get_settings
from ..error_handling import COMMON_ERROR_RESPONSES


router = APIRouter()

UPLOAD_CHUNK_SIZE = 1024 * 1024


class UploadResponse(BaseModel):
    """Response model for a stored upload."""

    ok: bool = True
    file: str
    path: str


async def iter_upload(upload: UploadFile, chunk_size: int = UPLOAD_CHUNK_SIZE) -> AsyncIterator[bytes]:
    """Read an UploadFile in fixed-size chunks."""
    while True:
        chunk = await upload.read(chunk_size)
        if not chunk:
            break
        yield chunk


def require_upload(upload: Optional[UploadFile], message: str) -> UploadFile:
    if upload is None or not upload.filename:
        raise ValidationError(message, field="audio")
    return upload


@router.post("/upload", response_model=UploadResponse, responses=COMMON_ERROR_RESPONSES)
async def upload_audio(
    audio: Optional[UploadFile] = File(None),
    store: FileArtifactStore = Depends(get_artifact_store),
    settings: Settings = Depends(get_settings),
):
    """Store a dropped audio file in the uploads directory."""
    audio = require_upload(audio, "No file received (field: audio)")

    staged = await store.stage_upload(
        audio.filename,
        iter_upload(audio),
        max_bytes=settings.max_upload_bytes,
        content_type=audio.content_type,
    )
    return UploadResponse(file=staged.filename, path=str(staged.path))
