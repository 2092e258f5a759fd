"""Static file serving with an index.html fallback for the frontend."""

from fastapi import APIRouter, Depends
from fastapi.responses import FileResponse

from ...exceptions import NotFoundError
from ...storage.artifact_store import FileArtifactStore
from ..dependencies import get_artifact_store


router = APIRouter()


@router.get("/{full_path:path}", include_in_schema=False)
async def serve_public(
    full_path: str,
    store: FileArtifactStore = Depends(get_artifact_store),
):
    """Serve a file from the public directory, else the frontend index page."""
    target = store.resolve_public(full_path) if full_path else None
    if target is None:
        target = store.resolve_public("index.html")
    if target is None:
        raise NotFoundError("File", full_path or "index.html")
    return FileResponse(target)
