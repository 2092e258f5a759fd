"""API route for project folders."""

from typing import Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, ConfigDict

from ...exceptions import ValidationError
from ...storage.artifact_store import FileArtifactStore
from ..dependencies import get_artifact_store
from ..error_handling import COMMON_ERROR_RESPONSES


router = APIRouter()


class CreateProjectRequest(BaseModel):
    model_config = ConfigDict(extra="ignore")

    projectName: Optional[str] = None


class CreateProjectResponse(BaseModel):
    """Response model for project folder creation."""

    message: str
    created: bool


@router.post(
    "/createProject", response_model=CreateProjectResponse, responses=COMMON_ERROR_RESPONSES
)
async def create_project(
    payload: Optional[CreateProjectRequest] = None,
    store: FileArtifactStore = Depends(get_artifact_store),
):
    """Create a project folder under the public directory.

    Characters outside ``[A-Za-z0-9_-]`` are replaced with ``_``. An existing
    folder is left untouched.
    """
    if payload is None or not payload.projectName:
        raise ValidationError("projectName is required", field="projectName")

    result = await store.create_named_subdirectory(payload.projectName)
    if not result.created:
        return CreateProjectResponse(message="Project already exists.", created=False)

    return CreateProjectResponse(
        message=f"Project folder '{payload.projectName}' created successfully!",
        created=True,
    )
