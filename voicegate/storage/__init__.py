"""Storage module for artifact persistence."""

from .artifact_store import (
    ArtifactStore,
    FileArtifactStore,
    StagedUpload,
    SubdirectoryResult,
    UniqueStamp,
)

__all__ = [
    "ArtifactStore",
    "FileArtifactStore",
    "StagedUpload",
    "SubdirectoryResult",
    "UniqueStamp",
]
