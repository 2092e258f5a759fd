"""FastAPI dependencies resolved from the application's container."""

from typing import Optional

from fastapi import Depends, Request

from ..config import Settings
from ..exceptions import ConfigurationError
from ..infrastructure.container import Container
from ..infrastructure.elevenlabs_client import ElevenLabsClient
from ..storage.artifact_store import FileArtifactStore


def get_container(request: Request) -> Container:
    return request.app.state.container


def get_settings(container: Container = Depends(get_container)) -> Settings:
    return container.settings


async def get_artifact_store(
    container: Container = Depends(get_container),
) -> FileArtifactStore:
    return await container.artifact_store()


async def get_voice_client(
    container: Container = Depends(get_container),
) -> Optional[ElevenLabsClient]:
    """Resolve the provider client without failing the request.

    Routes call ``require_voice_client`` after validating their input so
    that a bad request still answers 400 on an unconfigured server.
    """
    return await container.voice_client()


def require_voice_client(client: Optional[ElevenLabsClient]) -> ElevenLabsClient:
    if client is None:
        raise ConfigurationError(
            "ElevenLabs API key not configured", setting="ELEVEN_API_KEY"
        )
    return client
