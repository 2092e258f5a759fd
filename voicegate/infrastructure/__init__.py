"""Infrastructure: dependency container and upstream provider client."""

from .container import Container, Dependency, Lifecycle
from .elevenlabs_client import ElevenLabsClient, VoiceSettings

__all__ = ["Container", "Dependency", "Lifecycle", "ElevenLabsClient", "VoiceSettings"]
