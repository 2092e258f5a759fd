"""Dependency Injection Container for voicegate.

This module provides a DI container that:
1. Lazily initializes dependencies (not at import time)
2. Provides explicit dependency resolution
3. Supports different lifecycles (singleton, transient)
4. Enables easy testing with mock injection

One container is built per application by ``create_app`` and kept on
``app.state``; nothing here is a module-level instance.
"""

from __future__ import annotations

import asyncio
import logging
import os
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, Generic, Optional, TypeVar

from ..config import Settings
from ..storage.artifact_store import FileArtifactStore
from .elevenlabs_client import ElevenLabsClient


logger = logging.getLogger(__name__)

T = TypeVar("T")


class Lifecycle(Enum):
    """Dependency lifecycle options."""

    SINGLETON = "singleton"  # One instance for the entire application
    TRANSIENT = "transient"  # New instance each time


@dataclass
class Dependency(Generic[T]):
    """Wrapper for a dependency with its lifecycle."""

    factory: Callable[..., T]
    lifecycle: Lifecycle = Lifecycle.SINGLETON
    _instance: Optional[T] = field(default=None, repr=False)
    _resolved: bool = field(default=False, repr=False)
    _lock: asyncio.Lock = field(default_factory=asyncio.Lock, repr=False)

    async def resolve(self) -> T:
        """Resolve the dependency, respecting lifecycle."""
        if self.lifecycle == Lifecycle.TRANSIENT:
            result = self.factory()
            if asyncio.iscoroutine(result):
                return await result
            return result

        # Singleton factories may legitimately produce None, so track
        # resolution separately from the instance value
        if not self._resolved:
            async with self._lock:
                if not self._resolved:
                    result = self.factory()
                    if asyncio.iscoroutine(result):
                        result = await result
                    self._instance = result
                    self._resolved = True
        return self._instance

    def reset(self) -> None:
        """Reset the singleton instance (useful for testing)."""
        self._instance = None
        self._resolved = False


class Container:
    """
    Dependency Injection Container.

    Usage:
        container = Container(settings)
        await container.init()

        store = await container.artifact_store()
        client = await container.voice_client()  # None without a credential

        # Cleanup
        await container.close()
    """

    def __init__(self, settings: Settings) -> None:
        self.settings = settings
        self._dependencies: Dict[str, Dependency] = {}
        self._initialized = False
        self._closed = False

        self._register_defaults()

    def _register_defaults(self) -> None:
        """Register default dependencies."""

        self.register(
            "artifact_store",
            lambda: FileArtifactStore.from_settings(self.settings),
            Lifecycle.SINGLETON,
        )

        def create_voice_client() -> Optional[ElevenLabsClient]:
            if not self.settings.provider_configured:
                return None
            return ElevenLabsClient.from_settings(self.settings)

        self.register("voice_client", create_voice_client, Lifecycle.SINGLETON)

    def register(
        self,
        name: str,
        factory: Callable[..., T],
        lifecycle: Lifecycle = Lifecycle.SINGLETON,
    ) -> None:
        """
        Register a dependency.

        Args:
            name: Unique name for the dependency
            factory: Factory function to create the dependency
            lifecycle: How the dependency should be managed
        """
        self._dependencies[name] = Dependency(factory=factory, lifecycle=lifecycle)

    def override(self, name: str, instance: Any) -> None:
        """
        Override a dependency with a specific instance (for testing).

        Args:
            name: Dependency name to override
            instance: Instance to use
        """
        dep = Dependency(factory=lambda: instance, lifecycle=Lifecycle.SINGLETON)
        dep._instance = instance
        dep._resolved = True
        self._dependencies[name] = dep

    async def resolve(self, name: str) -> Any:
        """
        Resolve a dependency by name.

        Raises:
            KeyError: If dependency is not registered
        """
        if name not in self._dependencies:
            raise KeyError(f"Dependency '{name}' not registered")
        return await self._dependencies[name].resolve()

    async def artifact_store(self) -> FileArtifactStore:
        """Get the artifact store."""
        return await self.resolve("artifact_store")

    async def voice_client(self) -> Optional[ElevenLabsClient]:
        """Get the ElevenLabs client (None when no API key is configured)."""
        return await self.resolve("voice_client")

    async def init(self) -> None:
        """
        Initialize all singleton dependencies.

        Provisions the storage directories so a misconfigured data directory
        fails at start-up instead of on the first request.
        """
        if self._initialized:
            return

        store = await self.artifact_store()
        await store.ensure_directories()
        logger.info(f"Artifact store ready at {store.public_dir}")

        if await self.voice_client() is None:
            logger.warning(
                "ElevenLabs API key not configured; provider routes will return 500"
            )

        self._initialized = True
        self._closed = False

    async def close(self) -> None:
        """Close the provider client and reset dependencies."""
        if self._closed:
            return

        voice_dep = self._dependencies.get("voice_client")
        if voice_dep and voice_dep._instance is not None:
            try:
                await voice_dep._instance.aclose()
            except Exception as e:
                logger.warning(f"Error closing ElevenLabs client: {e}")

        for dep in self._dependencies.values():
            dep.reset()

        self._closed = True
        self._initialized = False

    def reset(self) -> None:
        """Reset the container (for testing)."""
        for dep in self._dependencies.values():
            dep.reset()
        self._initialized = False
        self._closed = False

    async def health_check(self) -> Dict[str, Any]:
        """
        Report storage and provider readiness.

        Returns:
            Dict with health status for each component
        """
        result: Dict[str, Any] = {
            "storage": {"status": "unknown"},
            "provider": {"status": "unknown"},
        }

        try:
            store = await self.artifact_store()
            missing = [
                str(p) for p in sorted(store.required_directories) if not p.is_dir()
            ]
            writable = os.access(store.audio_dir, os.W_OK) if not missing else False
            if missing:
                result["storage"] = {"status": "unhealthy", "missing": missing}
            elif not writable:
                result["storage"] = {"status": "unhealthy", "error": "audio dir not writable"}
            else:
                result["storage"] = {"status": "healthy"}
        except Exception as e:
            result["storage"] = {"status": "unhealthy", "error": str(e)}

        result["provider"] = {
            "status": "configured" if self.settings.provider_configured else "not_configured"
        }
        return result
