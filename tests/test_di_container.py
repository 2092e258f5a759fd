"""Tests for the dependency injection container."""

import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest

from voicegate.config import Settings
from voicegate.infrastructure.container import Container, Dependency, Lifecycle
from voicegate.infrastructure.elevenlabs_client import ElevenLabsClient
from voicegate.storage.artifact_store import FileArtifactStore


def make_settings(tmp_path, **overrides) -> Settings:
    values = {"data_dir": str(tmp_path), "eleven_api_key": "test-key"}
    values.update(overrides)
    return Settings(_env_file=None, **values)


class TestContainer:
    """Test the DI container."""

    @pytest.mark.asyncio
    async def test_default_dependencies(self, tmp_path):
        container = Container(make_settings(tmp_path))

        store = await container.artifact_store()
        client = await container.voice_client()

        assert isinstance(store, FileArtifactStore)
        assert store.audio_dir == tmp_path.resolve() / "public" / "audios"
        assert isinstance(client, ElevenLabsClient)
        await client.aclose()

    @pytest.mark.asyncio
    async def test_voice_client_is_none_without_key(self, tmp_path):
        container = Container(make_settings(tmp_path, eleven_api_key="", xi_api_key=""))

        assert await container.voice_client() is None
        # Resolved once, even though the value is None
        assert container._dependencies["voice_client"]._resolved

    @pytest.mark.asyncio
    async def test_xi_api_key_fallback(self, tmp_path):
        container = Container(make_settings(tmp_path, eleven_api_key="", xi_api_key="xi"))

        client = await container.voice_client()
        assert client is not None
        await client.aclose()

    @pytest.mark.asyncio
    async def test_singleton_lifecycle(self, tmp_path):
        container = Container(make_settings(tmp_path))
        call_count = 0

        def factory():
            nonlocal call_count
            call_count += 1
            return {"instance": call_count}

        container.register("singleton_test", factory, Lifecycle.SINGLETON)

        first = await container.resolve("singleton_test")
        second = await container.resolve("singleton_test")

        assert first is second
        assert call_count == 1

    @pytest.mark.asyncio
    async def test_transient_lifecycle(self, tmp_path):
        container = Container(make_settings(tmp_path))
        container.register("transient_test", lambda: object(), Lifecycle.TRANSIENT)

        first = await container.resolve("transient_test")
        second = await container.resolve("transient_test")

        assert first is not second

    @pytest.mark.asyncio
    async def test_override_dependency(self, tmp_path):
        container = Container(make_settings(tmp_path))
        mock_store = MagicMock()

        container.override("artifact_store", mock_store)

        assert await container.artifact_store() is mock_store

    @pytest.mark.asyncio
    async def test_resolve_unknown_dependency_raises(self, tmp_path):
        container = Container(make_settings(tmp_path))

        with pytest.raises(KeyError) as exc_info:
            await container.resolve("unknown_dep")

        assert "unknown_dep" in str(exc_info.value)

    @pytest.mark.asyncio
    async def test_container_reset(self, tmp_path):
        container = Container(make_settings(tmp_path))
        call_count = 0

        def factory():
            nonlocal call_count
            call_count += 1
            return call_count

        container.register("reset_test", factory)
        await container.resolve("reset_test")
        container.reset()
        await container.resolve("reset_test")

        assert call_count == 2


class TestContainerLifecycle:
    """Test init, close and health reporting."""

    @pytest.mark.asyncio
    async def test_init_creates_directories(self, tmp_path):
        settings = make_settings(tmp_path, eleven_api_key="", xi_api_key="")
        container = Container(settings)

        await container.init()

        assert settings.audio_dir.is_dir()
        assert settings.uploads_dir.is_dir()
        assert container._initialized

    @pytest.mark.asyncio
    async def test_close_closes_voice_client(self, tmp_path):
        container = Container(make_settings(tmp_path))
        mock_client = MagicMock()
        mock_client.aclose = AsyncMock()
        container.override("voice_client", mock_client)

        await container.close()

        assert container._closed
        mock_client.aclose.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_close_tolerates_client_errors(self, tmp_path):
        container = Container(make_settings(tmp_path))
        mock_client = MagicMock()
        mock_client.aclose = AsyncMock(side_effect=RuntimeError("already closed"))
        container.override("voice_client", mock_client)

        await container.close()

        assert container._closed

    @pytest.mark.asyncio
    async def test_health_check_healthy(self, tmp_path):
        container = Container(make_settings(tmp_path))
        await container.init()

        health = await container.health_check()

        assert health["storage"]["status"] == "healthy"
        assert health["provider"]["status"] == "configured"
        await container.close()

    @pytest.mark.asyncio
    async def test_health_check_missing_directories(self, tmp_path):
        container = Container(make_settings(tmp_path, eleven_api_key="", xi_api_key=""))

        health = await container.health_check()

        assert health["storage"]["status"] == "unhealthy"
        assert health["storage"]["missing"]
        assert health["provider"]["status"] == "not_configured"


class TestDependencyClass:
    """Test the Dependency wrapper class."""

    @pytest.mark.asyncio
    async def test_dependency_resolve_async(self):
        async def async_factory():
            return "async_value"

        dep = Dependency(factory=async_factory, lifecycle=Lifecycle.SINGLETON)

        assert await dep.resolve() == "async_value"

    @pytest.mark.asyncio
    async def test_singleton_none_is_cached(self):
        call_count = 0

        def factory():
            nonlocal call_count
            call_count += 1
            return None

        dep = Dependency(factory=factory)
        await dep.resolve()
        await dep.resolve()

        assert call_count == 1

    @pytest.mark.asyncio
    async def test_dependency_concurrent_resolution(self):
        call_count = 0

        async def slow_factory():
            nonlocal call_count
            call_count += 1
            await asyncio.sleep(0.05)
            return {"instance": call_count}

        dep = Dependency(factory=slow_factory, lifecycle=Lifecycle.SINGLETON)

        results = await asyncio.gather(dep.resolve(), dep.resolve(), dep.resolve())

        assert results[0] is results[1] is results[2]
        assert call_count == 1
