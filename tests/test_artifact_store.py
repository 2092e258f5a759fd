"""Tests for the artifact storage module."""

import asyncio
import re
from pathlib import Path

import pytest

from voicegate.exceptions import (
    ConfigurationError,
    PayloadTooLargeError,
    StorageError,
    UpstreamError,
    UpstreamStreamError,
    ValidationError,
)
from voicegate.storage.artifact_store import (
    ArtifactInfo,
    FileArtifactStore,
    SubdirectoryResult,
    UniqueStamp,
)


@pytest.fixture
def store(tmp_path):
    """Create a FileArtifactStore rooted in a temporary directory."""
    return FileArtifactStore(tmp_path / "public")


@pytest.fixture
def ready_store(store):
    """A store whose directories have been provisioned."""
    asyncio.run(store.ensure_directories())
    return store


async def agen(chunks):
    for chunk in chunks:
        await asyncio.sleep(0)
        yield chunk


async def failing_stream(good_chunks, exc):
    for chunk in good_chunks:
        yield chunk
    raise exc


def visible_files(directory: Path):
    return sorted(p.name for p in directory.iterdir())


class TestDirectories:
    """Tests for directory provisioning."""

    @pytest.mark.asyncio
    async def test_ensure_directories_creates_layout(self, store, tmp_path):
        await store.ensure_directories()

        assert (tmp_path / "public").is_dir()
        assert (tmp_path / "public" / "audios").is_dir()
        assert (tmp_path / "uploads").is_dir()

    @pytest.mark.asyncio
    async def test_ensure_directories_is_idempotent(self, store, tmp_path):
        paths = {tmp_path / "a" / "b", tmp_path / "c"}

        await store.ensure_directories(paths)
        await store.ensure_directories(paths)

        assert all(p.is_dir() for p in paths)

    @pytest.mark.asyncio
    async def test_concurrent_ensure_does_not_error(self, store, tmp_path):
        target = tmp_path / "shared" / "nested"

        await asyncio.gather(*(store.ensure_directories([target]) for _ in range(10)))

        assert target.is_dir()

    @pytest.mark.asyncio
    async def test_ensure_directories_fails_when_file_in_the_way(self, store, tmp_path):
        blocker = tmp_path / "blocker"
        blocker.write_text("not a directory")

        with pytest.raises(StorageError) as exc_info:
            await store.ensure_directories([blocker])

        assert exc_info.value.status_code == 500
        assert exc_info.value.context.additional["path"] == str(blocker)


class TestWriteArtifact:
    """Tests for buffered artifact writes."""

    @pytest.mark.asyncio
    async def test_write_returns_public_reference(self, ready_store):
        reference = await ready_store.write_artifact("tts", b"ID3audio", "mp3")

        assert re.fullmatch(r"audios/tts-\d+-\d{6}-[0-9a-f]{6}\.mp3", reference)
        path = ready_store.public_dir / reference
        assert path.read_bytes() == b"ID3audio"

    @pytest.mark.asyncio
    async def test_write_leaves_no_partial_files(self, ready_store):
        await ready_store.write_artifact("tts", b"x" * 1024, "mp3")

        names = visible_files(ready_store.audio_dir)
        assert len(names) == 1
        assert not any(name.endswith(".part") for name in names)

    @pytest.mark.asyncio
    async def test_extension_dot_is_optional(self, ready_store):
        reference = await ready_store.write_artifact("s2s", b"data", ".mp3")

        assert reference.endswith(".mp3")
        assert ".." not in reference

    @pytest.mark.asyncio
    async def test_concurrent_writes_never_collide(self, ready_store):
        count = 50
        payloads = [f"payload-{i}".encode() for i in range(count)]

        references = await asyncio.gather(
            *(ready_store.write_artifact("tts", p, "mp3") for p in payloads)
        )

        assert len(set(references)) == count
        assert len(visible_files(ready_store.audio_dir)) == count
        stored = {(ready_store.public_dir / r).read_bytes() for r in references}
        assert stored == set(payloads)

    @pytest.mark.asyncio
    async def test_invalid_prefix_rejected(self, ready_store):
        with pytest.raises(ValidationError):
            await ready_store.write_artifact("../evil", b"data", "mp3")

    @pytest.mark.asyncio
    async def test_write_fails_without_directories(self, store):
        with pytest.raises(StorageError):
            await store.write_artifact("tts", b"data", "mp3")


class TestWriteFromChunks:
    """Tests for chunked artifact writes."""

    @pytest.mark.asyncio
    async def test_async_chunks_concatenated_in_order(self, ready_store):
        reference = await ready_store.write_artifact_from_chunks(
            "tts", agen([b"one-", b"two-", b"three"]), "mp3"
        )

        assert (ready_store.public_dir / reference).read_bytes() == b"one-two-three"

    @pytest.mark.asyncio
    async def test_sync_chunks_supported(self, ready_store):
        reference = await ready_store.write_artifact_from_chunks(
            "tts", iter([b"a", b"b"]), "mp3"
        )

        assert (ready_store.public_dir / reference).read_bytes() == b"ab"

    @pytest.mark.asyncio
    async def test_failing_stream_writes_nothing(self, ready_store):
        stream = failing_stream([b"partial"], ConnectionResetError("peer reset"))

        with pytest.raises(UpstreamStreamError) as exc_info:
            await ready_store.write_artifact_from_chunks("tts", stream, "mp3")

        assert exc_info.value.context.additional["chunks_received"] == 1
        assert isinstance(exc_info.value.__cause__, ConnectionResetError)
        assert visible_files(ready_store.audio_dir) == []

    @pytest.mark.asyncio
    async def test_upstream_errors_pass_through(self, ready_store):
        stream = failing_stream([], UpstreamError("401 unauthorized", status=401))

        with pytest.raises(UpstreamError) as exc_info:
            await ready_store.write_artifact_from_chunks("tts", stream, "mp3")

        assert not isinstance(exc_info.value, UpstreamStreamError)
        assert visible_files(ready_store.audio_dir) == []


class TestNamedSubdirectory:
    """Tests for project folder creation."""

    @pytest.mark.asyncio
    async def test_name_is_sanitized(self, ready_store):
        result = await ready_store.create_named_subdirectory("My Project!")

        assert isinstance(result, SubdirectoryResult)
        assert result.name == "My_Project_"
        assert result.created is True
        assert (ready_store.public_dir / "My_Project_").is_dir()

    @pytest.mark.asyncio
    async def test_existing_directory_left_untouched(self, ready_store):
        first = await ready_store.create_named_subdirectory("My Project!")
        marker = first.path / "notes.txt"
        marker.write_text("keep me")

        second = await ready_store.create_named_subdirectory("My Project!")

        assert second.created is False
        assert second.path == first.path
        assert marker.read_text() == "keep me"

    @pytest.mark.asyncio
    async def test_traversal_characters_are_neutralised(self, ready_store):
        result = await ready_store.create_named_subdirectory("../../etc")

        assert result.name == "______etc"
        assert result.path.parent == ready_store.public_dir

    @pytest.mark.asyncio
    async def test_empty_name_rejected(self, ready_store):
        with pytest.raises(ValidationError):
            await ready_store.create_named_subdirectory("")

    @pytest.mark.asyncio
    async def test_file_with_same_name_is_an_error(self, ready_store):
        (ready_store.public_dir / "taken").write_text("file")

        with pytest.raises(StorageError):
            await ready_store.create_named_subdirectory("taken")


class TestUploads:
    """Tests for staging and consuming uploads."""

    @pytest.mark.asyncio
    async def test_stage_upload_writes_file(self, ready_store):
        staged = await ready_store.stage_upload(
            "my voice sample.wav", agen([b"RIFF", b"data"]), content_type="audio/wav"
        )

        assert staged.filename.endswith("-my_voice_sample.wav")
        assert staged.path.parent == ready_store.uploads_dir
        assert staged.path.read_bytes() == b"RIFFdata"
        assert staged.size_bytes == 8
        assert staged.content_type == "audio/wav"

    @pytest.mark.asyncio
    async def test_stage_upload_strips_client_paths(self, ready_store):
        staged = await ready_store.stage_upload(
            "C:\\Users\\me\\clip.mp3", agen([b"x"])
        )

        assert staged.filename.endswith("-clip.mp3")
        assert staged.path.parent == ready_store.uploads_dir

    @pytest.mark.asyncio
    async def test_stage_upload_enforces_size_limit(self, ready_store):
        with pytest.raises(PayloadTooLargeError) as exc_info:
            await ready_store.stage_upload(
                "big.wav", agen([b"x" * 6, b"x" * 6]), max_bytes=10
            )

        assert exc_info.value.status_code == 413
        assert visible_files(ready_store.uploads_dir) == []

    @pytest.mark.asyncio
    async def test_consume_removes_file(self, ready_store):
        staged = await ready_store.stage_upload("clip.wav", agen([b"x"]))

        await ready_store.consume_temporary_upload(staged.path)

        assert not staged.path.exists()

    @pytest.mark.asyncio
    async def test_consume_missing_file_is_logged_not_raised(self, ready_store, caplog):
        missing = ready_store.uploads_dir / "gone.wav"

        await ready_store.consume_temporary_upload(missing)

        assert "gone.wav" in caplog.text


class TestPublicResolution:
    """Tests for mapping references back to files."""

    @pytest.mark.asyncio
    async def test_resolves_written_artifact(self, ready_store):
        reference = await ready_store.write_artifact("tts", b"abc", "mp3")

        assert ready_store.resolve_public(reference) == ready_store.public_dir / reference

    @pytest.mark.asyncio
    async def test_rejects_paths_outside_root(self, ready_store):
        secret = ready_store.uploads_dir / "secret.wav"
        secret.write_bytes(b"x")

        assert ready_store.resolve_public("../uploads/secret.wav") is None

    @pytest.mark.asyncio
    async def test_missing_file_resolves_to_none(self, ready_store):
        assert ready_store.resolve_public("audios/nope.mp3") is None
        assert ready_store.resolve_public("audios") is None


def test_unique_stamp_sequence_strictly_increases():
    stamps = UniqueStamp()

    sequences = [int(stamps.next().split("-")[1]) for _ in range(100)]

    assert sequences == sorted(set(sequences))
    assert sequences[0] == 1

    @pytest.mark.asyncio
    async def test_hidden_partial_files_are_not_served(self, ready_store):
        partial = ready_store.audio_dir / ".tts-1.mp3.abc.part"
        partial.write_bytes(b"half")

        assert ready_store.resolve_public("audios/.tts-1.mp3.abc.part") is None

    def test_unrepresentable_path_resolves_to_none(self, ready_store):
        assert ready_store.resolve_public("audios/x\x00.mp3") is None

    def test_empty_reference_resolves_to_none(self, ready_store):
        assert ready_store.resolve_public("") is None
        assert ready_store.resolve_public("/") is None


class TestArtifactInfo:
    @pytest.mark.asyncio
    async def test_store_artifact_describes_the_write(self, ready_store):
        info = await ready_store.store_artifact("s2s", b"12345", ".wav")

        assert isinstance(info, ArtifactInfo)
        assert info.reference.startswith("audios/s2s-")
        assert info.reference.endswith(".wav")
        assert info.path == ready_store.public_dir / info.reference
        assert info.size_bytes == 5
        assert info.path.read_bytes() == b"12345"
        assert info.created_at

    def test_audio_dir_outside_public_root_is_rejected(self, tmp_path):
        with pytest.raises(ConfigurationError) as exc_info:
            FileArtifactStore(tmp_path / "public", audio_dir=tmp_path / "elsewhere")

        assert exc_info.value.context.additional["setting"] == "audio_dir"
