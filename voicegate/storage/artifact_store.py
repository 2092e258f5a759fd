"""Artifact storage for generated audio and uploaded files.

Artifacts are written under a public root that is served statically, so
every write returns a reference relative to that root:

    {data_dir}/
        public/                  # store root, served as static files
            index.html
            audios/              # generated audio
                tts-1700000000000-000001-3fa2c1.mp3
            My_Project_/         # project folders
        uploads/                 # staged uploads, never public

Writes go to a hidden temporary file in the destination directory and are
renamed into place, so a reference never points at a partially written file.
"""

import asyncio
import itertools
import logging
import os
import re
import tempfile
import threading
import time
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import AsyncIterable, Iterable, Optional, Set, Union

from ..exceptions import (
    ConfigurationError,
    PayloadTooLargeError,
    StorageError,
    UpstreamError,
    UpstreamStreamError,
    ValidationError,
)

logger = logging.getLogger(__name__)

UNSAFE_NAME_CHARS = re.compile(r"[^A-Za-z0-9_-]")
WHITESPACE_RUN = re.compile(r"\s+")

ByteChunks = Union[Iterable[bytes], AsyncIterable[bytes]]


@dataclass
class ArtifactInfo:
    """A stored artifact, as logged after each write."""

    reference: str
    path: Path
    size_bytes: int
    created_at: str = field(
        default_factory=lambda: datetime.now(timezone.utc).isoformat()
    )


@dataclass
class SubdirectoryResult:
    """Outcome of creating a named subdirectory."""

    name: str
    path: Path
    created: bool  # False means it already existed and was left untouched


@dataclass
class StagedUpload:
    """A client upload held in the uploads directory until consumed."""

    filename: str
    path: Path
    size_bytes: int
    original_filename: str
    content_type: Optional[str] = None
    created_at: str = field(
        default_factory=lambda: datetime.now(timezone.utc).isoformat()
    )


class UniqueStamp:
    """Generates collision-free filename stamps.

    Format: ``{epoch_millis}-{sequence:06d}-{random_hex}``. The sequence is
    strictly increasing within the process; the random suffix separates
    worker processes that share a directory.
    """

    def __init__(self) -> None:
        self._sequence = itertools.count(1)
        self._lock = threading.Lock()

    def next(self) -> str:
        with self._lock:
            sequence = next(self._sequence)
        millis = time.time_ns() // 1_000_000
        return f"{millis}-{sequence:06d}-{uuid.uuid4().hex[:6]}"


class ArtifactStore(ABC):
    """Abstract base class for artifact storage backends."""

    @abstractmethod
    async def ensure_directories(self, paths: Optional[Iterable[Path]] = None) -> None:
        """Create each directory (and parents) if absent.

        Args:
            paths: Directories to provision; defaults to the store's own layout

        Raises:
            StorageError: If a directory cannot be created for any reason
                other than it already existing
        """

    @abstractmethod
    async def write_artifact(
        self, category_prefix: str, data: bytes, extension: str
    ) -> str:
        """Persist a byte payload under a freshly generated filename.

        Args:
            category_prefix: Filename prefix, e.g. ``tts`` or ``s2s``
            data: Full payload
            extension: File extension without the leading dot

        Returns:
            Reference relative to the public root, with POSIX separators
        """

    @abstractmethod
    async def create_named_subdirectory(self, name: str) -> SubdirectoryResult:
        """Create a sanitized subdirectory of the public root."""

    @abstractmethod
    async def stage_upload(
        self,
        original_filename: str,
        chunks: AsyncIterable[bytes],
        max_bytes: Optional[int] = None,
        content_type: Optional[str] = None,
    ) -> StagedUpload:
        """Write an incoming upload into the uploads directory."""

    @abstractmethod
    async def consume_temporary_upload(self, path: Union[str, Path]) -> None:
        """Delete a staged upload. Never raises."""

    async def write_artifact_from_chunks(
        self, category_prefix: str, chunks: ByteChunks, extension: str
    ) -> str:
        """Drain a chunk sequence in order, then write it as one artifact.

        Nothing is written unless the sequence is consumed to completion.

        Raises:
            UpstreamStreamError: If the chunk sequence raises part way through
        """
        buffer = bytearray()
        received = 0
        try:
            if hasattr(chunks, "__aiter__"):
                async for chunk in chunks:
                    buffer.extend(chunk)
                    received += 1
            else:
                for chunk in chunks:
                    buffer.extend(chunk)
                    received += 1
        except UpstreamError:
            raise
        except Exception as e:
            raise UpstreamStreamError(
                f"Upstream audio stream failed after {received} chunks: {e}",
                chunks_received=received,
                cause=e,
            ) from e

        return await self.write_artifact(category_prefix, bytes(buffer), extension)


class FileArtifactStore(ArtifactStore):
    """Filesystem-backed artifact store."""

    def __init__(
        self,
        public_dir: Union[str, Path],
        audio_dir: Optional[Union[str, Path]] = None,
        uploads_dir: Optional[Union[str, Path]] = None,
    ):
        """Initialize file artifact store.

        Directories are not touched here; call ``ensure_directories`` once at
        start-up.

        Args:
            public_dir: Root for public references
            audio_dir: Where generated audio goes (default ``public_dir/audios``)
            uploads_dir: Where uploads are staged (default ``public_dir/../uploads``)
        """
        self.public_dir = Path(public_dir).resolve()
        self.audio_dir = (
            Path(audio_dir).resolve() if audio_dir else self.public_dir / "audios"
        )
        self.uploads_dir = (
            Path(uploads_dir).resolve()
            if uploads_dir
            else self.public_dir.parent / "uploads"
        )
        if not self.audio_dir.is_relative_to(self.public_dir):
            raise ConfigurationError(
                f"Audio directory {self.audio_dir} must be inside {self.public_dir}",
                setting="audio_dir",
            )
        self._stamps = UniqueStamp()

    @classmethod
    def from_settings(cls, settings) -> "FileArtifactStore":
        """Build a store from the directories configured in ``Settings``."""
        return cls(settings.public_dir, settings.audio_dir, settings.uploads_dir)

    @property
    def required_directories(self) -> Set[Path]:
        return {self.public_dir, self.audio_dir, self.uploads_dir}

    # Directory lifecycle

    async def ensure_directories(self, paths: Optional[Iterable[Path]] = None) -> None:
        targets = list(paths) if paths is not None else sorted(self.required_directories)
        for path in targets:
            await asyncio.to_thread(self._ensure_directory, Path(path))

    def _ensure_directory(self, path: Path) -> None:
        try:
            path.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise StorageError(
                f"Failed to create directory {path}: {e.strerror or e}",
                path=str(path),
                cause=e,
            ) from e

    async def create_named_subdirectory(self, name: str) -> SubdirectoryResult:
        sanitized = UNSAFE_NAME_CHARS.sub("_", name or "")
        if not sanitized:
            raise ValidationError("Directory name must not be empty", field="name")

        target = self.public_dir / sanitized
        created = await asyncio.to_thread(self._make_subdirectory, target)
        if created:
            logger.info(f"Created directory {sanitized}")
        return SubdirectoryResult(name=sanitized, path=target, created=created)

    def _make_subdirectory(self, target: Path) -> bool:
        if target.is_dir():
            return False
        try:
            target.mkdir(parents=True)
        except FileExistsError as e:
            # Lost a race against another request creating the same folder
            if target.is_dir():
                return False
            raise StorageError(
                f"A file named {target.name} already exists", path=str(target), cause=e
            ) from e
        except OSError as e:
            raise StorageError(
                f"Failed to create directory {target}: {e.strerror or e}",
                path=str(target),
                cause=e,
            ) from e
        return True

    # Artifact writes

    def _artifact_filename(self, category_prefix: str, extension: str) -> str:
        if not category_prefix or UNSAFE_NAME_CHARS.search(category_prefix):
            raise ValidationError(
                f"Invalid category prefix: {category_prefix!r}", field="category_prefix"
            )
        ext = extension.lstrip(".")
        if not ext or UNSAFE_NAME_CHARS.search(ext):
            raise ValidationError(f"Invalid extension: {extension!r}", field="extension")
        return f"{category_prefix}-{self._stamps.next()}.{ext}"

    async def write_artifact(
        self, category_prefix: str, data: bytes, extension: str
    ) -> str:
        info = await self.store_artifact(category_prefix, data, extension)
        return info.reference

    async def store_artifact(
        self, category_prefix: str, data: bytes, extension: str
    ) -> ArtifactInfo:
        """Like ``write_artifact`` but returns the full ``ArtifactInfo``."""
        filename = self._artifact_filename(category_prefix, extension)
        target = self.audio_dir / filename
        payload = bytes(data)

        await asyncio.to_thread(self._write_atomic, target, payload)

        info = ArtifactInfo(
            reference=target.relative_to(self.public_dir).as_posix(),
            path=target,
            size_bytes=len(payload),
        )
        logger.info(
            f"Stored artifact {info.reference}",
            extra={
                "reference": info.reference,
                "size_bytes": info.size_bytes,
                "category": category_prefix,
            },
        )
        return info

    def _write_atomic(self, target: Path, payload: bytes) -> None:
        tmp_name: Optional[str] = None
        try:
            fd, tmp_name = tempfile.mkstemp(
                prefix=f".{target.name}.", suffix=".part", dir=target.parent
            )
            with os.fdopen(fd, "wb") as f:
                f.write(payload)
                f.flush()
                os.fsync(f.fileno())
            os.chmod(tmp_name, 0o644)
            os.replace(tmp_name, target)
        except OSError as e:
            if tmp_name is not None:
                self._discard(Path(tmp_name))
            raise StorageError(
                f"Failed to write {target.name}: {e.strerror or e}",
                path=str(target),
                cause=e,
            ) from e

    # Uploads

    def _upload_filename(self, original_filename: str) -> str:
        # Browsers on Windows may send a full path
        base = os.path.basename((original_filename or "").replace("\\", "/"))
        base = WHITESPACE_RUN.sub("_", base.strip())
        return f"{self._stamps.next()}-{base or 'upload'}"

    async def stage_upload(
        self,
        original_filename: str,
        chunks: AsyncIterable[bytes],
        max_bytes: Optional[int] = None,
        content_type: Optional[str] = None,
    ) -> StagedUpload:
        filename = self._upload_filename(original_filename)
        target = self.uploads_dir / filename
        partial = self.uploads_dir / f".{filename}.part"
        size = 0

        try:
            handle = await asyncio.to_thread(open, partial, "wb")
            try:
                async for chunk in chunks:
                    size += len(chunk)
                    if max_bytes is not None and size > max_bytes:
                        raise PayloadTooLargeError(max_bytes)
                    await asyncio.to_thread(handle.write, chunk)
            finally:
                await asyncio.to_thread(handle.close)
            await asyncio.to_thread(os.replace, partial, target)
        except OSError as e:
            await asyncio.to_thread(self._discard, partial)
            raise StorageError(
                f"Failed to store upload {filename}: {e.strerror or e}",
                path=str(target),
                cause=e,
            ) from e
        except Exception:
            await asyncio.to_thread(self._discard, partial)
            raise

        logger.info(
            f"Staged upload {filename}",
            extra={"reference": filename, "size_bytes": size, "category": "upload"},
        )
        return StagedUpload(
            filename=filename,
            path=target,
            size_bytes=size,
            original_filename=original_filename,
            content_type=content_type,
        )

    async def consume_temporary_upload(self, path: Union[str, Path]) -> None:
        try:
            await asyncio.to_thread(os.unlink, path)
        except OSError as e:
            logger.warning(f"Could not remove temporary upload {path}: {e}")

    @staticmethod
    def _discard(path: Path) -> None:
        try:
            path.unlink()
        except FileNotFoundError:
            pass
        except OSError as e:
            logger.warning(f"Could not remove partial file {path}: {e}")

    # Reads

    def resolve_public(self, reference: str) -> Optional[Path]:
        """Map a public reference to an existing file under the public root.

        Returns None for missing files, for references that escape the root,
        for hidden names (in-progress ``.part`` files) and for paths the OS
        cannot represent.
        """
        parts = [p for p in reference.replace("\\", "/").split("/") if p]
        if not parts or any(p.startswith(".") for p in parts):
            return None
        try:
            candidate = self.public_dir.joinpath(*parts).resolve()
            candidate.relative_to(self.public_dir)
            return candidate if candidate.is_file() else None
        except (ValueError, OSError):
            return None
