"""ElevenLabs client wrapper (async).

Uses httpx to call the ElevenLabs text-to-speech, speech-to-speech and voice
listing endpoints.

Env:
- ELEVEN_API_KEY (or XI_API_KEY)
- ELEVEN_MODEL_ID
- ELEVEN_OUTPUT_FORMAT
"""

from __future__ import annotations

import asyncio
import logging
import math
from dataclasses import dataclass
from pathlib import Path
from typing import Any, AsyncIterator, Dict, List, Optional
from urllib.parse import quote

import httpx

from ..exceptions import ConfigurationError, UpstreamError, UpstreamStreamError

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://api.elevenlabs.io"


def _unit_or_default(value: Any, default: float = 0.5) -> float:
    try:
        number = float(value)
    except (TypeError, ValueError):
        return default
    return number if math.isfinite(number) else default


@dataclass
class VoiceSettings:
    """Voice tuning sent with each synthesis request (values between 0 and 1)."""

    stability: float = 0.5
    similarity_boost: float = 0.5
    style: Optional[float] = None

    @classmethod
    def from_request(
        cls, stability: Any = None, similarity: Any = None, style: Any = None
    ) -> "VoiceSettings":
        """Build settings from loosely typed request values.

        Non-numeric or non-finite stability/similarity fall back to 0.5; a
        falsy or non-numeric style is omitted.
        """
        style_value = None
        if style:
            try:
                style_value = float(style)
            except (TypeError, ValueError):
                style_value = None
        return cls(
            stability=_unit_or_default(stability),
            similarity_boost=_unit_or_default(similarity),
            style=style_value,
        )

    def to_payload(self) -> Dict[str, float]:
        payload = {
            "stability": self.stability,
            "similarity_boost": self.similarity_boost,
        }
        if self.style is not None:
            payload["style"] = self.style
        return payload


class ElevenLabsClient:
    """Thin async client for the ElevenLabs REST API.

    One instance is created at start-up and shared by all requests; it owns
    a single ``httpx.AsyncClient`` connection pool.
    """

    def __init__(
        self,
        api_key: str,
        *,
        base_url: str = DEFAULT_BASE_URL,
        model_id: str = "eleven_multilingual_v2",
        output_format: str = "mp3_44100_128",
        timeout: float = 60.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        if not api_key:
            raise ConfigurationError(
                "ElevenLabs API key not configured", setting="ELEVEN_API_KEY"
            )
        self.model_id = model_id
        self.output_format = output_format
        self._client = httpx.AsyncClient(
            base_url=base_url,
            headers={"xi-api-key": api_key},
            timeout=timeout,
            transport=transport,
        )

    @property
    def file_extension(self) -> str:
        """Extension matching the output format, e.g. ``mp3`` for ``mp3_44100_128``."""
        return self.output_format.split("_", 1)[0]

    @classmethod
    def from_settings(cls, settings, transport=None) -> "ElevenLabsClient":
        return cls(
            settings.api_key,
            base_url=settings.eleven_base_url,
            model_id=settings.eleven_model_id,
            output_format=settings.eleven_output_format,
            timeout=settings.eleven_timeout_seconds,
            transport=transport,
        )

    async def synthesize_stream(
        self,
        text: str,
        voice_id: str,
        voice_settings: Optional[VoiceSettings] = None,
    ) -> AsyncIterator[bytes]:
        """Stream synthesized speech for ``text``.

        Yields audio chunks in the order the provider sends them. The
        request is only issued once iteration starts.

        Raises:
            UpstreamError: Provider rejected the request or was unreachable
            UpstreamStreamError: Connection failed after audio started arriving
        """
        settings = voice_settings or VoiceSettings()
        payload = {
            "text": text,
            "model_id": self.model_id,
            "voice_settings": settings.to_payload(),
        }
        params = {
            "output_format": self.output_format,
            "optimize_streaming_latency": 0,
        }
        url = f"/v1/text-to-speech/{quote(voice_id, safe='')}/stream"

        streaming = False
        try:
            async with self._client.stream(
                "POST", url, params=params, json=payload
            ) as response:
                if response.is_error:
                    await response.aread()
                    raise UpstreamError(
                        self._error_message(response), status=response.status_code
                    )
                streaming = True
                async for chunk in response.aiter_bytes():
                    if chunk:
                        yield chunk
        except httpx.HTTPError as e:
            if streaming:
                raise UpstreamStreamError(
                    f"ElevenLabs stream interrupted: {e}", cause=e
                ) from e
            raise UpstreamError(f"ElevenLabs request failed: {e}", cause=e) from e

    async def convert_speech(
        self,
        voice_id: str,
        audio_path: Path,
        filename: Optional[str] = None,
        content_type: Optional[str] = None,
    ) -> bytes:
        """Convert recorded speech in ``audio_path`` to ``voice_id``.

        Returns:
            The converted audio, fully buffered
        """
        audio = await asyncio.to_thread(Path(audio_path).read_bytes)
        files = {
            "audio": (
                filename or Path(audio_path).name,
                audio,
                content_type or "application/octet-stream",
            )
        }
        url = f"/v1/speech-to-speech/{quote(voice_id, safe='')}/stream"

        try:
            response = await self._client.post(
                url,
                params={"output_format": self.output_format},
                data={"model_id": self.model_id},
                files=files,
            )
        except httpx.HTTPError as e:
            raise UpstreamError(f"ElevenLabs request failed: {e}", cause=e) from e

        if response.is_error:
            raise UpstreamError(self._error_message(response), status=response.status_code)
        return response.content

    async def list_voices(self) -> List[Dict[str, Any]]:
        """Return the voices available to the configured account."""
        try:
            response = await self._client.get("/v1/voices")
        except httpx.HTTPError as e:
            raise UpstreamError(f"ElevenLabs request failed: {e}", cause=e) from e

        if response.is_error:
            raise UpstreamError(self._error_message(response), status=response.status_code)

        try:
            return list(response.json()["voices"])
        except (ValueError, KeyError, TypeError) as e:
            raise UpstreamError(
                "Unexpected ElevenLabs voices response shape", cause=e
            ) from e

    async def aclose(self) -> None:
        await self._client.aclose()

    @staticmethod
    def _error_message(response: httpx.Response) -> str:
        detail: Any = None
        try:
            body = response.json()
        except ValueError:
            body = None
        if isinstance(body, dict):
            detail = body.get("detail", body)
            if isinstance(detail, dict):
                detail = detail.get("message") or detail.get("status") or detail
        if not detail:
            detail = response.text[:500] or response.reason_phrase
        return f"ElevenLabs returned {response.status_code}: {detail}"
