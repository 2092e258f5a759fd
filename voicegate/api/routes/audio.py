"""API routes for speech synthesis and voice conversion."""

import logging
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, File, Form, UploadFile
from pydantic import BaseModel, ConfigDict

from ...config import Settings
from ...exceptions import ValidationError
from ...infrastructure.elevenlabs_client import ElevenLabsClient, VoiceSettings
from ...storage.artifact_store import FileArtifactStore
from ..dependencies import (
    get_artifact_store,
    get_settings,
    get_voice_client,
    require_voice_client,
)
from ..error_handling import COMMON_ERROR_RESPONSES
from .uploads import iter_upload, require_upload


logger = logging.getLogger(__name__)

router = APIRouter()


class GenerateAudioRequest(BaseModel):
    """Text-to-speech request.

    Tuning values are accepted loosely (numbers or numeric strings) and fall
    back to 0.5 when they cannot be read as a finite number.
    """

    model_config = ConfigDict(extra="ignore")

    text: Optional[str] = None
    voice: Optional[str] = None
    stability: Any = 0.5
    similarity: Any = 0.5
    style: Any = None


class AudioResponse(BaseModel):
    """Response model for a generated audio artifact."""

    ok: bool = True
    audioUrl: str


class VoicesResponse(BaseModel):
    ok: bool = True
    voices: List[Dict[str, Any]]


@router.post("/generateAudio", response_model=AudioResponse, responses=COMMON_ERROR_RESPONSES)
async def generate_audio(
    payload: Optional[GenerateAudioRequest] = None,
    store: FileArtifactStore = Depends(get_artifact_store),
    client: Optional[ElevenLabsClient] = Depends(get_voice_client),
    settings: Settings = Depends(get_settings),
):
    """Synthesize ``text`` and store the result under ``audios/``."""
    if payload is None or not payload.text or not payload.text.strip():
        raise ValidationError("text is required", field="text")
    client = require_voice_client(client)

    voice_settings = VoiceSettings.from_request(
        payload.stability, payload.similarity, payload.style
    )
    voice_id = payload.voice or settings.eleven_default_voice_id

    chunks = client.synthesize_stream(payload.text, voice_id, voice_settings)
    reference = await store.write_artifact_from_chunks("tts", chunks, client.file_extension)

    return AudioResponse(audioUrl=reference)


@router.post(
    "/speech-to-speech", response_model=AudioResponse, responses=COMMON_ERROR_RESPONSES
)
async def speech_to_speech(
    audio: Optional[UploadFile] = File(None),
    voice: Optional[str] = Form(None),
    store: FileArtifactStore = Depends(get_artifact_store),
    client: Optional[ElevenLabsClient] = Depends(get_voice_client),
    settings: Settings = Depends(get_settings),
):
    """Convert an uploaded recording to another voice.

    The recording is staged in the uploads directory for the duration of the
    provider call and removed afterwards, whether the call succeeded or not.
    """
    audio = require_upload(audio, "Audio file is required (field: audio)")
    if not voice:
        raise ValidationError("voice is required", field="voice")
    client = require_voice_client(client)

    staged = await store.stage_upload(
        audio.filename,
        iter_upload(audio),
        max_bytes=settings.max_upload_bytes,
        content_type=audio.content_type,
    )
    try:
        converted = await client.convert_speech(
            voice, staged.path, filename=audio.filename, content_type=audio.content_type
        )
        reference = await store.write_artifact("s2s", converted, client.file_extension)
    finally:
        await store.consume_temporary_upload(staged.path)

    return AudioResponse(audioUrl=reference)


@router.get("/voices", response_model=VoicesResponse, responses=COMMON_ERROR_RESPONSES)
async def list_voices(client: Optional[ElevenLabsClient] = Depends(get_voice_client)):
    """List the voices available to the configured ElevenLabs account."""
    client = require_voice_client(client)
    voices = await client.list_voices()
    logger.debug(f"Fetched {len(voices)} voices")
    return VoicesResponse(voices=voices)
