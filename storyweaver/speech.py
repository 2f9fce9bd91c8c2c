"""Text-to-speech through the ElevenLabs API."""

from __future__ import annotations

import base64
import logging
from dataclasses import dataclass
from typing import Optional, Sequence

import requests

from .exceptions import ExternalServiceError, ValidationError, handle_api_error
from .models import DEFAULT_VOICE, VOICES
from .settings import UserSettings, get_api_key_for_provider

logger = logging.getLogger(__name__)

ELEVENLABS_URL = "https://api.elevenlabs.io/v1/text-to-speech/{voice_id}"
ELEVENLABS_MODEL = "eleven_multilingual_v2"
VOICE_SETTINGS = {"stability": 0.5, "similarity_boost": 0.75}
AUDIO_MIME_TYPE = "audio/mpeg"
PROVIDER = "ElevenLabs"


@dataclass
class SpeechResult:
    audio_base64: str
    mime_type: str = AUDIO_MIME_TYPE

    @property
    def data_uri(self) -> str:
        """Ready for an <audio src=...> element."""
        return f"data:{self.mime_type};base64,{self.audio_base64}"

    def audio_bytes(self) -> bytes:
        return base64.b64decode(self.audio_base64)


def voice_id_for(voice: Optional[str]) -> str:
    """Map a catalog voice name to its ElevenLabs ID; unknown names use the default voice."""
    return VOICES.get(voice or DEFAULT_VOICE, VOICES[DEFAULT_VOICE])


def choices_narration(choices: Sequence[str]) -> str:
    """Text read aloud when the reader asks to hear their options."""
    return (
        "What would you like to do next?\n\n"
        f"Choice 1: {choices[0]}\n\n"
        f"Choice 2: {choices[1]}"
    )


class SpeechGateway:
    def __init__(self, api_key: Optional[str] = None, settings: Optional[UserSettings] = None, timeout: int = 120):
        self._api_key = api_key
        self._settings = settings
        self.timeout = timeout

    def _get_api_key(self) -> str:
        key = self._api_key or get_api_key_for_provider("elevenlabs", self._settings)
        if not key:
            raise ExternalServiceError(
                PROVIDER,
                "ElevenLabs API key is not configured",
                user_message="Read-aloud is not set up yet",
                help_text="Add an ElevenLabs API key in Settings or set ELEVENLABS_API_KEY.",
            )
        return key

    def synthesize_speech(self, text: str, voice: Optional[str] = None) -> SpeechResult:
        """Convert text to MP3 audio, returned base-64 encoded.

        Raises:
            ValidationError: If text is empty
            ExternalServiceError: If the key is missing, the request fails,
                or ElevenLabs answers with a non-success status
        """
        if not text or not text.strip():
            raise ValidationError("Text to read aloud cannot be empty", field="text")

        api_key = self._get_api_key()
        voice_id = voice_id_for(voice)

        try:
            response = requests.post(
                ELEVENLABS_URL.format(voice_id=voice_id),
                headers={
                    "Accept": AUDIO_MIME_TYPE,
                    "Content-Type": "application/json",
                    "xi-api-key": api_key,
                },
                json={
                    "text": text,
                    "model_id": ELEVENLABS_MODEL,
                    "voice_settings": VOICE_SETTINGS,
                },
                timeout=self.timeout,
            )
        except requests.exceptions.RequestException as e:
            raise handle_api_error(e, PROVIDER, ExternalServiceError) from e

        if not response.ok:
            raise ExternalServiceError(
                PROVIDER,
                "ElevenLabs API request failed",
                status_code=response.status_code,
                body=response.text,
            )

        logger.info("Synthesized %d bytes of speech with voice %s", len(response.content), voice or DEFAULT_VOICE)
        return SpeechResult(audio_base64=base64.b64encode(response.content).decode("ascii"))
