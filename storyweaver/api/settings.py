from __future__ import annotations

import os
from fastapi import APIRouter, HTTPException
from pydantic import BaseModel, Field
from typing import Optional

from ..models import VOICES
from ..settings import TEXT_PROVIDERS, load_user_settings, save_user_settings, UserSettings
from .dependencies import reset_dependencies

router = APIRouter(prefix="/api/settings", tags=["settings"])

# Configuration for API keys: (settings_attr, env_var, display_name, prefix)
API_KEY_CONFIG = {
    'openai': ('openai_api_key', 'OPENAI_API_KEY', 'OpenAI', 'sk-'),
    'groq': ('groq_api_key', 'GROQ_API_KEY', 'Groq', 'gsk_'),
    'openrouter': ('openrouter_api_key', 'OPENROUTER_API_KEY', 'OpenRouter', 'sk-or-'),
    'gemini': ('gemini_api_key', 'GEMINI_API_KEY', 'Gemini', None),
    'elevenlabs': ('elevenlabs_api_key', 'ELEVENLABS_API_KEY', 'ElevenLabs', None),
}


def validate_api_key(key: str, provider: str, prefix: Optional[str] = None, min_length: int = 20, max_length: int = 200) -> str:
    """Validate API key format.

    Args:
        key: The API key to validate
        provider: Provider name (for error messages)
        prefix: Expected key prefix (e.g., "sk-" for OpenAI)
        min_length: Minimum acceptable key length
        max_length: Maximum acceptable key length

    Returns:
        The validated key (stripped of whitespace)

    Raises:
        HTTPException: If key format is invalid
    """
    key = key.strip()

    if not key:
        raise HTTPException(status_code=400, detail=f"{provider} API key cannot be empty")

    if len(key) < min_length:
        raise HTTPException(
            status_code=400,
            detail=f"{provider} API key too short (minimum {min_length} characters)"
        )

    if len(key) > max_length:
        raise HTTPException(
            status_code=400,
            detail=f"{provider} API key too long (maximum {max_length} characters)"
        )

    if prefix and not key.startswith(prefix):
        raise HTTPException(
            status_code=400,
            detail=f"{provider} API key must start with '{prefix}'"
        )

    return key


def check_api_key_exists(settings: UserSettings, settings_attr: str, env_var: str) -> bool:
    """Check if an API key exists in settings or environment."""
    return bool(getattr(settings, settings_attr, None) or os.environ.get(env_var))


class SettingsResponse(BaseModel):
    text_provider: str

    # API key status (masked)
    has_openai_key: bool
    has_groq_key: bool
    has_openrouter_key: bool
    has_gemini_key: bool
    has_elevenlabs_key: bool

    default_text_model: Optional[str]
    default_voice: str
    data_dir: Optional[str]


class SettingsUpdateRequest(BaseModel):
    text_provider: Optional[str] = Field(None, max_length=50)

    openai_api_key: Optional[str] = Field(None, max_length=200)
    groq_api_key: Optional[str] = Field(None, max_length=200)
    openrouter_api_key: Optional[str] = Field(None, max_length=200)
    gemini_api_key: Optional[str] = Field(None, max_length=200)
    elevenlabs_api_key: Optional[str] = Field(None, max_length=200)

    default_text_model: Optional[str] = Field(None, max_length=100)
    default_voice: Optional[str] = Field(None, max_length=50)


@router.get("", response_model=SettingsResponse)
async def get_settings():
    """Get current settings (API keys are masked)"""
    settings = load_user_settings()

    key_status = {
        f"has_{key_id}_key": check_api_key_exists(settings, settings_attr, env_var)
        for key_id, (settings_attr, env_var, _, _) in API_KEY_CONFIG.items()
    }

    return SettingsResponse(
        text_provider=settings.text_provider,
        **key_status,
        default_text_model=settings.default_text_model,
        default_voice=settings.default_voice,
        data_dir=settings.data_dir,
    )


@router.put("")
async def update_settings(request: SettingsUpdateRequest):
    """Update user settings"""
    settings = load_user_settings()

    if request.text_provider is not None:
        if request.text_provider not in TEXT_PROVIDERS:
            raise HTTPException(
                status_code=400,
                detail=f"Unknown text provider. Available providers: {', '.join(TEXT_PROVIDERS)}"
            )
        settings.text_provider = request.text_provider

    for key_id, (settings_attr, env_var, display_name, prefix) in API_KEY_CONFIG.items():
        request_value = getattr(request, settings_attr, None)
        if request_value is not None and request_value.strip():
            validated_key = validate_api_key(request_value, display_name, prefix=prefix)
            setattr(settings, settings_attr, validated_key)
            os.environ[env_var] = validated_key

    if request.default_text_model is not None:
        settings.default_text_model = request.default_text_model.strip() or None

    if request.default_voice is not None:
        if request.default_voice not in VOICES:
            raise HTTPException(status_code=400, detail=f"Unknown voice. Available voices: {', '.join(VOICES)}")
        settings.default_voice = request.default_voice

    save_user_settings(settings)
    reset_dependencies()

    return {"message": "Settings updated"}


@router.post("/clear-keys")
async def clear_api_keys():
    """Clear all API keys from settings and environment"""
    settings = load_user_settings()

    for key_id, (settings_attr, env_var, _, _) in API_KEY_CONFIG.items():
        setattr(settings, settings_attr, None)
        if env_var in os.environ:
            del os.environ[env_var]

    save_user_settings(settings)
    reset_dependencies()

    return {"message": "All API keys cleared"}
