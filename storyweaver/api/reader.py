"""Word definitions and read-aloud for the chapter reader."""

from __future__ import annotations

from typing import Dict, List, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from ..gateway import NarrativeGateway
from ..models import DEFAULT_VOICE, THEMES, VOICES
from ..speech import SpeechGateway
from .dependencies import get_gateway, get_speech_gateway, run_blocking

router = APIRouter(prefix="/api", tags=["reader"])


class DefineRequest(BaseModel):
    word: str = Field(..., min_length=1, max_length=100)
    context: str = Field("", max_length=5000, description="Sentence or paragraph the word appeared in")
    age: Optional[int] = Field(None, ge=3, le=12)


class DefinitionResponse(BaseModel):
    word: str
    definition: str
    pronunciation: Optional[str] = None


class SpeechRequest(BaseModel):
    text: str = Field(..., min_length=1, max_length=5000)
    voice: Optional[str] = Field(None, max_length=50)


class SpeechResponse(BaseModel):
    media: str
    mime_type: str


@router.post("/words/define", response_model=DefinitionResponse)
async def define_word(request: DefineRequest, gateway: NarrativeGateway = Depends(get_gateway)):
    """Kid-friendly definition of a tapped word"""
    result = await run_blocking(gateway.define_word, request.word, request.context, request.age)
    return DefinitionResponse(word=request.word, definition=result.definition, pronunciation=result.pronunciation)


@router.post("/speech", response_model=SpeechResponse)
async def speak(request: SpeechRequest, speech: SpeechGateway = Depends(get_speech_gateway)):
    """Read arbitrary text aloud (definitions use this with the default voice)"""
    result = await run_blocking(speech.synthesize_speech, request.text, request.voice)
    return SpeechResponse(media=result.data_uri, mime_type=result.mime_type)


@router.get("/voices")
async def list_voices() -> Dict[str, object]:
    """Narration voice catalog"""
    return {"voices": list(VOICES), "default": DEFAULT_VOICE}


@router.get("/themes")
async def list_themes() -> Dict[str, List[str]]:
    """Theme tags a profile can prefer"""
    return {"themes": list(THEMES)}
