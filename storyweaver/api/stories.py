from __future__ import annotations

from typing import List, Literal, Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field, field_validator

from ..engine import StoryEngine
from ..models import Story
from ..speech import SpeechGateway, choices_narration
from .dependencies import get_speech_gateway, get_story_engine, run_blocking

router = APIRouter(prefix="/api/stories", tags=["stories"])


class StoryCreateRequest(BaseModel):
    hero: str = Field(..., min_length=2, max_length=50, description="Who the story is about")
    setting: str = Field(..., min_length=5, max_length=200, description="Where the story happens")
    age: Optional[int] = Field(None, ge=3, le=12)
    reading_level: Optional[int] = Field(None, ge=1, le=5)
    theme: Optional[str] = Field(None, max_length=50)
    voice: Optional[str] = Field(None, max_length=50)
    profile_id: Optional[str] = Field(None, max_length=100)

    @field_validator('hero', 'setting')
    @classmethod
    def strip_whitespace(cls, v):
        return v.strip() if v else v


class ChoiceRequest(BaseModel):
    choice: str = Field(..., max_length=500, description="One of the offered choices, or the reader's own idea")


class NarrationRequest(BaseModel):
    part: Literal["chapter", "choices"] = "chapter"


class ChapterResponse(BaseModel):
    id: str
    chapter_text: str
    choice_made: str


class StoryResponse(BaseModel):
    id: str
    hero: str
    setting: str
    age: int
    reading_level: int
    theme: Optional[str] = None
    voice: str
    profile_id: Optional[str] = None
    chapters: List[ChapterResponse]
    current_choices: List[str]
    is_concluded: bool
    created_at: Optional[str] = None
    updated_at: Optional[str] = None


class StorySummary(BaseModel):
    id: str
    hero: str
    setting: str
    chapter_count: int
    is_concluded: bool
    profile_id: Optional[str] = None
    updated_at: Optional[str] = None


class AudioResponse(BaseModel):
    media: str = Field(..., description="data:audio/mpeg;base64,... URI")
    mime_type: str


def _response(story: Story) -> StoryResponse:
    return StoryResponse(
        **{k: v for k, v in story.to_dict().items() if k != "chapters"},
        chapters=[ChapterResponse(**vars(ch)) for ch in story.chapters],
        is_concluded=story.is_concluded,
    )


@router.get("", response_model=List[StorySummary])
async def list_stories(engine: StoryEngine = Depends(get_story_engine)):
    """List saved stories"""
    stories = await run_blocking(engine.list)
    return [
        StorySummary(
            id=s.id,
            hero=s.hero,
            setting=s.setting,
            chapter_count=len(s.chapters),
            is_concluded=s.is_concluded,
            profile_id=s.profile_id,
            updated_at=s.updated_at,
        )
        for s in stories
    ]


@router.post("", response_model=StoryResponse, status_code=201)
async def create_story(request: StoryCreateRequest, engine: StoryEngine = Depends(get_story_engine)):
    """Start a new story and generate its opening chapter"""
    if request.profile_id and request.age is None and request.reading_level is None:
        story_id = await run_blocking(
            engine.create_from_profile,
            request.profile_id,
            request.hero,
            request.setting,
            theme=request.theme,
        )
    else:
        if request.age is None or request.reading_level is None:
            raise HTTPException(
                status_code=422,
                detail={"error": "age and reading_level are required unless a profile_id is given"},
            )
        story_id = await run_blocking(
            engine.create,
            request.hero,
            request.setting,
            request.age,
            request.reading_level,
            theme=request.theme,
            voice=request.voice,
            profile_id=request.profile_id,
        )
    return _response(await run_blocking(engine.get, story_id))


@router.get("/{story_id}", response_model=StoryResponse)
async def get_story(story_id: str, engine: StoryEngine = Depends(get_story_engine)):
    """Get a story with all its chapters"""
    return _response(await run_blocking(engine.get, story_id))


@router.delete("/{story_id}")
async def delete_story(story_id: str, engine: StoryEngine = Depends(get_story_engine)):
    """Delete a story"""
    await run_blocking(engine.delete, story_id)
    return {"message": f"Story {story_id} deleted"}


@router.post("/{story_id}/choices", response_model=StoryResponse)
async def choose(story_id: str, request: ChoiceRequest, engine: StoryEngine = Depends(get_story_engine)):
    """Pick a choice (or a custom path) and generate the next chapter"""
    return _response(await run_blocking(engine.advance, story_id, request.choice))


@router.post("/{story_id}/narration", response_model=AudioResponse)
async def narrate(
    story_id: str,
    request: NarrationRequest,
    engine: StoryEngine = Depends(get_story_engine),
    speech: SpeechGateway = Depends(get_speech_gateway),
):
    """Read the latest chapter or the current choices aloud in the story's voice"""
    story = await run_blocking(engine.get, story_id)
    if request.part == "choices":
        if story.is_concluded:
            raise HTTPException(status_code=409, detail={"error": "This story has no choices left to read"})
        text = choices_narration(story.current_choices)
    else:
        text = story.last_chapter.chapter_text

    result = await run_blocking(speech.synthesize_speech, text, story.voice)
    return AudioResponse(media=result.data_uri, mime_type=result.mime_type)
