from __future__ import annotations

from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field, field_validator

from ..models import Profile
from ..profiles import ProfileStore
from .dependencies import get_profile_store, run_blocking

router = APIRouter(prefix="/api/profiles", tags=["profiles"])


class ProfileCreateRequest(BaseModel):
    name: str = Field(..., min_length=2, max_length=50, description="Reader's display name")
    age: int = Field(..., ge=3, le=12)
    reading_level: int = Field(..., ge=1, le=5, description="1 is easiest, 5 is most advanced")
    preferred_themes: List[str] = Field(default_factory=list)
    voice: Optional[str] = Field(None, max_length=50)

    @field_validator('name')
    @classmethod
    def strip_whitespace(cls, v):
        return v.strip() if v else v


class ProfileUpdateRequest(BaseModel):
    name: Optional[str] = Field(None, min_length=2, max_length=50)
    age: Optional[int] = Field(None, ge=3, le=12)
    reading_level: Optional[int] = Field(None, ge=1, le=5)
    preferred_themes: Optional[List[str]] = None
    voice: Optional[str] = Field(None, max_length=50)

    @field_validator('name')
    @classmethod
    def strip_whitespace(cls, v):
        return v.strip() if v else v


class ProfileResponse(BaseModel):
    id: str
    name: str
    age: int
    reading_level: int
    preferred_themes: List[str]
    voice: str
    created_at: Optional[str] = None
    updated_at: Optional[str] = None


def _response(profile: Profile) -> ProfileResponse:
    return ProfileResponse(**profile.to_dict())


@router.get("", response_model=List[ProfileResponse])
async def list_profiles(store: ProfileStore = Depends(get_profile_store)):
    """List all saved reader profiles"""
    profiles = await run_blocking(store.list)
    return [_response(p) for p in profiles]


@router.post("", response_model=ProfileResponse, status_code=201)
async def create_profile(request: ProfileCreateRequest, store: ProfileStore = Depends(get_profile_store)):
    """Create a new reader profile"""
    profile = await run_blocking(
        store.create,
        request.name,
        request.age,
        request.reading_level,
        preferred_themes=request.preferred_themes,
        voice=request.voice,
    )
    return _response(profile)


@router.get("/{profile_id}", response_model=ProfileResponse)
async def get_profile(profile_id: str, store: ProfileStore = Depends(get_profile_store)):
    """Get a single profile"""
    return _response(await run_blocking(store.get, profile_id))


@router.put("/{profile_id}", response_model=ProfileResponse)
async def update_profile(
    profile_id: str,
    request: ProfileUpdateRequest,
    store: ProfileStore = Depends(get_profile_store),
):
    """Update the provided fields of a profile"""
    changes = request.model_dump(exclude_none=True)
    profile = await run_blocking(store.update, profile_id, **changes)
    if profile is None:
        raise HTTPException(status_code=404, detail={"error": "We couldn't find that profile"})
    return _response(profile)


@router.delete("/{profile_id}")
async def delete_profile(profile_id: str, store: ProfileStore = Depends(get_profile_store)):
    """Delete a profile. Stories created from it are kept."""
    deleted = await run_blocking(store.delete, profile_id)
    return {"message": "Profile removed" if deleted else "Profile not found", "deleted": deleted}
