from __future__ import annotations

import uuid
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional

from .exceptions import ValidationError

# Closed vocabulary of profile theme tags
THEMES = ("knight", "pirate", "princess", "space", "forest")

# Narration voice name -> ElevenLabs voice ID
VOICES: Dict[str, str] = {
    "Rachel": "21m00Tcm4TlvDq8ikWAM",
    "Adam": "pNInz6obpgDQGcFmaJgB",
    "Antoni": "ErXwobaYiN019PkySvjV",
    "Bella": "EXAVITQu4vr4xnSDxMaL",
    "Domi": "AZnzlk1XvdvUeBnXmlld",
    "Elli": "MF3mGyEYCl7XYWbV9V6O",
}
DEFAULT_VOICE = "Rachel"

# choice_made of the first chapter
BEGINNING = "The beginning"

READING_LEVEL_LABELS = {
    1: "Way Below Age Level",
    2: "Below Age Level",
    3: "At Age Level",
    4: "Above Age Level",
    5: "Way Above Age Level",
}

NAME_LENGTH = (2, 50)
HERO_LENGTH = (2, 50)
SETTING_LENGTH = (5, 200)
AGE_RANGE = (3, 12)
READING_LEVEL_RANGE = (1, 5)


def reading_level_label(level: Optional[int]) -> str:
    return READING_LEVEL_LABELS.get(level, READING_LEVEL_LABELS[3])


def new_id() -> str:
    return str(uuid.uuid4())


def utc_now() -> str:
    """Current time as an ISO-8601 UTC string."""
    return datetime.now(timezone.utc).isoformat()


def _check_text(value: Any, field_name: str, bounds: tuple[int, int]) -> str:
    if not isinstance(value, str):
        raise ValidationError(f"{field_name} must be text", field=field_name)
    value = value.strip()
    low, high = bounds
    if not low <= len(value) <= high:
        raise ValidationError(
            f"{field_name} must be between {low} and {high} characters", field=field_name
        )
    return value


def _check_int(value: Any, field_name: str, bounds: tuple[int, int]) -> int:
    # bool is an int subclass; reject it explicitly
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValidationError(f"{field_name} must be a whole number", field=field_name)
    low, high = bounds
    if not low <= value <= high:
        raise ValidationError(f"{field_name} must be between {low} and {high}", field=field_name)
    return value


def validate_name(value: Any) -> str:
    return _check_text(value, "name", NAME_LENGTH)


def validate_hero(value: Any) -> str:
    return _check_text(value, "hero", HERO_LENGTH)


def validate_setting(value: Any) -> str:
    return _check_text(value, "setting", SETTING_LENGTH)


def validate_age(value: Any) -> int:
    return _check_int(value, "age", AGE_RANGE)


def validate_reading_level(value: Any) -> int:
    return _check_int(value, "reading_level", READING_LEVEL_RANGE)


def validate_voice(value: Optional[str]) -> str:
    if value is None:
        return DEFAULT_VOICE
    if value not in VOICES:
        raise ValidationError(
            f"Unknown voice '{value}'. Available voices: {', '.join(VOICES)}", field="voice"
        )
    return value


def validate_themes(values: Optional[Iterable[str]]) -> List[str]:
    """Normalize theme tags to a sorted, de-duplicated list."""
    if values is None:
        return []
    if isinstance(values, str):
        raise ValidationError("preferred_themes must be a list of theme tags", field="preferred_themes")
    themes = set(values)
    unknown = themes.difference(THEMES)
    if unknown:
        raise ValidationError(
            f"Unknown theme(s): {', '.join(sorted(unknown))}. Allowed: {', '.join(THEMES)}",
            field="preferred_themes",
        )
    return sorted(themes)


@dataclass
class Profile:
    id: str
    name: str
    age: int
    reading_level: int
    preferred_themes: List[str] = field(default_factory=list)
    voice: str = DEFAULT_VOICE
    created_at: Optional[str] = None
    updated_at: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Profile":
        return cls(
            id=data["id"],
            name=data["name"],
            age=data["age"],
            reading_level=data["reading_level"],
            preferred_themes=list(data.get("preferred_themes") or []),
            voice=data.get("voice") or DEFAULT_VOICE,
            created_at=data.get("created_at"),
            updated_at=data.get("updated_at"),
        )


@dataclass
class StoryChapter:
    id: str
    chapter_text: str
    choice_made: str


@dataclass
class Story:
    id: str
    hero: str
    setting: str
    age: int
    reading_level: int
    chapters: List[StoryChapter] = field(default_factory=list)
    current_choices: List[str] = field(default_factory=list)
    theme: Optional[str] = None
    voice: str = DEFAULT_VOICE
    profile_id: Optional[str] = None  # weak reference, never cascaded
    created_at: Optional[str] = None
    updated_at: Optional[str] = None

    @property
    def is_concluded(self) -> bool:
        return not self.current_choices

    @property
    def last_chapter(self) -> StoryChapter:
        return self.chapters[-1]

    def prior_narrative(self) -> str:
        """Every chapter so far, in order, with the choice that led to it."""
        return "\n\n---\n\n".join(
            f"Choice: {ch.choice_made}\n{ch.chapter_text}" for ch in self.chapters
        )

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Story":
        chapters = [StoryChapter(**ch) for ch in data.get("chapters", [])]
        choices = list(data.get("current_choices") or [])
        if len(choices) not in (0, 2):
            raise ValueError(f"Story {data.get('id')} has {len(choices)} choices; expected 0 or 2")
        if not chapters:
            raise ValueError(f"Story {data.get('id')} has no chapters")
        return cls(
            id=data["id"],
            hero=data["hero"],
            setting=data["setting"],
            age=data["age"],
            reading_level=data["reading_level"],
            chapters=chapters,
            current_choices=choices,
            theme=data.get("theme"),
            voice=data.get("voice") or DEFAULT_VOICE,
            profile_id=data.get("profile_id"),
            created_at=data.get("created_at"),
            updated_at=data.get("updated_at"),
        )
