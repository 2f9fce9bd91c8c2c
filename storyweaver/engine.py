"""Story creation and progression.

A story moves Created (1 chapter, 2 choices) -> Branching (N chapters,
2 choices) -> Concluded (no choices). Concluded is terminal. The engine is
the only writer of the story collection, and at most one chapter is
generated per story at a time.
"""

from __future__ import annotations

import logging
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, List, Optional

from .exceptions import NotFoundError, StorageError, StoryBusyError, StoryConcludedError
from .gateway import NarrativeGateway
from .models import (
    BEGINNING,
    DEFAULT_VOICE,
    Story,
    StoryChapter,
    new_id,
    utc_now,
    validate_age,
    validate_hero,
    validate_reading_level,
    validate_setting,
    validate_voice,
)
from .profiles import ProfileStore
from .storage import STORY_STORAGE_KEY, JsonCollection

logger = logging.getLogger(__name__)


class StoryEngine:
    def __init__(
        self,
        gateway: NarrativeGateway,
        collection: Optional[JsonCollection] = None,
        profiles: Optional[ProfileStore] = None,
        base_dir: Optional[Path] = None,
        default_voice: str = DEFAULT_VOICE,
    ):
        self.gateway = gateway
        self.collection = collection or JsonCollection.named(STORY_STORAGE_KEY, base_dir)
        self.profiles = profiles or ProfileStore(base_dir=base_dir)
        self.default_voice = default_voice
        self._in_flight: set[str] = set()
        self._in_flight_guard = threading.Lock()

    @contextmanager
    def _single_flight(self, story_id: str) -> Iterator[None]:
        with self._in_flight_guard:
            if story_id in self._in_flight:
                raise StoryBusyError(story_id)
            self._in_flight.add(story_id)
        try:
            yield
        finally:
            with self._in_flight_guard:
                self._in_flight.discard(story_id)

    def _load(self, record: dict) -> Story:
        try:
            return Story.from_dict(record)
        except (KeyError, TypeError, ValueError) as e:
            raise StorageError(str(self.collection.path), f"malformed story record: {e}") from e

    def list(self) -> List[Story]:
        return [self._load(record) for record in self.collection.read_strict()]

    def get(self, story_id: str) -> Story:
        for record in self.collection.read_strict():
            if record.get("id") == story_id:
                return self._load(record)
        raise NotFoundError("Story", story_id)

    def create(
        self,
        hero: str,
        setting: str,
        age: int,
        reading_level: int,
        theme: Optional[str] = None,
        voice: Optional[str] = None,
        profile_id: Optional[str] = None,
    ) -> str:
        """Generate the opening chapter and save a new story.

        Returns:
            The new story's id

        Raises:
            ValidationError: If any field is out of range
            GenerationError: If the opening could not be generated; nothing is saved
        """
        hero = validate_hero(hero)
        setting = validate_setting(setting)
        age = validate_age(age)
        reading_level = validate_reading_level(reading_level)
        voice = validate_voice(voice or self.default_voice)

        opening = self.gateway.generate_opening(hero, setting, age, reading_level)

        now = utc_now()
        story = Story(
            id=new_id(),
            hero=hero,
            setting=setting,
            age=age,
            reading_level=reading_level,
            chapters=[StoryChapter(id=new_id(), chapter_text=opening.opening_text, choice_made=BEGINNING)],
            current_choices=opening.choices,
            theme=(theme or "").strip() or None,
            voice=voice,
            profile_id=profile_id,
            created_at=now,
            updated_at=now,
        )

        with self.collection.lock:
            records = self.collection.read_strict()
            records.append(story.to_dict())
            self.collection.write(records)

        logger.info("Started story %s: %s in %s", story.id, hero, setting)
        return story.id

    def create_from_profile(
        self,
        profile_id: str,
        hero: str,
        setting: str,
        theme: Optional[str] = None,
    ) -> str:
        """Start a story using a saved profile's age, reading level, voice and first theme."""
        profile = self.profiles.get(profile_id)
        if theme is None and profile.preferred_themes:
            theme = profile.preferred_themes[0]
        return self.create(
            hero,
            setting,
            age=profile.age,
            reading_level=profile.reading_level,
            theme=theme,
            voice=profile.voice,
            profile_id=profile.id,
        )

    def advance(self, story_id: str, choice_text: str) -> Story:
        """Continue a story down the chosen branch.

        An empty choice returns the story unchanged. The story in storage is
        only replaced once the next chapter has been generated.

        Raises:
            NotFoundError: If the story does not exist
            StoryConcludedError: If the story has no choices left
            StoryBusyError: If a chapter is already being generated for it
            GenerationError: If generation failed; the story is unchanged
        """
        story = self.get(story_id)
        choice = (choice_text or "").strip()
        if not choice:
            return story
        if story.is_concluded:
            raise StoryConcludedError(story_id)

        with self._single_flight(story_id):
            # Re-read inside the guard so a just-finished advance is not lost
            story = self.get(story_id)
            if story.is_concluded:
                raise StoryConcludedError(story_id)

            result = self.gateway.generate_next(
                story.hero,
                story.setting,
                story.prior_narrative(),
                choice,
                story.age,
                story.reading_level,
            )

            story.chapters.append(StoryChapter(id=new_id(), chapter_text=result.next_text, choice_made=choice))
            story.current_choices = result.choices
            story.updated_at = utc_now()
            self._replace(story)

        if story.is_concluded:
            logger.info("Story %s concluded after %d chapters", story.id, len(story.chapters))
        return story

    def delete(self, story_id: str) -> None:
        with self.collection.lock:
            records = self.collection.read_strict()
            remaining = [r for r in records if r.get("id") != story_id]
            if len(remaining) == len(records):
                raise NotFoundError("Story", story_id)
            self.collection.write(remaining)
        logger.info("Deleted story %s", story_id)

    def _replace(self, story: Story) -> None:
        with self.collection.lock:
            records = self.collection.read_strict()
            for index, record in enumerate(records):
                if record.get("id") == story.id:
                    records[index] = story.to_dict()
                    break
            else:
                raise NotFoundError("Story", story.id)
            self.collection.write(records)
