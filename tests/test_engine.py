"""Tests for story creation and progression."""
import json
import threading

import pytest

from storyweaver.engine import StoryEngine
from storyweaver.exceptions import (
    GenerationError,
    NotFoundError,
    StorageError,
    StoryBusyError,
    StoryConcludedError,
    ValidationError,
)
from storyweaver.gateway import ContinuationResult


class TestCreateStory:
    """Test starting new stories."""

    def test_create_has_one_chapter_and_two_choices(self, engine, mock_gateway):
        """Test a new story opens with exactly one chapter and two choices."""
        story_id = engine.create("Luna", "the Crystal Caves", 6, 3)
        story = engine.get(story_id)

        assert len(story.chapters) == 1
        assert story.chapters[0].choice_made == "The beginning"
        assert story.chapters[0].chapter_text.startswith("Luna the dragon")
        assert story.current_choices == ["Go left", "Go right"]
        assert story.voice == "Rachel"
        mock_gateway.generate_opening.assert_called_once_with("Luna", "the Crystal Caves", 6, 3)

    def test_boundary_values_accepted(self, engine):
        """Test the shortest hero and setting with the lowest age and level."""
        story_id = engine.create("Al", "abcde", 3, 1)
        assert engine.get(story_id).hero == "Al"

    @pytest.mark.parametrize("hero,setting,age,level", [
        ("A", "abcde", 3, 1),
        ("Al", "abcd", 3, 1),
        ("Al", "abcde", 2, 1),
        ("Al", "abcde", 3, 6),
    ])
    def test_invalid_input_rejected_before_generation(self, engine, mock_gateway, hero, setting, age, level):
        """Test validation happens before any generation call."""
        with pytest.raises(ValidationError):
            engine.create(hero, setting, age, level)
        mock_gateway.generate_opening.assert_not_called()
        assert engine.list() == []

    def test_generation_failure_saves_nothing(self, engine, mock_gateway):
        """Test a failed opening leaves the collection unchanged."""
        mock_gateway.generate_opening.side_effect = GenerationError("Fake", "boom")
        with pytest.raises(GenerationError):
            engine.create("Luna", "the Crystal Caves", 6, 3)
        assert engine.list() == []

    def test_create_records_theme_and_voice(self, engine):
        """Test optional metadata is stored."""
        story = engine.get(engine.create("Luna", "the Crystal Caves", 6, 3, theme="space", voice="Adam"))
        assert story.theme == "space"
        assert story.voice == "Adam"
        assert story.created_at == story.updated_at

    def test_engine_default_voice(self, mock_gateway, data_dir):
        """Test stories without a voice use the engine's configured default."""
        engine = StoryEngine(mock_gateway, base_dir=data_dir, default_voice="Elli")
        assert engine.get(engine.create("Luna", "the Crystal Caves", 6, 3)).voice == "Elli"


class TestCreateFromProfile:
    """Test starting a story for a saved reader."""

    def test_uses_profile_settings(self, engine, profile_store, mock_gateway):
        """Test age, level, voice and first theme come from the profile."""
        profile = profile_store.create("Mia", 9, 5, preferred_themes=["space", "pirate"], voice="Domi")
        story = engine.get(engine.create_from_profile(profile.id, "Luna", "the Crystal Caves"))

        assert (story.age, story.reading_level, story.voice) == (9, 5, "Domi")
        assert story.theme == "pirate"
        assert story.profile_id == profile.id
        mock_gateway.generate_opening.assert_called_once_with("Luna", "the Crystal Caves", 9, 5)

    def test_explicit_theme_wins(self, engine, profile_store):
        """Test a theme passed in overrides the profile's preference."""
        profile = profile_store.create("Mia", 9, 5, preferred_themes=["space"])
        story = engine.get(engine.create_from_profile(profile.id, "Luna", "the Crystal Caves", theme="forest"))
        assert story.theme == "forest"

    def test_unknown_profile(self, engine):
        """Test a missing profile raises NotFoundError."""
        with pytest.raises(NotFoundError):
            engine.create_from_profile("nope", "Luna", "the Crystal Caves")


class TestAdvanceStory:
    """Test continuing a story."""

    def test_go_left_finds_a_cave(self, engine, mock_gateway):
        """Test the chosen branch becomes the next chapter."""
        story_id = engine.create("Luna", "the Crystal Caves", 6, 3)
        story = engine.advance(story_id, "Go left")

        assert len(story.chapters) == 2
        assert story.chapters[1].choice_made == "Go left"
        assert story.chapters[1].chapter_text == "You found a cave."
        assert story.current_choices == ["Enter", "Leave"]
        assert engine.get(story_id) == story

    def test_prior_narrative_sent_to_gateway(self, engine, mock_gateway):
        """Test the gateway receives the whole story so far and the choice."""
        story_id = engine.create("Luna", "the Crystal Caves", 6, 3)
        engine.advance(story_id, "Go left")

        hero, setting, prior, choice, age, level = mock_gateway.generate_next.call_args.args
        assert (hero, setting, choice, age, level) == ("Luna", "the Crystal Caves", "Go left", 6, 3)
        assert prior.startswith("Choice: The beginning\nLuna the dragon")

    def test_custom_choice_accepted(self, engine):
        """Test a reader's own idea is used as the choice."""
        story_id = engine.create("Luna", "the Crystal Caves", 6, 3)
        story = engine.advance(story_id, "  Fly up to the ceiling  ")
        assert story.chapters[-1].choice_made == "Fly up to the ceiling"

    def test_empty_choice_is_noop(self, engine, mock_gateway):
        """Test an empty choice returns the story unchanged without generating."""
        story_id = engine.create("Luna", "the Crystal Caves", 6, 3)
        before = engine.get(story_id)
        assert engine.advance(story_id, "   ") == before
        mock_gateway.generate_next.assert_not_called()

    def test_ending_concludes_story(self, engine, mock_gateway):
        """Test a continuation without choices ends the story for good."""
        story_id = engine.create("Luna", "the Crystal Caves", 6, 3)
        mock_gateway.generate_next.return_value = ContinuationResult(
            next_text="And they all lived happily ever after.", is_ending=True
        )
        story = engine.advance(story_id, "Go home")

        assert story.is_concluded
        assert story.current_choices == []
        with pytest.raises(StoryConcludedError):
            engine.advance(story_id, "Go left")
        assert len(engine.get(story_id).chapters) == 2

    def test_missing_choice_treated_as_ending(self, engine, mock_gateway):
        """Test a continuation with a single choice never leaves one choice behind."""
        story_id = engine.create("Luna", "the Crystal Caves", 6, 3)
        mock_gateway.generate_next.return_value = ContinuationResult(next_text="The end.", choice_a="Again?")
        story = engine.advance(story_id, "Go left")
        assert story.current_choices == []

    def test_generation_failure_leaves_story_unchanged(self, engine, mock_gateway):
        """Test a failed continuation does not touch the stored story."""
        story_id = engine.create("Luna", "the Crystal Caves", 6, 3)
        before = engine.get(story_id)
        mock_gateway.generate_next.side_effect = GenerationError("Fake", "boom")

        with pytest.raises(GenerationError):
            engine.advance(story_id, "Go left")
        assert engine.get(story_id) == before

    def test_unknown_story(self, engine):
        """Test advancing a missing story raises NotFoundError."""
        with pytest.raises(NotFoundError):
            engine.advance("nope", "Go left")

    def test_other_stories_untouched(self, engine):
        """Test advancing one story leaves the rest as they were."""
        first = engine.create("Luna", "the Crystal Caves", 6, 3)
        second = engine.create("Max", "a pirate ship", 8, 2)
        before = engine.get(second)
        engine.advance(first, "Go left")
        assert engine.get(second) == before

    def test_concurrent_advance_rejected(self, engine, mock_gateway):
        """Test a second advance while one is generating raises StoryBusyError."""
        story_id = engine.create("Luna", "the Crystal Caves", 6, 3)
        started = threading.Event()
        release = threading.Event()
        original = mock_gateway.generate_next.return_value

        def slow_generate(*args):
            started.set()
            release.wait(5)
            return original

        mock_gateway.generate_next.side_effect = slow_generate
        worker = threading.Thread(target=engine.advance, args=(story_id, "Go left"))
        worker.start()
        try:
            assert started.wait(5)
            with pytest.raises(StoryBusyError):
                engine.advance(story_id, "Go right")
        finally:
            release.set()
            worker.join(5)

        story = engine.get(story_id)
        assert len(story.chapters) == 2
        assert story.chapters[1].choice_made == "Go left"

    def test_guard_released_after_failure(self, engine, mock_gateway):
        """Test a failed advance does not leave the story locked."""
        story_id = engine.create("Luna", "the Crystal Caves", 6, 3)
        mock_gateway.generate_next.side_effect = GenerationError("Fake", "boom")
        with pytest.raises(GenerationError):
            engine.advance(story_id, "Go left")

        mock_gateway.generate_next.side_effect = None
        assert len(engine.advance(story_id, "Go left").chapters) == 2


class TestListAndDelete:
    """Test listing, fetching and deleting stories."""

    def test_list_is_idempotent(self, engine):
        """Test listing twice without writes gives the same result."""
        engine.create("Luna", "the Crystal Caves", 6, 3)
        engine.create("Max", "a pirate ship", 8, 2)
        assert engine.list() == engine.list()
        assert len(engine.list()) == 2

    def test_delete(self, engine):
        """Test a deleted story is gone."""
        story_id = engine.create("Luna", "the Crystal Caves", 6, 3)
        engine.delete(story_id)
        with pytest.raises(NotFoundError):
            engine.get(story_id)

    def test_delete_missing(self, engine):
        """Test deleting an unknown story raises NotFoundError."""
        with pytest.raises(NotFoundError):
            engine.delete("nope")

    def test_corrupt_storage_raises(self, engine):
        """Test the engine refuses to work on a corrupt collection."""
        engine.collection.path.parent.mkdir(parents=True, exist_ok=True)
        engine.collection.path.write_text("[{]")
        with pytest.raises(StorageError):
            engine.list()

    def test_undecodable_storage_raises(self, engine):
        """Test a collection that is not UTF-8 is reported as a storage problem."""
        engine.collection.path.parent.mkdir(parents=True, exist_ok=True)
        engine.collection.path.write_bytes(b'\xff\xfe[]')
        with pytest.raises(StorageError):
            engine.list()
        with pytest.raises(StorageError):
            engine.get("any")

    def test_malformed_story_raises(self, engine):
        """Test a stored story with one choice is reported as a storage problem."""
        story_id = engine.create("Luna", "the Crystal Caves", 6, 3)
        records = json.loads(engine.collection.path.read_text())
        records[0]["current_choices"] = ["Go left"]
        engine.collection.path.write_text(json.dumps(records))
        with pytest.raises(StorageError):
            engine.get(story_id)
