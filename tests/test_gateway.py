"""Tests for the narrative generation gateway."""
import json
from unittest.mock import patch

import pytest
import requests

from storyweaver.exceptions import GenerationError, ValidationError
from storyweaver.gateway import (
    ContinuationResult,
    NarrativeGateway,
    clean_word,
    extract_json,
)
from storyweaver.settings import UserSettings


class TestExtractJson:
    """Test pulling JSON out of model replies."""

    def test_plain_object(self):
        """Test a bare JSON object parses."""
        assert extract_json('{"a": 1}') == {"a": 1}

    def test_code_fence(self):
        """Test fenced JSON parses."""
        assert extract_json('```json\n{"a": 1}\n```') == {"a": 1}

    def test_surrounding_chatter(self):
        """Test text before and after the object is ignored."""
        assert extract_json('Sure! Here it is: {"a": {"b": 2}} Enjoy!') == {"a": {"b": 2}}

    def test_no_object(self):
        """Test a reply without an object is rejected."""
        with pytest.raises(ValueError):
            extract_json("I cannot help with that.")

    def test_invalid_json(self):
        """Test broken JSON is rejected."""
        with pytest.raises(ValueError):
            extract_json('{"a": }')


def test_clean_word():
    """Test punctuation and digits are stripped from tapped words."""
    assert clean_word("dragon!") == "dragon"
    assert clean_word("\"Hello,\"") == "Hello"
    assert clean_word("42") == ""


class TestContinuationChoices:
    """Test how continuation results expose their choices."""

    def test_two_choices(self):
        """Test a normal continuation has two choices."""
        result = ContinuationResult(next_text="x", choice_a="A", choice_b="B")
        assert result.choices == ["A", "B"]

    def test_is_ending_drops_choices(self):
        """Test an ending has no choices even if some were returned."""
        result = ContinuationResult(next_text="x", choice_a="A", choice_b="B", is_ending=True)
        assert result.choices == []

    def test_blank_choice_means_ending(self):
        """Test whitespace-only choices count as missing."""
        result = ContinuationResult(next_text="x", choice_a="A", choice_b="  ")
        assert result.choices == []


class TestGenerateOpening:
    """Test opening chapter generation."""

    def test_parses_opening(self, fake_provider):
        """Test a valid reply becomes an OpeningResult."""
        gateway = NarrativeGateway(provider=fake_provider)
        result = gateway.generate_opening("Luna", "the Crystal Caves", 6, 3)

        assert result.opening_text == "Once upon a time."
        assert result.choices == ["Go left", "Go right"]

    def test_requests_json(self, fake_provider):
        """Test the provider is asked for JSON with the story prompt."""
        NarrativeGateway(provider=fake_provider, model="fake-1").generate_opening("Luna", "the Crystal Caves", 6, 3)

        args, kwargs = fake_provider.generate.call_args
        messages = args[0]
        assert kwargs["json_response"] is True
        assert kwargs["model"] == "fake-1"
        assert kwargs["temperature"] == 0.9
        assert "Hero: Luna" in messages[-1]["content"]

    def test_fenced_reply(self, fake_provider):
        """Test a fenced JSON reply is accepted."""
        fake_provider.reply('```json\n{"opening_text": "Hi.", "choice_a": "A", "choice_b": "B"}\n```')
        assert NarrativeGateway(provider=fake_provider).generate_opening("Luna", "the Crystal Caves").opening_text == "Hi."

    @pytest.mark.parametrize("content", [
        "Once upon a time there was no JSON.",
        '{"opening_text": "Hi.", "choice_a": "A"}',
        '{"opening_text": "", "choice_a": "A", "choice_b": "B"}',
        '["not", "an", "object"]',
    ])
    def test_malformed_reply(self, fake_provider, content):
        """Test unparseable or incomplete replies raise GenerationError."""
        fake_provider.reply(content)
        with pytest.raises(GenerationError, match="Malformed"):
            NarrativeGateway(provider=fake_provider).generate_opening("Luna", "the Crystal Caves")

    def test_provider_failure(self, fake_provider):
        """Test provider exceptions become GenerationError."""
        fake_provider.generate.side_effect = requests.exceptions.ConnectionError("offline")
        with pytest.raises(GenerationError) as exc_info:
            NarrativeGateway(provider=fake_provider).generate_opening("Luna", "the Crystal Caves")
        assert "Cannot connect" in exc_info.value.user_message


class TestGenerateNext:
    """Test continuation generation."""

    def test_parses_continuation(self, fake_provider):
        """Test a valid continuation reply."""
        fake_provider.reply(json.dumps({"next_text": "You found a cave.", "choice_a": "Enter", "choice_b": "Leave"}))
        result = NarrativeGateway(provider=fake_provider).generate_next(
            "Luna", "the Crystal Caves", "Choice: The beginning\nHi.", "Go left", 6, 3
        )
        assert result.next_text == "You found a cave."
        assert result.choices == ["Enter", "Leave"]

    def test_prompt_carries_story_so_far(self, fake_provider):
        """Test the prior narrative and last choice are in the prompt."""
        fake_provider.reply(json.dumps({"next_text": "x", "choice_a": "A", "choice_b": "B"}))
        NarrativeGateway(provider=fake_provider).generate_next("Luna", "the Crystal Caves", "EARLIER", "Go left")

        content = fake_provider.generate.call_args.args[0][-1]["content"]
        assert "Previous Story:\nEARLIER" in content
        assert "Last Choice: Go left" in content

    def test_ending(self, fake_provider):
        """Test an ending reply yields no choices."""
        fake_provider.reply(json.dumps({"next_text": "The end.", "choice_a": "", "choice_b": "", "is_ending": True}))
        result = NarrativeGateway(provider=fake_provider).generate_next("Luna", "the Crystal Caves", "x", "Go home")
        assert result.is_ending
        assert result.choices == []

    def test_missing_choices_logged(self, fake_provider, caplog):
        """Test an implicit ending is logged as a warning."""
        fake_provider.reply(json.dumps({"next_text": "The end."}))
        result = NarrativeGateway(provider=fake_provider).generate_next("Luna", "the Crystal Caves", "x", "Go home")
        assert result.choices == []
        assert "fewer than two choices" in caplog.text


class TestDefineWord:
    """Test word definitions."""

    def test_define(self, fake_provider):
        """Test the cleaned word is sent and the definition parsed."""
        fake_provider.reply(json.dumps({"definition": "A big, dark hole in a hill.", "pronunciation": "kayv"}))
        result = NarrativeGateway(provider=fake_provider).define_word("cave!", "You found a cave!", 6)

        assert result.definition == "A big, dark hole in a hill."
        assert result.pronunciation == "kayv"
        args, kwargs = fake_provider.generate.call_args
        assert '"cave"' in args[0][-1]["content"]
        assert kwargs["temperature"] == 0.3

    def test_pronunciation_optional(self, fake_provider):
        """Test a reply without pronunciation is accepted."""
        fake_provider.reply(json.dumps({"definition": "A hole."}))
        assert NarrativeGateway(provider=fake_provider).define_word("cave", "").pronunciation is None

    def test_empty_word_rejected(self, fake_provider):
        """Test a word without letters is rejected before calling the provider."""
        with pytest.raises(ValidationError):
            NarrativeGateway(provider=fake_provider).define_word("!!", "")
        fake_provider.generate.assert_not_called()


class TestProviderSelection:
    """Test the gateway picks the configured provider."""

    def test_uses_settings_provider_and_model(self, fake_provider):
        """Test provider name, key and default model come from settings."""
        settings = UserSettings(text_provider="groq", groq_api_key="gsk-test", default_text_model="llama-test")
        with patch("storyweaver.gateway.get_text_provider", return_value=fake_provider) as factory:
            NarrativeGateway(settings=settings).generate_opening("Luna", "the Crystal Caves")

        factory.assert_called_once_with("groq", api_key="gsk-test")
        assert fake_provider.generate.call_args.kwargs["model"] == "llama-test"

    def test_missing_key_is_generation_error(self):
        """Test an unconfigured provider raises GenerationError, not RuntimeError."""
        settings = UserSettings(text_provider="openai")
        with pytest.raises(GenerationError) as exc_info:
            NarrativeGateway(settings=settings).generate_opening("Luna", "the Crystal Caves")
        assert "not configured" in exc_info.value.user_message
