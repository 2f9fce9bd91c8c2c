"""Narrative generation gateway.

Stateless adapter between the story engine and a text provider: renders a
prompt from a typed request, asks the provider for JSON, and validates the
reply against a typed response model before handing it back. Nothing is
retried or cached here.
"""

from __future__ import annotations

import json
import logging
import re
from typing import List, Optional, Type, TypeVar

from pydantic import BaseModel, ConfigDict, Field
from pydantic import ValidationError as PydanticValidationError

from .exceptions import GenerationError, ValidationError, handle_api_error
from .prompts import build_definition_prompt, build_next_chapter_prompt, build_opening_prompt
from .providers import TextProvider, get_text_provider
from .settings import UserSettings, get_api_key_for_provider, load_user_settings

logger = logging.getLogger(__name__)

ResultT = TypeVar("ResultT", bound=BaseModel)

_FENCE_RE = re.compile(r"^```(?:json)?\s*|\s*```$", re.IGNORECASE)


class _Result(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)


class OpeningResult(_Result):
    opening_text: str = Field(..., min_length=1)
    choice_a: str = Field(..., min_length=1)
    choice_b: str = Field(..., min_length=1)

    @property
    def choices(self) -> List[str]:
        return [self.choice_a, self.choice_b]


class ContinuationResult(_Result):
    next_text: str = Field(..., min_length=1)
    choice_a: Optional[str] = None
    choice_b: Optional[str] = None
    is_ending: bool = False

    @property
    def choices(self) -> List[str]:
        """Exactly two choices, or none when the story has ended."""
        if self.is_ending or not (self.choice_a and self.choice_b):
            return []
        return [self.choice_a, self.choice_b]


class WordDefinition(_Result):
    definition: str = Field(..., min_length=1)
    pronunciation: Optional[str] = None


def extract_json(content: str) -> dict:
    """Pull the JSON object out of a model reply, tolerating code fences and chatter."""
    text = _FENCE_RE.sub("", content.strip())
    start, end = text.find("{"), text.rfind("}")
    if start == -1 or end < start:
        raise ValueError("no JSON object in response")
    data = json.loads(text[start:end + 1])
    if not isinstance(data, dict):
        raise ValueError("response JSON is not an object")
    return data


def clean_word(word: str) -> str:
    """Strip punctuation and digits from a tapped word ("dragon!" -> "dragon")."""
    return "".join(ch for ch in word if ch.isalpha())


class NarrativeGateway:
    """Turns story requests into provider calls and validated results."""

    def __init__(
        self,
        provider: Optional[TextProvider] = None,
        model: Optional[str] = None,
        settings: Optional[UserSettings] = None,
    ):
        self._provider = provider
        self._model = model
        self._settings = settings

    def _get_provider(self) -> TextProvider:
        if self._provider is None:
            settings = self._settings or load_user_settings()
            name = settings.text_provider
            try:
                self._provider = get_text_provider(name, api_key=get_api_key_for_provider(name, settings))
            except (RuntimeError, ValueError) as e:
                raise GenerationError(
                    name,
                    str(e),
                    user_message=f"Text generation is not configured for {name}",
                    help_text="Add an API key in Settings or set the provider's environment variable.",
                ) from e
            if self._model is None:
                self._model = settings.default_text_model
        return self._provider

    def _request(self, messages: list[dict], temperature: float, result_cls: Type[ResultT]) -> ResultT:
        provider = self._get_provider()
        try:
            result = provider.generate(
                messages, temperature=temperature, model=self._model, json_response=True
            )
        except Exception as e:
            raise handle_api_error(e, provider.provider_name) from e

        logger.info("Generated %s using %s (%s)", result_cls.__name__, result.provider, result.model)

        try:
            return result_cls.model_validate(extract_json(result.content))
        except (ValueError, PydanticValidationError) as e:
            logger.debug("Rejected response: %s", result.content)
            raise GenerationError(
                provider.provider_name,
                f"Malformed {result_cls.__name__} response: {e}",
            ) from e

    def generate_opening(
        self,
        hero: str,
        setting: str,
        age: Optional[int] = None,
        reading_level: Optional[int] = None,
    ) -> OpeningResult:
        messages, temperature = build_opening_prompt(hero, setting, age, reading_level)
        return self._request(messages, temperature, OpeningResult)

    def generate_next(
        self,
        hero: str,
        setting: str,
        prior_narrative: str,
        chosen_text: str,
        age: Optional[int] = None,
        reading_level: Optional[int] = None,
    ) -> ContinuationResult:
        messages, temperature = build_next_chapter_prompt(
            hero, setting, prior_narrative, chosen_text, age, reading_level
        )
        result = self._request(messages, temperature, ContinuationResult)
        if not result.is_ending and not result.choices:
            logger.warning(
                "Continuation returned fewer than two choices without is_ending; treating as the end"
            )
        return result

    def define_word(self, word: str, context: str, age: Optional[int] = None) -> WordDefinition:
        cleaned = clean_word(word)
        if not cleaned:
            raise ValidationError(f"'{word}' has no letters to define", field="word")
        messages, temperature = build_definition_prompt(cleaned, context.strip(), age)
        return self._request(messages, temperature, WordDefinition)
