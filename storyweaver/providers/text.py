"""Text generation provider abstractions and implementations."""

from __future__ import annotations

import os
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional


def _init_api_key(env_var: str, provider_name: str, api_key: Optional[str] = None) -> str:
    """Initialize API key from parameter or environment.

    Args:
        env_var: Environment variable name to check
        provider_name: Human-readable provider name for error messages
        api_key: Optional API key passed directly

    Returns:
        The API key

    Raises:
        RuntimeError: If no API key is found
    """
    key = api_key or os.environ.get(env_var)
    if not key:
        raise RuntimeError(
            f"{provider_name} API key not found. "
            f"Set {env_var} environment variable or pass api_key parameter."
        )
    return key


@dataclass
class TextGenerationResult:
    """Result from text generation."""
    content: str
    provider: str
    model: str


class TextProvider(ABC):
    """Abstract base class for text generation providers."""

    @abstractmethod
    def generate(
        self,
        messages: list[dict[str, str]],
        temperature: float = 1.0,
        model: Optional[str] = None,
        json_response: bool = False,
    ) -> TextGenerationResult:
        """Generate text from messages.

        Args:
            messages: List of message dicts with 'role' and 'content' keys
            temperature: Sampling temperature (0.0-2.0)
            model: Optional model override
            json_response: Ask the backend to return a single JSON object

        Returns:
            TextGenerationResult with generated content and metadata
        """
        pass

    @abstractmethod
    def get_default_model(self) -> str:
        """Get the default model for this provider."""
        pass

    @property
    @abstractmethod
    def provider_name(self) -> str:
        """Human-readable provider name."""
        pass


class OpenAICompatibleProvider(TextProvider):
    """Base class for providers using the OpenAI SDK with custom base URLs."""

    api_key: str

    @abstractmethod
    def get_base_url(self) -> Optional[str]:
        """Get the base URL for this provider. None for native OpenAI."""
        pass

    def _check_model(self, model_name: str) -> None:
        pass

    def generate(
        self,
        messages: list[dict[str, str]],
        temperature: float = 1.0,
        model: Optional[str] = None,
        json_response: bool = False,
    ) -> TextGenerationResult:
        # VALIDATION: Temperature bounds
        if not 0.0 <= temperature <= 2.0:
            raise ValueError(f"Temperature must be between 0.0 and 2.0, got {temperature}")

        try:
            from openai import OpenAI
        except ImportError as e:
            raise RuntimeError("OpenAI SDK not installed. Run: pip install openai>=1.0") from e

        base_url = self.get_base_url()
        if base_url:
            client = OpenAI(api_key=self.api_key, base_url=base_url)
        else:
            client = OpenAI(api_key=self.api_key)

        model_name = model or self.get_default_model()
        self._check_model(model_name)

        kwargs = {}
        if json_response:
            kwargs["response_format"] = {"type": "json_object"}

        resp = client.chat.completions.create(
            model=model_name,
            messages=messages,  # type: ignore
            temperature=temperature,
            **kwargs,
        )

        content = resp.choices[0].message.content or ""

        return TextGenerationResult(
            content=content,
            provider=self.provider_name.lower(),
            model=model_name,
        )


class OpenAIProvider(OpenAICompatibleProvider):
    """OpenAI text generation provider."""

    ALLOWED_MODELS = {
        "gpt-5",
        "gpt-5-mini",
        "gpt-5-nano",
        "gpt-4o",
        "gpt-4o-mini",
        "gpt-4-turbo",
        "gpt-4",
        "gpt-3.5-turbo",
    }

    def __init__(self, api_key: Optional[str] = None):
        self.api_key = _init_api_key("OPENAI_API_KEY", "OpenAI", api_key)

    def get_base_url(self) -> Optional[str]:
        return None

    def _check_model(self, model_name: str) -> None:
        # VALIDATION: Model name
        if model_name not in self.ALLOWED_MODELS:
            raise ValueError(
                f"Unknown OpenAI model: {model_name}. "
                f"Allowed: {', '.join(sorted(self.ALLOWED_MODELS))}"
            )

    def get_default_model(self) -> str:
        return "gpt-4o-mini"

    @property
    def provider_name(self) -> str:
        return "OpenAI"


class GroqProvider(OpenAICompatibleProvider):
    """Groq text generation provider."""

    def __init__(self, api_key: Optional[str] = None):
        self.api_key = _init_api_key("GROQ_API_KEY", "Groq", api_key)

    def get_base_url(self) -> Optional[str]:
        return "https://api.groq.com/openai/v1"

    def get_default_model(self) -> str:
        return "llama-3.3-70b-versatile"

    @property
    def provider_name(self) -> str:
        return "Groq"


class OpenRouterProvider(OpenAICompatibleProvider):
    """OpenRouter text generation provider."""

    def __init__(self, api_key: Optional[str] = None):
        self.api_key = _init_api_key("OPENROUTER_API_KEY", "OpenRouter", api_key)

    def get_base_url(self) -> Optional[str]:
        return "https://openrouter.ai/api/v1"

    def get_default_model(self) -> str:
        return "google/gemini-2.5-flash"

    @property
    def provider_name(self) -> str:
        return "OpenRouter"


class GeminiProvider(TextProvider):
    """Google Gemini text generation provider."""

    ALLOWED_MODELS = {
        "gemini-2.5-flash",
        "gemini-2.5-flash-lite",
        "gemini-2.5-pro",
        "gemini-2.0-flash",
        "gemini-1.5-flash",
        "gemini-1.5-pro",
    }

    def __init__(self, api_key: Optional[str] = None):
        self.api_key = _init_api_key("GEMINI_API_KEY", "Gemini", api_key)

    def generate(
        self,
        messages: list[dict[str, str]],
        temperature: float = 1.0,
        model: Optional[str] = None,
        json_response: bool = False,
    ) -> TextGenerationResult:
        import google.generativeai as genai

        genai.configure(api_key=self.api_key)

        model_name = model or self.get_default_model()
        if model_name not in self.ALLOWED_MODELS:
            raise ValueError(
                f"Unknown Gemini model: {model_name}. "
                f"Allowed: {', '.join(sorted(self.ALLOWED_MODELS))}"
            )

        # Gemini takes the system prompt separately from the conversation
        system_parts = [m["content"] for m in messages if m["role"] == "system"]
        gemini_messages = [
            {"role": "user" if m["role"] == "user" else "model", "parts": [m["content"]]}
            for m in messages
            if m["role"] != "system"
        ]

        model_instance = genai.GenerativeModel(
            model_name,
            system_instruction="\n\n".join(system_parts) or None,
        )

        generation_config = {"temperature": temperature}
        if json_response:
            generation_config["response_mime_type"] = "application/json"

        response = model_instance.generate_content(
            gemini_messages,
            generation_config=generation_config,
        )

        return TextGenerationResult(
            content=response.text,
            provider="gemini",
            model=model_name,
        )

    def get_default_model(self) -> str:
        return "gemini-2.5-flash"

    @property
    def provider_name(self) -> str:
        return "Gemini"


def get_text_provider(provider_name: str, api_key: Optional[str] = None) -> TextProvider:
    """Factory function to get a text provider by name.

    Args:
        provider_name: One of "gemini", "openai", "groq", "openrouter"
        api_key: Optional API key (falls back to environment variables)

    Returns:
        Configured TextProvider instance

    Raises:
        ValueError: If provider_name is not recognized
    """
    providers = {
        "gemini": GeminiProvider,
        "openai": OpenAIProvider,
        "groq": GroqProvider,
        "openrouter": OpenRouterProvider,
    }

    provider_class = providers.get(provider_name.lower())
    if not provider_class:
        raise ValueError(
            f"Unknown text provider: {provider_name}. "
            f"Available providers: {', '.join(providers.keys())}"
        )

    return provider_class(api_key=api_key)
