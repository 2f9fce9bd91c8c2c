"""API provider abstractions for text generation."""

from .text import TextGenerationResult, TextProvider, get_text_provider

__all__ = [
    "TextGenerationResult",
    "TextProvider",
    "get_text_provider",
]
