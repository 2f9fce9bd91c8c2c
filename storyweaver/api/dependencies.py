"""FastAPI dependencies for common operations."""

from __future__ import annotations

import asyncio
from concurrent.futures import ThreadPoolExecutor
from functools import lru_cache
from typing import Any, Callable

from fastapi import HTTPException

from ..engine import StoryEngine
from ..exceptions import (
    ExternalServiceError,
    GenerationError,
    NotFoundError,
    StorageError,
    StoryBusyError,
    StoryConcludedError,
    StoryWeaverError,
    ValidationError,
)
from ..gateway import NarrativeGateway
from ..profiles import ProfileStore
from ..settings import load_user_settings
from ..speech import SpeechGateway

# Thread executor for blocking operations (file I/O, provider calls)
executor = ThreadPoolExecutor(max_workers=4)

STATUS_CODES = {
    ValidationError: 422,
    NotFoundError: 404,
    StoryConcludedError: 409,
    StoryBusyError: 409,
    GenerationError: 502,
    ExternalServiceError: 502,
    StorageError: 500,
}


@lru_cache(maxsize=1)
def get_profile_store() -> ProfileStore:
    return ProfileStore()


@lru_cache(maxsize=1)
def get_gateway() -> NarrativeGateway:
    return NarrativeGateway()


@lru_cache(maxsize=1)
def get_speech_gateway() -> SpeechGateway:
    return SpeechGateway()


@lru_cache(maxsize=1)
def get_story_engine() -> StoryEngine:
    # One engine per process so the per-story generation guard is shared
    settings = load_user_settings()
    return StoryEngine(
        get_gateway(),
        profiles=get_profile_store(),
        default_voice=settings.default_voice,
    )


def reset_dependencies() -> None:
    """Drop cached services so the next request picks up new settings."""
    for factory in (get_profile_store, get_gateway, get_speech_gateway, get_story_engine):
        factory.cache_clear()


def to_http_error(error: StoryWeaverError) -> HTTPException:
    """Map a domain error to an HTTP error with the friendly message as detail."""
    status_code = 500
    for error_cls, code in STATUS_CODES.items():
        if isinstance(error, error_cls):
            status_code = code
            break
    detail: dict[str, Any] = {"error": error.user_message}
    if error.help_text:
        detail["help"] = error.help_text
    return HTTPException(status_code=status_code, detail=detail)


async def run_blocking(func: Callable[..., Any], *args: Any, **kwargs: Any) -> Any:
    """Run a blocking core call in the executor, translating domain errors to HTTP errors."""
    loop = asyncio.get_running_loop()
    try:
        return await loop.run_in_executor(executor, lambda: func(*args, **kwargs))
    except StoryWeaverError as e:
        raise to_http_error(e) from e
