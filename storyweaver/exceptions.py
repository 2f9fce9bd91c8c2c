"""Custom exceptions for StoryWeaver with user-friendly error messages."""

from __future__ import annotations
import logging
from typing import Optional, Type

logger = logging.getLogger(__name__)


class StoryWeaverError(Exception):
    """Base exception for all StoryWeaver errors."""

    def __init__(self, message: str, user_message: Optional[str] = None, help_text: Optional[str] = None):
        """Initialize error with technical and user-friendly messages.

        Args:
            message: Technical error message for logs
            user_message: User-friendly message to display
            help_text: Optional help/suggestion text
        """
        super().__init__(message)
        self.message = message
        self.user_message = user_message or message
        self.help_text = help_text

        self._log_error()

    def _log_error(self):
        """Log error to console with user-friendly formatting."""
        logger.error(f"❌ {self.user_message}")
        if self.help_text:
            logger.info(f"💡 {self.help_text}")
        logger.debug(f"Technical details: {self.message}")


class ValidationError(StoryWeaverError):
    """Input rejected before any external call was made."""

    def __init__(self, message: str, field: Optional[str] = None):
        self.field = field
        super().__init__(message, user_message=message)


class NotFoundError(StoryWeaverError):
    """A referenced story or profile does not exist."""

    def __init__(self, kind: str, identifier: str):
        self.kind = kind
        self.identifier = identifier
        super().__init__(
            f"{kind} '{identifier}' not found",
            user_message=f"We couldn't find that {kind.lower()}",
            help_text="It may have been deleted. Go back to the list and pick another one.",
        )


class StoryConcludedError(StoryWeaverError):
    """The story has reached its ending and offers no more choices."""

    def __init__(self, story_id: str):
        self.story_id = story_id
        super().__init__(
            f"Story '{story_id}' has concluded; no further choices are accepted",
            user_message="This story has reached The End",
            help_text="Start a new adventure to keep reading.",
        )


class StoryBusyError(StoryWeaverError):
    """Another chapter is already being written for this story."""

    def __init__(self, story_id: str):
        self.story_id = story_id
        super().__init__(
            f"Story '{story_id}' already has a chapter generation in flight",
            user_message="The next chapter is already being written",
            help_text="Wait for it to finish before picking another choice.",
        )


class StorageError(StoryWeaverError):
    """A persisted collection could not be read or written."""

    def __init__(self, path: str, details: Optional[str] = None):
        self.path = path
        message = f"Storage failure for {path}"
        if details:
            message += f": {details}"
        super().__init__(
            message,
            user_message="Saved stories could not be read or written",
            help_text=f"Check that {path} is valid JSON and the data directory is writable.",
        )


class GenerationError(StoryWeaverError):
    """Text generation failed or returned a response of the wrong shape."""

    def __init__(self, provider: str, message: str, status_code: Optional[int] = None, **kwargs):
        self.provider = provider
        self.status_code = status_code
        kwargs.setdefault("user_message", "The story wizard couldn't finish that page")
        kwargs.setdefault("help_text", "Please try again in a moment.")
        super().__init__(message, **kwargs)


class ExternalServiceError(StoryWeaverError):
    """Speech synthesis (or another non-text service) failed."""

    def __init__(
        self,
        provider: str,
        message: str,
        status_code: Optional[int] = None,
        body: Optional[str] = None,
        **kwargs,
    ):
        self.provider = provider
        self.status_code = status_code
        self.body = body
        if status_code is not None:
            message = f"{message} (status {status_code})"
        if body:
            message = f"{message}: {body}"
        kwargs.setdefault("user_message", f"{provider} couldn't read this aloud right now")
        kwargs.setdefault("help_text", "Please try again in a moment.")
        super().__init__(message, **kwargs)


def handle_api_error(
    error: Exception,
    provider: str,
    error_cls: Type[StoryWeaverError] = GenerationError,
) -> StoryWeaverError:
    """Convert SDK and HTTP exceptions to user-friendly errors.

    Args:
        error: The original exception
        provider: Name of the provider (for error messages)
        error_cls: GenerationError for text services, ExternalServiceError for speech

    Returns:
        An ``error_cls`` instance with helpful messages
    """
    import requests

    def build(message: str, status_code: Optional[int], user_message: str, help_text: str) -> StoryWeaverError:
        return error_cls(provider, message, status_code=status_code, user_message=user_message, help_text=help_text)

    if isinstance(error, StoryWeaverError):
        return error

    # Handle OpenAI SDK errors
    try:
        from openai import APIError as OpenAIAPIError, RateLimitError as OpenAIRateLimit, AuthenticationError as OpenAIAuthError
        from openai import APITimeoutError, APIConnectionError

        if isinstance(error, OpenAIRateLimit):
            return _rate_limited(build, provider, None)
        elif isinstance(error, OpenAIAuthError):
            return _auth_failed(build, provider, str(error))
        elif isinstance(error, APITimeoutError):
            return _timed_out(build, provider, 60)
        elif isinstance(error, APIConnectionError):
            return _network_failed(build, provider, str(error))
        elif isinstance(error, OpenAIAPIError):
            status_code = getattr(error, 'status_code', None)
            if status_code and status_code >= 500:
                return _server_failed(build, provider, status_code, str(error))
            return build(str(error), status_code, f"API error from {provider}", "Check your request and try again")
    except ImportError:
        pass  # OpenAI SDK not installed, skip these checks

    if isinstance(error, requests.exceptions.HTTPError) and error.response is not None:
        status_code = error.response.status_code

        details = None
        try:
            error_data = error.response.json()
            details = error_data.get('error', {}).get('message') or error_data.get('message')
        except Exception:
            pass

        if status_code == 429:
            retry_after = None
            if 'Retry-After' in error.response.headers:
                try:
                    retry_after = int(error.response.headers['Retry-After'])
                except ValueError:
                    pass
            return _rate_limited(build, provider, retry_after)
        elif status_code in (401, 403):
            return _auth_failed(build, provider, details)
        elif status_code == 402:
            return build(
                f"{provider} quota or credits exceeded", 402,
                f"You've run out of credits for {provider}",
                f"Add more credits to your {provider} account, or switch to a different provider",
            )
        elif status_code >= 500:
            return _server_failed(build, provider, status_code, details)
        return build(
            f"Invalid request: {details or 'Unknown error'}", status_code,
            f"Invalid request to {provider}", "Check your request parameters",
        )

    elif isinstance(error, requests.exceptions.Timeout):
        return _timed_out(build, provider, 120)

    elif isinstance(error, requests.exceptions.RequestException):
        return _network_failed(build, provider, str(error))

    return build(
        f"Unexpected error: {error}", None,
        f"Unexpected error with {provider}", "Try again or use a different provider",
    )


def _rate_limited(build, provider: str, retry_after: Optional[int]) -> StoryWeaverError:
    message = f"{provider} rate limit exceeded"
    help_text = "Try again in a few minutes, or use a different provider in Settings"
    if retry_after:
        message += f" (retry after {retry_after}s)"
        help_text = f"Wait {retry_after} seconds and try again, or switch to a different provider"
    error = build(message, 429, f"Rate limit reached for {provider}", help_text)
    error.retry_after = retry_after
    return error


def _auth_failed(build, provider: str, details: Optional[str]) -> StoryWeaverError:
    message = f"{provider} authentication failed"
    if details:
        message += f": {details}"
    return build(
        message, 401,
        f"API key invalid or missing for {provider}",
        f"Check your {provider} API key in Settings. Make sure it's valid and has the correct permissions.",
    )


def _server_failed(build, provider: str, status_code: int, details: Optional[str]) -> StoryWeaverError:
    message = f"{provider} server error ({status_code})"
    if details:
        message += f": {details}"
    return build(
        message, status_code,
        f"{provider} is experiencing issues (error {status_code})",
        "Try again in a few minutes, or temporarily use a different provider",
    )


def _timed_out(build, provider: str, timeout: int) -> StoryWeaverError:
    return build(
        f"{provider} request timed out after {timeout}s", None,
        f"Request to {provider} timed out",
        "The provider took too long to respond. Try again, or use a faster model.",
    )


def _network_failed(build, provider: str, details: Optional[str]) -> StoryWeaverError:
    message = f"Network error connecting to {provider}"
    if details:
        message += f": {details}"
    return build(message, None, f"Cannot connect to {provider}", "Check your internet connection and try again")
