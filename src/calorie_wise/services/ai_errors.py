"""Failure classification shared by the AI content services."""

import json
import logging
from enum import Enum

from pydantic import ValidationError

_logger = logging.getLogger(__name__)

_HTTP_BAD_REQUEST = 400
_HTTP_FORBIDDEN = {401, 403}

MEAL_ANALYSIS = "meal analysis"
WORKOUT_PLAN = "workout plan generation"
CHAT = "chat session"


class AIErrorKind(str, Enum):
    """Buckets for AI request failures."""

    MISSING_CREDENTIALS = "missing_credentials"
    MALFORMED_REQUEST = "malformed_request"
    PERMISSION_DENIED = "permission_denied"
    CONTENT_SAFETY = "content_safety"
    UNKNOWN = "unknown"


class MissingCredentialsError(RuntimeError):
    """Raised when the AI backend has no usable API key."""


class EmptyResponseError(RuntimeError):
    """Raised when the model returns no usable output."""


class AIServiceError(RuntimeError):
    """AI failure carrying a message that is safe to show to the user."""

    def __init__(self, kind: AIErrorKind, message: str) -> None:
        super().__init__(message)
        self.kind = kind
        self.message = message


def classify_error(exc: BaseException, context: str) -> AIServiceError:
    """Map a raw failure to a user-facing AI error."""
    if isinstance(exc, AIServiceError):
        return exc
    _logger.error("Error during %s: %s", context, exc)

    if isinstance(exc, MissingCredentialsError):
        return AIServiceError(
            AIErrorKind.MISSING_CREDENTIALS,
            "Your OpenAI API key is not configured. "
            "Set OPENAI_API_KEY in your .env file and restart the app.",
        )
    if isinstance(exc, EmptyResponseError | json.JSONDecodeError | ValidationError):
        if context == MEAL_ANALYSIS:
            return AIServiceError(
                AIErrorKind.CONTENT_SAFETY,
                "Only food-related images can be used here. "
                "The AI could not analyze the provided image.",
            )
        return AIServiceError(
            AIErrorKind.CONTENT_SAFETY,
            "The AI model did not return a response, which may be due to the "
            "safety policy. Please try a different query or image.",
        )

    status_code = _status_code_from_exception(exc)
    if status_code == _HTTP_BAD_REQUEST:
        return AIServiceError(
            AIErrorKind.MALFORMED_REQUEST,
            f"The request to the AI service was invalid during {context}. "
            "This might be an issue with the prompt or data format.",
        )
    if status_code in _HTTP_FORBIDDEN:
        return AIServiceError(
            AIErrorKind.PERMISSION_DENIED,
            "Your OpenAI API key is invalid or lacks the necessary permissions. "
            "Please check your key and try again.",
        )
    return AIServiceError(
        AIErrorKind.UNKNOWN,
        f"An unexpected error occurred with the AI service during {context}. "
        "Please try again later.",
    )


def _status_code_from_exception(exc: BaseException) -> int | None:
    """Extract an HTTP status code from an SDK exception, if available."""
    status_code = getattr(exc, "status_code", None)
    if isinstance(status_code, int):
        return status_code
    response = getattr(exc, "response", None)
    status_code = getattr(response, "status_code", None)
    if isinstance(status_code, int):
        return status_code
    return None
