"""Error taxonomy and classification for chat sessions."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from enum import Enum

from openai import AuthenticationError, NotFoundError, RateLimitError


class ErrorKind(str, Enum):
    MISSING_CREDENTIAL = "missing-credential"
    UNAUTHORIZED = "unauthorized"
    RATE_LIMITED = "rate-limited"
    NOT_FOUND = "not-found"
    ABORTED = "aborted"
    TOOL_NOT_FOUND = "tool-not-found"
    TOOL_EXECUTION_FAILURE = "tool-execution-failure"
    GENERIC = "generic"


class ToolchatError(RuntimeError):
    """Base class for errors raised by toolchat."""


class SessionSetupError(ToolchatError):
    """Raised before any request is sent when a session cannot start."""

    kind = ErrorKind.GENERIC


class UnknownProviderError(SessionSetupError):
    def __init__(self, provider_id: str) -> None:
        super().__init__(f"Unknown provider: {provider_id}")
        self.provider_id = provider_id


class MissingCredentialError(SessionSetupError):
    kind = ErrorKind.MISSING_CREDENTIAL

    def __init__(self, provider_name: str) -> None:
        super().__init__(
            f"No API key for {provider_name}. Add one in settings to continue."
        )
        self.provider_name = provider_name


@dataclass(frozen=True)
class ClassifiedError:
    """A failure mapped onto the closed taxonomy.

    ``message`` is the text shown to the user; ``detail`` keeps the raw
    exception text for logs.
    """

    kind: ErrorKind
    message: str
    detail: str = ""

    @property
    def user_visible(self) -> bool:
        return self.kind is not ErrorKind.ABORTED


def status_code_of(exc: BaseException) -> int | None:
    status = getattr(exc, "status_code", None)
    if status is None:
        status = getattr(exc, "status", None)
    return status if isinstance(status, int) else None


def classify_error(
    exc: BaseException,
    provider_name: str = "provider",
    model_id: str = "",
) -> ClassifiedError:
    """Map a raw transport, provider or setup failure to an ErrorKind."""
    detail = str(exc)
    if isinstance(exc, SessionSetupError):
        return ClassifiedError(kind=exc.kind, message=detail, detail=detail)
    if isinstance(exc, asyncio.CancelledError):
        return ClassifiedError(kind=ErrorKind.ABORTED, message="", detail=detail)

    status = status_code_of(exc)
    if isinstance(exc, AuthenticationError) or status == 401:
        return ClassifiedError(
            kind=ErrorKind.UNAUTHORIZED,
            message=f"Invalid API key for {provider_name}",
            detail=detail,
        )
    if isinstance(exc, RateLimitError) or status == 429:
        return ClassifiedError(
            kind=ErrorKind.RATE_LIMITED,
            message=f"Rate limited by {provider_name}. Try again soon.",
            detail=detail,
        )
    if isinstance(exc, NotFoundError) or status == 404:
        return ClassifiedError(
            kind=ErrorKind.NOT_FOUND,
            message=f"Model {model_id} not found on {provider_name}",
            detail=detail,
        )
    return ClassifiedError(
        kind=ErrorKind.GENERIC,
        message=detail or "An error occurred",
        detail=detail,
    )
