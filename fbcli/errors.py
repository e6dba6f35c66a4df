"""
Error taxonomy for the Facebook CLI.

Fatal conditions are raised as ``FacebookCliError`` subclasses carrying an
``ErrorKind``. Command handlers return a ``Result`` so the CLI reports every
failure kind the same way.
"""
from dataclasses import dataclass
from enum import Enum
from typing import Any, Generic, Optional, TypeVar

T = TypeVar("T")


class ErrorKind(Enum):
    """Normalized failure kinds surfaced to the command layer."""
    CONFIGURATION = "configuration"
    CHALLENGE_REQUIRED = "challenge_required"
    LOGIN_FAILED = "login_failed"
    LOGIN_FORM_NOT_FOUND = "login_form_not_found"
    EXTRACTION_FAILURE = "extraction_failure"
    NOT_FOUND = "not_found"
    NOT_INITIALIZED = "not_initialized"
    SEND_FAILED = "send_failed"


class FacebookCliError(Exception):
    """Base exception carrying an ErrorKind."""

    kind = ErrorKind.EXTRACTION_FAILURE

    def __init__(self, message: str = "", kind: Optional[ErrorKind] = None):
        if kind is not None:
            self.kind = kind
        super().__init__(message or self.kind.value)


class ConfigurationError(FacebookCliError):
    """Required credentials are missing."""
    kind = ErrorKind.CONFIGURATION


class ChallengeRequired(FacebookCliError):
    """Login is blocked by a checkpoint or two-factor step."""
    kind = ErrorKind.CHALLENGE_REQUIRED


class LoginFailed(FacebookCliError):
    kind = ErrorKind.LOGIN_FAILED


class LoginFormNotFound(FacebookCliError):
    kind = ErrorKind.LOGIN_FORM_NOT_FOUND


class ExtractionFailure(FacebookCliError):
    """A single listing, row or bubble could not be parsed."""
    kind = ErrorKind.EXTRACTION_FAILURE


class NotInitialized(FacebookCliError):
    """The page was used before the browser was launched."""
    kind = ErrorKind.NOT_INITIALIZED


@dataclass(frozen=True)
class Result(Generic[T]):
    """Outcome of one command: a value, or an error kind with a message."""

    value: Optional[T] = None
    error: Optional[ErrorKind] = None
    detail: str = ""

    @property
    def ok(self) -> bool:
        return self.error is None

    @classmethod
    def success(cls, value: Any) -> "Result":
        return cls(value=value)

    @classmethod
    def failure(cls, error: ErrorKind, detail: str = "") -> "Result":
        return cls(error=error, detail=detail or error.value)

    @classmethod
    def from_exception(cls, exc: FacebookCliError) -> "Result":
        return cls(error=exc.kind, detail=str(exc))
