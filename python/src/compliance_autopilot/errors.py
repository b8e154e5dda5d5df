"""
Error taxonomy for the compliance analysis engine.

Provider failures are classified so the request gate can decide whether
to retry:

- RateLimitExceeded, TransientProviderError: retryable
- AuthError, MalformedResponse: terminal
- RetriesExhausted: terminal, wraps the last retryable failure

FileAnalysisError is what callers of the orchestrator see.
"""

from enum import Enum
from typing import Any


class ErrorCode(str, Enum):
    # Provider errors (1xxx)
    PROVIDER_RATE_LIMIT = "API_1002"
    PROVIDER_UNAUTHORIZED = "API_1003"
    PROVIDER_INVALID_RESPONSE = "API_1005"
    PROVIDER_TRANSIENT = "API_1006"
    PROVIDER_RETRIES_EXHAUSTED = "API_1007"

    # Analysis errors (3xxx)
    ANALYSIS_FAILED = "CMP_3003"

    # Configuration errors (4xxx)
    CONFIG_INVALID = "CFG_4001"


class ComplianceAutopilotError(Exception):
    """Base class for all errors raised by this package."""

    code: ErrorCode = ErrorCode.ANALYSIS_FAILED
    retryable: bool = False

    def __init__(
        self,
        message: str,
        *,
        context: dict[str, Any] | None = None,
        cause: BaseException | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.context = context or {}
        self.cause = cause
        if cause is not None:
            self.__cause__ = cause

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "name": type(self).__name__,
            "message": self.message,
            "code": self.code.value,
            "retryable": self.retryable,
            "context": self.context,
        }
        if self.cause is not None:
            data["cause"] = {
                "name": type(self.cause).__name__,
                "message": str(self.cause),
            }
        return data


class ConfigurationError(ComplianceAutopilotError):
    """Invalid setup. Aborts a whole batch."""

    code = ErrorCode.CONFIG_INVALID


class ProviderError(ComplianceAutopilotError):
    """A failure reported by the external reasoning service."""

    code = ErrorCode.PROVIDER_TRANSIENT


class RateLimitExceeded(ProviderError):
    code = ErrorCode.PROVIDER_RATE_LIMIT
    retryable = True

    def __init__(
        self,
        message: str = "Provider rate limit exceeded",
        *,
        retry_after: float | None = None,
        context: dict[str, Any] | None = None,
        cause: BaseException | None = None,
    ):
        context = dict(context or {})
        if retry_after is not None:
            context["retry_after"] = retry_after
        super().__init__(message, context=context, cause=cause)
        self.retry_after = retry_after


class TransientProviderError(ProviderError):
    code = ErrorCode.PROVIDER_TRANSIENT
    retryable = True


class AuthError(ProviderError):
    code = ErrorCode.PROVIDER_UNAUTHORIZED


class MalformedResponse(ProviderError):
    code = ErrorCode.PROVIDER_INVALID_RESPONSE


class RetriesExhausted(ComplianceAutopilotError):
    """All retry attempts failed with retryable errors."""

    code = ErrorCode.PROVIDER_RETRIES_EXHAUSTED

    def __init__(self, attempts: int, last_error: BaseException):
        super().__init__(
            f"Request failed after {attempts} attempts: {last_error}",
            context={"attempts": attempts},
            cause=last_error,
        )
        self.attempts = attempts
        self.last_error = last_error


class FileAnalysisError(ComplianceAutopilotError):
    """Terminal failure while analyzing a specific file."""

    code = ErrorCode.ANALYSIS_FAILED

    def __init__(self, file_path: str, cause: BaseException):
        super().__init__(
            f"Failed to analyze {file_path}: {cause}",
            context={"file_path": file_path},
            cause=cause,
        )
        self.file_path = file_path


def is_retryable(error: BaseException) -> bool:
    """True when the request gate should retry after this error."""
    return bool(getattr(error, "retryable", False))
