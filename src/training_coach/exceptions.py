"""
Application-level errors for the training coach.

Provider call failures are not exceptions; the request engine returns
them as ``RequestFailure`` values (see ``training_coach.integrations.base``).
The errors here are what the orchestrator and the LLM client raise to the
CLI.
"""

from enum import Enum
from typing import Any, Dict, Optional


class ErrorCode(str, Enum):
    """Machine-readable error codes."""

    INTERNAL_ERROR = "INTERNAL_ERROR"

    PLAN_ABORTED = "PLAN_ABORTED"
    REAUTH_REQUIRED = "REAUTH_REQUIRED"

    LLM_API_ERROR = "LLM_API_ERROR"
    LLM_SERVICE_UNAVAILABLE = "LLM_SERVICE_UNAVAILABLE"
    LLM_RATE_LIMITED = "LLM_RATE_LIMITED"
    LLM_TIMEOUT = "LLM_TIMEOUT"
    LLM_RESPONSE_INVALID = "LLM_RESPONSE_INVALID"


class TrainingCoachError(Exception):
    """
    Base error carrying a message, an ``ErrorCode`` and optional details.
    """

    def __init__(
        self,
        message: str,
        code: ErrorCode = ErrorCode.INTERNAL_ERROR,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        self.message = message
        self.code = code
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        error: Dict[str, Any] = {"code": self.code.value, "message": self.message}
        if self.details:
            error["details"] = self.details
        return {"error": error}

    def __repr__(self) -> str:
        return f"{type(self).__name__}(code={self.code.value}, message={self.message!r})"


class TrainingPlanAbortedError(TrainingCoachError):
    """
    A provider could not deliver the data a plan needs.

    ``reauth_required`` is set when the provider rejected its refresh token
    or the new token pair could not be saved; a human has to run the OAuth
    flow again before that provider works.
    """

    def __init__(
        self,
        provider: str,
        reason: str,
        failure: Optional[Any] = None,
        reauth_required: bool = False,
    ) -> None:
        self.provider = provider
        self.failure = failure
        self.reauth_required = reauth_required
        details: Dict[str, Any] = {"provider": provider}
        if failure is not None:
            details["failure"] = failure.to_dict()
        super().__init__(
            f"Training plan aborted: {provider} - {reason}",
            ErrorCode.REAUTH_REQUIRED if reauth_required else ErrorCode.PLAN_ABORTED,
            details,
        )


class LLMError(TrainingCoachError):
    """The recommendation could not be generated."""

    def __init__(
        self,
        message: str = "LLM request failed",
        code: ErrorCode = ErrorCode.LLM_API_ERROR,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(message, code, details)


class LLMServiceUnavailableError(LLMError):
    """OpenAI is unreachable or no API key is configured."""

    def __init__(self, message: str = "LLM service unavailable", details: Optional[Dict[str, Any]] = None) -> None:
        super().__init__(message, ErrorCode.LLM_SERVICE_UNAVAILABLE, details)


class LLMRateLimitError(LLMError):
    def __init__(self, retry_after: Optional[int] = None) -> None:
        super().__init__(
            "LLM rate limit exceeded. Please try again later.",
            ErrorCode.LLM_RATE_LIMITED,
            {"retry_after_seconds": retry_after} if retry_after else None,
        )


class LLMTimeoutError(LLMError):
    def __init__(self, timeout_seconds: Optional[float] = None) -> None:
        super().__init__(
            "LLM request timed out",
            ErrorCode.LLM_TIMEOUT,
            {"timeout_seconds": timeout_seconds} if timeout_seconds else None,
        )


class LLMResponseInvalidError(LLMError):
    """The model answered with nothing usable."""

    def __init__(self, message: str = "Invalid response from LLM", details: Optional[Dict[str, Any]] = None) -> None:
        super().__init__(message, ErrorCode.LLM_RESPONSE_INVALID, details)
