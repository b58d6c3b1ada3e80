"""
Base types for the authenticated provider integrations.

Defines the provider enum, credentials, per-provider configuration,
request/retry descriptors and the structured failure returned by the
request engine.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, Generic, List, Optional, TypeVar


T = TypeVar("T")
U = TypeVar("U")


class Provider(str, Enum):
    """Supported OAuth2 providers."""
    GOOGLE = "google"
    STRAVA = "strava"
    WHOOP = "whoop"


class IntegrationError(Exception):
    """Base exception for integration errors."""

    def __init__(self, message: str, provider: str = "", code: Optional[str] = None):
        self.provider = provider
        self.code = code
        super().__init__(message)


class AuthenticationError(IntegrationError):
    """Authentication failed or expired."""
    pass


class InvalidRefreshTokenError(AuthenticationError):
    """The token endpoint rejected the refresh token. Requires re-authentication."""

    def __init__(self, message: str, provider: str, status_code: Optional[int] = None, body: Any = None):
        self.status_code = status_code
        self.body = body
        super().__init__(message, provider, "invalid_refresh_token")


class TransientRefreshError(IntegrationError):
    """Token refresh failed for a reason worth retrying (network, 429, 5xx)."""

    def __init__(self, message: str, provider: str, status_code: Optional[int] = None, body: Any = None):
        self.status_code = status_code
        self.body = body
        super().__init__(message, provider, "transient_refresh_failure")


class CredentialPersistenceError(IntegrationError):
    """Writing credentials to durable storage failed."""

    def __init__(self, message: str, provider: str = ""):
        super().__init__(message, provider, "persistence_failure")


class OAuthStateError(IntegrationError):
    """OAuth state parameter missing, unknown or expired."""

    def __init__(self, message: str = "Invalid state parameter"):
        super().__init__(message, "", "invalid_state")


@dataclass(frozen=True)
class Credential:
    """
    Access/refresh token pair for one provider.
    """
    provider: Provider
    access_token: str
    refresh_token: str
    expires_in: Optional[int] = None

    def same_pair(self, access_token: str, refresh_token: str) -> bool:
        return self.access_token == access_token and self.refresh_token == refresh_token


@dataclass(frozen=True)
class ProviderConfig:
    """
    Static OAuth2 and REST configuration for a provider.

    Loaded once from settings at process start.
    """
    provider: Provider
    base_url: str
    token_endpoint: str
    client_id: str
    client_secret: str
    authorize_url: str = ""
    scope: str = ""
    # WHOOP and Strava invalidate the old refresh token on every refresh
    rotates_refresh_token: bool = True
    authorize_params: Dict[str, str] = field(default_factory=dict)

    @property
    def is_configured(self) -> bool:
        return bool(self.client_id and self.client_secret)

    def url_for(self, endpoint: str) -> str:
        if endpoint.startswith(("http://", "https://")):
            return endpoint
        return f"{self.base_url.rstrip('/')}/{endpoint.lstrip('/')}"


@dataclass(frozen=True)
class RetryPolicy:
    """
    Retry behaviour shared by every provider call.

    Attributes:
        max_retries: Retries allowed per logical call (401, 429, 5xx, timeouts).
        backoff_seconds: Wait before the first retry.
        backoff_multiplier: Growth factor per retry; 1.0 keeps the interval fixed.
        max_backoff_seconds: Upper bound for a single wait.
        timeout_seconds: Timeout applied to every HTTP call.
    """
    max_retries: int = 3
    backoff_seconds: float = 2.0
    backoff_multiplier: float = 1.0
    max_backoff_seconds: float = 30.0
    timeout_seconds: float = 10.0

    def get_delay(self, retry_count: int) -> float:
        """Delay before retry number ``retry_count + 1``."""
        delay = self.backoff_seconds * (self.backoff_multiplier ** retry_count)
        return min(delay, self.max_backoff_seconds)


@dataclass
class RequestSpec:
    """HTTP method, query parameters and JSON body for one call."""
    method: str = "GET"
    params: Optional[Dict[str, Any]] = None
    json: Optional[Dict[str, Any]] = None


class RequestState(str, Enum):
    """Lifecycle of a single logical request."""
    NOT_STARTED = "not_started"
    AWAITING_RESPONSE = "awaiting_response"
    REFRESHING_AUTH = "refreshing_auth"
    BACKOFF_WAIT = "backoff_wait"
    SUCCEEDED = "succeeded"
    FAILED_TERMINAL = "failed_terminal"


_TRANSITIONS = {
    RequestState.NOT_STARTED: {RequestState.AWAITING_RESPONSE, RequestState.FAILED_TERMINAL},
    RequestState.AWAITING_RESPONSE: {
        RequestState.REFRESHING_AUTH,
        RequestState.BACKOFF_WAIT,
        RequestState.SUCCEEDED,
        RequestState.FAILED_TERMINAL,
    },
    RequestState.REFRESHING_AUTH: {
        RequestState.AWAITING_RESPONSE,
        RequestState.BACKOFF_WAIT,
        RequestState.FAILED_TERMINAL,
    },
    RequestState.BACKOFF_WAIT: {RequestState.AWAITING_RESPONSE},
    RequestState.SUCCEEDED: set(),
    RequestState.FAILED_TERMINAL: set(),
}


@dataclass
class RequestAttempt:
    """
    Retry bookkeeping for one logical call.

    Created per call, consumed by the request engine's loop and discarded
    once the call reaches a terminal state.
    """
    endpoint: str
    max_retries: int = 3
    retry_count: int = 0
    refresh_count: int = 0
    state: RequestState = RequestState.NOT_STARTED
    history: List[RequestState] = field(default_factory=list)

    @property
    def can_retry(self) -> bool:
        return self.retry_count < self.max_retries

    @property
    def is_terminal(self) -> bool:
        return self.state in (RequestState.SUCCEEDED, RequestState.FAILED_TERMINAL)

    def transition(self, new_state: RequestState) -> None:
        if new_state not in _TRANSITIONS[self.state]:
            raise ValueError(f"Illegal request transition {self.state.value} -> {new_state.value}")
        self.history.append(self.state)
        self.state = new_state


class FailureKind(str, Enum):
    """Terminal failure categories surfaced by the request engine."""
    TRANSIENT_NETWORK_FAILURE = "transient_network_failure"
    RATE_LIMITED = "rate_limited"
    AUTH_EXPIRED = "auth_expired"
    INVALID_REFRESH_TOKEN = "invalid_refresh_token"
    PROVIDER_ERROR = "provider_error"
    PERSISTENCE_FAILURE = "persistence_failure"


FATAL_FAILURES = frozenset({FailureKind.INVALID_REFRESH_TOKEN, FailureKind.PERSISTENCE_FAILURE})


@dataclass
class RequestFailure:
    """Structured description of a call that could not be completed."""
    kind: FailureKind
    provider: Provider
    endpoint: str
    message: str
    status_code: Optional[int] = None
    body: Any = None

    @property
    def is_fatal(self) -> bool:
        """True when the provider is unusable until a human re-authenticates."""
        return self.kind in FATAL_FAILURES

    def to_dict(self) -> dict:
        return {
            "kind": self.kind.value,
            "provider": self.provider.value,
            "endpoint": self.endpoint,
            "message": self.message,
            "status_code": self.status_code,
            "body": self.body,
        }

    def __str__(self) -> str:
        status = f" (HTTP {self.status_code})" if self.status_code is not None else ""
        return f"{self.provider.value} {self.endpoint}: {self.kind.value}{status}: {self.message}"


class ProviderRequestError(IntegrationError):
    """Raised when a caller unwraps a failed request result."""

    def __init__(self, failure: RequestFailure):
        self.failure = failure
        super().__init__(str(failure), failure.provider.value, failure.kind.value)


@dataclass
class RequestResult(Generic[T]):
    """
    Outcome of a request engine call: data on success, a failure otherwise.
    """
    data: Optional[T] = None
    failure: Optional[RequestFailure] = None
    attempt: Optional[RequestAttempt] = None

    @property
    def ok(self) -> bool:
        return self.failure is None

    def map(self, fn: Callable[[T], U]) -> "RequestResult[U]":
        """Apply a normalizer to successful data; failures pass through."""
        if not self.ok:
            return RequestResult(failure=self.failure, attempt=self.attempt)
        return RequestResult(data=fn(self.data), attempt=self.attempt)

    def unwrap(self) -> T:
        if self.failure is not None:
            raise ProviderRequestError(self.failure)
        return self.data


def parse_records(items: Any, parse: Callable[[dict], U]) -> List[U]:
    """
    Normalize a list of provider records, skipping malformed ones.

    Args:
        items: Decoded list from the response body (anything else yields [])
        parse: Per-record constructor, e.g. ``StravaActivity.from_api_response``

    Returns:
        Parsed records in the order the provider returned them
    """
    records = []
    if isinstance(items, list):
        for item in items:
            try:
                records.append(parse(item))
            except (KeyError, ValueError, TypeError, AttributeError):
                continue
    return records
