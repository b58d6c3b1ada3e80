"""Authenticated provider integrations (Google Calendar, Strava, WHOOP)."""

from .base import (
    AuthenticationError,
    Credential,
    CredentialPersistenceError,
    FailureKind,
    IntegrationError,
    InvalidRefreshTokenError,
    Provider,
    ProviderConfig,
    ProviderRequestError,
    RequestAttempt,
    RequestFailure,
    RequestResult,
    RequestSpec,
    RequestState,
    RetryPolicy,
    TransientRefreshError,
)
from .credential_store import CredentialStore
from .google_calendar import GoogleCalendarAdapter
from .request_engine import RequestEngine
from .strava import StravaAdapter
from .token_refresher import TokenRefresher
from .whoop import WhoopAdapter

__all__ = [
    "AuthenticationError",
    "Credential",
    "CredentialPersistenceError",
    "CredentialStore",
    "FailureKind",
    "GoogleCalendarAdapter",
    "IntegrationError",
    "InvalidRefreshTokenError",
    "Provider",
    "ProviderConfig",
    "ProviderRequestError",
    "RequestAttempt",
    "RequestEngine",
    "RequestFailure",
    "RequestResult",
    "RequestSpec",
    "RequestState",
    "RetryPolicy",
    "StravaAdapter",
    "TokenRefresher",
    "TransientRefreshError",
    "WhoopAdapter",
]
