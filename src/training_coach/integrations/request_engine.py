"""
Authenticated request engine shared by every provider adapter.

One call goes through:
- Bearer-authenticated request with the stored access token
- On 401: one token refresh, then the same request again
- On 429, 5xx, timeouts and network errors: backoff wait, then retry
- Everything else, or retries exhausted: a structured ``RequestFailure``

All retries count against one ``retry_count``, bounded by ``max_retries``.
Provider and token failures never raise across the engine boundary;
adapters receive a ``RequestResult`` either way.
"""

import asyncio
import logging
from typing import Any, Awaitable, Callable, Mapping, Optional

import httpx

from .base import (
    CredentialPersistenceError,
    FailureKind,
    InvalidRefreshTokenError,
    Provider,
    ProviderConfig,
    RequestAttempt,
    RequestFailure,
    RequestResult,
    RequestSpec,
    RequestState,
    RetryPolicy,
    TransientRefreshError,
)
from .credential_store import CredentialStore
from .token_refresher import TokenRefresher


logger = logging.getLogger(__name__)

Sleep = Callable[[float], Awaitable[Any]]


def _error_body(response: httpx.Response) -> Any:
    """Decoded body of a failed response, or its truncated text."""
    try:
        return response.json()
    except ValueError:
        return response.text[:500] or None


class RequestEngine:
    """
    Executes authenticated requests against any configured provider.

    Usage:
        async with httpx.AsyncClient() as http_client:
            refresher = TokenRefresher(store, configs, http_client)
            engine = RequestEngine(store, refresher, configs, http_client)
            result = await engine.execute(Provider.STRAVA, "athlete")
            if result.ok:
                print(result.data)
    """

    def __init__(
        self,
        store: CredentialStore,
        refresher: TokenRefresher,
        configs: Mapping[Provider, ProviderConfig],
        http_client: httpx.AsyncClient,
        retry_policy: Optional[RetryPolicy] = None,
        sleep: Sleep = asyncio.sleep,
    ):
        self.store = store
        self.refresher = refresher
        self.configs = configs
        self.http_client = http_client
        self.retry_policy = retry_policy or RetryPolicy()
        self._sleep = sleep

    async def execute(
        self,
        provider: Provider,
        endpoint: str,
        spec: Optional[RequestSpec] = None,
        attempt: Optional[RequestAttempt] = None,
    ) -> RequestResult[Any]:
        """
        Run one logical request to completion.

        Args:
            provider: Provider to call
            endpoint: Path relative to the provider's base URL (e.g. "athlete/activities")
            spec: Method, query params and JSON body (defaults to a bare GET)
            attempt: Fresh attempt (state NOT_STARTED) to record retry state in;
                one is created if omitted

        Returns:
            RequestResult with the decoded JSON body, or a failure

        Raises:
            ValueError: If ``attempt`` was already used for another call
        """
        spec = spec or RequestSpec()
        attempt = attempt or RequestAttempt(endpoint=endpoint, max_retries=self.retry_policy.max_retries)
        config = self.configs[provider]
        url = config.url_for(endpoint)

        attempt.transition(RequestState.AWAITING_RESPONSE)

        while True:
            credential = self.store.get(provider)
            if credential is None or not credential.access_token:
                return self._fail(
                    attempt, provider, FailureKind.INVALID_REFRESH_TOKEN,
                    f"No {provider.value} credentials stored. Please authenticate.",
                )
            if self.refresher.requires_reauth(provider):
                return self._fail(
                    attempt, provider, FailureKind.INVALID_REFRESH_TOKEN,
                    f"{provider.value} requires re-authentication.",
                )

            try:
                response = await self.http_client.request(
                    spec.method,
                    url,
                    headers={"Authorization": f"Bearer {credential.access_token}"},
                    params=spec.params,
                    json=spec.json,
                    timeout=self.retry_policy.timeout_seconds,
                )
            except httpx.TransportError as e:
                # timeouts are TransportErrors too
                reason = "timed out" if isinstance(e, httpx.TimeoutException) else f"failed: {e}"
                if attempt.can_retry:
                    await self._backoff(attempt, provider, f"request {reason}")
                    continue
                return self._fail(
                    attempt, provider, FailureKind.TRANSIENT_NETWORK_FAILURE,
                    f"Request {reason} after {attempt.retry_count} retries",
                )

            status = response.status_code

            if 200 <= status < 300:
                return self._succeed(attempt, provider, response)

            if status == 401:
                if not attempt.can_retry:
                    return self._fail(
                        attempt, provider, FailureKind.AUTH_EXPIRED,
                        "Still unauthorized after refreshing the token",
                        status_code=status, body=_error_body(response),
                    )
                attempt.transition(RequestState.REFRESHING_AUTH)
                attempt.refresh_count += 1
                logger.info(f"{provider.value} {endpoint}: token expired, refreshing")
                try:
                    await self.refresher.refresh(provider, expired_access_token=credential.access_token)
                except InvalidRefreshTokenError as e:
                    return self._fail(
                        attempt, provider, FailureKind.INVALID_REFRESH_TOKEN, str(e),
                        status_code=e.status_code, body=e.body,
                    )
                except CredentialPersistenceError as e:
                    return self._fail(attempt, provider, FailureKind.PERSISTENCE_FAILURE, str(e))
                except TransientRefreshError as e:
                    await self._backoff(attempt, provider, f"token refresh failed: {e}")
                    continue
                attempt.retry_count += 1
                attempt.transition(RequestState.AWAITING_RESPONSE)
                continue

            if status == 429 or status >= 500:
                if attempt.can_retry:
                    await self._backoff(attempt, provider, f"HTTP {status}")
                    continue
                kind = FailureKind.RATE_LIMITED if status == 429 else FailureKind.PROVIDER_ERROR
                return self._fail(
                    attempt, provider, kind,
                    f"HTTP {status} after {attempt.retry_count} retries",
                    status_code=status, body=_error_body(response),
                )

            return self._fail(
                attempt, provider, FailureKind.PROVIDER_ERROR,
                f"HTTP {status}",
                status_code=status, body=_error_body(response),
            )

    async def _backoff(self, attempt: RequestAttempt, provider: Provider, reason: str) -> None:
        delay = self.retry_policy.get_delay(attempt.retry_count)
        attempt.transition(RequestState.BACKOFF_WAIT)
        logger.warning(
            f"{provider.value} {attempt.endpoint}: {reason}. "
            f"Retry {attempt.retry_count + 1}/{attempt.max_retries} in {delay:.1f}s"
        )
        await self._sleep(delay)
        attempt.retry_count += 1
        attempt.transition(RequestState.AWAITING_RESPONSE)

    def _succeed(self, attempt: RequestAttempt, provider: Provider, response: httpx.Response) -> RequestResult[Any]:
        if response.status_code == 204 or not response.content:
            data: Any = {}
        else:
            try:
                data = response.json()
            except ValueError:
                return self._fail(
                    attempt, provider, FailureKind.PROVIDER_ERROR,
                    "Response body is not valid JSON",
                    status_code=response.status_code, body=response.text[:500],
                )
        attempt.transition(RequestState.SUCCEEDED)
        logger.debug(f"{provider.value} {attempt.endpoint} fetched after {attempt.retry_count} retries")
        return RequestResult(data=data, attempt=attempt)

    def _fail(
        self,
        attempt: RequestAttempt,
        provider: Provider,
        kind: FailureKind,
        message: str,
        status_code: Optional[int] = None,
        body: Any = None,
    ) -> RequestResult[Any]:
        failure = RequestFailure(
            kind=kind,
            provider=provider,
            endpoint=attempt.endpoint,
            message=message,
            status_code=status_code,
            body=body,
        )
        attempt.transition(RequestState.FAILED_TERMINAL)
        logger.error(f"Error fetching {failure}" + (f" - {body}" if body else ""))
        return RequestResult(failure=failure, attempt=attempt)
