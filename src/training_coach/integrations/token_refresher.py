"""
Refresh-token exchange against a provider's token endpoint.
"""

import asyncio
import logging
from typing import Any, Dict, Mapping, Optional

import httpx

from .base import (
    Credential,
    InvalidRefreshTokenError,
    Provider,
    ProviderConfig,
    TransientRefreshError,
)
from .credential_store import CredentialStore


logger = logging.getLogger(__name__)

# Token endpoint statuses that say nothing about the refresh token itself
TRANSIENT_STATUS_CODES = {408, 429}


def _error_body(response: httpx.Response) -> Any:
    """
    Decode a token endpoint error reply for logging.

    Args:
        response: Non-200 reply from the token endpoint

    Returns:
        The JSON body, or the first 500 characters of the text
    """
    try:
        return response.json()
    except ValueError:
        return response.text[:500]


class TokenRefresher:
    """
    Exchanges a stored refresh token for a new access/refresh pair.

    Never retries internally; transient failures are raised as
    ``TransientRefreshError`` for the caller's retry policy.

    Once a refresh token has been rejected it is remembered, and further
    refreshes for that provider fail immediately until a different pair is
    stored (for example by the OAuth callback).

    Refreshes of one provider are serialized. Rotating providers invalidate
    the old refresh token on use, so two concurrent exchanges with the same
    token would see the second one rejected.
    """

    def __init__(
        self,
        store: CredentialStore,
        configs: Mapping[Provider, ProviderConfig],
        http_client: httpx.AsyncClient,
        timeout: float = 10.0,
    ):
        self.store = store
        self.configs = configs
        self.http_client = http_client
        self.timeout = timeout
        self._rejected: Dict[Provider, str] = {}
        self._locks: Dict[Provider, asyncio.Lock] = {}

    def requires_reauth(self, provider: Provider) -> bool:
        """True if the stored refresh token is one the provider already rejected."""
        rejected = self._rejected.get(provider)
        if rejected is None:
            return False
        credential = self.store.get(provider)
        if credential is None or credential.refresh_token == rejected:
            return True
        # a new pair was stored since the rejection
        del self._rejected[provider]
        return False

    async def refresh(self, provider: Provider, expired_access_token: Optional[str] = None) -> Credential:
        """
        Refresh the access token for ``provider``.

        Args:
            provider: Provider whose pair to exchange
            expired_access_token: Access token the provider answered 401 to.
                If another caller has stored a different one meanwhile, that
                credential is returned without a second exchange.

        Returns:
            The new credential, already persisted by the store.

        Raises:
            InvalidRefreshTokenError: Refresh token missing or rejected.
            TransientRefreshError: Network error, timeout, 408/429 or 5xx.
            CredentialPersistenceError: The new pair could not be stored.
        """
        lock = self._locks.setdefault(provider, asyncio.Lock())
        async with lock:
            credential = self.store.get(provider)
            if (
                expired_access_token is not None
                and credential is not None
                and credential.access_token != expired_access_token
                and not self.requires_reauth(provider)
            ):
                logger.info(f"{provider.value} access token already refreshed")
                return credential
            return await self._exchange(provider, credential)

    async def _exchange(self, provider: Provider, credential: Optional[Credential]) -> Credential:
        config = self.configs[provider]

        if credential is None or not credential.refresh_token:
            raise InvalidRefreshTokenError(
                f"No {provider.value} refresh token stored. Please re-authenticate.",
                provider.value,
            )
        if self.requires_reauth(provider):
            raise InvalidRefreshTokenError(
                f"{provider.value} refresh token was already rejected. Please re-authenticate.",
                provider.value,
            )

        logger.info(f"Refreshing {provider.value} access token")
        try:
            response = await self.http_client.post(
                config.token_endpoint,
                data={
                    "grant_type": "refresh_token",
                    "refresh_token": credential.refresh_token,
                    "client_id": config.client_id,
                    "client_secret": config.client_secret,
                },
                headers={"Content-Type": "application/x-www-form-urlencoded"},
                timeout=self.timeout,
            )
        except httpx.TimeoutException as e:
            raise TransientRefreshError(f"{provider.value} token refresh timed out: {e}", provider.value) from e
        except httpx.TransportError as e:
            raise TransientRefreshError(f"{provider.value} token refresh failed: {e}", provider.value) from e

        status = response.status_code
        if status != 200:
            body = _error_body(response)
            if status in TRANSIENT_STATUS_CODES or status >= 500:
                raise TransientRefreshError(
                    f"{provider.value} token endpoint returned {status}",
                    provider.value,
                    status_code=status,
                    body=body,
                )
            self._rejected[provider] = credential.refresh_token
            logger.error(f"{provider.value} refresh token rejected ({status}): {body}")
            raise InvalidRefreshTokenError(
                f"{provider.value} rejected the refresh token. Please re-authenticate.",
                provider.value,
                status_code=status,
                body=body,
            )

        try:
            data = response.json()
        except ValueError as e:
            raise TransientRefreshError(
                f"{provider.value} token endpoint returned invalid JSON", provider.value, status_code=status
            ) from e

        access_token = data.get("access_token")
        refresh_token = data.get("refresh_token")
        if not access_token:
            raise TransientRefreshError(
                f"{provider.value} token response has no access_token", provider.value, status_code=status
            )
        if not refresh_token:
            if config.rotates_refresh_token:
                raise TransientRefreshError(
                    f"{provider.value} token response has no refresh_token", provider.value, status_code=status
                )
            refresh_token = credential.refresh_token

        new_credential = self.store.update(
            provider,
            access_token,
            refresh_token,
            expires_in=_optional_int(data.get("expires_in")),
        )
        logger.info(f"{provider.value} access token refreshed")
        return new_credential


def _optional_int(value: Any) -> Optional[int]:
    try:
        return int(value) if value is not None else None
    except (TypeError, ValueError):
        return None
