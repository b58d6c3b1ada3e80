"""
OAuth 2.0 authorization-code flow for the one-time provider login.

Provides the authorization URL, the code exchange and single-use state
tokens for CSRF protection.
"""

import logging
import secrets
import time
import urllib.parse
from typing import Any, Dict, Optional, Tuple

import httpx

from .base import AuthenticationError, OAuthStateError, Provider, ProviderConfig


logger = logging.getLogger(__name__)


class OAuthStateStore:
    """
    Issues and validates single-use OAuth ``state`` values.

    Each state is bound to the provider it was issued for and expires after
    ``ttl_seconds``.
    """

    def __init__(self, ttl_seconds: float = 600.0):
        self.ttl_seconds = ttl_seconds
        self._states: Dict[str, Tuple[Provider, float]] = {}

    def issue(self, provider: Provider) -> str:
        """Generate a random state token for ``provider``."""
        self._purge_expired()
        state = secrets.token_urlsafe(32)
        self._states[state] = (provider, time.monotonic() + self.ttl_seconds)
        return state

    def consume(self, state: Optional[str]) -> Provider:
        """
        Validate and remove a state token.

        Raises:
            OAuthStateError: If the state is missing, unknown or expired.
        """
        self._purge_expired()
        if not state:
            raise OAuthStateError("Missing state parameter")
        for known in list(self._states):
            if secrets.compare_digest(known, state):
                provider, _ = self._states.pop(known)
                return provider
        raise OAuthStateError("Invalid state parameter")

    def _purge_expired(self) -> None:
        now = time.monotonic()
        for state, (_, expires_at) in list(self._states.items()):
            if expires_at <= now:
                del self._states[state]


class OAuthFlow:
    """
    Authorization-code flow for one provider.

    Usage:
        flow = OAuthFlow(config, redirect_uri="http://localhost:3000/callback", http_client=client)
        url = flow.get_authorization_url(state)
        # After the user authorizes, exchange the code:
        tokens = await flow.exchange_code(code)
    """

    def __init__(
        self,
        config: ProviderConfig,
        redirect_uri: str,
        http_client: httpx.AsyncClient,
        timeout: float = 10.0,
    ):
        self.config = config
        self.redirect_uri = redirect_uri
        self.http_client = http_client
        self.timeout = timeout

    @property
    def provider(self) -> Provider:
        return self.config.provider

    def get_authorization_url(self, state: str) -> str:
        """
        Get the provider's authorization URL.

        Returns:
            Full authorization URL to redirect the user to.
        """
        params = {
            "client_id": self.config.client_id,
            "redirect_uri": self.redirect_uri,
            "response_type": "code",
            "scope": self.config.scope,
            "state": state,
            **self.config.authorize_params,
        }
        query = urllib.parse.urlencode(params)
        return f"{self.config.authorize_url}?{query}"

    async def exchange_code(self, code: str) -> Dict[str, Any]:
        """
        Exchange an authorization code for tokens.

        Returns:
            Token payload with at least access_token and refresh_token

        Raises:
            AuthenticationError: If the exchange fails
        """
        try:
            response = await self.http_client.post(
                self.config.token_endpoint,
                data={
                    "client_id": self.config.client_id,
                    "client_secret": self.config.client_secret,
                    "code": code,
                    "grant_type": "authorization_code",
                    "redirect_uri": self.redirect_uri,
                },
                headers={"Content-Type": "application/x-www-form-urlencoded"},
                timeout=self.timeout,
            )
        except httpx.TransportError as e:
            raise AuthenticationError(f"Token exchange failed: {e}", self.provider.value) from e

        if response.status_code != 200:
            try:
                error_data = response.json()
            except ValueError:
                error_data = {}
            if not isinstance(error_data, dict):
                error_data = {}
            message = error_data.get("message") or error_data.get("error_description") or error_data.get("error")
            logger.error(f"{self.provider.value} token exchange failed: {response.status_code} {error_data}")
            raise AuthenticationError(
                message or f"Token exchange failed: {response.status_code}",
                self.provider.value,
                str(response.status_code),
            )

        try:
            data = response.json()
        except ValueError as e:
            raise AuthenticationError("Token response is not valid JSON", self.provider.value) from e
        if not data.get("access_token") or not data.get("refresh_token"):
            raise AuthenticationError(
                "Token response is missing access_token or refresh_token",
                self.provider.value,
            )
        return data
