"""
Local OAuth callback server.

Used once per provider to authorize the app and store the first token
pair. Visit ``/auth/<provider>``; the provider redirects back to
``/callback`` with ``code`` and ``state``.
"""

import logging
from contextlib import asynccontextmanager
from typing import Optional

import httpx
from fastapi import FastAPI, HTTPException, Query
from fastapi.responses import PlainTextResponse, RedirectResponse

from ..config import Settings
from ..integrations.base import (
    AuthenticationError,
    CredentialPersistenceError,
    OAuthStateError,
    Provider,
)
from ..integrations.credential_store import CredentialStore
from ..integrations.oauth import OAuthFlow, OAuthStateStore


logger = logging.getLogger(__name__)


def create_app(
    settings: Settings,
    store: CredentialStore,
    http_client: Optional[httpx.AsyncClient] = None,
    state_store: Optional[OAuthStateStore] = None,
) -> FastAPI:
    """
    Build the callback app.

    Args:
        settings: Application settings (client credentials, redirect URI)
        store: Credential store the exchanged tokens are written into
        http_client: Client for the token exchange (created per app if omitted)
        state_store: Store for pending OAuth states
    """
    configs = settings.provider_configs()
    states = state_store or OAuthStateStore()
    timeout = settings.request_timeout_seconds

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if http_client is not None:
            app.state.http_client = http_client
            yield
            return
        async with httpx.AsyncClient(timeout=timeout) as client:
            app.state.http_client = client
            yield

    app = FastAPI(title="Training Coach OAuth", lifespan=lifespan)

    def _flow(provider: Provider) -> OAuthFlow:
        config = configs[provider]
        if not config.is_configured:
            raise HTTPException(
                status_code=500,
                detail=f"{provider.value} OAuth not configured. Set the client id and secret.",
            )
        return OAuthFlow(config, settings.redirect_uri, app.state.http_client, timeout=timeout)

    @app.get("/health")
    async def health():
        return {"status": "healthy"}

    @app.get("/auth/{provider}")
    async def authorize(provider: str):
        """Redirect to the provider's consent page."""
        try:
            selected = Provider(provider)
        except ValueError:
            raise HTTPException(status_code=404, detail=f"Unknown provider: {provider}")
        flow = _flow(selected)
        state = states.issue(selected)
        return RedirectResponse(flow.get_authorization_url(state))

    @app.get("/callback", response_class=PlainTextResponse)
    async def callback(
        code: Optional[str] = Query(None),
        state: Optional[str] = Query(None),
        error: Optional[str] = Query(None),
        error_description: Optional[str] = Query(None),
    ):
        """Exchange the authorization code and persist the token pair."""
        if error:
            raise HTTPException(
                status_code=400,
                detail=f"OAuth error: {error} - {error_description or 'No description'}",
            )
        if not code:
            raise HTTPException(status_code=400, detail="No code provided")
        try:
            provider = states.consume(state)
        except OAuthStateError as e:
            raise HTTPException(status_code=400, detail=str(e))

        flow = _flow(provider)
        try:
            tokens = await flow.exchange_code(code)
        except AuthenticationError as e:
            logger.error(f"{provider.value} token exchange failed: {e}")
            raise HTTPException(status_code=500, detail="Authentication failed - check logs")

        expires_in = tokens.get("expires_in")
        try:
            store.update(
                provider,
                tokens["access_token"],
                tokens["refresh_token"],
                expires_in=int(expires_in) if expires_in is not None else None,
            )
        except CredentialPersistenceError as e:
            logger.error(str(e))
            raise HTTPException(status_code=500, detail="Could not save tokens - check logs")
        logger.info(f"{provider.value} authorized, tokens saved to {store.path}")
        return f"{provider.value} tokens saved to {store.path.name}!"

    return app
