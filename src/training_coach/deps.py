"""Wiring of the credential store, request engine and provider adapters."""

import asyncio
from dataclasses import dataclass
from typing import Dict, Optional

import httpx

from .config import Settings
from .integrations.base import Provider, ProviderConfig
from .integrations.credential_store import CredentialStore
from .integrations.google_calendar import GoogleCalendarAdapter
from .integrations.request_engine import RequestEngine, Sleep
from .integrations.strava import StravaAdapter
from .integrations.token_refresher import TokenRefresher
from .integrations.whoop import WhoopAdapter


@dataclass
class Integrations:
    """Everything needed to talk to the providers, sharing one engine."""
    store: CredentialStore
    configs: Dict[Provider, ProviderConfig]
    refresher: TokenRefresher
    engine: RequestEngine
    strava: StravaAdapter
    whoop: WhoopAdapter
    calendar: GoogleCalendarAdapter


def build_integrations(
    settings: Settings,
    http_client: httpx.AsyncClient,
    store: Optional[CredentialStore] = None,
    sleep: Sleep = asyncio.sleep,
) -> Integrations:
    """Create the shared request engine and the three adapters on top of it."""
    store = store or CredentialStore(settings.credentials_file)
    configs = settings.provider_configs()
    policy = settings.retry_policy()
    refresher = TokenRefresher(store, configs, http_client, timeout=policy.timeout_seconds)
    engine = RequestEngine(store, refresher, configs, http_client, retry_policy=policy, sleep=sleep)
    return Integrations(
        store=store,
        configs=configs,
        refresher=refresher,
        engine=engine,
        strava=StravaAdapter(engine),
        whoop=WhoopAdapter(engine),
        calendar=GoogleCalendarAdapter(engine, default_calendar_id=settings.google_calendar_id),
    )
