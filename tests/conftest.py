"""Pytest configuration and fixtures."""

import urllib.parse
from pathlib import Path
from typing import Any, Dict, List, Tuple, Union
from unittest.mock import AsyncMock

import httpx
import pytest

from training_coach.config import Settings
from training_coach.integrations.base import Provider, RetryPolicy
from training_coach.integrations.credential_store import CredentialStore
from training_coach.integrations.request_engine import RequestEngine
from training_coach.integrations.token_refresher import TokenRefresher


STRAVA_API = "https://www.strava.com/api/v3"
STRAVA_TOKEN = "https://www.strava.com/oauth/token"
WHOOP_API = "https://api.prod.whoop.com/developer/v1"
WHOOP_TOKEN = "https://api.prod.whoop.com/oauth/oauth2/token"
GOOGLE_API = "https://www.googleapis.com/calendar/v3"
GOOGLE_TOKEN = "https://oauth2.googleapis.com/token"

ENV_CONTENT = """# Training coach settings
OPENAI_API_KEY=sk-test
STRAVA_CLIENT_ID=strava_id
STRAVA_CLIENT_SECRET=strava_secret
STRAVA_ACCESS_TOKEN=strava_access_1
STRAVA_REFRESH_TOKEN=strava_refresh_1

CLIENT_ID=whoop_id
CLIENT_SECRET=whoop_secret
WHOOP_ACCESS_TOKEN=whoop_access_1
WHOOP_REFRESH_TOKEN=whoop_refresh_1
GOOGLE_ACCESS_TOKEN=google_access_1
GOOGLE_REFRESH_TOKEN=google_refresh_1
"""

Reply = Union[Tuple[int, Any], type]


class FakeProviderAPI:
    """
    Scripted HTTP backend for httpx.MockTransport.

    Replies are queued per (method, url without query). The last reply of a
    queue is repeated once the others are used up. An exception class
    queued as a reply is raised as a transport error.
    """

    def __init__(self):
        self.routes: Dict[Tuple[str, str], List[Reply]] = {}
        self.requests: List[httpx.Request] = []

    def add(self, method: str, url: str, *replies: Reply) -> None:
        self.routes.setdefault((method, url), []).extend(replies)

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        key = (request.method, f"{request.url.scheme}://{request.url.host}{request.url.path}")
        queue = self.routes.get(key)
        if not queue:
            return httpx.Response(404, json={"message": "Record Not Found"})
        reply = queue.pop(0) if len(queue) > 1 else queue[0]
        if isinstance(reply, type) and issubclass(reply, Exception):
            raise reply("scripted transport error", request=request)
        status, body = reply
        if body is None:
            return httpx.Response(status)
        if isinstance(body, str):
            return httpx.Response(status, text=body)
        return httpx.Response(status, json=body)

    def calls(self, url: str) -> List[httpx.Request]:
        return [
            r for r in self.requests
            if f"{r.url.scheme}://{r.url.host}{r.url.path}" == url
        ]

    @staticmethod
    def form(request: httpx.Request) -> Dict[str, str]:
        return {k: v[0] for k, v in urllib.parse.parse_qs(request.content.decode()).items()}


@pytest.fixture
def env_file(tmp_path: Path) -> Path:
    """Credentials file with unrelated keys and a token pair per provider."""
    path = tmp_path / ".env"
    path.write_text(ENV_CONTENT, encoding="utf-8")
    return path


@pytest.fixture
def store(env_file: Path) -> CredentialStore:
    return CredentialStore(env_file)


@pytest.fixture
def settings(env_file: Path) -> Settings:
    return Settings(
        _env_file=None,
        openai_api_key="sk-test",
        strava_client_id="strava_id",
        strava_client_secret="strava_secret",
        whoop_client_id="whoop_id",
        whoop_client_secret="whoop_secret",
        google_client_id="google_id",
        google_client_secret="google_secret",
        credentials_file=env_file,
    )


@pytest.fixture
def configs(settings: Settings):
    return settings.provider_configs()


@pytest.fixture
def api() -> FakeProviderAPI:
    return FakeProviderAPI()


@pytest.fixture
def http_client(api: FakeProviderAPI) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(api.handler))


@pytest.fixture
def sleep() -> AsyncMock:
    """Backoff timer that returns immediately and records its delays."""
    return AsyncMock()


@pytest.fixture
def retry_policy() -> RetryPolicy:
    return RetryPolicy(max_retries=3, backoff_seconds=2.0, timeout_seconds=10.0)


@pytest.fixture
def refresher(store, configs, http_client) -> TokenRefresher:
    return TokenRefresher(store, configs, http_client)


@pytest.fixture
def engine(store, refresher, configs, http_client, retry_policy, sleep) -> RequestEngine:
    return RequestEngine(store, refresher, configs, http_client, retry_policy=retry_policy, sleep=sleep)


def token_reply(access: str, refresh: str = None, expires_in: int = 3600) -> Tuple[int, dict]:
    body = {"access_token": access, "expires_in": expires_in, "token_type": "Bearer"}
    if refresh is not None:
        body["refresh_token"] = refresh
    return 200, body


@pytest.fixture
def provider_urls():
    return {
        Provider.STRAVA: (STRAVA_API, STRAVA_TOKEN),
        Provider.WHOOP: (WHOOP_API, WHOOP_TOKEN),
        Provider.GOOGLE: (GOOGLE_API, GOOGLE_TOKEN),
    }
