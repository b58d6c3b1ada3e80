"""Tests for the authenticated request engine."""

import httpx
import pytest

from conftest import (
    GOOGLE_API,
    GOOGLE_TOKEN,
    STRAVA_API,
    STRAVA_TOKEN,
    WHOOP_API,
    WHOOP_TOKEN,
    token_reply,
)
from training_coach.integrations.base import (
    FailureKind,
    Provider,
    RequestAttempt,
    RequestSpec,
    RequestState,
    RetryPolicy,
)
from training_coach.integrations.request_engine import RequestEngine


ALL_PROVIDERS = [
    (Provider.STRAVA, STRAVA_API, STRAVA_TOKEN),
    (Provider.WHOOP, WHOOP_API, WHOOP_TOKEN),
    (Provider.GOOGLE, GOOGLE_API, GOOGLE_TOKEN),
]


class TestSuccess:
    """Tests for plain successful calls."""

    @pytest.mark.asyncio
    async def test_sends_bearer_token(self, engine, api):
        """The stored access token is sent as a bearer token."""
        api.add("GET", f"{STRAVA_API}/athlete", (200, {"id": 1}))

        result = await engine.execute(Provider.STRAVA, "athlete")

        assert result.ok
        assert result.data == {"id": 1}
        assert api.requests[0].headers["Authorization"] == "Bearer strava_access_1"
        assert result.attempt.state == RequestState.SUCCEEDED
        assert result.attempt.retry_count == 0

    @pytest.mark.asyncio
    async def test_passes_query_params(self, engine, api):
        """Query parameters from the RequestSpec reach the API."""
        api.add("GET", f"{WHOOP_API}/recovery", (200, {"records": []}))

        await engine.execute(Provider.WHOOP, "recovery", RequestSpec(params={"limit": 5}))

        assert api.requests[0].url.params["limit"] == "5"

    @pytest.mark.asyncio
    async def test_no_content_returns_empty_dict(self, engine, api):
        """204 responses decode to an empty dict."""
        api.add("DELETE", f"{STRAVA_API}/activities/1", (204, None))

        result = await engine.execute(Provider.STRAVA, "activities/1", RequestSpec(method="DELETE"))

        assert result.ok
        assert result.data == {}

    @pytest.mark.asyncio
    async def test_invalid_json_is_provider_error(self, engine, api):
        """A 200 with a non-JSON body is a terminal provider error."""
        api.add("GET", f"{STRAVA_API}/athlete", (200, "<html>oops</html>"))

        result = await engine.execute(Provider.STRAVA, "athlete")

        assert not result.ok
        assert result.failure.kind == FailureKind.PROVIDER_ERROR


class TestAuthRefresh:
    """Tests for the 401 refresh-and-retry path."""

    @pytest.mark.asyncio
    @pytest.mark.parametrize("provider,base,token_url", ALL_PROVIDERS)
    async def test_401_triggers_exactly_one_refresh(self, engine, api, store, provider, base, token_url):
        """A single 401 causes one refresh, then the request is retried with the new token."""
        api.add("GET", f"{base}/resource", (401, {"message": "Authorization Error"}), (200, {"ok": True}))
        api.add("POST", token_url, token_reply("new_access", "new_refresh"))

        result = await engine.execute(provider, "resource")

        assert result.ok
        assert result.data == {"ok": True}
        assert len(api.calls(token_url)) == 1
        assert result.attempt.refresh_count == 1
        assert result.attempt.retry_count == 1
        retried = api.calls(f"{base}/resource")[-1]
        assert retried.headers["Authorization"] == "Bearer new_access"
        assert store.get(provider).access_token == "new_access"

    @pytest.mark.asyncio
    @pytest.mark.parametrize("provider,base,token_url", ALL_PROVIDERS)
    async def test_persistent_401_is_bounded(self, engine, api, provider, base, token_url):
        """An API that never accepts the token stops after max_retries."""
        api.add("GET", f"{base}/resource", (401, {"message": "Authorization Error"}))
        api.add(
            "POST", token_url,
            token_reply("a2", "r2"), token_reply("a3", "r3"), token_reply("a4", "r4"),
        )

        result = await engine.execute(provider, "resource")

        assert not result.ok
        assert result.failure.kind == FailureKind.AUTH_EXPIRED
        assert result.failure.status_code == 401
        assert result.attempt.retry_count == 3
        assert len(api.calls(token_url)) == 3
        assert len(api.calls(f"{base}/resource")) == 4

    @pytest.mark.asyncio
    @pytest.mark.parametrize("provider,base,token_url", ALL_PROVIDERS)
    async def test_rejected_refresh_token_terminates(self, engine, api, provider, base, token_url, sleep):
        """A rejected refresh token ends the call without further attempts."""
        api.add("GET", f"{base}/resource", (401, {"message": "Authorization Error"}))
        api.add("POST", token_url, (400, {"error": "invalid_grant"}))

        result = await engine.execute(provider, "resource")

        assert not result.ok
        assert result.failure.kind == FailureKind.INVALID_REFRESH_TOKEN
        assert result.failure.is_fatal
        assert result.failure.body == {"error": "invalid_grant"}
        assert len(api.calls(f"{base}/resource")) == 1
        assert len(api.calls(token_url)) == 1
        sleep.assert_not_called()

    @pytest.mark.asyncio
    async def test_rejected_provider_fails_fast_on_next_call(self, engine, api):
        """After a rejection, later calls for that provider make no HTTP requests."""
        api.add("GET", f"{WHOOP_API}/recovery", (401, {}))
        api.add("POST", WHOOP_TOKEN, (401, {"error": "invalid_client"}))
        await engine.execute(Provider.WHOOP, "recovery")
        sent = len(api.requests)

        result = await engine.execute(Provider.WHOOP, "activity/workout")

        assert result.failure.kind == FailureKind.INVALID_REFRESH_TOKEN
        assert len(api.requests) == sent

    @pytest.mark.asyncio
    async def test_reauthorization_clears_rejection(self, engine, api, store):
        """Storing a new pair (OAuth callback) makes the provider usable again."""
        api.add("GET", f"{WHOOP_API}/recovery", (401, {}), (200, {"records": []}))
        api.add("POST", WHOOP_TOKEN, (400, {"error": "invalid_grant"}))
        await engine.execute(Provider.WHOOP, "recovery")

        store.update(Provider.WHOOP, "fresh_access", "fresh_refresh")
        result = await engine.execute(Provider.WHOOP, "recovery")

        assert result.ok

    @pytest.mark.asyncio
    async def test_other_providers_unaffected_by_rejection(self, engine, api):
        """A WHOOP rejection does not block Strava."""
        api.add("GET", f"{WHOOP_API}/recovery", (401, {}))
        api.add("POST", WHOOP_TOKEN, (400, {"error": "invalid_grant"}))
        api.add("GET", f"{STRAVA_API}/athlete", (200, {"id": 1}))

        await engine.execute(Provider.WHOOP, "recovery")
        result = await engine.execute(Provider.STRAVA, "athlete")

        assert result.ok

    @pytest.mark.asyncio
    async def test_transient_refresh_failure_backs_off_and_retries(self, engine, api, sleep):
        """A 503 from the token endpoint is retried through the backoff path."""
        api.add("GET", f"{STRAVA_API}/athlete", (401, {}), (401, {}), (200, {"id": 1}))
        api.add("POST", STRAVA_TOKEN, (503, "unavailable"), token_reply("a2", "r2"))

        result = await engine.execute(Provider.STRAVA, "athlete")

        assert result.ok
        assert result.attempt.refresh_count == 2
        assert result.attempt.retry_count == 2
        sleep.assert_awaited_once_with(2.0)

    @pytest.mark.asyncio
    async def test_persistence_failure_is_fatal(self, engine, api, store, monkeypatch):
        """A refreshed pair that cannot be written ends the call as a persistence failure."""
        api.add("GET", f"{STRAVA_API}/athlete", (401, {}))
        api.add("POST", STRAVA_TOKEN, token_reply("a2", "r2"))

        def fail_replace(src, dst):
            raise OSError("disk full")

        monkeypatch.setattr("training_coach.integrations.credential_store.os.replace", fail_replace)

        result = await engine.execute(Provider.STRAVA, "athlete")

        assert result.failure.kind == FailureKind.PERSISTENCE_FAILURE
        assert result.failure.is_fatal
        assert len(api.calls(f"{STRAVA_API}/athlete")) == 1

    @pytest.mark.asyncio
    async def test_missing_credentials_fail_without_request(self, engine, api, store):
        """A provider that was never authorized fails without HTTP calls."""
        store._credentials.pop(Provider.GOOGLE)

        result = await engine.execute(Provider.GOOGLE, "users/me/calendarList")

        assert result.failure.kind == FailureKind.INVALID_REFRESH_TOKEN
        assert api.requests == []


class TestBackoffRetry:
    """Tests for 429 / 5xx / timeout retries."""

    @pytest.mark.asyncio
    async def test_429_three_times_then_success(self, engine, api, sleep):
        """Three rate limits followed by success returns the data after three waits."""
        api.add(
            "GET", f"{STRAVA_API}/athlete/activities",
            (429, {"message": "Rate Limit Exceeded"}),
            (429, {"message": "Rate Limit Exceeded"}),
            (429, {"message": "Rate Limit Exceeded"}),
            (200, [{"id": 1}]),
        )

        result = await engine.execute(Provider.STRAVA, "athlete/activities")

        assert result.ok
        assert result.data == [{"id": 1}]
        assert result.attempt.retry_count == 3
        assert sleep.await_count == 3
        assert all(call.args == (2.0,) for call in sleep.await_args_list)
        assert result.attempt.history.count(RequestState.BACKOFF_WAIT) == 3

    @pytest.mark.asyncio
    async def test_429_exhausted_is_rate_limited(self, engine, api, sleep):
        """Rate limiting past max_retries gives a RATE_LIMITED failure."""
        api.add("GET", f"{STRAVA_API}/athlete", (429, {"message": "Rate Limit Exceeded"}))

        result = await engine.execute(Provider.STRAVA, "athlete")

        assert result.failure.kind == FailureKind.RATE_LIMITED
        assert result.failure.status_code == 429
        assert result.failure.body == {"message": "Rate Limit Exceeded"}
        assert result.attempt.retry_count == 3
        assert len(api.requests) == 4
        assert sleep.await_count == 3

    @pytest.mark.asyncio
    @pytest.mark.parametrize("status", [500, 502, 503])
    async def test_5xx_exhausted_is_provider_error(self, engine, api, status):
        """Server errors past max_retries give a PROVIDER_ERROR failure."""
        api.add("GET", f"{WHOOP_API}/recovery", (status, {"error": "server"}))

        result = await engine.execute(Provider.WHOOP, "recovery")

        assert result.failure.kind == FailureKind.PROVIDER_ERROR
        assert result.failure.status_code == status
        assert len(api.requests) == 4

    @pytest.mark.asyncio
    async def test_timeout_is_retried(self, engine, api, sleep):
        """A timed-out request takes the same backoff path as a 5xx."""
        api.add("GET", f"{STRAVA_API}/athlete", httpx.ReadTimeout, (200, {"id": 1}))

        result = await engine.execute(Provider.STRAVA, "athlete")

        assert result.ok
        assert result.attempt.retry_count == 1
        sleep.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_network_errors_exhausted(self, engine, api):
        """Connection errors past max_retries give a transient network failure."""
        api.add("GET", f"{STRAVA_API}/athlete", httpx.ConnectError)

        result = await engine.execute(Provider.STRAVA, "athlete")

        assert result.failure.kind == FailureKind.TRANSIENT_NETWORK_FAILURE
        assert result.failure.status_code is None
        assert len(api.requests) == 4

    @pytest.mark.asyncio
    async def test_configurable_backoff(self, store, refresher, configs, http_client, api, sleep):
        """Backoff interval and growth come from the retry policy."""
        policy = RetryPolicy(max_retries=2, backoff_seconds=0.5, backoff_multiplier=2.0)
        engine = RequestEngine(store, refresher, configs, http_client, retry_policy=policy, sleep=sleep)
        api.add("GET", f"{STRAVA_API}/athlete", (503, None))

        result = await engine.execute(Provider.STRAVA, "athlete")

        assert [call.args[0] for call in sleep.await_args_list] == [0.5, 1.0]
        assert result.attempt.retry_count == 2


class TestTerminalErrors:
    """Tests for non-retryable responses."""

    @pytest.mark.asyncio
    @pytest.mark.parametrize("status", [400, 403, 404])
    async def test_client_errors_are_not_retried(self, engine, api, sleep, status):
        """Other 4xx responses end the call immediately."""
        api.add("GET", f"{STRAVA_API}/activities/9", (status, {"message": "nope"}))

        result = await engine.execute(Provider.STRAVA, "activities/9")

        assert result.failure.kind == FailureKind.PROVIDER_ERROR
        assert result.failure.status_code == status
        assert result.failure.endpoint == "activities/9"
        assert result.failure.body == {"message": "nope"}
        assert not result.failure.is_fatal
        assert len(api.requests) == 1
        sleep.assert_not_called()

    @pytest.mark.asyncio
    async def test_failure_is_returned_not_raised(self, engine, api):
        """Failures come back as results; unwrap raises for callers that want it."""
        from training_coach.integrations.base import ProviderRequestError

        api.add("GET", f"{STRAVA_API}/athlete", (404, {"message": "Record Not Found"}))

        result = await engine.execute(Provider.STRAVA, "athlete")

        with pytest.raises(ProviderRequestError) as exc_info:
            result.unwrap()
        assert exc_info.value.failure is result.failure

    @pytest.mark.asyncio
    async def test_reused_attempt_is_rejected(self, engine, api):
        """A finished attempt cannot be fed back into the engine."""
        api.add("GET", f"{STRAVA_API}/athlete", (200, {"id": 1}))
        attempt = RequestAttempt(endpoint="athlete")
        await engine.execute(Provider.STRAVA, "athlete", attempt=attempt)

        with pytest.raises(ValueError):
            await engine.execute(Provider.STRAVA, "athlete", attempt=attempt)
