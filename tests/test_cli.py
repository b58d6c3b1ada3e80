"""Tests for the command line commands."""

from argparse import Namespace

import pytest

from conftest import STRAVA_API, WHOOP_API, WHOOP_TOKEN
from training_coach.cli import (
    EXIT_FAILURE,
    EXIT_OK,
    EXIT_REAUTH_REQUIRED,
    Colors,
    cmd_strava,
    cmd_whoop,
    get_recovery_color,
)
from training_coach.deps import build_integrations


@pytest.fixture
def integrations(settings, http_client, store, sleep):
    return build_integrations(settings, http_client, store=store, sleep=sleep)


class TestRecoveryColor:
    def test_bands(self):
        assert get_recovery_color(80) == Colors.GREEN
        assert get_recovery_color(50) == Colors.YELLOW
        assert get_recovery_color(20) == Colors.RED


class TestCommands:
    @pytest.mark.asyncio
    async def test_strava_profile(self, integrations, settings, api, capsys):
        api.add("GET", f"{STRAVA_API}/athlete", (200, {"id": 1, "username": "runner"}))

        code = await cmd_strava(Namespace(resource="profile", limit=10), integrations, settings)

        assert code == EXIT_OK
        output = capsys.readouterr().out
        assert "runner" in output
        assert "N/A" in output

    @pytest.mark.asyncio
    async def test_strava_runs_empty(self, integrations, settings, api, capsys):
        api.add("GET", f"{STRAVA_API}/athlete/activities", (200, []))

        code = await cmd_strava(Namespace(resource="runs", limit=5), integrations, settings)

        assert code == EXIT_OK
        assert "No runs found." in capsys.readouterr().out

    @pytest.mark.asyncio
    async def test_provider_error_exit_code(self, integrations, settings, api):
        api.add("GET", f"{WHOOP_API}/recovery", (500, {"error": "server"}))

        code = await cmd_whoop(Namespace(resource="recovery", limit=5), integrations, settings)

        assert code == EXIT_FAILURE

    @pytest.mark.asyncio
    async def test_reauth_exit_code(self, integrations, settings, api, capsys):
        api.add("GET", f"{WHOOP_API}/activity/workout", (401, {}))
        api.add("POST", WHOOP_TOKEN, (400, {"error": "invalid_grant"}))

        code = await cmd_whoop(Namespace(resource="workouts", limit=5), integrations, settings)

        assert code == EXIT_REAUTH_REQUIRED
        assert "training-coach auth" in capsys.readouterr().out
