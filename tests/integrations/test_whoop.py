"""Tests for the WHOOP adapter."""

import pytest

from conftest import WHOOP_API, WHOOP_TOKEN
from training_coach.integrations.base import FailureKind
from training_coach.integrations.whoop import (
    WhoopAdapter,
    WhoopRecovery,
    WhoopWorkout,
    sport_name,
)


RECOVERY_RECORD = {
    "cycle_id": 93845,
    "sleep_id": 10235,
    "user_id": 10129,
    "created_at": "2024-01-15T11:25:44.774Z",
    "score_state": "SCORED",
    "score": {
        "user_calibrating": False,
        "recovery_score": 44,
        "resting_heart_rate": 64,
        "hrv_rmssd_milli": 31.813562,
        "spo2_percentage": 95.6875,
    },
}

WORKOUT_RECORD = {
    "id": 1043,
    "start": "2024-01-14T17:00:00.000Z",
    "end": "2024-01-14T18:00:00.000Z",
    "sport_id": 0,
    "score_state": "SCORED",
    "score": {
        "strain": 8.2463,
        "average_heart_rate": 123,
        "max_heart_rate": 146,
        "kilojoule": 1569.34,
        "distance_meter": 1772.77,
    },
}


@pytest.fixture
def whoop(engine) -> WhoopAdapter:
    return WhoopAdapter(engine)


class TestSportName:
    def test_known_codes(self):
        assert sport_name(0) == "Running"
        assert sport_name(-1) == "Activity"
        assert sport_name(44) == "Yoga"

    def test_unknown_code(self):
        assert sport_name(9999) == "Unknown"
        assert sport_name(None) == "Unknown"


class TestParsing:
    def test_recovery(self):
        recovery = WhoopRecovery.from_api_response(RECOVERY_RECORD)

        assert recovery.cycle_id == 93845
        assert recovery.recovery_score == 44
        assert recovery.hrv_rmssd_milli == pytest.approx(31.81, abs=0.01)
        assert recovery.is_scored

    def test_pending_recovery_is_not_scored(self):
        recovery = WhoopRecovery.from_api_response({"cycle_id": 1, "score_state": "PENDING_SCORE"})

        assert recovery.recovery_score is None
        assert not recovery.is_scored

    def test_workout(self):
        workout = WhoopWorkout.from_api_response(WORKOUT_RECORD)

        assert workout.sport_name == "Running"
        assert workout.strain == pytest.approx(8.2463)
        assert workout.start.isoformat() == "2024-01-14T17:00:00+00:00"


class TestWhoopAdapter:
    @pytest.mark.asyncio
    async def test_get_recovery(self, whoop, api):
        api.add("GET", f"{WHOOP_API}/recovery", (200, {"records": [RECOVERY_RECORD], "next_token": None}))

        result = await whoop.get_recovery(limit=5)

        assert api.requests[0].url.params["limit"] == "5"
        assert api.requests[0].headers["Authorization"] == "Bearer whoop_access_1"
        assert [r.cycle_id for r in result.data] == [93845]

    @pytest.mark.asyncio
    async def test_get_workouts(self, whoop, api):
        api.add("GET", f"{WHOOP_API}/activity/workout", (200, {"records": [WORKOUT_RECORD]}))

        result = await whoop.get_workouts()

        assert result.data[0].id == 1043

    @pytest.mark.asyncio
    async def test_empty_records(self, whoop, api):
        api.add("GET", f"{WHOOP_API}/recovery", (200, {"records": []}))

        result = await whoop.get_recovery()

        assert result.ok
        assert result.data == []

    @pytest.mark.asyncio
    async def test_malformed_records_are_skipped(self, whoop, api):
        """Records without an id or with an unparseable timestamp are dropped."""
        api.add("GET", f"{WHOOP_API}/recovery", (200, {"records": [
            {"created_at": "2024-01-16T06:00:00Z", "score_state": "SCORED"},
            {**RECOVERY_RECORD, "cycle_id": 1, "created_at": "yesterday"},
            "not a record",
            RECOVERY_RECORD,
        ]}))
        api.add("GET", f"{WHOOP_API}/activity/workout", (200, {"records": [{"sport_id": 0}, WORKOUT_RECORD]}))

        recoveries = await whoop.get_recovery()
        workouts = await whoop.get_workouts()

        assert recoveries.ok
        assert [r.cycle_id for r in recoveries.data] == [93845]
        assert [w.id for w in workouts.data] == [1043]

    @pytest.mark.asyncio
    async def test_invalid_refresh_token_stops_everything(self, whoop, api):
        """After a rejected refresh the adapter fails without more HTTP calls."""
        api.add("GET", f"{WHOOP_API}/recovery", (401, {"message": "Unauthorized"}))
        api.add("POST", WHOOP_TOKEN, (400, {"error": "invalid_grant"}))

        result = await whoop.get_recovery()

        assert result.failure.kind == FailureKind.INVALID_REFRESH_TOKEN
        assert result.failure.is_fatal
        assert len(api.requests) == 2

        again = await whoop.get_workouts()

        assert again.failure.kind == FailureKind.INVALID_REFRESH_TOKEN
        assert len(api.requests) == 2
