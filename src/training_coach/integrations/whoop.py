"""
WHOOP adapter.

Recovery and workout (strain) records from the WHOOP developer API. List
endpoints wrap their payload in ``records``.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Any, List, Optional

from .base import Provider, RequestResult, RequestSpec, parse_records
from .request_engine import RequestEngine


WHOOP_API_HOSTNAME = "https://api.prod.whoop.com"
WHOOP_API_PATH = "/developer/v1"
WHOOP_TOKEN_PATH = "/oauth/oauth2/token"
WHOOP_AUTHORIZE_PATH = "/oauth/oauth2/auth"
WHOOP_DEFAULT_SCOPE = "read:recovery read:sleep read:workout read:cycles read:profile read:body_measurement offline"

UNKNOWN_SPORT = "Unknown"

# sport_id -> name, as documented by WHOOP
WHOOP_SPORTS = {
    -1: "Activity",
    0: "Running",
    1: "Cycling",
    16: "Baseball",
    17: "Basketball",
    18: "Rowing",
    19: "Fencing",
    20: "Field Hockey",
    21: "Football",
    22: "Golf",
    24: "Ice Hockey",
    25: "Lacrosse",
    27: "Rugby",
    28: "Sailing",
    29: "Skiing",
    30: "Soccer",
    31: "Softball",
    32: "Squash",
    33: "Swimming",
    34: "Tennis",
    35: "Track & Field",
    36: "Volleyball",
    37: "Water Polo",
    38: "Wrestling",
    39: "Boxing",
    42: "Dance",
    43: "Pilates",
    44: "Yoga",
    45: "Weightlifting",
    47: "Cross Country Skiing",
    48: "Functional Fitness",
    49: "Duathlon",
    51: "Gymnastics",
    52: "Hiking/Rucking",
    53: "Horseback Riding",
    55: "Kayaking",
    56: "Martial Arts",
    57: "Mountain Biking",
    59: "Powerlifting",
    60: "Rock Climbing",
    61: "Paddleboarding",
    62: "Triathlon",
    63: "Walking",
    64: "Surfing",
    65: "Elliptical",
    66: "Stairmaster",
    70: "Meditation",
    71: "Other",
    73: "Diving",
    74: "Operations - Tactical",
    75: "Operations - Medical",
    76: "Operations - Flying",
    77: "Operations - Water",
    82: "Ultimate",
    83: "Climber",
    84: "Jumping Rope",
    85: "Australian Football",
    86: "Skateboarding",
    87: "Coaching",
    88: "Ice Bath",
    89: "Commuting",
    90: "Gaming",
    91: "Snowboarding",
    92: "Motocross",
    93: "Caddying",
    94: "Obstacle Course Racing",
    95: "Motor Racing",
    96: "HIIT",
    97: "Spin",
    98: "Jiu Jitsu",
    99: "Manual Labor",
    100: "Cricket",
    101: "Pickleball",
    102: "Inline Skating",
    103: "Box Fitness",
    104: "Spikeball",
    105: "Wheelchair Pushing",
    106: "Paddle Tennis",
    107: "Barre",
    108: "Stage Performance",
    109: "High Stress Work",
    110: "Parenting",
    111: "Gardening",
    112: "Assault Bike",
    113: "Kickboxing",
    114: "Stretching",
    121: "Padel",
    126: "Sauna",
}


def sport_name(sport_id: Optional[int]) -> str:
    """Name for a WHOOP sport code."""
    if sport_id is None:
        return UNKNOWN_SPORT
    return WHOOP_SPORTS.get(sport_id, UNKNOWN_SPORT)


def _parse_time(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    return datetime.fromisoformat(value.replace("Z", "+00:00"))


@dataclass
class WhoopRecovery:
    """Daily recovery score."""
    cycle_id: int
    created_at: Optional[datetime]
    score_state: str
    recovery_score: Optional[float] = None
    resting_heart_rate: Optional[float] = None
    hrv_rmssd_milli: Optional[float] = None
    spo2_percentage: Optional[float] = None

    @property
    def is_scored(self) -> bool:
        return self.score_state == "SCORED" and self.recovery_score is not None

    @classmethod
    def from_api_response(cls, data: dict) -> "WhoopRecovery":
        score = data.get("score") or {}
        return cls(
            cycle_id=data["cycle_id"],
            created_at=_parse_time(data.get("created_at")),
            score_state=data.get("score_state", "UNSCORABLE"),
            recovery_score=score.get("recovery_score"),
            resting_heart_rate=score.get("resting_heart_rate"),
            hrv_rmssd_milli=score.get("hrv_rmssd_milli"),
            spo2_percentage=score.get("spo2_percentage"),
        )


@dataclass
class WhoopWorkout:
    """Workout with its strain score."""
    id: Any
    sport_id: Optional[int]
    sport_name: str
    start: Optional[datetime]
    end: Optional[datetime]
    score_state: str
    strain: Optional[float] = None
    average_heart_rate: Optional[int] = None
    max_heart_rate: Optional[int] = None
    kilojoule: Optional[float] = None
    distance_meter: Optional[float] = None

    @classmethod
    def from_api_response(cls, data: dict) -> "WhoopWorkout":
        score = data.get("score") or {}
        sport_id = data.get("sport_id")
        return cls(
            id=data["id"],
            sport_id=sport_id,
            sport_name=sport_name(sport_id),
            start=_parse_time(data.get("start")),
            end=_parse_time(data.get("end")),
            score_state=data.get("score_state", "UNSCORABLE"),
            strain=score.get("strain"),
            average_heart_rate=score.get("average_heart_rate"),
            max_heart_rate=score.get("max_heart_rate"),
            kilojoule=score.get("kilojoule"),
            distance_meter=score.get("distance_meter"),
        )


def _records(data: Any) -> List[dict]:
    """
    Unwrap the ``records`` list of a paginated WHOOP response.

    Args:
        data: Decoded response body

    Returns:
        The records, or [] when the body has none
    """
    if isinstance(data, dict):
        return data.get("records") or []
    return []


class WhoopAdapter:
    """WHOOP recovery and workout resources on top of the shared request engine."""

    provider = Provider.WHOOP

    def __init__(self, engine: RequestEngine):
        self.engine = engine

    async def get_recovery(self, limit: int = 10) -> RequestResult[List[WhoopRecovery]]:
        """Recent recoveries, most recent first."""
        result = await self.engine.execute(
            self.provider, "recovery", RequestSpec(params={"limit": limit})
        )
        return result.map(lambda data: parse_records(_records(data), WhoopRecovery.from_api_response))

    async def get_workouts(self, limit: int = 10) -> RequestResult[List[WhoopWorkout]]:
        """Recent workouts, most recent first."""
        result = await self.engine.execute(
            self.provider, "activity/workout", RequestSpec(params={"limit": limit})
        )
        return result.map(lambda data: parse_records(_records(data), WhoopWorkout.from_api_response))
