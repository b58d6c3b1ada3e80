"""
Strava adapter.

Maps Strava API v3 resources onto request engine calls and normalizes the
payloads. Retry and token refresh are handled by the engine.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, List, Optional

from .base import Provider, RequestResult, RequestSpec, parse_records
from .request_engine import RequestEngine


STRAVA_API_URL = "https://www.strava.com/api/v3"
STRAVA_TOKEN_URL = "https://www.strava.com/oauth/token"
STRAVA_AUTHORIZE_URL = "https://www.strava.com/oauth/authorize"
STRAVA_DEFAULT_SCOPE = "read,activity:read_all"

RUN_SPORT_TYPES = {"Run", "TrailRun", "VirtualRun"}

NOT_AVAILABLE = "N/A"


@dataclass
class StravaAthlete:
    """Authenticated athlete profile."""
    id: int
    username: str = NOT_AVAILABLE
    firstname: str = NOT_AVAILABLE
    lastname: str = NOT_AVAILABLE
    city: str = NOT_AVAILABLE
    country: str = NOT_AVAILABLE
    sex: str = NOT_AVAILABLE
    weight_kg: float = 0.0

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "username": self.username,
            "firstname": self.firstname,
            "lastname": self.lastname,
            "city": self.city,
            "country": self.country,
            "sex": self.sex,
            "weight_kg": self.weight_kg,
        }

    @classmethod
    def from_api_response(cls, data: dict) -> "StravaAthlete":
        """Parse from Strava API response."""
        return cls(
            id=data["id"],
            username=data.get("username") or NOT_AVAILABLE,
            firstname=data.get("firstname") or NOT_AVAILABLE,
            lastname=data.get("lastname") or NOT_AVAILABLE,
            city=data.get("city") or NOT_AVAILABLE,
            country=data.get("country") or NOT_AVAILABLE,
            sex=data.get("sex") or NOT_AVAILABLE,
            weight_kg=float(data.get("weight") or 0.0),
        )


@dataclass
class StravaActivity:
    """Strava activity summary with metric conversions applied."""
    id: int
    name: str
    sport_type: str
    start_date: Optional[datetime]
    distance_km: float
    moving_time_sec: int
    elapsed_time_sec: int
    average_speed_kmh: float
    average_heartrate: Optional[float] = None
    max_heartrate: Optional[float] = None
    total_elevation_gain_m: float = 0.0
    suffer_score: Optional[int] = None

    @property
    def is_run(self) -> bool:
        return self.sport_type in RUN_SPORT_TYPES

    @property
    def pace_min_per_km(self) -> Optional[float]:
        """Average pace in minutes per km, None when the activity did not move."""
        if self.average_speed_kmh <= 0:
            return None
        return round(60 / self.average_speed_kmh, 2)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "sport_type": self.sport_type,
            "start_date": self.start_date.isoformat() if self.start_date else None,
            "distance_km": self.distance_km,
            "moving_time_sec": self.moving_time_sec,
            "elapsed_time_sec": self.elapsed_time_sec,
            "average_speed_kmh": self.average_speed_kmh,
            "pace_min_per_km": self.pace_min_per_km,
            "average_heartrate": self.average_heartrate,
            "max_heartrate": self.max_heartrate,
            "total_elevation_gain_m": self.total_elevation_gain_m,
            "suffer_score": self.suffer_score,
        }

    @classmethod
    def from_api_response(cls, data: dict) -> "StravaActivity":
        """Parse from Strava API response (meters and m/s)."""
        start_date = data.get("start_date")
        return cls(
            id=data["id"],
            name=data.get("name") or NOT_AVAILABLE,
            sport_type=data.get("sport_type") or data.get("type") or NOT_AVAILABLE,
            start_date=datetime.fromisoformat(start_date.replace("Z", "+00:00")) if start_date else None,
            distance_km=round((data.get("distance") or 0) / 1000, 2),
            moving_time_sec=data.get("moving_time") or 0,
            elapsed_time_sec=data.get("elapsed_time") or 0,
            average_speed_kmh=round((data.get("average_speed") or 0) * 3.6, 2),
            average_heartrate=data.get("average_heartrate"),
            max_heartrate=data.get("max_heartrate"),
            total_elevation_gain_m=data.get("total_elevation_gain") or 0.0,
            suffer_score=data.get("suffer_score"),
        )


def _parse_activities(data: Any) -> List[StravaActivity]:
    return parse_records(data, StravaActivity.from_api_response)


class StravaAdapter:
    """
    Strava resources on top of the shared request engine.

    Usage:
        strava = StravaAdapter(engine)
        result = await strava.get_runs()
        if result.ok:
            last_run = result.data[0]
    """

    provider = Provider.STRAVA

    def __init__(self, engine: RequestEngine):
        self.engine = engine

    async def get_profile(self) -> RequestResult[StravaAthlete]:
        """Get the authenticated athlete's profile."""
        result = await self.engine.execute(self.provider, "athlete")
        return result.map(StravaAthlete.from_api_response)

    async def get_activities(
        self,
        per_page: int = 30,
        page: int = 1,
        after: Optional[datetime] = None,
    ) -> RequestResult[List[StravaActivity]]:
        """Get the athlete's activities, most recent first."""
        params: Dict[str, Any] = {"per_page": min(per_page, 200), "page": page}
        if after:
            params["after"] = int(after.timestamp())
        result = await self.engine.execute(
            self.provider,
            "athlete/activities",
            RequestSpec(params=params),
        )
        return result.map(_parse_activities)

    async def get_runs(self, per_page: int = 30) -> RequestResult[List[StravaActivity]]:
        """Get recent running activities, most recent first."""
        result = await self.get_activities(per_page=per_page)
        return result.map(lambda activities: [a for a in activities if a.is_run])
