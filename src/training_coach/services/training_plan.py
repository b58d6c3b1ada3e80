"""
Training plan generation.

Combines WHOOP recovery and strain, recent Strava runs and (optionally)
upcoming calendar events, then asks the LLM for today's recommendation.

Provider data is fetched concurrently; the token refresher serializes
refreshes of one provider, so the two WHOOP fetches share one refresh.
Any provider failure aborts the whole plan; nothing is generated from
partial data.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional, Sequence

from ..exceptions import TrainingPlanAbortedError
from ..integrations.base import RequestFailure, RequestResult
from ..integrations.google_calendar import CalendarEvent, GoogleCalendarAdapter
from ..integrations.strava import StravaActivity, StravaAdapter
from ..integrations.whoop import WhoopAdapter, WhoopRecovery, WhoopWorkout
from ..llm.prompts import COACH_SYSTEM_PROMPT, build_training_prompt
from ..llm.providers import LLMClient


logger = logging.getLogger(__name__)


@dataclass
class TrainingContext:
    """Latest data points the recommendation is based on."""
    recovery: WhoopRecovery
    latest_workout: WhoopWorkout
    last_run: StravaActivity
    goal: str
    events: List[CalendarEvent] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "recovery_score": self.recovery.recovery_score,
            "strain": self.latest_workout.strain,
            "last_run": self.last_run.to_dict(),
            "goal": self.goal,
            "events": [str(event) for event in self.events],
        }


@dataclass
class TrainingRecommendation:
    """LLM recommendation together with the context it was generated from."""
    text: str
    context: TrainingContext
    model: str
    generated_at: datetime = field(default_factory=datetime.now)


def _abort(failure: RequestFailure, provider: str, what: str) -> None:
    logger.error(f"Training plan aborted, {provider} {what} failed: {failure}")
    raise TrainingPlanAbortedError(
        provider,
        failure.message,
        failure=failure,
        reauth_required=failure.is_fatal,
    )


def _require(result: RequestResult, provider: str, what: str) -> list:
    """Return the data of a successful, non-empty result or abort the plan."""
    if not result.ok:
        _abort(result.failure, provider, what)
    if not result.data:
        logger.error(f"Training plan aborted, no {provider} {what} available")
        raise TrainingPlanAbortedError(provider, f"no {what} available")
    return result.data


def _latest_scored(recoveries: Sequence[WhoopRecovery]) -> WhoopRecovery:
    for recovery in recoveries:
        if recovery.is_scored:
            return recovery
    return recoveries[0]


class TrainingPlanService:
    """
    Orchestrates provider adapters and the LLM.

    Usage:
        service = TrainingPlanService(whoop, strava, llm, calendar=calendar)
        recommendation = await service.generate_plan()
        print(recommendation.text)
    """

    def __init__(
        self,
        whoop: WhoopAdapter,
        strava: StravaAdapter,
        llm: LLMClient,
        calendar: Optional[GoogleCalendarAdapter] = None,
        goal: str = "half marathon",
        calendar_days_ahead: int = 7,
    ):
        self.whoop = whoop
        self.strava = strava
        self.llm = llm
        self.calendar = calendar
        self.goal = goal
        self.calendar_days_ahead = calendar_days_ahead

    async def gather_context(self) -> TrainingContext:
        """
        Fetch all provider data concurrently.

        Raises:
            TrainingPlanAbortedError: If any provider call failed or returned nothing
        """
        fetches = [
            self.whoop.get_recovery(),
            self.whoop.get_workouts(),
            self.strava.get_runs(),
        ]
        if self.calendar is not None:
            fetches.append(
                self.calendar.list_events(days_back=0, days_ahead=self.calendar_days_ahead)
            )

        results = await asyncio.gather(*fetches)

        recoveries = _require(results[0], "whoop", "recovery")
        workouts = _require(results[1], "whoop", "workouts")
        runs = _require(results[2], "strava", "runs")

        events: List[CalendarEvent] = []
        if self.calendar is not None:
            calendar_result = results[3]
            if not calendar_result.ok:
                _abort(calendar_result.failure, "google", "calendar events")
            events = calendar_result.data or []

        context = TrainingContext(
            recovery=_latest_scored(recoveries),
            latest_workout=workouts[0],
            last_run=runs[0],
            goal=self.goal,
            events=events,
        )
        logger.info(
            f"WHOOP recovery {context.recovery.recovery_score}, strain {context.latest_workout.strain}, "
            f"last run {context.last_run.distance_km} km at {context.last_run.average_speed_kmh} km/h"
        )
        return context

    async def generate_plan(self) -> TrainingRecommendation:
        """
        Generate today's training recommendation.

        Raises:
            TrainingPlanAbortedError: If provider data is missing
            LLMError: If the completion fails
        """
        context = await self.gather_context()
        prompt = build_training_prompt(context)
        text = await self.llm.completion(system=COACH_SYSTEM_PROMPT, user=prompt)
        return TrainingRecommendation(text=text.strip(), context=context, model=self.llm.model)
