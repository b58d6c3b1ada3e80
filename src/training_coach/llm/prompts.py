"""Prompt templates for the daily training recommendation."""

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from ..services.training_plan import TrainingContext


COACH_SYSTEM_PROMPT = "You are an AI coach providing endurance training advice."

TRAINING_RECOMMENDATION_PROMPT = """Based on the following fitness data:
- WHOOP Recovery Score: {recovery}
- Latest WHOOP Strain: {strain}
- Last Run: {last_run}
- The user is training for a {goal}.
{calendar_section}
Provide a personalized training recommendation for today. Consider whether the user should do an easy run, rest, cross-train, or increase intensity. Keep it concise."""


def _format_score(value, suffix: str = "") -> str:
    if value is None:
        return "N/A"
    return f"{value:g}{suffix}"


def build_training_prompt(context: "TrainingContext") -> str:
    """Render the user prompt for a training context."""
    run = context.last_run
    last_run = f"{run.distance_km:.2f} km at {run.average_speed_kmh:.2f} km/h"
    if run.pace_min_per_km is not None:
        last_run += f" ({run.pace_min_per_km:.2f} min/km)"

    calendar_section = ""
    if context.events:
        lines = "\n".join(f"  - {event}" for event in context.events)
        calendar_section = f"- Upcoming calendar events:\n{lines}\n"

    return TRAINING_RECOMMENDATION_PROMPT.format(
        recovery=_format_score(context.recovery.recovery_score, "%"),
        strain=_format_score(context.latest_workout.strain),
        last_run=last_run,
        goal=context.goal,
        calendar_section=calendar_section,
    )
