#!/usr/bin/env python3
"""
Training Coach CLI.

Daily training recommendation from WHOOP recovery, Strava runs and
Google Calendar events.

Usage:
    training-coach auth                 # Authorize providers (one-time)
    training-coach plan                 # Today's recommendation
    training-coach strava runs          # Recent runs
    training-coach whoop recovery       # Recent recoveries
    training-coach calendar events      # Upcoming events
"""

import argparse
import asyncio
import logging
import sys
from typing import Awaitable, Callable

import httpx

from .config import Settings, get_settings
from .deps import Integrations, build_integrations
from .exceptions import LLMError, TrainingPlanAbortedError
from .integrations.base import RequestResult
from .utils.log_sanitizer import install_log_sanitizer, sanitize_string


EXIT_OK = 0
EXIT_FAILURE = 1
EXIT_REAUTH_REQUIRED = 2


# ANSI color codes
class Colors:
    RED = "\033[91m"
    YELLOW = "\033[93m"
    GREEN = "\033[92m"
    CYAN = "\033[96m"
    BOLD = "\033[1m"
    RESET = "\033[0m"


def get_recovery_color(recovery: float) -> str:
    """Get ANSI color for a WHOOP recovery score."""
    if recovery >= 67:
        return Colors.GREEN
    if recovery >= 34:
        return Colors.YELLOW
    return Colors.RED


def print_failure(result: RequestResult) -> int:
    """Print a request failure and return the matching exit code."""
    failure = result.failure
    print(f"{Colors.RED}Error: {sanitize_string(str(failure))}{Colors.RESET}")
    if failure.is_fatal:
        print(f"Run {Colors.BOLD}training-coach auth{Colors.RESET} to re-authorize {failure.provider.value}.")
        return EXIT_REAUTH_REQUIRED
    return EXIT_FAILURE


async def cmd_plan(args, integrations: Integrations, settings: Settings) -> int:
    """Generate today's training recommendation."""
    # deferred so the fetch commands work without an OpenAI key
    from .llm.providers import LLMClient
    from .services.training_plan import TrainingPlanService

    print()
    print(f"{Colors.BOLD}Training Coach - Today's Plan{Colors.RESET}")
    print("=" * 40)

    try:
        llm = LLMClient()
        service = TrainingPlanService(
            whoop=integrations.whoop,
            strava=integrations.strava,
            llm=llm,
            calendar=integrations.calendar if args.calendar else None,
            goal=args.goal or settings.training_goal,
        )
        recommendation = await service.generate_plan()
    except TrainingPlanAbortedError as e:
        print(f"{Colors.RED}Error: {e.message}{Colors.RESET}")
        if e.reauth_required:
            print(f"Run {Colors.BOLD}training-coach auth{Colors.RESET} to re-authorize {e.provider}.")
            return EXIT_REAUTH_REQUIRED
        return EXIT_FAILURE
    except LLMError as e:
        print(f"{Colors.RED}Error: {e.message}{Colors.RESET}")
        return EXIT_FAILURE

    context = recommendation.context
    recovery = context.recovery.recovery_score
    if recovery is not None:
        print(f"WHOOP Recovery: {get_recovery_color(recovery)}{recovery:g}%{Colors.RESET}")
    print(f"WHOOP Strain:   {context.latest_workout.strain} ({context.latest_workout.sport_name})")
    print(f"Last Run:       {context.last_run.distance_km:.2f} km at {context.last_run.average_speed_kmh:.2f} km/h")
    for event in context.events:
        print(f"Upcoming:       {event}")
    print()
    print(f"{Colors.GREEN}{Colors.BOLD}AI Training Recommendation:{Colors.RESET}")
    print(recommendation.text)
    print()
    return EXIT_OK


async def cmd_strava(args, integrations: Integrations, settings: Settings) -> int:
    """Show Strava profile or recent runs."""
    if args.resource == "profile":
        result = await integrations.strava.get_profile()
        if not result.ok:
            return print_failure(result)
        for key, value in result.data.to_dict().items():
            print(f"  {key:12} {value}")
        return EXIT_OK

    result = await integrations.strava.get_runs(per_page=args.limit)
    if not result.ok:
        return print_failure(result)
    if not result.data:
        print("No runs found.")
    for run in result.data:
        date = run.start_date.date().isoformat() if run.start_date else "N/A"
        pace = f"{run.pace_min_per_km:.2f} min/km" if run.pace_min_per_km else "N/A"
        print(f"  {date}  {run.distance_km:6.2f} km  {run.average_speed_kmh:5.2f} km/h  {pace}  {run.name}")
    return EXIT_OK


async def cmd_whoop(args, integrations: Integrations, settings: Settings) -> int:
    """Show WHOOP recoveries or workouts."""
    if args.resource == "recovery":
        result = await integrations.whoop.get_recovery(limit=args.limit)
        if not result.ok:
            return print_failure(result)
        for recovery in result.data:
            date = recovery.created_at.date().isoformat() if recovery.created_at else "N/A"
            if recovery.recovery_score is None:
                print(f"  {date}  {recovery.score_state}")
                continue
            color = get_recovery_color(recovery.recovery_score)
            print(
                f"  {date}  {color}{recovery.recovery_score:5.1f}%{Colors.RESET}"
                f"  HRV {recovery.hrv_rmssd_milli}  RHR {recovery.resting_heart_rate}"
            )
        return EXIT_OK

    result = await integrations.whoop.get_workouts(limit=args.limit)
    if not result.ok:
        return print_failure(result)
    for workout in result.data:
        date = workout.start.date().isoformat() if workout.start else "N/A"
        print(f"  {date}  strain {workout.strain}  {workout.sport_name}")
    return EXIT_OK


async def cmd_calendar(args, integrations: Integrations, settings: Settings) -> int:
    """List calendars or events."""
    if args.resource == "list":
        result = await integrations.calendar.list_calendars()
        if not result.ok:
            return print_failure(result)
        if not result.data:
            print("No calendars found.")
        for calendar in result.data:
            marker = " (primary)" if calendar.primary else ""
            print(f"  {calendar.id} - {calendar.summary}{marker}")
        return EXIT_OK

    result = await integrations.calendar.list_events(
        calendar_id=args.calendar_id,
        max_results=args.limit,
    )
    if not result.ok:
        return print_failure(result)
    if not result.data:
        print("No upcoming events found.")
    for event in result.data:
        print(f"  {event}")
    return EXIT_OK


def cmd_auth(args, settings: Settings) -> int:
    """Run the local OAuth callback server."""
    import uvicorn

    from .api.app import create_app
    from .integrations.credential_store import CredentialStore

    store = CredentialStore(settings.credentials_file)
    app = create_app(settings, store)
    base = f"http://localhost:{settings.callback_port}"

    print()
    print(f"{Colors.BOLD}Training Coach - Authorization{Colors.RESET}")
    print("=" * 40)
    for provider, config in settings.provider_configs().items():
        if config.is_configured:
            print(f"  {provider.value:7} {Colors.CYAN}{base}/auth/{provider.value}{Colors.RESET}")
        else:
            print(f"  {provider.value:7} {Colors.YELLOW}not configured{Colors.RESET}")
    print()
    print(f"Tokens are saved to {store.path}. Press Ctrl+C when done.")
    print()

    uvicorn.run(app, host=settings.callback_host, port=settings.callback_port, log_level="info")
    return EXIT_OK


async def _run(
    command: Callable[..., Awaitable[int]],
    args,
    settings: Settings,
) -> int:
    async with httpx.AsyncClient(timeout=settings.request_timeout_seconds) as http_client:
        integrations = build_integrations(settings, http_client)
        return await command(args, integrations, settings)


def main():
    """Main CLI entry point."""
    parser = argparse.ArgumentParser(
        description="Training Coach - AI training recommendations from WHOOP, Strava and Google Calendar",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  training-coach auth
  training-coach plan --calendar
  training-coach strava runs --limit 5
  training-coach whoop recovery
  training-coach calendar events --calendar-id primary
        """,
    )
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable debug logging")

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # Plan command
    plan_p = subparsers.add_parser("plan", help="Generate today's training recommendation")
    plan_p.add_argument("--goal", help="Training goal (default from settings)")
    plan_p.add_argument(
        "--calendar", action="store_true", help="Include upcoming Google Calendar events"
    )

    # Auth command
    subparsers.add_parser("auth", help="Run the OAuth callback server")

    # Provider commands
    strava_p = subparsers.add_parser("strava", help="Fetch Strava data")
    strava_p.add_argument("resource", choices=["profile", "runs"])
    strava_p.add_argument("--limit", "-n", type=int, default=10, help="Activities to fetch")

    whoop_p = subparsers.add_parser("whoop", help="Fetch WHOOP data")
    whoop_p.add_argument("resource", choices=["recovery", "workouts"])
    whoop_p.add_argument("--limit", "-n", type=int, default=10, help="Records to fetch")

    calendar_p = subparsers.add_parser("calendar", help="Fetch Google Calendar data")
    calendar_p.add_argument("resource", choices=["list", "events"])
    calendar_p.add_argument("--calendar-id", help="Calendar id (default from settings)")
    calendar_p.add_argument("--limit", "-n", type=int, default=10, help="Events to fetch")

    args = parser.parse_args()

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    install_log_sanitizer()

    settings = get_settings()

    commands = {
        "plan": cmd_plan,
        "strava": cmd_strava,
        "whoop": cmd_whoop,
        "calendar": cmd_calendar,
    }

    if args.command == "auth":
        sys.exit(cmd_auth(args, settings))
    elif args.command in commands:
        sys.exit(asyncio.run(_run(commands[args.command], args, settings)))
    else:
        parser.print_help()


if __name__ == "__main__":
    main()
