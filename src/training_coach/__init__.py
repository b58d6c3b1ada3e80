"""Training coach: daily training recommendations from WHOOP, Strava and Google Calendar."""

__version__ = "0.1.0"
