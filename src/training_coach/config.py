"""Configuration settings for the training coach."""

from functools import lru_cache
from pathlib import Path
from typing import Dict

from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings

from .integrations.base import Provider, ProviderConfig, RetryPolicy
from .integrations.google_calendar import (
    GOOGLE_AUTHORIZE_URL,
    GOOGLE_CALENDAR_API_URL,
    GOOGLE_CALENDAR_SCOPE,
    GOOGLE_TOKEN_URL,
)
from .integrations.strava import (
    STRAVA_API_URL,
    STRAVA_AUTHORIZE_URL,
    STRAVA_DEFAULT_SCOPE,
    STRAVA_TOKEN_URL,
)
from .integrations.whoop import (
    WHOOP_API_HOSTNAME,
    WHOOP_API_PATH,
    WHOOP_AUTHORIZE_PATH,
    WHOOP_DEFAULT_SCOPE,
    WHOOP_TOKEN_PATH,
)


class Settings(BaseSettings):
    """Application settings loaded from environment variables and .env."""

    # OpenAI
    openai_api_key: str = ""
    llm_model: str = "gpt-4o"
    llm_temperature: float = 0.7

    # Strava
    strava_client_id: str = ""
    strava_client_secret: str = ""

    # WHOOP (CLIENT_ID / CLIENT_SECRET accepted for older .env files)
    whoop_client_id: str = Field("", validation_alias=AliasChoices("whoop_client_id", "client_id"))
    whoop_client_secret: str = Field("", validation_alias=AliasChoices("whoop_client_secret", "client_secret"))
    whoop_api_hostname: str = WHOOP_API_HOSTNAME

    # Google Calendar
    google_client_id: str = ""
    google_client_secret: str = ""
    google_calendar_id: str = "primary"

    # OAuth callback server
    redirect_uri: str = "http://localhost:3000/callback"
    callback_host: str = "127.0.0.1"
    callback_port: int = 3000

    # Token persistence (KEY=VALUE file, shared with .env by default)
    credentials_file: Path = Path(".env")

    # Request engine
    request_timeout_seconds: float = 10.0
    max_retries: int = 3
    backoff_seconds: float = 2.0
    backoff_multiplier: float = 1.0

    # Coaching
    training_goal: str = "half marathon"

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        # the same file also carries the persisted tokens
        extra = "ignore"

    def provider_configs(self) -> Dict[Provider, ProviderConfig]:
        """Build the immutable per-provider configuration."""
        whoop_host = self.whoop_api_hostname.rstrip("/")
        return {
            Provider.STRAVA: ProviderConfig(
                provider=Provider.STRAVA,
                base_url=STRAVA_API_URL,
                token_endpoint=STRAVA_TOKEN_URL,
                client_id=self.strava_client_id,
                client_secret=self.strava_client_secret,
                authorize_url=STRAVA_AUTHORIZE_URL,
                scope=STRAVA_DEFAULT_SCOPE,
                rotates_refresh_token=True,
                authorize_params={"approval_prompt": "auto"},
            ),
            Provider.WHOOP: ProviderConfig(
                provider=Provider.WHOOP,
                base_url=f"{whoop_host}{WHOOP_API_PATH}",
                token_endpoint=f"{whoop_host}{WHOOP_TOKEN_PATH}",
                client_id=self.whoop_client_id,
                client_secret=self.whoop_client_secret,
                authorize_url=f"{whoop_host}{WHOOP_AUTHORIZE_PATH}",
                scope=WHOOP_DEFAULT_SCOPE,
                rotates_refresh_token=True,
            ),
            Provider.GOOGLE: ProviderConfig(
                provider=Provider.GOOGLE,
                base_url=GOOGLE_CALENDAR_API_URL,
                token_endpoint=GOOGLE_TOKEN_URL,
                client_id=self.google_client_id,
                client_secret=self.google_client_secret,
                authorize_url=GOOGLE_AUTHORIZE_URL,
                scope=GOOGLE_CALENDAR_SCOPE,
                rotates_refresh_token=False,
                authorize_params={"access_type": "offline", "prompt": "consent"},
            ),
        }

    def retry_policy(self) -> RetryPolicy:
        return RetryPolicy(
            max_retries=self.max_retries,
            backoff_seconds=self.backoff_seconds,
            backoff_multiplier=self.backoff_multiplier,
            timeout_seconds=self.request_timeout_seconds,
        )


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
