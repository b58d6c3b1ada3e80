"""Tests for settings and provider configuration."""

from pathlib import Path

from training_coach.config import Settings
from training_coach.integrations.base import Provider


class TestSettings:
    """Tests for Settings."""

    def test_defaults(self):
        settings = Settings(_env_file=None)

        assert settings.max_retries == 3
        assert settings.backoff_seconds == 2.0
        assert settings.request_timeout_seconds == 10.0
        assert settings.redirect_uri == "http://localhost:3000/callback"
        assert settings.credentials_file == Path(".env")

    def test_reads_env_file(self, tmp_path):
        """Client credentials come from the same file that stores the tokens."""
        env_file = tmp_path / ".env"
        env_file.write_text(
            "STRAVA_CLIENT_ID=123\nSTRAVA_CLIENT_SECRET=abc\n"
            "CLIENT_ID=whoop_id\nCLIENT_SECRET=whoop_secret\n"
            "STRAVA_ACCESS_TOKEN=ignored\nMAX_RETRIES=5\n"
        )

        settings = Settings(_env_file=env_file)

        assert settings.strava_client_id == "123"
        assert settings.whoop_client_id == "whoop_id"
        assert settings.whoop_client_secret == "whoop_secret"
        assert settings.max_retries == 5

    def test_provider_configs(self, settings):
        configs = settings.provider_configs()

        assert set(configs) == {Provider.STRAVA, Provider.WHOOP, Provider.GOOGLE}
        assert configs[Provider.WHOOP].base_url == "https://api.prod.whoop.com/developer/v1"
        assert configs[Provider.WHOOP].token_endpoint == "https://api.prod.whoop.com/oauth/oauth2/token"
        assert configs[Provider.STRAVA].client_secret == "strava_secret"
        assert configs[Provider.STRAVA].rotates_refresh_token
        assert not configs[Provider.GOOGLE].rotates_refresh_token

    def test_whoop_hostname_override(self):
        settings = Settings(_env_file=None, whoop_api_hostname="https://api.example.test/")

        assert settings.provider_configs()[Provider.WHOOP].base_url == "https://api.example.test/developer/v1"

    def test_retry_policy(self):
        settings = Settings(_env_file=None, max_retries=1, backoff_seconds=0.5, request_timeout_seconds=3)

        policy = settings.retry_policy()

        assert policy.max_retries == 1
        assert policy.get_delay(0) == 0.5
        assert policy.timeout_seconds == 3
