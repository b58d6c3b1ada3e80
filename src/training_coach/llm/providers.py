"""
OpenAI chat client used for the daily recommendation.

Rate limits, dropped connections and retryable API statuses are retried
with exponential backoff. Anything else surfaces as an ``LLMError``
subclass so the CLI can report it without a traceback.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Callable, FrozenSet, Optional, Tuple

from openai import APIConnectionError, APIError, AsyncOpenAI, RateLimitError

from ..config import get_settings
from ..exceptions import (
    LLMError,
    LLMRateLimitError,
    LLMResponseInvalidError,
    LLMServiceUnavailableError,
    LLMTimeoutError,
)


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RetryConfig:
    """Backoff for completion requests."""
    max_retries: int = 3
    base_delay: float = 1.0
    max_delay: float = 30.0
    exponential_base: float = 2.0
    retryable_status_codes: FrozenSet[int] = field(
        default_factory=lambda: frozenset({429, 500, 502, 503, 504})
    )

    def get_delay(self, attempt: int) -> float:
        return min(self.base_delay * (self.exponential_base ** attempt), self.max_delay)


def _classify(error: Exception, config: RetryConfig) -> Tuple[bool, Callable[[], LLMError]]:
    """Return whether ``error`` is worth retrying and the error to raise if not."""
    if isinstance(error, RateLimitError):
        return True, LLMRateLimitError
    if isinstance(error, APIConnectionError):
        return True, lambda: LLMServiceUnavailableError(f"Connection to OpenAI failed: {error}")
    status = getattr(error, "status_code", None) or 500
    if status in config.retryable_status_codes:
        return True, lambda: LLMServiceUnavailableError(
            f"OpenAI error after retries: {error}", details={"status_code": status}
        )
    return False, lambda: LLMError(f"OpenAI error: {error}", details={"status_code": status})


class LLMClient:
    """
    Thin async wrapper over ``AsyncOpenAI`` chat completions.

    Usage:
        llm = LLMClient()
        text = await llm.completion(system=COACH_SYSTEM_PROMPT, user=prompt)
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: Optional[str] = None,
        retry_config: Optional[RetryConfig] = None,
        client: Optional[AsyncOpenAI] = None,
    ) -> None:
        """
        Args:
            api_key: OpenAI API key (defaults to OPENAI_API_KEY)
            model: Chat model (defaults to LLM_MODEL)
            retry_config: Backoff for failed requests
            client: Preconfigured client, mainly for tests
        """
        settings = get_settings()
        if client is None:
            api_key = api_key or settings.openai_api_key
            if not api_key:
                raise LLMServiceUnavailableError(
                    "OPENAI_API_KEY not configured",
                    details={"configuration_missing": "openai_api_key"},
                )
            client = AsyncOpenAI(api_key=api_key)
        self.client = client
        self.model = model or settings.llm_model
        self.retry_config = retry_config or RetryConfig()

    async def completion(
        self,
        system: str,
        user: str,
        max_tokens: int = 1000,
        temperature: Optional[float] = None,
        timeout: float = 60.0,
    ) -> str:
        """
        Send one system + user exchange and return the reply text.

        Raises:
            LLMError: When the request fails for good
        """
        if temperature is None:
            temperature = get_settings().llm_temperature
        messages = [
            {"role": "system", "content": system},
            {"role": "user", "content": user},
        ]

        attempt = 0
        while True:
            try:
                response = await asyncio.wait_for(
                    self.client.chat.completions.create(
                        model=self.model,
                        messages=messages,
                        max_tokens=max_tokens,
                        temperature=temperature,
                    ),
                    timeout=timeout,
                )
            except asyncio.TimeoutError:
                raise LLMTimeoutError(timeout)
            except APIError as e:
                retryable, error = _classify(e, self.retry_config)
                if not retryable or attempt >= self.retry_config.max_retries:
                    raise error() from e
                delay = self.retry_config.get_delay(attempt)
                attempt += 1
                logger.warning(
                    f"{self.model} completion failed ({type(e).__name__}). "
                    f"Retry {attempt}/{self.retry_config.max_retries} in {delay:.1f}s"
                )
                await asyncio.sleep(delay)
                continue

            content = response.choices[0].message.content
            if content is None:
                raise LLMResponseInvalidError("Empty response from LLM")
            return content
