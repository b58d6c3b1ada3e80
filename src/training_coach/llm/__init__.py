"""LLM integration for the training coach."""

from .prompts import COACH_SYSTEM_PROMPT, build_training_prompt
from .providers import LLMClient, RetryConfig

__all__ = [
    "COACH_SYSTEM_PROMPT",
    "build_training_prompt",
    "LLMClient",
    "RetryConfig",
]
