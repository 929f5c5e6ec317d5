"""Factory to resolve the active AI provider."""

from __future__ import annotations

from functools import lru_cache

from src.ai.providers.base import AIProvider
from src.ai.providers.mock_provider import MockAIProvider
from src.ai.providers.openai_provider import OpenAIProvider
from src.core.config import get_settings


@lru_cache(maxsize=1)
def get_ai_provider() -> AIProvider:
    settings = get_settings()
    provider = settings.ai_provider.strip().lower()
    if provider == "openai":
        return OpenAIProvider(
            api_key=settings.openai_api_key,
            transcription_model=settings.openai_transcription_model,
            vision_model=settings.openai_vision_model,
            generation_model=settings.openai_generation_model,
            base_url=settings.openai_base_url,
            timeout_seconds=settings.openai_request_timeout_seconds,
            vision_max_tokens=settings.vision_max_tokens,
            generation_max_tokens=settings.generation_max_tokens,
            generation_temperature=settings.generation_temperature,
        )
    return MockAIProvider()


def reset_ai_provider_cache() -> None:
    get_ai_provider.cache_clear()
