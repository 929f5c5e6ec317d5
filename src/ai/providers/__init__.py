"""AI provider integrations."""

from src.ai.providers.base import AIProvider, AIProviderError
from src.ai.providers.factory import get_ai_provider, reset_ai_provider_cache
from src.ai.providers.mock_provider import MockAIProvider
from src.ai.providers.openai_provider import OpenAIProvider, classify_openai_error

__all__ = [
    "AIProvider",
    "AIProviderError",
    "MockAIProvider",
    "OpenAIProvider",
    "classify_openai_error",
    "get_ai_provider",
    "reset_ai_provider_cache",
]
