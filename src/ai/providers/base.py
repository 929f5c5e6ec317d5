"""Provider contracts for speech, vision and text generation backends."""

from __future__ import annotations

from pathlib import Path
from typing import Protocol

from src.core.errors import AdapterFailure


class AIProviderError(AdapterFailure):
    """Raised when an AI provider cannot fulfill a request."""


class AIProvider(Protocol):
    provider_name: str

    async def transcribe(self, *, audio_path: Path, language: str) -> str:
        raise NotImplementedError

    async def describe_image(self, *, image_url: str, language: str) -> str:
        raise NotImplementedError

    async def generate_json(self, *, prompt: str, timeout_seconds: float) -> str:
        """Return the raw JSON document produced by the model."""

        raise NotImplementedError
