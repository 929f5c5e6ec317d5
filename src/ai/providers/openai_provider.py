"""OpenAI provider: Whisper transcription, GPT-4o vision and JSON generation."""

from __future__ import annotations

from pathlib import Path
from typing import Any, Optional

import openai
from openai import AsyncOpenAI

from src.ai.providers.base import AIProvider, AIProviderError
from src.core.errors import (
    FAILURE_AUTHORIZATION,
    FAILURE_RATE_LIMITED,
    FAILURE_TRANSIENT,
    FAILURE_UNEXPECTED,
)


_VISION_PROMPTS = {
    "en": (
        "Describe this food image in one or two sentences for a restaurant social media post. "
        "Focus on the dish, colors, textures and presentation."
    ),
    "fr": (
        "Décrivez cette image culinaire en une ou deux phrases pour une publication de restaurant "
        "sur les réseaux sociaux. Concentrez-vous sur le plat, les couleurs, les textures et la présentation."
    ),
}


def classify_openai_error(exc: BaseException) -> AIProviderError:
    """Map an OpenAI SDK exception onto the adapter failure categories."""

    if isinstance(exc, openai.RateLimitError):
        return AIProviderError("openai_rate_limited", category=FAILURE_RATE_LIMITED, status_code=429)
    if isinstance(exc, (openai.AuthenticationError, openai.PermissionDeniedError)):
        return AIProviderError(
            "openai_authorization_failed",
            category=FAILURE_AUTHORIZATION,
            status_code=getattr(exc, "status_code", None),
        )
    if isinstance(exc, (openai.APITimeoutError, openai.APIConnectionError)):
        return AIProviderError(f"openai_unreachable detail={exc}", category=FAILURE_TRANSIENT)
    if isinstance(exc, openai.APIStatusError):
        status_code = exc.status_code
        if status_code == 429:
            category = FAILURE_RATE_LIMITED
        elif status_code in {401, 403}:
            category = FAILURE_AUTHORIZATION
        elif status_code >= 500:
            category = FAILURE_TRANSIENT
        else:
            category = FAILURE_UNEXPECTED
        return AIProviderError(
            f"openai_request_failed status={status_code}",
            category=category,
            status_code=status_code,
        )
    return AIProviderError(f"openai_unexpected_error type={type(exc).__name__}", category=FAILURE_UNEXPECTED)


class OpenAIProvider(AIProvider):
    provider_name = "openai"

    def __init__(
        self,
        *,
        api_key: str,
        transcription_model: str = "whisper-1",
        vision_model: str = "gpt-4o",
        generation_model: str = "gpt-4o",
        base_url: str = "",
        timeout_seconds: int = 25,
        vision_max_tokens: int = 200,
        generation_max_tokens: int = 600,
        generation_temperature: float = 0.8,
        client: Optional[AsyncOpenAI] = None,
    ) -> None:
        self._api_key = api_key.strip()
        self._transcription_model = transcription_model
        self._vision_model = vision_model
        self._generation_model = generation_model
        self._vision_max_tokens = vision_max_tokens
        self._generation_max_tokens = generation_max_tokens
        self._generation_temperature = generation_temperature
        self._client = client
        self._client_kwargs: dict[str, Any] = {
            "timeout": float(max(1, timeout_seconds)),
            "max_retries": 1,
        }
        if base_url.strip():
            self._client_kwargs["base_url"] = base_url.strip()

    def _get_client(self) -> AsyncOpenAI:
        if self._client is not None:
            return self._client
        if not self._api_key:
            raise AIProviderError("openai_api_key_missing", category=FAILURE_AUTHORIZATION)
        self._client = AsyncOpenAI(api_key=self._api_key, **self._client_kwargs)
        return self._client

    async def transcribe(self, *, audio_path: Path, language: str) -> str:
        client = self._get_client()
        try:
            with audio_path.open("rb") as audio_file:
                response = await client.audio.transcriptions.create(
                    model=self._transcription_model,
                    file=audio_file,
                    language=language,
                    response_format="text",
                )
        except openai.OpenAIError as exc:
            raise classify_openai_error(exc) from exc

        # response_format="text" yields a plain string; other formats expose `.text`.
        if isinstance(response, str):
            return response.strip()
        return str(getattr(response, "text", "") or "").strip()

    async def describe_image(self, *, image_url: str, language: str) -> str:
        client = self._get_client()
        prompt = _VISION_PROMPTS.get(language, _VISION_PROMPTS["en"])
        try:
            response = await client.chat.completions.create(
                model=self._vision_model,
                messages=[
                    {
                        "role": "user",
                        "content": [
                            {"type": "text", "text": prompt},
                            {"type": "image_url", "image_url": {"url": image_url, "detail": "low"}},
                        ],
                    }
                ],
                max_tokens=self._vision_max_tokens,
            )
        except openai.OpenAIError as exc:
            raise classify_openai_error(exc) from exc

        if not response.choices:
            return ""
        return str(response.choices[0].message.content or "").strip()

    async def generate_json(self, *, prompt: str, timeout_seconds: float) -> str:
        client = self._get_client()
        try:
            response = await client.chat.completions.create(
                model=self._generation_model,
                messages=[{"role": "user", "content": prompt}],
                response_format={"type": "json_object"},
                max_tokens=self._generation_max_tokens,
                temperature=self._generation_temperature,
                timeout=max(timeout_seconds, 1.0),
            )
        except openai.OpenAIError as exc:
            raise classify_openai_error(exc) from exc

        if not response.choices:
            return ""
        return str(response.choices[0].message.content or "")
