"""Test doubles shared across the suite."""

from __future__ import annotations

import asyncio
from datetime import datetime, timedelta, timezone
import json
from pathlib import Path
from typing import Any, Dict, List, Optional

from src.ai.providers.mock_provider import MockAIProvider


FIXED_NOW = datetime(2026, 3, 4, 18, 30, tzinfo=timezone.utc)


class FakeRedis:
    def __init__(self) -> None:
        self._store: Dict[str, str] = {}

    def set(self, key: str, value: str, nx: bool = False, ex: int | None = None):
        del ex
        if nx and key in self._store:
            return False
        self._store[key] = str(value)
        return True

    def get(self, key: str):
        return self._store.get(key)

    def eval(self, script: str, numkeys: int, key: str, token: str):
        del script, numkeys
        if self._store.get(key) == token:
            self._store.pop(key, None)
            return 1
        return 0


class FixedClock:
    def __init__(self, now: datetime = FIXED_NOW) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


class FakeProvider:
    """Scriptable AI provider. Generation defaults to the deterministic mock output."""

    provider_name = "fake"

    def __init__(
        self,
        *,
        transcript: str = "Tonight we are serving fettuccine with truffle cream",
        description: str = "Fresh pasta in a glossy cream sauce topped with shaved truffle",
        generation: Any = None,
        transcribe_error: Optional[BaseException] = None,
        vision_error: Optional[BaseException] = None,
        generation_error: Optional[BaseException] = None,
        transcribe_delay: float = 0.0,
        vision_delay: float = 0.0,
        generation_delay: float = 0.0,
    ) -> None:
        self.transcript = transcript
        self.description = description
        self.generation = generation
        self.transcribe_error = transcribe_error
        self.vision_error = vision_error
        self.generation_error = generation_error
        self.transcribe_delay = transcribe_delay
        self.vision_delay = vision_delay
        self.generation_delay = generation_delay
        self.prompts: List[str] = []
        self.image_urls: List[str] = []
        self.audio_suffixes: List[str] = []

    async def transcribe(self, *, audio_path: Path, language: str) -> str:
        del language
        self.audio_suffixes.append(audio_path.suffix)
        if self.transcribe_delay:
            await asyncio.sleep(self.transcribe_delay)
        if self.transcribe_error is not None:
            raise self.transcribe_error
        return self.transcript

    async def describe_image(self, *, image_url: str, language: str) -> str:
        del language
        self.image_urls.append(image_url)
        if self.vision_delay:
            await asyncio.sleep(self.vision_delay)
        if self.vision_error is not None:
            raise self.vision_error
        return self.description

    async def generate_json(self, *, prompt: str, timeout_seconds: float) -> str:
        self.prompts.append(prompt)
        if self.generation_delay:
            await asyncio.sleep(self.generation_delay)
        if self.generation_error is not None:
            raise self.generation_error
        if self.generation is None:
            return await MockAIProvider().generate_json(prompt=prompt, timeout_seconds=timeout_seconds)
        if isinstance(self.generation, str):
            return self.generation
        return json.dumps(self.generation, ensure_ascii=False)
