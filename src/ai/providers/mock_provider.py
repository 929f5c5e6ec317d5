"""Deterministic mock AI provider for local/dev usage."""

from __future__ import annotations

import hashlib
import json
import re
from pathlib import Path

from src.ai.providers.base import AIProvider


_DEMO_TRANSCRIPTS = {
    "en": "I'm describing this delicious dish",
    "fr": "Je décris ce délicieux plat",
}

_DEMO_DESCRIPTIONS = {
    "en": "A plated dish photographed in warm light with fresh garnish",
    "fr": "Un plat dressé photographié sous une lumière chaude avec une garniture fraîche",
}

_TRANSCRIPT_PATTERN = re.compile(r'CHEF DESCRIPTION: "(?P<transcript>.*?)"', re.DOTALL)
_PLATFORMS_PATTERN = re.compile(r"PLATFORMS: (?P<platforms>[a-z_, ]+)")
_LANGUAGE_PATTERN = re.compile(r"LANGUAGE: (?P<language>[A-Z]{2})")


class MockAIProvider(AIProvider):
    provider_name = "mock"

    async def transcribe(self, *, audio_path: Path, language: str) -> str:
        raw = audio_path.read_bytes()
        try:
            decoded = raw.decode("utf-8").strip()
        except UnicodeDecodeError:
            decoded = ""
        # Plain-text "audio" lets local demos drive the pipeline with readable input.
        if decoded and decoded.isprintable():
            return decoded
        return _DEMO_TRANSCRIPTS.get(language, _DEMO_TRANSCRIPTS["en"])

    async def describe_image(self, *, image_url: str, language: str) -> str:
        del image_url
        return _DEMO_DESCRIPTIONS.get(language, _DEMO_DESCRIPTIONS["en"])

    async def generate_json(self, *, prompt: str, timeout_seconds: float) -> str:
        del timeout_seconds
        transcript_match = _TRANSCRIPT_PATTERN.search(prompt)
        transcript = transcript_match.group("transcript").strip() if transcript_match else "our dish of the day"
        platforms_match = _PLATFORMS_PATTERN.search(prompt)
        platforms = (
            [name.strip() for name in platforms_match.group("platforms").split(",") if name.strip()]
            if platforms_match
            else ["instagram"]
        )
        language_match = _LANGUAGE_PATTERN.search(prompt)
        is_french = bool(language_match and language_match.group("language") == "FR")

        seed = hashlib.sha1(f"{transcript}:{','.join(platforms)}".encode("utf-8")).hexdigest()
        payload: dict[str, object] = {
            "viralPotential": str(5 + int(seed[:2], 16) % 5),
            "bestTime": "19h00 (heure du dîner)" if is_french else "7:00 PM (dinner time)",
        }
        for platform in platforms:
            caption = f"🍽️ {transcript[:120]}" + (" Venez goûter !" if is_french else " Come taste it!")
            payload[platform] = {
                "caption": caption,
                "hashtags": f"#chef #{platform.replace('_', '')} #demo{seed[:4]}",
            }
        return json.dumps(payload, ensure_ascii=False)
