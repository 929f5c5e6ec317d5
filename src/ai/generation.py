"""Content generation adapter: prompt, validation into per-platform drafts, canonical fallback."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
import json
import re
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

from src.ai.providers.base import AIProvider
from src.ai.providers.factory import get_ai_provider
from src.ai.results import StageResult, fallback, success
from src.core.errors import AdapterFailure, FAILURE_UNEXPECTED, ValidationFailure
from src.core.i18n import normalize_language
from src.core.logger import get_logger
from src.core.runtime import SUPPORTED_PLATFORMS


STAGE = "generation"

DEFAULT_VIRALITY_SCORE = 7
MIN_VIRALITY_SCORE = 1
MAX_VIRALITY_SCORE = 10

PLATFORM_CONTENT_TYPES = {
    "instagram": "post",
    "short_video": "video",
    "feed_post": "post",
}

# Keys older prompts and models still emit for the same platforms.
PLATFORM_ALIASES = {
    "tiktok": "short_video",
    "reels": "short_video",
    "facebook": "feed_post",
}

DEFAULT_BEST_TIMES = {
    "en": "7:00 PM (dinner time)",
    "fr": "19h00 (heure du dîner)",
}

DEFAULT_TAGS: Dict[str, Dict[str, Tuple[str, ...]]] = {
    "en": {
        "instagram": ("#chef", "#foodie", "#restaurant", "#delicious", "#instafood", "#freshfood", "#homemade", "#foodlover"),
        "short_video": ("#foodtok", "#chef", "#viral", "#fyp", "#cooking", "#restaurant", "#foodie"),
        "feed_post": ("#restaurant", "#localfood", "#chefspecial", "#foodie", "#dinner"),
    },
    "fr": {
        "instagram": ("#chef", "#restaurantfr", "#gastronomie", "#delicieux", "#nourriture", "#cuisinefrancaise"),
        "short_video": ("#foodtok", "#recette", "#chef", "#viral", "#fyp", "#cuisinefrancaise"),
        "feed_post": ("#restaurant", "#cuisinelocale", "#platdujour", "#gastronomie"),
    },
}

_FALLBACK_CAPTIONS = {
    "en": {
        "instagram": "✨ Fresh from our kitchen! {snippet} 🍽️ What's your favorite comfort food? Tell us below! 👇",
        "short_video": "When passion meets the plate 🔥 This is how we do it! 👨‍🍳",
        "feed_post": "🍽️ New from our kitchen: {snippet} Come taste it this week!",
    },
    "fr": {
        "instagram": "✨ Tout droit de notre cuisine ! {snippet} 🍽️ Quel est votre plat réconfortant préféré ? Dites-le-nous ! 👇",
        "short_video": "Quand la passion rencontre l'assiette 🔥 Voilà comment on fait ! 👨‍🍳",
        "feed_post": "🍽️ Nouveauté de notre cuisine : {snippet} Venez la goûter cette semaine !",
    },
}

_FALLBACK_SNIPPETS = {
    "en": "Delicious food created with passion!",
    "fr": "Des plats délicieux préparés avec passion !",
}

_LANGUAGE_INSTRUCTIONS = {
    "en": "Create content in English. Use natural English expressions and hashtags appropriate for English-speaking markets.",
    "fr": (
        "Créez le contenu en français. Utilisez des expressions françaises naturelles "
        "et des hashtags appropriés pour le marché francophone."
    ),
}

_PLATFORM_BRIEFS = {
    "instagram": "Engaging Instagram caption with emojis, storytelling, and call-to-action",
    "short_video": "Short, catchy caption for a short-form video with trending language",
    "feed_post": "Friendly feed post for the restaurant page, two or three sentences",
}

_TAG_SPLIT_PATTERN = re.compile(r"[\s,]+")
_TAG_CLEAN_PATTERN = re.compile(r"[^\w]", re.UNICODE)
_SCORE_PATTERN = re.compile(r"-?\d+(?:\.\d+)?")

logger = get_logger("chefsocial.ai.generation")


@dataclass(frozen=True)
class PlatformDraft:
    platform: str
    caption: str
    tags: Tuple[str, ...]

    @property
    def content_type(self) -> str:
        return PLATFORM_CONTENT_TYPES.get(self.platform, "post")

    def to_dict(self) -> Dict[str, Any]:
        return {
            "caption": self.caption,
            "tags": list(self.tags),
            "content_type": self.content_type,
        }


@dataclass(frozen=True)
class GeneratedContent:
    drafts: Tuple[PlatformDraft, ...]
    virality_score: int = DEFAULT_VIRALITY_SCORE
    best_time: str = DEFAULT_BEST_TIMES["en"]
    language: str = "en"
    metadata: Dict[str, Any] = field(default_factory=dict)

    @property
    def platforms(self) -> List[str]:
        return [draft.platform for draft in self.drafts]

    def draft_for(self, platform: str) -> Optional[PlatformDraft]:
        for draft in self.drafts:
            if draft.platform == platform:
                return draft
        return None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "platforms": {draft.platform: draft.to_dict() for draft in self.drafts},
            "virality_score": self.virality_score,
            "best_time": self.best_time,
        }


def normalize_platforms(platforms: Optional[Iterable[str]], *, default: Sequence[str]) -> List[str]:
    normalized: List[str] = []
    for raw in platforms or ():
        name = str(raw or "").strip().lower()
        name = PLATFORM_ALIASES.get(name, name)
        if name in SUPPORTED_PLATFORMS and name not in normalized:
            normalized.append(name)
    return normalized or list(default)


def normalize_tags(value: Any) -> List[str]:
    """Accept ``"#a #b"``, ``"a, b"`` or a list and return unique ``#tag`` strings."""

    if value is None:
        return []
    if isinstance(value, str):
        raw_items: List[Any] = _TAG_SPLIT_PATTERN.split(value)
    elif isinstance(value, (list, tuple)):
        raw_items = []
        for item in value:
            raw_items.extend(_TAG_SPLIT_PATTERN.split(str(item or "")))
    else:
        return []

    tags: List[str] = []
    seen: set[str] = set()
    for item in raw_items:
        cleaned = _TAG_CLEAN_PATTERN.sub("", str(item))
        if not cleaned:
            continue
        key = cleaned.lower()
        if key in seen:
            continue
        seen.add(key)
        tags.append(f"#{cleaned}")
    return tags


def parse_virality_score(value: Any) -> int:
    if isinstance(value, bool):
        return DEFAULT_VIRALITY_SCORE
    if isinstance(value, (int, float)):
        number = float(value)
    else:
        match = _SCORE_PATTERN.search(str(value or ""))
        if match is None:
            return DEFAULT_VIRALITY_SCORE
        number = float(match.group(0))
    return max(MIN_VIRALITY_SCORE, min(MAX_VIRALITY_SCORE, int(round(number))))


def default_tags(platform: str, language: str) -> List[str]:
    catalog = DEFAULT_TAGS[normalize_language(language)]
    return list(catalog.get(platform, catalog["instagram"]))


def default_best_time(language: str) -> str:
    return DEFAULT_BEST_TIMES[normalize_language(language)]


def canonical_fallback(transcript: str, *, language: str, platforms: Sequence[str]) -> GeneratedContent:
    """Generic on-brand drafts seeded with the first 100 characters of the transcript."""

    language = normalize_language(language)
    cleaned = (transcript or "").strip()
    snippet = f"{cleaned[:100]}..." if len(cleaned) > 10 else _FALLBACK_SNIPPETS[language]
    captions = _FALLBACK_CAPTIONS[language]
    drafts = tuple(
        PlatformDraft(
            platform=platform,
            caption=captions.get(platform, captions["instagram"]).format(snippet=snippet),
            tags=tuple(default_tags(platform, language)),
        )
        for platform in platforms
    )
    return GeneratedContent(
        drafts=drafts,
        virality_score=DEFAULT_VIRALITY_SCORE,
        best_time=default_best_time(language),
        language=language,
        metadata={"fallback": True},
    )


def _platform_sections(payload: Dict[str, Any]) -> Dict[str, Any]:
    sections: Dict[str, Any] = {}
    nested = payload.get("platforms")
    sources = [payload]
    if isinstance(nested, dict):
        sources.insert(0, nested)
    for source in sources:
        for key, value in source.items():
            name = PLATFORM_ALIASES.get(str(key).strip().lower(), str(key).strip().lower())
            if name in SUPPORTED_PLATFORMS and name not in sections:
                sections[name] = value
    return sections


def validate_generation_payload(
    payload: Any,
    *,
    platforms: Sequence[str],
    language: str,
) -> GeneratedContent:
    """Validate loosely typed model output into drafts; raises ValidationFailure when unusable."""

    language = normalize_language(language)
    if not isinstance(payload, dict):
        raise ValidationFailure("generation_payload_not_object")

    sections = _platform_sections(payload)
    drafts: List[PlatformDraft] = []
    filled_tags: List[str] = []
    for platform in platforms:
        section = sections.get(platform)
        if not isinstance(section, dict):
            raise ValidationFailure("generation_platform_missing", platform=platform)
        caption = str(section.get("caption") or "").strip()
        if not caption:
            raise ValidationFailure("generation_caption_missing", platform=platform)
        tags = normalize_tags(section.get("hashtags", section.get("tags")))
        if not tags:
            tags = default_tags(platform, language)
            filled_tags.append(platform)
        drafts.append(PlatformDraft(platform=platform, caption=caption, tags=tuple(tags)))

    best_time = str(payload.get("bestTime") or payload.get("best_time") or "").strip() or default_best_time(language)
    virality = payload.get("viralPotential", payload.get("virality_score"))
    return GeneratedContent(
        drafts=tuple(drafts),
        virality_score=parse_virality_score(virality),
        best_time=best_time,
        language=language,
        metadata={"default_tags": filled_tags} if filled_tags else {},
    )


def build_generation_prompt(
    *,
    transcript: str,
    description: str,
    language: str,
    platforms: Sequence[str],
    edit_instructions: Optional[str] = None,
    previous_caption: Optional[str] = None,
) -> str:
    language = normalize_language(language)
    template: Dict[str, Any] = {
        platform: {"caption": _PLATFORM_BRIEFS[platform], "hashtags": " ".join(default_tags(platform, language))}
        for platform in platforms
    }
    template["viralPotential"] = "8"
    template["bestTime"] = default_best_time(language)

    lines = [
        "Create viral social media content for a restaurant/chef based on:",
        "",
        f'CHEF DESCRIPTION: "{transcript}"',
        f'IMAGE ANALYSIS: "{description}"',
        f"LANGUAGE: {language.upper()}",
        f"PLATFORMS: {', '.join(platforms)}",
        "",
        _LANGUAGE_INSTRUCTIONS[language],
    ]
    if edit_instructions:
        lines.extend(
            [
                "",
                f'PREVIOUS CAPTION: "{previous_caption or ""}"',
                f'REQUESTED CHANGES: "{edit_instructions}"',
                "Rewrite the content applying the requested changes.",
            ]
        )
    lines.extend(
        [
            "",
            "Generate content in this exact JSON format:",
            json.dumps(template, ensure_ascii=False, indent=2),
            "",
            "Make it authentic, engaging, and platform-optimized. "
            "Use emojis, trending language, and focus on the sensory experience of the food.",
        ]
    )
    return "\n".join(lines)


async def generate_content(
    *,
    transcript: str,
    description: str,
    language: str,
    platforms: Sequence[str],
    timeout_seconds: float,
    provider: Optional[AIProvider] = None,
    edit_instructions: Optional[str] = None,
    previous_caption: Optional[str] = None,
) -> StageResult[GeneratedContent]:
    """Generate drafts for every platform; any failure yields the canonical fallback draft."""

    language = normalize_language(language)
    platforms = list(platforms)

    def _fallback(reason: str) -> StageResult[GeneratedContent]:
        return fallback(STAGE, canonical_fallback(transcript, language=language, platforms=platforms), reason)

    if timeout_seconds <= 0:
        logger.warning("generation_skipped_deadline_exhausted")
        return _fallback("deadline_exhausted")

    prompt = build_generation_prompt(
        transcript=transcript,
        description=description,
        language=language,
        platforms=platforms,
        edit_instructions=edit_instructions,
        previous_caption=previous_caption,
    )
    active_provider = provider or get_ai_provider()
    try:
        raw = await asyncio.wait_for(
            active_provider.generate_json(prompt=prompt, timeout_seconds=timeout_seconds),
            timeout=timeout_seconds,
        )
    except asyncio.TimeoutError:
        logger.warning("generation_timed_out", timeout_seconds=timeout_seconds)
        return _fallback("timeout")
    except AdapterFailure as exc:
        logger.warning(
            "generation_failed",
            provider=active_provider.provider_name,
            category=exc.category,
            error=str(exc),
        )
        return _fallback(exc.category)
    except Exception as exc:
        logger.error(
            "generation_unexpected_error",
            provider=active_provider.provider_name,
            error_type=type(exc).__name__,
            error=str(exc),
        )
        return _fallback(FAILURE_UNEXPECTED)

    try:
        payload = json.loads(raw or "")
    except ValueError:
        logger.warning("generation_invalid_json", preview=(raw or "")[:120])
        return _fallback("invalid_json")

    try:
        content = validate_generation_payload(payload, platforms=platforms, language=language)
    except ValidationFailure as exc:
        logger.warning("generation_validation_failed", error=str(exc), platform=exc.platform)
        return _fallback("validation_failed")
    return success(STAGE, content)

