"""Optional image description adapter."""

from __future__ import annotations

from typing import Optional

from src.ai.providers.base import AIProvider
from src.ai.providers.factory import get_ai_provider
from src.ai.results import StageResult, fallback, success
from src.core.errors import AdapterFailure, FAILURE_UNEXPECTED
from src.core.i18n import normalize_language, translate
from src.core.logger import get_logger


STAGE = "vision"

logger = get_logger("chefsocial.ai.vision")


def default_description(language: str) -> str:
    return translate("vision.default", language)


def to_image_url(image: str) -> str:
    """Accept an http(s) URL, a data URL, or bare base64 (assumed JPEG)."""

    value = image.strip()
    if value.startswith(("http://", "https://", "data:")):
        return value
    return f"data:image/jpeg;base64,{value}"


async def describe_image(
    image: Optional[str],
    *,
    language: str,
    provider: Optional[AIProvider] = None,
) -> StageResult[str]:
    language = normalize_language(language)
    if not image or not image.strip():
        return fallback(STAGE, default_description(language), "image_absent")

    active_provider = provider or get_ai_provider()
    try:
        description = await active_provider.describe_image(image_url=to_image_url(image), language=language)
    except AdapterFailure as exc:
        logger.warning(
            "vision_failed",
            provider=active_provider.provider_name,
            category=exc.category,
            error=str(exc),
        )
        return fallback(STAGE, default_description(language), exc.category)
    except Exception as exc:
        logger.error(
            "vision_unexpected_error",
            provider=active_provider.provider_name,
            error_type=type(exc).__name__,
            error=str(exc),
        )
        return fallback(STAGE, default_description(language), FAILURE_UNEXPECTED)

    description = (description or "").strip()
    if not description:
        return fallback(STAGE, default_description(language), "empty_description")
    return success(STAGE, description)
