"""Outbound text rendering for previews, menus and account replies."""

from __future__ import annotations

from typing import Sequence

from src.core.config import get_settings
from src.core.i18n import translate
from src.storage.models import ContentItem, User
from src.workflows.states import short_workflow_id


CAPTION_PREVIEW_LIMIT = 280
TAG_SUMMARY_LIMIT = 6

_PLATFORM_LABELS = {
    "instagram": "INSTAGRAM",
    "short_video": "SHORT VIDEO",
    "feed_post": "FEED POST",
}


def _public_url() -> str:
    return get_settings().app_public_base_url.rstrip("/")


def truncate_text(value: str, *, limit: int) -> str:
    normalized = " ".join((value or "").split())
    if len(normalized) <= limit:
        return normalized
    return normalized[: limit - 3].rstrip() + "..."


def summarize_tags(tags: Sequence[str], *, limit: int = TAG_SUMMARY_LIMIT) -> str:
    shown = list(tags[:limit])
    summary = " ".join(shown)
    remaining = len(tags) - len(shown)
    if remaining > 0:
        summary = f"{summary} (+{remaining})"
    return summary


def render_approval_preview(
    *,
    workflow_id: str,
    item: ContentItem,
    tags: Sequence[str],
    language: str,
    extra_platforms: Sequence[str] = (),
) -> str:
    platform_label = _PLATFORM_LABELS.get(item.platform, item.platform.upper())
    if extra_platforms:
        others = ", ".join(_PLATFORM_LABELS.get(name, name.upper()) for name in extra_platforms)
        platform_label = f"{platform_label} (+ {others})"
    return translate(
        "approval.preview",
        language,
        platform=platform_label,
        caption=truncate_text(item.caption, limit=CAPTION_PREVIEW_LIMIT),
        tags=summarize_tags(tags),
        short_id=short_workflow_id(workflow_id),
    )


def render_suggestion_menu(*, user: User, ideas: Sequence[str], tip: str, language: str) -> str:
    numbered = "\n".join(f"{index}. {idea}" for index, idea in enumerate(ideas, start=1))
    return translate(
        "suggestions.menu",
        language,
        name=user.name or user.restaurant_name,
        restaurant=user.restaurant_name or user.name,
        ideas=numbered,
        count=len(ideas),
        tip=tip,
    )


def render_help(language: str) -> str:
    return translate("general.help", language, url=_public_url())


def render_account_status(*, user: User, pending: int, language: str) -> str:
    status_key = "status.active" if (user.status or "").lower() == "active" else "status.inactive"
    return translate(
        "general.status",
        language,
        restaurant=user.restaurant_name,
        plan=(user.plan_name or "").upper(),
        status=translate(status_key, language),
        pending=pending,
        url=_public_url(),
    )


def render_inactive_notice(*, status: str, language: str) -> str:
    return translate("workflow.inactive", language, status=translate(f"status.{status}", language))


def render_not_registered(language: str) -> str:
    return translate("general.not_registered", language, url=_public_url())


def render_custom_prompt(language: str) -> str:
    return translate("suggestions.custom", language, url=_public_url())
