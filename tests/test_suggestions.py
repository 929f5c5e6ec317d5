from __future__ import annotations

from types import SimpleNamespace

import pytest

from src.storage.models import ContentItem
from src.suggestions.service import (
    best_recent_platform,
    build_daily_suggestions,
    daily_tip,
    day_specific_idea,
)

from tests.helpers import FIXED_NOW


def _user(language: str = "en", **overrides):
    values = {
        "restaurant_name": "Trattoria Lume",
        "cuisine_type": "handmade pasta",
        "preferred_language": language,
    }
    values.update(overrides)
    return SimpleNamespace(**values)


def _item(platform: str, caption: str = "Fresh pasta tonight", virality: int = 7) -> ContentItem:
    return ContentItem(platform=platform, caption=caption, virality_score=virality)


def test_default_menu_places_weekday_idea_third() -> None:
    suggestions = build_daily_suggestions(user=_user(), recent_items=[], now=FIXED_NOW)

    assert len(suggestions.ideas) == 5
    assert suggestions.ideas[0] == "Behind-the-scenes of preparing handmade pasta at Trattoria Lume"
    assert suggestions.ideas[2] == "Hump day comfort food special"
    assert suggestions.themes == [
        "behind_the_scenes",
        "customer_favorite",
        "day_of_week",
        "chef_special",
        "weekly_specials",
    ]
    assert suggestions.best_platform is None
    assert suggestions.tip == daily_tip(FIXED_NOW, "en")


def test_recently_covered_theme_is_penalized() -> None:
    recent = [_item("instagram", caption="Behind the scenes of our pasta lab")]

    suggestions = build_daily_suggestions(user=_user(), recent_items=recent, now=FIXED_NOW)

    assert "behind_the_scenes" in suggestions.penalized_themes
    assert suggestions.themes[:2] == ["customer_favorite", "chef_special"]
    assert suggestions.themes[2] == "day_of_week"


def test_best_recent_platform_boosts_matching_ideas() -> None:
    recent = [_item("feed_post", virality=9), _item("instagram", virality=4)]

    suggestions = build_daily_suggestions(user=_user(), recent_items=recent, now=FIXED_NOW)

    assert suggestions.best_platform == "feed_post"
    assert suggestions.penalized_themes == []
    assert suggestions.themes == [
        "behind_the_scenes",
        "customer_favorite",
        "day_of_week",
        "weekly_specials",
        "chef_special",
    ]


def test_best_recent_platform_breaks_ties_by_volume() -> None:
    recent = [_item("instagram", virality=8), _item("short_video", virality=8), _item("short_video", virality=8)]

    assert best_recent_platform(recent) == "short_video"
    assert best_recent_platform([]) is None


@pytest.mark.parametrize(("count", "expected"), [(1, 1), (3, 3), (9, 5), (0, 1)])
def test_menu_size_is_clamped(count: int, expected: int) -> None:
    suggestions = build_daily_suggestions(user=_user(), recent_items=[], now=FIXED_NOW, count=count)

    assert len(suggestions.ideas) == expected
    assert day_specific_idea(FIXED_NOW, "en") in suggestions.ideas


def test_french_profile_without_details_uses_defaults() -> None:
    user = _user("fr", restaurant_name="", cuisine_type=None)

    suggestions = build_daily_suggestions(user=user, recent_items=[], now=FIXED_NOW)

    assert suggestions.language == "fr"
    assert suggestions.ideas[0] == "Coulisses de la préparation de vos plats signature chez votre restaurant"
    assert suggestions.ideas[2] == "Spécial réconfort du mercredi"
    assert suggestions.tip == daily_tip(FIXED_NOW, "fr")


def test_explicit_language_overrides_profile() -> None:
    suggestions = build_daily_suggestions(user=_user("fr"), recent_items=[], now=FIXED_NOW, language="en")

    assert suggestions.language == "en"
    assert suggestions.ideas[2] == "Hump day comfort food special"
