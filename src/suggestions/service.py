"""Daily content idea menu ranked from restaurant profile, weekday and recent performance."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, List, Optional, Sequence, Tuple

from src.core.i18n import normalize_language
from src.storage.models import ContentItem, User


RECENT_THEME_PENALTY = 3.0
BEST_PLATFORM_BOOST = 2.0
DAY_IDEA_POSITION = 2


@dataclass(frozen=True)
class IdeaTemplate:
    theme: str
    text: Dict[str, str]
    platform: str
    keywords: Tuple[str, ...] = ()

    def render(self, *, language: str, restaurant: str, cuisine: str) -> str:
        return self.text[language].format(restaurant=restaurant, cuisine=cuisine)


@dataclass(frozen=True)
class SuggestionSet:
    ideas: List[str]
    themes: List[str]
    tip: str
    language: str
    best_platform: Optional[str] = None
    penalized_themes: List[str] = field(default_factory=list)


IDEA_TEMPLATES: Tuple[IdeaTemplate, ...] = (
    IdeaTemplate(
        theme="behind_the_scenes",
        text={
            "en": "Behind-the-scenes of preparing {cuisine} at {restaurant}",
            "fr": "Coulisses de la préparation de {cuisine} chez {restaurant}",
        },
        platform="short_video",
        keywords=("behind-the-scenes", "behind the scenes", "coulisses"),
    ),
    IdeaTemplate(
        theme="customer_favorite",
        text={
            "en": "Customer favorite dish showcase with story",
            "fr": "Présentation du plat préféré des clients avec histoire",
        },
        platform="instagram",
        keywords=("favorite", "favourite", "préféré"),
    ),
    IdeaTemplate(
        theme="chef_special",
        text={
            "en": "Chef's special for today with ingredients highlight",
            "fr": "Spécial du chef d'aujourd'hui avec mise en valeur des ingrédients",
        },
        platform="instagram",
        keywords=("special", "spécial", "ingredient", "ingrédient"),
    ),
    IdeaTemplate(
        theme="weekly_specials",
        text={
            "en": "Weekly specials announcement with appetizing visuals",
            "fr": "Annonce des spéciaux de la semaine avec visuels appétissants",
        },
        platform="feed_post",
        keywords=("this week", "weekly", "cette semaine"),
    ),
    IdeaTemplate(
        theme="team_spotlight",
        text={
            "en": "Staff spotlight or kitchen team moment",
            "fr": "Coup de projecteur sur l'équipe ou moment en cuisine",
        },
        platform="short_video",
        keywords=("team", "staff", "équipe"),
    ),
    IdeaTemplate(
        theme="seasonal_ingredient",
        text={
            "en": "Seasonal ingredient story: where it comes from and how {restaurant} uses it",
            "fr": "Histoire d'un ingrédient de saison : son origine et comment {restaurant} l'utilise",
        },
        platform="instagram",
        keywords=("season", "saison"),
    ),
    IdeaTemplate(
        theme="recipe_tip",
        text={
            "en": "Quick {cuisine} cooking tip from the chef",
            "fr": "Astuce de cuisine {cuisine} rapide du chef",
        },
        platform="short_video",
        keywords=("tip", "astuce", "recipe", "recette"),
    ),
    IdeaTemplate(
        theme="customer_question",
        text={
            "en": "Ask your followers to vote on next week's dish",
            "fr": "Demandez à vos abonnés de voter pour le plat de la semaine prochaine",
        },
        platform="feed_post",
        keywords=("vote", "poll", "sondage"),
    ),
)

DAY_SPECIFIC_IDEAS: Dict[str, Tuple[str, ...]] = {
    # Indexed by datetime.weekday(): Monday is 0.
    "en": (
        "Monday motivation meal or fresh start",
        "Tuesday taste test or new recipe",
        "Hump day comfort food special",
        "Thursday throwback dish or classic",
        "Friday celebration or weekend prep",
        "Saturday signature dish or busy kitchen",
        "Sunday brunch special or family dining",
    ),
    "fr": (
        "Repas motivant du lundi ou nouveau départ",
        "Test de goût du mardi ou nouvelle recette",
        "Spécial réconfort du mercredi",
        "Plat nostalgie du jeudi ou classique",
        "Célébration du vendredi ou préparation du weekend",
        "Plat signature du samedi ou cuisine occupée",
        "Spécial brunch du dimanche ou repas familial",
    ),
}

DAILY_TIPS: Dict[str, Tuple[str, ...]] = {
    "en": (
        "Post when your customers are most active (6-8 PM typically works best)",
        "Use local hashtags to reach customers in your area",
        "Show the cooking process - people love behind-the-scenes content",
        "Ask questions in your captions to boost engagement",
        "Share customer testimonials and reviews",
        "Highlight seasonal ingredients and specials",
        "Use trending audio on videos for better reach",
    ),
    "fr": (
        "Publiez quand vos clients sont les plus actifs (18h-20h fonctionne généralement bien)",
        "Utilisez des hashtags locaux pour atteindre les clients de votre région",
        "Montrez le processus de cuisson - les gens adorent le contenu des coulisses",
        "Posez des questions dans vos légendes pour stimuler l'engagement",
        "Partagez les témoignages et avis des clients",
        "Mettez en valeur les ingrédients de saison et les spéciaux",
        "Utilisez des audios tendance sur les vidéos pour une meilleure portée",
    ),
}

_DEFAULT_CUISINE = {"en": "your signature dishes", "fr": "vos plats signature"}
_DEFAULT_RESTAURANT = {"en": "your restaurant", "fr": "votre restaurant"}


def daily_tip(now: datetime, language: str) -> str:
    tips = DAILY_TIPS[normalize_language(language)]
    return tips[now.timetuple().tm_yday % len(tips)]


def day_specific_idea(now: datetime, language: str) -> str:
    return DAY_SPECIFIC_IDEAS[normalize_language(language)][now.weekday()]


def best_recent_platform(recent_items: Sequence[ContentItem]) -> Optional[str]:
    """Platform with the highest average virality among recent items."""

    totals: Dict[str, List[int]] = {}
    for item in recent_items:
        totals.setdefault(item.platform, []).append(int(item.virality_score or 0))
    if not totals:
        return None
    ranked = sorted(
        totals.items(),
        key=lambda pair: (-(sum(pair[1]) / len(pair[1])), -len(pair[1]), pair[0]),
    )
    return ranked[0][0]


def _recently_covered(template: IdeaTemplate, recent_captions: Sequence[str]) -> bool:
    return any(keyword in caption for caption in recent_captions for keyword in template.keywords)


def build_daily_suggestions(
    *,
    user: User,
    recent_items: Sequence[ContentItem],
    now: datetime,
    language: Optional[str] = None,
    count: int = 5,
) -> SuggestionSet:
    language = normalize_language(language or user.preferred_language)
    count = max(1, min(count, 5))
    restaurant = (user.restaurant_name or "").strip() or _DEFAULT_RESTAURANT[language]
    cuisine = (user.cuisine_type or "").strip() or _DEFAULT_CUISINE[language]

    recent_captions = [(item.caption or "").casefold() for item in recent_items]
    best_platform = best_recent_platform(recent_items)

    scored: List[Tuple[float, int, IdeaTemplate]] = []
    penalized: List[str] = []
    for index, template in enumerate(IDEA_TEMPLATES):
        score = float(len(IDEA_TEMPLATES) - index)
        if _recently_covered(template, recent_captions):
            score -= RECENT_THEME_PENALTY
            penalized.append(template.theme)
        if best_platform is not None and template.platform == best_platform:
            score += BEST_PLATFORM_BOOST
        scored.append((score, index, template))
    scored.sort(key=lambda entry: (-entry[0], entry[1]))

    chosen = [entry[2] for entry in scored[: count - 1]]
    ideas = [template.render(language=language, restaurant=restaurant, cuisine=cuisine) for template in chosen]
    themes = [template.theme for template in chosen]

    position = min(DAY_IDEA_POSITION, len(ideas))
    ideas.insert(position, day_specific_idea(now, language))
    themes.insert(position, "day_of_week")

    return SuggestionSet(
        ideas=ideas,
        themes=themes,
        tip=daily_tip(now, language),
        language=language,
        best_platform=best_platform,
        penalized_themes=penalized,
    )
