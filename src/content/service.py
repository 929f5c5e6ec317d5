"""Content item persistence: save generated drafts, publish and discard side effects."""

from __future__ import annotations

from datetime import datetime
import json
from typing import Any, List, Optional, Sequence

from sqlalchemy import desc, select, update
from sqlalchemy.orm import Session

from src.ai.generation import GeneratedContent
from src.core.clock import utc_now
from src.core.config import get_settings
from src.core.errors import ValidationFailure
from src.core.logger import get_logger
from src.core.metrics import record_content_items_saved
from src.core.runtime import RuntimeConfig, load_runtime_config
from src.storage.models import ContentItem


logger = get_logger("chefsocial.content")


def _json_dump(payload: Any) -> str:
    return json.dumps(payload, separators=(",", ":"), ensure_ascii=False)


def item_tags(item: ContentItem) -> List[str]:
    try:
        loaded = json.loads(item.tags_json or "[]")
    except ValueError:
        return []
    if not isinstance(loaded, list):
        return []
    return [str(tag) for tag in loaded if str(tag).strip()]


def content_url(item_id: str) -> str:
    base_url = get_settings().app_public_base_url.rstrip("/")
    return f"{base_url}/content/{item_id}"


def save_generated_content(
    session: Session,
    *,
    user_id: str,
    content: GeneratedContent,
    transcript: str,
    media_url: Optional[str] = None,
    now: Optional[datetime] = None,
) -> List[ContentItem]:
    """Persist one ContentItem per draft, in draft order."""

    created_at = now or utc_now()
    items: List[ContentItem] = []
    for draft in content.drafts:
        if not draft.caption.strip() or not draft.tags:
            # Drafts reaching this point come from validation or the canonical fallback.
            raise ValidationFailure("content_item_incomplete", platform=draft.platform)
        item = ContentItem(
            user_id=user_id,
            platform=draft.platform,
            content_type=draft.content_type,
            caption=draft.caption,
            tags_json=_json_dump(list(draft.tags)),
            media_url=media_url,
            transcript=transcript,
            virality_score=content.virality_score,
            best_time=content.best_time,
            language=content.language,
            created_at=created_at,
        )
        session.add(item)
        items.append(item)

    session.commit()
    for item in items:
        record_content_items_saved(platform=item.platform)
    logger.info(
        "content_items_saved",
        user_id=user_id,
        item_ids=[item.id for item in items],
        platforms=[item.platform for item in items],
    )
    return items


def get_content_item(session: Session, item_id: str) -> Optional[ContentItem]:
    return session.get(ContentItem, item_id)


def list_content_items(session: Session, item_ids: Sequence[str]) -> List[ContentItem]:
    if not item_ids:
        return []
    rows = session.scalars(select(ContentItem).where(ContentItem.id.in_(list(item_ids)))).all()
    by_id = {row.id: row for row in rows}
    return [by_id[item_id] for item_id in item_ids if item_id in by_id]


def list_recent_content(session: Session, *, user_id: str, limit: int = 10) -> List[ContentItem]:
    statement = (
        select(ContentItem)
        .where(ContentItem.user_id == user_id)
        .order_by(desc(ContentItem.created_at))
        .limit(max(1, limit))
    )
    return list(session.scalars(statement).all())


def select_primary_item(items: Sequence[ContentItem], runtime: Optional[RuntimeConfig] = None) -> ContentItem:
    """Pick the item an approval workflow reviews: best-ranked platform, then creation order."""

    if not items:
        raise ValueError("select_primary_item requires at least one item")
    config = runtime or load_runtime_config()
    ranked = sorted(enumerate(items), key=lambda pair: (config.rank(pair[1].platform), pair[0]))
    return ranked[0][1]


def order_item_ids(items: Sequence[ContentItem], runtime: Optional[RuntimeConfig] = None) -> List[str]:
    """Item ids with the primary item first, the rest in creation order."""

    primary = select_primary_item(items, runtime)
    return [primary.id] + [item.id for item in items if item.id != primary.id]


def publish_content(
    session: Session,
    item_ids: Sequence[str],
    *,
    now: Optional[datetime] = None,
    commit: bool = True,
) -> int:
    """Mark items published. Items already published or discarded are left untouched.

    With ``commit=False`` the update is only staged, for callers that commit it
    together with a workflow transition.
    """

    if not item_ids:
        return 0
    published_at = now or utc_now()
    result = session.execute(
        update(ContentItem)
        .where(
            ContentItem.id.in_(list(item_ids)),
            ContentItem.published_at.is_(None),
            ContentItem.discarded_at.is_(None),
        )
        .values(published_at=published_at)
    )
    if commit:
        session.commit()
    logger.info("content_published", item_ids=list(item_ids), updated=result.rowcount)
    return int(result.rowcount or 0)


def discard_content(
    session: Session,
    item_ids: Sequence[str],
    *,
    now: Optional[datetime] = None,
    commit: bool = True,
) -> int:
    if not item_ids:
        return 0
    discarded_at = now or utc_now()
    result = session.execute(
        update(ContentItem)
        .where(
            ContentItem.id.in_(list(item_ids)),
            ContentItem.published_at.is_(None),
            ContentItem.discarded_at.is_(None),
        )
        .values(discarded_at=discarded_at)
    )
    if commit:
        session.commit()
    logger.info("content_discarded", item_ids=list(item_ids), updated=result.rowcount)
    return int(result.rowcount or 0)
