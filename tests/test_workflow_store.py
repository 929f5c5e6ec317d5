from __future__ import annotations

import pytest
from sqlalchemy import select

from src.ai.generation import canonical_fallback
from src.content.service import publish_content, save_generated_content
from src.storage.models import ContentItem, WorkflowItemClaim
from src.workflows.states import approval_active_key
from src.workflows.store import ActiveWorkflowExists, WorkflowStore


def _items(session, user, clock, platforms=("instagram", "short_video")):
    content = canonical_fallback("Fettuccine with truffle cream tonight", language="en", platforms=list(platforms))
    return save_generated_content(session, user_id=user.id, content=content, transcript="Fettuccine", now=clock())


def _create(store, user, item_ids):
    return store.create(
        workflow_type="content_approval",
        user_id=user.id,
        phone_number=user.phone,
        content_item_ids=item_ids,
        active_key=approval_active_key(item_ids[0]),
        language="en",
    )


def _claims(session):
    return {row.content_item_id: row.workflow_id for row in session.scalars(select(WorkflowItemClaim)).all()}


def test_every_linked_item_is_claimed(session, make_user, clock) -> None:
    user = make_user()
    primary, secondary = _items(session, user, clock)
    store = WorkflowStore(session, clock=clock)

    record = _create(store, user, [primary.id, secondary.id])

    assert _claims(session) == {primary.id: record.id, secondary.id: record.id}
    assert store.find_active_for_item(secondary.id).id == record.id


def test_secondary_item_cannot_join_second_active_workflow(session, make_user, clock) -> None:
    user = make_user()
    primary, secondary = _items(session, user, clock)
    store = WorkflowStore(session, clock=clock)
    record = _create(store, user, [primary.id, secondary.id])

    with pytest.raises(ActiveWorkflowExists):
        _create(store, user, [secondary.id])

    assert _claims(session) == {primary.id: record.id, secondary.id: record.id}
    assert len(store.list_for_user(user.id)) == 1


def test_terminal_transition_releases_claims(session, make_user, clock) -> None:
    user = make_user()
    primary, secondary = _items(session, user, clock)
    store = WorkflowStore(session, clock=clock)
    record = _create(store, user, [primary.id, secondary.id])

    rejected = store.compare_and_swap(record, to_status="rejected")

    assert rejected.status == "rejected"
    assert _claims(session) == {}
    reopened = _create(store, user, [secondary.id])
    assert store.find_active_for_item(secondary.id).id == reopened.id


def test_non_terminal_transition_keeps_claims(session, make_user, clock) -> None:
    user = make_user()
    primary, secondary = _items(session, user, clock)
    store = WorkflowStore(session, clock=clock)
    record = _create(store, user, [primary.id, secondary.id])

    store.compare_and_swap(record, to_status="editing")

    assert set(_claims(session)) == {primary.id, secondary.id}


def test_side_effect_commits_with_the_swap(session, make_user, clock) -> None:
    user = make_user()
    items = _items(session, user, clock)
    item_ids = [item.id for item in items]
    store = WorkflowStore(session, clock=clock)
    record = _create(store, user, item_ids)

    approved = store.compare_and_swap(
        record,
        to_status="approved",
        on_applied=lambda: publish_content(session, item_ids, now=clock(), commit=False),
    )

    assert approved.status == "approved"
    rows = session.scalars(select(ContentItem).execution_options(populate_existing=True)).all()
    assert all(row.published_at is not None for row in rows)


def test_failing_side_effect_rolls_back_the_swap(session, make_user, clock) -> None:
    user = make_user()
    items = _items(session, user, clock)
    item_ids = [item.id for item in items]
    store = WorkflowStore(session, clock=clock)
    record = _create(store, user, item_ids)

    def _publish_then_fail() -> None:
        publish_content(session, item_ids, now=clock(), commit=False)
        raise RuntimeError("publisher crashed")

    with pytest.raises(RuntimeError):
        store.compare_and_swap(record, to_status="approved", on_applied=_publish_then_fail)

    stored = store.get(record.id)
    assert stored.status == "pending"
    assert stored.version == record.version
    rows = session.scalars(select(ContentItem).execution_options(populate_existing=True)).all()
    assert all(row.published_at is None for row in rows)
    assert set(_claims(session)) == set(item_ids)


def test_side_effect_is_skipped_when_swap_loses(session, make_user, clock) -> None:
    user = make_user()
    items = _items(session, user, clock)
    store = WorkflowStore(session, clock=clock)
    record = _create(store, user, [item.id for item in items])
    store.compare_and_swap(record, message_id="SM1")
    calls = []

    result = store.compare_and_swap(record, to_status="approved", on_applied=lambda: calls.append(1))

    assert result is None
    assert calls == []
