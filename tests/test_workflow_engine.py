from __future__ import annotations

import asyncio

import pytest
from sqlalchemy import select

from src.ai.generation import canonical_fallback
from src.content.service import save_generated_content
from src.core.logger import current_log_context
from src.messaging.commands import parse_command
from src.storage.models import ContentItem, InboundMessage, Workflow
from src.submission.service import ContentRequestService
from src.suggestions.service import build_daily_suggestions
from src.workflows import engine as engine_module
from src.workflows.engine import (
    OUTCOME_APPLIED,
    OUTCOME_DUPLICATE,
    OUTCOME_EXPIRED,
    OUTCOME_GLOBAL,
    OUTCOME_INACTIVE,
    OUTCOME_NO_CHANGE,
    OUTCOME_NOT_FOUND,
    OUTCOME_NOT_REGISTERED,
    ApprovalWorkflowEngine,
    RecipientMissing,
    normalize_phone_number,
)

from tests.helpers import FakeProvider


PHONE = "+15550001111"


def _save_items(
    session,
    user,
    clock,
    *,
    platforms=("instagram", "short_video"),
    transcript="Fettuccine with truffle cream tonight",
):
    content = canonical_fallback(transcript, language=user.preferred_language, platforms=list(platforms))
    return save_generated_content(session, user_id=user.id, content=content, transcript=transcript, now=clock())


@pytest.fixture
def engine(session, gateway, clock):
    requester = ContentRequestService(session, provider=FakeProvider(), clock=clock)
    return ApprovalWorkflowEngine(session, gateway=gateway, clock=clock, content_requester=requester)


def _inbound(engine, body: str, message_id: str | None = None, from_number: str = PHONE):
    return asyncio.run(engine.handle_inbound(from_number=from_number, body=body, message_id=message_id))


def _workflow(session, workflow_id: str) -> Workflow:
    return session.scalars(
        select(Workflow).where(Workflow.id == workflow_id).execution_options(populate_existing=True)
    ).one()


def test_approve_transitions_once_and_publishes_once(session, engine, gateway, make_user, clock) -> None:
    user = make_user()
    items = _save_items(session, user, clock)
    record = asyncio.run(engine.create_approval(user=user, items=items))
    gateway.sent.clear()

    first = _inbound(engine, "APPROVE", "SM001")

    assert first.outcome == OUTCOME_APPLIED
    assert first.workflow_id == record.id
    stored = _workflow(session, record.id)
    assert stored.status == "approved"
    assert stored.active_key is None
    assert stored.last_message_id == "SM001"
    published = session.scalars(select(ContentItem).execution_options(populate_existing=True)).all()
    published_at = {item.id: item.published_at for item in published}
    assert all(value is not None for value in published_at.values())
    assert len(gateway.sent) == 1
    assert "approved" in gateway.sent[0].body.lower()

    duplicate = _inbound(engine, "APPROVE", "SM001")
    assert duplicate.outcome == OUTCOME_DUPLICATE
    assert len(gateway.sent) == 1

    clock.advance(minutes=5)
    late = _inbound(engine, "approve", "SM002")
    assert late.outcome == OUTCOME_INACTIVE
    assert "already approved" in gateway.sent[-1].body
    assert _workflow(session, record.id).version == stored.version
    again = session.scalars(select(ContentItem).execution_options(populate_existing=True)).all()
    assert {item.id: item.published_at for item in again} == published_at


def test_reply_after_ttl_is_refused_without_mutation(session, engine, gateway, make_user, clock) -> None:
    user = make_user()
    record = asyncio.run(engine.create_approval(user=user, items=_save_items(session, user, clock)))

    clock.advance(hours=25)
    result = _inbound(engine, "APPROVE", "SM100")

    assert result.outcome == OUTCOME_EXPIRED
    stored = _workflow(session, record.id)
    assert stored.status == "pending"
    assert stored.version == record.version
    assert stored.last_message_id is None
    assert "expired" in gateway.sent[-1].body
    items = session.scalars(select(ContentItem)).all()
    assert all(item.published_at is None for item in items)


def test_reject_discards_items(session, engine, gateway, make_user, clock) -> None:
    user = make_user()
    record = asyncio.run(engine.create_approval(user=user, items=_save_items(session, user, clock)))

    result = _inbound(engine, "❌", "SM200")

    assert result.outcome == OUTCOME_APPLIED
    assert _workflow(session, record.id).status == "rejected"
    items = session.scalars(select(ContentItem).execution_options(populate_existing=True)).all()
    assert all(item.discarded_at is not None and item.published_at is None for item in items)
    assert "rejected" in gateway.sent[-1].body


def test_view_replies_with_link_without_status_change(session, engine, gateway, make_user, clock) -> None:
    user = make_user()
    record = asyncio.run(engine.create_approval(user=user, items=_save_items(session, user, clock)))

    result = _inbound(engine, "VIEW", "SM300")

    assert result.outcome == OUTCOME_NO_CHANGE
    assert _workflow(session, record.id).status == "pending"
    assert f"https://app.chef-social.test/content/{record.primary_item_id}" in gateway.sent[-1].body


def test_edit_then_free_text_regenerates_into_new_workflow(session, engine, gateway, make_user, clock) -> None:
    user = make_user()
    original_items = _save_items(session, user, clock)
    record = asyncio.run(engine.create_approval(user=user, items=original_items))

    editing = _inbound(engine, "EDIT", "SM400")
    assert editing.outcome == OUTCOME_APPLIED
    assert _workflow(session, record.id).status == "editing"

    rewrite = _inbound(engine, "Make it spicier and mention the chili oil", "SM401")

    assert rewrite.outcome == OUTCOME_APPLIED
    assert rewrite.new_workflow_id is not None
    old = _workflow(session, record.id)
    assert old.status == "rejected"
    new = _workflow(session, rewrite.new_workflow_id)
    assert new.status == "pending"
    assert '"superseded_by"' in old.payload_json
    assert rewrite.new_workflow_id[:6] in gateway.sent[-1].body

    refreshed = session.scalars(select(ContentItem).execution_options(populate_existing=True)).all()
    by_id = {item.id: item for item in refreshed}
    assert all(by_id[item.id].discarded_at is not None for item in original_items)
    assert len(refreshed) == 4


def test_edit_instructions_reach_editing_approval_after_new_menu(session, engine, gateway, make_user, clock) -> None:
    user = make_user()
    record = asyncio.run(engine.create_approval(user=user, items=_save_items(session, user, clock)))
    _inbound(engine, "EDIT", "SM410")
    clock.advance(minutes=10)
    suggestions = build_daily_suggestions(user=user, recent_items=[], now=clock(), count=5)
    menu = asyncio.run(engine.create_suggestions(user=user, suggestions=suggestions))

    rewrite = _inbound(engine, "Make it spicier please", "SM411")

    assert rewrite.outcome == OUTCOME_APPLIED
    assert rewrite.workflow_id == record.id
    assert rewrite.new_workflow_id is not None
    assert _workflow(session, record.id).status == "rejected"
    assert _workflow(session, menu.id).status == "pending"


def test_edit_twice_is_no_change(session, engine, make_user, clock) -> None:
    user = make_user()
    asyncio.run(engine.create_approval(user=user, items=_save_items(session, user, clock)))

    _inbound(engine, "EDIT", "SM500")
    second = _inbound(engine, "modifier", "SM501")

    assert second.outcome == OUTCOME_NO_CHANGE


def test_unknown_text_while_pending_returns_help(session, engine, gateway, make_user, clock) -> None:
    user = make_user()
    record = asyncio.run(engine.create_approval(user=user, items=_save_items(session, user, clock)))

    result = _inbound(engine, "what is this?", "SM600")

    assert result.outcome == OUTCOME_NO_CHANGE
    assert record.short_id in gateway.sent[-1].body


def test_create_approval_is_idempotent_per_item(session, engine, gateway, make_user, clock) -> None:
    user = make_user()
    items = _save_items(session, user, clock)

    first = asyncio.run(engine.create_approval(user=user, items=items))
    second = asyncio.run(engine.create_approval(user=user, items=items[1:]))

    assert second.id == first.id
    assert len(gateway.sent) == 1


def test_primary_item_follows_platform_priority(session, engine, make_user, clock) -> None:
    user = make_user()
    items = _save_items(session, user, clock, platforms=("short_video", "feed_post", "instagram"))

    record = asyncio.run(engine.create_approval(user=user, items=items))

    platforms = {item.id: item.platform for item in items}
    assert platforms[record.primary_item_id] == "instagram"
    assert [platforms[item_id] for item_id in record.content_item_ids] == ["instagram", "short_video", "feed_post"]


def test_create_approval_requires_phone(session, engine, make_user, clock) -> None:
    user = make_user(phone=None)

    with pytest.raises(RecipientMissing):
        asyncio.run(engine.create_approval(user=user, items=_save_items(session, user, clock)))


def test_unknown_sender_gets_signup_reply(engine, gateway) -> None:
    result = _inbound(engine, "APPROVE", "SM700", from_number="+15559999999")

    assert result.outcome == OUTCOME_NOT_REGISTERED
    assert gateway.sent[-1].to_number == "+15559999999"


def test_reply_without_workflow_returns_help(engine, gateway, make_user) -> None:
    make_user()

    result = _inbound(engine, "APPROVE", "SM800")

    assert result.outcome == OUTCOME_NOT_FOUND
    assert "HELP" in gateway.sent[-1].body


def test_global_commands_answer_directly(session, engine, gateway, make_user, clock) -> None:
    user = make_user(language="fr")
    asyncio.run(engine.create_approval(user=user, items=_save_items(session, user, clock)))

    status = _inbound(engine, "STATUT", "SM900")
    assert status.outcome == OUTCOME_GLOBAL
    assert "Approbations en attente : 1" in gateway.sent[-1].body

    help_reply = _inbound(engine, "aide", "SM901")
    assert help_reply.outcome == OUTCOME_GLOBAL
    assert "Commandes ChefSocial" in gateway.sent[-1].body


def test_short_reference_targets_a_specific_workflow(session, engine, make_user, clock) -> None:
    user = make_user()
    first = asyncio.run(
        engine.create_approval(user=user, items=_save_items(session, user, clock, platforms=("instagram",)))
    )
    clock.advance(minutes=1)
    second = asyncio.run(
        engine.create_approval(user=user, items=_save_items(session, user, clock, platforms=("feed_post",)))
    )

    result = _inbound(engine, f"REJECT {first.short_id}", "SM950")

    assert result.workflow_id == first.id
    assert _workflow(session, first.id).status == "rejected"
    assert _workflow(session, second.id).status == "pending"


def test_inbound_messages_are_recorded(session, engine, make_user, clock) -> None:
    user = make_user()
    record = asyncio.run(engine.create_approval(user=user, items=_save_items(session, user, clock)))

    _inbound(engine, "APPROVE", "SM990")

    row = session.scalars(select(InboundMessage).where(InboundMessage.provider_message_id == "SM990")).one()
    assert row.outcome == OUTCOME_APPLIED
    assert row.workflow_id == record.id


def test_concurrent_replies_apply_once(session, engine, gateway, make_user, clock) -> None:
    user = make_user()
    record = asyncio.run(engine.create_approval(user=user, items=_save_items(session, user, clock)))

    async def _race():
        return await asyncio.gather(
            engine.transition(record.id, parse_command("APPROVE"), message_id="SMa"),
            engine.transition(record.id, parse_command("REJECT"), message_id="SMb"),
        )

    results = asyncio.run(_race())

    outcomes = sorted(result.outcome for result in results)
    assert outcomes == sorted([OUTCOME_APPLIED, OUTCOME_INACTIVE])
    assert _workflow(session, record.id).status in {"approved", "rejected"}


def test_stale_record_loses_compare_and_swap(session, engine, make_user, clock) -> None:
    user = make_user()
    record = asyncio.run(engine.create_approval(user=user, items=_save_items(session, user, clock)))

    winner = engine.store.compare_and_swap(record, to_status="editing")
    loser = engine.store.compare_and_swap(record, to_status="approved")

    assert winner is not None and winner.version == record.version + 1
    assert loser is None
    with pytest.raises(ValueError):
        engine.store.compare_and_swap(winner, to_status="pending")


def test_selecting_suggestion_seeds_generation_with_idea(session, gateway, make_user, clock) -> None:
    user = make_user()
    provider = FakeProvider()
    engine = ApprovalWorkflowEngine(
        session,
        gateway=gateway,
        clock=clock,
        content_requester=ContentRequestService(session, provider=provider, clock=clock),
    )
    suggestions = build_daily_suggestions(user=user, recent_items=[], now=clock(), count=5)
    menu = asyncio.run(engine.create_suggestions(user=user, suggestions=suggestions))
    assert "1-5" in gateway.sent[-1].body

    result = _inbound(engine, "3", "SMs1")

    assert result.outcome == OUTCOME_APPLIED
    assert result.workflow_id == menu.id
    stored = _workflow(session, menu.id)
    assert stored.status == "approved"
    assert '"selection":3' in stored.payload_json
    idea = suggestions.ideas[2]
    assert f'CHEF DESCRIPTION: "{idea}"' in provider.prompts[-1]
    assert result.new_workflow_id is not None
    new_workflow = _workflow(session, result.new_workflow_id)
    assert new_workflow.workflow_type == "content_approval"
    assert f'"parent_workflow_id":"{menu.id}"' in new_workflow.payload_json
    assert any("#3" in message.body for message in gateway.sent)


def test_out_of_range_selection_keeps_menu_open(session, engine, gateway, make_user, clock) -> None:
    user = make_user()
    suggestions = build_daily_suggestions(user=user, recent_items=[], now=clock(), count=3)
    menu = asyncio.run(engine.create_suggestions(user=user, suggestions=suggestions))

    result = _inbound(engine, "5", "SMs2")

    assert result.outcome == OUTCOME_NO_CHANGE
    assert _workflow(session, menu.id).status == "pending"
    assert "between 1 and 3" in gateway.sent[-1].body


def test_custom_reply_closes_menu_with_recording_link(session, engine, gateway, make_user, clock) -> None:
    user = make_user()
    menu = asyncio.run(
        engine.create_suggestions(
            user=user,
            suggestions=build_daily_suggestions(user=user, recent_items=[], now=clock()),
        )
    )

    result = _inbound(engine, "CUSTOM", "SMs3")

    assert result.outcome == OUTCOME_APPLIED
    assert _workflow(session, menu.id).status == "approved"
    assert "https://app.chef-social.test/voice" in gateway.sent[-1].body


def test_new_suggestion_menu_supersedes_previous(session, engine, make_user, clock) -> None:
    user = make_user()
    first = asyncio.run(
        engine.create_suggestions(
            user=user,
            suggestions=build_daily_suggestions(user=user, recent_items=[], now=clock()),
        )
    )
    clock.advance(hours=2)
    second = asyncio.run(
        engine.create_suggestions(
            user=user,
            suggestions=build_daily_suggestions(user=user, recent_items=[], now=clock()),
        )
    )

    old = _workflow(session, first.id)
    assert old.status == "expired"
    assert '"resolution":"superseded"' in old.payload_json
    assert _workflow(session, second.id).status == "pending"


def test_suggestions_command_opens_menu(session, engine, gateway, make_user) -> None:
    make_user()

    result = _inbound(engine, "ideas", "SMs4")

    assert result.outcome == OUTCOME_GLOBAL
    menus = session.scalars(select(Workflow).where(Workflow.workflow_type == "daily_suggestion")).all()
    assert len(menus) == 1
    assert result.reply == gateway.sent[-1].body


def test_normalize_phone_number() -> None:
    assert normalize_phone_number(" +1 (555) 000-1111 ") == "+15550001111"


def test_publish_failure_leaves_workflow_pending(monkeypatch, session, engine, make_user, clock) -> None:
    user = make_user()
    items = _save_items(session, user, clock)
    record = asyncio.run(engine.create_approval(user=user, items=items))

    def _failing_publish(*args, **kwargs):
        raise RuntimeError("content store unavailable")

    monkeypatch.setattr(engine_module, "publish_content", _failing_publish)

    with pytest.raises(RuntimeError):
        asyncio.run(engine.transition(record.id, parse_command("APPROVE"), message_id="SM990"))

    stored = _workflow(session, record.id)
    assert stored.status == "pending"
    assert stored.active_key is not None
    rows = session.scalars(select(ContentItem).execution_options(populate_existing=True)).all()
    assert all(row.published_at is None for row in rows)


def test_transition_binds_workflow_and_message_ids_to_logs(monkeypatch, session, engine, make_user, clock) -> None:
    user = make_user()
    items = _save_items(session, user, clock)
    record = asyncio.run(engine.create_approval(user=user, items=items))
    seen: list[dict] = []
    real_publish = engine_module.publish_content

    def _recording_publish(*args, **kwargs):
        seen.append(current_log_context())
        return real_publish(*args, **kwargs)

    monkeypatch.setattr(engine_module, "publish_content", _recording_publish)

    _inbound(engine, "APPROVE", "SM991")

    assert seen[0]["workflow_id"] == record.id
    assert seen[0]["message_sid"] == "SM991"
    assert "workflow_id" not in current_log_context()
