"""Approval workflow engine: the only writer of workflow state."""

from __future__ import annotations

from dataclasses import dataclass
import re
from typing import List, Optional, Protocol, Sequence, Tuple

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from src.content.service import (
    content_url,
    discard_content,
    item_tags,
    list_content_items,
    list_recent_content,
    order_item_ids,
    publish_content,
)
from src.core.clock import Clock, utc_now
from src.core.config import get_settings
from src.core.errors import WorkflowInactive, WorkflowNotFound
from src.core.i18n import normalize_language, translate
from src.core.logger import get_logger, log_context
from src.core.metrics import record_message, record_workflow_transition
from src.core.runtime import RuntimeConfig, load_runtime_config
from src.messaging.commands import (
    APPROVAL_INTENTS,
    INTENT_APPROVE,
    INTENT_CUSTOM,
    INTENT_EDIT,
    INTENT_REJECT,
    INTENT_SELECT,
    INTENT_STATUS,
    INTENT_SUGGESTIONS,
    INTENT_UNKNOWN,
    INTENT_VIEW,
    SUGGESTION_INTENTS,
    Command,
    parse_command,
)
from src.messaging.gateway import MessagingGateway, deliver, get_messaging_gateway
from src.storage.models import ContentItem, InboundMessage, User
from src.suggestions.service import SuggestionSet, build_daily_suggestions
from src.workflows.formatters import (
    render_account_status,
    render_approval_preview,
    render_custom_prompt,
    render_help,
    render_inactive_notice,
    render_not_registered,
    render_suggestion_menu,
)
from src.workflows.states import (
    STATUS_APPROVED,
    STATUS_EDITING,
    STATUS_EXPIRED,
    STATUS_REJECTED,
    WORKFLOW_TYPE_CONTENT_APPROVAL,
    WORKFLOW_TYPE_DAILY_SUGGESTION,
    approval_active_key,
    suggestion_active_key,
)
from src.workflows.store import ActiveWorkflowExists, WorkflowRecord, WorkflowStore, workflow_locks


OUTCOME_APPLIED = "applied"
OUTCOME_NO_CHANGE = "no_change"
OUTCOME_DUPLICATE = "duplicate"
OUTCOME_INACTIVE = "inactive"
OUTCOME_EXPIRED = "expired"
OUTCOME_CONFLICT = "conflict"
OUTCOME_NOT_FOUND = "not_found"
OUTCOME_NOT_REGISTERED = "not_registered"
OUTCOME_GLOBAL = "global_command"

RESOLUTION_SUPERSEDED = "superseded"

_PHONE_CLEANUP_PATTERN = re.compile(r"[\s\-().]")

logger = get_logger("chefsocial.workflows.engine")


class RecipientMissing(ValueError):
    """Raised when a workflow is requested for a user without a phone number."""


class ContentRequester(Protocol):
    """Runs content generation on behalf of the engine and returns the saved items."""

    async def generate_from_idea(self, *, user: User, idea: str, language: str) -> Sequence[ContentItem]:
        raise NotImplementedError

    async def regenerate(
        self,
        *,
        user: User,
        items: Sequence[ContentItem],
        instructions: str,
        language: str,
    ) -> Sequence[ContentItem]:
        raise NotImplementedError


@dataclass(frozen=True)
class TransitionResult:
    outcome: str
    workflow: Optional[WorkflowRecord]
    reply: Optional[str] = None
    new_workflow_id: Optional[str] = None

    @property
    def applied(self) -> bool:
        return self.outcome == OUTCOME_APPLIED


@dataclass(frozen=True)
class InboundResult:
    outcome: str
    reply: Optional[str] = None
    workflow_id: Optional[str] = None
    user_id: Optional[str] = None
    new_workflow_id: Optional[str] = None


def normalize_phone_number(value: str) -> str:
    return _PHONE_CLEANUP_PATTERN.sub("", (value or "").strip())


def find_user_by_phone(session: Session, phone_number: str) -> Optional[User]:
    normalized = normalize_phone_number(phone_number)
    if not normalized:
        return None
    return session.scalar(select(User).where(User.phone == normalized).limit(1))


class ApprovalWorkflowEngine:
    def __init__(
        self,
        session: Session,
        *,
        gateway: Optional[MessagingGateway] = None,
        clock: Clock = utc_now,
        content_requester: Optional[ContentRequester] = None,
        runtime: Optional[RuntimeConfig] = None,
    ) -> None:
        self._session = session
        self._gateway = gateway or get_messaging_gateway()
        self._clock = clock
        self._store = WorkflowStore(session, clock=clock)
        self._content_requester = content_requester
        self._runtime = runtime

    @property
    def store(self) -> WorkflowStore:
        return self._store

    def _get_content_requester(self) -> ContentRequester:
        if self._content_requester is None:
            # Imported here: the submission pipeline itself creates workflows through this engine.
            from src.submission.service import ContentRequestService

            self._content_requester = ContentRequestService(self._session, clock=self._clock)
        return self._content_requester

    async def _send(self, to_number: str, body: str) -> bool:
        receipt = await deliver(self._gateway, to_number=to_number, body=body)
        return receipt is not None

    # Creation

    async def create_approval(
        self,
        *,
        user: User,
        items: Sequence[ContentItem],
        parent_workflow_id: Optional[str] = None,
    ) -> WorkflowRecord:
        """Open an approval workflow for freshly generated items and send the preview.

        When any of the items already has an active workflow, that workflow is
        returned unchanged and nothing is sent.
        """

        if not items:
            raise ValueError("create_approval requires at least one content item")
        phone_number = normalize_phone_number(user.phone or "")
        if not phone_number:
            raise RecipientMissing("user_phone_missing")

        ordered_ids = order_item_ids(items, self._runtime or load_runtime_config())
        for item_id in ordered_ids:
            existing = self._store.find_active_for_item(item_id)
            if existing is not None:
                logger.info("approval_workflow_exists", workflow_id=existing.id, content_item_id=item_id)
                return existing

        language = normalize_language(items[0].language or user.preferred_language)
        active_key = approval_active_key(ordered_ids[0])
        payload = {"parent_workflow_id": parent_workflow_id} if parent_workflow_id else {}
        try:
            record = self._store.create(
                workflow_type=WORKFLOW_TYPE_CONTENT_APPROVAL,
                user_id=user.id,
                phone_number=phone_number,
                content_item_ids=ordered_ids,
                active_key=active_key,
                language=language,
                payload=payload,
            )
        except ActiveWorkflowExists:
            # Lost a race: another request claimed one of these items first.
            for item_id in ordered_ids:
                existing = self._store.find_active_for_item(item_id)
                if existing is not None:
                    return existing
            raise

        record_workflow_transition(workflow_type=record.workflow_type, outcome="created")
        logger.info(
            "approval_workflow_created",
            workflow_id=record.id,
            user_id=user.id,
            content_item_ids=list(ordered_ids),
            expires_at=record.expires_at.isoformat(),
        )
        await self._send_preview(record)
        return record

    async def _send_preview(self, record: WorkflowRecord) -> bool:
        items = list_content_items(self._session, list(record.content_item_ids))
        if not items:
            logger.warning("approval_preview_items_missing", workflow_id=record.id)
            return False
        primary = items[0]
        body = render_approval_preview(
            workflow_id=record.id,
            item=primary,
            tags=item_tags(primary),
            language=record.language,
            extra_platforms=[item.platform for item in items[1:]],
        )
        return await self._send(record.phone_number, body)

    async def resend_preview(self, workflow_id: str) -> bool:
        record = self._store.get(workflow_id)
        if record is None:
            raise WorkflowNotFound(workflow_id)
        if not record.is_active:
            raise WorkflowInactive(record.id, record.status)
        if record.workflow_type != WORKFLOW_TYPE_CONTENT_APPROVAL:
            return False
        return await self._send_preview(record)

    async def create_suggestions(self, *, user: User, suggestions: SuggestionSet) -> WorkflowRecord:
        """Replace any open suggestion menu for the user with a new one and send it."""

        phone_number = normalize_phone_number(user.phone or "")
        if not phone_number:
            raise RecipientMissing("user_phone_missing")

        active_key = suggestion_active_key(user.id)
        record: Optional[WorkflowRecord] = None
        for _ in range(3):
            previous = self._store.find_by_active_key(active_key)
            if previous is not None:
                await self._supersede(previous)
            try:
                record = self._store.create(
                    workflow_type=WORKFLOW_TYPE_DAILY_SUGGESTION,
                    user_id=user.id,
                    phone_number=phone_number,
                    content_item_ids=[],
                    active_key=active_key,
                    language=suggestions.language,
                    payload={"suggestions": list(suggestions.ideas), "themes": list(suggestions.themes)},
                )
                break
            except ActiveWorkflowExists:
                continue
        if record is None:
            raise ActiveWorkflowExists(active_key)

        record_workflow_transition(workflow_type=record.workflow_type, outcome="created")
        logger.info("suggestion_workflow_created", workflow_id=record.id, user_id=user.id)
        body = render_suggestion_menu(
            user=user,
            ideas=suggestions.ideas,
            tip=suggestions.tip,
            language=suggestions.language,
        )
        await self._send(record.phone_number, body)
        return record

    async def _supersede(self, previous: WorkflowRecord) -> None:
        async with workflow_locks.hold(previous.id):
            current = self._store.get(previous.id)
            if current is None or not current.is_active:
                return
            updated = self._store.compare_and_swap(
                current,
                to_status=STATUS_EXPIRED,
                payload_updates={"resolution": RESOLUTION_SUPERSEDED},
            )
        if updated is not None:
            record_workflow_transition(workflow_type=previous.workflow_type, outcome="superseded")
            logger.info("workflow_superseded", workflow_id=previous.id)

    # Transitions

    async def transition(
        self,
        workflow_id: str,
        command: Command,
        *,
        message_id: Optional[str] = None,
    ) -> TransitionResult:
        with log_context(workflow_id=workflow_id, message_sid=message_id):
            async with workflow_locks.hold(workflow_id):
                result = await self._transition_locked(workflow_id, command, message_id=message_id)

            workflow_type = result.workflow.workflow_type if result.workflow is not None else "unknown"
            record_workflow_transition(workflow_type=workflow_type, outcome=result.outcome)
            logger.info(
                "workflow_transition_applied" if result.applied else "workflow_transition_skipped",
                intent=command.intent,
                outcome=result.outcome,
                status=result.workflow.status if result.workflow is not None else None,
            )
            if result.reply and result.workflow is not None:
                await self._send(result.workflow.phone_number, result.reply)
        return result

    async def _transition_locked(
        self,
        workflow_id: str,
        command: Command,
        *,
        message_id: Optional[str],
    ) -> TransitionResult:
        record = self._store.get(workflow_id)
        if record is None:
            raise WorkflowNotFound(workflow_id)
        if message_id and record.last_message_id == message_id:
            return TransitionResult(outcome=OUTCOME_DUPLICATE, workflow=record)
        if not record.is_active:
            return TransitionResult(
                outcome=OUTCOME_INACTIVE,
                workflow=record,
                reply=render_inactive_notice(status=record.status, language=record.language),
            )
        if record.is_past_ttl(self._store.now()):
            # The cleanup sweep owns the write to `expired`.
            return TransitionResult(
                outcome=OUTCOME_EXPIRED,
                workflow=record,
                reply=translate("workflow.expired", record.language),
            )

        if record.workflow_type == WORKFLOW_TYPE_DAILY_SUGGESTION:
            return await self._transition_suggestion(record, command, message_id=message_id)
        return await self._transition_approval(record, command, message_id=message_id)

    def _no_change(self, record: WorkflowRecord, reply: str, *, message_id: Optional[str]) -> TransitionResult:
        updated = record
        if message_id:
            updated = self._store.compare_and_swap(record, message_id=message_id)
            if updated is None:
                return TransitionResult(outcome=OUTCOME_CONFLICT, workflow=record)
        return TransitionResult(outcome=OUTCOME_NO_CHANGE, workflow=updated, reply=reply)

    def _conflict(self, record: WorkflowRecord) -> TransitionResult:
        return TransitionResult(
            outcome=OUTCOME_CONFLICT,
            workflow=self._store.get(record.id) or record,
            reply=translate("workflow.busy", record.language),
        )

    async def _transition_approval(
        self,
        record: WorkflowRecord,
        command: Command,
        *,
        message_id: Optional[str],
    ) -> TransitionResult:
        language = record.language
        item_ids = list(record.content_item_ids)

        if command.intent == INTENT_APPROVE:
            updated = self._store.compare_and_swap(
                record,
                to_status=STATUS_APPROVED,
                message_id=message_id,
                payload_updates={"resolution": STATUS_APPROVED},
                on_applied=lambda: publish_content(self._session, item_ids, now=self._store.now(), commit=False),
            )
            if updated is None:
                return self._conflict(record)
            return TransitionResult(
                outcome=OUTCOME_APPLIED,
                workflow=updated,
                reply=translate("approval.approved", language),
            )

        if command.intent == INTENT_REJECT:
            updated = self._store.compare_and_swap(
                record,
                to_status=STATUS_REJECTED,
                message_id=message_id,
                payload_updates={"resolution": STATUS_REJECTED},
                on_applied=lambda: discard_content(self._session, item_ids, now=self._store.now(), commit=False),
            )
            if updated is None:
                return self._conflict(record)
            return TransitionResult(
                outcome=OUTCOME_APPLIED,
                workflow=updated,
                reply=translate("approval.rejected", language),
            )

        if command.intent == INTENT_EDIT:
            if record.status == STATUS_EDITING:
                return self._no_change(record, translate("approval.editing", language), message_id=message_id)
            updated = self._store.compare_and_swap(record, to_status=STATUS_EDITING, message_id=message_id)
            if updated is None:
                return self._conflict(record)
            return TransitionResult(
                outcome=OUTCOME_APPLIED,
                workflow=updated,
                reply=translate("approval.editing", language),
            )

        if command.intent == INTENT_VIEW:
            target = record.primary_item_id or ""
            return self._no_change(
                record,
                translate("approval.view", language, url=content_url(target)),
                message_id=message_id,
            )

        if command.intent == INTENT_UNKNOWN and record.status == STATUS_EDITING and command.raw_text.strip():
            return await self._regenerate(record, command.raw_text.strip(), message_id=message_id)

        return self._no_change(
            record,
            translate("approval.help", language, short_id=record.short_id),
            message_id=message_id,
        )

    async def _regenerate(
        self,
        record: WorkflowRecord,
        instructions: str,
        *,
        message_id: Optional[str],
    ) -> TransitionResult:
        updated = self._store.compare_and_swap(
            record,
            to_status=STATUS_REJECTED,
            message_id=message_id,
            payload_updates={"resolution": RESOLUTION_SUPERSEDED, "edit_instructions": instructions},
            on_applied=lambda: discard_content(
                self._session,
                list(record.content_item_ids),
                now=self._store.now(),
                commit=False,
            ),
        )
        if updated is None:
            return self._conflict(record)

        await self._send(record.phone_number, translate("approval.regenerating", record.language))

        user = self._session.get(User, record.user_id)
        if user is None:
            raise WorkflowNotFound(record.id)
        previous_items = list_content_items(self._session, list(record.content_item_ids))
        new_items = await self._get_content_requester().regenerate(
            user=user,
            items=previous_items,
            instructions=instructions,
            language=record.language,
        )

        new_record = await self.create_approval(user=user, items=list(new_items), parent_workflow_id=record.id)
        linked = self._store.compare_and_swap(updated, payload_updates={"superseded_by": new_record.id})
        logger.info(
            "approval_workflow_regenerated",
            workflow_id=record.id,
            new_workflow_id=new_record.id,
            instructions_length=len(instructions),
        )
        return TransitionResult(
            outcome=OUTCOME_APPLIED,
            workflow=linked or updated,
            new_workflow_id=new_record.id,
        )

    async def _transition_suggestion(
        self,
        record: WorkflowRecord,
        command: Command,
        *,
        message_id: Optional[str],
    ) -> TransitionResult:
        language = record.language
        ideas: List[str] = [str(idea) for idea in record.payload.get("suggestions") or []]

        if command.intent == INTENT_SELECT and command.selection is not None:
            if not 1 <= command.selection <= len(ideas):
                return self._no_change(
                    record,
                    translate("suggestions.out_of_range", language, count=len(ideas)),
                    message_id=message_id,
                )
            idea = ideas[command.selection - 1]
            updated = self._store.compare_and_swap(
                record,
                to_status=STATUS_APPROVED,
                message_id=message_id,
                payload_updates={"selection": command.selection, "selected_idea": idea},
            )
            if updated is None:
                return self._conflict(record)

            await self._send(record.phone_number, translate("suggestions.selected", language, number=command.selection))
            new_workflow_id = await self._launch_from_idea(updated, idea)
            return TransitionResult(outcome=OUTCOME_APPLIED, workflow=updated, new_workflow_id=new_workflow_id)

        if command.intent == INTENT_CUSTOM:
            updated = self._store.compare_and_swap(
                record,
                to_status=STATUS_APPROVED,
                message_id=message_id,
                payload_updates={"selection": "custom"},
            )
            if updated is None:
                return self._conflict(record)
            return TransitionResult(outcome=OUTCOME_APPLIED, workflow=updated, reply=render_custom_prompt(language))

        return self._no_change(
            record,
            translate("suggestions.out_of_range", language, count=len(ideas)),
            message_id=message_id,
        )

    async def _launch_from_idea(self, record: WorkflowRecord, idea: str) -> Optional[str]:
        user = self._session.get(User, record.user_id)
        if user is None:
            return None
        items = await self._get_content_requester().generate_from_idea(user=user, idea=idea, language=record.language)
        if not items:
            return None
        new_record = await self.create_approval(user=user, items=list(items), parent_workflow_id=record.id)
        return new_record.id

    # Inbound messages

    def _claim_message(self, *, message_id: str, from_number: str, body: str) -> Optional[InboundMessage]:
        row = InboundMessage(
            provider_message_id=message_id,
            from_number=from_number,
            body=body,
            created_at=self._store.now(),
        )
        self._session.add(row)
        try:
            self._session.commit()
        except IntegrityError:
            self._session.rollback()
            return None
        return row

    def _finish_message(self, row: Optional[InboundMessage], *, outcome: str, workflow_id: Optional[str]) -> None:
        record_message(direction="inbound", status=outcome)
        if row is None:
            return
        row.outcome = outcome
        row.workflow_id = workflow_id
        self._session.commit()

    def _resolve_target(self, user: User, command: Command) -> WorkflowRecord:
        if command.reference:
            record = self._store.find_by_reference(user.id, command.reference)
            if record is None:
                raise WorkflowNotFound(command.reference)
            return record

        if command.intent == INTENT_UNKNOWN:
            # Free text is edit instructions whenever an approval is waiting for them.
            editing = self._store.find_latest(
                user.id,
                workflow_types=(WORKFLOW_TYPE_CONTENT_APPROVAL,),
                statuses=(STATUS_EDITING,),
            )
            if editing is not None:
                return editing

        workflow_types: Optional[Tuple[str, ...]] = None
        if command.intent in APPROVAL_INTENTS:
            workflow_types = (WORKFLOW_TYPE_CONTENT_APPROVAL,)
        elif command.intent in SUGGESTION_INTENTS:
            workflow_types = (WORKFLOW_TYPE_DAILY_SUGGESTION,)

        active = self._store.find_latest(user.id, workflow_types=workflow_types, active_only=True)
        if active is not None:
            return active
        latest = self._store.find_latest(user.id, workflow_types=workflow_types)
        if latest is not None:
            raise WorkflowInactive(latest.id, latest.status)
        raise WorkflowNotFound()

    async def _handle_global(self, user: User, command: Command) -> str:
        language = normalize_language(user.preferred_language)
        if command.intent == INTENT_STATUS:
            pending = self._store.count_active(user.id, workflow_type=WORKFLOW_TYPE_CONTENT_APPROVAL)
            reply = render_account_status(user=user, pending=pending, language=language)
            await self._send(normalize_phone_number(user.phone or ""), reply)
            return reply
        if command.intent == INTENT_SUGGESTIONS:
            settings = get_settings()
            suggestions = build_daily_suggestions(
                user=user,
                recent_items=list_recent_content(
                    self._session,
                    user_id=user.id,
                    limit=settings.suggestion_history_limit,
                ),
                now=self._store.now(),
                language=language,
                count=settings.suggestion_count,
            )
            await self.create_suggestions(user=user, suggestions=suggestions)
            return render_suggestion_menu(
                user=user,
                ideas=suggestions.ideas,
                tip=suggestions.tip,
                language=suggestions.language,
            )
        reply = render_help(language)
        await self._send(normalize_phone_number(user.phone or ""), reply)
        return reply

    async def handle_inbound(self, *, from_number: str, body: str, message_id: Optional[str] = None) -> InboundResult:
        """Route one inbound text message. Safe under repeated delivery of the same message id."""

        with log_context(message_sid=message_id):
            return await self._handle_inbound(from_number=from_number, body=body, message_id=message_id)

    async def _handle_inbound(self, *, from_number: str, body: str, message_id: Optional[str]) -> InboundResult:
        phone_number = normalize_phone_number(from_number)
        inbound_row: Optional[InboundMessage] = None
        if message_id:
            inbound_row = self._claim_message(message_id=message_id, from_number=phone_number, body=body or "")
            if inbound_row is None:
                record_message(direction="inbound", status=OUTCOME_DUPLICATE)
                logger.info("inbound_message_duplicate")
                return InboundResult(outcome=OUTCOME_DUPLICATE)

        user = find_user_by_phone(self._session, phone_number)
        if user is None:
            reply = render_not_registered("en")
            await self._send(phone_number, reply)
            self._finish_message(inbound_row, outcome=OUTCOME_NOT_REGISTERED, workflow_id=None)
            return InboundResult(outcome=OUTCOME_NOT_REGISTERED, reply=reply)

        command = parse_command(body)
        language = normalize_language(user.preferred_language)

        if command.is_global:
            reply = await self._handle_global(user, command)
            self._finish_message(inbound_row, outcome=OUTCOME_GLOBAL, workflow_id=None)
            return InboundResult(outcome=OUTCOME_GLOBAL, reply=reply, user_id=user.id)

        try:
            target = self._resolve_target(user, command)
        except WorkflowInactive as exc:
            reply = render_inactive_notice(status=exc.status, language=language)
            await self._send(phone_number, reply)
            self._finish_message(inbound_row, outcome=OUTCOME_INACTIVE, workflow_id=exc.workflow_id)
            return InboundResult(outcome=OUTCOME_INACTIVE, reply=reply, workflow_id=exc.workflow_id, user_id=user.id)
        except WorkflowNotFound:
            reply = render_help(language)
            await self._send(phone_number, reply)
            self._finish_message(inbound_row, outcome=OUTCOME_NOT_FOUND, workflow_id=None)
            return InboundResult(outcome=OUTCOME_NOT_FOUND, reply=reply, user_id=user.id)

        result = await self.transition(target.id, command, message_id=message_id)
        self._finish_message(inbound_row, outcome=result.outcome, workflow_id=target.id)
        return InboundResult(
            outcome=result.outcome,
            reply=result.reply,
            workflow_id=target.id,
            user_id=user.id,
            new_workflow_id=result.new_workflow_id,
        )
