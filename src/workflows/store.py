"""Durable workflow table with compare-and-swap updates and per-key in-process locks."""

from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from datetime import datetime, timedelta
import json
from typing import Any, AsyncIterator, Callable, Dict, Iterable, List, Optional, Sequence, Tuple
import uuid
import weakref

from sqlalchemy import delete, desc, func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from src.core.clock import Clock, ensure_utc, utc_now
from src.core.config import get_settings
from src.core.logger import get_logger
from src.storage.models import Workflow, WorkflowItemClaim
from src.workflows.states import (
    ACTIVE_STATUSES,
    TERMINAL_STATUSES,
    can_transition,
    short_workflow_id,
)


logger = get_logger("chefsocial.workflows.store")


def _json_dump(payload: Any) -> str:
    return json.dumps(payload, separators=(",", ":"), ensure_ascii=False, sort_keys=True)


def _json_load(payload: str | None, default: Any) -> Any:
    try:
        loaded = json.loads(payload or "")
    except ValueError:
        return default
    if isinstance(loaded, type(default)):
        return loaded
    return default


@dataclass(frozen=True)
class WorkflowRecord:
    id: str
    workflow_type: str
    user_id: str
    content_item_ids: Tuple[str, ...]
    phone_number: str
    status: str
    language: str
    version: int
    created_at: datetime
    expires_at: datetime
    updated_at: datetime
    last_message_id: Optional[str] = None
    payload: Dict[str, Any] = field(default_factory=dict)

    @property
    def short_id(self) -> str:
        return short_workflow_id(self.id)

    @property
    def primary_item_id(self) -> Optional[str]:
        return self.content_item_ids[0] if self.content_item_ids else None

    @property
    def is_active(self) -> bool:
        return self.status in ACTIVE_STATUSES

    def is_past_ttl(self, now: datetime) -> bool:
        return ensure_utc(now) >= self.expires_at

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "short_id": self.short_id,
            "type": self.workflow_type,
            "status": self.status,
            "language": self.language,
            "content_item_ids": list(self.content_item_ids),
            "created_at": self.created_at.isoformat(),
            "expires_at": self.expires_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
            "payload": dict(self.payload),
        }


def _to_record(row: Workflow) -> WorkflowRecord:
    return WorkflowRecord(
        id=row.id,
        workflow_type=row.workflow_type,
        user_id=row.user_id,
        content_item_ids=tuple(str(item) for item in _json_load(row.content_item_ids_json, [])),
        phone_number=row.phone_number,
        status=row.status,
        language=row.language,
        version=row.version,
        created_at=ensure_utc(row.created_at),
        expires_at=ensure_utc(row.expires_at),
        updated_at=ensure_utc(row.updated_at),
        last_message_id=row.last_message_id,
        payload=_json_load(row.payload_json, {}),
    )


class KeyedLocks:
    """asyncio locks keyed by string, scoped to the running event loop and dropped when idle."""

    def __init__(self) -> None:
        self._locks: "weakref.WeakKeyDictionary[asyncio.AbstractEventLoop, Dict[str, Tuple[asyncio.Lock, int]]]" = (
            weakref.WeakKeyDictionary()
        )

    @asynccontextmanager
    async def hold(self, key: str) -> AsyncIterator[None]:
        loop = asyncio.get_running_loop()
        per_loop = self._locks.setdefault(loop, {})
        lock, holders = per_loop.get(key, (asyncio.Lock(), 0))
        per_loop[key] = (lock, holders + 1)
        try:
            async with lock:
                yield
        finally:
            current_lock, current_holders = per_loop[key]
            if current_holders <= 1:
                del per_loop[key]
            else:
                per_loop[key] = (current_lock, current_holders - 1)

    def held_keys(self) -> List[str]:
        keys: List[str] = []
        for per_loop in list(self._locks.values()):
            keys.extend(per_loop.keys())
        return keys


workflow_locks = KeyedLocks()


class ActiveWorkflowExists(RuntimeError):
    """Raised when an insert collides with the unique active key of another workflow."""

    def __init__(self, active_key: str):
        self.active_key = active_key
        super().__init__(f"active_workflow_exists key={active_key}")


class WorkflowStore:
    def __init__(
        self,
        session: Session,
        *,
        clock: Clock = utc_now,
        ttl: Optional[timedelta] = None,
    ) -> None:
        self._session = session
        self._clock = clock
        self._ttl = ttl or timedelta(hours=get_settings().workflow_ttl_hours)

    def now(self) -> datetime:
        return ensure_utc(self._clock())

    def _select(self):
        return select(Workflow).execution_options(populate_existing=True)

    def create(
        self,
        *,
        workflow_type: str,
        user_id: str,
        phone_number: str,
        content_item_ids: Sequence[str],
        active_key: str,
        language: str,
        payload: Optional[Dict[str, Any]] = None,
    ) -> WorkflowRecord:
        created_at = self.now()
        workflow_id = str(uuid.uuid4())
        row = Workflow(
            id=workflow_id,
            workflow_type=workflow_type,
            user_id=user_id,
            phone_number=phone_number,
            content_item_ids_json=_json_dump(list(content_item_ids)),
            status="pending",
            language=language,
            version=1,
            active_key=active_key,
            payload_json=_json_dump(payload or {}),
            created_at=created_at,
            expires_at=created_at + self._ttl,
            updated_at=created_at,
        )
        self._session.add(row)
        # Linked items are claimed in the same commit as the workflow row.
        self._session.add_all(
            WorkflowItemClaim(content_item_id=item_id, workflow_id=workflow_id, created_at=created_at)
            for item_id in dict.fromkeys(content_item_ids)
        )
        try:
            self._session.commit()
        except IntegrityError as exc:
            self._session.rollback()
            raise ActiveWorkflowExists(active_key) from exc
        return _to_record(row)

    def get(self, workflow_id: str) -> Optional[WorkflowRecord]:
        row = self._session.scalar(self._select().where(Workflow.id == workflow_id))
        return _to_record(row) if row is not None else None

    def get_for_user(self, user_id: str, workflow_id: str) -> Optional[WorkflowRecord]:
        row = self._session.scalar(
            self._select().where(Workflow.id == workflow_id, Workflow.user_id == user_id)
        )
        return _to_record(row) if row is not None else None

    def find_by_active_key(self, active_key: str) -> Optional[WorkflowRecord]:
        row = self._session.scalar(self._select().where(Workflow.active_key == active_key))
        return _to_record(row) if row is not None else None

    def find_active_for_item(self, content_item_id: str) -> Optional[WorkflowRecord]:
        statement = (
            self._select()
            .join(WorkflowItemClaim, WorkflowItemClaim.workflow_id == Workflow.id)
            .where(
                WorkflowItemClaim.content_item_id == content_item_id,
                Workflow.status.in_(ACTIVE_STATUSES),
            )
        )
        row = self._session.scalar(statement)
        return _to_record(row) if row is not None else None

    def find_by_reference(self, user_id: str, reference: str) -> Optional[WorkflowRecord]:
        normalized = (reference or "").strip().lower()
        if not normalized:
            return None
        statement = (
            self._select()
            .where(Workflow.user_id == user_id, Workflow.id.startswith(normalized))
            .order_by(desc(Workflow.created_at))
            .limit(1)
        )
        row = self._session.scalar(statement)
        return _to_record(row) if row is not None else None

    def find_latest(
        self,
        user_id: str,
        *,
        workflow_types: Optional[Iterable[str]] = None,
        active_only: bool = False,
        statuses: Optional[Iterable[str]] = None,
    ) -> Optional[WorkflowRecord]:
        statement = self._select().where(Workflow.user_id == user_id)
        if workflow_types is not None:
            statement = statement.where(Workflow.workflow_type.in_(list(workflow_types)))
        if active_only:
            statement = statement.where(Workflow.status.in_(ACTIVE_STATUSES))
        if statuses is not None:
            statement = statement.where(Workflow.status.in_(list(statuses)))
        row = self._session.scalar(statement.order_by(desc(Workflow.created_at), desc(Workflow.updated_at)).limit(1))
        return _to_record(row) if row is not None else None

    def list_for_user(self, user_id: str, *, active_only: bool = True, limit: int = 20) -> List[WorkflowRecord]:
        statement = self._select().where(Workflow.user_id == user_id)
        if active_only:
            statement = statement.where(Workflow.status.in_(ACTIVE_STATUSES))
        statement = statement.order_by(desc(Workflow.created_at)).limit(max(1, limit))
        return [_to_record(row) for row in self._session.scalars(statement).all()]

    def count_active(self, user_id: str, *, workflow_type: Optional[str] = None) -> int:
        statement = select(func.count()).select_from(Workflow).where(
            Workflow.user_id == user_id,
            Workflow.status.in_(ACTIVE_STATUSES),
        )
        if workflow_type is not None:
            statement = statement.where(Workflow.workflow_type == workflow_type)
        return int(self._session.scalar(statement) or 0)

    def list_expired_active(self, *, now: Optional[datetime] = None, limit: int = 500) -> List[WorkflowRecord]:
        cutoff = ensure_utc(now) if now is not None else self.now()
        statement = (
            self._select()
            .where(Workflow.status.in_(ACTIVE_STATUSES), Workflow.expires_at <= cutoff)
            .order_by(Workflow.expires_at)
            .limit(max(1, limit))
        )
        return [_to_record(row) for row in self._session.scalars(statement).all()]

    def compare_and_swap(
        self,
        record: WorkflowRecord,
        *,
        to_status: Optional[str] = None,
        message_id: Optional[str] = None,
        payload_updates: Optional[Dict[str, Any]] = None,
        on_applied: Optional[Callable[[], None]] = None,
    ) -> Optional[WorkflowRecord]:
        """Apply an update only if the row still matches the version and status we read.

        Returns the refreshed record, or None when another writer got there first.
        Passing no ``to_status`` only records the message id and payload.
        ``on_applied`` runs after the row matched and before the commit; it must
        only stage changes on the session so they commit together with the swap.
        """

        if to_status is not None and to_status != record.status and not can_transition(record.status, to_status):
            raise ValueError(f"illegal workflow transition {record.status} -> {to_status}")

        values: Dict[str, Any] = {
            "version": record.version + 1,
            "updated_at": self.now(),
        }
        terminal = to_status is not None and to_status in TERMINAL_STATUSES
        if to_status is not None:
            values["status"] = to_status
            if terminal:
                values["active_key"] = None
        if message_id is not None:
            values["last_message_id"] = message_id
        if payload_updates:
            values["payload_json"] = _json_dump({**record.payload, **payload_updates})

        try:
            result = self._session.execute(
                update(Workflow)
                .where(
                    Workflow.id == record.id,
                    Workflow.version == record.version,
                    Workflow.status == record.status,
                )
                .values(**values)
            )
            if result.rowcount != 1:
                self._session.commit()
                logger.info(
                    "workflow_cas_lost",
                    workflow_id=record.id,
                    expected_version=record.version,
                    expected_status=record.status,
                    target_status=to_status,
                )
                return None
            if terminal:
                self._session.execute(delete(WorkflowItemClaim).where(WorkflowItemClaim.workflow_id == record.id))
            if on_applied is not None:
                on_applied()
            self._session.commit()
        except Exception:
            self._session.rollback()
            raise
        return self.get(record.id)
