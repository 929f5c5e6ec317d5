"""Workflow types, statuses and the allowed status transitions."""

from __future__ import annotations

from typing import Dict, FrozenSet, Tuple


WORKFLOW_TYPE_CONTENT_APPROVAL = "content_approval"
WORKFLOW_TYPE_DAILY_SUGGESTION = "daily_suggestion"

WORKFLOW_TYPES: Tuple[str, ...] = (
    WORKFLOW_TYPE_CONTENT_APPROVAL,
    WORKFLOW_TYPE_DAILY_SUGGESTION,
)

STATUS_PENDING = "pending"
STATUS_EDITING = "editing"
STATUS_APPROVED = "approved"
STATUS_REJECTED = "rejected"
STATUS_EXPIRED = "expired"

ACTIVE_STATUSES: Tuple[str, ...] = (
    STATUS_PENDING,
    STATUS_EDITING,
)
TERMINAL_STATUSES: FrozenSet[str] = frozenset(
    {
        STATUS_APPROVED,
        STATUS_REJECTED,
        STATUS_EXPIRED,
    }
)

ALLOWED_TRANSITIONS: Dict[str, FrozenSet[str]] = {
    STATUS_PENDING: frozenset({STATUS_APPROVED, STATUS_REJECTED, STATUS_EDITING, STATUS_EXPIRED}),
    STATUS_EDITING: frozenset({STATUS_APPROVED, STATUS_REJECTED, STATUS_EXPIRED}),
    STATUS_APPROVED: frozenset(),
    STATUS_REJECTED: frozenset(),
    STATUS_EXPIRED: frozenset(),
}

SHORT_ID_LENGTH = 6


def is_active_status(status: str | None) -> bool:
    return str(status or "").strip().lower() in ACTIVE_STATUSES


def is_terminal_status(status: str | None) -> bool:
    return str(status or "").strip().lower() in TERMINAL_STATUSES


def can_transition(current: str, target: str) -> bool:
    return target in ALLOWED_TRANSITIONS.get(current, frozenset())


def short_workflow_id(workflow_id: str) -> str:
    return str(workflow_id or "")[:SHORT_ID_LENGTH]


def approval_active_key(content_item_id: str) -> str:
    return f"item:{content_item_id}"


def suggestion_active_key(user_id: str) -> str:
    return f"suggestion:{user_id}"
