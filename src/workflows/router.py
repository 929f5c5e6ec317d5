"""Workflow routes: start approvals and daily suggestions, inspect workflow state."""

from __future__ import annotations

from typing import Literal

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.orm import Session

from src.content.service import get_content_item, list_recent_content
from src.core.clock import Clock, get_clock
from src.core.config import get_settings
from src.messaging.gateway import MessagingGateway, get_messaging_gateway
from src.schemas.workflows import (
    ApprovalCreateRequest,
    ApprovalCreateResponse,
    DailySuggestionsRequest,
    DailySuggestionsResponse,
    WorkflowItem,
    WorkflowListResponse,
)
from src.storage.db import get_session
from src.storage.models import User
from src.suggestions.service import build_daily_suggestions
from src.workflows.engine import ApprovalWorkflowEngine, RecipientMissing
from src.workflows.store import WorkflowRecord, WorkflowStore


router = APIRouter(prefix="/workflows", tags=["workflows"])


def _to_item(record: WorkflowRecord) -> WorkflowItem:
    return WorkflowItem.model_validate(record.to_dict())


def _get_user_or_404(session: Session, user_id: str) -> User:
    user = session.get(User, user_id)
    if user is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="user_not_found")
    return user


@router.post("/approval", response_model=ApprovalCreateResponse)
async def create_approval_endpoint(
    payload: ApprovalCreateRequest,
    session: Session = Depends(get_session),
    gateway: MessagingGateway = Depends(get_messaging_gateway),
    clock: Clock = Depends(get_clock),
) -> ApprovalCreateResponse:
    item = get_content_item(session, payload.content_item_id)
    if item is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="content_item_not_found")
    user = _get_user_or_404(session, item.user_id)

    engine = ApprovalWorkflowEngine(session, gateway=gateway, clock=clock)
    try:
        record = await engine.create_approval(user=user, items=[item])
    except RecipientMissing as exc:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc)) from exc

    return ApprovalCreateResponse(
        workflow_id=record.id,
        short_id=record.short_id,
        status=record.status,
        content_item_ids=list(record.content_item_ids),
    )


@router.post("/daily-suggestions", response_model=DailySuggestionsResponse)
async def create_daily_suggestions_endpoint(
    payload: DailySuggestionsRequest,
    session: Session = Depends(get_session),
    gateway: MessagingGateway = Depends(get_messaging_gateway),
    clock: Clock = Depends(get_clock),
) -> DailySuggestionsResponse:
    user = _get_user_or_404(session, payload.user_id)
    settings = get_settings()
    suggestions = build_daily_suggestions(
        user=user,
        recent_items=list_recent_content(session, user_id=user.id, limit=settings.suggestion_history_limit),
        now=clock(),
        count=settings.suggestion_count,
    )

    engine = ApprovalWorkflowEngine(session, gateway=gateway, clock=clock)
    try:
        record = await engine.create_suggestions(user=user, suggestions=suggestions)
    except RecipientMissing as exc:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc)) from exc

    return DailySuggestionsResponse(
        workflow_id=record.id,
        suggestions=list(suggestions.ideas),
        tip=suggestions.tip,
        best_platform=suggestions.best_platform,
    )


@router.get("/{user_id}", response_model=WorkflowListResponse)
def list_workflows_endpoint(
    user_id: str,
    status_filter: Literal["active", "all"] = Query(default="active", alias="status"),
    limit: int = Query(default=20, ge=1, le=100),
    session: Session = Depends(get_session),
    clock: Clock = Depends(get_clock),
) -> WorkflowListResponse:
    store = WorkflowStore(session, clock=clock)
    records = store.list_for_user(user_id, active_only=status_filter == "active", limit=limit)
    return WorkflowListResponse(user_id=user_id, items=[_to_item(record) for record in records])


@router.get("/{user_id}/{workflow_id}", response_model=WorkflowItem)
def get_workflow_endpoint(
    user_id: str,
    workflow_id: str,
    session: Session = Depends(get_session),
    clock: Clock = Depends(get_clock),
) -> WorkflowItem:
    store = WorkflowStore(session, clock=clock)
    record = store.get_for_user(user_id, workflow_id)
    if record is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="workflow_not_found")
    return _to_item(record)
