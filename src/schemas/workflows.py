"""Pydantic schemas for workflow routes."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field


class ApprovalCreateRequest(BaseModel):
    content_item_id: str = Field(min_length=1, max_length=36)


class ApprovalCreateResponse(BaseModel):
    workflow_id: str
    short_id: str
    status: str
    content_item_ids: List[str] = Field(default_factory=list)


class DailySuggestionsRequest(BaseModel):
    user_id: str = Field(min_length=1, max_length=36)


class DailySuggestionsResponse(BaseModel):
    workflow_id: str
    suggestions: List[str]
    tip: str
    best_platform: Optional[str] = None


class WorkflowItem(BaseModel):
    id: str
    short_id: str
    type: str
    status: str
    language: str
    content_item_ids: List[str] = Field(default_factory=list)
    created_at: datetime
    expires_at: datetime
    updated_at: datetime
    payload: Dict[str, Any] = Field(default_factory=dict)


class WorkflowListResponse(BaseModel):
    user_id: str
    items: List[WorkflowItem]
