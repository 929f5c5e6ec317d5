"""Pydantic schemas for voice/image submissions."""

from __future__ import annotations

from typing import Dict, List, Optional

from pydantic import BaseModel, Field


class VoiceProcessRequest(BaseModel):
    audio: str = Field(min_length=1)
    image: Optional[str] = None
    language: Optional[str] = Field(default="en", max_length=16)
    user_id: Optional[str] = Field(default=None, max_length=36)
    platforms: Optional[List[str]] = Field(default=None, max_length=10)
    request_approval: bool = True


class PlatformContent(BaseModel):
    caption: str
    tags: List[str] = Field(default_factory=list)
    content_type: str


class GeneratedContentBody(BaseModel):
    platforms: Dict[str, PlatformContent] = Field(default_factory=dict)
    virality_score: int = Field(ge=1, le=10)
    best_time: str


class StageSummary(BaseModel):
    outcome: str
    reason: Optional[str] = None


class VoiceProcessResponse(BaseModel):
    transcript: str
    language: str
    content: GeneratedContentBody
    item_ids: List[str] = Field(default_factory=list)
    workflow_id: Optional[str] = None
    stages: Dict[str, StageSummary] = Field(default_factory=dict)

