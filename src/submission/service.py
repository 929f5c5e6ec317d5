"""Voice/image submission pipeline: concurrent transcription and vision, then generation under one deadline."""

from __future__ import annotations

import asyncio
import base64
import binascii
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence

from sqlalchemy.orm import Session

from src.ai.generation import GeneratedContent, generate_content, normalize_platforms
from src.ai.providers.base import AIProvider
from src.ai.providers.factory import get_ai_provider
from src.ai.results import OUTCOME_SUCCESS, StageResult, error, fallback, success
from src.ai.transcription import STAGE as TRANSCRIPTION_STAGE
from src.ai.transcription import fallback_transcript, transcribe_audio
from src.ai.vision import STAGE as VISION_STAGE
from src.ai.vision import default_description, describe_image
from src.content.service import save_generated_content
from src.core.clock import Clock, utc_now
from src.core.config import get_settings
from src.core.errors import FAILURE_UNEXPECTED
from src.core.i18n import normalize_language
from src.core.logger import get_logger
from src.core.runtime import RuntimeConfig, load_runtime_config
from src.messaging.gateway import MessagingGateway
from src.storage.models import ContentItem, User


PERSISTENCE_STAGE = "persistence"
APPROVAL_STAGE = "approval"
DEADLINE_REASON = "deadline_exceeded"

logger = get_logger("chefsocial.submission")


@dataclass(frozen=True)
class SubmissionRequest:
    audio: bytes
    language: str = "en"
    image: Optional[str] = None
    user_id: Optional[str] = None
    platforms: Optional[List[str]] = None
    request_approval: bool = True


@dataclass(frozen=True)
class SubmissionResult:
    transcript: str
    language: str
    content: GeneratedContent
    item_ids: List[str] = field(default_factory=list)
    workflow_id: Optional[str] = None
    stages: Dict[str, Dict[str, Any]] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "transcript": self.transcript,
            "language": self.language,
            "content": self.content.to_dict(),
            "item_ids": list(self.item_ids),
            "workflow_id": self.workflow_id,
            "stages": dict(self.stages),
        }


def decode_base64_payload(value: Optional[str]) -> bytes:
    """Decode raw or data-URL base64. Undecodable input yields empty bytes."""

    raw = (value or "").strip()
    if raw.startswith("data:") and "," in raw:
        raw = raw.split(",", 1)[1]
    if not raw:
        return b""
    try:
        return base64.b64decode(raw + "=" * (-len(raw) % 4), validate=False)
    except (binascii.Error, ValueError):
        return b""


def _persistable_media_url(image: Optional[str]) -> Optional[str]:
    value = (image or "").strip()
    if value.startswith(("http://", "https://")):
        return value
    return None


def _settled(task: "asyncio.Task[StageResult[str]]", stage: str, fallback_value: str) -> StageResult[str]:
    if task.cancelled():
        return fallback(stage, fallback_value, DEADLINE_REASON)
    exc = task.exception()
    if exc is not None:
        logger.error("submission_stage_crashed", stage=stage, error_type=type(exc).__name__, error=str(exc))
        return fallback(stage, fallback_value, FAILURE_UNEXPECTED)
    return task.result()


class SubmissionPipeline:
    def __init__(
        self,
        session: Optional[Session],
        *,
        provider: Optional[AIProvider] = None,
        gateway: Optional[MessagingGateway] = None,
        clock: Clock = utc_now,
        deadline_seconds: Optional[float] = None,
        runtime: Optional[RuntimeConfig] = None,
    ) -> None:
        self._session = session
        self._provider = provider
        self._gateway = gateway
        self._clock = clock
        self._deadline_seconds = deadline_seconds or get_settings().submission_deadline_seconds
        self._runtime = runtime

    def _provider_or_default(self) -> AIProvider:
        return self._provider or get_ai_provider()

    async def run(self, request: SubmissionRequest) -> SubmissionResult:
        """Run every stage; never raises on adapter failures and never blocks past the deadline."""

        loop = asyncio.get_running_loop()
        deadline = loop.time() + self._deadline_seconds
        language = normalize_language(request.language)
        runtime = self._runtime or load_runtime_config()
        platforms = normalize_platforms(request.platforms, default=runtime.default_platforms)
        provider = self._provider_or_default()

        transcription_task = asyncio.ensure_future(
            transcribe_audio(request.audio, language=language, provider=provider)
        )
        vision_task = asyncio.ensure_future(describe_image(request.image, language=language, provider=provider))
        _, pending = await asyncio.wait({transcription_task, vision_task}, timeout=self._deadline_seconds)
        for task in pending:
            task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)
            logger.warning("submission_stages_cancelled", stages=len(pending))

        transcription = _settled(
            transcription_task,
            TRANSCRIPTION_STAGE,
            fallback_transcript(FAILURE_UNEXPECTED, language),
        )
        vision = _settled(vision_task, VISION_STAGE, default_description(language))

        remaining = max(deadline - loop.time(), 0.0)
        generation = await generate_content(
            transcript=transcription.value,
            description=vision.value,
            language=language,
            platforms=platforms,
            timeout_seconds=remaining,
            provider=provider,
        )

        stages: Dict[str, Dict[str, Any]] = {
            TRANSCRIPTION_STAGE: transcription.summary(),
            VISION_STAGE: vision.summary(),
            generation.stage: generation.summary(),
        }
        item_ids: List[str] = []
        workflow_id: Optional[str] = None

        if request.user_id and self._session is not None:
            persistence, items, user = self._persist(request, transcription.value, generation.value)
            stages[PERSISTENCE_STAGE] = persistence.summary()
            item_ids = [item.id for item in items]
            if items and user is not None and request.request_approval:
                approval = await self._request_approval(user, items)
                stages[APPROVAL_STAGE] = approval.summary()
                workflow_id = approval.value

        logger.info(
            "submission_processed",
            user_id=request.user_id,
            language=language,
            platforms=platforms,
            item_ids=item_ids,
            workflow_id=workflow_id,
            stage_outcomes={name: stage["outcome"] for name, stage in stages.items()},
        )
        return SubmissionResult(
            transcript=transcription.value,
            language=language,
            content=generation.value,
            item_ids=item_ids,
            workflow_id=workflow_id,
            stages=stages,
        )

    def _persist(
        self,
        request: SubmissionRequest,
        transcript: str,
        content: GeneratedContent,
    ) -> tuple[StageResult[int], List[ContentItem], Optional[User]]:
        assert self._session is not None
        user = self._session.get(User, request.user_id)
        if user is None:
            logger.warning("submission_user_not_found", user_id=request.user_id)
            return error(PERSISTENCE_STAGE, 0, "user_not_found"), [], None
        items = save_generated_content(
            self._session,
            user_id=user.id,
            content=content,
            transcript=transcript,
            media_url=_persistable_media_url(request.image),
            now=self._clock(),
        )
        return success(PERSISTENCE_STAGE, len(items)), items, user

    async def _request_approval(self, user: User, items: Sequence[ContentItem]) -> StageResult[Optional[str]]:
        from src.workflows.engine import ApprovalWorkflowEngine, RecipientMissing

        assert self._session is not None
        engine = ApprovalWorkflowEngine(
            self._session,
            gateway=self._gateway,
            clock=self._clock,
            content_requester=ContentRequestService(self._session, provider=self._provider, clock=self._clock),
            runtime=self._runtime,
        )
        try:
            record = await engine.create_approval(user=user, items=items)
        except RecipientMissing:
            return error(APPROVAL_STAGE, None, "user_phone_missing")
        return success(APPROVAL_STAGE, record.id)


class ContentRequestService:
    """Generation requests issued from the messaging side: suggestion picks and edit rewrites."""

    def __init__(
        self,
        session: Session,
        *,
        provider: Optional[AIProvider] = None,
        clock: Clock = utc_now,
        deadline_seconds: Optional[float] = None,
        runtime: Optional[RuntimeConfig] = None,
    ) -> None:
        self._session = session
        self._provider = provider
        self._clock = clock
        self._deadline_seconds = deadline_seconds or get_settings().submission_deadline_seconds
        self._runtime = runtime

    async def generate_from_idea(self, *, user: User, idea: str, language: str) -> List[ContentItem]:
        language = normalize_language(language)
        runtime = self._runtime or load_runtime_config()
        generation = await generate_content(
            transcript=idea,
            description=default_description(language),
            language=language,
            platforms=list(runtime.default_platforms),
            timeout_seconds=self._deadline_seconds,
            provider=self._provider or get_ai_provider(),
        )
        logger.info("idea_generation_completed", user_id=user.id, outcome=generation.outcome)
        return save_generated_content(
            self._session,
            user_id=user.id,
            content=generation.value,
            transcript=idea,
            now=self._clock(),
        )

    async def regenerate(
        self,
        *,
        user: User,
        items: Sequence[ContentItem],
        instructions: str,
        language: str,
    ) -> List[ContentItem]:
        language = normalize_language(language)
        runtime = self._runtime or load_runtime_config()
        platforms = normalize_platforms([item.platform for item in items], default=runtime.default_platforms)
        transcript = next((item.transcript for item in items if item.transcript), "") or instructions
        media_url = next((item.media_url for item in items if item.media_url), None)
        generation = await generate_content(
            transcript=transcript,
            description=default_description(language),
            language=language,
            platforms=platforms,
            timeout_seconds=self._deadline_seconds,
            provider=self._provider or get_ai_provider(),
            edit_instructions=instructions,
            previous_caption=items[0].caption if items else None,
        )
        logger.info(
            "edit_regeneration_completed",
            user_id=user.id,
            outcome=generation.outcome,
            success=generation.outcome == OUTCOME_SUCCESS,
        )
        return save_generated_content(
            self._session,
            user_id=user.id,
            content=generation.value,
            transcript=transcript,
            media_url=media_url,
            now=self._clock(),
        )


def build_submission_request(
    *,
    audio: str,
    language: Optional[str],
    image: Optional[str] = None,
    user_id: Optional[str] = None,
    platforms: Optional[Sequence[str]] = None,
    request_approval: bool = True,
) -> SubmissionRequest:
    return SubmissionRequest(
        audio=decode_base64_payload(audio),
        language=normalize_language(language),
        image=(image or "").strip() or None,
        user_id=(user_id or "").strip() or None,
        platforms=list(platforms) if platforms else None,
        request_approval=request_approval,
    )
