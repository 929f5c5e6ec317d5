"""Voice note submission route."""

from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from src.ai.providers.base import AIProvider
from src.ai.providers.factory import get_ai_provider
from src.core.clock import Clock, get_clock
from src.messaging.gateway import MessagingGateway, get_messaging_gateway
from src.schemas.submission import VoiceProcessRequest, VoiceProcessResponse
from src.storage.db import get_session
from src.submission.service import SubmissionPipeline, build_submission_request


router = APIRouter(prefix="/voice", tags=["voice"])


@router.post("/process", response_model=VoiceProcessResponse)
async def process_voice_endpoint(
    payload: VoiceProcessRequest,
    session: Session = Depends(get_session),
    provider: AIProvider = Depends(get_ai_provider),
    gateway: MessagingGateway = Depends(get_messaging_gateway),
    clock: Clock = Depends(get_clock),
) -> VoiceProcessResponse:
    request = build_submission_request(
        audio=payload.audio,
        language=payload.language,
        image=payload.image,
        user_id=payload.user_id,
        platforms=payload.platforms,
        request_approval=payload.request_approval,
    )
    pipeline = SubmissionPipeline(session, provider=provider, gateway=gateway, clock=clock)
    result = await pipeline.run(request)
    return VoiceProcessResponse.model_validate(result.to_dict())
