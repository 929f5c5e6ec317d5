"""Twilio SMS webhook."""

from __future__ import annotations

from typing import Dict, Optional

from fastapi import APIRouter, Depends, Form, Header, Request, Response
from sqlalchemy.orm import Session
from twilio.request_validator import RequestValidator
from twilio.twiml.messaging_response import MessagingResponse

from src.core.clock import Clock, get_clock
from src.core.config import get_settings
from src.core.logger import get_logger, log_context
from src.core.metrics import record_message
from src.core.observability import capture_exception, sentry_scope
from src.messaging.gateway import MessagingGateway, get_messaging_gateway
from src.schemas.messaging import InboundSms
from src.storage.db import get_session
from src.workflows.engine import ApprovalWorkflowEngine


router = APIRouter(prefix="/sms", tags=["sms"])
logger = get_logger("chefsocial.messaging.webhook")

TWIML_MEDIA_TYPE = "application/xml"


def _empty_twiml() -> Response:
    return Response(content=str(MessagingResponse()), media_type=TWIML_MEDIA_TYPE)


def _signed_url(request: Request) -> str:
    base_url = get_settings().app_public_base_url.strip().rstrip("/")
    if not base_url:
        return str(request.url)
    query = f"?{request.url.query}" if request.url.query else ""
    return f"{base_url}{request.url.path}{query}"


def signature_is_valid(request: Request, params: Dict[str, str], signature: Optional[str]) -> bool:
    """Check the Twilio signature when verification is enabled and a token is configured."""

    settings = get_settings()
    auth_token = settings.twilio_auth_token.strip()
    if not settings.twilio_validate_signature or not auth_token:
        return True
    if not signature:
        return False
    return RequestValidator(auth_token).validate(_signed_url(request), params, signature)


@router.post("/webhook")
async def sms_webhook_endpoint(
    request: Request,
    from_number: str = Form(default="", alias="From"),
    body: str = Form(default="", alias="Body"),
    message_sid: str = Form(default="", alias="MessageSid"),
    twilio_signature: Optional[str] = Header(default=None, alias="X-Twilio-Signature"),
    session: Session = Depends(get_session),
    gateway: MessagingGateway = Depends(get_messaging_gateway),
    clock: Clock = Depends(get_clock),
) -> Response:
    form = await request.form()
    params = {key: str(value) for key, value in form.items()}
    if not signature_is_valid(request, params, twilio_signature):
        record_message(direction="inbound", status="invalid_signature")
        logger.warning("sms_webhook_signature_invalid", message_sid=message_sid or None)
        return _empty_twiml()

    inbound = InboundSms(from_number=from_number.strip(), body=body, message_sid=message_sid.strip())
    if not inbound.from_number:
        logger.warning("sms_webhook_sender_missing", message_sid=inbound.message_sid or None)
        return _empty_twiml()

    engine = ApprovalWorkflowEngine(session, gateway=gateway, clock=clock)
    with log_context(message_sid=inbound.message_sid), sentry_scope(
        request_id=getattr(request.state, "request_id", None)
    ):
        try:
            result = await engine.handle_inbound(
                from_number=inbound.from_number,
                body=inbound.body,
                message_id=inbound.message_sid or None,
            )
        except Exception as exc:
            session.rollback()
            capture_exception(exc)
            logger.exception("sms_webhook_failed", error_type=type(exc).__name__)
            return _empty_twiml()

        logger.info(
            "sms_webhook_processed",
            outcome=result.outcome,
            workflow_id=result.workflow_id,
            user_id=result.user_id,
            new_workflow_id=result.new_workflow_id,
        )
    return _empty_twiml()
