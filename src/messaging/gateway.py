"""Outbound text messaging: Twilio gateway plus an in-memory gateway for dev and tests."""

from __future__ import annotations

from dataclasses import dataclass
from functools import lru_cache
from typing import List, Optional, Protocol
import uuid

from twilio.base.exceptions import TwilioException, TwilioRestException
from twilio.http.async_http_client import AsyncTwilioHttpClient
from twilio.rest import Client

from src.core.config import get_settings
from src.core.errors import DeliveryFailure
from src.core.logger import get_logger
from src.core.metrics import record_message


logger = get_logger("chefsocial.messaging.gateway")

MAX_MESSAGE_LENGTH = 1600


@dataclass(frozen=True)
class DeliveryReceipt:
    provider: str
    to_number: str
    message_id: str


class MessagingGateway(Protocol):
    provider_name: str

    async def send(self, *, to_number: str, body: str) -> DeliveryReceipt:
        """Send one text message; raises DeliveryFailure."""

        raise NotImplementedError


def _clip_body(body: str) -> str:
    normalized = (body or "").strip()
    if len(normalized) <= MAX_MESSAGE_LENGTH:
        return normalized
    return normalized[: MAX_MESSAGE_LENGTH - 3].rstrip() + "..."


class TwilioMessagingGateway(MessagingGateway):
    provider_name = "twilio"

    def __init__(
        self,
        *,
        account_sid: str,
        auth_token: str,
        from_number: str,
        client: Optional[Client] = None,
    ) -> None:
        self._account_sid = account_sid.strip()
        self._auth_token = auth_token.strip()
        self._from_number = from_number.strip()
        self._client = client
        self._http_client: Optional[AsyncTwilioHttpClient] = None

    def _get_client(self) -> Client:
        if self._client is not None:
            return self._client
        if not self._account_sid or not self._auth_token:
            raise DeliveryFailure("twilio_credentials_missing")
        self._http_client = AsyncTwilioHttpClient()
        self._client = Client(self._account_sid, self._auth_token, http_client=self._http_client)
        return self._client

    async def send(self, *, to_number: str, body: str) -> DeliveryReceipt:
        if not self._from_number:
            raise DeliveryFailure("twilio_phone_number_missing", to_number=to_number)
        client = self._get_client()
        try:
            message = await client.messages.create_async(
                body=_clip_body(body),
                from_=self._from_number,
                to=to_number,
            )
        except TwilioRestException as exc:
            raise DeliveryFailure(
                f"twilio_send_failed status={exc.status} code={exc.code}",
                to_number=to_number,
                provider_code=str(exc.code) if exc.code is not None else None,
            ) from exc
        except (TwilioException, OSError) as exc:
            raise DeliveryFailure(f"twilio_transport_failed error={exc}", to_number=to_number) from exc
        return DeliveryReceipt(provider=self.provider_name, to_number=to_number, message_id=str(message.sid))

    async def aclose(self) -> None:
        if self._http_client is not None:
            await self._http_client.close()
            self._http_client = None


@dataclass(frozen=True)
class SentMessage:
    to_number: str
    body: str
    message_id: str


class LogMessagingGateway(MessagingGateway):
    """Keeps sent messages in memory and logs them instead of delivering."""

    provider_name = "log"

    def __init__(self) -> None:
        self.sent: List[SentMessage] = []

    async def send(self, *, to_number: str, body: str) -> DeliveryReceipt:
        message_id = f"log-{uuid.uuid4().hex[:16]}"
        self.sent.append(SentMessage(to_number=to_number, body=_clip_body(body), message_id=message_id))
        logger.info("log_gateway_message", to_number=to_number, message_id=message_id, length=len(body or ""))
        return DeliveryReceipt(provider=self.provider_name, to_number=to_number, message_id=message_id)

    def bodies_for(self, to_number: str) -> List[str]:
        return [message.body for message in self.sent if message.to_number == to_number]


async def deliver(gateway: MessagingGateway, *, to_number: str, body: str) -> Optional[DeliveryReceipt]:
    """Send a message, absorbing DeliveryFailure so callers keep their state intact."""

    try:
        receipt = await gateway.send(to_number=to_number, body=body)
    except DeliveryFailure as exc:
        record_message(direction="outbound", status="failed")
        logger.warning(
            "message_delivery_failed",
            provider=gateway.provider_name,
            to_number=to_number,
            provider_code=exc.provider_code,
            error=str(exc),
        )
        return None
    record_message(direction="outbound", status="sent")
    logger.info(
        "message_delivered",
        provider=gateway.provider_name,
        to_number=to_number,
        message_id=receipt.message_id,
    )
    return receipt


@lru_cache(maxsize=1)
def get_messaging_gateway() -> MessagingGateway:
    settings = get_settings()
    if settings.messaging_provider.strip().lower() == "twilio":
        return TwilioMessagingGateway(
            account_sid=settings.twilio_account_sid,
            auth_token=settings.twilio_auth_token,
            from_number=settings.twilio_phone_number,
        )
    return LogMessagingGateway()


def reset_messaging_gateway_cache() -> None:
    get_messaging_gateway.cache_clear()
