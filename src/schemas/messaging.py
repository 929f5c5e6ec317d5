"""Pydantic schemas for inbound messaging."""

from __future__ import annotations

from pydantic import BaseModel


class InboundSms(BaseModel):
    from_number: str
    body: str = ""
    message_sid: str = ""
