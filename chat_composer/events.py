from __future__ import annotations

from datetime import datetime
from typing import Literal
from uuid import uuid4

from pydantic import BaseModel, Field

from chat_composer.models import Message


class AppEvent(BaseModel):
    event_id: str = Field(default_factory=lambda: uuid4().hex)
    ts: str = Field(
        default_factory=lambda: datetime.now().isoformat(timespec="seconds")
    )
    topic: str
    source: str


class MessageDeletedEvent(AppEvent):
    topic: Literal["message_deleted"] = "message_deleted"
    message_id: str


class MessageUpdatedEvent(AppEvent):
    topic: Literal["message_updated"] = "message_updated"
    original_message_id: str
    message: Message


class DraftSavedEvent(AppEvent):
    topic: Literal["draft_saved"] = "draft_saved"
    conversation_id: str
