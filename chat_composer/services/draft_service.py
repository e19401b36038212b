from __future__ import annotations

import logging
from collections.abc import Sequence
from typing import TYPE_CHECKING, Any

from pydantic import ValidationError

from chat_composer.constants import DRAFT_KEY_SEPARATOR
from chat_composer.mentions import clamp_mentions
from chat_composer.models import (
    ComposerConfig,
    LoadedDraft,
    MentionAnnotation,
    Message,
    MessageReference,
    StoredDraft,
)

if TYPE_CHECKING:
    from chat_composer.repositories.interfaces import (
        KeyValueStoreProtocol,
        MessageLookupProtocol,
    )

logger = logging.getLogger(__name__)


class DraftService:
    """Persists unsent drafts per conversation and restores them."""

    def __init__(
        self,
        repository: "KeyValueStoreProtocol",
        message_lookup: "MessageLookupProtocol | None" = None,
        config: ComposerConfig | None = None,
    ):
        self.repository = repository
        self.message_lookup = message_lookup
        self.config = config or ComposerConfig()

    def storage_key(self, conversation_id: str) -> str:
        return f"{self.config.draft_key_prefix}{DRAFT_KEY_SEPARATOR}{conversation_id}"

    def build_record(
        self,
        text: str,
        mentions: Sequence[MentionAnnotation],
        reply: MessageReference | Message | None,
    ) -> StoredDraft:
        reply_payload: dict[str, Any] = {}
        if isinstance(reply, Message):
            reply_payload = reply.to_reference().to_dict()
        elif isinstance(reply, MessageReference):
            reply_payload = reply.to_dict()
        return StoredDraft(
            text=text,
            mentions=[mention.to_dict() for mention in mentions],
            reply=reply_payload,
        )

    def save(
        self,
        conversation_id: str,
        text: str,
        mentions: Sequence[MentionAnnotation],
        reply: MessageReference | Message | None = None,
        *,
        editing: bool = False,
    ) -> bool:
        # Drafts only exist for new, unsent messages.
        if editing:
            return False
        record = self.build_record(text, mentions, reply)
        return self.repository.set(self.storage_key(conversation_id), record.to_dict())

    def clear(self, conversation_id: str) -> bool:
        return self.repository.delete(self.storage_key(conversation_id))

    def load(self, conversation_id: str) -> LoadedDraft:
        value = self.repository.get(self.storage_key(conversation_id))
        if value is None:
            return LoadedDraft()
        if isinstance(value, str):
            return LoadedDraft(text=value)
        if not isinstance(value, dict):
            logger.warning(
                "Unreadable draft for conversation %s ignored.", conversation_id
            )
            return LoadedDraft()

        text = value.get("text")
        if not isinstance(text, str):
            text = ""
        mentions = self.decode_mentions(value.get("mentions"), len(text))

        reply_message_id = None
        reply = value.get("reply")
        if isinstance(reply, dict):
            message_id = reply.get("messageId")
            if isinstance(message_id, str) and message_id:
                reply_message_id = message_id

        return LoadedDraft(
            text=text, mentions=mentions, reply_message_id=reply_message_id
        )

    def decode_mentions(self, raw: Any, text_length: int) -> list[MentionAnnotation]:
        if not isinstance(raw, list):
            return []
        decoded: list[MentionAnnotation] = []
        for entry in raw:
            try:
                decoded.append(MentionAnnotation.from_dict(entry))
            except ValidationError as exc:
                logger.warning("Invalid draft mention ignored: %s", exc)
        mentions = clamp_mentions(decoded, text_length)
        if len(mentions) != len(decoded):
            logger.warning(
                "Dropped %s draft mention(s) outside the draft text.",
                len(decoded) - len(mentions),
            )
        return mentions

    async def lookup_message(
        self, conversation_id: str, message_id: str
    ) -> Message | None:
        if self.message_lookup is None:
            return None
        try:
            return await self.message_lookup.get_message_by_id(
                conversation_id, message_id
            )
        except Exception as exc:
            logger.warning("Failed looking up message %s: %s", message_id, exc)
            return None

    async def resolve_reply(
        self, conversation_id: str, message_id: str
    ) -> Message | None:
        message = await self.lookup_message(conversation_id, message_id)
        if message is None:
            logger.debug("Reply target %s no longer exists.", message_id)
            return None
        if not message.replyable:
            logger.debug("Reply target %s is no longer replyable.", message_id)
            return None
        return message
