from __future__ import annotations

from dataclasses import dataclass, field

from chat_composer.models import (
    CompositionDraft,
    MentionAnnotation,
    MentionCandidate,
    Message,
    Segment,
    SelectionRange,
)


@dataclass
class ComposerState:
    conversation_id: str | None = None
    text: str = ""
    selection: SelectionRange = field(default_factory=SelectionRange)
    mentions: list[MentionAnnotation] = field(default_factory=list)
    reply: Message | None = None
    editing: Message | None = None

    candidate: MentionCandidate | None = None
    segments: list[Segment] = field(default_factory=list)

    draft_dirty: bool = False
    activation_token: int = 0

    @property
    def is_editing(self) -> bool:
        return self.editing is not None

    @property
    def reply_message_id(self) -> str | None:
        return self.reply.id if self.reply is not None else None

    @property
    def draft(self) -> CompositionDraft:
        return CompositionDraft(
            text=self.text,
            mentions=list(self.mentions),
            reply=self.reply.to_reference() if self.reply is not None else None,
        )
