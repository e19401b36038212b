from typing import Any

from pydantic import BaseModel, ConfigDict, Field, model_validator

from chat_composer.constants import (
    DRAFT_KEY_PREFIX,
    DRAFT_STORE_FILE,
    LINE_BREAK_MARKER,
    LOCK_MAX_ATTEMPTS,
    LOCK_TIMEOUT_SECONDS,
    MAX_MESSAGE_LENGTH,
    TRAILING_SPACE_MARKER,
)


class MentionAnnotation(BaseModel):
    """A mention of ``user_id`` covering ``[start_index, end_index)`` of the text."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    start_index: int = Field(alias="startIndex", ge=0)
    length: int = Field(gt=0)
    user_id: str = Field(alias="userId")

    @property
    def end_index(self) -> int:
        return self.start_index + self.length

    def contains(self, position: int) -> bool:
        # Touching either boundary is not inside.
        return self.start_index < position < self.end_index

    def overlaps(self, start: int, end: int) -> bool:
        return self.start_index < end and start < self.end_index

    def shifted(self, delta: int) -> "MentionAnnotation":
        return self.model_copy(update={"start_index": self.start_index + delta})

    def to_dict(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "MentionAnnotation":
        return cls.model_validate(data)


class SelectionRange(BaseModel):
    model_config = ConfigDict(frozen=True)

    start: int = Field(default=0, ge=0)
    end: int = Field(default=0, ge=0)

    @model_validator(mode="after")
    def _check_order(self) -> "SelectionRange":
        if self.end < self.start:
            raise ValueError("selection end must not precede start")
        return self

    @classmethod
    def caret(cls, position: int) -> "SelectionRange":
        return cls(start=position, end=position)

    @property
    def is_caret(self) -> bool:
        return self.start == self.end

    def clamped(self, text_length: int) -> "SelectionRange":
        start = min(max(self.start, 0), text_length)
        end = min(max(self.end, start), text_length)
        return SelectionRange(start=start, end=end)


class MessageReference(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    message_id: str = Field(alias="messageId")
    hash: str | None = None

    def to_dict(self) -> dict[str, Any]:
        # Only the identifier is ever persisted.
        return {"messageId": self.message_id}


class Message(BaseModel):
    model_config = ConfigDict(extra="allow")

    id: str
    conversation_id: str
    sender_id: str = ""
    text: str = ""
    mentions: list[MentionAnnotation] = Field(default_factory=list)
    replyable: bool = True
    editable: bool = False
    quote: MessageReference | None = None

    def to_reference(self) -> MessageReference:
        return MessageReference(message_id=self.id)


class CompositionDraft(BaseModel):
    text: str = ""
    mentions: list[MentionAnnotation] = Field(default_factory=list)
    reply: MessageReference | None = None


class StoredDraft(BaseModel):
    """Persisted draft record, in its on-disk key names."""

    text: str = ""
    mentions: list[dict[str, Any]] = Field(default_factory=list)
    reply: dict[str, Any] = Field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return self.model_dump()


class LoadedDraft(BaseModel):
    text: str = ""
    mentions: list[MentionAnnotation] = Field(default_factory=list)
    reply_message_id: str | None = None


class MentionCandidate(BaseModel):
    model_config = ConfigDict(frozen=True)

    start_index: int
    term: str


class Segment(BaseModel):
    model_config = ConfigDict(frozen=True)

    content: str
    is_mention: bool = False


class ComposerConfig(BaseModel):
    draft_key_prefix: str = DRAFT_KEY_PREFIX
    draft_store_path: str = DRAFT_STORE_FILE
    max_message_length: int = Field(default=MAX_MESSAGE_LENGTH, gt=0)
    line_break_marker: str = LINE_BREAK_MARKER
    trailing_space_marker: str = TRAILING_SPACE_MARKER
    lock_timeout_seconds: float = Field(default=LOCK_TIMEOUT_SECONDS, gt=0)
    lock_max_attempts: int = Field(default=LOCK_MAX_ATTEMPTS, ge=1)
