from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from chat_composer.candidates import detect_candidate
from chat_composer.edge_deletion import detect_edge_deletion
from chat_composer.event_bus import EventBus
from chat_composer.events import (
    DraftSavedEvent,
    MessageDeletedEvent,
    MessageUpdatedEvent,
)
from chat_composer.mentions import clamp_mentions, infer_edit, insert_mention, reanchor
from chat_composer.models import (
    ComposerConfig,
    CompositionDraft,
    MentionAnnotation,
    Message,
    SelectionRange,
)
from chat_composer.rendering import render_segments
from chat_composer.state import ComposerState

if TYPE_CHECKING:
    from chat_composer.repositories.interfaces import UserDirectoryProtocol
    from chat_composer.services.draft_service import DraftService

logger = logging.getLogger(__name__)


class MessageTooLongError(ValueError):
    def __init__(self, length: int, limit: int):
        super().__init__(f"Message is {length} characters long; the limit is {limit}.")
        self.length = length
        self.limit = limit


class ComposerController:
    """Owns the composition of one message at a time.

    Every mutating call leaves ``state`` consistent and re-derives the
    mention candidate and the rendered segments through ``recompute()``.
    Draft writes are only flagged here; whoever schedules ``persist_draft()``
    decides how often they hit the store.
    """

    def __init__(
        self,
        draft_service: "DraftService",
        config: ComposerConfig | None = None,
        user_directory: "UserDirectoryProtocol | None" = None,
        state: ComposerState | None = None,
    ):
        self.draft_service = draft_service
        self.config = config or ComposerConfig()
        self.user_directory = user_directory
        self.state = state or ComposerState()
        self.event_bus: EventBus | None = None
        self.recompute()

    def recompute(self) -> None:
        state = self.state
        state.candidate = detect_candidate(state.selection, state.text, state.mentions)
        state.segments = render_segments(
            state.text,
            state.mentions,
            line_break_marker=self.config.line_break_marker,
            trailing_space_marker=self.config.trailing_space_marker,
        )

    def set_selection(self, selection: SelectionRange) -> None:
        self.state.selection = selection.clamped(len(self.state.text))
        self.recompute()

    def apply_input(self, new_text: str, new_selection: SelectionRange) -> bool:
        """Apply a text change reported by the input widget.

        Returns ``False`` when the change was refused because it would have
        cut into a mention; the text is left as it was and the whole mention
        becomes the selection, so a second deletion removes it.
        """
        state = self.state
        old_text = state.text
        prior = state.selection
        new_selection = new_selection.clamped(len(new_text))
        length_delta = len(new_text) - len(old_text)

        edge_mention = detect_edge_deletion(
            prior, new_selection.start, length_delta, state.mentions
        )
        if edge_mention is not None:
            state.selection = SelectionRange(
                start=edge_mention.start_index, end=edge_mention.end_index
            )
            self.recompute()
            return False

        edit_start, edit_end, delta = infer_edit(
            old_text, new_text, prior, new_selection.start
        )
        state.mentions = reanchor(state.mentions, edit_start, edit_end, delta)
        state.text = new_text
        state.selection = new_selection
        if new_text != old_text:
            state.draft_dirty = True
        self.recompute()
        return True

    def add_mention(
        self, user_id: str, display_name: str | None = None
    ) -> MentionAnnotation | None:
        state = self.state
        candidate = state.candidate
        if candidate is None:
            return None
        if display_name is None and self.user_directory is not None:
            display_name = self.user_directory.get_display_name(user_id)
        if not display_name:
            logger.warning("No display name for mentioned user %s.", user_id)
            return None

        start = candidate.start_index
        replaced_end = start + len(candidate.term) + 1
        after = state.text[replaced_end:]
        if after.startswith(" "):
            after = after[1:]
            replaced_end += 1
        inserted = f"@{display_name} "
        new_text = f"{state.text[:start]}{inserted}{after}"

        mention = MentionAnnotation(
            start_index=start, length=len(display_name) + 1, user_id=user_id
        )
        remaining = reanchor(
            state.mentions, start, replaced_end, len(new_text) - len(state.text)
        )
        state.mentions = insert_mention(remaining, mention)
        state.text = new_text
        state.selection = SelectionRange.caret(start + len(inserted))
        state.draft_dirty = True
        self.recompute()
        self.end_mention_flow()
        return mention

    def end_mention_flow(self) -> None:
        self.state.candidate = None

    def prepare_message(self) -> CompositionDraft | None:
        state = self.state
        leading_trimmed = state.text.lstrip()
        removed = len(state.text) - len(leading_trimmed)
        mentions = reanchor(state.mentions, 0, 0, -removed)
        message_text = leading_trimmed.rstrip()
        mentions = clamp_mentions(mentions, len(message_text))

        if len(message_text) > self.config.max_message_length:
            raise MessageTooLongError(len(message_text), self.config.max_message_length)
        if not message_text and not state.is_editing:
            return None
        return CompositionDraft(
            text=message_text,
            mentions=mentions,
            reply=state.reply.to_reference() if state.reply is not None else None,
        )

    def send(self) -> CompositionDraft | None:
        """Hand the outgoing message to the caller and start a fresh draft."""
        draft = self.prepare_message()
        if draft is None:
            return None
        conversation_id = self.state.conversation_id
        self.cancel_editing(reset_draft=True)
        if conversation_id is not None:
            self.draft_service.clear(conversation_id)
        self.state.draft_dirty = False
        return draft

    def reset_draft(self) -> None:
        state = self.state
        state.mentions = []
        state.text = ""
        state.selection = SelectionRange()
        state.draft_dirty = True
        self.recompute()
        self.end_mention_flow()

    def cancel_reply(self, reset_draft: bool = True) -> None:
        if self.state.reply is not None:
            self.state.reply = None
            self.state.draft_dirty = True
        if reset_draft:
            self.reset_draft()

    def cancel_editing(self, reset_draft: bool = True) -> None:
        self.state.editing = None
        self.cancel_reply(reset_draft=reset_draft)

    def reply_to(self, message: Message) -> bool:
        state = self.state
        if not message.replyable:
            return False
        if state.reply is not None and state.reply.id == message.id:
            return False
        was_editing = state.is_editing
        self.cancel_reply(reset_draft=False)
        self.cancel_editing(reset_draft=was_editing)
        state.reply = message
        state.draft_dirty = True
        return True

    async def edit_message(self, message: Message) -> bool:
        state = self.state
        if not message.editable:
            return False
        if state.editing is not None and state.editing.id == message.id:
            return False
        self.cancel_editing(reset_draft=True)
        state.editing = message
        state.text = message.text
        state.mentions = clamp_mentions(message.mentions, len(message.text))
        state.selection = SelectionRange.caret(len(message.text))
        self.recompute()

        if message.quote is None:
            return True
        quoted = await self.draft_service.lookup_message(
            message.conversation_id, message.quote.message_id
        )
        if quoted is not None and state.editing is message:
            state.reply = quoted
        return True

    async def activate_conversation(self, conversation_id: str) -> CompositionDraft:
        """Switch to ``conversation_id`` and restore its draft.

        The reply target is resolved afterwards; if another conversation was
        activated in the meantime the result is dropped.
        """
        state = self.state
        if state.draft_dirty:
            self.persist_draft()

        state.activation_token += 1
        token = state.activation_token
        self.cancel_editing(reset_draft=True)
        state.conversation_id = conversation_id

        loaded = self.draft_service.load(conversation_id)
        state.text = loaded.text
        state.mentions = list(loaded.mentions)
        state.selection = SelectionRange.caret(len(loaded.text))
        state.draft_dirty = False
        self.recompute()
        self.end_mention_flow()

        if loaded.reply_message_id:
            message = await self.draft_service.resolve_reply(
                conversation_id, loaded.reply_message_id
            )
            if token != state.activation_token:
                logger.debug(
                    "Discarding reply target for inactive conversation %s.",
                    conversation_id,
                )
            elif message is not None:
                state.reply = message
        return state.draft

    def persist_draft(self) -> bool:
        state = self.state
        if not state.draft_dirty or state.conversation_id is None:
            return False
        saved = self.draft_service.save(
            state.conversation_id,
            state.text,
            state.mentions,
            state.reply,
            editing=state.is_editing,
        )
        state.draft_dirty = False
        if saved and self.event_bus is not None:
            self.event_bus.publish(
                DraftSavedEvent(
                    source="composer", conversation_id=state.conversation_id
                )
            )
        return saved

    def on_referenced_message_deleted(self, message_id: str) -> None:
        if self.state.reply_message_id == message_id:
            self.state.reply = None
            self.state.draft_dirty = True

    def on_referenced_message_updated(
        self, original_message_id: str, message: Message
    ) -> None:
        if self.state.reply_message_id == original_message_id:
            self.state.reply = message
            self.state.draft_dirty = True

    def register_event_handlers(self, bus: EventBus) -> None:
        self.event_bus = bus
        bus.subscribe(MessageDeletedEvent, self.on_message_deleted_event)
        bus.subscribe(MessageUpdatedEvent, self.on_message_updated_event)

    def on_message_deleted_event(self, event: MessageDeletedEvent) -> None:
        self.on_referenced_message_deleted(event.message_id)

    def on_message_updated_event(self, event: MessageUpdatedEvent) -> None:
        self.on_referenced_message_updated(event.original_message_id, event.message)
