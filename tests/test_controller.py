import asyncio

import pytest

from chat_composer.controller import ComposerController, MessageTooLongError
from chat_composer.event_bus import EventBus
from chat_composer.events import (
    DraftSavedEvent,
    MessageDeletedEvent,
    MessageUpdatedEvent,
)
from chat_composer.models import (
    ComposerConfig,
    MentionAnnotation,
    MentionCandidate,
    Message,
    MessageReference,
    Segment,
    SelectionRange,
)
from chat_composer.repositories import InMemoryDraftRepository
from chat_composer.services import DraftService


class FakeMessageLookup:
    def __init__(self, messages: dict[str, Message] | None = None):
        self.messages = messages or {}
        self.gate: asyncio.Event | None = None

    async def get_message_by_id(self, conversation_id: str, message_id: str):
        if self.gate is not None:
            await self.gate.wait()
        return self.messages.get(message_id)


class FakeUserDirectory:
    def __init__(self, users: dict[str, str]):
        self.users = users

    def get_display_name(self, user_id: str) -> str | None:
        return self.users.get(user_id)

    def list_users(self) -> list[dict[str, str]]:
        return [{"id": key, "name": value} for key, value in self.users.items()]


@pytest.fixture
def repository() -> InMemoryDraftRepository:
    return InMemoryDraftRepository()


@pytest.fixture
def lookup() -> FakeMessageLookup:
    return FakeMessageLookup()


@pytest.fixture
def controller(repository, lookup) -> ComposerController:
    service = DraftService(repository, lookup)
    directory = FakeUserDirectory({"u-bob": "bob", "u-alice": "alice"})
    composer = ComposerController(service, user_directory=directory)
    composer.state.conversation_id = "conv-1"
    return composer


def load_text(
    controller: ComposerController, text: str, mentions: list[MentionAnnotation]
) -> None:
    controller.state.text = text
    controller.state.mentions = list(mentions)
    controller.state.selection = SelectionRange.caret(len(text))
    controller.recompute()


def bob_at(start: int) -> MentionAnnotation:
    return MentionAnnotation(start_index=start, length=4, user_id="u-bob")


def test_typing_at_token_opens_candidate(controller) -> None:
    assert controller.apply_input("hello @al", SelectionRange.caret(9)) is True
    assert controller.state.candidate == MentionCandidate(start_index=6, term="al")
    assert controller.state.draft_dirty is True


def test_add_mention_replaces_candidate_token(controller) -> None:
    controller.apply_input("hello @al", SelectionRange.caret(9))
    mention = controller.add_mention("u-alice")

    assert mention == MentionAnnotation(start_index=6, length=6, user_id="u-alice")
    assert controller.state.text == "hello @alice "
    assert controller.state.mentions == [mention]
    assert controller.state.selection == SelectionRange.caret(13)
    assert controller.state.candidate is None
    assert controller.state.segments == [
        Segment(content="hello "),
        Segment(content="@alice", is_mention=True),
        Segment(content=" "),
    ]


def test_add_mention_mid_text_reuses_following_space(controller) -> None:
    load_text(controller, "hey @al there @bob", [bob_at(14)])
    controller.set_selection(SelectionRange.caret(7))
    mention = controller.add_mention("u-alice", "alice")

    assert controller.state.text == "hey @alice there @bob"
    assert controller.state.mentions == [mention, bob_at(17)]


def test_add_mention_without_candidate_is_ignored(controller) -> None:
    load_text(controller, "plain", [])
    assert controller.add_mention("u-bob") is None
    assert controller.state.text == "plain"


def test_end_mention_flow_clears_candidate(controller) -> None:
    controller.apply_input("@b", SelectionRange.caret(2))
    controller.end_mention_flow()
    assert controller.state.candidate is None


def test_typing_before_mention_shifts_it(controller) -> None:
    load_text(controller, "hi @bob", [bob_at(3)])
    controller.set_selection(SelectionRange.caret(0))
    controller.apply_input("oh hi @bob", SelectionRange.caret(3))
    assert controller.state.mentions == [bob_at(6)]


def test_backspace_into_mention_selects_it_first(controller) -> None:
    load_text(controller, "hi @bob there", [bob_at(3)])
    controller.set_selection(SelectionRange.caret(7))

    accepted = controller.apply_input("hi @bo there", SelectionRange.caret(6))

    assert accepted is False
    assert controller.state.text == "hi @bob there"
    assert controller.state.selection == SelectionRange(start=3, end=7)
    assert controller.state.mentions == [bob_at(3)]

    accepted = controller.apply_input("hi  there", SelectionRange.caret(3))
    assert accepted is True
    assert controller.state.text == "hi  there"
    assert controller.state.mentions == []


def test_overwriting_mention_character_destroys_it(controller) -> None:
    load_text(controller, "hi @bob there", [bob_at(3)])
    controller.set_selection(SelectionRange(start=4, end=5))
    controller.apply_input("hi @Xob there", SelectionRange.caret(5))
    assert controller.state.mentions == []


def test_prepare_message_trims_and_reanchors(controller) -> None:
    load_text(controller, "  hi @bob  \n", [bob_at(5)])
    draft = controller.prepare_message()
    assert draft.text == "hi @bob"
    assert draft.mentions == [bob_at(3)]
    assert draft.reply is None


def test_prepare_message_empty_returns_none(controller) -> None:
    load_text(controller, "   ", [])
    assert controller.prepare_message() is None


def test_prepare_message_too_long(repository) -> None:
    composer = ComposerController(
        DraftService(repository), config=ComposerConfig(max_message_length=5)
    )
    load_text(composer, "too long text", [])
    with pytest.raises(MessageTooLongError) as excinfo:
        composer.prepare_message()
    assert excinfo.value.limit == 5


def test_send_resets_composition_and_clears_draft(controller, repository) -> None:
    reply_target = Message(id="m-1", conversation_id="conv-1")
    controller.reply_to(reply_target)
    load_text(controller, "hi @bob", [bob_at(3)])
    controller.persist_draft()
    assert repository.get("draft|conv-1") is not None

    draft = controller.send()

    assert draft.text == "hi @bob"
    assert draft.reply == MessageReference(message_id="m-1")
    assert controller.state.text == ""
    assert controller.state.mentions == []
    assert controller.state.reply is None
    assert repository.get("draft|conv-1") is None


def test_persist_draft_only_when_dirty(controller, repository) -> None:
    assert controller.persist_draft() is False
    controller.apply_input("hello", SelectionRange.caret(5))
    assert controller.persist_draft() is True
    assert repository.get("draft|conv-1")["text"] == "hello"
    assert controller.persist_draft() is False


def test_persist_draft_publishes_event(controller) -> None:
    bus = EventBus()
    seen: list[str] = []
    bus.subscribe(DraftSavedEvent, lambda event: seen.append(event.conversation_id))
    controller.register_event_handlers(bus)

    controller.apply_input("x", SelectionRange.caret(1))
    controller.persist_draft()
    bus.drain()
    assert seen == ["conv-1"]


def test_reply_to_requires_replyable_message(controller) -> None:
    unreplyable = Message(id="m-1", conversation_id="c", replyable=False)
    assert controller.reply_to(unreplyable) is False
    assert controller.reply_to(Message(id="m-2", conversation_id="c")) is True
    assert controller.state.reply_message_id == "m-2"
    assert controller.reply_to(Message(id="m-2", conversation_id="c")) is False


def test_edit_message_loads_text_and_skips_draft_writes(
    controller, repository, lookup
) -> None:
    quoted = Message(id="m-0", conversation_id="conv-1")
    lookup.messages["m-0"] = quoted
    message = Message(
        id="m-5",
        conversation_id="conv-1",
        text="hi @bob",
        mentions=[bob_at(3)],
        editable=True,
        quote=MessageReference(message_id="m-0"),
    )

    assert asyncio.run(controller.edit_message(message)) is True
    assert controller.state.is_editing
    assert controller.state.text == "hi @bob"
    assert controller.state.mentions == [bob_at(3)]
    assert controller.state.selection == SelectionRange.caret(7)
    assert controller.state.reply == quoted

    controller.apply_input("hi @bob!", SelectionRange.caret(8))
    assert controller.persist_draft() is False
    assert repository.get("draft|conv-1") is None


def test_edit_message_rejects_uneditable(controller) -> None:
    message = Message(id="m-5", conversation_id="conv-1", text="x")
    assert asyncio.run(controller.edit_message(message)) is False


def test_activate_conversation_restores_draft_and_reply(
    controller, repository, lookup
) -> None:
    lookup.messages["m-1"] = Message(id="m-1", conversation_id="conv-2")
    repository.set(
        "draft|conv-2",
        {
            "text": "hi @bob",
            "mentions": [{"startIndex": 3, "length": 4, "userId": "u-bob"}],
            "reply": {"messageId": "m-1"},
        },
    )

    draft = asyncio.run(controller.activate_conversation("conv-2"))

    assert draft.text == "hi @bob"
    assert draft.mentions == [bob_at(3)]
    assert draft.reply == MessageReference(message_id="m-1")
    assert controller.state.selection == SelectionRange.caret(7)
    assert controller.state.draft_dirty is False


def test_activate_conversation_drops_unreplyable_target(
    controller, repository, lookup
) -> None:
    lookup.messages["m-1"] = Message(id="m-1", conversation_id="c", replyable=False)
    repository.set(
        "draft|conv-2", {"text": "x", "mentions": [], "reply": {"messageId": "m-1"}}
    )

    asyncio.run(controller.activate_conversation("conv-2"))
    assert controller.state.reply is None


def test_activate_conversation_legacy_draft(controller, repository) -> None:
    repository.set("draft|conv-2", "draft text")
    draft = asyncio.run(controller.activate_conversation("conv-2"))
    assert draft.text == "draft text"
    assert draft.mentions == []
    assert draft.reply is None


def test_activate_conversation_saves_pending_draft_first(
    controller, repository
) -> None:
    controller.apply_input("unsent", SelectionRange.caret(6))
    asyncio.run(controller.activate_conversation("conv-2"))
    assert repository.get("draft|conv-1")["text"] == "unsent"
    assert controller.state.text == ""


def test_stale_reply_resolution_is_discarded(
    controller, repository, lookup
) -> None:
    lookup.messages["m-1"] = Message(id="m-1", conversation_id="conv-a")
    repository.set(
        "draft|conv-a", {"text": "a", "mentions": [], "reply": {"messageId": "m-1"}}
    )
    repository.set("draft|conv-b", {"text": "b", "mentions": [], "reply": {}})

    async def scenario() -> None:
        lookup.gate = asyncio.Event()
        first = asyncio.create_task(controller.activate_conversation("conv-a"))
        await asyncio.sleep(0)
        await controller.activate_conversation("conv-b")
        lookup.gate.set()
        await first

    asyncio.run(scenario())
    assert controller.state.conversation_id == "conv-b"
    assert controller.state.text == "b"
    assert controller.state.reply is None


def test_referenced_message_deleted_clears_reply(controller) -> None:
    controller.reply_to(Message(id="m-1", conversation_id="conv-1"))
    controller.on_referenced_message_deleted("other")
    assert controller.state.reply_message_id == "m-1"
    controller.on_referenced_message_deleted("m-1")
    assert controller.state.reply is None


def test_referenced_message_updated_replaces_reply(controller) -> None:
    controller.reply_to(Message(id="m-1", conversation_id="conv-1", text="old"))
    updated = Message(id="m-1b", conversation_id="conv-1", text="new")
    controller.on_referenced_message_updated("m-1", updated)
    assert controller.state.reply == updated


def test_bus_notifications_reach_reply_handlers(controller) -> None:
    bus = EventBus()
    controller.register_event_handlers(bus)
    controller.reply_to(Message(id="m-1", conversation_id="conv-1"))

    updated = Message(id="m-2", conversation_id="conv-1")
    bus.publish(
        MessageUpdatedEvent(source="test", original_message_id="m-1", message=updated)
    )
    bus.drain()
    assert controller.state.reply == updated

    bus.publish(MessageDeletedEvent(source="test", message_id="m-2"))
    bus.drain()
    assert controller.state.reply is None


def test_cancel_reply_keeps_text_when_asked(controller) -> None:
    controller.reply_to(Message(id="m-1", conversation_id="conv-1"))
    load_text(controller, "keep me", [])
    controller.cancel_reply(reset_draft=False)
    assert controller.state.reply is None
    assert controller.state.text == "keep me"

    controller.cancel_reply()
    assert controller.state.text == ""
