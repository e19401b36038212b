from typing import TYPE_CHECKING, Any

from prompt_toolkit.buffer import Buffer
from prompt_toolkit.completion import Completer, Completion
from prompt_toolkit.document import Document
from prompt_toolkit.formatted_text.utils import split_lines
from prompt_toolkit.layout.controls import BufferControl
from prompt_toolkit.lexers import Lexer
from prompt_toolkit.selection import SelectionState

from chat_composer.candidates import detect_candidate
from chat_composer.models import SelectionRange
from chat_composer.rendering import to_formatted_text

if TYPE_CHECKING:
    from chat_composer.controller import ComposerController


class MentionCompletion(Completion):
    def __init__(self, text: str, user_id: str, display_name: str, **kwargs: Any):
        super().__init__(text, **kwargs)
        self.user_id = user_id
        self.display_name = display_name


class MentionCompleter(Completer):
    def __init__(self, app_ref: "ComposerController"):
        self.app_ref = app_ref

    def get_mention_candidates(self) -> list[dict[str, str]]:
        directory = self.app_ref.user_directory
        if directory is None:
            return []
        candidates: list[dict[str, str]] = []
        seen_ids: set[str] = set()
        for user in directory.list_users():
            user_id = str(user.get("id", "")).strip()
            name = str(user.get("name", "")).strip()
            if not user_id or not name or user_id in seen_ids:
                continue
            seen_ids.add(user_id)
            candidates.append(
                {"id": user_id, "name": name, "status": str(user.get("status", ""))}
            )
        return candidates

    def get_completions(self, document, complete_event):
        cursor = document.cursor_position
        candidate = detect_candidate(
            SelectionRange.caret(cursor), document.text, self.app_ref.state.mentions
        )
        if candidate is None:
            return

        term_cf = candidate.term.casefold()
        ranked = sorted(
            self.get_mention_candidates(),
            key=lambda item: (
                not item["name"].casefold().startswith(term_cf),
                item["name"].casefold(),
            ),
        )
        for item in ranked:
            if term_cf and term_cf not in item["name"].casefold():
                continue
            # start_position only reaches back to the caret; ComposerBuffer
            # replaces the rest of the token when the completion is applied.
            yield MentionCompletion(
                f"@{item['name']} ",
                user_id=item["id"],
                display_name=item["name"],
                start_position=candidate.start_index - cursor,
                display=item["name"],
                display_meta=item["status"] or "",
            )


class ComposerBuffer(Buffer):
    """Input buffer that routes every edit through the composer.

    Text changes go to ``apply_input`` and caret moves to ``set_selection``.
    A refused deletion puts the composer's text back and selects the mention.
    Applying a ``MentionCompletion`` goes through ``add_mention``, so the
    inserted name carries its annotation.
    """

    def __init__(self, app_ref: "ComposerController", **kwargs: Any):
        self.app_ref = app_ref
        self._syncing = False
        kwargs.setdefault("completer", MentionCompleter(app_ref))
        super().__init__(**kwargs)
        self.on_text_changed += self._text_edited
        self.on_cursor_position_changed += self._cursor_moved

    def current_selection(self) -> SelectionRange:
        if self.selection_state is None:
            return SelectionRange.caret(self.cursor_position)
        start, end = self.document.selection_range()
        return SelectionRange(start=start, end=end)

    def apply_completion(self, completion: Completion) -> None:
        if not isinstance(completion, MentionCompletion):
            super().apply_completion(completion)
            return
        if self.complete_state:
            self.go_to_completion(None)
        self.complete_state = None

        controller = self.app_ref
        if controller.state.text != self.text:
            controller.apply_input(self.text, self.current_selection())
        controller.set_selection(SelectionRange.caret(self.cursor_position))
        mention = controller.add_mention(completion.user_id, completion.display_name)
        if mention is not None:
            self.load_composer_state()

    def load_composer_state(self) -> None:
        state = self.app_ref.state
        self._syncing = True
        try:
            self.set_document(Document(state.text, state.selection.end))
            if not state.selection.is_caret:
                self.selection_state = SelectionState(state.selection.start)
        finally:
            self._syncing = False

    def _text_edited(self, _buffer: Buffer) -> None:
        if self._syncing:
            return
        if not self.app_ref.apply_input(self.text, self.current_selection()):
            self.load_composer_state()

    def _cursor_moved(self, _buffer: Buffer) -> None:
        if self._syncing:
            return
        self.app_ref.set_selection(self.current_selection())


class ComposerLexer(Lexer):
    def __init__(self, app_ref: "ComposerController"):
        self.app_ref = app_ref

    def lex_document(self, document):
        state = self.app_ref.state
        if document.text == state.text:
            fragments = to_formatted_text(document.text, state.mentions)
        else:
            # Mentions are only known for the text the composer has seen.
            fragments = [("", document.text)]
        lines = [
            [fragment for fragment in line if fragment[1]]
            for line in split_lines(fragments)
        ]

        def get_line_tokens(line_num):
            if line_num < len(lines):
                return lines[line_num]
            return []

        return get_line_tokens


def build_input_control(app_ref: "ComposerController") -> BufferControl:
    buffer = ComposerBuffer(app_ref, complete_while_typing=True)
    return BufferControl(buffer=buffer, lexer=ComposerLexer(app_ref))
