from __future__ import annotations

import re
from collections.abc import Sequence

from chat_composer.mentions import find_mention_at_position
from chat_composer.models import MentionAnnotation, MentionCandidate, SelectionRange

_WORD_BEFORE_RE = re.compile(r"\S*\Z")
_WORD_AFTER_RE = re.compile(r"\A\S*")
_MENTION_TOKEN_RE = re.compile(r"^@\S*$")
_WHITESPACE_RE = re.compile(r"\s")


def word_before(text: str, position: int) -> str:
    match = _WORD_BEFORE_RE.search(text[:position])
    return match.group(0) if match else ""


def word_after(text: str, position: int) -> str:
    match = _WORD_AFTER_RE.match(text[position:])
    return match.group(0) if match else ""


def detect_candidate(
    selection: SelectionRange,
    text: str,
    mentions: Sequence[MentionAnnotation],
) -> MentionCandidate | None:
    """Return the ``@term`` being typed at the caret or selection, if any.

    ``start_index`` points at the ``@`` and ``term`` is the whole token
    without it, including whatever follows the caret up to the next
    whitespace. The selection itself must not hold whitespace and neither
    of its ends may sit inside an existing mention.
    """
    start, end = selection.start, selection.end
    text_in_selection = text[start:end]
    before = word_before(text, start)

    if _WHITESPACE_RE.search(text_in_selection):
        return None
    if (
        find_mention_at_position(mentions, start) is not None
        or find_mention_at_position(mentions, end) is not None
    ):
        return None
    if not _MENTION_TOKEN_RE.match(before):
        return None

    term = f"{before[1:]}{text_in_selection}{word_after(text, end)}"
    return MentionCandidate(start_index=start - len(before), term=term)
