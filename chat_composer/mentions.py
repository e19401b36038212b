from __future__ import annotations

import logging
from collections.abc import Iterable

from chat_composer.models import MentionAnnotation, SelectionRange

logger = logging.getLogger(__name__)


def reanchor(
    mentions: Iterable[MentionAnnotation],
    edit_start: int,
    edit_end: int,
    length_delta: int,
) -> list[MentionAnnotation]:
    """Re-anchor mentions after ``[edit_start, edit_end)`` of the old text changed.

    Mentions overlapping the edited range are dropped, mentions at or after
    ``edit_end`` move by ``length_delta`` and everything before the edit is
    left alone. A pure insertion strictly inside a mention keeps that mention
    where it is instead of splitting it.
    """
    remaining: list[MentionAnnotation] = []
    point_insert = edit_start == edit_end
    for mention in mentions:
        if mention.end_index <= edit_start:
            remaining.append(mention)
        elif mention.start_index >= edit_end:
            remaining.append(mention.shifted(length_delta) if length_delta else mention)
        elif point_insert:
            remaining.append(mention)
        else:
            logger.debug(
                "Mention of %s at %s-%s overwritten by edit %s-%s",
                mention.user_id,
                mention.start_index,
                mention.end_index,
                edit_start,
                edit_end,
            )
    return remaining


def find_mention_at_position(
    mentions: Iterable[MentionAnnotation], position: int
) -> MentionAnnotation | None:
    return next((mention for mention in mentions if mention.contains(position)), None)


def sort_mentions(mentions: Iterable[MentionAnnotation]) -> list[MentionAnnotation]:
    return sorted(mentions, key=lambda mention: mention.start_index)


def insert_mention(
    mentions: Iterable[MentionAnnotation], mention: MentionAnnotation
) -> list[MentionAnnotation]:
    kept = [
        existing
        for existing in mentions
        if not existing.overlaps(mention.start_index, mention.end_index)
    ]
    kept.append(mention)
    return sort_mentions(kept)


def clamp_mentions(
    mentions: Iterable[MentionAnnotation], text_length: int
) -> list[MentionAnnotation]:
    """Drop mentions that fall outside the text or collide with an earlier one."""
    kept: list[MentionAnnotation] = []
    for mention in sort_mentions(mentions):
        if mention.end_index > text_length:
            continue
        if kept and mention.start_index < kept[-1].end_index:
            continue
        kept.append(mention)
    return kept


def mentions_are_consistent(
    mentions: Iterable[MentionAnnotation], text_length: int
) -> bool:
    previous_end = 0
    for mention in mentions:
        if mention.start_index < previous_end or mention.end_index > text_length:
            return False
        previous_end = mention.end_index
    return True


def _common_prefix_length(left: str, right: str) -> int:
    limit = min(len(left), len(right))
    idx = 0
    while idx < limit and left[idx] == right[idx]:
        idx += 1
    return idx


def infer_edit(
    old_text: str,
    new_text: str,
    prior_selection: SelectionRange,
    new_caret: int,
) -> tuple[int, int, int]:
    """Return ``(edit_start, edit_end, length_delta)`` in old-text coordinates.

    The caret is assumed to sit right after whatever was typed or pasted.
    When that does not match the actual change (programmatic updates, undo)
    the edit is recovered from the common prefix and suffix instead.
    """
    length_delta = len(new_text) - len(old_text)
    tail_length = len(new_text) - new_caret
    edit_start = min(prior_selection.start, new_caret)
    edit_end = len(old_text) - tail_length
    if (
        0 <= edit_start <= edit_end <= len(old_text)
        and 0 <= tail_length <= len(new_text)
        and old_text[:edit_start] == new_text[:edit_start]
        and old_text[edit_end:] == new_text[new_caret:]
    ):
        return edit_start, edit_end, length_delta

    prefix = _common_prefix_length(old_text, new_text)
    max_suffix = min(len(old_text), len(new_text)) - prefix
    suffix = 0
    while (
        suffix < max_suffix
        and old_text[len(old_text) - 1 - suffix] == new_text[len(new_text) - 1 - suffix]
    ):
        suffix += 1
    return prefix, len(old_text) - suffix, length_delta
