from __future__ import annotations

from collections.abc import Sequence

from chat_composer.mentions import find_mention_at_position
from chat_composer.models import MentionAnnotation, SelectionRange


def detect_edge_deletion(
    prior_selection: SelectionRange,
    new_caret: int,
    length_delta: int,
    mentions: Sequence[MentionAnnotation],
) -> MentionAnnotation | None:
    """Return the mention a single-character deletion just cut into.

    Only a deletion from a plain caret counts. When the caret did not move
    the character ahead of it was removed (Delete), otherwise the one
    behind it (Backspace). The caller is expected to undo the deletion and
    select the whole mention instead.
    """
    if not prior_selection.is_caret:
        return None
    if length_delta >= 0:
        return None
    forward_deleted = new_caret == prior_selection.start
    probe = new_caret + 1 if forward_deleted else new_caret
    return find_mention_at_position(mentions, probe)
