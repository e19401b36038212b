from __future__ import annotations

import html
import re
from collections.abc import Sequence

from chat_composer.constants import (
    LINE_BREAK_MARKER,
    MENTION_CSS_CLASS,
    MENTION_STYLE_CLASS,
    TRAILING_SPACE_MARKER,
)
from chat_composer.mentions import sort_mentions
from chat_composer.models import MentionAnnotation, Segment

_NEWLINE_RE = re.compile(r"\r\n|\r|\n")


def split_pieces(text: str, mentions: Sequence[MentionAnnotation]) -> list[str]:
    """Cut ``text`` into alternating plain and mention pieces.

    Even indexes are plain text (possibly empty), odd indexes are mentions.
    Mentions are cut from the right so earlier offsets stay valid.
    """
    pieces = [text]
    for mention in reversed(sort_mentions(mentions)):
        current = pieces.pop(0)
        pieces[0:0] = [
            current[: mention.start_index],
            current[mention.start_index : mention.end_index],
            current[mention.end_index :],
        ]
    return pieces


def escape_piece(piece: str, line_break_marker: str = LINE_BREAK_MARKER) -> str:
    return _NEWLINE_RE.sub(line_break_marker, html.escape(piece, quote=True))


def render_segments(
    text: str,
    mentions: Sequence[MentionAnnotation],
    line_break_marker: str = LINE_BREAK_MARKER,
    trailing_space_marker: str = TRAILING_SPACE_MARKER,
) -> list[Segment]:
    segments = [
        Segment(content=escape_piece(piece, line_break_marker), is_mention=idx % 2 == 1)
        for idx, piece in enumerate(split_pieces(text, mentions))
    ]
    last = segments[-1]
    if last.content.endswith(line_break_marker):
        # A trailing blank line has no height without something on it.
        segments[-1] = Segment(
            content=last.content + trailing_space_marker, is_mention=last.is_mention
        )
    return segments


def render_html(segments: Sequence[Segment]) -> str:
    mention_attributes = f' class="{MENTION_CSS_CLASS}"'
    return "".join(
        "<span{}>{}</span>".format(
            mention_attributes if segment.is_mention else "", segment.content
        )
        for segment in segments
    )


def to_formatted_text(
    text: str, mentions: Sequence[MentionAnnotation], style: str = ""
) -> list[tuple[str, str]]:
    """Unescaped ``(style, text)`` fragments for terminal rendering."""
    fragments: list[tuple[str, str]] = []
    for idx, piece in enumerate(split_pieces(text, mentions)):
        if not piece:
            continue
        fragments.append((MENTION_STYLE_CLASS if idx % 2 else style, piece))
    return fragments
