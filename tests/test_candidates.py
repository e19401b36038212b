from chat_composer.candidates import detect_candidate, word_after, word_before
from chat_composer.models import MentionAnnotation, MentionCandidate, SelectionRange


def test_caret_at_end_of_token() -> None:
    result = detect_candidate(SelectionRange.caret(10), "hello @ali", [])
    assert result == MentionCandidate(start_index=6, term="ali")


def test_bare_at_sign_is_an_empty_term() -> None:
    result = detect_candidate(SelectionRange.caret(7), "hello @", [])
    assert result == MentionCandidate(start_index=6, term="")


def test_caret_mid_token_includes_rest_of_word() -> None:
    result = detect_candidate(SelectionRange.caret(3), "@alice says hi", [])
    assert result == MentionCandidate(start_index=0, term="alice")


def test_partial_selection_inside_token() -> None:
    result = detect_candidate(SelectionRange(start=2, end=4), "@alice", [])
    assert result == MentionCandidate(start_index=0, term="alice")


def test_selection_with_whitespace_is_rejected() -> None:
    assert detect_candidate(SelectionRange(start=4, end=5), "@ali ce", []) is None


def test_word_without_at_sign_is_rejected() -> None:
    assert detect_candidate(SelectionRange.caret(5), "hello", []) is None
    assert detect_candidate(SelectionRange.caret(8), "mail a@b", []) is None


def test_caret_after_whitespace_is_rejected() -> None:
    assert detect_candidate(SelectionRange.caret(5), "@ali ", []) is None


def test_caret_inside_existing_mention_is_rejected() -> None:
    mentions = [MentionAnnotation(start_index=3, length=4, user_id="bob")]
    assert detect_candidate(SelectionRange.caret(5), "hi @bob", mentions) is None


def test_caret_touching_mention_end_is_not_inside() -> None:
    mentions = [MentionAnnotation(start_index=0, length=4, user_id="bob")]
    result = detect_candidate(SelectionRange.caret(4), "@bob", mentions)
    assert result == MentionCandidate(start_index=0, term="bob")


def test_newline_separates_words() -> None:
    result = detect_candidate(SelectionRange.caret(8), "first\n@jo", [])
    assert result == MentionCandidate(start_index=6, term="jo")


def test_word_helpers() -> None:
    assert word_before("say @bo", 7) == "@bo"
    assert word_before("say ", 4) == ""
    assert word_after("@bob rest", 2) == "ob"
    assert word_after("@bob", 4) == ""
