import json

import pytest

from conftest import make_question
from satcoach.services.question_parser import (
    LineFramer,
    extract_first_object,
    is_valid_question,
    parse_batch,
    parse_candidate,
    sanitize_question,
    split_lines,
    validation_error,
)


# ── Line framing ──

def test_framer_single_buffer_yields_all_lines():
    framer = LineFramer()
    lines = framer.feed("A\nB\nC")
    assert lines == ["A", "B"]
    assert framer.pending == "C"
    assert framer.flush() == ["C"]
    assert framer.pending == ""


def test_framer_across_appends_has_no_duplicates_or_drops():
    framer = LineFramer()
    got = framer.feed("A\nB\n")
    got += framer.feed("C\n")
    got += framer.flush()
    assert got == ["A", "B", "C"]


def test_framer_joins_unterminated_line_with_next_chunk():
    framer = LineFramer()
    got = framer.feed("A\nB")
    assert got == ["A"]
    got += framer.feed("C\n")
    got += framer.flush()
    assert got == ["A", "BC"]


def test_framer_joins_line_split_across_chunks():
    framer = LineFramer()
    line = json.dumps(make_question())
    half = len(line) // 2
    assert framer.feed(line[:half]) == []
    assert framer.feed(line[half:] + "\n") == [line]


def test_framer_discards_blank_lines():
    framer = LineFramer()
    assert framer.feed("\n   \nX\n\n") == ["X"]
    assert framer.flush() == []


def test_framer_flush_splits_remaining_delimiters():
    framer = LineFramer()
    framer._buffer = "one\n\ntwo  "
    assert framer.flush() == ["one", "two"]


def test_split_lines_handles_crlf():
    assert split_lines("a\r\nb\r\n\r\nc") == ["a", "b", "c"]


# ── Decoding ──

def test_parse_candidate_plain_and_fenced():
    obj = make_question()
    assert parse_candidate(json.dumps(obj)) == obj
    assert parse_candidate("```json\n" + json.dumps(obj) + "\n```") == obj


def test_parse_candidate_tolerates_array_separator():
    obj = make_question()
    assert parse_candidate(json.dumps(obj) + ",") == obj


@pytest.mark.parametrize("line", ["Here are your questions:", "{\"question\": ", "", "```"])
def test_parse_candidate_rejects_non_json(line):
    assert parse_candidate(line) is None


def test_deeply_nested_reply_is_not_json():
    assert parse_candidate("[" * 100000) is None
    assert parse_candidate("[" * 100000 + ",") is None
    assert parse_batch("[" * 100000) == [None]
    assert extract_first_object("{\"a\":" * 100000) is None


def test_parse_batch_accepts_questions_document():
    questions = [make_question("Stem one is here?"), make_question("Stem two is here?")]
    assert parse_batch(json.dumps({"questions": questions})) == questions


def test_parse_batch_accepts_array_and_ndjson():
    questions = [make_question("Stem one is here?"), make_question("Stem two is here?")]
    assert parse_batch(json.dumps(questions)) == questions
    ndjson = "\n".join(json.dumps(q) for q in questions)
    assert parse_batch(ndjson) == questions


def test_parse_batch_marks_bad_lines_as_none():
    text = json.dumps(make_question()) + "\nnot json at all\n"
    result = parse_batch(text)
    assert result[0] == make_question()
    assert result[1] is None


def test_extract_first_object_from_prose():
    obj = make_question(stem='A stem with a "quoted {brace}" inside?')
    text = "Sure! Here it is:\n" + json.dumps(obj) + "\nGood luck."
    assert extract_first_object(text) == obj


def test_extract_first_object_none_for_garbage():
    assert extract_first_object("no json here") is None
    assert extract_first_object("") is None


# ── Validation ──

def test_valid_question_passes():
    assert validation_error(make_question()) is None
    assert is_valid_question(make_question())


@pytest.mark.parametrize("mutate", [
    lambda q: q.update(question="Why"),
    lambda q: q.update(question=123),
    lambda q: q.update(multipleChoiceOptions=["A. a", "B. b", "C. c"]),
    lambda q: q.update(multipleChoiceOptions=["A. a", "B. b", "C. c", "D. d", "E. e"]),
    lambda q: q.update(multipleChoiceOptions=["A. a", "  ", "C. c", "D. d"]),
    lambda q: q.update(multipleChoiceOptions=["A. a", 2, "C. c", "D. d"]),
    lambda q: q.update(correctAnswer="E"),
    lambda q: q.update(correctAnswer="b"),
    lambda q: q.update(incorrectExplanations=["A", "B", "C", "D"]),
    lambda q: q["incorrectExplanations"].pop("C"),
    lambda q: q["incorrectExplanations"].update(D=""),
    lambda q: q.update(correctExplanation="   "),
    lambda q: q.pop("correctExplanation"),
])
def test_any_single_violation_rejects(mutate):
    q = make_question()
    mutate(q)
    assert validation_error(q) is not None
    assert not is_valid_question(q)


def test_non_object_rejected():
    assert validation_error(["question"]) == "not an object"
    assert validation_error(None) == "not an object"


# ── Sanitizing ──

def test_sanitize_strips_placeholder_word():
    q = make_question(
        stem="The author uses the BLANK  word  blank to show contrast.",
        multipleChoiceOptions=["A. blank however", "B. therefore", "C. Blank", "D. blanket"],
    )
    clean = sanitize_question(q)
    assert clean["question"] == "The author uses the word to show contrast."
    assert clean["multipleChoiceOptions"] == ["A. however", "B. therefore", "C.", "D. blanket"]


def test_sanitize_projects_to_unit_keys():
    q = make_question(hint="extra field")
    assert set(sanitize_question(q)) == {
        "question", "multipleChoiceOptions", "correctAnswer",
        "incorrectExplanations", "correctExplanation",
    }


def test_sanitize_never_invalidates():
    q = make_question(stem="blank ab", multipleChoiceOptions=["blank", "B. b", "C. c", "D. d"])
    clean = sanitize_question(q)
    assert clean["question"] == "blank ab"
    assert clean["multipleChoiceOptions"][0] == "blank"
    assert is_valid_question(clean)


def test_sanitize_is_idempotent():
    q = make_question(
        stem="  Fill the blank:   the  ____ was   blank.  ",
        multipleChoiceOptions=["A.  blank  one", "B. two", "blank", "D.blank"],
    )
    once = sanitize_question(q)
    assert sanitize_question(once) == once
