import pytest
from dedup import dedup_key, is_duplicate, language_key, normalize_text, question_hash
from models import CandidateItem, CorpusRecord


def _candidate(text, language="JavaScript", topic="Closures"):
    return CandidateItem(id="ai_x", question_text=text, language=language, topic=topic)


def _record(text, language="JavaScript", topic="Closures"):
    return CorpusRecord(question_text=text, language=language, topic=topic)


@pytest.mark.parametrize("raw,expected", [
    ("  What   is a closure? ", "what is a closure?"),
    ("What\tis\na closure?", "what is a closure?"),
    ("STRASSE", "strasse"),
    ("", ""),
    (None, ""),
])
def test_normalize_text(raw, expected):
    assert normalize_text(raw) == expected


def test_whitespace_and_case_differences_are_duplicates():
    corpus = [_record("What is a closure?")]
    assert is_duplicate(_candidate("  what IS a   closure? "), corpus)


def test_same_text_other_topic_is_not_duplicate():
    corpus = [_record("What is a closure?", topic="Functions")]
    assert not is_duplicate(_candidate("What is a closure?", topic="Closures"), corpus)


def test_same_text_other_language_is_not_duplicate():
    corpus = [_record("What is a closure?", language="Python")]
    assert not is_duplicate(_candidate("What is a closure?"), corpus)


def test_language_and_topic_compare_case_insensitively():
    corpus = [_record("What is a closure?", language="javascript", topic=" closures ")]
    assert is_duplicate(_candidate("What is a closure?"), corpus)


def test_paraphrase_is_not_duplicate():
    corpus = [_record("What is a closure?")]
    assert not is_duplicate(_candidate("Explain closures in JavaScript."), corpus)


def test_empty_text_is_never_duplicate():
    corpus = [_record("")]
    assert not is_duplicate(_candidate("   "), corpus)


def test_empty_corpus():
    assert not is_duplicate(_candidate("What is a closure?"), [])


def test_is_duplicate_does_not_mutate_corpus():
    corpus = [_record("What is a closure?")]
    snapshot = [r.model_dump() for r in corpus]
    is_duplicate(_candidate("What is a closure?"), corpus)
    assert [r.model_dump() for r in corpus] == snapshot


def test_question_hash_matches_for_equivalent_text():
    assert question_hash("JavaScript", "Closures", "What is a closure?") == question_hash("javascript", " closures", "what  is a closure?")
    assert question_hash("JavaScript", "Closures", "What is a closure?") != question_hash("JavaScript", "Scope", "What is a closure?")


def test_question_hash_keeps_languages_apart():
    hashes = {question_hash(lang, "Basics", "What is a pointer?") for lang in ("C", "C++", "C#")}
    assert len(hashes) == 3


def test_language_key_is_lossless():
    assert language_key("C++") != language_key("C")
    assert language_key(" JavaScript ") == "javascript"


def test_dedup_key_shape():
    assert dedup_key("JavaScript", "Closures", " A  b ") == ("javascript", "closures", "a b")
