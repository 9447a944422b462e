import pytest
from constants import language_folder, normalize_difficulty, normalize_slug

@pytest.mark.parametrize("raw,expected", [
    ("React Hooks", "react-hooks"),
    ("  Data  Science  ", "data-science"),
    ("C++", "c"),  # non-alnum removed
    ("Node.js", "nodejs"),
    ("---Weird***Topic---", "weirdtopic"),
    ("", ""),
    (None, None),
])
def test_normalize_slug(raw, expected):
    assert normalize_slug(raw) == expected


@pytest.mark.parametrize("raw,expected", [
    ("easy", "beginner"),
    ("Medium", "intermediate"),
    ("hard", "advanced"),
    ("advanced", "advanced"),
    ("expert", "intermediate"),
    (None, "intermediate"),
])
def test_normalize_difficulty(raw, expected):
    assert normalize_difficulty(raw) == expected


@pytest.mark.parametrize("raw,expected", [
    ("React", "javascript"),
    ("Java", "java"),
    ("Node.js", "nodejs"),
    ("../..", "general"),
])
def test_language_folder(raw, expected):
    assert language_folder(raw) == expected
