import pytest

from database import InMemoryQuestionStore
from models import CandidateItem, ContentType, CorpusRecord


def make_candidate(text="What is a closure?", idx=1, **overrides):
    data = {
        "id": f"ai_test{idx}",
        "content_type": ContentType.MCQ,
        "question_text": text,
        "options": ["A function with its scope", "A loop", "A class", "A module"],
        "correct_answer": "A function with its scope",
        "explanation": "Closures capture their enclosing scope.",
        "tags": ["javascript", "functions"],
        "companies": ["Google"],
        "difficulty": "intermediate",
        "topic": "Closures",
        "language": "JavaScript",
    }
    data.update(overrides)
    return CandidateItem(**data)


def make_record(text, language="JavaScript", topic="Closures", difficulty="intermediate", **extra):
    return CorpusRecord(question_text=text, language=language, topic=topic, difficulty=difficulty, **extra)


@pytest.fixture
def store():
    return InMemoryQuestionStore()


@pytest.fixture
def candidate_factory():
    return make_candidate


@pytest.fixture
def record_factory():
    return make_record
