"""Exact-match duplicate detection for generated questions.

Two questions are duplicates when they belong to the same language
(case-insensitive) and the same topic, and their normalized text is equal.
Normalization trims, case-folds and collapses internal whitespace; there is
no fuzzy matching, so near-duplicates pass through.
"""
import hashlib
from typing import Iterable, Optional, Set, Tuple

from models import CandidateItem, CorpusRecord

# (language key, topic key, normalized text)
DedupKey = Tuple[str, str, str]


def normalize_text(text: Optional[str]) -> str:
    """Normalize question text for deduplication: collapse whitespace, case-fold."""
    if not text or not isinstance(text, str):
        return ""
    return " ".join(text.split()).casefold()


def scope_key(value: Optional[str]) -> str:
    """Language/topic comparison key."""
    return normalize_text(value)


def dedup_key(language: str, topic: str, text: str) -> DedupKey:
    return (scope_key(language), scope_key(topic), normalize_text(text))


def candidate_key(candidate: CandidateItem) -> DedupKey:
    return dedup_key(candidate.language, candidate.topic, candidate.question_text)


def record_key(record: CorpusRecord) -> DedupKey:
    return dedup_key(record.language, record.topic, record.question_text)


def language_key(language: Optional[str]) -> str:
    """Partition value for a language. Lossless: "C", "C++" and "C#" stay distinct."""
    return scope_key(language)


def question_hash(language: str, topic: str, text: str) -> str:
    """Stable hash stored with persisted questions; storage enforces its uniqueness."""
    payload = f"{scope_key(language)}|{scope_key(topic)}|{normalize_text(text)}"
    return hashlib.sha256(payload.encode("utf-8")).hexdigest()


def build_index(corpus: Iterable[CorpusRecord]) -> Set[DedupKey]:
    """Index a corpus for repeated lookups. Records without text are skipped."""
    return {record_key(r) for r in corpus if normalize_text(r.question_text)}


def is_duplicate(candidate: CandidateItem, corpus: Iterable[CorpusRecord]) -> bool:
    """True when the corpus already holds this question for the same language and topic.

    Pure: reads both arguments, mutates neither.
    """
    key = candidate_key(candidate)
    if not key[2]:
        return False
    return any(record_key(r) == key for r in corpus)
