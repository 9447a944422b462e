"""Corpus statistics.

Everything here is a pure function of its input: stats are a cache over the
corpus and can be thrown away and rebuilt at any time.
"""
from typing import Any, Dict, Iterable, List, Sequence

from constants import DEFAULT_DIFFICULTY, DEFAULT_QUESTION_COUNT, DIFFICULTIES, normalize_difficulty
from dedup import build_index, record_key, scope_key
from models import CorpusRecord, LanguageStats


def compute_stats(corpus: Iterable[CorpusRecord]) -> Dict[str, LanguageStats]:
    """Per-language totals, difficulty counts, and topic/concept sets.

    Languages are grouped case-insensitively; the first spelling seen is the
    one reported. Records without a language are ignored.
    """
    groups: Dict[str, Dict[str, Any]] = {}
    for record in corpus:
        key = scope_key(record.language)
        if not key:
            continue
        group = groups.get(key)
        if group is None:
            group = groups[key] = {
                "language": record.language.strip(),
                "total": 0,
                "in_db": 0,
                "difficulty": {d: 0 for d in DIFFICULTIES},
                "topics": {},
                "concepts": {},
            }
        group["total"] += 1
        if record.persisted:
            group["in_db"] += 1
        group["difficulty"][normalize_difficulty(record.difficulty)] += 1
        # dicts as ordered sets
        topic = (record.topic or "").strip()
        if topic:
            group["topics"].setdefault(topic, None)
        concept = (record.concept or "").strip()
        if concept:
            group["concepts"].setdefault(concept, None)

    return {
        g["language"]: LanguageStats(
            language=g["language"],
            total_questions=g["total"],
            total_in_db=g["in_db"],
            counts_by_difficulty=dict(g["difficulty"]),
            concepts=list(g["concepts"]),
            topics=list(g["topics"]),
        )
        for g in groups.values()
    }


def merge_archive_records(db_records: Sequence[CorpusRecord],
                          archive_records: Sequence[CorpusRecord]) -> List[CorpusRecord]:
    """Database records plus archived records not already in the database."""
    known = build_index(db_records)
    merged = list(db_records)
    for record in archive_records:
        key = record_key(record)
        if key in known:
            continue
        known.add(key)
        merged.append(record)
    return merged


def suggest_defaults(stats: Dict[str, LanguageStats]) -> Dict[str, Any]:
    """Initial generation parameters for the admin form."""
    language = next(iter(stats), "")
    topics = stats[language].topics if language else []
    return {
        "language": language,
        "topic": topics[0] if topics else "",
        "difficulty": DEFAULT_DIFFICULTY,
        "count": DEFAULT_QUESTION_COUNT,
    }


def summarize_generated(docs: Sequence[Dict[str, Any]], limit: int = 10) -> Dict[str, Any]:
    by_language: Dict[str, int] = {}
    by_difficulty: Dict[str, int] = {}
    for doc in docs:
        language = doc.get("language") or doc.get("category") or "unknown"
        by_language[language] = by_language.get(language, 0) + 1
        difficulty = normalize_difficulty(doc.get("difficulty"))
        by_difficulty[difficulty] = by_difficulty.get(difficulty, 0) + 1

    recent = sorted(docs, key=lambda d: d.get("created_at") or "", reverse=True)[:limit]
    return {
        "totalAIGenerated": len(docs),
        "byLanguage": by_language,
        "byDifficulty": by_difficulty,
        "recentGenerations": [
            {
                "id": d.get("id"),
                "question": d.get("question"),
                "language": d.get("language") or d.get("category"),
                "difficulty": d.get("difficulty"),
                "createdAt": d.get("created_at"),
            }
            for d in recent
        ],
    }
