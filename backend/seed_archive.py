"""Seed archive: the offline, per-language JSON files used for curation.

Layout: ``<seeds_dir>/<folder>/<folder>-mcq.json`` holding
``{category, language, concepts: [{name, difficulty, questions, problems}]}``.
Exports append to the concept matching the topic (case-insensitive) or add a
new concept; existing entries are never rewritten or dropped.
"""
import json
import logging
import os
import tempfile
import secrets
import threading
from typing import Any, Dict, Iterator, List, Optional, Sequence, Tuple

from constants import DEFAULT_DIFFICULTY, METADATA_DIRNAME, SEED_ID_PREFIX, SEEDS_DIR, language_folder, normalize_slug
from datetime_utils import today_iso
from error_utils import ExportError, NotFoundError, ValidationError
from models import CandidateItem, ContentType, CorpusRecord, ExportReport

logger = logging.getLogger(__name__)

_locks_guard = threading.Lock()
_path_locks: Dict[str, threading.Lock] = {}


def _lock_for(path: str) -> threading.Lock:
    with _locks_guard:
        return _path_locks.setdefault(os.path.abspath(path), threading.Lock())


def archive_path(seeds_dir: str, language: str) -> str:
    folder = language_folder(language)
    return os.path.join(seeds_dir, folder, f"{folder}-mcq.json")


def _read_json(path: str) -> Optional[Any]:
    """Parsed file content, None when absent. Raises ExportError when unreadable."""
    if not os.path.exists(path):
        return None
    try:
        with open(path, "r", encoding="utf-8") as f:
            return json.load(f)
    except json.JSONDecodeError as e:
        raise ExportError(f"Archive file is not valid JSON: {os.path.basename(path)} ({e})") from e
    except OSError as e:
        raise ExportError(f"Archive file is not readable: {os.path.basename(path)} ({e})") from e


def _write_json(path: str, data: Any) -> None:
    """Write to a temp file in the same directory, then move it into place."""
    directory = os.path.dirname(path)
    try:
        os.makedirs(directory, exist_ok=True)
        fd, tmp_path = tempfile.mkstemp(prefix=".tmp-", suffix=".json", dir=directory)
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(data, f, indent=2, ensure_ascii=False)
            os.replace(tmp_path, path)
        except BaseException:
            if os.path.exists(tmp_path):
                os.unlink(tmp_path)
            raise
    except OSError as e:
        raise ExportError(f"Archive location is not writable: {directory} ({e})") from e


def _format_entry(candidate: CandidateItem, entry_id: str) -> Dict[str, Any]:
    if candidate.content_type == ContentType.PROBLEM:
        return {
            "id": entry_id,
            "title": candidate.question_text,
            "description": candidate.question_text,
            "explanation": candidate.explanation or "",
            "tags": list(candidate.tags),
            "companies": list(candidate.companies),
            "difficulty": candidate.difficulty or "intermediate",
        }
    try:
        answer_index = candidate.options.index(candidate.correct_answer)
    except ValueError:
        answer_index = -1
    return {
        "id": entry_id,
        "question": candidate.question_text,
        "options": list(candidate.options),
        "correctAnswer": answer_index,
        "explanation": candidate.explanation or "",
        "tags": list(candidate.tags),
        "companies": list(candidate.companies),
        "difficulty": candidate.difficulty or "intermediate",
    }


def export_to_archive(candidates: Sequence[CandidateItem], language: str, topic: str,
                      seeds_dir: str = SEEDS_DIR) -> ExportReport:
    """Append a batch to the language/topic archive, creating it if needed.

    No duplicate detection: the archive is a staging area reviewed by a human
    before ingestion.
    """
    language = (language or "").strip()
    topic = (topic or "").strip()
    if not language or not topic:
        raise ValidationError("Language and topic are required")
    if not candidates:
        raise ValidationError("No questions provided")

    folder = language_folder(language)
    path = archive_path(seeds_dir, language)
    topic_slug = normalize_slug(topic)

    with _lock_for(path):
        data = _read_json(path)
        if data is None:
            logger.info(f"Creating new archive file: {path}")
            data = {"category": folder, "language": language, "concepts": []}
        elif not isinstance(data, dict) or not isinstance(data.get("concepts", []), list):
            raise ExportError(f"Archive file has an unexpected structure: {os.path.basename(path)}")
        concepts = data.setdefault("concepts", [])

        concept = next(
            (c for c in concepts if isinstance(c, dict) and str(c.get("name", "")).lower() == topic.lower()),
            None,
        )
        if concept is None:
            concept = {
                "name": topic,
                "difficulty": candidates[0].difficulty or "intermediate",
                "questions": [],
                "problems": [],
            }
            concepts.append(concept)

        questions = concept.setdefault("questions", [])
        problems = concept.setdefault("problems", [])
        next_number = len(questions) + len(problems) + 1
        for offset, candidate in enumerate(candidates):
            entry = _format_entry(candidate, f"{folder}-{topic_slug}-{next_number + offset}")
            if candidate.content_type == ContentType.PROBLEM:
                problems.append(entry)
            else:
                questions.append(entry)

        _write_json(path, data)

    relative = os.path.relpath(path, seeds_dir)
    logger.info(f"Exported {len(candidates)} questions to {path}")
    return ExportReport(exported_count=len(candidates), target_location=relative)


def _iter_archives(seeds_dir: str) -> Iterator[Tuple[str, Dict[str, Any]]]:
    """(path, content) for every archive file with a concepts list.

    Metadata and hidden files are ignored; unparseable files are skipped with a warning.
    """
    if not os.path.isdir(seeds_dir):
        return
    for root, dirs, files in os.walk(seeds_dir):
        dirs[:] = sorted(d for d in dirs if d != METADATA_DIRNAME)
        for name in sorted(files):
            if not name.endswith(".json") or name.startswith(".") or "metadata" in name:
                continue
            path = os.path.join(root, name)
            try:
                content = _read_json(path)
            except ExportError as e:
                logger.warning(f"Skipping archive file {path}: {e}")
                continue
            if isinstance(content, dict) and isinstance(content.get("concepts"), list):
                yield path, content


def load_archive_records(seeds_dir: str = SEEDS_DIR) -> List[CorpusRecord]:
    """Every archived question/problem as a CorpusRecord (persisted=False)."""
    records: List[CorpusRecord] = []
    for _, content in _iter_archives(seeds_dir):
        language = content.get("language") or content.get("category") or ""
        for concept in content["concepts"]:
            if not isinstance(concept, dict):
                continue
            concept_name = concept.get("name") or "Unknown Concept"
            concept_difficulty = concept.get("difficulty")
            for q in concept.get("questions") or []:
                if not isinstance(q, dict):
                    continue
                records.append(CorpusRecord(
                    id=q.get("id"),
                    question_text=q.get("question") or "",
                    language=language,
                    topic=concept_name,
                    concept=concept_name,
                    difficulty=q.get("difficulty") or concept_difficulty,
                    persisted=False,
                ))
            for p in concept.get("problems") or []:
                if not isinstance(p, dict):
                    continue
                records.append(CorpusRecord(
                    id=p.get("id"),
                    question_text=p.get("title") or p.get("description") or "",
                    language=language,
                    topic=concept_name,
                    concept=concept_name,
                    difficulty=p.get("difficulty") or concept_difficulty,
                    persisted=False,
                ))
    return records


# ===========================
# SEED LOADING
# ===========================

def _entry_count(concept: Dict[str, Any], key: str) -> int:
    entries = concept.get(key)
    return len(entries) if isinstance(entries, list) else 0


def find_concepts(names: Sequence[str], seeds_dir: str = SEEDS_DIR) -> Tuple[Dict[str, Dict[str, Any]], List[str]]:
    """Locate named concepts across the archive.

    Returns ({name: concept}, files that contributed). Each concept carries the
    language and category of its file. When a name appears in several files the
    copy with the most questions wins. Raises NotFoundError naming any concept
    that was not found.
    """
    wanted = set(names)
    found: Dict[str, Dict[str, Any]] = {}
    processed_files: List[str] = []
    for path, content in _iter_archives(seeds_dir):
        matched = False
        for concept in content["concepts"]:
            if not isinstance(concept, dict) or concept.get("name") not in wanted:
                continue
            matched = True
            name = concept["name"]
            existing = found.get(name)
            if existing is None or _entry_count(concept, "questions") > _entry_count(existing, "questions"):
                found[name] = dict(
                    concept,
                    sourceFile=os.path.basename(path),
                    category=content.get("category"),
                    language=content.get("language") or content.get("category") or "",
                )
        if matched:
            processed_files.append(os.path.basename(path))

    missing = [n for n in dict.fromkeys(names) if n not in found]
    if missing:
        raise NotFoundError(f"Could not find concepts: {', '.join(missing)}")
    return found, processed_files


def _json_list(value: Any) -> List[Any]:
    # some archives store lists as JSON-encoded strings
    if isinstance(value, str):
        try:
            value = json.loads(value)
        except json.JSONDecodeError:
            return []
    return list(value) if isinstance(value, list) else []


def _correct_option(options: List[str], answer: Any) -> str:
    """Archive answers are an option index or the option text; falls back to the first option."""
    if isinstance(answer, str) and answer in options:
        return answer
    if isinstance(answer, str) and answer.strip().isdigit():
        answer = int(answer.strip())
    if isinstance(answer, int) and not isinstance(answer, bool) and 0 <= answer < len(options):
        return options[answer]
    return options[0] if options else ""


def _seed_id(entry: Dict[str, Any]) -> str:
    entry_id = entry.get("id")
    return f"{SEED_ID_PREFIX}{entry_id}" if entry_id else f"{SEED_ID_PREFIX}{secrets.token_urlsafe(8)}"


def concept_candidates(concept: Dict[str, Any]) -> List[CandidateItem]:
    """Archived questions and problems of one concept as ingestion candidates."""
    language = concept.get("language") or ""
    topic = concept.get("name") or ""
    difficulty = concept.get("difficulty") or DEFAULT_DIFFICULTY
    candidates: List[CandidateItem] = []
    for q in concept.get("questions") or []:
        if not isinstance(q, dict):
            continue
        options = [str(o) for o in _json_list(q.get("options"))]
        candidates.append(CandidateItem(
            id=_seed_id(q),
            content_type=ContentType.MCQ,
            question_text=str(q.get("question") or ""),
            options=options,
            correct_answer=_correct_option(options, q.get("correctAnswer")),
            explanation=str(q.get("explanation") or "") or None,
            tags=[str(t) for t in _json_list(q.get("tags"))],
            companies=[str(c) for c in _json_list(q.get("companies"))],
            difficulty=q.get("difficulty") or difficulty,
            topic=topic,
            language=language,
        ))
    for p in concept.get("problems") or []:
        if not isinstance(p, dict):
            continue
        candidates.append(CandidateItem(
            id=_seed_id(p),
            content_type=ContentType.PROBLEM,
            question_text=str(p.get("title") or p.get("description") or ""),
            explanation=str(p.get("explanation") or p.get("description") or "") or None,
            tags=[str(t) for t in _json_list(p.get("tags"))],
            companies=[str(c) for c in _json_list(p.get("companies"))],
            difficulty=p.get("difficulty") or difficulty,
            topic=topic,
            language=language,
        ))
    return candidates


# ===========================
# TAXONOMY METADATA
# ===========================

def _metadata_dir(seeds_dir: str) -> str:
    return os.path.join(seeds_dir, METADATA_DIRNAME)


def _metadata_file(seeds_dir: str, category: str) -> str:
    slug = normalize_slug(category or "")
    if not slug or slug != (category or "").strip().lower():
        raise ValidationError(f"Invalid category name: {category!r}")
    return os.path.join(_metadata_dir(seeds_dir), f"{slug}.json")


def read_category_metadata(category: str, seeds_dir: str = SEEDS_DIR) -> Optional[Dict[str, Any]]:
    return _read_json(_metadata_file(seeds_dir, category))


def read_all_metadata(seeds_dir: str = SEEDS_DIR) -> Optional[Dict[str, Any]]:
    """Master metadata plus every category document; None when there is no master file."""
    directory = _metadata_dir(seeds_dir)
    master = _read_json(os.path.join(directory, "master.json"))
    if master is None:
        return None
    categories = []
    for name in sorted(os.listdir(directory)):
        if name.endswith(".json") and name != "master.json":
            categories.append(_read_json(os.path.join(directory, name)))
    return {"master": master, "categories": categories}


def write_category_metadata(category: str, metadata: Dict[str, Any], seeds_dir: str = SEEDS_DIR) -> Dict[str, Any]:
    path = _metadata_file(seeds_dir, category)
    document = dict(metadata)
    document["lastUpdated"] = today_iso()
    with _lock_for(path):
        _write_json(path, document)
    logger.info(f"Metadata updated for {category}")
    return document
