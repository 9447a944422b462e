"""Ingestion Coordinator.

Takes a batch of candidates and persists the ones that are structurally
valid and not duplicates. Every candidate gets exactly one outcome, in input
order; one item's failure never aborts the batch.

Items are processed one at a time so that a question saved earlier in the
batch is already in the seen-set when later items are checked.
"""
import logging
from typing import Any, Dict, List, Optional, Sequence

from datetime_utils import now_utc_iso
from dedup import build_index, candidate_key, language_key, normalize_text, question_hash
from error_utils import DuplicateRejection
from database import QuestionStore
from models import (
    CandidateItem,
    ContentType,
    CorpusRecord,
    IngestionOutcome,
    IngestionReport,
    OutcomeStatus,
)

logger = logging.getLogger(__name__)

MIN_MCQ_OPTIONS = 2


def _preview(text: str, size: int = 50) -> str:
    text = (text or "").strip()
    return text if len(text) <= size else f"{text[:size]}..."


def validation_problem(candidate: CandidateItem) -> Optional[str]:
    """Return why a candidate cannot be stored, or None when it is well-formed."""
    if not normalize_text(candidate.question_text):
        return "Question text is empty"
    if not (candidate.language or "").strip():
        return "Language is empty"
    if not (candidate.topic or "").strip():
        return "Topic is empty"
    if candidate.content_type == ContentType.MCQ:
        options = [o for o in candidate.options if o and o.strip()]
        if len(options) < MIN_MCQ_OPTIONS:
            return f"MCQ needs at least {MIN_MCQ_OPTIONS} non-empty options: {_preview(candidate.question_text)}"
        if candidate.correct_answer not in candidate.options:
            return f"Correct answer not found in options for: {_preview(candidate.question_text)}"
    return None


def build_question_document(candidate: CandidateItem) -> Dict[str, Any]:
    """Shape a candidate into the persisted question document."""
    try:
        answer_index = candidate.options.index(candidate.correct_answer)
    except ValueError:
        answer_index = -1
    return {
        "id": candidate.id,
        "question": candidate.question_text.strip(),
        "options": list(candidate.options),
        "correctAnswer": answer_index,
        "explanation": candidate.explanation or "",
        "category": candidate.language,
        "language": candidate.language,
        "language_key": language_key(candidate.language),
        "topic": candidate.topic,
        "difficulty": candidate.difficulty or "intermediate",
        "tags": list(candidate.tags),
        "companies": list(candidate.companies),
        "content_type": candidate.content_type.value,
        "normalized_text": normalize_text(candidate.question_text),
        "question_hash": question_hash(candidate.language, candidate.topic, candidate.question_text),
        "source": "ai_generator",
        "created_at": now_utc_iso(),
    }


async def ingest(candidates: Sequence[CandidateItem], corpus: Sequence[CorpusRecord],
                 store: QuestionStore) -> IngestionReport:
    """Validate, dedupe and persist a batch; returns one outcome per candidate."""
    corpus_index = build_index(corpus)
    saved_in_batch = set()
    outcomes: List[IngestionOutcome] = []

    for index, candidate in enumerate(candidates):
        problem = validation_problem(candidate)
        if problem:
            logger.warning(f"Rejecting candidate {candidate.id}: {problem}")
            outcomes.append(IngestionOutcome.failed(index, candidate.id, problem))
            continue

        key = candidate_key(candidate)
        if key in corpus_index:
            reason = f"Question already exists: {_preview(candidate.question_text)}"
            logger.info(f"Skipping duplicate {candidate.id}: {reason}")
            outcomes.append(IngestionOutcome.duplicate(index, candidate.id, reason))
            continue
        if key in saved_in_batch:
            reason = f"Question repeated within batch: {_preview(candidate.question_text)}"
            logger.info(f"Skipping in-batch duplicate {candidate.id}")
            outcomes.append(IngestionOutcome.duplicate(index, candidate.id, reason))
            continue

        try:
            persisted_id = await store.create_question(build_question_document(candidate))
        except DuplicateRejection as e:
            # storage uniqueness is the last line of defense against concurrent batches
            logger.info(f"Storage rejected duplicate {candidate.id}: {e}")
            outcomes.append(IngestionOutcome.duplicate(index, candidate.id, str(e)))
            continue
        except Exception as e:
            logger.warning(f"Failed to save question {candidate.id}: {e}")
            outcomes.append(IngestionOutcome.failed(
                index, candidate.id, f"Failed to save question: {_preview(candidate.question_text)} ({e})"
            ))
            continue

        saved_in_batch.add(key)
        outcomes.append(IngestionOutcome.saved(index, candidate.id, persisted_id))

    report = IngestionReport(
        outcomes=outcomes,
        saved_count=sum(1 for o in outcomes if o.status == OutcomeStatus.SAVED),
        duplicate_count=sum(1 for o in outcomes if o.status == OutcomeStatus.DUPLICATE),
        error_count=sum(1 for o in outcomes if o.status == OutcomeStatus.FAILED),
    )
    logger.info(
        f"Ingested batch of {len(candidates)}: saved={report.saved_count} "
        f"duplicates={report.duplicate_count} failed={report.error_count}"
    )
    return report


def scope_candidates(candidates: Sequence[CandidateItem], language: str, topic: str) -> List[CandidateItem]:
    """Fill blank language/topic on candidates from the batch-level values."""
    scoped = []
    for c in candidates:
        update = {}
        if not (c.language or "").strip():
            update["language"] = language
        if not (c.topic or "").strip():
            update["topic"] = topic
        scoped.append(c.model_copy(update=update) if update else c)
    return scoped


def failed_candidates(candidates: Sequence[CandidateItem], report: IngestionReport) -> List[CandidateItem]:
    """The original items whose outcome was Failed, for resubmission."""
    return [candidates[o.index] for o in report.outcomes if o.status == OutcomeStatus.FAILED]
