from fastapi import APIRouter, HTTPException, Depends, Query, Request
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import JSONResponse
from typing import Optional
import logging

from constants import GENERATED_ID_PREFIX, SEEDS_DIR
from database import QuestionStore
from datetime_utils import now_utc_iso
from dedup import scope_key
from error_utils import ContentError, ValidationError, safe_raise_http
from generation import ContentGenerationGateway, generation_config
from ingestion import ingest, scope_candidates
from models import (
    BatchRequest,
    ExportResponse,
    GenerateResponse,
    GenerationRequest,
    MetadataUpdateRequest,
    SaveGeneratedResponse,
    SeedLoadRequest,
    SeedLoadResponse,
)
from seed_archive import (
    concept_candidates,
    export_to_archive,
    find_concepts,
    load_archive_records,
    read_all_metadata,
    read_category_metadata,
    write_category_metadata,
)
from stats import compute_stats, merge_archive_records, suggest_defaults, summarize_generated

router = APIRouter()
logger = logging.getLogger(__name__)


# ---------------- Dependency Helpers ---------------- #
def get_question_store(request: Request) -> QuestionStore:
    store = getattr(request.app.state, "question_store", None)
    if store is None:
        raise HTTPException(status_code=503, detail="Question store not available")
    return store


def get_gateway(request: Request) -> ContentGenerationGateway:
    gateway = getattr(request.app.state, "gateway", None)
    if gateway is None:
        raise HTTPException(status_code=503, detail="Content generation not configured")
    return gateway


def get_seeds_dir(request: Request) -> str:
    return getattr(request.app.state, "seeds_dir", None) or SEEDS_DIR


def _error_response(e: ContentError) -> JSONResponse:
    return JSONResponse(status_code=e.status_code, content={"success": False, "error": e.message})


# ---------------- Generation ---------------- #
@router.get("/ai-generate")
async def get_generation_config(gateway: ContentGenerationGateway = Depends(get_gateway)):
    """Generator backends and the taxonomy the admin can pick from."""
    return {"success": True, "config": generation_config(gateway.generator, gateway.max_count)}


@router.post("/ai-generate")
async def generate_content(
    request: GenerationRequest,
    gateway: ContentGenerationGateway = Depends(get_gateway),
):
    try:
        candidates = await gateway.generate(request)
        response = GenerateResponse(
            success=True,
            content=candidates,
            metadata={
                "generatedAt": now_utc_iso(),
                "service": gateway.generator.name,
                "count": len(candidates),
                "contentType": request.content_type.value,
                "language": request.language,
                "topic": request.topic,
                "difficulty": request.difficulty.value,
            },
        )
        return response.model_dump(by_alias=True, mode="json", exclude_none=True)
    except ContentError as e:
        logger.warning(f"generate_content rejected: {e.message}")
        return _error_response(e)
    except HTTPException:
        raise
    except Exception as e:
        safe_raise_http("Failed to generate content", e)


# ---------------- Ingestion ---------------- #
@router.post("/save-generated")
async def save_generated(
    body: BatchRequest,
    store: QuestionStore = Depends(get_question_store),
):
    """Persist a reviewed batch; duplicates and invalid items are reported per item."""
    try:
        if not body.questions:
            raise ValidationError("No questions provided")
        language = body.language.strip()
        topic = body.topic.strip()
        if not language or not topic:
            raise ValidationError("Language and topic are required")

        candidates = scope_candidates(body.questions, language, topic)
        corpus = await store.list_corpus(language)
        report = await ingest(candidates, corpus, store)

        messages = report.messages()
        response = SaveGeneratedResponse(
            success=True,
            saved_count=report.saved_count,
            duplicate_count=report.duplicate_count,
            error_count=report.error_count,
            total_questions=report.total,
            outcomes=report.outcomes,
            errors=messages or None,
            message=(
                f"Saved {report.saved_count} questions, skipped {report.duplicate_count} duplicates, "
                f"{report.error_count} errors"
            ),
        )
        return response.model_dump(by_alias=True, mode="json", exclude_none=True)
    except ContentError as e:
        return _error_response(e)
    except HTTPException:
        raise
    except Exception as e:
        safe_raise_http("Failed to save questions", e)


@router.get("/save-generated")
async def get_generation_stats(store: QuestionStore = Depends(get_question_store)):
    try:
        docs = await store.list_generated(GENERATED_ID_PREFIX)
        return {"success": True, "stats": summarize_generated(docs)}
    except Exception as e:
        safe_raise_http("Failed to fetch generation statistics", e)


# ---------------- Seed Loading ---------------- #
@router.post("")
async def load_seeds(
    body: SeedLoadRequest,
    store: QuestionStore = Depends(get_question_store),
    seeds_dir: str = Depends(get_seeds_dir),
):
    """Ingest the questions of archived concepts into the question store."""
    try:
        names = list(dict.fromkeys(n.strip() for n in body.concepts if n and n.strip()))
        if not names:
            raise ValidationError("Concepts array is required")

        concepts, processed_files = await run_in_threadpool(find_concepts, names, seeds_dir)
        candidates = [c for name in names for c in concept_candidates(concepts[name])]

        corpus = []
        languages = {scope_key(c.language): c.language for c in candidates}
        for language in languages.values():
            corpus.extend(await store.list_corpus(language))
        report = await ingest(candidates, corpus, store)

        messages = report.messages()
        return SeedLoadResponse(
            success=True,
            saved_count=report.saved_count,
            duplicate_count=report.duplicate_count,
            error_count=report.error_count,
            total_questions=report.total,
            outcomes=report.outcomes,
            errors=messages or None,
            processed_files=processed_files,
            message=(
                f"Added {report.saved_count} items from {len(processed_files)} file(s), "
                f"skipped {report.duplicate_count} duplicates, {report.error_count} errors"
            ),
        ).model_dump(by_alias=True, mode="json", exclude_none=True)
    except ContentError as e:
        logger.warning(f"load_seeds rejected: {e.message}")
        return _error_response(e)
    except HTTPException:
        raise
    except Exception as e:
        safe_raise_http("Failed to add seeds", e)


@router.delete("")
async def delete_seeds(
    category: Optional[str] = None,
    content_type: Optional[str] = Query(None, alias="type"),
    store: QuestionStore = Depends(get_question_store),
):
    """Remove a category's questions ("mcq"), problems ("problem") or both from the store."""
    try:
        category = (category or "").strip()
        if not category:
            raise ValidationError("Category is required")
        if content_type not in (None, "mcq", "problem"):
            raise ValidationError(f"Unsupported type: {content_type}")

        deleted = await store.delete_by_category(category, content_type)
        return {
            "success": True,
            "data": {"deletedCount": deleted, "message": f"Deleted {deleted} items from database"},
        }
    except ContentError as e:
        return _error_response(e)
    except HTTPException:
        raise
    except Exception as e:
        safe_raise_http("Failed to remove seeds", e)


# ---------------- Export ---------------- #
@router.post("/export-to-seeds")
def export_to_seeds(body: BatchRequest, seeds_dir: str = Depends(get_seeds_dir)):
    """Append a batch to the seed archive file for its language (sync: file IO in threadpool)."""
    try:
        report = export_to_archive(body.questions, body.language, body.topic, seeds_dir=seeds_dir)
        return ExportResponse(
            success=True,
            exported_count=report.exported_count,
            file_path=report.target_location,
            message=f"Exported {report.exported_count} questions to {report.target_location}",
        ).model_dump(by_alias=True, mode="json", exclude_none=True)
    except ContentError as e:
        logger.error(f"export_to_seeds failed: {e.message}")
        return _error_response(e)
    except Exception as e:
        safe_raise_http("Failed to export questions", e)


# ---------------- Stats ---------------- #
@router.get("/stats")
async def get_stats(
    language: Optional[str] = None,
    store: QuestionStore = Depends(get_question_store),
    seeds_dir: str = Depends(get_seeds_dir),
):
    try:
        db_records = await store.list_corpus(language or None)
        archive_records = await run_in_threadpool(load_archive_records, seeds_dir)
        if language:
            key = scope_key(language)
            archive_records = [r for r in archive_records if scope_key(r.language) == key]

        stats = compute_stats(merge_archive_records(db_records, archive_records))
        return {
            "success": True,
            "data": {name: s.model_dump(by_alias=True, mode="json") for name, s in stats.items()},
            "defaults": suggest_defaults(stats),
        }
    except Exception as e:
        safe_raise_http("Failed to compute statistics", e)


# ---------------- Taxonomy Metadata ---------------- #
@router.get("/metadata")
def get_metadata(category: Optional[str] = None, seeds_dir: str = Depends(get_seeds_dir)):
    try:
        if category:
            document = read_category_metadata(category, seeds_dir=seeds_dir)
            if document is None:
                raise HTTPException(status_code=404, detail=f"Metadata not found for category: {category}")
            return document
        documents = read_all_metadata(seeds_dir=seeds_dir)
        if documents is None:
            raise HTTPException(status_code=404, detail="Master metadata not found")
        return documents
    except ContentError as e:
        return _error_response(e)
    except HTTPException:
        raise
    except Exception as e:
        safe_raise_http("Failed to load metadata", e)


@router.put("/metadata")
def update_metadata(body: MetadataUpdateRequest, seeds_dir: str = Depends(get_seeds_dir)):
    try:
        if not body.category or not body.metadata:
            raise HTTPException(status_code=400, detail="Category and metadata are required")
        document = write_category_metadata(body.category, body.metadata, seeds_dir=seeds_dir)
        return {"success": True, "message": f"Metadata updated for {body.category}", "metadata": document}
    except ContentError as e:
        return _error_response(e)
    except HTTPException:
        raise
    except Exception as e:
        safe_raise_http("Failed to update metadata", e)
