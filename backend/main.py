from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from azure.cosmos import CosmosClient
from azure.cosmos.cosmos_client import ConnectionPolicy
from azure.identity import DefaultAzureCredential
import os
import time
from contextlib import asynccontextmanager

from constants import (
    AI_SERVICE_URL,
    ANSWER_FALLBACK_POLICY,
    COSMOS_DB_CONSISTENCY_LEVEL,
    COSMOS_DB_ENDPOINT,
    CORS_ORIGINS,
    DATABASE_NAME,
    MAX_QUESTIONS_PER_REQUEST,
    SEEDS_DIR,
    STRICT_MODE,
)
from database import CosmosQuestionStore, InMemoryQuestionStore, cosmos_metrics, get_cosmosdb_service
from datetime_utils import now_utc_iso
from generation import ContentGenerationGateway, build_generator
from logging_config import configure_logging, get_logger
from routers import seeds

configure_logging()
logger = get_logger(__name__)

# Cosmos DB connection
cosmos_client = None
database_client = None


def create_optimized_cosmos_client(endpoint: str) -> CosmosClient:
    """Create Cosmos DB client with performance optimizations"""

    connection_policy = ConnectionPolicy()
    connection_policy.connection_mode = "Gateway"
    connection_policy.request_timeout = 30

    # Configure preferred locations for multi-region accounts
    preferred_locations = os.getenv("COSMOS_DB_PREFERRED_LOCATIONS", "").split(",")
    if preferred_locations and preferred_locations[0]:
        connection_policy.preferred_locations = [loc.strip() for loc in preferred_locations]

    connection_policy.retry_options.max_retry_attempt_count = 3
    connection_policy.retry_options.fixed_retry_interval_in_milliseconds = 1000
    connection_policy.retry_options.max_wait_time_in_seconds = 10

    credential = DefaultAzureCredential()

    return CosmosClient(
        url=endpoint,
        credential=credential,
        connection_policy=connection_policy,
        consistency_level=COSMOS_DB_CONSISTENCY_LEVEL,
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup
    global cosmos_client, database_client

    try:
        if COSMOS_DB_ENDPOINT:
            cosmos_client = create_optimized_cosmos_client(COSMOS_DB_ENDPOINT)
            database_client = cosmos_client.get_database_client(DATABASE_NAME)
            db_service = await get_cosmosdb_service(database_client)
            app.state.question_store = CosmosQuestionStore(db_service)
            logger.info(f"Connected to Cosmos DB: {DATABASE_NAME}")
        elif STRICT_MODE:
            raise RuntimeError("COSMOS_DB_ENDPOINT is required when STRICT_MODE is enabled")
        else:
            logger.warning("COSMOS_DB_ENDPOINT not provided, using in-memory question store (development mode)")
            app.state.question_store = InMemoryQuestionStore()
    except RuntimeError:
        raise
    except Exception as e:
        if STRICT_MODE:
            raise
        logger.error(f"Cosmos DB connection failed: {e}; using in-memory question store")
        cosmos_client = None
        database_client = None
        app.state.question_store = InMemoryQuestionStore()

    app.state.gateway = ContentGenerationGateway(
        build_generator(),
        max_count=MAX_QUESTIONS_PER_REQUEST,
        answer_fallback_policy=ANSWER_FALLBACK_POLICY,
    )
    app.state.seeds_dir = SEEDS_DIR
    logger.info(f"Content generator: {app.state.gateway.generator.name}; seeds dir: {SEEDS_DIR}")

    yield

    # Shutdown
    if cosmos_client:
        logger.info("Cosmos DB connection closed")


app = FastAPI(
    title="Seed Generator",
    description="AI question generation and deduplicating ingestion for the question bank",
    version="1.0.0",
    lifespan=lifespan
)


# Environment configuration
def get_settings():
    """Get application settings from environment variables"""
    return {
        "cosmos_db_endpoint": COSMOS_DB_ENDPOINT,
        "database_name": DATABASE_NAME,
        "ai_service_url": AI_SERVICE_URL,
        "max_questions_per_request": MAX_QUESTIONS_PER_REQUEST,
        "answer_fallback_policy": ANSWER_FALLBACK_POLICY,
        "seeds_dir": SEEDS_DIR,
        "strict_mode": STRICT_MODE,
        "environment": os.getenv("ENVIRONMENT", "development")
    }


app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
    max_age=600,
)


@app.middleware("http")
async def log_requests(request: Request, call_next):
    """Log all requests for debugging"""
    start_time = time.time()
    logger.info(f"Request: {request.method} {request.url.path}")

    response = await call_next(request)

    process_time = time.time() - start_time
    logger.info(f"Response: {response.status_code} in {process_time:.4f}s")

    return response


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    errors = exc.errors()
    first = errors[0] if errors else {}
    location = ".".join(str(p) for p in first.get("loc", ()) if p != "body")
    message = f"{location}: {first.get('msg')}" if location else str(first.get("msg", "Invalid request"))
    logger.info(f"Rejected request to {request.url.path}: {message}")
    return JSONResponse(status_code=400, content={"success": False, "error": message})


@app.get("/")
async def root():
    return {"message": "Seed Generator API", "version": "1.0.0"}


@app.get("/health")
async def health_check():
    store = getattr(app.state, "question_store", None)
    return {
        "status": "healthy",
        "database": "connected" if database_client else "disconnected",
        "store": store.name if store else None,
        "environment": get_settings()["environment"],
    }


@app.get("/metrics")
async def get_metrics():
    """Get Cosmos DB performance metrics"""
    if database_client is None:
        raise HTTPException(status_code=503, detail="Database not available")

    return {
        "service_metrics": {
            "total_request_charge": cosmos_metrics.total_request_charge,
            "operation_count": cosmos_metrics.operation_count,
            "average_ru_per_operation": cosmos_metrics.get_average_ru_per_operation(),
            "average_duration_ms": cosmos_metrics.get_average_duration()
        },
        "timestamp": now_utc_iso(),
    }


# Include routers
app.include_router(seeds.router, prefix="/api/admin/seeds", tags=["seeds"])


def main():
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)


if __name__ == "__main__":
    main()
