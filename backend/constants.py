"""Centralized constants for the content generation service."""
from typing import Dict
import re
import os

# ===== Production Safety Settings =====

# STRICT_MODE: When true, disables development fallbacks (in-memory store, template generator)
STRICT_MODE = os.getenv("STRICT_MODE", "false").lower() == "true"

# ===== Database Settings =====

COSMOS_DB_ENDPOINT = os.getenv("COSMOS_DB_ENDPOINT")
DATABASE_NAME = os.getenv("DATABASE_NAME", "prep_platform")
COSMOS_DB_CONSISTENCY_LEVEL = os.getenv("COSMOS_DB_CONSISTENCY_LEVEL", "Session")

# ===== Generation Settings =====

# AI_SERVICE_URL: upstream content generation service; unset means template generator (dev only)
AI_SERVICE_URL = os.getenv("AI_SERVICE_URL")
AI_SERVICE_API_KEY = os.getenv("AI_SERVICE_API_KEY")
AI_SERVICE_TIMEOUT = float(os.getenv("AI_SERVICE_TIMEOUT", "60"))

# Upper bound for GenerationRequest.count
MAX_QUESTIONS_PER_REQUEST = int(os.getenv("MAX_QUESTIONS_PER_REQUEST", "100"))
DEFAULT_QUESTION_COUNT = 10

# What to do when a generated MCQ names a correct answer that is not one of its options:
#   first_option - use options[0] and log a warning
#   reject       - fail the whole generation call
ANSWER_FALLBACK_POLICY = os.getenv("ANSWER_FALLBACK_POLICY", "first_option").lower()
ANSWER_FALLBACK_POLICIES = ("first_option", "reject")

# Prefix of ids minted for generated items; used by the generation statistics endpoint
GENERATED_ID_PREFIX = "ai_"
SEED_ID_PREFIX = "seed_"

# ===== Archive Settings =====

SEEDS_DIR = os.getenv("SEEDS_DIR", os.path.join(os.getcwd(), "data", "seeds"))
METADATA_DIRNAME = "metadata"

# Languages whose archive folder differs from their slug
LANGUAGE_FOLDERS: Dict[str, str] = {
    "Java": "java",
    "JavaScript": "javascript",
    "Python": "python",
    "React": "javascript",  # React questions live with javascript
}

# ===== Logging / HTTP =====

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

CORS_ORIGINS = [
    o.strip()
    for o in os.getenv(
        "CORS_ORIGINS",
        "http://localhost:3000,http://127.0.0.1:3000,http://localhost:3001",
    ).split(",")
    if o.strip()
]

# ===== Taxonomy =====

DIFFICULTIES = ("beginner", "intermediate", "advanced")

# Legacy / seed-file difficulty labels; anything unknown maps to intermediate
DIFFICULTY_ALIASES: Dict[str, str] = {
    "easy": "beginner",
    "beginner": "beginner",
    "medium": "intermediate",
    "intermediate": "intermediate",
    "hard": "advanced",
    "advanced": "advanced",
}
DEFAULT_DIFFICULTY = "intermediate"

SUPPORTED_LANGUAGES = ["Java", "JavaScript", "Python", "React", "Node.js", "SQL"]

SUPPORTED_TOPICS: Dict[str, list] = {
    "Java": [
        "Object-Oriented Programming",
        "Collections Framework",
        "Exception Handling",
        "Multithreading",
        "Streams API",
        "Spring Framework",
    ],
    "JavaScript": [
        "Variables & Data Types",
        "Functions & Scope",
        "Arrays & Objects",
        "DOM Manipulation",
        "Async Programming",
        "ES6+ Features",
    ],
    "Python": [
        "Basic Syntax",
        "Data Structures",
        "Control Flow",
        "Functions",
        "Object-Oriented Programming",
        "Exception Handling",
    ],
}

# ===== Container Definitions =====

# Container definitions with intended partition key fields (logical keys, not paths)
COLLECTIONS: Dict[str, Dict[str, str]] = {
    "QUESTIONS": {"name": "questions", "pk_field": "language_key"},
}

# Convenience single-source names
CONTAINER = {k: v["name"] for k, v in COLLECTIONS.items()}


def normalize_slug(value: str) -> str:
    """Normalize a language/topic string into a stable slug.

    Steps:
    - Trim
    - Lowercase
    - Collapse whitespace to single hyphen
    - Remove disallowed chars (keep alnum & hyphen)
    - Strip leading/trailing hyphens
    Returns original value if falsy.
    """
    if not value:
        return value
    v = value.strip().lower()
    v = re.sub(r"\s+", "-", v)
    v = re.sub(r"[^a-z0-9-]", "", v)
    v = re.sub(r"-+", "-", v).strip('-')
    return v or value  # fallback if becomes empty


def normalize_difficulty(value) -> str:
    """Map any difficulty label onto beginner/intermediate/advanced."""
    if not value or not isinstance(value, str):
        return DEFAULT_DIFFICULTY
    return DIFFICULTY_ALIASES.get(value.strip().lower(), DEFAULT_DIFFICULTY)


def language_folder(language: str) -> str:
    """Archive folder name for a language."""
    if language in LANGUAGE_FOLDERS:
        return LANGUAGE_FOLDERS[language]
    slug = normalize_slug(language) or ""
    # the slug fallback can return the raw value; never let that reach a path
    return re.sub(r"[^a-z0-9-]", "", slug.lower()) or "general"
