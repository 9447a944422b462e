"""Content Generation Gateway.

Sends a GenerationRequest to a content generator and normalizes whatever
comes back into CandidateItem records. Generation is all-or-nothing: the
gateway either returns exactly ``count`` candidates or raises GenerationError.
"""
import logging
import secrets
from typing import Any, Dict, List, Optional, Tuple

import httpx
from pydantic import ValidationError as PydanticValidationError

from constants import (
    AI_SERVICE_API_KEY,
    AI_SERVICE_TIMEOUT,
    AI_SERVICE_URL,
    ANSWER_FALLBACK_POLICIES,
    ANSWER_FALLBACK_POLICY,
    DIFFICULTIES,
    GENERATED_ID_PREFIX,
    MAX_QUESTIONS_PER_REQUEST,
    STRICT_MODE,
    SUPPORTED_LANGUAGES,
    SUPPORTED_TOPICS,
    normalize_difficulty,
)
from error_utils import GenerationError, ValidationError
from models import CandidateItem, ContentType, GenerationRequest

logger = logging.getLogger(__name__)


def validate_request(request: GenerationRequest, max_count: int = MAX_QUESTIONS_PER_REQUEST) -> GenerationRequest:
    """Fail fast on blank language/topic and clamp count into [1, max_count]."""
    language = (request.language or "").strip()
    topic = (request.topic or "").strip()
    if not language:
        raise ValidationError("language is required")
    if not topic:
        raise ValidationError("topic is required")

    count = max(1, min(int(request.count), max_count))
    if count != request.count:
        logger.info(f"Clamped generation count {request.count} -> {count}")

    return request.model_copy(update={"language": language, "topic": topic, "count": count})


def build_prompt(request: GenerationRequest) -> str:
    prompt = (
        f"Generate {request.count} {request.difficulty.value} level {request.content_type.value} "
        f"questions about {request.topic} in {request.language}.\n"
        f"The questions should be:\n"
        f"- Relevant to {request.language} programming\n"
        f"- Focused on {request.topic}\n"
        f"- {request.difficulty.value} difficulty level\n"
        f"- Include explanations: {request.include_explanation}\n"
        f"- Include tags: {request.include_tags}\n"
        f"- Include company tags: {request.include_companies}"
    )
    if request.context:
        prompt += f"\nAdditional context: {request.context}"
    return prompt


# ===========================
# GENERATOR BACKENDS
# ===========================

class ContentGenerator:
    """Produces raw, free-form item dicts for a request."""

    name = "abstract"

    async def fetch_items(self, request: GenerationRequest) -> List[Dict[str, Any]]:
        raise NotImplementedError


class HttpContentGenerator(ContentGenerator):
    """Calls an external generation service: POST {base_url}/generate."""

    name = "HttpContentGenerator"

    def __init__(self, base_url: str, api_key: Optional[str] = None, timeout: float = AI_SERVICE_TIMEOUT,
                 transport: Optional[httpx.AsyncBaseTransport] = None):
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.timeout = timeout
        self.transport = transport

    def _headers(self) -> Dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
        return headers

    async def fetch_items(self, request: GenerationRequest) -> List[Dict[str, Any]]:
        payload = {
            "type": request.content_type.value,
            "language": request.language,
            "topic": request.topic,
            "difficulty": request.difficulty.value,
            "count": request.count,
            "context": request.context,
            "includeExplanation": request.include_explanation,
            "includeTags": request.include_tags,
            "includeCompanies": request.include_companies,
            "prompt": build_prompt(request),
        }
        url = f"{self.base_url}/generate"
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
                response = await client.post(url, json=payload, headers=self._headers())
                response.raise_for_status()
        except httpx.TimeoutException as e:
            logger.error(f"Generation service timed out: {e}")
            raise GenerationError(f"Generation service timed out after {self.timeout}s", status_code=503) from e
        except httpx.HTTPStatusError as e:
            # HTTP-level error returned by the service (4xx/5xx)
            try:
                detail_text = e.response.text
            except Exception:
                detail_text = "generation service error"
            logger.error(f"Generation service HTTP error {e.response.status_code}: {detail_text}")
            raise GenerationError(f"Generation service error ({e.response.status_code}): {detail_text}") from e
        except httpx.RequestError as e:
            logger.error(f"Generation service request failed: {e}")
            raise GenerationError(f"Generation service request failed: {e}", status_code=503) from e

        try:
            data = response.json()
        except ValueError as e:
            logger.error(f"Generation service returned invalid JSON: {e}")
            raise GenerationError("Generation service returned invalid JSON") from e

        if isinstance(data, list):
            return data
        if not isinstance(data, dict):
            raise GenerationError("Generation service returned an unexpected payload")
        if data.get("success") is False:
            raise GenerationError(data.get("error") or "Generation service reported failure")

        items = data.get("content") or data.get("questions") or data.get("items")
        if not isinstance(items, list):
            raise GenerationError("Generation service response has no item list")
        return items


def _mcq(question, options, answer, explanation, tags, companies):
    return {
        "question": question,
        "options": options,
        "correctAnswer": answer,
        "explanation": explanation,
        "tags": tags,
        "companies": companies,
    }


class TemplateContentGenerator(ContentGenerator):
    """Offline generator for development: templates keyed by language and topic keywords."""

    name = "TemplateContentGenerator"

    # language -> [(topic keywords, templates)]
    TEMPLATES: Dict[str, List[Tuple[Tuple[str, ...], List[Dict[str, Any]]]]] = {
        "java": [
            (("object-oriented", "oop"), [
                _mcq(
                    "What is the difference between method overloading and method overriding in Java?",
                    [
                        "Overloading is in same class with different parameters, overriding is in subclass with same signature",
                        "Overriding is in same class, overloading is in different classes",
                        "Both are the same concept with different names",
                        "Overloading is for constructors only, overriding is for methods only",
                    ],
                    "Overloading is in same class with different parameters, overriding is in subclass with same signature",
                    "Overloading happens within one class with different parameters; overriding redefines a parent method with the same signature in a subclass.",
                    ["java", "oop", "polymorphism"],
                    ["Google", "Amazon", "Oracle"],
                ),
                _mcq(
                    "Which access modifier provides the most restrictive access in Java?",
                    ["public", "protected", "default (package-private)", "private"],
                    "private",
                    "Private members are only accessible within the declaring class.",
                    ["java", "access-modifiers", "encapsulation"],
                    ["Oracle", "IBM"],
                ),
                _mcq(
                    "What is the purpose of the 'final' keyword in Java?",
                    [
                        "To make a class, method, or variable unchangeable",
                        "To indicate the last method in a class",
                        "To mark the end of a program",
                        "To create a constant variable only",
                    ],
                    "To make a class, method, or variable unchangeable",
                    "final prevents inheritance of classes, overriding of methods and reassignment of variables.",
                    ["java", "final", "inheritance"],
                    ["Google", "Microsoft"],
                ),
            ]),
            (("collection", "framework"), [
                _mcq(
                    "Which Java collection interface does not allow duplicate elements?",
                    ["List", "Set", "Map", "Queue"],
                    "Set",
                    "Set does not allow duplicate elements, while List allows duplicates and keeps insertion order.",
                    ["java", "collections", "set"],
                    ["Google", "Microsoft"],
                ),
                _mcq(
                    "What is the difference between ArrayList and LinkedList in Java?",
                    [
                        "ArrayList is faster for random access, LinkedList is faster for insertions/deletions",
                        "LinkedList is faster for random access, ArrayList is faster for insertions/deletions",
                        "Both have the same performance characteristics",
                        "ArrayList can only store primitives, LinkedList can store objects",
                    ],
                    "ArrayList is faster for random access, LinkedList is faster for insertions/deletions",
                    "ArrayList is backed by a dynamic array (O(1) random access); LinkedList is a doubly-linked list (O(1) insertion at a known node).",
                    ["java", "collections", "arraylist", "linkedlist"],
                    ["Amazon", "Microsoft"],
                ),
            ]),
        ],
        "javascript": [
            (("variable", "data type"), [
                _mcq(
                    "What is the difference between var, let, and const in JavaScript?",
                    [
                        "var is function-scoped, let and const are block-scoped",
                        "All three are block-scoped",
                        "var and let are function-scoped, const is block-scoped",
                        "There is no difference between them",
                    ],
                    "var is function-scoped, let and const are block-scoped",
                    "var has function scope, let and const have block scope; const also prevents reassignment.",
                    ["javascript", "variables", "scope", "es6"],
                    ["Google", "Netflix"],
                ),
                _mcq(
                    "What is the output of: console.log(typeof null)?",
                    ["null", "undefined", "object", "number"],
                    "object",
                    "typeof null returns 'object', a long-standing quirk of the language.",
                    ["javascript", "typeof", "data-types"],
                    ["Facebook", "Netflix"],
                ),
            ]),
            (("function", "scope", "closure"), [
                _mcq(
                    "What is a closure in JavaScript?",
                    [
                        "A function that has access to variables in its outer scope",
                        "A way to close browser tabs",
                        "A method to end loops",
                        "A type of JavaScript object",
                    ],
                    "A function that has access to variables in its outer scope",
                    "A closure keeps access to its enclosing scope even after the outer function has returned.",
                    ["javascript", "closure", "functions"],
                    ["Facebook", "Netflix"],
                ),
            ]),
        ],
        "python": [
            (("data structure", "list"), [
                _mcq(
                    "What is the difference between a list and a tuple in Python?",
                    [
                        "Lists are mutable, tuples are immutable",
                        "Tuples are mutable, lists are immutable",
                        "Both are mutable",
                        "Both are immutable",
                    ],
                    "Lists are mutable, tuples are immutable",
                    "Lists can be modified after creation, tuples cannot.",
                    ["python", "data-structures"],
                    ["Google", "Amazon"],
                ),
                _mcq(
                    "What is a dictionary comprehension in Python?",
                    [
                        "A concise way to create dictionaries using expressions",
                        "A method to understand dictionary keys",
                        "A type of Python documentation",
                        "A way to sort dictionaries",
                    ],
                    "A concise way to create dictionaries using expressions",
                    "Dictionary comprehensions build dicts from an expression, like list comprehensions do for lists.",
                    ["python", "dictionary", "comprehension"],
                    ["Google", "Microsoft"],
                ),
            ]),
            (("function", "def"), [
                _mcq(
                    "What is the purpose of *args in a Python function definition?",
                    [
                        "To accept a variable number of positional arguments",
                        "To accept keyword arguments only",
                        "To define required arguments",
                        "To create a tuple",
                    ],
                    "To accept a variable number of positional arguments",
                    "*args collects extra positional arguments into a tuple.",
                    ["python", "functions"],
                    ["Microsoft"],
                ),
            ]),
        ],
        "react": [
            (("component", "props"), [
                _mcq(
                    "What is the difference between props and state in React?",
                    [
                        "Props are read-only and passed from parent, state is internal and mutable",
                        "Props are mutable, state is read-only",
                        "Both are the same thing",
                        "Props are for styling, state is for data",
                    ],
                    "Props are read-only and passed from parent, state is internal and mutable",
                    "Props come from the parent and are read-only; state is owned by the component and can change.",
                    ["react", "props", "state", "components"],
                    ["Facebook", "Airbnb"],
                ),
                _mcq(
                    "What is a functional component in React?",
                    [
                        "A component written as a JavaScript function",
                        "A component that only works with functions",
                        "A component that cannot have state",
                        "A component that only renders once",
                    ],
                    "A component written as a JavaScript function",
                    "Functional components are plain functions and use hooks for state and lifecycle.",
                    ["react", "components", "hooks"],
                    ["Facebook", "Netflix"],
                ),
            ]),
        ],
    }

    def _language_groups(self, language: str):
        language = language.lower()
        # "javascript" contains "java", so match exact names first
        if language in self.TEMPLATES:
            return self.TEMPLATES[language]
        for key, groups in self.TEMPLATES.items():
            if key in language:
                return groups
        return []

    def _templates_for(self, request: GenerationRequest) -> List[Dict[str, Any]]:
        topic = request.topic.lower()
        for keywords, templates in self._language_groups(request.language):
            if any(k in topic for k in keywords):
                return templates
        return self._fallback_templates(request)

    def _fallback_templates(self, request: GenerationRequest) -> List[Dict[str, Any]]:
        language, topic = request.language, request.topic
        return [
            _mcq(
                f"What is a key concept in {topic} for {language}?",
                [
                    "Understanding the core principles",
                    "Memorizing syntax only",
                    "Ignoring best practices",
                    "Using outdated methods",
                ],
                "Understanding the core principles",
                f"Understanding the core principles is essential for mastering {topic} in {language}.",
                [language.lower(), topic.lower(), "fundamentals"],
                ["Google", "Amazon", "Microsoft"],
            ),
            _mcq(
                f"Which of the following is important when working with {topic} in {language}?",
                [
                    "Following best practices and design patterns",
                    "Using the most complex solutions",
                    "Ignoring documentation",
                    "Avoiding testing",
                ],
                "Following best practices and design patterns",
                f"Best practices keep {language} code maintainable.",
                [language.lower(), topic.lower(), "best-practices"],
                ["Google", "Amazon", "Microsoft"],
            ),
        ]

    async def fetch_items(self, request: GenerationRequest) -> List[Dict[str, Any]]:
        templates = self._templates_for(request)
        items = []
        for i in range(request.count):
            base = dict(templates[i % len(templates)])
            round_no = i // len(templates)
            if round_no:
                base["question"] = f"{base['question']} (variant {round_no + 1})"
            if request.content_type == ContentType.PROBLEM:
                base["options"] = []
                base["correctAnswer"] = ""
            base["difficulty"] = request.difficulty.value
            base["topic"] = request.topic
            items.append(base)
        return items


# ===========================
# NORMALIZATION
# ===========================

def _first_text(raw: Dict[str, Any], *keys: str) -> str:
    for key in keys:
        value = raw.get(key)
        if isinstance(value, str) and value.strip():
            return value.strip()
    return ""


def _new_id(used: set) -> str:
    while True:
        candidate = f"{GENERATED_ID_PREFIX}{secrets.token_urlsafe(8)}"
        if candidate not in used:
            used.add(candidate)
            return candidate


def normalize_items(raw_items: List[Any], request: GenerationRequest,
                    answer_fallback_policy: str = ANSWER_FALLBACK_POLICY) -> List[CandidateItem]:
    """Map free-form upstream items onto CandidateItem. Raises GenerationError on any malformed item."""
    if len(raw_items) < request.count:
        raise GenerationError(
            f"Generation service returned {len(raw_items)} items, expected {request.count}"
        )
    if len(raw_items) > request.count:
        logger.info(f"Generation service returned {len(raw_items)} items; keeping first {request.count}")

    used_ids: set = set()
    candidates = []
    for position, raw in enumerate(raw_items[:request.count]):
        if not isinstance(raw, dict):
            raise GenerationError(f"Generated item {position + 1} is not an object")

        text = _first_text(raw, "question", "questionText", "content", "title")
        if not text:
            raise GenerationError(f"Generated item {position + 1} has no question text")

        options: List[str] = []
        correct = ""
        if request.content_type != ContentType.PROBLEM:
            raw_options = raw.get("options") or []
            if not isinstance(raw_options, list):
                raise GenerationError(f"Generated item {position + 1} has malformed options")
            options = [str(o) for o in raw_options]
            correct = raw.get("correctAnswer", raw.get("correct_answer"))
            correct = "" if correct is None else str(correct)
            if options and correct not in options:
                if answer_fallback_policy == "reject":
                    raise GenerationError(
                        f"Generated item {position + 1} has a correct answer that is not one of its options"
                    )
                logger.warning(
                    f"Generated item {position + 1}: correct answer {correct[:40]!r} not among options; "
                    f"defaulting to first option"
                )
                correct = options[0]

        raw_difficulty = raw.get("difficulty")
        difficulty = normalize_difficulty(raw_difficulty) if raw_difficulty else request.difficulty.value

        try:
            candidate = CandidateItem(
                id=_new_id(used_ids),
                content_type=request.content_type,
                question_text=text,
                options=options,
                correct_answer=correct,
                explanation=(raw.get("explanation") or None) if request.include_explanation else None,
                tags=(raw.get("tags") or []) if request.include_tags else [],
                companies=(raw.get("companies") or []) if request.include_companies else [],
                difficulty=difficulty,
                topic=_first_text(raw, "topic", "category") or request.topic,
                language=_first_text(raw, "language") or request.language,
            )
        except (PydanticValidationError, TypeError, ValueError) as e:
            raise GenerationError(f"Generated item {position + 1} is malformed: {e}") from e
        candidates.append(candidate)
    return candidates


class ContentGenerationGateway:
    """generate(request) -> exactly request.count candidates, or GenerationError."""

    def __init__(self, generator: ContentGenerator, max_count: int = MAX_QUESTIONS_PER_REQUEST,
                 answer_fallback_policy: str = ANSWER_FALLBACK_POLICY):
        if answer_fallback_policy not in ANSWER_FALLBACK_POLICIES:
            raise ValueError(f"Unknown answer fallback policy: {answer_fallback_policy}")
        self.generator = generator
        self.max_count = max_count
        self.answer_fallback_policy = answer_fallback_policy

    async def generate(self, request: GenerationRequest) -> List[CandidateItem]:
        request = validate_request(request, self.max_count)
        logger.info(
            f"Generating {request.count} {request.content_type.value} items "
            f"language={request.language} topic={request.topic} difficulty={request.difficulty.value} "
            f"via {self.generator.name}"
        )
        try:
            raw_items = await self.generator.fetch_items(request)
        except GenerationError:
            raise
        except Exception as e:
            logger.exception(f"Generator {self.generator.name} failed: {e}")
            raise GenerationError(f"Content generation failed: {e}") from e

        if not isinstance(raw_items, list):
            raise GenerationError("Generator returned an unexpected payload")
        return normalize_items(raw_items, request, self.answer_fallback_policy)


def build_generator() -> ContentGenerator:
    """Pick the generator backend from configuration."""
    if AI_SERVICE_URL:
        return HttpContentGenerator(AI_SERVICE_URL, api_key=AI_SERVICE_API_KEY, timeout=AI_SERVICE_TIMEOUT)
    if STRICT_MODE:
        raise RuntimeError("AI_SERVICE_URL is required when STRICT_MODE is enabled")
    logger.warning("AI_SERVICE_URL not set; using template generator (development mode)")
    return TemplateContentGenerator()


def generation_config(generator: ContentGenerator, max_count: int = MAX_QUESTIONS_PER_REQUEST) -> Dict[str, Any]:
    """Options the admin UI offers when configuring a generation run."""
    return {
        "activeService": generator.name,
        "availableServices": [
            {
                "name": TemplateContentGenerator.name,
                "description": "Template-based generator for development",
                "available": not STRICT_MODE,
            },
            {
                "name": HttpContentGenerator.name,
                "description": "External AI generation service",
                "available": bool(AI_SERVICE_URL),
            },
        ],
        "supportedLanguages": SUPPORTED_LANGUAGES,
        "supportedTopics": SUPPORTED_TOPICS,
        "supportedDifficulties": list(DIFFICULTIES),
        "supportedContentTypes": [t.value for t in ContentType],
        "maxQuestionsPerRequest": max_count,
    }
