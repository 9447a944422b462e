"""
Azure Cosmos DB database service layer

This module provides the storage collaborator used by ingestion and stats:
a thin Cosmos DB service (retry, RU monitoring) and question stores built
on top of it, plus an in-memory store for development mode.
"""

import asyncio
import time
from typing import Any, Dict, List, Optional
from azure.cosmos import ContainerProxy, DatabaseProxy, PartitionKey
from azure.cosmos.exceptions import (
    CosmosResourceNotFoundError,
    CosmosHttpResponseError,
    CosmosResourceExistsError,
)
import logging
from constants import CONTAINER
from dedup import language_key
from error_utils import DuplicateRejection, ItemPersistError
from models import CorpusRecord

logger = logging.getLogger(__name__)


class CosmosDBMetrics:
    """Class to track Cosmos DB metrics and performance"""

    def __init__(self):
        self.total_request_charge = 0.0
        self.operation_count = 0
        self.operation_times = []

    def record_operation(self, request_charge: float, duration_ms: float, operation_type: str):
        """Record an operation's metrics"""
        self.total_request_charge += request_charge
        self.operation_count += 1
        self.operation_times.append(duration_ms)

        logger.debug(f"Cosmos DB {operation_type}: {request_charge} RU, {duration_ms:.2f}ms")

    def get_average_ru_per_operation(self) -> float:
        """Get average RU consumption per operation"""
        return self.total_request_charge / self.operation_count if self.operation_count > 0 else 0.0

    def get_average_duration(self) -> float:
        """Get average operation duration in milliseconds"""
        return sum(self.operation_times) / len(self.operation_times) if self.operation_times else 0.0


# Global metrics instance for monitoring
cosmos_metrics = CosmosDBMetrics()


class CosmosRetryConfig:
    """Configuration for Cosmos DB retry logic"""
    MAX_RETRIES = 3
    INITIAL_DELAY = 1.0  # seconds
    MAX_DELAY = 10.0     # seconds
    BACKOFF_MULTIPLIER = 2.0

    # HTTP status codes that should trigger a retry
    RETRYABLE_STATUS_CODES = {429, 503, 408, 500, 502, 504}


async def cosmos_retry_wrapper(operation, *args, operation_type: str = "unknown", **kwargs):
    """
    Wrapper for Cosmos DB operations with exponential backoff retry logic.
    Conflicts (409) and other non-retryable errors are raised immediately.
    """
    config = CosmosRetryConfig()
    last_exception = None
    start_time = time.time()

    for attempt in range(config.MAX_RETRIES + 1):
        try:
            result = await operation(*args, **kwargs) if asyncio.iscoroutinefunction(operation) else operation(*args, **kwargs)

            duration_ms = (time.time() - start_time) * 1000

            request_charge = 0.0
            if hasattr(result, 'headers') and 'x-ms-request-charge' in result.headers:
                request_charge = float(result.headers['x-ms-request-charge'])
            elif hasattr(result, 'request_charge'):
                request_charge = float(result.request_charge)

            cosmos_metrics.record_operation(request_charge, duration_ms, operation_type)

            if request_charge > 50.0:
                logger.warning(f"High RU operation: {operation_type} consumed {request_charge} RU")

            return result

        except CosmosHttpResponseError as e:
            last_exception = e
            status_code = e.status_code

            if status_code not in config.RETRYABLE_STATUS_CODES or attempt == config.MAX_RETRIES:
                logger.error(f"Cosmos DB operation failed after {attempt + 1} attempts: {e}")
                raise

            delay = min(
                config.INITIAL_DELAY * (config.BACKOFF_MULTIPLIER ** attempt),
                config.MAX_DELAY
            )

            # For throttling (429), respect the retry-after header if present
            if status_code == 429:
                retry_after = (e.headers or {}).get('x-ms-retry-after-ms')
                if retry_after:
                    delay = max(delay, float(retry_after) / 1000.0)

            logger.warning(f"Cosmos DB operation failed (attempt {attempt + 1}/{config.MAX_RETRIES + 1}): {e}. Retrying in {delay}s")
            await asyncio.sleep(delay)

    raise last_exception


class CosmosDBService:
    """Service layer for Azure Cosmos DB operations"""

    def __init__(self, database_client: DatabaseProxy):
        self.database_client = database_client
        self._containers = {}

    def get_container(self, container_name: str) -> ContainerProxy:
        """Get or create container client"""
        if container_name not in self._containers:
            self._containers[container_name] = self.database_client.get_container_client(container_name)
        return self._containers[container_name]

    async def ensure_containers_exist(self):
        """Ensure required containers exist with partition keys and unique keys."""
        containers_config = {
            # question_hash covers language, topic and normalized text; unique within a partition
            CONTAINER["QUESTIONS"]: {
                "pk": "/language_key",
                "unique_keys": [{"paths": ["/question_hash"]}],
                "index_policy": {
                    "indexingMode": "consistent",
                    "automatic": True,
                    "includedPaths": [{"path": "/*"}],
                    "excludedPaths": [
                        {"path": "/explanation/?"},
                        {"path": "/options/*"},
                        {"path": "/_etag/?"},
                    ],
                },
            },
        }
        for container_name, cfg in containers_config.items():
            try:
                container = self.database_client.get_container_client(container_name)
                container.read()
                logger.info(f"Container '{container_name}' already exists")
            except CosmosResourceNotFoundError:
                create_kwargs = {
                    "id": container_name,
                    "partition_key": PartitionKey(path=cfg["pk"]),
                }
                if "unique_keys" in cfg:
                    create_kwargs["unique_key_policy"] = {"uniqueKeys": cfg["unique_keys"]}
                if "index_policy" in cfg:
                    create_kwargs["indexing_policy"] = cfg["index_policy"]
                try:
                    self.database_client.create_container(**create_kwargs)
                    logger.info(f"Created container '{container_name}' with pk '{cfg['pk']}'")
                except CosmosHttpResponseError as e:
                    logger.error(f"Failed to create container '{container_name}': {e}")
                    raise

    async def create_item(self, container_name: str, item: Dict[str, Any]) -> Dict[str, Any]:
        """Create a new item in the container"""
        container = self.get_container(container_name)

        async def _create_operation():
            return container.create_item(body=item)

        try:
            response = await cosmos_retry_wrapper(_create_operation, operation_type="create_item")
            logger.info(f"Created item in '{container_name}': {response.get('id')}")
            return response
        except CosmosResourceExistsError:
            logger.warning(f"Item already exists in '{container_name}': {item.get('id')}")
            raise
        except CosmosHttpResponseError as e:
            logger.error(f"Failed to create item in '{container_name}': {e}")
            raise

    async def delete_item(self, container_name: str, item_id: str, partition_key: str) -> bool:
        """Delete an item by ID and partition key"""
        container = self.get_container(container_name)

        def _delete_operation():
            return container.delete_item(item=item_id, partition_key=partition_key)

        try:
            await cosmos_retry_wrapper(_delete_operation, operation_type="delete_item")
            logger.info(f"Deleted item '{item_id}' from '{container_name}'")
            return True
        except CosmosResourceNotFoundError:
            return False
        except CosmosHttpResponseError as e:
            logger.error(f"Failed to delete item '{item_id}' from '{container_name}': {e}")
            raise

    async def query_items(self, container_name: str, query: str, parameters: Optional[List[Dict[str, Any]]] = None,
                          partition_key: Optional[str] = None) -> List[Dict[str, Any]]:
        """Query items using SQL syntax; cross-partition unless a partition key is given"""
        container = self.get_container(container_name)

        def _query_operation():
            kwargs = {"query": query, "parameters": parameters or []}
            if partition_key is not None:
                kwargs["partition_key"] = partition_key
            else:
                kwargs["enable_cross_partition_query"] = True
            return list(container.query_items(**kwargs))

        try:
            return await cosmos_retry_wrapper(_query_operation, operation_type="query_items")
        except CosmosHttpResponseError as e:
            logger.error(f"Query failed in '{container_name}': {e}")
            raise


async def get_cosmosdb_service(database_client: DatabaseProxy) -> CosmosDBService:
    """Get initialized CosmosDB service with containers"""
    service = CosmosDBService(database_client)
    await service.ensure_containers_exist()
    return service


# ===========================
# QUESTION STORES
# ===========================

def document_to_record(doc: Dict[str, Any]) -> CorpusRecord:
    return CorpusRecord(
        id=doc.get("id"),
        question_text=doc.get("question") or "",
        language=doc.get("language") or doc.get("category") or "",
        topic=doc.get("topic") or "",
        difficulty=doc.get("difficulty"),
        persisted=True,
    )


def _document_language_key(doc: Dict[str, Any]) -> str:
    return doc.get("language_key") or language_key(doc.get("language") or doc.get("category") or "")


def _matches_content_type(doc: Dict[str, Any], content_type: Optional[str]) -> bool:
    # "mcq" covers every non-problem question
    if content_type is None:
        return True
    is_problem = doc.get("content_type") == "problem"
    return is_problem if content_type == "problem" else not is_problem


class QuestionStore:
    """Storage collaborator for generated questions.

    create_question raises DuplicateRejection when the question_hash is already
    stored and ItemPersistError for any other storage failure, an id clash included.
    """

    name = "abstract"

    async def list_corpus(self, language: Optional[str] = None) -> List[CorpusRecord]:
        raise NotImplementedError

    async def create_question(self, document: Dict[str, Any]) -> str:
        raise NotImplementedError

    async def list_generated(self, id_prefix: str) -> List[Dict[str, Any]]:
        """Documents whose id starts with id_prefix (id, question, category, difficulty, created_at)."""
        raise NotImplementedError

    async def delete_by_category(self, category: str, content_type: Optional[str] = None) -> int:
        """Remove every question of a category ("mcq", "problem" or both); returns the count."""
        raise NotImplementedError


class InMemoryQuestionStore(QuestionStore):
    """Development store; enforces the same question_hash uniqueness as Cosmos."""

    name = "memory"

    def __init__(self, documents: Optional[List[Dict[str, Any]]] = None):
        self._documents: Dict[str, Dict[str, Any]] = {}
        for doc in documents or []:
            self._documents[doc["id"]] = dict(doc)

    @property
    def documents(self) -> List[Dict[str, Any]]:
        return list(self._documents.values())

    async def list_corpus(self, language: Optional[str] = None) -> List[CorpusRecord]:
        key = language_key(language) if language else None
        return [
            document_to_record(doc) for doc in self._documents.values()
            if key is None or _document_language_key(doc) == key
        ]

    async def create_question(self, document: Dict[str, Any]) -> str:
        doc_id = document.get("id")
        if not doc_id:
            raise ItemPersistError("Document has no id")
        qhash = document.get("question_hash")
        if qhash:
            for existing in self._documents.values():
                if existing.get("question_hash") == qhash and _document_language_key(existing) == _document_language_key(document):
                    raise DuplicateRejection(f"Question already exists as {existing.get('id')}")
        if doc_id in self._documents:
            raise ItemPersistError(f"Question id already exists: {doc_id}")
        self._documents[doc_id] = dict(document)
        return doc_id

    async def list_generated(self, id_prefix: str) -> List[Dict[str, Any]]:
        return [dict(d) for d in self._documents.values() if str(d.get("id", "")).startswith(id_prefix)]

    async def delete_by_category(self, category: str, content_type: Optional[str] = None) -> int:
        key = language_key(category)
        doomed = [
            doc_id for doc_id, doc in self._documents.items()
            if _document_language_key(doc) == key and _matches_content_type(doc, content_type)
        ]
        for doc_id in doomed:
            del self._documents[doc_id]
        logger.info(f"Deleted {len(doomed)} questions from category '{category}'")
        return len(doomed)


class CosmosQuestionStore(QuestionStore):
    """Question store backed by the Cosmos DB `questions` container."""

    name = "cosmos"

    def __init__(self, service: CosmosDBService):
        self.service = service
        self.container = CONTAINER["QUESTIONS"]

    async def list_corpus(self, language: Optional[str] = None) -> List[CorpusRecord]:
        query = "SELECT c.id, c.question, c.language, c.category, c.topic, c.difficulty FROM c"
        if language:
            # single-partition read
            docs = await self.service.query_items(self.container, query, partition_key=language_key(language))
        else:
            docs = await self.service.query_items(self.container, query)
        return [document_to_record(d) for d in docs]

    async def _hash_owner(self, document: Dict[str, Any]) -> Optional[str]:
        docs = await self.service.query_items(
            self.container,
            "SELECT c.id FROM c WHERE c.question_hash = @hash",
            [{"name": "@hash", "value": document.get("question_hash")}],
            partition_key=document.get("language_key"),
        )
        return docs[0].get("id") if docs else None

    async def create_question(self, document: Dict[str, Any]) -> str:
        try:
            created = await self.service.create_item(self.container, document)
        except CosmosResourceExistsError as e:
            # 409 is raised for both an id clash and a unique key clash
            owner = await self._hash_owner(document)
            if owner:
                raise DuplicateRejection(f"Question already exists as {owner}") from e
            raise ItemPersistError(f"Question id already exists: {document.get('id')}") from e
        except CosmosHttpResponseError as e:
            raise ItemPersistError(f"Cosmos DB error ({e.status_code}): {e.message if hasattr(e, 'message') else e}") from e
        return created.get("id") or document["id"]

    async def list_generated(self, id_prefix: str) -> List[Dict[str, Any]]:
        query = (
            "SELECT c.id, c.question, c.category, c.language, c.difficulty, c.created_at "
            "FROM c WHERE STARTSWITH(c.id, @prefix)"
        )
        return await self.service.query_items(
            self.container, query, [{"name": "@prefix", "value": id_prefix}]
        )

    async def delete_by_category(self, category: str, content_type: Optional[str] = None) -> int:
        key = language_key(category)
        docs = await self.service.query_items(
            self.container, "SELECT c.id, c.content_type FROM c", partition_key=key
        )
        deleted = 0
        for doc in docs:
            if _matches_content_type(doc, content_type):
                if await self.service.delete_item(self.container, doc["id"], key):
                    deleted += 1
        logger.info(f"Deleted {deleted} questions from category '{category}'")
        return deleted
