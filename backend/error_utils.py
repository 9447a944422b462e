import logging
from fastapi import HTTPException
from typing import Optional

logger = logging.getLogger(__name__)


class ContentError(Exception):
    """Base class for content generation / ingestion failures."""

    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(ContentError):
    """Malformed or out-of-range request input. Raised before any outbound call."""

    status_code = 400


class GenerationError(ContentError):
    """Upstream content generation failed; no candidates are returned."""

    status_code = 502

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        if status_code is not None:
            self.status_code = status_code


class NotFoundError(ContentError):
    """Requested archive content does not exist."""

    status_code = 404


class DuplicateRejection(ContentError):
    """Storage refused an item because an equal question already exists.

    Not a failure: ingestion reports it as a Duplicate outcome.
    """

    status_code = 409


class ItemPersistError(ContentError):
    """Storage failed for a single item. Sibling items are unaffected."""


class ExportError(ContentError):
    """Archive target could not be read or written."""


def safe_raise_http(user_message: str, exc: Optional[Exception] = None, status_code: int = 500) -> None:
    """
    Log the full exception server-side and raise a generic HTTPException for clients.

    - user_message: short, non-sensitive message returned to client
    - exc: optional exception instance; full details are logged with stack trace
    - status_code: HTTP status code to raise
    """
    if exc is not None:
        logger.exception("%s: %s", user_message, exc)
    else:
        logger.error(user_message)
    raise HTTPException(status_code=status_code, detail=user_message)

