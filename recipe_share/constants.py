"""Global constants and small input helpers shared across the service."""
import uuid
from typing import Union

from .errors import InvalidIdentifierError

SERVICE_NAME = "Recipe API"
SERVICE_VERSION = "1.0.0"

STORAGE_BACKENDS = {"sql", "memory"}

MIN_PASSWORD_LENGTH = 6
MAX_USERNAME_LENGTH = 64

DEFAULT_TOKEN_EXPIRY = "24h"
JWT_ALGORITHM = "HS256"

DEFAULT_PAGE = 1
DEFAULT_PAGE_LIMIT = 10
MAX_PAGE_LIMIT = 100
# keeps (page - 1) * limit inside a signed 64-bit OFFSET
MAX_PAGE = 10_000_000

MAX_TITLE_LENGTH = 200

DOCS_URL = "/api-docs"
OPENAPI_URL = "/swagger.json"


def normalize_username(username: str) -> str:
    """Strip surrounding whitespace; usernames are otherwise case-sensitive."""
    return (username or "").strip()


def parse_identifier(raw: Union[str, uuid.UUID, None], kind: str = "recipe") -> uuid.UUID:
    """Parse an opaque resource id.

    A value that is not a well-formed UUID raises InvalidIdentifierError so
    callers can tell a malformed id apart from a missing record.
    """
    if isinstance(raw, uuid.UUID):
        return raw
    try:
        return uuid.UUID(str(raw).strip())
    except (ValueError, AttributeError, TypeError):
        raise InvalidIdentifierError(f"Invalid {kind} ID")


def total_pages(total: int, limit: int) -> int:
    if limit <= 0:
        return 0
    return -(-int(total) // int(limit))
