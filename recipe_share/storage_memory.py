"""Process-local stores.

Useful for tests and single-process demos. Records are kept as plain dicts
and every read returns a fresh model instance, so callers can't mutate
stored state behind the store's back. A single lock makes each operation,
including the version-checked writes, atomic.
"""
import datetime
import logging
import threading
import uuid
from typing import Any, Dict, Iterable, List, Mapping, Optional

from .constants import normalize_username, parse_identifier
from .errors import ConflictError, DuplicateUsernameError, NotFoundError
from .models import RECIPE_EDITABLE_FIELDS, Recipe, User
from .storage import RecipeId, RecipePage, page_offset

logger = logging.getLogger(__name__)


def _utcnow() -> datetime.datetime:
    return datetime.datetime.now(datetime.timezone.utc)


class MemoryUserStore:
    def __init__(self):
        self._lock = threading.Lock()
        self._by_id: Dict[uuid.UUID, Dict[str, Any]] = {}
        self._id_by_username: Dict[str, uuid.UUID] = {}

    def add(self, username: str, password_hash: str) -> User:
        name = normalize_username(username)
        with self._lock:
            if name in self._id_by_username:
                raise DuplicateUsernameError()
            user = User(username=name, password_hash=password_hash)
            self._by_id[user.id] = user.model_dump()
            self._id_by_username[name] = user.id
        logger.debug("Stored user %s in memory", user.id)
        return User(**self._by_id[user.id])

    def get_by_username(self, username: str) -> Optional[User]:
        with self._lock:
            user_id = self._id_by_username.get(normalize_username(username))
            record = self._by_id.get(user_id) if user_id else None
        return User(**record) if record else None

    def get_by_id(self, user_id: uuid.UUID) -> Optional[User]:
        with self._lock:
            record = self._by_id.get(user_id)
        return User(**record) if record else None

    def get_many(self, user_ids: Iterable[uuid.UUID]) -> Dict[uuid.UUID, User]:
        with self._lock:
            records = [self._by_id[i] for i in set(user_ids) if i in self._by_id]
        return {r["id"]: User(**r) for r in records}


class MemoryRecipeStore:
    def __init__(self):
        self._lock = threading.Lock()
        self._records: Dict[uuid.UUID, Dict[str, Any]] = {}
        # insertion order breaks created_at ties so listing is stable
        self._seq: Dict[uuid.UUID, int] = {}
        self._next_seq = 0

    @staticmethod
    def _build(record: Dict[str, Any]) -> Recipe:
        data = dict(record)
        data["ingredients"] = list(data.get("ingredients") or [])
        return Recipe(**data)

    def _newest_first(self, records: Iterable[Dict[str, Any]]) -> List[Dict[str, Any]]:
        return sorted(records, key=lambda r: (r["created_at"], self._seq[r["id"]]), reverse=True)

    def create(self, fields: Mapping[str, Any], owner_id: uuid.UUID) -> Recipe:
        data = {k: fields[k] for k in RECIPE_EDITABLE_FIELDS if k in fields}
        data["ingredients"] = list(data.get("ingredients") or [])
        recipe = Recipe(**data, created_by=owner_id)
        with self._lock:
            self._records[recipe.id] = recipe.model_dump()
            self._seq[recipe.id] = self._next_seq
            self._next_seq += 1
        logger.debug("Stored recipe %s in memory", recipe.id)
        return self._build(self._records[recipe.id])

    def get_by_id(self, recipe_id: RecipeId) -> Optional[Recipe]:
        rid = parse_identifier(recipe_id)
        with self._lock:
            record = self._records.get(rid)
        return self._build(record) if record else None

    def list(self, page: int, limit: int) -> RecipePage:
        offset = page_offset(page, limit)
        with self._lock:
            ordered = self._newest_first(self._records.values())
            total = len(ordered)
        return RecipePage(items=[self._build(r) for r in ordered[offset:offset + limit]], total=total)

    def list_by_owner(self, owner_id: uuid.UUID) -> List[Recipe]:
        with self._lock:
            owned = self._newest_first(r for r in self._records.values() if r["created_by"] == owner_id)
        return [self._build(r) for r in owned]

    def update(
        self, recipe_id: RecipeId, patch: Mapping[str, Any], expected_version: Optional[int] = None,
    ) -> Recipe:
        rid = parse_identifier(recipe_id)
        changes = {k: patch[k] for k in RECIPE_EDITABLE_FIELDS if k in patch}
        if "ingredients" in changes:
            changes["ingredients"] = list(changes["ingredients"] or [])
        with self._lock:
            record = self._records.get(rid)
            if record is None:
                raise NotFoundError("Recipe not found")
            if expected_version is not None and record["version"] != expected_version:
                raise ConflictError()
            record.update(changes)
            record["updated_at"] = _utcnow()
            record["version"] += 1
            updated = self._build(record)
        return updated

    def delete(self, recipe_id: RecipeId, expected_version: Optional[int] = None) -> None:
        rid = parse_identifier(recipe_id)
        with self._lock:
            record = self._records.get(rid)
            if record is None:
                raise NotFoundError("Recipe not found")
            if expected_version is not None and record["version"] != expected_version:
                raise ConflictError()
            del self._records[rid]
            del self._seq[rid]

    def count(self) -> int:
        with self._lock:
            return len(self._records)
