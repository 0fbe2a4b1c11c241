"""Storage contracts shared by the SQL and in-memory backends.

The stores only persist; they know nothing about who is asking. Ownership
rules live in `recipes.RecipeService`, which reads through these contracts
before deciding whether a write may happen.

Both `RecipeStore.update` and `RecipeStore.delete` accept an
`expected_version`. When given, the write only applies if the stored
version still matches, so an ownership check followed by a write cannot act
on a record that changed in between.
"""
import uuid
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Mapping, Optional, Protocol, Union

from .models import Recipe, User

RecipeId = Union[str, uuid.UUID]


@dataclass
class RecipePage:
    items: List[Recipe] = field(default_factory=list)
    total: int = 0


class UserStore(Protocol):
    def add(self, username: str, password_hash: str) -> User: ...
    def get_by_username(self, username: str) -> Optional[User]: ...
    def get_by_id(self, user_id: uuid.UUID) -> Optional[User]: ...
    def get_many(self, user_ids: Iterable[uuid.UUID]) -> Dict[uuid.UUID, User]: ...


class RecipeStore(Protocol):
    def create(self, fields: Mapping[str, Any], owner_id: uuid.UUID) -> Recipe: ...
    def get_by_id(self, recipe_id: RecipeId) -> Optional[Recipe]: ...
    def list(self, page: int, limit: int) -> RecipePage: ...
    def list_by_owner(self, owner_id: uuid.UUID) -> List[Recipe]: ...
    def update(
        self, recipe_id: RecipeId, patch: Mapping[str, Any], expected_version: Optional[int] = None,
    ) -> Recipe: ...
    def delete(self, recipe_id: RecipeId, expected_version: Optional[int] = None) -> None: ...
    def count(self) -> int: ...


def page_offset(page: int, limit: int) -> int:
    return (max(1, int(page)) - 1) * max(1, int(limit))
