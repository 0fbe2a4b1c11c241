import datetime
import uuid
from typing import List, Optional

from sqlalchemy import JSON, Column
from sqlmodel import Field, SQLModel


def _utcnow() -> datetime.datetime:
    return datetime.datetime.now(datetime.timezone.utc)


class User(SQLModel, table=True):
    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)
    username: str = Field(index=True, unique=True)
    password_hash: str
    created_at: datetime.datetime = Field(default_factory=_utcnow)


class Recipe(SQLModel, table=True):
    """A recipe owned by the user that created it.

    `created_by` is set once from the authenticated identity and never
    rewritten. `version` increases on every successful update and guards
    conditional writes.
    """
    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)
    title: str
    ingredients: List[str] = Field(default_factory=list, sa_column=Column(JSON, nullable=False))
    instructions: str
    cooking_time: Optional[float] = None
    servings: Optional[float] = None
    created_by: uuid.UUID = Field(index=True, foreign_key="user.id")
    created_at: datetime.datetime = Field(default_factory=_utcnow, index=True)
    updated_at: datetime.datetime = Field(default_factory=_utcnow)
    version: int = Field(default=1)


# Fields a client may set on create or update; everything else is server-owned.
RECIPE_EDITABLE_FIELDS = ("title", "ingredients", "instructions", "cooking_time", "servings")
