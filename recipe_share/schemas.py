"""Request and response bodies for every endpoint.

Wire names are camelCase; request bodies also accept the snake_case
attribute names. Unknown request fields (including `createdBy`, `id` or
`version`) are ignored rather than applied.
"""
import datetime
import uuid
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_serializer, field_validator
from pydantic.alias_generators import to_camel

from .constants import MAX_TITLE_LENGTH, MAX_USERNAME_LENGTH


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")


def _as_utc(value: datetime.datetime) -> datetime.datetime:
    # SQLite hands back naive datetimes; they are always stored in UTC
    if value.tzinfo is None:
        return value.replace(tzinfo=datetime.timezone.utc)
    return value


class SessionClaim(BaseModel):
    """Identity data extracted from a verified token."""
    user_id: uuid.UUID
    username: str
    issued_at: datetime.datetime
    expires_at: datetime.datetime


# --- auth ---

class CredentialsRequest(BaseModel):
    username: str
    password: str


class RegisterRequest(CredentialsRequest):
    username: str = Field(max_length=MAX_USERNAME_LENGTH)


class RegisterResponse(CamelModel):
    message: str
    user_id: uuid.UUID


class UserPublic(BaseModel):
    id: uuid.UUID
    username: str


class LoginResponse(BaseModel):
    token: str
    message: str
    user: UserPublic


class ProfileResponse(BaseModel):
    message: str
    user: UserPublic


# --- recipes ---

def _require_text(value: Optional[str], field_name: str) -> Optional[str]:
    if value is None:
        return None
    if not value.strip():
        raise ValueError(f"{field_name} must not be empty")
    return value


class RecipeCreate(CamelModel):
    title: str = Field(max_length=MAX_TITLE_LENGTH)
    ingredients: List[str] = Field(default_factory=list)
    instructions: str
    cooking_time: Optional[float] = Field(default=None, ge=0)
    servings: Optional[float] = Field(default=None, ge=0)

    @field_validator("title", "instructions")
    @classmethod
    def _not_blank(cls, v, info):
        return _require_text(v, info.field_name)

    @field_validator("ingredients", mode="before")
    @classmethod
    def _null_ingredients(cls, v):
        return [] if v is None else v


class RecipeUpdate(CamelModel):
    """Partial update; only fields present in the body are applied."""
    title: Optional[str] = Field(default=None, max_length=MAX_TITLE_LENGTH)
    ingredients: Optional[List[str]] = None
    instructions: Optional[str] = None
    cooking_time: Optional[float] = Field(default=None, ge=0)
    servings: Optional[float] = Field(default=None, ge=0)

    @field_validator("title", "instructions", mode="before")
    @classmethod
    def _not_blank(cls, v, info):
        if v is None:
            raise ValueError(f"{info.field_name} must not be null")
        return v

    @field_validator("title", "instructions")
    @classmethod
    def _not_empty(cls, v, info):
        return _require_text(v, info.field_name)

    def changes(self) -> Dict[str, Any]:
        data = self.model_dump(exclude_unset=True, by_alias=False)
        if data.get("ingredients", []) is None:
            data["ingredients"] = []
        return data


class RecipeOut(CamelModel):
    id: uuid.UUID
    title: str
    ingredients: List[str]
    instructions: str
    cooking_time: Optional[float] = None
    servings: Optional[float] = None
    created_by: uuid.UUID
    author: Optional[UserPublic] = None
    created_at: datetime.datetime
    updated_at: datetime.datetime
    version: int

    @field_serializer("created_at", "updated_at")
    def _serialize_ts(self, value: datetime.datetime) -> str:
        return _as_utc(value).isoformat()


class Pagination(BaseModel):
    page: int
    limit: int
    total: int
    pages: int


class RecipeListResponse(BaseModel):
    recipes: List[RecipeOut]
    pagination: Pagination


class MessageResponse(BaseModel):
    message: str


class ErrorResponse(BaseModel):
    error: str


class HealthResponse(BaseModel):
    status: str
    timestamp: str
    uptime: float
