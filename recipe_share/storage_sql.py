"""SQLModel-backed stores.

Each call opens its own short-lived session via `session_scope`. Updates
and deletes are issued as single conditional statements
(`WHERE id = ? AND version = ?`) so the version check and the write happen
atomically in the database.
"""
import datetime
import logging
import uuid
from typing import Any, Dict, Iterable, List, Mapping, Optional

from sqlalchemy import delete as sa_delete
from sqlalchemy import desc, func
from sqlalchemy import update as sa_update
from sqlalchemy.exc import IntegrityError
from sqlmodel import select

from .constants import normalize_username, parse_identifier
from .db import session_scope
from .errors import ConflictError, DuplicateUsernameError, NotFoundError
from .models import RECIPE_EDITABLE_FIELDS, Recipe, User
from .storage import RecipeId, RecipePage, page_offset

logger = logging.getLogger(__name__)


class SqlUserStore:
    def __init__(self, engine):
        self.engine = engine

    def add(self, username: str, password_hash: str) -> User:
        user = User(username=normalize_username(username), password_hash=password_hash)
        with session_scope(self.engine) as session:
            existing = session.exec(select(User).where(User.username == user.username)).first()
            if existing is not None:
                raise DuplicateUsernameError()
            session.add(user)
            try:
                session.commit()
            except IntegrityError:
                # lost a race against a concurrent registration of the same name
                session.rollback()
                raise DuplicateUsernameError()
            session.refresh(user)
        logger.debug("Inserted user %s", user.id)
        return user

    def get_by_username(self, username: str) -> Optional[User]:
        with session_scope(self.engine) as session:
            return session.exec(select(User).where(User.username == normalize_username(username))).first()

    def get_by_id(self, user_id: uuid.UUID) -> Optional[User]:
        with session_scope(self.engine) as session:
            return session.get(User, user_id)

    def get_many(self, user_ids: Iterable[uuid.UUID]) -> Dict[uuid.UUID, User]:
        ids = set(user_ids)
        if not ids:
            return {}
        with session_scope(self.engine) as session:
            rows = session.exec(select(User).where(User.id.in_(ids))).all()
            return {u.id: u for u in rows}


class SqlRecipeStore:
    def __init__(self, engine):
        self.engine = engine

    def create(self, fields: Mapping[str, Any], owner_id: uuid.UUID) -> Recipe:
        data = {k: fields[k] for k in RECIPE_EDITABLE_FIELDS if k in fields}
        data["ingredients"] = list(data.get("ingredients") or [])
        recipe = Recipe(**data, created_by=owner_id)
        with session_scope(self.engine) as session:
            session.add(recipe)
            session.commit()
            session.refresh(recipe)
        logger.debug("Inserted recipe %s", recipe.id)
        return recipe

    def get_by_id(self, recipe_id: RecipeId) -> Optional[Recipe]:
        rid = parse_identifier(recipe_id)
        with session_scope(self.engine) as session:
            return session.get(Recipe, rid)

    def list(self, page: int, limit: int) -> RecipePage:
        with session_scope(self.engine) as session:
            total = session.exec(select(func.count()).select_from(Recipe)).one()
            # id breaks created_at ties so pages never overlap
            q = (
                select(Recipe)
                .order_by(desc(Recipe.created_at), desc(Recipe.id))
                .offset(page_offset(page, limit))
                .limit(limit)
            )
            rows = session.exec(q).all()
            return RecipePage(items=list(rows), total=int(total))

    def list_by_owner(self, owner_id: uuid.UUID) -> List[Recipe]:
        with session_scope(self.engine) as session:
            q = select(Recipe).where(Recipe.created_by == owner_id).order_by(desc(Recipe.created_at), desc(Recipe.id))
            return list(session.exec(q).all())

    def _missing_or_conflict(self, session, rid: uuid.UUID):
        if session.get(Recipe, rid) is None:
            return NotFoundError("Recipe not found")
        return ConflictError()

    def update(
        self, recipe_id: RecipeId, patch: Mapping[str, Any], expected_version: Optional[int] = None,
    ) -> Recipe:
        rid = parse_identifier(recipe_id)
        changes = {k: patch[k] for k in RECIPE_EDITABLE_FIELDS if k in patch}
        if "ingredients" in changes:
            changes["ingredients"] = list(changes["ingredients"] or [])
        changes["updated_at"] = datetime.datetime.now(datetime.timezone.utc)

        stmt = sa_update(Recipe).where(Recipe.id == rid)
        if expected_version is not None:
            stmt = stmt.where(Recipe.version == expected_version)
        stmt = stmt.values(**changes, version=Recipe.version + 1)

        with session_scope(self.engine) as session:
            result = session.connection().execute(stmt)
            if result.rowcount == 0:
                err = self._missing_or_conflict(session, rid)
                session.rollback()
                raise err
            session.commit()
            updated = session.get(Recipe, rid, populate_existing=True)
        logger.debug("Updated recipe %s to version %s", rid, updated.version)
        return updated

    def delete(self, recipe_id: RecipeId, expected_version: Optional[int] = None) -> None:
        rid = parse_identifier(recipe_id)
        stmt = sa_delete(Recipe).where(Recipe.id == rid)
        if expected_version is not None:
            stmt = stmt.where(Recipe.version == expected_version)

        with session_scope(self.engine) as session:
            result = session.connection().execute(stmt)
            if result.rowcount == 0:
                err = self._missing_or_conflict(session, rid)
                session.rollback()
                raise err
            session.commit()
        logger.debug("Deleted recipe %s", rid)

    def count(self) -> int:
        with session_scope(self.engine) as session:
            return int(session.exec(select(func.count()).select_from(Recipe)).one())
