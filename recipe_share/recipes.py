"""Recipe operations with ownership enforcement.

Mutations follow a fixed order: the target is fetched first, so a missing
recipe reports NotFound to anyone; only then is `created_by` compared with
the caller, and a mismatch is reported as Forbidden rather than hidden.
The write itself is conditioned on the version seen during the check.
"""
import logging
from typing import List, Optional

from .constants import parse_identifier
from .errors import ForbiddenError, InvalidTokenError, NotFoundError
from .models import Recipe
from .schemas import RecipeCreate, RecipeOut, RecipeUpdate, SessionClaim, UserPublic
from .storage import RecipeId, RecipePage, RecipeStore, UserStore

logger = logging.getLogger(__name__)


class RecipeService:
    def __init__(self, recipes: RecipeStore, users: UserStore):
        self.recipes = recipes
        self.users = users

    # reads are public

    def get(self, recipe_id: RecipeId) -> Recipe:
        recipe = self.recipes.get_by_id(recipe_id)
        if recipe is None:
            raise NotFoundError("Recipe not found")
        return recipe

    def list(self, page: int, limit: int) -> RecipePage:
        return self.recipes.list(page, limit)

    def list_by_owner(self, user_id: RecipeId) -> List[Recipe]:
        owner_id = parse_identifier(user_id, kind="user")
        return self.recipes.list_by_owner(owner_id)

    # writes need an authenticated claim

    def create(self, claim: SessionClaim, data: RecipeCreate) -> Recipe:
        # the owner must exist when the recipe is created; the token alone is not enough
        if self.users.get_by_id(claim.user_id) is None:
            logger.warning("Token for unknown user %s used to create a recipe", claim.user_id)
            raise InvalidTokenError()
        recipe = self.recipes.create(data.model_dump(by_alias=False), owner_id=claim.user_id)
        logger.info("User %s created recipe %s", claim.user_id, recipe.id)
        return recipe

    def update(self, claim: SessionClaim, recipe_id: RecipeId, patch: RecipeUpdate) -> Recipe:
        current = self._owned(claim, recipe_id, "update")
        updated = self.recipes.update(current.id, patch.changes(), expected_version=current.version)
        logger.info("User %s updated recipe %s (version %s)", claim.user_id, updated.id, updated.version)
        return updated

    def delete(self, claim: SessionClaim, recipe_id: RecipeId) -> None:
        current = self._owned(claim, recipe_id, "delete")
        self.recipes.delete(current.id, expected_version=current.version)
        logger.info("User %s deleted recipe %s", claim.user_id, current.id)

    def _owned(self, claim: SessionClaim, recipe_id: RecipeId, action: str) -> Recipe:
        recipe = self.get(recipe_id)
        if recipe.created_by != claim.user_id:
            logger.info("User %s denied %s on recipe %s", claim.user_id, action, recipe.id)
            raise ForbiddenError(f"Not authorized to {action} this recipe")
        return recipe

    # response shaping

    def to_out(self, recipe: Recipe, author: Optional[UserPublic] = None) -> RecipeOut:
        return RecipeOut.model_validate({**recipe.model_dump(), "author": author})

    def with_authors(self, recipes: List[Recipe]) -> List[RecipeOut]:
        owners = self.users.get_many({r.created_by for r in recipes})
        out = []
        for r in recipes:
            owner = owners.get(r.created_by)
            author = UserPublic(id=owner.id, username=owner.username) if owner else None
            out.append(self.to_out(r, author))
        return out
