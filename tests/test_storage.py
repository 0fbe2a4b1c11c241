import datetime
import uuid

import pytest
from sqlalchemy import update as sa_update

from recipe_share.db import session_scope
from recipe_share.errors import ConflictError, DuplicateUsernameError, InvalidIdentifierError, NotFoundError
from recipe_share.models import Recipe
from recipe_share.storage import page_offset
from recipe_share.storage_sql import SqlRecipeStore, SqlUserStore


def _recipe_fields(**overrides):
    fields = {
        "title": "Pancakes",
        "ingredients": ["flour", "milk"],
        "instructions": "Mix and fry.",
        "cooking_time": 20,
        "servings": 4,
    }
    fields.update(overrides)
    return fields


@pytest.fixture
def owner(stores):
    users, _ = stores
    return users.add("alice", "hash")


def test_add_and_get_user(stores):
    users, _ = stores
    user = users.add("alice", "hash")
    assert users.get_by_id(user.id).username == "alice"
    assert users.get_by_username("alice").id == user.id
    assert users.get_by_username("  alice ").id == user.id
    assert users.get_by_username("bob") is None
    assert users.get_by_id(uuid.uuid4()) is None


def test_duplicate_username_rejected(stores):
    users, _ = stores
    users.add("alice", "hash")
    with pytest.raises(DuplicateUsernameError):
        users.add("alice", "other-hash")


def test_get_many_returns_known_users_only(stores):
    users, _ = stores
    a = users.add("alice", "hash")
    b = users.add("bob", "hash")
    found = users.get_many([a.id, b.id, uuid.uuid4()])
    assert set(found) == {a.id, b.id}
    assert found[b.id].username == "bob"
    assert users.get_many([]) == {}


def test_create_assigns_server_fields(stores, owner):
    _, recipes = stores
    r = recipes.create(_recipe_fields(), owner_id=owner.id)
    assert isinstance(r.id, uuid.UUID)
    assert r.created_by == owner.id
    assert r.version == 1
    assert r.ingredients == ["flour", "milk"]
    assert r.created_at is not None

    fetched = recipes.get_by_id(str(r.id))
    assert fetched.title == "Pancakes"
    assert fetched.cooking_time == 20
    assert fetched.servings == 4


def test_create_ignores_server_owned_fields(stores, owner):
    _, recipes = stores
    forged = uuid.uuid4()
    r = recipes.create(_recipe_fields(created_by=forged, version=9, id=forged), owner_id=owner.id)
    assert r.created_by == owner.id
    assert r.version == 1
    assert r.id != forged


def test_create_defaults_missing_ingredients(stores, owner):
    _, recipes = stores
    fields = _recipe_fields()
    del fields["ingredients"]
    r = recipes.create(fields, owner_id=owner.id)
    assert recipes.get_by_id(r.id).ingredients == []


def test_get_by_id_missing_and_malformed(stores):
    _, recipes = stores
    assert recipes.get_by_id(uuid.uuid4()) is None
    with pytest.raises(InvalidIdentifierError):
        recipes.get_by_id("not-an-id")


def test_list_paginates_newest_first(stores, owner):
    _, recipes = stores
    for i in range(25):
        recipes.create(_recipe_fields(title=f"Recipe {i}"), owner_id=owner.id)

    first = recipes.list(1, 10)
    assert first.total == 25
    assert len(first.items) == 10
    assert first.items[0].title == "Recipe 24"

    last = recipes.list(3, 10)
    assert [r.title for r in last.items] == [f"Recipe {i}" for i in range(4, -1, -1)]

    beyond = recipes.list(4, 10)
    assert beyond.items == []
    assert beyond.total == 25


def test_list_by_owner(stores, owner):
    users, recipes = stores
    other = users.add("bob", "hash")
    recipes.create(_recipe_fields(title="Mine 1"), owner_id=owner.id)
    recipes.create(_recipe_fields(title="Theirs"), owner_id=other.id)
    recipes.create(_recipe_fields(title="Mine 2"), owner_id=owner.id)

    mine = recipes.list_by_owner(owner.id)
    assert [r.title for r in mine] == ["Mine 2", "Mine 1"]
    assert recipes.list_by_owner(uuid.uuid4()) == []


def test_update_applies_patch_and_bumps_version(stores, owner):
    _, recipes = stores
    r = recipes.create(_recipe_fields(), owner_id=owner.id)
    updated = recipes.update(r.id, {"title": "Crepes", "created_by": uuid.uuid4()}, expected_version=1)
    assert updated.title == "Crepes"
    assert updated.instructions == "Mix and fry."
    assert updated.created_by == owner.id
    assert updated.version == 2
    assert recipes.get_by_id(r.id).title == "Crepes"


def test_update_with_stale_version_conflicts(stores, owner):
    _, recipes = stores
    r = recipes.create(_recipe_fields(), owner_id=owner.id)
    recipes.update(r.id, {"title": "First"}, expected_version=1)
    with pytest.raises(ConflictError):
        recipes.update(r.id, {"title": "Second"}, expected_version=1)
    assert recipes.get_by_id(r.id).title == "First"


def test_update_missing_recipe(stores):
    _, recipes = stores
    with pytest.raises(NotFoundError):
        recipes.update(uuid.uuid4(), {"title": "x"})


def test_delete_removes_recipe(stores, owner):
    _, recipes = stores
    r = recipes.create(_recipe_fields(), owner_id=owner.id)
    assert recipes.count() == 1
    recipes.delete(r.id, expected_version=1)
    assert recipes.get_by_id(r.id) is None
    assert recipes.count() == 0
    with pytest.raises(NotFoundError):
        recipes.delete(r.id)


def test_delete_with_stale_version_conflicts(stores, owner):
    _, recipes = stores
    r = recipes.create(_recipe_fields(), owner_id=owner.id)
    recipes.update(r.id, {"servings": 2})
    with pytest.raises(ConflictError):
        recipes.delete(r.id, expected_version=1)
    assert recipes.get_by_id(r.id) is not None


def test_memory_reads_are_copies(memory_stores):
    users, recipes = memory_stores
    owner = users.add("alice", "hash")
    r = recipes.create(_recipe_fields(), owner_id=owner.id)
    fetched = recipes.get_by_id(r.id)
    fetched.ingredients.append("sugar")
    fetched.title = "Changed"
    again = recipes.get_by_id(r.id)
    assert again.ingredients == ["flour", "milk"]
    assert again.title == "Pancakes"


def test_sql_paging_is_stable_with_equal_timestamps(sql_engine):
    users, recipes = SqlUserStore(sql_engine), SqlRecipeStore(sql_engine)
    owner = users.add("alice", "hash")
    ids = {recipes.create(_recipe_fields(title=f"R{i}"), owner_id=owner.id).id for i in range(7)}

    same = datetime.datetime(2024, 1, 1, tzinfo=datetime.timezone.utc)
    with session_scope(sql_engine) as session:
        session.connection().execute(sa_update(Recipe).values(created_at=same))
        session.commit()

    seen = []
    for page in (1, 2, 3, 4):
        seen.extend(r.id for r in recipes.list(page, 2).items)
    assert len(seen) == len(set(seen)) == 7
    assert set(seen) == ids
    assert [r.id for r in recipes.list(1, 7).items] == seen
    assert [r.id for r in recipes.list_by_owner(owner.id)] == seen


@pytest.mark.parametrize("page,limit,expected", [(1, 10, 0), (2, 10, 10), (3, 25, 50), (0, 10, 0)])
def test_page_offset(page, limit, expected):
    assert page_offset(page, limit) == expected
