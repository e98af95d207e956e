import pytest

from conftest import make_collection, make_recipe
from recipeshare.errors import CollectionNotEmpty, HasActivePlans, NotFound, NotOwned
from recipeshare.models import (
    Collection,
    CollectionRecipe,
    CollectionSubscription,
    Ingredient,
    PlanEntry,
    Recipe,
    RecipeIngredient,
    ShoppingListEntry,
)
from recipeshare.services.deletion import (
    DeletionDecision,
    decide_deletion,
    delete_collection,
    delete_recipe,
    remove_recipe_from_collection,
)


@pytest.mark.parametrize("plans,shopping,foreign,expected", [
    (0, 0, 0, DeletionDecision.DELETE),
    (0, 3, 0, DeletionDecision.ARCHIVE),
    (0, 0, 1, DeletionDecision.ARCHIVE),
    (1, 0, 0, DeletionDecision.BLOCKED),
    (2, 5, 1, DeletionDecision.BLOCKED),
])
def test_decide_deletion(plans, shopping, foreign, expected):
    assert decide_deletion(plans, shopping, foreign) == expected


@pytest.fixture
def owned_recipe(db_session, household):
    collection = make_collection(db_session, household.id, "Dinners")
    recipe = make_recipe(
        db_session, household.id, "Stew", collection=collection,
        ingredients=["Beef", "Carrot"], image_filename="0123456789abcdef.jpg",
    )
    db_session.commit()
    return collection, recipe


def test_hard_delete_removes_recipe_and_orphan_ingredients(db_session, household, owned_recipe, store):
    collection, recipe = owned_recipe
    store.put_bytes("recipes/0123456789abcdef.jpg", b"old")
    store.put_bytes("recipes/0123456789abcdef_v2.jpg", b"older")

    result = delete_recipe(db_session, household.id, recipe.id, store=store)

    assert result.outcome == DeletionDecision.DELETE
    assert not result.archived
    assert sorted(result.deleted_ingredient_names) == ["Beef", "Carrot"]
    assert "cleaned up 2 unused ingredients" in result.message
    assert result.warning is None
    assert sorted(result.deleted_files) == ["0123456789abcdef.jpg", "0123456789abcdef_v2.jpg"]
    assert store.blobs == {}

    db_session.expire_all()
    assert db_session.get(Recipe, recipe.id) is None
    assert db_session.query(RecipeIngredient).count() == 0
    assert db_session.query(CollectionRecipe).count() == 0
    assert db_session.query(Ingredient).count() == 0
    assert db_session.get(Collection, collection.id) is not None


def test_hard_delete_keeps_ingredients_still_in_use(db_session, household, owned_recipe):
    collection, recipe = owned_recipe
    beef = db_session.query(Ingredient).filter_by(name="Beef").one()
    make_recipe(db_session, household.id, "Burger", collection=collection, ingredients=[beef])
    db_session.commit()

    result = delete_recipe(db_session, household.id, recipe.id)

    assert result.deleted_ingredient_names == ["Carrot"]
    assert "cleaned up 1 unused ingredient (Carrot)" in result.message
    db_session.expire_all()
    assert db_session.query(Ingredient).filter_by(name="Beef").count() == 1


def test_delete_with_plan_entry_is_blocked(db_session, household, owned_recipe):
    _, recipe = owned_recipe
    db_session.add(PlanEntry(household_id=household.id, recipe_id=recipe.id, week=3, year=2026))
    db_session.commit()

    with pytest.raises(HasActivePlans) as exc:
        delete_recipe(db_session, household.id, recipe.id)

    assert exc.value.count == 1
    assert exc.value.to_dict()["details"] == {"count": 1}
    db_session.expire_all()
    recipe = db_session.get(Recipe, recipe.id)
    assert recipe is not None and recipe.archived is False


def test_plan_block_wins_over_shopping_history(db_session, household, owned_recipe):
    _, recipe = owned_recipe
    line = db_session.query(RecipeIngredient).filter_by(recipe_id=recipe.id).first()
    db_session.add(PlanEntry(household_id=household.id, recipe_id=recipe.id, week=3, year=2026))
    db_session.add(ShoppingListEntry(household_id=household.id, week=3, year=2026, name="Beef", recipe_ingredient_id=line.id))
    db_session.commit()

    with pytest.raises(HasActivePlans):
        delete_recipe(db_session, household.id, recipe.id)


def test_shopping_history_archives(db_session, household, owned_recipe, store):
    collection, recipe = owned_recipe
    store.put_bytes("recipes/0123456789abcdef.jpg", b"img")
    line = db_session.query(RecipeIngredient).filter_by(recipe_id=recipe.id).first()
    db_session.add(ShoppingListEntry(household_id=household.id, week=3, year=2026, name="Beef", recipe_ingredient_id=line.id))
    db_session.commit()

    result = delete_recipe(db_session, household.id, recipe.id, store=store)

    assert result.archived
    assert result.message == "Recipe archived successfully due to shopping list references"
    db_session.expire_all()
    archived = db_session.get(Recipe, recipe.id)
    assert archived.archived is True
    assert db_session.query(CollectionRecipe).filter_by(recipe_id=recipe.id).count() == 0
    assert db_session.query(RecipeIngredient).filter_by(recipe_id=recipe.id).count() == 2
    # Archived recipes keep their files
    assert "recipes/0123456789abcdef.jpg" in store.blobs


def test_foreign_shopping_reference_forces_archive(db_session, household, other_household, owned_recipe):
    _, recipe = owned_recipe
    line = db_session.query(RecipeIngredient).filter_by(recipe_id=recipe.id).first()
    db_session.add(ShoppingListEntry(household_id=other_household.id, week=1, year=2026, name="Beef", recipe_ingredient_id=line.id))
    db_session.commit()

    result = delete_recipe(db_session, household.id, recipe.id)

    assert result.archived


def test_foreign_plan_entry_forces_archive(db_session, household, other_household, owned_recipe):
    _, recipe = owned_recipe
    db_session.add(PlanEntry(household_id=other_household.id, recipe_id=recipe.id, week=1, year=2026))
    db_session.commit()

    result = delete_recipe(db_session, household.id, recipe.id)

    assert result.archived


def test_delete_not_owned(db_session, household, shared_collection):
    _, recipe = shared_collection
    with pytest.raises(NotOwned):
        delete_recipe(db_session, household.id, recipe.id)
    db_session.expire_all()
    assert db_session.get(Recipe, recipe.id) is not None


def test_delete_missing(db_session, household):
    with pytest.raises(NotFound):
        delete_recipe(db_session, household.id, "missing")


def test_delete_leaves_other_households_ingredients(db_session, household, other_household):
    collection = make_collection(db_session, household.id, "Mine")
    theirs = Ingredient(household_id=other_household.id, name="Saffron")
    db_session.add(theirs)
    db_session.flush()
    recipe = make_recipe(db_session, household.id, "Paella", collection=collection, ingredients=[theirs])
    db_session.commit()

    result = delete_recipe(db_session, household.id, recipe.id)

    assert result.deleted_ingredient_names == []
    db_session.expire_all()
    assert db_session.get(Ingredient, theirs.id) is not None


def test_delete_cleanup_failure_becomes_warning(db_session, household, owned_recipe, store):
    _, recipe = owned_recipe
    store.put_bytes("recipes/0123456789abcdef.jpg", b"img")
    store.fail_deletes.add("recipes/0123456789abcdef.jpg")

    result = delete_recipe(db_session, household.id, recipe.id, store=store)

    assert result.outcome == DeletionDecision.DELETE
    assert result.warning == "File cleanup failed: 0123456789abcdef.jpg"
    db_session.expire_all()
    assert db_session.get(Recipe, recipe.id) is None


def test_delete_keeps_image_shared_with_fork(db_session, household, other_household, owned_recipe, store):
    _, recipe = owned_recipe
    store.put_bytes("recipes/0123456789abcdef.jpg", b"img")
    make_recipe(db_session, other_household.id, "Stew Copy", image_filename="0123456789abcdef.jpg", parent_id=recipe.id)
    db_session.commit()

    result = delete_recipe(db_session, household.id, recipe.id, store=store)

    assert result.deleted_files == []
    assert "recipes/0123456789abcdef.jpg" in store.blobs


def test_remove_recipe_from_collection(db_session, household, other_household):
    mine = make_collection(db_session, household.id, "Mine")
    foreign = make_recipe(db_session, other_household.id, "Borrowed", collection=mine)
    db_session.commit()

    remove_recipe_from_collection(db_session, household.id, mine.id, foreign.id)

    db_session.expire_all()
    assert db_session.query(CollectionRecipe).filter_by(collection_id=mine.id).count() == 0
    assert db_session.get(Recipe, foreign.id) is not None


def test_remove_recipe_requires_collection_ownership(db_session, household, shared_collection):
    collection, recipe = shared_collection
    with pytest.raises(NotOwned):
        remove_recipe_from_collection(db_session, household.id, collection.id, recipe.id)


def test_remove_recipe_not_linked(db_session, household, owned_recipe):
    collection, _ = owned_recipe
    with pytest.raises(NotFound):
        remove_recipe_from_collection(db_session, household.id, collection.id, "missing")


def test_delete_collection_requires_empty(db_session, household, owned_recipe):
    collection, _ = owned_recipe
    with pytest.raises(CollectionNotEmpty) as exc:
        delete_collection(db_session, household.id, collection.id)
    assert exc.value.count == 1


def test_delete_empty_collection(db_session, household, other_household, store):
    collection = make_collection(
        db_session, household.id, "Empty", is_public=True,
        filename="fedcba9876543210.png", filename_dark="custom_collection_004_dark.jpg",
    )
    db_session.add(CollectionSubscription(household_id=other_household.id, collection_id=collection.id))
    db_session.commit()
    store.put_bytes("collections/fedcba9876543210.png", b"img")

    warning = delete_collection(db_session, household.id, collection.id, store=store)

    assert warning is None
    assert store.blobs == {}
    db_session.expire_all()
    assert db_session.get(Collection, collection.id) is None
    assert db_session.query(CollectionSubscription).count() == 0


def test_delete_collection_not_owned(db_session, household, shared_collection):
    collection, _ = shared_collection
    with pytest.raises(NotOwned):
        delete_collection(db_session, household.id, collection.id)
