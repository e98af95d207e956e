import re
from datetime import datetime, timedelta, timezone
from unittest.mock import patch

import pytest

from conftest import make_collection, make_recipe
from recipeshare.errors import AssetCleanupFailed, InvalidAsset, StorageFailure
from recipeshare.models import Recipe
from recipeshare.services.assets import (
    AssetName,
    allocate_version,
    generate_base_hash,
    is_orphan,
    next_version,
    parse_filename,
    replace_asset,
    sweep_stale,
    sweep_unreferenced,
    validate_upload,
)

JPEG = b"\xff\xd8\xff\xe0" + b"\x00" * 16
PNG = b"\x89PNG\r\n\x1a\n" + b"\x00" * 16
WEBP = b"RIFF\x00\x00\x00\x00WEBPVP8 "
PDF = b"%PDF-1.7\n"


def test_parse_filename():
    assert parse_filename("abc12345.jpg") == AssetName("abc12345", 1, "jpg")
    assert parse_filename("abc12345_v3.PNG") == AssetName("abc12345", 3, "png")
    assert parse_filename("custom_collection_004.jpg") == AssetName("custom_collection_004", 1, "jpg")
    assert parse_filename("custom_collection_004_dark.jpg").base_hash == "custom_collection_004_dark"
    assert parse_filename(None) is None
    assert parse_filename("") is None
    assert parse_filename("no extension") is None


def test_asset_name_rendering():
    assert str(AssetName("abc12345", 1, "jpg")) == "abc12345.jpg"
    assert str(AssetName("abc12345", 2, "jpg")) == "abc12345_v2.jpg"


def test_next_version():
    assert next_version("abc12345.jpg", "jpg") == "abc12345_v2.jpg"
    assert next_version("abc12345_v7.jpg", "png") == "abc12345_v8.png"
    assert next_version(None, "jpg") is None


def test_generate_base_hash_is_stable():
    first = generate_base_hash("id-1", "Tomato Soup!")
    assert first == generate_base_hash("id-1", "tomato soup")
    assert re.fullmatch(r"[0-9a-f]{32}", first)
    assert first != generate_base_hash("id-2", "Tomato Soup")


def test_allocate_version_skips_stored_versions(store):
    store.put_bytes("recipes/abc12345ab_v3.jpg", b"x")
    name = allocate_version(store, "recipes", "abc12345ab_v2.jpg", "jpg", entity_id="r1", title="Soup")
    assert name == "abc12345ab_v4.jpg"


def test_allocate_version_starts_fresh_from_default(store):
    name = allocate_version(store, "collections", "custom_collection_004.jpg", "png", entity_id="c1", title="Mine")
    assert name == f"{generate_base_hash('c1', 'Mine')}.png"


def test_allocate_version_without_current(store):
    name = allocate_version(store, "recipes", None, "pdf", entity_id="r1", title="Soup")
    assert parse_filename(name).version == 1


def test_is_orphan(db_session, household, other_household):
    mine = make_recipe(db_session, household.id, "A", image_filename="0123456789abcdef.jpg")
    db_session.commit()

    assert not is_orphan(db_session, "0123456789abcdef.jpg")
    assert is_orphan(db_session, "0123456789abcdef.jpg", excluding=("recipes", mine.id))
    assert not is_orphan(db_session, "0123456789abcdef.jpg", excluding=("collections", mine.id))
    assert is_orphan(db_session, "ffffffffffffffff.jpg")


def test_sweep_respects_sharing_and_keep(db_session, household, other_household, store):
    make_recipe(db_session, other_household.id, "Fork", image_filename="0123456789abcdef_v2.jpg")
    db_session.commit()
    for name in ("0123456789abcdef.jpg", "0123456789abcdef_v2.jpg", "0123456789abcdef_v3.jpg", "0123456789abcdef_v4.jpg"):
        store.put_bytes(f"recipes/{name}", b"x")

    deleted = sweep_stale(db_session, store, "0123456789abcdef", "recipes", keep="0123456789abcdef_v4.jpg")

    assert sorted(deleted) == ["0123456789abcdef.jpg", "0123456789abcdef_v3.jpg"]
    assert set(store.blobs) == {"recipes/0123456789abcdef_v2.jpg", "recipes/0123456789abcdef_v4.jpg"}


def test_sweep_ignores_other_base_hashes(db_session, store):
    store.put_bytes("recipes/0123456789abcdef.jpg", b"x")
    store.put_bytes("recipes/0123456789abcdef99.jpg", b"x")

    sweep_stale(db_session, store, "0123456789abcdef", "recipes")

    assert set(store.blobs) == {"recipes/0123456789abcdef99.jpg"}


def test_sweep_refuses_short_hash(db_session, store):
    store.put_bytes("recipes/abc.jpg", b"x")
    assert sweep_stale(db_session, store, "abc", "recipes") == []
    assert sweep_stale(db_session, store, None, "recipes") == []
    assert "recipes/abc.jpg" in store.blobs


def test_sweep_keeps_protected_default_images(db_session, store):
    store.put_bytes("collections/custom_collection_004.jpg", b"x")
    with patch("recipeshare.services.assets.settings.protect_default_images", True):
        assert sweep_stale(db_session, store, "custom_collection_004", "collections") == []
    assert "collections/custom_collection_004.jpg" in store.blobs


def test_default_image_survives_until_last_collection_moves_away(db_session, household, other_household, store):
    first = make_collection(db_session, household.id, "Mine", filename="custom_collection_004.jpg")
    second = make_collection(db_session, other_household.id, "Theirs", filename="custom_collection_004.jpg")
    db_session.commit()
    store.put_bytes("collections/custom_collection_004.jpg", b"default")
    store.put_bytes("collections/custom_collection_004_dark.jpg", b"default")

    _, _, deleted, _ = replace_asset(
        db_session, store, entity=first, column="filename", scope="collections",
        data=JPEG, content_type="image/jpeg", extension="jpg", title=first.title,
    )
    assert deleted == []
    assert "collections/custom_collection_004.jpg" in store.blobs

    _, _, deleted, warning = replace_asset(
        db_session, store, entity=second, column="filename", scope="collections",
        data=JPEG, content_type="image/jpeg", extension="jpg", title=second.title,
    )
    assert deleted == ["custom_collection_004.jpg"]
    assert warning is None
    assert "collections/custom_collection_004.jpg" not in store.blobs
    # The dark default is a different base name
    assert "collections/custom_collection_004_dark.jpg" in store.blobs


def test_sweep_collects_failures(db_session, store):
    store.put_bytes("recipes/0123456789abcdef.jpg", b"x")
    store.put_bytes("recipes/0123456789abcdef_v2.jpg", b"x")
    store.fail_deletes.add("recipes/0123456789abcdef.jpg")

    with pytest.raises(AssetCleanupFailed) as exc:
        sweep_stale(db_session, store, "0123456789abcdef", "recipes")

    assert exc.value.failed == ["0123456789abcdef.jpg"]
    assert exc.value.deleted == ["0123456789abcdef_v2.jpg"]


@pytest.mark.parametrize("data,content_type,kind,expected", [
    (JPEG, "image/jpeg", "image", "jpg"),
    (PNG, "image/png", "image", "png"),
    (WEBP, "image/webp", "image", "webp"),
    (PDF, "application/pdf", "pdf", "pdf"),
])
def test_validate_upload_accepts(data, content_type, kind, expected):
    assert validate_upload(data, content_type, kind=kind) == expected


@pytest.mark.parametrize("data,content_type,kind", [
    (b"", "image/jpeg", "image"),
    (JPEG, "image/gif", "image"),
    (PNG, "image/jpeg", "image"),
    (JPEG, "application/pdf", "pdf"),
    (PDF, "image/png", "image"),
])
def test_validate_upload_rejects(data, content_type, kind):
    with pytest.raises(InvalidAsset):
        validate_upload(data, content_type, kind=kind)


def test_validate_upload_size_limit():
    with patch("recipeshare.services.assets.settings.max_image_bytes", 10):
        with pytest.raises(InvalidAsset):
            validate_upload(JPEG, "image/jpeg", kind="image")


def test_replace_asset_versions_and_sweeps(db_session, household, store):
    recipe = make_recipe(db_session, household.id, "Soup", image_filename="0123456789abcdef.jpg")
    db_session.commit()
    store.put_bytes("recipes/0123456789abcdef.jpg", b"old")

    filename, url, deleted, warning = replace_asset(
        db_session, store, entity=recipe, column="image_filename", scope="recipes",
        data=JPEG, content_type="image/jpeg", extension="jpg", title=recipe.name,
    )

    assert filename == "0123456789abcdef_v2.jpg"
    assert url == "/media/recipes/0123456789abcdef_v2.jpg"
    assert deleted == ["0123456789abcdef.jpg"]
    assert warning is None
    assert set(store.blobs) == {"recipes/0123456789abcdef_v2.jpg"}
    db_session.expire_all()
    assert db_session.get(Recipe, recipe.id).image_filename == filename


def test_replace_asset_upload_failure_keeps_row(db_session, household, store):
    recipe = make_recipe(db_session, household.id, "Soup", image_filename="0123456789abcdef.jpg")
    db_session.commit()

    with patch.object(store, "put_bytes", side_effect=OSError("disk full")):
        with pytest.raises(StorageFailure) as exc:
            replace_asset(
                db_session, store, entity=recipe, column="image_filename", scope="recipes",
                data=JPEG, content_type="image/jpeg", extension="jpg", title=recipe.name,
            )

    assert exc.value.code == "UPLOAD_FAILED"
    db_session.expire_all()
    assert db_session.get(Recipe, recipe.id).image_filename == "0123456789abcdef.jpg"


def test_sweep_unreferenced(db_session, household, store):
    make_collection(db_session, household.id, "Mine", filename="aaaaaaaaaaaaaaaa.jpg")
    make_collection(db_session, household.id, "Stock", filename="custom_collection_004.jpg")
    db_session.commit()
    store.put_bytes("collections/aaaaaaaaaaaaaaaa.jpg", b"x")
    store.put_bytes("collections/bbbbbbbbbbbbbbbb_v2.jpg", b"x")
    store.put_bytes("collections/custom_collection_004.jpg", b"x")

    deleted, failed = sweep_unreferenced(db_session, store, "collections", grace_seconds=0)

    assert deleted == ["bbbbbbbbbbbbbbbb_v2.jpg"]
    assert failed == []
    assert set(store.blobs) == {"collections/aaaaaaaaaaaaaaaa.jpg", "collections/custom_collection_004.jpg"}


def test_allocate_version_light_and_dark_never_collide(store):
    light = allocate_version(store, "collections", "custom_collection_004.jpg", "jpg", entity_id="c1", title="Mine")
    store.put_bytes(f"collections/{light}", b"light")

    dark = allocate_version(store, "collections", "custom_collection_004_dark.jpg", "jpg", entity_id="c1", title="Mine")

    assert dark != light
    assert parse_filename(dark).base_hash == parse_filename(light).base_hash
    assert parse_filename(dark).version == 2


def test_sweep_unreferenced_spares_fresh_uploads(db_session, store):
    # Written but the row pointing at it has not committed yet
    store.put_bytes("recipes/0123456789abcdef_v2.jpg", b"fresh")
    store.put_bytes("recipes/fedcba9876543210.jpg", b"stranded")
    store.modified["recipes/fedcba9876543210.jpg"] = datetime.now(timezone.utc) - timedelta(hours=2)

    deleted, failed = sweep_unreferenced(db_session, store, "recipes")

    assert deleted == ["fedcba9876543210.jpg"]
    assert failed == []
    assert set(store.blobs) == {"recipes/0123456789abcdef_v2.jpg"}


def test_sweep_unreferenced_grace_from_settings(db_session, store):
    store.put_bytes("recipes/fedcba9876543210.jpg", b"stranded")
    store.modified["recipes/fedcba9876543210.jpg"] = datetime.now(timezone.utc) - timedelta(seconds=30)

    with patch("recipeshare.services.assets.settings.asset_sweep_grace_seconds", 10):
        deleted, _ = sweep_unreferenced(db_session, store, "recipes")

    assert deleted == ["fedcba9876543210.jpg"]
