"""Tests for draft entity CRUD endpoints."""
from uuid import uuid4

import pytest
from httpx import AsyncClient

ENTITY_CREATE_DATA = [
    pytest.param("page_folders", {"name": "Blog", "slug": "blog"}, id="page_folder"),
    pytest.param("pages", {"name": "Home", "slug": "home", "is_index": True}, id="page"),
    pytest.param("components", {"name": "Card", "layers": [{"id": "a"}]}, id="component"),
    pytest.param("layer_styles", {"name": "Primary", "classes": "p-4"}, id="layer_style"),
    pytest.param("locales", {"code": "en", "label": "English", "is_default": True}, id="locale"),
    pytest.param("collections", {"name": "Posts"}, id="collection"),
]


@pytest.mark.parametrize(("publishable_type", "fields"), ENTITY_CREATE_DATA)
async def test_create_and_get_entity(
    client: AsyncClient, publishable_type: str, fields: dict,
) -> None:
    """Test creating a draft and reading it back."""
    response = await client.post(f"/entities/{publishable_type}", json={"fields": fields})
    assert response.status_code == 201
    created = response.json()
    assert created["is_published"] is False
    assert created["lifecycle"] == "active"
    assert len(created["content_hash"]) == 64
    for key, value in fields.items():
        assert created["fields"][key] == value
    assert "is_published" not in created["fields"]

    response = await client.get(f"/entities/{publishable_type}/{created['id']}")
    assert response.status_code == 200
    assert response.json() == created


async def test_create_entity_with_explicit_id(client: AsyncClient) -> None:
    """Test that the logical id can be fixed by the caller."""
    entity_id = str(uuid4())
    response = await client.post(
        "/entities/components", json={"id": entity_id, "fields": {"name": "Card"}},
    )
    assert response.json()["id"] == entity_id


async def test_create_entity_unknown_field(client: AsyncClient) -> None:
    """Test 422 for columns the entity does not have."""
    response = await client.post(
        "/entities/components", json={"fields": {"name": "Card", "colour": "red"}},
    )
    assert response.status_code == 422
    assert "colour" in response.json()["detail"]


async def test_create_entity_unknown_type(client: AsyncClient) -> None:
    """Test 422 for an entity type that is not publishable."""
    response = await client.post("/entities/widgets", json={"fields": {}})
    assert response.status_code == 422


async def test_update_entity(client: AsyncClient) -> None:
    """Test that updating a hashed field changes the content hash."""
    created = (
        await client.post("/entities/components", json={"fields": {"name": "Card"}})
    ).json()
    response = await client.patch(
        f"/entities/components/{created['id']}", json={"fields": {"name": "Hero"}},
    )
    assert response.status_code == 200
    assert response.json()["fields"]["name"] == "Hero"
    assert response.json()["content_hash"] != created["content_hash"]


async def test_update_entity_layers_must_be_list(client: AsyncClient) -> None:
    """Test 422 instead of coercing a non-list layer tree."""
    created = (
        await client.post("/entities/components", json={"fields": {"name": "Card"}})
    ).json()
    response = await client.patch(
        f"/entities/components/{created['id']}", json={"fields": {"layers": "abc"}},
    )
    assert response.status_code == 422


async def test_update_entity_not_found(client: AsyncClient) -> None:
    """Test 404 when updating a missing draft."""
    response = await client.patch(
        f"/entities/components/{uuid4()}", json={"fields": {"name": "Hero"}},
    )
    assert response.status_code == 404
    assert response.json()["detail"]["entity_type"] == "components"


async def test_delete_and_restore_entity(client: AsyncClient) -> None:
    """Test soft delete hides the draft until restored."""
    created = (
        await client.post("/entities/components", json={"fields": {"name": "Card"}})
    ).json()

    response = await client.delete(f"/entities/components/{created['id']}")
    assert response.status_code == 200
    assert response.json()["lifecycle"] == "soft_deleted"

    assert (await client.get(f"/entities/components/{created['id']}")).status_code == 404
    response = await client.get(
        f"/entities/components/{created['id']}", params={"include_deleted": True},
    )
    assert response.status_code == 200

    response = await client.post(f"/entities/components/{created['id']}/restore")
    assert response.status_code == 200
    assert response.json()["lifecycle"] == "active"


async def test_delete_entity_twice(client: AsyncClient) -> None:
    """Test 400 with an invalid_state error on a second delete."""
    created = (
        await client.post("/entities/components", json={"fields": {"name": "Card"}})
    ).json()
    await client.delete(f"/entities/components/{created['id']}")
    response = await client.delete(f"/entities/components/{created['id']}")
    assert response.status_code == 400
    assert response.json()["detail"]["error"] == "invalid_state"


async def test_restore_active_entity(client: AsyncClient) -> None:
    """Test 400 when restoring a draft that is not deleted."""
    created = (
        await client.post("/entities/components", json={"fields": {"name": "Card"}})
    ).json()
    response = await client.post(f"/entities/components/{created['id']}/restore")
    assert response.status_code == 400


async def test_list_entities(client: AsyncClient) -> None:
    """Test listing drafts, excluding soft-deleted ones by default."""
    first = (
        await client.post("/entities/fonts", json={"fields": {"name": "inter", "family": "Inter"}})
    ).json()
    second = (
        await client.post("/entities/fonts", json={"fields": {"name": "lora", "family": "Lora"}})
    ).json()
    await client.delete(f"/entities/fonts/{second['id']}")

    response = await client.get("/entities/fonts")
    assert response.status_code == 200
    assert [item["id"] for item in response.json()["items"]] == [first["id"]]

    response = await client.get("/entities/fonts", params={"include_deleted": True})
    assert response.json()["total"] == 2


async def test_get_published_before_publish(client: AsyncClient) -> None:
    """Test that a never-published entity has no published row."""
    created = (
        await client.post("/entities/components", json={"fields": {"name": "Card"}})
    ).json()
    response = await client.get(
        f"/entities/components/{created['id']}", params={"published": True},
    )
    assert response.status_code == 404
    assert response.json()["detail"]["is_published"] is True


async def test_page_in_missing_folder(client: AsyncClient) -> None:
    """Test 409 when a page references a folder that has no draft."""
    response = await client.post(
        "/entities/pages",
        json={"fields": {"name": "Post", "slug": "post", "page_folder_id": str(uuid4())}},
    )
    assert response.status_code == 409
