"""End-to-end tests of the HTTP surface through the ASGI app."""
import json
import os

import pytest

from app.models import Category, Pokemon

API = "/api/v1"


def pokemon_form(name="Squirtle", category="Water Type", types=({"id": 3},), **extra):
    form = {"name": name, "category": category, "type": json.dumps(list(types))}
    form.update({k: str(v) for k, v in extra.items()})
    return form


def image_file(content, content_type="image/jpeg"):
    return {"image": ("upload.jpg", content, content_type)}


async def create_pokemon(client, headers, image, **form_kwargs):
    response = await client.post(
        f"{API}/pokemons", data=pokemon_form(**form_kwargs), files=image_file(image), headers=headers
    )
    assert response.status_code == 201, response.text
    return response.json()["data"]


class TestAuth:

    @pytest.mark.asyncio
    async def test_register_returns_user_and_token(self, client):
        response = await client.post(
            f"{API}/auth/register",
            json={"username": "misty", "email": "misty@example.com", "password": "starmie99"},
        )
        assert response.status_code == 200
        body = response.json()
        assert body["user"]["email"] == "misty@example.com"
        assert "password" not in body["user"]
        assert body["access_token"]

        me = await client.get(f"{API}/auth/me", headers={"Authorization": f"Bearer {body['access_token']}"})
        assert me.status_code == 200
        assert me.json()["username"] == "misty"

    @pytest.mark.asyncio
    async def test_register_duplicate_email(self, client, user):
        response = await client.post(
            f"{API}/auth/register",
            json={"username": "another", "email": "ash@example.com", "password": "password1"},
        )
        assert response.status_code == 400

    @pytest.mark.asyncio
    async def test_register_validation(self, client):
        response = await client.post(
            f"{API}/auth/register",
            json={"username": "abc", "email": "not-an-email", "password": "short"},
        )
        assert response.status_code == 400
        fields = {error["field"] for error in response.json()["detail"]}
        assert fields == {"username", "email", "password"}

    @pytest.mark.asyncio
    async def test_login(self, client, user):
        response = await client.post(f"{API}/auth/login", json={"email": "ash@example.com", "password": "pikachu123"})
        assert response.status_code == 200
        assert response.json()["user"]["id"] == user.id

    @pytest.mark.asyncio
    async def test_login_bad_password(self, client, user):
        response = await client.post(f"{API}/auth/login", json={"email": "ash@example.com", "password": "wrong-pass"})
        assert response.status_code == 401

    @pytest.mark.asyncio
    async def test_token_form(self, client, user):
        response = await client.post(
            f"{API}/auth/token", data={"username": "ash@example.com", "password": "pikachu123"}
        )
        assert response.status_code == 200
        assert response.json()["token_type"] == "bearer"

    @pytest.mark.asyncio
    async def test_bad_token(self, client):
        response = await client.get(f"{API}/auth/me", headers={"Authorization": "Bearer garbage"})
        assert response.status_code == 401


class TestPokemonEndpoints:

    @pytest.mark.asyncio
    async def test_create_example(self, client, auth_headers, sample_image_bytes, upload_dir):
        data = await create_pokemon(client, auth_headers, sample_image_bytes, latitude=1.5, longitude=2.5)
        assert data["category"]["name"] == "Water Type"
        assert data["types"] == [{"id": 3, "name": "Water"}]
        assert data["latitude"] == 1.5
        assert (upload_dir / data["image_url"]).exists()

    @pytest.mark.asyncio
    async def test_create_reuses_category(self, client, auth_headers, sample_image_bytes):
        first = await create_pokemon(client, auth_headers, sample_image_bytes, name="Squirtle")
        second = await create_pokemon(client, auth_headers, sample_image_bytes, name="Psyduck")
        assert first["category"]["id"] == second["category"]["id"]
        assert await Category.all().count() == 1

    @pytest.mark.asyncio
    async def test_create_requires_auth(self, client, db, sample_image_bytes):
        response = await client.post(f"{API}/pokemons", data=pokemon_form(), files=image_file(sample_image_bytes))
        assert response.status_code == 401

    @pytest.mark.asyncio
    async def test_create_rejects_large_upload(self, client, auth_headers, upload_dir, monkeypatch):
        from app.config import settings
        monkeypatch.setattr(settings, "max_image_size", 16)
        response = await client.post(
            f"{API}/pokemons", data=pokemon_form(), files=image_file(b"x" * 17), headers=auth_headers
        )
        assert response.status_code == 400
        assert "exceeds" in response.json()["detail"]
        assert await Pokemon.all().count() == 0
        assert await Category.all().count() == 0
        assert os.listdir(upload_dir) == []

    @pytest.mark.asyncio
    async def test_create_rejects_non_image(self, client, auth_headers, upload_dir):
        response = await client.post(
            f"{API}/pokemons",
            data=pokemon_form(),
            files=image_file(b"%PDF-1.4", "application/pdf"),
            headers=auth_headers,
        )
        assert response.status_code == 400
        assert await Pokemon.all().count() == 0

    @pytest.mark.asyncio
    async def test_create_with_unknown_type(self, client, auth_headers, sample_image_bytes, upload_dir):
        response = await client.post(
            f"{API}/pokemons",
            data=pokemon_form(types=({"id": 42},)),
            files=image_file(sample_image_bytes),
            headers=auth_headers,
        )
        assert response.status_code == 404
        assert await Pokemon.all().count() == 0

    @pytest.mark.asyncio
    async def test_create_with_malformed_type(self, client, auth_headers, sample_image_bytes):
        form = pokemon_form()
        form["type"] = "fire"
        response = await client.post(f"{API}/pokemons", data=form, files=image_file(sample_image_bytes), headers=auth_headers)
        assert response.status_code == 400

    @pytest.mark.asyncio
    async def test_create_with_non_decimal_type_id(self, client, auth_headers, sample_image_bytes, upload_dir):
        form = pokemon_form(types=({"id": "\u00b3"},))
        response = await client.post(f"{API}/pokemons", data=form, files=image_file(sample_image_bytes), headers=auth_headers)
        assert response.status_code == 400
        assert os.listdir(upload_dir) == []

    @pytest.mark.asyncio
    async def test_list_empty(self, client):
        response = await client.get(f"{API}/pokemons", params={"page": 1, "limit": 10})
        assert response.status_code == 200
        assert response.json()["data"] == []

    @pytest.mark.asyncio
    async def test_list_filters(self, client, auth_headers, sample_image_bytes):
        await create_pokemon(client, auth_headers, sample_image_bytes, name="Squirtle")
        await create_pokemon(client, auth_headers, sample_image_bytes, name="Charmander", category="Fire Type", types=({"id": 2},))
        response = await client.get(f"{API}/pokemons", params={"type_in": "2"})
        body = response.json()
        assert body["total"] == 1
        assert body["data"][0]["name"] == "Charmander"

        response = await client.get(f"{API}/pokemons", params={"name_like": "SQUIRT"})
        assert [p["name"] for p in response.json()["data"]] == ["Squirtle"]

    @pytest.mark.asyncio
    async def test_list_rejects_bad_page(self, client):
        response = await client.get(f"{API}/pokemons", params={"page": 0})
        assert response.status_code == 400

        response = await client.get(f"{API}/pokemons", params={"limit": 100})
        assert response.status_code == 200
        response = await client.get(f"{API}/pokemons", params={"limit": 101})
        assert response.status_code == 400

    @pytest.mark.asyncio
    async def test_list_with_odd_filter_values(self, client):
        response = await client.get(f"{API}/pokemons", params={"category": "\u00b2"})
        assert response.status_code == 200
        assert response.json()["data"] == []

        response = await client.get(f"{API}/pokemons", params={"type_in": "99999999999999999999"})
        assert response.status_code == 400

    @pytest.mark.asyncio
    async def test_ids_beyond_column_range(self, client, auth_headers):
        huge = 2**31
        response = await client.get(f"{API}/pokemons/{huge}")
        assert response.status_code == 400
        assert response.json()["detail"][0]["field"] == "pokemon_id"

        response = await client.delete(f"{API}/pokemons/99999999999999999999", headers=auth_headers)
        assert response.status_code == 400

        for resource in ("types", "categories"):
            response = await client.get(f"{API}/{resource}/{huge}")
            assert response.status_code == 400

        response = await client.get(f"{API}/pokemons", params={"page": huge})
        assert response.status_code == 400

    @pytest.mark.asyncio
    async def test_show(self, client, auth_headers, sample_image_bytes):
        created = await create_pokemon(client, auth_headers, sample_image_bytes)
        response = await client.get(f"{API}/pokemons/{created['id']}")
        assert response.status_code == 200
        assert response.json()["data"]["types"] == [{"id": 3, "name": "Water"}]

    @pytest.mark.asyncio
    async def test_show_missing(self, client):
        response = await client.get(f"{API}/pokemons/999")
        assert response.status_code == 404
        assert "not found" in response.json()["detail"]

    @pytest.mark.asyncio
    async def test_update_types_is_idempotent(self, client, auth_headers, sample_image_bytes):
        created = await create_pokemon(client, auth_headers, sample_image_bytes, types=({"id": 1}, {"id": 2}))
        form = {"type": json.dumps([{"id": 4}, {"id": 3}])}
        for method in (client.put, client.patch):
            response = await method(f"{API}/pokemons/{created['id']}", data=form, headers=auth_headers)
            assert response.status_code == 201
            assert [t["id"] for t in response.json()["data"]["types"]] == [4, 3]

    @pytest.mark.asyncio
    async def test_update_with_new_image(self, client, auth_headers, sample_image_bytes, upload_dir):
        created = await create_pokemon(client, auth_headers, sample_image_bytes)
        response = await client.patch(
            f"{API}/pokemons/{created['id']}",
            data={"name": "Blastoise", "category": "Turtle"},
            files=image_file(b"bigger-turtle"),
            headers=auth_headers,
        )
        assert response.status_code == 201
        data = response.json()["data"]
        assert data["name"] == "Blastoise"
        assert data["category"]["name"] == "Turtle"
        assert data["types"] == [{"id": 3, "name": "Water"}]
        assert (upload_dir / data["image_url"]).read_bytes() == b"bigger-turtle"
        assert not (upload_dir / created["image_url"]).exists()

    @pytest.mark.asyncio
    async def test_update_by_other_user(self, client, auth_headers, other_auth_headers, sample_image_bytes):
        created = await create_pokemon(client, auth_headers, sample_image_bytes)
        response = await client.put(f"{API}/pokemons/{created['id']}", data={"name": "Mine"}, headers=other_auth_headers)
        assert response.status_code == 401

    @pytest.mark.asyncio
    async def test_delete(self, client, auth_headers, sample_image_bytes, upload_dir):
        created = await create_pokemon(client, auth_headers, sample_image_bytes)
        response = await client.delete(f"{API}/pokemons/{created['id']}", headers=auth_headers)
        assert response.status_code == 200
        assert response.json()["data"]["id"] == created["id"]
        assert not (upload_dir / created["image_url"]).exists()

        response = await client.get(f"{API}/pokemons/{created['id']}")
        assert response.status_code == 404

    @pytest.mark.asyncio
    async def test_delete_missing(self, client, auth_headers):
        response = await client.delete(f"{API}/pokemons/31337", headers=auth_headers)
        assert response.status_code == 404

    @pytest.mark.asyncio
    async def test_search(self, client, auth_headers, sample_image_bytes):
        await create_pokemon(client, auth_headers, sample_image_bytes, name="Oddish", category="Weed", types=({"id": 4},))
        response = await client.get(f"{API}/pokemons/search/grass")
        body = response.json()
        assert body["message"] == "search success"
        assert [p["name"] for p in body["data"]] == ["Oddish"]

        response = await client.get(f"{API}/pokemons/search/mewtwo")
        assert response.status_code == 200
        assert response.json() == {"message": "item not found", "data": []}


class TestVocabularyEndpoints:

    @pytest.mark.asyncio
    async def test_types_crud(self, client, auth_headers):
        response = await client.get(f"{API}/types")
        assert [t["name"] for t in response.json()] == ["Normal", "Fire", "Water", "Grass"]

        response = await client.post(f"{API}/types", json={"name": "Dragon"}, headers=auth_headers)
        assert response.status_code == 201
        type_id = response.json()["id"]

        response = await client.post(f"{API}/types", json={"name": "Dragon"}, headers=auth_headers)
        assert response.status_code == 400

        response = await client.patch(f"{API}/types/{type_id}", json={"name": "Ice"}, headers=auth_headers)
        assert response.json()["name"] == "Ice"

        response = await client.delete(f"{API}/types/{type_id}", headers=auth_headers)
        assert response.status_code == 204
        response = await client.get(f"{API}/types/{type_id}")
        assert response.status_code == 404

    @pytest.mark.asyncio
    async def test_types_mutation_requires_auth(self, client):
        response = await client.post(f"{API}/types", json={"name": "Dragon"})
        assert response.status_code == 401

    @pytest.mark.asyncio
    async def test_categories_crud(self, client, auth_headers, sample_image_bytes):
        created = await create_pokemon(client, auth_headers, sample_image_bytes)
        category_id = created["category_id"]

        response = await client.get(f"{API}/categories/{category_id}")
        assert response.json()["name"] == "Water Type"

        response = await client.put(f"{API}/categories/{category_id}", json={"name": "Aqua"}, headers=auth_headers)
        assert response.status_code == 200

        response = await client.get(f"{API}/pokemons/{created['id']}")
        assert response.json()["data"]["category"]["name"] == "Aqua"

        response = await client.delete(f"{API}/categories/{category_id}", headers=auth_headers)
        assert response.status_code == 204
        response = await client.get(f"{API}/pokemons/{created['id']}")
        assert response.status_code == 404
