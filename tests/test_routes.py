"""
Tests for the generated CRUD routes.

Each test builds an app over a fresh memory backend and drives it with
FastAPI's TestClient; entering the client runs the app lifespan, which
initialises the models.
"""

import pytest
from fastapi import Header, HTTPException
from fastapi.testclient import TestClient

from datamapper.api import create_app
from datamapper.connections import MemoryConnection
from datamapper.model import Model
from datamapper.types import FieldMeta, FieldType


def make_users() -> Model:
    return Model.create(
        table="users",
        fields={
            "name": {"type": FieldType.STRING, "meta": [FieldMeta.REQUIRED], "size": 10},
            "password": {"type": FieldType.STRING, "meta": [FieldMeta.FILTERED]},
            "admin": {"type": FieldType.BOOLEAN},
        },
    )


@pytest.fixture
def client():
    app = create_app([make_users()], MemoryConnection())
    with TestClient(app) as test_client:
        yield test_client


class TestCrudRoutes:
    """Tests for /<table> endpoints."""

    def test_create_and_get(self, client):
        response = client.post("/users", json={"name": "ann", "password": "pw"})
        assert response.status_code == 200
        assert response.json() == {"id": 1, "name": "ann", "admin": False}

        response = client.get("/users/1")
        assert response.status_code == 200
        assert response.json() == {"id": 1, "name": "ann", "admin": False}

    def test_list_strips_filtered_fields(self, client):
        client.post("/users", json={"name": "ann", "password": "pw"})
        client.post("/users", json={"name": "bob", "password": "pw"})

        response = client.get("/users")
        assert response.status_code == 200
        assert [row["name"] for row in response.json()] == ["ann", "bob"]
        assert all("password" not in row for row in response.json())

    def test_missing_and_extra_fields(self, client):
        response = client.post("/users", json={"nickname": "x"})
        assert response.status_code == 400
        assert response.json() == {"missingFields": ["name"], "extraFields": ["nickname"]}

    def test_non_object_body(self, client):
        response = client.post("/users", json=[1, 2])
        assert response.status_code == 400

    def test_validation_error_is_400(self, client):
        response = client.post("/users", json={"name": "much too long"})
        assert response.status_code == 400
        assert response.json()["detail"]["error"] == "FIELD_TOO_LONG"

    def test_update(self, client):
        client.post("/users", json={"name": "ann"})

        response = client.put("/users/1", json={"name": "anne", "admin": True})
        assert response.status_code == 200
        assert response.json() == {"id": 1, "name": "anne", "admin": True}

    def test_update_missing_row(self, client):
        response = client.put("/users/42", json={"name": "x"})
        assert response.status_code == 404

    def test_get_missing_row(self, client):
        assert client.get("/users/42").status_code == 404

    def test_delete(self, client):
        client.post("/users", json={"name": "ann"})

        response = client.delete("/users/1")
        assert response.status_code == 200
        assert response.json() == {"id": 1}
        assert client.get("/users/1").status_code == 404
        assert client.delete("/users/1").status_code == 404


class TestApp:
    """Tests for app-level wiring."""

    def test_healthz_and_tables(self, client):
        assert client.get("/healthz").json() == {"status": "ok"}
        assert client.get("/tables").json() == {"users": {"version": 1}}

    def test_dependencies_guard_routes(self):
        def require_token(x_token: str = Header(default="")):
            if x_token != "secret":
                raise HTTPException(status_code=401, detail="bad token")

        app = create_app([make_users()], MemoryConnection(), dependencies=[require_token])
        with TestClient(app) as test_client:
            assert test_client.get("/users").status_code == 401
            assert test_client.get("/users", headers={"X-Token": "secret"}).status_code == 200
