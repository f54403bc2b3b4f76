"""Registration, login and bearer token resolution."""
from __future__ import annotations

import os
from typing import Iterator

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import delete

os.environ.setdefault("DATABASE_URL", "sqlite+pysqlite:///./test_chatsync.db")
os.environ.setdefault("JWT_SECRET_KEY", "test-secret-key")

from chatsync.database import Base, SessionLocal, engine  # noqa: E402
from chatsync.main import app  # noqa: E402
from chatsync.models import User  # noqa: E402
from chatsync.services import create_access_token, decode_access_token  # noqa: E402


@pytest.fixture(scope="module", autouse=True)
def _create_schema() -> Iterator[None]:
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture(autouse=True)
def _clean_database() -> Iterator[None]:
    with SessionLocal() as session:
        session.execute(delete(User))
        session.commit()
    yield


@pytest.fixture
def client() -> Iterator[TestClient]:
    with TestClient(app) as test_client:
        yield test_client


def test_register_login_and_me(client):
    registered = client.post(
        "/auth/register",
        json={"username": "alice", "password": "wonderland", "display_name": "Alice"},
    )
    assert registered.status_code == 201
    user_id = registered.json()["user_id"]

    login = client.post("/auth/login", json={"username": "alice", "password": "wonderland"})
    assert login.status_code == 200
    token = login.json()["access_token"]
    assert login.json()["token_type"] == "bearer"

    me = client.get("/auth/me", headers={"Authorization": f"Bearer {token}"})
    assert me.status_code == 200
    assert me.json()["id"] == user_id
    assert me.json()["display_name"] == "Alice"


def test_duplicate_username_and_bad_password(client):
    client.post("/auth/register", json={"username": "alice", "password": "wonderland"})
    assert client.post("/auth/register", json={"username": "alice", "password": "other-pass"}).status_code == 409
    assert client.post("/auth/login", json={"username": "alice", "password": "nope-nope"}).status_code == 401


def test_protected_routes_need_a_valid_token(client):
    assert client.get("/conversations").status_code == 401
    assert client.get("/conversations", headers={"Authorization": "Bearer junk"}).status_code == 401


def test_token_round_trip():
    with SessionLocal() as session:
        user = User(username="token-user", hashed_password="test-hash")
        session.add(user)
        session.commit()
        session.refresh(user)
    assert decode_access_token(create_access_token(user.id)) == user.id


def test_system_routes(client):
    assert client.get("/api").json()["service"]
    health = client.get("/health").json()
    assert health["status"] == "ok"
