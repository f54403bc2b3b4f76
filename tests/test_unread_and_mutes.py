"""Integration tests for muted users and the unread counter."""
from __future__ import annotations

import os
from typing import Callable, Iterator

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import delete

os.environ.setdefault("DATABASE_URL", "sqlite+pysqlite:///./test_chatsync.db")
os.environ.setdefault("JWT_SECRET_KEY", "test-secret-key")

from chatsync.database import Base, SessionLocal, engine  # noqa: E402
from chatsync.main import app  # noqa: E402
from chatsync.models import (  # noqa: E402
    Conversation,
    GroupHistory,
    Message,
    MessageReaction,
    MessageReceipt,
    MutedUser,
    Participant,
    User,
)
from chatsync.services import get_current_user  # noqa: E402


@pytest.fixture(scope="module", autouse=True)
def _create_schema() -> Iterator[None]:
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture(autouse=True)
def _clean_database() -> Iterator[None]:
    with SessionLocal() as session:
        for model in (MessageReaction, MessageReceipt, Message, GroupHistory, Participant, Conversation, MutedUser, User):
            session.execute(delete(model))
        session.commit()
    yield


@pytest.fixture
def user_factory() -> Callable[[str], User]:
    def _factory(username: str) -> User:
        with SessionLocal() as session:
            user = User(username=username, display_name=username.title(), hashed_password="test-hash")
            session.add(user)
            session.commit()
            session.refresh(user)
            return user
    return _factory


@pytest.fixture
def authed_client() -> Iterator[Callable[[User], TestClient]]:
    with TestClient(app) as client:
        def _with_user(user: User) -> TestClient:
            def _override() -> User:
                return user
            app.dependency_overrides[get_current_user] = _override
            return client
        yield _with_user
    app.dependency_overrides.clear()


def _unread(client: TestClient) -> int:
    response = client.get("/messages/unread-count")
    assert response.status_code == 200
    return response.json()["unread_count"]


def test_unread_count_tracks_incoming_messages(authed_client, user_factory):
    alice = user_factory("alice")
    bob = user_factory("bob")
    client = authed_client(alice)
    conversation_id = client.post("/conversations/direct", json={"participant_id": str(bob.id)}).json()["conversation_id"]
    for text in ("one", "two", "three"):
        client.post(f"/conversations/{conversation_id}/messages", json={"content": text})

    assert _unread(authed_client(alice)) == 0
    assert _unread(authed_client(bob)) == 3

    first_id = authed_client(alice).get(f"/conversations/{conversation_id}/messages").json()["messages"][0]["id"]
    authed_client(alice).delete(f"/messages/{first_id}")
    assert _unread(authed_client(bob)) == 2

    client = authed_client(bob)
    second_id = client.get(f"/conversations/{conversation_id}/messages").json()["messages"][1]["id"]
    client.post(f"/messages/{second_id}/hide")
    assert _unread(client) == 1

    client.post(f"/conversations/{conversation_id}/read")
    assert _unread(client) == 0


def test_muted_conversations_and_users_do_not_count(authed_client, user_factory):
    alice = user_factory("alice")
    bob = user_factory("bob")
    carol = user_factory("carol")
    with_bob = authed_client(bob).post(
        "/conversations/direct", json={"participant_id": str(alice.id)}
    ).json()["conversation_id"]
    authed_client(bob).post(f"/conversations/{with_bob}/messages", json={"content": "from bob"})
    with_carol = authed_client(carol).post(
        "/conversations/direct", json={"participant_id": str(alice.id)}
    ).json()["conversation_id"]
    authed_client(carol).post(f"/conversations/{with_carol}/messages", json={"content": "from carol"})

    client = authed_client(alice)
    assert _unread(client) == 2

    client.put(f"/conversations/{with_bob}/mute", json={"muted": True})
    assert _unread(client) == 1

    assert client.put(f"/mutes/{carol.id}").status_code == 200
    assert _unread(client) == 0

    client.delete(f"/mutes/{carol.id}")
    client.put(f"/conversations/{with_bob}/mute", json={"muted": False})
    assert _unread(client) == 2


def test_left_groups_do_not_count(authed_client, user_factory):
    owner = user_factory("owner")
    member = user_factory("member")
    conversation_id = authed_client(owner).post(
        "/conversations/groups",
        json={"name": "Noise", "participant_ids": [str(member.id)]},
    ).json()["conversation_id"]
    authed_client(owner).post(f"/conversations/{conversation_id}/messages", json={"content": "hello"})

    client = authed_client(member)
    assert _unread(client) == 1
    client.post(f"/conversations/{conversation_id}/leave")
    assert _unread(client) == 0


def test_mute_user_is_idempotent_and_listed(authed_client, user_factory):
    alice = user_factory("alice")
    bob = user_factory("bob")
    client = authed_client(alice)

    first = client.put(f"/mutes/{bob.id}").json()
    second = client.put(f"/mutes/{bob.id}").json()
    assert first["id"] == second["id"]
    assert first["user"]["username"] == "bob"

    items = client.get("/mutes").json()["items"]
    assert [item["muted_user_id"] for item in items] == [str(bob.id)]

    assert client.delete(f"/mutes/{bob.id}").json() == {"user_id": str(bob.id), "success": True}
    assert client.delete(f"/mutes/{bob.id}").json()["success"] is False
    assert client.get("/mutes").json()["items"] == []


def test_mute_self_and_unknown_users_are_rejected(authed_client, user_factory):
    alice = user_factory("alice")
    client = authed_client(alice)
    assert client.put(f"/mutes/{alice.id}").status_code == 400
    assert client.put("/mutes/00000000-0000-0000-0000-000000000042").status_code == 404
