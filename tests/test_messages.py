"""Integration tests for message threads, receipts and reactions."""
from __future__ import annotations

import os
from typing import Callable, Iterator

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import delete, select

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


def _direct(client: TestClient, other: User) -> str:
    return client.post("/conversations/direct", json={"participant_id": str(other.id)}).json()["conversation_id"]


def test_send_and_list_messages_in_order(authed_client, user_factory):
    alice = user_factory("alice")
    bob = user_factory("bob")
    client = authed_client(alice)
    conversation_id = _direct(client, bob)

    first = client.post(f"/conversations/{conversation_id}/messages", json={"content": " hi "})
    assert first.status_code == 201
    assert first.json()["content"] == "hi"
    assert first.json()["status"] == "sent"
    client.post(
        f"/conversations/{conversation_id}/messages",
        json={"content": "", "images": ["https://cdn.example/cat.png"]},
    )

    thread = authed_client(bob).get(f"/conversations/{conversation_id}/messages").json()
    assert thread["conversation_id"] == conversation_id
    assert [m["content"] for m in thread["messages"]] == ["hi", ""]
    assert thread["messages"][1]["images"] == ["https://cdn.example/cat.png"]
    assert thread["messages"][0]["sender"]["username"] == "alice"


def test_empty_message_and_outsider_are_rejected(authed_client, user_factory):
    alice = user_factory("alice")
    bob = user_factory("bob")
    outsider = user_factory("outsider")
    conversation_id = _direct(authed_client(alice), bob)

    empty = authed_client(alice).post(f"/conversations/{conversation_id}/messages", json={"content": "  "})
    assert empty.status_code == 400
    blocked = authed_client(outsider).post(f"/conversations/{conversation_id}/messages", json={"content": "hey"})
    assert blocked.status_code == 403
    assert authed_client(outsider).get(f"/conversations/{conversation_id}/messages").status_code == 403


def test_status_moves_from_sent_to_delivered_to_read(authed_client, user_factory):
    alice = user_factory("alice")
    bob = user_factory("bob")
    client = authed_client(alice)
    conversation_id = _direct(client, bob)
    message_id = client.post(f"/conversations/{conversation_id}/messages", json={"content": "status?"}).json()["id"]

    assert client.get(f"/messages/{message_id}/status").json()["status"] == "sent"

    authed_client(bob).post(f"/conversations/{conversation_id}/delivered")
    client = authed_client(alice)
    assert client.get(f"/messages/{message_id}/status").json()["status"] == "delivered"

    authed_client(bob).post(f"/conversations/{conversation_id}/read")
    client = authed_client(alice)
    assert client.get(f"/messages/{message_id}/status").json()["status"] == "read"
    own = client.get(f"/conversations/{conversation_id}/messages").json()["messages"]
    assert own[0]["status"] == "read"

    theirs = authed_client(bob).get(f"/conversations/{conversation_id}/messages").json()["messages"]
    assert theirs[0]["status"] == "sent"


def test_group_status_needs_every_recipient(authed_client, user_factory):
    owner = user_factory("owner")
    first = user_factory("first")
    second = user_factory("second")
    client = authed_client(owner)
    conversation_id = client.post(
        "/conversations/groups",
        json={"name": "Trio", "participant_ids": [str(first.id), str(second.id)]},
    ).json()["conversation_id"]
    message_id = client.post(f"/conversations/{conversation_id}/messages", json={"content": "all here?"}).json()["id"]

    authed_client(first).post(f"/conversations/{conversation_id}/read")
    assert authed_client(owner).get(f"/messages/{message_id}/status").json()["status"] == "sent"

    authed_client(second).post(f"/conversations/{conversation_id}/delivered")
    assert authed_client(owner).get(f"/messages/{message_id}/status").json()["status"] == "delivered"

    authed_client(second).post(f"/conversations/{conversation_id}/read")
    assert authed_client(owner).get(f"/messages/{message_id}/status").json()["status"] == "read"


def test_members_added_later_are_not_recipients(authed_client, user_factory):
    owner = user_factory("owner")
    early = user_factory("early")
    late = user_factory("late")
    client = authed_client(owner)
    conversation_id = client.post(
        "/conversations/groups",
        json={"name": "Pair", "participant_ids": [str(early.id)]},
    ).json()["conversation_id"]
    message_id = client.post(f"/conversations/{conversation_id}/messages", json={"content": "before"}).json()["id"]
    client.post(f"/groups/{conversation_id}/participants", json={"user_ids": [str(late.id)]})

    authed_client(early).post(f"/conversations/{conversation_id}/read")
    assert authed_client(owner).get(f"/messages/{message_id}/status").json()["status"] == "read"


def test_readded_members_are_not_recipients_while_away(authed_client, user_factory):
    owner = user_factory("owner")
    first = user_factory("first")
    second = user_factory("second")
    client = authed_client(owner)
    conversation_id = client.post(
        "/conversations/groups",
        json={"name": "Trio", "participant_ids": [str(first.id), str(second.id)]},
    ).json()["conversation_id"]
    client.delete(f"/groups/{conversation_id}/participants/{second.id}")
    message_id = client.post(f"/conversations/{conversation_id}/messages", json={"content": "away"}).json()["id"]

    authed_client(first).post(f"/conversations/{conversation_id}/read")
    before = authed_client(owner).get(f"/messages/{message_id}/status").json()["status"]

    client = authed_client(owner)
    client.post(f"/groups/{conversation_id}/participants", json={"user_ids": [str(second.id)]})
    after = client.get(f"/messages/{message_id}/status").json()["status"]
    assert (before, after) == ("read", "read")

    later_id = client.post(f"/conversations/{conversation_id}/messages", json={"content": "back"}).json()["id"]
    authed_client(first).post(f"/conversations/{conversation_id}/read")
    assert authed_client(owner).get(f"/messages/{later_id}/status").json()["status"] == "sent"


def test_edit_message_only_by_author(authed_client, user_factory):
    alice = user_factory("alice")
    bob = user_factory("bob")
    client = authed_client(alice)
    conversation_id = _direct(client, bob)
    message_id = client.post(f"/conversations/{conversation_id}/messages", json={"content": "draft"}).json()["id"]

    assert authed_client(bob).patch(f"/messages/{message_id}", json={"content": "hijack"}).status_code == 403

    edited = authed_client(alice).patch(f"/messages/{message_id}", json={"content": "final"})
    assert edited.status_code == 200
    assert edited.json()["content"] == "final"
    assert edited.json()["is_edited"] is True
    assert edited.json()["edited_at"] is not None


def test_delete_for_me_hides_without_marking_edited(authed_client, user_factory):
    alice = user_factory("alice")
    bob = user_factory("bob")
    client = authed_client(alice)
    conversation_id = _direct(client, bob)
    message_id = client.post(f"/conversations/{conversation_id}/messages", json={"content": "oops"}).json()["id"]

    assert client.post(f"/messages/{message_id}/hide").json() == {"message_id": message_id, "success": True}
    assert client.post(f"/messages/{message_id}/hide").json()["success"] is True
    assert client.get(f"/conversations/{conversation_id}/messages").json()["messages"] == []
    assert client.get("/conversations").json()[0]["last_message"] is None

    theirs = authed_client(bob).get(f"/conversations/{conversation_id}/messages").json()["messages"]
    assert [m["content"] for m in theirs] == ["oops"]
    assert theirs[0]["is_edited"] is False


def test_delete_for_everyone_clears_payload(authed_client, user_factory):
    alice = user_factory("alice")
    bob = user_factory("bob")
    client = authed_client(alice)
    conversation_id = _direct(client, bob)
    message_id = client.post(
        f"/conversations/{conversation_id}/messages",
        json={"content": "secret", "images": ["https://cdn.example/a.png"], "shared_post": {"post_id": "p1"}},
    ).json()["id"]
    authed_client(bob).put(f"/messages/{message_id}/reactions", json={"emoji": "👍"})

    assert authed_client(bob).delete(f"/messages/{message_id}").status_code == 403

    deleted = authed_client(alice).delete(f"/messages/{message_id}").json()
    assert deleted["is_deleted"] is True
    assert deleted["is_edited"] is False
    assert deleted["content"] == ""
    assert deleted["images"] == []
    assert deleted["shared_post"] is None
    assert deleted["reactions"] == []

    assert authed_client(alice).patch(f"/messages/{message_id}", json={"content": "undo"}).status_code == 400
    with SessionLocal() as session:
        assert session.scalars(select(MessageReaction)).all() == []


def test_reaction_replaces_previous_choice(authed_client, user_factory):
    alice = user_factory("alice")
    bob = user_factory("bob")
    client = authed_client(alice)
    conversation_id = _direct(client, bob)
    message_id = client.post(f"/conversations/{conversation_id}/messages", json={"content": "react"}).json()["id"]

    client = authed_client(bob)
    assert client.put(f"/messages/{message_id}/reactions", json={"emoji": "👍"}).status_code == 200
    assert client.put(f"/messages/{message_id}/reactions", json={"emoji": "🔥"}).json()["emoji"] == "🔥"

    reactions = client.get(f"/conversations/{conversation_id}/messages").json()["messages"][0]["reactions"]
    assert [(r["user_id"], r["emoji"]) for r in reactions] == [(str(bob.id), "🔥")]

    assert client.delete(f"/messages/{message_id}/reactions").json()["success"] is True
    assert client.delete(f"/messages/{message_id}/reactions").json()["success"] is False
    assert client.get(f"/conversations/{conversation_id}/messages").json()["messages"][0]["reactions"] == []


def test_clear_messages_only_affects_requester(authed_client, user_factory):
    alice = user_factory("alice")
    bob = user_factory("bob")
    client = authed_client(alice)
    conversation_id = _direct(client, bob)
    for text in ("one", "two"):
        client.post(f"/conversations/{conversation_id}/messages", json={"content": text})

    client = authed_client(bob)
    assert client.post(f"/conversations/{conversation_id}/clear").json()["success"] is True
    assert client.get(f"/conversations/{conversation_id}/messages").json()["messages"] == []
    assert client.get("/conversations").json()[0]["unread_count"] == 0

    client = authed_client(alice)
    client.post(f"/conversations/{conversation_id}/messages", json={"content": "three"})
    client = authed_client(bob)
    assert [m["content"] for m in client.get(f"/conversations/{conversation_id}/messages").json()["messages"]] == ["three"]
    assert len(authed_client(alice).get(f"/conversations/{conversation_id}/messages").json()["messages"]) == 3


def test_read_sets_last_read_and_delivered(authed_client, user_factory):
    alice = user_factory("alice")
    bob = user_factory("bob")
    client = authed_client(alice)
    conversation_id = _direct(client, bob)
    client.post(f"/conversations/{conversation_id}/messages", json={"content": "read me"})

    authed_client(bob).post(f"/conversations/{conversation_id}/read")
    with SessionLocal() as session:
        receipt = session.scalars(select(MessageReceipt)).one()
        participant = session.scalars(select(Participant).where(Participant.user_id == bob.id)).one()
    assert receipt.read_at is not None
    assert receipt.delivered_at is not None
    assert participant.last_read_at is not None
