"""Integration tests for group administration."""
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


def _group(client: TestClient, name: str, *members: User) -> str:
    response = client.post(
        "/conversations/groups",
        json={"name": name, "participant_ids": [str(member.id) for member in members]},
    )
    assert response.status_code == 201
    return response.json()["conversation_id"]


def _roles(client: TestClient, conversation_id: str) -> dict[str, str]:
    details = client.get(f"/groups/{conversation_id}").json()
    return {p["user_id"]: p["role"] for p in details["participants"]}


def test_group_details_include_history_and_admin_flag(authed_client, user_factory):
    owner = user_factory("owner")
    member = user_factory("member")
    conversation_id = _group(authed_client(owner), "Ops", member)

    details = authed_client(owner).get(f"/groups/{conversation_id}").json()
    assert details["group"]["name"] == "Ops"
    assert details["is_admin"] is True
    assert details["history"][0]["action_type"] == "group_created"
    assert details["history"][0]["performer"]["username"] == "owner"

    assert authed_client(member).get(f"/groups/{conversation_id}").json()["is_admin"] is False


def test_group_endpoints_require_group_and_membership(authed_client, user_factory):
    owner = user_factory("owner")
    friend = user_factory("friend")
    outsider = user_factory("outsider")
    client = authed_client(owner)
    direct_id = client.post("/conversations/direct", json={"participant_id": str(friend.id)}).json()["conversation_id"]
    assert client.get(f"/groups/{direct_id}").status_code == 400

    conversation_id = _group(authed_client(owner), "Private", friend)
    assert authed_client(outsider).get(f"/groups/{conversation_id}").status_code == 403


def test_members_cannot_administer(authed_client, user_factory):
    owner = user_factory("owner")
    member = user_factory("member")
    extra = user_factory("extra")
    conversation_id = _group(authed_client(owner), "Ops", member)

    client = authed_client(member)
    assert client.post(f"/groups/{conversation_id}/participants", json={"user_ids": [str(extra.id)]}).status_code == 403
    assert client.put(f"/groups/{conversation_id}/name", json={"name": "Mine"}).status_code == 403
    assert client.post(f"/groups/{conversation_id}/admins/{member.id}").status_code == 403


def test_add_participants_skips_active_and_reactivates_left_members(authed_client, user_factory):
    owner = user_factory("owner")
    member = user_factory("member")
    newcomer = user_factory("newcomer")
    conversation_id = _group(authed_client(owner), "Ops", member)

    client = authed_client(owner)
    client.post(f"/groups/{conversation_id}/admins/{member.id}")
    authed_client(member).post(f"/conversations/{conversation_id}/leave")

    client = authed_client(owner)
    response = client.post(
        f"/groups/{conversation_id}/participants",
        json={"user_ids": [str(owner.id), str(member.id), str(newcomer.id)]},
    )
    assert response.status_code == 200
    assert response.json()["user_ids"] == [str(member.id), str(newcomer.id)]
    assert _roles(client, conversation_id) == {
        str(owner.id): "admin",
        str(member.id): "member",
        str(newcomer.id): "member",
    }

    history = client.get(f"/groups/{conversation_id}").json()["history"]
    added = [entry["affected_user_id"] for entry in history if entry["action_type"] == "member_added"]
    assert sorted(added) == sorted([str(member.id), str(newcomer.id)])

    missing = client.post(
        f"/groups/{conversation_id}/participants",
        json={"user_ids": ["00000000-0000-0000-0000-000000000009"]},
    )
    assert missing.status_code == 404


def test_removing_last_admin_promotes_oldest_member(authed_client, user_factory):
    owner = user_factory("owner")
    co_admin = user_factory("co-admin")
    first = user_factory("first")
    second = user_factory("second")
    conversation_id = _group(authed_client(owner), "Ops", first, second, co_admin)

    client = authed_client(owner)
    client.post(f"/groups/{conversation_id}/admins/{co_admin.id}")
    client = authed_client(co_admin)
    assert client.delete(f"/groups/{conversation_id}/participants/{owner.id}").json()["success"] is True

    client = authed_client(co_admin)
    assert client.delete(f"/groups/{conversation_id}/participants/{co_admin.id}").json()["success"] is True

    client = authed_client(first)
    assert _roles(client, conversation_id) == {str(first.id): "admin", str(second.id): "member"}
    actions = [entry["action_type"] for entry in client.get(f"/groups/{conversation_id}").json()["history"]]
    assert actions[:3] == ["member_removed", "admin_promoted", "member_removed"]


def test_remove_admin_keeps_at_least_one(authed_client, user_factory):
    owner = user_factory("owner")
    member = user_factory("member")
    conversation_id = _group(authed_client(owner), "Ops", member)
    client = authed_client(owner)

    assert client.delete(f"/groups/{conversation_id}/admins/{owner.id}").status_code == 409

    client.post(f"/groups/{conversation_id}/admins/{member.id}")
    assert client.delete(f"/groups/{conversation_id}/admins/{owner.id}").json()["success"] is True
    assert _roles(authed_client(member), conversation_id) == {str(owner.id): "member", str(member.id): "admin"}

    actions = [entry["action_type"] for entry in client.get(f"/groups/{conversation_id}").json()["history"]]
    assert actions[:2] == ["admin_demoted", "admin_promoted"]


def test_rename_records_old_and_new_values(authed_client, user_factory):
    owner = user_factory("owner")
    member = user_factory("member")
    conversation_id = _group(authed_client(owner), "Ops", member)
    client = authed_client(owner)

    response = client.put(f"/groups/{conversation_id}/name", json={"name": " Operations "})
    assert response.status_code == 200
    assert response.json()["name"] == "Operations"

    entry = client.get(f"/groups/{conversation_id}").json()["history"][0]
    assert (entry["action_type"], entry["old_value"], entry["new_value"]) == ("name_changed", "Ops", "Operations")
    assert client.get("/conversations").json()[0]["name"] == "Operations"
