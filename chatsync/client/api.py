"""Async HTTP client for the chatsync backend."""
from __future__ import annotations

import logging
from typing import Any, Iterable, Optional

import httpx

from ..config import get_client_settings

logger = logging.getLogger(__name__)


class ChatApiError(RuntimeError):
    """Raised when a backend call fails or returns a non-2xx response."""

    def __init__(self, status_code: int, detail: str) -> None:
        super().__init__(f"{status_code}: {detail}")
        self.status_code = status_code
        self.detail = detail


def _error_detail(response: httpx.Response) -> str:
    try:
        payload = response.json()
    except ValueError:
        return response.text or response.reason_phrase
    if isinstance(payload, dict) and "detail" in payload:
        detail = payload["detail"]
        return detail if isinstance(detail, str) else str(detail)
    return str(payload)


class ChatApiClient:
    """Thin wrapper over ``httpx.AsyncClient`` returning decoded JSON payloads."""

    def __init__(
        self,
        base_url: Optional[str] = None,
        *,
        token: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        settings = get_client_settings()
        self.base_url = (base_url or settings.api_url).rstrip("/")
        self.token = token
        self.user_id: Optional[str] = None
        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            timeout=timeout or settings.request_timeout,
            transport=transport,
        )

    async def __aenter__(self) -> "ChatApiClient":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    def _headers(self) -> dict[str, str]:
        if not self.token:
            return {}
        return {"Authorization": f"Bearer {self.token}"}

    async def _request(self, method: str, path: str, **kwargs: Any) -> Any:
        try:
            response = await self._client.request(method, path, headers=self._headers(), **kwargs)
        except httpx.HTTPError as exc:
            logger.warning("Request %s %s failed: %s", method, path, exc)
            raise ChatApiError(0, str(exc) or exc.__class__.__name__) from exc
        if response.is_error:
            raise ChatApiError(response.status_code, _error_detail(response))
        if not response.content:
            return None
        return response.json()

    # Auth

    async def register(self, username: str, password: str, *, display_name: Optional[str] = None) -> dict:
        payload = await self._request(
            "POST",
            "/auth/register",
            json={"username": username, "password": password, "display_name": display_name},
        )
        self.token = payload["access_token"]
        self.user_id = payload["user_id"]
        return payload

    async def login(self, username: str, password: str) -> dict:
        payload = await self._request("POST", "/auth/login", json={"username": username, "password": password})
        self.token = payload["access_token"]
        self.user_id = payload["user_id"]
        return payload

    async def me(self) -> dict:
        return await self._request("GET", "/auth/me")

    # Conversations

    async def list_conversations(self, filter_: str = "all") -> list[dict]:
        return await self._request("GET", "/conversations", params={"filter": filter_})

    async def create_direct_conversation(self, participant_id: Any) -> str:
        payload = await self._request("POST", "/conversations/direct", json={"participant_id": str(participant_id)})
        return payload["conversation_id"]

    async def create_group(
        self,
        name: str,
        participant_ids: Iterable[Any],
        *,
        image_url: Optional[str] = None,
    ) -> str:
        payload = await self._request(
            "POST",
            "/conversations/groups",
            json={
                "name": name,
                "participant_ids": [str(user_id) for user_id in participant_ids],
                "image_url": image_url,
            },
        )
        return payload["conversation_id"]

    async def hide_conversation(self, conversation_id: Any) -> bool:
        payload = await self._request("POST", f"/conversations/{conversation_id}/hide")
        return bool(payload["success"])

    async def leave_group(self, conversation_id: Any) -> bool:
        payload = await self._request("POST", f"/conversations/{conversation_id}/leave")
        return bool(payload["success"])

    async def set_conversation_muted(self, conversation_id: Any, muted: bool) -> bool:
        payload = await self._request("PUT", f"/conversations/{conversation_id}/mute", json={"muted": muted})
        return bool(payload["success"])

    # Messages

    async def list_messages(self, conversation_id: Any) -> list[dict]:
        payload = await self._request("GET", f"/conversations/{conversation_id}/messages")
        return payload["messages"]

    async def send_message(
        self,
        conversation_id: Any,
        content: str,
        *,
        images: Optional[Iterable[str]] = None,
        shared_post: Optional[dict] = None,
    ) -> dict:
        return await self._request(
            "POST",
            f"/conversations/{conversation_id}/messages",
            json={"content": content, "images": list(images or []), "shared_post": shared_post},
        )

    async def edit_message(self, message_id: Any, content: str) -> dict:
        return await self._request("PATCH", f"/messages/{message_id}", json={"content": content})

    async def delete_message_for_me(self, message_id: Any) -> bool:
        payload = await self._request("POST", f"/messages/{message_id}/hide")
        return bool(payload["success"])

    async def delete_message_for_everyone(self, message_id: Any) -> dict:
        return await self._request("DELETE", f"/messages/{message_id}")

    async def set_reaction(self, message_id: Any, emoji: str) -> dict:
        return await self._request("PUT", f"/messages/{message_id}/reactions", json={"emoji": emoji})

    async def remove_reaction(self, message_id: Any) -> bool:
        payload = await self._request("DELETE", f"/messages/{message_id}/reactions")
        return bool(payload["success"])

    async def get_message_status(self, message_id: Any) -> str:
        payload = await self._request("GET", f"/messages/{message_id}/status")
        return payload["status"]

    async def mark_delivered(self, conversation_id: Any) -> None:
        await self._request("POST", f"/conversations/{conversation_id}/delivered")

    async def mark_read(self, conversation_id: Any) -> None:
        await self._request("POST", f"/conversations/{conversation_id}/read")

    async def clear_messages(self, conversation_id: Any) -> None:
        await self._request("POST", f"/conversations/{conversation_id}/clear")

    async def unread_count(self) -> int:
        payload = await self._request("GET", "/messages/unread-count")
        return int(payload["unread_count"])

    # Groups

    async def get_group(self, conversation_id: Any) -> dict:
        return await self._request("GET", f"/groups/{conversation_id}")

    async def add_participants(self, conversation_id: Any, user_ids: Iterable[Any]) -> list[str]:
        payload = await self._request(
            "POST",
            f"/groups/{conversation_id}/participants",
            json={"user_ids": [str(user_id) for user_id in user_ids]},
        )
        return payload["user_ids"]

    async def remove_participant(self, conversation_id: Any, user_id: Any) -> bool:
        payload = await self._request("DELETE", f"/groups/{conversation_id}/participants/{user_id}")
        return bool(payload["success"])

    async def make_admin(self, conversation_id: Any, user_id: Any) -> bool:
        payload = await self._request("POST", f"/groups/{conversation_id}/admins/{user_id}")
        return bool(payload["success"])

    async def remove_admin(self, conversation_id: Any, user_id: Any) -> bool:
        payload = await self._request("DELETE", f"/groups/{conversation_id}/admins/{user_id}")
        return bool(payload["success"])

    async def update_group_name(self, conversation_id: Any, name: str) -> dict:
        return await self._request("PUT", f"/groups/{conversation_id}/name", json={"name": name})

    # Mutes

    async def list_muted_users(self) -> list[dict]:
        payload = await self._request("GET", "/mutes")
        return payload["items"]

    async def mute_user(self, user_id: Any) -> dict:
        return await self._request("PUT", f"/mutes/{user_id}")

    async def unmute_user(self, user_id: Any) -> bool:
        payload = await self._request("DELETE", f"/mutes/{user_id}")
        return bool(payload["success"])


__all__ = ["ChatApiClient", "ChatApiError"]
