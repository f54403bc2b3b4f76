"""Unit tests for the client query cache, debouncer and realtime routing."""
from __future__ import annotations

import asyncio

import pytest

from chatsync.client import ChatApiClient, Debouncer, MessageCountStore, PresenceStore, QueryCache, RealtimeClient
from chatsync.config import ClientSettings


def test_fetch_deduplicates_concurrent_requests():
    calls = []

    async def fetcher():
        calls.append(1)
        await asyncio.sleep(0.01)
        return ["row"]

    async def _run():
        cache = QueryCache()
        results = await asyncio.gather(*(cache.fetch(("conversations", "all"), fetcher) for _ in range(3)))
        return results, cache.get(("conversations", "all"))

    results, cached = asyncio.run(_run())
    assert results == [["row"]] * 3
    assert cached == ["row"]
    assert len(calls) == 1


def test_fetch_respects_stale_time():
    now = [100.0]
    calls = []

    async def fetcher():
        calls.append(now[0])
        return len(calls)

    async def _run():
        cache = QueryCache(clock=lambda: now[0])
        first = await cache.fetch(("unread-count",), fetcher, stale_time=30)
        now[0] += 10
        cached = await cache.fetch(("unread-count",), fetcher, stale_time=30)
        now[0] += 25
        refreshed = await cache.fetch(("unread-count",), fetcher, stale_time=30)
        return first, cached, refreshed

    assert asyncio.run(_run()) == (1, 1, 2)
    assert calls == [100.0, 135.0]


def test_update_matching_and_restore_cover_every_prefixed_query():
    cache = QueryCache()
    cache.set_data(("conversations", "all"), [{"id": "a"}, {"id": "b"}])
    cache.set_data(("conversations", "groups"), [{"id": "b"}])
    cache.set_data(("messages", "b"), [{"id": "m1"}])

    snapshot = cache.update_matching(("conversations",), lambda rows: [r for r in rows if r["id"] != "b"])
    assert cache.get(("conversations", "all")) == [{"id": "a"}]
    assert cache.get(("conversations", "groups")) == []
    assert cache.get(("messages", "b")) == [{"id": "m1"}]

    cache.restore(snapshot)
    assert cache.get(("conversations", "all")) == [{"id": "a"}, {"id": "b"}]
    assert cache.get(("conversations", "groups")) == [{"id": "b"}]


def test_invalidate_refetches_registered_queries_and_notifies():
    versions = {"all": 0, "groups": 0}
    seen = []

    def make_fetcher(name):
        async def fetcher():
            versions[name] += 1
            return versions[name]
        return fetcher

    async def _run():
        cache = QueryCache()
        cache.subscribe(("conversations",), lambda key, data: seen.append((key[-1], data)))
        await cache.fetch(("conversations", "all"), make_fetcher("all"))
        await cache.fetch(("conversations", "groups"), make_fetcher("groups"))
        cache.set_data(("messages", "x"), ["no fetcher"])
        await cache.invalidate(("conversations",))
        await cache.invalidate(("messages",))
        return cache

    cache = asyncio.run(_run())
    assert cache.get(("conversations", "all")) == 2
    assert cache.get(("conversations", "groups")) == 2
    assert cache.is_stale(("messages", "x"))
    assert cache.get(("messages", "x")) == ["no fetcher"]
    assert ("all", 2) in seen and ("groups", 2) in seen


def test_invalidate_keeps_previous_data_when_refetch_fails():
    attempts = []

    async def fetcher():
        attempts.append(1)
        if len(attempts) > 1:
            raise RuntimeError("offline")
        return ["cached"]

    async def _run():
        cache = QueryCache()
        await cache.fetch(("muted-users",), fetcher)
        await cache.invalidate(("muted-users",))
        return cache.get(("muted-users",))

    assert asyncio.run(_run()) == ["cached"]
    assert len(attempts) == 2


def test_debouncer_coalesces_bursts():
    calls = []

    async def _run():
        debouncer = Debouncer(lambda: calls.append("refetch"), delay=0.02)
        for _ in range(5):
            debouncer.trigger()
            await asyncio.sleep(0.005)
        await debouncer.wait()
        debouncer.trigger()
        await debouncer.flush()

    asyncio.run(_run())
    assert calls == ["refetch", "refetch"]


def test_unread_poll_survives_a_failing_refetch():
    class _FlakyCache(QueryCache):
        def __init__(self) -> None:
            super().__init__()
            self.calls = 0

        async def invalidate(self, prefix=()):
            self.calls += 1
            if self.calls == 1:
                raise RuntimeError("cache unavailable")

    async def _run():
        settings = ClientSettings(unread_poll_seconds=0.01)
        cache = _FlakyCache()
        api = ChatApiClient("http://testserver")
        store = MessageCountStore(api, cache, RealtimeClient("ws://testserver/realtime/ws"), settings=settings)
        store.start(poll=True)
        for _ in range(50):
            if cache.calls >= 3:
                break
            await asyncio.sleep(0.01)
        await store.stop()
        await api.aclose()
        return cache.calls

    assert asyncio.run(_run()) >= 3


def test_realtime_channel_filters_by_table_event_and_conversation():
    received = []

    async def _run():
        client = RealtimeClient("ws://unused")
        channel = client.channel("messages:abc").on(
            "messages",
            received.append,
            event="INSERT",
            filter="conversation_id=eq.abc",
        )
        frames = [
            {"type": "change", "table": "messages", "event": "INSERT", "record": {"conversation_id": "abc"}},
            {"type": "change", "table": "messages", "event": "UPDATE", "record": {"conversation_id": "abc"}},
            {"type": "change", "table": "messages", "event": "INSERT", "record": {"conversation_id": "other"}},
            {"type": "change", "table": "participants", "event": "INSERT", "record": {"conversation_id": "abc"}},
            {"type": "change", "table": "messages", "event": "INSERT", "record": {}, "conversation_id": "abc"},
        ]
        for frame in frames:
            await client.dispatch(frame)
        client.remove_channel(channel)
        await client.dispatch(frames[0])

    asyncio.run(_run())
    assert len(received) == 2


def test_realtime_filter_rejects_unsupported_operators():
    client = RealtimeClient("ws://unused")
    with pytest.raises(ValueError):
        client.channel("bad").on("messages", print, filter="conversation_id=gt.5")


def test_realtime_url_carries_token():
    client = RealtimeClient("ws://host/realtime/ws", token="abc")
    assert client._connect_url() == "ws://host/realtime/ws?token=abc"


def test_presence_store_applies_sync_join_and_leave():
    async def _run():
        client = RealtimeClient("ws://unused")
        store = PresenceStore(client)
        store.start()
        await client.dispatch({"type": "presence", "event": "sync", "presences": [{"user_id": "a"}, {"user_id": "b"}]})
        await client.dispatch({"type": "presence", "event": "join", "presences": [{"user_id": "c"}]})
        await client.dispatch({"type": "presence", "event": "leave", "presences": [{"user_id": "a"}]})
        return store

    store = asyncio.run(_run())
    assert store.online_count == 2
    assert store.is_user_online("c")
    assert not store.is_user_online("a")
    assert store.is_connected is False
