import asyncio
import json
from unittest.mock import MagicMock

import redis

from docutrain_admin.core.config import settings
from docutrain_admin.services import realtime
from docutrain_admin.services.realtime import (
    RealtimeListener,
    changed_record_id,
    channel_for_user,
    publish_document_change,
)


class FakePubSub:
    def __init__(self, messages=None, fail_subscribe=False):
        self.messages = list(messages or [])
        self.fail_subscribe = fail_subscribe
        self.subscribed = []
        self.unsubscribed = []
        self.closed = False

    async def subscribe(self, channel):
        if self.fail_subscribe:
            raise ConnectionError("connection refused")
        self.subscribed.append(channel)

    async def get_message(self, ignore_subscribe_messages=False, timeout=0.0):
        if self.messages:
            return self.messages.pop(0)
        await asyncio.sleep(0.01)
        return None

    async def unsubscribe(self, channel):
        self.unsubscribed.append(channel)

    async def aclose(self):
        self.closed = True


class FakeRedis:
    def __init__(self, pubsub):
        self._pubsub = pubsub

    def pubsub(self):
        return self._pubsub


# ─── Helpers ─────────────────────────────────────────────────────────────────

def test_channel_for_user():
    assert channel_for_user("u-1") == "user_documents:u-1"


def test_changed_record_id():
    assert changed_record_id({"record": {"id": "a"}, "old_record": {"id": "b"}}) == "a"
    assert changed_record_id({"type": "DELETE", "record": None, "old_record": {"id": "b"}}) == "b"
    assert changed_record_id({"new": {"id": 7}}) == "7"
    assert changed_record_id({"type": "UPDATE"}) is None


# ─── Listener ────────────────────────────────────────────────────────────────

def test_listener_forwards_decoded_events():
    event = {"type": "UPDATE", "record": {"id": "ud-1", "status": "ready"}}
    pubsub = FakePubSub([
        {"type": "message", "data": json.dumps(event)},
        {"type": "message", "data": "not json"},
        {"type": "pmessage", "data": json.dumps({"ignored": True})},
    ])
    received = []

    async def scenario():
        listener = RealtimeListener("user_documents:u-1", on_event=received.append, client=FakeRedis(pubsub))
        assert await listener.start()
        await asyncio.sleep(0.05)
        await listener.close()
        return listener

    listener = asyncio.run(scenario())
    assert received == [event]
    assert pubsub.subscribed == ["user_documents:u-1"]
    assert pubsub.unsubscribed == ["user_documents:u-1"]
    assert pubsub.closed
    assert listener.subscribed is False


def test_handler_errors_do_not_stop_listener():
    pubsub = FakePubSub([
        {"type": "message", "data": json.dumps({"n": 1})},
        {"type": "message", "data": json.dumps({"n": 2})},
    ])
    received = []

    def handler(payload):
        received.append(payload)
        if payload["n"] == 1:
            raise RuntimeError("boom")

    async def scenario():
        listener = RealtimeListener("c", on_event=handler, client=FakeRedis(pubsub))
        await listener.start()
        await asyncio.sleep(0.05)
        await listener.close()

    asyncio.run(scenario())
    assert received == [{"n": 1}, {"n": 2}]


def test_failed_subscription_degrades_to_polling():
    pubsub = FakePubSub(fail_subscribe=True)

    async def scenario():
        listener = RealtimeListener("c", client=FakeRedis(pubsub))
        started = await listener.start()
        await listener.close()
        return listener, started

    listener, started = asyncio.run(scenario())
    assert started is False
    assert listener.subscribed is False


def test_close_is_idempotent():
    pubsub = FakePubSub()

    async def scenario():
        listener = RealtimeListener("c", client=FakeRedis(pubsub))
        await listener.start()
        await listener.close()
        await listener.close()

    asyncio.run(scenario())
    assert pubsub.unsubscribed == ["c"]


# ─── Publisher ───────────────────────────────────────────────────────────────

def test_publish_document_change(monkeypatch):
    publisher = MagicMock()
    monkeypatch.setattr(realtime, "_publisher", publisher)

    assert publish_document_change("u-1", {"type": "INSERT", "record": {"id": "ud-1"}})
    channel, message = publisher.publish.call_args[0]
    assert channel == "user_documents:u-1"
    assert json.loads(message)["record"]["id"] == "ud-1"


def test_publish_without_redis(monkeypatch):
    monkeypatch.setattr(realtime, "_publisher", None)
    monkeypatch.setattr(settings, "REDIS_URL", "")
    assert publish_document_change("u-1", {"type": "INSERT"}) is False


def test_publish_error_is_reported(monkeypatch):
    publisher = MagicMock()
    publisher.publish.side_effect = redis.ConnectionError("gone")
    monkeypatch.setattr(realtime, "_publisher", publisher)
    assert publish_document_change("u-1", {"type": "UPDATE"}) is False
