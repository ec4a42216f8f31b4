"""Tests for the broadcast hub event loop."""
import asyncio

import pytest
import pytest_asyncio

from chat_relay.config.relay_config import RelayConfig
from chat_relay.hub.broadcast_hub import BroadcastHub
from chat_relay.hub.hub_events import ExpirePresence
from chat_relay.hub.presence_tracker import PresenceTracker
from chat_relay.hub.session_registry import Session
from chat_relay.relay_types import DuplicateSessionError, HubClosedError
from .conftest import drain_outbound


async def _join(hub: BroadcastHub) -> Session:
    session = hub.new_session()
    await hub.connect(session)
    return session


class TestConnect:
    """Tests for session registration and history delivery."""

    @pytest.mark.asyncio
    async def test_new_session_receives_empty_history(self, hub):
        session = await _join(hub)

        assert hub.registry.get(session.session_id) is session
        assert drain_outbound(session) == [{"kind": "history", "messages": []}]

    @pytest.mark.asyncio
    async def test_history_goes_to_joining_session_only(self, hub):
        first = await _join(hub)
        await hub.send_message(first.session_id, "alice", "hi")
        await hub.drain()
        drain_outbound(first)

        second = await _join(hub)
        await hub.drain()

        assert drain_outbound(first) == []
        (history,) = drain_outbound(second)
        assert history["kind"] == "history"
        assert [(m["user"], m["body"]) for m in history["messages"]] == [("alice", "hi")]

    @pytest.mark.asyncio
    async def test_duplicate_session_id_is_rejected(self, hub):
        session = await _join(hub)

        with pytest.raises(DuplicateSessionError):
            await hub.connect(Session(session_id=session.session_id))
        assert hub.registry.active_count == 1

    @pytest.mark.asyncio
    async def test_new_sessions_use_hub_config(self):
        hub = BroadcastHub(RelayConfig(outbound_queue_size=7, max_dropped=3))
        session = hub.new_session()

        assert session.outbound.maxsize == 7
        assert session.max_dropped == 3
        assert session.session_id != hub.new_session().session_id


class TestSendMessage:
    """Tests for message acceptance, validation and fan-out."""

    @pytest.mark.asyncio
    async def test_message_is_echoed_to_everyone(self, hub):
        a, b = await _join(hub), await _join(hub)
        drain_outbound(a), drain_outbound(b)

        await hub.send_message(a.session_id, "alice", "hi")
        await hub.drain()

        for session in (a, b):
            (event,) = drain_outbound(session)
            assert event["kind"] == "message"
            assert event["message"]["user"] == "alice"
            assert event["message"]["body"] == "hi"
            assert isinstance(event["message"]["sentAt"], int)

    @pytest.mark.asyncio
    async def test_message_fields(self):
        hub = BroadcastHub(clock=lambda: 1700000000.5)
        await hub.start()
        try:
            session = await _join(hub)
            await hub.send_message(session.session_id, "alice", "one")
            await hub.send_message(session.session_id, "alice", "two")
            await hub.drain()
        finally:
            await hub.stop()

        first, second = hub.history.snapshot()
        assert first.sent_at == 1700000000500
        assert first.id != second.id
        assert first.model_dump(by_alias=True) == {
            "id": first.id, "user": "alice", "body": "one", "sentAt": 1700000000500,
        }

    @pytest.mark.asyncio
    @pytest.mark.parametrize("body", ["", "   ", "\n\t", "x" * 501])
    async def test_invalid_bodies_are_dropped(self, hub, body):
        session = await _join(hub)
        drain_outbound(session)

        await hub.send_message(session.session_id, "alice", body)
        await hub.drain()

        assert drain_outbound(session) == []
        assert len(hub.history) == 0

    @pytest.mark.asyncio
    async def test_body_at_limit_is_accepted(self, hub):
        session = await _join(hub)
        await hub.send_message(session.session_id, "alice", "x" * 500)
        await hub.drain()

        assert len(hub.history) == 1

    @pytest.mark.asyncio
    async def test_unknown_session_is_ignored(self, hub):
        watcher = await _join(hub)
        drain_outbound(watcher)

        await hub.send_message("nope", "mallory", "hi")
        await hub.drain()

        assert drain_outbound(watcher) == []
        assert len(hub.history) == 0

    @pytest.mark.asyncio
    async def test_history_is_bounded(self, hub):
        session = await _join(hub)
        for n in range(130):
            await hub.send_message(session.session_id, "alice", f"m{n}")
        await hub.drain()

        snapshot = hub.history.snapshot()
        assert len(snapshot) == 100
        assert [m.body for m in snapshot] == [f"m{n}" for n in range(30, 130)]

    @pytest.mark.asyncio
    async def test_all_sessions_see_the_same_order(self, hub):
        sessions = [await _join(hub) for _ in range(3)]
        for session in sessions:
            drain_outbound(session)

        for n in range(20):
            sender = sessions[n % 3]
            await hub.send_message(sender.session_id, f"user{n % 3}", f"m{n}")
        await hub.drain()

        orders = [[e["message"]["body"] for e in drain_outbound(s)] for s in sessions]
        assert orders[0] == [f"m{n}" for n in range(20)]
        assert orders[0] == orders[1] == orders[2]

    @pytest.mark.asyncio
    async def test_sending_clears_typing(self, hub):
        a, b = await _join(hub), await _join(hub)
        await hub.set_typing(a.session_id, "alice", True)
        await hub.drain()
        drain_outbound(a), drain_outbound(b)

        await hub.send_message(a.session_id, "alice", "done typing")
        await hub.drain()

        assert not hub.presence.is_typing("alice")
        kinds_a = [e["kind"] for e in drain_outbound(a)]
        events_b = drain_outbound(b)
        assert kinds_a == ["message"]
        assert [e["kind"] for e in events_b] == ["message", "presence"]
        assert events_b[1] == {"kind": "presence", "user": "alice", "isTyping": False}


class TestTyping:
    """Tests for presence transitions."""

    @pytest.mark.asyncio
    async def test_typing_goes_to_everyone_but_sender(self, hub):
        a, b, c = await _join(hub), await _join(hub), await _join(hub)
        for session in (a, b, c):
            drain_outbound(session)

        await hub.set_typing(a.session_id, "alice", True)
        await hub.drain()

        expected = {"kind": "presence", "user": "alice", "isTyping": True}
        assert drain_outbound(a) == []
        assert drain_outbound(b) == [expected]
        assert drain_outbound(c) == [expected]

    @pytest.mark.asyncio
    async def test_repeated_typing_is_not_rebroadcast(self, hub):
        a, b = await _join(hub), await _join(hub)
        drain_outbound(b)

        await hub.set_typing(a.session_id, "alice", True)
        await hub.set_typing(a.session_id, "alice", True)
        await hub.set_typing(a.session_id, "alice", False)
        await hub.set_typing(a.session_id, "alice", False)
        await hub.drain()

        assert [e["isTyping"] for e in drain_outbound(b)] == [True, False]

    @pytest.mark.asyncio
    async def test_typing_from_unknown_session_is_ignored(self, hub):
        await hub.set_typing("nope", "mallory", True)
        await hub.drain()

        assert not hub.presence.is_typing("mallory")


class TestDisconnect:
    """Tests for disconnect and presence cleanup."""

    @pytest.mark.asyncio
    async def test_disconnect_unregisters_without_broadcast(self, hub):
        a, b = await _join(hub), await _join(hub)
        drain_outbound(b)

        await hub.disconnect(a.session_id)
        await hub.drain()

        assert hub.registry.get(a.session_id) is None
        assert a.closed
        assert drain_outbound(b) == []

    @pytest.mark.asyncio
    async def test_disconnect_twice_is_harmless(self, hub):
        a = await _join(hub)
        await hub.disconnect(a.session_id)
        await hub.disconnect(a.session_id)
        await hub.drain()

        assert hub.registry.active_count == 0

    @pytest.mark.asyncio
    async def test_clear_presence_after_disconnect(self, hub):
        a, b = await _join(hub), await _join(hub)
        await hub.set_typing(a.session_id, "alice", True)
        await hub.drain()
        drain_outbound(b)

        await hub.disconnect(a.session_id)
        await hub.clear_presence("alice")
        await hub.drain()

        assert not hub.presence.is_typing("alice")
        assert drain_outbound(b) == [{"kind": "presence", "user": "alice", "isTyping": False}]

    @pytest.mark.asyncio
    async def test_clear_presence_for_idle_user_is_silent(self, hub):
        b = await _join(hub)
        drain_outbound(b)

        await hub.clear_presence("alice")
        await hub.drain()

        assert drain_outbound(b) == []


class TestPresenceExpiry:
    """Tests for expiring stale typing signals."""

    @pytest.mark.asyncio
    async def test_expire_event_broadcasts_stop(self, hub):
        now = [0.0]
        hub.presence = PresenceTracker(clock=lambda: now[0])
        a, b = await _join(hub), await _join(hub)
        await hub.set_typing(a.session_id, "alice", True)
        await hub.drain()
        drain_outbound(a), drain_outbound(b)

        await hub.submit(ExpirePresence(ttl=5.0))
        await hub.drain()
        assert drain_outbound(b) == []

        now[0] = 6.0
        await hub.submit(ExpirePresence(ttl=5.0))
        await hub.drain()

        stop = {"kind": "presence", "user": "alice", "isTyping": False}
        assert drain_outbound(a) == [stop]
        assert drain_outbound(b) == [stop]

    @pytest.mark.asyncio
    async def test_sweep_expires_typing_when_ttl_configured(self):
        hub = BroadcastHub(RelayConfig(typing_ttl=0.05, typing_sweep_interval=0.01))
        await hub.start()
        try:
            a, b = await _join(hub), await _join(hub)
            await hub.set_typing(a.session_id, "alice", True)
            await hub.drain()
            assert hub.presence.is_typing("alice")

            for _ in range(200):
                if not hub.presence.is_typing("alice"):
                    break
                await asyncio.sleep(0.01)
            await hub.drain()
        finally:
            await hub.stop()

        assert not hub.presence.is_typing("alice")
        presence = [e for e in drain_outbound(b) if e and e["kind"] == "presence"]
        assert [e["isTyping"] for e in presence] == [True, False]


class TestLifecycle:
    """Tests for hub start/stop."""

    @pytest_asyncio.fixture
    async def stopped_hub(self):
        hub = BroadcastHub()
        await hub.start()
        session = await _join(hub)
        await hub.send_message(session.session_id, "alice", "last words")
        await hub.stop()
        return hub, session

    @pytest.mark.asyncio
    async def test_stop_flushes_queued_events_and_closes_sessions(self, stopped_hub):
        hub, session = stopped_hub

        assert not hub.running
        assert hub.registry.active_count == 0
        assert session.closed
        assert session.close_code == 1001
        kinds = [None if e is None else e["kind"] for e in drain_outbound(session)]
        assert kinds == ["history", "message", None]

    @pytest.mark.asyncio
    async def test_submit_after_stop_raises(self, stopped_hub):
        hub, session = stopped_hub

        with pytest.raises(HubClosedError):
            await hub.send_message(session.session_id, "alice", "too late")
        with pytest.raises(HubClosedError):
            await hub.connect(hub.new_session())

    @pytest.mark.asyncio
    async def test_submit_before_start_raises(self):
        hub = BroadcastHub()
        with pytest.raises(HubClosedError):
            await hub.disconnect("s1")

    @pytest.mark.asyncio
    async def test_start_and_stop_are_idempotent(self):
        hub = BroadcastHub()
        await hub.start()
        await hub.start()
        assert hub.running
        await hub.stop()
        await hub.stop()
        assert not hub.running
