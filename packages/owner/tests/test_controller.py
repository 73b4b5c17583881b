"""Tests for the owner-side sync session controller."""

import asyncio
from unittest.mock import patch

import pytest

from kbsync_common import ChannelError
from kbsync_owner.controller import SyncSessionController
from kbsync_owner.store import OwnerStore

pytestmark = pytest.mark.unit


def pushes(peer) -> list:
    return [c.args[1]["entries"] for c in peer.call.await_args_list if c.args[0] == "sync_bases"]


def stop_signals(peer) -> int:
    return sum(1 for c in peer.call.await_args_list if c.args[0] == "sync_stopped")


class TestStart:
    """Tests for starting a session."""

    @pytest.mark.asyncio
    async def test_initial_push(self, make_base, peer):
        store = OwnerStore([make_base("a"), make_base("b")])
        controller = SyncSessionController(store, peer)

        controller.start()
        await controller.drain()

        assert controller.is_active
        sent = pushes(peer)
        assert len(sent) == 1
        assert [e["metadata"]["id"] for e in sent[0]] == ["a", "b"]

    @pytest.mark.asyncio
    async def test_push_payload_is_json_ready(self, make_base, peer):
        store = OwnerStore([make_base("a")])
        controller = SyncSessionController(store, peer)

        controller.start()
        await controller.drain()

        entry = pushes(peer)[0][0]
        assert entry["params"]["embed_api_client"]["api_key"] == "secret"
        assert entry["metadata"]["model"]["id"] == "text-embedding-3-small"

    @pytest.mark.asyncio
    async def test_initial_push_sets_fingerprint(self, make_base, peer):
        store = OwnerStore([make_base("a", updated_at=1)])
        controller = SyncSessionController(store, peer)

        controller.start()
        await controller.drain()

        assert controller.fingerprint == "ALL#a:1:1:0"

    @pytest.mark.asyncio
    async def test_start_while_active_pushes_refresh(self, make_base, peer):
        store = OwnerStore([make_base("a")])
        controller = SyncSessionController(store, peer)

        controller.start()
        controller.start()
        await controller.drain()

        assert len(pushes(peer)) == 2
        assert store.listener_count == 1

    @pytest.mark.asyncio
    async def test_empty_selection_still_pushed(self, peer):
        controller = SyncSessionController(OwnerStore(), peer)

        controller.start()
        await controller.drain()

        assert pushes(peer) == [[]]
        assert controller.fingerprint == "ALL#EMPTY"

    @pytest.mark.asyncio
    async def test_only_allow_listed_bases_pushed(self, make_base, peer):
        store = OwnerStore([make_base("a"), make_base("b"), make_base("c")], selected_ids=["a", "c"])
        controller = SyncSessionController(store, peer)

        controller.start()
        await controller.drain()

        assert [e["metadata"]["id"] for e in pushes(peer)[0]] == ["a", "c"]


class TestChangeDetection:
    """Tests for fingerprint-driven pushes."""

    @pytest.mark.asyncio
    async def test_unchanged_fingerprint_pushes_once(self, make_base, peer):
        """Mutations that keep the fingerprint produce no extra push."""
        base = make_base("a")
        store = OwnerStore([base])
        controller = SyncSessionController(store, peer)

        controller.start()
        for _ in range(5):
            store.upsert_base(make_base("a", name="Renamed"))
        store.set_selected_ids([])
        await controller.drain()

        assert len(pushes(peer)) == 1

    @pytest.mark.asyncio
    async def test_changed_fingerprint_pushes(self, make_base, peer):
        store = OwnerStore([make_base("a", updated_at=1)])
        controller = SyncSessionController(store, peer)

        controller.start()
        await controller.drain()
        store.upsert_base(make_base("a", updated_at=2))
        await controller.drain()

        assert len(pushes(peer)) == 2
        assert controller.fingerprint == "ALL#a:2:1:0"

    @pytest.mark.asyncio
    async def test_selection_change_pushes(self, make_base, peer):
        store = OwnerStore([make_base("a"), make_base("b")])
        controller = SyncSessionController(store, peer)

        controller.start()
        store.set_selected_ids(["b"])
        await controller.drain()

        sent = pushes(peer)
        assert len(sent) == 2
        assert [e["metadata"]["id"] for e in sent[-1]] == ["b"]

    @pytest.mark.asyncio
    async def test_removal_pushes(self, make_base, peer):
        store = OwnerStore([make_base("a"), make_base("b")])
        controller = SyncSessionController(store, peer)

        controller.start()
        store.remove_base("a")
        await controller.drain()

        assert [e["metadata"]["id"] for e in pushes(peer)[-1]] == ["b"]

    @pytest.mark.asyncio
    async def test_changes_outside_allow_list_ignored(self, make_base, peer):
        store = OwnerStore([make_base("a"), make_base("b")], selected_ids=["a"])
        controller = SyncSessionController(store, peer)

        controller.start()
        store.upsert_base(make_base("b", updated_at=99))
        store.upsert_base(make_base("z"))
        await controller.drain()

        assert len(pushes(peer)) == 1


class TestStop:
    """Tests for stopping a session."""

    @pytest.mark.asyncio
    async def test_stop_unsubscribes_and_notifies(self, make_base, peer):
        store = OwnerStore([make_base("a", updated_at=1)])
        controller = SyncSessionController(store, peer)

        controller.start()
        await controller.drain()
        await controller.stop()

        assert not controller.is_active
        assert controller.fingerprint is None
        assert store.listener_count == 0
        assert stop_signals(peer) == 1

        store.upsert_base(make_base("a", updated_at=2))
        await controller.drain()
        assert len(pushes(peer)) == 1

    @pytest.mark.asyncio
    async def test_stop_when_inactive_is_noop(self, peer):
        controller = SyncSessionController(OwnerStore(), peer)

        await controller.stop()

        peer.call.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_stop_twice_signals_once(self, peer):
        store = OwnerStore()
        controller = SyncSessionController(store, peer)

        controller.start()
        await controller.drain()
        await controller.stop()
        await controller.stop()

        assert stop_signals(peer) == 1
        assert store.listener_count == 0

    @pytest.mark.asyncio
    async def test_stop_without_notify(self, peer):
        controller = SyncSessionController(OwnerStore(), peer)

        controller.start()
        await controller.drain()
        await controller.stop(notify_peer=False)

        assert stop_signals(peer) == 0

    @pytest.mark.asyncio
    async def test_stop_signal_failure_logged(self, peer):
        controller = SyncSessionController(OwnerStore(), peer)
        controller.start()
        await controller.drain()
        peer.call.side_effect = ChannelError("daemon gone")

        with patch("kbsync_owner.controller.logger") as mock_logger:
            await controller.stop()

        assert not controller.is_active
        mock_logger.warning.assert_called_once_with("sync_stop_signal_failed", error="daemon gone")

    @pytest.mark.asyncio
    async def test_stop_before_scheduled_push_runs(self, make_base, peer):
        store = OwnerStore([make_base("a")])
        controller = SyncSessionController(store, peer)

        controller.start()
        await controller.stop()
        await controller.drain()

        assert pushes(peer) == []
        assert stop_signals(peer) == 1

    @pytest.mark.asyncio
    async def test_restart_after_stop(self, make_base, peer):
        store = OwnerStore([make_base("a")])
        controller = SyncSessionController(store, peer)

        controller.start()
        await controller.drain()
        await controller.stop()
        controller.start()
        await controller.drain()

        assert controller.is_active
        assert len(pushes(peer)) == 2
        assert store.listener_count == 1


class TestPushFailures:
    """Push failures are logged and never stop the session."""

    @pytest.mark.asyncio
    async def test_channel_failure_logged(self, make_base, peer):
        peer.call.side_effect = ChannelError("Cannot connect to daemon")
        store = OwnerStore([make_base("a")])
        controller = SyncSessionController(store, peer)

        with patch("kbsync_owner.controller.logger") as mock_logger:
            controller.start()
            await controller.drain()

        assert controller.is_active
        mock_logger.error.assert_called_once()
        assert mock_logger.error.call_args.args[0] == "sync_push_failed"

    @pytest.mark.asyncio
    async def test_next_change_still_pushed(self, make_base, peer):
        peer.call.side_effect = [ChannelError("down"), {"accepted": True}]
        store = OwnerStore([make_base("a", updated_at=1)])
        controller = SyncSessionController(store, peer)

        controller.start()
        await controller.drain()
        store.upsert_base(make_base("a", updated_at=2))
        await controller.drain()

        assert len(pushes(peer)) == 2

    @pytest.mark.asyncio
    async def test_rejected_ack_is_not_an_error(self, make_base, peer):
        peer.call.return_value = {"accepted": False}
        controller = SyncSessionController(OwnerStore([make_base("a")]), peer)

        with patch("kbsync_owner.controller.logger") as mock_logger:
            controller.start()
            await controller.drain()

        mock_logger.error.assert_not_called()
        assert controller.is_active

    @pytest.mark.asyncio
    async def test_burst_of_changes_all_settle(self, make_base, peer):
        async def slow_call(method, params=None):
            await asyncio.sleep(0.01)
            return {"accepted": True}

        peer.call.side_effect = slow_call
        store = OwnerStore([make_base("a", updated_at=0)])
        controller = SyncSessionController(store, peer)

        controller.start()
        for i in range(1, 4):
            store.upsert_base(make_base("a", updated_at=i))
        await controller.drain()

        assert len(pushes(peer)) == 4
        assert controller.fingerprint == "ALL#a:3:1:0"


class TestPushOrdering:
    """Pushes reach the daemon one at a time, newest state last."""

    @pytest.mark.asyncio
    async def test_slow_push_never_overtaken(self, make_base, peer):
        delivered = []
        in_flight = 0
        max_in_flight = 0

        async def call(method, params=None):
            nonlocal in_flight, max_in_flight
            in_flight += 1
            max_in_flight = max(max_in_flight, in_flight)
            ids = [e["metadata"]["id"] for e in params["entries"]]
            # Large snapshots take longer to deliver
            await asyncio.sleep(0.05 if len(ids) > 1 else 0.0)
            delivered.append(ids)
            in_flight -= 1
            return {"accepted": True}

        peer.call.side_effect = call
        store = OwnerStore([make_base(f"kb-{i}") for i in range(20)])
        controller = SyncSessionController(store, peer)

        controller.start()
        await asyncio.sleep(0)
        store.replace_bases([make_base("kb-99")])
        await controller.drain()

        assert max_in_flight == 1
        assert len(delivered[0]) == 20
        assert delivered[-1] == ["kb-99"]

    @pytest.mark.asyncio
    async def test_queued_push_sends_latest_state(self, make_base, peer):
        gate = asyncio.Event()

        async def call(method, params=None):
            await gate.wait()
            return {"accepted": True}

        peer.call.side_effect = call
        store = OwnerStore([make_base("a", updated_at=1)])
        controller = SyncSessionController(store, peer)

        controller.start()
        await asyncio.sleep(0)
        store.upsert_base(make_base("a", updated_at=2))
        store.upsert_base(make_base("b"))
        gate.set()
        await controller.drain()

        last = pushes(peer)[-1]
        assert [e["metadata"]["id"] for e in last] == ["a", "b"]
        assert last[0]["metadata"]["updated_at"] == 2
