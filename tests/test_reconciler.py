"""Tests for the merge algorithm, refresh triggers, and the event channel."""

import asyncio
from datetime import UTC, datetime, timedelta

import pytest

from docksync.bluetooth.base import BluetoothNotification, NotificationKind, PairedDevice
from docksync.events import DisplayChanged, EventChannel, RefreshRequested
from docksync.registry.models import Device
from docksync.registry.reconciler import Reconciler, merge_devices, sort_devices

NOW = datetime(2025, 1, 19, 12, 0, tzinfo=UTC)


class TestMergeDevices:
    def test_inserts_new_as_saved(self):
        merged = merge_devices([], [PairedDevice("AA:BB", "Mouse", False)], NOW)
        assert len(merged) == 1
        assert merged[0].is_saved is True
        assert merged[0].last_seen == NOW

    def test_keeps_saved_flag(self):
        known = [Device(id="AA:BB", name="Mouse", is_saved=False, last_seen=NOW)]
        merged = merge_devices(known, [PairedDevice("AA:BB", "Mouse", True)], NOW)
        assert merged[0].is_saved is False
        assert merged[0].is_connected is True

    def test_keeps_unseen(self):
        earlier = NOW - timedelta(hours=1)
        known = [
            Device(id="AA:BB", name="Mouse", is_saved=False, last_seen=earlier, is_connected=True)
        ]
        merged = merge_devices(known, [PairedDevice("CC:DD", "Keyboard", False)], NOW)
        by_id = {d.id: d for d in merged}
        assert set(by_id) == {"AA:BB", "CC:DD"}
        assert by_id["AA:BB"].last_seen == earlier
        assert by_id["AA:BB"].is_saved is False
        assert by_id["AA:BB"].is_connected is True

    def test_empty_live_list_keeps_everything(self):
        known = [Device(id="AA:BB", name="Mouse", last_seen=NOW)]
        assert [d.id for d in merge_devices(known, [], NOW)] == ["AA:BB"]


class TestSortDevices:
    def test_connected_first(self):
        devices = [
            Device(id="1", last_seen=NOW),
            Device(id="2", last_seen=NOW - timedelta(days=1), is_connected=True),
        ]
        assert [d.id for d in sort_devices(devices)] == ["2", "1"]

    def test_then_most_recent(self):
        devices = [
            Device(id="old", last_seen=NOW - timedelta(days=2)),
            Device(id="new", last_seen=NOW),
            Device(id="mid", last_seen=NOW - timedelta(days=1)),
        ]
        assert [d.id for d in sort_devices(devices)] == ["new", "mid", "old"]


class TestEventChannel:
    @pytest.mark.asyncio
    async def test_refresh_requests_coalesce(self):
        channel = EventChannel()
        assert channel.publish(RefreshRequested(reason="timer")) is True
        assert channel.publish(RefreshRequested(reason="notification")) is False
        assert channel.qsize() == 1

        await channel.get()
        channel.task_done()
        # Once consumed, a new request is accepted again
        assert channel.publish(RefreshRequested(reason="timer")) is True

    @pytest.mark.asyncio
    async def test_display_events_never_coalesce(self):
        channel = EventChannel()
        channel.publish(DisplayChanged(has_external_display=True))
        channel.publish(DisplayChanged(has_external_display=False))
        assert channel.qsize() == 2

    @pytest.mark.asyncio
    async def test_fifo_order(self):
        channel = EventChannel()
        channel.publish(DisplayChanged(has_external_display=True))
        channel.publish(RefreshRequested(reason="timer"))
        assert isinstance(await channel.get(), DisplayChanged)
        assert isinstance(await channel.get(), RefreshRequested)


class TestReconciler:
    def test_notification_requests_refresh(self):
        channel = EventChannel()
        reconciler = Reconciler(channel, interval=5)
        reconciler.handle_notification(
            BluetoothNotification(kind=NotificationKind.connected, device_id="AA:BB")
        )
        assert channel.qsize() == 1

    def test_notification_burst_is_debounced(self):
        channel = EventChannel()
        reconciler = Reconciler(channel, interval=5)
        for kind in NotificationKind:
            reconciler.handle_notification(BluetoothNotification(kind=kind, device_id="AA:BB"))
        assert channel.qsize() == 1

    @pytest.mark.asyncio
    async def test_timer_requests_refresh(self):
        channel = EventChannel()
        reconciler = Reconciler(channel, interval=0.05)
        await reconciler.start()
        event = await asyncio.wait_for(channel.get(), timeout=1)
        await reconciler.stop()
        assert isinstance(event, RefreshRequested)
        assert event.reason == "timer"

    @pytest.mark.asyncio
    async def test_stop_cancels_timer(self):
        reconciler = Reconciler(EventChannel(), interval=10)
        await reconciler.start()
        await reconciler.stop()
        assert reconciler._running is False
        assert reconciler._task.done()
