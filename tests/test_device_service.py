import asyncio
from dataclasses import replace

import pytest

from recyclebridge.core.exceptions import (
    CommandQueueFullError,
    ConfigurationError,
    ConnectError,
    ReconnectExhaustedError,
    ShuttingDownError,
    TransportWriteError,
)
from recyclebridge.core.patterns.state_machine import ConnectionState
from recyclebridge.models.device_models import CommandResult, DeviceConfig
from recyclebridge.services.device_service import DeviceConnectionManager


class TestConnect:
    async def test_connect_opens_transport(self, manager, link):
        result = await manager.connect()
        assert result == CommandResult(True, "Connected successfully")
        assert manager.is_connected()
        assert manager.transport.is_open
        assert link.opens == 1

    async def test_connect_when_connected_is_a_noop(self, manager, link):
        await manager.connect()
        transport = manager.transport
        again = await manager.connect()
        assert again.message == "Already connected"
        assert manager.transport is transport
        assert transport.is_open
        assert link.opens == 1

    async def test_failed_connect_raises_and_keeps_retrying(self, manager, link, wait_until):
        link.open_failures = 1
        with pytest.raises(ConnectError):
            await manager.connect()
        assert manager.state is ConnectionState.CONNECTING
        assert manager.get_stats()["reconnect_pending"]

        await wait_until(manager.is_connected)
        assert link.opens == 1
        assert manager.backoff.attempt == 0

    async def test_connect_after_cleanup_is_rejected(self, manager):
        await manager.cleanup()
        with pytest.raises(ShuttingDownError):
            await manager.connect()


class TestReconnectBackoff:
    async def test_delays_double_then_reset_on_success(self, manager, link, wait_until, monkeypatch):
        delays = []
        real_next_delay = manager.backoff.next_delay

        def recording_next_delay():
            delay = real_next_delay()
            delays.append(delay)
            return delay

        monkeypatch.setattr(manager.backoff, "next_delay", recording_next_delay)
        link.open_failures = 3
        loop = asyncio.get_running_loop()
        started = loop.time()

        with pytest.raises(ConnectError):
            await manager.connect()
        await wait_until(manager.is_connected)

        assert delays == pytest.approx([0.01, 0.02, 0.04])
        assert loop.time() - started >= 0.06
        assert manager.backoff.attempt == 0
        assert link.opens == 1

    async def test_delay_is_capped(self, manager, link, monkeypatch):
        delays = []
        real_next_delay = manager.backoff.next_delay

        def recording_next_delay():
            delays.append(real_next_delay())
            return delays[-1]

        monkeypatch.setattr(manager.backoff, "next_delay", recording_next_delay)
        link.present = False
        task = asyncio.create_task(manager.send_command("1"))
        await asyncio.sleep(0.4)
        assert max(delays) == pytest.approx(0.08)
        assert delays[:4] == pytest.approx([0.01, 0.02, 0.04, 0.08])
        assert not task.done()
        await manager.cleanup()
        with pytest.raises(ShuttingDownError):
            await task

    async def test_bounded_attempts_fail_queued_commands(self, device_config, link):
        manager = DeviceConnectionManager(replace(device_config, max_reconnect_attempts=2), link.factory)
        link.present = False
        try:
            with pytest.raises(ReconnectExhaustedError):
                await manager.send_command("4")
            assert manager.state is ConnectionState.DISCONNECTED
            assert not manager.get_stats()["reconnect_pending"]

            # a new command starts a fresh episode
            link.present = True
            result = await manager.send_command("4")
            assert result.success
            assert link.writes == [b"4"]
        finally:
            await manager.cleanup()


class TestCommandQueue:
    async def test_send_while_connected(self, manager, link):
        await manager.connect()
        result = await manager.send_command("2")
        assert result == CommandResult(True, "Command 2 sent successfully")
        assert link.writes == [b"2"]
        assert manager.commands_sent == 1

    async def test_terminator_is_appended(self, device_config, link):
        manager = DeviceConnectionManager(replace(device_config, command_terminator="\n"), link.factory)
        try:
            await manager.send_command("OPEN")
            assert link.writes == [b"OPEN\n"]
        finally:
            await manager.cleanup()

    async def test_non_ascii_command_is_rejected(self, manager, link):
        await manager.connect()
        with pytest.raises(ConfigurationError):
            await manager.send_command("öffnen")
        assert link.writes == []

    async def test_commands_written_in_issue_order_after_reconnect(self, manager, link):
        link.open_failures = 2
        tasks = [asyncio.create_task(manager.send_command(str(i))) for i in range(1, 6)]
        results = await asyncio.gather(*tasks)
        assert all(r.success for r in results)
        assert link.writes == [b"1", b"2", b"3", b"4", b"5"]

    async def test_concurrent_sends_while_connected_keep_order(self, manager, link, wait_until):
        await manager.connect()
        link.write_gate = asyncio.Event()
        tasks = [asyncio.create_task(manager.send_command(c)) for c in ("3", "1", "2")]
        await wait_until(lambda: manager.queue_size == 2)
        assert link.writes == []
        link.write_gate.set()
        await asyncio.gather(*tasks)
        assert link.writes == [b"3", b"1", b"2"]

    async def test_queued_command_written_exactly_once_after_open(self, manager, link, wait_until):
        link.open_failures = 1
        link.write_gate = asyncio.Event()
        task = asyncio.create_task(manager.send_command("4"))

        await wait_until(manager.is_connected)
        await asyncio.sleep(0.02)
        assert not task.done()
        assert link.writes == []

        link.write_gate.set()
        result = await task
        assert result.success
        await asyncio.sleep(0.02)
        assert link.writes == [b"4"]

    async def test_abandoned_command_is_not_written(self, manager, link, wait_until):
        link.present = False
        abandoned = asyncio.create_task(manager.send_command("1"))
        kept = asyncio.create_task(manager.send_command("2"))
        await wait_until(lambda: manager.queue_size == 2)

        abandoned.cancel()
        link.present = True
        assert (await kept).success
        assert link.writes == [b"2"]

    async def test_queue_limit(self, device_config, link, wait_until):
        manager = DeviceConnectionManager(replace(device_config, queue_limit=2), link.factory)
        link.present = False
        try:
            tasks = [asyncio.create_task(manager.send_command(c)) for c in ("1", "2")]
            await wait_until(lambda: manager.queue_size == 2)
            with pytest.raises(CommandQueueFullError):
                await manager.send_command("3")
        finally:
            await manager.cleanup()
        results = await asyncio.gather(*tasks, return_exceptions=True)
        assert all(isinstance(r, ShuttingDownError) for r in results)


class TestLinkFailures:
    async def test_write_failure_fails_only_that_command(self, manager, link):
        await manager.connect()
        first = manager.transport
        link.write_failures = 1

        with pytest.raises(TransportWriteError):
            await manager.send_command("1")
        assert manager.commands_failed == 1

        result = await manager.send_command("2")
        assert result.success
        assert link.writes == [b"2"]
        assert manager.transport is not first
        assert link.opens == 2

    async def test_lost_link_starts_one_fresh_episode(self, manager, link, wait_until):
        await manager.connect()
        first = manager.transport
        link.open_failures = 1

        first.drop()
        assert manager.state is ConnectionState.CONNECTING

        await wait_until(manager.is_connected)
        assert manager.transport is not first
        assert first.listener_count() == 0
        assert manager.backoff.attempt == 0
        assert manager.connections == 2

    async def test_commands_during_outage_are_delivered(self, manager, link, wait_until):
        await manager.connect()
        link.present = False
        manager.transport.drop()

        task = asyncio.create_task(manager.send_command("5"))
        await asyncio.sleep(0.05)
        assert not task.done()

        link.present = True
        assert (await task).success
        assert link.writes == [b"5"]


class TestPresenceCheck:
    async def test_start_connects(self, manager, wait_until):
        await manager.start()
        await wait_until(manager.is_connected)

    async def test_vanished_device_forces_close_and_reconnects(self, manager, link, wait_until):
        await manager.start()
        await wait_until(manager.is_connected)
        first = manager.transport

        link.present = False
        await wait_until(lambda: not manager.is_connected())
        assert not first.is_open
        assert first.close_calls == 1

        link.present = True
        await wait_until(manager.is_connected)
        assert manager.transport is not first

    async def test_device_plugged_in_after_startup(self, manager, link, wait_until):
        link.present = False
        await manager.start()
        await asyncio.sleep(0.05)
        assert not manager.is_connected()

        link.present = True
        await wait_until(manager.is_connected)


class TestCleanup:
    async def test_cleanup_fails_queue_and_cancels_timers(self, manager, link, wait_until):
        link.present = False
        await manager.start()
        tasks = [asyncio.create_task(manager.send_command(c)) for c in ("1", "2", "3")]
        await wait_until(lambda: manager.queue_size == 3)
        presence = manager._presence_task
        assert presence is not None and not presence.done()

        await manager.cleanup()

        assert presence.cancelled()
        assert manager._presence_task is None

        results = await asyncio.gather(*tasks, return_exceptions=True)
        assert all(isinstance(r, ShuttingDownError) for r in results)
        stats = manager.get_stats()
        assert stats["queued_commands"] == 0
        assert not stats["reconnect_pending"]
        assert manager.state is ConnectionState.DISCONNECTED

    async def test_cleanup_is_idempotent(self, manager):
        await manager.connect()
        transport = manager.transport
        await manager.cleanup()
        await manager.cleanup()
        assert not transport.is_open
        assert transport.listener_count() == 0

    async def test_send_after_cleanup_is_rejected(self, manager):
        await manager.cleanup()
        with pytest.raises(ShuttingDownError):
            await manager.send_command("4")

    async def test_async_context_manager(self, device_config, link, wait_until):
        async with DeviceConnectionManager(device_config, link.factory) as manager:
            await wait_until(manager.is_connected)
            transport = manager.transport
        assert not transport.is_open
        assert manager.state is ConnectionState.DISCONNECTED


class TestDeviceConfig:
    def test_rejects_inverted_delays(self):
        with pytest.raises(ConfigurationError):
            DeviceConfig(initial_reconnect_delay=5.0, max_reconnect_delay=1.0)

    def test_rejects_zero_queue_limit(self):
        with pytest.raises(ConfigurationError):
            DeviceConfig(queue_limit=0)

    def test_encode(self):
        assert DeviceConfig(command_terminator="\r\n").encode("4") == b"4\r\n"
