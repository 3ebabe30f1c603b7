# device_service.py - single serial connection to the sorting device, kept alive forever

import asyncio
import logging
from collections import deque
from typing import Any, Callable, Deque, Dict, Optional, Type

from recyclebridge.core.exceptions import (
    CommandError,
    CommandQueueFullError,
    ConnectError,
    NotConnectedError,
    ReconnectExhaustedError,
    ShuttingDownError,
    TransportError,
    TransportOpenError,
    TransportWriteError,
)
from recyclebridge.core.patterns.backoff import ReconnectBackoff
from recyclebridge.core.patterns.state_machine import ConnectionState, ConnectionStateMachine
from recyclebridge.models.device_models import CommandResult, DeviceConfig, PendingCommand
from recyclebridge.protocols.base_transport import Transport
from recyclebridge.protocols.serial_transport import SerialTransport


TransportFactory = Callable[[DeviceConfig], Transport]


def serial_transport_factory(config: DeviceConfig) -> Transport:
    return SerialTransport(config.port_path, config.baud_rate)


class DeviceConnectionManager:
    """
    Owns the one Transport to the sorting device and everything that goes
    through it.

    - Reconnects with capped exponential backoff whenever the link fails or
      the device disappears (USB unplug/replug), forever unless
      ``max_reconnect_attempts`` is set.
    - Commands go through a single FIFO queue and are written one at a time,
      so callers only interleave at the queue-append boundary.
    - Commands issued while disconnected wait in the queue and are written in
      order once the transport reports ``open``.
    - A periodic presence check starts reconnection when the device node
      shows up and forces a close when it vanishes under an open port.
    """

    def __init__(self, config: DeviceConfig, transport_factory: Optional[TransportFactory] = None):
        """
        Args:
            config: Device configuration (port, baud rate, backoff, queue policy)
            transport_factory: Builds a fresh Transport per open attempt.
                Defaults to a SerialTransport on ``config.port_path``.
        """
        self.config = config
        self.log = logging.getLogger(self.__class__.__name__)
        self.backoff = ReconnectBackoff(config.initial_reconnect_delay, config.max_reconnect_delay)

        self._transport_factory = transport_factory or serial_transport_factory
        self._transport: Optional[Transport] = None
        self._probe: Optional[Transport] = None
        self._sm = ConnectionStateMachine(name=config.port_path)
        self._queue: Deque[PendingCommand] = deque()

        # each timer / task has exactly one owner reference, cleared on cancel
        self._reconnect_timer: Optional[asyncio.TimerHandle] = None
        self._open_task: Optional[asyncio.Task] = None
        self._drain_task: Optional[asyncio.Task] = None
        self._presence_task: Optional[asyncio.Task] = None

        self._episode_active = False
        self._started = False
        self._closed = False

        self.commands_sent = 0
        self.commands_failed = 0
        self.connections = 0

    # --------------------------------------------------------------------- #
    #  Public API
    # --------------------------------------------------------------------- #
    @property
    def state(self) -> ConnectionState:
        return self._sm.state

    def is_connected(self) -> bool:
        return self._sm.state is ConnectionState.CONNECTED

    @property
    def queue_size(self) -> int:
        return len(self._queue)

    @property
    def transport(self) -> Optional[Transport]:
        return self._transport

    async def start(self):
        """Start the presence check and the first connection episode."""
        if self._started or self._closed:
            return
        self._started = True
        self._presence_task = asyncio.create_task(self._presence_loop())
        self._begin_episode("startup")

    async def connect(self) -> CommandResult:
        """
        Open the transport now.

        Returns immediately if already connected. Otherwise the backoff episode
        is reset and an open attempt is made (or the in-flight one joined).

        Raises:
            ConnectError: the attempt failed; the next retry is already scheduled.
        """
        if self._closed:
            raise ShuttingDownError("Device manager is shutting down")
        if self.is_connected():
            return CommandResult(True, "Already connected")

        self._cancel_reconnect_timer()
        self.backoff.reset()
        self._episode_active = True
        self._sm.transition(ConnectionState.CONNECTING)
        task = self._spawn_open_attempt()
        try:
            error = await asyncio.shield(task)
        except asyncio.CancelledError:
            if self._closed:
                raise ShuttingDownError("Device manager is shutting down") from None
            raise
        if error is not None:
            raise ConnectError(f"Failed to open port: {error}") from error
        return CommandResult(True, "Connected successfully")

    async def send_command(self, command: str) -> CommandResult:
        """
        Queue `command` for the device and wait for its outcome.

        Written right away when connected (behind anything already queued);
        otherwise held until the transport reopens.

        Raises:
            TransportWriteError: the write itself failed (not retried here)
            ShuttingDownError: cleanup() purged the queue
            ReconnectExhaustedError: a bounded reconnect policy gave up
            CommandQueueFullError: ``queue_limit`` pending commands already waiting
        """
        if self._closed:
            raise ShuttingDownError(f"Command {command} failed: Application shutting down")
        self.config.encode(command)
        limit = self.config.queue_limit
        if limit is not None and len(self._queue) >= limit:
            raise CommandQueueFullError(f"Command {command} rejected: {limit} commands already queued")

        pending = PendingCommand(command, asyncio.get_running_loop().create_future())
        self._queue.append(pending)
        if self.is_connected():
            self._ensure_draining()
        else:
            self.log.info(f"Device not connected, queuing command: {command} ({len(self._queue)} queued)")
            self._begin_episode("command queued")
        return await pending.completion

    async def cleanup(self):
        """Cancel timers and tasks, fail queued commands, close the transport. Idempotent."""
        if self._closed:
            return
        self._closed = True
        self.log.info("Cleaning up device controller resources...")

        self._cancel_reconnect_timer()
        current = asyncio.current_task()
        tasks = [t for t in (self._presence_task, self._open_task, self._drain_task)
                 if t is not None and t is not current and not t.done()]
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        self._presence_task = self._open_task = self._drain_task = None

        self._fail_all_queued(ShuttingDownError, "Application shutting down")

        if self._transport is not None:
            self._transport.remove_all_listeners()
            self._close_quietly(self._transport)
        self._episode_active = False
        self._sm.transition(ConnectionState.DISCONNECTED)

    async def __aenter__(self):
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.cleanup()
        return False

    def get_stats(self) -> Dict[str, Any]:
        return {
            "port": self.config.port_path,
            "connection_state": self.state.value,
            "queued_commands": len(self._queue),
            "reconnect_attempt": self.backoff.attempt,
            "reconnect_pending": self._reconnect_timer is not None,
            "connections": self.connections,
            "commands_sent": self.commands_sent,
            "commands_failed": self.commands_failed,
        }

    # --------------------------------------------------------------------- #
    #  Reconnection state machine
    # --------------------------------------------------------------------- #
    def _begin_episode(self, reason: str):
        if self._closed or self._episode_active or self.is_connected():
            return
        self.log.info(f"Starting reconnection process ({reason})...")
        self._episode_active = True
        self.backoff.reset()
        self._sm.transition(ConnectionState.CONNECTING)
        self._spawn_open_attempt()

    def _spawn_open_attempt(self) -> asyncio.Task:
        if self._open_task is None or self._open_task.done():
            self._open_task = asyncio.create_task(self._open_attempt())
        return self._open_task

    async def _open_attempt(self) -> Optional[Exception]:
        """One open try. Returns None on success, the error otherwise (retry already scheduled)."""
        try:
            if not self._device_present():
                raise TransportOpenError(f"Device {self.config.port_path} does not exist")
            transport = self._recreate_transport()
            await transport.open()
            return None
        except TransportOpenError as e:
            error = e
        except Exception as e:
            self.log.exception(f"Unexpected error opening {self.config.port_path}")
            error = TransportOpenError(str(e))
        self.log.warning(f"Connection attempt failed: {error}")
        self._schedule_retry()
        return error

    def _schedule_retry(self):
        if self._closed:
            return
        limit = self.config.max_reconnect_attempts
        if limit is not None and self.backoff.attempt >= limit:
            self.log.error(f"Max reconnection attempts ({limit}) reached. Giving up.")
            self._episode_active = False
            self._sm.transition(ConnectionState.DISCONNECTED)
            self._fail_all_queued(ReconnectExhaustedError, "Max reconnection attempts reached")
            return

        self._cancel_reconnect_timer()
        delay = self.backoff.next_delay()
        self.log.info(f"Attempting to reconnect in {delay:.2f}s "
                      f"(attempt {self.backoff.attempt}/{limit if limit is not None else '∞'})...")
        self._reconnect_timer = asyncio.get_running_loop().call_later(delay, self._on_reconnect_timer)

    def _on_reconnect_timer(self):
        self._reconnect_timer = None
        if self._closed or self.is_connected():
            return
        self._spawn_open_attempt()

    def _cancel_reconnect_timer(self):
        if self._reconnect_timer is not None:
            self._reconnect_timer.cancel()
            self._reconnect_timer = None

    def _recreate_transport(self) -> Transport:
        old = self._transport
        if old is not None:
            old.remove_all_listeners()
            self._close_quietly(old)

        self.log.debug(f"Recreating port with path: {self.config.port_path}")
        transport = self._transport_factory(self.config)
        transport.on("open", self._handle_open)
        transport.on("error", self._handle_error)
        transport.on("close", self._handle_close)
        self._transport = transport
        return transport

    def _close_quietly(self, transport: Transport):
        try:
            transport.close()
        except (TransportError, OSError) as e:
            self.log.error(f"Error closing port: {e}")

    def _device_present(self) -> bool:
        transport = self._transport
        if transport is None:
            if self._probe is None:
                self._probe = self._transport_factory(self.config)
            transport = self._probe
        return transport.exists()

    # --------------------------------------------------------------------- #
    #  Transport notifications
    # --------------------------------------------------------------------- #
    def _handle_open(self):
        self._cancel_reconnect_timer()
        self._episode_active = False
        self.backoff.reset()
        self.connections += 1
        self._sm.transition(ConnectionState.CONNECTED)
        self.log.info(f"Serial port {self.config.port_path} opened successfully")
        self._ensure_draining()

    def _handle_error(self, exc: Exception):
        self.log.error(f"Serial port error on {self.config.port_path}: {exc}")
        self._connection_lost()

    def _handle_close(self):
        self.log.info(f"Serial port {self.config.port_path} closed")
        self._connection_lost()

    def _connection_lost(self):
        if self._closed:
            return
        if self.is_connected():
            self._sm.transition(ConnectionState.DISCONNECTED)
            self._begin_episode("connection lost")
        elif not self._episode_active:
            self._begin_episode("transport closed")
        # otherwise the running episode owns retrying

    # --------------------------------------------------------------------- #
    #  Command queue
    # --------------------------------------------------------------------- #
    def _ensure_draining(self):
        if self._closed or not self._queue:
            return
        if self._drain_task is None or self._drain_task.done():
            self._drain_task = asyncio.create_task(self._drain_queue())

    async def _drain_queue(self):
        if len(self._queue) > 1:
            self.log.info(f"Processing command queue ({len(self._queue)} commands)")
        while self._queue and self.is_connected():
            pending = self._queue.popleft()
            if pending.done:
                continue                      # caller stopped waiting
            try:
                result = await self._execute(pending.command)
            except CommandError as e:
                pending.fail(e)
            except asyncio.CancelledError:
                pending.fail(ShuttingDownError(f"Command {pending.command} failed: Application shutting down"))
                raise
            except Exception as e:
                self.log.exception(f"Unexpected error executing command {pending.command}")
                pending.fail(e)
            else:
                pending.resolve(result)

    async def _execute(self, command: str) -> CommandResult:
        transport = self._transport
        if transport is None:
            raise NotConnectedError("Port is not initialized")
        if not self.is_connected():
            raise NotConnectedError("Device not connected")

        self.log.debug(f"Executing command: {command}")
        try:
            await transport.write(self.config.encode(command))
        except TransportWriteError as e:
            self.commands_failed += 1
            self.log.error(f"Failed to send command {command}: {e}")
            if transport is self._transport:
                self._connection_lost()
            raise
        self.commands_sent += 1
        return CommandResult(True, f"Command {command} sent successfully")

    def _fail_all_queued(self, exc_type: Type[CommandError], reason: str):
        if not self._queue:
            return
        self.log.info(f"Rejecting all queued commands ({len(self._queue)}) due to: {reason}")
        while self._queue:
            pending = self._queue.popleft()
            pending.fail(exc_type(f"Command {pending.command} failed: {reason}"))

    # --------------------------------------------------------------------- #
    #  Presence check
    # --------------------------------------------------------------------- #
    async def _presence_loop(self):
        while not self._closed:
            await asyncio.sleep(self.config.presence_check_interval)
            self._check_presence()

    def _check_presence(self):
        present = self._device_present()
        if present and self.state is ConnectionState.DISCONNECTED and not self._episode_active:
            self.log.info(f"Device {self.config.port_path} detected, attempting connection...")
            self._begin_episode("device detected")
        elif not present and self.is_connected():
            self.log.warning(f"Device {self.config.port_path} no longer exists but we're connected, forcing close")
            self._close_quietly(self._transport)
