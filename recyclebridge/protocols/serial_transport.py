"""
Serial Transport Implementation
USB/UART link to the sorting device on top of pyserial-asyncio
"""

import asyncio
import os
from typing import Optional

import serial
import serial_asyncio

from recyclebridge.core.exceptions import TransportOpenError, TransportWriteError
from recyclebridge.protocols.base_transport import Transport


class _SerialProtocol(asyncio.Protocol):
    """Bridges asyncio protocol callbacks to the owning SerialTransport."""

    def __init__(self, owner: "SerialTransport"):
        self._owner = owner
        self._paused = False
        self._drain_waiter: Optional[asyncio.Future] = None
        self.lost_exc: Optional[Exception] = None
        self.lost = False

    def data_received(self, data: bytes):
        self._owner.logger.debug(f"device -> {data!r}")

    def connection_lost(self, exc):
        self.lost, self.lost_exc = True, exc
        self._wake(exc or ConnectionResetError("serial connection lost"))
        self._owner._connection_lost(exc)

    def pause_writing(self):
        self._paused = True

    def resume_writing(self):
        self._paused = False
        self._wake()

    def _wake(self, exc: Exception = None):
        waiter, self._drain_waiter = self._drain_waiter, None
        if waiter is None or waiter.done():
            return
        if exc is None:
            waiter.set_result(None)
        else:
            waiter.set_exception(exc)

    async def drain(self):
        # a failed write schedules connection_lost with call_soon
        await asyncio.sleep(0)
        if self.lost:
            raise self.lost_exc or ConnectionResetError("serial connection lost")
        if not self._paused:
            return
        self._drain_waiter = asyncio.get_running_loop().create_future()
        await self._drain_waiter


class SerialTransport(Transport):
    """
    Serial port transport.

    Features:
    - Non-blocking open/write through pyserial-asyncio
    - Write completion via asyncio flow control (pause/resume writing)
    - Device node presence check for unplug/replug detection
    """

    def __init__(self, port_path: str, baud_rate: int = 115200):
        super().__init__(port_path)
        self.port_path = port_path
        self.baud_rate = baud_rate
        self._serial: Optional[asyncio.Transport] = None
        self._protocol: Optional[_SerialProtocol] = None

    def exists(self) -> bool:
        try:
            return os.path.exists(self.port_path)
        except OSError as e:
            self.logger.error(f"Error checking if device exists: {e}")
            return False

    async def _open(self):
        self.logger.info(f"Opening {self.port_path} at {self.baud_rate} baud")
        loop = asyncio.get_running_loop()
        try:
            self._serial, self._protocol = await serial_asyncio.create_serial_connection(
                loop, lambda: _SerialProtocol(self), self.port_path, baudrate=self.baud_rate
            )
        except (serial.SerialException, OSError, ValueError) as e:
            raise TransportOpenError(f"Failed to open port {self.port_path}: {e}") from e

    async def _write(self, payload: bytes):
        if self._serial is None or self._serial.is_closing():
            raise TransportWriteError(f"Serial port {self.port_path} is closing")
        self._serial.write(payload)
        try:
            await self._protocol.drain()
        except (ConnectionError, serial.SerialException, OSError) as e:
            raise TransportWriteError(f"Failed to send command: {e}") from e
        self.logger.debug(f"device <- {payload!r}")

    def _close(self):
        if self._serial is not None:
            self._serial.close()
        self._serial = None
