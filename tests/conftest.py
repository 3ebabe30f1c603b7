"""pytest configuration and fixtures for recyclebridge tests.

Provides:
- MockLink / MockTransport: scripted in-memory stand-in for the serial device
- FakeLedger: ledger client with settable tip, logs and failures
- FakeDevice: device manager stand-in with scripted command outcomes
- wait_until: poll a predicate on the running event loop
"""

import asyncio
from types import SimpleNamespace
from typing import Dict, List, Optional

import pytest

from recyclebridge.core.exceptions import ScanFetchError, TransportOpenError, TransportWriteError
from recyclebridge.models.device_models import CommandResult, DeviceConfig, PurchaseEvent
from recyclebridge.protocols.base_transport import Transport
from recyclebridge.services.device_service import DeviceConnectionManager


class MockLink:
    """State of the simulated device, shared by every transport built for it.

    The manager builds a fresh transport per open attempt, so failure scripts
    and the write log live here rather than on a single transport.
    """

    def __init__(self) -> None:
        self.present = True
        self.open_failures = 0
        self.write_failures = 0
        self.write_gate: Optional[asyncio.Event] = None
        self.writes: List[bytes] = []
        self.opens = 0
        self.transports: List["MockTransport"] = []

    def factory(self, config: DeviceConfig) -> "MockTransport":
        transport = MockTransport(self, config.port_path)
        self.transports.append(transport)
        return transport


class MockTransport(Transport):
    def __init__(self, link: MockLink, name: str) -> None:
        super().__init__(name)
        self.link = link
        self.close_calls = 0

    def exists(self) -> bool:
        return self.link.present

    async def _open(self) -> None:
        await asyncio.sleep(0)
        if not self.link.present:
            raise TransportOpenError(f"{self.name}: no such device")
        if self.link.open_failures > 0:
            self.link.open_failures -= 1
            raise TransportOpenError(f"{self.name}: mock open failure")
        self.link.opens += 1

    async def _write(self, payload: bytes) -> None:
        if self.link.write_gate is not None:
            await self.link.write_gate.wait()
        if self.link.write_failures > 0:
            self.link.write_failures -= 1
            raise TransportWriteError(f"{self.name}: mock write failure")
        self.link.writes.append(payload)

    def _close(self) -> None:
        self.close_calls += 1

    def drop(self, exc: Exception = None) -> None:
        """Simulate the cable being pulled under an open port."""
        self._connection_lost(exc or OSError("device reports readiness to read but returned no data"))


class FakeLedger:
    def __init__(self, tip: int = 0) -> None:
        self.tip = tip
        self.logs: Dict[int, List[dict]] = {}
        self.fetches: List[tuple] = []
        self.decoded: List[PurchaseEvent] = []
        self.fail_tip = False
        self.fail_logs = False
        self.fetch_delay = 0.0
        self.active_fetches = 0
        self.max_active_fetches = 0

    def add_purchase(self, position: int, can_id: int, collector: str = "0xabc", value: int = 1) -> None:
        self.logs.setdefault(position, []).append(
            {"kind": "purchase", "pos": position, "id": can_id, "who": collector, "value": value})

    def add_noise(self, position: int) -> None:
        self.logs.setdefault(position, []).append({"kind": "other", "pos": position})

    async def get_current_position(self) -> int:
        if self.fail_tip:
            raise ScanFetchError("eth_blockNumber failed: node unreachable")
        return self.tip

    async def get_logs(self, from_position: int, to_position: int, event_signature: str) -> List[dict]:
        self.active_fetches += 1
        self.max_active_fetches = max(self.max_active_fetches, self.active_fetches)
        try:
            self.fetches.append((from_position, to_position))
            if self.fetch_delay:
                await asyncio.sleep(self.fetch_delay)
            if self.fail_logs:
                raise ScanFetchError("eth_getLogs failed: range too large")
            return [log for pos in range(from_position, to_position + 1) for log in self.logs.get(pos, [])]
        finally:
            self.active_fetches -= 1

    def decode(self, raw: dict) -> Optional[PurchaseEvent]:
        if raw.get("kind") != "purchase":
            return None
        event = PurchaseEvent(subject_id=raw["id"], actor=raw["who"], amount=raw["value"], position=raw["pos"])
        self.decoded.append(event)
        return event


class FakeDevice:
    """Scripted outcomes: each entry is a CommandResult to return or an exception to raise."""

    def __init__(self, outcomes=()) -> None:
        self.outcomes = list(outcomes)
        self.calls: List[str] = []
        self.config = SimpleNamespace(port_path="/dev/ttyFAKE0")
        self.started = False
        self.cleaned = 0

    async def send_command(self, command: str) -> CommandResult:
        self.calls.append(command)
        outcome = self.outcomes.pop(0) if self.outcomes else CommandResult(True, f"Command {command} sent successfully")
        if isinstance(outcome, BaseException):
            raise outcome
        return outcome

    async def start(self) -> None:
        self.started = True

    async def cleanup(self) -> None:
        self.cleaned += 1

    def get_stats(self) -> dict:
        return {"port": self.config.port_path, "connection_state": "connected", "calls": len(self.calls)}


async def _wait_until(predicate, timeout: float = 2.0, interval: float = 0.005) -> None:
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError(f"condition not met within {timeout}s")
        await asyncio.sleep(interval)


@pytest.fixture
def wait_until():
    return _wait_until


@pytest.fixture
def link() -> MockLink:
    return MockLink()


@pytest.fixture
def device_config() -> DeviceConfig:
    return DeviceConfig(
        port_path="/dev/ttyMOCK0",
        initial_reconnect_delay=0.01,
        max_reconnect_delay=0.08,
        presence_check_interval=0.02,
    )


@pytest.fixture
async def manager(device_config, link):
    m = DeviceConnectionManager(device_config, link.factory)
    yield m
    await m.cleanup()


@pytest.fixture
def fake_ledger() -> FakeLedger:
    return FakeLedger()


@pytest.fixture
def fake_device_factory():
    return FakeDevice
