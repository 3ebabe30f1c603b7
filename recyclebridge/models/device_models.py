from __future__ import annotations
import asyncio
from dataclasses import dataclass
from typing import Any, Dict, Optional

from ..core.exceptions import ConfigurationError
from ..core.patterns.retry import RetryConfig


###############################################################################
# 1. RESULTS & RUNTIME RECORDS ------------------------------------------------
###############################################################################

@dataclass(frozen=True)
class CommandResult:
    """Acknowledgement of a device command or connect request."""
    success: bool
    message: str

    def as_dict(self) -> Dict[str, Any]:
        return {"success": self.success, "message": self.message}


@dataclass(eq=False)
class PendingCommand:
    """A command waiting in the FIFO queue; `completion` resolves exactly once."""
    command: str
    completion: asyncio.Future

    @property
    def done(self) -> bool:
        return self.completion.done()

    def resolve(self, result: CommandResult) -> bool:
        if self.completion.done():
            return False
        self.completion.set_result(result)
        return True

    def fail(self, exc: BaseException) -> bool:
        if self.completion.done():
            return False
        self.completion.set_exception(exc)
        return True


@dataclass(frozen=True)
class PurchaseEvent:
    """Decoded ContentsPurchased log. Lives for a single dispatch."""
    subject_id: int                    # garbage can id
    actor: str                         # collector address
    amount: int                        # value, in wei
    position: Optional[int] = None     # block number
    tx_hash: Optional[str] = None


@dataclass
class ScanCursor:
    """Watermark over the ledger; only ever moves forward."""
    last_checked: int = 0

    def advance(self, position: int) -> bool:
        if position <= self.last_checked:
            return False
        self.last_checked = position
        return True


###############################################################################
# 2. COMPONENT CONFIGURATION --------------------------------------------------
###############################################################################

@dataclass(frozen=True)
class DeviceConfig:
    port_path: str = "/dev/ttyACM0"
    baud_rate: int = 115200
    command_terminator: str = ""
    initial_reconnect_delay: float = 1.0      # seconds
    max_reconnect_delay: float = 30.0
    max_reconnect_attempts: Optional[int] = None   # None -> retry forever
    presence_check_interval: float = 5.0
    queue_limit: Optional[int] = None

    def __post_init__(self):
        if self.initial_reconnect_delay <= 0 or self.max_reconnect_delay < self.initial_reconnect_delay:
            raise ConfigurationError(
                f"invalid reconnect delays: initial={self.initial_reconnect_delay} max={self.max_reconnect_delay}")
        if self.max_reconnect_attempts is not None and self.max_reconnect_attempts < 0:
            raise ConfigurationError("max_reconnect_attempts must be >= 0 or None")
        if self.presence_check_interval <= 0:
            raise ConfigurationError("presence_check_interval must be positive")
        if self.queue_limit is not None and self.queue_limit < 1:
            raise ConfigurationError("queue_limit must be >= 1 or None")

    # ---------- factory --------------------------------------------------- #
    @classmethod
    def from_settings(cls, settings) -> "DeviceConfig":
        return cls(
            port_path               = settings.SERIAL_PORT,
            baud_rate               = settings.BAUD_RATE,
            command_terminator      = settings.COMMAND_TERMINATOR,
            initial_reconnect_delay = settings.RECONNECT_INITIAL_DELAY,
            max_reconnect_delay     = settings.RECONNECT_MAX_DELAY,
            max_reconnect_attempts  = settings.RECONNECT_MAX_ATTEMPTS,
            presence_check_interval = settings.PRESENCE_CHECK_INTERVAL,
            queue_limit             = settings.COMMAND_QUEUE_LIMIT,
        )

    def encode(self, command: str) -> bytes:
        try:
            return f"{command}{self.command_terminator}".encode("ascii")
        except UnicodeEncodeError as e:
            raise ConfigurationError(f"command {command!r} is not plain ASCII") from e


@dataclass(frozen=True)
class LedgerConfig:
    rpc_url: str
    contract_address: str
    event_signature: str = "ContentsPurchased(uint256,address,uint256)"
    timeout: float = 10.0

    @classmethod
    def from_settings(cls, settings) -> "LedgerConfig":
        return cls(
            rpc_url          = settings.RPC_URL,
            contract_address = settings.CONTRACT_ADDRESS,
            event_signature  = settings.EVENT_SIGNATURE,
            timeout          = settings.RPC_TIMEOUT,
        )


@dataclass(frozen=True)
class PollerConfig:
    command: str = "4"                 # token sent for every purchase
    interval: float = 5.0              # seconds between scan starts
    event_signature: str = "ContentsPurchased(uint256,address,uint256)"
    retry: Optional[RetryConfig] = None   # None -> wrapper defaults

    def __post_init__(self):
        if self.interval <= 0:
            raise ConfigurationError("poll interval must be positive")
