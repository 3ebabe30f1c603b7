# recyclebridge/core/__init__.py
"""Core infrastructure components for the recycling-station bridge."""

# Import order: most fundamental to most specific

from .exceptions import (
    RecycleBridgeError,
    ConfigurationError,
    TransportError,
    TransportOpenError,
    TransportWriteError,
    CommandError,
    ConnectError,
    NotConnectedError,
    ShuttingDownError,
    CommandQueueFullError,
    ReconnectExhaustedError,
    DispatchExhaustedError,
    ScanFetchError,
)

from .patterns.state_machine import ConnectionStateMachine, ConnectionState
from .patterns.backoff import ReconnectBackoff
from .patterns.retry import RetryConfig, send_command_with_retry


__all__ = [
    "ConnectionStateMachine",
    "ConnectionState",
    "ReconnectBackoff",
    "RetryConfig",
    "send_command_with_retry",
    "RecycleBridgeError",
    "ConfigurationError",
    "TransportError",
    "TransportOpenError",
    "TransportWriteError",
    "CommandError",
    "ConnectError",
    "NotConnectedError",
    "ShuttingDownError",
    "CommandQueueFullError",
    "ReconnectExhaustedError",
    "DispatchExhaustedError",
    "ScanFetchError",
]
