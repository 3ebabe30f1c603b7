"""Data models and domain objects."""

from .device_models import (
    CommandResult,
    PendingCommand,
    PurchaseEvent,
    ScanCursor,
    DeviceConfig,
    LedgerConfig,
    PollerConfig,
)

__all__ = [
    # Runtime records
    'CommandResult',
    'PendingCommand',
    'PurchaseEvent',
    'ScanCursor',

    # Component configuration
    'DeviceConfig',
    'LedgerConfig',
    'PollerConfig',
]
