"""Service layer: device connection management and ledger access."""

from .device_service import DeviceConnectionManager, serial_transport_factory
from .ledger_service import EvmLedgerService, LedgerClient, event_topic

__all__ = [
    'DeviceConnectionManager',
    'serial_transport_factory',
    'EvmLedgerService',
    'LedgerClient',
    'event_topic',
]
