"""Recycling station bridge - serial sorting device <-> ledger purchase events <-> HTTP"""

__version__ = '1.0.0'
__description__ = 'Keeps a USB sorting device connected and opens its door on ledger purchases'

# Core patterns - most fundamental
from .core import ConnectionState, ReconnectBackoff, RetryConfig, send_command_with_retry

# Models - domain objects
from .models import CommandResult, PurchaseEvent, DeviceConfig, LedgerConfig, PollerConfig

# Services - business logic
from .services import DeviceConnectionManager, EvmLedgerService

# Triggers
from .triggers import PurchaseTriggerPoller

# Orchestration
from .orchestration import RecyclingStationOrchestrator, CommandSet, DeviceAction

__all__ = [
    # Core
    'ConnectionState',
    'ReconnectBackoff',
    'RetryConfig',
    'send_command_with_retry',

    # Models
    'CommandResult',
    'PurchaseEvent',
    'DeviceConfig',
    'LedgerConfig',
    'PollerConfig',

    # Services
    'DeviceConnectionManager',
    'EvmLedgerService',

    # Triggers
    'PurchaseTriggerPoller',

    # Orchestration
    'RecyclingStationOrchestrator',
    'CommandSet',
    'DeviceAction',
]
