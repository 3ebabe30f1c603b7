"""Ledger-driven triggers."""

from .base_trigger import PollingTrigger
from .purchase_trigger import PurchaseTriggerPoller

__all__ = [
    'PollingTrigger',
    'PurchaseTriggerPoller',
]
