# recyclebridge/orchestration/__init__.py
"""Orchestration layer: device command set, start-up/shutdown sequencing."""

from .orchestrator import RecyclingStationOrchestrator
from .state_machine import OrchestrationStateMachine, OrchestrationState
from .commands import DeviceAction, CommandSet, COMMAND_VARIANTS

__all__ = [
    'RecyclingStationOrchestrator',
    'OrchestrationStateMachine',
    'OrchestrationState',
    'DeviceAction',
    'CommandSet',
    'COMMAND_VARIANTS',
]
