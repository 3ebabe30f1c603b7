from enum import Enum, auto
import logging

class OrchestrationState(Enum):
    INITIALIZING = auto()
    DEVICE_STARTUP = auto()
    LISTENER_STARTUP = auto()
    OPERATIONAL = auto()
    ERROR_RECOVERY = auto()
    SHUTDOWN = auto()

class OrchestrationStateMachine:
    """Manages the overall orchestration state transitions"""
    
    def __init__(self):
        self.current_state = OrchestrationState.INITIALIZING
        self.logger = logging.getLogger(self.__class__.__name__)
        self.valid_transitions = {
            OrchestrationState.INITIALIZING: {OrchestrationState.DEVICE_STARTUP, OrchestrationState.SHUTDOWN},
            OrchestrationState.DEVICE_STARTUP: {OrchestrationState.LISTENER_STARTUP, OrchestrationState.ERROR_RECOVERY, OrchestrationState.SHUTDOWN},
            OrchestrationState.LISTENER_STARTUP: {OrchestrationState.OPERATIONAL, OrchestrationState.ERROR_RECOVERY, OrchestrationState.SHUTDOWN},
            OrchestrationState.OPERATIONAL: {OrchestrationState.ERROR_RECOVERY, OrchestrationState.SHUTDOWN},
            OrchestrationState.ERROR_RECOVERY: {OrchestrationState.OPERATIONAL, OrchestrationState.SHUTDOWN},
            OrchestrationState.SHUTDOWN: set()
        }
    
    def can_transition_to(self, new_state: OrchestrationState) -> bool:
        return new_state in self.valid_transitions.get(self.current_state, set())
    
    def transition_to(self, new_state: OrchestrationState) -> bool:
        if self.can_transition_to(new_state):
            self.logger.info(f"State transition: {self.current_state.name} -> {new_state.name}")
            self.current_state = new_state
            return True
        else:
            self.logger.error(f"Invalid state transition: {self.current_state.name} -> {new_state.name}")
            return False
