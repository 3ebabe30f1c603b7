from typing import Any, Dict
import logging
from recyclebridge.core.exceptions import RecycleBridgeError
from .state_machine import OrchestrationStateMachine, OrchestrationState

class RecyclingStationOrchestrator:
    """Starts and stops the device manager and the ledger poller in order"""
    
    def __init__(self, device, poller, ledger=None):
        self.device = device
        self.poller = poller
        self.ledger = ledger
        self.state_machine = OrchestrationStateMachine()
        self.listener_running = False
        self.logger = logging.getLogger(self.__class__.__name__)
    
    async def startup(self) -> bool:
        """Bring the device up, then the ledger listener.

        A listener that fails to start is logged and left stopped; HTTP
        triggers keep working. Returns True when both are running.
        """
        if not self.state_machine.transition_to(OrchestrationState.DEVICE_STARTUP):
            raise RuntimeError(f"Cannot start from {self.state_machine.current_state.name}")
        await self.device.start()
        self.logger.info(f"Device controller initialized for {self.device.config.port_path}")

        self.state_machine.transition_to(OrchestrationState.LISTENER_STARTUP)
        try:
            await self.poller.start_listening()
            self.listener_running = True
            self.logger.info("Ledger event listener started successfully")
        except RecycleBridgeError as e:
            self.logger.error(f"Failed to start ledger listener: {e}")
            self.state_machine.transition_to(OrchestrationState.ERROR_RECOVERY)

        self.state_machine.transition_to(OrchestrationState.OPERATIONAL)
        return self.listener_running
    
    async def shutdown(self):
        """Graceful shutdown; safe to call more than once"""
        if not self.state_machine.transition_to(OrchestrationState.SHUTDOWN):
            return
        self.logger.info("Application shutting down...")
        await self.poller.stop_listening()
        self.listener_running = False
        await self.device.cleanup()
        if self.ledger is not None and hasattr(self.ledger, "aclose"):
            await self.ledger.aclose()
        self.logger.info("Orchestration shutdown completed")

    def get_status(self) -> Dict[str, Any]:
        return {
            "state": self.state_machine.current_state.name.lower(),
            "listener_running": self.listener_running,
            "device": self.device.get_stats(),
            "listener": self.poller.get_execution_metadata(),
        }
