import logging
from enum import Enum
from typing import Dict, Set

class ConnectionState(Enum):
    DISCONNECTED = "disconnected"
    CONNECTING   = "connecting"
    CONNECTED    = "connected"

class ConnectionStateMachine:
    def __init__(self, initial: ConnectionState = ConnectionState.DISCONNECTED, name: str = "device"):
        self._state = initial
        self.log = logging.getLogger(f"{self.__class__.__name__}[{name}]")
        self._trans: Dict[ConnectionState, Set[ConnectionState]] = {
            ConnectionState.DISCONNECTED: {ConnectionState.CONNECTING},
            ConnectionState.CONNECTING:   {ConnectionState.CONNECTED, ConnectionState.DISCONNECTED},
            ConnectionState.CONNECTED:    {ConnectionState.DISCONNECTED, ConnectionState.CONNECTING},
        }

    @property
    def state(self) -> ConnectionState: return self._state

    def can(self, nxt: ConnectionState) -> bool:
        return nxt is self._state or nxt in self._trans[self._state]

    def transition(self, nxt: ConnectionState) -> bool:
        if not self.can(nxt):
            self.log.error("invalid transition %s -> %s", self._state.name, nxt.name)
            return False
        if nxt is not self._state:
            self.log.debug("%s -> %s", self._state.name, nxt.name)
            self._state = nxt
        return True
