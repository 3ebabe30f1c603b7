"""
Device Transport Framework
Base abstract class for the physical link to the sorting device
"""

from abc import ABC, abstractmethod
from typing import Callable, Dict, List
import logging

from recyclebridge.core.exceptions import TransportError, TransportOpenError, TransportWriteError


TRANSPORT_EVENTS = ("open", "error", "close")


class Transport(ABC):
    """
    Abstract base class for device transports.

    Implements the Template Method pattern: `open()`, `write()` and `close()`
    own the bookkeeping and lifecycle notifications, subclasses only provide
    `_open()`, `_write()`, `_close()` and `exists()`.

    Notifications:
    - ``open``            after a successful open()
    - ``error(exc)``      the link failed while open
    - ``close``           the link closed (explicitly or after an error)

    A failed open() raises TransportOpenError and emits nothing.
    """

    def __init__(self, name: str):
        self.name = name
        self.logger = logging.getLogger(f"{self.__class__.__name__}[{name}]")
        self._is_open = False
        self._listeners: Dict[str, List[Callable]] = {event: [] for event in TRANSPORT_EVENTS}

    # ------------------------------------------------------------------ #
    #  Listener registry
    # ------------------------------------------------------------------ #
    def on(self, event: str, callback: Callable) -> None:
        if event not in self._listeners:
            raise ValueError(f"Unknown transport event: {event}")
        self._listeners[event].append(callback)

    def remove_all_listeners(self) -> None:
        for callbacks in self._listeners.values():
            callbacks.clear()

    def listener_count(self) -> int:
        return sum(len(callbacks) for callbacks in self._listeners.values())

    def _emit(self, event: str, *args) -> None:
        for callback in list(self._listeners[event]):
            try:
                callback(*args)
            except Exception as e:
                self.logger.error(f"Error in '{event}' listener: {e}", exc_info=True)

    # ------------------------------------------------------------------ #
    #  Template methods
    # ------------------------------------------------------------------ #
    @property
    def is_open(self) -> bool:
        return self._is_open

    async def open(self) -> None:
        if self._is_open:
            return
        try:
            await self._open()
        except TransportOpenError:
            raise
        except OSError as e:
            raise TransportOpenError(f"Failed to open {self.name}: {e}") from e
        self._is_open = True
        self.logger.info(f"Transport {self.name} opened")
        self._emit("open")

    async def write(self, payload: bytes) -> None:
        if not self._is_open:
            raise TransportWriteError(f"Transport {self.name} is not open")
        try:
            await self._write(payload)
        except TransportError:
            raise
        except OSError as e:
            raise TransportWriteError(f"Failed to write to {self.name}: {e}") from e

    def close(self) -> None:
        if not self._is_open:
            return
        self._is_open = False
        try:
            self._close()
        finally:
            self.logger.info(f"Transport {self.name} closed")
            self._emit("close")

    def _connection_lost(self, exc: Exception = None) -> None:
        """For subclasses: the link went away without close() being called."""
        if not self._is_open:
            return
        self._is_open = False
        if exc is not None:
            self.logger.warning(f"Transport {self.name} lost: {exc}")
            self._emit("error", exc)
        self._emit("close")

    # Abstract methods that subclasses must implement
    @abstractmethod
    def exists(self) -> bool:
        """Whether the physical device is currently present."""
        pass

    @abstractmethod
    async def _open(self) -> None:
        pass

    @abstractmethod
    async def _write(self, payload: bytes) -> None:
        """Return once `payload` has been handed to the device."""
        pass

    @abstractmethod
    def _close(self) -> None:
        pass
