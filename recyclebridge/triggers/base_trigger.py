# recyclebridge/triggers/base_trigger.py
from abc import ABC, abstractmethod
from typing import Dict, Any, Optional
from datetime import datetime
import asyncio
import logging

class PollingTrigger(ABC):
    """Abstract base class for triggers that poll a source on a fixed interval.

    Owns the single background task. Polls never overlap: the next one is
    scheduled only after the previous `poll()` returned.
    """

    def __init__(self, interval: float):
        self.interval = interval
        self.last_execution: Optional[datetime] = None
        self.execution_count: int = 0
        self.logger = logging.getLogger(self.__class__.__name__)
        self._task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    @abstractmethod
    async def poll(self) -> None:
        """Run one poll. Must not raise for expected source failures."""
        pass

    def start_polling(self) -> None:
        if self.running:
            self.logger.warning("Trigger is already running")
            return
        self._task = asyncio.create_task(self._run())

    async def stop_polling(self) -> None:
        task, self._task = self._task, None
        if task is None:
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass

    async def _run(self) -> None:
        loop = asyncio.get_running_loop()
        next_at = loop.time() + self.interval
        while True:
            await asyncio.sleep(max(0.0, next_at - loop.time()))
            next_at = loop.time() + self.interval
            try:
                await self.poll()
            except Exception as e:
                self.logger.error(f"Error checking for events: {e}", exc_info=True)

    def mark_executed(self) -> None:
        self.last_execution = datetime.now()
        self.execution_count += 1

    def get_execution_metadata(self) -> Dict[str, Any]:
        """Return metadata about trigger execution"""
        return {
            "last_execution": self.last_execution,
            "execution_count": self.execution_count,
            "trigger_type": self.__class__.__name__,
            "running": self.running,
        }
