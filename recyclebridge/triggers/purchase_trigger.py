import asyncio
from typing import Any, Dict

from recyclebridge.core.exceptions import RecycleBridgeError, ScanFetchError
from recyclebridge.core.patterns.retry import send_command_with_retry
from recyclebridge.models.device_models import PollerConfig, PurchaseEvent, ScanCursor
from .base_trigger import PollingTrigger


class PurchaseTriggerPoller(PollingTrigger):
    """Watches the ledger for purchase events and opens the door for each one.

    Each scan covers ``(cursor, tip]`` exactly once. The cursor advances to the
    tip as soon as the range was requested, even when the fetch or a dispatch
    failed, so a permanently failing range can never stall the poller.
    """

    def __init__(self, ledger, device, cfg: PollerConfig):
        super().__init__(cfg.interval)
        self.ledger = ledger
        self.device = device
        self.cfg = cfg
        self.cursor = ScanCursor()
        self.dispatched = 0
        self.dispatch_failures = 0
        self._scan_lock = asyncio.Lock()

    async def start_listening(self) -> None:
        """Capture the current tip, scan once, then keep scanning every interval.

        Raises ScanFetchError when the initial tip cannot be read.
        """
        if self.running:
            self.logger.warning("Already listening")
            return
        self.cursor.advance(await self.ledger.get_current_position())
        self.logger.info(f"Listening for {self.cfg.event_signature} from block {self.cursor.last_checked}")
        await self.check_for_events()
        self.start_polling()

    async def stop_listening(self) -> None:
        was_running = self.running
        await self.stop_polling()
        if was_running:
            self.logger.info("Ledger event listener stopped")

    async def poll(self) -> None:
        await self.check_for_events()

    async def check_for_events(self) -> int:
        """One scan. Returns the number of events successfully dispatched."""
        async with self._scan_lock:
            self.mark_executed()
            try:
                tip = await self.ledger.get_current_position()
            except ScanFetchError as e:
                self.logger.error(f"Error reading ledger tip: {e}")
                return 0

            last = self.cursor.last_checked
            if tip <= last:
                self.logger.debug(f"No new blocks since last check (current: {tip}, last checked: {last})")
                return 0

            self.logger.info(f"Checking for events from block {last + 1} to {tip}")
            try:
                logs = await self.ledger.get_logs(last + 1, tip, self.cfg.event_signature)
            except ScanFetchError as e:
                self.logger.error(f"Error fetching logs for blocks {last + 1}..{tip}, skipping range: {e}")
                self.cursor.advance(tip)
                return 0

            sent = 0
            for raw in logs:
                event = self.ledger.decode(raw)
                if event is None:
                    continue
                if await self._dispatch(event):
                    sent += 1
            self.cursor.advance(tip)
            return sent

    async def _dispatch(self, event: PurchaseEvent) -> bool:
        self.logger.info(f"ContentsPurchased event detected! garbage can {event.subject_id}, "
                         f"collector {event.actor}, value {event.amount}")
        try:
            result = await send_command_with_retry(self.device, self.cfg.command, self.cfg.retry)
        except RecycleBridgeError as e:
            self.dispatch_failures += 1
            self.logger.error(f"Failed to open door: {e}")
            return False
        self.dispatched += 1
        self.logger.info(f"Door open command sent: {result.message}")
        return True

    def get_execution_metadata(self) -> Dict[str, Any]:
        meta = super().get_execution_metadata()
        meta.update({
            "last_checked_position": self.cursor.last_checked,
            "dispatched": self.dispatched,
            "dispatch_failures": self.dispatch_failures,
        })
        return meta
