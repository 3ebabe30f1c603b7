from __future__ import annotations
import asyncio, logging
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional

from ..exceptions import CommandError, DispatchExhaustedError

log = logging.getLogger(__name__)

@dataclass(frozen=True)
class RetryConfig:
    max_attempts: int = 3
    delay: float = 2.0                    # seconds, fixed between attempts

    @classmethod
    def from_settings(cls, settings) -> "RetryConfig":
        return cls(max_attempts=max(1, settings.DISPATCH_MAX_ATTEMPTS),
                   delay=settings.DISPATCH_RETRY_DELAY)


async def send_command_with_retry(device, command: str, cfg: Optional[RetryConfig] = None, *,
                                  sleep: Callable[[float], Awaitable] = asyncio.sleep):
    """
    Send `command` through `device.send_command`, retrying failed attempts.

    Every call is independent. Only CommandError failures are retried; after
    `cfg.max_attempts` attempts the last one is surfaced as DispatchExhaustedError.
    """
    cfg = cfg or RetryConfig()
    attempt = 0
    while True:
        try:
            return await device.send_command(command)
        except CommandError as e:
            attempt += 1
            if attempt >= cfg.max_attempts:
                log.error("Failed to send command %s after %d attempts: %s", command, attempt, e)
                raise DispatchExhaustedError(command, attempt, e) from e
            log.warning("Command %s failed (attempt %d/%d): %s. Retrying in %.1fs...",
                        command, attempt, cfg.max_attempts, e, cfg.delay)
            await sleep(cfg.delay)
