from __future__ import annotations
from dataclasses import dataclass

@dataclass
class ReconnectBackoff:
    """Exponential backoff for one reconnection episode: delay doubles per failure, capped."""
    initial_delay: float = 1.0            # seconds
    max_delay: float = 30.0
    attempt: int = 0

    def peek(self) -> float:
        return min(self.initial_delay * (2 ** self.attempt), self.max_delay)

    def next_delay(self) -> float:
        delay = self.peek()
        self.attempt += 1
        return delay

    def reset(self) -> None:
        self.attempt = 0
