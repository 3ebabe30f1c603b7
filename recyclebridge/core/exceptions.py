"""
Centralised exception definitions for the recycling-station bridge.
All custom exceptions should inherit from RecycleBridgeError.
"""

class RecycleBridgeError(Exception):
    """Base class for every custom exception thrown by this project."""

class ConfigurationError(RecycleBridgeError):
    """Raised when configuration files or environment variables are invalid."""

class TransportError(RecycleBridgeError):
    """Generic failure inside a device transport (serial port, mock link, …)."""

class TransportOpenError(TransportError):
    """The transport could not be opened (device missing, busy, permission …)."""

class CommandError(RecycleBridgeError):
    """A device command (or connect request) did not complete successfully."""

class TransportWriteError(TransportError, CommandError):
    """Writing a command payload to an open transport failed."""

class ConnectError(CommandError):
    """An explicit connect() attempt failed; reconnection continues in the background."""

class NotConnectedError(CommandError):
    """A command reached execution with no usable transport instance."""

class ShuttingDownError(CommandError):
    """The command queue was purged because the manager is shutting down."""

class CommandQueueFullError(CommandError):
    """The pending-command queue reached its configured limit."""

class ReconnectExhaustedError(CommandError):
    """A bounded reconnection policy gave up; queued commands are failed with this."""

class DispatchExhaustedError(CommandError):
    """The bounded dispatch retry wrapper ran out of attempts."""

    def __init__(self, command: str, attempts: int, last_error: Exception):
        super().__init__(f"Failed to send command {command} after {attempts} attempts: {last_error}")
        self.command = command
        self.attempts = attempts
        self.last_error = last_error

class ScanFetchError(RecycleBridgeError):
    """Reading the ledger (tip or logs) failed."""
