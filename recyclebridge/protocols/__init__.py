"""Device transport implementations."""

from .base_transport import Transport, TRANSPORT_EVENTS
from .serial_transport import SerialTransport

__all__ = [
    # Base classes
    'Transport',
    'TRANSPORT_EVENTS',

    # Implementations
    'SerialTransport',
]
