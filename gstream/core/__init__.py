"""Core protocol layer - transformation, framing, session, transports"""

from .gcode import transform
from .framing import encode, checksum
from .session import TransmissionSession, SessionSettings, TransportTimeout, PersistentResendFailure
from .transport import MockTransport

__all__ = [
    'transform', 'encode', 'checksum',
    'TransmissionSession', 'SessionSettings', 'TransportTimeout', 'PersistentResendFailure',
    'MockTransport',
]
