"""
Serial Transport - Single responsibility: serial communication

Implements the Transport protocol over a pyserial port: raw 8N1, no
hardware flow control, bounded line reads.
"""

import serial
import time
from typing import Optional
from dataclasses import dataclass
from .logger import log_info


BAUD_RATE = 115200
POLL_INTERVAL = 0.2

SUPPORTED_BAUD_RATES = (
    9600, 19200, 38400, 57600, 115200, 230400,
    250000, 460800, 500000, 921600, 1000000,
)


@dataclass
class SerialConfig:
    baud_rate: int = BAUD_RATE
    connect_delay: float = 2.0

    def __post_init__(self):
        if self.baud_rate not in SUPPORTED_BAUD_RATES:
            raise ValueError(f"Unsupported baud rate: {self.baud_rate}")


class SerialTransport:
    """
    Line-oriented access to a controller on a serial port.

    Use as a context manager or call connect()/disconnect() explicitly.
    """

    def __init__(self, port: str, config: Optional[SerialConfig] = None):
        self.port = port
        self.config = config or SerialConfig()
        self._serial: Optional[serial.Serial] = None
        self._buffer = bytearray()

    def connect(self) -> None:
        """Open the port, let the controller boot, drop any startup chatter"""
        try:
            self._serial = serial.Serial(
                self.port,
                self.config.baud_rate,
                bytesize=serial.EIGHTBITS,
                parity=serial.PARITY_NONE,
                stopbits=serial.STOPBITS_ONE,
                rtscts=False,
                xonxoff=False,
                timeout=POLL_INTERVAL,
            )
        except (serial.SerialException, OSError) as e:
            self._serial = None
            raise ConnectionError(f"Cannot open {self.port}: {e}") from e

        time.sleep(self.config.connect_delay)
        self._serial.reset_input_buffer()
        self._serial.reset_output_buffer()
        log_info(f"Connected to {self.port} @ {self.config.baud_rate} baud")

    def disconnect(self) -> None:
        """Close the port"""
        if self._serial:
            self._serial.close()
            self._serial = None
        self._buffer.clear()

    def __enter__(self) -> "SerialTransport":
        self.connect()
        return self

    def __exit__(self, *exc) -> None:
        self.disconnect()

    @property
    def is_connected(self) -> bool:
        return self._serial is not None and self._serial.is_open

    def _port(self) -> serial.Serial:
        if not self.is_connected:
            raise ConnectionError("Not connected")
        return self._serial

    def write(self, data: bytes) -> None:
        port = self._port()
        port.write(data)
        port.flush()

    def read_line(self, timeout: float) -> Optional[str]:
        """
        Read one '\\n'-terminated line within timeout seconds.

        Partial input is kept for the next call, so a line split across
        reads is never lost. Returns None on timeout.
        """
        port = self._port()
        deadline = time.monotonic() + timeout
        while True:
            newline = self._buffer.find(b"\n")
            if newline >= 0:
                raw = bytes(self._buffer[:newline])
                del self._buffer[:newline + 1]
                return raw.decode("ascii", errors="replace").replace("\r", "")

            if time.monotonic() >= deadline:
                return None
            chunk = port.read_until(b"\n")
            if chunk:
                self._buffer.extend(chunk)

    def flush_input(self) -> None:
        """Drop unread input, both in the OS buffer and our own"""
        self._port().reset_input_buffer()
        self._buffer.clear()
