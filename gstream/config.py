"""
Run configuration - validated once, then split into the pieces each layer
consumes (overrides, session tunables, serial settings).
"""

from pathlib import Path
from typing import Optional

from pydantic import BaseModel, Field

from gstream.core.serial_transport import BAUD_RATE, SerialConfig
from gstream.core.session import READ_TIMEOUT, SETTLE_TIME, SessionSettings
from gstream.core.types import Overrides


class StreamConfig(BaseModel):
    port: str
    baud: int = BAUD_RATE
    file: Path

    feedrate: Optional[int] = Field(default=None, gt=0)
    bed: Optional[int] = Field(default=None, ge=0)
    hotend: Optional[int] = Field(default=None, ge=0)
    debug: bool = False

    read_timeout: float = Field(default=READ_TIMEOUT, gt=0)
    settle_time: float = Field(default=SETTLE_TIME, ge=0)
    max_resets: Optional[int] = Field(default=None, ge=0)
    connect_delay: float = Field(default=2.0, ge=0)

    def to_overrides(self) -> Overrides:
        return Overrides(
            feedrate_percent=self.feedrate,
            bed_temp=self.bed,
            hotend_temp=self.hotend,
            debug=self.debug,
        )

    def to_session_settings(self) -> SessionSettings:
        return SessionSettings(
            read_timeout=self.read_timeout,
            settle_time=self.settle_time,
            max_resets=self.max_resets,
            debug=self.debug,
        )

    def to_serial_config(self) -> SerialConfig:
        """Raises ValueError for an unsupported baud rate."""
        return SerialConfig(baud_rate=self.baud, connect_delay=self.connect_delay)
