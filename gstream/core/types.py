"""
Core immutable types for the G-code streamer.

Overrides and frames are frozen dataclasses so a run's configuration and
the bytes on the wire can't be mutated once built.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Optional


# =============================================================================
# Controller Commands
# =============================================================================


EMERGENCY_STOP = "M112"
CLEAR_STOP = "M999"
SYNC = "M400"

BED_TEMP_CODES = ("M140", "M190")
HOTEND_TEMP_CODES = ("M104", "M109")


# =============================================================================
# Override Types
# =============================================================================


@dataclass(frozen=True)
class Overrides:
    """
    In-flight command rewrites for one run.

    None means "pass through unchanged".
    """
    feedrate_percent: Optional[int] = None
    bed_temp: Optional[int] = None
    hotend_temp: Optional[int] = None
    debug: bool = False

    @property
    def scales_feedrate(self) -> bool:
        return self.feedrate_percent is not None and self.feedrate_percent > 0

    def describe(self) -> list[str]:
        """Human-readable summary lines for the startup banner."""
        lines = []
        if self.scales_feedrate:
            lines.append(f"Feedrate × {self.feedrate_percent}%")
        if self.bed_temp is not None:
            lines.append(f"Bed forced → {self.bed_temp}°C")
        if self.hotend_temp is not None:
            lines.append(f"Hotend forced → {self.hotend_temp}°C")
        return lines


NO_OVERRIDES = Overrides()


# =============================================================================
# Wire Types
# =============================================================================


ENCODING = "ascii"


def to_bytes(text: str) -> bytes:
    """Bytes as they go on the wire; non-ASCII characters become '?'."""
    return text.encode(ENCODING, errors="replace")


@dataclass(frozen=True)
class Frame:
    """
    One numbered, checksummed line of the wire protocol.

    payload is "N<seq> <command>"; checksum is the XOR of its bytes.
    """
    sequence_number: int
    command: str
    payload: str
    checksum: int

    @property
    def text(self) -> str:
        """Frame without the trailing newline (for logging)."""
        return f"{self.payload}*{self.checksum}"

    @property
    def wire(self) -> bytes:
        return to_bytes(f"{self.text}\n")


def raw_command(command: str) -> bytes:
    """Unnumbered command line (reset and sync commands)."""
    return to_bytes(f"{command}\n")


# =============================================================================
# Result Types
# =============================================================================


class StreamStatus(Enum):
    COMPLETED = "completed"
    TIMEOUT = "timeout"
    RESEND_FAILURE = "resend_failure"
    CANCELLED = "cancelled"


@dataclass
class StreamResult:
    """Terminal outcome of a streaming run."""
    status: StreamStatus
    sent_count: int
    total_count: int
    last_sequence_number: int
    reset_count: int = 0
    message: str = ""

    @property
    def success(self) -> bool:
        return self.status is StreamStatus.COMPLETED

    def __str__(self) -> str:
        status = "✓" if self.success else "✗"
        text = f"{status} {self.status.value}: {self.sent_count}/{self.total_count} sent"
        if self.message:
            text += f" ({self.message})"
        return text
