"""
Transmission Session - the numbered-line protocol state machine.

One frame is in flight at a time. Each frame is written, then responses
are read until one of:
- "ok"               -> ADVANCED (next sequence number)
- "Resend" / "rs"    -> retransmit the same frame; after three in a row
                        perform an emergency reset and renumber from N1
- no line in time    -> FATAL_TIMEOUT (TransportTimeout raised)

Lines matching neither (temperature reports, "echo:busy", blanks) are
ignored.
"""

from __future__ import annotations

import time
from dataclasses import dataclass
from enum import Enum, auto
from typing import Callable, List, Optional, TYPE_CHECKING

from .framing import encode
from .logger import log_progress, log_reset, log_serial, log_warn
from .types import CLEAR_STOP, EMERGENCY_STOP, SYNC, Frame, raw_command

if TYPE_CHECKING:
    from .transport import Transport


READ_TIMEOUT = 10.0
SETTLE_TIME = 4.0
RESEND_THRESHOLD = 3
PROGRESS_INTERVAL = 25


class StreamError(Exception):
    """Base class for failures that end a run"""

    def __init__(self, message: str, sequence_number: int):
        super().__init__(message)
        self.sequence_number = sequence_number


class TransportTimeout(StreamError):
    """No response line arrived within the read timeout"""

    def __init__(self, sequence_number: int, phase: str, timeout: float):
        super().__init__(
            f"Timeout after {timeout:g}s waiting for {phase} (N{sequence_number})",
            sequence_number,
        )
        self.phase = phase
        self.timeout = timeout


class PersistentResendFailure(StreamError):
    """Resend requests kept coming after the allowed number of resets"""

    def __init__(self, sequence_number: int, resets: int):
        super().__init__(
            f"Controller still requesting resends after {resets} resets (N{sequence_number})",
            sequence_number,
        )
        self.resets = resets


class SessionState(Enum):
    SENDING = auto()
    AWAITING_RESPONSE = auto()
    ADVANCED = auto()
    RESET_IN_PROGRESS = auto()
    FATAL_TIMEOUT = auto()


class Response(Enum):
    OK = auto()
    RESEND = auto()
    OTHER = auto()


def classify_response(line: str) -> Response:
    """Substring match, "ok" first; case-sensitive."""
    if "ok" in line:
        return Response.OK
    if "Resend" in line or "rs" in line:
        return Response.RESEND
    return Response.OTHER


@dataclass
class SessionSettings:
    """Protocol tunables"""
    read_timeout: float = READ_TIMEOUT
    settle_time: float = SETTLE_TIME
    resend_threshold: int = RESEND_THRESHOLD
    progress_interval: int = PROGRESS_INTERVAL
    max_resets: Optional[int] = None  # None = reset as often as needed
    debug: bool = False


class TransmissionSession:
    """
    Owns the sequence number and resend streak for one run.

    The transport is borrowed; nothing else may write to it while a
    transmit() or finish() call is in progress.
    """

    def __init__(
        self,
        transport: "Transport",
        total_count: int = 0,
        settings: Optional[SessionSettings] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.transport = transport
        self.settings = settings or SessionSettings()
        self.total_count = total_count
        self._sleep = sleep

        self.sequence_number = 1
        self.resend_streak = 0
        self.sent_count = 0
        self.reset_count = 0
        self.state = SessionState.SENDING
        self._history: List[SessionState] = [self.state]

    @property
    def history(self) -> List[SessionState]:
        """Every state entered, oldest first."""
        return list(self._history)

    def _enter(self, state: SessionState) -> None:
        self.state = state
        self._history.append(state)

    def _write(self, data: bytes, label: str) -> None:
        if self.settings.debug:
            log_serial(">>>", label)
        self.transport.write(data)

    def _read(self, phase: str) -> str:
        line = self.transport.read_line(self.settings.read_timeout)
        if line is None:
            self._enter(SessionState.FATAL_TIMEOUT)
            raise TransportTimeout(self.sequence_number, phase, self.settings.read_timeout)
        if self.settings.debug:
            log_serial("<<<", line)
        return line

    def send(self, frame: Frame) -> None:
        """SENDING -> AWAITING_RESPONSE"""
        if self.state is not SessionState.SENDING:
            self._enter(SessionState.SENDING)
        self._write(frame.wire, frame.text)
        self._enter(SessionState.AWAITING_RESPONSE)

    def handle_response(self, line: str) -> SessionState:
        """
        Apply one response line while AWAITING_RESPONSE.

        Returns the resulting state: ADVANCED, RESET_IN_PROGRESS, or
        AWAITING_RESPONSE (resend below threshold, or unrelated line).
        Does no I/O.
        """
        kind = classify_response(line)
        if kind is Response.OK:
            self.sequence_number += 1
            self.sent_count += 1
            self.resend_streak = 0
            self._enter(SessionState.ADVANCED)
        elif kind is Response.RESEND:
            self.resend_streak += 1
            if self.resend_streak >= self.settings.resend_threshold:
                self._enter(SessionState.RESET_IN_PROGRESS)
            else:
                log_warn(f"Resend requested ({self.resend_streak}/{self.settings.resend_threshold})",
                         {"N": self.sequence_number})
        return self.state

    def emergency_reset(self) -> None:
        """
        Emergency stop + clear, let the firmware settle, renumber from N1.

        The source position is untouched; only numbering restarts.
        """
        max_resets = self.settings.max_resets
        if max_resets is not None and self.reset_count >= max_resets:
            raise PersistentResendFailure(self.sequence_number, self.reset_count)

        if self.state is not SessionState.RESET_IN_PROGRESS:
            self._enter(SessionState.RESET_IN_PROGRESS)
        log_reset(f"FORCING HARD RESET ({EMERGENCY_STOP} + {CLEAR_STOP})",
                  {"N": self.sequence_number})
        self._write(raw_command(EMERGENCY_STOP) + raw_command(CLEAR_STOP),
                    f"{EMERGENCY_STOP} {CLEAR_STOP}")
        self._sleep(self.settings.settle_time)
        self.transport.flush_input()

        self.sequence_number = 1
        self.resend_streak = 0
        self.reset_count += 1
        self._enter(SessionState.SENDING)
        log_reset("Printer rebooted, renumbering from N1")

    def _report_progress(self) -> None:
        interval = self.settings.progress_interval
        if self.settings.debug or (interval > 0 and self.sent_count % interval == 0):
            log_progress(self.sent_count, self.total_count)

    def transmit(self, command: str) -> Frame:
        """
        Send one effective command and drive it to ADVANCED.

        Returns the frame that was acknowledged (after a reset this is
        the renumbered one). Raises TransportTimeout or
        PersistentResendFailure.
        """
        frame = encode(command, self.sequence_number)
        self.send(frame)

        while True:
            streak = self.resend_streak
            state = self.handle_response(self._read("acknowledgement"))

            if state is SessionState.ADVANCED:
                self._report_progress()
                return frame

            if state is SessionState.RESET_IN_PROGRESS:
                self.emergency_reset()
                frame = encode(command, self.sequence_number)
                self.send(frame)
            elif self.resend_streak > streak:
                # Same bytes, same number
                self._write(frame.wire, frame.text)

    def finish(self) -> None:
        """Send the sync command and wait for its 'ok' (same read timeout)."""
        self._write(raw_command(SYNC), SYNC)
        while classify_response(self._read("sync")) is not Response.OK:
            pass
