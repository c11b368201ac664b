"""
G-code Streamer - Session driver.

Reads commands in source order, applies overrides, and drives a
TransmissionSession for each one. Every run ends in a StreamResult:
either all commands plus the final sync were acknowledged, or the run
stopped at the first fatal condition.
"""

from __future__ import annotations

import time
from pathlib import Path
from typing import Callable, Iterable, List, Optional, Sequence, TYPE_CHECKING

from gstream.core.gcode import count_transmittable, is_transmittable, transform
from gstream.core.logger import log_critical, log_info, log_ok, log_warn
from gstream.core.session import (
    PersistentResendFailure,
    SessionSettings,
    TransmissionSession,
    TransportTimeout,
)
from gstream.core.types import NO_OVERRIDES, Frame, Overrides, StreamResult, StreamStatus

if TYPE_CHECKING:
    from gstream.core.transport import Transport


def read_source(path: Path) -> List[str]:
    """Lines of a G-code file, without line endings."""
    with open(path, "r", encoding="utf-8", errors="replace") as f:
        return f.read().splitlines()


class GCodeStreamer:
    """
    Streams a G-code program over a transport.

    Usage:
        streamer = GCodeStreamer(transport, Overrides(feedrate_percent=150))
        result = streamer.stream_file("print.gcode")
    """

    def __init__(
        self,
        transport: "Transport",
        overrides: Overrides = NO_OVERRIDES,
        settings: Optional[SessionSettings] = None,
        sleep: Callable[[float], None] = time.sleep,
        should_stop: Optional[Callable[[], bool]] = None,
    ):
        self._transport = transport
        self.overrides = overrides
        self.settings = settings or SessionSettings(debug=overrides.debug)
        self._sleep = sleep
        self._should_stop = should_stop
        self._frames: List[Frame] = []
        self.session: Optional[TransmissionSession] = None

    @property
    def frames(self) -> List[Frame]:
        """Acknowledged frames of the last run, in order."""
        return list(self._frames)

    @staticmethod
    def count_commands(lines: Iterable[str]) -> int:
        """Pre-scan: how many lines will be transmitted."""
        return count_transmittable(lines)

    def _new_session(self, total: int) -> TransmissionSession:
        return TransmissionSession(self._transport, total, self.settings, sleep=self._sleep)

    def _result(self, status: StreamStatus, message: str = "") -> StreamResult:
        session = self.session
        if status is StreamStatus.COMPLETED or status is StreamStatus.CANCELLED:
            last = self._frames[-1].sequence_number if self._frames else 0
        else:
            last = session.sequence_number
        return StreamResult(
            status=status,
            sent_count=session.sent_count,
            total_count=session.total_count,
            last_sequence_number=last,
            reset_count=session.reset_count,
            message=message,
        )

    def stream(self, lines: Sequence[str]) -> StreamResult:
        """
        Stream every transmittable line, then sync.

        Blank and comment lines (before or after transformation) never
        consume a sequence number.
        """
        total = self.count_commands(lines)
        log_info(f"Streaming {total} commands")
        self.session = session = self._new_session(total)
        self._frames.clear()

        try:
            for raw in lines:
                if self._should_stop and self._should_stop():
                    log_warn("Stream cancelled", {"sent": session.sent_count, "total": total})
                    return self._result(StreamStatus.CANCELLED, "cancelled by caller")

                command = transform(raw, self.overrides).strip()
                if not is_transmittable(command):
                    continue

                self._frames.append(session.transmit(command))

            log_info("Finishing...")
            session.finish()
        except TransportTimeout as e:
            log_critical(str(e))
            return self._result(StreamStatus.TIMEOUT, str(e))
        except PersistentResendFailure as e:
            log_critical(str(e))
            return self._result(StreamStatus.RESEND_FAILURE, str(e))

        log_ok("PRINT COMPLETED SUCCESSFULLY", {"sent": session.sent_count, "resets": session.reset_count})
        return self._result(StreamStatus.COMPLETED)

    def stream_file(self, path) -> StreamResult:
        """Read a G-code file and stream it."""
        path = Path(path)
        lines = read_source(path)
        log_info(f"Reading {path}")
        return self.stream(lines)
