"""
Transport layer - line-oriented duplex channel to the controller.

Provides:
- Transport protocol (interface)
- MockTransport for testing
- (SerialTransport in separate file for production)
"""

from __future__ import annotations

from collections import deque
from typing import Callable, Deque, Iterable, List, Optional, Protocol, Union


class Transport(Protocol):
    """Protocol for controller communication."""

    def write(self, data: bytes) -> None:
        """Write bytes to the controller."""
        ...

    def read_line(self, timeout: float) -> Optional[str]:
        """
        Read one response line.

        Blocks up to timeout seconds. Returns the line without its '\\r\\n',
        or None if no complete line arrived in time.
        """
        ...

    def flush_input(self) -> None:
        """Discard any buffered, unread input."""
        ...


# A scripted reply is a response line, None for a read timeout, or a
# callable producing either from the bytes written so far.
Reply = Union[str, None, Callable[[List[bytes]], Optional[str]]]


class MockTransport:
    """
    Mock transport for testing without hardware.

    Replies are consumed in order, one per read_line call. Once the
    script runs out every read answers default_reply ("ok" unless set
    to None, which simulates a silent controller).
    """

    def __init__(self, replies: Iterable[Reply] = (), default_reply: Optional[str] = "ok"):
        self.writes: List[bytes] = []
        self.reads: List[Optional[str]] = []
        self.timeouts: List[float] = []
        self.flush_count: int = 0
        self.default_reply = default_reply
        self._replies: Deque[Reply] = deque(replies)

    def queue(self, *replies: Reply) -> None:
        """Append replies to the script."""
        self._replies.extend(replies)

    @property
    def sent_commands(self) -> List[str]:
        """Every written line, decoded, without newlines."""
        lines: List[str] = []
        for chunk in self.writes:
            lines.extend(chunk.decode("ascii").splitlines())
        return lines

    @property
    def command_count(self) -> int:
        return len(self.sent_commands)

    @property
    def pending_replies(self) -> int:
        return len(self._replies)

    def write(self, data: bytes) -> None:
        self.writes.append(bytes(data))

    def read_line(self, timeout: float) -> Optional[str]:
        self.timeouts.append(timeout)
        reply = self._replies.popleft() if self._replies else self.default_reply
        if callable(reply):
            reply = reply(self.writes)
        self.reads.append(reply)
        return reply

    def flush_input(self) -> None:
        self.flush_count += 1

    def clear_history(self) -> None:
        """Clear recorded writes and reads."""
        self.writes.clear()
        self.reads.clear()
        self.timeouts.clear()
