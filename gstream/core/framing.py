"""
Frame encoding for the numbered-line protocol.

Wire format:
    N<seq> <command>*<checksum>\\n

checksum is the XOR of every byte of "N<seq> <command>", printed in decimal.
"""

from functools import reduce
from operator import xor

from .types import Frame, to_bytes


def checksum(payload: str) -> int:
    """XOR fold of the payload bytes, starting from zero."""
    return reduce(xor, to_bytes(payload), 0)


def encode(command: str, sequence_number: int) -> Frame:
    """Frame an effective command with its sequence number."""
    payload = f"N{sequence_number} {command}"
    return Frame(
        sequence_number=sequence_number,
        command=command,
        payload=payload,
        checksum=checksum(payload),
    )
