"""Byte stuffing of the SP network protocol.

Control bytes SOH, ISI, STX and ETX inside a frame are prefixed with DLE.
"""

from __future__ import annotations

import re
from typing import Optional

DLE = 0x10
SOH = 0x01
ISI = 0x1F
STX = 0x02
ETX = 0x03

ESCAPED = frozenset((SOH, ISI, STX, ETX))

_ESCAPE_PAIR = re.compile(rb"\x10([\x01\x02\x03\x1f])")


class StuffingOverflowError(ValueError):
    """The result does not fit into the allowed length.

    ``partial`` holds the bytes produced before the limit was reached.
    """

    def __init__(self, partial: bytes, max_length: int) -> None:
        super().__init__(f"result exceeds {max_length} bytes")
        self.partial = partial
        self.max_length = max_length


def stuff(data: bytes, max_length: Optional[int] = None) -> bytes:
    """Prefix every control byte with DLE; raise if the result exceeds ``max_length``."""
    out = bytearray()
    for byte in bytes(data):
        chunk = bytes((DLE, byte)) if byte in ESCAPED else bytes((byte,))
        if max_length is not None and len(out) + len(chunk) > max_length:
            raise StuffingOverflowError(bytes(out), max_length)
        out += chunk
    return bytes(out)


def destuff(data: bytes, max_length: Optional[int] = None) -> bytes:
    """Drop the DLE before each control byte; other DLE bytes are kept."""
    out = _ESCAPE_PAIR.sub(rb"\1", bytes(data))
    if max_length is not None and len(out) > max_length:
        raise StuffingOverflowError(out[:max_length], max_length)
    return out