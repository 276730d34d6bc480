"""Modbus RTU slave side: frame assembly, request decoding and error replies."""

from __future__ import annotations

import logging
import queue
import threading
import time
from dataclasses import dataclass
from typing import Callable, Optional, Protocol

from .config import FRAME_TIMEOUT, MAX_PDU_LENGTH, SLAVE_ADDRESS
from .crc import modbus_crc16
from .indicator import RgbIndicator

log = logging.getLogger(__name__)

WRITE_MULTIPLE_REGISTERS = 0x10
EXCEPTION_FLAG = 0x80
SLAVE_DEVICE_FAILURE = 0x04
MIN_FRAME_LENGTH = 4
MAX_FRAME_LENGTH = MAX_PDU_LENGTH + 3
READ_CHUNK = 128

# Offsets inside a "write multiple registers" request.
_BYTE_COUNT_OFFSET = 6
_DATA_OFFSET = 7


class Link(Protocol):
    """The part of a serial port the gateway uses."""

    def read(self, size: int) -> bytes: ...

    def write(self, data: bytes) -> Optional[int]: ...


class ModbusFrameError(Exception):
    """A received frame cannot be accepted; ``code`` is the Modbus exception code."""

    def __init__(self, message: str, code: int = SLAVE_DEVICE_FAILURE) -> None:
        super().__init__(message)
        self.code = code


@dataclass(frozen=True)
class Request:
    """A decoded request: slave address, function code and payload for the SP side."""

    address: int
    function: int
    payload: bytes


class FrameAssembler:
    """Collects received bytes into frames delimited by a silent interval."""

    def __init__(self, max_length: int = MAX_FRAME_LENGTH, timeout: float = FRAME_TIMEOUT) -> None:
        self.max_length = max_length
        self.timeout = timeout
        self._buffer = bytearray()
        self._last_rx = 0.0

    @property
    def pending(self) -> int:
        """Number of bytes collected for the frame in progress."""
        return len(self._buffer)

    def reset(self) -> None:
        """Discard the frame in progress."""
        self._buffer.clear()

    def feed(self, chunk: bytes, now: float) -> None:
        """Append received bytes; an overflow discards the frame and raises."""
        if not chunk:
            return
        if len(self._buffer) + len(chunk) > self.max_length:
            self.reset()
            raise ModbusFrameError(f"frame longer than {self.max_length} bytes discarded")
        self._buffer += chunk
        self._last_rx = now

    def poll(self, now: float) -> Optional[bytes]:
        """Return the collected frame once the line has been silent long enough."""
        if not self._buffer or now - self._last_rx <= self.timeout:
            return None
        frame = bytes(self._buffer)
        self._buffer.clear()
        return frame


def decode_request(frame: bytes, slave_address: int = SLAVE_ADDRESS) -> Request:
    """Check length, address and CRC of an RTU frame and extract its payload.

    For "write multiple registers" the payload is the register data, without
    a trailing zero pad byte. Other functions carry no payload.
    """
    frame = bytes(frame)
    if len(frame) < MIN_FRAME_LENGTH:
        raise ModbusFrameError(f"invalid frame length: {len(frame)}")
    if frame[0] != slave_address:
        raise ModbusFrameError(f"address mismatch: 0x{frame[0]:02X}")
    body = frame[:-2]
    received = int.from_bytes(frame[-2:], "little")
    calculated = modbus_crc16(body)
    if received != calculated:
        raise ModbusFrameError(f"CRC error: {received:04X} vs {calculated:04X}")

    address, function = body[0], body[1]
    if function != WRITE_MULTIPLE_REGISTERS:
        return Request(address, function, b"")
    if len(body) < _DATA_OFFSET:
        raise ModbusFrameError(f"request too short: {len(body)} bytes")
    count = body[_BYTE_COUNT_OFFSET]
    data = body[_DATA_OFFSET:_DATA_OFFSET + count]
    if len(data) < count:
        raise ModbusFrameError(f"byte count {count} exceeds {len(data)} data bytes")
    if data and data[-1] == 0x00:
        data = data[:-1]
    return Request(address, function, data)


def exception_response(address: int, function: int, code: int) -> bytes:
    """An exception reply: address, function with the error bit, code and CRC."""
    body = bytes((address, (function | EXCEPTION_FLAG) & 0xFF, code))
    return body + modbus_crc16(body).to_bytes(2, "little")


class ModbusReceiver:
    """Receives requests from the Modbus line and queues their payloads.

    The address and function of the last accepted "write multiple registers"
    request are kept in ``address`` and ``function``; replies are addressed
    with them.
    """

    def __init__(
        self,
        link: Link,
        pdu_queue: "queue.Queue[bytes]",
        slave_address: int = SLAVE_ADDRESS,
        *,
        indicator: Optional[RgbIndicator] = None,
        lock: Optional[threading.Lock] = None,
        assembler: Optional[FrameAssembler] = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.link = link
        self.pdu_queue = pdu_queue
        self.slave_address = slave_address
        self.indicator = indicator
        self.lock = lock if lock is not None else threading.Lock()
        self.assembler = assembler if assembler is not None else FrameAssembler()
        self.clock = clock
        self.address = 0
        self.function = 0

    def _reject(self, error: ModbusFrameError) -> bytes:
        log.error("%s", error)
        response = exception_response(self.address, self.function, error.code)
        log.info("Response (%d bytes): %s", len(response), response.hex(" ").upper())
        with self.lock:
            self.link.write(response)
        if self.indicator is not None:
            self.indicator.blue()
        return response

    def handle_frame(self, frame: bytes) -> Optional[bytes]:
        """Accept one frame; return the exception reply sent for a bad one, else None."""
        try:
            request = decode_request(frame, self.slave_address)
        except ModbusFrameError as error:
            return self._reject(error)
        if request.function == WRITE_MULTIPLE_REGISTERS:
            self.address = request.address
            self.function = request.function
        try:
            self.pdu_queue.put_nowait(request.payload)
        except queue.Full:
            log.error("Queue full! Dropping PDU")
        return None

    def run(self, stop: threading.Event) -> None:
        """Read the line until ``stop`` is set, handling each completed frame."""
        while not stop.is_set():
            chunk = self.link.read(READ_CHUNK)
            now = self.clock()
            try:
                self.assembler.feed(chunk, now)
            except ModbusFrameError as error:
                self._reject(error)
            frame = self.assembler.poll(now)
            if frame is not None:
                self.handle_frame(frame)