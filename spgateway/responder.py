"""Modbus side replies carrying the messages returned by the SP device."""

from __future__ import annotations

import logging
import queue
import threading
from typing import Optional, Protocol

from .config import READ_TIMEOUT
from .crc import modbus_crc16
from .indicator import RgbIndicator
from .modbus import Link

log = logging.getLogger(__name__)


class ReplyOrigin(Protocol):
    """Source of the address and function a reply is sent with."""

    address: int
    function: int


def build_response(address: int, function: int, message: bytes) -> bytes:
    """An RTU reply frame: address, function, message and CRC."""
    body = bytes((address, function)) + bytes(message)
    return body + modbus_crc16(body).to_bytes(2, "little")


class ModbusResponder:
    """Sends each queued message back to the Modbus master."""

    def __init__(
        self,
        link: Link,
        messages: "queue.Queue[bytes]",
        origin: ReplyOrigin,
        *,
        indicator: Optional[RgbIndicator] = None,
        lock: Optional[threading.Lock] = None,
        poll_interval: float = READ_TIMEOUT,
    ) -> None:
        self.link = link
        self.messages = messages
        self.origin = origin
        self.indicator = indicator
        self.lock = lock if lock is not None else threading.Lock()
        self.poll_interval = poll_interval

    def respond(self, message: bytes) -> bytes:
        """Send one reply and return the frame written."""
        log.info("Received destuffed message (%d bytes): %s", len(message), bytes(message).hex(" ").upper())
        response = build_response(self.origin.address, self.origin.function, message)
        log.info("Response msg (%d bytes): %s", len(response), response.hex(" ").upper())
        with self.lock:
            self.link.write(response)
        if self.indicator is not None:
            self.indicator.blue()
        return response

    def run(self, stop: threading.Event) -> None:
        """Answer queued messages until ``stop`` is set."""
        while not stop.is_set():
            try:
                message = self.messages.get(timeout=self.poll_interval)
            except queue.Empty:
                continue
            self.respond(message)