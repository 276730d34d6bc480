"""SP side of the gateway: request framing, reply checking and the processing loop."""

from __future__ import annotations

import logging
import queue
import threading
from typing import Optional

from .config import READ_TIMEOUT
from .crc import spnet_crc
from .modbus import Link
from .staffing import destuff, stuff

log = logging.getLogger(__name__)

REPLY_CHUNK = 240
# The checksum of a request starts after the leading DLE SOH pair.
REQUEST_CRC_START = 2
# A reply starts with an FF FF preamble followed by DLE SOH.
REPLY_PREAMBLE_LENGTH = 2
REPLY_CRC_START = 4
CRC_LENGTH = 2
MIN_REPLY_LENGTH = REPLY_CRC_START + CRC_LENGTH


class SpReplyError(Exception):
    """A reply from the SP device failed its checks.

    ``payload`` holds the destuffed message when the reply was long enough
    to extract one, otherwise None.
    """

    def __init__(self, message: str, payload: Optional[bytes] = None) -> None:
        super().__init__(message)
        self.payload = payload


def _hex(data: bytes) -> str:
    return bytes(data).hex(" ").upper()


def build_sp_request(pdu: bytes) -> bytes:
    """Stuff a payload and append its big-endian SP checksum."""
    stuffed = stuff(pdu)
    if len(stuffed) < REQUEST_CRC_START:
        raise ValueError(f"payload too short for an SP request: {len(stuffed)} bytes")
    crc = spnet_crc(stuffed[REQUEST_CRC_START:])
    return stuffed + crc.to_bytes(CRC_LENGTH, "big")


def parse_sp_reply(raw: bytes) -> bytes:
    """Check the checksum of a reply and return its destuffed message.

    The message is everything between the FF FF preamble and the checksum.
    """
    raw = bytes(raw)
    if len(raw) < MIN_REPLY_LENGTH:
        raise SpReplyError(f"reply too short: {len(raw)} bytes")
    received = int.from_bytes(raw[-CRC_LENGTH:], "big")
    calculated = spnet_crc(raw[REPLY_CRC_START:-CRC_LENGTH])
    message = destuff(raw[REPLY_PREAMBLE_LENGTH:-CRC_LENGTH])
    if received != calculated:
        raise SpReplyError(
            f"len: {len(raw):02X} CRC error: {received:04X} vs {calculated:04X}", message
        )
    return message


class FrameProcessor:
    """Forwards queued Modbus payloads to the SP device and queues its replies."""

    def __init__(
        self,
        link: Link,
        pdu_queue: "queue.Queue[bytes]",
        message_queue: "queue.Queue[bytes]",
        *,
        poll_interval: float = READ_TIMEOUT,
        reply_size: int = REPLY_CHUNK,
    ) -> None:
        self.link = link
        self.pdu_queue = pdu_queue
        self.message_queue = message_queue
        self.poll_interval = poll_interval
        self.reply_size = reply_size

    def process(self, pdu: bytes) -> Optional[bytes]:
        """Exchange one payload with the SP device; return the message queued, if any.

        A reply with a bad checksum is reported but still forwarded.
        """
        pdu = bytes(pdu)
        log.info("Received PDU (%d bytes): %s", len(pdu), _hex(pdu))
        try:
            request = build_sp_request(pdu)
        except ValueError as error:
            log.error("%s", error)
            return None
        log.info("Response for send to SP (%d bytes): %s", len(request), _hex(request))
        self.link.write(request)

        raw = self.link.read(self.reply_size)
        try:
            message = parse_sp_reply(raw)
        except SpReplyError as error:
            log.error("%s", error)
            if error.payload is None:
                return None
            message = error.payload
        else:
            log.info("CRC OK")

        limit = 2 * len(pdu)
        if len(message) > limit:
            log.error("deStaff Error: %d bytes exceed %d", len(message), limit)
            return None
        log.info("deStaff msg %d bytes: %s", len(message), _hex(message))

        try:
            self.message_queue.put_nowait(message)
        except queue.Full:
            log.error("Queue full! Dropping PDU")
            return None
        return message

    def run(self, stop: threading.Event) -> None:
        """Process queued payloads until ``stop`` is set."""
        while not stop.is_set():
            try:
                pdu = self.pdu_queue.get(timeout=self.poll_interval)
            except queue.Empty:
                continue
            self.process(pdu)