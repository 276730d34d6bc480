import itertools
import queue
import threading

import pytest

from spgateway.crc import modbus_crc16
from spgateway.indicator import RgbIndicator
from spgateway.modbus import (
    FrameAssembler,
    ModbusFrameError,
    ModbusReceiver,
    Request,
    decode_request,
    exception_response,
)

EXAMPLE = bytes.fromhex(
    "01 10 00 02 00 0A 14 01 00 86 1F 1D 33 33 32 02 09 30 30 30 09 30 30 33 0C 03 00"
)


def _rtu(body: bytes) -> bytes:
    return body + modbus_crc16(body).to_bytes(2, "little")


class FakeLink:
    def __init__(self, chunks=(), on_empty=None):
        self.chunks = list(chunks)
        self.on_empty = on_empty
        self.written = []

    def read(self, size):
        if self.chunks:
            return self.chunks.pop(0)
        if self.on_empty is not None:
            self.on_empty()
        return b""

    def write(self, data):
        self.written.append(bytes(data))
        return len(data)


def _clock(step=1.0):
    ticks = itertools.count(1)
    return lambda: next(ticks) * step


def test_decode_worked_example():
    request = decode_request(_rtu(EXAMPLE), 1)
    assert request == Request(1, 0x10, EXAMPLE[7:-1])


def test_decode_keeps_nonzero_last_byte():
    body = bytes.fromhex("01 10 00 00 00 01 02 AA BB")
    assert decode_request(_rtu(body), 1).payload == b"\xaa\xbb"


def test_decode_other_function_has_no_payload():
    body = bytes.fromhex("01 03 00 00 00 0A")
    request = decode_request(_rtu(body), 1)
    assert (request.function, request.payload) == (0x03, b"")


def test_decode_too_short():
    with pytest.raises(ModbusFrameError) as info:
        decode_request(b"\x01\x10\x00", 1)
    assert info.value.code == 0x04


def test_decode_address_mismatch():
    with pytest.raises(ModbusFrameError, match="address"):
        decode_request(_rtu(b"\x02" + EXAMPLE[1:]), 1)


def test_decode_crc_error():
    frame = bytearray(_rtu(EXAMPLE))
    frame[-1] ^= 0xFF
    with pytest.raises(ModbusFrameError, match="CRC"):
        decode_request(bytes(frame), 1)


def test_decode_truncated_data():
    body = bytes.fromhex("01 10 00 00 00 03 05 AA BB")
    with pytest.raises(ModbusFrameError):
        decode_request(_rtu(body), 1)


def test_exception_response_known_frame():
    assert exception_response(1, 3, 2) == bytes.fromhex("01 83 02 C0 F1")


def test_exception_response_layout():
    response = exception_response(1, 0x10, 4)
    assert response[:3] == bytes((1, 0x10 | 0x80, 4))
    assert modbus_crc16(response) == 0


def test_assembler_waits_for_silence():
    assembler = FrameAssembler(timeout=0.5)
    assembler.feed(b"\x01\x02", 1.0)
    assembler.feed(b"\x03", 1.2)
    assert assembler.poll(1.5) is None
    assert assembler.poll(1.8) == b"\x01\x02\x03"
    assert assembler.pending == 0
    assert assembler.poll(5.0) is None


def test_assembler_ignores_empty_chunk():
    assembler = FrameAssembler(timeout=0.5)
    assembler.feed(b"", 1.0)
    assert assembler.pending == 0
    assert assembler.poll(10.0) is None


def test_assembler_overflow_discards():
    assembler = FrameAssembler(max_length=4, timeout=0.5)
    assembler.feed(b"\x01\x02\x03", 1.0)
    with pytest.raises(ModbusFrameError):
        assembler.feed(b"\x04\x05", 1.1)
    assert assembler.pending == 0


def test_receiver_queues_payload_and_remembers_origin():
    q = queue.Queue()
    receiver = ModbusReceiver(FakeLink(), q, 1)
    assert receiver.handle_frame(_rtu(EXAMPLE)) is None
    assert q.get_nowait() == EXAMPLE[7:-1]
    assert (receiver.address, receiver.function) == (1, 0x10)


def test_receiver_other_function_keeps_origin():
    q = queue.Queue()
    receiver = ModbusReceiver(FakeLink(), q, 1)
    receiver.handle_frame(_rtu(bytes.fromhex("01 03 00 00 00 0A")))
    assert q.get_nowait() == b""
    assert (receiver.address, receiver.function) == (0, 0)


def test_receiver_rejects_bad_frame():
    link = FakeLink()
    indicator = RgbIndicator()
    q = queue.Queue()
    receiver = ModbusReceiver(link, q, 1, indicator=indicator)
    response = receiver.handle_frame(_rtu(b"\x07" + EXAMPLE[1:]))
    assert response == exception_response(0, 0, 4)
    assert link.written == [response]
    assert indicator.state == (False, False, True)
    assert q.empty()


def test_receiver_error_uses_last_origin():
    link = FakeLink()
    receiver = ModbusReceiver(link, queue.Queue(), 1)
    receiver.handle_frame(_rtu(EXAMPLE))
    response = receiver.handle_frame(b"\x01\x10")
    assert response == exception_response(1, 0x10, 4)


def test_receiver_drops_when_queue_full():
    link = FakeLink()
    q = queue.Queue(maxsize=1)
    q.put(b"old")
    receiver = ModbusReceiver(link, q, 1)
    assert receiver.handle_frame(_rtu(EXAMPLE)) is None
    assert q.get_nowait() == b"old"
    assert q.empty()
    assert link.written == []


def test_receiver_run_assembles_chunks():
    stop = threading.Event()
    frame = _rtu(EXAMPLE)
    link = FakeLink([frame[:10], frame[10:]], on_empty=stop.set)
    q = queue.Queue()
    receiver = ModbusReceiver(link, q, 1, clock=_clock())
    receiver.run(stop)
    assert q.get_nowait() == EXAMPLE[7:-1]
    assert link.written == []


def test_receiver_run_reports_overflow():
    stop = threading.Event()
    link = FakeLink([b"\x01" * 5], on_empty=stop.set)
    receiver = ModbusReceiver(
        link, queue.Queue(), 1, assembler=FrameAssembler(max_length=4), clock=_clock()
    )
    receiver.run(stop)
    assert link.written == [exception_response(0, 0, 4)]