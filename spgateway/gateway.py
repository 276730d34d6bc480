"""The gateway: wires the Modbus receiver, the SP processor and the responder together."""

from __future__ import annotations

import argparse
import logging
import queue
import threading
from typing import Optional, Sequence

import serial

from .config import GatewayConfig
from .indicator import RgbIndicator
from .modbus import FrameAssembler, Link, ModbusReceiver
from .processor import FrameProcessor
from .responder import ModbusResponder

log = logging.getLogger(__name__)

_JOIN_TIMEOUT = 2.0


class Gateway:
    """Runs the three gateway workers on their own threads.

    Links that are not supplied are opened from the configuration on start
    and closed on stop.
    """

    def __init__(
        self,
        config: Optional[GatewayConfig] = None,
        *,
        modbus_link: Optional[Link] = None,
        sp_link: Optional[Link] = None,
        indicator: Optional[RgbIndicator] = None,
    ) -> None:
        self.config = config if config is not None else GatewayConfig()
        self.indicator = indicator if indicator is not None else RgbIndicator()
        self.modbus_link = modbus_link
        self.sp_link = sp_link
        self.pdu_queue: "queue.Queue[bytes]" = queue.Queue(maxsize=self.config.queue_size)
        self.message_queue: "queue.Queue[bytes]" = queue.Queue(maxsize=self.config.queue_size)
        self.receiver: Optional[ModbusReceiver] = None
        self.responder: Optional[ModbusResponder] = None
        self.processor: Optional[FrameProcessor] = None
        self._opened: list = []
        self._stop = threading.Event()
        self._threads: list[threading.Thread] = []

    @property
    def running(self) -> bool:
        """Whether any worker thread is alive."""
        return any(thread.is_alive() for thread in self._threads)

    def _open_links(self) -> None:
        try:
            if self.modbus_link is None:
                self.modbus_link = self.config.modbus_settings().open()
                self._opened.append(self.modbus_link)
                log.info("slave_uart initialized.")
            if self.sp_link is None:
                self.sp_link = self.config.sp_settings().open()
                self._opened.append(self.sp_link)
                log.info("sp_uart initialized.")
        except Exception:
            self._close_links()
            raise

    def _close_links(self) -> None:
        for link in self._opened:
            link.close()
            if link is self.modbus_link:
                self.modbus_link = None
            if link is self.sp_link:
                self.sp_link = None
        self._opened.clear()

    def start(self) -> None:
        """Open the lines and start the receiving, sending and processing workers."""
        if self._threads:
            raise RuntimeError("gateway already started")
        self._open_links()
        cfg = self.config
        lock = threading.Lock()
        self.receiver = ModbusReceiver(
            self.modbus_link,
            self.pdu_queue,
            cfg.slave_address,
            indicator=self.indicator,
            lock=lock,
            assembler=FrameAssembler(cfg.max_pdu_length + 3, cfg.frame_timeout),
        )
        self.responder = ModbusResponder(
            self.modbus_link,
            self.message_queue,
            self.receiver,
            indicator=self.indicator,
            lock=lock,
            poll_interval=cfg.read_timeout,
        )
        self.processor = FrameProcessor(
            self.sp_link,
            self.pdu_queue,
            self.message_queue,
            poll_interval=cfg.read_timeout,
        )
        self.indicator.blue()
        self._stop.clear()
        workers = (
            ("mb_receive", self.receiver.run, "MB Receive"),
            ("mb_send", self.responder.run, "MB Send"),
            ("processor", self.processor.run, "Processor"),
        )
        for name, target, label in workers:
            thread = threading.Thread(target=target, args=(self._stop,), name=name, daemon=True)
            thread.start()
            self._threads.append(thread)
            log.info("%s task created successfully", label)

    def stop(self) -> None:
        """Stop the workers and close the lines opened by ``start``."""
        self._stop.set()
        for thread in self._threads:
            thread.join(timeout=_JOIN_TIMEOUT)
        self._threads.clear()
        self._close_links()

    def __enter__(self) -> "Gateway":
        self.start()
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.stop()


def _parse_args(argv: Optional[Sequence[str]]) -> tuple[argparse.ArgumentParser, argparse.Namespace]:
    defaults = GatewayConfig()
    parser = argparse.ArgumentParser(
        prog="spgateway", description="Modbus RTU slave forwarding requests to an SP network device."
    )
    parser.add_argument("--modbus-port", default=defaults.modbus_port, help="Modbus serial port or URL")
    parser.add_argument("--sp-port", default=defaults.sp_port, help="SP serial port or URL")
    parser.add_argument("--modbus-baud", type=int, default=defaults.modbus_baudrate)
    parser.add_argument("--sp-baud", type=int, default=defaults.sp_baudrate)
    parser.add_argument("--slave-address", type=lambda text: int(text, 0), default=defaults.slave_address)
    parser.add_argument("--rs485", action="store_true", help="enable RS-485 half-duplex mode")
    parser.add_argument("-v", "--verbose", action="store_true")
    return parser, parser.parse_args(argv)


def main(argv: Optional[Sequence[str]] = None) -> int:
    """Run the gateway until interrupted."""
    parser, args = _parse_args(argv)
    logging.basicConfig(level=logging.INFO if args.verbose else logging.WARNING)
    try:
        config = GatewayConfig(
            modbus_port=args.modbus_port,
            sp_port=args.sp_port,
            modbus_baudrate=args.modbus_baud,
            sp_baudrate=args.sp_baud,
            slave_address=args.slave_address,
            rs485=args.rs485,
        )
    except ValueError as error:
        parser.error(str(error))
    gateway = Gateway(config)
    try:
        gateway.start()
    except serial.SerialException as error:
        log.error("Failed to start gateway: %s", error)
        return 1
    try:
        threading.Event().wait()
    except KeyboardInterrupt:
        pass
    finally:
        gateway.stop()
    return 0