"""Gateway configuration: serial line settings and protocol parameters."""

from __future__ import annotations

from dataclasses import dataclass

import serial
import serial.rs485

MB_BAUD_RATE = 9600
SP_BAUD_RATE = 9600
SLAVE_ADDRESS = 0x01
SP_ADDRESS = 0x00
QUEUE_SIZE = 10
FRAME_TIMEOUT = 0.004
READ_TIMEOUT = 0.1
BUFFER_SIZE = 512
MAX_PDU_LENGTH = 180


@dataclass(frozen=True)
class SerialSettings:
    """Parameters of one 8N1 serial line without flow control."""

    port: str
    baudrate: int = 9600
    timeout: float = READ_TIMEOUT
    rs485: bool = False

    def __post_init__(self) -> None:
        if self.baudrate <= 0:
            raise ValueError(f"baud rate must be positive, got {self.baudrate}")
        if self.timeout < 0:
            raise ValueError(f"timeout must not be negative, got {self.timeout}")

    def open(self) -> serial.SerialBase:
        """Open the line; RS-485 half-duplex direction control is enabled on request."""
        link = serial.serial_for_url(
            self.port,
            baudrate=self.baudrate,
            bytesize=serial.EIGHTBITS,
            parity=serial.PARITY_NONE,
            stopbits=serial.STOPBITS_ONE,
            timeout=self.timeout,
            xonxoff=False,
            rtscts=False,
            do_not_open=True,
        )
        if self.rs485:
            link.rs485_mode = serial.rs485.RS485Settings()
        link.open()
        return link


def _check_byte(name: str, value: int) -> None:
    if not 0 <= value <= 0xFF:
        raise ValueError(f"{name} must fit in one byte, got {value}")


@dataclass(frozen=True)
class GatewayConfig:
    """Settings of the Modbus side and the SP side of the gateway."""

    modbus_port: str = "/dev/ttyUSB0"
    sp_port: str = "/dev/ttyUSB1"
    modbus_baudrate: int = MB_BAUD_RATE
    sp_baudrate: int = SP_BAUD_RATE
    slave_address: int = SLAVE_ADDRESS
    sp_address: int = SP_ADDRESS
    queue_size: int = QUEUE_SIZE
    frame_timeout: float = FRAME_TIMEOUT
    read_timeout: float = READ_TIMEOUT
    buffer_size: int = BUFFER_SIZE
    max_pdu_length: int = MAX_PDU_LENGTH
    rs485: bool = False

    def __post_init__(self) -> None:
        _check_byte("slave address", self.slave_address)
        _check_byte("SP address", self.sp_address)
        for name in ("modbus_baudrate", "sp_baudrate", "queue_size", "buffer_size", "max_pdu_length"):
            if getattr(self, name) <= 0:
                raise ValueError(f"{name} must be positive, got {getattr(self, name)}")
        for name in ("frame_timeout", "read_timeout"):
            if getattr(self, name) < 0:
                raise ValueError(f"{name} must not be negative, got {getattr(self, name)}")

    def modbus_settings(self) -> SerialSettings:
        """Serial settings of the Modbus line."""
        return SerialSettings(self.modbus_port, self.modbus_baudrate, self.read_timeout, self.rs485)

    def sp_settings(self) -> SerialSettings:
        """Serial settings of the SP line."""
        return SerialSettings(self.sp_port, self.sp_baudrate, self.read_timeout, self.rs485)