"""Checksums of the two line protocols."""

from __future__ import annotations

MODBUS_POLY = 0xA001
SPNET_POLY = 0x1021


def modbus_crc16(data: bytes) -> int:
    """Modbus RTU CRC-16 (reflected 0xA001, initial 0xFFFF)."""
    crc = 0xFFFF
    for byte in bytes(data):
        crc ^= byte
        for _ in range(8):
            crc = (crc >> 1) ^ MODBUS_POLY if crc & 1 else crc >> 1
    return crc


def spnet_crc(data: bytes) -> int:
    """SP network checksum: CRC-16 with polynomial 0x1021 and initial value 0.

    It covers the bytes following DLE SOH up to and including ETX, stuffing bytes included.
    """
    crc = 0
    for byte in bytes(data):
        crc ^= byte << 8
        for _ in range(8):
            crc = ((crc << 1) ^ SPNET_POLY if crc & 0x8000 else crc << 1) & 0xFFFF
    return crc