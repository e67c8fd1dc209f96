from __future__ import annotations

import struct

import crcmod.predefined

from .constants import CRC_SIZE, FRAME_SIZE, PAYLOAD_SIZE

# Castagnoli, reflected poly 0x82F63B78, ~0 seed, complemented result
_crc32c = crcmod.predefined.mkCrcFun("crc-32c")


def checksum(payload: bytes) -> int:
    return _crc32c(payload) & 0xFFFFFFFF


def trailer(payload: bytes) -> bytes:
    """Big-endian CRC32C of a full payload region, ready to append."""
    if len(payload) != PAYLOAD_SIZE:
        raise ValueError(f"payload must be {PAYLOAD_SIZE} bytes, got {len(payload)}")
    return struct.pack("!I", checksum(payload))


def verify(frame: bytes) -> bool:
    if len(frame) != FRAME_SIZE:
        return False
    (stored,) = struct.unpack("!I", frame[PAYLOAD_SIZE : PAYLOAD_SIZE + CRC_SIZE])
    return stored == checksum(frame[:PAYLOAD_SIZE])
