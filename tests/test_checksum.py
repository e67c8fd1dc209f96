from __future__ import annotations

import os
import struct

import pytest

from dgxfer.checksum import checksum, trailer, verify
from dgxfer.constants import FRAME_SIZE, PAYLOAD_SIZE


def bitwise_crc32c(data: bytes) -> int:
    crc = 0xFFFFFFFF
    for b in data:
        crc ^= b
        for _ in range(8):
            crc = (crc >> 1) ^ 0x82F63B78 if crc & 1 else crc >> 1
    return crc ^ 0xFFFFFFFF


@pytest.mark.parametrize(
    "data, expected",
    [
        (b"", 0x00000000),
        (b"123456789", 0xE3069283),
        (b"\x00" * 32, 0x8A9136AA),
        (b"\xff" * 32, 0x62A8AB43),
        (bytes(range(32)), 0x46DD794E),
    ],
)
def test_known_vectors(data, expected):
    assert checksum(data) == expected


def test_matches_bitwise_reference():
    payload = os.urandom(PAYLOAD_SIZE)
    assert checksum(payload) == bitwise_crc32c(payload)


def test_trailer_is_big_endian():
    payload = b"START".ljust(PAYLOAD_SIZE, b"\x00")
    assert trailer(payload) == struct.pack(">I", bitwise_crc32c(payload))


def test_trailer_rejects_partial_payload():
    with pytest.raises(ValueError):
        trailer(b"short")


def test_verify_detects_flipped_bit():
    payload = os.urandom(PAYLOAD_SIZE)
    frame = bytearray(payload + trailer(payload))
    assert verify(bytes(frame))
    frame[100] ^= 0x01
    assert not verify(bytes(frame))


def test_verify_rejects_wrong_length():
    assert not verify(b"\x00" * (FRAME_SIZE - 1))
