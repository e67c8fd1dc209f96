from __future__ import annotations

import struct

FRAME_SIZE = 4096
CRC_SIZE = 4
PAYLOAD_SIZE = FRAME_SIZE - CRC_SIZE  # region covered by the CRC

DATA_TAG = b"DATA"
DATA_HEADER_FORMAT = "!4sI"  # tag, offset
DATA_HEADER_SIZE = struct.calcsize(DATA_HEADER_FORMAT)
CHUNK_SIZE = PAYLOAD_SIZE - DATA_HEADER_SIZE

ACK_SIZE = 16
ACK_OK = b"OK"
ACK_OK_RATE = b"OKSS"
ACK_RATE_FORMAT = "!I"
ACK_NAK = b"NAK"

MAX_ATTEMPTS = 8
MAX_OFFSET = 0xFFFFFFFF
MAX_RATE_BPS = 0xFFFFFFFF

DEFAULT_HOST = "127.0.0.1"
DEFAULT_PORT = 4000
DEFAULT_TIMEOUT_MS = 1000
