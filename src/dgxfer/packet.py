from __future__ import annotations

import enum
import string
import struct
from dataclasses import dataclass
from typing import Optional, Union

from .checksum import trailer, verify
from .constants import (
    ACK_NAK,
    ACK_OK,
    ACK_OK_RATE,
    ACK_RATE_FORMAT,
    ACK_SIZE,
    CHUNK_SIZE,
    DATA_HEADER_FORMAT,
    DATA_HEADER_SIZE,
    DATA_TAG,
    FRAME_SIZE,
    MAX_OFFSET,
    MAX_RATE_BPS,
    PAYLOAD_SIZE,
)


class ChecksumError(ValueError):
    pass


class CommandKind(enum.Enum):
    NAME = "NAME"
    SIZE = "SIZE"
    HASH = "HASH"
    START = "START"
    STOP = "STOP"

    @property
    def takes_argument(self) -> bool:
        return self in (CommandKind.NAME, CommandKind.SIZE, CommandKind.HASH)


@dataclass(frozen=True, slots=True)
class Command:
    kind: CommandKind
    argument: str = ""

    def __post_init__(self) -> None:
        if self.kind.takes_argument:
            if not self.argument:
                raise ValueError(f"{self.kind.value} needs an argument")
        elif self.argument:
            raise ValueError(f"{self.kind.value} takes no argument")
        if "\x00" in self.argument:
            raise ValueError("command argument may not contain NUL")

    @staticmethod
    def name(path: str) -> "Command":
        return Command(CommandKind.NAME, path)

    @staticmethod
    def size(length: int) -> "Command":
        if length < 0:
            raise ValueError(f"negative size: {length}")
        return Command(CommandKind.SIZE, str(length))

    @staticmethod
    def hash(hexdigest: str) -> "Command":
        if not hexdigest or any(c not in string.hexdigits for c in hexdigest):
            raise ValueError(f"not a hex digest: {hexdigest!r}")
        return Command(CommandKind.HASH, hexdigest)

    @staticmethod
    def start() -> "Command":
        return Command(CommandKind.START)

    @staticmethod
    def stop() -> "Command":
        return Command(CommandKind.STOP)

    def to_text(self) -> str:
        if self.kind.takes_argument:
            return f"{self.kind.value}={self.argument}"
        return self.kind.value

    def to_bytes(self) -> bytes:
        raw = self.to_text().encode("ascii")
        # keep at least one NUL so the receiver can find the end of the text
        if len(raw) >= PAYLOAD_SIZE:
            raise ValueError(f"command too long for one frame: {len(raw)} bytes")
        return raw

    @staticmethod
    def from_text(text: str) -> "Command":
        for kind in (CommandKind.START, CommandKind.STOP):
            if text == kind.value:
                return Command(kind)
        prefix, sep, argument = text.partition("=")
        if not sep:
            raise ValueError(f"unknown command: {text!r}")
        try:
            kind = CommandKind(prefix)
        except ValueError:
            raise ValueError(f"unknown command: {text!r}") from None
        if kind is CommandKind.SIZE:
            return Command.size(int(argument))
        if kind is CommandKind.HASH:
            return Command.hash(argument)
        if kind is CommandKind.NAME:
            return Command.name(argument)
        raise ValueError(f"unknown command: {text!r}")


@dataclass(frozen=True, slots=True)
class ControlFrame:
    command: Command


@dataclass(frozen=True, slots=True)
class DataFrame:
    offset: int
    chunk: bytes

    def trimmed(self, total_size: int) -> bytes:
        """Drop the zero fill of a final short chunk.

        The chunk length is not on the wire; only the sender's declared
        total size tells how much of the last slot is file content.
        """
        remaining = max(0, total_size - self.offset)
        return self.chunk[: min(CHUNK_SIZE, remaining)]


Frame = Union[ControlFrame, DataFrame]


def _seal(payload: bytes) -> bytes:
    padded = payload.ljust(PAYLOAD_SIZE, b"\x00")
    return padded + trailer(padded)


def encode_control(command: Command) -> bytes:
    return _seal(command.to_bytes())


def encode_data(offset: int, chunk: bytes) -> bytes:
    if len(chunk) > CHUNK_SIZE:
        raise ValueError(f"chunk too large: {len(chunk)} > {CHUNK_SIZE}")
    if not 0 <= offset <= MAX_OFFSET:
        raise ValueError(f"offset out of range: {offset}")
    return _seal(struct.pack(DATA_HEADER_FORMAT, DATA_TAG, offset) + chunk)


def decode_frame(raw: bytes) -> Frame:
    if len(raw) != FRAME_SIZE:
        raise ValueError(f"frame must be {FRAME_SIZE} bytes, got {len(raw)}")
    if not verify(raw):
        raise ChecksumError("checksum mismatch")

    payload = raw[:PAYLOAD_SIZE]
    if payload.startswith(DATA_TAG):
        _, offset = struct.unpack(DATA_HEADER_FORMAT, payload[:DATA_HEADER_SIZE])
        return DataFrame(offset=offset, chunk=payload[DATA_HEADER_SIZE:])

    text = payload.split(b"\x00", 1)[0].decode("ascii")
    return ControlFrame(Command.from_text(text))


class AckStatus(enum.Enum):
    ACCEPTED = "accepted"
    ACCEPTED_WITH_RATE = "accepted_with_rate"
    REJECTED = "rejected"


@dataclass(frozen=True, slots=True)
class Ack:
    status: AckStatus
    rate_bps: Optional[int] = None

    @property
    def accepted(self) -> bool:
        return self.status is not AckStatus.REJECTED


REJECTED = Ack(AckStatus.REJECTED)


def parse_ack(buf: Optional[bytes]) -> Ack:
    """Interpret a receiver response; ``None`` means nothing arrived."""
    if not buf:
        return REJECTED
    rate_end = len(ACK_OK_RATE) + struct.calcsize(ACK_RATE_FORMAT)
    if buf.startswith(ACK_OK_RATE) and len(buf) >= rate_end:
        (bps,) = struct.unpack(ACK_RATE_FORMAT, buf[len(ACK_OK_RATE) : rate_end])
        return Ack(AckStatus.ACCEPTED_WITH_RATE, bps)
    if buf.startswith(ACK_OK):
        return Ack(AckStatus.ACCEPTED)
    return REJECTED


def build_ack(rate_bps: Optional[int] = None) -> bytes:
    if rate_bps is None:
        body = ACK_OK
    else:
        if not 0 <= rate_bps <= MAX_RATE_BPS:
            raise ValueError(f"rate out of range: {rate_bps}")
        body = ACK_OK_RATE + struct.pack(ACK_RATE_FORMAT, rate_bps)
    return body.ljust(ACK_SIZE, b"\x00")


def build_nak() -> bytes:
    return ACK_NAK.ljust(ACK_SIZE, b"\x00")
