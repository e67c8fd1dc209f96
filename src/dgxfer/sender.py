from __future__ import annotations

import enum
import logging
import threading
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterator, List, Optional, Tuple, Union

from .constants import CHUNK_SIZE, MAX_OFFSET
from .exchange import Delivery, ReliableExchange, RetryExhausted, TransferError
from .hashing import md5_bytes
from .packet import AckStatus, Command, encode_control, encode_data
from .rate import RateController


class TransferState(enum.Enum):
    INIT = "init"
    SEND_NAME = "send_name"
    SEND_SIZE = "send_size"
    SEND_HASH = "send_hash"
    SEND_START = "send_start"
    TRANSFER_CHUNK = "transfer_chunk"
    SEND_STOP = "send_stop"
    DONE = "done"


class TransferAborted(TransferError):
    """A control frame went unacknowledged; nothing further was sent."""

    def __init__(self, step: TransferState):
        super().__init__(f"receiver did not acknowledge {step.value}")
        self.step = step


class FatalTransferError(TransferError):
    """A data frame went unacknowledged; the receiver holds a partial file."""

    def __init__(self, offset: int):
        super().__init__(f"receiver did not acknowledge data at offset {offset}")
        self.offset = offset


class TransferCancelled(TransferError):
    def __init__(self, offset: int):
        super().__init__(f"transfer cancelled at offset {offset}")
        self.offset = offset


@dataclass(slots=True)
class TransferSession:
    total_size: int
    state: TransferState = TransferState.INIT
    offset: int = 0
    delay_ms: int = 0
    frames_sent: int = 0
    retransmits: int = 0
    chunks: List[Tuple[int, int]] = field(default_factory=list)
    start_ts: float = field(default_factory=time.monotonic)
    end_ts: float | None = None

    @property
    def duration_s(self) -> float:
        if self.end_ts is None:
            return 0.0
        return max(0.0, self.end_ts - self.start_ts)

    @property
    def throughput_mbps(self) -> float:
        if self.duration_s <= 0:
            return 0.0
        return (self.offset * 8 / 1_000_000) / self.duration_s


@dataclass(slots=True)
class FileSender:
    exchange: ReliableExchange
    data: bytes
    remote_name: str
    digest: str
    rate: RateController = field(default_factory=RateController)
    cancel: Optional[threading.Event] = None

    def __post_init__(self) -> None:
        if len(self.data) > MAX_OFFSET:
            raise ValueError(f"file too large for 32-bit offsets: {len(self.data)} bytes")
        # every control frame must be encodable before the first one goes out
        for _, command in self._control_steps():
            command.to_bytes()

    @classmethod
    def from_path(
        cls,
        exchange: ReliableExchange,
        path: Union[str, Path],
        remote_name: Optional[str] = None,
        **kwargs,
    ) -> "FileSender":
        data = Path(path).read_bytes()
        return cls(
            exchange,
            data,
            remote_name or Path(path).name,
            md5_bytes(data),
            **kwargs,
        )

    def _control_steps(self) -> Iterator[Tuple[TransferState, Command]]:
        yield TransferState.SEND_NAME, Command.name(self.remote_name)
        yield TransferState.SEND_SIZE, Command.size(len(self.data))
        yield TransferState.SEND_HASH, Command.hash(self.digest)
        yield TransferState.SEND_START, Command.start()

    def _record(self, session: TransferSession, delivery: Delivery) -> None:
        session.frames_sent += delivery.attempts
        session.retransmits += delivery.retransmits
        if delivery.ack.status is AckStatus.ACCEPTED_WITH_RATE and delivery.ack.rate_bps is not None:
            session.delay_ms = self.rate.update(delivery.ack.rate_bps)

    def _control(self, session: TransferSession, step: TransferState, command: Command) -> None:
        session.state = step
        logging.debug("sending %s", command.to_text())
        try:
            delivery = self.exchange.send(encode_control(command))
        except RetryExhausted as exc:
            logging.error("%s failed: %s", command.kind.value, exc)
            raise TransferAborted(step) from exc
        self._record(session, delivery)

    def _chunks(self, session: TransferSession) -> Iterator[bytes]:
        while session.offset < session.total_size:
            if self.cancel is not None and self.cancel.is_set():
                raise TransferCancelled(session.offset)
            yield self.data[session.offset : session.offset + CHUNK_SIZE]

    def run(self) -> TransferSession:
        session = TransferSession(total_size=len(self.data))
        logging.info("transfer start; name=%s size=%d hash=%s", self.remote_name, session.total_size, self.digest)

        for step, command in self._control_steps():
            self._control(session, step, command)

        session.state = TransferState.TRANSFER_CHUNK
        for chunk in self._chunks(session):
            try:
                delivery = self.exchange.send(encode_data(session.offset, chunk))
            except RetryExhausted as exc:
                logging.error("data at offset %d failed: %s", session.offset, exc)
                raise FatalTransferError(session.offset) from exc
            self._record(session, delivery)
            session.chunks.append((session.offset, len(chunk)))
            session.offset += len(chunk)
            logging.debug("offset %d/%d acknowledged", session.offset, session.total_size)
            self.rate.pause()

        self._control(session, TransferState.SEND_STOP, Command.stop())

        session.state = TransferState.DONE
        session.end_ts = time.monotonic()
        logging.info(
            "transfer done; frames=%d retransmits=%d throughput=%.2f Mbps",
            session.frames_sent,
            session.retransmits,
            session.throughput_mbps,
        )
        return session
