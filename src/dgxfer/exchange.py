from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional, Protocol

from .constants import ACK_SIZE, FRAME_SIZE, MAX_ATTEMPTS
from .packet import Ack, parse_ack


class TransferError(Exception):
    pass


class RetryExhausted(TransferError):
    def __init__(self, attempts: int):
        super().__init__(f"no acknowledgment after {attempts} attempts")
        self.attempts = attempts


class Transport(Protocol):
    def send(self, data: bytes) -> None: ...

    def recv(self, bufsize: int = ...) -> bytes: ...

    def discard_pending(self) -> int: ...


@dataclass(frozen=True, slots=True)
class Delivery:
    ack: Ack
    attempts: int

    @property
    def retransmits(self) -> int:
        return self.attempts - 1


@dataclass(slots=True)
class ReliableExchange:
    """Stop-and-wait delivery of one frame with a bounded retry budget.

    The same frame bytes are resent on every attempt. Send errors, receive
    timeouts and rejections all just cost an attempt.
    """

    transport: Transport
    max_attempts: int = MAX_ATTEMPTS

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")

    def send(self, frame: bytes) -> Delivery:
        if len(frame) != FRAME_SIZE:
            raise ValueError(f"frame must be {FRAME_SIZE} bytes, got {len(frame)}")

        # late or duplicate acks for an earlier frame must not answer this one
        stale = self.transport.discard_pending()
        if stale:
            logging.debug("discarded %d stale response(s)", stale)

        for attempt in range(1, self.max_attempts + 1):
            response: Optional[bytes] = None
            try:
                self.transport.send(frame)
                response = self.transport.recv(ACK_SIZE)
            except TimeoutError:
                logging.debug("attempt %d: no response", attempt)
            except OSError as exc:
                logging.debug("attempt %d: transport error: %s", attempt, exc)

            ack = parse_ack(response)
            if ack.accepted:
                return Delivery(ack=ack, attempts=attempt)
            if response is not None:
                logging.debug("attempt %d: rejected with %r", attempt, response.rstrip(b"\x00"))

        raise RetryExhausted(self.max_attempts)
