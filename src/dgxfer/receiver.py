from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass, field
from pathlib import Path, PurePosixPath
from typing import Optional

from .constants import MAX_RATE_BPS
from .hashing import md5_bytes
from .net import Address, UdpEndpoint
from .packet import CommandKind, ControlFrame, DataFrame, build_ack, build_nak, decode_frame


@dataclass(slots=True)
class ReceiveResult:
    path: Optional[Path] = None
    bytes_received: int = 0
    frames: int = 0
    rejected: int = 0
    digest_ok: bool = False
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
        return (self.bytes_received * 8 / 1_000_000) / self.duration_s


@dataclass(slots=True)
class Receiver:
    """Receiving side of the acknowledgment contract, for loopback use.

    Every well-formed frame is answered ``OK`` (or ``OKSS`` with
    ``rate_bps`` when set); corrupt or out-of-sequence frames get ``NAK``.
    Data is buffered in memory and written to ``out_dir`` when ``STOP``
    arrives and the MD5 digest matches.
    """

    udp: UdpEndpoint
    out_dir: Path
    rate_bps: Optional[int] = None
    stop_event: threading.Event = field(default_factory=threading.Event)

    name: Optional[str] = None
    size: Optional[int] = None
    digest: Optional[str] = None
    buffer: Optional[bytearray] = None

    def __post_init__(self) -> None:
        if self.rate_bps is not None and not 0 <= self.rate_bps <= MAX_RATE_BPS:
            raise ValueError(f"rate out of range: {self.rate_bps}")

    def _reply(self, ok: bool, addr: Address, result: ReceiveResult) -> None:
        if not ok:
            result.rejected += 1
        self.udp.sendto(build_ack(self.rate_bps) if ok else build_nak(), addr)

    def _on_control(self, frame: ControlFrame, result: ReceiveResult) -> bool:
        cmd = frame.command
        if cmd.kind is CommandKind.NAME:
            self.name = cmd.argument
        elif cmd.kind is CommandKind.SIZE:
            self.size = int(cmd.argument)
        elif cmd.kind is CommandKind.HASH:
            self.digest = cmd.argument.lower()
        elif cmd.kind is CommandKind.START:
            if self.name is None or self.size is None or self.digest is None:
                logging.warning("START before NAME/SIZE/HASH")
                return False
            if self.buffer is None:
                self.buffer = bytearray(self.size)
        elif cmd.kind is CommandKind.STOP:
            return self._finish(result)
        logging.debug("receiver got %s", cmd.to_text())
        return True

    def _on_data(self, frame: DataFrame, result: ReceiveResult) -> bool:
        if self.buffer is None or self.size is None:
            logging.warning("DATA at offset %d before START", frame.offset)
            return False
        if frame.offset >= self.size:
            logging.warning("DATA at offset %d past declared size %d", frame.offset, self.size)
            return False
        content = frame.trimmed(self.size)
        self.buffer[frame.offset : frame.offset + len(content)] = content
        result.bytes_received = max(result.bytes_received, frame.offset + len(content))
        return True

    def _finish(self, result: ReceiveResult) -> bool:
        if self.buffer is None or self.name is None:
            logging.warning("STOP before START")
            return False
        data = bytes(self.buffer)
        result.digest_ok = md5_bytes(data) == self.digest
        if not result.digest_ok:
            logging.error("digest mismatch for %s; expected %s", self.name, self.digest)
            return False
        # the sender may name a path on its own machine; keep only the final component
        path = self.out_dir / PurePosixPath(self.name.replace("\\", "/")).name
        path.write_bytes(data)
        result.path = path
        logging.info("received %s (%d bytes)", path, len(data))
        return True

    def run(self) -> ReceiveResult:
        result = ReceiveResult()

        while not self.stop_event.is_set():
            try:
                raw, addr = self.udp.recvfrom()
            except TimeoutError:
                continue
            result.frames += 1

            try:
                frame = decode_frame(raw)
            except ValueError as exc:
                logging.debug("bad frame from %s: %s", addr, exc)
                self._reply(False, addr, result)
                continue

            if isinstance(frame, DataFrame):
                ok = self._on_data(frame, result)
            else:
                ok = self._on_control(frame, result)
            self._reply(ok, addr, result)

            if ok and isinstance(frame, ControlFrame) and frame.command.kind is CommandKind.STOP:
                break

        result.end_ts = time.monotonic()
        return result
