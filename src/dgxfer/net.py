from __future__ import annotations

import random
import socket
import time
from dataclasses import dataclass
from typing import Tuple

Address = Tuple[str, int]


@dataclass(frozen=True, slots=True)
class Impairment:
    loss_rate: float = 0.0
    delay_ms: int = 0

    def should_drop(self) -> bool:
        return self.loss_rate > 0 and random.random() < self.loss_rate

    def sleep_if_needed(self) -> None:
        if self.delay_ms > 0:
            time.sleep(self.delay_ms / 1000.0)


class UdpEndpoint:
    """A datagram socket plus optional simulated loss/delay.

    A *connected* endpoint talks to one fixed peer through ``send``/``recv``;
    the kernel then discards datagrams from anyone else. A *listening*
    endpoint answers whoever wrote to it through ``sendto``/``recvfrom``.
    """

    def __init__(
        self,
        sock: socket.socket,
        impairment: Impairment | None = None,
    ):
        self.sock = sock
        self.impairment = impairment or Impairment()

    @classmethod
    def listening(
        cls,
        host: str,
        port: int,
        timeout_ms: int = 0,
        impairment: Impairment | None = None,
    ) -> "UdpEndpoint":
        sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
        sock.bind((host, port))
        if timeout_ms > 0:
            sock.settimeout(timeout_ms / 1000.0)
        return cls(sock, impairment)

    @classmethod
    def connected(
        cls,
        host: str,
        port: int,
        timeout_ms: int,
        impairment: Impairment | None = None,
    ) -> "UdpEndpoint":
        if timeout_ms <= 0:
            raise ValueError("a sending endpoint needs a positive timeout")
        sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
        sock.settimeout(timeout_ms / 1000.0)
        sock.connect((host, port))
        return cls(sock, impairment)

    @property
    def address(self) -> Address:
        return self.sock.getsockname()

    def send(self, data: bytes) -> None:
        if self.impairment.should_drop():
            return
        self.impairment.sleep_if_needed()
        self.sock.send(data)

    def recv(self, bufsize: int = 65535) -> bytes:
        while True:
            data = self.sock.recv(bufsize)
            if self.impairment.should_drop():
                continue
            self.impairment.sleep_if_needed()
            return data

    def discard_pending(self) -> int:
        """Drop every datagram already queued on the socket without blocking."""
        dropped = 0
        timeout = self.sock.gettimeout()
        self.sock.setblocking(False)
        try:
            while True:
                try:
                    self.sock.recv(65535)
                except BlockingIOError:
                    break
                except ConnectionRefusedError:
                    # queued ICMP error from an earlier send; it is reported once
                    continue
                dropped += 1
        finally:
            self.sock.settimeout(timeout)
        return dropped

    def sendto(self, data: bytes, addr: Address) -> None:
        if self.impairment.should_drop():
            return
        self.impairment.sleep_if_needed()
        self.sock.sendto(data, addr)

    def recvfrom(self, bufsize: int = 65535) -> Tuple[bytes, Address]:
        while True:
            data, addr = self.sock.recvfrom(bufsize)
            if self.impairment.should_drop():
                continue
            self.impairment.sleep_if_needed()
            return data, addr

    def close(self) -> None:
        self.sock.close()
