from __future__ import annotations

from typing import List, Optional, Union

import pytest

from dgxfer.packet import build_ack

Response = Union[bytes, Exception, None]
ACK = build_ack()


class ScriptedTransport:
    """Replays canned responses; ``None`` stands for a receive timeout."""

    def __init__(self, responses: Optional[List[Response]] = None, default: Response = ACK, log: Optional[list] = None):
        self.responses = list(responses or [])
        self.default = default
        self.sent: List[bytes] = []
        self.log = log if log is not None else []
        self.send_errors: set[int] = set()
        # datagrams already sitting in the socket before the next frame goes out
        self.queued: List[bytes] = []
        self.discarded: List[bytes] = []

    def send(self, data: bytes) -> None:
        index = len(self.sent)
        self.sent.append(data)
        self.log.append(("send", data))
        if index in self.send_errors:
            raise OSError("network unreachable")

    def discard_pending(self) -> int:
        n = len(self.queued)
        self.discarded.extend(self.queued)
        self.queued.clear()
        return n

    def recv(self, bufsize: int = 65535) -> bytes:
        if self.queued:
            return self.queued.pop(0)[:bufsize]
        item = self.responses.pop(0) if self.responses else self.default
        if item is None:
            raise TimeoutError("timed out")
        if isinstance(item, Exception):
            raise item
        return item[:bufsize]


@pytest.fixture
def scripted():
    return ScriptedTransport
