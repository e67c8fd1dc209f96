from __future__ import annotations

import pytest

from dgxfer.constants import MAX_ATTEMPTS
from dgxfer.exchange import ReliableExchange, RetryExhausted
from dgxfer.packet import AckStatus, Command, build_ack, build_nak, encode_control

FRAME = encode_control(Command.start())


def test_accept_first_try(scripted):
    t = scripted([build_ack()])
    d = ReliableExchange(t).send(FRAME)
    assert d.attempts == 1
    assert d.retransmits == 0
    assert d.ack.status is AckStatus.ACCEPTED
    assert t.sent == [FRAME]


@pytest.mark.parametrize("k", range(1, MAX_ATTEMPTS + 1))
def test_success_on_attempt_k(scripted, k):
    t = scripted([build_nak()] * (k - 1) + [build_ack()])
    d = ReliableExchange(t).send(FRAME)
    assert d.attempts == k
    assert len(t.sent) == k
    assert all(frame == FRAME for frame in t.sent)


def test_exhaustion_after_eight_attempts(scripted):
    t = scripted(default=build_nak())
    with pytest.raises(RetryExhausted) as info:
        ReliableExchange(t).send(FRAME)
    assert info.value.attempts == 8
    assert len(t.sent) == 8


def test_custom_budget(scripted):
    t = scripted(default=None)
    with pytest.raises(RetryExhausted):
        ReliableExchange(t, max_attempts=3).send(FRAME)
    assert len(t.sent) == 3


def test_timeouts_and_transport_errors_are_retried(scripted):
    t = scripted([None, ConnectionRefusedError("refused"), build_ack(2048)])
    t.send_errors.add(0)
    d = ReliableExchange(t).send(FRAME)
    # failed send, timeout, refused, accepted
    assert d.attempts == 4
    assert d.ack.rate_bps == 2048


def test_previous_accept_does_not_leak_into_next_frame(scripted):
    t = scripted([build_ack()], default=None)
    ex = ReliableExchange(t, max_attempts=2)
    ex.send(FRAME)
    with pytest.raises(RetryExhausted):
        ex.send(FRAME)
    assert len(t.sent) == 3


def test_rejects_bad_frame_size(scripted):
    with pytest.raises(ValueError):
        ReliableExchange(scripted()).send(b"short")


def test_rejects_zero_budget(scripted):
    with pytest.raises(ValueError):
        ReliableExchange(scripted(), max_attempts=0)


def test_queued_ack_from_earlier_frame_is_discarded(scripted):
    t = scripted(default=None)
    t.queued.append(build_ack())
    with pytest.raises(RetryExhausted):
        ReliableExchange(t, max_attempts=2).send(FRAME)
    assert t.discarded == [build_ack()]
    assert len(t.sent) == 2
