from __future__ import annotations

import logging
import math
import time
from dataclasses import dataclass, field
from typing import Callable

from .constants import FRAME_SIZE


class ZeroRateError(ValueError):
    pass


def delay_for_rate(bps: int) -> int:
    """Milliseconds one full frame should take at ``bps`` bytes per second."""
    if bps == 0:
        raise ZeroRateError("receiver asked for a rate of 0 bytes/s")
    if bps < 0:
        raise ValueError(f"negative rate: {bps}")
    # half away from zero; the builtin round() would go to even
    return int(math.floor(FRAME_SIZE / bps * 1000 + 0.5))


@dataclass(slots=True)
class RateController:
    delay_ms: int = 0
    updates: int = 0
    sleep: Callable[[float], None] = field(default=time.sleep, repr=False)

    def update(self, bps: int) -> int:
        try:
            delay = delay_for_rate(bps)
        except ZeroRateError:
            logging.warning("ignoring rate hint of 0 bytes/s; delay stays %d ms", self.delay_ms)
            return self.delay_ms
        if delay != self.delay_ms:
            logging.info("receiver requested %d B/s; inter-frame delay %d ms", bps, delay)
        self.delay_ms = delay
        self.updates += 1
        return delay

    def pause(self) -> None:
        if self.delay_ms > 0:
            self.sleep(self.delay_ms / 1000.0)
