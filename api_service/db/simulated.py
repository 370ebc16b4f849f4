from __future__ import annotations

import asyncio
import random
from typing import Any, Awaitable, Callable, Literal

import structlog


FAST_LATENCY_MS = 100
SLOW_LATENCY_MS = 3000
SLOW_THRESHOLD_MS = 1000
FAST_PROBABILITY = 0.5


def classify_latency(latency_ms: int) -> Literal["fast", "slow"]:
    return "slow" if latency_ms >= SLOW_THRESHOLD_MS else "fast"


class SimulatedDatabase:
    """Stands in for a database round trip: fixed fast or slow latency, no data."""

    def __init__(
        self,
        rng: random.Random | None = None,
        sleep: Callable[[float], Awaitable[Any]] | None = None,
    ) -> None:
        self.rng = rng or random.Random()
        self.sleep = sleep or asyncio.sleep

    def pick_latency(self) -> int:
        return FAST_LATENCY_MS if self.rng.random() < FAST_PROBABILITY else SLOW_LATENCY_MS

    async def query(self) -> int:
        delay_ms = self.pick_latency()

        if classify_latency(delay_ms) == "slow":
            structlog.get_logger("db").warning(f"Slow query detected: {delay_ms}ms delay", delay_ms=delay_ms)

        await self.sleep(delay_ms / 1000.0)
        return delay_ms
