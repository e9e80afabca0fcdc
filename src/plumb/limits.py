"""Request spacing and the cumulative spend guard for paid model calls."""

import asyncio
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional

import logfire

Sleep = Callable[[float], Awaitable[None]]


@dataclass(frozen=True)
class Pricing:
    """USD per million tokens."""

    input_per_mtok: float = 3.0
    output_per_mtok: float = 15.0

    def cost(self, input_tokens: int, output_tokens: int) -> float:
        return (
            input_tokens / 1_000_000 * self.input_per_mtok
            + output_tokens / 1_000_000 * self.output_per_mtok
        )


class RateLimiter:
    """Waits a fixed spacing of ``60 / requests_per_minute`` seconds before every request."""

    def __init__(self, requests_per_minute: float, *, sleep: Optional[Sleep] = None):
        if requests_per_minute <= 0:
            raise ValueError(f"requests_per_minute must be positive, got {requests_per_minute}")
        self.requests_per_minute = requests_per_minute
        self._sleep = sleep or asyncio.sleep
        self.waits = 0

    @property
    def spacing(self) -> float:
        return 60.0 / self.requests_per_minute

    async def wait(self) -> None:
        logfire.debug("Rate limit wait", seconds=self.spacing)
        await self._sleep(self.spacing)
        self.waits += 1


@dataclass
class SpendGuard:
    """Cumulative cost ceiling, checked before each request.

    A request already in flight is never interrupted, so the total can end up
    above the ceiling by the cost of one request.
    """

    ceiling: float
    spent: float = 0.0

    @property
    def exhausted(self) -> bool:
        return self.spent >= self.ceiling

    def charge(self, cost: float) -> None:
        self.spent += cost
