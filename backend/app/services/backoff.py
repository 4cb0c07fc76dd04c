from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, TypeVar


log = logging.getLogger(__name__)

T = TypeVar("T")


class PollTimeout(Exception):
    def __init__(self, attempts: int):
        super().__init__(f"no result after {int(attempts)} attempts")
        self.attempts = int(attempts)


@dataclass(frozen=True)
class BackoffPolicy:
    max_attempts: int = 12
    initial_delay_ms: float = 1000.0
    factor: float = 1.0
    max_delay_ms: float | None = None

    def delay_for(self, retry: int) -> float:
        """Delay in milliseconds before retry number `retry` (1-based)."""
        if retry < 1:
            return 0.0
        delay = float(self.initial_delay_ms) * float(self.factor) ** (retry - 1)
        if self.max_delay_ms is not None:
            delay = min(delay, float(self.max_delay_ms))
        return delay

    def delays(self) -> list[float]:
        return [self.delay_for(n) for n in range(1, max(1, int(self.max_attempts)))]


async def poll_until(
    probe: Callable[[], Awaitable[T | None]],
    policy: BackoffPolicy,
    *,
    sleep: Callable[[float], Awaitable[object]] = asyncio.sleep,
    retry_on: tuple[type[BaseException], ...] = (),
) -> T:
    """Call `probe` until it returns a truthy value or attempts run out.

    Errors raised by the probe propagate unless their type is in `retry_on`;
    those attempts count as empty.
    """
    attempts = max(1, int(policy.max_attempts))
    for attempt in range(1, attempts + 1):
        if attempt > 1:
            await sleep(policy.delay_for(attempt - 1) / 1000.0)
        try:
            value = await probe()
        except retry_on as e:
            log.warning("poll attempt %s/%s failed: %s", attempt, attempts, e)
            continue
        if value:
            return value
        log.debug("poll attempt %s/%s empty", attempt, attempts)
    raise PollTimeout(attempts)
