"""Backoff Policy — exponential delay with cap and optional jitter.

Invariants:
    - Base delay is min(max_delay_ms, base_delay_ms * 2**attempts)
    - Jitter scales the capped delay by a factor in [1 - jitter, 1 + jitter]
    - should_dead_letter(attempts, max_attempts) is True once attempts >= max_attempts

Design Decisions:
    - ±25% jitter by default: prevents thundering herd when many devices reconnect at once
    - rng injected: tests pass random.Random(seed) or jitter=0 for exact delays
"""

import random


def backoff_delay_ms(
    attempts: int,
    base_delay_ms: int,
    max_delay_ms: int,
    jitter: float = 0.0,
    rng: random.Random | None = None,
) -> int:
    """Delay before the next attempt, given how many attempts already failed."""
    delay = min(max_delay_ms, (2 ** attempts) * base_delay_ms)
    if jitter <= 0:
        return delay
    factor = (rng or random).uniform(1 - jitter, 1 + jitter)  # nosec B311
    return int(delay * factor)


def should_dead_letter(attempts: int, max_attempts: int) -> bool:
    return attempts >= max_attempts
