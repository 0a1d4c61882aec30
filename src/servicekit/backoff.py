import random
from collections.abc import Callable

from .types import RetryConfig


def sleep_time(
    num_retries: int,
    config: RetryConfig,
    use_normal_sleep: bool = False,
    rand: Callable[[float, float], float] = random.uniform,
) -> float:
    """Seconds to wait before retry number ``num_retries + 1``.

    Grows as ``min + min * 2**n`` up to ``max_delay``, then subtracts up to a
    quarter of itself as jitter and never drops below ``min_delay``.
    """
    if use_normal_sleep:
        return 0.0
    # cap the exponent; anything past it is over max_delay anyway
    delay = config.min_delay + config.min_delay * (2 ** min(num_retries, 32))
    delay = min(delay, config.max_delay)
    jitter = rand(0.0, delay / 4)
    delay -= jitter
    return max(delay, config.min_delay)
