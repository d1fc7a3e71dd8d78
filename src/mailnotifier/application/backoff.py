"""Reconnect backoff schedule."""

DEFAULT_INITIAL_DELAY = 5.0
DEFAULT_MAX_DELAY = 300.0


def backoff_delay(
    failures: int,
    initial: float = DEFAULT_INITIAL_DELAY,
    maximum: float = DEFAULT_MAX_DELAY,
) -> float:
    """
    Delay before the next attempt after ``failures`` consecutive failures.

    Doubles from ``initial`` on every failure and is capped at ``maximum``.
    Zero failures means no delay.
    """
    if failures <= 0:
        return 0.0
    # Clamp the exponent so long outages don't build huge ints
    exponent = min(failures - 1, 32)
    return min(initial * (2 ** exponent), maximum)
