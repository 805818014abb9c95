import threading
import time

TIMEOUT_MAX = threading.TIMEOUT_MAX


def to_deadline(timeout: float | int | None) -> float:
    """Converts a relative timeout (None = forever) to a monotonic deadline"""

    if timeout is None:
        return TIMEOUT_MAX
    elif timeout <= 0:
        return 0.0
    else:
        return min(TIMEOUT_MAX, time.monotonic() + timeout)


def from_deadline(deadline: float | int) -> float:
    """Converts a monotonic deadline back to a timeout (0 = already passed)"""

    if deadline <= 0:
        return 0.0
    elif deadline >= TIMEOUT_MAX:
        return TIMEOUT_MAX
    else:
        return max(0.0, deadline - time.monotonic())
