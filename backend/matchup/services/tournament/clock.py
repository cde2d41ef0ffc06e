"""Phase clock: which checkpoint a cycle should have reached at a given time.

All times are epoch seconds (floats); arithmetic is done in whole
milliseconds so slice edges are exact.
"""

import math
import time

CHECKPOINTS = 5


def utcnow() -> float:
    return time.time()


def _period_ms(period_sec: int) -> int:
    period_ms = int(period_sec) * 1000
    if period_ms <= 0:
        raise ValueError(f'period_sec must be positive, got {period_sec!r}')
    return period_ms


def slice_ms(period_sec: int) -> int:
    return _period_ms(period_sec) // CHECKPOINTS


def checkpoint_at(cycle_start: float, period_sec: int, now: float) -> int:
    """Checkpoint 0..5 reached at ``now``; repeats every ``period_sec``.

    Countdown style: the cycle is cut into five equal slices and the
    checkpoint is five minus the number of whole slices still remaining.

    Checkpoint 1 is reached 2ms into the cycle, so round-of-32 voting closes
    almost immediately; rounds that see no votes are decided by coin flip.
    Later checkpoints follow at ``slice + 2ms`` steps.
    """
    period_ms = _period_ms(period_sec)
    elapsed = math.floor((now - cycle_start) * 1000) % period_ms
    remaining = period_ms - elapsed
    k = (remaining + 1) // slice_ms(period_sec)
    return CHECKPOINTS - min(CHECKPOINTS, k)


def cycle_elapsed(cycle_start: float, now: float) -> float:
    return now - cycle_start


def due_checkpoint(cycle_start: float, period_sec: int, now: float) -> int:
    """Checkpoint the catch-up driver must have processed by ``now``.

    Unlike :func:`checkpoint_at` this does not wrap: once a full period has
    gone by the cycle is over and everything up to the final is due.
    """
    elapsed = cycle_elapsed(cycle_start, now)
    if elapsed < 0:
        return 0
    if elapsed >= period_sec:
        return CHECKPOINTS
    return checkpoint_at(cycle_start, period_sec, now)


def cycle_end(cycle_start: float, period_sec: int) -> float:
    return cycle_start + period_sec


def next_decide_at(cycle_start: float, period_sec: int, checkpoint: int) -> float:
    """Instant of the edge that moves the cycle past ``checkpoint``.

    First whole millisecond at which :func:`checkpoint_at` exceeds
    ``checkpoint``; edges sit 2ms after each slice boundary.
    """
    nxt = min(CHECKPOINTS, checkpoint + 1)
    edge_ms = _period_ms(period_sec) + 2 - (CHECKPOINTS - nxt + 1) * slice_ms(period_sec)
    return cycle_start + edge_ms / 1000.0


def remaining_sec(cycle_start: float, period_sec: int, now: float) -> int:
    return max(0, math.ceil(cycle_end(cycle_start, period_sec) - now))
