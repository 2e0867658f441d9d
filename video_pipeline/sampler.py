"""
Fixed-cadence timestamp sampling.

Samples are computed as ``k * interval`` rather than by repeated addition so
long videos do not accumulate floating-point drift. The sequence is
half-open: ``0, interval, 2*interval, ...`` while strictly below ``duration``.
"""

import logging
import math
from typing import Iterator, List

logger = logging.getLogger(__name__)


def _validate(duration: float, interval: float):
    if not math.isfinite(duration) or duration < 0:
        raise ValueError(f"duration must be a finite value >= 0, got {duration}")
    if not math.isfinite(interval) or interval <= 0:
        raise ValueError(f"interval must be a finite value > 0, got {interval}")


def iter_sample_timestamps(duration: float, interval: float) -> Iterator[float]:
    """
    Lazily yield sample timestamps covering ``[0, duration)``.

    Args:
        duration: Media duration in seconds (>= 0)
        interval: Sampling interval in seconds (> 0)

    Yields:
        Timestamps in seconds, strictly increasing

    Raises:
        ValueError: If duration is negative or interval is not positive
    """
    _validate(duration, interval)

    k = 0
    while True:
        t = k * interval
        if t >= duration:
            return
        yield t
        k += 1


def sample_timestamps(duration: float, interval: float) -> List[float]:
    """
    Compute the full list of sample timestamps.

    A zero duration yields an empty list; callers treat that as "no samples",
    not as an error. The last element marks the final sample of a run.

    Args:
        duration: Media duration in seconds (>= 0)
        interval: Sampling interval in seconds (> 0)

    Returns:
        List of timestamps in seconds
    """
    timestamps = list(iter_sample_timestamps(duration, interval))

    logger.debug(
        f"Sampled {len(timestamps)} timestamps over {duration:.2f}s "
        f"at {interval:.3f}s intervals"
    )

    return timestamps


def expected_sample_count(duration: float, interval: float) -> int:
    """Number of samples ``sample_timestamps`` produces (``ceil(duration / interval)``)."""
    _validate(duration, interval)
    count = math.ceil(duration / interval)
    # Guard the ceil against representation error at exact multiples
    while count > 0 and (count - 1) * interval >= duration:
        count -= 1
    while count * interval < duration:
        count += 1
    return count
