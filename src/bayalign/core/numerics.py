"""
Log-domain arithmetic.

Probabilities in the alignment HMM and the likelihood are combined in log
space. Zero is represented by a finite sentinel so that sums and
differences never produce NaN.
"""

from typing import Iterable
import numpy as np


LOG_0 = -float(np.finfo(np.float32).max)
LOG_LIMIT = LOG_0 / 100

# Beyond this many nats the smaller term does not change a double.
NATS = 40.0


def safe_log(x) -> np.ndarray:
    """Elementwise log, clamped to LOG_0 for zero or negative inputs."""
    x = np.asarray(x, dtype=float)
    with np.errstate(divide="ignore", invalid="ignore"):
        out = np.where(x > 0, np.log(np.where(x > 0, x, 1.0)), LOG_0)
    return out


def logsum(x: float, y: float) -> float:
    """log(exp(x) + exp(y))"""
    temp = y - x
    if temp > NATS or x < LOG_LIMIT:
        return y
    if temp < -NATS or y < LOG_LIMIT:
        return x
    return x + float(np.log1p(np.exp(temp)))


def logdiff(x: float, y: float) -> float:
    """
    log(exp(x) - exp(y)) for x > y.

    Raises:
        ValueError: If the difference would be non-positive
    """
    if not x > y:
        raise ValueError(f"logdiff requires x > y, got x={x}, y={y}")
    temp = y - x
    if temp < -NATS or x < LOG_LIMIT:
        return x
    return x + float(np.log1p(-np.exp(temp)))


def logsum_all(values: Iterable[float]) -> float:
    """Fold logsum over a sequence; LOG_0 for an empty one."""
    total = LOG_0
    for v in values:
        total = logsum(total, float(v))
    return total
