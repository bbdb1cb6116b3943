"""Utility functions for dsPopSim.

Small numeric helpers for the tick clock plus a logging timer.
"""

from __future__ import annotations

import logging
import time
from contextlib import contextmanager
from typing import Generator, Iterator

import numpy as np

logger = logging.getLogger(__name__)

# Decimal places kept on the tick clock (removes dt accumulation drift)
_CLOCK_DIGITS = 10


def round_2_decimals(value: float) -> float:
    """Round half-up to 2 decimals from the third decimal, truncating below.

    2.555 → 2.56, 2.554 → 2.55. Negative values truncate toward zero.
    """
    scaled = int(value * 1000)
    sign = -1 if scaled < 0 else 1
    whole, rem = divmod(abs(scaled), 10)
    if sign > 0 and rem >= 5:
        whole += 1
    return sign * whole / 100.0


def n_ticks(n_days: float, dt: float) -> int:
    """Number of ticks k with ``round_2_decimals(k × dt) < n_days``."""
    if dt <= 0:
        raise ValueError(f"dt must be positive, got {dt}")
    if n_days <= 0:
        return 0
    k = int(n_days / dt)
    while k > 0 and round_2_decimals((k - 1) * dt) >= n_days:
        k -= 1
    while round_2_decimals(k * dt) < n_days:
        k += 1
    return k


def tick_times(n_days: float, dt: float, start: float = 0.0) -> Iterator[float]:
    """Simulation times of successive ticks, ``start + k × dt``."""
    for k in range(n_ticks(n_days, dt)):
        yield round(start + k * dt, _CLOCK_DIGITS)


def downsample(values: np.ndarray, dt: float, samples_per_day: int = 1) -> np.ndarray:
    """Every ``1 / (dt × samples_per_day)``-th sample along axis 0."""
    stride = max(1, int(round(1.0 / (dt * samples_per_day))))
    return np.asarray(values)[::stride]


@contextmanager
def timer(label: str = "") -> Generator[None, None, None]:
    """Context-manager timer. Logs elapsed time at INFO on exit."""
    start = time.perf_counter()
    yield
    elapsed = time.perf_counter() - start
    logger.info("[%s] %.3fs", label or "elapsed", elapsed)
