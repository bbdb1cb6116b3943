"""Fruit-quality resource sub-model.

Quality Q ∈ [0.05, 1] grows with degree-day forcing and is harvested
once the quality ``time lag`` days earlier exceeds the cutoff:

  G(T) = 1100 / (T − T_base) + 30        (undefined for T ≤ T_base)
  dQ/dt = Q × (mult / G(T) − drop × [Q(t − lag) > cutoff])

One value per calendar day is kept in a 365-slot ring buffer for the
lag lookup. Once harvest starts within a year the lagged input is held
at 1 so quality cannot regrow until the year boundary, where Q resets
to 0.05.
"""

from __future__ import annotations

import logging
from typing import Optional

import numpy as np

from dspopsim.integrator import FRUIT_Q_MIN, fruit_quality_step
from dspopsim.parameters import ParameterSet
from dspopsim.types import GlobalParam
from dspopsim.utils import round_2_decimals

logger = logging.getLogger(__name__)

DAYS_PER_YEAR = 365


def growth_time(temperature: float, base_temp: float) -> float:
    """G(T); NaN when T ≤ base temperature (no growth signal)."""
    if temperature <= base_temp:
        return float("nan")
    return 1100.0 / (temperature - base_temp) + 30.0


class FruitState:
    """Mutable fruit-quality state owned by one cell."""

    def __init__(self):
        self.ring = np.zeros(DAYS_PER_YEAR, dtype=np.float64)
        self.reset()

    def reset(self) -> None:
        self.ring[:] = 0.0
        self.ring[0] = FRUIT_Q_MIN
        self.quality = FRUIT_Q_MIN
        self.harvested = False
        self.max_day: Optional[float] = None
        self.cutoff_day: Optional[int] = None

    def step(self, temperature: float, time: float, dt: float,
             params: ParameterSet) -> float:
        """Advance quality by one tick at simulation ``time``; returns new Q."""
        gt = growth_time(temperature, params[GlobalParam.FRUIT_BASE_TEMP])
        lag = params[GlobalParam.FRUIT_TIME_LAG]
        cutoff = params[GlobalParam.FRUIT_HARVEST_CUTOFF]

        index = int(time) % DAYS_PER_YEAR
        lag_quality = FRUIT_Q_MIN
        if index - lag > 0:
            lag_quality = float(self.ring[int(index - lag)])
            if lag_quality > cutoff and not self.harvested:
                logger.debug("Fruit harvest started on day %d", int(time))
                self.harvested = True
        else:
            self.harvested = False
        if index == 0:
            self.quality = FRUIT_Q_MIN
        if self.harvested:
            lag_quality = 1.0

        self.quality = fruit_quality_step(
            self.quality, gt, lag_quality, dt,
            gt_multiplier=params[GlobalParam.FRUIT_GT_MULTIPLIER],
            harvest_cutoff=cutoff,
            harvest_drop=params[GlobalParam.FRUIT_HARVEST_DROP],
        )

        if round_2_decimals(self.quality) == 1 and self.max_day is None:
            self.max_day = time
        if self.cutoff_day is None and self.quality >= cutoff:
            self.cutoff_day = int(time)
        self.ring[index] = self.quality
        return self.quality
