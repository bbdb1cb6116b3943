"""Stage populations with diapause-gated stepping.

``PopulationState`` bundles the stage vector with the diapause
hysteresis state. ``step_population`` is a pure function: it takes the
previous state and returns the next one, so "previous" and "next"
switch values are always explicit.

Diapause state machine (switch 1 drives dormant ↔ active):

  dormant, not yet crossed, no injection  →  tick is a no-op
  switch 1 first turns on                 →  seed initial populations,
                                             mark crossed, record day
  active                                  →  fecundity × s1 × multiplier

With diapause ignored, the switches are bypassed and every tick
integrates with an unscaled fecundity.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from typing import Optional

import numpy as np

from dspopsim.environment import daylight_for_time
from dspopsim.integrator import DEFAULT_NOISE_EPSILON, euler_step
from dspopsim.parameters import ParameterSet
from dspopsim.rates import (
    diapause_fecundity_multiplier,
    diapause_switch1,
    diapause_switch2,
    stage_rates,
)
from dspopsim.types import FEMALE_SLICE, N_STAGES, GlobalParam, Stage, StageParam

logger = logging.getLogger(__name__)


@dataclass(frozen=True, eq=False)
class PopulationState:
    """Immutable per-cell population snapshot.

    Attributes:
        stages: (N_STAGES,) abundances indexed by ``Stage``.
        s1, s2: Diapause switch values (0 or 1).
        crossed: Active season reached; monotonic until reset.
        crossed_day: Day of the crossing, or None.
        init_added: Initial populations were injected explicitly
            (forced start day or constant-temperature run).
    """
    stages: np.ndarray = field(default_factory=lambda: np.zeros(N_STAGES))
    s1: int = 0
    s2: int = 0
    crossed: bool = False
    crossed_day: Optional[int] = None
    init_added: bool = False

    @property
    def eggs(self) -> float:
        return float(self.stages[Stage.EGG])

    @property
    def males(self) -> float:
        return float(self.stages[Stage.MALE])

    @property
    def females(self) -> float:
        """Total adult females across the seven sub-stages."""
        return float(self.stages[FEMALE_SLICE].sum())

    @property
    def female_stages(self) -> np.ndarray:
        return self.stages[FEMALE_SLICE].copy()

    @property
    def total(self) -> float:
        return float(self.stages.sum())


def initial_population(params: ParameterSet) -> np.ndarray:
    """Stage vector seeded from the ``initial <stage>`` parameters."""
    return params.column(StageParam.INITIAL).astype(np.float64)


def seed_population(state: PopulationState, params: ParameterSet) -> PopulationState:
    """Inject the initial populations and mark the injection."""
    return replace(state, stages=initial_population(params), init_added=True)


def step_population(
    state: PopulationState,
    temperature: float,
    fruit_quality: float,
    params: ParameterSet,
    time: float,
    dt: float,
    ignore_fruit: bool = False,
    ignore_diapause: bool = False,
    start_year: int = 0,
    noise_epsilon: float = DEFAULT_NOISE_EPSILON,
) -> PopulationState:
    """Advance a population by one tick and return the new state."""
    multiplier = 1.0
    if not ignore_diapause:
        hours = daylight_for_time(time, params[GlobalParam.LATITUDE], start_year)
        threshold = params[GlobalParam.DIAPAUSE_DAYLIGHT_HOURS]
        s1 = diapause_switch1(hours, temperature, state.s1, state.s2,
                              params[GlobalParam.DIAPAUSE_CRITICAL_TEMP], threshold)
        # switch 2 reads the previous switch 1
        s2 = diapause_switch2(hours, state.s1, state.s2, threshold)
        multiplier = s1 * diapause_fecundity_multiplier(hours)

        if s1 == 0 and not state.crossed and not state.init_added:
            return replace(state, s1=s1, s2=s2)

        state = replace(state, s1=s1, s2=s2)
        if s1 != 0 and not state.crossed:
            if not state.init_added:
                state = seed_population(state, params)
            state = replace(state, crossed=True, crossed_day=int(time))
            logger.debug("Diapause crossed on day %d", int(time))

    rates = stage_rates(temperature, fruit_quality, params,
                        ignore_fruit=ignore_fruit,
                        fecundity_multiplier=multiplier)
    stages = euler_step(state.stages, rates, dt, noise_epsilon)
    return replace(state, stages=stages)
