"""Single-cell simulator: population + fruit quality + history.

A ``CellSimulator`` owns one parameter set, one ``PopulationState``,
one ``FruitState`` and the per-tick history series. Each tick:

  1. advance fruit quality (lagged harvest rule, ring buffer)
  2. advance the population with the new quality
  3. append a sample to every history series and update running
     maxima and left-rectangle totals (total += value × dt)

Simulators are reusable: ``reset()`` returns population, fruit state,
clock and history to their tick-0 values, which is what the grid runner
relies on when recycling a pool slot for the next cell.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import Dict, Optional, Sequence

import numpy as np

from dspopsim.environment import as_series, temperature_index
from dspopsim.fruit import FruitState
from dspopsim.integrator import DEFAULT_NOISE_EPSILON
from dspopsim.parameters import ParameterSet, ValidationResult
from dspopsim.population import PopulationState, seed_population, step_population
from dspopsim.types import FEMALE_SLICE, STAGE_NAMES, N_STAGES, XYSeries
from dspopsim.utils import downsample, tick_times

FEMALES = "females"
FRUIT = "fruit quality"

# History series: 13 stages, total females, fruit quality
SERIES_NAMES = STAGE_NAMES + (FEMALES, FRUIT)
# Series with running maxima and totals
TRACKED_NAMES = STAGE_NAMES + (FEMALES,)


# ═══════════════════════════════════════════════════════════════════════
# RESULT TYPES
# ═══════════════════════════════════════════════════════════════════════

@dataclass
class CellSummary:
    """Summary statistics of one cell run.

    Days are simulation times (fractional for maxima). ``None`` means
    the event never happened.
    """
    max_values: Dict[str, float] = field(
        default_factory=lambda: {name: 0.0 for name in TRACKED_NAMES})
    max_days: Dict[str, float] = field(
        default_factory=lambda: {name: 0.0 for name in TRACKED_NAMES})
    totals: Dict[str, float] = field(
        default_factory=lambda: {name: 0.0 for name in TRACKED_NAMES})
    crossed_day: Optional[int] = None
    fruit_max_day: Optional[float] = None
    first_female_day: Optional[int] = None
    harvest_day: Optional[int] = None

    @property
    def max_females(self) -> float:
        return self.max_values[FEMALES]

    def copy(self) -> 'CellSummary':
        return CellSummary(
            max_values=dict(self.max_values),
            max_days=dict(self.max_days),
            totals=dict(self.totals),
            crossed_day=self.crossed_day,
            fruit_max_day=self.fruit_max_day,
            first_female_day=self.first_female_day,
            harvest_day=self.harvest_day,
        )


@dataclass
class CellResult:
    """Detached copy of a cell's history and summary.

    Attributes:
        times: (n_ticks,) simulation times.
        stages: (n_ticks, N_STAGES) stage abundances.
        females: (n_ticks,) total adult females.
        fruit: (n_ticks,) fruit quality.
        summary: Summary statistics.
        skipped: True when the cell was not run (invalid input).
    """
    times: np.ndarray
    stages: np.ndarray
    females: np.ndarray
    fruit: np.ndarray
    summary: CellSummary
    skipped: bool = False
    dt: float = 0.05

    @classmethod
    def empty(cls, dt: float = 0.05, skipped: bool = True) -> 'CellResult':
        return cls(
            times=np.zeros(0),
            stages=np.zeros((0, N_STAGES)),
            females=np.zeros(0),
            fruit=np.zeros(0),
            summary=CellSummary(),
            skipped=skipped,
            dt=dt,
        )

    @property
    def n_ticks(self) -> int:
        return len(self.times)

    def series(self, name: str) -> np.ndarray:
        """(n_ticks, 2) array of (time, value) for one series name."""
        if name == FEMALES:
            values = self.females
        elif name == FRUIT:
            values = self.fruit
        else:
            values = self.stages[:, STAGE_NAMES.index(name)]
        return np.column_stack([self.times, values])

    def daily(self, samples_per_day: int = 1) -> 'CellResult':
        """Down-sampled copy keeping ``samples_per_day`` samples per day."""
        return CellResult(
            times=downsample(self.times, self.dt, samples_per_day),
            stages=downsample(self.stages, self.dt, samples_per_day),
            females=downsample(self.females, self.dt, samples_per_day),
            fruit=downsample(self.fruit, self.dt, samples_per_day),
            summary=self.summary,
            skipped=self.skipped,
            dt=self.dt,
        )


# ═══════════════════════════════════════════════════════════════════════
# CELL SIMULATOR
# ═══════════════════════════════════════════════════════════════════════

class CellSimulator:
    """One independent simulation unit."""

    def __init__(
        self,
        params: Optional[ParameterSet] = None,
        dt: float = 0.05,
        ignore_fruit: bool = False,
        ignore_diapause: bool = False,
        start_year: int = 0,
        noise_epsilon: float = DEFAULT_NOISE_EPSILON,
    ):
        if dt <= 0:
            raise ValueError(f"dt must be positive, got {dt}")
        self.params = params.copy() if params is not None else ParameterSet()
        self.dt = dt
        self.ignore_fruit = ignore_fruit
        self.ignore_diapause = ignore_diapause
        self.start_year = start_year
        self.noise_epsilon = noise_epsilon

        self.fruit = FruitState()
        self.history: Dict[str, XYSeries] = {name: XYSeries() for name in SERIES_NAMES}
        self.reset()

    # ── state ────────────────────────────────────────────────────────

    def reset(self) -> None:
        """Return to tick 0: population, fruit, clock and history."""
        self.state = PopulationState()
        self.fruit.reset()
        self.tick = 0
        self._injected = False
        for series in self.history.values():
            series.clear()
        self.summary = CellSummary()

    @property
    def time(self) -> float:
        return round(self.tick * self.dt, 10)

    @property
    def stages(self) -> np.ndarray:
        return self.state.stages.copy()

    @property
    def females(self) -> float:
        return self.state.females

    @property
    def fruit_quality(self) -> float:
        return self.fruit.quality

    # ── parameters ───────────────────────────────────────────────────

    def set_parameter(self, name: str, value: float) -> ValidationResult:
        return self.params.set_parameter(name, value)

    def get_parameter(self, name: str) -> float:
        return self.params.get_parameter(name)

    def reset_params(self, template: ParameterSet,
                     reset_fruit: bool = True) -> ValidationResult:
        """Adopt ``template`` (fruit parameters kept unless ``reset_fruit``)."""
        return self.params.copy_from(template, reset_fruit=reset_fruit)

    def inject(self) -> None:
        """Seed the initial populations now."""
        self.state = seed_population(self.state, self.params)
        self._injected = True

    # ── stepping ─────────────────────────────────────────────────────

    def advance(self, temperature: float) -> None:
        """Advance one tick at ``temperature`` and record history."""
        time = self.time
        quality = self.fruit.step(temperature, time, self.dt, self.params)
        self.state = step_population(
            self.state, temperature, quality, self.params, time, self.dt,
            ignore_fruit=self.ignore_fruit,
            ignore_diapause=self.ignore_diapause,
            start_year=self.start_year,
            noise_epsilon=self.noise_epsilon,
        )
        self._record(time, quality)
        self.tick += 1

    def _record(self, time: float, quality: float) -> None:
        stages = self.state.stages
        females = float(stages[FEMALE_SLICE].sum())
        summary = self.summary
        for i, name in enumerate(STAGE_NAMES):
            self._track(name, time, float(stages[i]))
        self._track(FEMALES, time, females)
        self.history[FRUIT].append(time, quality)

        if summary.first_female_day is None and females > 0:
            summary.first_female_day = int(time)
        summary.crossed_day = self.state.crossed_day
        summary.fruit_max_day = self.fruit.max_day
        summary.harvest_day = self.fruit.cutoff_day

    def _track(self, name: str, time: float, value: float) -> None:
        summary = self.summary
        self.history[name].append(time, value)
        summary.totals[name] += value * self.dt
        if summary.max_values[name] < value:
            summary.max_values[name] = value
            summary.max_days[name] = time

    # ── run loops ────────────────────────────────────────────────────

    def run(self, temperatures: Sequence[float], n_days: float,
            start_day: int = -1) -> None:
        """Run ``n_days`` from the current clock on daily temperatures.

        The temperature index wraps when the series is shorter than the
        run. With ``start_day >= 0`` the initial populations are
        injected on that day instead of at the diapause crossing.

        Raises:
            ValueError: On a negative horizon or an invalid series.
        """
        if n_days < 0:
            raise ValueError(f"n_days must be non-negative, got {n_days}")
        series = as_series(temperatures)
        if start_day >= 0:
            self.state = replace(self.state, init_added=True)
        for time in tick_times(n_days, self.dt, start=self.time):
            if int(time) == start_day and not self._injected:
                self.inject()
            self.advance(float(series[temperature_index(time, len(series))]))

    def run_constant(self, temperature: float, n_days: float) -> None:
        """Run ``n_days`` at a constant temperature, injecting at the start."""
        if n_days < 0:
            raise ValueError(f"n_days must be non-negative, got {n_days}")
        self.inject()
        for _ in tick_times(n_days, self.dt):
            self.advance(temperature)

    # ── results ──────────────────────────────────────────────────────

    def result(self) -> CellResult:
        """Detached snapshot of the history and summary."""
        times = self.history[FRUIT].times
        stages = np.column_stack(
            [self.history[name].values for name in STAGE_NAMES]
        ) if len(times) else np.zeros((0, N_STAGES))
        return CellResult(
            times=times,
            stages=stages,
            females=self.history[FEMALES].values,
            fruit=self.history[FRUIT].values,
            summary=self.summary.copy(),
            skipped=False,
            dt=self.dt,
        )
