"""Grid runner: many independent cells on a bounded thread pool.

Cells of an (n_rows, n_cols) grid are processed in row-major batches of
``n_workers``. Each worker owns one pooled ``CellSimulator`` for the
whole batch and runs that cell's entire tick loop; the coordinator
waits for the batch to finish before reusing the slots. There is no
coupling between cells, so no locking is needed inside a batch.

A cell whose temperature series is missing, empty, non-numeric or
contains NaN is skipped: its slot is reset and an empty result is
returned. Worker exceptions propagate out of ``run()`` after the batch
barrier.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from concurrent.futures import ThreadPoolExecutor, wait
from dataclasses import dataclass, field
from typing import Dict, Iterator, List, Optional, Tuple

import numpy as np

from dspopsim.cell import CellResult, CellSimulator
from dspopsim.environment import is_valid_series
from dspopsim.integrator import DEFAULT_NOISE_EPSILON
from dspopsim.parameters import ParameterSet
from dspopsim.types import GlobalParam
from dspopsim.utils import timer

logger = logging.getLogger(__name__)

Coord = Tuple[int, int]


@dataclass
class GridResult:
    """Per-cell results of one grid run, keyed by (row, col)."""
    n_rows: int
    n_cols: int
    latitudes: np.ndarray
    cells: Dict[Coord, CellResult] = field(default_factory=dict)

    def _check(self, row: int, col: int) -> None:
        if not (0 <= row < self.n_rows and 0 <= col < self.n_cols):
            raise IndexError(
                f"cell ({row}, {col}) outside {self.n_rows}x{self.n_cols} grid")

    def cell(self, row: int, col: int) -> CellResult:
        self._check(row, col)
        return self.cells[(row, col)]

    def __iter__(self) -> Iterator[Tuple[Coord, CellResult]]:
        for row in range(self.n_rows):
            for col in range(self.n_cols):
                yield (row, col), self.cells[(row, col)]

    @property
    def skipped(self) -> List[Coord]:
        return [coord for coord, res in self if res.skipped]

    def peak_females(self) -> np.ndarray:
        """(n_rows, n_cols) maximum total females per cell."""
        out = np.zeros((self.n_rows, self.n_cols))
        for (row, col), res in self:
            out[row, col] = res.summary.max_females
        return out

    def max_female_cell(self) -> Tuple[Coord, float, float]:
        """((row, col), peak females, latitude) of the cell with the largest peak.

        Ties resolve to the first cell in row-major order.
        """
        peaks = self.peak_females()
        flat = int(np.argmax(peaks))
        row, col = divmod(flat, self.n_cols)
        return (row, col), float(peaks[row, col]), float(self.latitudes[row, col])


class GridRunner:
    """Run an (n_rows, n_cols) grid of cells with a pool of ``n_workers``.

    Args:
        n_rows, n_cols: Grid shape.
        params: Template parameter set broadcast to every cell.
        n_workers: Worker threads (and pooled simulators).
        latitudes: Optional (n_rows, n_cols) per-cell latitudes; defaults
            to the template's ``latitude`` everywhere.
        dt, ignore_fruit, ignore_diapause, start_year, noise_epsilon:
            Passed to each pooled ``CellSimulator``.
    """

    def __init__(
        self,
        n_rows: int,
        n_cols: int,
        params: Optional[ParameterSet] = None,
        n_workers: int = 2,
        latitudes: Optional[np.ndarray] = None,
        dt: float = 0.05,
        ignore_fruit: bool = False,
        ignore_diapause: bool = False,
        start_year: int = 0,
        noise_epsilon: float = DEFAULT_NOISE_EPSILON,
    ):
        if n_rows < 1 or n_cols < 1:
            raise ValueError(f"grid shape must be positive, got ({n_rows}, {n_cols})")
        if n_workers < 1:
            raise ValueError(f"n_workers must be >= 1, got {n_workers}")
        self.n_rows = n_rows
        self.n_cols = n_cols
        self.n_workers = n_workers
        self.template = params.copy() if params is not None else ParameterSet()

        if latitudes is None:
            latitudes = np.full((n_rows, n_cols), self.template[GlobalParam.LATITUDE])
        latitudes = np.asarray(latitudes, dtype=np.float64)
        if latitudes.shape != (n_rows, n_cols):
            raise ValueError(
                f"latitudes shape {latitudes.shape} does not match grid ({n_rows}, {n_cols})")
        self.latitudes = latitudes

        self.pool = [
            CellSimulator(self.template, dt=dt, ignore_fruit=ignore_fruit,
                          ignore_diapause=ignore_diapause, start_year=start_year,
                          noise_epsilon=noise_epsilon)
            for _ in range(n_workers)
        ]

    def coords(self) -> List[Coord]:
        """All cells in row-major order."""
        return [(r, c) for r in range(self.n_rows) for c in range(self.n_cols)]

    def batches(self) -> Iterator[List[Coord]]:
        cells = self.coords()
        for start in range(0, len(cells), self.n_workers):
            yield cells[start:start + self.n_workers]

    def _series_for(self, temperatures, coord: Coord):
        if temperatures is None:
            return None
        if isinstance(temperatures, Mapping):
            return temperatures.get(coord)
        return temperatures[coord[0]][coord[1]]

    def _run_cell(self, slot: int, coord: Coord, series, n_days: float,
                  start_day: int,
                  fruit_params: Optional[Mapping[str, float]]) -> CellResult:
        sim = self.pool[slot]
        sim.reset()
        if not is_valid_series(series):
            logger.warning("Skipping cell %s: missing or invalid temperature data", coord)
            return CellResult.empty(dt=sim.dt)

        result = sim.reset_params(self.template, reset_fruit=False)
        if result:
            result = sim.params.reset_fruit_params(
                fruit_params if fruit_params is not None else self.template.fruit_params())
        if result:
            result = sim.set_parameter(GlobalParam.LATITUDE.value,
                                       float(self.latitudes[coord]))
        if not result:
            raise ValueError(f"cell {coord}: parameters rejected: {result.reason}")

        sim.run(series, n_days, start_day=start_day)
        return sim.result()

    def run(
        self,
        temperatures=None,
        n_days: float = 365,
        start_day: int = -1,
        constant_temp: Optional[float] = None,
        fruit_params: Optional[Mapping[Coord, Mapping[str, float]]] = None,
    ) -> GridResult:
        """Run every cell for ``n_days``.

        Args:
            temperatures: Per-cell daily series, either a mapping
                ``{(row, col): series}`` or an indexable
                ``temperatures[row][col]`` (e.g. an
                (n_rows, n_cols, n_days) array). ``None`` runs every cell
                at ``constant_temp`` (default: the template's
                ``constant temp``).
            n_days: Simulation horizon (days).
            start_day: Forced injection day, or -1 to seed on the
                diapause crossing.
            fruit_params: Optional per-cell fruit parameter sets (all
                seven fruit parameters each).

        Returns:
            GridResult with one entry per cell.

        Raises:
            ValueError: On a negative horizon or rejected parameters.
            RuntimeError: If a worker thread cannot be started.
        """
        if n_days < 0:
            raise ValueError(f"n_days must be non-negative, got {n_days}")
        if temperatures is None:
            if constant_temp is None:
                constant_temp = self.template[GlobalParam.CONSTANT_TEMP]
            temperatures = {coord: [constant_temp] for coord in self.coords()}
        fruit_params = fruit_params or {}

        grid = GridResult(self.n_rows, self.n_cols, self.latitudes.copy())
        logger.info("Grid run: %dx%d cells, %d workers, %s days",
                    self.n_rows, self.n_cols, self.n_workers, n_days)
        with timer("grid run"), ThreadPoolExecutor(max_workers=self.n_workers) as executor:
            for batch_no, batch in enumerate(self.batches()):
                logger.debug("Batch %d: cells %s", batch_no, batch)
                futures = {
                    executor.submit(self._run_cell, slot, coord,
                                    self._series_for(temperatures, coord),
                                    n_days, start_day, fruit_params.get(coord)): coord
                    for slot, coord in enumerate(batch)
                }
                wait(futures)
                for future, coord in futures.items():
                    grid.cells[coord] = future.result()
        logger.info("Grid run finished: %d skipped cells", len(grid.skipped))
        return grid
