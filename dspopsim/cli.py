"""Command-line runner: YAML config → grid run → JSON summary + figures.

Usage:
    dspopsim configs/default.yaml
    dspopsim configs/default.yaml --scenario warm.yaml --temperatures temps.npy
    dspopsim configs/default.yaml --dry-run

Temperatures are read from a ``.npy`` file holding either one daily
series (shared by every cell) or an (n_rows, n_cols, n_days) array.
Without one, every cell runs at ``simulation.constant_temp``.
"""

from __future__ import annotations

import argparse
import json
import logging
from dataclasses import asdict
from pathlib import Path
from typing import Dict, List, Optional

import numpy as np

from dspopsim.cell import CellResult, CellSummary
from dspopsim.config import SimulationConfig, load_config, run_config
from dspopsim.grid import GridResult
from dspopsim.parameters import ParameterSet
from dspopsim.types import GlobalParam, STAGE_NAMES
from dspopsim.viz import plot_fruit_quality, plot_grid_peaks, plot_stage_trajectories

logger = logging.getLogger(__name__)


def summary_to_dict(summary: CellSummary) -> Dict:
    return {
        'max_values': dict(summary.max_values),
        'max_days': dict(summary.max_days),
        'totals': dict(summary.totals),
        'crossed_day': summary.crossed_day,
        'fruit_max_day': summary.fruit_max_day,
        'first_female_day': summary.first_female_day,
        'harvest_day': summary.harvest_day,
    }


def grid_summary(grid: GridResult) -> Dict:
    """JSON-ready summary of a grid run."""
    (row, col), value, latitude = grid.max_female_cell()
    return {
        'shape': [grid.n_rows, grid.n_cols],
        'skipped': [list(coord) for coord in grid.skipped],
        'max_female_cell': {'row': row, 'col': col,
                            'peak_females': value, 'latitude': latitude},
        'cells': [
            {'row': r, 'col': c, 'latitude': float(grid.latitudes[r, c]),
             'skipped': res.skipped, **summary_to_dict(res.summary)}
            for (r, c), res in grid
        ],
    }


def load_temperatures(path: Path, config: SimulationConfig):
    """Per-cell temperatures from a ``.npy`` file, broadcast if 1-D."""
    temps = np.load(path)
    grid = config.grid
    if temps.ndim == 1:
        return {(r, c): temps for r in range(grid.n_rows) for c in range(grid.n_cols)}
    if temps.ndim != 3 or temps.shape[:2] != (grid.n_rows, grid.n_cols):
        raise ValueError(
            f"temperature array shape {temps.shape} does not match "
            f"grid ({grid.n_rows}, {grid.n_cols}, n_days)")
    return temps


def _write_series(result: CellResult, path: Path, samples_per_day: int) -> None:
    daily = result.daily(samples_per_day)
    header = ','.join(('day',) + STAGE_NAMES + ('females', 'fruit quality'))
    table = np.column_stack([daily.times, daily.stages, daily.females, daily.fruit])
    np.savetxt(path, table, delimiter=',', header=header, comments='', fmt='%.6g')


def write_outputs(grid: GridResult, config: SimulationConfig,
                  out_dir: Path, figures: bool = True) -> List[Path]:
    """Write summary.json, per-cell CSV series and (optionally) figures."""
    out_dir.mkdir(parents=True, exist_ok=True)
    written = []

    summary_file = out_dir / 'summary.json'
    with open(summary_file, 'w') as f:
        json.dump({'config': asdict(config), **grid_summary(grid)}, f,
                  indent=2, default=str)
    written.append(summary_file)

    for (row, col), res in grid:
        if res.skipped:
            continue
        csv_file = out_dir / f'cell_{row}_{col}.csv'
        _write_series(res, csv_file, config.output.samples_per_day)
        written.append(csv_file)

    if figures:
        (row, col), _, _ = grid.max_female_cell()
        best = grid.cell(row, col).daily(config.output.samples_per_day)
        cutoff = ParameterSet(config.parameters)[GlobalParam.FRUIT_HARVEST_CUTOFF]
        for name, plot, kwargs in (
            ('stages.png', plot_stage_trajectories, {}),
            ('fruit_quality.png', plot_fruit_quality, {'harvest_cutoff': cutoff}),
        ):
            path = out_dir / name
            plot(best, save_path=str(path), **kwargs)
            written.append(path)
        path = out_dir / 'grid_peaks.png'
        plot_grid_peaks(grid, save_path=str(path))
        written.append(path)

    logger.info("Wrote %d files to %s", len(written), out_dir)
    return written


def main(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(
        description="Run a dsPopSim grid from YAML configuration.",
        epilog="Example: dspopsim configs/default.yaml --output-dir results/run1",
    )
    parser.add_argument("config", help="Base configuration YAML")
    parser.add_argument("--scenario", default=None,
                        help="Scenario override YAML")
    parser.add_argument("--temperatures", default=None,
                        help=".npy daily temperatures (1-D or n_rows x n_cols x n_days)")
    parser.add_argument("--output-dir", default=None,
                        help="Override output directory (default: from YAML)")
    parser.add_argument("--no-figures", action="store_true",
                        help="Skip figure generation")
    parser.add_argument("--dry-run", action="store_true",
                        help="Parse and display config without running")
    parser.add_argument("--verbose", "-v", action="store_true",
                        help="DEBUG logging")
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    config = load_config(args.config, args.scenario)
    if args.dry_run:
        print(json.dumps(asdict(config), indent=2, default=str))
        return 0

    temperatures = None
    if args.temperatures is not None:
        temperatures = load_temperatures(Path(args.temperatures), config)

    grid = run_config(config, temperatures)
    out_dir = Path(args.output_dir or config.output.directory)
    write_outputs(grid, config, out_dir, figures=not args.no_figures)

    (row, col), value, latitude = grid.max_female_cell()
    print(f"Peak females {value:.4g} at cell ({row}, {col}), latitude {latitude:g}")
    print(f"Skipped cells: {len(grid.skipped)}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
