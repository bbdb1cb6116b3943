"""Run configuration for dsPopSim.

Hierarchical YAML configuration with deep-merge support:
  base.yaml → scenario override → sweep overrides

Sections map 1:1 to YAML top-level keys (``simulation``, ``grid``,
``output``, ``parameters``). The ``parameters`` section holds flat
``name: value`` model parameter overrides, e.g.::

    parameters:
      initial females1: 25
      fruit harvest cutoff: 0.9
"""

from __future__ import annotations

import logging
import os
import warnings
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any, Dict, Optional, Union

import yaml

from dspopsim.environment import latitude_grid
from dspopsim.grid import GridResult, GridRunner
from dspopsim.parameters import ParameterSet

logger = logging.getLogger(__name__)


# ═══════════════════════════════════════════════════════════════════════
# CONFIGURATION DATACLASSES
# ═══════════════════════════════════════════════════════════════════════

@dataclass
class SimulationSection:
    """Per-cell run settings."""
    dt: float = 0.05                   # integration step (days)
    n_days: int = 365                  # simulation horizon (days)
    start_day: int = -1                # -1: seed on diapause crossing; 0-364: forced injection
    ignore_fruit: bool = False
    ignore_diapause: bool = False
    constant_temp: float = 15.0        # °C, used when no temperature series is given
    start_year: int = 0                # calendar year of tick 0 (solstice lookup)
    noise_epsilon: float = 1e-15       # instar ratio-based zero snapping


@dataclass
class GridSection:
    """Spatial grid and worker pool."""
    n_rows: int = 1
    n_cols: int = 1
    n_workers: int = 2
    origin_latitude: float = 24.5      # latitude of row 0
    latitude_step: float = 1.0         # latitude increment per row


@dataclass
class OutputSection:
    """Output control."""
    directory: str = "results/"
    samples_per_day: int = 1           # down-sampling of series handed to reports


@dataclass
class SimulationConfig:
    """Complete run configuration.

    Load from YAML via `load_config()`.
    """
    simulation: SimulationSection = field(default_factory=SimulationSection)
    grid: GridSection = field(default_factory=GridSection)
    output: OutputSection = field(default_factory=OutputSection)
    parameters: Dict[str, float] = field(default_factory=dict)


# ═══════════════════════════════════════════════════════════════════════
# YAML LOADING & MERGING
# ═══════════════════════════════════════════════════════════════════════

def deep_merge(base: Dict, override: Dict) -> Dict:
    """Recursively merge override into base. Modifies base in place.

    - Dict values are merged recursively
    - Non-dict values are replaced
    - Keys in override but not base are added
    """
    for key, value in override.items():
        if (
            key in base
            and isinstance(base[key], dict)
            and isinstance(value, dict)
        ):
            deep_merge(base[key], value)
        else:
            base[key] = value
    return base


def _dict_to_section(section_cls, data: Dict) -> Any:
    """Convert a dict to a dataclass, ignoring unknown keys."""
    valid_fields = {f.name for f in fields(section_cls)}
    filtered = {k: v for k, v in data.items() if k in valid_fields}
    return section_cls(**filtered)


def _yaml_to_config(data: Dict) -> SimulationConfig:
    """Convert a merged YAML dict to a SimulationConfig."""
    sections = {}
    section_map = {
        'simulation': SimulationSection,
        'grid': GridSection,
        'output': OutputSection,
    }
    for key, cls in section_map.items():
        if key in data and isinstance(data[key], dict):
            sections[key] = _dict_to_section(cls, data[key])
        else:
            sections[key] = cls()

    parameters = data.get('parameters') or {}
    if not isinstance(parameters, dict):
        raise ValueError(
            f"parameters must be a mapping of name: value, got {type(parameters).__name__}")
    sections['parameters'] = {str(k): v for k, v in parameters.items()}
    return SimulationConfig(**sections)


def validate_config(config: SimulationConfig) -> None:
    """Validate configuration constraints. Raises ValueError on failure.

    Checks:
      - dt is positive; n_days is non-negative
      - start_day is -1 or a day of year (0-364)
      - grid shape and worker count are at least 1
      - samples_per_day is at least 1
    """
    sim = config.simulation
    if sim.dt <= 0:
        raise ValueError(f"simulation.dt must be > 0, got {sim.dt}")
    if sim.n_days < 0:
        raise ValueError(f"simulation.n_days must be >= 0, got {sim.n_days}")
    if not -1 <= sim.start_day <= 364:
        raise ValueError(
            f"simulation.start_day must be in [-1, 364], got {sim.start_day}")
    if sim.noise_epsilon < 0:
        raise ValueError(
            f"simulation.noise_epsilon must be >= 0, got {sim.noise_epsilon}")

    # dt should tile a day so that the daily index advances cleanly
    ticks_per_day = 1.0 / sim.dt
    if abs(ticks_per_day - round(ticks_per_day)) > 1e-9:
        warnings.warn(
            f"simulation.dt={sim.dt} does not evenly divide one day; "
            f"daily samples will be irregular.",
            UserWarning,
            stacklevel=2,
        )

    grid = config.grid
    if grid.n_rows < 1 or grid.n_cols < 1:
        raise ValueError(
            f"grid.n_rows and grid.n_cols must be >= 1, got {grid.n_rows}x{grid.n_cols}")
    if grid.n_workers < 1:
        raise ValueError(f"grid.n_workers must be >= 1, got {grid.n_workers}")
    cpus = os.cpu_count() or 1
    if grid.n_workers > cpus:
        warnings.warn(
            f"grid.n_workers={grid.n_workers} exceeds the {cpus} available CPUs.",
            UserWarning,
            stacklevel=2,
        )

    if config.output.samples_per_day < 1:
        raise ValueError(
            f"output.samples_per_day must be >= 1, got {config.output.samples_per_day}")


def load_config(
    base_path: Union[str, Path],
    scenario_path: Optional[Union[str, Path]] = None,
    sweep_overrides: Optional[Dict] = None,
) -> SimulationConfig:
    """Load and merge hierarchical YAML configuration.

    Merge order: base → scenario → sweep overrides.
    Each layer overrides only the fields it specifies.

    Args:
        base_path: Path to base configuration YAML.
        scenario_path: Optional scenario override YAML.
        sweep_overrides: Optional dict of parameter sweep overrides.

    Returns:
        Validated SimulationConfig.

    Raises:
        FileNotFoundError: If base_path doesn't exist.
        ValueError: If validation fails or parameter overrides are rejected.
    """
    base_path = Path(base_path)
    if not base_path.exists():
        raise FileNotFoundError(f"Config file not found: {base_path}")

    with open(base_path) as f:
        config_dict = yaml.safe_load(f) or {}

    if scenario_path is not None:
        scenario_path = Path(scenario_path)
        if scenario_path.exists():
            with open(scenario_path) as f:
                scenario = yaml.safe_load(f) or {}
            deep_merge(config_dict, scenario)

    if sweep_overrides is not None:
        deep_merge(config_dict, sweep_overrides)

    config = _yaml_to_config(config_dict)
    validate_config(config)
    build_parameter_set(config)
    return config


def default_config() -> SimulationConfig:
    """Return a SimulationConfig with all default values."""
    config = SimulationConfig()
    validate_config(config)
    return config


# ═══════════════════════════════════════════════════════════════════════
# BUILDERS
# ═══════════════════════════════════════════════════════════════════════

def build_parameter_set(config: SimulationConfig) -> ParameterSet:
    """Default parameters with the configured overrides applied atomically.

    Raises:
        ValueError: If the overrides are rejected.
    """
    params = ParameterSet()
    result = params.update(config.parameters)
    if not result:
        logger.warning("Rejected parameter overrides: %s", result.reason)
        raise ValueError(f"Invalid parameters: {result.reason}")
    return params


def build_grid_runner(config: SimulationConfig) -> GridRunner:
    """GridRunner for the configured grid, parameters and run settings."""
    sim = config.simulation
    grid = config.grid
    return GridRunner(
        grid.n_rows,
        grid.n_cols,
        params=build_parameter_set(config),
        n_workers=grid.n_workers,
        latitudes=latitude_grid(grid.n_rows, grid.n_cols,
                                grid.origin_latitude, grid.latitude_step),
        dt=sim.dt,
        ignore_fruit=sim.ignore_fruit,
        ignore_diapause=sim.ignore_diapause,
        start_year=sim.start_year,
        noise_epsilon=sim.noise_epsilon,
    )


def run_config(config: SimulationConfig, temperatures=None) -> GridResult:
    """Build the configured grid and run it for ``simulation.n_days``."""
    sim = config.simulation
    runner = build_grid_runner(config)
    return runner.run(temperatures, n_days=sim.n_days, start_day=sim.start_day,
                      constant_temp=sim.constant_temp)
