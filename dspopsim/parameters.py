"""Model parameter set for dsPopSim.

Parameters live in a structured table indexed by ``Stage`` × ``StageParam``
plus a small mapping of scalar ``GlobalParam`` values. A compatibility
layer accepts and emits the flat name-keyed format used by parameter
files and external tooling, e.g.::

    "initial females1": 10.0
    "eggs development max": 0.72
    "pupae mortality due to predation": 0.0
    "fruit harvest cutoff": 0.95

Every mutation is validated as a whole before being applied. A rejected
update leaves the set untouched and is reported through a
``ValidationResult`` carrying a human-readable reason; rejection is a
normal, recoverable outcome and never raises.
"""

from __future__ import annotations

import copy
import math
from dataclasses import dataclass
from typing import Dict, Iterator, List, Mapping, Optional, Tuple

import numpy as np

from dspopsim.types import (
    FEMALE_STAGES,
    FRUIT_PARAMS,
    N_STAGE_PARAMS,
    N_STAGES,
    GlobalParam,
    Stage,
    StageParam,
    applicable_stages,
    stage_from_name,
    stage_name,
)


SUCCESS = "Success!"
INVALID_PARAMETER = "Invalid parameter"


@dataclass(frozen=True)
class ValidationResult:
    """Outcome of a validation or a validated update."""
    accepted: bool
    reason: str = SUCCESS

    def __bool__(self) -> bool:
        return self.accepted


_ACCEPTED = ValidationResult(True, SUCCESS)


# ═══════════════════════════════════════════════════════════════════════
# DEFAULT VALUES
# ═══════════════════════════════════════════════════════════════════════

DEFAULT_GLOBALS: Dict[GlobalParam, float] = {
    # fruit sub-model
    GlobalParam.FRUIT_N: 4.0,
    GlobalParam.FRUIT_M: 0.75,
    GlobalParam.FRUIT_TIME_LAG: 50.0,
    GlobalParam.FRUIT_BASE_TEMP: 4.0,
    GlobalParam.FRUIT_GT_MULTIPLIER: 4.0,
    GlobalParam.FRUIT_HARVEST_CUTOFF: 0.95,
    GlobalParam.FRUIT_HARVEST_DROP: 0.1,
    # diapause
    GlobalParam.DIAPAUSE_CRITICAL_TEMP: 18.0,
    GlobalParam.DIAPAUSE_DAYLIGHT_HOURS: 10.0,
    # general
    GlobalParam.TIME: 100.0,
    GlobalParam.CONSTANT_TEMP: 15.0,
    GlobalParam.MALE_PROPORTION: 0.5,
    GlobalParam.LATITUDE: 45.7,
    GlobalParam.FERTILITY_TMAX: 30.0,
}

# Mortality polynomial shape shared by every stage
_DEFAULT_MORTALITY_SHAPE = {
    StageParam.MORTALITY_MIN_TEMP: 3.0,
    StageParam.MORTALITY_MAX_TEMP: 33.0,
    StageParam.MORTALITY_TAU: 8.1776,
    StageParam.MORTALITY_BETA1: -0.0077,
    StageParam.MORTALITY_BETA2: 0.00032,
    StageParam.MORTALITY_BETA3: -0.000002,
}

# Stage → (development max, mortality max, mortality beta0)
_DEFAULT_STAGE_VALUES: Dict[Stage, Tuple[float, float, float]] = {
    Stage.EGG:     (0.72,     0.3288, 0.1602),
    Stage.INSTAR1: (0.94,     0.2688, 0.1402),
    Stage.INSTAR2: (0.68,     0.1020, 0.0846),
    Stage.INSTAR3: (0.32,     0.1068, 0.0862),
    Stage.PUPA:    (0.17,     0.0303, 0.0607),
    Stage.MALE:    (np.nan,   0.1398, 0.0972),
    Stage.FEMALE1: (1.0 / 80, 0.0537, 0.0685),
    Stage.FEMALE2: (1.0 / 10, 0.1200, 0.0906),
    Stage.FEMALE3: (1.0 / 10, 0.4500, 0.2006),
    Stage.FEMALE4: (1.0 / 5,  0.0,    0.0506),
    Stage.FEMALE5: (1.0 / 4,  0.7500, 0.3006),
    Stage.FEMALE6: (1.0 / 5,  0.6000, 0.2506),
    Stage.FEMALE7: (np.nan,   0.8367, 0.3295),
}

_DEFAULT_EGG_VIABILITY = (0.832, 0.807, 0.763, 0.556, 0.324, 0.257, 0.0)

_DEFAULT_INITIAL_FEMALES1 = 10.0


def default_stage_table() -> np.ndarray:
    """Default (N_STAGES, N_STAGE_PARAMS) table; NaN marks not-applicable."""
    table = np.full((N_STAGES, N_STAGE_PARAMS), np.nan, dtype=np.float64)
    for stage, (dev_max, mort_max, beta0) in _DEFAULT_STAGE_VALUES.items():
        table[stage, StageParam.INITIAL] = 0.0
        table[stage, StageParam.DEVELOPMENT_MAX] = dev_max
        table[stage, StageParam.MORTALITY_MAX] = mort_max
        table[stage, StageParam.MORTALITY_BETA0] = beta0
        table[stage, StageParam.PREDATION] = 0.0
        for kind, value in _DEFAULT_MORTALITY_SHAPE.items():
            table[stage, kind] = value
    for stage, viability in zip(FEMALE_STAGES, _DEFAULT_EGG_VIABILITY):
        table[stage, StageParam.EGG_VIABILITY] = viability
    table[Stage.FEMALE1, StageParam.INITIAL] = _DEFAULT_INITIAL_FEMALES1
    return table


# ═══════════════════════════════════════════════════════════════════════
# FLAT NAME MAPPING
# ═══════════════════════════════════════════════════════════════════════

_MORTALITY_SUFFIXES = {
    "max": StageParam.MORTALITY_MAX,
    "min temp": StageParam.MORTALITY_MIN_TEMP,
    "max temp": StageParam.MORTALITY_MAX_TEMP,
    "tau": StageParam.MORTALITY_TAU,
    "beta0": StageParam.MORTALITY_BETA0,
    "beta1": StageParam.MORTALITY_BETA1,
    "beta2": StageParam.MORTALITY_BETA2,
    "beta3": StageParam.MORTALITY_BETA3,
}

# Category names accepted by get_array_parameters (suffix after the stage name)
_CATEGORY_KINDS = {
    "development max": StageParam.DEVELOPMENT_MAX,
    "mortality due to predation": StageParam.PREDATION,
    "egg viability": StageParam.EGG_VIABILITY,
}
_CATEGORY_KINDS.update(
    {f"mortality {suffix}": kind for suffix, kind in _MORTALITY_SUFFIXES.items()}
)
_KIND_CATEGORIES = {kind: cat for cat, kind in _CATEGORY_KINDS.items()}


def flat_name(stage: int, kind: StageParam) -> str:
    """Flat-format key for one table entry."""
    if kind == StageParam.INITIAL:
        return f"initial {stage_name(stage)}"
    return f"{stage_name(stage)} {_KIND_CATEGORIES[StageParam(kind)]}"


def parse_flat_name(name: str):
    """Resolve a flat key to a GlobalParam or a (Stage, StageParam) pair.

    Raises:
        KeyError: If the name is not a known parameter.
    """
    try:
        return GlobalParam(name)
    except ValueError:
        pass
    if name.startswith("initial "):
        return stage_from_name(name[len("initial "):]), StageParam.INITIAL
    head, _, category = name.partition(" ")
    if category in _CATEGORY_KINDS:
        stage = stage_from_name(head)
        kind = _CATEGORY_KINDS[category]
        if stage in applicable_stages(kind):
            return stage, kind
    raise KeyError(f"Unknown parameter '{name}'")


# ═══════════════════════════════════════════════════════════════════════
# VALIDATION
# ═══════════════════════════════════════════════════════════════════════

def _check_fruit(values: Mapping[GlobalParam, float]) -> Optional[str]:
    if not 0 <= values[GlobalParam.FRUIT_M] <= 1:
        return "m is between 0 and 1 inclusive"
    if not values[GlobalParam.FRUIT_TIME_LAG] >= 0:
        return "time lag is positive"
    if not 0 <= values[GlobalParam.FRUIT_HARVEST_CUTOFF] <= 1:
        return "fruit harvest cutoff is between 0 and 1 inclusive"
    if not 0 <= values[GlobalParam.FRUIT_HARVEST_DROP] <= 1:
        return "fruit harvest drop is between 0 and 1 inclusive"
    return None


def _check_non_fruit(values: Mapping[GlobalParam, float],
                     table: np.ndarray) -> Optional[str]:
    if not 0 <= values[GlobalParam.DIAPAUSE_DAYLIGHT_HOURS] <= 24:
        return "diapause daylight hours is between 0 and 24 inclusive"
    if not 0 <= values[GlobalParam.MALE_PROPORTION] <= 1:
        return "male proportion is between 0 and 1 inclusive"

    # Not-applicable entries hold NaN and are never checked
    checks = (
        (StageParam.INITIAL, "initial populations are positive"),
        (StageParam.MORTALITY_MAX, "mortality max is positive"),
        (StageParam.PREDATION, "mortality due to predation is positive"),
        (StageParam.DEVELOPMENT_MAX, "development max is positive"),
        (StageParam.EGG_VIABILITY, "egg viability is positive"),
    )
    for kind, reason in checks:
        for stage in applicable_stages(kind):
            if not table[stage, kind] >= 0:
                return reason
    return None


def check_values(
    values: Mapping[GlobalParam, float],
    table: np.ndarray,
    check_fruit: bool = True,
    check_non_fruit: bool = True,
) -> ValidationResult:
    """Validate a complete proposed parameter state.

    Checks:
      - fruit m, harvest cutoff and harvest drop in [0, 1]; time lag ≥ 0
      - diapause daylight threshold in [0, 24]
      - male proportion in [0, 1]
      - per stage: initial population, maximum mortality, predation,
        development max and egg viability (where applicable) ≥ 0
    """
    if check_fruit:
        reason = _check_fruit(values)
        if reason is not None:
            return ValidationResult(False, reason)
    if check_non_fruit:
        reason = _check_non_fruit(values, table)
        if reason is not None:
            return ValidationResult(False, reason)
    return _ACCEPTED


# ═══════════════════════════════════════════════════════════════════════
# PARAMETER SET
# ═══════════════════════════════════════════════════════════════════════

class ParameterSet:
    """Validated model parameters for one simulation cell.

    Each cell owns an independent copy (``copy()``). A template set can
    be broadcast to many cells with ``copy_from(template,
    reset_fruit=False)``, which leaves the cell-local fruit parameters
    as they are.
    """

    def __init__(self, values: Optional[Mapping[str, float]] = None):
        self._globals: Dict[GlobalParam, float] = dict(DEFAULT_GLOBALS)
        self._table = default_stage_table()
        if values is not None:
            result = self.update(values)
            if not result:
                raise ValueError(f"Invalid parameter set: {result.reason}")

    # ── read access ──────────────────────────────────────────────────

    def __getitem__(self, key: GlobalParam) -> float:
        return self._globals[GlobalParam(key)]

    def get(self, stage: int, kind: StageParam) -> float:
        """Table entry for one stage (NaN when not applicable)."""
        return float(self._table[stage, kind])

    def column(self, kind: StageParam) -> np.ndarray:
        """Read-only view of one parameter kind across all 13 stages."""
        view = self._table[:, kind]
        view.flags.writeable = False
        return view

    @property
    def table(self) -> np.ndarray:
        """Copy of the full (N_STAGES, N_STAGE_PARAMS) table."""
        return self._table.copy()

    def get_parameter(self, name: str) -> float:
        """Value for a flat-format name. Raises KeyError if unknown."""
        key = parse_flat_name(name)
        if isinstance(key, GlobalParam):
            return self._globals[key]
        stage, kind = key
        return float(self._table[stage, kind])

    def get_array_parameters(self, category: str) -> List[float]:
        """Ordered values of one category across its applicable stages.

        ``category`` is ``"initial"`` or a stage suffix such as
        ``"development max"``, ``"mortality max"``, ``"mortality due to
        predation"`` or ``"egg viability"``. Stage order is eggs,
        instar1-3, pupae, males, females1-7 (restricted to the stages
        the category applies to). Unknown categories return ``[]``.
        """
        if category == "initial":
            kind = StageParam.INITIAL
        elif category in _CATEGORY_KINDS:
            kind = _CATEGORY_KINDS[category]
        else:
            return []
        return [float(self._table[s, kind]) for s in applicable_stages(kind)]

    def names(self) -> Iterator[str]:
        """All flat-format parameter names."""
        for p in GlobalParam:
            yield p.value
        for kind in StageParam:
            for stage in applicable_stages(kind):
                yield flat_name(stage, kind)

    def to_flat(self) -> Dict[str, float]:
        """Flat name → value mapping of every parameter."""
        return {name: self.get_parameter(name) for name in self.names()}

    @classmethod
    def from_flat(cls, mapping: Mapping[str, float]) -> 'ParameterSet':
        """Defaults overridden by ``mapping``. Raises ValueError if rejected."""
        return cls(mapping)

    def fruit_params(self) -> Dict[str, float]:
        return {p.value: self._globals[p] for p in FRUIT_PARAMS}

    def copy(self) -> 'ParameterSet':
        return copy.deepcopy(self)

    def __eq__(self, other) -> bool:
        if not isinstance(other, ParameterSet):
            return NotImplemented
        return (self._globals == other._globals
                and np.array_equal(self._table, other._table, equal_nan=True))

    def __repr__(self) -> str:
        return f"ParameterSet(latitude={self[GlobalParam.LATITUDE]})"

    # ── validation ───────────────────────────────────────────────────

    def check(self, check_fruit: bool = True,
              check_non_fruit: bool = True) -> ValidationResult:
        return check_values(self._globals, self._table, check_fruit, check_non_fruit)

    def _propose(self, mapping: Mapping[str, float], include_fruit: bool = True):
        """Apply ``mapping`` to copies of the current state.

        Returns (globals, table) or a rejecting ValidationResult.
        """
        new_globals = dict(self._globals)
        new_table = self._table.copy()
        for name, value in mapping.items():
            try:
                key = parse_flat_name(name)
            except KeyError:
                return ValidationResult(False, INVALID_PARAMETER)
            try:
                value = float(value)
            except (TypeError, ValueError):
                return ValidationResult(False, f"Input error - invalid value for '{name}'")
            if not math.isfinite(value):
                return ValidationResult(False, f"Input error - invalid value for '{name}'")
            if isinstance(key, GlobalParam):
                if key.is_fruit and not include_fruit:
                    continue
                new_globals[key] = value
            else:
                new_table[key] = value
        return new_globals, new_table

    def _commit(self, proposal, check_fruit: bool = True,
                check_non_fruit: bool = True) -> ValidationResult:
        if isinstance(proposal, ValidationResult):
            return proposal
        new_globals, new_table = proposal
        result = check_values(new_globals, new_table, check_fruit, check_non_fruit)
        if result:
            self._globals = new_globals
            self._table = new_table
        return result

    # ── validated mutation ───────────────────────────────────────────

    def set_parameter(self, name: str, value: float) -> ValidationResult:
        """Set one flat-named parameter; rejected updates change nothing."""
        return self._commit(self._propose({name: value}))

    def set_stage_parameter(self, stage: int, kind: StageParam,
                            value: float) -> ValidationResult:
        if int(stage) not in range(N_STAGES):
            return ValidationResult(False, "Invalid stage!")
        if Stage(stage) not in applicable_stages(kind):
            return ValidationResult(False, INVALID_PARAMETER)
        return self.set_parameter(flat_name(stage, kind), value)

    def set_global(self, key: GlobalParam, value: float) -> ValidationResult:
        return self.set_parameter(GlobalParam(key).value, value)

    def set_max_mortality(self, stage: int, value: float) -> ValidationResult:
        return self.set_stage_parameter(stage, StageParam.MORTALITY_MAX, value)

    def update(self, mapping: Mapping[str, float],
               reset_fruit: bool = True) -> ValidationResult:
        """Apply many flat-named values atomically.

        With ``reset_fruit=False`` fruit parameters in ``mapping`` are
        ignored and the current fruit values are kept.
        """
        return self._commit(self._propose(mapping, include_fruit=reset_fruit),
                            check_fruit=reset_fruit)

    def copy_from(self, other: 'ParameterSet',
                  reset_fruit: bool = True) -> ValidationResult:
        """Overwrite this set with ``other`` (optionally keeping fruit values)."""
        result = other.check(check_fruit=reset_fruit)
        if not result:
            return result
        fruit = {p: self._globals[p] for p in FRUIT_PARAMS}
        self._globals = dict(other._globals)
        self._table = other._table.copy()
        if not reset_fruit:
            self._globals.update(fruit)
        return result

    def reset_fruit_params(self, mapping: Mapping[str, float]) -> ValidationResult:
        """Replace all seven fruit parameters; every one must be present."""
        missing = [p.value for p in FRUIT_PARAMS if p.value not in mapping]
        fruit_only = {p.value: mapping[p.value] for p in FRUIT_PARAMS if p.value in mapping}
        proposal = self._propose(fruit_only)
        if isinstance(proposal, ValidationResult):
            return proposal
        result = check_values(proposal[0], proposal[1], True, False)
        if not result:
            return result
        if missing:
            return ValidationResult(False, "Not all parameters were found!")
        self._globals = proposal[0]
        return result
