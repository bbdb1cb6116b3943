"""Core data types for dsPopSim.

This module is the single source of truth for:
  - Stage: the 13 life-stage population classes, in biological order
  - StageParam / GlobalParam: enumerated parameter kinds for the
    structured parameter table
  - Stage groupings (juvenile chain, instars, adult females)
  - XYSeries: append-only (time, value) history series

Stage ordering is fixed: eggs, instar1-3, pupae, males, females1-7.
Every per-stage array in the package is indexed by ``Stage``.
"""

from enum import Enum, IntEnum
from typing import List, Tuple

import numpy as np


# ═══════════════════════════════════════════════════════════════════════
# LIFE STAGES
# ═══════════════════════════════════════════════════════════════════════

class Stage(IntEnum):
    """Life stages of the fly, in development order.

    Flow:
      EGG → INSTAR1 → INSTAR2 → INSTAR3 → PUPA ─┬→ MALE
                                                 └→ FEMALE1 → … → FEMALE7

    Female sub-stages are age/fecundity classes; FEMALE7 is terminal.
    """
    EGG     = 0
    INSTAR1 = 1
    INSTAR2 = 2
    INSTAR3 = 3
    PUPA    = 4
    MALE    = 5
    FEMALE1 = 6
    FEMALE2 = 7
    FEMALE3 = 8
    FEMALE4 = 9
    FEMALE5 = 10
    FEMALE6 = 11
    FEMALE7 = 12


N_STAGES = len(Stage)
N_FEMALE_STAGES = 7

INSTAR_STAGES = (Stage.INSTAR1, Stage.INSTAR2, Stage.INSTAR3)
JUVENILE_STAGES = (Stage.EGG,) + INSTAR_STAGES + (Stage.PUPA,)
FEMALE_STAGES = tuple(Stage(i) for i in range(Stage.FEMALE1, Stage.FEMALE7 + 1))

# Stages with an outgoing development flow (males and FEMALE7 have none)
DEVELOPING_STAGES = JUVENILE_STAGES + FEMALE_STAGES[:-1]

# Slice of the stage vector holding the adult female sub-stages
FEMALE_SLICE = slice(int(Stage.FEMALE1), int(Stage.FEMALE7) + 1)

# Names used by the flat parameter format and by report collaborators
_BASE_STAGE_NAMES = ("eggs", "instar1", "instar2", "instar3", "pupae", "males")


def stage_name(stage: int) -> str:
    """Flat-format name of a stage ('eggs', 'instar2', 'females3', ...)."""
    stage = Stage(stage)
    if stage < Stage.FEMALE1:
        return _BASE_STAGE_NAMES[stage]
    return f"females{stage - Stage.MALE}"


STAGE_NAMES = tuple(stage_name(s) for s in Stage)


def stage_from_name(name: str) -> Stage:
    """Inverse of :func:`stage_name`. Raises KeyError for unknown names."""
    try:
        return Stage(STAGE_NAMES.index(name))
    except ValueError:
        raise KeyError(f"Unknown stage name '{name}'") from None


# ═══════════════════════════════════════════════════════════════════════
# PARAMETER KINDS
# ═══════════════════════════════════════════════════════════════════════

class StageParam(IntEnum):
    """Per-stage parameter kinds (columns of the parameter table)."""
    INITIAL            = 0   # initial population (abundance)
    DEVELOPMENT_MAX    = 1   # divisor of the Briere rate; constant rate for females
    MORTALITY_MAX      = 2   # mortality outside the tolerable window
    MORTALITY_MIN_TEMP = 3   # lower bound of tolerable window (°C, inclusive)
    MORTALITY_MAX_TEMP = 4   # upper bound of tolerable window (°C, inclusive)
    MORTALITY_TAU      = 5   # polynomial reference temperature (°C)
    MORTALITY_BETA0    = 6
    MORTALITY_BETA1    = 7
    MORTALITY_BETA2    = 8
    MORTALITY_BETA3    = 9
    PREDATION          = 10  # additional per-day loss to predation
    EGG_VIABILITY      = 11  # fraction of laid eggs that are viable (females only)


N_STAGE_PARAMS = len(StageParam)

MORTALITY_BETAS = (
    StageParam.MORTALITY_BETA0,
    StageParam.MORTALITY_BETA1,
    StageParam.MORTALITY_BETA2,
    StageParam.MORTALITY_BETA3,
)


def applicable_stages(kind: StageParam) -> Tuple[Stage, ...]:
    """Stages for which a parameter kind is defined, in stage order."""
    kind = StageParam(kind)
    if kind == StageParam.DEVELOPMENT_MAX:
        return DEVELOPING_STAGES
    if kind == StageParam.EGG_VIABILITY:
        return FEMALE_STAGES
    return tuple(Stage)


class GlobalParam(str, Enum):
    """Scalar (non stage-specific) parameters. Values are the flat names."""
    FRUIT_N              = "fruit n"
    FRUIT_M              = "fruit m"
    FRUIT_TIME_LAG       = "fruit time lag"
    FRUIT_BASE_TEMP      = "fruit base temp"
    FRUIT_GT_MULTIPLIER  = "fruit gt multiplier"
    FRUIT_HARVEST_CUTOFF = "fruit harvest cutoff"
    FRUIT_HARVEST_DROP   = "fruit harvest drop"
    DIAPAUSE_CRITICAL_TEMP = "diapause critical temp"
    DIAPAUSE_DAYLIGHT_HOURS = "diapause daylight hours"
    TIME                 = "time"
    CONSTANT_TEMP        = "constant temp"
    MALE_PROPORTION      = "male proportion"
    LATITUDE             = "latitude"
    FERTILITY_TMAX       = "fertility tmax"

    @property
    def is_fruit(self) -> bool:
        return self.value.startswith("fruit ")


FRUIT_PARAMS = tuple(p for p in GlobalParam if p.is_fruit)


# ═══════════════════════════════════════════════════════════════════════
# HISTORY SERIES
# ═══════════════════════════════════════════════════════════════════════

class XYSeries:
    """Append-only sequence of (time, value) samples.

    Backed by Python lists while a run is growing it; ``to_array()``
    returns an (n, 2) float64 copy for reporting.
    """

    __slots__ = ("_t", "_v")

    def __init__(self):
        self._t: List[float] = []
        self._v: List[float] = []

    def append(self, t: float, value: float) -> None:
        self._t.append(t)
        self._v.append(value)

    def clear(self) -> None:
        self._t.clear()
        self._v.clear()

    def __len__(self) -> int:
        return len(self._t)

    def __getitem__(self, i):
        return self._t[i], self._v[i]

    @property
    def times(self) -> np.ndarray:
        return np.asarray(self._t, dtype=np.float64)

    @property
    def values(self) -> np.ndarray:
        return np.asarray(self._v, dtype=np.float64)

    def to_array(self) -> np.ndarray:
        out = np.empty((len(self._t), 2), dtype=np.float64)
        out[:, 0] = self._t
        out[:, 1] = self._v
        return out
