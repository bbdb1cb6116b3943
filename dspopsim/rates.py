"""Temperature- and resource-dependent rate functions.

All functions here are pure: they map temperature, daylight hours or
fruit quality (plus parameters) to a rate, a multiplier or a switch
value. Numeric domain problems are guarded and answered with a defined
sentinel (usually 0) instead of raising.

Rates per stage per day:
  - development: Briere curve for juveniles, constant for females 1-6
  - mortality: cubic polynomial inside the tolerable window, max outside
  - fecundity: unimodal in temperature, zero above ``fertility tmax``

Diapause is a two-switch hysteresis machine (see ``diapause_switch1``
and ``diapause_switch2``) plus a logistic suppression of fecundity
under short days.
"""

from __future__ import annotations

import math
from dataclasses import dataclass

import numpy as np

from dspopsim.parameters import ParameterSet
from dspopsim.types import (
    DEVELOPING_STAGES,
    FEMALE_STAGES,
    JUVENILE_STAGES,
    MORTALITY_BETAS,
    N_STAGES,
    GlobalParam,
    Stage,
    StageParam,
)


# ═══════════════════════════════════════════════════════════════════════
# FECUNDITY
# ═══════════════════════════════════════════════════════════════════════

_FEC_D = 5.88
_FEC_L = 52.68
_FEC_SCALE_LOG = math.log(3.3315e-304)
_FEC_PEAK_T = 23.26
_FEC_WIDTH = 2740.50
_FEC_EXPONENT = 88.38


def fecundity_rate(T: float, fertility_tmax: float = 30.0) -> float:
    """Eggs per female per day at temperature T.

    f(T) = c × (2740.50 − (T − 23.26)²)^88.38, with c = 3.3315e-304,
    evaluated in log space. Returns 0 above ``fertility_tmax``, outside
    T² + 5.88² < 52.68², or where the base would be non-positive.
    """
    if T > fertility_tmax:
        return 0.0
    if T * T + _FEC_D * _FEC_D >= _FEC_L * _FEC_L:
        return 0.0
    base = _FEC_WIDTH - (T - _FEC_PEAK_T) ** 2
    if base <= 0:
        return 0.0
    return math.exp(_FEC_SCALE_LOG + _FEC_EXPONENT * math.log(base))


# ═══════════════════════════════════════════════════════════════════════
# DIAPAUSE
# ═══════════════════════════════════════════════════════════════════════

# Generalised logistic fit of % females in diapause vs daylight hours
_DIAP_A = 0.04056
_DIAP_K = 99.8
_DIAP_V = 1.2428535918
_DIAP_M = 0.0
_DIAP_Q = 3.23967951563418e-16
_DIAP_B = -2.871323611


def diapause_fecundity_multiplier(hours: float) -> float:
    """Fraction of fecundity retained at ``hours`` of daylight (in [0, 1])."""
    expo = _DIAP_Q * math.exp(-_DIAP_B * (hours - _DIAP_M))
    in_diapause = _DIAP_A + (_DIAP_K - _DIAP_A) / (1.0 + expo) ** (1.0 / _DIAP_V)
    return (100.0 - in_diapause) / 100.0


def diapause_switch1(hours: float, temperature: float, prev_s1: int, prev_s2: int,
                     critical_temp: float, threshold_hours: float) -> int:
    """Dormancy switch.

    0 when both switches were on and days have shortened below the
    threshold; 1 when switch 2 was off and it is warmer than the
    critical temperature; otherwise unchanged.
    """
    if prev_s1 * prev_s2 > 0 and hours < threshold_hours:
        return 0
    if prev_s2 == 0 and temperature > critical_temp:
        return 1
    return prev_s1


def diapause_switch2(hours: float, prev_s1: int, prev_s2: int,
                     threshold_hours: float) -> int:
    """Long-day switch; must be fed the previous tick's switch 1."""
    if prev_s1 == 0:
        return 0
    if hours >= threshold_hours:
        return 1
    return prev_s2


# ═══════════════════════════════════════════════════════════════════════
# DEVELOPMENT & MORTALITY
# ═══════════════════════════════════════════════════════════════════════

BRIERE_A = 0.0001113
BRIERE_T0 = 9.8504
BRIERE_TL = 30.99


def development_rate(T: float, dev_max: float) -> float:
    """Briere development rate a·T·(T − T0)·√(TL − T) / dev_max.

    Zero outside [T0, TL] and for non-positive ``dev_max``.
    """
    if T > BRIERE_TL or T < BRIERE_T0:
        return 0.0
    if not dev_max > 0:
        return 0.0
    return BRIERE_A * T * (T - BRIERE_T0) * math.sqrt(BRIERE_TL - T) / dev_max


def mortality_rate(T: float, params: ParameterSet, stage: int) -> float:
    """Natural mortality of ``stage`` at T (closed tolerable window)."""
    lower = params.get(stage, StageParam.MORTALITY_MIN_TEMP)
    upper = params.get(stage, StageParam.MORTALITY_MAX_TEMP)
    if not (lower <= T <= upper):
        return params.get(stage, StageParam.MORTALITY_MAX)
    x = T - params.get(stage, StageParam.MORTALITY_TAU)
    return sum(params.get(stage, beta) * x ** i
               for i, beta in enumerate(MORTALITY_BETAS))


# ═══════════════════════════════════════════════════════════════════════
# FRUIT EFFECTS
# ═══════════════════════════════════════════════════════════════════════

FRUIT_Q_CONSTANT = 0.5


def _quality_ratio(quality: float, n: float) -> float:
    return (quality / FRUIT_Q_CONSTANT) ** n


def fruit_effect_on_development(quality: float, params: ParameterSet) -> float:
    """Multiplier on juvenile development; 1 − m at poor quality, → 1 when good."""
    m = params[GlobalParam.FRUIT_M]
    ratio = _quality_ratio(quality, params[GlobalParam.FRUIT_N])
    return m * ratio / (1.0 + ratio) + 1.0 - m


def fruit_effect_on_mortality(quality: float, params: ParameterSet, stage: int) -> float:
    """Additive mortality: 0.1 × stage max mortality, fading as quality improves."""
    ratio = _quality_ratio(quality, params[GlobalParam.FRUIT_N])
    return 0.1 * params.get(stage, StageParam.MORTALITY_MAX) / (1.0 + ratio)


# ═══════════════════════════════════════════════════════════════════════
# PER-TICK RATE ASSEMBLY
# ═══════════════════════════════════════════════════════════════════════

@dataclass
class StageRates:
    """All rates the integrator needs for one tick.

    ``development`` and ``mortality`` are (N_STAGES,) arrays; development
    is 0 for males and females7. ``mortality`` already includes the
    fruit effect; predation is kept separate.
    """
    development: np.ndarray
    mortality: np.ndarray
    predation: np.ndarray
    egg_viability: np.ndarray
    fecundity: float
    male_proportion: float


def stage_rates(T: float, quality: float, params: ParameterSet,
                ignore_fruit: bool = False,
                fecundity_multiplier: float = 1.0) -> StageRates:
    """Assemble development, mortality and fecundity for one tick."""
    if ignore_fruit:
        dev_effect = 1.0
    else:
        dev_effect = fruit_effect_on_development(quality, params)

    dev_max = params.column(StageParam.DEVELOPMENT_MAX)
    development = np.zeros(N_STAGES, dtype=np.float64)
    for stage in JUVENILE_STAGES:
        development[stage] = development_rate(T, dev_max[stage]) * dev_effect
    # Female ageing is temperature-independent
    for stage in DEVELOPING_STAGES:
        if stage >= Stage.FEMALE1:
            development[stage] = dev_max[stage]

    mortality = np.empty(N_STAGES, dtype=np.float64)
    for stage in Stage:
        mortality[stage] = mortality_rate(T, params, stage)
        if not ignore_fruit:
            mortality[stage] += fruit_effect_on_mortality(quality, params, stage)

    fecundity = fecundity_rate(T, params[GlobalParam.FERTILITY_TMAX])
    return StageRates(
        development=development,
        mortality=mortality,
        predation=params.column(StageParam.PREDATION).copy(),
        egg_viability=np.array([params.get(s, StageParam.EGG_VIABILITY)
                                for s in FEMALE_STAGES], dtype=np.float64),
        fecundity=fecundity * fecundity_multiplier,
        male_proportion=params[GlobalParam.MALE_PROPORTION],
    )
