"""Explicit fixed-step (Euler) updates for the stage chain and fruit quality.

Flow topology::

    F1..F7 ──fecundity × viability──▶ E → I1 → I2 → I3 → P ─┬─ p ──▶ M
                                                             └ 1−p ─▶ F1 → … → F7

Each stage loses ``mortality + predation + development`` per day
(males only mortality + predation; F7 has no development). All flows
in a tick are computed from the pre-tick vector: the update is
simultaneous, never sequential substitution.
"""

from __future__ import annotations

import math

import numpy as np

from dspopsim.rates import StageRates
from dspopsim.types import FEMALE_SLICE, INSTAR_STAGES, N_STAGES, Stage

DEFAULT_NOISE_EPSILON = 1e-15

FRUIT_Q_MIN = 0.05
FRUIT_Q_MAX = 1.0


def suppress_noise(raw: float, prev: float,
                   epsilon: float = DEFAULT_NOISE_EPSILON) -> float:
    """Keep ``prev`` when ``raw`` differs from it by a ratio below ``epsilon``.

    A previous value of exactly 0 always accepts ``raw``; a non-positive
    ``raw`` keeps a positive ``prev`` for any ``epsilon``.
    """
    if prev == 0:
        return raw
    if raw <= 0:
        return prev
    if raw / prev < epsilon:
        return prev
    if prev / raw < epsilon:
        return prev
    return raw


def euler_step(pop: np.ndarray, rates: StageRates, dt: float,
               noise_epsilon: float = DEFAULT_NOISE_EPSILON) -> np.ndarray:
    """Advance the (N_STAGES,) population vector by one tick.

    Returns a new array; ``pop`` is not modified. Negative inputs and
    outputs are clamped to 0.
    """
    old = np.maximum(np.asarray(pop, dtype=np.float64), 0.0)
    dev = rates.development
    loss = rates.mortality + rates.predation
    p = rates.male_proportion
    new = np.empty(N_STAGES, dtype=np.float64)

    # Eggs: fecundity inflow from the pre-tick females
    females = old[FEMALE_SLICE].copy()
    laid = rates.fecundity * float(np.dot(rates.egg_viability, females))
    new[Stage.EGG] = old[Stage.EGG] + (laid - old[Stage.EGG] * (loss[Stage.EGG] + dev[Stage.EGG])) * dt

    for stage in INSTAR_STAGES:
        prev = stage - 1
        d_dt = dev[prev] * old[prev] - old[stage] * (loss[stage] + dev[stage])
        raw = max(old[stage] + d_dt * dt, 0.0)
        new[stage] = suppress_noise(raw, old[stage], noise_epsilon)

    pupal_outflow = dev[Stage.PUPA] * old[Stage.PUPA]
    inst3_outflow = dev[Stage.INSTAR3] * old[Stage.INSTAR3]
    new[Stage.PUPA] = old[Stage.PUPA] + (
        inst3_outflow - old[Stage.PUPA] * (loss[Stage.PUPA] + dev[Stage.PUPA])) * dt

    new[Stage.MALE] = old[Stage.MALE] + (
        p * pupal_outflow - old[Stage.MALE] * loss[Stage.MALE]) * dt

    new[Stage.FEMALE1] = old[Stage.FEMALE1] + (
        (1.0 - p) * pupal_outflow
        - old[Stage.FEMALE1] * (loss[Stage.FEMALE1] + dev[Stage.FEMALE1])) * dt
    for stage in range(Stage.FEMALE2, Stage.FEMALE7 + 1):
        prev = stage - 1
        # F7 is terminal
        outflow = 0.0 if stage == Stage.FEMALE7 else dev[stage]
        d_dt = dev[prev] * old[prev] - old[stage] * (loss[stage] + outflow)
        new[stage] = old[stage] + d_dt * dt

    np.maximum(new, 0.0, out=new)
    return new


def fruit_quality_step(quality: float, gt: float, lag_quality: float,
                       dt: float, gt_multiplier: float,
                       harvest_cutoff: float, harvest_drop: float) -> float:
    """One explicit step of dQ/dt = Q × (mult / G(T) − harvest).

    ``harvest`` is ``harvest_drop`` when the lagged quality exceeds the
    cutoff, else 0. An undefined G(T) (NaN) contributes no growth. The
    result is clamped to [0.05, 1].
    """
    harvest = harvest_drop if lag_quality > harvest_cutoff else 0.0
    if math.isnan(gt):
        d_dt = quality * -harvest
    else:
        d_dt = quality * (gt_multiplier / gt - harvest)
    q = quality + d_dt * dt
    if q < FRUIT_Q_MIN:
        q = FRUIT_Q_MIN
    if q > FRUIT_Q_MAX:
        q = FRUIT_Q_MAX
    return q
