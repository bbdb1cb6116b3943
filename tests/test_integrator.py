"""Tests for dspopsim.integrator: explicit stage and fruit updates."""

import numpy as np
import pytest

from dspopsim.integrator import euler_step, fruit_quality_step, suppress_noise
from dspopsim.rates import StageRates
from dspopsim.types import N_STAGES, Stage


def _rates(**overrides) -> StageRates:
    """Zero-rate StageRates with selected fields replaced."""
    fields = dict(
        development=np.zeros(N_STAGES),
        mortality=np.zeros(N_STAGES),
        predation=np.zeros(N_STAGES),
        egg_viability=np.ones(7),
        fecundity=0.0,
        male_proportion=0.5,
    )
    fields.update(overrides)
    return StageRates(**fields)


def _pop(**stages) -> np.ndarray:
    pop = np.zeros(N_STAGES)
    for name, value in stages.items():
        pop[Stage[name]] = value
    return pop


# ── Noise guard ───────────────────────────────────────────────────────

class TestSuppressNoise:
    def test_zero_previous_accepts(self):
        assert suppress_noise(1e-30, 0.0) == 1e-30

    def test_vanishing_value_keeps_previous(self):
        assert suppress_noise(0.0, 2.0) == 2.0
        assert suppress_noise(1e-20, 1.0) == 1.0

    def test_exploding_value_keeps_previous(self):
        assert suppress_noise(1e20, 1e-3) == 1e-3

    def test_normal_change(self):
        assert suppress_noise(0.9, 1.0) == 0.9

    def test_custom_epsilon(self):
        assert suppress_noise(1e-3, 1.0, epsilon=1e-2) == 1.0
        assert suppress_noise(1e-3, 1.0, epsilon=1e-4) == 1e-3

    def test_zero_epsilon(self):
        assert suppress_noise(0.0, 1.0, epsilon=0.0) == 1.0
        assert suppress_noise(1e-30, 1.0, epsilon=0.0) == 1e-30
        assert suppress_noise(0.0, 0.0, epsilon=0.0) == 0.0

    def test_negative_raw_keeps_previous(self):
        assert suppress_noise(-0.5, 1.0) == 1.0

    def test_instar_wiped_out_with_zero_epsilon(self):
        pop = np.zeros(N_STAGES)
        pop[Stage.INSTAR1] = 2.0
        mortality = np.zeros(N_STAGES)
        mortality[Stage.INSTAR1] = 100.0
        new = euler_step(pop, _rates(mortality=mortality), 0.05, noise_epsilon=0.0)
        assert new[Stage.INSTAR1] == 2.0
        assert np.all(np.isfinite(new))


# ── Stage chain ───────────────────────────────────────────────────────

class TestEulerStep:
    def test_zero_rates_is_identity(self):
        pop = np.arange(N_STAGES, dtype=float)
        np.testing.assert_array_equal(euler_step(pop, _rates(), 0.05), pop)

    def test_input_not_modified(self):
        pop = _pop(EGG=1.0)
        dev = np.zeros(N_STAGES)
        dev[Stage.EGG] = 1.0
        euler_step(pop, _rates(development=dev), 0.1)
        assert pop[Stage.EGG] == 1.0

    def test_egg_inflow(self):
        pop = _pop(FEMALE1=1.0, FEMALE3=2.0)
        viab = np.array([0.5, 1.0, 0.25, 1.0, 1.0, 1.0, 1.0])
        new = euler_step(pop, _rates(fecundity=2.0, egg_viability=viab), 0.1)
        # 2 × (0.5 × 1 + 0.25 × 2) × 0.1
        assert new[Stage.EGG] == pytest.approx(0.2)

    def test_pupal_split(self):
        dev = np.zeros(N_STAGES)
        dev[Stage.PUPA] = 1.0
        new = euler_step(_pop(PUPA=1.0), _rates(development=dev, male_proportion=0.3), 0.1)
        assert new[Stage.PUPA] == pytest.approx(0.9)
        assert new[Stage.MALE] == pytest.approx(0.03)
        assert new[Stage.FEMALE1] == pytest.approx(0.07)

    def test_males_have_no_development_outflow(self):
        mort = np.zeros(N_STAGES)
        mort[Stage.MALE] = 0.2
        new = euler_step(_pop(MALE=1.0), _rates(mortality=mort), 0.5)
        assert new[Stage.MALE] == pytest.approx(0.9)

    def test_simultaneous_update(self):
        dev = np.zeros(N_STAGES)
        dev[Stage.FEMALE1] = 1.0
        dev[Stage.FEMALE2] = 1.0
        new = euler_step(_pop(FEMALE1=1.0), _rates(development=dev), 0.1)
        assert new[Stage.FEMALE1] == pytest.approx(0.9)
        assert new[Stage.FEMALE2] == pytest.approx(0.1)
        # FEMALE3 reads the pre-tick FEMALE2, which was 0
        assert new[Stage.FEMALE3] == 0.0

    def test_simultaneous_juvenile_chain(self):
        dev = np.zeros(N_STAGES)
        dev[:Stage.MALE] = 1.0
        new = euler_step(_pop(EGG=1.0), _rates(development=dev), 0.1)
        assert new[Stage.INSTAR1] == pytest.approx(0.1)
        assert new[Stage.INSTAR2] == 0.0
        assert new[Stage.PUPA] == 0.0

    def test_terminal_female_stage(self):
        dev = np.full(N_STAGES, 0.5)
        mort = np.zeros(N_STAGES)
        mort[Stage.FEMALE7] = 0.2
        new = euler_step(_pop(FEMALE7=1.0), _rates(development=dev, mortality=mort), 0.1)
        # FEMALE7 loses only mortality, development is not applied
        assert new[Stage.FEMALE7] == pytest.approx(1.0 - 0.1 * 0.2)

    def test_predation_adds_to_loss(self):
        pred = np.zeros(N_STAGES)
        pred[Stage.EGG] = 0.4
        new = euler_step(_pop(EGG=1.0), _rates(predation=pred), 0.5)
        assert new[Stage.EGG] == pytest.approx(0.8)

    def test_non_negative_under_extreme_loss(self):
        pop = np.full(N_STAGES, 1.0)
        mort = np.full(N_STAGES, 100.0)
        new = euler_step(pop, _rates(mortality=mort), 0.05)
        assert np.all(new >= 0.0)
        assert new[Stage.EGG] == 0.0
        assert new[Stage.FEMALE4] == 0.0

    def test_negative_input_clamped(self):
        pop = _pop(EGG=-1.0)
        new = euler_step(pop, _rates(), 0.05)
        assert new[Stage.EGG] == 0.0

    def test_instar_noise_guard(self):
        mort = np.zeros(N_STAGES)
        mort[Stage.INSTAR1] = 100.0
        new = euler_step(_pop(INSTAR1=1.0), _rates(mortality=mort), 0.05)
        # Negative raw value clamps to 0, which the noise guard refuses
        assert new[Stage.INSTAR1] == 1.0


# ── Fruit quality ─────────────────────────────────────────────────────

class TestFruitQualityStep:
    KW = dict(gt_multiplier=4.0, harvest_cutoff=0.95, harvest_drop=0.1)

    def test_growth(self):
        q = fruit_quality_step(0.5, 40.0, 0.05, 1.0, **self.KW)
        assert q == pytest.approx(0.55)

    def test_harvest(self):
        q = fruit_quality_step(0.5, 40.0, 0.99, 1.0, **self.KW)
        assert q == pytest.approx(0.5 + 0.5 * (0.1 - 0.1))

    def test_nan_growth_signal_is_zero_forcing(self):
        assert fruit_quality_step(0.5, float("nan"), 0.05, 1.0, **self.KW) == 0.5
        q = fruit_quality_step(0.5, float("nan"), 1.0, 1.0, **self.KW)
        assert q == pytest.approx(0.45)

    def test_clamped(self):
        assert fruit_quality_step(0.99, 1.0, 0.05, 1.0, **self.KW) == 1.0
        assert fruit_quality_step(0.05, float("nan"), 1.0, 1.0, **self.KW) == 0.05

    def test_bounds_over_many_steps(self):
        q = 0.05
        for lag in np.linspace(0, 1, 200):
            q = fruit_quality_step(q, 35.0, lag, 0.5, **self.KW)
            assert 0.05 <= q <= 1.0
