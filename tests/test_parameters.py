"""Tests for dspopsim.parameters: structured parameter set and validation."""

import numpy as np
import pytest

from dspopsim.cell import CellSimulator
from dspopsim.parameters import (
    INVALID_PARAMETER,
    SUCCESS,
    ParameterSet,
    ValidationResult,
    check_values,
    flat_name,
    parse_flat_name,
)
from dspopsim.types import GlobalParam, Stage, StageParam


@pytest.fixture
def params() -> ParameterSet:
    return ParameterSet()


# ═══════════════════════════════════════════════════════════════════════
# DEFAULTS & READ ACCESS
# ═══════════════════════════════════════════════════════════════════════

class TestDefaults:
    def test_defaults_validate(self, params):
        result = params.check()
        assert result.accepted
        assert result.reason == SUCCESS

    def test_stage_values(self, params):
        assert params.get_parameter("eggs development max") == 0.72
        assert params.get_parameter("females1 development max") == pytest.approx(1 / 80)
        assert params.get_parameter("males mortality max") == 0.1398
        assert params.get_parameter("females7 egg viability") == 0.0
        assert params.get_parameter("pupae mortality tau") == 8.1776

    def test_initial_population(self, params):
        assert params.get_parameter("initial females1") == 10.0
        assert params.get_parameter("initial eggs") == 0.0

    def test_global_values(self, params):
        assert params[GlobalParam.FRUIT_TIME_LAG] == 50.0
        assert params[GlobalParam.FRUIT_HARVEST_CUTOFF] == 0.95
        assert params[GlobalParam.DIAPAUSE_CRITICAL_TEMP] == 18.0
        assert params[GlobalParam.LATITUDE] == 45.7
        assert params.get_parameter("fertility tmax") == 30.0

    def test_not_applicable_is_nan(self, params):
        assert np.isnan(params.get(Stage.MALE, StageParam.DEVELOPMENT_MAX))
        assert np.isnan(params.get(Stage.EGG, StageParam.EGG_VIABILITY))

    def test_unknown_name_raises_on_read(self, params):
        with pytest.raises(KeyError):
            params.get_parameter("males development max")
        with pytest.raises(KeyError):
            params.get_parameter("wing length")


class TestArrayParameters:
    def test_initial_has_13(self, params):
        values = params.get_array_parameters("initial")
        assert len(values) == 13
        assert values[6] == 10.0

    def test_development_max_has_11(self, params):
        values = params.get_array_parameters("development max")
        assert len(values) == 11
        assert values[0] == 0.72
        assert values[5] == pytest.approx(1 / 80)

    def test_egg_viability_has_7(self, params):
        values = params.get_array_parameters("egg viability")
        assert values == [0.832, 0.807, 0.763, 0.556, 0.324, 0.257, 0.0]

    def test_mortality_categories(self, params):
        assert len(params.get_array_parameters("mortality max")) == 13
        assert params.get_array_parameters("mortality due to predation") == [0.0] * 13
        assert params.get_array_parameters("mortality min temp") == [3.0] * 13

    def test_unknown_category(self, params):
        assert params.get_array_parameters("wing length") == []


class TestFlatNames:
    def test_parse_global(self):
        assert parse_flat_name("fruit n") is GlobalParam.FRUIT_N

    def test_parse_stage(self):
        assert parse_flat_name("instar2 mortality beta3") == (
            Stage.INSTAR2, StageParam.MORTALITY_BETA3)
        assert parse_flat_name("initial pupae") == (Stage.PUPA, StageParam.INITIAL)
        assert parse_flat_name("females4 mortality due to predation") == (
            Stage.FEMALE4, StageParam.PREDATION)

    def test_flat_name_inverse(self):
        for kind in StageParam:
            name = flat_name(Stage.FEMALE2, kind)
            assert parse_flat_name(name) == (Stage.FEMALE2, kind)

    def test_not_applicable_rejected(self):
        with pytest.raises(KeyError):
            parse_flat_name("eggs egg viability")

    def test_to_flat_from_flat(self, params):
        params.set_parameter("initial eggs", 3.0)
        flat = params.to_flat()
        assert flat["initial eggs"] == 3.0
        assert not any(np.isnan(v) for v in flat.values())
        assert ParameterSet.from_flat(flat) == params

    def test_from_flat_invalid(self):
        with pytest.raises(ValueError, match="male proportion"):
            ParameterSet.from_flat({"male proportion": 1.5})


# ═══════════════════════════════════════════════════════════════════════
# VALIDATED MUTATION
# ═══════════════════════════════════════════════════════════════════════

class TestSetParameter:
    def test_valid_update(self, params):
        result = params.set_parameter("initial eggs", 50)
        assert result == ValidationResult(True, SUCCESS)
        assert params.get_parameter("initial eggs") == 50.0

    def test_unknown_name_is_result(self, params):
        result = params.set_parameter("wing length", 1.0)
        assert not result.accepted
        assert result.reason == INVALID_PARAMETER

    def test_non_numeric_value(self, params):
        result = params.set_parameter("fruit n", "four")
        assert not result.accepted
        assert params[GlobalParam.FRUIT_N] == 4.0

    @pytest.mark.parametrize("name,value,reason", [
        ("fruit m", 1.5, "m is between 0 and 1 inclusive"),
        ("fruit time lag", -1, "time lag is positive"),
        ("fruit harvest cutoff", 1.01, "fruit harvest cutoff is between 0 and 1 inclusive"),
        ("fruit harvest drop", -0.1, "fruit harvest drop is between 0 and 1 inclusive"),
        ("diapause daylight hours", 25, "diapause daylight hours is between 0 and 24 inclusive"),
        ("male proportion", -0.5, "male proportion is between 0 and 1 inclusive"),
        ("initial instar3", -1, "initial populations are positive"),
        ("males mortality max", -0.1, "mortality max is positive"),
        ("pupae mortality due to predation", -0.2, "mortality due to predation is positive"),
        ("eggs development max", -0.72, "development max is positive"),
        ("females3 egg viability", -0.5, "egg viability is positive"),
    ])
    def test_rejection_reasons(self, params, name, value, reason):
        before = params.get_parameter(name)
        result = params.set_parameter(name, value)
        assert not result.accepted
        assert result.reason == reason
        assert params.get_parameter(name) == before

    def test_boundaries_inclusive(self, params):
        assert params.set_parameter("male proportion", 0.0).accepted
        assert params.set_parameter("male proportion", 1.0).accepted
        assert params.set_parameter("diapause daylight hours", 24).accepted
        assert params.set_parameter("fruit harvest cutoff", 0).accepted

    def test_unconstrained_parameter(self, params):
        assert params.set_parameter("eggs mortality min temp", -5.0).accepted
        assert params.set_parameter("latitude", -40.0).accepted

    def test_set_stage_parameter(self, params):
        assert params.set_stage_parameter(Stage.PUPA, StageParam.PREDATION, 0.02).accepted
        assert params.get(Stage.PUPA, StageParam.PREDATION) == 0.02

    def test_set_stage_parameter_not_applicable(self, params):
        result = params.set_stage_parameter(Stage.MALE, StageParam.DEVELOPMENT_MAX, 0.5)
        assert result.reason == INVALID_PARAMETER

    def test_set_max_mortality(self, params):
        assert params.set_max_mortality(Stage.EGG, 0.5).accepted
        assert params.get_parameter("eggs mortality max") == 0.5
        assert not params.set_max_mortality(Stage.EGG, -1).accepted
        assert params.get_parameter("eggs mortality max") == 0.5


class TestAtomicity:
    def test_rejected_batch_changes_nothing(self, params):
        before = params.table
        before_flat = params.to_flat()
        result = params.update({
            "initial eggs": 5.0,
            "fruit n": 2.0,
            "male proportion": 2.0,
        })
        assert not result.accepted
        assert result.reason == "male proportion is between 0 and 1 inclusive"
        assert np.array_equal(params.table, before, equal_nan=True)
        assert params.to_flat() == before_flat

    def test_unknown_name_in_batch(self, params):
        result = params.update({"initial eggs": 5.0, "bogus": 1.0})
        assert result.reason == INVALID_PARAMETER
        assert params.get_parameter("initial eggs") == 0.0

    def test_accepted_batch(self, params):
        assert params.update({"initial eggs": 5.0, "fruit n": 2.0}).accepted
        assert params.get_parameter("initial eggs") == 5.0
        assert params[GlobalParam.FRUIT_N] == 2.0

    def test_update_without_fruit_ignores_fruit(self, params):
        result = params.update({"fruit n": 9.0, "latitude": 30.0}, reset_fruit=False)
        assert result.accepted
        assert params[GlobalParam.FRUIT_N] == 4.0
        assert params[GlobalParam.LATITUDE] == 30.0

    def test_column_is_read_only(self, params):
        col = params.column(StageParam.INITIAL)
        with pytest.raises(ValueError):
            col[0] = 5.0


class TestNonFiniteValues:
    @pytest.mark.parametrize("name", [
        "male proportion",
        "initial eggs",
        "fruit m",
        "fruit time lag",
        "diapause daylight hours",
        "females2 mortality max",
        "instar1 development max",
        "females1 egg viability",
        "latitude",
    ])
    @pytest.mark.parametrize("value", [np.nan, np.inf, -np.inf])
    def test_rejected(self, params, name, value):
        before = params.to_flat()
        result = params.set_parameter(name, value)
        assert not result.accepted
        assert params.to_flat() == before

    @pytest.mark.parametrize("key,reason", [
        (GlobalParam.MALE_PROPORTION, "male proportion is between 0 and 1 inclusive"),
        (GlobalParam.FRUIT_M, "m is between 0 and 1 inclusive"),
        (GlobalParam.FRUIT_TIME_LAG, "time lag is positive"),
        (GlobalParam.DIAPAUSE_DAYLIGHT_HOURS,
         "diapause daylight hours is between 0 and 24 inclusive"),
    ])
    def test_range_checks_reject_nan_globals(self, params, key, reason):
        values = {p: params[p] for p in GlobalParam}
        values[key] = np.nan
        result = check_values(values, params.table)
        assert result.reason == reason

    @pytest.mark.parametrize("stage,kind,reason", [
        (Stage.EGG, StageParam.INITIAL, "initial populations are positive"),
        (Stage.MALE, StageParam.MORTALITY_MAX, "mortality max is positive"),
        (Stage.PUPA, StageParam.PREDATION, "mortality due to predation is positive"),
        (Stage.INSTAR2, StageParam.DEVELOPMENT_MAX, "development max is positive"),
        (Stage.FEMALE4, StageParam.EGG_VIABILITY, "egg viability is positive"),
    ])
    def test_range_checks_reject_nan_table(self, params, stage, kind, reason):
        values = {p: params[p] for p in GlobalParam}
        table = params.table
        table[stage, kind] = np.nan
        assert check_values(values, table).reason == reason

    def test_nan_initial_never_reaches_a_run(self, params):
        assert not params.set_parameter("initial eggs", np.nan).accepted
        sim = CellSimulator(params)
        sim.run_constant(25.0, 1)
        assert np.all(sim.result().stages >= 0.0)


class TestBroadcast:
    def test_copy_is_independent(self, params):
        other = params.copy()
        other.set_parameter("initial eggs", 7.0)
        assert params.get_parameter("initial eggs") == 0.0

    def test_copy_from_keeps_fruit(self, params):
        params.set_parameter("fruit time lag", 20.0)
        template = ParameterSet()
        template.set_parameter("fruit time lag", 80.0)
        template.set_parameter("latitude", 35.0)
        assert params.copy_from(template, reset_fruit=False).accepted
        assert params[GlobalParam.FRUIT_TIME_LAG] == 20.0
        assert params[GlobalParam.LATITUDE] == 35.0

    def test_copy_from_with_fruit(self, params):
        template = ParameterSet()
        template.set_parameter("fruit time lag", 80.0)
        assert params.copy_from(template).accepted
        assert params[GlobalParam.FRUIT_TIME_LAG] == 80.0

    def test_reset_fruit_params(self, params):
        new_fruit = dict(params.fruit_params())
        new_fruit["fruit gt multiplier"] = 6.0
        assert params.reset_fruit_params(new_fruit).accepted
        assert params[GlobalParam.FRUIT_GT_MULTIPLIER] == 6.0

    def test_reset_fruit_params_requires_all(self, params):
        result = params.reset_fruit_params({"fruit n": 2.0})
        assert not result.accepted
        assert result.reason == "Not all parameters were found!"
        assert params[GlobalParam.FRUIT_N] == 4.0

    def test_reset_fruit_params_invalid(self, params):
        new_fruit = dict(params.fruit_params())
        new_fruit["fruit m"] = 3.0
        result = params.reset_fruit_params(new_fruit)
        assert result.reason == "m is between 0 and 1 inclusive"
        assert params[GlobalParam.FRUIT_M] == 0.75
