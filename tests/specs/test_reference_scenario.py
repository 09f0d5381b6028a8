"""
Reference scenario: 1000 experiments, 24 subjects, 16 trials, seed 76.

Conditions A/B/C with log-latency means 5.2/5.0/6.3 (B vs A shift of
-0.2) analysed with fixed-effects regression on raw latency.
"""

import contextlib
import io

import pytest

from tests.config import (
    N_EXP_STANDARD,
    SCENARIO_CONDITIONS,
    SCENARIO_NULL_CONDITIONS,
    SCENARIO_SUBJECTS,
    SCENARIO_TRIALS,
    SEED,
    TYPE1_UPPER,
)
from tests.helpers.power_helpers import get_power, get_wrong_sign, make_sim, run_power


@pytest.fixture(autouse=True)
def _quiet():
    """Suppress stdout for all tests in this module."""
    with contextlib.redirect_stdout(io.StringIO()):
        yield


def _scenario(conditions):
    return make_sim("rt ~ condition", conditions, n_experiments=N_EXP_STANDARD, n_trials=SCENARIO_TRIALS, seed=SEED)


class TestReferenceScenario:
    """Power and Type I error for the reference design."""

    def test_effect_detected(self):
        result = run_power(_scenario(SCENARIO_CONDITIONS), SCENARIO_SUBJECTS)

        assert result["model"]["seed"] == 76
        assert result["results"]["n_experiments"] == N_EXP_STANDARD
        assert get_power(result) > 90.0
        assert get_wrong_sign(result) < 1.0
        assert result["results"]["n_failed"] == 0

    def test_reproducible(self):
        first = run_power(_scenario(SCENARIO_CONDITIONS), SCENARIO_SUBJECTS)
        second = run_power(_scenario(SCENARIO_CONDITIONS), SCENARIO_SUBJECTS)

        assert first["results"]["power"] == second["results"]["power"]
        assert first["results"]["wrong_sign_rate"] == second["results"]["wrong_sign_rate"]

    def test_zero_effect_is_conservative(self):
        result = run_power(_scenario(SCENARIO_NULL_CONDITIONS), SCENARIO_SUBJECTS)

        assert get_power(result) <= TYPE1_UPPER

    def test_zero_effect_via_effect_size(self):
        """An explicit zero shift equals the zero-effect means."""
        via_means = run_power(_scenario(SCENARIO_NULL_CONDITIONS), SCENARIO_SUBJECTS)
        via_shift = run_power(_scenario(SCENARIO_CONDITIONS), SCENARIO_SUBJECTS, effect_size=0.0)

        assert via_means["results"]["power"] == pytest.approx(via_shift["results"]["power"])
