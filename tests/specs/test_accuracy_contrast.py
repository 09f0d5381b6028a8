"""
Accuracy analyses.

With ``acc ~ condition`` the effect size shifts accuracy and the
expected direction comes from the accuracy difference, whatever the
latency means do.
"""

import contextlib
import io

import pytest

from tests.config import DEFAULT_ALPHA, N_EXP_ORDERING, SCENARIO_CONDITIONS, SCENARIO_SUBJECTS
from tests.helpers.mc_margins import mc_margin
from tests.helpers.power_helpers import get_power, get_wrong_sign, make_sim, run_power

# B is more accurate and faster than A: accuracy and latency differences have opposite signs
ACCURATE_AND_FAST = {"A": (0.70, 5.2), "B": (0.95, 5.0)}


@pytest.fixture(autouse=True)
def _quiet():
    """Suppress stdout for all tests in this module."""
    with contextlib.redirect_stdout(io.StringIO()):
        yield


class TestAccuracyDirection:
    """Wrong-sign checks use the accuracy difference."""

    def test_large_accuracy_gain_has_no_wrong_signs(self):
        sim = make_sim("acc ~ condition", ACCURATE_AND_FAST, n_experiments=N_EXP_ORDERING)
        result = run_power(sim, SCENARIO_SUBJECTS)

        assert result["model"]["target"] == "acc"
        assert get_power(result) > 90
        assert get_wrong_sign(result) < 5

    def test_accuracy_effect_size_sets_direction(self):
        sim = make_sim("acc ~ condition", ACCURATE_AND_FAST, n_experiments=N_EXP_ORDERING)
        result = run_power(sim, SCENARIO_SUBJECTS, effect_size=-1.0)

        assert get_power(result) > 50
        assert get_wrong_sign(result) < 5


class TestAccuracyTypeIError:
    """A zero effect removes the accuracy difference."""

    def test_rejection_rate_bounded_by_alpha(self):
        sim = make_sim("acc ~ condition", SCENARIO_CONDITIONS, n_experiments=N_EXP_ORDERING)
        result = sim.find_type1_error(SCENARIO_SUBJECTS, print_results=False, return_results=True, progress_callback=False)

        power = get_power(result)
        margin = mc_margin(DEFAULT_ALPHA, N_EXP_ORDERING)
        assert power <= DEFAULT_ALPHA * 100 + margin, f"acc ~ condition rejection rate under H0: {power:.2f}%"

    def test_zero_effect_equalises_accuracy_only(self):
        sim = make_sim("acc ~ condition", SCENARIO_CONDITIONS, n_experiments=2)
        rows = sim.simulate(n_subjects=4, effect_size=0.0)

        means = rows.groupby("condition")[["acc_mean_logit", "rt_mean_log"]].first()
        assert means.loc["B", "acc_mean_logit"] == pytest.approx(means.loc["A", "acc_mean_logit"])
        assert means.loc["B", "rt_mean_log"] != pytest.approx(means.loc["A", "rt_mean_log"])


class TestExplicitTarget:
    """An explicit target must name the analysed response."""

    def test_mismatched_target_rejected(self):
        from trialpower import ConfigurationError

        sim = make_sim("acc ~ condition", n_experiments=2)
        sim.set_target("rt")
        with pytest.raises(ConfigurationError, match="does not match the response"):
            run_power(sim, 4)

    def test_mismatched_approach_in_sweep_rejected(self):
        from trialpower import ConfigurationError

        sim = make_sim("rt ~ condition", n_experiments=2)
        sim.set_target("rt")
        with pytest.raises(ConfigurationError, match="does not match the response"):
            sim.sweep([4], approaches=["rt ~ condition", "acc ~ condition"], print_results=False, progress_callback=False)

    def test_matching_target_accepted(self):
        sim = make_sim("acc ~ condition", n_experiments=2)
        sim.set_target("acc")
        assert run_power(sim, 4)["model"]["target"] == "acc"
