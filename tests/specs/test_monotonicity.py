"""
Monotonicity tests.

Power must not decrease with sample size or effect size.
"""

import contextlib
import io

import pytest

from tests.config import N_EXP_ORDERING
from tests.helpers.mc_margins import mc_difference_margin
from tests.helpers.power_helpers import get_power, make_sim, run_power


@pytest.fixture(autouse=True)
def _quiet():
    """Suppress stdout for all tests in this module."""
    with contextlib.redirect_stdout(io.StringIO()):
        yield


class TestMonotonicity:
    """Power ordering across sample sizes and effect sizes."""

    @pytest.mark.parametrize("seed", [1, 2, 3])
    def test_power_increases_with_sample_size(self, seed):
        """Quadrupling the subjects raises power at a fixed effect size, for several seeds."""
        sim = make_sim("log(rt) ~ condition", n_experiments=N_EXP_ORDERING, n_trials=8, seed=seed)
        table = sim.sweep([6, 24, 96], [0.05], print_results=False, progress_callback=False)["table"]
        powers = list(table["power"])

        assert powers[0] < powers[1] < powers[2]

    def test_power_increases_with_effect_size(self):
        """Larger shifts are detected more often (common random numbers across cells)."""
        sim = make_sim("log(rt) ~ condition", n_experiments=N_EXP_ORDERING, n_trials=8)
        table = sim.sweep([12], [0.0, 0.05, 0.1, 0.2], print_results=False, progress_callback=False)["table"]
        powers = list(table["power"])

        assert powers == sorted(powers)
        assert powers[-1] > 0.9

    def test_negative_shift_symmetry(self):
        """Shifting down detects as well as shifting up, with no wrong-sign inflation."""
        sim = make_sim("log(rt) ~ condition", n_experiments=N_EXP_ORDERING, n_trials=8)
        up = run_power(sim, 12, 0.1)
        down = run_power(sim, 12, -0.1)

        margin = mc_difference_margin(up["results"]["power"], down["results"]["power"], N_EXP_ORDERING)
        assert abs(get_power(up) - get_power(down)) < margin
        assert down["results"]["wrong_sign_rate"] < 0.01
