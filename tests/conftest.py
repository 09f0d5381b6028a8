"""
Shared pytest fixtures for trialpower tests.
"""

import pytest

from tests.config import SEED, SMALL_SUBJECTS, SMALL_TRIALS


@pytest.fixture
def spec():
    """Default three-condition spec (A reference, B faster, C slower)."""
    from trialpower.core import ConditionSpec

    return ConditionSpec.from_means({"A": (0.90, 5.2), "B": (0.85, 5.0), "C": (0.80, 6.3)})


@pytest.fixture
def small_design(spec):
    """3 experiments x 4 subjects x 5 trials x 3 conditions."""
    from trialpower.core import generate_design

    return generate_design(3, 4, 5, spec)


@pytest.fixture
def small_batch(spec):
    """A small simulated batch with outcomes, reproducible from SEED."""
    from trialpower.core import SimulationMetadata, simulate_batch

    metadata = SimulationMetadata(spec, n_experiments=5, n_trials=SMALL_TRIALS, contrast="B")
    return simulate_batch(metadata, SMALL_SUBJECTS, seed=SEED)


@pytest.fixture
def small_sim():
    """PowerSimulation configured for fast runs."""
    from trialpower import PowerSimulation

    sim = PowerSimulation("log(rt) ~ condition")
    sim.n_experiments = 20
    sim.n_subjects = SMALL_SUBJECTS
    sim.n_trials = SMALL_TRIALS
    sim.seed = SEED
    return sim


@pytest.fixture
def suppress_output(capsys):
    """Swallow console output from setters and result printing."""
    yield
    capsys.readouterr()
