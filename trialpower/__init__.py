"""trialpower - Monte Carlo power analysis for trial-level experiments.

Simulates experiments in which subjects complete trials under several
conditions (binary accuracy and latency per trial), fits one analysis
model per experiment and estimates how often a condition contrast is
detected, and how often it is detected in the wrong direction.

Example:
    >>> from trialpower import PowerSimulation
    >>>
    >>> sim = PowerSimulation("log(rt) ~ condition + (1|sub_id)")
    >>> sim.set_conditions("A=0.9/5.2, B=0.85/5.0, C=0.8/6.3")
    >>> sim.find_power(n_subjects=24)
    >>>
    >>> sim.sweep(sample_sizes=[12, 24, 48], effect_sizes=[0.0, 0.05, 0.1])
"""

from importlib.metadata import version as _get_version

from .model import PowerSimulation
from .progress import PrintReporter, ProgressReporter, SimulationCancelled, TqdmReporter
from .utils.validators import ConfigurationError, SamplingDegeneracy

__version__ = _get_version("trialpower")

__all__ = [
    "PowerSimulation",
    "ConfigurationError",
    "SamplingDegeneracy",
    "SimulationCancelled",
    "ProgressReporter",
    "PrintReporter",
    "TqdmReporter",
]
