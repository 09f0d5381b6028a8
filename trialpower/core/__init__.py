"""Core components for the trialpower framework.

Re-exports the pipeline building blocks:

- ``ConditionSpec``, ``generate_design`` - condition means and the crossed
  experiment x subject x condition x trial design.
- ``add_ground_truth``, ``to_sampling_scale`` - per-row means and subject
  offsets.
- ``sample_outcomes`` - binary accuracy and latency per trial.
- ``SimulationRunner``, ``SimulationMetadata``, ``GridCell``,
  ``prepare_metadata``, ``simulate_batch`` - Monte Carlo execution.
- ``ResultsProcessor``, ``PowerEstimate``, ``build_power_result``,
  ``build_sweep_result``, ``results_table`` - aggregation and result shaping.
"""

from .design import ConditionSpec, generate_design
from .parameters import add_ground_truth, to_sampling_scale
from .results import (
    PowerEstimate,
    ResultsProcessor,
    build_power_result,
    build_sweep_result,
    results_table,
)
from .sampling import sample_outcomes
from .simulation import GridCell, SimulationMetadata, SimulationRunner, prepare_metadata, simulate_batch

__all__ = [
    # Design
    "ConditionSpec",
    "generate_design",
    # Ground truth and sampling
    "add_ground_truth",
    "to_sampling_scale",
    "sample_outcomes",
    # Simulation
    "GridCell",
    "SimulationRunner",
    "SimulationMetadata",
    "prepare_metadata",
    "simulate_batch",
    # Results
    "PowerEstimate",
    "ResultsProcessor",
    "build_power_result",
    "build_sweep_result",
    "results_table",
]
