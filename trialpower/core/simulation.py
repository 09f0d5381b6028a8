"""
Simulation execution for trial-level power analysis.

This module contains the Monte Carlo driver: for each grid cell it runs
design -> ground truth -> outcomes -> per-experiment fits -> aggregation,
and sweeps cells either sequentially or on a joblib worker pool.
"""

from dataclasses import dataclass
from typing import Callable, List, Optional, Sequence, Tuple

import numpy as np
import pandas as pd

from ..stats.models import AnalysisModel, AnalysisResult, analyze_batch
from ..utils.streams import OUTCOME_STREAM, PARAMETER_STREAM, SeedLike, cell_sequence, child_sequence
from ..utils.validators import ConfigurationError, SamplingDegeneracy, _validate_model_subjects
from .design import ConditionSpec, generate_design
from .parameters import add_ground_truth, to_sampling_scale
from .results import PowerEstimate, ResultsProcessor
from .sampling import sample_outcomes


@dataclass(frozen=True)
class GridCell:
    """One combination of swept design parameters.

    Attributes:
        sample_size: Subjects per experiment.
        effect_size: Shift of the contrast condition relative to the
            reference on the analysed response's sampling scale; ``None``
            keeps the configured means.
        model: Analysis approach fitted to every experiment of the cell.
    """

    sample_size: int
    effect_size: Optional[float]
    model: AnalysisModel

    @property
    def label(self) -> str:
        effect = "configured" if self.effect_size is None else f"{self.effect_size:g}"
        return f"N={self.sample_size}, effect={effect}, {self.model.formula}"


class SimulationMetadata:
    """Static settings shared by every cell of a run.

    Created once by ``prepare_metadata`` (or directly) and passed to
    ``SimulationRunner``; nothing in it changes across cells.

    Attributes:
        spec: Baseline condition means.
        n_experiments: Simulated experiments per cell.
        n_trials: Trials per subject per condition.
        contrast: Condition compared with ``spec.reference``.
        target: Dimension the effect size shifts (``"rt"`` or ``"acc"``).
            ``None`` follows the response each cell's model analyses; an
            explicit target must match that response.
        subject_sd_accuracy: Subject offset SD (logit scale).
        subject_sd_latency: Subject offset SD (log-latency scale).
        residual_sd: Trial-level SD of log latency.
        min_latency: Latency floor added after exponentiation (ms).
        latency_resolution: Latency rounding unit (ms).
        sampling_mode: ``"batch"`` or ``"rowwise"``.
        expected_sign: Fixed expected direction, or ``None`` to use the
            sign of the cell's true contrast.
    """

    def __init__(
        self,
        spec: ConditionSpec,
        n_experiments: int,
        n_trials: int,
        contrast: str,
        target: Optional[str] = None,
        subject_sd_accuracy: float = 0.5,
        subject_sd_latency: float = 0.1,
        residual_sd: float = 0.3,
        min_latency: float = 200.0,
        latency_resolution: float = 1.0,
        sampling_mode: str = "batch",
        expected_sign: Optional[float] = None,
    ):
        self.spec = spec
        self.n_experiments = n_experiments
        self.n_trials = n_trials
        self.contrast = contrast
        self.target = target
        self.subject_sd_accuracy = subject_sd_accuracy
        self.subject_sd_latency = subject_sd_latency
        self.residual_sd = residual_sd
        self.min_latency = min_latency
        self.latency_resolution = latency_resolution
        self.sampling_mode = sampling_mode
        self.expected_sign = expected_sign

    def cell_dimension(self, model: AnalysisModel) -> str:
        """Dimension shifted and signed for cells analysed with *model*.

        Raises:
            ConfigurationError: If an explicit target differs from the
                response *model* analyses.
        """
        if self.target is None:
            return model.response
        if self.target != model.response:
            raise ConfigurationError(
                f"Target '{self.target}' does not match the response analysed by '{model.formula}'; "
                f"effect sizes and wrong-sign checks must apply to the analysed response"
            )
        return self.target

    def cell_spec(self, effect_size: Optional[float], dimension: str = "rt") -> ConditionSpec:
        """Condition means for a cell with the given effect size on *dimension*."""
        if effect_size is None:
            return self.spec
        return self.spec.with_shift(self.contrast, dimension, effect_size)

    def cell_expected_sign(self, spec: ConditionSpec, dimension: str = "rt") -> float:
        """Expected direction of the contrast coefficient for *spec* on *dimension*."""
        if self.expected_sign is not None:
            return 1.0 if self.expected_sign >= 0 else -1.0
        means = to_sampling_scale(spec, dimension)
        diff = means[spec.labels.index(self.contrast)] - means[spec.labels.index(spec.reference)]
        return -1.0 if diff < 0 else 1.0


def prepare_metadata(model) -> SimulationMetadata:
    """
    Prepare simulation metadata from a ``PowerSimulation`` configuration.

    Args:
        model: PowerSimulation instance

    Returns:
        SimulationMetadata instance
    """
    return SimulationMetadata(
        spec=model.conditions,
        n_experiments=model.n_experiments,
        n_trials=model.n_trials,
        contrast=model.contrast,
        target=model.target,
        subject_sd_accuracy=model.subject_sd_accuracy,
        subject_sd_latency=model.subject_sd_latency,
        residual_sd=model.residual_sd,
        min_latency=model.min_latency,
        latency_resolution=model.latency_resolution,
        sampling_mode=model.sampling_mode,
        expected_sign=model.expected_sign,
    )


def simulate_batch(
    metadata: SimulationMetadata,
    n_subjects: int,
    effect_size: Optional[float] = None,
    seed: SeedLike = None,
    dimension: Optional[str] = None,
) -> pd.DataFrame:
    """Generate one cell's full batch: design, ground truth and outcomes.

    Random streams are derived from ``(seed, n_subjects)``, so cells with the
    same sample size share their draws regardless of effect size.

    Args:
        dimension: Dimension *effect_size* shifts (default:
            ``metadata.target``, else ``"rt"``).
    """
    if dimension is None:
        dimension = metadata.target or "rt"
    spec = metadata.cell_spec(effect_size, dimension)
    if seed is None:
        seed = np.random.SeedSequence()
    cell_seq = cell_sequence(seed, n_subjects)

    design = generate_design(metadata.n_experiments, n_subjects, metadata.n_trials, spec)
    params = add_ground_truth(
        design,
        spec,
        metadata.subject_sd_accuracy,
        metadata.subject_sd_latency,
        seed=child_sequence(cell_seq, PARAMETER_STREAM),
    )
    return sample_outcomes(
        params,
        metadata.residual_sd,
        metadata.min_latency,
        metadata.latency_resolution,
        seed=child_sequence(cell_seq, OUTCOME_STREAM),
        mode=metadata.sampling_mode,
    )


class SimulationRunner:
    """Executes the Monte Carlo pipeline for grid cells.

    Each cell is independent: it derives its own random streams from the
    global seed and its sample size, simulates ``n_experiments`` experiments,
    fits the cell's model to each experiment and reduces the fits into a
    ``PowerEstimate``. Experiments inside a cell may be fitted on a pool of
    ``n_jobs`` workers; cells may run on a pool of ``n_cell_jobs`` workers.
    """

    def __init__(
        self,
        seed: Optional[int] = None,
        alpha: float = 0.05,
        n_jobs: int = 1,
        n_cell_jobs: int = 1,
        exclude_failed: bool = True,
        max_failed_rate: float = 0.1,
    ):
        """Initialise the simulation runner.

        Args:
            seed: Global seed. ``None`` draws fresh entropy once per runner,
                so all cells of one run still share a root.
            alpha: Significance threshold.
            n_jobs: Worker-pool size for fitting experiments in a cell.
            n_cell_jobs: Worker-pool size for running cells.
            exclude_failed: Exclude non-converged fits from the power
                denominator.
            max_failed_rate: Failure rate above which a warning is issued.
        """
        self.seed = seed
        self.alpha = alpha
        self.n_jobs = n_jobs
        self.n_cell_jobs = n_cell_jobs
        self.exclude_failed = exclude_failed
        self.max_failed_rate = max_failed_rate
        self._root = np.random.SeedSequence(seed)

    def run_cell(
        self,
        metadata: SimulationMetadata,
        cell: GridCell,
        progress=None,
        cancel_check: Optional[Callable[[], bool]] = None,
        n_jobs: Optional[int] = None,
    ) -> Tuple[PowerEstimate, List[AnalysisResult]]:
        """Run the full pipeline for one cell.

        Args:
            metadata: Static run settings.
            cell: The grid cell to evaluate.
            progress: Optional ``ProgressReporter``; told which cell starts
                and advanced per fitted experiment.
            cancel_check: Optional callable returning ``True`` to abort.
            n_jobs: Override for the fitting pool size.

        Returns:
            Tuple of ``(estimate, per_experiment_results)``. A cell whose
            fits all failed still returns an estimate (with ``NaN`` power).

        Raises:
            SamplingDegeneracy: If the cell's means are not valid
                distribution parameters.
            ConfigurationError: If the cell's model cannot be fitted to its
                design or its response is not the configured target.
        """
        spec = self._checked_spec(metadata, cell)
        dimension = metadata.cell_dimension(cell.model)
        if progress is not None:
            progress.begin_cell(cell.label)
        batch = simulate_batch(metadata, cell.sample_size, cell.effect_size, seed=self._root, dimension=dimension)

        analyses = analyze_batch(
            batch,
            cell.model,
            metadata.contrast,
            reference=spec.reference,
            n_jobs=self.n_jobs if n_jobs is None else n_jobs,
            progress=progress,
            cancel_check=cancel_check,
        )

        processor = ResultsProcessor(self.alpha, self.exclude_failed, self.max_failed_rate)
        estimate = processor.build_estimate(
            analyses,
            sample_size=cell.sample_size,
            effect_size=cell.effect_size,
            approach=cell.model.formula,
            expected_sign=metadata.cell_expected_sign(spec, dimension),
        )
        return estimate, analyses

    def run_grid(
        self,
        metadata: SimulationMetadata,
        cells: Sequence[GridCell],
        progress=None,
        cancel_check: Optional[Callable[[], bool]] = None,
    ) -> List[PowerEstimate]:
        """Run every cell and return estimates in cell order.

        All cells are checked for degenerate parameters before any simulation
        starts. With ``n_cell_jobs > 1`` cells run on a joblib loky pool and
        experiments inside each cell are fitted sequentially.
        """
        from ..progress import SimulationCancelled

        for cell in cells:
            self._checked_spec(metadata, cell)

        if self.n_cell_jobs > 1 and len(cells) > 1:
            from joblib import Parallel, delayed

            outputs = Parallel(
                n_jobs=self.n_cell_jobs,
                backend="loky",
                verbose=0,
                return_as="generator",
            )(delayed(self.run_cell)(metadata, cell, None, None, 1) for cell in cells)

            estimates = []
            for cell, (estimate, _) in zip(cells, outputs):
                if cancel_check is not None and cancel_check():
                    raise SimulationCancelled("Simulation cancelled by user")
                estimates.append(estimate)
                if progress is not None:
                    progress.begin_cell(cell.label)
                    progress.advance(metadata.n_experiments)
            return estimates

        estimates = []
        for cell in cells:
            if cancel_check is not None and cancel_check():
                raise SimulationCancelled("Simulation cancelled by user")
            estimate, _ = self.run_cell(metadata, cell, progress=progress, cancel_check=cancel_check)
            estimates.append(estimate)
        return estimates

    @staticmethod
    def _checked_spec(metadata: SimulationMetadata, cell: GridCell) -> ConditionSpec:
        """Resolve the cell's spec, failing early on unusable cells."""
        _validate_model_subjects(cell.sample_size, cell.model.is_mixed).raise_if_invalid()
        dimension = metadata.cell_dimension(cell.model)
        try:
            spec = metadata.cell_spec(cell.effect_size, dimension)
            to_sampling_scale(spec, "acc")
            to_sampling_scale(spec, "rt")
        except SamplingDegeneracy as e:
            raise SamplingDegeneracy(
                f"Cell ({cell.label}): {e}",
                condition=e.condition,
                dimension=e.dimension,
                value=e.value,
            ) from e
        return spec
