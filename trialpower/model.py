"""
trialpower - Monte Carlo power analysis for trial-level experiments.

This module provides the main PowerSimulation class for estimating the
power of per-experiment analyses of simulated accuracy/latency data.
"""

import warnings
from typing import Dict, Optional, Sequence, Union

import numpy as np
import pandas as pd

from .core import (
    ConditionSpec,
    GridCell,
    SimulationRunner,
    build_power_result,
    build_sweep_result,
    prepare_metadata,
    simulate_batch,
)
from .core.design import DIMENSIONS
from .core.sampling import SAMPLING_MODES
from .stats.models import AnalysisModel
from .utils.formatters import _format_results
from .utils.parsers import _parser
from .utils.validators import (
    ConfigurationError,
    _validate_alpha,
    _validate_contrast,
    _validate_count,
    _validate_design_counts,
    _validate_grid,
    _validate_model_subjects,
    _validate_numeric_parameter,
    _validate_parallel_settings,
    _validate_sd,
    _validate_seed,
)

DEFAULT_CONDITIONS = {
    "A": (0.90, 5.2),
    "B": (0.85, 5.0),
    "C": (0.80, 6.3),
}

ApproachLike = Union[str, AnalysisModel]


class PowerSimulation:
    """Monte Carlo power analysis for condition contrasts in trial-level data.

    Simulates many experiments (subjects x conditions x trials, with binary
    accuracy and log-normal latency per trial), fits one analysis model per
    experiment and reports how often the contrast between one condition and
    the reference condition is significant, and how often it is significant
    in the wrong direction.

    All configuration methods (``set_*``) validate their input immediately
    and return ``self`` for method chaining.

    Attributes:
        seed: Global seed (default: 76). ``None`` draws fresh entropy.
        alpha: Significance level (default: 0.05).
        n_experiments: Simulated experiments per grid cell (default: 1000).
        n_subjects: Default subjects per experiment (default: 24).
        n_trials: Trials per subject per condition (default: 16).
        conditions: Baseline ``ConditionSpec``.
        analysis: Default ``AnalysisModel`` (``rt ~ condition``).
        contrast: Condition compared with the reference (default: ``"B"``).
        target: Dimension the effect size shifts, ``"rt"`` or ``"acc"``.
            ``None`` (default) follows the response the analysis models.
        n_jobs: Workers for fitting experiments within a cell.
        n_cell_jobs: Workers for running grid cells.

    Example:
        >>> sim = PowerSimulation("log(rt) ~ condition + (1|sub_id)")
        >>> sim.set_conditions("A=0.9/5.2, B=0.85/5.0, C=0.8/6.3")
        >>> sim.find_power(n_subjects=24)

        >>> sim.sweep(sample_sizes=[12, 24, 48], effect_sizes=[0.0, 0.05, 0.1])
    """

    def __init__(self, analysis: str = "rt ~ condition"):
        """Initialise with an analysis formula.

        Args:
            analysis: R-style formula fitted to each experiment. Supported:
                ``rt ~ condition``, ``log(rt) ~ condition``, either with
                ``+ (1|sub_id)``, and ``acc ~ condition``.

        Raises:
            ConfigurationError: If *analysis* is not a supported formula.
        """
        self.analysis = AnalysisModel.from_formula(analysis)

        self.seed: Optional[int] = 76
        self.alpha = 0.05
        self.n_experiments = 1000
        self.n_subjects = 24
        self.n_trials = 16
        self.conditions = ConditionSpec.from_means(DEFAULT_CONDITIONS)
        self.contrast = "B"
        self.target: Optional[str] = None
        self.expected_sign: Optional[float] = None

        self.subject_sd_accuracy = 0.5
        self.subject_sd_latency = 0.1
        self.residual_sd = 0.3
        self.min_latency = 200.0
        self.latency_resolution = 1.0
        self.sampling_mode = "batch"

        self.n_jobs = 1
        self.n_cell_jobs = 1
        self.exclude_failed = True
        self.max_failed_rate = 0.1

    # =========================================================================
    # Design
    # =========================================================================

    def set_experiments(self, n_experiments: int):
        """Set the number of simulated experiments per grid cell.

        More experiments give a more precise estimate; the Monte Carlo
        standard error of a power estimate is ``sqrt(p(1-p)/n_experiments)``.

        Returns:
            self: For method chaining.
        """
        _validate_count(n_experiments, "n_experiments").raise_if_invalid()
        if n_experiments < 100:
            warnings.warn(f"Only {n_experiments} experiments per cell; power estimates will be imprecise")
        self.n_experiments = int(n_experiments)
        return self

    def set_subjects(self, n_subjects: int):
        """Set the default number of subjects per experiment."""
        _validate_count(n_subjects, "n_subjects").raise_if_invalid()
        self.n_subjects = int(n_subjects)
        return self

    def set_trials(self, n_trials: int):
        """Set the number of trials each subject completes per condition."""
        _validate_count(n_trials, "n_trials").raise_if_invalid()
        self.n_trials = int(n_trials)
        return self

    def set_conditions(
        self,
        conditions: Union[str, Dict[str, Sequence[float]]],
        reference: Optional[str] = None,
        accuracy_scale: str = "probability",
        latency_scale: str = "log",
    ):
        """Set the experimental conditions and their baseline means.

        Args:
            conditions: Either ``{"A": (0.9, 5.2), ...}`` or the string form
                ``"A=0.9/5.2, B=0.85/5.0"``, giving mean accuracy and mean
                latency per condition, in declaration order.
            reference: Reference condition for treatment coding (default:
                the first condition).
            accuracy_scale: ``"probability"`` or ``"logit"``.
            latency_scale: ``"log"`` (log ms) or ``"linear"`` (ms).

        Returns:
            self: For method chaining.

        Raises:
            ConfigurationError: On unparsable input, duplicate or empty
                labels, or mismatched mean counts.
        """
        if isinstance(conditions, str):
            parsed, errors = _parser._parse(conditions, "condition")
            if errors:
                raise ConfigurationError("Error parsing conditions:\n" + "\n".join(f"• {e}" for e in errors))
            if not parsed:
                raise ConfigurationError("No conditions found in input string")
            conditions = parsed

        self.conditions = ConditionSpec.from_means(
            conditions,
            accuracy_scale=accuracy_scale,
            latency_scale=latency_scale,
            reference=reference,
        )

        if self.contrast not in self.conditions.labels or self.contrast == self.conditions.reference:
            fallback = next(label for label in self.conditions.labels if label != self.conditions.reference) if len(self.conditions.labels) > 1 else None
            if fallback is not None:
                print(f"Contrast reset to: {fallback}")
            self.contrast = fallback
        return self

    def set_subject_sd(self, accuracy: Optional[float] = None, latency: Optional[float] = None):
        """Set between-subject standard deviations.

        Args:
            accuracy: SD of subject offsets on the logit-accuracy scale.
            latency: SD of subject offsets on the log-latency scale.

        Returns:
            self: For method chaining.
        """
        if accuracy is not None:
            _validate_sd(accuracy, "subject SD (accuracy)").raise_if_invalid()
            self.subject_sd_accuracy = float(accuracy)
        if latency is not None:
            _validate_sd(latency, "subject SD (latency)").raise_if_invalid()
            self.subject_sd_latency = float(latency)
        return self

    def set_residual_sd(self, residual_sd: float):
        """Set the trial-level SD of log latency."""
        _validate_sd(residual_sd, "residual SD").raise_if_invalid()
        self.residual_sd = float(residual_sd)
        return self

    def set_latency_floor(self, min_latency: float = 200.0, resolution: float = 1.0):
        """Set the latency floor (ms, added after exponentiation) and rounding unit.

        Returns:
            self: For method chaining.
        """
        _validate_numeric_parameter(min_latency, "min_latency", min_val=0).raise_if_invalid()
        _validate_numeric_parameter(resolution, "latency resolution", min_val=0).raise_if_invalid()
        if resolution == 0:
            raise ConfigurationError("Validation failed:\n• latency resolution must be greater than 0")
        self.min_latency = float(min_latency)
        self.latency_resolution = float(resolution)
        return self

    def set_sampling_mode(self, mode: str):
        """Choose ``"batch"`` (vectorised) or ``"rowwise"`` outcome sampling.

        Both modes produce identical outcomes for the same seed.
        """
        if mode not in SAMPLING_MODES:
            raise ConfigurationError(f"Validation failed:\n• sampling mode must be one of {SAMPLING_MODES}, got '{mode}'")
        self.sampling_mode = mode
        return self

    # =========================================================================
    # Analysis
    # =========================================================================

    def set_analysis(self, formula: str):
        """Set the default analysis formula (see ``__init__``)."""
        self.analysis = AnalysisModel.from_formula(formula)
        return self

    def set_contrast(self, label: str):
        """Set the condition compared with the reference condition."""
        _validate_contrast(label, self.conditions.labels, self.conditions.reference).raise_if_invalid()
        self.contrast = label
        return self

    def set_target(self, dimension: Optional[str], expected_sign: Optional[float] = None):
        """Set the dimension effect sizes and the expected sign apply to.

        Args:
            dimension: ``"rt"`` (log-latency shift), ``"acc"`` (logit
                shift) or ``None`` to follow the analysed response. An
                explicit dimension must match the response of every
                analysis it is run with.
            expected_sign: Fixed direction the contrast is expected to take.
                ``None`` uses the sign of the true difference in each cell
                (positive when the difference is zero).

        Returns:
            self: For method chaining.
        """
        if dimension is not None and dimension not in DIMENSIONS:
            raise ConfigurationError(f"Validation failed:\n• target must be one of {DIMENSIONS}, got '{dimension}'")
        if expected_sign is not None:
            _validate_numeric_parameter(expected_sign, "expected_sign").raise_if_invalid()
            if expected_sign == 0:
                raise ConfigurationError("Validation failed:\n• expected_sign must be non-zero")
        self.target = dimension
        self.expected_sign = expected_sign
        return self

    def set_alpha(self, alpha: float):
        """Set the significance level (0-0.25). Default is 0.05."""
        _validate_alpha(alpha).raise_if_invalid()
        self.alpha = float(alpha)
        return self

    def set_max_failed_rate(self, rate: float, exclude: bool = True):
        """Configure handling of non-converged fits.

        Args:
            rate: Failure rate (0-1) above which a warning is issued.
            exclude: Drop failed fits from the power denominator (default).
                With ``False`` they count as non-significant.

        Returns:
            self: For method chaining.
        """
        _validate_numeric_parameter(rate, "max failed rate", min_val=0, max_val=1).raise_if_invalid()
        self.max_failed_rate = float(rate)
        self.exclude_failed = bool(exclude)
        return self

    # =========================================================================
    # Execution settings
    # =========================================================================

    def set_seed(self, seed: Optional[int] = None):
        """Set the global seed.

        Cells derive their random streams from ``(seed, n_subjects)``, so
        the same seed reproduces every cell regardless of grid order.

        Args:
            seed: Non-negative integer, or ``None`` for fresh entropy.

        Returns:
            self: For method chaining.
        """
        _validate_seed(seed).raise_if_invalid()
        self.seed = seed
        if seed is not None:
            print(f"Seed set to: {seed}")
        else:
            print("Random seeding enabled")
        return self

    def set_parallel(self, n_jobs: int = 1, n_cell_jobs: int = 1):
        """Set worker-pool sizes.

        Args:
            n_jobs: Workers fitting experiments within a cell.
            n_cell_jobs: Workers running grid cells. When greater than one,
                fitting inside each cell is sequential.

        Returns:
            self: For method chaining.
        """
        settings, result = _validate_parallel_settings(n_jobs, n_cell_jobs)
        for warning in result.warnings:
            warnings.warn(warning)
        result.raise_if_invalid()
        self.n_jobs, self.n_cell_jobs = settings
        return self

    # =========================================================================
    # Analyses
    # =========================================================================

    def find_power(
        self,
        n_subjects: Optional[int] = None,
        effect_size: Optional[float] = None,
        analysis: Optional[ApproachLike] = None,
        print_results: bool = True,
        summary: str = "short",
        return_results: bool = False,
        keep_analyses: bool = False,
        progress_callback=None,
        cancel_check=None,
    ):
        """
        Estimate power for one sample size and effect size.

        Args:
            n_subjects: Subjects per experiment (default: ``self.n_subjects``)
            effect_size: Shift of the contrast condition relative to the
                reference on the analysed response's sampling scale (log ms
                for ``rt``, logit for ``acc``); ``None`` keeps the configured
                means
            analysis: Formula or ``AnalysisModel`` overriding the default
            print_results: Whether to print results
            summary: Output detail level ("short" or "long")
            return_results: Return results dict
            keep_analyses: Include per-experiment fits as ``"analyses"``
            progress_callback: Progress reporting control:
                - ``None`` (default): auto-use ``PrintReporter`` when
                  *print_results* is ``True``.
                - ``False``: explicitly disable progress.
                - callable ``(current, total)``: custom callback.
            cancel_check: Optional callable returning ``True`` to abort.

        Returns:
            dict or None: If *return_results* is ``True``, a dictionary with
            keys ``"model"`` (settings) and ``"results"`` (power, wrong-sign
            rate, failure counts). Returns ``None`` otherwise.
        """
        n_subjects = self.n_subjects if n_subjects is None else n_subjects
        model = self._resolve_approach(analysis)
        self._validate_ready(n_subjects, [model])
        if effect_size is not None:
            _validate_numeric_parameter(effect_size, "effect size").raise_if_invalid()

        reporter = self._make_reporter(progress_callback, print_results, n_cells=1)
        runner = self._make_runner()
        metadata = prepare_metadata(self)

        if reporter is not None:
            reporter.start()
        estimate, analyses = runner.run_cell(
            metadata,
            GridCell(int(n_subjects), effect_size, model),
            progress=reporter,
            cancel_check=cancel_check,
        )
        if reporter is not None:
            reporter.finish()

        result = build_power_result(
            approach=model.formula,
            contrast=self.contrast,
            reference=self.conditions.reference,
            target=metadata.cell_dimension(model),
            n_experiments=self.n_experiments,
            n_trials=self.n_trials,
            alpha=self.alpha,
            seed=self.seed,
            estimate=estimate,
            analyses=analyses if keep_analyses else None,
        )

        if print_results:
            print(f"\n{'=' * 80}")
            print("MONTE CARLO POWER ANALYSIS RESULTS")
            print(f"{'=' * 80}")
            print(_format_results("power", result, summary))

        return result if return_results else None

    def find_type1_error(self, n_subjects: Optional[int] = None, analysis: Optional[ApproachLike] = None, **kwargs):
        """Estimate the false-positive rate: ``find_power`` with a zero effect.

        The contrast condition is set equal to the reference on the analysed
        response, so the returned ``power`` is the Type I error rate.
        """
        return self.find_power(n_subjects=n_subjects, effect_size=0.0, analysis=analysis, **kwargs)

    def sweep(
        self,
        sample_sizes: Sequence[int],
        effect_sizes: Sequence[Optional[float]] = (None,),
        approaches: Optional[Sequence[ApproachLike]] = None,
        print_results: bool = True,
        summary: str = "short",
        return_results: bool = True,
        progress_callback=None,
        cancel_check=None,
    ):
        """
        Estimate power over a grid of sample sizes, effect sizes and approaches.

        Cells are ordered by sample size, then effect size, then approach.
        Cells sharing a sample size use the same simulated subjects and
        trial noise (common random numbers), so differences between effect
        sizes and approaches are not blurred by independent sampling error.

        Args:
            sample_sizes: Subjects per experiment to evaluate
            effect_sizes: Contrast shifts to evaluate (``None`` keeps the
                configured means)
            approaches: Analysis formulas or models (default: the configured
                analysis)
            print_results: Whether to print the results table
            summary: Output detail level ("short" or "long")
            return_results: Return results dict (default ``True``)
            progress_callback: See ``find_power``
            cancel_check: Optional callable returning ``True`` to abort
                (checked between cells).

        Returns:
            dict or None: ``"model"`` (settings), ``"results"`` (one row per
            cell) and ``"table"`` (the rows as a DataFrame).
        """
        sample_sizes = list(sample_sizes)
        effect_sizes = list(effect_sizes)
        models = [self._resolve_approach(a) for a in approaches] if approaches else [self.analysis]

        grid_result = _validate_grid(sample_sizes, effect_sizes)
        for warning in grid_result.warnings:
            warnings.warn(warning)
        grid_result.raise_if_invalid()
        for n in sample_sizes:
            self._validate_ready(n, models)

        cells = [GridCell(int(n), d, m) for n in sample_sizes for d in effect_sizes for m in models]

        reporter = self._make_reporter(progress_callback, print_results, n_cells=len(cells))
        runner = self._make_runner()
        metadata = prepare_metadata(self)

        if reporter is not None:
            reporter.start()
        estimates = runner.run_grid(metadata, cells, progress=reporter, cancel_check=cancel_check)
        if reporter is not None:
            reporter.finish()

        result = build_sweep_result(
            approaches=[m.formula for m in models],
            contrast=self.contrast,
            reference=self.conditions.reference,
            target=self.target or "/".join(dict.fromkeys(m.response for m in models)),
            sample_sizes=sample_sizes,
            effect_sizes=effect_sizes,
            n_experiments=self.n_experiments,
            n_trials=self.n_trials,
            alpha=self.alpha,
            seed=self.seed,
            estimates=estimates,
        )

        if print_results:
            print(f"\n{'=' * 80}")
            print("POWER SWEEP RESULTS")
            print(f"{'=' * 80}")
            print(_format_results("sweep", result, summary))

        return result if return_results else None

    def simulate(self, n_subjects: Optional[int] = None, effect_size: Optional[float] = None) -> pd.DataFrame:
        """Return the raw row-level batch for one cell.

        The rows are the same ones ``find_power`` fits for the same seed,
        sample size and effect size.

        Returns:
            DataFrame with one row per trial: design columns, ground-truth
            means and subject offsets, and the sampled ``acc`` and ``rt``.
        """
        n_subjects = self.n_subjects if n_subjects is None else n_subjects
        self._validate_ready(n_subjects, check_contrast=effect_size is not None)
        metadata = prepare_metadata(self)
        cell = GridCell(int(n_subjects), effect_size, self.analysis)
        SimulationRunner._checked_spec(metadata, cell)
        return simulate_batch(
            metadata,
            cell.sample_size,
            effect_size,
            seed=np.random.SeedSequence(self.seed),
            dimension=metadata.cell_dimension(self.analysis),
        )

    # =========================================================================
    # Helpers
    # =========================================================================

    def _resolve_approach(self, approach: Optional[ApproachLike]) -> AnalysisModel:
        if approach is None:
            return self.analysis
        if isinstance(approach, AnalysisModel):
            return approach
        return AnalysisModel.from_formula(approach)

    def _validate_ready(self, n_subjects: int, models: Sequence[AnalysisModel] = (), check_contrast: bool = True):
        """Re-run validators on the full configuration before any simulation."""
        _validate_design_counts(self.n_experiments, n_subjects, self.n_trials).raise_if_invalid()
        if check_contrast:
            _validate_contrast(self.contrast, self.conditions.labels, self.conditions.reference).raise_if_invalid()
        metadata = prepare_metadata(self)
        for model in models:
            _validate_model_subjects(n_subjects, model.is_mixed).raise_if_invalid()
            metadata.cell_dimension(model)

    def _make_runner(self) -> SimulationRunner:
        return SimulationRunner(
            seed=self.seed,
            alpha=self.alpha,
            n_jobs=self.n_jobs,
            n_cell_jobs=self.n_cell_jobs,
            exclude_failed=self.exclude_failed,
            max_failed_rate=self.max_failed_rate,
        )

    def _make_reporter(self, progress_callback, print_results: bool, n_cells: int):
        from .progress import PrintReporter, ProgressReporter

        if progress_callback is None:
            effective_cb = PrintReporter() if print_results else None
        elif progress_callback is False:
            effective_cb = None
        else:
            effective_cb = progress_callback

        if effective_cb is None:
            return None
        return ProgressReporter(self.n_experiments, n_cells, effective_cb)

    def __repr__(self):
        return (
            f"PowerSimulation(analysis='{self.analysis.formula}', conditions={list(self.conditions.labels)}, "
            f"contrast='{self.contrast}', n_experiments={self.n_experiments}, seed={self.seed})"
        )
