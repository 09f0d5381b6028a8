"""
Results processing for trial-level power simulations.

This module reduces per-experiment analysis results into power and
wrong-sign estimates, and shapes them into result dictionaries and
tables.
"""

import warnings
from dataclasses import asdict, dataclass
from typing import Any, Dict, List, Optional, Sequence

import numpy as np
import pandas as pd

from ..stats.models import AnalysisResult

TABLE_COLUMNS = [
    "sample_size",
    "effect_size",
    "approach",
    "power",
    "wrong_sign_rate",
    "type_s_rate",
    "failure_rate",
    "n_used",
    "n_failed",
    "mc_error",
]


@dataclass(frozen=True)
class PowerEstimate:
    """Summary of one grid cell.

    Attributes:
        sample_size: Subjects per experiment.
        effect_size: Contrast shift on the sampling scale (``None`` when the
            configured means were used as-is).
        approach: Analysis formula label.
        power: Proportion of usable experiments with ``p < alpha``.
        wrong_sign_rate: Proportion of usable experiments that were
            significant with the sign opposite to the expected direction.
        type_s_rate: Wrong-sign share among significant experiments
            (``NaN`` when nothing was significant).
        n_experiments: Experiments simulated.
        n_used: Experiments entering the power denominator.
        n_failed: Experiments whose fit did not converge.
        failure_rate: ``n_failed / n_experiments``.
        mc_error: Monte Carlo standard error of *power*.
        alpha: Significance threshold used.
    """

    sample_size: int
    effect_size: Optional[float]
    approach: str
    power: float
    wrong_sign_rate: float
    type_s_rate: float
    n_experiments: int
    n_used: int
    n_failed: int
    failure_rate: float
    mc_error: float
    alpha: float

    def as_row(self) -> Dict[str, Any]:
        return asdict(self)


class ResultsProcessor:
    """Converts per-experiment analysis results into power estimates.

    Non-converged experiments are excluded from both numerator and
    denominator by default and their rate is reported next to the power
    estimate. With ``exclude_failed=False`` they stay in the denominator
    and count as non-significant.
    """

    def __init__(self, alpha: float = 0.05, exclude_failed: bool = True, max_failed_rate: float = 0.1):
        """Initialise the results processor.

        Args:
            alpha: Significance threshold.
            exclude_failed: Drop non-converged fits from the denominator.
            max_failed_rate: Failure rate above which a warning is issued.
        """
        self.alpha = alpha
        self.exclude_failed = exclude_failed
        self.max_failed_rate = max_failed_rate

    def calculate_power(self, results: Sequence[AnalysisResult], expected_sign: float = 1.0) -> Dict[str, Any]:
        """
        Calculate power and sign-error rates from analysis results.

        A cell in which every fit failed has no usable experiments: its
        rates are ``NaN`` and ``n_used`` is zero, so the rest of a sweep can
        still be reported.

        Args:
            results: One ``AnalysisResult`` per experiment.
            expected_sign: Direction of the true effect (``> 0`` or ``< 0``).

        Returns:
            Dictionary with ``power``, ``wrong_sign_rate``, ``type_s_rate``,
            ``n_experiments``, ``n_used``, ``n_failed``, ``failure_rate`` and
            ``mc_error``.

        Raises:
            RuntimeError: If there are no results at all.
        """
        n_experiments = len(results)
        if n_experiments == 0:
            raise RuntimeError("No analysis results to aggregate")

        converged = np.array([r.converged for r in results], dtype=bool)
        p_values = np.array([r.p_value for r in results], dtype=float)
        estimates = np.array([r.estimate for r in results], dtype=float)

        n_failed = int(np.sum(~converged))
        failure_rate = n_failed / n_experiments

        if n_failed == n_experiments:
            warnings.warn(f"All {n_experiments} model fits failed to converge; power is undefined for this cell")
            return {
                "power": float("nan"),
                "wrong_sign_rate": float("nan"),
                "type_s_rate": float("nan"),
                "n_experiments": n_experiments,
                "n_used": 0,
                "n_failed": n_failed,
                "failure_rate": 1.0,
                "mc_error": float("nan"),
            }

        if failure_rate > self.max_failed_rate:
            warnings.warn(
                f"{n_failed}/{n_experiments} model fits failed to converge ({failure_rate:.1%}); "
                f"they are {'excluded from' if self.exclude_failed else 'counted as non-significant in'} the power estimate"
            )

        significant = converged & (p_values < self.alpha)
        sign = 1.0 if expected_sign >= 0 else -1.0
        wrong_sign = significant & (np.sign(estimates) == -sign)

        n_used = int(np.sum(converged)) if self.exclude_failed else n_experiments
        n_significant = int(np.sum(significant))

        power = n_significant / n_used
        wrong_sign_rate = int(np.sum(wrong_sign)) / n_used
        type_s_rate = int(np.sum(wrong_sign)) / n_significant if n_significant > 0 else float("nan")

        return {
            "power": power,
            "wrong_sign_rate": wrong_sign_rate,
            "type_s_rate": type_s_rate,
            "n_experiments": n_experiments,
            "n_used": n_used,
            "n_failed": n_failed,
            "failure_rate": failure_rate,
            "mc_error": float(np.sqrt(power * (1 - power) / n_used)),
        }

    def build_estimate(
        self,
        results: Sequence[AnalysisResult],
        sample_size: int,
        effect_size: Optional[float],
        approach: str,
        expected_sign: float = 1.0,
    ) -> PowerEstimate:
        """Aggregate *results* into an immutable ``PowerEstimate``."""
        stats = self.calculate_power(results, expected_sign)
        return PowerEstimate(
            sample_size=sample_size,
            effect_size=effect_size,
            approach=approach,
            alpha=self.alpha,
            **stats,
        )


def results_table(estimates: Sequence[PowerEstimate]) -> pd.DataFrame:
    """Turn grid estimates into a plain table, one row per cell."""
    if not estimates:
        return pd.DataFrame(columns=TABLE_COLUMNS)
    frame = pd.DataFrame([e.as_row() for e in estimates])
    return frame[TABLE_COLUMNS]


def analysis_frame(results: Sequence[AnalysisResult]) -> pd.DataFrame:
    """Per-experiment results as a DataFrame (one row per experiment)."""
    return pd.DataFrame([asdict(r) for r in results])


def build_power_result(
    approach: str,
    contrast: str,
    reference: str,
    target: str,
    n_experiments: int,
    n_trials: int,
    alpha: float,
    seed: Optional[int],
    estimate: PowerEstimate,
    analyses: Optional[List[AnalysisResult]] = None,
) -> Dict[str, Any]:
    """
    Build a single-cell power result dictionary.

    Args:
        approach: Analysis formula label
        contrast: Contrast condition label
        reference: Reference condition label
        target: Outcome dimension the effect size applies to
        n_experiments: Experiments simulated
        n_trials: Trials per subject per condition
        alpha: Significance level
        seed: Global seed
        estimate: Aggregated estimate for the cell
        analyses: Optional per-experiment results

    Returns:
        Complete result dictionary
    """
    result = {
        "model": {
            "approach": approach,
            "contrast": contrast,
            "reference": reference,
            "target": target,
            "sample_size": estimate.sample_size,
            "effect_size": estimate.effect_size,
            "n_experiments": n_experiments,
            "n_trials": n_trials,
            "alpha": alpha,
            "seed": seed,
        },
        "results": estimate.as_row(),
    }
    if analyses is not None:
        result["analyses"] = analysis_frame(analyses)
    return result


def build_sweep_result(
    approaches: List[str],
    contrast: str,
    reference: str,
    target: str,
    sample_sizes: List[int],
    effect_sizes: List[Optional[float]],
    n_experiments: int,
    n_trials: int,
    alpha: float,
    seed: Optional[int],
    estimates: List[PowerEstimate],
) -> Dict[str, Any]:
    """
    Build a grid sweep result dictionary.

    Returns:
        Dictionary with ``"model"`` (configuration), ``"results"`` (list of
        per-cell rows) and ``"table"`` (the same rows as a DataFrame).
    """
    return {
        "model": {
            "approaches": approaches,
            "contrast": contrast,
            "reference": reference,
            "target": target,
            "sample_sizes": sample_sizes,
            "effect_sizes": effect_sizes,
            "n_experiments": n_experiments,
            "n_trials": n_trials,
            "alpha": alpha,
            "seed": seed,
        },
        "results": [e.as_row() for e in estimates],
        "table": results_table(estimates),
    }
