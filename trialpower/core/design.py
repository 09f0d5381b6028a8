"""
Experimental design for trial-level power simulations.

Holds the immutable condition specification and enumerates the full
factorial row set (experiment x subject x trial x condition) of one
simulated batch.
"""

from dataclasses import dataclass, field, replace
from typing import Mapping, Optional, Sequence, Tuple, Union

import numpy as np
import pandas as pd

from ..utils.validators import (
    ConfigurationError,
    _validate_condition_labels,
    _validate_design_counts,
    _ValidationResult,
)

ACCURACY_SCALES = ("probability", "logit")
LATENCY_SCALES = ("log", "linear")
DIMENSIONS = ("acc", "rt")

DESIGN_COLUMNS = ["exp_id", "sub_id", "trial_id", "condition"]


@dataclass(frozen=True)
class ConditionSpec:
    """Per-condition baseline parameters for accuracy and latency.

    Attributes:
        labels: Condition labels in declaration order.
        accuracy: Mean accuracy per condition, on ``accuracy_scale``.
        latency: Mean latency per condition, on ``latency_scale``.
        accuracy_scale: ``"probability"`` (values in (0, 1)) or ``"logit"``.
        latency_scale: ``"log"`` (log milliseconds) or ``"linear"``
            (milliseconds, converted with ``log``).
        reference: Reference condition for treatment coding. Defaults to the
            first label.
    """

    labels: Tuple[str, ...]
    accuracy: Tuple[float, ...]
    latency: Tuple[float, ...]
    accuracy_scale: str = "probability"
    latency_scale: str = "log"
    reference: Optional[str] = field(default=None)

    def __post_init__(self):
        for name in ("labels", "accuracy", "latency"):
            object.__setattr__(self, name, tuple(getattr(self, name)))

        result = _validate_condition_labels(self.labels)
        errors = list(result.errors)
        if len(self.accuracy) != len(self.labels) or len(self.latency) != len(self.labels):
            errors.append("accuracy and latency must have one value per condition")
        if self.accuracy_scale not in ACCURACY_SCALES:
            errors.append(f"accuracy_scale must be one of {ACCURACY_SCALES}, got '{self.accuracy_scale}'")
        if self.latency_scale not in LATENCY_SCALES:
            errors.append(f"latency_scale must be one of {LATENCY_SCALES}, got '{self.latency_scale}'")
        if self.reference is not None and self.reference not in self.labels:
            errors.append(f"Reference condition '{self.reference}' not found. Available: {', '.join(map(str, self.labels))}")
        _ValidationResult(len(errors) == 0, errors, []).raise_if_invalid()

        if self.reference is None:
            object.__setattr__(self, "reference", self.labels[0])

    @classmethod
    def from_means(
        cls,
        means: Mapping[str, Sequence[float]],
        accuracy_scale: str = "probability",
        latency_scale: str = "log",
        reference: Optional[str] = None,
    ) -> "ConditionSpec":
        """Build a spec from ``{label: (accuracy, latency)}``."""
        labels = tuple(means)
        pairs = [tuple(means[label]) for label in labels]
        if any(len(pair) != 2 for pair in pairs):
            raise ConfigurationError("Each condition needs exactly two means: (accuracy, latency)")
        return cls(
            labels=labels,
            accuracy=tuple(float(p[0]) for p in pairs),
            latency=tuple(float(p[1]) for p in pairs),
            accuracy_scale=accuracy_scale,
            latency_scale=latency_scale,
            reference=reference,
        )

    def with_shift(self, label: str, dimension: str, effect_size: float) -> "ConditionSpec":
        """Return a copy where *label* sits *effect_size* away from the reference.

        The shift is applied on the scale the outcome is sampled on (logit
        for accuracy, log for latency), so a zero effect size makes the two
        conditions identical.
        """
        if dimension not in DIMENSIONS:
            raise ConfigurationError(f"dimension must be one of {DIMENSIONS}, got '{dimension}'")
        if label not in self.labels:
            raise ConfigurationError(f"Condition '{label}' not found. Available: {', '.join(self.labels)}")

        from .parameters import to_sampling_scale

        ref_idx = self.labels.index(self.reference)
        idx = self.labels.index(label)
        sampling = list(to_sampling_scale(self, dimension))
        sampling[idx] = sampling[ref_idx] + effect_size

        if dimension == "acc":
            return replace(self, accuracy=tuple(float(v) for v in sampling), accuracy_scale="logit")
        return replace(self, latency=tuple(float(v) for v in sampling), latency_scale="log")


def generate_design(
    n_experiments: int,
    n_subjects: int,
    n_trials: int,
    conditions: Union[ConditionSpec, Sequence[str]],
) -> pd.DataFrame:
    """Enumerate the full factorial design of one simulated batch.

    Args:
        n_experiments: Number of simulated experiments.
        n_subjects: Subjects per experiment (the swept sample size).
        n_trials: Trials per subject per condition.
        conditions: A ``ConditionSpec`` or a sequence of condition labels.

    Returns:
        DataFrame with columns ``exp_id``, ``sub_id``, ``trial_id`` and
        ``condition`` (categorical, declared order), one row per
        combination, ordered by experiment, subject, trial, condition.

    Raises:
        ConfigurationError: If a count is not a positive integer or the
            condition set is empty or has duplicates.
    """
    _validate_design_counts(n_experiments, n_subjects, n_trials).raise_if_invalid()

    labels = list(conditions.labels) if isinstance(conditions, ConditionSpec) else list(conditions)
    _validate_condition_labels(labels).raise_if_invalid()

    n_cond = len(labels)
    shape = (n_experiments, n_subjects, n_trials, n_cond)
    exp_idx, sub_idx, trial_idx, cond_idx = (a.ravel() for a in np.indices(shape))

    return pd.DataFrame(
        {
            "exp_id": exp_idx + 1,
            "sub_id": sub_idx + 1,
            "trial_id": trial_idx + 1,
            "condition": pd.Categorical.from_codes(cond_idx, categories=labels),
        }
    )

