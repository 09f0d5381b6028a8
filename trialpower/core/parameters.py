"""
Ground-truth parameters for simulated experiments.

Attaches condition means (on the scale each outcome is sampled on) and
per-subject random intercepts to every row of a design.
"""

from typing import Tuple

import numpy as np
import pandas as pd
from scipy.special import logit

from ..utils.streams import SeedLike
from ..utils.validators import ConfigurationError, SamplingDegeneracy, _validate_sd
from .design import ConditionSpec


def to_sampling_scale(spec: ConditionSpec, dimension: str) -> Tuple[float, ...]:
    """Return condition means on the scale the outcome is drawn on.

    Accuracy goes to log-odds, latency to log milliseconds.

    Raises:
        SamplingDegeneracy: If a probability lies outside (0, 1) or a linear
            latency mean is not positive.
    """
    if dimension == "acc":
        if spec.accuracy_scale == "logit":
            values = spec.accuracy
        else:
            for label, p in zip(spec.labels, spec.accuracy):
                if not 0.0 < p < 1.0:
                    raise SamplingDegeneracy(
                        f"Accuracy for condition '{label}' must lie strictly between 0 and 1, got {p}",
                        condition=label,
                        dimension="accuracy",
                        value=p,
                    )
            values = tuple(float(v) for v in logit(np.asarray(spec.accuracy, dtype=float)))
    else:
        if spec.latency_scale == "log":
            values = spec.latency
        else:
            for label, m in zip(spec.labels, spec.latency):
                if not m > 0.0:
                    raise SamplingDegeneracy(
                        f"Latency mean for condition '{label}' must be positive on the linear scale, got {m}",
                        condition=label,
                        dimension="latency",
                        value=m,
                    )
            values = tuple(float(v) for v in np.log(np.asarray(spec.latency, dtype=float)))

    for label, v in zip(spec.labels, values):
        if not np.isfinite(v):
            raise SamplingDegeneracy(
                f"Non-finite {dimension} mean for condition '{label}': {v}",
                condition=label,
                dimension="accuracy" if dimension == "acc" else "latency",
                value=v,
            )
    return tuple(values)


def add_ground_truth(
    design: pd.DataFrame,
    spec: ConditionSpec,
    subject_sd_accuracy: float,
    subject_sd_latency: float,
    seed: SeedLike = None,
) -> pd.DataFrame:
    """Attach condition means and subject random intercepts to a design.

    One offset per dimension is drawn for every (experiment, subject) pair
    and broadcast to all of that subject's rows. Draws come from a fresh
    generator built from *seed*, so the same seed always reproduces the
    same offsets.

    Args:
        design: Output of ``generate_design``.
        spec: Condition means.
        subject_sd_accuracy: SD of subject offsets on the logit scale.
        subject_sd_latency: SD of subject offsets on the log-latency scale.
        seed: Integer, ``SeedSequence`` or ``None`` (fresh entropy).

    Returns:
        A new DataFrame with added columns ``acc_mean_logit``,
        ``rt_mean_log``, ``sub_acc_offset`` and ``sub_rt_offset``.
    """
    _validate_sd(subject_sd_accuracy, "subject_sd_accuracy").raise_if_invalid()
    _validate_sd(subject_sd_latency, "subject_sd_latency").raise_if_invalid()

    acc_means = np.asarray(to_sampling_scale(spec, "acc"))
    rt_means = np.asarray(to_sampling_scale(spec, "rt"))

    codes = _condition_codes(design, spec)

    n_experiments = int(design["exp_id"].max())
    n_subjects = int(design["sub_id"].max())

    rng = np.random.default_rng(seed)
    # Column 0: accuracy, column 1: latency
    offsets = rng.standard_normal((n_experiments * n_subjects, 2))
    offsets *= np.array([subject_sd_accuracy, subject_sd_latency])

    pair_idx = (design["exp_id"].to_numpy() - 1) * n_subjects + (design["sub_id"].to_numpy() - 1)

    out = design.copy()
    out["acc_mean_logit"] = acc_means[codes]
    out["rt_mean_log"] = rt_means[codes]
    out["sub_acc_offset"] = offsets[pair_idx, 0]
    out["sub_rt_offset"] = offsets[pair_idx, 1]
    return out


def _condition_codes(design: pd.DataFrame, spec: ConditionSpec) -> np.ndarray:
    """Map the design's condition column to positions in ``spec.labels``."""
    condition = design["condition"]
    if isinstance(condition.dtype, pd.CategoricalDtype) and list(condition.cat.categories) == list(spec.labels):
        return condition.cat.codes.to_numpy()

    lookup = {label: i for i, label in enumerate(spec.labels)}
    missing = set(condition.unique()) - set(lookup)
    if missing:
        raise ConfigurationError(f"Design uses undeclared conditions: {', '.join(sorted(map(str, missing)))}")
    return condition.map(lookup).to_numpy(dtype=np.int64)

