"""
Outcome sampling for simulated experiments.

Draws one binary accuracy outcome and one latency per row from the
parameterised row set. Accuracy and latency use two independent child
streams spawned from the same seed, which is what lets the vectorised
and row-at-a-time modes produce identical columns.
"""

from typing import Tuple

import numpy as np
import pandas as pd
from scipy.special import expit

from ..utils.streams import SeedLike, child_sequence
from ..utils.validators import ConfigurationError, _validate_sd

SAMPLING_MODES = ("batch", "rowwise")


def _spawn_streams(seed: SeedLike) -> Tuple[np.random.Generator, np.random.Generator]:
    """Return independent (accuracy, latency) generators derived from *seed*."""
    if seed is None:
        seed = np.random.SeedSequence()
    return np.random.default_rng(child_sequence(seed, 0)), np.random.default_rng(child_sequence(seed, 1))


def _latency(mean_log, z, residual_sd, min_latency, latency_resolution):
    """Map standard-normal draws to floor-shifted, rounded latencies."""
    rt = np.exp(mean_log + residual_sd * z) + min_latency
    return np.round(rt / latency_resolution) * latency_resolution


def sample_outcomes(
    params: pd.DataFrame,
    residual_sd: float,
    min_latency: float = 200.0,
    latency_resolution: float = 1.0,
    seed: SeedLike = None,
    mode: str = "batch",
) -> pd.DataFrame:
    """Draw accuracy and latency outcomes for every row.

    Args:
        params: Output of ``add_ground_truth``.
        residual_sd: Trial-level SD of log latency.
        min_latency: Constant added after exponentiation (ms); must be >= 0.
        latency_resolution: Reporting resolution (ms); latencies are
            rounded to a multiple of it.
        seed: Integer, ``SeedSequence`` or ``None``.
        mode: ``"batch"`` (vectorised, default) or ``"rowwise"``
            (one row at a time; same draws, much slower).

    Returns:
        A new DataFrame with added columns ``acc`` (0/1) and ``rt``.
    """
    _validate_sd(residual_sd, "residual_sd").raise_if_invalid()
    if min_latency < 0:
        raise ConfigurationError(f"min_latency must be >= 0, got {min_latency}")
    if not latency_resolution > 0:
        raise ConfigurationError(f"latency_resolution must be > 0, got {latency_resolution}")
    if mode not in SAMPLING_MODES:
        raise ConfigurationError(f"mode must be one of {SAMPLING_MODES}, got '{mode}'")

    acc_rng, rt_rng = _spawn_streams(seed)

    p_correct = expit(params["acc_mean_logit"].to_numpy() + params["sub_acc_offset"].to_numpy())
    rt_mean = params["rt_mean_log"].to_numpy() + params["sub_rt_offset"].to_numpy()

    if mode == "batch":
        acc, rt = _sample_batch(p_correct, rt_mean, acc_rng, rt_rng, residual_sd, min_latency, latency_resolution)
    else:
        acc, rt = _sample_rowwise(p_correct, rt_mean, acc_rng, rt_rng, residual_sd, min_latency, latency_resolution)

    out = params.copy()
    out["acc"] = acc
    out["rt"] = rt
    return out


def _sample_batch(p_correct, rt_mean, acc_rng, rt_rng, residual_sd, min_latency, latency_resolution):
    n = len(p_correct)
    acc = (acc_rng.random(n) < p_correct).astype(np.int64)
    rt = _latency(rt_mean, rt_rng.standard_normal(n), residual_sd, min_latency, latency_resolution)
    return acc, rt


def _sample_rowwise(p_correct, rt_mean, acc_rng, rt_rng, residual_sd, min_latency, latency_resolution):
    n = len(p_correct)
    acc = np.empty(n, dtype=np.int64)
    rt = np.empty(n, dtype=float)
    for i in range(n):
        acc[i] = 1 if acc_rng.random() < p_correct[i] else 0
        z = np.array([rt_rng.standard_normal()])
        rt[i] = _latency(rt_mean[i : i + 1], z, residual_sd, min_latency, latency_resolution)[0]
    return acc, rt
