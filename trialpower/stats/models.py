"""Per-experiment model fitting for trial-level power simulations.

Fits one statistical model per simulated experiment and extracts the
estimate, standard error and p-value of a single reference-coded
condition contrast. The closed set of analysis approaches is the
``AnalysisModel`` variant: fixed-effects OLS or a random-intercept
mixed model (statsmodels ``MixedLM``), on the raw or log-transformed
response.

Mixed-model fits follow a retry ladder of increasing iteration limits.
A fit that still fails to converge (or raises) is kept as an
``AnalysisResult`` with ``converged=False`` rather than dropped, so the
aggregation step can exclude it and report the failure rate.
"""

import warnings
from dataclasses import dataclass
from typing import Callable, List, Optional, Sequence, Tuple

import numpy as np
import pandas as pd

from ..utils.parsers import _parse_equation, _parse_response
from ..utils.validators import ConfigurationError, SamplingDegeneracy

FAMILIES = ("ols", "lme")
TRANSFORMS = ("identity", "log")
RESPONSES = ("rt", "acc")
PREDICTOR = "condition"
GROUPING_VAR = "sub_id"
INTERCEPT = "Intercept"

# (maxiter, method) pairs tried in order for mixed-model fits
LME_ATTEMPTS = [(100, "lbfgs"), (200, "lbfgs"), (500, "lbfgs")]


@dataclass(frozen=True)
class AnalysisModel:
    """One analysis approach: model family x response transform x response.

    Attributes:
        family: ``"ols"`` (fixed-effects linear regression) or ``"lme"``
            (linear mixed model with a random intercept per subject).
        transform: ``"identity"`` or ``"log"``, applied to the response
            before fitting.
        response: ``"rt"`` (latency) or ``"acc"`` (accuracy, linear
            probability model).
    """

    family: str = "ols"
    transform: str = "identity"
    response: str = "rt"

    def __post_init__(self):
        if self.family not in FAMILIES:
            raise ConfigurationError(f"family must be one of {FAMILIES}, got '{self.family}'")
        if self.transform not in TRANSFORMS:
            raise ConfigurationError(f"transform must be one of {TRANSFORMS}, got '{self.transform}'")
        if self.response not in RESPONSES:
            raise ConfigurationError(f"response must be one of {RESPONSES}, got '{self.response}'")
        if self.response == "acc" and self.transform == "log":
            raise ConfigurationError("log transform is not defined for accuracy (contains zeros)")

    @classmethod
    def from_formula(cls, formula: str) -> "AnalysisModel":
        """Build a model from an R-style formula.

        Accepted forms: ``rt ~ condition``, ``log(rt) ~ condition``,
        ``rt ~ condition + (1|sub_id)``, ``log(rt) ~ condition + (1|sub_id)``
        and ``acc ~ condition`` (optionally with ``(1|sub_id)``).
        """
        try:
            dep_var, fixed, random_effects = _parse_equation(formula)
            response, transform = _parse_response(dep_var)
        except ValueError as e:
            raise ConfigurationError(str(e)) from None

        if fixed != PREDICTOR:
            raise ConfigurationError(f"Fixed part must be '{PREDICTOR}', got '{fixed}' in '{formula}'")

        family = "ols"
        if random_effects:
            groups = [re["grouping_var"] for re in random_effects]
            if groups != [GROUPING_VAR]:
                raise ConfigurationError(f"Only a random intercept per subject '(1|{GROUPING_VAR})' is supported, got {groups}")
            family = "lme"

        return cls(family=family, transform=transform, response=response)

    @property
    def is_mixed(self) -> bool:
        return self.family == "lme"

    @property
    def formula(self) -> str:
        """Canonical formula string, also used as the approach label."""
        dep = f"log({self.response})" if self.transform == "log" else self.response
        rhs = f"{PREDICTOR} + (1|{GROUPING_VAR})" if self.is_mixed else PREDICTOR
        return f"{dep} ~ {rhs}"

    def __str__(self):
        return self.formula


LM = AnalysisModel("ols", "identity")
LM_LOG = AnalysisModel("ols", "log")
LMER = AnalysisModel("lme", "identity")
LMER_LOG = AnalysisModel("lme", "log")


@dataclass(frozen=True)
class AnalysisResult:
    """Contrast estimate extracted from one experiment's fit.

    Attributes:
        exp_id: Experiment the fit belongs to.
        estimate: Coefficient of the contrast term.
        std_error: Its standard error.
        p_value: Two-sided p-value (t-test for OLS, Wald z for MixedLM).
        converged: ``False`` when the fit failed; estimate and p-value are
            then ``NaN``.
        failure_reason: Short description of the failure, if any.
    """

    exp_id: int
    estimate: float
    std_error: float
    p_value: float
    converged: bool = True
    failure_reason: Optional[str] = None

    def is_significant(self, alpha: float) -> bool:
        return bool(self.converged and self.p_value < alpha)


def contrast_term(label: str) -> str:
    """Coefficient name of *label* under treatment coding (``"conditionB"``)."""
    return f"{PREDICTOR}{label}"


def _condition_labels(condition: pd.Series, reference: Optional[str]) -> Tuple[List[str], str]:
    if isinstance(condition.dtype, pd.CategoricalDtype):
        labels = [str(c) for c in condition.cat.categories]
    else:
        labels = sorted(str(c) for c in condition.unique())
    if reference is None:
        reference = labels[0]
    elif reference not in labels:
        raise ConfigurationError(f"Reference condition '{reference}' not found. Available: {', '.join(labels)}")
    return labels, reference


def design_matrix(condition: pd.Series, reference: Optional[str] = None) -> Tuple[np.ndarray, List[str]]:
    """Reference-coded design matrix (intercept + one dummy per other level).

    Returns:
        Tuple of ``(exog, term_names)``.
    """
    labels, reference = _condition_labels(condition, reference)
    values = condition.astype(str).to_numpy()
    others = [label for label in labels if label != reference]

    exog = np.empty((len(values), 1 + len(others)), dtype=float)
    exog[:, 0] = 1.0
    for j, label in enumerate(others, start=1):
        exog[:, j] = values == label
    return exog, [INTERCEPT] + [contrast_term(label) for label in others]


def response_vector(frame: pd.DataFrame, model: AnalysisModel) -> np.ndarray:
    """Response column with the model's transform applied."""
    if model.response not in frame.columns:
        raise ConfigurationError(f"Response column '{model.response}' missing; sample outcomes before analysing")
    y = frame[model.response].to_numpy(dtype=float)
    if model.transform == "log":
        if np.any(y <= 0):
            bad = float(y[y <= 0][0])
            raise SamplingDegeneracy(
                f"log transform needs positive {model.response} values, found {bad}; raise min_latency or lower latency_resolution",
                dimension="latency",
                value=bad,
            )
        y = np.log(y)
    return y


def _fit_ols(y: np.ndarray, exog: np.ndarray):
    import statsmodels.api as sm

    result = sm.OLS(y, exog).fit()
    return np.asarray(result.params), np.asarray(result.bse), np.asarray(result.pvalues)


def _fit_lme(y: np.ndarray, exog: np.ndarray, groups: np.ndarray):
    """Random-intercept REML fit with the retry ladder.

    Returns:
        ``(params, bse, pvalues, failure_reason)``. Arrays are ``None`` and
        *failure_reason* is set when every attempt failed.
    """
    try:
        from statsmodels.regression.mixed_linear_model import MixedLM
    except ImportError as e:
        raise ImportError("statsmodels required for mixed models: pip install statsmodels") from e

    model = MixedLM(endog=y, exog=exog, groups=groups)
    k_fe = exog.shape[1]
    failure_reason = "Unknown convergence failure"

    for max_iter, method in LME_ATTEMPTS:
        try:
            with warnings.catch_warnings():
                warnings.simplefilter("ignore")
                result = model.fit(reml=True, method=method, maxiter=max_iter, full_output=False)
        except (ValueError, ArithmeticError, np.linalg.LinAlgError) as e:
            failure_reason = f"{type(e).__name__}: {e}"
            continue

        if not getattr(result, "converged", True):
            failure_reason = "Model did not converge"
            continue

        params = np.asarray(result.fe_params)
        bse = np.asarray(result.bse_fe)
        pvalues = np.asarray(result.pvalues)[:k_fe]
        return params, bse, pvalues, None

    return None, None, None, failure_reason


def fit_block(
    exp_id: int,
    y: np.ndarray,
    exog: np.ndarray,
    groups: Optional[np.ndarray],
    model: AnalysisModel,
    term_index: int,
) -> AnalysisResult:
    """Fit one experiment's rows and extract the contrast at *term_index*."""
    if model.is_mixed:
        params, bse, pvalues, failure_reason = _fit_lme(y, exog, groups)
    else:
        with warnings.catch_warnings():
            warnings.simplefilter("ignore")
            params, bse, pvalues = _fit_ols(y, exog)
        failure_reason = None

    if params is None:
        return AnalysisResult(exp_id, np.nan, np.nan, np.nan, converged=False, failure_reason=failure_reason)

    estimate, std_error, p_value = float(params[term_index]), float(bse[term_index]), float(pvalues[term_index])
    if not (np.isfinite(estimate) and np.isfinite(p_value)):
        return AnalysisResult(exp_id, estimate, std_error, p_value, converged=False, failure_reason="Non-finite estimate or p-value")

    return AnalysisResult(exp_id, estimate, std_error, p_value)


def _term_index(term_names: Sequence[str], contrast: str) -> int:
    term = contrast_term(contrast)
    if term not in term_names:
        raise ConfigurationError(f"Contrast term '{term}' not in the model's coefficients. Available: {', '.join(term_names[1:])}")
    return list(term_names).index(term)


def coefficient_table(frame: pd.DataFrame, model: AnalysisModel, reference: Optional[str] = None) -> Tuple[pd.DataFrame, bool]:
    """Full coefficient table for one experiment.

    Returns:
        Tuple of ``(table, converged)`` where *table* has columns ``term``,
        ``estimate``, ``std_error`` and ``p_value``. When the fit failed
        the numeric columns are ``NaN``.
    """
    exog, names = design_matrix(frame[PREDICTOR], reference)
    y = response_vector(frame, model)

    if model.is_mixed:
        params, bse, pvalues, failure_reason = _fit_lme(y, exog, frame[GROUPING_VAR].to_numpy())
        converged = failure_reason is None
    else:
        with warnings.catch_warnings():
            warnings.simplefilter("ignore")
            params, bse, pvalues = _fit_ols(y, exog)
        converged = True

    if params is None:
        params = bse = pvalues = np.full(len(names), np.nan)

    table = pd.DataFrame({"term": names, "estimate": params, "std_error": bse, "p_value": pvalues})
    return table, converged


def fit_experiment(
    frame: pd.DataFrame,
    model: AnalysisModel,
    contrast: str,
    reference: Optional[str] = None,
) -> AnalysisResult:
    """Fit one experiment and extract the *contrast* condition's coefficient.

    Args:
        frame: Rows of exactly one experiment, with outcomes.
        model: Analysis approach.
        contrast: Condition label compared against the reference.
        reference: Reference condition (defaults to the first level).

    Raises:
        ConfigurationError: If the contrast term is absent from the
            coefficient table.
    """
    exp_ids = frame["exp_id"].unique()
    if len(exp_ids) != 1:
        raise ConfigurationError(f"fit_experiment expects rows of one experiment, got {len(exp_ids)}")

    exog, names = design_matrix(frame[PREDICTOR], reference)
    term_index = _term_index(names, contrast)
    groups = frame[GROUPING_VAR].to_numpy() if model.is_mixed else None
    return fit_block(int(exp_ids[0]), response_vector(frame, model), exog, groups, model, term_index)


def _fit_chunk(blocks, model: AnalysisModel, term_index: int) -> List[AnalysisResult]:
    """Fit a list of ``(exp_id, y, exog, groups)`` blocks (worker entry point)."""
    return [fit_block(exp_id, y, exog, groups, model, term_index) for exp_id, y, exog, groups in blocks]


def analyze_batch(
    batch: pd.DataFrame,
    model: AnalysisModel,
    contrast: str,
    reference: Optional[str] = None,
    n_jobs: int = 1,
    progress=None,
    cancel_check: Optional[Callable[[], bool]] = None,
) -> List[AnalysisResult]:
    """Fit every experiment in *batch* and return results in experiment order.

    Rows are partitioned by ``exp_id``; each experiment is fitted using only
    its own rows. With ``n_jobs > 1`` chunks of experiments are fitted on a
    joblib loky pool. Fitting draws no random numbers, so the results do not
    depend on ``n_jobs``.

    Args:
        batch: Simulated batch with outcomes.
        model: Analysis approach.
        contrast: Condition label compared against the reference.
        reference: Reference condition (defaults to the first level).
        n_jobs: Worker-pool size for fitting.
        progress: Optional ``ProgressReporter`` advanced once per experiment.
        cancel_check: Optional callable returning ``True`` to abort.

    Raises:
        ConfigurationError: If the contrast term is not a coefficient.
        SimulationCancelled: If *cancel_check* returns ``True``.
    """
    from ..progress import SimulationCancelled

    exog_all, names = design_matrix(batch[PREDICTOR], reference)
    term_index = _term_index(names, contrast)
    y_all = response_vector(batch, model)
    groups_all = batch[GROUPING_VAR].to_numpy() if model.is_mixed else None

    exp_ids = batch["exp_id"].to_numpy()
    # Experiment blocks are contiguous in design order
    starts = np.flatnonzero(np.r_[True, exp_ids[1:] != exp_ids[:-1]])
    ends = np.r_[starts[1:], len(exp_ids)]

    blocks = [
        (
            int(exp_ids[s]),
            y_all[s:e],
            exog_all[s:e],
            groups_all[s:e] if groups_all is not None else None,
        )
        for s, e in zip(starts, ends)
    ]

    if n_jobs > 1 and len(blocks) > 1:
        from joblib import Parallel, delayed

        n_chunks = min(len(blocks), n_jobs * 4)
        chunks = [blocks[i::n_chunks] for i in range(n_chunks)]
        chunk_results = Parallel(n_jobs=n_jobs, backend="loky", verbose=0, return_as="generator")(
            delayed(_fit_chunk)(chunk, model, term_index) for chunk in chunks
        )
        by_exp = {}
        for chunk, results in zip(chunks, chunk_results):
            if cancel_check is not None and cancel_check():
                raise SimulationCancelled("Simulation cancelled by user")
            for result in results:
                by_exp[result.exp_id] = result
            if progress is not None:
                progress.advance(len(chunk))
        return [by_exp[block[0]] for block in blocks]

    results = []
    for block in blocks:
        if cancel_check is not None and cancel_check():
            raise SimulationCancelled("Simulation cancelled by user")
        results.append(fit_block(*block, model, term_index))
        if progress is not None:
            progress.advance(1)
    return results
