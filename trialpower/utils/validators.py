"""
Validation utilities for trial-level power simulations.

This module provides the error types raised by the package and the
validation functions for design counts, condition labels and
analysis settings.
"""

from dataclasses import dataclass
from typing import Any, List, Optional, Sequence, Tuple, Union

__all__ = ["ConfigurationError", "SamplingDegeneracy"]


class ConfigurationError(ValueError):
    """Raised when the simulation is configured with invalid settings."""

    pass


class SamplingDegeneracy(ValueError):
    """Raised when a condition mean cannot be turned into a valid distribution.

    Attributes:
        condition: Label of the offending condition.
        dimension: ``"accuracy"`` or ``"latency"``.
        value: The offending mean as configured.
    """

    def __init__(self, message: str, condition: Optional[str] = None, dimension: Optional[str] = None, value: Optional[float] = None):
        super().__init__(message)
        self.condition = condition
        self.dimension = dimension
        self.value = value


@dataclass
class _ValidationResult:
    """Outcome of a validation check, carrying errors and warnings.

    Attributes:
        is_valid: ``True`` if no errors were found.
        errors: List of error messages (empty when valid).
        warnings: List of non-fatal warning messages.
    """

    is_valid: bool
    errors: List[str]
    warnings: List[str]

    def raise_if_invalid(self):
        """Raise ``ConfigurationError`` if the validation failed."""
        if not self.is_valid:
            error_msg = "Validation failed:\n" + "\n".join(f"• {err}" for err in self.errors)
            raise ConfigurationError(error_msg)


class _Validator:
    """Static helpers for type and range checks used by all validators."""

    @staticmethod
    def _check_type(value: Any, expected_types: tuple, name: str) -> Optional[str]:
        """Check if value has expected type."""
        if isinstance(value, bool) or not isinstance(value, expected_types):
            actual_type = type(value).__name__
            expected = expected_types[0].__name__ if len(expected_types) == 1 else f"one of {[t.__name__ for t in expected_types]}"
            return f"{name} must be {expected}, got {actual_type}"
        return None

    @staticmethod
    def _check_range(
        value: Union[int, float],
        min_val: Optional[float],
        max_val: Optional[float],
        name: str,
    ) -> Optional[str]:
        """Check if value is within range."""
        if min_val is not None and value < min_val:
            return f"{name} must be >= {min_val}, got {value}"
        if max_val is not None and value > max_val:
            return f"{name} must be <= {max_val}, got {value}"
        return None


_validator = _Validator()


def _validate_numeric_parameter(
    value: Any,
    name: str,
    expected_types: tuple = (int, float),
    min_val: Optional[float] = None,
    max_val: Optional[float] = None,
) -> _ValidationResult:
    """Generic validation for numeric parameters."""
    errors: List[str] = []

    type_error = _validator._check_type(value, expected_types, name)
    if type_error:
        errors.append(type_error)
        return _ValidationResult(False, errors, [])

    range_error = _validator._check_range(value, min_val, max_val, name)
    if range_error:
        errors.append(range_error)

    return _ValidationResult(len(errors) == 0, errors, [])


def _validate_count(value: Any, name: str) -> _ValidationResult:
    """Validate a positive integer count (experiments, subjects, trials)."""
    import numpy as np

    if isinstance(value, np.integer):
        value = int(value)
    return _validate_numeric_parameter(value, name, expected_types=(int,), min_val=1)


def _validate_design_counts(n_experiments: Any, n_subjects: Any, n_trials: Any) -> _ValidationResult:
    """Validate the three design counts together, collecting every error."""
    errors: List[str] = []
    for value, name in [
        (n_experiments, "n_experiments"),
        (n_subjects, "n_subjects"),
        (n_trials, "n_trials"),
    ]:
        errors.extend(_validate_count(value, name).errors)
    return _ValidationResult(len(errors) == 0, errors, [])


def _validate_condition_labels(labels: Sequence[Any]) -> _ValidationResult:
    """Validate the condition label set (non-empty, unique strings)."""
    errors: List[str] = []
    labels = list(labels)

    if not labels:
        errors.append("At least one condition is required")
        return _ValidationResult(False, errors, [])

    for label in labels:
        if not isinstance(label, str) or not label.strip():
            errors.append(f"Condition labels must be non-empty strings, got {label!r}")

    duplicates = sorted({label for label in labels if labels.count(label) > 1}, key=str)
    if duplicates:
        errors.append(f"Duplicate condition labels: {', '.join(map(str, duplicates))}")

    return _ValidationResult(len(errors) == 0, errors, [])


def _validate_alpha(alpha: Any) -> _ValidationResult:
    """Validate alpha level parameter (0-0.25)."""
    result = _validate_numeric_parameter(alpha, "Alpha", min_val=0, max_val=0.25)
    if result.is_valid and alpha == 0:
        return _ValidationResult(False, ["Alpha must be greater than 0"], [])
    return result


def _validate_sd(value: Any, name: str) -> _ValidationResult:
    """Validate a standard deviation (non-negative number)."""
    return _validate_numeric_parameter(value, name, min_val=0)


def _validate_seed(seed: Any) -> _ValidationResult:
    """Validate a random seed (non-negative integer or None)."""
    if seed is None:
        return _ValidationResult(True, [], [])
    return _validate_numeric_parameter(seed, "seed", expected_types=(int,), min_val=0)


def _validate_contrast(contrast: Any, labels: Sequence[str], reference: str) -> _ValidationResult:
    """Validate that the contrast condition exists and is not the reference."""
    errors: List[str] = []
    if contrast not in labels:
        errors.append(f"Contrast condition '{contrast}' not found. Available: {', '.join(labels)}")
    elif contrast == reference:
        errors.append(f"Contrast condition '{contrast}' is the reference condition; choose one of: {', '.join(label for label in labels if label != reference)}")
    return _ValidationResult(len(errors) == 0, errors, [])


def _validate_parallel_settings(n_jobs: Any, n_cell_jobs: Any) -> Tuple[Tuple[int, int], _ValidationResult]:
    """Validate worker-pool sizes for the two parallelism axes."""
    errors: List[str] = []
    warnings: List[str] = []

    for value, name in [(n_jobs, "n_jobs"), (n_cell_jobs, "n_cell_jobs")]:
        errors.extend(_validate_count(value, name).errors)

    if errors:
        return (1, 1), _ValidationResult(False, errors, warnings)

    if n_jobs > 1 and n_cell_jobs > 1:
        warnings.append("Both parallel axes requested; experiments inside each cell will run sequentially while cells run in parallel.")

    return (int(n_jobs), int(n_cell_jobs)), _ValidationResult(True, errors, warnings)


def _validate_grid(sample_sizes: Any, effect_sizes: Any) -> _ValidationResult:
    """Validate a sweep grid (non-empty sample sizes and effect sizes)."""
    errors: List[str] = []
    warnings: List[str] = []

    sample_sizes = list(sample_sizes)
    effect_sizes = list(effect_sizes)

    if not sample_sizes:
        errors.append("sample_sizes must contain at least one value")
    for n in sample_sizes:
        errors.extend(_validate_count(n, "sample size").errors)

    if not effect_sizes:
        errors.append("effect_sizes must contain at least one value")
    for d in effect_sizes:
        if d is not None:
            errors.extend(_validate_numeric_parameter(d, "effect size").errors)

    n_cells = len(sample_sizes) * len(effect_sizes)
    if n_cells > 100:
        warnings.append(f"Large number of grid cells to simulate ({n_cells}). This may take significant time.")

    return _ValidationResult(len(errors) == 0, errors, warnings)


def _validate_model_subjects(n_subjects: Any, is_mixed: bool) -> _ValidationResult:
    """Validate that a sample size can identify the model's random intercept."""
    if is_mixed and n_subjects < 2:
        return _ValidationResult(
            False,
            [f"A random intercept per subject needs at least 2 subjects, got {n_subjects}"],
            [],
        )
    return _ValidationResult(True, [], [])
