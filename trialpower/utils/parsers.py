"""
Parsing utilities for trial-level power simulations.

This module provides the parser for condition assignment strings
(``"A=0.9/5.2, B=0.85/5.0"``) and for R-style analysis formulas
(``"log(rt) ~ condition + (1|sub_id)"``).
"""

import re
from typing import Dict, List, Optional, Tuple

__all__ = []

# Unicode-aware identifier pattern: letter or underscore, then word characters
_IDENT = r"[^\W\d]\w*"


class _AssignmentParser:
    """Parses comma-separated ``name=value`` assignment strings.

    Each assignment is ``label=accuracy/latency``; the parsed dict maps
    labels to ``(accuracy, latency)`` pairs in declaration order.

    A module-level singleton ``_parser`` is used throughout the codebase.
    """

    def __init__(self):
        self.handlers = {
            "condition": self._parse_condition_value,
        }

    def _parse(self, input_string: str, parse_type: str) -> Tuple[Dict, List[str]]:
        """Parse a comma-separated assignment string.

        Args:
            input_string: Raw user input (e.g. ``"A=0.9/5.2, B=0.85/5.0"``).
            parse_type: ``"condition"``.

        Returns:
            Tuple of ``(parsed_dict, error_list)``. The dict preserves the
            order in which names appeared.
        """
        if parse_type not in self.handlers:
            return {}, [f"Unknown parse type: {parse_type}"]

        parsed_items: Dict = {}
        errors = []

        for assignment in self._split_assignments(input_string):
            try:
                name, value = self._parse_assignment(assignment)
            except ValueError as e:
                errors.append(str(e))
                continue

            if not re.fullmatch(_IDENT, name):
                errors.append(f"'{name}' is not a valid label")
                continue
            if name in parsed_items:
                errors.append(f"'{name}' assigned more than once")
                continue

            parsed_value, error = self.handlers[parse_type](value)
            if error:
                errors.append(f"{name}: {error}")
                continue

            parsed_items[name] = parsed_value

        return parsed_items, errors

    def _split_assignments(self, input_string: str) -> List[str]:
        """Split assignments at top-level commas."""
        return [part.strip() for part in input_string.split(",") if part.strip()]

    def _parse_assignment(self, assignment: str) -> Tuple[str, str]:
        """Parse single assignment into name and value parts."""
        if "=" not in assignment:
            raise ValueError(f"Invalid format: '{assignment}'. Expected 'name=value'")
        name, value = assignment.split("=", 1)
        return name.strip(), value.strip()

    def _parse_condition_value(self, value: str) -> Tuple[Tuple[float, float], Optional[str]]:
        """Parse ``accuracy/latency`` into a pair of floats."""
        parts = [p.strip() for p in value.split("/")]
        if len(parts) != 2:
            return (0.0, 0.0), f"Expected 'accuracy/latency', got '{value}'"
        try:
            return (float(parts[0]), float(parts[1])), None
        except ValueError:
            return (0.0, 0.0), f"Invalid numbers in '{value}'"


_parser = _AssignmentParser()


def _parse_equation(equation: str) -> Tuple[str, str, List[Dict]]:
    """Parse an R-style analysis formula into its components.

    Splits the equation at ``~`` or ``=``, extracts random-intercept
    terms, and returns the cleaned fixed-effect formula.

    Supported random-effect syntax is the random intercept ``(1|group)``
    only; random slopes and nesting are rejected.

    Args:
        equation: Formula string (e.g. ``"rt ~ condition + (1|sub_id)"``).

    Returns:
        Tuple of ``(dependent, fixed_formula, random_effects)`` where
        *random_effects* is a list of dicts with keys ``"type"``
        (always ``"random_intercept"``) and ``"grouping_var"``.

    Raises:
        ValueError: If the formula has no ``~``/``=`` separator, uses an
            unsupported random-effect term, or repeats a grouping variable.
    """
    equation = equation.replace(" ", "")

    if "~" in equation:
        dep_var, formula_part = equation.split("~", 1)
    elif "=" in equation:
        dep_var, formula_part = equation.split("=", 1)
    else:
        raise ValueError(f"Formula '{equation}' has no '~' separating response and predictors")

    if not dep_var or not formula_part:
        raise ValueError(f"Formula '{equation}' must have both a response and predictors")

    random_effects: List[Dict] = []
    seen_grouping_vars: set = set()

    intercept_pattern = rf"\(1\|({_IDENT})\)"
    for match in re.finditer(intercept_pattern, formula_part):
        grouping_var = match.group(1)
        if grouping_var in seen_grouping_vars:
            raise ValueError(f"Duplicate random effect grouping variable: '{grouping_var}'")
        seen_grouping_vars.add(grouping_var)
        random_effects.append({"type": "random_intercept", "grouping_var": grouping_var})

    formula_part = re.sub(intercept_pattern, "", formula_part)

    if "|" in formula_part:
        raise ValueError(f"Only random intercepts '(1|group)' are supported, got '{equation}'")

    # Clean up extra + signs
    formula_part = re.sub(r"\+\++", "+", formula_part)
    formula_part = formula_part.strip("+")

    return dep_var, formula_part, random_effects


def _parse_response(dep_var: str) -> Tuple[str, str]:
    """Split a response term into ``(variable, transform)``.

    ``"rt"`` gives ``("rt", "identity")`` and ``"log(rt)"`` gives
    ``("rt", "log")``.
    """
    match = re.fullmatch(rf"log\(({_IDENT})\)", dep_var)
    if match:
        return match.group(1), "log"
    if re.fullmatch(_IDENT, dep_var):
        return dep_var, "identity"
    raise ValueError(f"Unsupported response term '{dep_var}'. Use 'name' or 'log(name)'")
