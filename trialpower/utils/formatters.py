"""
Result formatting for trial-level power simulations.

Renders single-cell power results and grid sweeps as plain-text tables.
"""

import math
from typing import Any, Dict, List, Optional

__all__ = []


class _TableFormatter:
    """Fixed-width text tables."""

    def _create_table(self, headers: List[str], rows: List[List[str]], col_widths: Optional[List[int]] = None) -> str:
        """Render *rows* under *headers* with a dashed separator line."""
        if col_widths is None:
            col_widths = [max(len(str(h)), *(len(str(r[i])) for r in rows)) if rows else len(str(h)) for i, h in enumerate(headers)]

        def _line(cells):
            return " ".join(str(c).ljust(w) for c, w in zip(cells, col_widths))

        lines = [_line(headers), "-" * (sum(col_widths) + len(col_widths) - 1)]
        lines.extend(_line(row) for row in rows)
        return "\n".join(lines)

    def _format_value(self, value: Any, spec: Optional[str] = None) -> str:
        """Format numbers compactly; everything else via ``str``."""
        if value is None:
            return "-"
        if isinstance(value, float):
            if math.isnan(value):
                return "NaN"
            if spec:
                return format(value, spec)
            if value != 0 and abs(value) < 0.001:
                return f"{value:.6f}"
            return f"{value:.4f}"
        return str(value)

    def _format_pct(self, value: float) -> str:
        if value is None or (isinstance(value, float) and math.isnan(value)):
            return "NaN"
        return f"{100 * value:.1f}"


class _ResultFormatter:
    """Formats result dictionaries produced by ``PowerSimulation``."""

    def __init__(self):
        self.tf = _TableFormatter()

    def _format_power(self, data: Dict, summary: str = "short") -> str:
        model = data["model"]
        res = data["results"]

        lines = [
            "Power Analysis Results",
            f"Approach: {model['approach']}",
            f"Contrast: {model['contrast']} vs {model['reference']} on {model['target']}",
            f"N={model['sample_size']} subjects, {model['n_trials']} trials per condition, {model['n_experiments']} experiments",
            f"Effect size: {self.tf._format_value(model['effect_size'])}, alpha={model['alpha']}",
            "",
        ]
        rows = [
            ["power (%)", self.tf._format_pct(res["power"])],
            ["wrong sign (%)", self.tf._format_pct(res["wrong_sign_rate"])],
        ]
        if summary == "long":
            rows.extend(
                [
                    ["type S (%)", self.tf._format_pct(res["type_s_rate"])],
                    ["MC s.e. (%)", self.tf._format_pct(res["mc_error"])],
                    ["experiments used", str(res["n_used"])],
                    ["fits failed", str(res["n_failed"])],
                ]
            )
        elif res["n_failed"] > 0:
            rows.append(["fits failed", f"{res['n_failed']} ({self.tf._format_pct(res['failure_rate'])}%)"])

        lines.append(self.tf._create_table(["Statistic", "Value"], rows))
        return "\n".join(lines)

    def _format_sweep(self, data: Dict, summary: str = "short") -> str:
        model = data["model"]
        headers = ["N", "effect", "approach", "power %", "wrong sign %"]
        if summary == "long":
            headers += ["type S %", "failed", "MC s.e. %"]

        rows = []
        for r in data["results"]:
            row = [
                str(r["sample_size"]),
                self.tf._format_value(r["effect_size"], ".3f") if r["effect_size"] is not None else "-",
                r["approach"],
                self.tf._format_pct(r["power"]),
                self.tf._format_pct(r["wrong_sign_rate"]),
            ]
            if summary == "long":
                row += [
                    self.tf._format_pct(r["type_s_rate"]),
                    str(r["n_failed"]),
                    self.tf._format_pct(r["mc_error"]),
                ]
            rows.append(row)

        header = [
            "Power Sweep Results",
            f"Contrast: {model['contrast']} vs {model['reference']} on {model['target']}, alpha={model['alpha']}, {model['n_experiments']} experiments per cell",
            "",
        ]
        return "\n".join(header) + self.tf._create_table(headers, rows)


def _format_results(analysis_type: str, data: Dict, summary: str = "short") -> str:
    """Format a result dict (``"power"`` or ``"sweep"``) as text."""
    formatter = _ResultFormatter()
    if analysis_type == "power":
        return formatter._format_power(data, summary)
    if analysis_type == "sweep":
        return formatter._format_sweep(data, summary)
    raise ValueError(f"Unknown analysis type: {analysis_type}")
