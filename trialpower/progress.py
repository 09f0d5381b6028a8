"""
Progress reporting for trialpower runs.

A run is a sequence of grid cells, each fitting one model per simulated
experiment. ``ProgressReporter`` counts fitted experiments across the whole
run and passes ``(current, total)`` to a callback. Callbacks that also
define ``cell_started(index, n_cells, label)`` are told which cell
(sample size, effect size, approach) is being worked on.
"""

import sys
from typing import Callable, Optional


class SimulationCancelled(Exception):
    """Raised when ``cancel_check`` asks a run to stop."""


class ProgressReporter:
    """Counts fitted experiments over the cells of one run.

    Args:
        n_experiments: Experiments fitted per cell.
        n_cells: Cells in the run (1 for ``find_power``).
        callback: Called as ``callback(current, total)``.
        min_step: Smallest advance, in experiments, that fires the callback
            inside a cell. Defaults to about 1% of a cell. The last
            experiment of every cell always fires it.
    """

    def __init__(
        self,
        n_experiments: int,
        n_cells: int,
        callback: Callable[[int, int], None],
        min_step: Optional[int] = None,
    ):
        self.n_experiments = n_experiments
        self.n_cells = n_cells
        self.total = n_experiments * n_cells
        self.callback = callback
        self.min_step = min_step if min_step is not None else max(1, n_experiments // 100)
        self.done = 0
        self.cell_index = 0
        self.cell_label: Optional[str] = None
        self._reported = 0

    def start(self):
        self.done = self._reported = self.cell_index = 0
        self.cell_label = None
        self.callback(0, self.total)

    def begin_cell(self, label: str):
        """Mark the start of the next cell and forward its label."""
        self.cell_index += 1
        self.cell_label = label
        cell_started = getattr(self.callback, "cell_started", None)
        if cell_started is not None:
            cell_started(self.cell_index, self.n_cells, label)

    def advance(self, n: int = 1):
        """Record *n* fitted experiments."""
        self.done = min(self.done + n, self.total)
        if self.done % self.n_experiments == 0 or self.done - self._reported >= self.min_step:
            self._reported = self.done
            self.callback(self.done, self.total)

    def finish(self):
        if self._reported < self.total:
            self.done = self._reported = self.total
            self.callback(self.total, self.total)


class PrintReporter:
    """Writes one updating line to stderr.

    Example line: ``cell 2/6 [N=24, effect=0.05, rt ~ condition]  37.5% (450/1200 experiments)``
    """

    def __init__(self, stream=None):
        self.stream = stream
        self._cell = ""
        self._width = 0

    def cell_started(self, index: int, n_cells: int, label: str):
        self._cell = f"cell {index}/{n_cells} [{label}] "

    def __call__(self, current: int, total: int):
        if total <= 0:
            return
        stream = self.stream if self.stream is not None else sys.stderr
        line = f"{self._cell}{100.0 * current / total:5.1f}% ({current}/{total} experiments)"
        # pad over the previous line, labels differ in length
        stream.write("\r" + line.ljust(self._width))
        self._width = max(self._width, len(line))
        if current >= total:
            stream.write("\n")
            self._width = 0
        stream.flush()


class TqdmReporter:
    """tqdm progress bar showing the current cell as its description.

    tqdm is imported on first use (``pip install trialpower[progress]``)::

        sim.sweep([12, 24], [0.0, 0.1], progress_callback=TqdmReporter())
    """

    def __init__(self, **tqdm_kwargs):
        self._label: Optional[str] = tqdm_kwargs.pop("desc", None)
        self._tqdm_kwargs = tqdm_kwargs
        self._bar = None

    def cell_started(self, index: int, n_cells: int, label: str):
        self._label = f"{index}/{n_cells} {label}"
        if self._bar is not None:
            self._bar.set_description(self._label)

    def __call__(self, current: int, total: int):
        if self._bar is None:
            from tqdm import tqdm

            self._bar = tqdm(total=total, unit="exp", desc=self._label, **self._tqdm_kwargs)

        if current > self._bar.n:
            self._bar.update(current - self._bar.n)

        if current >= total:
            self._bar.close()
            self._bar = None
