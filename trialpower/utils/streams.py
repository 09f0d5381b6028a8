"""
Deterministic random-stream derivation.

Every stage that draws random numbers receives its own
``numpy.random.SeedSequence`` derived from the global seed plus a tuple
of integer keys. Derivation never mutates the parent sequence, so the
same (seed, keys) always gives the same stream no matter how often or in
which order it is requested.
"""

from typing import Union

import numpy as np

SeedLike = Union[None, int, np.random.SeedSequence]

# Stage keys appended to a cell's spawn key
PARAMETER_STREAM = 0
OUTCOME_STREAM = 1


def child_sequence(seed: SeedLike, *keys: int) -> np.random.SeedSequence:
    """Derive the ``SeedSequence`` for *keys* below *seed*.

    Args:
        seed: Global seed (non-negative int), a parent ``SeedSequence``,
            or ``None`` for fresh OS entropy.
        *keys: Non-negative integers identifying the stream (e.g. cell
            sample size, stage key).

    Returns:
        ``SeedSequence(entropy, spawn_key=parent_key + keys)``, identical
        to what ``parent.spawn`` would hand out at those positions.
    """
    if isinstance(seed, np.random.SeedSequence):
        entropy, base_key = seed.entropy, tuple(seed.spawn_key)
    elif seed is None:
        entropy, base_key = np.random.SeedSequence().entropy, ()
    else:
        entropy, base_key = int(seed), ()
    return np.random.SeedSequence(entropy, spawn_key=base_key + tuple(int(k) for k in keys))


def cell_sequence(seed: SeedLike, n_subjects: int) -> np.random.SeedSequence:
    """Seed sequence for one grid cell, keyed on its sample size only.

    Cells that differ only in effect size or analysis approach share the
    same draws (common random numbers), and grid order never matters.
    """
    return child_sequence(seed, n_subjects)
