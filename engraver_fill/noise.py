"""Seeded coherent 2D noise used for smooth point jitter."""

from __future__ import annotations

from typing import Optional

import numpy as np
from opensimplex import OpenSimplex


class CoherentNoise:
    """OpenSimplex noise rescaled to ``[0, 1]``.

    Nearby inputs give nearby outputs; features are about one unit wide, so
    callers divide positions by their feature size first. A ``None`` seed
    draws a fresh one.
    """

    def __init__(self, seed: Optional[int] = 0) -> None:
        if seed is None:
            seed = int(np.random.default_rng().integers(2**31))
        self.seed = seed
        self._simplex = OpenSimplex(seed=seed)

    def evaluate(self, x: float, y: float) -> float:
        value = self._simplex.noise2(float(x), float(y))
        return min(1.0, max(0.0, 0.5 + 0.5 * value))
