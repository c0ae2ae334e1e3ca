"""Seeded random stream shared by every draw of one synthesis run."""

from __future__ import annotations

import numpy as np
from numpy.typing import NDArray


class SignalRng:
    """Reproducible random stream for a single synthesis run.

    Wraps a ``numpy`` generator seeded from ``SynthesisParams.seed``. Draws
    are consumed in a fixed order (sensor by sensor, component by
    component), so two runs with the same seed and configuration produce
    identical buffers. Never share an instance between concurrent runs.
    """

    def __init__(self, seed: int) -> None:
        self.seed = int(seed)
        self._gen = np.random.default_rng(self.seed)

    def uniform(self, size: int) -> NDArray[np.floating]:
        """``size`` draws from [0, 1)."""
        return self._gen.random(size)

    def phases_deg(self, size: int, span_deg: float) -> NDArray[np.floating]:
        """Random phase offsets in [0, span_deg) degrees."""
        return self.uniform(size) * span_deg

    def gaussian(self, size: int, rms: float = 1.0) -> NDArray[np.floating]:
        """Zero-mean Gaussian noise with standard deviation ``rms``."""
        if rms <= 0:
            return np.zeros(size)
        return self._gen.standard_normal(size) * rms
