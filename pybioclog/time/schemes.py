"""Temporal discretisation.

The θ-method discretises M du/dt = F(u) as::

    M (u^{n+1} - u^n) / dt = θ F(u^{n+1}) + (1 - θ) F(u^n)

θ = 1 is backward Euler, θ = 0.5 Crank-Nicolson, θ = 0 forward Euler.
"""

from __future__ import annotations

from dataclasses import dataclass

import numpy as np

from pybioclog.core.exceptions import ConfigError


@dataclass(frozen=True)
class ThetaScheme:
    """θ-weighted time integration.

    Args:
        theta: Implicit weighting parameter θ ∈ [0, 1].
    """

    theta: float = 1.0

    def __post_init__(self) -> None:
        if not 0.0 <= self.theta <= 1.0:
            raise ConfigError(f"theta must be in [0, 1], got {self.theta}.")

    def blend(self, f_new: np.ndarray, f_old: np.ndarray) -> np.ndarray:
        """Weighted blend θ·f_new + (1-θ)·f_old."""
        return self.theta * f_new + (1.0 - self.theta) * f_old

    @property
    def explicit_weight(self) -> float:
        """1 - θ."""
        return 1.0 - self.theta

    def __repr__(self) -> str:
        return f"ThetaScheme(theta={self.theta})"
