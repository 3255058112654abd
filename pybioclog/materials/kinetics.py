"""Monod kinetics for biomass growth and substrate consumption.

Concentrations are in mg/cm³; the half-velocity constant is given in
mg/L and converted on use.
"""

from __future__ import annotations

from dataclasses import dataclass

import numpy as np
from numpy.typing import ArrayLike

MG_PER_L_TO_MG_PER_CM3 = 1.0e-3


@dataclass
class MonodKinetics:
    """Single-substrate Monod kinetics.

    Args:
        yield_coefficient: Biomass produced per unit substrate used (Y).
        maximum_substrate_use_rate: q̂ (1/time).
        half_velocity_constant: K_s (mg/L).
        decay_rate: Endogenous biomass decay b (1/time).
    """

    yield_coefficient: float = 0.5
    maximum_substrate_use_rate: float = 1e-4
    half_velocity_constant: float = 10.0
    decay_rate: float = 0.0

    @classmethod
    def from_config(cls, reaction) -> "MonodKinetics":
        return cls(
            yield_coefficient=reaction.yield_coefficient,
            maximum_substrate_use_rate=reaction.maximum_substrate_use_rate,
            half_velocity_constant=reaction.half_velocity_constant,
            decay_rate=reaction.decay_rate,
        )

    @property
    def half_velocity_concentration(self) -> float:
        """K_s in mg/cm³."""
        return self.half_velocity_constant * MG_PER_L_TO_MG_PER_CM3

    def growth_rate(self, substrate: ArrayLike, free_saturation: ArrayLike) -> np.ndarray:
        """Net specific growth rate μ = Y q̂ S_f S / (S_f S + K_s) − b.

        Negative substrate values are treated as zero.
        """
        s = np.maximum(np.asarray(substrate, dtype=float), 0.0)
        available = np.asarray(free_saturation, dtype=float) * s
        monod = available / (available + self.half_velocity_concentration)
        return (
            self.yield_coefficient * self.maximum_substrate_use_rate * monod
            - self.decay_rate
        )

    def grow(
        self,
        biomass: ArrayLike,
        substrate: ArrayLike,
        free_saturation: ArrayLike,
        dt: float,
    ) -> np.ndarray:
        """Advance biomass over one step with the exact exponential update.

        Args:
            biomass: Biomass at the start of the step.
            substrate: Substrate concentration at the start of the step.
            free_saturation: Effective free saturation at the start of
                the step.
            dt: Step length.
        """
        b = np.asarray(biomass, dtype=float)
        return b * np.exp(self.growth_rate(substrate, free_saturation) * dt)

    def consumption_rate(
        self,
        biomass: ArrayLike,
        substrate: ArrayLike,
        porosity: float,
    ) -> np.ndarray:
        """First-order substrate consumption coefficient r ≥ 0.

        The transport sink is ``r · c``, with
        ``r = n q̂ B / (S + K_s)``.
        """
        b = np.maximum(np.asarray(biomass, dtype=float), 0.0)
        s = np.maximum(np.asarray(substrate, dtype=float), 0.0)
        return (
            porosity * b * self.maximum_substrate_use_rate
            / (s + self.half_velocity_concentration)
        )
