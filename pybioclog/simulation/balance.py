"""Water and substrate balance bookkeeping.

Fluxes are outward-positive rates across the top (marker 1) and bottom
(marker 2) boundaries; cumulative values are rate times step length
summed over committed steps.
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass
class MassBalance:
    """Running totals updated once per committed time step."""

    flow_at_top: float = 0.0
    flow_at_bottom: float = 0.0
    cumulative_flow_at_top: float = 0.0
    cumulative_flow_at_bottom: float = 0.0
    nutrient_flow_at_top: float = 0.0
    nutrient_flow_at_bottom: float = 0.0
    cumulative_nutrient_flow_at_top: float = 0.0
    cumulative_nutrient_flow_at_bottom: float = 0.0
    nutrients_in_domain_previous: float = 0.0
    nutrients_in_domain_current: float = 0.0

    def record_flow(self, flow_at_top: float, flow_at_bottom: float) -> None:
        self.flow_at_top = flow_at_top
        self.flow_at_bottom = flow_at_bottom

    def record_nutrients(self, flow_at_top: float, flow_at_bottom: float) -> None:
        self.nutrient_flow_at_top = flow_at_top
        self.nutrient_flow_at_bottom = flow_at_bottom

    def accumulate(self, dt: float, nutrients_in_domain: float) -> None:
        """Add the step's fluxes and store the new substrate mass."""
        self.cumulative_flow_at_top += self.flow_at_top * dt
        self.cumulative_flow_at_bottom += self.flow_at_bottom * dt
        self.cumulative_nutrient_flow_at_top += self.nutrient_flow_at_top * dt
        self.cumulative_nutrient_flow_at_bottom += self.nutrient_flow_at_bottom * dt
        self.nutrients_in_domain_previous = self.nutrients_in_domain_current
        self.nutrients_in_domain_current = nutrients_in_domain

    def reset_nutrients(self, nutrients_in_domain: float) -> None:
        """Start substrate bookkeeping from the given mass."""
        self.nutrient_flow_at_top = 0.0
        self.nutrient_flow_at_bottom = 0.0
        self.cumulative_nutrient_flow_at_top = 0.0
        self.cumulative_nutrient_flow_at_bottom = 0.0
        self.nutrients_in_domain_previous = nutrients_in_domain
        self.nutrients_in_domain_current = nutrients_in_domain

    def nutrient_balance_error(self, dt: float) -> float:
        """Storage change plus outflow over the last step (zero if conserved)."""
        storage_change = self.nutrients_in_domain_current - self.nutrients_in_domain_previous
        outflow = (self.nutrient_flow_at_top + self.nutrient_flow_at_bottom) * dt
        return storage_change + outflow
