"""Nodal hydraulic state derived from pressure and biomass.

Conductivity, moisture contents and moisture capacity are evaluated at
every vertex of every cell and averaged over the cells sharing the
vertex, which lets per-cell parameters (a conductivity multiplier per
cell tag) produce consistent nodal values.  Both time levels are
refreshed on every Picard iteration.
"""

from __future__ import annotations

import numpy as np

from pybioclog.core.config import ReactionMode
from pybioclog.geometry.incidence import VertexIncidence
from pybioclog.materials.hydraulics import HydraulicProperties, RelativePermeabilityModel
from pybioclog.materials.kinetics import MonodKinetics
from pybioclog.simulation import fields as F


class HydraulicStateEvaluator:
    """Refreshes derived nodal fields of a :class:`~pybioclog.simulation.fields.FieldSet`.

    Args:
        properties: Hydraulic parameter set.
        kinetics: Biomass growth kinetics.
        relative_permeability: Relative permeability model.
        biomass_dry_density: Dry density of biomass.
        reaction: Substrate consumption mode.
        first_order_decay_factor: Rate used by ``homogeneous_decay``.
        porosity: Porosity used by ``monod`` consumption; defaults to θ_s.
        conductivity_factors: Mapping of cell tag to a multiplier of the
            saturated conductivity.
    """

    def __init__(
        self,
        properties: HydraulicProperties,
        kinetics: MonodKinetics,
        relative_permeability: RelativePermeabilityModel,
        biomass_dry_density: float,
        reaction: ReactionMode = ReactionMode.NONE,
        first_order_decay_factor: float = 0.0,
        porosity: float | None = None,
        conductivity_factors: dict[int, float] | None = None,
    ) -> None:
        self.properties = properties
        self.kinetics = kinetics
        self.relative_permeability = relative_permeability
        self.biomass_dry_density = biomass_dry_density
        self.reaction = reaction
        self.first_order_decay_factor = first_order_decay_factor
        self.porosity = properties.theta_s if porosity is None else porosity
        self.conductivity_factors = conductivity_factors or {}

    @classmethod
    def from_parameters(cls, parameters) -> "HydraulicStateEvaluator":
        return cls(
            properties=HydraulicProperties.from_config(
                parameters.constitutive, parameters.equations
            ),
            kinetics=MonodKinetics.from_config(parameters.reaction),
            relative_permeability=parameters.equations.relative_permeability,
            biomass_dry_density=parameters.constitutive.biomass_dry_density,
            reaction=parameters.equations.reaction,
            first_order_decay_factor=parameters.reaction.first_order_decay_factor,
            porosity=parameters.reaction.porosity,
            conductivity_factors=parameters.constitutive.conductivity_factors,
        )

    def cell_conductivity_scale(self, mesh) -> np.ndarray:
        """Multiplier of the saturated conductivity for every cell."""
        scale = np.ones(mesh.n_cells)
        for tag, factor in self.conductivity_factors.items():
            scale[mesh.cell_tags == tag] = factor
        return scale

    def grow_biomass(self, fields: F.FieldSet, dt: float, drying: bool) -> np.ndarray:
        """Biomass at the end of the step; unchanged while drying."""
        biomass_old = fields[F.BIOMASS].old
        if drying:
            return biomass_old.copy()
        free_saturation = self.properties.effective_free_saturation(
            fields[F.PRESSURE].old, biomass_old, self.biomass_dry_density
        )
        return self.kinetics.grow(
            biomass_old, fields[F.SUBSTRATE].old, free_saturation, dt
        )

    def evaluate(
        self,
        mesh,
        incidence: VertexIncidence,
        fields: F.FieldSet,
        dt: float,
        drying: bool,
    ) -> None:
        """Recompute biomass and the hydraulic state at both time levels.

        Args:
            mesh: Current mesh.
            incidence: Vertex incidence of *mesh*.
            fields: Field set, updated in place.
            dt: Current step length.
            drying: Whether the drying phase is active.

        Raises:
            ValueError: If *incidence* was built for another mesh.
        """
        if not incidence.matches(mesh):
            raise ValueError("Vertex incidence is out of date with the mesh.")

        fields[F.BIOMASS].set(self.grow_biomass(fields, dt, drying))
        scale = self.cell_conductivity_scale(mesh)[:, None]
        props = self.properties
        rho = self.biomass_dry_density

        derived: dict[str, dict[str, np.ndarray]] = {}
        for level in ("old", "new"):
            h = getattr(fields[F.PRESSURE], level)[mesh.cells]
            b = getattr(fields[F.BIOMASS], level)[mesh.cells]
            nodal = {
                F.BIOMASS_FRACTION: b / rho,
                F.CONDUCTIVITY: scale * props.hydraulic_conductivity(
                    h, b, rho, self.relative_permeability
                ),
                F.MOISTURE_TOTAL: props.moisture_content_total(h),
                F.MOISTURE_FREE: props.moisture_content_free(h, b, rho),
                F.CAPACITY: props.specific_moisture_capacity(h),
            }
            derived[level] = {name: incidence.average(v) for name, v in nodal.items()}
        for name in derived["new"]:
            fields[name].set_levels(derived["old"][name], derived["new"][name])

    def reaction_rates(self, fields: F.FieldSet) -> tuple[np.ndarray, np.ndarray] | None:
        """First-order substrate consumption rates ``(r_new, r_old)``.

        Returns ``None`` when no consumption term is configured.
        """
        if self.reaction is ReactionMode.NONE:
            return None
        if self.reaction is ReactionMode.HOMOGENEOUS_DECAY:
            rate = np.full(fields.n_dofs, self.first_order_decay_factor)
            return rate, rate.copy()
        substrate_old = fields[F.SUBSTRATE].old
        return (
            self.kinetics.consumption_rate(fields[F.BIOMASS].new, substrate_old, self.porosity),
            self.kinetics.consumption_rate(fields[F.BIOMASS].old, substrate_old, self.porosity),
        )
