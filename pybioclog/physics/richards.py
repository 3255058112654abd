"""Unsaturated flow: Richards equation.

Governing equation (head form)::

    C(h) ∂h/∂t = ∇·(K(h, B) ∇(h + z))

where h is pressure head, z elevation, C = dθ/dh the specific moisture
capacity and K the hydraulic conductivity reduced by biomass B.  The
mixed form keeps ∂θ/∂t and linearises it around the previous Picard
iterate (Celia et al., 1990), which conserves water exactly.

The θ-scheme system solved on each Picard iteration is::

    (M + θ Δt L_new) h_new = M h_ref − (1 − θ) Δt L_old h_old + f

with h_ref the old solution (head form) or the previous iterate (mixed
form) and f the gravity and boundary-flux load.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

import numpy as np
from scipy import sparse

from pybioclog.boundaries.base import BoundaryConditions, Neumann
from pybioclog.core.config import FlowFormulation
from pybioclog.geometry.mesh import BOTTOM_MARKER, TOP_MARKER
from pybioclog.physics.base import LinearSystem, PhysicsModule
from pybioclog.simulation import fields as F
from pybioclog.time.schemes import ThetaScheme


@dataclass
class FlowSystem(LinearSystem):
    """Flow system together with the matrices it was built from."""

    mass: sparse.csr_matrix | None = None
    laplace_new: sparse.csr_matrix | None = None
    laplace_old: sparse.csr_matrix | None = None


class Richards(PhysicsModule):
    """Transient unsaturated flow (Richards equation).

    Uses P1 finite elements with Picard linearisation: K and C are taken
    from the nodal hydraulic state of the current iterate.  With a lumped
    function space the mass matrix is diagonal.

    Args:
        space: Function space for pressure head.
        scheme: Time discretisation.
        formulation: Head or mixed form.
    """

    name = "richards"
    primary_field = F.PRESSURE

    def __init__(
        self,
        space: Any,
        scheme: ThetaScheme,
        formulation: FlowFormulation = FlowFormulation.HEAD,
    ) -> None:
        super().__init__(space, scheme)
        self.formulation = FlowFormulation(formulation)

    # ------------------------------------------------------------------
    # Local matrices
    # ------------------------------------------------------------------

    def _mass(self, coefficient: np.ndarray) -> np.ndarray:
        sp = self.space
        return np.einsum("cq,qi,qj->cij", coefficient * sp.JxW, sp.N, sp.N)

    def _laplace(self, conductivity: np.ndarray) -> np.ndarray:
        sp = self.space
        weight = np.sum(conductivity * sp.JxW, axis=1)
        return weight[:, None, None] * np.einsum("cid,cjd->cij", sp.gradients, sp.gradients)

    def _neumann_load(self, bc: Neumann, dt: float) -> np.ndarray:
        sp = self.space
        facets = sp.facets_with_marker(bc.marker)
        local = np.einsum("fqi,fq->fi", sp.facet_N[facets], sp.facet_JxW[facets])
        return -dt * bc.flux * sp.assemble_vector(local, cells=sp.facet_cell_nodes(facets))

    # ------------------------------------------------------------------
    # Assembly
    # ------------------------------------------------------------------

    def assemble(
        self,
        fields: F.FieldSet,
        dt: float,
        boundary_conditions: BoundaryConditions,
    ) -> FlowSystem:
        """Assemble the flow system for the current Picard iterate.

        Args:
            fields: Field set; the hydraulic state must be current.
            dt: Time-step size.
            boundary_conditions: Flow conditions for the active phase.

        Returns:
            :class:`FlowSystem` ready for Dirichlet elimination.
        """
        sp = self.space
        theta = self.scheme.theta
        h_old = fields[F.PRESSURE].old
        h_iter = fields[F.PRESSURE].new
        k_new = sp.interpolate(fields[F.CONDUCTIVITY].new)
        k_old = sp.interpolate(fields[F.CONDUCTIVITY].old)
        c_new = sp.interpolate(fields[F.CAPACITY].new)

        if self.formulation is FlowFormulation.HEAD:
            capacity = self.scheme.blend(c_new, sp.interpolate(fields[F.CAPACITY].old))
            reference = h_old
        else:
            capacity = c_new
            reference = h_iter

        mass = sp.assemble_matrix(self._mass(capacity))
        laplace_new = sp.assemble_matrix(self._laplace(k_new))
        laplace_old = sp.assemble_matrix(self._laplace(k_old))

        # Gravity: -Δt ∫ K ∂φ_i/∂z
        k_blend = np.sum(self.scheme.blend(k_new, k_old) * sp.JxW, axis=1)
        rhs_local = -dt * k_blend[:, None] * sp.gradients[:, :, -1]
        if self.formulation is FlowFormulation.MIXED:
            d_theta = sp.interpolate(
                fields[F.MOISTURE_TOTAL].new - fields[F.MOISTURE_TOTAL].old
            )
            rhs_local -= np.einsum("cq,qi->ci", d_theta * sp.JxW, sp.N)
        rhs = sp.assemble_vector(rhs_local)

        for bc in boundary_conditions.of_type(Neumann):
            rhs += self._neumann_load(bc, dt)

        rhs += mass @ reference - (1.0 - theta) * dt * (laplace_old @ h_old)
        d_nodes, d_values = boundary_conditions.dirichlet_data(self.mesh)
        return FlowSystem(
            matrix=(mass + theta * dt * laplace_new).tocsr(),
            rhs=rhs,
            dirichlet_nodes=d_nodes,
            dirichlet_values=d_values,
            mass=mass,
            laplace_new=laplace_new,
            laplace_old=laplace_old,
        )

    # ------------------------------------------------------------------
    # Boundary fluxes
    # ------------------------------------------------------------------

    def boundary_flow(self, fields: F.FieldSet, marker: int) -> float:
        """θ-blended outward water flux −∫ K ∇(h + z)·n over a boundary.

        Args:
            fields: Field set.
            marker: Boundary marker.
        """
        sp = self.space
        facets = sp.facets_with_marker(marker)
        if facets.size == 0:
            return 0.0
        z = self.mesh.elevation
        owners = sp.facet_cells[facets]
        normals = sp.facet_normals[facets]
        flows = []
        for level in ("new", "old"):
            head = getattr(fields[F.PRESSURE], level) + z
            grad_n = np.sum(sp.cell_gradient(head)[owners] * normals, axis=1)
            k = sp.facet_interpolate(getattr(fields[F.CONDUCTIVITY], level), facets)
            flows.append(-np.sum(k * sp.facet_JxW[facets] * grad_n[:, None]))
        return float(self.scheme.blend(flows[0], flows[1]))

    def boundary_flows(self, fields: F.FieldSet) -> tuple[float, float]:
        """Outward water flux across the top and bottom boundaries."""
        return (
            self.boundary_flow(fields, TOP_MARKER),
            self.boundary_flow(fields, BOTTOM_MARKER),
        )

    def validate(self) -> list[str]:
        issues = super().validate()
        if not np.any(self.mesh.facet_markers == BOTTOM_MARKER):
            issues.append("No bottom boundary (marker 2) found.")
        if not np.any(self.mesh.facet_markers == TOP_MARKER):
            issues.append("No top boundary (marker 1) found.")
        return issues
