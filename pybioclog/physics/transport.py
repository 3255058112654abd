"""Substrate transport: advection-dispersion-reaction equation.

Governing equation::

    ∂(θ_f c)/∂t + q·∇c = ∇·(θ_f D ∇c) − r c

where c is the substrate concentration, θ_f the free (mobile) moisture
content, q the Darcy velocity of the flow solution, D = α_L|q| + D_eff
the dispersion coefficient and r ≥ 0 an optional first-order
consumption rate.

FEM discretisation uses SUPG (Streamline Upwind Petrov-Galerkin) with
test functions φ_i + τ q·∇φ_i and::

    τ = (coth(Pe) − 1/Pe) h / (2|q|),    Pe = h|q| / (2D)

Old and new time levels are assembled separately::

    (M_new + θ Δt L_new) c_new = M_old c_old − (1 − θ) Δt L_old c_old + f
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

import numpy as np
from scipy import sparse

from pybioclog.boundaries.base import BoundaryConditions, Inflow
from pybioclog.core.exceptions import ErrorContext, NumericalBreakdown
from pybioclog.geometry.mesh import BOTTOM_MARKER, TOP_MARKER
from pybioclog.physics.base import LinearSystem, PhysicsModule
from pybioclog.simulation import fields as F
from pybioclog.time.schemes import ThetaScheme

VELOCITY_FLOOR = 1e-6
DIFFUSION_FLOOR = 1e-10


def langevin(x: np.ndarray) -> np.ndarray:
    """coth(x) − 1/x, using its series near zero."""
    x = np.asarray(x, dtype=float)
    small = np.abs(x) < 1e-4
    safe = np.where(small, 1.0, x)
    with np.errstate(over="ignore"):
        exact = 1.0 / np.tanh(safe) - 1.0 / safe
    return np.where(small, x / 3.0 - x ** 3 / 45.0, exact)


@dataclass
class Stabilization:
    """Per-cell SUPG data of one assembly."""

    velocity_new: np.ndarray
    velocity_old: np.ndarray
    dispersion_new: np.ndarray
    dispersion_old: np.ndarray
    peclet: np.ndarray
    tau: np.ndarray


@dataclass
class TransportSystem(LinearSystem):
    """Transport system together with its stabilisation data."""

    stabilization: Stabilization | None = None


class Transport(PhysicsModule):
    """SUPG-stabilised substrate transport.

    Args:
        space: Function space for concentration.
        scheme: Time discretisation.
        dispersivity_longitudinal: α_L (length).
        effective_diffusion: D_eff (length²/time).
    """

    name = "transport"
    primary_field = F.SUBSTRATE

    def __init__(
        self,
        space: Any,
        scheme: ThetaScheme,
        dispersivity_longitudinal: float = 0.1,
        effective_diffusion: float = 1e-5,
    ) -> None:
        super().__init__(space, scheme)
        self.dispersivity_longitudinal = dispersivity_longitudinal
        self.effective_diffusion = effective_diffusion

    # ------------------------------------------------------------------
    # Velocity and stabilisation
    # ------------------------------------------------------------------

    def velocities(self, fields: F.FieldSet) -> tuple[np.ndarray, np.ndarray]:
        """Cell Darcy velocities ``(q_new, q_old)``, shape ``(n_cells, dim)``.

        q = −K̄ ∇(h + z) with K̄ the cell average of nodal conductivity.
        K is kept outside the gradient, so a conductivity contrast alone
        drives no flow.
        Velocities below the floor are set to zero; where motion starts
        in this step the old velocity is taken equal to the new one.

        Raises:
            NumericalBreakdown: On non-finite velocities.
        """
        sp = self.space
        z = self.mesh.elevation
        result = []
        for level in ("new", "old"):
            k_mean = np.sum(
                sp.interpolate(getattr(fields[F.CONDUCTIVITY], level)) * sp.JxW, axis=1
            ) / sp.measures
            grad = sp.cell_gradient(getattr(fields[F.PRESSURE], level) + z)
            result.append(-k_mean[:, None] * grad)
        v_new, v_old = result

        bad = ~np.all(np.isfinite(v_new), axis=1) | ~np.all(np.isfinite(v_old), axis=1)
        if bad.any():
            cell = int(np.flatnonzero(bad)[0])
            raise NumericalBreakdown(
                "Non-finite Darcy velocity.",
                ErrorContext(
                    component=self.name,
                    operation="velocity",
                    details={
                        "cell": cell,
                        "velocity_new": v_new[cell].tolist(),
                        "velocity_old": v_old[cell].tolist(),
                    },
                ),
            )

        speed_new = np.linalg.norm(v_new, axis=1)
        speed_old = np.linalg.norm(v_old, axis=1)
        still = speed_new < VELOCITY_FLOOR
        v_new[still] = 0.0
        v_old[still] = 0.0
        starting = ~still & (speed_old < VELOCITY_FLOOR)
        v_old[starting] = v_new[starting]
        return v_new, v_old

    def stabilization(self, fields: F.FieldSet) -> Stabilization:
        """Velocities, dispersion, Péclet number and τ for every cell.

        Raises:
            NumericalBreakdown: On negative or non-finite Pe or τ.
        """
        v_new, v_old = self.velocities(fields)
        speed_new = np.linalg.norm(v_new, axis=1)
        speed_old = np.linalg.norm(v_old, axis=1)
        d_new = self.dispersivity_longitudinal * speed_new + self.effective_diffusion
        d_old = self.dispersivity_longitudinal * speed_old + self.effective_diffusion

        active = (
            (speed_new >= VELOCITY_FLOOR)
            & (d_new > DIFFUSION_FLOOR)
            & (d_old > DIFFUSION_FLOOR)
        )
        h = self.space.diameters
        speed = np.where(active, 0.5 * speed_new + 0.5 * speed_old, 1.0)
        dispersion = np.where(active, 0.5 * d_new + 0.5 * d_old, 1.0)
        peclet = np.where(active, 0.5 * h * speed / dispersion, 0.0)
        beta = langevin(peclet)
        tau = np.where(active, 0.5 * beta * h / speed, 0.0)

        bad = ~np.isfinite(peclet) | ~np.isfinite(tau) | (peclet < 0) | (beta < 0) | (tau < 0)
        if bad.any():
            cell = int(np.flatnonzero(bad)[0])
            raise NumericalBreakdown(
                "Invalid SUPG stabilisation parameter.",
                ErrorContext(
                    component=self.name,
                    operation="stabilization",
                    details={
                        "cell": cell,
                        "peclet": float(peclet[cell]),
                        "beta": float(beta[cell]),
                        "tau": float(tau[cell]),
                        "velocity": float(speed[cell]),
                        "dispersion": float(dispersion[cell]),
                    },
                ),
            )
        return Stabilization(v_new, v_old, d_new, d_old, peclet, tau)

    # ------------------------------------------------------------------
    # Assembly
    # ------------------------------------------------------------------

    def _test_functions(self, N: np.ndarray, tau: np.ndarray, advection: np.ndarray) -> np.ndarray:
        """SUPG test functions φ_i + τ q·∇φ_i at quadrature points."""
        return N + tau[:, None, None] * advection[:, None, :]

    def _level_matrices(
        self,
        velocity: np.ndarray,
        dispersion: np.ndarray,
        tau: np.ndarray,
        moisture: np.ndarray,
        rate: np.ndarray | None,
    ) -> tuple[sparse.csr_matrix, sparse.csr_matrix]:
        sp = self.space
        advection = np.einsum("cid,cd->ci", sp.gradients, velocity)
        W = self._test_functions(sp.N[None, :, :], tau, advection)
        theta_jxw = sp.interpolate(moisture) * sp.JxW

        mass = np.einsum("cqi,qj,cq->cij", W, sp.N, theta_jxw)
        diffusion = (dispersion * np.sum(theta_jxw, axis=1))[:, None, None] * np.einsum(
            "cid,cjd->cij", sp.gradients, sp.gradients
        )
        convection = np.einsum("cqi,cj,cq->cij", W, advection, sp.JxW)
        laplace = diffusion + convection
        if rate is not None:
            laplace = laplace + np.einsum(
                "cqi,qj,cq->cij", W, sp.N, sp.interpolate(rate) * sp.JxW
            )
        return sp.assemble_matrix(mass), sp.assemble_matrix(laplace)

    def _inflow_terms(
        self,
        bc: Inflow,
        stab: Stabilization,
        dt: float,
    ) -> tuple[sparse.csr_matrix, sparse.csr_matrix, np.ndarray]:
        """Inlet contributions: total flux q·n c_in through the boundary."""
        sp = self.space
        theta = self.scheme.theta
        facets = sp.facets_with_marker(bc.marker)
        owners = sp.facet_cells[facets]
        cells = sp.facet_cell_nodes(facets)
        normals = sp.facet_normals[facets]
        N = sp.facet_N[facets]
        jxw = sp.facet_JxW[facets]

        out = []
        for velocity in (stab.velocity_new, stab.velocity_old):
            v = velocity[owners]
            advection = np.einsum("fid,fd->fi", sp.gradients[owners], v)
            W = self._test_functions(N, stab.tau[owners], advection)
            vn = np.sum(v * normals, axis=1)
            local = -np.einsum("fqi,fqj,fq->fij", W, N, jxw) * vn[:, None, None]
            out.append((W, vn, sp.assemble_matrix(local, cells=cells)))
        (W_new, vn_new, laplace_new), (_, vn_old, laplace_old) = out

        weight = theta * vn_new + (1.0 - theta) * vn_old
        rhs_local = -dt * bc.concentration * weight[:, None] * np.einsum("fqi,fq->fi", W_new, jxw)
        return laplace_new, laplace_old, sp.assemble_vector(rhs_local, cells=cells)

    def assemble(
        self,
        fields: F.FieldSet,
        dt: float,
        boundary_conditions: BoundaryConditions,
        reaction_rates: tuple[np.ndarray, np.ndarray] | None = None,
    ) -> TransportSystem:
        """Assemble the transport system for the current Picard iterate.

        Args:
            fields: Field set with current flow solution and moisture.
            dt: Time-step size.
            boundary_conditions: Inflow or Dirichlet condition.
            reaction_rates: Optional ``(r_new, r_old)`` nodal consumption
                rates.

        Returns:
            :class:`TransportSystem` ready for Dirichlet elimination.
        """
        theta = self.scheme.theta
        stab = self.stabilization(fields)
        r_new, r_old = reaction_rates if reaction_rates is not None else (None, None)

        mass_new, laplace_new = self._level_matrices(
            stab.velocity_new, stab.dispersion_new, stab.tau,
            fields[F.MOISTURE_FREE].new, r_new,
        )
        mass_old, laplace_old = self._level_matrices(
            stab.velocity_old, stab.dispersion_old, stab.tau,
            fields[F.MOISTURE_FREE].old, r_old,
        )
        rhs = np.zeros(self.space.n_dofs)
        for bc in boundary_conditions.of_type(Inflow):
            inlet_new, inlet_old, inlet_rhs = self._inflow_terms(bc, stab, dt)
            laplace_new = laplace_new + inlet_new
            laplace_old = laplace_old + inlet_old
            rhs += inlet_rhs

        c_old = fields[F.SUBSTRATE].old
        rhs += mass_old @ c_old - (1.0 - theta) * dt * (laplace_old @ c_old)
        d_nodes, d_values = boundary_conditions.dirichlet_data(self.mesh)
        return TransportSystem(
            matrix=(mass_new + theta * dt * laplace_new).tocsr(),
            rhs=rhs,
            dirichlet_nodes=d_nodes,
            dirichlet_values=d_values,
            stabilization=stab,
        )

    # ------------------------------------------------------------------
    # Boundary fluxes and storage
    # ------------------------------------------------------------------

    def boundary_flux(self, fields: F.FieldSet, marker: int, stab: Stabilization | None = None) -> float:
        """θ-blended outward substrate flux (−θ_f D ∇c + q c)·n over a boundary."""
        sp = self.space
        facets = sp.facets_with_marker(marker)
        if facets.size == 0:
            return 0.0
        stab = stab or self.stabilization(fields)
        owners = sp.facet_cells[facets]
        normals = sp.facet_normals[facets]
        jxw = sp.facet_JxW[facets]
        flux = []
        for level, velocity, dispersion in (
            ("new", stab.velocity_new, stab.dispersion_new),
            ("old", stab.velocity_old, stab.dispersion_old),
        ):
            c = getattr(fields[F.SUBSTRATE], level)
            moisture = sp.facet_interpolate(getattr(fields[F.MOISTURE_FREE], level), facets)
            grad_n = np.sum(sp.cell_gradient(c)[owners] * normals, axis=1)
            vn = np.sum(velocity[owners] * normals, axis=1)
            c_q = sp.facet_interpolate(c, facets)
            integrand = -dispersion[owners, None] * moisture * grad_n[:, None] + c_q * vn[:, None]
            flux.append(np.sum(integrand * jxw))
        return float(self.scheme.blend(flux[0], flux[1]))

    def boundary_flows(self, fields: F.FieldSet) -> tuple[float, float]:
        """Outward substrate flux across the top and bottom boundaries."""
        stab = self.stabilization(fields)
        return (
            self.boundary_flux(fields, TOP_MARKER, stab),
            self.boundary_flux(fields, BOTTOM_MARKER, stab),
        )

    def substrate_mass(self, fields: F.FieldSet, level: str = "new") -> float:
        """Dissolved substrate in the domain, ∫ θ_f c."""
        return self.space.integrate(
            getattr(fields[F.SUBSTRATE], level),
            weight=getattr(fields[F.MOISTURE_FREE], level),
        )
