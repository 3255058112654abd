"""Boundary conditions on marked boundary facets.

Classes
-------
BoundaryCondition
    Abstract base for all BC types.
Dirichlet
    Fixed-value (essential) boundary condition.
Neumann
    Fixed normal flux of water.
Inflow
    Solute entering with the water at a fixed concentration.
BoundaryConditions
    Collection of boundary conditions applied to a problem.

Functions
---------
apply_dirichlet
    Row/column elimination of fixed values in an assembled system.
flow_conditions
    Conditions for Richards' equation in a given phase.
transport_conditions
    Conditions for the substrate transport equation.
"""

from __future__ import annotations

from abc import ABC
from typing import Iterator

import numpy as np
from scipy import sparse

from pybioclog.geometry.mesh import BOTTOM_MARKER, TOP_MARKER
from pybioclog.materials.kinetics import MG_PER_L_TO_MG_PER_CM3


class BoundaryCondition(ABC):
    """Abstract boundary condition.

    Every concrete BC stores the *field* it applies to (``"h"`` or
    ``"c"``) and the boundary *marker* on which it is active.
    """

    field: str
    marker: int

    def nodes(self, mesh) -> np.ndarray:
        """Nodes on the facets carrying this condition's marker."""
        return mesh.marker_nodes(self.marker)


class Dirichlet(BoundaryCondition):
    """Fixed-value (Dirichlet / essential) boundary condition.

    Args:
        field: Name of the solution field.
        value: Prescribed value.
        marker: Boundary marker.
    """

    def __init__(self, field: str = "h", value: float = 0.0, marker: int = BOTTOM_MARKER) -> None:
        self.field = field
        self.value = float(value)
        self.marker = marker

    def __repr__(self) -> str:
        return f"Dirichlet(field={self.field!r}, value={self.value!r}, marker={self.marker})"


class Neumann(BoundaryCondition):
    """Fixed normal flux (positive out of the domain).

    Args:
        field: Solution field name.
        flux: Normal flux value.
        marker: Boundary marker.
    """

    def __init__(self, field: str = "h", flux: float = 0.0, marker: int = TOP_MARKER) -> None:
        self.field = field
        self.flux = float(flux)
        self.marker = marker

    def __repr__(self) -> str:
        return f"Neumann(field={self.field!r}, flux={self.flux!r}, marker={self.marker})"


class Inflow(BoundaryCondition):
    """Advective inflow of solute at a fixed concentration.

    Args:
        field: Solution field name.
        concentration: Concentration of the entering water.
        marker: Boundary marker.
    """

    def __init__(self, field: str = "c", concentration: float = 0.0, marker: int = BOTTOM_MARKER) -> None:
        self.field = field
        self.concentration = float(concentration)
        self.marker = marker

    def __repr__(self) -> str:
        return (
            f"Inflow(field={self.field!r}, concentration={self.concentration!r}, "
            f"marker={self.marker})"
        )


class BoundaryConditions:
    """Ordered collection of boundary conditions."""

    def __init__(self, conditions: list[BoundaryCondition] | None = None) -> None:
        self._conditions: list[BoundaryCondition] = list(conditions or [])

    def add(self, bc: BoundaryCondition) -> None:
        self._conditions.append(bc)

    def __iter__(self) -> Iterator[BoundaryCondition]:
        return iter(self._conditions)

    def __len__(self) -> int:
        return len(self._conditions)

    def of_type(self, bc_type: type) -> list[BoundaryCondition]:
        """Return all BCs of a given type."""
        return [bc for bc in self._conditions if isinstance(bc, bc_type)]

    def dirichlet_data(self, mesh) -> tuple[np.ndarray, np.ndarray]:
        """Nodes and values of all Dirichlet conditions.

        Later conditions win where markers share a node.
        """
        values: dict[int, float] = {}
        for bc in self.of_type(Dirichlet):
            for node in bc.nodes(mesh):
                values[int(node)] = bc.value
        nodes = np.array(sorted(values), dtype=int)
        return nodes, np.array([values[n] for n in nodes], dtype=float)

    def __repr__(self) -> str:
        return f"BoundaryConditions({self._conditions!r})"


def apply_dirichlet(
    A: sparse.spmatrix,
    rhs: np.ndarray,
    d_nodes: np.ndarray,
    d_values: np.ndarray,
) -> tuple[sparse.csr_matrix, np.ndarray]:
    """Apply Dirichlet BCs via row/column elimination.

    Known values are moved to the right-hand side, their rows and
    columns zeroed and the diagonal set to one, which keeps a symmetric
    matrix symmetric.

    Returns:
        ``(A_bc, rhs_bc)``; the inputs are not modified.
    """
    A = sparse.csr_matrix(A)
    rhs = np.array(rhs, dtype=float)
    if len(d_nodes) == 0:
        return A, rhs
    fixed = np.zeros(A.shape[0])
    fixed[d_nodes] = d_values
    rhs -= A @ fixed
    rhs[d_nodes] = d_values
    keep = np.ones(A.shape[0])
    keep[d_nodes] = 0.0
    A_bc = sparse.diags(keep) @ A @ sparse.diags(keep) + sparse.diags(1.0 - keep)
    return A_bc.tocsr(), rhs


def flow_conditions(boundary, drying: bool) -> BoundaryConditions:
    """Boundary conditions of Richards' equation.

    The top is a flux boundary while drying or when not fixed; the flux
    is zero while drying.

    Args:
        boundary: A :class:`~pybioclog.core.config.BoundaryConfig`.
        drying: Whether the drying phase is active.
    """
    bcs = BoundaryConditions()
    if boundary.richards_fixed_at_bottom:
        bcs.add(Dirichlet("h", boundary.richards_bottom_fixed_value, BOTTOM_MARKER))
    if boundary.richards_fixed_at_top and not drying:
        bcs.add(Dirichlet("h", boundary.richards_top_fixed_value, TOP_MARKER))
    else:
        flux = 0.0 if drying else boundary.richards_top_flow_value
        bcs.add(Neumann("h", flux, TOP_MARKER))
    return bcs


def transport_conditions(boundary) -> BoundaryConditions:
    """Boundary conditions of the substrate transport equation.

    Args:
        boundary: A :class:`~pybioclog.core.config.BoundaryConfig`.
    """
    marker = TOP_MARKER if boundary.transport_entry_point.value == "top" else BOTTOM_MARKER
    concentration = boundary.transport_entry_value * MG_PER_L_TO_MG_PER_CM3
    if boundary.transport_fixed_concentration:
        return BoundaryConditions([Dirichlet("c", concentration, marker)])
    return BoundaryConditions([Inflow("c", concentration, marker)])
