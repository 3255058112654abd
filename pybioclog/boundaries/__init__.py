"""Boundary conditions."""

from pybioclog.boundaries.base import (
    BoundaryConditions,
    Dirichlet,
    Inflow,
    Neumann,
    apply_dirichlet,
    flow_conditions,
    transport_conditions,
)

__all__ = [
    "BoundaryConditions",
    "Dirichlet",
    "Inflow",
    "Neumann",
    "apply_dirichlet",
    "flow_conditions",
    "transport_conditions",
]
