"""Abstract base class for physics modules.

The flow (Richards) and substrate transport modules inherit from
:class:`PhysicsModule` and assemble a :class:`LinearSystem` for one
Picard iteration of a θ-scheme time step.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any

import numpy as np
from scipy import sparse

from pybioclog.boundaries.base import apply_dirichlet
from pybioclog.time.schemes import ThetaScheme


@dataclass
class LinearSystem:
    """Assembled system ``A x = rhs`` before Dirichlet elimination.

    Attributes:
        matrix: System matrix.
        rhs: Right-hand side.
        dirichlet_nodes: Nodes with prescribed values.
        dirichlet_values: Prescribed values.
    """

    matrix: sparse.csr_matrix
    rhs: np.ndarray
    dirichlet_nodes: np.ndarray = field(default_factory=lambda: np.zeros(0, dtype=int))
    dirichlet_values: np.ndarray = field(default_factory=lambda: np.zeros(0))

    def constrained(self) -> tuple[sparse.csr_matrix, np.ndarray]:
        """Matrix and right-hand side with Dirichlet values eliminated."""
        return apply_dirichlet(
            self.matrix, self.rhs, self.dirichlet_nodes, self.dirichlet_values
        )


class PhysicsModule(ABC):
    """Abstract physics module.

    A physics module encapsulates the governing PDE and its
    discretisation on a :class:`~pybioclog.fem.space.FunctionSpace`.

    Attributes:
        name: Short identifier (``"richards"``, ``"transport"``).
        space: The function space.
        mesh: The computational mesh.
        scheme: Time discretisation.
        primary_field: Name of the unknown field.
        dim: Spatial dimension (inherited from mesh).
    """

    name: str
    primary_field: str

    def __init__(self, space: Any, scheme: ThetaScheme) -> None:
        self.space = space
        self.mesh = space.mesh
        self.scheme = scheme
        self.dim = self.mesh.dim

    @abstractmethod
    def assemble(
        self,
        fields: Any,
        dt: float,
        boundary_conditions: Any,
    ) -> LinearSystem:
        """Assemble the linearised system for the current iterate.

        Args:
            fields: :class:`~pybioclog.simulation.fields.FieldSet` with
                old and current values.
            dt: Time-step size.
            boundary_conditions: Conditions for this equation.

        Returns:
            The assembled system.
        """

    @abstractmethod
    def boundary_flows(self, fields: Any) -> tuple[float, float]:
        """Outward flux across the top and bottom boundaries."""

    def validate(self) -> list[str]:
        """Run basic consistency checks.

        Returns:
            List of warning/error strings (empty if all OK).
        """
        issues: list[str] = []
        if self.mesh.n_cells == 0:
            issues.append("Mesh has no cells.")
        if not np.any(self.mesh.facet_markers > 0):
            issues.append("Mesh has no marked boundary facets.")
        return issues

    def rebind(self, space: Any) -> None:
        """Switch to a new function space after mesh adaptation."""
        self.space = space
        self.mesh = space.mesh

    def __repr__(self) -> str:
        return (
            f"{type(self).__name__}(primary_field={self.primary_field!r}, "
            f"dim={self.dim}, theta={self.scheme.theta})"
        )
