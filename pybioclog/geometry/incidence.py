"""Shared-vertex bookkeeping.

Nodal quantities are evaluated per cell and per local vertex; a vertex
shared by several cells receives one contribution from each of them.
:class:`VertexIncidence` holds the number of cells incident to every
vertex so those contributions are averaged instead of summed.
"""

from __future__ import annotations

import numpy as np

from pybioclog.core.exceptions import ConfigError


class VertexIncidence:
    """Incidence count of every mesh vertex, keyed by node index.

    Built once per mesh topology; rebuild it after refinement.

    Args:
        cells: Cell connectivity, shape ``(n_cells, nodes_per_cell)``.
        n_nodes: Number of mesh nodes.

    Raises:
        ConfigError: If a node is not attached to any cell.
    """

    def __init__(self, cells: np.ndarray, n_nodes: int) -> None:
        self.cells = np.asarray(cells, dtype=int)
        self.n_nodes = n_nodes
        self.counts = np.bincount(self.cells.ravel(), minlength=n_nodes)
        orphans = np.flatnonzero(self.counts == 0)
        if orphans.size:
            raise ConfigError(
                f"{orphans.size} mesh node(s) belong to no cell, first is {orphans[0]}."
            )
        # 1 / multiplicity of each (cell, local vertex) slot
        self.weights = 1.0 / self.counts[self.cells]

    @classmethod
    def from_mesh(cls, mesh) -> "VertexIncidence":
        return cls(mesh.cells, mesh.n_nodes)

    def matches(self, mesh) -> bool:
        """Whether this incidence was built for the topology of *mesh*."""
        return self.n_nodes == mesh.n_nodes and np.array_equal(self.cells, mesh.cells)

    def average(self, cell_values: np.ndarray) -> np.ndarray:
        """Average per-cell vertex values onto nodes.

        Args:
            cell_values: Values at each cell's vertices, shape
                ``(n_cells, nodes_per_cell)``.

        Returns:
            Nodal array, shape ``(n_nodes,)``.
        """
        cell_values = np.asarray(cell_values, dtype=float)
        if cell_values.shape != self.cells.shape:
            raise ValueError(
                f"cell_values has shape {cell_values.shape}, "
                f"expected {self.cells.shape}."
            )
        return np.bincount(
            self.cells.ravel(),
            weights=(cell_values * self.weights).ravel(),
            minlength=self.n_nodes,
        )

    def __repr__(self) -> str:
        return (
            f"VertexIncidence(n_nodes={self.n_nodes}, "
            f"max_multiplicity={int(self.counts.max())})"
        )
