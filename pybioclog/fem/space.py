"""Continuous P1 function space.

Precomputes, for every cell, the shape values at the quadrature points,
the (constant) shape gradients, ``JxW`` and the cell diameter, plus the
same data on boundary facets.  Assembly routines work on stacks of
local matrices and scatter them into a ``scipy.sparse`` matrix.
"""

from __future__ import annotations

import numpy as np
from scipy import sparse

from pybioclog.fem.quadrature import edge_rule, gauss, shape_values, trapezoidal


class FunctionSpace:
    """P1 Lagrange space on a :class:`~pybioclog.geometry.mesh.Mesh`.

    Degrees of freedom are the mesh nodes.

    Args:
        mesh: The mesh.
        lumped: Use the vertex (trapezoidal) cell rule instead of Gauss.
        facet_points: Points per boundary edge in 2-D (1 or 2).

    Attributes:
        N: Shape values at cell quadrature points, ``(n_q, n_loc)``.
        JxW: Quadrature weights times cell measure, ``(n_cells, n_q)``.
        gradients: Shape gradients, ``(n_cells, n_loc, dim)``.
        diameters: Cell diameters, ``(n_cells,)``.
        facet_N: Shape values of the owning cell at facet points,
            ``(n_facets, n_qf, n_loc)``.
        facet_JxW: Facet quadrature weights, ``(n_facets, n_qf)``.
        facet_normals: Outward unit normals, ``(n_facets, dim)``.
    """

    def __init__(self, mesh, lumped: bool = False, facet_points: int = 2) -> None:
        self.mesh = mesh
        self.lumped = lumped
        rule = trapezoidal(mesh.dim) if lumped else gauss(mesh.dim)
        self.N = shape_values(rule)
        self._cell_geometry()
        self.JxW = self.measures[:, None] * rule.weights[None, :]
        self._facet_geometry(facet_points)

    @property
    def n_dofs(self) -> int:
        return self.mesh.n_nodes

    @property
    def n_quadrature_points(self) -> int:
        return self.N.shape[0]

    # ------------------------------------------------------------------
    # Geometry
    # ------------------------------------------------------------------

    def _cell_geometry(self) -> None:
        mesh = self.mesh
        xyz = mesh.nodes[mesh.cells]  # (n_cells, n_loc, dim)
        if mesh.dim == 1:
            jac = xyz[:, 1, 0] - xyz[:, 0, 0]
            self.measures = np.abs(jac)
            self.gradients = np.stack([-1.0 / jac, 1.0 / jac], axis=1)[:, :, None]
            self.diameters = self.measures.copy()
            return

        x, y = xyz[:, :, 0], xyz[:, :, 1]
        two_area = (x[:, 1] - x[:, 0]) * (y[:, 2] - y[:, 0]) - (x[:, 2] - x[:, 0]) * (y[:, 1] - y[:, 0])
        b = np.stack([y[:, 1] - y[:, 2], y[:, 2] - y[:, 0], y[:, 0] - y[:, 1]], axis=1)
        c = np.stack([x[:, 2] - x[:, 1], x[:, 0] - x[:, 2], x[:, 1] - x[:, 0]], axis=1)
        self.measures = 0.5 * np.abs(two_area)
        self.gradients = np.stack([b, c], axis=2) / two_area[:, None, None]
        edges = xyz[:, [1, 2, 0], :] - xyz
        self.diameters = np.linalg.norm(edges, axis=2).max(axis=1)

    def _facet_geometry(self, facet_points: int) -> None:
        mesh = self.mesh
        n_loc = mesh.dim + 1
        self.facet_cells = mesh.facet_cells
        self.facet_markers = mesh.facet_markers

        if mesh.dim == 1:
            self.facet_N = np.zeros((mesh.n_facets, 1, n_loc))
            self.facet_JxW = np.ones((mesh.n_facets, 1))
            self.facet_normals = np.zeros((mesh.n_facets, 1))
            for f, (node,) in enumerate(mesh.facets):
                cell = mesh.cells[mesh.facet_cells[f]]
                a = int(np.flatnonzero(cell == node)[0])
                other = cell[1 - a]
                self.facet_N[f, 0, a] = 1.0
                self.facet_normals[f, 0] = np.sign(mesh.nodes[node, 0] - mesh.nodes[other, 0])
            return

        rule = edge_rule(facet_points)
        t = rule.points[:, 0]
        self.facet_N = np.zeros((mesh.n_facets, rule.n_points, n_loc))
        self.facet_JxW = np.zeros((mesh.n_facets, rule.n_points))
        self.facet_normals = np.zeros((mesh.n_facets, 2))
        for f, (p, q) in enumerate(mesh.facets):
            cell = mesh.cells[mesh.facet_cells[f]]
            a = int(np.flatnonzero(cell == p)[0])
            b = int(np.flatnonzero(cell == q)[0])
            r = cell[3 - a - b]
            edge = mesh.nodes[q] - mesh.nodes[p]
            length = np.linalg.norm(edge)
            normal = np.array([edge[1], -edge[0]]) / length
            if np.dot(normal, mesh.nodes[r] - mesh.nodes[p]) > 0.0:
                normal = -normal
            self.facet_N[f, :, a] = 1.0 - t
            self.facet_N[f, :, b] = t
            self.facet_JxW[f] = length * rule.weights
            self.facet_normals[f] = normal

    # ------------------------------------------------------------------
    # Evaluation
    # ------------------------------------------------------------------

    def cell_values(self, nodal: np.ndarray) -> np.ndarray:
        """Nodal values gathered per cell, ``(n_cells, n_loc)``."""
        return np.asarray(nodal, dtype=float)[self.mesh.cells]

    def interpolate(self, nodal: np.ndarray) -> np.ndarray:
        """Values at cell quadrature points, ``(n_cells, n_q)``."""
        return self.cell_values(nodal) @ self.N.T

    def cell_gradient(self, nodal: np.ndarray) -> np.ndarray:
        """Constant gradient per cell, ``(n_cells, dim)``."""
        return np.einsum("ci,cid->cd", self.cell_values(nodal), self.gradients)

    def facet_interpolate(self, nodal: np.ndarray, facets: np.ndarray) -> np.ndarray:
        """Values at facet quadrature points, ``(len(facets), n_qf)``."""
        cells = self.mesh.cells[self.facet_cells[facets]]
        vals = np.asarray(nodal, dtype=float)[cells]
        return np.einsum("fqi,fi->fq", self.facet_N[facets], vals)

    def integrate(self, nodal: np.ndarray, weight: np.ndarray | None = None) -> float:
        """Integral over the domain of the P1 field, optionally times *weight*."""
        values = self.interpolate(nodal)
        if weight is not None:
            values = values * self.interpolate(weight)
        return float(np.sum(values * self.JxW))

    def facets_with_marker(self, marker: int) -> np.ndarray:
        return np.flatnonzero(self.facet_markers == marker)

    # ------------------------------------------------------------------
    # Assembly
    # ------------------------------------------------------------------

    def assemble_matrix(
        self,
        local: np.ndarray,
        cells: np.ndarray | None = None,
    ) -> sparse.csr_matrix:
        """Scatter local matrices ``(n, n_loc, n_loc)`` into a global matrix.

        Args:
            local: Stack of local matrices.
            cells: Connectivity rows matching *local*; defaults to all
                mesh cells.
        """
        cells = self.mesh.cells if cells is None else cells
        n_loc = cells.shape[1]
        rows = np.repeat(cells[:, :, None], n_loc, axis=2)
        cols = np.repeat(cells[:, None, :], n_loc, axis=1)
        n = self.n_dofs
        return sparse.coo_matrix(
            (local.ravel(), (rows.ravel(), cols.ravel())), shape=(n, n)
        ).tocsr()

    def assemble_vector(
        self,
        local: np.ndarray,
        cells: np.ndarray | None = None,
    ) -> np.ndarray:
        """Scatter local vectors ``(n, n_loc)`` into a global vector."""
        cells = self.mesh.cells if cells is None else cells
        return np.bincount(cells.ravel(), weights=local.ravel(), minlength=self.n_dofs)

    def facet_cell_nodes(self, facets: np.ndarray) -> np.ndarray:
        """Connectivity of the cells owning *facets*."""
        return self.mesh.cells[self.facet_cells[facets]]

    def __repr__(self) -> str:
        return (
            f"FunctionSpace(n_dofs={self.n_dofs}, "
            f"n_q={self.n_quadrature_points}, lumped={self.lumped})"
        )
