"""Mesh generation and import.

Classes
-------
Mesh
    Container for nodes, P1 cells, cell tags and marked boundary facets,
    with factories for the analytic column and square domains.

Functions
---------
import_mesh
    Read a mesh file through *meshio*.
"""

from __future__ import annotations

from typing import Any

import numpy as np

from pybioclog.core.exceptions import ConfigError

TOP_MARKER = 1
BOTTOM_MARKER = 2
MARKER_TOLERANCE = 1e-4


class Mesh:
    """Conforming P1 mesh in one (segments) or two (triangles) dimensions.

    The last coordinate is the elevation ``z``; the top of the domain is
    its maximum.

    Attributes:
        nodes: Node coordinates, shape ``(n_nodes, dim)``.
        cells: Cell connectivity, shape ``(n_cells, dim + 1)``.
        cell_tags: Integer tag per cell.
        cell_levels: Refinement level per cell.
        facets: Boundary facet connectivity, shape ``(n_facets, dim)``.
        facet_cells: Owning cell of each boundary facet.
        facet_markers: Integer boundary marker per facet (1 top,
            2 bottom, 0 elsewhere unless imported).
    """

    def __init__(
        self,
        nodes: np.ndarray,
        cells: np.ndarray,
        cell_tags: np.ndarray | None = None,
        cell_levels: np.ndarray | None = None,
        facet_markers: dict[tuple[int, ...], int] | None = None,
    ) -> None:
        nodes = np.asarray(nodes, dtype=float)
        if nodes.ndim == 1:
            nodes = nodes[:, None]
        self.nodes = nodes
        self.cells = np.asarray(cells, dtype=int)
        self.dim = self.nodes.shape[1]
        if self.dim not in (1, 2) or self.cells.shape[1] != self.dim + 1:
            raise ConfigError(
                f"Unsupported mesh: {self.cells.shape[1]}-node cells in {self.dim}-D; "
                "expected line segments in 1-D or triangles in 2-D."
            )
        self.cell_tags = (
            np.asarray(cell_tags, dtype=int)
            if cell_tags is not None
            else np.zeros(len(self.cells), dtype=int)
        )
        self.cell_levels = (
            np.asarray(cell_levels, dtype=int)
            if cell_levels is not None
            else np.zeros(len(self.cells), dtype=int)
        )
        self.facets, self.facet_cells = self._find_boundary_facets()
        self.facet_markers = self._assign_markers(facet_markers)

    # ------------------------------------------------------------------
    # Properties
    # ------------------------------------------------------------------

    @property
    def n_nodes(self) -> int:
        """Number of nodes."""
        return len(self.nodes)

    @property
    def n_cells(self) -> int:
        """Number of cells."""
        return len(self.cells)

    @property
    def n_facets(self) -> int:
        """Number of boundary facets."""
        return len(self.facets)

    @property
    def elevation(self) -> np.ndarray:
        """Vertical coordinate of every node."""
        return self.nodes[:, -1]

    # ------------------------------------------------------------------
    # Derived quantities
    # ------------------------------------------------------------------

    def cell_centers(self) -> np.ndarray:
        """Compute centroids of all cells, shape ``(n_cells, dim)``."""
        return self.nodes[self.cells].mean(axis=1)

    def marker_nodes(self, marker: int) -> np.ndarray:
        """Sorted indices of nodes on facets carrying *marker*."""
        return np.unique(self.facets[self.facet_markers == marker])

    def boundary_nodes(self) -> np.ndarray:
        """Sorted indices of all boundary nodes."""
        return np.unique(self.facets)

    def _find_boundary_facets(self) -> tuple[np.ndarray, np.ndarray]:
        if self.dim == 1:
            counts = np.bincount(self.cells.ravel(), minlength=self.n_nodes)
            ends = np.flatnonzero(counts == 1)
            owners = np.array(
                [np.flatnonzero((self.cells == node).any(axis=1))[0] for node in ends],
                dtype=int,
            )
            return ends[:, None], owners

        # A triangle edge that appears only once is on the boundary
        edges: dict[tuple[int, int], list[int]] = {}
        for ic, tri in enumerate(self.cells):
            for i in range(3):
                e = tuple(sorted((int(tri[i]), int(tri[(i + 1) % 3]))))
                edges.setdefault(e, []).append(ic)
        facets = [e for e, owners in edges.items() if len(owners) == 1]
        owners = [edges[e][0] for e in facets]
        return (
            np.array(facets, dtype=int).reshape(-1, 2),
            np.array(owners, dtype=int),
        )

    def _assign_markers(
        self,
        facet_markers: dict[tuple[int, ...], int] | None,
    ) -> np.ndarray:
        if facet_markers:
            return np.array(
                [facet_markers.get(tuple(sorted(f)), 0) for f in self.facets.tolist()],
                dtype=int,
            )
        z = self.elevation
        z_facets = z[self.facets]
        markers = np.zeros(self.n_facets, dtype=int)
        markers[np.all(np.abs(z_facets - z.max()) < MARKER_TOLERANCE, axis=1)] = TOP_MARKER
        markers[np.all(np.abs(z_facets - z.min()) < MARKER_TOLERANCE, axis=1)] = BOTTOM_MARKER
        return markers

    # ------------------------------------------------------------------
    # Factory methods
    # ------------------------------------------------------------------

    @classmethod
    def interval(cls, domain_size: float, refinement_level: int) -> "Mesh":
        """Uniform column on ``[-domain_size, 0]`` with ``2**level`` cells."""
        n_cells = 2 ** refinement_level
        z = np.linspace(-domain_size, 0.0, n_cells + 1)
        cells = np.column_stack([np.arange(n_cells), np.arange(1, n_cells + 1)])
        return cls(
            nodes=z[:, None],
            cells=cells,
            cell_levels=np.full(n_cells, refinement_level),
        )

    @classmethod
    def rectangle(cls, domain_size: float, refinement_level: int) -> "Mesh":
        """Square ``[0, L] × [-L, 0]`` split into ``2·4**level`` triangles."""
        n = 2 ** refinement_level
        x = np.linspace(0.0, domain_size, n + 1)
        y = np.linspace(-domain_size, 0.0, n + 1)
        xx, yy = np.meshgrid(x, y)
        nodes = np.column_stack([xx.ravel(), yy.ravel()])

        cells = []
        for j in range(n):
            for i in range(n):
                n0 = j * (n + 1) + i
                n1 = n0 + 1
                n2 = n0 + n + 1
                n3 = n2 + 1
                cells.append([n0, n1, n2])
                cells.append([n1, n3, n2])
        cells = np.array(cells, dtype=int)
        return cls(
            nodes=nodes,
            cells=cells,
            cell_levels=np.full(len(cells), refinement_level),
        )

    @classmethod
    def from_config(cls, geometry: Any) -> "Mesh":
        """Build the mesh described by a
        :class:`~pybioclog.core.config.GeometryConfig`."""
        if geometry.mesh_filename:
            mesh = import_mesh(geometry.mesh_filename)
            if mesh.dim != geometry.dim:
                raise ConfigError(
                    f"Mesh file {geometry.mesh_filename!r} is {mesh.dim}-D "
                    f"but dim={geometry.dim} was requested."
                )
            return mesh
        if geometry.dim == 1:
            return cls.interval(geometry.domain_size, geometry.refinement_level)
        return cls.rectangle(geometry.domain_size, geometry.refinement_level)

    # ------------------------------------------------------------------
    # repr
    # ------------------------------------------------------------------

    def __repr__(self) -> str:
        return (
            f"Mesh(n_nodes={self.n_nodes}, n_cells={self.n_cells}, "
            f"dim={self.dim}, n_facets={self.n_facets})"
        )


_CELL_TYPES = {"triangle": 2, "line": 1}
_FACET_TYPES = {2: "line", 1: "vertex"}


def import_mesh(filename: str) -> Mesh:
    """Import a mesh from an external file using *meshio*.

    The highest-dimensional block of line or triangle cells becomes the
    mesh.  Boundary markers are read from ``gmsh:physical`` data on the
    facet blocks; without them, markers are assigned geometrically.

    Args:
        filename: Path to the mesh file (``.msh``, ``.vtu``, ...).

    Returns:
        Mesh instance.

    Raises:
        ImportError: If *meshio* is not installed.
        ConfigError: If the file holds no line or triangle cells.
    """
    try:
        import meshio
    except ImportError as exc:
        raise ImportError(
            "meshio is required for mesh import.  "
            "Install it with: pip install meshio"
        ) from exc

    m = meshio.read(filename)
    blocks = [b for b in m.cells if b.type in _CELL_TYPES]
    if not blocks:
        raise ConfigError(f"No line or triangle cells found in {filename!r}.")
    dim = max(_CELL_TYPES[b.type] for b in blocks)
    cell_type = "triangle" if dim == 2 else "line"
    physical = m.cell_data.get("gmsh:physical")

    cells_list = []
    tags_list = []
    facet_markers: dict[tuple[int, ...], int] = {}
    for ib, block in enumerate(m.cells):
        tags = np.asarray(physical[ib], dtype=int) if physical is not None else None
        if block.type == cell_type:
            cells_list.append(block.data)
            tags_list.append(tags if tags is not None else np.zeros(len(block.data), dtype=int))
        elif block.type == _FACET_TYPES[dim] and tags is not None:
            for facet, tag in zip(block.data.tolist(), tags.tolist()):
                facet_markers[tuple(sorted(facet))] = tag

    cells = np.vstack(cells_list)
    used = np.unique(cells)
    # Drop points not referenced by any cell (e.g. gmsh geometry points)
    renumber = np.full(len(m.points), -1, dtype=int)
    renumber[used] = np.arange(len(used))
    nodes = m.points[used, 0:1] if dim == 1 else m.points[used, :2]
    facet_markers = {
        tuple(sorted(int(renumber[i]) for i in facet)): tag
        for facet, tag in facet_markers.items()
        if all(renumber[i] >= 0 for i in facet)
    }
    return Mesh(
        nodes=nodes,
        cells=renumber[cells],
        cell_tags=np.concatenate(tags_list),
        facet_markers=facet_markers,
    )
