"""Adaptive refinement of 1-D columns.

Cells are flagged from a gradient-jump error indicator by fixed
fractions of the total indicator, then bisected (refine) or merged with
their sibling (coarsen).  Nodal fields are carried to the new mesh by
linear interpolation.

Classes
-------
MeshAdapter
    Indicator, flagging, mesh rebuild and field transfer.
"""

from __future__ import annotations

import logging
from typing import Any

import numpy as np

from pybioclog.core.exceptions import ConfigError
from pybioclog.geometry.mesh import Mesh

logger = logging.getLogger(__name__)


def gradient_jump_indicator(z: np.ndarray, values: np.ndarray) -> np.ndarray:
    """Kelly-type indicator on a sorted 1-D partition.

    Args:
        z: Sorted breakpoints, shape ``(n_cells + 1,)``.
        values: Nodal values at *z*.

    Returns:
        Indicator per cell, ``sqrt(h/24 · Σ jump²)`` over interior ends.
    """
    h = np.diff(z)
    grad = np.diff(values) / h
    jumps = np.diff(grad) ** 2
    total = np.zeros_like(h)
    total[:-1] += jumps
    total[1:] += jumps
    return np.sqrt(h / 24.0 * total)


class MeshAdapter:
    """Refines and coarsens a 1-D mesh between level bounds.

    Args:
        refine_fraction: Share of the total indicator to refine.
        coarsen_fraction: Share of the total indicator to coarsen.
        min_level: Cells never coarsen below this level.
        max_level: Cells never refine beyond this level.
        max_cells: Upper bound on the cell count after refinement.
    """

    def __init__(
        self,
        refine_fraction: float = 0.49,
        coarsen_fraction: float = 0.50,
        min_level: int = 2,
        max_level: int = 12,
        max_cells: int = 20000,
    ) -> None:
        self.refine_fraction = refine_fraction
        self.coarsen_fraction = coarsen_fraction
        self.min_level = min_level
        self.max_level = max_level
        self.max_cells = max_cells

    @classmethod
    def from_config(cls, geometry: Any) -> "MeshAdapter":
        return cls(
            refine_fraction=geometry.refine_fraction,
            coarsen_fraction=geometry.coarsen_fraction,
            min_level=geometry.min_refinement_level,
            max_level=geometry.max_refinement_level,
            max_cells=geometry.max_cells,
        )

    # ------------------------------------------------------------------
    # Flagging
    # ------------------------------------------------------------------

    def flag(self, indicator: np.ndarray, levels: np.ndarray) -> tuple[np.ndarray, np.ndarray]:
        """Boolean refine and coarsen flags per cell.

        The largest indicators whose sum reaches ``refine_fraction`` of
        the total are refined; the smallest whose sum stays within
        ``coarsen_fraction`` are coarsened.
        """
        n = len(indicator)
        refine = np.zeros(n, dtype=bool)
        coarsen = np.zeros(n, dtype=bool)
        total = float(np.sum(indicator))
        if total <= 0.0:
            return refine, coarsen

        descending = np.argsort(indicator)[::-1]
        cumulative = np.cumsum(indicator[descending])
        n_refine = int(np.searchsorted(cumulative, self.refine_fraction * total)) + 1
        refine[descending[: min(n_refine, n)]] = True

        ascending = descending[::-1]
        cumulative = np.cumsum(indicator[ascending])
        n_coarsen = int(np.searchsorted(cumulative, self.coarsen_fraction * total, side="right"))
        coarsen[ascending[:n_coarsen]] = True
        coarsen &= ~refine

        refine &= levels < self.max_level
        coarsen &= levels > self.min_level

        room = self.max_cells - n
        if refine.sum() > room:
            candidates = [c for c in descending if refine[c]]
            refine[:] = False
            refine[candidates[: max(room, 0)]] = True
        return refine, coarsen

    # ------------------------------------------------------------------
    # Mesh rebuild
    # ------------------------------------------------------------------

    @staticmethod
    def _partition(mesh: Mesh) -> tuple[np.ndarray, np.ndarray, np.ndarray]:
        """Sorted breakpoints, and cell levels and tags in the same order."""
        z = np.sort(mesh.nodes[:, 0])
        order = np.argsort(mesh.cell_centers()[:, 0])
        return z, mesh.cell_levels[order], mesh.cell_tags[order]

    @staticmethod
    def _siblings(z: np.ndarray, levels: np.ndarray, i: int) -> bool:
        """Whether cells *i* and *i + 1* were created by one bisection."""
        level = levels[i]
        if level < 1 or levels[i + 1] != level:
            return False
        length = z[-1] - z[0]
        width = length / 2 ** level
        if not np.isclose(z[i + 1] - z[i], width) or not np.isclose(z[i + 2] - z[i + 1], width):
            return False
        return int(round((z[i] - z[0]) / width)) % 2 == 0

    def adapt(self, mesh: Mesh, values: np.ndarray) -> Mesh | None:
        """Adapt *mesh* to the nodal field *values*.

        Returns:
            The new mesh, or ``None`` if no cell changes.

        Raises:
            ConfigError: If *mesh* is not one-dimensional.
        """
        if mesh.dim != 1:
            raise ConfigError("Adaptive refinement is only available for 1-D columns.")
        z, levels, tags = self._partition(mesh)
        order = np.argsort(mesh.nodes[:, 0])
        indicator = gradient_jump_indicator(z, np.asarray(values, dtype=float)[order])
        refine, coarsen = self.flag(indicator, levels)

        breakpoints = [z[0]]
        new_levels: list[int] = []
        new_tags: list[int] = []
        n_refined = n_merged = 0
        i = 0
        n = len(levels)
        while i < n:
            if refine[i]:
                breakpoints += [0.5 * (z[i] + z[i + 1]), z[i + 1]]
                new_levels += [levels[i] + 1] * 2
                new_tags += [tags[i]] * 2
                n_refined += 1
                i += 1
            elif i + 1 < n and coarsen[i] and coarsen[i + 1] and self._siblings(z, levels, i):
                breakpoints.append(z[i + 2])
                new_levels.append(levels[i] - 1)
                new_tags.append(tags[i])
                n_merged += 1
                i += 2
            else:
                breakpoints.append(z[i + 1])
                new_levels.append(levels[i])
                new_tags.append(tags[i])
                i += 1

        if n_refined == 0 and n_merged == 0:
            return None
        n_new = len(new_levels)
        logger.debug(
            "Mesh adapted: %d cells refined, %d pairs merged, %d -> %d cells",
            n_refined,
            n_merged,
            n,
            n_new,
        )
        return Mesh(
            nodes=np.asarray(breakpoints)[:, None],
            cells=np.column_stack([np.arange(n_new), np.arange(1, n_new + 1)]),
            cell_tags=np.asarray(new_tags),
            cell_levels=np.asarray(new_levels),
        )

    @staticmethod
    def transfer(old_mesh: Mesh, new_mesh: Mesh, fields: Any) -> None:
        """Interpolate every pair of *fields* from *old_mesh* onto *new_mesh*."""
        order = np.argsort(old_mesh.nodes[:, 0])
        z_old = old_mesh.nodes[order, 0]
        z_new = new_mesh.nodes[:, 0]
        fields.transfer(lambda values: np.interp(z_new, z_old, values[order]), new_mesh.n_nodes)

    def __repr__(self) -> str:
        return (
            f"MeshAdapter(refine_fraction={self.refine_fraction}, "
            f"coarsen_fraction={self.coarsen_fraction}, "
            f"levels=[{self.min_level}, {self.max_level}])"
        )
