"""Quadrature rules on the reference P1 cells.

Weights are normalised to sum to one, so ``JxW = |cell| * weight``.

Functions
---------
gauss
    Gauss rule exact for the consistent P1 mass matrix.
trapezoidal
    Vertex rule; yields a diagonal (lumped) mass matrix.
edge_rule
    Gauss rule on a triangle edge parameterised by ``t ∈ [0, 1]``.
shape_values
    P1 shape functions at reference points.
"""

from __future__ import annotations

from dataclasses import dataclass

import numpy as np


@dataclass(frozen=True)
class QuadratureRule:
    """Reference points ``(n_points, dim)`` and normalised weights."""

    points: np.ndarray
    weights: np.ndarray

    @property
    def n_points(self) -> int:
        return len(self.weights)


def gauss(dim: int) -> QuadratureRule:
    """Two-point rule on segments, three-point rule on triangles."""
    if dim == 1:
        g = 0.5 / np.sqrt(3.0)
        return QuadratureRule(np.array([[0.5 - g], [0.5 + g]]), np.array([0.5, 0.5]))
    if dim == 2:
        pts = np.array([[1 / 6, 1 / 6], [2 / 3, 1 / 6], [1 / 6, 2 / 3]])
        return QuadratureRule(pts, np.full(3, 1 / 3))
    raise NotImplementedError(f"No Gauss rule for dim={dim}.")


def trapezoidal(dim: int) -> QuadratureRule:
    """Rule with the cell vertices as points."""
    if dim == 1:
        return QuadratureRule(np.array([[0.0], [1.0]]), np.array([0.5, 0.5]))
    if dim == 2:
        pts = np.array([[0.0, 0.0], [1.0, 0.0], [0.0, 1.0]])
        return QuadratureRule(pts, np.full(3, 1 / 3))
    raise NotImplementedError(f"No trapezoidal rule for dim={dim}.")


def edge_rule(n_points: int) -> QuadratureRule:
    """Midpoint (1) or two-point Gauss (2) rule on ``[0, 1]``."""
    if n_points == 1:
        return QuadratureRule(np.array([[0.5]]), np.array([1.0]))
    if n_points == 2:
        g = 0.5 / np.sqrt(3.0)
        return QuadratureRule(np.array([[0.5 - g], [0.5 + g]]), np.array([0.5, 0.5]))
    raise NotImplementedError(f"No {n_points}-point edge rule.")


def shape_values(rule: QuadratureRule) -> np.ndarray:
    """P1 shape functions at the rule points, shape ``(n_points, dim + 1)``."""
    pts = rule.points
    return np.column_stack([1.0 - pts.sum(axis=1), pts])
