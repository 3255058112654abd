"""Plotting utilities.

Functions
---------
plot_profile
    Plot a nodal field along a 1-D column.
plot_field
    Plot a scalar field on a triangular mesh.
plot_conductivity_history
    Plot the effective conductivity against time.
"""

from __future__ import annotations

from typing import Any

import numpy as np


def plot_profile(
    mesh: Any,
    field: np.ndarray,
    label: str = "",
    ax: Any = None,
    **kwargs: Any,
) -> Any:
    """Plot a nodal field against elevation.

    Args:
        mesh: 1-D mesh.
        field: Nodal values, shape ``(n_nodes,)``.
        label: Axis label and legend entry.
        ax: Matplotlib axes (creates new figure if None).
        **kwargs: Passed to ``ax.plot``.

    Returns:
        Matplotlib axes.
    """
    import matplotlib.pyplot as plt

    if ax is None:
        fig, ax = plt.subplots(1, 1, figsize=(4, 6))

    order = np.argsort(mesh.elevation)
    ax.plot(np.asarray(field)[order], mesh.elevation[order], label=label, **kwargs)
    ax.set_xlabel(label)
    ax.set_ylabel("z")
    ax.grid(True, linewidth=0.3)
    return ax


def plot_field(
    mesh: Any,
    field: np.ndarray,
    contours: int = 20,
    colorbar: bool = True,
    title: str = "",
    ax: Any = None,
    cmap: str = "viridis",
) -> Any:
    """Plot a scalar field on a 2-D triangular mesh.

    Returns:
        Matplotlib axes.
    """
    import matplotlib.pyplot as plt
    import matplotlib.tri as mtri

    if ax is None:
        fig, ax = plt.subplots(1, 1, figsize=(6, 6))

    triang = mtri.Triangulation(mesh.nodes[:, 0], mesh.nodes[:, 1], mesh.cells)
    cs = ax.tricontourf(triang, field, levels=contours, cmap=cmap)
    if colorbar:
        plt.colorbar(cs, ax=ax, label=title)
    ax.tricontour(triang, field, levels=contours, colors="k", linewidths=0.3)
    ax.set_aspect("equal")
    ax.set_title(title)
    return ax


def plot_conductivity_history(
    summary: list[tuple[int, float, float]],
    relative: bool = True,
    ax: Any = None,
) -> Any:
    """Plot K_eff (optionally relative to its first value) over time.

    Args:
        summary: Rows ``(timestep, hours since milestone, K_eff)``.
        relative: Divide by the first value.
        ax: Matplotlib axes (creates new figure if None).

    Returns:
        Matplotlib axes.
    """
    import matplotlib.pyplot as plt

    if ax is None:
        fig, ax = plt.subplots(1, 1, figsize=(6, 4))

    table = np.array(summary, dtype=float).reshape(-1, 3)
    k = table[:, 2]
    if relative and len(k) and k[0] > 0:
        k = k / k[0]
    ax.plot(table[:, 0], k)
    ax.set_xlabel("timestep")
    ax.set_ylabel("K_eff / K_eff,0" if relative else "K_eff")
    ax.grid(True, linewidth=0.3)
    return ax
