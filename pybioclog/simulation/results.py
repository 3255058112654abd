"""Result of a completed run."""

from __future__ import annotations

from typing import Any

import numpy as np


class SimulationResult:
    """Container for driver output.

    Attributes:
        fields: Final nodal fields, e.g. ``{"pressure": array}``.
        mesh: The final mesh.
        times: End time of every step.
        reports: Picard report of every step.
        summary: Rows ``(timestep, hours since milestone, K_eff)``.
        phase: Phase at the end of the run.
        transitions: Phase transitions made during the run.
        balance: Final water and substrate balance.
    """

    def __init__(
        self,
        fields: dict[str, np.ndarray],
        mesh: Any,
        times: np.ndarray,
        reports: list[Any],
        summary: list[tuple[int, float, float]],
        phase: Any,
        transitions: list[Any],
        balance: Any,
    ) -> None:
        self.fields = fields
        self.mesh = mesh
        self.times = times
        self.reports = reports
        self.summary = summary
        self.phase = phase
        self.transitions = transitions
        self.balance = balance

    @classmethod
    def from_context(cls, ctx: Any, reports: list[Any], times: list[float]) -> "SimulationResult":
        return cls(
            fields=ctx.fields.new_values(),
            mesh=ctx.mesh,
            times=np.asarray(times, dtype=float),
            reports=list(reports),
            summary=list(ctx.summary),
            phase=ctx.phases.phase,
            transitions=list(ctx.phases.transitions),
            balance=ctx.balance,
        )

    def __getitem__(self, key: str) -> np.ndarray:
        return self.fields[key]

    @property
    def effective_conductivity(self) -> np.ndarray:
        """Harmonic-mean conductivity after every step."""
        return np.array([row[2] for row in self.summary])

    @property
    def iterations(self) -> np.ndarray:
        """Picard iterations of every step."""
        return np.array([r.iterations for r in self.reports], dtype=int)

    def plot(self, field: str = "pressure", ax: Any = None) -> Any:
        """Column profile (1-D) or filled contours (2-D) of a final field.

        Returns:
            Matplotlib axes.
        """
        if self.mesh.dim == 1:
            from pybioclog.visualization.plot import plot_profile
            return plot_profile(self.mesh, self.fields[field], label=field, ax=ax)
        from pybioclog.visualization.plot import plot_field
        return plot_field(self.mesh, self.fields[field], title=field, ax=ax)

    def plot_conductivity(self, ax: Any = None) -> Any:
        """History of the effective conductivity."""
        from pybioclog.visualization.plot import plot_conductivity_history
        return plot_conductivity_history(self.summary, ax=ax)

    def __repr__(self) -> str:
        return (
            f"SimulationResult(steps={len(self.reports)}, "
            f"phase={getattr(self.phase, 'value', self.phase)!r}, "
            f"n_nodes={self.mesh.n_nodes})"
        )
