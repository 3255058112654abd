"""Result and summary files.

Functions
---------
result_filename
    Name of the result file for the step in progress.
summary_filename
    Name of the hydraulic-conductivity summary table.
result_fields
    Nodal arrays written to a result file.
write_results
    Write one result file (``.vtu`` through *meshio* or gnuplot columns).
write_summary
    Write the (timestep, hours, K_eff) table.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any

import numpy as np

from pybioclog.core.config import OutputFormat, ReactionMode
from pybioclog.simulation import fields as F
from pybioclog.simulation.phases import Phase

RESULT_FIELDS = (
    F.PRESSURE,
    F.SUBSTRATE,
    F.BIOMASS_FRACTION,
    F.MOISTURE_FREE,
    F.MOISTURE_TOTAL,
    F.CONDUCTIVITY,
    F.CAPACITY,
)


def result_filename(parameters: Any, phase: Phase, time_in_phase: float, timestep: int) -> str:
    """File name (with suffix) of a result file.

    Args:
        parameters: Run configuration.
        phase: Active phase.
        time_in_phase: Time since the phase started.
        timestep: Number of the step.
    """
    equations = parameters.equations
    dim = parameters.geometry.dim
    suffix = parameters.output.output_format.value
    if equations.test_function_transport:
        return f"solution_{dim}d_tsn_{timestep}{suffix}"

    lumped = "lumped_" if equations.lumped_mass else ""
    stem = f"solution_{equations.formulation.value}_{lumped}{dim}d_{phase.value}_t_"
    if phase is Phase.TRANSPORTING:
        stem += f"{timestep:010d}"
        if equations.reaction is ReactionMode.HOMOGENEOUS_DECAY:
            stem += "_decaying"
    else:
        stem += f"{int(10 * time_in_phase)}"
    return stem + suffix


def summary_filename(parameters: Any) -> str:
    reaction = parameters.reaction
    return (
        "average_hydraulic_conductivity_sf_"
        f"{parameters.equations.relative_permeability.value}_"
        f"{parameters.output.sand_fraction}_"
        f"{reaction.yield_coefficient:g}_"
        f"{reaction.maximum_substrate_use_rate:g}_"
        f"{reaction.half_velocity_constant:g}.txt"
    )


def result_fields(mesh: Any, fields: F.FieldSet) -> dict[str, np.ndarray]:
    """Current nodal values to write, plus the boundary marker of each node."""
    data = {name: fields[name].new.copy() for name in RESULT_FIELDS}
    markers = np.zeros(mesh.n_nodes)
    for marker in np.unique(mesh.facet_markers[mesh.facet_markers > 0]):
        markers[mesh.marker_nodes(int(marker))] = marker
    data["boundary_marker"] = markers
    return data


def _write_vtu(mesh: Any, data: dict[str, np.ndarray], path: Path) -> None:
    try:
        import meshio
    except ImportError as exc:
        raise ImportError(
            "meshio is required for VTU export.  "
            "Install with: pip install meshio"
        ) from exc

    points = np.column_stack([mesh.nodes, np.zeros((mesh.n_nodes, 3 - mesh.dim))])
    cell_type = "line" if mesh.dim == 1 else "triangle"
    meshio.Mesh(
        points=points,
        cells=[(cell_type, mesh.cells)],
        point_data=data,
        cell_data={"cell_tag": [mesh.cell_tags]},
    ).write(path)


def _write_gnuplot(mesh: Any, data: dict[str, np.ndarray], path: Path) -> None:
    axes = ["z"] if mesh.dim == 1 else ["x", "z"]
    # Nodes sorted by elevation so 1-D profiles plot as lines
    order = np.lexsort(mesh.nodes.T)
    columns = [mesh.nodes[order, i] for i in range(mesh.dim)]
    columns += [values[order] for values in data.values()]
    np.savetxt(path, np.column_stack(columns), header=" ".join(axes + list(data)))


def write_results(ctx: Any, directory: str | Path | None = None) -> Path:
    """Write the current nodal fields of *ctx*.

    Args:
        ctx: :class:`~pybioclog.simulation.context.SimulationContext`.
        directory: Output directory; defaults to the configured one.

    Returns:
        Path of the written file.
    """
    output = ctx.parameters.output
    directory = Path(directory or output.output_directory)
    directory.mkdir(parents=True, exist_ok=True)
    path = directory / result_filename(
        ctx.parameters, ctx.phases.phase, ctx.time_in_phase, ctx.timestep
    )
    data = result_fields(ctx.mesh, ctx.fields)
    if output.output_format is OutputFormat.VTU:
        _write_vtu(ctx.mesh, data, path)
    else:
        _write_gnuplot(ctx.mesh, data, path)
    return path


def write_summary(rows: list[tuple[int, float, float]], path: str | Path) -> Path:
    """Write the per-step effective conductivity table.

    Args:
        rows: ``(timestep, hours since milestone, K_eff)`` tuples.
        path: Output file.
    """
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    table = np.array(rows, dtype=float).reshape(-1, 3)
    np.savetxt(
        path,
        table,
        fmt=["%d", "%.6f", "%.10e"],
        header="timestep hours_since_milestone effective_hydraulic_conductivity",
    )
    return path
