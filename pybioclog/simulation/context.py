"""Mutable state of one simulation run.

The context is created by the driver and passed by reference to the
Picard solver, the mesh adapter and the output writers.  Nothing in the
package keeps simulation state outside it.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from pybioclog.core.config import Parameters
from pybioclog.fem.space import FunctionSpace
from pybioclog.geometry.incidence import VertexIncidence
from pybioclog.geometry.mesh import Mesh
from pybioclog.simulation.balance import MassBalance
from pybioclog.simulation.fields import FieldSet
from pybioclog.simulation.phases import PhaseStateMachine


@dataclass
class SimulationContext:
    """Everything that changes while a run advances.

    Attributes:
        parameters: Run configuration.
        mesh: Current mesh.
        incidence: Vertex incidence of *mesh*.
        flow_space: Function space of the pressure head.
        transport_space: Function space of the substrate.
        fields: Nodal fields with old and new levels.
        phases: Phase state machine.
        balance: Water and substrate balance.
        time: Time at the end of the last committed step.
        timestep: Number of the step in progress (starts at 1).
        dt: Length of the step in progress.
        summary: Rows ``(timestep, hours since milestone, K_eff)``.
    """

    parameters: Parameters
    mesh: Mesh
    incidence: VertexIncidence
    flow_space: FunctionSpace
    transport_space: FunctionSpace
    fields: FieldSet
    phases: PhaseStateMachine
    balance: MassBalance = field(default_factory=MassBalance)
    time: float = 0.0
    timestep: int = 1
    dt: float = 1.0
    summary: list[tuple[int, float, float]] = field(default_factory=list)

    @classmethod
    def on_mesh(
        cls,
        parameters: Parameters,
        mesh: Mesh,
        phases: PhaseStateMachine,
    ) -> "SimulationContext":
        """Build spaces, incidence and zeroed fields for *mesh*."""
        lumped = parameters.equations.lumped_mass
        flow_space = FunctionSpace(mesh, lumped=lumped, facet_points=1)
        return cls(
            parameters=parameters,
            mesh=mesh,
            incidence=VertexIncidence.from_mesh(mesh),
            flow_space=flow_space,
            transport_space=FunctionSpace(mesh, lumped=False, facet_points=2),
            fields=FieldSet(flow_space.n_dofs),
            phases=phases,
            dt=parameters.time_stepping.time_step,
        )

    def replace_mesh(self, mesh: Mesh) -> None:
        """Switch to *mesh*; fields must already be transferred."""
        if self.fields.n_dofs != mesh.n_nodes:
            raise ValueError(
                f"Fields hold {self.fields.n_dofs} values but the mesh has "
                f"{mesh.n_nodes} nodes."
            )
        self.mesh = mesh
        self.incidence = VertexIncidence.from_mesh(mesh)
        self.flow_space = FunctionSpace(
            mesh, lumped=self.parameters.equations.lumped_mass, facet_points=1
        )
        self.transport_space = FunctionSpace(mesh, lumped=False, facet_points=2)
        self.fields.check_sizes()

    @property
    def time_in_phase(self) -> float:
        """Time elapsed since the active phase started."""
        return self.time - self.phases.milestone_time
