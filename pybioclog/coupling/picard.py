"""Picard coupling of flow and substrate transport.

Each time step is iterated until the flow and transport solutions stop
changing.  One iteration walks through the stages::

    ASSEMBLE_FLOW ─► SOLVE_FLOW ─► ASSEMBLE_TRANSPORT ─► SOLVE_TRANSPORT ─► CHECK_CONVERGENCE

The hydraulic state (conductivity, moisture, capacity, biomass) is
refreshed from the current iterate at the start of every iteration.
While substrate is transported, a step that does not converge within a
fixed number of iterations is halved and retried.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum

from pybioclog.boundaries.base import flow_conditions, transport_conditions
from pybioclog.core.exceptions import BioclogError, ErrorContext, SolverDivergence
from pybioclog.physics.richards import Richards
from pybioclog.physics.transport import Transport
from pybioclog.simulation import fields as F
from pybioclog.simulation.context import SimulationContext
from pybioclog.simulation.hydraulic_state import HydraulicStateEvaluator
from pybioclog.solvers.linear import solve_nonsymmetric, solve_symmetric

logger = logging.getLogger(__name__)

FLOW_TOLERANCE = 1e-8
TRANSPORT_TOLERANCE = 1e-3
TRANSPORT_TEST_TOLERANCE = 1.5e-7


class PicardStage(str, Enum):
    ASSEMBLE_FLOW = "assemble_flow"
    SOLVE_FLOW = "solve_flow"
    ASSEMBLE_TRANSPORT = "assemble_transport"
    SOLVE_TRANSPORT = "solve_transport"
    CHECK_CONVERGENCE = "check_convergence"


@dataclass
class PicardReport:
    """Outcome of one converged time step.

    Attributes:
        iterations: Iterations since the last halving.
        total_iterations: Iterations including those before halvings.
        halvings: Number of times the step was halved.
        dt: Step length actually taken.
        flow_error: Final relative change of the pressure norm.
        transport_error: Final relative change of the substrate norm (%).
        transported: Whether transport was solved.
    """

    iterations: int
    total_iterations: int
    halvings: int
    dt: float
    flow_error: float
    transport_error: float
    transported: bool


def relative_change(previous: float, current: float) -> float:
    """|1 − previous/current|, with 0/0 counted as no change."""
    if current == 0.0:
        return 0.0 if previous == 0.0 else float("inf")
    return abs(1.0 - previous / current)


class CoupledPicardSolver:
    """Iterates flow and transport to convergence within a time step.

    Args:
        richards: Flow module.
        transport: Transport module.
        evaluator: Hydraulic state evaluator.
        parameters: Run configuration.
    """

    def __init__(
        self,
        richards: Richards,
        transport: Transport,
        evaluator: HydraulicStateEvaluator,
        parameters,
    ) -> None:
        self.richards = richards
        self.transport = transport
        self.evaluator = evaluator
        self.boundary = parameters.boundary_conditions
        self.time_stepping = parameters.time_stepping
        self.coupled_transport = parameters.equations.coupled_transport
        self.test_mode = parameters.equations.test_function_transport
        self.stage = PicardStage.ASSEMBLE_FLOW

    def transporting(self, ctx: SimulationContext) -> bool:
        """Whether transport is solved in the current step."""
        if self.test_mode:
            return True
        return self.coupled_transport and ctx.phases.transport_active

    def converged(self, flow_error: float, transport_error: float) -> bool:
        if self.test_mode:
            return transport_error < TRANSPORT_TEST_TOLERANCE
        return flow_error < FLOW_TOLERANCE and transport_error <= TRANSPORT_TOLERANCE

    def _context(self, ctx: SimulationContext, component: str) -> ErrorContext:
        return ErrorContext(
            component=component,
            operation=self.stage.value,
            timestep=ctx.timestep,
            time=ctx.time,
        )

    # ------------------------------------------------------------------
    # Stages
    # ------------------------------------------------------------------

    def _solve_flow(self, ctx: SimulationContext, bcs) -> float:
        """Assemble and solve Richards' equation; returns ‖h‖²."""
        pressure = ctx.fields[F.PRESSURE]
        self.stage = PicardStage.ASSEMBLE_FLOW
        system = self.richards.assemble(ctx.fields, ctx.dt, bcs)
        A, rhs = system.constrained()
        self.stage = PicardStage.SOLVE_FLOW
        solution = solve_symmetric(
            A, rhs, x0=pressure.new, context=self._context(ctx, self.richards.name)
        )
        pressure.set(solution)
        return float(solution @ solution)

    def _solve_transport(self, ctx: SimulationContext, bcs) -> float:
        """Assemble and solve the substrate equation; returns ‖c‖²."""
        substrate = ctx.fields[F.SUBSTRATE]
        self.stage = PicardStage.ASSEMBLE_TRANSPORT
        system = self.transport.assemble(
            ctx.fields, ctx.dt, bcs, reaction_rates=self.evaluator.reaction_rates(ctx.fields)
        )
        A, rhs = system.constrained()
        self.stage = PicardStage.SOLVE_TRANSPORT
        solution = solve_nonsymmetric(
            A, rhs, x0=substrate.new, context=self._context(ctx, self.transport.name)
        )
        substrate.set(solution)
        return float(solution @ solution)

    def _halve(self, ctx: SimulationContext, halvings: int) -> None:
        if halvings > self.time_stepping.max_time_step_halvings:
            raise SolverDivergence(
                "Picard iteration did not converge after the maximum number of "
                "time-step halvings.",
                self._context(ctx, "picard"),
            )
        ctx.dt *= 0.5
        for name in (F.PRESSURE, F.SUBSTRATE):
            ctx.fields[name].set(ctx.fields[name].old)
        logger.warning(
            "Picard iteration stalled at timestep %d, halving time step to %g s",
            ctx.timestep,
            ctx.dt,
        )

    # ------------------------------------------------------------------
    # Time step
    # ------------------------------------------------------------------

    def step(self, ctx: SimulationContext) -> PicardReport:
        """Iterate the step in progress to convergence.

        On return the new levels of *ctx.fields* hold the converged
        solution and *ctx.balance* the step's boundary fluxes.
        *ctx.dt* may have been reduced.

        Raises:
            NumericalBreakdown: From the transport stabilisation.
            SolverDivergence: From a linear solver, or when the step
                cannot be brought to convergence.
        """
        try:
            return self._iterate(ctx)
        except BioclogError as exc:
            if exc.context.timestep is None:
                exc.context.timestep = ctx.timestep
                exc.context.time = ctx.time
            raise

    def _iterate(self, ctx: SimulationContext) -> PicardReport:
        fields = ctx.fields
        drying = ctx.phases.drying
        transporting = self.transporting(ctx)
        flow_bcs = flow_conditions(self.boundary, drying)
        transport_bcs = transport_conditions(self.boundary)

        iterations = 0
        total = 0
        halvings = 0
        flow_error = 0.0 if self.test_mode else float("inf")
        transport_error = float("inf") if transporting else 0.0
        flow_norm = float(fields[F.PRESSURE].new @ fields[F.PRESSURE].new)
        transport_norm = 0.0

        while True:
            self.stage = PicardStage.ASSEMBLE_FLOW
            self.evaluator.evaluate(ctx.mesh, ctx.incidence, fields, ctx.dt, drying)

            if not self.test_mode:
                norm = self._solve_flow(ctx, flow_bcs)
                flow_error = relative_change(flow_norm, norm)
                flow_norm = norm

            if transporting:
                norm = self._solve_transport(ctx, transport_bcs)
                transport_error = 100.0 * relative_change(transport_norm, norm)
                transport_norm = norm

            self.stage = PicardStage.CHECK_CONVERGENCE
            iterations += 1
            total += 1
            logger.debug(
                "timestep %d iteration %d: flow error %.3e, transport error %.3e",
                ctx.timestep,
                iterations,
                flow_error,
                transport_error,
            )
            if self.converged(flow_error, transport_error):
                break
            if total >= self.time_stepping.max_picard_iterations_total:
                raise SolverDivergence(
                    f"Picard iteration did not converge within {total} iterations.",
                    ErrorContext(
                        component="picard",
                        operation=self.stage.value,
                        timestep=ctx.timestep,
                        time=ctx.time,
                        details={"flow_error": flow_error, "transport_error": transport_error},
                    ),
                )
            if transporting and iterations >= self.time_stepping.picard_iterations_before_halving:
                halvings += 1
                self._halve(ctx, halvings)
                iterations = 0
                flow_error = 0.0 if self.test_mode else float("inf")
                transport_error = float("inf")
                flow_norm = float(fields[F.PRESSURE].new @ fields[F.PRESSURE].new)
                transport_norm = 0.0

        self._record_fluxes(ctx, transporting)
        return PicardReport(
            iterations=iterations,
            total_iterations=total,
            halvings=halvings,
            dt=ctx.dt,
            flow_error=flow_error,
            transport_error=transport_error,
            transported=transporting,
        )

    def _record_fluxes(self, ctx: SimulationContext, transporting: bool) -> None:
        ctx.balance.record_flow(*self.richards.boundary_flows(ctx.fields))
        if transporting:
            ctx.balance.record_nutrients(*self.transport.boundary_flows(ctx.fields))
        else:
            ctx.balance.record_nutrients(0.0, 0.0)

    def rebind(self, ctx: SimulationContext) -> None:
        """Point both modules at the function spaces of *ctx*."""
        self.richards.rebind(ctx.flow_space)
        self.transport.rebind(ctx.transport_space)

    def __repr__(self) -> str:
        return (
            f"CoupledPicardSolver(coupled_transport={self.coupled_transport}, "
            f"test_mode={self.test_mode})"
        )
