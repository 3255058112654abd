"""Outer time loop of a column simulation.

Per step the driver

1. adapts the mesh (optional, 1-D),
2. iterates flow and transport to convergence,
3. advances time and accumulates the water and substrate balance,
4. checks for a phase transition,
5. records the effective conductivity and writes output when due,
6. commits all fields and chooses the next step length.

Example::

    from pybioclog import Parameters, SimulationDriver

    params = Parameters.from_dict({"time_stepping": {"timestep_number_max": 50}})
    result = SimulationDriver(params).run()
    print(result.effective_conductivity[-1])
"""

from __future__ import annotations

import logging
from pathlib import Path

import numpy as np

from pybioclog.core.config import Parameters
from pybioclog.core.exceptions import ConfigError
from pybioclog.coupling.picard import CoupledPicardSolver, PicardReport
from pybioclog.geometry.mesh import TOP_MARKER, Mesh
from pybioclog.geometry.refinement import MeshAdapter
from pybioclog.materials.kinetics import MG_PER_L_TO_MG_PER_CM3
from pybioclog.physics.richards import Richards
from pybioclog.physics.transport import Transport
from pybioclog.postprocess.export import summary_filename, write_results, write_summary
from pybioclog.postprocess.integrals import effective_hydraulic_conductivity
from pybioclog.postprocess.restart import load_state, save_state
from pybioclog.simulation import fields as F
from pybioclog.simulation.context import SimulationContext
from pybioclog.simulation.hydraulic_state import HydraulicStateEvaluator
from pybioclog.simulation.phases import Phase, PhaseStateMachine, PhaseTransition
from pybioclog.simulation.results import SimulationResult
from pybioclog.time.schemes import ThetaScheme
from pybioclog.time.stepper import AdaptiveTimeStepController

logger = logging.getLogger(__name__)


class SimulationDriver:
    """Runs a bioclogging column simulation.

    Args:
        parameters: Run configuration.
        output_directory: Overrides the configured output directory.
    """

    def __init__(
        self,
        parameters: Parameters,
        output_directory: str | Path | None = None,
    ) -> None:
        self.parameters = parameters
        self.output_directory = Path(output_directory or parameters.output.output_directory)
        self.controller = AdaptiveTimeStepController.from_config(parameters.time_stepping)
        self.evaluator = HydraulicStateEvaluator.from_parameters(parameters)
        self.adapter = (
            MeshAdapter.from_config(parameters.geometry)
            if parameters.geometry.adaptive_refinement
            else None
        )
        self.test_mode = parameters.equations.test_function_transport
        self.ctx: SimulationContext | None = None
        self.picard: CoupledPicardSolver | None = None
        self.reports: list[PicardReport] = []
        self.times: list[float] = []

    # ------------------------------------------------------------------
    # Setup
    # ------------------------------------------------------------------

    def setup(self, mesh: Mesh | None = None) -> SimulationContext:
        """Build mesh, modules and initial fields.

        Args:
            mesh: Use this mesh instead of the configured one.

        Raises:
            ConfigError: If the mesh lacks the top or bottom boundary.
            StateIOError: If a restart snapshot cannot be loaded.
        """
        params = self.parameters
        mesh = mesh or Mesh.from_config(params.geometry)
        phases = PhaseStateMachine.from_initial_state(
            params.initial_conditions.initial_state,
            coupled_transport=params.equations.coupled_transport,
        )
        ctx = SimulationContext.on_mesh(params, mesh, phases)

        constitutive = params.constitutive
        richards = Richards(
            ctx.flow_space,
            ThetaScheme(params.time_stepping.theta_richards),
            params.equations.formulation,
        )
        transport = Transport(
            ctx.transport_space,
            ThetaScheme(params.time_stepping.theta_transport),
            dispersivity_longitudinal=constitutive.dispersivity_longitudinal,
            effective_diffusion=constitutive.effective_diffusion_coefficient,
        )
        issues = richards.validate()
        if issues:
            raise ConfigError("Invalid mesh: " + " ".join(issues))
        self.picard = CoupledPicardSolver(richards, transport, self.evaluator, params)

        self.apply_initial_conditions(ctx)
        self.ctx = ctx
        logger.info(
            "Set up %d-D column: %d cells, %d nodes, starting in phase %s",
            mesh.dim,
            mesh.n_cells,
            mesh.n_nodes,
            phases.phase.value,
        )
        return ctx

    def apply_initial_conditions(self, ctx: SimulationContext) -> None:
        """Homogeneous or restart initial state, with derived fields filled."""
        initial = self.parameters.initial_conditions
        fields = ctx.fields
        if initial.initial_state.from_restart:
            state = load_state(initial.state_directory, initial.initial_state.value, fields.n_dofs)
            for name, values in state.items():
                fields[name].reset(values)
        else:
            fields[F.PRESSURE].reset(np.full(fields.n_dofs, initial.pressure))
            if self.test_mode:
                self._initialize_transport_fields(ctx)
        fields[F.BIOMASS_FRACTION].reset(
            fields[F.BIOMASS].new / self.parameters.constitutive.biomass_dry_density
        )
        self.evaluator.evaluate(ctx.mesh, ctx.incidence, fields, ctx.dt, drying=True)
        fields.commit_all()
        ctx.balance.reset_nutrients(self.picard.transport.substrate_mass(fields))

    def _initialize_transport_fields(self, ctx: SimulationContext) -> None:
        """Biomass and substrate from the configured concentrations (mg/L)."""
        initial = self.parameters.initial_conditions
        fields = ctx.fields
        biomass = np.full(fields.n_dofs, initial.bacteria * MG_PER_L_TO_MG_PER_CM3)
        fields[F.BIOMASS].reset(biomass)
        fields[F.BIOMASS_FRACTION].reset(biomass / self.parameters.constitutive.biomass_dry_density)
        fields[F.SUBSTRATE].reset(np.full(fields.n_dofs, initial.substrate * MG_PER_L_TO_MG_PER_CM3))

    # ------------------------------------------------------------------
    # Time loop
    # ------------------------------------------------------------------

    def run(self, n_steps: int | None = None) -> SimulationResult:
        """Run the time loop.

        Args:
            n_steps: Number of steps; defaults to ``timestep_number_max``.

        Returns:
            :class:`~pybioclog.simulation.results.SimulationResult`.
        """
        ctx = self.ctx or self.setup()
        n_steps = n_steps or self.parameters.time_stepping.timestep_number_max
        for i in range(n_steps):
            self.advance(ctx, last=(i == n_steps - 1))
        self.finish(ctx)
        return SimulationResult.from_context(ctx, self.reports, self.times)

    def advance(self, ctx: SimulationContext, last: bool = False) -> PicardReport:
        """Take one time step."""
        if self.adapter is not None:
            self.adapt_mesh(ctx)

        report = self.picard.step(ctx)
        ctx.time += ctx.dt
        ctx.balance.accumulate(ctx.dt, self.picard.transport.substrate_mass(ctx.fields))

        if not self.test_mode:
            transition = ctx.phases.update(
                time=ctx.time,
                timestep=ctx.timestep,
                top_pressure=self.top_pressure(ctx),
                equilibrium_pressure=self.equilibrium_pressure(ctx),
                flow_at_top=ctx.balance.flow_at_top,
                flow_at_bottom=ctx.balance.flow_at_bottom,
            )
            if transition is not None:
                self._on_transition(ctx, transition)

        k_eff = effective_hydraulic_conductivity(ctx.fields[F.CONDUCTIVITY].new)
        ctx.summary.append((ctx.timestep, ctx.time_in_phase / 3600.0, k_eff))
        self._log_step(ctx, report, k_eff)
        self._write_output(ctx, last)

        ctx.fields.commit_all()
        self.reports.append(report)
        self.times.append(ctx.time)
        if not self.test_mode:
            ctx.dt = self.controller.suggest_dt(
                ctx.dt,
                report.total_iterations,
                transporting=ctx.phases.transport_active,
                redefine=ctx.phases.redefine_time_step,
            )
        ctx.timestep += 1
        return report

    def finish(self, ctx: SimulationContext) -> None:
        """Write the summary table and the final restart state."""
        output = self.parameters.output
        if output.write_results:
            path = write_summary(ctx.summary, self.output_directory / summary_filename(self.parameters))
            logger.info("Wrote summary to %s", path)
        if output.write_restart_states:
            save_state(self.output_directory, "final", ctx.fields)

    # ------------------------------------------------------------------
    # Phase handling
    # ------------------------------------------------------------------

    @staticmethod
    def top_pressure(ctx: SimulationContext) -> float:
        """Mean pressure head over the top boundary nodes."""
        return float(np.mean(ctx.fields[F.PRESSURE].new[ctx.mesh.marker_nodes(TOP_MARKER)]))

    def equilibrium_pressure(self, ctx: SimulationContext) -> float:
        """Top pressure of a hydrostatic column held at the bottom value."""
        z = ctx.mesh.elevation
        return self.parameters.boundary_conditions.richards_bottom_fixed_value - (z.max() - z.min())

    def _on_transition(self, ctx: SimulationContext, transition: PhaseTransition) -> None:
        write_restart = self.parameters.output.write_restart_states
        if transition.target is Phase.SATURATING and write_restart:
            save_state(self.output_directory, "dry", ctx.fields)
        if transition.target is Phase.TRANSPORTING:
            self._initialize_transport_fields(ctx)
            ctx.balance.reset_nutrients(self.picard.transport.substrate_mass(ctx.fields))
            if write_restart:
                save_state(self.output_directory, "saturated", ctx.fields)

    # ------------------------------------------------------------------
    # Mesh adaptation
    # ------------------------------------------------------------------

    def adapt_mesh(self, ctx: SimulationContext) -> bool:
        """Refine and coarsen the column; returns whether the mesh changed."""
        name = F.SUBSTRATE if self.picard.transporting(ctx) else F.PRESSURE
        new_mesh = self.adapter.adapt(ctx.mesh, ctx.fields[name].new)
        if new_mesh is None:
            return False
        self.adapter.transfer(ctx.mesh, new_mesh, ctx.fields)
        ctx.replace_mesh(new_mesh)
        self.picard.rebind(ctx)
        return True

    # ------------------------------------------------------------------
    # Output
    # ------------------------------------------------------------------

    def _write_output(self, ctx: SimulationContext, last: bool) -> None:
        output = self.parameters.output
        if not output.write_results:
            return
        if ctx.phases.figure_count % output.output_frequency == 0 or last:
            path = write_results(ctx, self.output_directory)
            logger.debug("Wrote %s", path)
        ctx.phases.figure_count += 1

    def _log_step(self, ctx: SimulationContext, report: PicardReport, k_eff: float) -> None:
        level = logging.INFO if self.parameters.output.output_data_in_terminal else logging.DEBUG
        logger.log(
            level,
            "step %d  t=%.4g h  dt=%g s  phase=%s  iterations=%d  "
            "q_top=%.3e  q_bottom=%.3e  K_eff=%.4e",
            ctx.timestep,
            ctx.time / 3600.0,
            report.dt,
            ctx.phases.phase.value,
            report.iterations,
            ctx.balance.flow_at_top,
            ctx.balance.flow_at_bottom,
            k_eff,
        )

    def __repr__(self) -> str:
        return f"SimulationDriver(output_directory={str(self.output_directory)!r})"
