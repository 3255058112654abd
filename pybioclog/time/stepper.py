"""Time-step control.

Classes
-------
AdaptiveTimeStepController
    Iteration-count based step growth with phase-dependent bounds.
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass
class AdaptiveTimeStepController:
    """Grow or reset the time step after every converged step.

    After a phase transition the step returns to *baseline*; otherwise
    it doubles when the Picard loop needed fewer than
    *growth_iteration_threshold* iterations.  The result is clamped to
    ``[min_step, max_step]`` where the upper bound depends on the phase.

    Args:
        min_step: Lower bound of the step.
        max_step_flow: Upper bound while drying or saturating.
        max_step_transport: Upper bound while transporting.
        growth_iteration_threshold: Iteration count below which the step
            grows.
        growth_factor: Multiplier applied on growth.
        baseline: Step after a phase transition.

    Example::

        controller = AdaptiveTimeStepController()
        dt = controller.suggest_dt(dt, iterations=3, transporting=True,
                                   redefine=False)
    """

    min_step: float = 1.0
    max_step_flow: float = 1.0
    max_step_transport: float = 60.0
    growth_iteration_threshold: int = 15
    growth_factor: float = 2.0
    baseline: float = 1.0

    @classmethod
    def from_config(cls, time_stepping) -> "AdaptiveTimeStepController":
        return cls(
            min_step=time_stepping.min_time_step,
            max_step_flow=time_stepping.max_time_step_flow,
            max_step_transport=time_stepping.max_time_step_transport,
            growth_iteration_threshold=time_stepping.growth_iteration_threshold,
        )

    def max_step(self, transporting: bool) -> float:
        if transporting:
            return self.max_step_transport
        return self.max_step_flow

    def suggest_dt(
        self,
        dt_current: float,
        iterations: int,
        transporting: bool,
        redefine: bool,
    ) -> float:
        """Suggest the next step size.

        Args:
            dt_current: Step just completed.
            iterations: Picard iterations the step needed, counting those
                spent before any halving.
            transporting: Whether the next step runs in the transport
                phase.
            redefine: Whether a phase transition just occurred.

        Returns:
            New step size.
        """
        if redefine:
            dt = self.baseline
        elif iterations < self.growth_iteration_threshold:
            dt = dt_current * self.growth_factor
        else:
            dt = dt_current
        dt = max(dt, self.min_step)
        return min(dt, self.max_step(transporting))

    def __repr__(self) -> str:
        return (
            f"AdaptiveTimeStepController(min_step={self.min_step}, "
            f"max_step_flow={self.max_step_flow}, "
            f"max_step_transport={self.max_step_transport})"
        )
