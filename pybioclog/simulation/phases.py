"""Physical regimes of a column experiment.

A run moves one way through three phases::

    DRYING ──► SATURATING ──► TRANSPORTING

Drying lets the column drain under a closed top until the top pressure
reaches hydrostatic equilibrium with the bottom; saturating imposes the
top head until the water flux through the column is steady; only then
is substrate transported and biomass allowed to grow.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum

from pybioclog.core.config import InitialState
from pybioclog.core.exceptions import ConfigError

logger = logging.getLogger(__name__)

DRYING_TOLERANCE = 3.1e-4
SATURATION_RELATIVE_TOLERANCE = 2e-2
SATURATION_ABSOLUTE_TOLERANCE = 3e-6


class Phase(str, Enum):
    DRYING = "drying"
    SATURATING = "saturating"
    TRANSPORTING = "transporting"


_INITIAL_PHASE = {
    InitialState.DEFAULT: Phase.DRYING,
    InitialState.FINAL: Phase.DRYING,
    InitialState.DRY: Phase.SATURATING,
    InitialState.NO_DRYING: Phase.SATURATING,
    InitialState.SATURATED: Phase.TRANSPORTING,
}


@dataclass(frozen=True)
class PhaseTransition:
    """A completed change of phase."""

    source: Phase
    target: Phase
    time: float
    timestep: int


def _ratio_error(numerator: float, denominator: float) -> float:
    """|1 - numerator/denominator|, with 0/0 counted as no difference."""
    if denominator == 0.0:
        return 0.0 if numerator == 0.0 else float("inf")
    return abs(1.0 - numerator / denominator)


@dataclass
class PhaseStateMachine:
    """Tracks the active phase and decides when to move on.

    Attributes:
        phase: Active phase.
        coupled_transport: Whether the transport phase may be entered.
        milestone_time: Time at which the active phase started.
        redefine_time_step: Set on the update that made a transition.
        figure_count: Output figures written in the active phase.
        transitions: History of transitions.
    """

    phase: Phase = Phase.DRYING
    coupled_transport: bool = True
    milestone_time: float = 0.0
    redefine_time_step: bool = False
    figure_count: int = 0
    relative_error_drying: float = float("inf")
    relative_error_saturation: float = float("inf")
    absolute_error_saturation: float = float("inf")
    transitions: list[PhaseTransition] = field(default_factory=list)

    @classmethod
    def from_initial_state(
        cls,
        initial_state: InitialState,
        coupled_transport: bool = True,
    ) -> "PhaseStateMachine":
        """Phase a run starts in, given its initial state.

        Raises:
            ConfigError: For an unknown initial state.
        """
        try:
            phase = _INITIAL_PHASE[InitialState(initial_state)]
        except (KeyError, ValueError):
            raise ConfigError(f"Unknown initial state {initial_state!r}.") from None
        return cls(phase=phase, coupled_transport=coupled_transport)

    @property
    def drying(self) -> bool:
        return self.phase is Phase.DRYING

    @property
    def transport_active(self) -> bool:
        return self.phase is Phase.TRANSPORTING

    # ------------------------------------------------------------------
    # Transition criteria
    # ------------------------------------------------------------------

    def drying_complete(self, top_pressure: float, equilibrium_pressure: float) -> bool:
        """Whether the top pressure has reached the bottom-driven equilibrium."""
        self.relative_error_drying = _ratio_error(top_pressure, equilibrium_pressure)
        return self.relative_error_drying < DRYING_TOLERANCE

    def saturation_complete(self, flow_at_top: float, flow_at_bottom: float) -> bool:
        """Whether the water flux through the column is steady.

        Both fluxes are outward, so a steady column has
        ``flow_at_top == -flow_at_bottom``.
        """
        self.relative_error_saturation = _ratio_error(abs(flow_at_top), abs(flow_at_bottom))
        self.absolute_error_saturation = abs(flow_at_top + flow_at_bottom)
        return (
            self.relative_error_saturation < SATURATION_RELATIVE_TOLERANCE
            or self.absolute_error_saturation < SATURATION_ABSOLUTE_TOLERANCE
        )

    def update(
        self,
        time: float,
        timestep: int,
        top_pressure: float,
        equilibrium_pressure: float,
        flow_at_top: float,
        flow_at_bottom: float,
    ) -> PhaseTransition | None:
        """Check the active phase's exit criterion after a converged step.

        At most one transition happens per call.

        Returns:
            The transition made, or ``None``.
        """
        self.redefine_time_step = False
        target = None
        if self.phase is Phase.DRYING:
            if self.drying_complete(top_pressure, equilibrium_pressure):
                target = Phase.SATURATING
        elif self.phase is Phase.SATURATING and self.coupled_transport:
            if self.saturation_complete(flow_at_top, flow_at_bottom):
                target = Phase.TRANSPORTING
        if target is None:
            return None
        return self._enter(target, time, timestep)

    def _enter(self, target: Phase, time: float, timestep: int) -> PhaseTransition:
        transition = PhaseTransition(self.phase, target, time, timestep)
        logger.info(
            "Phase %s -> %s at t=%.1f h (timestep %d), %.2f h after previous milestone",
            self.phase.value,
            target.value,
            time / 3600.0,
            timestep,
            (time - self.milestone_time) / 3600.0,
        )
        self.phase = target
        self.milestone_time = time
        self.figure_count = 0
        self.redefine_time_step = True
        self.transitions.append(transition)
        return transition

    def __repr__(self) -> str:
        return (
            f"PhaseStateMachine(phase={self.phase.value!r}, "
            f"milestone_time={self.milestone_time})"
        )
