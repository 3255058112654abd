"""Simulation state: fields, phases, balance and context.

The time-loop driver lives in :mod:`pybioclog.simulation.driver`.
"""

from pybioclog.simulation.fields import FieldPair, FieldSet
from pybioclog.simulation.balance import MassBalance
from pybioclog.simulation.phases import Phase, PhaseStateMachine, PhaseTransition
from pybioclog.simulation.hydraulic_state import HydraulicStateEvaluator
from pybioclog.simulation.context import SimulationContext
from pybioclog.simulation.results import SimulationResult

__all__ = [
    "FieldPair",
    "FieldSet",
    "MassBalance",
    "Phase",
    "PhaseStateMachine",
    "PhaseTransition",
    "HydraulicStateEvaluator",
    "SimulationContext",
    "SimulationResult",
]
