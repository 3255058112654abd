"""Time discretisation and step control."""

from pybioclog.time.schemes import ThetaScheme
from pybioclog.time.stepper import AdaptiveTimeStepController

__all__ = ["ThetaScheme", "AdaptiveTimeStepController"]
