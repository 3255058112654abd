"""Physics modules: Richards' equation and substrate transport."""

from pybioclog.physics.base import LinearSystem, PhysicsModule
from pybioclog.physics.richards import Richards
from pybioclog.physics.transport import Transport

__all__ = ["LinearSystem", "PhysicsModule", "Richards", "Transport"]
