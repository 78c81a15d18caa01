"""
Boundary with the physics simulation.

Physics, collision detection and rendering live outside this package. The
core only needs to spawn and remove fighters, read an observation vector
for a fighter, push per-part forces into it, and be told about contacts.
"""
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, FrozenSet, Hashable, Optional, Sequence, Tuple

import numpy as np


@dataclass
class FighterRef:
    """
    Handle to one spawned fighter.

    Attributes:
        ref: Simulation-specific handle passed back on every call.
        body_ids: Ids of every rigid body owned by this fighter.
    """
    ref: Any
    body_ids: FrozenSet[Hashable] = field(default_factory=frozenset)


@dataclass
class CollisionEvent:
    """
    Contact between two bodies, as reported by the simulation.

    ``body_id`` is the body raising the event, ``target_id`` the body it
    touched. Velocities are vectors; distance and height are optional.
    """
    body_id: Hashable
    target_id: Hashable
    body_velocity: Sequence[float]
    target_velocity: Sequence[float]
    distance: Optional[float] = None
    target_height: Optional[float] = None

    @property
    def body_speed(self) -> float:
        return float(np.linalg.norm(np.asarray(self.body_velocity, dtype=np.float64)))

    @property
    def target_speed(self) -> float:
        return float(np.linalg.norm(np.asarray(self.target_velocity, dtype=np.float64)))

    @property
    def relative_speed(self) -> float:
        difference = (
            np.asarray(self.body_velocity, dtype=np.float64)
            - np.asarray(self.target_velocity, dtype=np.float64)
        )
        return float(np.linalg.norm(difference))


class Simulation(ABC):
    """
    Interface the arenas use to drive the physics world.

    ``slot_index`` is the spatial placement key: each arena slot gets its
    own area of the world. ``side`` is 0 for the first fighter and 1 for
    the second.
    """

    @abstractmethod
    def spawn_fighter(self, slot_index: int, side: int) -> FighterRef:
        """Create a fighter in an arena slot."""

    @abstractmethod
    def remove_fighter(self, fighter: FighterRef) -> None:
        """Remove a fighter and all its bodies."""

    @abstractmethod
    def encode_observation(self, fighter: FighterRef) -> Sequence[float]:
        """Return the fighter's fixed-length observation vector."""

    @abstractmethod
    def apply_action(
        self,
        fighter: FighterRef,
        part_index: int,
        force: Tuple[float, float, float],
    ) -> None:
        """Apply an impulse to one body part of a fighter."""
