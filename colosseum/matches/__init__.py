"""
Match execution and scheduling.

This module provides:
- Simulation boundary types (Simulation, FighterRef, CollisionEvent)
- Arena: one timed two-agent match
- Colosseum: FIFO pairing of agents into a fixed number of slots
"""
from .boundary import CollisionEvent, FighterRef, Simulation
from .results import AgentScore, MatchResult
from .arena import Arena, Corner
from .scheduler import Colosseum, MatchSlot

__all__ = [
    # Boundary
    'Simulation',
    'FighterRef',
    'CollisionEvent',

    # Results
    'AgentScore',
    'MatchResult',

    # Execution
    'Arena',
    'Corner',
    'Colosseum',
    'MatchSlot',
]
