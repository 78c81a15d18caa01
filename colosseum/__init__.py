"""
Colosseum: population-based training with a competitive fitness signal.

Agents (policies) fight each other in pairwise, time-boxed matches; the
generational loop turns match scores into the next population through
selection, crossover and mutation, optionally refining offspring with an
actor-critic trainer between generations.

This package provides:
- networks: policy networks and their transferable form
- matches: arenas and the slot scheduler
- inference: throttled, asynchronous prediction service
- training: replay store, critic/actor learners and the trainer service
- evolution: agents, selection, crossover and the population controller
- visualization: score plots and summaries

Example usage:
    from colosseum import ColosseumConfig, ColosseumSystem
    from colosseum.networks import MLPPolicy

    system = ColosseumSystem(
        ColosseumConfig(total_arenas=2, population_size=10),
        simulation=physics,
        policy_factory=MLPPolicy.create,
    )
    system.start()
"""
from .config import ColosseumConfig
from .exceptions import (
    ColosseumError,
    DuplicateCompletion,
    InvalidAgent,
    InvalidTrajectoryStep,
    ObservationEncodingError,
    UnknownAgent,
    WorkerStopped,
)
from .system import ColosseumSystem

__all__ = [
    # Configuration
    'ColosseumConfig',

    # Errors
    'ColosseumError',
    'DuplicateCompletion',
    'InvalidAgent',
    'InvalidTrajectoryStep',
    'ObservationEncodingError',
    'UnknownAgent',
    'WorkerStopped',

    # Wiring
    'ColosseumSystem',
]
