"""
Evolutionary algorithms for fighter policies.

This module provides:
- Agent: a policy with its score history
- Selection strategies (truncation to seeds, fitness-proportional parents)
- Crossover planning and policy breeding
- PopulationController: the generational loop

Example usage:
    from colosseum.evolution import PopulationController

    controller = PopulationController(config, submit=colosseum.submit,
                                      policy_factory=MLPPolicy.create)
    controller.start()
"""
from .agent import Agent, ScoreCallback, best_of
from .selection import FitnessProportionalSelection, TruncationSelection, rank_agents
from .crossover import Mating, PolicyBreeder, interpolation_fractions, plan_offspring, seed_pairs
from .population import GenerationStats, PopulationController

__all__ = [
    # Agents
    'Agent',
    'ScoreCallback',
    'best_of',

    # Selection
    'TruncationSelection',
    'FitnessProportionalSelection',
    'rank_agents',

    # Crossover
    'Mating',
    'PolicyBreeder',
    'interpolation_fractions',
    'plan_offspring',
    'seed_pairs',

    # Population
    'PopulationController',
    'GenerationStats',
]
